# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI smoke tests.

CLI tests verify that:
  - commands execute
  - exit codes are correct
  - help text exists

We use subprocess to test the actual CLI entrypoint the way a user would.
This catches issues that unit tests miss, like broken imports or entrypoint
registration. Logs go to stdout, so payload checks read written files.
"""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest


def _run_cli(*args: str, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    """Run `shipwright` with the given arguments and capture output."""
    run_env = {k: v for k, v in os.environ.items() if k != "GITHUB_OUTPUT"}
    run_env.update(env or {})
    return subprocess.run(
        [sys.executable, "-m", "shipwright.cli.main", *args],
        capture_output=True,
        text=True,
        timeout=30,
        env=run_env,
    )


class TestHelpTexts:
    """Every subcommand must have working --help output."""

    @pytest.mark.parametrize(
        "subcommand",
        [
            "validate", "matrix", "build", "package", "release",
            "checksums", "verify", "install-script", "info",
        ],
    )
    def test_subcommand_help_exits_zero(self, subcommand: str) -> None:
        result = _run_cli(subcommand, "--help")
        assert result.returncode == 0
        assert "usage" in result.stdout.lower()

    def test_root_help_exits_with_user_error(self) -> None:
        """Running shipwright with no args should show help and exit with USER_ERROR (1)."""
        result = _run_cli()
        assert result.returncode == 1


class TestSubcommandExecution:
    def test_info_runs_without_config(self) -> None:
        result = _run_cli("info")
        assert result.returncode == 0
        assert "shipwright_version" in result.stdout

    def test_matrix_writes_output_file(self, tmp_path: Path) -> None:
        out = tmp_path / "matrix.json"
        result = _run_cli("matrix", "--exclude", "linux-arm64", "--output", str(out))
        assert result.returncode == 0
        payload = json.loads(out.read_text(encoding="utf-8"))
        assert [row["platform"] for row in payload["include"]] == ["linux-x86_64", "mac-arm64"]

    def test_matrix_appends_to_github_output(self, tmp_path: Path) -> None:
        github_output = tmp_path / "github_output"
        github_output.write_text("previous=1\n")
        result = _run_cli("matrix", "--platforms", "linux-armv7", env={"GITHUB_OUTPUT": str(github_output)})
        assert result.returncode == 0
        lines = github_output.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "previous=1"
        assert lines[1].startswith('matrix={"include":')

    def test_matrix_excluding_everything_is_a_validation_error(self) -> None:
        result = _run_cli("matrix", "--exclude", "linux-x86_64,linux-arm64,mac-arm64")
        assert result.returncode == 4

    def test_validate_accepts_good_inputs(self) -> None:
        result = _run_cli("validate", "--binary-name", "demo", "--version", "v1.2.3", "--repository", "acme/demo")
        assert result.returncode == 0

    def test_validate_rejects_bad_name(self) -> None:
        result = _run_cli("validate", "--binary-name", "bad;name")
        assert result.returncode == 4

    def test_validate_with_nothing_is_a_user_error(self) -> None:
        result = _run_cli("validate")
        assert result.returncode == 1

    def test_checksums_then_verify(self, tmp_path: Path) -> None:
        (tmp_path / "demo-v1-linux.tar.gz").write_bytes(b"archive")
        assert _run_cli("checksums", "--output-dir", str(tmp_path)).returncode == 0
        assert (tmp_path / "checksums.txt").is_file()
        assert _run_cli("verify", "--output-dir", str(tmp_path)).returncode == 0

        (tmp_path / "demo-v1-linux.tar.gz").write_bytes(b"tampered")
        assert _run_cli("verify", "--output-dir", str(tmp_path)).returncode == 4

    def test_checksums_missing_directory(self, tmp_path: Path) -> None:
        result = _run_cli("checksums", "--output-dir", str(tmp_path / "absent"))
        assert result.returncode == 1

    def test_verify_missing_checksum_file(self, tmp_path: Path) -> None:
        result = _run_cli("verify", "--output-dir", str(tmp_path))
        assert result.returncode == 4

    def test_install_script_is_written(self, tmp_path: Path) -> None:
        result = _run_cli(
            "install-script",
            "--binary-name", "demo",
            "--platform", "linux-x86_64",
            "--version", "v1.2.3",
            "--repository", "acme/demo",
            "--output-dir", str(tmp_path),
        )
        assert result.returncode == 0
        assert (tmp_path / "install-linux-x86_64.sh").is_file()

    def test_install_script_missing_options(self, tmp_path: Path) -> None:
        result = _run_cli("install-script", "--binary-name", "demo", "--output-dir", str(tmp_path))
        assert result.returncode == 1

    def test_package_without_build_output(self, tmp_path: Path) -> None:
        result = _run_cli(
            "package",
            "--binary-name", "demo",
            "--platform", "linux-x86_64",
            "--version", "v1.2.3",
            "--output-dir", str(tmp_path),
        )
        assert result.returncode == 1

    def test_release_rejects_bad_version(self, tmp_path: Path) -> None:
        result = _run_cli("release", "--binary-name", "demo", "--version", "latest", "--output-dir", str(tmp_path))
        assert result.returncode == 4

    def test_secrets_never_reach_the_logs(self) -> None:
        result = _run_cli("validate", "--binary-name", "demo", env={"NPM_TOKEN": "npm_leak_check_123"})
        assert result.returncode == 0
        assert "npm_leak_check_123" not in result.stdout + result.stderr


class TestConfigLoading:
    """Subcommands should handle config loading failures gracefully."""

    def test_nonexistent_config_returns_config_error(self) -> None:
        result = _run_cli("matrix", "--config", "/nonexistent/path.yaml")
        assert result.returncode == 2

    def test_invalid_config_returns_config_error(self, invalid_config_file: Path) -> None:
        result = _run_cli("matrix", "--config", str(invalid_config_file))
        assert result.returncode == 2

    def test_valid_config_is_accepted(self, tmp_config_file: Path) -> None:
        result = _run_cli("matrix", "--config", str(tmp_config_file))
        assert result.returncode == 0
