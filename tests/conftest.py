# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Shared pytest fixtures for shipwright tests.

Fixtures here are available to every test file automatically. Nothing here
touches the network or a real Rust toolchain: `fake_runner` stands in for
every external command and fabricates the files cargo would produce.
"""

import textwrap
import threading
import time
from pathlib import Path
from typing import Mapping, Optional, Sequence

import pytest

from shipwright.logging.logger import clear_secrets
from shipwright.release.build.executor import cargo_target_dir
from shipwright.utils.command import CommandResult


class FakeRunner:
    """
    Records every argv and answers like the real tools would.

    cargo build writes `<target_dir>/<triple>/<profile>/<bin><ext>` unless
    the triple is in `fail_targets` (non-zero exit) or `silent_targets`
    (exit 0 but nothing written).
    """

    def __init__(
        self,
        *,
        fail_targets: Sequence[str] = (),
        silent_targets: Sequence[str] = (),
        profile: str = "release",
        installed_packages: Optional[set[str]] = None,
        fail_commands: Sequence[str] = (),
    ) -> None:
        self.fail_targets = set(fail_targets)
        self.silent_targets = set(silent_targets)
        self.profile = profile
        self.installed_packages = installed_packages
        self.fail_commands = set(fail_commands)
        self.calls: list[list[str]] = []
        self.envs: list[dict[str, str]] = []
        self._lock = threading.Lock()

    def __call__(
        self,
        argv: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout_seconds: Optional[float] = None,
    ) -> CommandResult:
        argv = list(argv)
        with self._lock:
            self.calls.append(argv)
            self.envs.append(dict(env or {}))

        program = argv[0]
        if program == "sudo":
            program = argv[1]
        if program in self.fail_commands:
            return CommandResult(argv=argv, returncode=1, stdout="", stderr=f"{program}: failed")

        if program == "cargo":
            return self._cargo(argv, cwd, env)
        if program == "rustc":
            return CommandResult(argv=argv, returncode=0, stdout="rustc 1.80.0 (051478957 2024-07-21)\n", stderr="")
        if program == "dpkg":
            installed = self.installed_packages is None or argv[-1] in self.installed_packages
            return CommandResult(argv=argv, returncode=0 if installed else 1, stdout="", stderr="")
        return CommandResult(argv=argv, returncode=0, stdout="", stderr="")

    def _cargo(
        self,
        argv: list[str],
        cwd: Optional[Path],
        env: Optional[Mapping[str, str]],
    ) -> CommandResult:
        target = argv[argv.index("--target") + 1]
        name = argv[argv.index("--bin") + 1]
        if target in self.fail_targets:
            return CommandResult(
                argv=argv,
                returncode=101,
                stdout="",
                stderr=f"error: linking with `cc` failed for {target}",
            )
        if target not in self.silent_targets:
            ext = ".exe" if "windows" in target else ""
            output = cargo_target_dir(Path(cwd or "."), env) / target / self.profile / f"{name}{ext}"
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_bytes(f"\x7fELF fake {name} for {target}\n".encode())
        return CommandResult(argv=argv, returncode=0, stdout="", stderr="")

    def commands(self, program: str) -> list[list[str]]:
        return [argv for argv in self.calls if program in argv[:2]]


class OverlapCounter:
    """
    Wraps a runner and records how many calls to `program` were in flight
    at once. Each such call is held for `hold_seconds` so overlaps show up.
    """

    def __init__(self, inner: FakeRunner, program: str, hold_seconds: float = 0.05) -> None:
        self.inner = inner
        self.program = program
        self.hold_seconds = hold_seconds
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def __call__(self, argv: Sequence[str], **kwargs) -> CommandResult:
        if self.program not in list(argv)[:2]:
            return self.inner(argv, **kwargs)
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.hold_seconds)
            return self.inner(argv, **kwargs)
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture()
def overlap_counter():
    return OverlapCounter


@pytest.fixture()
def fake_runner(monkeypatch: pytest.MonkeyPatch) -> FakeRunner:
    monkeypatch.delenv("CARGO_TARGET_DIR", raising=False)
    return FakeRunner()


@pytest.fixture()
def project_dir(tmp_path: Path) -> Path:
    """An empty cargo project root."""
    path = tmp_path / "project"
    path.mkdir()
    (path / "Cargo.toml").write_text('[package]\nname = "demo"\nversion = "1.2.3"\n', encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _forget_secrets() -> None:
    yield  # type: ignore[misc]
    clear_secrets()


@pytest.fixture()
def tmp_config_file(tmp_path: Path) -> Path:
    """
    Create a minimal valid config YAML file in a temp directory.

    This is the smallest config that passes schema validation.
    Tests that need specific config values should write their own files.
    """
    config_content = textwrap.dedent("""\
        global:
          config_version: "1.0.0"
          project_name: "shipwright-test"
          log_level: "DEBUG"
    """)
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def invalid_config_file(tmp_path: Path) -> Path:
    """A config file that's valid YAML but fails schema validation (missing required field)."""
    config_content = textwrap.dedent("""\
        global:
          project_name: "shipwright-test"
    """)
    config_file = tmp_path / "invalid_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def broken_yaml_file(tmp_path: Path) -> Path:
    """A file that isn't valid YAML at all."""
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("{{not: yaml: at: all:::", encoding="utf-8")
    return config_file
