# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
End-to-end release runs against the fake toolchain: matrix in, packaged
assets and checksums.txt out.
"""

from pathlib import Path

import pytest

from shipwright.release.checksums.integrity import CHECKSUM_FILENAME, verify_checksums
from shipwright.release.manifests.manifest import PackageOptions
from shipwright.release.matrix.resolver import extended_include_json, resolve_matrix
from shipwright.release.orchestrator import (
    LaneResult,
    LaneStatus,
    ReleaseContext,
    _record,
    run_lane,
    run_release,
)
from shipwright.release.validation.validator import (
    validate_binary_name,
    validate_repository,
    validate_tool_args,
    validate_version_tag,
)


def _context(fake_runner, project_dir: Path, output_dir: Path, **overrides) -> ReleaseContext:
    settings = dict(
        binary_name=validate_binary_name("demo"),
        version=validate_version_tag("v1.2.3"),
        tool_args=validate_tool_args(""),
        output_dir=output_dir,
        project_dir=project_dir,
        runner_os="linux",
        runner=fake_runner,
        max_workers=2,
    )
    settings.update(overrides)
    return ReleaseContext(**settings)


def _data_lines(checksum_path: Path) -> list[str]:
    return [
        line
        for line in checksum_path.read_text(encoding="utf-8").splitlines()
        if line and not line.startswith("#")
    ]


@pytest.fixture()
def matrix():
    return resolve_matrix(exclude="linux-arm64").matrix


def test_release_without_arm(fake_runner, project_dir, tmp_path, matrix):
    """Two archives and two standalones, and exactly those four in checksums.txt."""
    out = tmp_path / "release"
    result = run_release(_context(fake_runner, project_dir, out), matrix)

    assert result.succeeded
    assert [lane.platform_id for lane in result.lanes] == ["linux-x86_64", "mac-arm64"]
    assert sorted(p.name for p in out.glob("*.tar.gz")) == [
        "demo-v1.2.3-linux-x86_64.tar.gz",
        "demo-v1.2.3-mac-arm64.tar.gz",
    ]

    names = [line.split("  ", 1)[1] for line in _data_lines(out / CHECKSUM_FILENAME)]
    assert names == [
        "demo-v1.2.3-linux-x86_64",
        "demo-v1.2.3-linux-x86_64.tar.gz",
        "demo-v1.2.3-mac-arm64",
        "demo-v1.2.3-mac-arm64.tar.gz",
    ]
    assert verify_checksums(out / CHECKSUM_FILENAME).is_valid
    assert result.install_scripts == []


def test_raw_builds_stay_out_of_the_release_root(fake_runner, project_dir, tmp_path, matrix):
    out = tmp_path / "release"
    run_release(_context(fake_runner, project_dir, out), matrix)
    assert (out / "build" / "demo-linux-x86_64").is_file()
    assert (out / "build" / "demo-linux-x86_64.meta").is_file()
    assert not (out / "demo-linux-x86_64").exists()


def test_failed_lane_does_not_block_checksums(fake_runner, project_dir, tmp_path, matrix):
    fake_runner.fail_targets = {"x86_64-unknown-linux-gnu"}
    out = tmp_path / "release"
    context = _context(fake_runner, project_dir, out)

    result = run_release(context, matrix)

    assert not result.succeeded
    assert [lane.platform_id for lane in result.failed_lanes] == ["linux-x86_64"]
    assert "linking with `cc` failed" in (result.failed_lanes[0].error or "")
    assert result.checksums is not None
    assert result.checksums.processed_count == 2
    assert context.failed == 1 and context.packaged == 1


def test_cancelled_release_writes_no_checksums(fake_runner, project_dir, tmp_path, matrix):
    out = tmp_path / "release"
    context = _context(fake_runner, project_dir, out)
    context.cancel()

    result = run_release(context, matrix)

    assert len(result.cancelled_lanes) == 2
    assert result.checksums is None
    assert not (out / CHECKSUM_FILENAME).exists()
    assert fake_runner.calls == []


def test_fail_fast_cancels_on_first_failure(fake_runner, project_dir, tmp_path):
    context = _context(fake_runner, project_dir, tmp_path, fail_fast=True)
    _record(context, LaneResult(platform_id="linux-x86_64", status=LaneStatus.FAILED, error="boom"))
    assert context.cancelled


def test_without_fail_fast_a_failure_does_not_cancel(fake_runner, project_dir, tmp_path):
    context = _context(fake_runner, project_dir, tmp_path)
    _record(context, LaneResult(platform_id="linux-x86_64", status=LaneStatus.FAILED, error="boom"))
    assert not context.cancelled


def test_install_scripts_with_repository(fake_runner, project_dir, tmp_path, matrix):
    out = tmp_path / "release"
    context = _context(fake_runner, project_dir, out, repository=validate_repository("acme/demo"))

    result = run_release(context, matrix)

    assert sorted(p.name for p in result.install_scripts) == [
        "install-linux-x86_64.sh",
        "install-mac-arm64.sh",
    ]
    names = [line.split("  ", 1)[1] for line in _data_lines(out / CHECKSUM_FILENAME)]
    assert "install-linux-x86_64.sh" in names
    assert len(names) == 6


def test_missing_cross_toolchain_degrades_lane(fake_runner, project_dir, tmp_path):
    fake_runner.installed_packages = set()
    fake_runner.fail_commands = {"apt-get"}
    spec = resolve_matrix(exclude="linux-x86_64,mac-arm64").matrix.rows[0]

    lane = run_lane(_context(fake_runner, project_dir, tmp_path / "release"), spec)

    assert lane.status is LaneStatus.SUCCEEDED
    assert lane.degraded
    cargo_index = fake_runner.calls.index(fake_runner.commands("cargo")[0])
    assert fake_runner.envs[cargo_index] == {}


def test_degraded_lane_is_a_release_warning(fake_runner, project_dir, tmp_path):
    fake_runner.installed_packages = set()
    fake_runner.fail_commands = {"apt-get"}
    out = tmp_path / "release"

    result = run_release(_context(fake_runner, project_dir, out), resolve_matrix().matrix)

    assert result.succeeded
    assert result.has_warnings
    assert result.warnings == ["linux-arm64: built without its cross toolchain"]


def test_license_from_project_root_is_packaged(fake_runner, project_dir, tmp_path, matrix):
    (project_dir / "LICENSE").write_text("MIT\n")
    out = tmp_path / "release"
    result = run_release(_context(fake_runner, project_dir, out), matrix)
    assert all(lane.package.manifest.license_file == "LICENSE" for lane in result.succeeded_lanes)


@pytest.mark.parametrize("program", ["apt-get", "rustup"])
def test_lanes_take_turns_on_host_wide_installs(fake_runner, project_dir, tmp_path, overlap_counter, program):
    fake_runner.installed_packages = set()
    counter = overlap_counter(fake_runner, program)
    matrix = resolve_matrix(extended_include_json("linux-arm64", "linux-armv7", "linux-x86_64-musl")).matrix
    context = _context(fake_runner, project_dir, tmp_path / "release", runner=counter, max_workers=3)

    result = run_release(context, matrix)

    assert result.succeeded
    assert not result.warnings
    assert fake_runner.commands(program)
    assert counter.peak == 1


def test_no_install_scripts_without_archives(fake_runner, project_dir, tmp_path, matrix):
    out = tmp_path / "release"
    context = _context(
        fake_runner,
        project_dir,
        out,
        repository=validate_repository("acme/demo"),
        options=PackageOptions(create_archive=False),
    )

    result = run_release(context, matrix)

    assert result.succeeded
    assert result.install_scripts == []
    assert list(out.glob("install-*")) == []
    names = [line.split("  ", 1)[1] for line in _data_lines(out / CHECKSUM_FILENAME)]
    assert names == ["demo-v1.2.3-linux-x86_64", "demo-v1.2.3-mac-arm64"]
