# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for release packaging.
"""

import json
import os
import stat
import tarfile
import zipfile
from pathlib import Path

import pytest

from shipwright.release.build.executor import BuildArtifact, load_artifact
from shipwright.release.exceptions import PackagingError
from shipwright.release.manifests.manifest import PackageOptions
from shipwright.release.matrix.resolver import platform_spec
from shipwright.release.packaging.archiver import (
    ExternalTarBackend,
    TarfileBackend,
    ZipfileBackend,
    available_archivers,
    probe_archiver,
)
from shipwright.release.packaging.packager import (
    STAGING_PREFIX,
    find_license,
    package_artifact,
    render_readme,
)
from shipwright.release.validation.validator import validate_binary_name, validate_version_tag

VERSION = validate_version_tag("v1.2.3")


@pytest.fixture()
def release_dir(tmp_path: Path) -> Path:
    """Output dir nested deep enough that no LICENSE is reachable by accident."""
    path = tmp_path / "workspace" / "project" / "dist"
    path.mkdir(parents=True)
    return path


def _artifact(output_dir: Path, platform: str = "linux-x86_64") -> BuildArtifact:
    spec = platform_spec(platform)
    binary = output_dir / f"demo-{platform}{spec.binary_ext}"
    binary.write_bytes(b"\x7fELF fake demo binary\n")
    return load_artifact(validate_binary_name("demo"), spec, output_dir)


class _UnlistableArchiver(TarfileBackend):
    """Writes a real archive but reports it empty."""

    name = "unlistable"

    def list_members(self, archive_path: Path) -> list[str]:
        return []


def test_tar_gz_package(release_dir: Path):
    """Archive holds <pkg>/<binary> plus README; standalone and manifest sit beside it."""
    package = package_artifact(_artifact(release_dir), VERSION, release_dir)

    assert package.package_name == "demo-v1.2.3-linux-x86_64"
    assert package.archive_path == release_dir / "demo-v1.2.3-linux-x86_64.tar.gz"
    assert package.standalone_path == release_dir / "demo-v1.2.3-linux-x86_64"
    assert package.asset_paths == [package.archive_path, package.standalone_path]

    with tarfile.open(package.archive_path, "r:gz") as tar:
        names = set(tar.getnames())
    assert "demo-v1.2.3-linux-x86_64/demo" in names
    assert "demo-v1.2.3-linux-x86_64/README.md" in names


def test_zip_package_for_windows(release_dir: Path):
    package = package_artifact(_artifact(release_dir, "windows-x86_64-gnu"), VERSION, release_dir)

    assert package.archive_path is not None and package.archive_path.suffix == ".zip"
    assert package.standalone_path == release_dir / "demo-v1.2.3-windows-x86_64-gnu.exe"
    with zipfile.ZipFile(package.archive_path) as zf:
        assert "demo-v1.2.3-windows-x86_64-gnu/demo.exe" in zf.namelist()


def test_staging_directory_is_removed(release_dir: Path):
    package_artifact(_artifact(release_dir), VERSION, release_dir)
    assert list(release_dir.glob(f"{STAGING_PREFIX}*")) == []


def test_unix_standalone_survives_packaging(release_dir: Path):
    """On unix the standalone and the archive root share a name; both must come out intact."""
    package = package_artifact(_artifact(release_dir), VERSION, release_dir)

    assert package.standalone_path is not None
    assert package.standalone_path.is_file()
    assert package.standalone_path.read_bytes() == b"\x7fELF fake demo binary\n"
    data = json.loads(package.manifest_path.read_text(encoding="utf-8"))
    assert data["standalone_path"] == "demo-v1.2.3-linux-x86_64"


@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
def test_standalone_is_executable(release_dir: Path):
    package = package_artifact(_artifact(release_dir), VERSION, release_dir)
    assert package.standalone_path is not None
    assert stat.S_IMODE(package.standalone_path.stat().st_mode) == 0o755


def test_license_is_included_when_found(release_dir: Path):
    (release_dir.parent / "LICENSE").write_text("MIT License\n")
    package = package_artifact(_artifact(release_dir), VERSION, release_dir)

    with tarfile.open(package.archive_path, "r:gz") as tar:
        assert "demo-v1.2.3-linux-x86_64/LICENSE" in tar.getnames()
    assert package.manifest.license_file == "LICENSE"


def test_missing_license_is_not_an_error(release_dir: Path):
    package = package_artifact(_artifact(release_dir), VERSION, release_dir)
    data = json.loads(package.manifest_path.read_text(encoding="utf-8"))
    assert "license_file" in data
    assert data["license_file"] is None


def test_explicit_license_root(release_dir: Path, tmp_path: Path):
    root = tmp_path / "elsewhere"
    root.mkdir()
    (root / "LICENSE.md").write_text("Apache-2.0\n")
    package = package_artifact(_artifact(release_dir), VERSION, release_dir, license_search_root=root)
    assert package.manifest.license_file == "LICENSE.md"


def test_options_switch_outputs_off(release_dir: Path):
    options = PackageOptions(
        create_standalone=False, create_archive=False, include_readme=False, include_license=False
    )
    package = package_artifact(_artifact(release_dir), VERSION, release_dir, options)

    assert package.asset_paths == []
    data = json.loads(package.manifest_path.read_text(encoding="utf-8"))
    assert data["archive_path"] is None
    assert data["standalone_path"] is None
    assert "readme_file" not in data
    assert "license_file" not in data


def test_archive_without_readme(release_dir: Path):
    options = PackageOptions(include_readme=False)
    package = package_artifact(_artifact(release_dir), VERSION, release_dir, options)
    with tarfile.open(package.archive_path, "r:gz") as tar:
        assert "demo-v1.2.3-linux-x86_64/README.md" not in tar.getnames()


def test_failed_integrity_check_removes_archive(release_dir: Path):
    with pytest.raises(PackagingError, match="integrity check failed"):
        package_artifact(_artifact(release_dir), VERSION, release_dir, archiver=_UnlistableArchiver())

    assert not (release_dir / "demo-v1.2.3-linux-x86_64.tar.gz").exists()
    assert list(release_dir.glob(f"{STAGING_PREFIX}*")) == []


def test_unvalidated_version_is_a_type_error(release_dir: Path):
    with pytest.raises(TypeError):
        package_artifact(_artifact(release_dir), "v1.2.3", release_dir)  # type: ignore[arg-type]


def test_missing_binary_is_a_packaging_error(release_dir: Path):
    artifact = _artifact(release_dir)
    artifact.path.unlink()
    with pytest.raises(PackagingError, match="not found"):
        package_artifact(artifact, VERSION, release_dir)


def test_readme_mentions_binary_and_platform():
    readme = render_readme("demo", "v1.2.3", "mac-arm64", "", 42, built_at="2026-01-01 00:00:00 UTC")
    assert readme.startswith("# demo v1.2.3\n")
    assert "for mac-arm64" in readme
    assert "- **Size**: 42 bytes" in readme


def test_find_license_prefers_parent_directory(tmp_path: Path):
    root = tmp_path / "a" / "b"
    root.mkdir(parents=True)
    (root / "LICENSE").write_text("inner")
    (root.parent / "LICENSE").write_text("outer")
    assert find_license(root) == root / ".." / "LICENSE"


class TestArchivers:
    def test_in_process_backends_by_default(self):
        assert isinstance(probe_archiver("tar.gz"), TarfileBackend)
        assert isinstance(probe_archiver("zip"), ZipfileBackend)

    def test_unknown_format(self):
        with pytest.raises(PackagingError, match="Unsupported"):
            probe_archiver("rar")

    def test_external_requested_but_missing(self):
        with pytest.raises(PackagingError, match="No external archiver"):
            probe_archiver("zip", prefer_external=True, which=lambda _: None)

    def test_external_tar_when_present(self):
        backend = probe_archiver("tar.gz", prefer_external=True, which=lambda tool: f"/usr/bin/{tool}")
        assert isinstance(backend, ExternalTarBackend)

    def test_available_archivers(self):
        found = available_archivers(which=lambda tool: None)
        assert found == {"tar.gz": ["tarfile"], "zip": ["zipfile"]}

    def test_corrupt_archive_cannot_be_listed(self, tmp_path: Path):
        bogus = tmp_path / "bogus.tar.gz"
        bogus.write_bytes(b"not an archive")
        with pytest.raises(PackagingError, match="Cannot read archive"):
            TarfileBackend().list_members(bogus)
