# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release packager: turns one built binary into distributable assets.

For a BuildArtifact in the output directory this produces, next to it:

    <output_dir>/
    ├─ <binary>-<version>-<platform>.tar.gz | .zip   (archive, optional)
    ├─ <binary>-<version>-<platform><ext>            (standalone, optional)
    └─ <binary>-<version>-<platform>.manifest.json

The archive wraps a staging directory of the same name holding the binary,
an optional generated README.md and the project LICENSE when one is found.
Staging happens in a hidden scratch directory that is always removed, even
when packaging fails.

A missing archiver or an archive that can't be listed back fails this
platform's packaging. A missing LICENSE is only a warning.
"""

import logging
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from shipwright.logging.logger import get_logger
from shipwright.release.build.executor import BuildArtifact
from shipwright.release.exceptions import PackagingError
from shipwright.release.manifests.manifest import (
    PackageManifest,
    PackageOptions,
    create_manifest,
    manifest_filename,
    write_manifest,
)
from shipwright.release.packaging.archiver import ArchiveBackend, probe_archiver
from shipwright.release.validation.validator import ValidatedString, ValidationKind

_logger: logging.Logger = get_logger(__name__)

STAGING_PREFIX = ".shipwright_stage_"

# Searched in order relative to the license root; first hit wins.
LICENSE_CANDIDATES: tuple[str, ...] = (
    "../LICENSE",
    "../LICENSE.md",
    "../LICENSE.txt",
    "../../LICENSE",
    "../../LICENSE.md",
    "../../LICENSE.txt",
    "LICENSE",
    "LICENSE.md",
    "LICENSE.txt",
)


@dataclass(frozen=True)
class Package:
    """Everything one platform contributed to the release directory."""

    package_name: str
    archive_path: Optional[Path]
    standalone_path: Optional[Path]
    manifest: PackageManifest
    manifest_path: Path

    @property
    def asset_paths(self) -> list[Path]:
        return [p for p in (self.archive_path, self.standalone_path) if p is not None]


def package_name_for(binary_name: str, version: str, platform_id: str) -> str:
    return f"{binary_name}-{version}-{platform_id}"


def find_license(search_root: Path) -> Optional[Path]:
    for candidate in LICENSE_CANDIDATES:
        path = search_root / candidate
        if path.is_file():
            return path
    return None


def render_readme(
    binary_name: str,
    version: str,
    platform_id: str,
    binary_ext: str,
    size_bytes: int,
    built_at: Optional[str] = None,
) -> str:
    """README.md dropped into every archive."""
    built = built_at or datetime.now(tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    binary_file = f"{binary_name}{binary_ext}"
    return (
        f"# {binary_name} {version}\n"
        f"\n"
        f"This package contains the {binary_name} binary for {platform_id}.\n"
        f"\n"
        f"## Installation\n"
        f"\n"
        f"1. Extract this archive to a temporary directory\n"
        f"2. Copy the binary to a directory in your PATH\n"
        f"\n"
        f"Unix/Linux/macOS:\n"
        f"\n"
        f"```bash\n"
        f"sudo cp {binary_file} /usr/local/bin/{binary_name}\n"
        f"sudo chmod +x /usr/local/bin/{binary_name}\n"
        f"```\n"
        f"\n"
        f"Windows: copy `{binary_file}` to a directory in your PATH.\n"
        f"\n"
        f"## Usage\n"
        f"\n"
        f"Run `{binary_name} --help` for usage information.\n"
        f"\n"
        f"## Package Information\n"
        f"\n"
        f"- **Binary**: {binary_file}\n"
        f"- **Version**: {version}\n"
        f"- **Platform**: {platform_id}\n"
        f"- **Size**: {size_bytes} bytes\n"
        f"- **Built**: {built}\n"
        f"\n"
        f"## Verification\n"
        f"\n"
        f"```bash\n"
        f"sha256sum -c checksums.txt --ignore-missing\n"
        f"```\n"
    )


def _verify_archive(backend: ArchiveBackend, archive_path: Path, expected_member: str) -> None:
    members = backend.list_members(archive_path)
    if expected_member not in members:
        raise PackagingError(
            f"Archive integrity check failed for {archive_path.name}: "
            f"{expected_member!r} not among {len(members)} members"
        )
    _logger.info(
        "Archive integrity verified",
        extra={"archive": archive_path.name, "members": len(members), "backend": backend.name},
    )


def package_artifact(
    artifact: BuildArtifact,
    version: ValidatedString,
    output_dir: Path,
    options: PackageOptions = PackageOptions(),
    *,
    license_search_root: Optional[Path] = None,
    archiver: Optional[ArchiveBackend] = None,
) -> Package:
    """
    Package one built binary.

    Args:
        artifact: Output of the build executor; its file must still exist.
        version: Validated release version tag.
        output_dir: Release asset directory (archives and manifests land here).
        options: Which optional outputs to produce.
        license_search_root: Base for LICENSE_CANDIDATES. Defaults to output_dir.
        archiver: Archive backend; probed from the artifact's archive_ext when None.

    Returns:
        Package describing the produced files.

    Raises:
        PackagingError: No archiver, archive creation failed, or the
            archive doesn't list back the staged binary.
    """
    if not isinstance(version, ValidatedString) or version.kind is not ValidationKind.VERSION:
        raise TypeError(f"version must be a ValidatedString of kind VERSION, got {version!r}")
    if not artifact.path.is_file():
        raise PackagingError(f"Built binary not found: {artifact.path}")

    binary_name = artifact.binary_name.value
    platform_id = artifact.platform_id.value
    package_name = package_name_for(binary_name, version.value, platform_id)
    staged_binary_name = f"{binary_name}{artifact.binary_ext}"

    _logger.info(
        "Packaging",
        extra={"package": package_name, "binary": str(artifact.path), "options": options.to_dict()},
    )

    if options.create_archive and archiver is None:
        archiver = probe_archiver(artifact.archive_ext)

    archive_path: Optional[Path] = None
    standalone_path: Optional[Path] = None
    readme_file: Optional[str] = None
    license_file: Optional[str] = None

    # The standalone binary on unix is also named <package_name>, so the
    # staging tree lives under a hidden scratch directory.
    output_dir.mkdir(parents=True, exist_ok=True)
    scratch_dir = Path(tempfile.mkdtemp(dir=output_dir, prefix=STAGING_PREFIX))
    staging_dir = scratch_dir / package_name
    try:
        staging_dir.mkdir()
        staged_binary = staging_dir / staged_binary_name
        shutil.copy2(str(artifact.path), str(staged_binary))
        if not artifact.is_windows:
            staged_binary.chmod(0o755)

        if options.include_readme:
            readme = staging_dir / "README.md"
            readme.write_text(
                render_readme(
                    binary_name,
                    version.value,
                    platform_id,
                    artifact.binary_ext,
                    artifact.size_bytes,
                ),
                encoding="utf-8",
            )
            readme_file = readme.name

        if options.include_license:
            license_path = find_license(license_search_root or output_dir)
            if license_path is not None:
                shutil.copy2(str(license_path), str(staging_dir / license_path.name))
                license_file = license_path.name
                _logger.info("Included license", extra={"source": str(license_path)})
            else:
                _logger.warning(
                    "No LICENSE file found - skipping license inclusion",
                    extra={"package": package_name},
                )

        if options.create_archive:
            assert archiver is not None
            archive_path = output_dir / f"{package_name}.{artifact.archive_ext}"
            try:
                archiver.create(staging_dir, archive_path)
                _verify_archive(archiver, archive_path, f"{package_name}/{staged_binary_name}")
            except PackagingError:
                archive_path.unlink(missing_ok=True)
                raise
            except OSError as err:
                archive_path.unlink(missing_ok=True)
                raise PackagingError(f"Failed to create archive {archive_path}: {err}") from err
            _logger.info(
                "Created archive",
                extra={"archive": str(archive_path), "size_bytes": archive_path.stat().st_size},
            )

        if options.create_standalone:
            standalone_path = output_dir / f"{package_name}{artifact.binary_ext}"
            shutil.copy2(str(artifact.path), str(standalone_path))
            if not artifact.is_windows:
                standalone_path.chmod(0o755)
            _logger.info("Created standalone binary", extra={"path": str(standalone_path)})
    finally:
        shutil.rmtree(scratch_dir, ignore_errors=True)

    manifest = create_manifest(
        binary_name=binary_name,
        version=version.value,
        platform=platform_id,
        binary_size=artifact.size_bytes,
        binary_file=artifact.path.name,
        package_name=package_name,
        archive_ext=artifact.archive_ext,
        binary_ext=artifact.binary_ext,
        options=options,
        archive_path=archive_path,
        standalone_path=standalone_path,
        readme_file=readme_file,
        license_file=license_file,
    )
    manifest_path = output_dir / manifest_filename(package_name)
    write_manifest(manifest, manifest_path)

    _logger.info(
        "Packaging completed",
        extra={
            "package": package_name,
            "archive": archive_path.name if archive_path else None,
            "standalone": standalone_path.name if standalone_path else None,
        },
    )

    return Package(
        package_name=package_name,
        archive_path=archive_path,
        standalone_path=standalone_path,
        manifest=manifest,
        manifest_path=manifest_path,
    )
