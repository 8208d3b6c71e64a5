# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Package manifest generation and loading.

Each packaged platform gets `<package_name>.manifest.json` recording which
optional outputs exist and what they are called (file names, never full
paths):

    {binary_name, version, platform, binary_size, binary_file, package_name,
     archive_path | null, standalone_path | null, archive_ext, binary_ext,
     created_at, options: {create_standalone, create_archive,
     include_readme, include_license}}

`readme_file` and `license_file` distinguish "turned off" from "not found":
the key is absent when the option was disabled and null when the option
was on but nothing was produced.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from shipwright.logging.logger import get_logger
from shipwright.utils.filesystem import atomic_write

_logger: logging.Logger = get_logger(__name__)

MANIFEST_SUFFIX = ".manifest.json"


@dataclass(frozen=True)
class PackageOptions:
    create_standalone: bool = True
    create_archive: bool = True
    include_readme: bool = True
    include_license: bool = True

    def to_dict(self) -> dict[str, bool]:
        return {
            "create_standalone": self.create_standalone,
            "create_archive": self.create_archive,
            "include_readme": self.include_readme,
            "include_license": self.include_license,
        }


@dataclass(frozen=True)
class PackageManifest:
    binary_name: str
    version: str
    platform: str
    binary_size: int
    binary_file: str
    package_name: str
    archive_path: Optional[str]
    standalone_path: Optional[str]
    archive_ext: str
    binary_ext: str
    created_at: str
    options: PackageOptions
    readme_file: Optional[str] = None
    license_file: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "binary_name": self.binary_name,
            "version": self.version,
            "platform": self.platform,
            "binary_size": self.binary_size,
            "binary_file": self.binary_file,
            "package_name": self.package_name,
            "archive_path": self.archive_path,
            "standalone_path": self.standalone_path,
            "archive_ext": self.archive_ext,
            "binary_ext": self.binary_ext,
            "created_at": self.created_at,
            "options": self.options.to_dict(),
        }
        if self.options.include_readme:
            data["readme_file"] = self.readme_file
        if self.options.include_license:
            data["license_file"] = self.license_file
        return data


_REQUIRED_MANIFEST_FIELDS: frozenset[str] = frozenset(
    {
        "binary_name",
        "version",
        "platform",
        "binary_size",
        "binary_file",
        "package_name",
        "archive_path",
        "standalone_path",
        "archive_ext",
        "binary_ext",
        "created_at",
        "options",
    }
)


def create_manifest(
    *,
    binary_name: str,
    version: str,
    platform: str,
    binary_size: int,
    binary_file: str,
    package_name: str,
    archive_ext: str,
    binary_ext: str,
    options: PackageOptions,
    archive_path: Optional[Path] = None,
    standalone_path: Optional[Path] = None,
    readme_file: Optional[str] = None,
    license_file: Optional[str] = None,
) -> PackageManifest:
    """Build a manifest, reducing any output paths to bare file names."""
    return PackageManifest(
        binary_name=binary_name,
        version=version,
        platform=platform,
        binary_size=binary_size,
        binary_file=binary_file,
        package_name=package_name,
        archive_path=archive_path.name if archive_path is not None else None,
        standalone_path=standalone_path.name if standalone_path is not None else None,
        archive_ext=archive_ext,
        binary_ext=binary_ext,
        created_at=datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        options=options,
        readme_file=readme_file,
        license_file=license_file,
    )


def manifest_filename(package_name: str) -> str:
    return f"{package_name}{MANIFEST_SUFFIX}"


def write_manifest(manifest: PackageManifest, path: Path) -> None:
    """Serialize a manifest to JSON and write it atomically."""
    content = json.dumps(manifest.to_dict(), indent=2) + "\n"
    atomic_write(path, content)

    _logger.info(
        "Manifest written",
        extra={"path": str(path), "package": manifest.package_name},
    )


def load_manifest(path: Path) -> PackageManifest:
    """
    Load a manifest from a JSON file.

    Raises:
        FileNotFoundError: If file doesn't exist.
        ValueError: If required fields are missing or invalid.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Manifest file not found: {path}")

    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Manifest root is not a JSON object: {path}")

    missing = _REQUIRED_MANIFEST_FIELDS - set(data.keys())
    if missing:
        raise ValueError(f"Manifest is missing required fields: {', '.join(sorted(missing))}")

    raw_options = data["options"]
    if not isinstance(raw_options, dict):
        raise ValueError("Manifest options must be an object")

    return PackageManifest(
        binary_name=str(data["binary_name"]),
        version=str(data["version"]),
        platform=str(data["platform"]),
        binary_size=int(data["binary_size"]),
        binary_file=str(data["binary_file"]),
        package_name=str(data["package_name"]),
        archive_path=data["archive_path"],
        standalone_path=data["standalone_path"],
        archive_ext=str(data["archive_ext"]),
        binary_ext=str(data["binary_ext"]),
        created_at=str(data["created_at"]),
        options=PackageOptions(
            create_standalone=bool(raw_options.get("create_standalone", True)),
            create_archive=bool(raw_options.get("create_archive", True)),
            include_readme=bool(raw_options.get("include_readme", True)),
            include_license=bool(raw_options.get("include_license", True)),
        ),
        readme_file=data.get("readme_file"),
        license_file=data.get("license_file"),
    )
