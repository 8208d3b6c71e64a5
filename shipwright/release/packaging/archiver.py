# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Archive backends behind one interface, picked by a capability probe.

Two families produce the same archives:
  - in-process: tarfile (tar.gz) and zipfile (zip), always available
  - external: the tar / zip + unzip executables, used when asked for
    explicitly and present on PATH

`probe_archiver(ext)` returns a backend or raises PackagingError when no
alternative can handle the format. Every backend can both create an
archive and list it back, which is how the packager checks integrity.
"""

import logging
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Optional, Protocol

from shipwright.logging.logger import get_logger
from shipwright.release.exceptions import PackagingError
from shipwright.utils.command import CommandRunner, run_command

_logger: logging.Logger = get_logger(__name__)

TAR_GZ = "tar.gz"
ZIP = "zip"


class ArchiveBackend(Protocol):
    name: str
    archive_ext: str

    def create(self, source_dir: Path, archive_path: Path) -> None: ...

    def list_members(self, archive_path: Path) -> list[str]: ...


def _normalize_member(name: str) -> str:
    name = name.strip().replace("\\", "/")
    if name.startswith("./"):
        name = name[2:]
    return name.rstrip("/")


class TarfileBackend:
    name = "tarfile"
    archive_ext = TAR_GZ

    def create(self, source_dir: Path, archive_path: Path) -> None:
        with tarfile.open(archive_path, "w:gz") as tar:
            tar.add(str(source_dir), arcname=source_dir.name)

    def list_members(self, archive_path: Path) -> list[str]:
        try:
            with tarfile.open(archive_path, "r:gz") as tar:
                return [_normalize_member(n) for n in tar.getnames()]
        except (tarfile.TarError, OSError, EOFError) as err:
            raise PackagingError(f"Cannot read archive {archive_path}: {err}") from err


class ZipfileBackend:
    name = "zipfile"
    archive_ext = ZIP

    def create(self, source_dir: Path, archive_path: Path) -> None:
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.write(source_dir, arcname=source_dir.name)
            for path in sorted(source_dir.rglob("*")):
                zf.write(path, arcname=str(path.relative_to(source_dir.parent)).replace("\\", "/"))

    def list_members(self, archive_path: Path) -> list[str]:
        try:
            with zipfile.ZipFile(archive_path) as zf:
                bad = zf.testzip()
                if bad is not None:
                    raise PackagingError(f"Corrupt member {bad!r} in {archive_path}")
                return [_normalize_member(n) for n in zf.namelist()]
        except (zipfile.BadZipFile, OSError) as err:
            raise PackagingError(f"Cannot read archive {archive_path}: {err}") from err


class ExternalTarBackend:
    name = "tar"
    archive_ext = TAR_GZ

    def __init__(self, runner: CommandRunner = run_command) -> None:
        self._runner = runner

    def create(self, source_dir: Path, archive_path: Path) -> None:
        result = self._runner(
            ["tar", "-czf", str(archive_path.resolve()), source_dir.name],
            cwd=source_dir.parent,
        )
        if not result.ok:
            raise PackagingError(f"tar failed for {archive_path}: {result.stderr.strip()}")

    def list_members(self, archive_path: Path) -> list[str]:
        result = self._runner(["tar", "-tzf", str(archive_path)])
        if not result.ok:
            raise PackagingError(f"Cannot read archive {archive_path}: {result.stderr.strip()}")
        return [_normalize_member(line) for line in result.stdout.splitlines() if line.strip()]


class ExternalZipBackend:
    name = "zip"
    archive_ext = ZIP

    def __init__(self, runner: CommandRunner = run_command) -> None:
        self._runner = runner

    def create(self, source_dir: Path, archive_path: Path) -> None:
        result = self._runner(
            ["zip", "-r", "-q", str(archive_path.resolve()), source_dir.name],
            cwd=source_dir.parent,
        )
        if not result.ok:
            raise PackagingError(f"zip failed for {archive_path}: {result.stderr.strip()}")

    def list_members(self, archive_path: Path) -> list[str]:
        test = self._runner(["unzip", "-tq", str(archive_path)])
        if not test.ok:
            raise PackagingError(f"Archive integrity check failed for {archive_path}: {test.stderr.strip()}")
        result = self._runner(["unzip", "-Z1", str(archive_path)])
        if not result.ok:
            raise PackagingError(f"Cannot read archive {archive_path}: {result.stderr.strip()}")
        return [_normalize_member(line) for line in result.stdout.splitlines() if line.strip()]


def probe_archiver(
    archive_ext: str,
    *,
    prefer_external: bool = False,
    which: Callable[[str], Optional[str]] = shutil.which,
    runner: CommandRunner = run_command,
) -> ArchiveBackend:
    """
    Pick an archive backend for `archive_ext`.

    Args:
        archive_ext: "tar.gz" or "zip".
        prefer_external: Try the tar / zip executables before the in-process modules.
        which: PATH lookup (swapped out in tests).
        runner: Command runner handed to external backends.

    Raises:
        PackagingError: Unknown format, or no backend available for it.
    """
    if archive_ext == TAR_GZ:
        in_process: ArchiveBackend = TarfileBackend()
        external: Optional[ArchiveBackend] = (
            ExternalTarBackend(runner) if which("tar") else None
        )
    elif archive_ext == ZIP:
        in_process = ZipfileBackend()
        external = (
            ExternalZipBackend(runner) if which("zip") and which("unzip") else None
        )
    else:
        raise PackagingError(f"Unsupported archive format: {archive_ext!r}")

    if prefer_external:
        if external is None:
            raise PackagingError(
                f"No external archiver available for {archive_ext} "
                f"(need {'tar' if archive_ext == TAR_GZ else 'zip and unzip'} on PATH)"
            )
        chosen = external
    else:
        chosen = in_process

    _logger.debug("Archiver selected", extra={"archive_ext": archive_ext, "backend": chosen.name})
    return chosen


def available_archivers(which: Callable[[str], Optional[str]] = shutil.which) -> dict[str, list[str]]:
    """Backends usable per format, for the `info` command."""
    return {
        TAR_GZ: ["tarfile"] + (["tar"] if which("tar") else []),
        ZIP: ["zipfile"] + (["zip"] if which("zip") and which("unzip") else []),
    }
