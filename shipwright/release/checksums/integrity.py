# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release checksum generation and verification.

Checksum file format (checksums.txt):

    # SHA256 Checksums
    # Generated on 2026-01-01 00:00:00 UTC
    # Directory: release
    # Utility: hashlib

    <sha256hex>  <filename>
    <sha256hex>  <filename>
    # ERROR: Failed to generate checksum for <filename>

    # Summary:
    # Files processed: 4

Data lines use the GNU coreutils layout (two spaces between hash and name)
so `sha256sum -c` reads the file directly. Lines are sorted by filename.

A file that can't be hashed doesn't abort the run: it gets an ERROR comment
and is counted in `failed_count`. Callers decide whether that's fatal.
"""

import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol

from shipwright.logging.logger import get_logger
from shipwright.release.manifests.manifest import MANIFEST_SUFFIX
from shipwright.utils.command import CommandRunner, run_command
from shipwright.utils.filesystem import atomic_write
from shipwright.utils.hashing import compute_sha256

_logger: logging.Logger = get_logger(__name__)

CHECKSUM_FILENAME = "checksums.txt"
VERIFY_SCRIPT_SUFFIX = "-verify.sh"

# Build bookkeeping that isn't a release asset.
_EXCLUDED_SUFFIXES: tuple[str, ...] = (".meta", ".log", MANIFEST_SUFFIX)

_SHA256_HEX_LENGTH = 64
_HEX_CHARS = frozenset("0123456789abcdef")


class Hasher(Protocol):
    name: str

    def hash_file(self, path: Path) -> str: ...


class HashlibHasher:
    name = "hashlib"

    def hash_file(self, path: Path) -> str:
        return compute_sha256(path)


class ExternalHasher:
    """
    A sha256 command-line utility. The digest is the first whitespace
    separated token of stdout, which holds for sha256sum, shasum and
    `openssl dgst -r`.
    """

    def __init__(self, name: str, argv_prefix: list[str], runner: CommandRunner = run_command) -> None:
        self.name = name
        self._argv_prefix = argv_prefix
        self._runner = runner

    def hash_file(self, path: Path) -> str:
        result = self._runner([*self._argv_prefix, str(path)])
        if not result.ok:
            raise OSError(f"{self.name} failed for {path.name}: {result.stderr.strip()}")
        fields = result.stdout.split()
        digest = fields[0].lower() if fields else ""
        if len(digest) != _SHA256_HEX_LENGTH or not set(digest) <= _HEX_CHARS:
            raise OSError(f"{self.name} produced unexpected output for {path.name}: {result.stdout!r}")
        return digest


# Probe order for external utilities.
EXTERNAL_HASHERS: tuple[tuple[str, list[str]], ...] = (
    ("sha256sum", ["sha256sum"]),
    ("shasum", ["shasum", "-a", "256"]),
    ("openssl", ["openssl", "dgst", "-sha256", "-r"]),
)


def probe_hasher(
    *,
    prefer_external: bool = False,
    which: Callable[[str], Optional[str]] = shutil.which,
    runner: CommandRunner = run_command,
) -> Hasher:
    """
    Pick a SHA256 backend. hashlib is always there; external utilities are
    only used when asked for, and the first one found on PATH wins.

    Raises:
        RuntimeError: prefer_external and none of the utilities is installed.
    """
    if not prefer_external:
        return HashlibHasher()
    for name, argv_prefix in EXTERNAL_HASHERS:
        if which(argv_prefix[0]):
            _logger.debug("Hasher selected", extra={"backend": name})
            return ExternalHasher(name, argv_prefix, runner)
    raise RuntimeError(
        "No SHA256 utility found. Need one of: " + ", ".join(n for n, _ in EXTERNAL_HASHERS)
    )


def available_hashers(which: Callable[[str], Optional[str]] = shutil.which) -> list[str]:
    return ["hashlib"] + [name for name, argv in EXTERNAL_HASHERS if which(argv[0])]


@dataclass(frozen=True)
class ChecksumManifest:
    """Digests for one release directory, in filename order."""

    entries: dict[str, str]
    failures: list[str] = field(default_factory=list)
    source_dir: Optional[Path] = None
    generated_at: str = ""
    hasher: str = "hashlib"

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def processed_count(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a checksum verification run."""

    is_valid: bool
    checked_count: int
    mismatches: list[str] = field(default_factory=list)
    missing_files: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def verify_script_name(checksum_filename: str = CHECKSUM_FILENAME) -> str:
    return f"{Path(checksum_filename).stem}{VERIFY_SCRIPT_SUFFIX}"


def discover_assets(output_dir: Path, checksum_filename: str = CHECKSUM_FILENAME) -> list[Path]:
    """
    Release assets directly inside `output_dir`, sorted by name.

    Skips subdirectories, hidden files, build sidecars (.meta), logs,
    package manifests and the checksum file with its verify script.

    Raises:
        FileNotFoundError: If output_dir doesn't exist.
    """
    if not output_dir.is_dir():
        raise FileNotFoundError(f"Release directory not found: {output_dir}")

    skipped_names = {checksum_filename, verify_script_name(checksum_filename)}
    assets: list[Path] = []
    for path in sorted(output_dir.iterdir(), key=lambda p: p.name):
        if not path.is_file():
            continue
        name = path.name
        if name.startswith(".") or name in skipped_names or name.endswith(_EXCLUDED_SUFFIXES):
            continue
        assets.append(path)
    return assets


def generate_checksums(
    files: Iterable[Path],
    *,
    hasher: Optional[Hasher] = None,
    source_dir: Optional[Path] = None,
) -> ChecksumManifest:
    """
    Hash every file. Per-file failures are recorded, not raised.

    Args:
        files: Files to hash. Entries are keyed by file name, so they should
            share a directory.
        hasher: Backend; hashlib when None.
        source_dir: Recorded in the checksum file header.
    """
    backend = hasher or HashlibHasher()
    entries: dict[str, str] = {}
    failures: list[str] = []

    for path in sorted(files, key=lambda p: p.name):
        try:
            digest = backend.hash_file(path)
        except OSError as err:
            failures.append(path.name)
            _logger.error(
                "Failed to generate checksum",
                extra={"file": path.name, "error": str(err)},
            )
            continue
        entries[path.name] = digest
        _logger.debug(
            "Computed checksum",
            extra={"file": path.name, "sha256": digest[:16] + "..."},
        )

    manifest = ChecksumManifest(
        entries=entries,
        failures=sorted(failures),
        source_dir=source_dir,
        generated_at=datetime.now(tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
        hasher=backend.name,
    )
    _logger.info(
        "Checksums generated",
        extra={
            "file_count": manifest.processed_count,
            "failed_count": manifest.failed_count,
            "hasher": backend.name,
        },
    )
    return manifest


def render_checksum_file(manifest: ChecksumManifest) -> str:
    lines = [
        "# SHA256 Checksums",
        f"# Generated on {manifest.generated_at}",
        f"# Directory: {manifest.source_dir if manifest.source_dir is not None else '.'}",
        f"# Utility: {manifest.hasher}",
        "",
    ]
    # Merge data and error lines so both follow filename order.
    names = sorted(set(manifest.entries) | set(manifest.failures))
    for name in names:
        if name in manifest.entries:
            lines.append(f"{manifest.entries[name]}  {name}")
        else:
            lines.append(f"# ERROR: Failed to generate checksum for {name}")

    lines += ["", "# Summary:", f"# Files processed: {manifest.processed_count}"]
    if manifest.failed_count > 0:
        lines.append(f"# Files failed: {manifest.failed_count}")
    return "\n".join(lines) + "\n"


def write_checksum_file(manifest: ChecksumManifest, checksum_path: Path) -> Path:
    atomic_write(checksum_path, render_checksum_file(manifest))
    _logger.info(
        "Checksum file written",
        extra={"path": str(checksum_path), "entries": manifest.processed_count},
    )
    return checksum_path


_VERIFY_SCRIPT_TEMPLATE = """#!/bin/bash
# Verify release assets against {checksum_file}
set -euo pipefail

cd "$(dirname "$0")"

if command -v sha256sum >/dev/null 2>&1; then
    sha256sum -c {checksum_file} --ignore-missing
elif command -v shasum >/dev/null 2>&1; then
    shasum -a 256 -c {checksum_file} --ignore-missing
else
    echo "Error: neither sha256sum nor shasum is available" >&2
    exit 1
fi
"""


def write_verification_script(checksum_path: Path) -> Path:
    """Write `<stem>-verify.sh` next to the checksum file, executable."""
    script_path = checksum_path.with_name(verify_script_name(checksum_path.name))
    atomic_write(
        script_path,
        _VERIFY_SCRIPT_TEMPLATE.format(checksum_file=checksum_path.name),
        mode=0o755,
    )
    _logger.info("Verification script written", extra={"path": str(script_path)})
    return script_path


def parse_checksum_file(checksum_path: Path) -> dict[str, str]:
    """
    Parse a checksums.txt file into a dict of {filename: sha256_hex}.
    Comment and blank lines are ignored.

    Raises:
        FileNotFoundError: If file doesn't exist.
        ValueError: If a data line is malformed.
    """
    if not checksum_path.is_file():
        raise FileNotFoundError(f"Checksum file not found: {checksum_path}")

    checksums: dict[str, str] = {}
    content = checksum_path.read_text(encoding="utf-8")

    for line_num, line in enumerate(content.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split("  ", maxsplit=1)
        if len(parts) != 2:
            raise ValueError(
                f"Invalid checksum format at line {line_num}: expected "
                f"'<sha256>  <filename>', got: {line!r}"
            )
        sha256_hex, filename = parts
        if len(sha256_hex) != _SHA256_HEX_LENGTH:
            raise ValueError(
                f"Invalid SHA256 hash length at line {line_num}: "
                f"expected {_SHA256_HEX_LENGTH} chars, got {len(sha256_hex)}"
            )
        checksums[filename.lstrip("*")] = sha256_hex.lower()

    return checksums


def verify_checksums(checksum_path: Path) -> VerificationResult:
    """
    Re-hash every file listed in `checksum_path` (resolved next to it).

    Reports all mismatches and missing files, not just the first.
    """
    if not checksum_path.is_file():
        return VerificationResult(
            is_valid=False,
            checked_count=0,
            errors=[f"{checksum_path.name} not found in {checksum_path.parent}"],
        )

    try:
        expected = parse_checksum_file(checksum_path)
    except ValueError as err:
        return VerificationResult(
            is_valid=False,
            checked_count=0,
            errors=[f"Failed to parse {checksum_path.name}: {err}"],
        )

    release_dir = checksum_path.parent
    mismatches: list[str] = []
    missing_files: list[str] = []
    errors: list[str] = []
    checked = 0

    for filename, expected_hash in sorted(expected.items()):
        file_path = release_dir / filename
        if not file_path.is_file():
            missing_files.append(filename)
            _logger.error("File missing during verification", extra={"file": filename})
            continue

        try:
            actual_hash = compute_sha256(file_path)
        except OSError as err:
            errors.append(f"{filename}: {err}")
            continue
        checked += 1

        if actual_hash != expected_hash:
            mismatches.append(filename)
            _logger.error(
                "Checksum mismatch",
                extra={
                    "file": filename,
                    "expected": expected_hash[:16] + "...",
                    "actual": actual_hash[:16] + "...",
                },
            )
        else:
            _logger.debug("Checksum verified", extra={"file": filename})

    is_valid = not mismatches and not missing_files and not errors

    if is_valid:
        _logger.info("All checksums verified", extra={"checked_count": checked})
    else:
        _logger.error(
            "Checksum verification failed",
            extra={
                "mismatches": len(mismatches),
                "missing": len(missing_files),
                "errors": len(errors),
            },
        )

    return VerificationResult(
        is_valid=is_valid,
        checked_count=checked,
        mismatches=mismatches,
        missing_files=missing_files,
        errors=errors,
    )


def create_checksums(
    output_dir: Path,
    *,
    checksum_filename: str = CHECKSUM_FILENAME,
    hasher: Optional[Hasher] = None,
    write_verify_script: bool = True,
) -> ChecksumManifest:
    """
    Discover, hash and write checksums.txt (plus its verify script) for a
    release directory.

    Raises:
        FileNotFoundError: If output_dir doesn't exist.
    """
    assets = discover_assets(output_dir, checksum_filename)
    if not assets:
        _logger.warning("No release assets found to checksum", extra={"output_dir": str(output_dir)})

    manifest = generate_checksums(assets, hasher=hasher, source_dir=output_dir)
    checksum_path = output_dir / checksum_filename
    write_checksum_file(manifest, checksum_path)
    if write_verify_script:
        write_verification_script(checksum_path)

    if manifest.failed_count:
        _logger.warning(
            "Some files could not be checksummed",
            extra={"failed_count": manifest.failed_count, "files": manifest.failures},
        )
    return manifest
