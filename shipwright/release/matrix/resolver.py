# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Build matrix resolution.

Turns "defaults or a custom include list, minus exclusions" into an ordered,
fully populated BuildMatrix:

  1. Start from DEFAULT_PLATFORMS, or parse the custom include JSON. Every
     custom row needs target, runner_os and platform_id; one bad row rejects
     the whole matrix.
  2. Drop excluded platform ids in place. Excluding an id that isn't there
     is only a warning.
  3. Fill in binary_ext / archive_ext from the target triple.
  4. Attach cross-compilation env for targets in the provisioner table.
  5. Refuse an empty result.

Row order is input order. Nothing gets re-sorted.

Serialized rows use the keys CI workflows consume: target, os, platform,
binary_ext, archive_ext and, when present, cross_compile_env. The parser
accepts those keys as well as runner_os / platform_id.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional, Sequence, Union

from shipwright.logging.logger import get_logger
from shipwright.release.cross.provisioner import CROSS_COMPILE_TABLE, lookup
from shipwright.release.exceptions import ResolutionError
from shipwright.release.validation.validator import (
    ValidatedString,
    validate_platform_name,
)

_logger: logging.Logger = get_logger(__name__)

SUPPORTED_RUNNERS: tuple[str, ...] = (
    "ubuntu-latest",
    "ubuntu-20.04",
    "ubuntu-22.04",
    "ubuntu-24.04",
    "macos-latest",
    "macos-13",
    "macos-12",
    "windows-latest",
    "windows-2022",
    "windows-2019",
)

ARCHIVE_EXTENSIONS: frozenset[str] = frozenset({"tar.gz", "zip"})
BINARY_EXTENSIONS: frozenset[str] = frozenset({"", ".exe"})

DEFAULT_PLATFORMS: tuple[dict[str, str], ...] = (
    {"target": "x86_64-unknown-linux-gnu", "os": "ubuntu-latest", "platform": "linux-x86_64"},
    {"target": "aarch64-unknown-linux-gnu", "os": "ubuntu-latest", "platform": "linux-arm64"},
    {"target": "aarch64-apple-darwin", "os": "macos-latest", "platform": "mac-arm64"},
)

EXTENDED_PLATFORMS: tuple[dict[str, str], ...] = (
    {"target": "i686-unknown-linux-gnu", "os": "ubuntu-latest", "platform": "linux-i686"},
    {"target": "armv7-unknown-linux-gnueabihf", "os": "ubuntu-latest", "platform": "linux-armv7"},
    {"target": "x86_64-unknown-linux-musl", "os": "ubuntu-latest", "platform": "linux-x86_64-musl"},
    {"target": "aarch64-unknown-linux-musl", "os": "ubuntu-latest", "platform": "linux-arm64-musl"},
    {"target": "x86_64-pc-windows-gnu", "os": "ubuntu-latest", "platform": "windows-x86_64-gnu"},
    {"target": "i686-pc-windows-msvc", "os": "windows-latest", "platform": "windows-i686"},
)

_TARGET_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-")


def infer_binary_ext(target: str) -> str:
    return ".exe" if "windows" in target else ""


def infer_archive_ext(target: str) -> str:
    return "zip" if "windows" in target else "tar.gz"


@dataclass(frozen=True)
class PlatformSpec:
    """One matrix row: everything a lane needs to build for one platform."""

    platform_id: ValidatedString
    target_triple: str
    runner_os: str
    binary_ext: str
    archive_ext: str
    cross_compile_env: Optional[dict[str, str]] = None

    @property
    def is_windows(self) -> bool:
        return "windows" in self.target_triple

    def to_dict(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "target": self.target_triple,
            "os": self.runner_os,
            "platform": self.platform_id.value,
            "binary_ext": self.binary_ext,
            "archive_ext": self.archive_ext,
        }
        if self.cross_compile_env is not None:
            row["cross_compile_env"] = dict(self.cross_compile_env)
        return row


@dataclass(frozen=True)
class BuildMatrix:
    """Ordered, non-empty set of platform rows with unique platform ids."""

    rows: tuple[PlatformSpec, ...]

    def __post_init__(self) -> None:
        if not self.rows:
            raise ResolutionError("No platforms remaining in matrix after filtering")
        seen: set[str] = set()
        for row in self.rows:
            pid = row.platform_id.value
            if pid in seen:
                raise ResolutionError(f"Duplicate platform id in matrix: {pid!r}")
            seen.add(pid)
            if not row.target_triple or not row.runner_os or row.archive_ext not in ARCHIVE_EXTENSIONS:
                raise ResolutionError(f"Matrix row {pid!r} is not fully populated")

    def __iter__(self) -> Iterator[PlatformSpec]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def platform_ids(self) -> list[str]:
        return [row.platform_id.value for row in self.rows]

    def get(self, platform_id: str) -> Optional[PlatformSpec]:
        for row in self.rows:
            if row.platform_id.value == platform_id:
                return row
        return None

    def to_list(self) -> list[dict[str, Any]]:
        return [row.to_dict() for row in self.rows]

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_list(), indent=indent)

    def to_actions_json(self) -> str:
        """Compact `{"include": [...]}` form for a CI strategy matrix."""
        return json.dumps({"include": self.to_list()}, separators=(",", ":"))


@dataclass(frozen=True)
class MatrixResolution:
    matrix: BuildMatrix
    warnings: list[str] = field(default_factory=list)


def _first_present(entry: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = entry.get(key)
        if value not in (None, ""):
            return value
    return None


def _parse_row(index: int, entry: Any) -> dict[str, Any]:
    """Validate one custom include object and normalize it to internal keys."""
    if not isinstance(entry, dict):
        raise ResolutionError(f"Matrix entry {index} must be an object, got {type(entry).__name__}")

    target = _first_present(entry, "target")
    runner_os = _first_present(entry, "runner_os", "os")
    platform_id = _first_present(entry, "platform_id", "platform")
    if target is None or runner_os is None or platform_id is None:
        raise ResolutionError(
            f"Matrix entry {index} missing required fields (target, runner_os, platform_id): "
            f"{json.dumps(entry, sort_keys=True)}"
        )
    for name, value in (("target", target), ("runner_os", runner_os), ("platform_id", platform_id)):
        if not isinstance(value, str):
            raise ResolutionError(f"Matrix entry {index}: {name} must be a string, got {value!r}")

    validated_id = validate_platform_name(platform_id)

    if not set(target) <= _TARGET_CHARS:
        raise ResolutionError(f"Invalid target format: {target!r}")

    if runner_os not in SUPPORTED_RUNNERS:
        raise ResolutionError(
            f"Unsupported runner OS: {runner_os!r}. Supported: {', '.join(SUPPORTED_RUNNERS)}"
        )

    binary_ext = entry.get("binary_ext")
    archive_ext = entry.get("archive_ext")
    for name, value, allowed in (
        ("binary_ext", binary_ext, BINARY_EXTENSIONS),
        ("archive_ext", archive_ext, ARCHIVE_EXTENSIONS),
    ):
        if value is None:
            continue
        if not isinstance(value, str) or value not in allowed:
            raise ResolutionError(f"Matrix entry {index}: unsupported {name} {value!r}")

    return {
        "platform_id": validated_id,
        "target": target,
        "runner_os": runner_os,
        "binary_ext": binary_ext,
        "archive_ext": archive_ext,
    }


def _load_include(custom_include: Union[str, Sequence[Any]]) -> list[Any]:
    if isinstance(custom_include, str):
        try:
            parsed = json.loads(custom_include)
        except json.JSONDecodeError as err:
            raise ResolutionError(f"Invalid JSON format in include parameter: {err}") from err
    else:
        parsed = list(custom_include)
    if not isinstance(parsed, list):
        raise ResolutionError(
            f"Include matrix must be a JSON array of objects, got {type(parsed).__name__}"
        )
    return parsed


def parse_exclude_list(exclude: Union[str, Iterable[str], None]) -> list[ValidatedString]:
    """
    Split a comma-separated exclude value (or a list of them) into validated
    platform ids. Whitespace around items is trimmed and empty items skipped.
    """
    if exclude is None:
        return []
    chunks = [exclude] if isinstance(exclude, str) else list(exclude)
    validated: list[ValidatedString] = []
    for chunk in chunks:
        for item in chunk.split(","):
            item = item.strip()
            if item:
                validated.append(validate_platform_name(item))
    return validated


def resolve_matrix(
    custom_include: Union[str, Sequence[Any], None] = None,
    exclude: Union[str, Iterable[str], None] = None,
) -> MatrixResolution:
    """
    Compute the final build matrix.

    Args:
        custom_include: JSON array (string or already-parsed list) replacing
            the default platforms. None means use DEFAULT_PLATFORMS.
        exclude: Platform ids to drop, comma-separated string or list.

    Returns:
        MatrixResolution with the matrix and any non-fatal warnings.

    Raises:
        ResolutionError: Malformed include data, unsupported runner, or an
            empty matrix.
        RejectionError: A platform id (included or excluded) fails validation.
    """
    if custom_include is not None:
        raw_rows = _load_include(custom_include)
        source = "custom"
    else:
        raw_rows = [dict(row) for row in DEFAULT_PLATFORMS]
        source = "default"

    rows = [_parse_row(i, entry) for i, entry in enumerate(raw_rows)]
    _logger.info("Using build matrix", extra={"source": source, "platforms": len(rows)})

    seen: set[str] = set()
    for row in rows:
        pid = row["platform_id"].value
        if pid in seen:
            raise ResolutionError(f"Duplicate platform id in matrix: {pid!r}")
        seen.add(pid)

    warnings: list[str] = []
    for excluded in parse_exclude_list(exclude):
        before = len(rows)
        rows = [row for row in rows if row["platform_id"].value != excluded.value]
        if len(rows) == before:
            message = f"Platform '{excluded.value}' not found in matrix"
            warnings.append(message)
            _logger.warning(message, extra={"platform": excluded.value})
        else:
            _logger.info("Excluded platform", extra={"platform": excluded.value})

    if not rows:
        raise ResolutionError("No platforms remaining in matrix after filtering")

    specs: list[PlatformSpec] = []
    for row in rows:
        target = row["target"]
        cross_env = dict(lookup(target).env) if target in CROSS_COMPILE_TABLE else None
        specs.append(
            PlatformSpec(
                platform_id=row["platform_id"],
                target_triple=target,
                runner_os=row["runner_os"],
                binary_ext=row["binary_ext"] if row["binary_ext"] is not None else infer_binary_ext(target),
                archive_ext=row["archive_ext"] if row["archive_ext"] is not None else infer_archive_ext(target),
                cross_compile_env=cross_env,
            )
        )

    matrix = BuildMatrix(rows=tuple(specs))
    _logger.info(
        "Matrix resolved",
        extra={"platforms": matrix.platform_ids, "warnings": len(warnings)},
    )
    return MatrixResolution(matrix=matrix, warnings=warnings)


def extended_include_json(*platform_ids: str) -> str:
    """
    Build an include JSON array from named rows of the default and extended
    tables, in the order given.

    Raises:
        ResolutionError: An id is in neither table.
    """
    known = {row["platform"]: row for row in (*DEFAULT_PLATFORMS, *EXTENDED_PLATFORMS)}
    selected: list[dict[str, str]] = []
    for pid in platform_ids:
        if pid not in known:
            raise ResolutionError(
                f"Unknown platform {pid!r}. Known: {', '.join(sorted(known))}"
            )
        selected.append(dict(known[pid]))
    return json.dumps(selected)


def platform_spec(platform_id: str) -> PlatformSpec:
    """Fully resolved row for one platform from the default or extended table."""
    return resolve_matrix(extended_include_json(platform_id)).matrix.rows[0]
