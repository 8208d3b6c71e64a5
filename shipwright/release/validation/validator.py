# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Input validation: the single gate between untrusted strings and everything
that touches a process argv, a file name, or a generated script.

`validate(kind, raw)` either returns a ValidatedString tagged with the rule
that accepted it, or raises RejectionError. Nothing is trimmed, lowered or
otherwise repaired; a value is accepted whole or not at all.

ValidatedString cannot be built outside this module. Downstream components
type their parameters as ValidatedString, so an unchecked str cannot reach
cargo or the install-script templater by accident.
"""

import logging
import re
import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePath
from typing import Optional

from shipwright.logging.logger import get_logger
from shipwright.release.exceptions import RejectionError
from shipwright.utils.paths import is_within_directory

_logger: logging.Logger = get_logger(__name__)


class ValidationKind(str, Enum):
    BINARY_NAME = "binary name"
    PLATFORM = "platform"
    VERSION = "version tag"
    REPOSITORY = "repository"
    TOOL_ARGS = "tool arguments"
    TOOLCHAIN_VERSION = "toolchain version"
    RELATIVE_PATH = "relative path"
    BINARY_EXT = "binary extension"


MAX_LENGTHS: dict[ValidationKind, int] = {
    ValidationKind.BINARY_NAME: 50,
    ValidationKind.PLATFORM: 30,
    ValidationKind.VERSION: 50,
    ValidationKind.REPOSITORY: 100,
    ValidationKind.TOOL_ARGS: 200,
    ValidationKind.TOOLCHAIN_VERSION: 20,
}

RESERVED_NAMES: frozenset[str] = frozenset(
    {"con", "prn", "aux", "nul"}
    | {f"com{i}" for i in range(1, 10)}
    | {f"lpt{i}" for i in range(1, 10)}
)

FORBIDDEN_ARG_CHARS: frozenset[str] = frozenset(";|&$`()><")

DANGEROUS_ARG_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p)
    for p in (
        r"rm -rf",
        r"curl.*\|",
        r"wget.*\|",
        r"nc -",
        r"bash -",
        r"sh -",
        r"/bin/",
        r"/usr/bin/",
        r"python -c",
        r"perl -e",
        r"ruby -e",
    )
)

_NAME_RE = re.compile(r"[A-Za-z0-9_-]+")
_REPOSITORY_RE = re.compile(r"[\w.-]+/[\w.-]+", re.ASCII)
_VERSION_START_RE = re.compile(r"^v?[0-9]")
_VERSION_CHARS_RE = re.compile(r"[A-Za-z0-9v.+-]+")
_TOOLCHAIN_RE = re.compile(r"(stable|beta|nightly|[0-9]+(\.[0-9]+){0,2})")

_CONSTRUCTION_TOKEN = object()


@dataclass(frozen=True)
class ValidatedString:
    """A string plus the rule that accepted it. Only `validate` makes these."""

    kind: ValidationKind
    value: str
    _token: object = None

    def __post_init__(self) -> None:
        if self._token is not _CONSTRUCTION_TOKEN:
            raise TypeError("ValidatedString can only be produced by the input validator")

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"ValidatedString({self.kind.name}, {self.value!r})"

    def as_argv(self) -> list[str]:
        """Split a tool-argument string into argv entries (no shell involved)."""
        return shlex.split(self.value)


def _accept(kind: ValidationKind, value: str) -> ValidatedString:
    return ValidatedString(kind=kind, value=value, _token=_CONSTRUCTION_TOKEN)


def _check_length(kind: ValidationKind, raw: str) -> None:
    limit = MAX_LENGTHS.get(kind)
    if limit is not None and len(raw) > limit:
        raise RejectionError(kind.value, raw, f"too long (max {limit} characters)")


def _check_name(kind: ValidationKind, raw: str) -> None:
    if not raw:
        raise RejectionError(kind.value, raw, "cannot be empty")
    _check_length(kind, raw)
    if not _NAME_RE.fullmatch(raw):
        raise RejectionError(
            kind.value, raw, "only alphanumeric characters, dashes and underscores are allowed"
        )
    if raw.lower() in RESERVED_NAMES:
        raise RejectionError(kind.value, raw, "reserved device name")


def _check_repository(raw: str) -> None:
    kind = ValidationKind.REPOSITORY
    if not raw:
        raise RejectionError(kind.value, raw, "cannot be empty")
    _check_length(kind, raw)
    if ".." in raw:
        raise RejectionError(kind.value, raw, "path traversal detected")
    if raw.count("/") != 1 or not _REPOSITORY_RE.fullmatch(raw):
        raise RejectionError(kind.value, raw, "must be in format owner/repo")


def _check_version(raw: str) -> None:
    kind = ValidationKind.VERSION
    if not raw:
        raise RejectionError(kind.value, raw, "cannot be empty")
    _check_length(kind, raw)
    if not _VERSION_START_RE.match(raw):
        raise RejectionError(kind.value, raw, "must start with a number or 'v' followed by a number")
    if not _VERSION_CHARS_RE.fullmatch(raw):
        raise RejectionError(
            kind.value, raw, "only letters, numbers, dots, dashes and plus signs are allowed"
        )
    if ".." in raw:
        raise RejectionError(kind.value, raw, "double dots not allowed")
    if "--" in raw:
        raise RejectionError(kind.value, raw, "double dashes not allowed")
    if raw.endswith("-"):
        raise RejectionError(kind.value, raw, "cannot end with a dash")
    if raw.endswith("+"):
        raise RejectionError(kind.value, raw, "cannot end with a plus")


def _check_tool_args(raw: str) -> None:
    kind = ValidationKind.TOOL_ARGS
    if raw == "":
        return
    _check_length(kind, raw)
    bad = sorted({ch for ch in raw if ch in FORBIDDEN_ARG_CHARS})
    if bad:
        raise RejectionError(
            kind.value, raw, f"forbidden characters {' '.join(bad)} (cannot contain ; | & $ ` ( ) > <)"
        )
    for pattern in DANGEROUS_ARG_PATTERNS:
        if pattern.search(raw):
            raise RejectionError(kind.value, raw, f"dangerous pattern {pattern.pattern!r}")
    try:
        shlex.split(raw)
    except ValueError as err:
        raise RejectionError(kind.value, raw, f"unbalanced quoting: {err}") from err


def _check_toolchain(raw: str) -> None:
    kind = ValidationKind.TOOLCHAIN_VERSION
    if not raw:
        raise RejectionError(kind.value, raw, "cannot be empty")
    _check_length(kind, raw)
    if not _TOOLCHAIN_RE.fullmatch(raw):
        raise RejectionError(
            kind.value, raw, "must be stable, beta, nightly, or a version number such as 1.75.0"
        )


def _check_relative_path(raw: str, base_dir: Optional[Path]) -> None:
    kind = ValidationKind.RELATIVE_PATH
    if not raw:
        raise RejectionError(kind.value, raw, "cannot be empty")
    pure = PurePath(raw)
    if pure.is_absolute() or raw.startswith(("/", "\\")):
        raise RejectionError(kind.value, raw, "absolute paths not allowed")
    if ".." in re.split(r"[\\/]", raw):
        raise RejectionError(kind.value, raw, "path traversal detected")
    base = base_dir if base_dir is not None else Path.cwd()
    if not is_within_directory(base / raw, base):
        raise RejectionError(kind.value, raw, f"resolves outside of {base}")


def _check_binary_ext(raw: str) -> None:
    if raw not in ("", ".exe"):
        raise RejectionError(ValidationKind.BINARY_EXT.value, raw, "must be '' or '.exe'")


def validate(
    kind: ValidationKind,
    raw: str,
    *,
    base_dir: Optional[Path] = None,
) -> ValidatedString:
    """
    Validate `raw` against the rule for `kind`.

    Args:
        kind: Which rule to apply.
        raw: The untrusted input, exactly as received.
        base_dir: Root for RELATIVE_PATH checks. Defaults to the working directory.

    Returns:
        ValidatedString carrying `raw` unchanged.

    Raises:
        RejectionError: With the offending value and a human-readable reason.
    """
    if not isinstance(raw, str):
        raise RejectionError(kind.value, repr(raw), f"expected a string, got {type(raw).__name__}")

    if kind in (ValidationKind.BINARY_NAME, ValidationKind.PLATFORM):
        _check_name(kind, raw)
    elif kind is ValidationKind.REPOSITORY:
        _check_repository(raw)
    elif kind is ValidationKind.VERSION:
        _check_version(raw)
    elif kind is ValidationKind.TOOL_ARGS:
        _check_tool_args(raw)
    elif kind is ValidationKind.TOOLCHAIN_VERSION:
        _check_toolchain(raw)
    elif kind is ValidationKind.RELATIVE_PATH:
        _check_relative_path(raw, base_dir)
    elif kind is ValidationKind.BINARY_EXT:
        _check_binary_ext(raw)
    else:
        raise RejectionError(str(kind), raw, "unknown validation kind")

    _logger.debug("Input accepted", extra={"kind": kind.name, "input": raw})
    return _accept(kind, raw)


def validate_binary_name(raw: str) -> ValidatedString:
    return validate(ValidationKind.BINARY_NAME, raw)


def validate_platform_name(raw: str) -> ValidatedString:
    return validate(ValidationKind.PLATFORM, raw)


def validate_version_tag(raw: str) -> ValidatedString:
    return validate(ValidationKind.VERSION, raw)


def validate_repository(raw: str) -> ValidatedString:
    return validate(ValidationKind.REPOSITORY, raw)


def validate_tool_args(raw: str) -> ValidatedString:
    return validate(ValidationKind.TOOL_ARGS, raw)


def validate_toolchain_version(raw: str) -> ValidatedString:
    return validate(ValidationKind.TOOLCHAIN_VERSION, raw)


def validate_relative_path(raw: str, base_dir: Optional[Path] = None) -> ValidatedString:
    return validate(ValidationKind.RELATIVE_PATH, raw, base_dir=base_dir)


def binary_ext_for(platform: ValidatedString) -> ValidatedString:
    """The executable suffix implied by a platform id (".exe" for windows ids)."""
    return validate(ValidationKind.BINARY_EXT, ".exe" if "windows" in platform.value else "")


@dataclass(frozen=True)
class CommonInputs:
    binary_name: ValidatedString
    platform: ValidatedString
    version: ValidatedString
    repository: ValidatedString
    tool_args: ValidatedString
    toolchain_version: ValidatedString


def validate_common_inputs(
    binary_name: str,
    platform: str,
    version: str,
    repository: str,
    tool_args: str = "",
    toolchain_version: str = "stable",
) -> CommonInputs:
    """Validate the usual release inputs in one go. The first failure raises."""
    inputs = CommonInputs(
        binary_name=validate_binary_name(binary_name),
        platform=validate_platform_name(platform),
        version=validate_version_tag(version),
        repository=validate_repository(repository),
        tool_args=validate_tool_args(tool_args),
        toolchain_version=validate_toolchain_version(toolchain_version),
    )
    _logger.info("All inputs validated", extra={"binary_name": binary_name, "platform": platform})
    return inputs
