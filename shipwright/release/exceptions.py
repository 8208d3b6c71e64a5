# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Error taxonomy for the release pipeline.

Release-level errors (RejectionError, ResolutionError, PreflightError) stop
the run before any platform lane starts. Lane-level errors (BuildError,
ArtifactNotFoundError, PackagingError) fail one platform only; the
orchestrator records them and keeps the sibling lanes going.
ProvisioningEnvironmentError degrades a lane to a native build attempt.

Every error carries the offending value or path verbatim.
"""

from pathlib import Path
from typing import Sequence


class ReleaseError(Exception):
    """Base for every error raised by the release pipeline."""


class RejectionError(ReleaseError, ValueError):
    """An input string failed validation. Never silently coerced."""

    def __init__(self, kind: str, value: str, reason: str) -> None:
        self.kind = kind
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {kind} {value!r}: {reason}")


class ResolutionError(ReleaseError):
    """The build matrix is malformed, or empty after exclusions."""


class PreflightError(ReleaseError):
    """The environment cannot support the requested release (missing secret or tool)."""


class ProvisioningEnvironmentError(ReleaseError):
    """Cross-compilation setup is impossible here; the lane falls back to a native build."""


class BuildError(ReleaseError):
    """The toolchain or compiler failed for one platform."""

    def __init__(self, message: str, stderr: str = "") -> None:
        self.stderr = stderr
        detail = f"{message}\n{stderr.strip()}" if stderr.strip() else message
        super().__init__(detail)


class ArtifactNotFoundError(ReleaseError):
    """The compiler reported success but the binary is at neither expected location."""

    def __init__(self, binary_name: str, searched: Sequence[Path]) -> None:
        self.binary_name = binary_name
        self.searched = list(searched)
        locations = ", ".join(str(p) for p in self.searched)
        super().__init__(f"Built binary {binary_name!r} not found. Searched: {locations}")


class PackagingError(ReleaseError):
    """Archiver missing or archive integrity check failed for one platform."""
