# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Pre-flight environment validation.

Before any platform lane starts, check:
- Python version
- cargo and rustup on PATH
- disk space under the output directory
- secrets required by enabled features (NPM_TOKEN when npm publishing is on)

Fail early with clear errors instead of halfway through a matrix. Secret
values are only tested for presence; they are registered with the logger's
redaction filter and never reported.
"""

import logging
import os
import platform
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from shipwright.logging.logger import get_logger, register_secret
from shipwright.release.exceptions import PreflightError

_logger: logging.Logger = get_logger(__name__)

MIN_PYTHON_MAJOR: int = 3
MIN_PYTHON_MINOR: int = 11
MIN_DISK_SPACE_BYTES: int = 1_073_741_824  # 1 GB
REQUIRED_TOOLS: tuple[str, ...] = ("cargo", "rustup")

# Variables that hold credentials anywhere in a release run.
SECRET_ENV_VARS: tuple[str, ...] = ("GITHUB_TOKEN", "NPM_TOKEN", "CARGO_REGISTRY_TOKEN")


@dataclass(frozen=True)
class EnvironmentCheck:
    """Result of a single environment check."""

    name: str
    passed: bool
    message: str
    value: str
    required: bool = True


def check_python_version(version_info: Sequence[int] = sys.version_info) -> EnvironmentCheck:
    """Verify Python >= 3.11."""
    major, minor, micro = tuple(version_info)[:3]
    version_str = f"{major}.{minor}.{micro}"
    passed = major > MIN_PYTHON_MAJOR or (major == MIN_PYTHON_MAJOR and minor >= MIN_PYTHON_MINOR)
    if passed:
        msg = f"Python {version_str} meets minimum {MIN_PYTHON_MAJOR}.{MIN_PYTHON_MINOR}"
    else:
        msg = f"Python {version_str} does NOT meet minimum {MIN_PYTHON_MAJOR}.{MIN_PYTHON_MINOR}"
    return EnvironmentCheck(name="python_version", passed=passed, message=msg, value=version_str)


def ensure_python(version_info: Sequence[int] = sys.version_info) -> None:
    """Interpreter gate run at startup, ahead of the full pre-flight."""
    check = check_python_version(version_info)
    if not check.passed:
        raise PreflightError(check.message)


def host_info() -> dict[str, str]:
    """Interpreter and machine details for startup logs and `shipwright info`."""
    return {
        "python_version": platform.python_version(),
        "platform": platform.system(),
        "architecture": platform.machine(),
        "hostname": platform.node(),
    }


def check_tool(
    tool: str,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> EnvironmentCheck:
    location = which(tool)
    if location:
        return EnvironmentCheck(name=f"tool:{tool}", passed=True, message=f"{tool} found", value=location)
    return EnvironmentCheck(
        name=f"tool:{tool}",
        passed=False,
        message=f"{tool} not found on PATH",
        value="not_found",
    )


def check_disk_space(path: Path | None = None) -> EnvironmentCheck:
    """
    Check available disk space at the given path (or its nearest existing
    parent, since the output directory may not exist yet).
    """
    check_path = path or Path.cwd()
    while not check_path.exists() and check_path != check_path.parent:
        check_path = check_path.parent
    try:
        usage = shutil.disk_usage(str(check_path))
    except OSError as err:
        return EnvironmentCheck(
            name="disk_space",
            passed=False,
            message=f"Cannot check disk space: {err}",
            value="error",
        )

    free_gb = usage.free / (1024**3)
    minimum_gb = MIN_DISK_SPACE_BYTES / (1024**3)
    passed = usage.free >= MIN_DISK_SPACE_BYTES
    if passed:
        msg = f"{free_gb:.1f} GB free (minimum {minimum_gb:.0f} GB)"
    else:
        msg = f"Only {free_gb:.1f} GB free, need at least {minimum_gb:.0f} GB"
    return EnvironmentCheck(name="disk_space", passed=passed, message=msg, value=f"{free_gb:.1f}GB")


def check_secret(
    variable: str,
    *,
    required: bool,
    environ: Mapping[str, str] | None = None,
) -> EnvironmentCheck:
    """
    Presence check for a credential. The value is registered for redaction
    and never placed in the result.
    """
    env = os.environ if environ is None else environ
    value = env.get(variable, "")
    register_secret(value)
    present = bool(value)
    if present:
        msg = f"{variable} is set"
    elif required:
        msg = f"{variable} is required but not set"
    else:
        msg = f"{variable} not set (not needed)"
    return EnvironmentCheck(
        name=f"secret:{variable}",
        passed=present or not required,
        message=msg,
        value="present" if present else "absent",
        required=required,
    )


def register_environment_secrets(environ: Mapping[str, str] | None = None) -> None:
    """Mask every known credential in log output, whether or not it's used."""
    env = os.environ if environ is None else environ
    for variable in SECRET_ENV_VARS:
        register_secret(env.get(variable))


def validate_environment(
    check_path: Path | None = None,
    *,
    enable_npm: bool = False,
    require_tools: bool = True,
    which: Callable[[str], Optional[str]] = shutil.which,
    environ: Mapping[str, str] | None = None,
) -> list[EnvironmentCheck]:
    """
    Run all pre-flight environment checks.

    Returns a list of check results. Callers inspect `passed` (or use
    `ensure_environment`) to decide whether to proceed.

    Args:
        check_path: Path for the disk space check.
        enable_npm: npm publishing is on, so NPM_TOKEN becomes required.
        require_tools: Whether a missing cargo/rustup fails the check.
        which: PATH lookup (swapped out in tests).
        environ: Environment to read secrets from. Defaults to os.environ.
    """
    register_environment_secrets(environ)

    checks = [check_python_version()]
    for tool in REQUIRED_TOOLS:
        result = check_tool(tool, which)
        if not require_tools:
            result = EnvironmentCheck(
                name=result.name,
                passed=True,
                message=result.message,
                value=result.value,
                required=False,
            )
        checks.append(result)
    checks.append(check_disk_space(check_path))
    checks.append(check_secret("NPM_TOKEN", required=enable_npm, environ=environ))

    passed_count = sum(1 for c in checks if c.passed)
    failed_count = len(checks) - passed_count

    for check in checks:
        log_fn = _logger.info if check.passed else _logger.error
        log_fn(
            "Environment check",
            extra={
                "check": check.name,
                "passed": check.passed,
                "check_message": check.message,
            },
        )

    _logger.info(
        "Environment validation complete",
        extra={"passed": passed_count, "failed": failed_count},
    )

    return checks


def ensure_environment(
    check_path: Path | None = None,
    **kwargs: object,
) -> list[EnvironmentCheck]:
    """
    Like validate_environment, but raise when any required check fails.

    Raises:
        PreflightError: Listing every failed check.
    """
    checks = validate_environment(check_path, **kwargs)  # type: ignore[arg-type]
    failed = [c for c in checks if not c.passed]
    if failed:
        raise PreflightError(
            "Pre-flight checks failed: " + "; ".join(c.message for c in failed)
        )
    return checks
