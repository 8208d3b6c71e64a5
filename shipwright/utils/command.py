# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
External command runner.

Every process shipwright starts (rustup, cargo, apt-get, tar, zip, sha256sum)
goes through `run_command`: argv list only, never shell=True, output
captured, hard timeout. A missing executable or a timeout comes back as a
CommandResult with a non-zero exit code instead of an exception, so callers
only have one failure shape to handle.

Components take a `runner` argument defaulting to this function. Tests swap
in a fake that records argv and fabricates outputs.
"""

import logging
import os
import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence

from shipwright.logging.logger import get_logger

_logger: logging.Logger = get_logger(__name__)

NOT_FOUND_EXIT_CODE = 127
TIMEOUT_EXIT_CODE = 124


@dataclass(frozen=True)
class CommandResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    def __call__(
        self,
        argv: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout_seconds: Optional[float] = None,
    ) -> CommandResult: ...


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_command(
    argv: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout_seconds: Optional[float] = None,
) -> CommandResult:
    """
    Run a command and capture everything.

    Args:
        argv: Program and arguments. Passed straight to exec, no shell.
        cwd: Working directory.
        env: Variables layered over the current environment.
        timeout_seconds: Hard limit; None means wait indefinitely.
    """
    argv_list = list(argv)
    start = time.monotonic()
    _logger.debug("Running command", extra={"argv": format_argv(argv_list), "cwd": str(cwd or "")})

    try:
        proc = subprocess.run(
            argv_list,
            capture_output=True,
            text=True,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(os.environ, **(env or {})),
            timeout=timeout_seconds,
            check=False,
        )
    except FileNotFoundError:
        _logger.error("Executable not found", extra={"executable": argv_list[0]})
        return CommandResult(
            argv=argv_list,
            returncode=NOT_FOUND_EXIT_CODE,
            stdout="",
            stderr=f"{argv_list[0]}: executable not found",
            elapsed_seconds=time.monotonic() - start,
        )
    except subprocess.TimeoutExpired:
        _logger.warning(
            "Command timed out",
            extra={"argv": format_argv(argv_list), "timeout_seconds": timeout_seconds},
        )
        return CommandResult(
            argv=argv_list,
            returncode=TIMEOUT_EXIT_CODE,
            stdout="",
            stderr=f"{argv_list[0]} timed out after {timeout_seconds}s",
            elapsed_seconds=time.monotonic() - start,
        )

    elapsed = time.monotonic() - start
    _logger.debug(
        "Command finished",
        extra={
            "argv": format_argv(argv_list),
            "exit_code": proc.returncode,
            "elapsed_seconds": round(elapsed, 3),
        },
    )
    return CommandResult(
        argv=argv_list,
        returncode=proc.returncode,
        stdout=proc.stdout,
        stderr=proc.stderr,
        elapsed_seconds=elapsed,
    )
