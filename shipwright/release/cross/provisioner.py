# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Cross-compilation provisioning.

A static table maps a Rust target triple to the system packages the runner
needs (cross gcc, musl tools, MinGW) and the environment variables cargo and
the cc crate read to find them. A triple missing from the table compiles
natively; that is not an error.

Every table entry installs through apt-get, so provisioning only happens on
a Linux runner. On any other runner the mismatch is logged and the lane
gets empty bindings, which means a plain native build attempt.
"""

import logging
import os
import platform
import threading
from dataclasses import dataclass, field
from typing import Optional

from shipwright.logging.logger import get_logger
from shipwright.release.exceptions import ProvisioningEnvironmentError
from shipwright.utils.command import CommandRunner, run_command

_logger: logging.Logger = get_logger(__name__)

# Lanes share one host; concurrent apt-get runs contend for the dpkg lock.
_package_manager_lock = threading.Lock()

LINUX = "linux"
MACOS = "macos"
WINDOWS = "windows"


@dataclass(frozen=True)
class EnvironmentBindings:
    """What a target needs on the runner. Empty packages and env means native."""

    target_triple: str
    packages: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    host_os: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return not self.packages and not self.env


def _gcc_toolchain_env(target: str, prefix: str) -> dict[str, str]:
    """Linker, CC and AR overrides following cargo's per-target naming."""
    upper = target.upper().replace("-", "_")
    lower = target.replace("-", "_")
    return {
        f"CARGO_TARGET_{upper}_LINKER": f"{prefix}-gcc",
        f"CC_{lower}": f"{prefix}-gcc",
        f"AR_{lower}": f"{prefix}-ar",
    }


CROSS_COMPILE_TABLE: dict[str, EnvironmentBindings] = {
    "aarch64-unknown-linux-gnu": EnvironmentBindings(
        target_triple="aarch64-unknown-linux-gnu",
        packages=("gcc-aarch64-linux-gnu",),
        env=_gcc_toolchain_env("aarch64-unknown-linux-gnu", "aarch64-linux-gnu"),
        host_os=LINUX,
    ),
    "armv7-unknown-linux-gnueabihf": EnvironmentBindings(
        target_triple="armv7-unknown-linux-gnueabihf",
        packages=("gcc-arm-linux-gnueabihf",),
        env=_gcc_toolchain_env("armv7-unknown-linux-gnueabihf", "arm-linux-gnueabihf"),
        host_os=LINUX,
    ),
    "aarch64-unknown-linux-musl": EnvironmentBindings(
        target_triple="aarch64-unknown-linux-musl",
        packages=("musl-tools", "gcc-aarch64-linux-gnu"),
        env=_gcc_toolchain_env("aarch64-unknown-linux-musl", "aarch64-linux-gnu"),
        host_os=LINUX,
    ),
    "x86_64-unknown-linux-musl": EnvironmentBindings(
        target_triple="x86_64-unknown-linux-musl",
        packages=("musl-tools",),
        host_os=LINUX,
    ),
    "i686-unknown-linux-gnu": EnvironmentBindings(
        target_triple="i686-unknown-linux-gnu",
        packages=("gcc-multilib",),
        host_os=LINUX,
    ),
    "x86_64-pc-windows-gnu": EnvironmentBindings(
        target_triple="x86_64-pc-windows-gnu",
        packages=("gcc-mingw-w64-x86-64",),
        env=_gcc_toolchain_env("x86_64-pc-windows-gnu", "x86_64-w64-mingw32"),
        host_os=LINUX,
    ),
}


def lookup(target_triple: str) -> EnvironmentBindings:
    """Table lookup only, no side effects. Unknown triples get native bindings."""
    known = CROSS_COMPILE_TABLE.get(target_triple)
    if known is None:
        return EnvironmentBindings(target_triple=target_triple)
    return known


def runner_family(runner_os: str) -> str:
    """
    Map a CI runner image (ubuntu-22.04, macos-latest, ...) or a RUNNER_OS
    value (Linux, macOS, Windows) to an OS family.
    """
    lowered = runner_os.lower()
    if lowered.startswith(("ubuntu", "linux")):
        return LINUX
    if lowered.startswith(("macos", "darwin")):
        return MACOS
    if lowered.startswith("windows"):
        return WINDOWS
    return lowered


def current_runner_os() -> str:
    """The OS family of the machine shipwright is running on."""
    return runner_family(os.environ.get("RUNNER_OS") or platform.system())


def _privileged(argv: list[str]) -> list[str]:
    if hasattr(os, "geteuid") and os.geteuid() != 0:
        return ["sudo", *argv]
    return argv


def _missing_packages(
    packages: tuple[str, ...],
    runner: CommandRunner,
    timeout_seconds: Optional[float],
) -> list[str]:
    missing: list[str] = []
    for package in packages:
        probe = runner(["dpkg", "-s", package], timeout_seconds=timeout_seconds)
        if probe.ok:
            _logger.debug("Package already installed", extra={"package": package})
        else:
            missing.append(package)
    return missing


def provision(
    target_triple: str,
    *,
    runner_os: str,
    runner: CommandRunner = run_command,
    timeout_seconds: Optional[float] = None,
    dry_run: bool = False,
) -> EnvironmentBindings:
    """
    Prepare the runner to compile for `target_triple`.

    Installs only packages that are not already present, so repeated calls
    are no-ops.

    Args:
        target_triple: Rust target, e.g. aarch64-unknown-linux-gnu.
        runner_os: The runner image or OS family this lane executes on.
        runner: Command runner (swapped out in tests).
        timeout_seconds: Per-command limit.
        dry_run: Log what would be installed without installing it.

    Returns:
        The bindings to merge into the compiler environment. Empty bindings
        when the target is native or the runner can't host the toolchain.

    Raises:
        ProvisioningEnvironmentError: Package installation failed.
    """
    bindings = lookup(target_triple)
    if bindings.is_native:
        _logger.info("Native compilation, no provisioning", extra={"target": target_triple})
        return bindings

    family = runner_family(runner_os)
    if bindings.host_os is not None and family != bindings.host_os:
        mismatch = ProvisioningEnvironmentError(
            f"Cross toolchain for {target_triple} requires a {bindings.host_os} runner, "
            f"got {runner_os!r}; attempting a native build"
        )
        _logger.warning(
            "Provisioning skipped",
            extra={"target": target_triple, "runner_os": runner_os, "error": str(mismatch)},
        )
        return EnvironmentBindings(target_triple=target_triple)

    if dry_run:
        _logger.info(
            "Dry run, would install cross toolchain",
            extra={"target": target_triple, "packages": list(bindings.packages)},
        )
        return bindings

    with _package_manager_lock:
        _install_missing(target_triple, bindings.packages, runner, timeout_seconds)

    return bindings


def _install_missing(
    target_triple: str,
    packages: tuple[str, ...],
    runner: CommandRunner,
    timeout_seconds: Optional[float],
) -> None:
    missing = _missing_packages(packages, runner, timeout_seconds)
    if not missing:
        _logger.info("Cross toolchain already present", extra={"target": target_triple})
        return

    _logger.info(
        "Installing cross toolchain",
        extra={"target": target_triple, "packages": missing},
    )
    update = runner(_privileged(["apt-get", "update"]), timeout_seconds=timeout_seconds)
    if not update.ok:
        raise ProvisioningEnvironmentError(
            f"apt-get update failed for {target_triple}: {update.stderr.strip()}"
        )
    install = runner(
        _privileged(["apt-get", "install", "-y", *missing]),
        timeout_seconds=timeout_seconds,
    )
    if not install.ok:
        raise ProvisioningEnvironmentError(
            f"Installing {' '.join(missing)} for {target_triple} failed: {install.stderr.strip()}"
        )
