# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release orchestration: one lane per matrix row, then the checksum barrier.

    resolve ─┬─ lane(linux-x86_64): provision → build → package ─┐
             ├─ lane(mac-arm64):    provision → build → package ─┼─ install scripts → checksums
             └─ ...                                             ─┘

Lanes run on a thread pool and share nothing but the output directory,
where every row writes distinct file names. Raw build outputs go to a
`build/` subdirectory so only packaged assets sit at the top level.

A failed lane doesn't stop its siblings and doesn't block the barrier:
checksums cover whatever assets exist. A cancelled lane does block it.
If anything was cancelled no checksums.txt is written, because a partial
checksum file would look like a complete release.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from shipwright.logging.logger import get_logger
from shipwright.release.build.executor import BUILD_SUBDIR, BuildArtifact, build_binary
from shipwright.release.checksums.integrity import ChecksumManifest, create_checksums
from shipwright.release.cross.provisioner import (
    EnvironmentBindings,
    current_runner_os,
    provision,
)
from shipwright.release.exceptions import (
    ArtifactNotFoundError,
    BuildError,
    PackagingError,
    ProvisioningEnvironmentError,
)
from shipwright.release.install.templater import InstallVariables, generate_install_script
from shipwright.release.manifests.manifest import PackageOptions
from shipwright.release.matrix.resolver import BuildMatrix, PlatformSpec
from shipwright.release.packaging.packager import Package, package_artifact
from shipwright.release.validation.validator import ValidatedString, binary_ext_for
from shipwright.utils.command import CommandRunner, run_command
from shipwright.utils.paths import ensure_directory

_logger: logging.Logger = get_logger(__name__)


class LaneStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ReleaseContext:
    """
    Everything a release run needs, passed explicitly to every lane.

    The counters are written only by the thread running `run_release`,
    after each lane's future completes.
    """

    binary_name: ValidatedString
    version: ValidatedString
    tool_args: ValidatedString
    output_dir: Path
    project_dir: Path = Path(".")
    repository: Optional[ValidatedString] = None
    toolchain_version: Optional[ValidatedString] = None
    options: PackageOptions = field(default_factory=PackageOptions)
    runner_os: str = field(default_factory=current_runner_os)
    max_workers: int = 4
    timeout_seconds: Optional[float] = None
    generate_install_scripts: bool = True
    fail_fast: bool = False
    dry_run: bool = False
    license_search_root: Optional[Path] = None
    runner: CommandRunner = run_command
    cancel_event: threading.Event = field(default_factory=threading.Event)
    built: int = 0
    packaged: int = 0
    failed: int = 0

    @property
    def build_dir(self) -> Path:
        return self.output_dir / BUILD_SUBDIR

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()


@dataclass(frozen=True)
class LaneResult:
    platform_id: str
    status: LaneStatus
    artifact: Optional[BuildArtifact] = None
    package: Optional[Package] = None
    error: Optional[str] = None
    degraded: bool = False


@dataclass(frozen=True)
class ReleaseResult:
    lanes: list[LaneResult]
    checksums: Optional[ChecksumManifest] = None
    install_scripts: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def _with_status(self, status: LaneStatus) -> list[LaneResult]:
        return [lane for lane in self.lanes if lane.status is status]

    @property
    def succeeded_lanes(self) -> list[LaneResult]:
        return self._with_status(LaneStatus.SUCCEEDED)

    @property
    def failed_lanes(self) -> list[LaneResult]:
        return self._with_status(LaneStatus.FAILED)

    @property
    def cancelled_lanes(self) -> list[LaneResult]:
        return self._with_status(LaneStatus.CANCELLED)

    @property
    def succeeded(self) -> bool:
        return bool(self.lanes) and len(self.succeeded_lanes) == len(self.lanes)

    @property
    def has_warnings(self) -> bool:
        checksum_failures = self.checksums is not None and self.checksums.failed_count > 0
        return bool(self.warnings) or checksum_failures


def _cancelled(context: ReleaseContext, platform_id: str, step: str) -> Optional[LaneResult]:
    if context.cancelled:
        _logger.warning("Lane cancelled", extra={"platform": platform_id, "before_step": step})
        return LaneResult(platform_id=platform_id, status=LaneStatus.CANCELLED)
    return None


def run_lane(context: ReleaseContext, spec: PlatformSpec) -> LaneResult:
    """
    provision → build → package for one matrix row.

    Lane-level errors are captured in the result; a cancellation request is
    honoured between steps.
    """
    platform_id = spec.platform_id.value

    stopped = _cancelled(context, platform_id, "provision")
    if stopped is not None:
        return stopped

    degraded = False
    try:
        bindings = provision(
            spec.target_triple,
            runner_os=context.runner_os,
            runner=context.runner,
            timeout_seconds=context.timeout_seconds,
            dry_run=context.dry_run,
        )
    except ProvisioningEnvironmentError as err:
        _logger.warning(
            "Cross toolchain unavailable, attempting native build",
            extra={"platform": platform_id, "error": str(err)},
        )
        bindings = EnvironmentBindings(target_triple=spec.target_triple)
        degraded = True

    stopped = _cancelled(context, platform_id, "build")
    if stopped is not None:
        return stopped

    try:
        artifact = build_binary(
            context.binary_name,
            spec,
            context.tool_args,
            context.build_dir,
            project_dir=context.project_dir,
            toolchain_version=context.toolchain_version,
            env=bindings.env,
            runner=context.runner,
            timeout_seconds=context.timeout_seconds,
        )
    except (BuildError, ArtifactNotFoundError, OSError) as err:
        _logger.error("Lane failed at build", extra={"platform": platform_id, "error": str(err)})
        return LaneResult(platform_id=platform_id, status=LaneStatus.FAILED, error=str(err), degraded=degraded)

    stopped = _cancelled(context, platform_id, "package")
    if stopped is not None:
        return LaneResult(platform_id=platform_id, status=LaneStatus.CANCELLED, artifact=artifact)

    try:
        package = package_artifact(
            artifact,
            context.version,
            context.output_dir,
            context.options,
            license_search_root=context.license_search_root or context.project_dir,
        )
    except (PackagingError, OSError) as err:
        _logger.error("Lane failed at packaging", extra={"platform": platform_id, "error": str(err)})
        return LaneResult(
            platform_id=platform_id,
            status=LaneStatus.FAILED,
            artifact=artifact,
            error=str(err),
            degraded=degraded,
        )

    return LaneResult(
        platform_id=platform_id,
        status=LaneStatus.SUCCEEDED,
        artifact=artifact,
        package=package,
        degraded=degraded,
    )


def _install_scripts(context: ReleaseContext, lanes: list[LaneResult], matrix: BuildMatrix) -> list[Path]:
    if not context.generate_install_scripts:
        return []
    if context.repository is None:
        _logger.info("No repository configured, skipping install scripts")
        return []
    if not context.options.create_archive:
        # The scripts download the archive asset.
        _logger.info("Archives disabled, skipping install scripts")
        return []

    scripts: list[Path] = []
    for lane in lanes:
        if lane.status is not LaneStatus.SUCCEEDED:
            continue
        spec = matrix.get(lane.platform_id)
        assert spec is not None
        variables = InstallVariables(
            binary_name=context.binary_name,
            platform=spec.platform_id,
            version=context.version,
            repo=context.repository,
            binary_ext=binary_ext_for(spec.platform_id),
        )
        scripts.append(generate_install_script(variables, context.output_dir))
    return scripts


def _record(context: ReleaseContext, lane: LaneResult) -> None:
    if lane.artifact is not None:
        context.built += 1
    if lane.status is LaneStatus.SUCCEEDED:
        context.packaged += 1
    elif lane.status is LaneStatus.FAILED:
        context.failed += 1
        if context.fail_fast and not context.cancelled:
            _logger.warning(
                "Cancelling remaining lanes after failure",
                extra={"platform": lane.platform_id},
            )
            context.cancel()

    _logger.info(
        "Lane finished",
        extra={"platform": lane.platform_id, "status": lane.status.value},
    )


def run_release(context: ReleaseContext, matrix: BuildMatrix) -> ReleaseResult:
    """
    Run every lane of `matrix`, then install scripts and checksums.

    Args:
        context: Validated release inputs and run settings.
        matrix: Resolved build matrix.

    Returns:
        ReleaseResult with one LaneResult per row, in matrix order.
    """
    ensure_directory(context.output_dir)
    _logger.info(
        "Starting release",
        extra={
            "binary_name": context.binary_name.value,
            "version": context.version.value,
            "platforms": matrix.platform_ids,
            "max_workers": context.max_workers,
        },
    )

    by_platform: dict[str, LaneResult] = {}
    with ThreadPoolExecutor(max_workers=context.max_workers, thread_name_prefix="lane") as pool:
        futures = {pool.submit(run_lane, context, spec): spec for spec in matrix}
        try:
            for future in as_completed(futures):
                lane = future.result()
                by_platform[futures[future].platform_id.value] = lane
                _record(context, lane)
        except KeyboardInterrupt:
            _logger.warning("Interrupted, cancelling remaining lanes")
            context.cancel()
            raise

    lanes = [by_platform[pid] for pid in matrix.platform_ids]
    warnings = [f"{lane.platform_id}: built without its cross toolchain" for lane in lanes if lane.degraded]

    if any(lane.status is LaneStatus.CANCELLED for lane in lanes):
        _logger.warning(
            "Release cancelled, checksums not generated",
            extra={"cancelled": [lane.platform_id for lane in lanes if lane.status is LaneStatus.CANCELLED]},
        )
        return ReleaseResult(lanes=lanes, warnings=warnings)

    install_scripts = _install_scripts(context, lanes, matrix)
    checksums = create_checksums(context.output_dir)
    if checksums.failed_count:
        warnings.append(f"{checksums.failed_count} file(s) could not be checksummed")

    _logger.info(
        "Release finished",
        extra={
            "built": context.built,
            "packaged": context.packaged,
            "failed": context.failed,
            "checksummed": checksums.processed_count,
        },
    )
    return ReleaseResult(
        lanes=lanes,
        checksums=checksums,
        install_scripts=install_scripts,
        warnings=warnings,
    )
