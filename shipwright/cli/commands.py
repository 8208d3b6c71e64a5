# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Subcommand handlers for the shipwright CLI.

Each function here corresponds to one CLI subcommand and returns an exit
code from shipwright.cli.exit_codes. Library errors are caught here, at the
boundary, and mapped:

    RejectionError, ResolutionError      → VALIDATION_ERROR
    ConfigError, PreflightError          → CONFIG_ERROR
    build / packaging / I/O failures     → RUNTIME_ERROR
    some platforms or files failed       → PARTIAL_SUCCESS

Diagnostics go through the structured logger. The only print() calls are
deliberate payloads other tools consume (matrix JSON, generated paths).
"""

import argparse
import logging
import os
from pathlib import Path
from typing import Any, Optional

from shipwright.cli.exit_codes import (
    CONFIG_ERROR,
    PARTIAL_SUCCESS,
    RUNTIME_ERROR,
    SUCCESS,
    USER_ERROR,
    VALIDATION_ERROR,
)
from shipwright.config.exceptions import ConfigError
from shipwright.config.loader import load_config
from shipwright.config.schema import ReleaseConfig, ShipwrightConfig
from shipwright.logging.logger import get_logger, set_log_level
from shipwright.release.build.executor import BUILD_SUBDIR
from shipwright.release.environment.validator import host_info, register_environment_secrets
from shipwright.release.exceptions import (
    ArtifactNotFoundError,
    BuildError,
    PackagingError,
    PreflightError,
    ProvisioningEnvironmentError,
    RejectionError,
    ResolutionError,
)
from shipwright.release.manifests.manifest import PackageOptions
from shipwright.release.matrix.resolver import MatrixResolution, extended_include_json, resolve_matrix
from shipwright.release.validation.validator import (
    ValidatedString,
    validate_binary_name,
    validate_platform_name,
    validate_relative_path,
    validate_repository,
    validate_tool_args,
    validate_toolchain_version,
    validate_version_tag,
)
from shipwright.runtime.bootstrap import bootstrap
from shipwright.utils.filesystem import atomic_write


def _load_and_bootstrap(
    args: argparse.Namespace,
    command_name: str,
) -> tuple[int, ShipwrightConfig | None, logging.Logger]:
    """
    The shared setup that every command needs: load config, run bootstrap,
    apply --log-level.

    Returns a tuple of (exit_code, config, logger). If exit_code is not SUCCESS,
    the caller should return it immediately.
    """
    logger = get_logger(f"shipwright.cli.{command_name}", log_level=args.log_level or "INFO")
    register_environment_secrets()

    config = None
    if args.config is not None:
        try:
            config = load_config(Path(args.config))
        except ConfigError as err:
            logger.error(
                "Configuration error",
                extra={"command": command_name, "error": str(err)},
            )
            return CONFIG_ERROR, None, logger

    if config is not None:
        try:
            bootstrap(config.global_config)
        except PreflightError as err:
            logger.error("Pre-flight failed", extra={"command": command_name, "error": str(err)})
            return CONFIG_ERROR, None, logger
    else:
        logger.debug(
            "No config provided, running with defaults",
            extra={"command": command_name},
        )

    if args.log_level is not None:
        set_log_level(args.log_level)

    return SUCCESS, config, logger


def _release_config(config: ShipwrightConfig | None) -> ReleaseConfig:
    return config.release if config is not None else ReleaseConfig()


def _setting(cli_value: Any, config_value: Any) -> Any:
    """Command-line value when given, otherwise the config (or its default)."""
    return cli_value if cli_value is not None else config_value


def _missing(logger: logging.Logger, command_name: str, **options: Optional[str]) -> bool:
    absent = [f"--{name.replace('_', '-')}" for name, value in options.items() if not value]
    if absent:
        logger.error("Missing required options", extra={"command": command_name, "missing": absent})
        return True
    return False


def _project_dir(raw: str) -> Path:
    """Relative project dirs must stay under the working directory."""
    if Path(raw).is_absolute():
        return Path(raw)
    return Path(validate_relative_path(raw, base_dir=Path.cwd()).value)


def _package_options(args: argparse.Namespace, release_cfg: ReleaseConfig) -> PackageOptions:
    packaging = release_cfg.packaging
    return PackageOptions(
        create_standalone=_setting(getattr(args, "create_standalone", None), packaging.create_standalone),
        create_archive=_setting(getattr(args, "create_archive", None), packaging.create_archive),
        include_readme=_setting(getattr(args, "include_readme", None), packaging.include_readme),
        include_license=_setting(getattr(args, "include_license", None), packaging.include_license),
    )


def _resolve_from_args(args: argparse.Namespace, release_cfg: ReleaseConfig) -> MatrixResolution:
    include: Any = args.include
    if include is None and args.platforms:
        ids = [item.strip() for item in args.platforms.split(",") if item.strip()]
        include = extended_include_json(*ids)
    if include is None:
        include = release_cfg.include
    exclude = args.exclude if args.exclude is not None else release_cfg.exclude
    return resolve_matrix(include, exclude)


def handle_validate(args: argparse.Namespace) -> int:
    """Validate whichever release inputs were given, all or nothing."""
    exit_code, config, logger = _load_and_bootstrap(args, "validate")
    if exit_code != SUCCESS:
        return exit_code

    release_cfg = _release_config(config)
    checks = [
        (validate_binary_name, _setting(args.binary_name, release_cfg.binary_name)),
        (validate_platform_name, args.platform),
        (validate_version_tag, args.version),
        (validate_repository, _setting(args.repository, release_cfg.repository)),
        (validate_tool_args, args.tool_args),
        (validate_toolchain_version, args.toolchain_version),
    ]
    supplied = [(check, value) for check, value in checks if value is not None]
    if not supplied:
        logger.error("Nothing to validate", extra={"command": "validate"})
        return USER_ERROR

    try:
        validated = [check(value) for check, value in supplied]
    except RejectionError as err:
        logger.error(
            "Input rejected",
            extra={"kind": err.kind, "value": err.value, "reason": err.reason},
        )
        return VALIDATION_ERROR

    logger.info(
        "All inputs validated",
        extra={"validated": {v.kind.name.lower(): v.value for v in validated}},
    )
    return SUCCESS


def handle_matrix(args: argparse.Namespace) -> int:
    """
    Resolve the build matrix and print it in CI form. Also appends
    `matrix=<json>` to $GITHUB_OUTPUT when running under GitHub Actions.
    """
    exit_code, config, logger = _load_and_bootstrap(args, "matrix")
    if exit_code != SUCCESS:
        return exit_code

    try:
        resolution = _resolve_from_args(args, _release_config(config))
    except (RejectionError, ResolutionError) as err:
        logger.error("Matrix resolution failed", extra={"error": str(err)})
        return VALIDATION_ERROR

    payload = resolution.matrix.to_actions_json()

    try:
        if args.output:
            atomic_write(Path(args.output), payload + "\n")
            logger.info("Matrix written", extra={"path": args.output})

        github_output = os.environ.get("GITHUB_OUTPUT")
        if github_output:
            with open(github_output, "a", encoding="utf-8") as fh:
                fh.write(f"matrix={payload}\n")
            logger.info("Matrix exported to GITHUB_OUTPUT")
    except OSError as err:
        logger.error("Cannot write matrix", extra={"error": str(err)})
        return RUNTIME_ERROR

    print(payload)
    return SUCCESS


def handle_build(args: argparse.Namespace) -> int:
    """Provision and build a single platform into <output_dir>/build."""
    exit_code, config, logger = _load_and_bootstrap(args, "build")
    if exit_code != SUCCESS:
        return exit_code

    from shipwright.release.build.executor import build_binary
    from shipwright.release.cross.provisioner import current_runner_os, provision
    from shipwright.release.matrix.resolver import platform_spec

    release_cfg = _release_config(config)
    binary_name = _setting(args.binary_name, release_cfg.binary_name)
    if _missing(logger, "build", binary_name=binary_name, platform=args.platform):
        return USER_ERROR

    try:
        name = validate_binary_name(binary_name)
        spec = platform_spec(validate_platform_name(args.platform).value)
        tool_args = validate_tool_args(_setting(args.tool_args, release_cfg.tool_args))
        toolchain = validate_toolchain_version(_setting(args.toolchain_version, release_cfg.toolchain_version))
        project_dir = _project_dir(_setting(args.project_dir, release_cfg.project_dir))
    except (RejectionError, ResolutionError) as err:
        logger.error("Invalid build inputs", extra={"error": str(err)})
        return VALIDATION_ERROR

    timeout = _setting(args.timeout_seconds, release_cfg.timeout_seconds)
    try:
        try:
            bindings = provision(
                spec.target_triple,
                runner_os=current_runner_os(),
                timeout_seconds=timeout,
                dry_run=args.dry_run,
            )
            env = bindings.env
        except ProvisioningEnvironmentError as err:
            logger.warning("Cross toolchain unavailable, attempting native build", extra={"error": str(err)})
            env = {}

        artifact = build_binary(
            name,
            spec,
            tool_args,
            Path(_setting(args.output_dir, release_cfg.output_dir)) / BUILD_SUBDIR,
            project_dir=project_dir,
            toolchain_version=toolchain,
            env=env,
            timeout_seconds=timeout,
        )
    except (BuildError, ArtifactNotFoundError, OSError) as err:
        logger.error("Build failed", extra={"platform": spec.platform_id.value, "error": str(err)})
        return RUNTIME_ERROR

    print(artifact.path)
    return SUCCESS


def handle_package(args: argparse.Namespace) -> int:
    """Package a binary that `build` already placed in the build directory."""
    exit_code, config, logger = _load_and_bootstrap(args, "package")
    if exit_code != SUCCESS:
        return exit_code

    from shipwright.release.build.executor import load_artifact
    from shipwright.release.matrix.resolver import platform_spec
    from shipwright.release.packaging.packager import package_artifact

    release_cfg = _release_config(config)
    binary_name = _setting(args.binary_name, release_cfg.binary_name)
    if _missing(logger, "package", binary_name=binary_name, version=args.version, platform=args.platform):
        return USER_ERROR

    try:
        name = validate_binary_name(binary_name)
        version = validate_version_tag(args.version)
        spec = platform_spec(validate_platform_name(args.platform).value)
        project_dir = _project_dir(_setting(args.project_dir, release_cfg.project_dir))
    except (RejectionError, ResolutionError) as err:
        logger.error("Invalid package inputs", extra={"error": str(err)})
        return VALIDATION_ERROR

    output_dir = Path(_setting(args.output_dir, release_cfg.output_dir))
    build_dir = Path(args.build_dir) if args.build_dir else output_dir / BUILD_SUBDIR
    try:
        artifact = load_artifact(name, spec, build_dir)
        package = package_artifact(
            artifact,
            version,
            output_dir,
            _package_options(args, release_cfg),
            license_search_root=project_dir,
        )
    except ArtifactNotFoundError as err:
        logger.error("Built binary not found", extra={"error": str(err)})
        return USER_ERROR
    except (PackagingError, OSError) as err:
        logger.error("Packaging failed", extra={"error": str(err)})
        return RUNTIME_ERROR

    for path in package.asset_paths:
        print(path)
    return SUCCESS


def _release_exit_code(result: Any, logger: logging.Logger) -> int:
    logger.info(
        "Release summary",
        extra={
            "lanes": {lane.platform_id: lane.status.value for lane in result.lanes},
            "install_scripts": [p.name for p in result.install_scripts],
            "checksummed": result.checksums.processed_count if result.checksums else 0,
            "warnings": result.warnings,
        },
    )
    if result.cancelled_lanes or not result.succeeded_lanes:
        return RUNTIME_ERROR
    if result.failed_lanes or result.has_warnings:
        return PARTIAL_SUCCESS
    return SUCCESS


def handle_release(args: argparse.Namespace) -> int:
    """Resolve the matrix, then build, package and checksum every platform."""
    exit_code, config, logger = _load_and_bootstrap(args, "release")
    if exit_code != SUCCESS:
        return exit_code

    from shipwright.release.environment.validator import ensure_environment
    from shipwright.release.orchestrator import ReleaseContext, run_release

    release_cfg = _release_config(config)
    binary_name = _setting(args.binary_name, release_cfg.binary_name)
    if _missing(logger, "release", binary_name=binary_name, version=args.version):
        return USER_ERROR

    repository_raw = _setting(args.repository, release_cfg.repository)
    try:
        repository: Optional[ValidatedString] = (
            validate_repository(repository_raw) if repository_raw else None
        )
        context = ReleaseContext(
            binary_name=validate_binary_name(binary_name),
            version=validate_version_tag(args.version),
            tool_args=validate_tool_args(_setting(args.tool_args, release_cfg.tool_args)),
            toolchain_version=validate_toolchain_version(
                _setting(args.toolchain_version, release_cfg.toolchain_version)
            ),
            repository=repository,
            output_dir=Path(_setting(args.output_dir, release_cfg.output_dir)),
            project_dir=_project_dir(_setting(args.project_dir, release_cfg.project_dir)),
            options=_package_options(args, release_cfg),
            max_workers=_setting(args.max_workers, release_cfg.max_workers),
            timeout_seconds=_setting(args.timeout_seconds, release_cfg.timeout_seconds),
            generate_install_scripts=_setting(
                args.generate_install_scripts, release_cfg.generate_install_scripts
            ),
            fail_fast=args.fail_fast,
            dry_run=args.dry_run,
        )
        resolution = _resolve_from_args(args, release_cfg)
    except (RejectionError, ResolutionError) as err:
        logger.error("Invalid release inputs", extra={"error": str(err)})
        return VALIDATION_ERROR

    for warning in resolution.warnings:
        logger.warning("Matrix warning", extra={"warning": warning})

    try:
        ensure_environment(
            context.output_dir,
            enable_npm=bool(_setting(args.enable_npm, release_cfg.enable_npm)),
            require_tools=not args.skip_preflight,
        )
    except PreflightError as err:
        logger.error("Pre-flight checks failed", extra={"error": str(err)})
        return CONFIG_ERROR

    try:
        result = run_release(context, resolution.matrix)
    except KeyboardInterrupt:
        logger.error("Release interrupted", extra={"command": "release"})
        return RUNTIME_ERROR
    except Exception as err:
        logger.error("Release failed", extra={"error": str(err)}, exc_info=True)
        return RUNTIME_ERROR

    return _release_exit_code(result, logger)


def handle_checksums(args: argparse.Namespace) -> int:
    """Write checksums.txt and its verify script for a release directory."""
    exit_code, config, logger = _load_and_bootstrap(args, "checksums")
    if exit_code != SUCCESS:
        return exit_code

    from shipwright.release.checksums.integrity import create_checksums, probe_hasher

    output_dir = Path(_setting(args.output_dir, _release_config(config).output_dir))
    try:
        hasher = probe_hasher(prefer_external=args.external_hasher)
        manifest = create_checksums(output_dir, hasher=hasher)
    except FileNotFoundError as err:
        logger.error("Release directory not found", extra={"error": str(err)})
        return USER_ERROR
    except (RuntimeError, OSError) as err:
        logger.error("Checksum generation failed", extra={"error": str(err)})
        return RUNTIME_ERROR

    if manifest.failed_count and not manifest.processed_count:
        logger.error("No file could be checksummed", extra={"failed_count": manifest.failed_count})
        return RUNTIME_ERROR
    if manifest.failed_count:
        return PARTIAL_SUCCESS
    return SUCCESS


def handle_verify(args: argparse.Namespace) -> int:
    """Re-hash release assets and compare against checksums.txt."""
    exit_code, config, logger = _load_and_bootstrap(args, "verify")
    if exit_code != SUCCESS:
        return exit_code

    from shipwright.release.checksums.integrity import CHECKSUM_FILENAME, verify_checksums

    if args.checksum_file:
        checksum_path = Path(args.checksum_file)
    else:
        checksum_path = Path(_setting(args.output_dir, _release_config(config).output_dir)) / CHECKSUM_FILENAME

    logger.info("Starting verification", extra={"checksum_file": str(checksum_path)})
    result = verify_checksums(checksum_path)
    if not result.is_valid:
        logger.error(
            "Integrity check failed",
            extra={
                "mismatches": result.mismatches,
                "missing": result.missing_files,
                "errors": result.errors,
            },
        )
        return VALIDATION_ERROR

    logger.info("Integrity check passed", extra={"checked_count": result.checked_count})
    return SUCCESS


def handle_install_script(args: argparse.Namespace) -> int:
    """Render install-<platform>.sh / .ps1 for one platform."""
    exit_code, config, logger = _load_and_bootstrap(args, "install-script")
    if exit_code != SUCCESS:
        return exit_code

    from shipwright.release.install.templater import InstallVariables, generate_install_script
    from shipwright.release.validation.validator import binary_ext_for

    release_cfg = _release_config(config)
    binary_name = _setting(args.binary_name, release_cfg.binary_name)
    repository = _setting(args.repository, release_cfg.repository)
    if _missing(
        logger,
        "install-script",
        binary_name=binary_name,
        platform=args.platform,
        version=args.version,
        repository=repository,
    ):
        return USER_ERROR

    try:
        platform = validate_platform_name(args.platform)
        variables = InstallVariables(
            binary_name=validate_binary_name(binary_name),
            platform=platform,
            version=validate_version_tag(args.version),
            repo=validate_repository(repository),
            binary_ext=binary_ext_for(platform),
        )
    except RejectionError as err:
        logger.error("Invalid install-script inputs", extra={"error": str(err)})
        return VALIDATION_ERROR

    output_dir = Path(_setting(args.output_dir, release_cfg.output_dir))
    template_dir = Path(args.template_dir) if args.template_dir else None
    try:
        path = generate_install_script(variables, output_dir, template_dir=template_dir)
    except FileNotFoundError as err:
        logger.error("Template missing", extra={"error": str(err)})
        return USER_ERROR
    except OSError as err:
        logger.error("Cannot write install script", extra={"error": str(err)})
        return RUNTIME_ERROR

    print(path)
    return SUCCESS


def handle_info(args: argparse.Namespace) -> int:
    """Display version, host and backend information."""
    logger = get_logger("shipwright.cli.info", log_level=args.log_level or "INFO")

    import shutil

    from shipwright import __version__
    from shipwright.release.checksums.integrity import available_hashers
    from shipwright.release.cross.provisioner import current_runner_os
    from shipwright.release.packaging.archiver import available_archivers

    system = host_info()

    logger.info(
        "System information",
        extra={
            "shipwright_version": __version__,
            "python_version": system["python_version"],
            "platform": system["platform"],
            "architecture": system["architecture"],
            "runner_os": current_runner_os(),
            "archivers": available_archivers(),
            "hashers": available_hashers(),
            "cargo": shutil.which("cargo"),
            "rustup": shutil.which("rustup"),
            "config": args.config,
        },
    )
    return SUCCESS
