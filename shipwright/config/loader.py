# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Config loader: YAML on disk to a frozen ShipwrightConfig.

Two passes run over the parsed mapping:
  1. pydantic checks shape and types (unknown keys, ranges)
  2. the release section goes through the same validators the CLI flags do,
     and a custom `include` matrix is resolved once so a bad row fails here
     rather than when the first lane starts

Command-line flags can still override any of these values later; they are
validated again at that point.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from shipwright.config.exceptions import ConfigLoadError, ConfigValidationError
from shipwright.config.schema import ReleaseConfig, ShipwrightConfig
from shipwright.release.exceptions import RejectionError, ResolutionError
from shipwright.release.matrix.resolver import resolve_matrix
from shipwright.release.validation.validator import (
    validate_binary_name,
    validate_platform_name,
    validate_repository,
    validate_tool_args,
    validate_toolchain_version,
)


def _read_mapping(config_path: Path) -> dict[str, Any]:
    if not config_path.is_file():
        reason = "not found" if not config_path.exists() else "not a file"
        raise ConfigLoadError(f"Config file {reason}: {config_path}")

    try:
        parsed = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except OSError as err:
        raise ConfigLoadError(f"Cannot read config file {config_path}: {err}") from err
    except yaml.YAMLError as err:
        raise ConfigLoadError(f"Invalid YAML in {config_path}: {err}") from err

    if not isinstance(parsed, dict):
        raise ConfigLoadError(
            f"Config file must contain a YAML mapping, got {type(parsed).__name__}"
        )
    return parsed


def check_release_section(release: ReleaseConfig, config_path: Path) -> None:
    """
    Run release values through the input validators.

    Raises:
        ConfigValidationError: naming the first offending `release.*` key.
    """
    checks = (
        ("binary_name", validate_binary_name),
        ("repository", validate_repository),
        ("toolchain_version", validate_toolchain_version),
        ("tool_args", validate_tool_args),
    )
    for name, validate in checks:
        value = getattr(release, name)
        if value is None:
            continue
        try:
            validate(value)
        except RejectionError as err:
            raise ConfigValidationError(config_path, str(err), field=f"release.{name}") from err

    for index, platform_id in enumerate(release.exclude):
        try:
            validate_platform_name(platform_id)
        except RejectionError as err:
            raise ConfigValidationError(config_path, str(err), field=f"release.exclude[{index}]") from err

    # Exclusions are left out: a flag may replace the include list, and an
    # exclusion that empties this one says nothing about that one.
    if release.include is not None:
        try:
            resolve_matrix(release.include)
        except (ResolutionError, RejectionError) as err:
            raise ConfigValidationError(config_path, str(err), field="release.include") from err


def load_config(config_path: Path) -> ShipwrightConfig:
    """
    Load and validate a config file.

    Raises:
        ConfigLoadError: File I/O or YAML parse failures.
        ConfigValidationError: Schema violations or release values that
            would be rejected at run time.
    """
    raw_data = _read_mapping(config_path)

    try:
        config = ShipwrightConfig.model_validate(raw_data)
    except ValidationError as err:
        raise ConfigValidationError(config_path, str(err)) from err

    check_release_section(config.release, config_path)
    return config
