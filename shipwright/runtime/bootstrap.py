# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Runtime bootstrap for shipwright.

The bootstrap sequence is:
  1. Refuse to run on an interpreter older than the pre-flight minimum
  2. Apply the configured log level to every shipwright logger
  3. Mask any credentials present in the environment
  4. Log startup info (to the configured log file as well, if any)

Every CLI command that loads a config goes through this first.
"""

from pathlib import Path

from shipwright.config.schema import GlobalConfig
from shipwright.logging.logger import get_logger, set_log_level
from shipwright.release.environment.validator import (
    ensure_python,
    host_info,
    register_environment_secrets,
)


def bootstrap(config: GlobalConfig) -> None:
    """
    Put the process into a known state before any release work.

    Args:
        config: The validated global configuration.

    Raises:
        PreflightError: The interpreter is too old.
    """
    ensure_python()
    set_log_level(config.log_level)
    register_environment_secrets()

    log_file = Path(config.log_file) if config.log_file is not None else None
    logger = get_logger("shipwright.runtime", log_level=config.log_level, log_file=log_file)
    logger.info(
        "shipwright bootstrap complete",
        extra={"project_name": config.project_name, **host_info()},
    )
