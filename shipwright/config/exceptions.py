# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Errors raised while turning a config file into a ShipwrightConfig.

The CLI maps every ConfigError to CONFIG_ERROR; nothing past the loader
ever sees a half-valid config.
"""

from pathlib import Path
from typing import Optional


class ConfigError(Exception):
    """Base for all configuration errors."""


class ConfigLoadError(ConfigError):
    """The file is missing, unreadable, or not a YAML mapping."""


class ConfigValidationError(ConfigError):
    """
    The YAML parsed but the release it describes can't run: a schema
    violation, or a release value the input validator or matrix resolver
    rejects. `field` names the offending dotted key when it is known.
    """

    def __init__(self, config_path: Path, detail: str, field: Optional[str] = None) -> None:
        self.config_path = config_path
        self.field = field
        where = f" ({field})" if field else ""
        super().__init__(f"Config validation failed for {config_path}{where}:\n{detail}")
