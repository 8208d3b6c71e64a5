# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Type-safe configuration schemas for shipwright.

Each config section is a frozen pydantic model:
  - frozen=True: immutability after construction
  - extra="forbid": unknown fields cause immediate failure
  - validate_default=True: even defaults get type-checked

Config values here are still raw strings. Anything that ends up on a
command line or inside a generated script goes through the input validator
before use; the schema only guarantees shape and ranges.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class GlobalConfig(BaseModel):
    """Cross-cutting settings: schema version and observability."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    config_version: str = Field(
        description="Schema version for compatibility tracking, e.g. '1.0.0'"
    )
    project_name: str = Field(
        default="shipwright", description="Human-readable project identifier"
    )
    log_level: str = Field(
        default="INFO",
        description="One of DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional path for file-based log output",
    )


class PackagingConfig(BaseModel):
    """Which optional outputs the packager produces for every platform."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    create_standalone: bool = Field(default=True, description="Copy the raw binary next to the archive")
    create_archive: bool = Field(default=True, description="Produce a tar.gz / zip archive")
    include_readme: bool = Field(default=True, description="Add a generated README.md to the archive")
    include_license: bool = Field(default=True, description="Add the project LICENSE file if one is found")


class ReleaseConfig(BaseModel):
    """
    One release event: what to build, for which platforms, and where the
    assets go. Every field can be overridden from the command line.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    binary_name: Optional[str] = Field(default=None, description="Cargo binary target to build")
    repository: Optional[str] = Field(default=None, description="owner/repo used in install scripts")
    toolchain_version: str = Field(default="stable", description="stable, beta, nightly or a version number")
    tool_args: str = Field(default="--release", description="Extra arguments for cargo build")
    output_dir: str = Field(default="release", description="Directory that collects release assets")
    project_dir: str = Field(default=".", description="Cargo project root")
    max_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Number of platform lanes built concurrently",
    )
    timeout_seconds: int = Field(
        default=1800,
        ge=1,
        description="Per external command timeout (cargo, rustup, apt-get, archivers)",
    )
    include: Optional[Union[str, list[dict[str, Any]]]] = Field(
        default=None,
        description="Custom matrix: a JSON array string or a list of mappings",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Platform ids removed from the matrix",
    )
    packaging: PackagingConfig = Field(default_factory=PackagingConfig)
    generate_install_scripts: bool = Field(
        default=True, description="Render install-<platform> scripts for each lane"
    )
    enable_npm: bool = Field(
        default=False, description="Registry publishing is requested; NPM_TOKEN becomes mandatory"
    )


class ShipwrightConfig(BaseModel):
    """
    Top-level config container. A file may contain only `global:`; the
    release section then falls back to its defaults.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    global_config: GlobalConfig = Field(alias="global")
    release: ReleaseConfig = Field(default_factory=ReleaseConfig)
