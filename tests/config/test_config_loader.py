# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the config loader.

We test:
  1. Valid YAML loads into a frozen, correct config object
  2. Missing required fields raise ConfigValidationError
  3. Unknown fields raise ConfigValidationError (extra="forbid")
  4. Broken YAML raises ConfigLoadError
  5. Loaded config is truly immutable
"""

import textwrap
from pathlib import Path

import pytest

from shipwright.config.exceptions import ConfigLoadError, ConfigValidationError
from shipwright.config.loader import load_config


class TestLoadValidConfig:
    def test_loads_minimal_valid_config(self, tmp_config_file: Path) -> None:
        config = load_config(tmp_config_file)
        assert config.global_config.project_name == "shipwright-test"
        assert config.global_config.config_version == "1.0.0"
        assert config.global_config.log_level == "DEBUG"

    def test_release_section_defaults(self, tmp_config_file: Path) -> None:
        release = load_config(tmp_config_file).release
        assert release.binary_name is None
        assert release.toolchain_version == "stable"
        assert release.tool_args == "--release"
        assert release.output_dir == "release"
        assert release.max_workers == 4
        assert release.include is None
        assert release.exclude == []
        assert release.packaging.create_archive is True
        assert release.enable_npm is False

    def test_loads_full_release_section(self, tmp_path: Path) -> None:
        content = textwrap.dedent("""\
            global:
              config_version: "1.0.0"
            release:
              binary_name: demo
              repository: owner/demo
              tool_args: "--release --locked"
              max_workers: 2
              exclude: [linux-arm64]
              include:
                - {target: x86_64-unknown-linux-gnu, os: ubuntu-latest, platform: linux-x86_64}
              packaging:
                create_standalone: false
        """)
        config_file = tmp_path / "full.yaml"
        config_file.write_text(content, encoding="utf-8")

        release = load_config(config_file).release
        assert release.binary_name == "demo"
        assert release.repository == "owner/demo"
        assert release.max_workers == 2
        assert release.exclude == ["linux-arm64"]
        assert isinstance(release.include, list)
        assert release.include[0]["platform"] == "linux-x86_64"
        assert release.packaging.create_standalone is False
        assert release.packaging.include_readme is True

    def test_include_may_be_a_json_string(self, tmp_path: Path) -> None:
        content = textwrap.dedent("""\
            global:
              config_version: "1.0.0"
            release:
              include: '[{"target": "aarch64-apple-darwin", "os": "macos-latest", "platform": "mac-arm64"}]'
        """)
        config_file = tmp_path / "json_include.yaml"
        config_file.write_text(content, encoding="utf-8")

        assert isinstance(load_config(config_file).release.include, str)


class TestLoadInvalidConfig:
    def test_missing_required_field_raises_validation_error(
        self, invalid_config_file: Path
    ) -> None:
        with pytest.raises(ConfigValidationError):
            load_config(invalid_config_file)

    def test_unknown_field_raises_validation_error(self, tmp_path: Path) -> None:
        content = textwrap.dedent("""\
            global:
              config_version: "1.0.0"
            release:
              binary_name: demo
              some_nonsense_field: true
        """)
        config_file = tmp_path / "unknown_field.yaml"
        config_file.write_text(content, encoding="utf-8")

        with pytest.raises(ConfigValidationError):
            load_config(config_file)

    def test_out_of_range_workers_raises_validation_error(self, tmp_path: Path) -> None:
        content = textwrap.dedent("""\
            global:
              config_version: "1.0.0"
            release:
              max_workers: 0
        """)
        config_file = tmp_path / "workers.yaml"
        config_file.write_text(content, encoding="utf-8")

        with pytest.raises(ConfigValidationError):
            load_config(config_file)

    @pytest.mark.parametrize(
        "release_yaml, field",
        [
            ("include: 'not json'", "release.include"),
            ("include: '[{\"target\": \"x86_64-unknown-linux-gnu\", \"os\": \"ubuntu-latest\"}]'", "release.include"),
            ("include: [{target: x86_64-unknown-linux-gnu, os: freebsd-13, platform: bsd}]", "release.include"),
            ("binary_name: 'demo; rm -rf /'", "release.binary_name"),
            ("repository: not-a-repo", "release.repository"),
            ("tool_args: '--release && curl evil'", "release.tool_args"),
            ("exclude: ['linux x86']", "release.exclude[0]"),
        ],
    )
    def test_release_values_are_checked_at_load_time(
        self, tmp_path: Path, release_yaml: str, field: str
    ) -> None:
        config_file = tmp_path / "release.yaml"
        config_file.write_text(
            f'global:\n  config_version: "1.0.0"\nrelease:\n  {release_yaml}\n', encoding="utf-8"
        )

        with pytest.raises(ConfigValidationError) as info:
            load_config(config_file)
        assert info.value.field == field
        assert field in str(info.value)

    def test_exclusions_that_empty_the_include_list_still_load(self, tmp_path: Path) -> None:
        content = textwrap.dedent("""\
            global:
              config_version: "1.0.0"
            release:
              include: [{target: x86_64-unknown-linux-gnu, os: ubuntu-latest, platform: linux-x86_64}]
              exclude: [linux-x86_64]
        """)
        config_file = tmp_path / "empty_after_exclude.yaml"
        config_file.write_text(content, encoding="utf-8")

        assert load_config(config_file).release.exclude == ["linux-x86_64"]

    def test_broken_yaml_raises_load_error(self, broken_yaml_file: Path) -> None:
        with pytest.raises(ConfigLoadError):
            load_config(broken_yaml_file)

    def test_non_mapping_yaml_raises_load_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError):
            load_config(config_file)

    def test_nonexistent_file_raises_load_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigLoadError):
            load_config(tmp_path / "does_not_exist.yaml")

    def test_directory_path_raises_load_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigLoadError):
            load_config(tmp_path)


class TestConfigImmutability:
    def test_cannot_mutate_frozen_config(self, tmp_config_file: Path) -> None:
        config = load_config(tmp_config_file)
        with pytest.raises(Exception):
            config.global_config.log_level = "ERROR"  # type: ignore[misc]

    def test_cannot_mutate_nested_packaging(self, tmp_config_file: Path) -> None:
        config = load_config(tmp_config_file)
        with pytest.raises(Exception):
            config.release.packaging.create_archive = False  # type: ignore[misc]
