# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for runtime bootstrap.
"""

import json
import logging
from pathlib import Path

import pytest

from shipwright.config.schema import GlobalConfig
from shipwright.logging.logger import redact
from shipwright.release.environment import validator
from shipwright.release.exceptions import PreflightError
from shipwright.runtime.bootstrap import bootstrap


@pytest.fixture(autouse=True)
def _reset_runtime_logger() -> None:
    yield  # type: ignore[misc]
    logger = logging.getLogger("shipwright.runtime")
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()


def test_old_interpreter_stops_bootstrap(monkeypatch):
    monkeypatch.setattr(validator, "MIN_PYTHON_MINOR", 99)
    with pytest.raises(PreflightError, match="does NOT meet minimum 3.99"):
        bootstrap(GlobalConfig(config_version="1.0.0"))


def test_bootstrap_masks_environment_credentials(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_bootstrap_secret")
    bootstrap(GlobalConfig(config_version="1.0.0"))
    assert redact("auth ghp_bootstrap_secret") == "auth ***"


def test_bootstrap_writes_host_details_to_log_file(tmp_path: Path):
    log_file = tmp_path / "logs" / "shipwright.log"
    bootstrap(GlobalConfig(config_version="1.0.0", project_name="demo", log_file=str(log_file)))

    entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    assert entry["msg"] == "shipwright bootstrap complete"
    assert entry["project_name"] == "demo"
    assert entry["python_version"] == validator.host_info()["python_version"]
