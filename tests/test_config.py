"""Tests for Config."""

import pytest

from resultsink import Config, DEFAULT_STATE_DB
from resultsink.errors import ConfigurationError


def test_defaults():
    config = Config.from_env({})
    assert config.parent_id == ""
    assert config.retry_store == "gs:"
    assert config.state_db == DEFAULT_STATE_DB
    assert config.request_timeout == 60.0
    assert config.enable_drive_subfolders is False


def test_from_env():
    config = Config.from_env({
        "CREDENTIALS_FILE": "key.json",
        "PARENT_ID": "root",
        "ENABLE_DRIVE_SUBFOLDERS": "TRUE",
        "IS_TEAM_DRIVE": "yes",
        "RETRY_BUCKET_UPLOADS": "up",
        "REQUEST_TIMEOUT": "12.5",
        "DATASET_ID": "",
    })
    assert config.credentials_file == "key.json"
    assert config.parent_id == "root"
    assert config.enable_drive_subfolders is True
    assert config.is_team_drive is False
    assert config.retry_bucket_uploads == "up"
    assert config.request_timeout == 12.5
    assert config.dataset_id == ""


def test_bad_number():
    with pytest.raises(ConfigurationError, match="REQUEST_TIMEOUT"):
        Config.from_env({"REQUEST_TIMEOUT": "soon"})


def test_require():
    config = Config(parent_id="root")
    config.require("parent_id")
    assert config.missing("parent_id", "table_id", "dataset_id") == ["table_id", "dataset_id"]
    with pytest.raises(ConfigurationError, match="TABLE_ID, DATASET_ID"):
        config.require("table_id", "dataset_id")
