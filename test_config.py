"""
Config and Logging Tests
========================

Usage:
    pytest test_config.py
"""

import json
import logging

import pytest

from geofence_partition import EngineConfig
from geofence_partition.logging import LogEvent, create_logger


def test_defaults():
    config = EngineConfig()

    assert config.fetch_workers == 8
    assert config.ready_timeout is None
    assert config.dimmed_opacity == 0.2
    assert (config.id_field, config.lat_field, config.long_field) == ("RecId", "Lat", "Long")
    assert config.logging_level == logging.INFO


def test_from_yaml(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text(
        "fetch_workers: 2\n"
        "ready_timeout: 5\n"
        "dimmed_opacity: 0.4\n"
        "lat_field: latitude\n"
        "log_level: debug\n"
    )

    config = EngineConfig.from_yaml(path)

    assert config.fetch_workers == 2
    assert config.ready_timeout == 5
    assert config.dimmed_opacity == 0.4
    assert config.lat_field == "latitude"
    assert config.long_field == "Long"
    assert config.logging_level == logging.DEBUG


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("")

    assert EngineConfig.from_yaml(path) == EngineConfig()


@pytest.mark.parametrize("overrides", [
    {"fetch_workers": 0},
    {"fetch_workers": 65},
    {"ready_timeout": 0},
    {"dimmed_opacity": 1.5},
    {"id_field": ""},
    {"log_level": "TRACE"},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValueError):
        EngineConfig(**overrides)


def test_unknown_keys_rejected():
    with pytest.raises(ValueError, match="Unknown config keys"):
        EngineConfig.from_dict({"fetch_worker": 4})


def test_structured_log_entry(caplog):
    logger = create_logger("test")

    with caplog.at_level(logging.INFO, logger="geofence_partition.test"):
        logger.info(
            event=LogEvent.PARTITION_CREATED,
            message="Partition 'West' created",
            metadata={'partition_id': "child-1"}
        )

    entry = json.loads(caplog.records[-1].getMessage())
    assert entry["event"] == "partition.created"
    assert entry["component"] == "test"
    assert entry["metadata"] == {"partition_id": "child-1"}
    assert "timestamp" in entry
