# pylint: disable=missing-docstring,redefined-outer-name
from unittest.mock import MagicMock

import pymongo.errors
import pytest

from shardchurn.capability import (
    ServerCapability,
    detect_capability,
    get_shard_names,
    parse_version,
    total_data_size,
)
from shardchurn.config import ONE_TIB
from shardchurn.errors import CapabilityError, ShardingError


@pytest.mark.parametrize(
    "version, major, minor, pipeline",
    [
        ("4.4.10", 4, 4, True),
        ("5.0", 5, 0, True),
        ("7.0.2-rc1", 7, 0, True),
        ("8.1.0", 8, 1, True),
        ("4.2.24", 4, 2, False),
        ("4.6.0", 4, 6, False),
        ("3.6.23", 3, 6, False),
    ],
)
def test_parse_version(version, major, minor, pipeline):
    capability = parse_version(version)
    assert (capability.major, capability.minor) == (major, minor)
    assert capability.can_use_pipeline_updates is pipeline


@pytest.mark.parametrize("version", ["", "seven", "7", "v7.0", None])
def test_parse_version_malformed(version):
    with pytest.raises(CapabilityError):
        parse_version(version)


def test_derived_flags():
    assert not ServerCapability(4, 4).can_timeseries
    assert ServerCapability(5, 0).can_timeseries


def test_detect_capability():
    db = MagicMock()
    db.command.return_value = {"version": "6.0.14", "ok": 1}

    assert detect_capability(db) == ServerCapability(6, 0)
    db.command.assert_called_once_with("buildInfo")


def test_detect_capability_unreachable():
    db = MagicMock()
    db.command.side_effect = pymongo.errors.ServerSelectionTimeoutError("no servers")

    with pytest.raises(CapabilityError):
        detect_capability(db)


def test_get_shard_names():
    client = MagicMock()
    client.admin.command.return_value = {"shards": [{"_id": "rs0"}, {"_id": "rs1"}], "ok": 1}

    assert get_shard_names(client) == ["rs0", "rs1"]
    client.admin.command.assert_called_once_with("listShards")


def test_get_shard_names_failure():
    client = MagicMock()
    client.admin.command.side_effect = pymongo.errors.OperationFailure("no such command: listShards")

    with pytest.raises(ShardingError):
        get_shard_names(client)


def test_total_data_size():
    assert total_data_size(["rs0", "rs1", "rs2"]) == 3 * ONE_TIB

    with pytest.raises(ShardingError):
        total_data_size([])
