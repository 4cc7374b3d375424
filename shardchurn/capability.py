import logging
import re
from dataclasses import dataclass

import pymongo.errors
from pymongo import MongoClient
from pymongo.database import Database

from shardchurn import config
from shardchurn.errors import CapabilityError, ShardingError

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"^\s*(\d+)\.(\d+)")


@dataclass(frozen=True)
class ServerCapability:
    """Major/minor server version and the write strategies it allows."""

    major: int
    minor: int

    @property
    def can_use_pipeline_updates(self) -> bool:
        # $sampleRate and pipeline updates: 4.4 and 5.0+, but not 4.5-4.9 dev builds.
        return self.major >= 5 or (self.major == 4 and self.minor == 4)

    @property
    def can_timeseries(self) -> bool:
        return self.major >= 5

    def __str__(self):
        return f"{self.major}.{self.minor}"


def parse_version(version: str) -> ServerCapability:
    """Parse the leading ``major.minor`` of a server version string."""
    match = _VERSION_RE.match(version or "")
    if not match:
        raise CapabilityError(f"failed to parse version {version!r}")

    return ServerCapability(int(match.group(1)), int(match.group(2)))


def detect_capability(db: Database) -> ServerCapability:
    """Query ``buildInfo`` once. Any failure is fatal."""
    try:
        info = db.command("buildInfo")
    except pymongo.errors.PyMongoError as e:
        raise CapabilityError(f"failed to get server version: {e}") from e

    capability = parse_version(info.get("version", ""))
    logger.info(
        "Server version %s (pipeline updates: %s, timeseries: %s)",
        capability,
        capability.can_use_pipeline_updates,
        capability.can_timeseries,
    )
    return capability


def get_shard_names(client: MongoClient) -> list:
    """Return the _id of every shard from ``listShards``."""
    try:
        res = client.admin.command("listShards")
    except pymongo.errors.PyMongoError as e:
        raise ShardingError(f"failed to list shards: {e}") from e

    return [shard["_id"] for shard in res.get("shards", [])]


def total_data_size(shard_names: list) -> int:
    """One TiB of target data per shard. Zero shards is fatal."""
    size = config.ONE_TIB * len(shard_names)
    if size == 0:
        raise ShardingError("Huh?? 0 shards??")

    return size
