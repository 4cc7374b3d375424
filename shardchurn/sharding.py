import logging

import pymongo.errors
from pymongo import MongoClient
from pymongo.write_concern import WriteConcern

from shardchurn.capability import get_shard_names
from shardchurn.documents import CollectionConfig, IdMode
from shardchurn.errors import ShardingError

logger = logging.getLogger(__name__)

NAMESPACE_EXISTS = 48


def cluster_is_sharded(client: MongoClient) -> bool:
    """True when ``listShards`` works, i.e. the client talks to a mongos."""
    try:
        client.admin.command("listShards")
    except pymongo.errors.OperationFailure as e:
        logger.info("Sharding commands failed, not a sharded cluster? (%s)", e)
        return False

    return True


def stop_balancer(client: MongoClient):
    client.admin.command("balancerStop")
    logger.info("Balancer stopped")


def shard_key_for(id_mode: IdMode) -> dict:
    """Ranged _id for custom float ids, hashed _id for server-assigned ones."""
    return {"_id": 1} if id_mode == IdMode.CUSTOM else {"_id": "hashed"}


def shard_collection(client: MongoClient, db_name: str, coll_config: CollectionConfig):
    """Enable sharding on the database and shard the collection."""
    admin = client.admin
    try:
        admin.command("enableSharding", db_name)
    except pymongo.errors.OperationFailure as e:
        # Database may already be sharded
        if "already enabled" not in str(e).lower():
            raise

    key = shard_key_for(coll_config.id_mode)
    if key["_id"] == "hashed":
        client[db_name][coll_config.name].create_index([("_id", "hashed")])

    namespace = f"{db_name}.{coll_config.name}"
    try:
        admin.command("shardCollection", namespace, key=key)
        logger.info("Sharded: %s on %s", namespace, key)
    except pymongo.errors.OperationFailure as e:
        # Collection may already be sharded
        if "already sharded" not in str(e).lower():
            raise


def split_points(shard_count: int, low: float, high: float) -> list:
    """The ``shard_count - 1`` evenly spaced split boundaries of [low, high)."""
    return [low + (high - low) * (i / shard_count) for i in range(1, shard_count)]


def chunk_midpoints(shard_count: int, low: float, high: float) -> list:
    """A value inside each of the ``shard_count`` chunks, in shard order."""
    step = (high - low) / shard_count
    return [low + step * (i + 0.5) for i in range(shard_count)]


def split_collection(client: MongoClient, ns: str, shard_key_field: str, low: float, high: float):
    """Pre-split a ranged collection into one chunk per shard and spread them.

    Split and move failures are logged and skipped, the layout is best effort.
    """
    db_name, _, coll_name = ns.partition(".")
    if not db_name or not coll_name:
        raise ShardingError(f"Invalid namespace: {ns}")

    coll_info = client["config"]["collections"].find_one({"_id": ns})
    if not coll_info:
        raise ShardingError(f"Collection {ns} is not sharded (no entry in config.collections).")

    key = coll_info["key"]
    if list(key) != [shard_key_field]:
        raise ShardingError(f"A single-field shard key is required. Given key: {dict(key)}")
    if key[shard_key_field] == "hashed":
        raise ShardingError("Hashed is auto-split, even with the balancer off.")
    if key[shard_key_field] != 1:
        raise ShardingError(f"Shard key has unknown value. Given key: {dict(key)}")

    shard_names = get_shard_names(client)
    if not shard_names:
        raise ShardingError("No shards to split across.")

    logger.info(
        "Using namespace %s with %d shards. (range: %s - %s)",
        ns,
        len(shard_names),
        low,
        high,
    )

    admin = client.admin
    for boundary in split_points(len(shard_names), low, high):
        try:
            admin.command("split", ns, middle={shard_key_field: boundary})
            logger.info("Split at %s succeeded.", boundary)
        except pymongo.errors.OperationFailure as e:
            logger.warning("split at %s failed: %s", boundary, e)

    majority = WriteConcern(w="majority", j=True).document
    for shard, mid in zip(shard_names, chunk_midpoints(len(shard_names), low, high)):
        try:
            admin.command(
                "moveChunk",
                ns,
                find={shard_key_field: mid},
                to=shard,
                _waitForDelete=True,
                _secondaryThrottle=True,
                writeConcern=majority,
            )
            logger.info("moveChunk to %s succeeded.", shard)
        except pymongo.errors.OperationFailure as e:
            logger.warning("moveChunk to %s failed: %s", shard, e)


def check_chunks_spread(client: MongoClient, ns: str):
    """Hashed collections must already own a chunk on every shard."""
    shard_names = get_shard_names(client)
    chunk_filter = {"ns": ns}
    # 5.0+ keys chunks by collection uuid instead of namespace.
    coll_info = client["config"]["collections"].find_one({"_id": ns})
    if coll_info and "uuid" in coll_info:
        chunk_filter = {"$or": [{"ns": ns}, {"uuid": coll_info["uuid"]}]}

    chunks = list(client["config"]["chunks"].find(chunk_filter, {"shard": 1, "min": 1, "max": 1}))
    if {chunk["shard"] for chunk in chunks} != set(shard_names):
        raise ShardingError(f"Shards: {shard_names}; chunks: {chunks}")

    logger.info("Forgoing split of %s; already split.", ns)
