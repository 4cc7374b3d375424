"""
Initial Loader

Creates the churn collections, shards and pre-splits them when talking to a
mongos, then fills them with unacknowledged unordered inserts until stopped.
"""

import logging
import random

import pymongo.errors
from pymongo.database import Database
from pymongo.write_concern import WriteConcern

from shardchurn import config
from shardchurn.documents import CollectionConfig, IdMode, collection_configs
from shardchurn.rand import random_id, repeat_string
from shardchurn.sharding import (
    NAMESPACE_EXISTS,
    check_chunks_spread,
    shard_collection,
    split_collection,
    stop_balancer,
)
from shardchurn.shutdown import StopFlag

logger = logging.getLogger(__name__)

FIRE_AND_FORGET = WriteConcern(w=0)
LOAD_UNIT = "x"


def load_order(configs):
    """Every id mode's sizes together: custom ids first, then auto ids."""
    return sorted(configs, key=lambda c: (c.id_mode != IdMode.CUSTOM, c.doc_size))


def create_collection(db: Database, name: str) -> bool:
    """Create ``name`` unless it exists. Returns True if this call created it."""
    if name in db.list_collection_names():
        logger.info("Collection %s already exists.", name)
        return False

    try:
        db.create_collection(name)
    except pymongo.errors.OperationFailure as e:
        if e.code != NAMESPACE_EXISTS:
            raise
        logger.info("Collection %s already existed.", name)
        return False

    return True


def prepare_collections(db: Database, configs, collection_size: int, sharded: bool):
    """Create every collection and, on a sharded cluster, shard and spread it."""
    client = db.client
    for coll_config in load_order(configs):
        approx = collection_size // coll_config.doc_size
        logger.info("Creating collection: %s (approx docs count: %s)", coll_config.name, f"{approx:,}")

        if not create_collection(db, coll_config.name):
            continue
        if not sharded:
            continue

        logger.info("Sharding collection %s ...", coll_config.name)
        shard_collection(client, db.name, coll_config)

        ns = f"{db.name}.{coll_config.name}"
        if coll_config.id_mode == IdMode.CUSTOM:
            logger.info("Pre-splitting %s ...", coll_config.name)
            split_collection(client, ns, "_id", 0.0, 1.0)
        else:
            check_chunks_spread(client, ns)


def load_batch(coll_config: CollectionConfig, count: int, rng: random.Random) -> list:
    payload = repeat_string(LOAD_UNIT, coll_config.doc_size)
    docs = []
    for _ in range(count):
        doc = {"str": payload, "a": 1}
        if coll_config.id_mode == IdMode.CUSTOM:
            doc["_id"] = random_id(rng)
        docs.append(doc)
    return docs


def run_initial_load(
    db: Database,
    stop: StopFlag,
    shard_names: list,
    configs=None,
    batch_size: int = config.INITIAL_LOAD_BATCH_SIZE,
    rng: random.Random | None = None,
) -> int:
    """Prepare the collections, then insert batches round-robin until stopped.

    An empty ``shard_names`` means a replica set: nothing is sharded and the
    size estimate assumes a single shard.
    """
    configs = load_order(configs if configs is not None else collection_configs())
    rng = rng or random.Random()

    sharded = bool(shard_names)
    if sharded:
        stop_balancer(db.client)

    collection_size = config.ONE_TIB * max(len(shard_names), 1) // len(configs)
    prepare_collections(db, configs, collection_size, sharded)

    batches = 0
    while not stop.is_set():
        for coll_config in configs:
            if stop.is_set():
                break

            logger.info("Inserting into %s ...", coll_config.name)
            collection = db[coll_config.name].with_options(write_concern=FIRE_AND_FORGET)
            try:
                collection.insert_many(load_batch(coll_config, batch_size, rng), ordered=False)
            except pymongo.errors.PyMongoError as e:
                logger.warning("%s: Failed to insert: %s", coll_config.name, e)
                continue
            batches += 1

    logger.info("Stop requested after %d batches.", batches)
    return batches
