"""
Write strategies for the update and delete phases.

Servers that support ``$sampleRate`` and pipeline updates get a single
broadcast statement per phase. Older servers get the fetch-then-target
fallback: sample _ids with ``$sample`` first, then address them by _id.
The strategy is picked once from the server capability.
"""

import logging
import random

from pymongo import UpdateOne
from pymongo.collection import Collection
from pymongo.write_concern import WriteConcern

from shardchurn import config
from shardchurn.capability import ServerCapability
from shardchurn.updates import random_update, update_pipeline

logger = logging.getLogger(__name__)

DURABLE = WriteConcern(w="majority", j=True)


def sample_ids(collection: Collection, size: int) -> list:
    """Fetch up to ``size`` random _ids with a ``$sample`` projection."""
    cursor = collection.aggregate([{"$sample": {"size": size}}, {"$project": {"_id": 1}}])
    return [doc["_id"] for doc in cursor]


class WriteStrategy:
    """Interface shared by the pipeline and legacy strategies."""

    name = "abstract"

    def update_sample(self, collection: Collection, batch_size: int, rng: random.Random) -> int:
        """Mutate a random sample of the collection. Returns documents modified."""
        raise NotImplementedError

    def delete_round(self, collection: Collection, excess: int, batch_size: int) -> int:
        """Delete one round of random documents. Returns documents deleted."""
        raise NotImplementedError


class PipelineStrategy(WriteStrategy):
    name = "pipeline"

    def __init__(
        self,
        update_rate: float = config.UPDATE_SAMPLE_RATE,
        delete_rate: float = config.DELETE_SAMPLE_RATE,
    ):
        self.update_rate = update_rate
        self.delete_rate = delete_rate
        self.pipeline = update_pipeline()

    def update_sample(self, collection, batch_size, rng):
        logger.info("%s: Updating random documents via pipeline ...", collection.name)
        res = collection.update_many({"$sampleRate": self.update_rate}, self.pipeline)
        return res.modified_count

    def delete_round(self, collection, excess, batch_size):
        logger.info(
            "%s: Deleting about %s random documents ...",
            collection.name,
            f"{excess:,}",
        )
        res = collection.delete_many({"$sampleRate": self.delete_rate})
        return res.deleted_count


class LegacyStrategy(WriteStrategy):
    name = "legacy"

    def update_sample(self, collection, batch_size, rng):
        logger.info("%s: Fetching %s random document IDs ...", collection.name, f"{batch_size:,}")
        ids = sample_ids(collection, batch_size)
        if not ids:
            return 0

        logger.info("%s: Updating those randomly ...", collection.name)
        requests = [UpdateOne({"_id": _id}, random_update(rng)) for _id in ids]
        res = collection.with_options(write_concern=DURABLE).bulk_write(requests)
        return res.modified_count

    def delete_round(self, collection, excess, batch_size):
        size = min(batch_size, excess)
        logger.info("%s: Fetching %s random document IDs ...", collection.name, f"{size:,}")
        ids = sample_ids(collection, size)
        if not ids:
            return 0

        logger.info("%s: Deleting those %s documents ...", collection.name, f"{len(ids):,}")
        res = collection.delete_many({"_id": {"$in": ids}})
        return res.deleted_count


def select_strategy(capability: ServerCapability) -> WriteStrategy:
    if capability.can_use_pipeline_updates:
        return PipelineStrategy()
    return LegacyStrategy()
