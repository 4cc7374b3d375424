"""
Churn Driver

Cycles forever over the collection configurations. Every visit inserts a
batch, mutates a random sample, then deletes random documents until the
collection is back at the count it had on its first visit. Stops only at a
phase boundary once the stop flag is set.
"""

import json
import logging
import random
import time
from dataclasses import dataclass, field

import pymongo.errors
from pymongo.collection import Collection
from pymongo.database import Database

from shardchurn import config
from shardchurn.documents import CollectionConfig, collection_configs, generate_batch
from shardchurn.shutdown import StopFlag
from shardchurn.strategy import WriteStrategy

logger = logging.getLogger(__name__)


@dataclass
class WorkloadMetrics:
    """Writes sent during one collection visit."""

    inserted: int = 0
    deleted: int = 0
    elapsed_seconds: float = 0.0

    def to_json(self) -> str:
        return json.dumps({"plainInserts": self.inserted, "plainDeletes": self.deleted})


@dataclass
class PhaseResult:
    """Outcome of a phase run behind a fault boundary."""

    ok: bool
    count: int = 0
    error: str | None = field(default=None)


class ChurnDriver:
    """Insert/update/delete churn over a fixed set of collections."""

    def __init__(
        self,
        db: Database,
        strategy: WriteStrategy,
        stop: StopFlag,
        configs=None,
        batch_size: int = config.INSERT_BATCH_SIZE,
        cooldown: float = config.FAILURE_COOLDOWN,
        rng: random.Random | None = None,
    ):
        self.db = db
        self.strategy = strategy
        self.stop = stop
        self.configs = tuple(configs) if configs is not None else collection_configs()
        self.batch_size = batch_size
        self.cooldown = cooldown
        self.rng = rng or random.Random()
        self.baselines = {}

    def run(self):
        """Visit every configuration in order, wrapping around, until stopped."""
        logger.info(
            "Churning %d collections with the %s strategy",
            len(self.configs),
            self.strategy.name,
        )
        while not self.stop.is_set():
            for coll_config in self.configs:
                if self.stop.is_set():
                    break
                self.run_cycle(coll_config)

        logger.info("Stop requested, exiting main loop.")

    def run_cycle(self, coll_config: CollectionConfig) -> WorkloadMetrics | None:
        """Run INSERT -> UPDATE -> DELETE once against one collection."""
        collection = self.db[coll_config.name]
        start_time = time.monotonic()
        metrics = WorkloadMetrics()

        baseline = self.baseline(collection)
        if baseline is None:
            return None

        inserted = self.insert_phase(collection, coll_config)
        if inserted is None:
            time.sleep(self.cooldown)
            return None
        metrics.inserted = inserted

        result = self.update_phase(collection)
        if not result.ok:
            logger.warning("%s: Failed to update: %s", collection.name, result.error)
            time.sleep(self.cooldown)

        metrics.deleted = self.delete_phase(collection, baseline)

        metrics.elapsed_seconds = round(time.monotonic() - start_time, 2)
        logger.info(
            "%s: Writes sent over %.2f secs: %s",
            collection.name,
            metrics.elapsed_seconds,
            metrics.to_json(),
        )
        return metrics

    def baseline(self, collection: Collection) -> int | None:
        """Count recorded on the first visit; never refreshed afterwards."""
        if collection.name not in self.baselines:
            try:
                count = collection.estimated_document_count()
            except pymongo.errors.PyMongoError as e:
                logger.warning("%s: Failed to estimate document count: %s", collection.name, e)
                return None

            self.baselines[collection.name] = count
            logger.info("%s: Baseline document count is %s", collection.name, f"{count:,}")

        return self.baselines[collection.name]

    def insert_phase(self, collection: Collection, coll_config: CollectionConfig) -> int | None:
        """Insert one unordered batch. Returns the acknowledged count, None on total failure."""
        docs = generate_batch(coll_config, self.batch_size, self.rng)
        logger.info("%s: Inserting %s documents ...", collection.name, f"{len(docs):,}")

        try:
            res = collection.insert_many(docs, ordered=False)
        except pymongo.errors.BulkWriteError as e:
            inserted = e.details.get("nInserted", 0)
            logger.warning(
                "%s: Partial insert, %s of %s acknowledged: %s",
                collection.name,
                f"{inserted:,}",
                f"{len(docs):,}",
                e.details.get("writeErrors", [])[:1],
            )
            return inserted
        except pymongo.errors.PyMongoError as e:
            logger.warning("%s: Failed to insert: %s", collection.name, e)
            return None

        return len(res.inserted_ids)

    def update_phase(self, collection: Collection) -> PhaseResult:
        """Mutate a random sample. Never raises: any fault becomes a failed result."""
        try:
            modified = self.strategy.update_sample(collection, self.batch_size, self.rng)
        except Exception as e:  # pylint: disable=broad-exception-caught
            return PhaseResult(ok=False, error=str(e))

        return PhaseResult(ok=True, count=modified)

    def delete_phase(self, collection: Collection, baseline: int) -> int:
        """Delete random documents until the estimated count is back at ``baseline``."""
        deleted = 0
        while not self.stop.is_set():
            try:
                current = collection.estimated_document_count()
            except pymongo.errors.PyMongoError as e:
                logger.warning("%s: Failed to estimate count before delete: %s", collection.name, e)
                break

            excess = current - baseline
            if excess < 1:
                break

            try:
                deleted += self.strategy.delete_round(collection, excess, self.batch_size)
            except pymongo.errors.PyMongoError as e:
                logger.warning("%s: Failed to delete: %s", collection.name, e)
                break

        return deleted
