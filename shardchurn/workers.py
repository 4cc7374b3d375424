"""
Worker Pool Driver

Many threads hammer one collection with the same touch mutation and report
documents modified per second. ``sampleRate`` mode issues one broadcast
update matching a random fraction of the collection, so every shard is
contacted. ``bulk`` mode samples _ids first and updates them by _id, so each
write can be routed to a single shard.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from enum import StrEnum

import bson.errors
import pymongo.errors
from pymongo import UpdateOne
from pymongo.collection import Collection

from shardchurn import config
from shardchurn.shutdown import StopFlag
from shardchurn.strategy import sample_ids
from shardchurn.throughput import ThroughputCounter, ThroughputReporter
from shardchurn.updates import touch_update

logger = logging.getLogger(__name__)


class WorkerMode(StrEnum):
    """WorkerMode selects how each worker picks the documents it updates."""

    SAMPLE_RATE = "sampleRate"
    BULK = "bulk"


def update_by_sample_rate(collection: Collection, sample_rate: float) -> int:
    res = collection.update_many({"$sampleRate": sample_rate}, touch_update())
    return res.modified_count


def update_by_ids(collection: Collection, size: int) -> int:
    ids = sample_ids(collection, size)
    if not ids:
        return 0

    update = touch_update()
    res = collection.bulk_write([UpdateOne({"_id": _id}, update) for _id in ids], ordered=False)
    return res.modified_count


class WorkerPool:
    """Run ``workers`` update loops against one collection until stopped."""

    def __init__(
        self,
        collection: Collection,
        mode: WorkerMode,
        stop: StopFlag,
        workers: int = config.WORKER_COUNT,
        counter: ThroughputCounter | None = None,
        sample_rate: float = config.WORKER_SAMPLE_RATE,
        bulk_size: int = config.WORKER_BULK_SIZE,
        interval: float = config.REPORT_INTERVAL,
    ):
        self.collection = collection
        self.mode = WorkerMode(mode)
        self.stop = stop
        self.workers = workers
        self.counter = counter or ThroughputCounter()
        self.sample_rate = sample_rate
        self.bulk_size = bulk_size
        self.interval = interval

    def iteration(self) -> int:
        if self.mode == WorkerMode.SAMPLE_RATE:
            return update_by_sample_rate(self.collection, self.sample_rate)
        return update_by_ids(self.collection, self.bulk_size)

    def worker(self, worker_id: int):
        """Loop until stopped. Failed statements are dropped and retried at once."""
        while not self.stop.is_set():
            try:
                modified = self.iteration()
            except (pymongo.errors.PyMongoError, bson.errors.BSONError):
                continue
            self.counter.add(modified)

        return worker_id

    def run(self) -> dict:
        """Start the workers and the reporter; block until the stop flag is set."""
        logger.info(
            "Running %d workers in %s mode against %s",
            self.workers,
            self.mode,
            self.collection.full_name,
        )

        reporter = ThroughputReporter(self.counter, self.stop, self.interval)
        reporter.start()

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = [executor.submit(self.worker, i) for i in range(self.workers)]
            for future in futures:
                future.result()

        reporter.finish()
        summary = reporter.summary()
        logger.info(
            "Updated %s documents in %.1f seconds (%s/sec)",
            f"{summary['total']:,}",
            summary["duration"],
            f"{summary['rate']:,.0f}",
        )
        return summary
