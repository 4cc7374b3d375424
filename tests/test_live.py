# pylint: disable=missing-docstring,redefined-outer-name
import random
import threading
from types import SimpleNamespace

import pytest
from pymongo import MongoClient

from shardchurn.capability import detect_capability
from shardchurn.churn import ChurnDriver
from shardchurn.documents import CollectionConfig, IdMode
from shardchurn.shutdown import StopFlag
from shardchurn.strategy import LegacyStrategy, PipelineStrategy
from shardchurn.throughput import ThroughputCounter
from shardchurn.updates import MutationCategory, _category_fields, random_update
from shardchurn.workers import WorkerMode, WorkerPool

DB_NAME = "shardchurn_test"


@pytest.fixture
def live_db(conn: MongoClient):
    conn.drop_database(DB_NAME)
    yield conn[DB_NAME]
    conn.drop_database(DB_NAME)


@pytest.mark.slow
def test_detect_capability(live_db):
    capability = detect_capability(live_db)
    assert capability.major >= 3


@pytest.mark.slow
@pytest.mark.parametrize("legacy", [True, False])
def test_cycle_returns_to_baseline(live_db, legacy):
    coll_config = CollectionConfig(500, IdMode.CUSTOM)
    live_db[coll_config.name].insert_many([{"_id": 1.0 + i} for i in range(100)])

    if legacy:
        strategy = LegacyStrategy()
    elif detect_capability(live_db).can_use_pipeline_updates:
        strategy = PipelineStrategy(delete_rate=0.05)
    else:
        pytest.skip("server does not support pipeline updates")

    driver = ChurnDriver(live_db, strategy, StopFlag(), configs=(coll_config,), batch_size=1000, cooldown=0)
    metrics = driver.run_cycle(coll_config)

    assert metrics.inserted == 1000
    assert live_db[coll_config.name].count_documents({}) <= 100


@pytest.mark.slow
@pytest.mark.parametrize("mode", [WorkerMode.SAMPLE_RATE, WorkerMode.BULK])
def test_worker_pool_updates(live_db, mode):
    coll = live_db["customID_500"]
    coll.insert_many([{"_id": random.random()} for _ in range(5000)])

    stop = StopFlag()
    counter = ThroughputCounter()
    pool = WorkerPool(coll, mode, stop, workers=4, counter=counter, bulk_size=100, interval=0.1)

    watcher = threading.Timer(2.0, stop.set)
    watcher.start()
    summary = pool.run()
    watcher.cancel()

    assert summary["total"] > 0
    assert coll.count_documents({"touchedByProcess": {"$exists": True}}) > 0


@pytest.mark.slow
def test_archive_matches_on_both_paths(live_db):
    if not detect_capability(live_db).can_use_pipeline_updates:
        pytest.skip("server does not support pipeline updates")

    docs = [{"_id": 1, "oldField": "a"}, {"_id": 2, "archivedField": "b"}, {"_id": 3}]
    legacy, pipeline = live_db["archive_legacy"], live_db["archive_pipeline"]
    legacy.insert_many([dict(doc) for doc in docs])
    pipeline.insert_many([dict(doc) for doc in docs])

    archive_draw = SimpleNamespace(random=lambda: 0.9)
    legacy.update_many({}, random_update(archive_draw, pid=1))
    pipeline.update_many({}, [{"$addFields": dict(_category_fields(MutationCategory.ARCHIVE, 1))}])

    expected = [{"_id": 1, "archivedField": "a"}, {"_id": 2, "archivedField": "b"}, {"_id": 3}]
    assert list(legacy.find().sort("_id", 1)) == expected
    assert list(pipeline.find().sort("_id", 1)) == expected
