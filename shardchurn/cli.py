"""
shardchurn command line

Usage:
    shardchurn churn -u "mongodb://mongos:27017"
    shardchurn workers -u "mongodb://mongos:27017" --workers 200 --mode bulk
    shardchurn initial-load -u "mongodb://mongos:27017"

The connection string defaults to $MONGODB_URI, then mongodb://localhost:27017.
Send SIGUSR2 to a churn process to stop it after the current phase; the
workers and initial-load commands stop on SIGINT/SIGTERM.
"""

import argparse
import logging
import signal
import sys

import pymongo
import pymongo.errors

from shardchurn import config
from shardchurn.capability import detect_capability, get_shard_names, total_data_size
from shardchurn.churn import ChurnDriver
from shardchurn.documents import collection_configs
from shardchurn.errors import ShardChurnError
from shardchurn.initial_load import run_initial_load
from shardchurn.sharding import cluster_is_sharded
from shardchurn.shutdown import StopFlag, install_stop_handler
from shardchurn.strategy import select_strategy
from shardchurn.workers import WorkerMode, WorkerPool

logger = logging.getLogger("shardchurn")

LOG_FORMAT = "[%(asctime)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(verbose=False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


def positive_int(value):
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="shardchurn",
        description="Synthetic insert/update/delete churn for sharded MongoDB",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    shardchurn churn --uri "mongodb://mongos:27017"
    shardchurn workers -u "mongodb://mongos:27017" --workers 200 --mode sampleRate
    shardchurn workers -u "mongodb://mongos:27017" --mode bulk --db test
    shardchurn initial-load -u "mongodb://mongos:27017"
        """,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-u", "--uri", type=str, help=f"MongoDB connection string (default: $MONGODB_URI or {config.DEFAULT_URI})"
    )
    common.add_argument("--db", default=config.DEFAULT_DB, help=f"Database name (default: {config.DEFAULT_DB})")
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser(
        "churn", parents=[common], help="Cyclic insert/update/delete churn over six collections"
    )

    workers = commands.add_parser("workers", parents=[common], help="Parallel update throughput benchmark")
    workers.add_argument(
        "--workers",
        type=positive_int,
        default=config.WORKER_COUNT,
        help=f"Number of concurrent workers (default: {config.WORKER_COUNT})",
    )
    workers.add_argument(
        "--mode",
        choices=[m.value for m in WorkerMode],
        default=WorkerMode.SAMPLE_RATE.value,
        help="sampleRate: broadcast update by $sampleRate; bulk: sample _ids then update by _id "
        f"(default: {WorkerMode.SAMPLE_RATE.value})",
    )
    workers.add_argument(
        "--collection",
        default=config.WORKER_COLLECTION,
        help=f"Collection to update (default: {config.WORKER_COLLECTION})",
    )
    workers.add_argument(
        "--interval",
        type=float,
        default=config.REPORT_INTERVAL,
        help=f"Throughput reporting interval in seconds (default: {config.REPORT_INTERVAL})",
    )

    commands.add_parser(
        "initial-load", parents=[common], help="Create, shard and bulk-load the churn collections"
    )

    return parser.parse_args(argv)


def connect(uri: str, **kwargs) -> pymongo.MongoClient:
    client = pymongo.MongoClient(uri, serverSelectionTimeoutMS=config.SERVER_SELECTION_TIMEOUT_MS, **kwargs)
    try:
        client.admin.command("ping")
    except pymongo.errors.PyMongoError as e:
        client.close()
        raise ShardChurnError(f"Failed to connect to MongoDB: {e}") from e
    return client


def run_churn(args):
    client = connect(config.mongodb_uri(args.uri))
    try:
        shard_names = get_shard_names(client)
        configs = collection_configs()
        collection_size = total_data_size(shard_names) // len(configs)
        logger.info(
            "%d shards; target size per collection: %s bytes",
            len(shard_names),
            f"{collection_size:,}",
        )

        db = client[args.db]
        strategy = select_strategy(detect_capability(db))

        stop = StopFlag()
        install_stop_handler(stop, (signal.SIGUSR2,))
        ChurnDriver(db, strategy, stop, configs).run()
    finally:
        client.close()


def run_workers(args):
    client = connect(config.mongodb_uri(args.uri), maxPoolSize=args.workers)
    try:
        stop = StopFlag()
        install_stop_handler(stop)
        pool = WorkerPool(
            client[args.db][args.collection],
            WorkerMode(args.mode),
            stop,
            workers=args.workers,
            interval=args.interval,
        )
        pool.run()
    finally:
        client.close()


def run_load(args):
    client = connect(config.mongodb_uri(args.uri))
    try:
        shard_names = get_shard_names(client) if cluster_is_sharded(client) else []
        stop = StopFlag()
        install_stop_handler(stop)
        run_initial_load(client[args.db], stop, shard_names)
    finally:
        client.close()


COMMANDS = {
    "churn": run_churn,
    "workers": run_workers,
    "initial-load": run_load,
}


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        COMMANDS[args.command](args)
    except ShardChurnError as e:
        logger.error("ERROR: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
