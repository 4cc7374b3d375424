import os

DEFAULT_URI = "mongodb://localhost:27017"
DEFAULT_DB = "test"

ONE_TIB = 1 << 40

# Collection enumeration: every doc size is visited with custom ids, then
# with server-assigned ids.
DOC_SIZES = (500, 1000, 2000)
CUSTOM_ID_MODES = (True, False)

INSERT_BATCH_SIZE = 50_000
UPDATE_SAMPLE_RATE = 0.001
DELETE_SAMPLE_RATE = 0.0001
FAILURE_COOLDOWN = 3  # seconds

WORKER_COUNT = 100
WORKER_SAMPLE_RATE = 0.001
WORKER_BULK_SIZE = 1000
WORKER_COLLECTION = "customID_500"
REPORT_INTERVAL = 1  # seconds

INITIAL_LOAD_BATCH_SIZE = 100_000

SERVER_SELECTION_TIMEOUT_MS = 5000


def mongodb_uri(cli_value=None):
    """Resolve the connection string: flag, then MONGODB_URI, then localhost."""
    return cli_value or os.environ.get("MONGODB_URI", DEFAULT_URI)
