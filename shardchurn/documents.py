import random
from dataclasses import dataclass
from enum import StrEnum

from shardchurn import config
from shardchurn.rand import random_id, repeat_string

PAYLOAD_UNIT = "y"


class IdMode(StrEnum):
    """IdMode tells who assigns the _id of inserted documents."""

    CUSTOM = "customID"
    AUTO = "sequentialID"


@dataclass(frozen=True)
class CollectionConfig:
    """One (document size, id mode) pair of the churn enumeration."""

    doc_size: int
    id_mode: IdMode

    @property
    def name(self) -> str:
        return f"{self.id_mode}_{self.doc_size}"


def collection_configs(doc_sizes=config.DOC_SIZES, custom_id_modes=config.CUSTOM_ID_MODES):
    """Build the fixed list of collection configurations for a run."""
    return tuple(
        CollectionConfig(size, IdMode.CUSTOM if custom else IdMode.AUTO)
        for size in doc_sizes
        for custom in custom_id_modes
    )


def generate_document(coll_config: CollectionConfig, payload: str, rng: random.Random) -> dict:
    """Generate a single churn document. ``_id`` is left to the server in auto mode."""
    doc = {}
    if coll_config.id_mode == IdMode.CUSTOM:
        doc["_id"] = random_id(rng)

    doc["rand"] = rng.random()
    doc["str"] = payload
    doc["fromUpdates"] = True
    return doc


def generate_batch(
    coll_config: CollectionConfig,
    count: int = config.INSERT_BATCH_SIZE,
    rng: random.Random | None = None,
) -> list:
    """Generate ``count`` documents sharing one payload of ``doc_size`` bytes."""
    rng = rng or random.Random()
    payload = repeat_string(PAYLOAD_UNIT, coll_config.doc_size)
    return [generate_document(coll_config, payload, rng) for _ in range(count)]
