"""
Randomized field mutations.

Two equivalent generators share one boundary table. ``random_update`` picks
the mutation on the client, one update document per targeted _id.
``update_pipeline`` lets the server draw ``$rand`` per matched document and
apply the same five-way choice with ``$cond`` expressions, so a single
statement can mutate a whole sample.
"""

import math
import os
import random
from datetime import datetime, timezone
from enum import StrEnum

RAND_FIELD = "randVal"


class MutationCategory(StrEnum):
    """MutationCategory is one of the five mutually exclusive field mutations."""

    TOUCH = "touch"
    FLAG = "flag"
    SCORE = "score"
    VISIT = "visit"
    ARCHIVE = "archive"


# Half-open [low, high) ranges; together they cover [0, 1) exactly.
CATEGORY_BOUNDS = (
    (MutationCategory.TOUCH, 0.0, 0.2),
    (MutationCategory.FLAG, 0.2, 0.4),
    (MutationCategory.SCORE, 0.4, 0.6),
    (MutationCategory.VISIT, 0.6, 0.8),
    (MutationCategory.ARCHIVE, 0.8, 1.0),
)

SCORE_SCALE = 1000


def mutation_category(r: float) -> MutationCategory:
    """Return the category whose range contains ``r``."""
    for category, low, high in CATEGORY_BOUNDS:
        if low <= r < high:
            return category

    raise ValueError(f"{r!r} is outside [0, 1)")


def touch_update(pid=None, now=None) -> dict:
    """Update document stamping the writer's pid and the current time."""
    return {
        "$set": {
            "touchedByProcess": os.getpid() if pid is None else pid,
            "updatedAt": now or datetime.now(timezone.utc),
        }
    }


def random_update(rng: random.Random | None = None, pid=None, now=None) -> dict:
    """Draw one category and return the matching update document."""
    rng = rng or random.Random()
    category = mutation_category(rng.random())

    if category == MutationCategory.TOUCH:
        return touch_update(pid, now)

    if category == MutationCategory.FLAG:
        return {"$set": {"flag": rng.random() < 0.5}}

    if category == MutationCategory.SCORE:
        return {"$set": {"score": math.floor(rng.random() * SCORE_SCALE)}}

    if category == MutationCategory.VISIT:
        return {"$inc": {"visitCount": 1}}

    return {"$rename": {"oldField": "archivedField"}}


def _range_condition(low: float, high: float) -> dict:
    field = f"${RAND_FIELD}"
    if low <= 0.0:
        return {"$lt": [field, high]}
    if high >= 1.0:
        return {"$gte": [field, low]}
    return {"$and": [{"$gte": [field, low]}, {"$lt": [field, high]}]}


def _category_fields(category: MutationCategory, pid: int) -> list:
    """(field, new value expression) pairs a category assigns."""
    if category == MutationCategory.TOUCH:
        return [("touchedByProcess", pid), ("updatedAt", "$$NOW")]

    if category == MutationCategory.FLAG:
        return [("flag", {"$lt": [{"$rand": {}}, 0.5]})]

    if category == MutationCategory.SCORE:
        return [("score", {"$floor": {"$multiply": [{"$rand": {}}, SCORE_SCALE]}})]

    if category == MutationCategory.VISIT:
        return [
            (
                "visitCount",
                {
                    "$cond": [
                        {"$eq": [{"$type": "$visitCount"}, "missing"]},
                        1,
                        {"$add": ["$visitCount", 1]},
                    ]
                },
            )
        ]

    # Like $rename: a document without oldField keeps its archivedField.
    archived = {"$cond": [{"$eq": [{"$type": "$oldField"}, "missing"]}, "$archivedField", "$oldField"]}
    return [("archivedField", archived), ("oldField", "$$REMOVE")]


def update_pipeline(pid=None) -> list:
    """Build the server-side equivalent of ``random_update``.

    The first stage stores a per-document ``$rand``; the second keeps every
    field as is unless its category's range contains that value, then drops
    the temporary field.
    """
    pid = os.getpid() if pid is None else pid

    assignments = {}
    for category, low, high in CATEGORY_BOUNDS:
        condition = _range_condition(low, high)
        for field, value in _category_fields(category, pid):
            assignments[field] = {"$cond": [condition, value, f"${field}"]}
    assignments[RAND_FIELD] = "$$REMOVE"

    return [
        {"$addFields": {RAND_FIELD: {"$rand": {}}}},
        {"$addFields": assignments},
    ]
