import random


def repeat_string(unit: str, n: int) -> str:
    """Return ``unit`` repeated ``n`` times by doubling the buffer.

    Takes a logarithmic number of copies instead of ``n`` appends.
    """
    if n <= 0 or not unit:
        return ""

    target = len(unit) * n
    out = unit
    while len(out) * 2 <= target:
        out += out

    return out + out[: target - len(out)]


def random_id(rng: random.Random) -> float:
    """Uniform identity value in [0, 1), ranged-shardable over that interval."""
    return rng.random()
