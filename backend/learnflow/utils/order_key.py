# backend/learnflow/utils/order_key.py
"""
Fractional order keys for sibling ordering.

Keys are base-36 strings (0-9a-z) compared with plain string comparison. A new
key can always be generated between any two valid keys, so moving one item
never requires renumbering its siblings. Keys never end with the lowest digit
'0'; that keeps room below every key and guarantees ``between`` terminates.

Repeated inserts at the same boundary make keys longer. That growth is
accepted: there is no rebalancing pass.
"""
import logging
from typing import List, Optional, Sequence

from learnflow.errors import InvalidArgumentError

logger = logging.getLogger(__name__)

DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
BASE = len(DIGITS)
_INDEX = {ch: i for i, ch in enumerate(DIGITS)}


def is_valid(key: Optional[str]) -> bool:
    """Return True for a non-empty base-36 key that does not end with '0'."""
    if not key:
        return False
    if key[-1] == DIGITS[0]:
        return False
    return all(ch in _INDEX for ch in key)


def _require_valid(key: str, name: str) -> None:
    if not is_valid(key):
        raise InvalidArgumentError(f"Invalid order key for {name}: {key!r}")


def _midpoint(lower: str, upper: Optional[str]) -> str:
    """Key strictly between ``lower`` ("" = start of space) and ``upper`` (None = end)."""
    if upper is not None:
        # Skip the shared prefix, treating a short lower bound as padded with '0'
        n = 0
        while n < len(upper) and (lower[n] if n < len(lower) else DIGITS[0]) == upper[n]:
            n += 1
        if n > 0:
            return upper[:n] + _midpoint(lower[n:], upper[n:])

    digit_lower = _INDEX[lower[0]] if lower else 0
    digit_upper = _INDEX[upper[0]] if upper is not None else BASE

    if digit_upper - digit_lower > 1:
        return DIGITS[(digit_lower + digit_upper) // 2]

    # Adjacent leading digits
    if upper is not None and len(upper) > 1:
        return upper[0]
    return DIGITS[digit_lower] + _midpoint(lower[1:], None)


def initial() -> str:
    """First key ever issued for an empty collection; sits mid-space."""
    return _midpoint("", None)


def next_key(key: str) -> str:
    """Key that sorts after ``key``."""
    _require_valid(key, "next_key")
    return _midpoint(key, None)


def previous_key(key: str) -> str:
    """Key that sorts before ``key``."""
    _require_valid(key, "previous_key")
    return _midpoint("", key)


def between(lower: Optional[str], upper: Optional[str]) -> str:
    """Key strictly between ``lower`` and ``upper``.

    Either bound may be None for an open end. Equal bounds mean two siblings
    share a key, which is a data-integrity problem upstream, so it is rejected.
    """
    if lower is None and upper is None:
        return initial()
    if lower is None:
        return previous_key(upper)
    if upper is None:
        return next_key(lower)

    _require_valid(lower, "lower bound")
    _require_valid(upper, "upper bound")
    if lower == upper:
        raise InvalidArgumentError(f"Cannot generate a key between equal keys {lower!r}")
    if lower > upper:
        raise InvalidArgumentError(f"Lower bound {lower!r} sorts after upper bound {upper!r}")

    key = _midpoint(lower, upper)
    logger.debug(f"order key between {lower!r} and {upper!r} -> {key!r}")
    return key


def keys_between(lower: Optional[str], upper: Optional[str], count: int) -> List[str]:
    """``count`` ascending keys spread between two bounds (bulk seeding)."""
    if count <= 0:
        return []
    if count == 1:
        return [between(lower, upper)]
    if upper is None:
        keys = [between(lower, None)]
        for _ in range(count - 1):
            keys.append(next_key(keys[-1]))
        return keys
    if lower is None:
        keys = [between(None, upper)]
        for _ in range(count - 1):
            keys.append(previous_key(keys[-1]))
        return list(reversed(keys))

    middle_index = count // 2
    middle = between(lower, upper)
    return (
        keys_between(lower, middle, middle_index)
        + [middle]
        + keys_between(middle, upper, count - middle_index - 1)
    )


def key_for_position(sibling_keys: Sequence[str], position: int) -> str:
    """Key that places an item at ``position`` among ``sibling_keys``.

    ``sibling_keys`` must be sorted and must not contain the moved item's own
    key. Position 0 goes before the first sibling, ``len(sibling_keys)`` after
    the last, anything else between its two neighbours.
    """
    if position < 0 or position > len(sibling_keys):
        raise InvalidArgumentError(
            f"Position {position} out of range for {len(sibling_keys)} siblings"
        )
    if not sibling_keys:
        return initial()
    if position == 0:
        return previous_key(sibling_keys[0])
    if position == len(sibling_keys):
        return next_key(sibling_keys[-1])
    return between(sibling_keys[position - 1], sibling_keys[position])
