from __future__ import annotations
from ..domain.errors import InvalidRangeError
from ..domain.models import BlockRange

DEFAULT_INTERNAL_TX_WINDOW = 10_000
DEFAULT_LOGS_WINDOW = 1_000

def plan_windows(rng: BlockRange, window_size: int) -> list[BlockRange]:
    """Closed, contiguous, non-overlapping windows covering rng in ascending order."""
    if window_size <= 0:
        raise InvalidRangeError(f"window size must be > 0, got {window_size}")
    out: list[BlockRange] = []
    cursor = rng.start
    while cursor <= rng.end:
        out.append(BlockRange(cursor, min(cursor + window_size - 1, rng.end)))
        cursor += window_size
    return out

def window_count(rng: BlockRange, window_size: int) -> int:
    if window_size <= 0:
        raise InvalidRangeError(f"window size must be > 0, got {window_size}")
    return -(-rng.span() // window_size)
