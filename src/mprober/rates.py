"""Pairing of two snapshots and per-second rate derivation."""

import time
from collections.abc import Callable, Hashable, Iterable
from typing import TypeVar

T = TypeVar("T")


def sample_pair(sample: Callable[[], T], interval: float) -> tuple[T, T]:
    """Take a snapshot, block for ``interval`` seconds, take another.

    Runs entirely on the calling thread; the sleep cannot be cancelled.
    """
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval!r}")
    before = sample()
    time.sleep(interval)
    after = sample()
    return before, after


def pair_by_key(
    before: Iterable[T],
    after: Iterable[T],
    key: Callable[[T], Hashable],
) -> list[tuple[T, T]]:
    """Match entries of two snapshots by key.

    Order follows ``after``. Entries present in only one snapshot are dropped.
    """
    earlier = {key(item): item for item in before}
    return [(earlier[key(item)], item) for item in after if key(item) in earlier]


def per_second(before: int, after: int, interval: float) -> float:
    """Counter delta divided by elapsed seconds.

    A counter that went backwards (device re-registered, counter reset)
    contributes zero rather than a negative rate.
    """
    return max(after - before, 0) / interval
