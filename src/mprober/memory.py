"""RAM and swap usage from ``/proc/meminfo``, computed the way free(1) does."""

from dataclasses import dataclass
from pathlib import Path

from mprober.config import PROC_ROOT
from mprober.scanner import Scanner, UnexpectedEof

_LABELS = {
    b"MemTotal:": "total",
    b"MemFree:": "free",
    b"MemAvailable:": "available",
    b"Buffers:": "buffers",
    b"Cached:": "cached",
    b"SwapCached:": "swap_cached",
    b"SwapTotal:": "swap_total",
    b"SwapFree:": "swap_free",
    b"Shmem:": "shmem",
    b"Slab:": "slab",
    b"SUnreclaim:": "s_unreclaim",
}


@dataclass(frozen=True)
class Mem:
    total: int
    used: int
    free: int
    shared: int
    buffers: int
    cache: int
    available: int


@dataclass(frozen=True)
class Swap:
    total: int
    used: int
    free: int
    cache: int


@dataclass(frozen=True)
class Free:
    """Memory snapshot; all sizes in bytes."""

    mem: Mem
    swap: Swap


def free(proc_root: Path = PROC_ROOT) -> Free:
    """Read memory usage.

    ``cache`` includes reclaimable slab, so ``used + free + buffers + cache``
    equals ``total`` exactly.
    """
    sc = Scanner.from_path(proc_root / "meminfo")

    values: dict[str, int] = {}
    while len(values) < len(_LABELS):
        label = sc.next_token()
        if label is None:
            missing = sorted(k.decode() for k, v in _LABELS.items() if v not in values)
            raise UnexpectedEof(f"{sc.source}: missing {', '.join(missing)}")
        name = _LABELS.get(label)
        if name is not None:
            values[name] = sc.next_uint(label.decode()) * 1024
        sc.skip_line()

    total = values["total"]
    cache = values["cached"] + values["slab"] - values["s_unreclaim"]

    mem = Mem(
        total=total,
        used=total - values["free"] - values["buffers"] - cache,
        free=values["free"],
        shared=values["shmem"],
        buffers=values["buffers"],
        cache=cache,
        available=values["available"],
    )
    swap = Swap(
        total=values["swap_total"],
        used=values["swap_total"] - values["swap_free"] - values["swap_cached"],
        free=values["swap_free"],
        cache=values["swap_cached"],
    )
    return Free(mem=mem, swap=swap)
