"""Load average from ``/proc/loadavg``."""

from dataclasses import dataclass
from pathlib import Path

from mprober.config import PROC_ROOT
from mprober.scanner import Scanner


@dataclass(frozen=True)
class LoadAverage:
    one: float
    five: float
    fifteen: float


def get_load_average(proc_root: Path = PROC_ROOT) -> LoadAverage:
    """Read the 1, 5 and 15 minute load averages.

    The runnable/total task counts and last pid that follow are not read.
    """
    sc = Scanner.from_path(proc_root / "loadavg")
    return LoadAverage(
        one=sc.next_float("1-minute load"),
        five=sc.next_float("5-minute load"),
        fifteen=sc.next_float("15-minute load"),
    )
