"""System uptime from ``/proc/uptime``."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from mprober.config import PROC_ROOT
from mprober.scanner import Scanner


@dataclass(frozen=True)
class Uptime:
    total_uptime: timedelta
    all_cpu_idle_time: timedelta  # Summed over all CPUs, can exceed total_uptime

    def boot_time(self, now: datetime | None = None) -> datetime:
        """Absolute boot time: ``now`` minus uptime, in UTC."""
        now = now or datetime.now(timezone.utc)
        return now - self.total_uptime


def get_uptime(proc_root: Path = PROC_ROOT) -> Uptime:
    """Read time since boot and accumulated idle time."""
    sc = Scanner.from_path(proc_root / "uptime")
    return Uptime(
        total_uptime=timedelta(seconds=sc.next_float("uptime")),
        all_cpu_idle_time=timedelta(seconds=sc.next_float("idle time")),
    )
