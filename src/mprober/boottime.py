"""Boot time detection for Linux.

Derived from ``/proc/uptime``: boot time is now minus uptime. The value
cannot change while we run, so the composition root computes it once via
``BootTime`` and passes the result down instead of keeping a global.
"""

import threading
from datetime import datetime
from pathlib import Path

import structlog

from mprober.config import PROC_ROOT
from mprober.uptime import get_uptime

log = structlog.get_logger()


def get_boot_time(proc_root: Path = PROC_ROOT) -> datetime:
    """Return system boot time as an aware UTC datetime.

    Raises:
        OSError: If the uptime file cannot be read.
        FormatError: If it cannot be parsed.
    """
    return get_uptime(proc_root).boot_time()


class BootTime:
    """Boot time computed on first use and reused afterwards.

    Safe to share between threads: the first caller computes under a lock,
    later callers read the stored value.
    """

    def __init__(self, proc_root: Path = PROC_ROOT) -> None:
        self._proc_root = proc_root
        self._value: datetime | None = None
        self._lock = threading.Lock()

    def get(self) -> datetime:
        value = self._value
        if value is not None:
            return value
        with self._lock:
            if self._value is None:
                self._value = get_boot_time(self._proc_root)
                log.debug("boot_time_computed", boot_time=self._value.isoformat())
            return self._value
