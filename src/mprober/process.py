"""Process enumeration, filtering and per-process CPU usage.

A process is assembled from ``status``, ``cmdline`` and ``stat`` (with
``statm``), read in that order so the cheapest files reject non-matching
processes first. Processes that exit while being read are skipped; any
other error aborts the enumeration.
"""

import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from operator import attrgetter
from pathlib import Path

import structlog

from mprober.config import PROC_ROOT
from mprober.cpu import get_average_cpu_stat
from mprober.process_stat import (
    CLOCK_TICKS,
    ProcessStat,
    ProcessState,
    ProcessStatus,
    ProcessTimeStat,
    get_process_cmdline,
    get_process_ppid,
    get_process_stat,
    get_process_status,
    get_process_time_stat,
    process_dir,
    tty_name,
)

log = structlog.get_logger()

# Raised by per-pid reads when the process has exited.
VANISHED_ERRORS = (FileNotFoundError, ProcessLookupError)


@dataclass(frozen=True)
class Process:
    """One process. Memory sizes are in bytes."""

    pid: int
    effective_uid: int
    effective_gid: int
    state: ProcessState
    ppid: int
    program: str
    cmdline: str
    tty: str | None
    priority: int
    real_time_priority: int | None
    nice: int
    threads: int
    vsz: int
    rss: int
    rss_shared: int
    rss_anon: int
    start_time: datetime


process_key = attrgetter("pid")


@dataclass
class ProcessFilter:
    """Predicates a process must all satisfy.

    ``program`` is searched in the command line, then in the executable
    name; ``tty`` is searched in the terminal name. Strings are compiled as
    regular expressions.
    """

    pid: int | None = None
    uid: int | None = None
    gid: int | None = None
    program: re.Pattern[str] | str | None = None
    tty: re.Pattern[str] | str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.program, str):
            self.program = re.compile(self.program)
        if isinstance(self.tty, str):
            self.tty = re.compile(self.tty)


def _build_process(
    status: ProcessStatus,
    cmdline: str,
    stat: ProcessStat,
    boot_time: datetime,
) -> Process:
    return Process(
        pid=stat.pid,
        effective_uid=status.effective_uid,
        effective_gid=status.effective_gid,
        state=stat.state,
        ppid=stat.ppid,
        program=stat.comm,
        cmdline=cmdline,
        tty=tty_name(stat.tty_nr_major, stat.tty_nr_minor),
        priority=stat.priority,
        real_time_priority=stat.rt_priority or None,
        nice=stat.nice,
        threads=stat.num_threads,
        vsz=stat.vsize,
        rss=stat.rss,
        rss_shared=stat.shared,
        rss_anon=stat.rss_anon,
        start_time=boot_time + timedelta(seconds=stat.starttime / CLOCK_TICKS),
    )


def _fetch_process(
    pid: int,
    process_filter: ProcessFilter,
    boot_time: datetime,
    proc_root: Path,
) -> tuple[Process, ProcessStat] | None:
    """Read one process, or return None if the filter rejects it."""
    status = get_process_status(pid, proc_root)
    if process_filter.uid is not None and process_filter.uid not in status.uids:
        return None
    if process_filter.gid is not None and process_filter.gid not in status.gids:
        return None

    cmdline = get_process_cmdline(pid, proc_root)
    program_pattern = process_filter.program
    cmdline_matched = program_pattern is None or program_pattern.search(cmdline) is not None

    stat = get_process_stat(pid, proc_root)
    if not cmdline_matched and program_pattern.search(stat.comm) is None:
        return None

    if process_filter.tty is not None:
        tty = tty_name(stat.tty_nr_major, stat.tty_nr_minor)
        if tty is None or process_filter.tty.search(tty) is None:
            return None

    return _build_process(status, cmdline, stat, boot_time), stat


def get_process_with_stat(
    pid: int, boot_time: datetime, proc_root: Path = PROC_ROOT
) -> tuple[Process, ProcessStat]:
    """Read one process.

    Raises:
        FileNotFoundError: If the process does not exist.
    """
    status = get_process_status(pid, proc_root)
    cmdline = get_process_cmdline(pid, proc_root)
    stat = get_process_stat(pid, proc_root)
    return _build_process(status, cmdline, stat, boot_time), stat


def list_pids(proc_root: Path = PROC_ROOT) -> list[int]:
    """Pids of all processes, ascending."""
    return sorted(int(entry.name) for entry in proc_root.iterdir() if entry.name.isdigit())


def _ppid_map(pids: list[int], proc_root: Path) -> dict[int, int]:
    ppids: dict[int, int] = {}
    for pid in pids:
        try:
            ppids[pid] = get_process_ppid(pid, proc_root)
        except VANISHED_ERRORS:
            log.debug("process_vanished", pid=pid, stage="ppid")
    return ppids


def descendants_of(root: int, ppids: dict[int, int]) -> set[int]:
    """``root`` and every pid whose parent chain reaches it."""
    children: dict[int, list[int]] = {}
    for pid, ppid in ppids.items():
        if pid != ppid:
            children.setdefault(ppid, []).append(pid)

    found = {root}
    stack = [root]
    while stack:
        for child in children.get(stack.pop(), ()):
            if child not in found:
                found.add(child)
                stack.append(child)
    return found


def get_processes_with_stat(
    process_filter: ProcessFilter,
    boot_time: datetime,
    proc_root: Path = PROC_ROOT,
) -> list[tuple[Process, ProcessStat]]:
    """Read every process matching the filter.

    With a pid filter, the parent map of all processes is built first and
    only the pid and its descendants are read in full, so the result does
    not depend on directory listing order.
    """
    pids = list_pids(proc_root)
    if process_filter.pid is not None:
        related = descendants_of(process_filter.pid, _ppid_map(pids, proc_root))
        pids = [pid for pid in pids if pid in related]

    processes: list[tuple[Process, ProcessStat]] = []
    for pid in pids:
        try:
            result = _fetch_process(pid, process_filter, boot_time, proc_root)
        except VANISHED_ERRORS:
            log.debug("process_vanished", pid=pid, path=str(process_dir(pid, proc_root)))
            continue
        if result is not None:
            processes.append(result)

    return processes


def get_processes(
    process_filter: ProcessFilter,
    boot_time: datetime,
    proc_root: Path = PROC_ROOT,
) -> list[Process]:
    return [process for process, _ in get_processes_with_stat(process_filter, boot_time, proc_root)]


def get_processes_with_cpu_utilization(
    process_filter: ProcessFilter,
    interval: float,
    boot_time: datetime,
    proc_root: Path = PROC_ROOT,
) -> list[tuple[Process, float]]:
    """CPU share of each matching process over ``interval`` seconds.

    The share is relative to all CPUs together, so 1.0 means the whole
    machine. Blocks the caller; processes that exit meanwhile are dropped.
    """
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval!r}")

    cpu_before = get_average_cpu_stat(proc_root)
    processes = get_processes_with_stat(process_filter, boot_time, proc_root)

    time.sleep(interval)

    cpu_after = get_average_cpu_stat(proc_root)
    total_cpu_time = float(
        cpu_after.compute_cpu_time().total - cpu_before.compute_cpu_time().total
    )

    results: list[tuple[Process, float]] = []
    for process, stat in processes:
        try:
            time_stat = get_process_time_stat(process.pid, proc_root)
        except VANISHED_ERRORS:
            log.debug("process_vanished", pid=process.pid, stage="cpu")
            continue
        share = ProcessTimeStat.from_stat(stat).compute_cpu_utilization(time_stat, total_cpu_time)
        results.append((process, share))

    return results
