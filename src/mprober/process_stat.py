"""Decoders for the per-process files under ``/proc/<pid>/``.

Each function reads one file. Nothing here is atomic with respect to the
process exiting: a vanished process surfaces as FileNotFoundError (or
ProcessLookupError) from whichever read comes first.
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from mprober.config import PROC_ROOT
from mprober.scanner import InvalidData, Scanner, decode

PAGE_SIZE = os.sysconf("SC_PAGE_SIZE")
CLOCK_TICKS = os.sysconf("SC_CLK_TCK")  # USER_HZ, the unit of utime/stime/starttime

# Terminal device majors (Documentation/admin-guide/devices.txt)
TTY_MAJOR = 4
PTS_MAJORS = range(136, 144)
SERIAL_MINOR_BASE = 64


class ProcessState(Enum):
    """Single-letter state from the third field of ``stat``."""

    RUNNING = "R"
    SLEEPING = "S"
    DISK_SLEEP = "D"
    ZOMBIE = "Z"
    STOPPED = "T"
    TRACING_STOP = "t"
    DEAD = "X"
    DEAD_LEGACY = "x"
    WAKEKILL = "K"
    WAKING = "W"
    PARKED = "P"
    IDLE = "I"

    @property
    def label(self) -> str:
        """Lowercase name, e.g. ``disk_sleep``."""
        return self.name.lower()


@dataclass(frozen=True)
class ProcessStatus:
    """uid/gid quadruples from ``status``."""

    real_uid: int
    effective_uid: int
    saved_set_uid: int
    fs_uid: int
    real_gid: int
    effective_gid: int
    saved_set_gid: int
    fs_gid: int

    @property
    def uids(self) -> tuple[int, int, int, int]:
        return (self.real_uid, self.effective_uid, self.saved_set_uid, self.fs_uid)

    @property
    def gids(self) -> tuple[int, int, int, int]:
        return (self.real_gid, self.effective_gid, self.saved_set_gid, self.fs_gid)


@dataclass(frozen=True)
class ProcessStat:
    """Fields of ``stat`` plus the shared size from ``statm``.

    Times are clock ticks; memory sizes are in bytes.
    """

    pid: int
    comm: str
    state: ProcessState
    ppid: int
    pgrp: int
    session: int
    tty_nr_major: int
    tty_nr_minor: int
    tpgid: int | None  # None when there is no foreground process group
    utime: int
    stime: int
    cutime: int
    cstime: int
    priority: int
    nice: int
    num_threads: int
    starttime: int
    vsize: int
    rss: int
    shared: int  # Resident shared bytes, from statm
    rss_anon: int
    rsslim: int
    processor: int
    rt_priority: int


@dataclass(frozen=True)
class ProcessTimeStat:
    """CPU ticks spent in user and kernel mode."""

    utime: int
    stime: int

    @classmethod
    def from_stat(cls, stat: ProcessStat) -> "ProcessTimeStat":
        return cls(utime=stat.utime, stime=stat.stime)

    def compute_cpu_utilization(self, after: "ProcessTimeStat", total_cpu_time: float) -> float:
        """Share of ``total_cpu_time`` ticks this process used, in [0, 1].

        ``total_cpu_time`` is the system-wide tick delta over the same
        interval. Under one tick the ratio is noise and 0.0 is returned.
        """
        if total_cpu_time < 1.0:
            return 0.0
        used = (after.utime - self.utime) + (after.stime - self.stime)
        return min(max(used / total_cpu_time, 0.0), 1.0)


def process_dir(pid: int, proc_root: Path = PROC_ROOT) -> Path:
    return proc_root / str(pid)


def _read_comm(sc: Scanner) -> str:
    """Read the parenthesised executable name.

    comm may itself contain spaces and parentheses, so tokens are collected
    until one ends with ``)``.
    """
    sc.skip_until(b"(")
    parts: list[bytes] = []
    while True:
        token = sc.require_token("comm")
        if token.endswith(b")"):
            parts.append(token[:-1])
            break
        parts.append(token)
    return decode(b" ".join(parts).strip())


def _read_state(sc: Scanner) -> ProcessState:
    raw = sc.require_token("state")
    try:
        return ProcessState(decode(raw))
    except ValueError:
        raise InvalidData(f"{sc.source}: invalid process state: {raw!r}") from None


def split_tty_nr(tty_nr: int) -> tuple[int, int]:
    """Unpack a kernel ``dev_t`` into (major, minor)."""
    major = (tty_nr >> 8) & 0xFFF
    minor = ((tty_nr >> 20) << 8) | (tty_nr & 0xFF)
    return major, minor


def tty_name(major: int, minor: int) -> str | None:
    """Name of the controlling terminal, or None if there is none."""
    if major == TTY_MAJOR:
        if minor < SERIAL_MINOR_BASE:
            return f"tty{minor}"
        return f"ttyS{minor - SERIAL_MINOR_BASE}"
    if major in PTS_MAJORS:
        return f"pts/{minor}"
    return None


def get_process_stat(pid: int, proc_root: Path = PROC_ROOT) -> ProcessStat:
    """Decode ``/proc/<pid>/stat`` and the shared size from ``statm``."""
    sc = Scanner.from_path(process_dir(pid, proc_root) / "stat")

    stat_pid = sc.next_uint("pid")
    comm = _read_comm(sc)
    state = _read_state(sc)
    ppid = sc.next_uint("ppid")
    pgrp = sc.next_uint("pgrp")
    session = sc.next_uint("session")
    tty_nr_major, tty_nr_minor = split_tty_nr(sc.next_int("tty_nr"))
    tpgid = sc.next_int("tpgid")
    sc.skip(5)  # flags minflt cminflt majflt cmajflt
    utime = sc.next_uint("utime")
    stime = sc.next_uint("stime")
    cutime = sc.next_int("cutime")
    cstime = sc.next_int("cstime")
    priority = sc.next_int("priority")
    nice = sc.next_int("nice")
    num_threads = sc.next_uint("num_threads")
    sc.skip()  # itrealvalue
    starttime = sc.next_uint("starttime")
    vsize = sc.next_uint("vsize")
    rss_pages = sc.next_int("rss")
    rsslim = sc.next_uint("rsslim")
    sc.skip(13)  # startcode .. exit_signal
    processor = sc.next_uint("processor")
    rt_priority = sc.next_uint("rt_priority")

    rss = max(rss_pages, 0) * PAGE_SIZE
    shared = get_process_shared(pid, proc_root)

    return ProcessStat(
        pid=stat_pid,
        comm=comm,
        state=state,
        ppid=ppid,
        pgrp=pgrp,
        session=session,
        tty_nr_major=tty_nr_major,
        tty_nr_minor=tty_nr_minor,
        tpgid=tpgid if tpgid >= 0 else None,
        utime=utime,
        stime=stime,
        cutime=cutime,
        cstime=cstime,
        priority=priority,
        nice=nice,
        num_threads=num_threads,
        starttime=starttime,
        vsize=vsize,
        rss=rss,
        shared=shared,
        rss_anon=max(rss - shared, 0),
        rsslim=rsslim,
        processor=processor,
        rt_priority=rt_priority,
    )


def get_process_time_stat(pid: int, proc_root: Path = PROC_ROOT) -> ProcessTimeStat:
    """Read only utime and stime from ``stat``."""
    sc = Scanner.from_path(process_dir(pid, proc_root) / "stat")
    sc.next_uint("pid")
    _read_comm(sc)
    sc.skip(11)  # state ppid pgrp session tty_nr tpgid flags minflt cminflt majflt cmajflt
    return ProcessTimeStat(utime=sc.next_uint("utime"), stime=sc.next_uint("stime"))


def get_process_ppid(pid: int, proc_root: Path = PROC_ROOT) -> int:
    """Read only the parent pid from ``stat``."""
    sc = Scanner.from_path(process_dir(pid, proc_root) / "stat")
    sc.next_uint("pid")
    _read_comm(sc)
    sc.skip()  # state
    return sc.next_uint("ppid")


def _read_id_line(sc: Scanner, label: bytes) -> tuple[int, int, int, int]:
    while True:
        token = sc.require_token(label.decode())
        if token == label:
            return tuple(sc.next_uint(label.decode()) for _ in range(4))  # type: ignore[return-value]
        sc.skip_line()


def get_process_status(pid: int, proc_root: Path = PROC_ROOT) -> ProcessStatus:
    """Decode the ``Uid:`` and ``Gid:`` lines of ``/proc/<pid>/status``."""
    sc = Scanner.from_path(process_dir(pid, proc_root) / "status")
    real_uid, effective_uid, saved_set_uid, fs_uid = _read_id_line(sc, b"Uid:")
    real_gid, effective_gid, saved_set_gid, fs_gid = _read_id_line(sc, b"Gid:")
    return ProcessStatus(
        real_uid=real_uid,
        effective_uid=effective_uid,
        saved_set_uid=saved_set_uid,
        fs_uid=fs_uid,
        real_gid=real_gid,
        effective_gid=effective_gid,
        saved_set_gid=saved_set_gid,
        fs_gid=fs_gid,
    )


def get_process_shared(pid: int, proc_root: Path = PROC_ROOT) -> int:
    """Shared resident memory in bytes, from ``/proc/<pid>/statm``."""
    sc = Scanner.from_path(process_dir(pid, proc_root) / "statm")
    sc.skip(2)  # size resident
    return sc.next_uint("shared") * PAGE_SIZE


def get_process_cmdline(pid: int, proc_root: Path = PROC_ROOT) -> str:
    """Command line with NUL-separated arguments joined by spaces.

    Empty for kernel threads and zombies.
    """
    data = (process_dir(pid, proc_root) / "cmdline").read_bytes()
    return decode(data.rstrip(b"\0").replace(b"\0", b" "))
