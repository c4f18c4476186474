"""Shared test fixtures for mprober.

``FakeProc`` builds a procfs-shaped tree under ``tmp_path`` so parsers can
be pointed at known contents.
"""

from pathlib import Path

import pytest

CPUINFO_TWO_PACKAGES = """\
processor\t: 0
vendor_id\t: GenuineIntel
model name\t: Intel(R) Xeon(R) CPU E5-2680 v4 @ 2.40GHz
cpu MHz\t\t: 2400.000
physical id\t: 0
siblings\t: 2
core id\t\t: 0
cpu cores\t: 1
flags\t\t: fpu vme de pse

processor\t: 1
vendor_id\t: GenuineIntel
model name\t: Intel(R) Xeon(R) CPU E5-2680 v4 @ 2.40GHz
cpu MHz\t\t: 2600.500
physical id\t: 0
siblings\t: 2
core id\t\t: 0
cpu cores\t: 1
flags\t\t: fpu vme de pse

processor\t: 2
vendor_id\t: AuthenticAMD
model name\t: AMD EPYC 7B12
cpu MHz\t\t: 3000.000
physical id\t: 1
siblings\t: 1
core id\t\t: 0
cpu cores\t: 1
flags\t\t: fpu vme de pse

"""

MEMINFO = """\
MemTotal:           1000 kB
MemFree:             200 kB
MemAvailable:        600 kB
Buffers:              50 kB
Cached:              300 kB
SwapCached:           10 kB
Active:              400 kB
Inactive:            100 kB
SwapTotal:           500 kB
SwapFree:            400 kB
Dirty:                 0 kB
Shmem:                20 kB
KReclaimable:         50 kB
Slab:                100 kB
SReclaimable:         50 kB
SUnreclaim:           50 kB
HugePages_Total:       0
"""

NET_DEV_HEADER = """\
Inter-|   Receive                                                |  Transmit
 face |bytes    packets errs drop fifo frame compressed multicast|bytes    packets errs drop fifo colls carrier compressed
"""


def net_dev_line(interface: str, rx: int, tx: int) -> str:
    return f"{interface:>6}: {rx} 10 0 0 0 0 0 0 {tx} 20 0 0 0 0 0 0\n"


def diskstats_line(name: str, read_sectors: int, write_sectors: int, io_ms: int) -> str:
    return (
        f"   8       0 {name} 100 5 {read_sectors} 40 200 7 {write_sectors} 90 0 {io_ms} "
        "130 0 0 0 0\n"
    )


def cpu_stat_text(*lines: tuple[int, ...]) -> str:
    """``/proc/stat`` with an aggregate line followed by per-core lines."""
    out = []
    for index, counters in enumerate(lines):
        label = "cpu " if index == 0 else f"cpu{index - 1}"
        out.append(f"{label} {' '.join(str(c) for c in counters)}\n")
    out.append("intr 12345 0 0\nctxt 999\nbtime 1700000000\n")
    return "".join(out)


def stat_line(
    pid: int,
    comm: str = "bash",
    state: str = "S",
    ppid: int = 1,
    tty_nr: int = 0,
    utime: int = 0,
    stime: int = 0,
    priority: int = 20,
    nice: int = 0,
    threads: int = 1,
    starttime: int = 0,
    vsize: int = 8192000,
    rss_pages: int = 100,
    rt_priority: int = 0,
) -> str:
    """One ``/proc/<pid>/stat`` line with the given fields."""
    fields = [
        str(pid),
        f"({comm})",
        state,
        str(ppid),
        str(pid),  # pgrp
        str(pid),  # session
        str(tty_nr),
        "-1",  # tpgid
        "4194560 100 0 0 0",  # flags minflt cminflt majflt cmajflt
        str(utime),
        str(stime),
        "0 0",  # cutime cstime
        str(priority),
        str(nice),
        str(threads),
        "0",  # itrealvalue
        str(starttime),
        str(vsize),
        str(rss_pages),
        "18446744073709551615",  # rsslim
        " ".join(["1"] * 12 + ["17"]),  # startcode .. exit_signal
        "3",  # processor
        str(rt_priority),
        "0 0 0 0",  # policy delayacct_blkio_ticks guest_time cguest_time
    ]
    return " ".join(fields) + "\n"


def status_text(uids: tuple[int, ...], gids: tuple[int, ...], name: str = "bash") -> str:
    return (
        f"Name:\t{name}\n"
        "Umask:\t0022\n"
        "State:\tS (sleeping)\n"
        f"Uid:\t{uids[0]}\t{uids[1]}\t{uids[2]}\t{uids[3]}\n"
        f"Gid:\t{gids[0]}\t{gids[1]}\t{gids[2]}\t{gids[3]}\n"
        "Groups:\t\n"
        "VmRSS:\t    400 kB\n"
    )


class FakeProc:
    """A throwaway procfs tree."""

    def __init__(self, root: Path) -> None:
        self.root = root
        root.mkdir(parents=True, exist_ok=True)

    def write(self, relpath: str, content: str | bytes) -> Path:
        path = self.root / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
        return path

    def add_process(
        self,
        pid: int,
        comm: str = "bash",
        cmdline: bytes = b"/bin/bash\0--login\0",
        uids: tuple[int, ...] = (1000, 1000, 1000, 1000),
        gids: tuple[int, ...] = (1000, 1000, 1000, 1000),
        shared_pages: int = 40,
        **stat_fields: int | str,
    ) -> None:
        self.write(f"{pid}/stat", stat_line(pid, comm=comm, **stat_fields))  # type: ignore[arg-type]
        self.write(f"{pid}/status", status_text(uids, gids, name=comm))
        self.write(f"{pid}/cmdline", cmdline)
        rss_pages = stat_fields.get("rss_pages", 100)
        self.write(f"{pid}/statm", f"2000 {rss_pages} {shared_pages} 10 0 300 0\n")

    def set_cpu_stat(self, *lines: tuple[int, ...]) -> None:
        self.write("stat", cpu_stat_text(*lines))


@pytest.fixture
def fake_proc(tmp_path: Path) -> FakeProc:
    """An empty fake /proc under tmp_path."""
    return FakeProc(tmp_path / "proc")
