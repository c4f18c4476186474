"""Hardware clock (RTC) time.

Two layouts are read: the legacy ``/proc/driver/rtc`` report::

    rtc_time	: 14:03:27
    rtc_date	: 2024-05-17

and the sysfs pair ``/sys/class/rtc/rtc0/time`` + ``date``, used when the
procfs file does not exist. The RTC is assumed to run in UTC.
"""

from datetime import date, datetime, time
from pathlib import Path

from mprober.config import PROC_ROOT, SYS_ROOT
from mprober.scanner import InvalidData, Scanner


def _read_time(sc: Scanner) -> tuple[int, int, int]:
    hour = sc.next_uint_until(b":", "hour")
    minute = sc.next_uint_until(b":", "minute")
    second = sc.next_uint("second")
    return hour, minute, second


def _read_date(sc: Scanner) -> tuple[int, int, int]:
    year = sc.next_int_until(b"-", "year")
    month = sc.next_uint_until(b"-", "month")
    day = sc.next_uint("day")
    return year, month, day


def _combine(sc: Scanner, ymd: tuple[int, int, int], hms: tuple[int, int, int]) -> datetime:
    try:
        return datetime.combine(date(*ymd), time(*hms))
    except ValueError as e:
        raise InvalidData(f"{sc.source}: {e}") from e


def _read_labeled(sc: Scanner, label: bytes) -> None:
    sc.expect(label)
    sc.skip_until(b": ")


def get_rtc_date_time_procfs(proc_root: Path = PROC_ROOT) -> datetime:
    """Parse ``/proc/driver/rtc``."""
    sc = Scanner.from_path(proc_root / "driver" / "rtc")
    _read_labeled(sc, b"rtc_time")
    hms = _read_time(sc)
    _read_labeled(sc, b"rtc_date")
    ymd = _read_date(sc)
    return _combine(sc, ymd, hms)


def get_rtc_date_time_sysfs(sys_root: Path = SYS_ROOT, device: str = "rtc0") -> datetime:
    """Parse ``/sys/class/rtc/<device>/time`` and ``date``."""
    rtc_dir = sys_root / "class" / "rtc" / device
    hms = _read_time(Scanner.from_path(rtc_dir / "time"))
    sc = Scanner.from_path(rtc_dir / "date")
    return _combine(sc, _read_date(sc), hms)


def get_rtc_date_time(proc_root: Path = PROC_ROOT, sys_root: Path = SYS_ROOT) -> datetime:
    """Read the RTC as a naive datetime, preferring the procfs report."""
    try:
        return get_rtc_date_time_procfs(proc_root)
    except FileNotFoundError:
        return get_rtc_date_time_sysfs(sys_root)
