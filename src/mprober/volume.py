"""Mounted block devices: I/O counters, capacity and throughput.

Joins ``/proc/mounts`` with ``/proc/diskstats`` and asks ``statvfs`` for
capacity. diskstats counts 512-byte sectors regardless of the device's
real sector size.
"""

import os
import re
from dataclasses import dataclass
from operator import attrgetter
from pathlib import Path

import structlog

from mprober.config import DEV_ROOT, PROC_ROOT
from mprober.rates import pair_by_key, per_second, sample_pair
from mprober.scanner import Scanner, decode

log = structlog.get_logger()

SECTOR_SIZE = 512

_DEV_PREFIX = b"/dev/"
_MAPPER_PREFIX = b"mapper/"
_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


@dataclass(frozen=True)
class VolumeSpeed:
    """Bytes per second."""

    read: float
    write: float


@dataclass(frozen=True)
class VolumeStat:
    read_bytes: int
    write_bytes: int

    def compute_speed(self, after: "VolumeStat", interval: float) -> VolumeSpeed:
        return VolumeSpeed(
            read=per_second(self.read_bytes, after.read_bytes, interval),
            write=per_second(self.write_bytes, after.write_bytes, interval),
        )


@dataclass(frozen=True)
class Volume:
    device: str
    stat: VolumeStat
    size: int  # Bytes
    used: int  # Bytes
    points: tuple[str, ...]


volume_key = attrgetter("device")


def get_mounts(proc_root: Path = PROC_ROOT, dev_root: Path = DEV_ROOT) -> dict[str, list[str]]:
    """Map device name (``sda1``, ``dm-0``) to its mount points.

    Only ``/dev/`` devices are kept. ``/dev/mapper/*`` names are symlinks
    and are resolved to the kernel name used by diskstats.
    """
    sc = Scanner.from_path(proc_root / "mounts")

    mounts: dict[str, list[str]] = {}
    while (device_path := sc.next_token()) is not None:
        if device_path.startswith(_DEV_PREFIX):
            device = device_path[len(_DEV_PREFIX) :]
            if device.startswith(_MAPPER_PREFIX):
                name = (dev_root / decode(device)).resolve(strict=True).name
            else:
                name = decode(device)
            point = _unescape(decode(sc.require_token("mount point")))
            mounts.setdefault(name, []).append(point)
        sc.skip_line()

    return mounts


def _unescape(field: str) -> str:
    """Undo the octal escaping of spaces and tabs in mount table fields."""
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


def _capacity(point: str) -> tuple[int, int]:
    st = os.statvfs(point)
    return st.f_frsize * st.f_blocks, st.f_frsize * (st.f_blocks - st.f_bavail)


def get_volumes(proc_root: Path = PROC_ROOT, dev_root: Path = DEV_ROOT) -> list[Volume]:
    """Read mounted devices that have done any I/O since boot."""
    mounts = get_mounts(proc_root, dev_root)
    sc = Scanner.from_path(proc_root / "diskstats")

    volumes: list[Volume] = []
    while sc.next_token() is not None:
        sc.skip()  # minor
        device = decode(sc.require_token("device name"))

        points = mounts.pop(device, None)
        if points is not None:
            sc.skip(2)  # reads completed, reads merged
            read_sectors = sc.next_uint("sectors read")
            sc.skip(3)  # ms reading, writes completed, writes merged
            write_sectors = sc.next_uint("sectors written")
            sc.skip(2)  # ms writing, I/Os in progress
            io_ticks = sc.next_uint("ms doing I/O")

            if io_ticks > 0:
                size, used = _capacity(points[0])
                volumes.append(
                    Volume(
                        device=device,
                        stat=VolumeStat(
                            read_bytes=read_sectors * SECTOR_SIZE,
                            write_bytes=write_sectors * SECTOR_SIZE,
                        ),
                        size=size,
                        used=used,
                        points=tuple(points),
                    )
                )
            else:
                log.debug("volume_skipped", device=device, reason="no_io")

        sc.skip_line()

    return volumes


def get_volumes_with_speed(
    interval: float, proc_root: Path = PROC_ROOT, dev_root: Path = DEV_ROOT
) -> list[tuple[Volume, VolumeSpeed]]:
    """Sample twice, ``interval`` seconds apart. Blocks the caller.

    Devices mounted or unmounted in between are left out.
    """
    before, after = sample_pair(lambda: get_volumes(proc_root, dev_root), interval)
    return [
        (volume, previous.stat.compute_speed(volume.stat, interval))
        for previous, volume in pair_by_key(before, after, volume_key)
    ]
