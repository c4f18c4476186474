"""Hostname and kernel version."""

import socket
from pathlib import Path

from mprober.config import PROC_ROOT
from mprober.scanner import Scanner, decode


def get_hostname() -> str:
    """Return the hostname reported by the kernel."""
    return socket.gethostname()


def get_kernel_version(proc_root: Path = PROC_ROOT) -> str:
    """Return the kernel release from ``/proc/version``, e.g. ``6.1.0-18-amd64``."""
    sc = Scanner.from_path(proc_root / "version")
    sc.expect(b"Linux")
    sc.expect(b"version")
    return decode(sc.require_token("kernel release"))
