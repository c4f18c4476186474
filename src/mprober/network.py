"""Network interface byte counters from ``/proc/net/dev``."""

from dataclasses import dataclass
from operator import attrgetter
from pathlib import Path

from mprober.config import PROC_ROOT
from mprober.rates import pair_by_key, per_second, sample_pair
from mprober.scanner import Scanner, decode


@dataclass(frozen=True)
class NetworkSpeed:
    """Bytes per second."""

    receive: float
    transmit: float


@dataclass(frozen=True)
class NetworkStat:
    receive_bytes: int
    transmit_bytes: int

    def compute_speed(self, after: "NetworkStat", interval: float) -> NetworkSpeed:
        return NetworkSpeed(
            receive=per_second(self.receive_bytes, after.receive_bytes, interval),
            transmit=per_second(self.transmit_bytes, after.transmit_bytes, interval),
        )


@dataclass(frozen=True)
class Network:
    interface: str
    stat: NetworkStat


network_key = attrgetter("interface")


def get_networks(proc_root: Path = PROC_ROOT) -> list[Network]:
    """Read receive/transmit byte counters for every interface."""
    sc = Scanner.from_path(proc_root / "net" / "dev")

    for _ in range(2):
        sc.skip_line()

    networks: list[Network] = []
    while (interface := sc.next_until(b":")) is not None:
        receive_bytes = sc.next_uint("receive bytes")
        sc.skip(7)  # packets errs drop fifo frame compressed multicast
        transmit_bytes = sc.next_uint("transmit bytes")
        networks.append(
            Network(
                interface=decode(interface.strip()),
                stat=NetworkStat(receive_bytes=receive_bytes, transmit_bytes=transmit_bytes),
            )
        )
        sc.skip_line()

    return networks


def get_networks_with_speed(
    interval: float, proc_root: Path = PROC_ROOT
) -> list[tuple[Network, NetworkSpeed]]:
    """Sample twice, ``interval`` seconds apart. Blocks the caller.

    Interfaces that appear or disappear in between are left out.
    """
    before, after = sample_pair(lambda: get_networks(proc_root), interval)
    return [
        (network, previous.stat.compute_speed(network.stat, interval))
        for previous, network in pair_by_key(before, after, network_key)
    ]
