"""CPU topology and CPU time accounting.

Topology comes from ``/proc/cpuinfo``; time counters from ``/proc/stat``.
Counters are in clock ticks (USER_HZ) and only meaningful as deltas.
"""

from dataclasses import dataclass, field
from operator import itemgetter
from pathlib import Path

from mprober.config import PROC_ROOT
from mprober.rates import pair_by_key, sample_pair
from mprober.scanner import InvalidData, Scanner, UnexpectedEof, decode

_CPUINFO_LABELS = (b"model name", b"cpu MHz", b"physical id", b"siblings", b"cpu cores")
_MODEL_NAME, _CPU_MHZ, _PHYSICAL_ID, _SIBLINGS, _CPU_CORES = range(len(_CPUINFO_LABELS))


@dataclass(frozen=True)
class CPU:
    """One physical package."""

    physical_id: int
    model_name: str
    cpus_mhz: tuple[float, ...]
    siblings: int
    cpu_cores: int


@dataclass(frozen=True)
class CPUTime:
    """Idle and non-idle ticks of one CPUStat."""

    non_idle: int
    idle: int

    @property
    def total(self) -> int:
        return self.idle + self.non_idle


@dataclass(frozen=True)
class CPUStat:
    """One ``cpu``/``cpuN`` line of ``/proc/stat``."""

    user: int
    nice: int
    system: int
    idle: int
    iowait: int
    irq: int
    softirq: int
    steal: int
    guest: int
    guest_nice: int

    def compute_cpu_time(self) -> CPUTime:
        """Split into idle and non-idle ticks.

        guest and guest_nice are already counted in user and nice.
        """
        return CPUTime(
            non_idle=self.user + self.nice + self.system + self.irq + self.softirq + self.steal,
            idle=self.idle + self.iowait,
        )

    def compute_cpu_utilization(self, after: "CPUStat") -> float:
        """Busy fraction between this (earlier) sample and ``after``.

        Returns 1.0 for 100%. A zero tick interval yields 0.0.
        """
        before_time = self.compute_cpu_time()
        after_time = after.compute_cpu_time()
        d_total = after_time.total - before_time.total
        if d_total <= 0:
            return 0.0
        return (after_time.non_idle - before_time.non_idle) / d_total


@dataclass
class _PackageBuilder:
    physical_id: int = 0
    model_name: str = ""
    cpus_mhz: list[float] = field(default_factory=list)
    siblings: int = 0
    cpu_cores: int = 0

    def build(self) -> CPU:
        return CPU(
            physical_id=self.physical_id,
            model_name=self.model_name,
            cpus_mhz=tuple(self.cpus_mhz),
            siblings=self.siblings,
            cpu_cores=self.cpu_cores,
        )


def _label_value(sc: Scanner, line: bytes, label: bytes) -> str:
    colon = line.find(b":", len(label))
    if colon < 0:
        raise InvalidData(f"{sc.source}: missing ':' after {label.decode()}")
    return decode(line[colon + 1 :]).strip()


def _parse_number(sc: Scanner, value: str, what: str, kind: type) -> int | float:
    try:
        return kind(value)
    except ValueError:
        raise InvalidData(f"{sc.source}: invalid {what}: {value!r}") from None


def get_cpus(proc_root: Path = PROC_ROOT) -> list[CPU]:
    """Read physical CPU packages from ``cpuinfo``.

    Logical CPUs of one package are folded into a single record holding
    every logical CPU's frequency. A record is emitted once it has
    ``siblings`` frequencies; packages may be interleaved in the file.
    """
    sc = Scanner.from_path(proc_root / "cpuinfo")

    cpus: list[CPU] = []
    pending: dict[int, _PackageBuilder] = {}
    finalized: set[int] = set()

    while True:
        values: list[str] = []
        for label in _CPUINFO_LABELS:
            line = _find_line(sc, label)
            if line is None:
                if not values:
                    return cpus
                raise UnexpectedEof(f"{sc.source}: missing {label.decode()!r}")
            values.append(_label_value(sc, line, label))
            if len(values) == _PHYSICAL_ID + 1:
                physical_id = _parse_number(sc, values[_PHYSICAL_ID], "physical id", int)
                if physical_id in finalized:
                    # Package already emitted: a later logical CPU of it.
                    break

        mhz = _parse_number(sc, values[_CPU_MHZ], "cpu MHz", float)

        if physical_id not in finalized:
            builder = pending.setdefault(
                physical_id,
                _PackageBuilder(physical_id=physical_id, model_name=values[_MODEL_NAME]),
            )
            builder.cpus_mhz.append(mhz)
            builder.siblings = _parse_number(sc, values[_SIBLINGS], "siblings", int)
            builder.cpu_cores = _parse_number(sc, values[_CPU_CORES], "cpu cores", int)
            if len(builder.cpus_mhz) == builder.siblings:
                cpus.append(pending.pop(physical_id).build())
                finalized.add(physical_id)

        # Drop the rest of this logical CPU's block.
        while True:
            line = sc.next_line()
            if line is None:
                return cpus
            if not line.strip():
                break


def _find_line(sc: Scanner, label: bytes) -> bytes | None:
    while True:
        line = sc.next_line()
        if line is None or line.startswith(label):
            return line


def _read_cpu_stat(sc: Scanner) -> CPUStat:
    return CPUStat(*(sc.next_uint("cpu counter") for _ in range(10)))


def get_average_cpu_stat(proc_root: Path = PROC_ROOT) -> CPUStat:
    """Read the system-wide ``cpu`` line of ``/proc/stat``."""
    sc = Scanner.from_path(proc_root / "stat")
    sc.expect(b"cpu")
    return _read_cpu_stat(sc)


def get_labeled_cpus_stat(
    with_average: bool = False, proc_root: Path = PROC_ROOT
) -> list[tuple[str, CPUStat]]:
    """Per-core ``cpuN`` lines keyed by their label.

    With ``with_average`` the aggregate line comes first, labeled ``cpu``.
    """
    sc = Scanner.from_path(proc_root / "stat")

    stats: list[tuple[str, CPUStat]] = []
    if with_average:
        sc.expect(b"cpu")
        stats.append(("cpu", _read_cpu_stat(sc)))
    elif not sc.skip_line():
        raise UnexpectedEof(f"{sc.source}: empty file")

    while True:
        label = sc.next_token()
        if label is None or not label.startswith(b"cpu"):
            return stats
        stats.append((decode(label), _read_cpu_stat(sc)))


def get_all_cpus_stat(with_average: bool = False, proc_root: Path = PROC_ROOT) -> list[CPUStat]:
    """Read per-core ``cpuN`` lines, optionally preceded by the aggregate line."""
    return [stat for _, stat in get_labeled_cpus_stat(with_average, proc_root)]


def get_average_cpu_utilization(interval: float, proc_root: Path = PROC_ROOT) -> float:
    """System-wide busy fraction over ``interval`` seconds. Blocks the caller."""
    before, after = sample_pair(lambda: get_average_cpu_stat(proc_root), interval)
    return before.compute_cpu_utilization(after)


def get_all_cpu_utilization(
    with_average: bool, interval: float, proc_root: Path = PROC_ROOT
) -> list[tuple[str, float]]:
    """Per-core busy fractions over ``interval`` seconds. Blocks the caller.

    Cores are matched by label, so a core that goes offline or comes
    online in between is left out instead of shifting the others.
    """
    before, after = sample_pair(lambda: get_labeled_cpus_stat(with_average, proc_root), interval)
    return [
        (label, earlier.compute_cpu_utilization(later))
        for (_, earlier), (label, later) in pair_by_key(before, after, itemgetter(0))
    ]
