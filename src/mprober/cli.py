"""CLI commands for mprober."""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import click

from mprober import logging as console
from mprober.boottime import BootTime
from mprober.config import Config
from mprober.formatting import format_bytes, format_duration, format_percent
from mprober.logging import configure as configure_logging
from mprober.scanner import FormatError


@dataclass
class CliState:
    """Per-invocation state shared by all commands."""

    config: Config
    boot_time: BootTime


pass_state = click.make_pass_decorator(CliState)


@contextmanager
def _reading(what: str) -> Iterator[None]:
    """Turn read and parse failures into a console error and exit status 1."""
    try:
        yield
    except (OSError, FormatError) as e:
        console.read_failed(what, str(e))
        raise SystemExit(1) from e


def _interval(state: CliState, interval: float | None) -> float:
    value = interval if interval is not None else state.config.sampling.interval
    if value <= 0:
        raise click.BadParameter("must be positive", param_hint="--interval")
    console.sampling(value)
    return value


@click.group()
@click.version_option(package_name="mprober")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default ~/.config/mprober/config.toml)",
)
@click.pass_context
def main(ctx: click.Context, config_path: Path | None) -> None:
    """Read Linux system state from /proc and /sys."""
    try:
        config = Config.load(config_path)
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    configure_logging(config)
    ctx.obj = CliState(config=config, boot_time=BootTime(config.proc_root))


@main.command("init-config")
@pass_state
def init_config(state: CliState) -> None:
    """Write a config file with the current settings."""
    state.config.save()
    console.config_created(str(state.config.config_path))


@main.command()
@pass_state
def host(state: CliState) -> None:
    """Hostname, kernel, uptime and boot time."""
    from mprober.host import get_hostname, get_kernel_version
    from mprober.uptime import get_uptime

    proc_root = state.config.proc_root
    with _reading("host information"):
        hostname = get_hostname()
        kernel = get_kernel_version(proc_root)
        uptime = get_uptime(proc_root)
        boot_time = state.boot_time.get()

    click.echo(f"Hostname: {hostname}")
    click.echo(f"Kernel:   {kernel}")
    click.echo(f"Uptime:   {format_duration(uptime.total_uptime)}")
    click.echo(f"Booted:   {boot_time.isoformat(timespec='seconds')}")


@main.command()
@pass_state
def uptime(state: CliState) -> None:
    """Time since boot and accumulated idle time."""
    from mprober.uptime import get_uptime

    with _reading("uptime"):
        value = get_uptime(state.config.proc_root)
    click.echo(f"up {format_duration(value.total_uptime)}")
    click.echo(f"idle {format_duration(value.all_cpu_idle_time)} (all CPUs)")


@main.command()
@pass_state
def load(state: CliState) -> None:
    """Load average."""
    from mprober.loadavg import get_load_average

    with _reading("load average"):
        avg = get_load_average(state.config.proc_root)
    click.echo(f"{avg.one:.2f} {avg.five:.2f} {avg.fifteen:.2f}")


@main.command()
@click.option("--per-core", is_flag=True, help="Show each core instead of the average")
@click.option("--interval", "-i", type=float, default=None, help="Sampling interval in seconds")
@pass_state
def cpu(state: CliState, per_core: bool, interval: float | None) -> None:
    """CPU packages and utilization."""
    from mprober.cpu import get_all_cpu_utilization, get_average_cpu_utilization, get_cpus

    proc_root = state.config.proc_root
    with _reading("CPU information"):
        for package in get_cpus(proc_root):
            click.echo(
                f"CPU {package.physical_id}: {package.model_name} "
                f"({package.cpu_cores} cores, {package.siblings} threads)"
            )
        seconds = _interval(state, interval)
        if per_core:
            usages = get_all_cpu_utilization(False, seconds, proc_root)
            for label, usage in usages:
                click.echo(f"{label}: {format_percent(usage)}")
        else:
            usage = get_average_cpu_utilization(seconds, proc_root)
            click.echo(f"cpu: {format_percent(usage)}")


@main.command()
@pass_state
def memory(state: CliState) -> None:
    """RAM and swap usage."""
    from mprober.memory import free

    with _reading("memory information"):
        snapshot = free(state.config.proc_root)

    mem, swap = snapshot.mem, snapshot.swap
    click.echo(
        f"Mem:  total {format_bytes(mem.total)}, used {format_bytes(mem.used)}, "
        f"free {format_bytes(mem.free)}, buff/cache {format_bytes(mem.buffers + mem.cache)}, "
        f"available {format_bytes(mem.available)}"
    )
    click.echo(
        f"Swap: total {format_bytes(swap.total)}, used {format_bytes(swap.used)}, "
        f"free {format_bytes(swap.free)}"
    )


@main.command()
@click.option("--interval", "-i", type=float, default=None, help="Sampling interval in seconds")
@pass_state
def network(state: CliState, interval: float | None) -> None:
    """Network interface throughput."""
    from mprober.network import get_networks_with_speed

    with _reading("network counters"):
        results = get_networks_with_speed(_interval(state, interval), state.config.proc_root)

    for net, speed in results:
        click.echo(
            f"{net.interface:12} rx {format_bytes(speed.receive)}/s "
            f"tx {format_bytes(speed.transmit)}/s "
            f"(total rx {format_bytes(net.stat.receive_bytes)}, "
            f"tx {format_bytes(net.stat.transmit_bytes)})"
        )


@main.command()
@click.option("--interval", "-i", type=float, default=None, help="Sampling interval in seconds")
@pass_state
def volumes(state: CliState, interval: float | None) -> None:
    """Mounted block devices: usage and throughput."""
    from mprober.volume import get_volumes_with_speed

    config = state.config
    with _reading("block devices"):
        results = get_volumes_with_speed(
            _interval(state, interval), config.proc_root, config.dev_root
        )

    for vol, speed in results:
        click.echo(
            f"{vol.device:10} {format_bytes(vol.used)}/{format_bytes(vol.size)} "
            f"read {format_bytes(speed.read)}/s write {format_bytes(speed.write)}/s "
            f"on {', '.join(vol.points)}"
        )


@main.command()
@pass_state
def rtc(state: CliState) -> None:
    """Hardware clock time."""
    from mprober.rtc import get_rtc_date_time

    with _reading("RTC"):
        value = get_rtc_date_time(state.config.proc_root, state.config.sys_root)
    click.echo(value.isoformat(sep=" "))


@main.command()
@click.option("--pid", type=int, default=None, help="Only this process and its descendants")
@click.option("--uid", type=int, default=None, help="Only processes with this uid")
@click.option("--gid", type=int, default=None, help="Only processes with this gid")
@click.option("--program", default=None, help="Regex matched against command line or name")
@click.option("--tty", default=None, help="Regex matched against terminal name")
@click.option("--interval", "-i", type=float, default=None, help="Also measure CPU over N seconds")
@pass_state
def processes(
    state: CliState,
    pid: int | None,
    uid: int | None,
    gid: int | None,
    program: str | None,
    tty: str | None,
    interval: float | None,
) -> None:
    """List processes."""
    import re

    from mprober.process import (
        ProcessFilter,
        get_processes,
        get_processes_with_cpu_utilization,
    )

    try:
        process_filter = ProcessFilter(pid=pid, uid=uid, gid=gid, program=program, tty=tty)
    except re.error as e:
        raise click.BadParameter(str(e)) from e

    proc_root = state.config.proc_root
    with _reading("processes"):
        boot_time = state.boot_time.get()
        if interval is not None:
            rows = get_processes_with_cpu_utilization(
                process_filter, _interval(state, interval), boot_time, proc_root
            )
        else:
            rows = [(p, None) for p in get_processes(process_filter, boot_time, proc_root)]

    click.echo(f"{'PID':>7} {'PPID':>7} {'S':1} {'TTY':8} {'RSS':>10} {'CPU':>7}  COMMAND")
    for proc, share in rows:
        cpu_text = format_percent(share) if share is not None else "-"
        click.echo(
            f"{proc.pid:>7} {proc.ppid:>7} {proc.state.value:1} {proc.tty or '?':8} "
            f"{format_bytes(proc.rss):>10} {cpu_text:>7}  {proc.cmdline or '[' + proc.program + ']'}"
        )
