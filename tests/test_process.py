"""Tests for process enumeration, filtering and CPU share."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from mprober.process import (
    ProcessFilter,
    descendants_of,
    get_process_with_stat,
    get_processes,
    get_processes_with_cpu_utilization,
    get_processes_with_stat,
    list_pids,
)
from mprober.process_stat import CLOCK_TICKS, PAGE_SIZE, get_process_stat
from mprober.scanner import InvalidData
from tests.conftest import stat_line

BOOT = datetime(2024, 5, 17, 8, 0, tzinfo=timezone.utc)

PTS_1 = (136 << 8) | 1
TTY_3 = (4 << 8) | 3


@pytest.fixture
def tree(fake_proc):
    """init -> sshd -> bash -> vim, plus an unrelated cron owned by root.

    The child has a lower pid than its parent to catch order-dependent
    descendant discovery.
    """
    fake_proc.add_process(1, comm="systemd", cmdline=b"/sbin/init\0", ppid=0, uids=(0,) * 4, gids=(0,) * 4)
    fake_proc.add_process(50, comm="sshd", cmdline=b"sshd: alice\0", ppid=1, uids=(0,) * 4, gids=(0,) * 4)
    fake_proc.add_process(300, comm="bash", cmdline=b"-bash\0", ppid=50, tty_nr=PTS_1)
    fake_proc.add_process(120, comm="vim", cmdline=b"vim\0notes.txt\0", ppid=300, tty_nr=PTS_1)
    fake_proc.add_process(
        80, comm="cron", cmdline=b"/usr/sbin/cron\0-f\0", ppid=1, uids=(0,) * 4, gids=(0, 0, 0, 27)
    )
    fake_proc.add_process(90, comm="agetty", cmdline=b"/sbin/agetty\0tty3\0", ppid=1, tty_nr=TTY_3)
    return fake_proc


def pids(processes) -> list[int]:
    return [p.pid for p in processes]


class TestSingleProcess:
    def test_assembled_fields(self, fake_proc):
        fake_proc.add_process(
            42,
            comm="postgres",
            cmdline=b"postgres: writer\0",
            uids=(26, 26, 26, 26),
            gids=(26, 26, 26, 26),
            shared_pages=40,
            state="S",
            ppid=1,
            priority=20,
            nice=0,
            threads=1,
            starttime=CLOCK_TICKS * 90,
            vsize=200_000,
            rss_pages=100,
            rt_priority=0,
        )

        process, stat = get_process_with_stat(42, BOOT, fake_proc.root)

        assert process.pid == 42
        assert process.effective_uid == 26
        assert process.program == "postgres"
        assert process.cmdline == "postgres: writer"
        assert process.tty is None
        assert process.real_time_priority is None
        assert process.vsz == 200_000
        assert process.rss == 100 * PAGE_SIZE
        assert process.rss_shared == 40 * PAGE_SIZE
        assert process.rss_anon == 60 * PAGE_SIZE
        assert process.start_time == BOOT + timedelta(seconds=90)
        assert stat.comm == "postgres"

    def test_stat_carries_shared_memory(self, fake_proc):
        """The stat half of the pair agrees with the assembled process."""
        fake_proc.add_process(42, rss_pages=300, shared_pages=120)

        process, stat = get_process_with_stat(42, BOOT, fake_proc.root)

        assert stat.shared == process.rss_shared == 120 * PAGE_SIZE
        assert stat.rss_anon == process.rss_anon == 180 * PAGE_SIZE

    def test_enumeration_stat_carries_shared_memory(self, fake_proc):
        fake_proc.add_process(42, rss_pages=300, shared_pages=120)
        [(process, stat)] = get_processes_with_stat(ProcessFilter(), BOOT, fake_proc.root)
        assert stat.shared == process.rss_shared

    def test_kernel_thread_with_empty_cmdline(self, fake_proc):
        """A single-pid read never filters, even with no cmdline or tty."""
        fake_proc.add_process(2, comm="kthreadd", cmdline=b"", ppid=0)
        process, _ = get_process_with_stat(2, BOOT, fake_proc.root)
        assert process.program == "kthreadd"
        assert process.cmdline == ""
        assert process.tty is None

    def test_real_time_priority(self, fake_proc):
        fake_proc.add_process(42, rt_priority=50, priority=-51)
        process, _ = get_process_with_stat(42, BOOT, fake_proc.root)
        assert process.real_time_priority == 50
        assert process.priority == -51

    def test_missing(self, fake_proc):
        with pytest.raises(FileNotFoundError):
            get_process_with_stat(42, BOOT, fake_proc.root)


class TestListing:
    def test_list_pids_ignores_non_numeric(self, tree):
        tree.write("self/stat", "")
        tree.write("meminfo", "")
        assert list_pids(tree.root) == [1, 50, 80, 90, 120, 300]

    def test_no_filter(self, tree):
        assert pids(get_processes(ProcessFilter(), BOOT, tree.root)) == [1, 50, 80, 90, 120, 300]


class TestFilters:
    def test_uid_matches_any_of_four(self, tree):
        assert pids(get_processes(ProcessFilter(uid=0), BOOT, tree.root)) == [1, 50, 80]

    def test_gid_matches_fs_gid(self, tree):
        assert pids(get_processes(ProcessFilter(gid=27), BOOT, tree.root)) == [80]

    def test_program_searched_in_cmdline(self, tree):
        """cmdline 'sshd: alice' matches even though comm does not contain 'alice'."""
        assert pids(get_processes(ProcessFilter(program="alice"), BOOT, tree.root)) == [50]

    def test_program_falls_back_to_comm(self, tree):
        tree.add_process(400, comm="kworker/0:1", cmdline=b"", ppid=2)
        assert pids(get_processes(ProcessFilter(program="^kworker"), BOOT, tree.root)) == [400]

    def test_program_is_regex(self, tree):
        assert pids(get_processes(ProcessFilter(program=r"c(ro)?n"), BOOT, tree.root)) == [80]

    def test_tty(self, tree):
        assert pids(get_processes(ProcessFilter(tty="pts/"), BOOT, tree.root)) == [120, 300]
        assert pids(get_processes(ProcessFilter(tty="^tty3$"), BOOT, tree.root)) == [90]

    def test_tty_filter_excludes_no_tty(self, tree):
        assert 1 not in pids(get_processes(ProcessFilter(tty=".*"), BOOT, tree.root))

    def test_filters_combine(self, tree):
        result = get_processes(ProcessFilter(uid=1000, tty="pts"), BOOT, tree.root)
        assert pids(result) == [120, 300]


class TestPidFilter:
    def test_descendants_regardless_of_pid_order(self, tree):
        """vim (pid 120) is found although its parent bash has pid 300."""
        assert pids(get_processes(ProcessFilter(pid=50), BOOT, tree.root)) == [50, 120, 300]

    def test_leaf(self, tree):
        assert pids(get_processes(ProcessFilter(pid=120), BOOT, tree.root)) == [120]

    def test_unknown_pid(self, tree):
        assert get_processes(ProcessFilter(pid=9999), BOOT, tree.root) == []

    def test_descendants_of(self):
        ppids = {1: 0, 2: 1, 3: 2, 4: 1, 5: 5}
        assert descendants_of(2, ppids) == {2, 3}
        assert descendants_of(1, ppids) == {1, 2, 3, 4}
        assert descendants_of(5, ppids) == {5}


class TestVanishing:
    def test_exited_process_skipped(self, tree):
        """A process whose files disappear mid-scan is left out."""
        (tree.root / "80" / "stat").unlink()
        assert 80 not in pids(get_processes(ProcessFilter(), BOOT, tree.root))

    def test_missing_statm_skipped(self, tree):
        (tree.root / "80" / "statm").unlink()
        assert pids(get_processes(ProcessFilter(), BOOT, tree.root)) == [1, 50, 90, 120, 300]

    def test_exit_during_read(self, tree):
        def flaky(pid, proc_root):
            if pid == 90:
                raise ProcessLookupError(pid)
            return get_process_stat(pid, proc_root)

        with patch("mprober.process.get_process_stat", side_effect=flaky):
            result = get_processes(ProcessFilter(), BOOT, tree.root)

        assert pids(result) == [1, 50, 80, 120, 300]

    def test_format_error_aborts(self, tree):
        tree.write("80/stat", stat_line(80, state="?"))
        with pytest.raises(InvalidData):
            get_processes(ProcessFilter(), BOOT, tree.root)

    def test_permission_error_aborts(self, tree):
        with patch("mprober.process.get_process_status", side_effect=PermissionError("denied")):
            with pytest.raises(PermissionError):
                get_processes(ProcessFilter(), BOOT, tree.root)


class TestCpuUtilization:
    def test_share_over_interval(self, fake_proc):
        fake_proc.set_cpu_stat((100, 0, 0, 900, 0, 0, 0, 0, 0, 0))
        fake_proc.add_process(10, comm="busy", utime=0, stime=0)
        fake_proc.add_process(11, comm="idle", utime=5, stime=5)
        fake_proc.add_process(12, comm="short", utime=0, stime=0)

        def advance(seconds):
            fake_proc.set_cpu_stat((300, 0, 0, 1100, 0, 0, 0, 0, 0, 0))
            fake_proc.write("10/stat", stat_line(10, comm="busy", utime=80, stime=20))
            (fake_proc.root / "12" / "stat").unlink()

        with patch("mprober.process.time.sleep", side_effect=advance) as mock_sleep:
            result = get_processes_with_cpu_utilization(ProcessFilter(), 1.0, BOOT, fake_proc.root)

        mock_sleep.assert_called_once_with(1.0)
        shares = {process.program: share for process, share in result}
        assert shares == {"busy": 0.25, "idle": 0.0}

    def test_no_ticks_elapsed(self, fake_proc):
        fake_proc.set_cpu_stat((100, 0, 0, 900, 0, 0, 0, 0, 0, 0))
        fake_proc.add_process(10, comm="busy", utime=0)

        def advance(seconds):
            fake_proc.write("10/stat", stat_line(10, comm="busy", utime=50))

        with patch("mprober.process.time.sleep", side_effect=advance):
            result = get_processes_with_cpu_utilization(ProcessFilter(), 1.0, BOOT, fake_proc.root)

        assert [share for _, share in result] == [0.0]

    def test_interval_must_be_positive(self, fake_proc):
        with pytest.raises(ValueError):
            get_processes_with_cpu_utilization(ProcessFilter(), 0, BOOT, fake_proc.root)
