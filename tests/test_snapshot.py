"""Tests for ProcessSnapshotBuilder."""

import os
from contextlib import nullcontext
from datetime import timedelta, timezone
from types import SimpleNamespace

import psutil
import pytest

import procscope.snapshot
from procscope.snapshot import ProcessSnapshotBuilder
from procscope.tree import ProcessTreeResolver

HREF = "http://host/api/processes/10/"

PROCFS_STATUS = {"VmHWM": 8 * 1024 * 1024, "VmPeak": 64 * 1024 * 1024}


class StaticLookup:
    def __init__(self, table: dict[int, int]) -> None:
        self.table = table

    def parent_table(self) -> dict[int, int]:
        return dict(self.table)


class FakeProcess:
    """Linux-like process whose reads can be made to fail one by one."""

    def __init__(self, pid: int = 10, name: str = "worker", fail=(), gone: bool = False) -> None:
        self.pid = pid
        self._name = name
        self._fail = set(fail)
        self._gone = gone

    def _read(self, metric, value):
        if self._gone:
            raise psutil.NoSuchProcess(self.pid)
        if metric in self._fail:
            raise psutil.AccessDenied(self.pid)
        return value

    def oneshot(self):
        return nullcontext()

    def name(self):
        return self._read("name", self._name)

    def num_fds(self):
        return self._read("num_fds", 17)

    def num_threads(self):
        return self._read("num_threads", 4)

    def memory_maps(self, grouped=True):
        maps = [
            SimpleNamespace(path="/usr/bin/worker"),
            SimpleNamespace(path="/usr/lib/libc.so.6"),
            SimpleNamespace(path="[heap]"),
            SimpleNamespace(path=""),
        ]
        return self._read("memory_maps", maps)

    def exe(self):
        return self._read("exe", "/usr/bin/worker")

    def create_time(self):
        return self._read("create_time", 1_700_000_000.0)

    def cpu_times(self):
        return self._read("cpu_times", SimpleNamespace(user=1.5, system=0.25))

    def memory_info(self):
        return self._read("memory_info", SimpleNamespace(rss=4 * 1024 * 1024, vms=32 * 1024 * 1024))

    def memory_full_info(self):
        return self._read("memory_full_info", SimpleNamespace(uss=3 * 1024 * 1024))


@pytest.fixture
def fake_procfs(monkeypatch):
    """Serve VmHWM / VmPeak from a fixed table instead of /proc."""

    def read(pid, key):
        return PROCFS_STATUS[key]

    monkeypatch.setattr(procscope.snapshot, "_procfs_status_bytes", read)


@pytest.fixture
def builder():
    return ProcessSnapshotBuilder(ProcessTreeResolver(StaticLookup({1: 0, 10: 1, 11: 10, 12: 10})))


class TestSummary:
    """Tests for summary mode."""

    def test_summary_has_identity_only(self, builder):
        """Test summary mode sets id, name and href only."""
        record = builder.summary(FakeProcess(), HREF)

        assert record.id == 10
        assert record.name == "worker"
        assert record.href == "http://host/api/processes/10"
        assert record.thread_count is None
        assert record.dump_href is None

    def test_build_dispatches_on_mode(self, builder, fake_procfs):
        """Test build() picks summary or detailed mode."""
        assert builder.build(FakeProcess(), HREF).thread_count is None
        assert builder.build(FakeProcess(), HREF, detailed=True).thread_count == 4

    def test_summary_of_exited_process_raises(self, builder):
        """Test identity failure is left for the caller to translate."""
        with pytest.raises(psutil.NoSuchProcess):
            builder.summary(FakeProcess(gone=True), HREF)


class TestDetailed:
    """Tests for detailed mode."""

    def test_all_linux_fields_populated(self, builder, fake_procfs):
        """Test every readable metric is set when nothing fails."""
        record = builder.detailed(FakeProcess(), HREF)

        assert record.handle_count == 17
        assert record.thread_count == 4
        assert record.module_count == 2
        assert record.file_name == "/usr/bin/worker"
        assert record.user_cpu_time == 1.5
        assert record.privileged_cpu_time == 0.25
        assert record.total_cpu_time == 1.75
        assert record.working_set == 4 * 1024 * 1024
        assert record.virtual_memory == 32 * 1024 * 1024
        assert record.peak_working_set == PROCFS_STATUS["VmHWM"]
        assert record.peak_virtual_memory == PROCFS_STATUS["VmPeak"]
        assert record.private_working_set == 3 * 1024 * 1024
        assert record.private_memory == 3 * 1024 * 1024

    def test_windows_only_fields_absent(self, builder, fake_procfs):
        """Test pool and pagefile sizes are absent, not zero, on Linux."""
        record = builder.detailed(FakeProcess(), HREF)

        assert record.paged_system_memory is None
        assert record.nonpaged_system_memory is None
        assert record.paged_memory is None
        assert record.peak_paged_memory is None

    def test_windows_memory_fields(self, builder, monkeypatch):
        """Test Windows memory_info fields map onto the record."""
        process = FakeProcess()
        monkeypatch.setattr(
            process,
            "memory_info",
            lambda: SimpleNamespace(
                rss=100,
                vms=900,
                peak_wset=150,
                paged_pool=10,
                nonpaged_pool=5,
                pagefile=80,
                peak_pagefile=120,
                private=80,
            ),
        )

        record = builder.detailed(process, HREF)

        assert record.working_set == 100
        assert record.peak_working_set == 150
        assert record.paged_system_memory == 10
        assert record.nonpaged_system_memory == 5
        assert record.paged_memory == 80
        assert record.peak_paged_memory == 120
        assert record.private_memory == 80

    def test_start_time_is_utc(self, builder, fake_procfs):
        """Test start time is an aware UTC datetime."""
        record = builder.detailed(FakeProcess(), HREF)

        assert record.start_time.tzinfo is timezone.utc
        assert record.start_time.timestamp() == 1_700_000_000.0

    def test_links(self, builder, fake_procfs):
        """Test self, dump, parent and children links derive from the href."""
        record = builder.detailed(FakeProcess(), HREF)

        assert record.href == "http://host/api/processes/10"
        assert record.dump_href == "http://host/api/processes/10/dump"
        assert record.parent_href == "http://host/api/processes/1"
        assert record.children_hrefs == (
            "http://host/api/processes/11",
            "http://host/api/processes/12",
        )

    def test_dangling_parent_link(self, fake_procfs):
        """Test a parent that no longer exists still yields a link."""
        builder = ProcessSnapshotBuilder(ProcessTreeResolver(StaticLookup({10: 999})))

        record = builder.detailed(FakeProcess(), HREF)

        assert record.parent_href == "http://host/api/processes/999"
        assert record.children_hrefs == ()

    def test_missing_from_tree_leaves_links_absent(self, fake_procfs):
        """Test a process missing from the parent table gets no relationship links."""
        builder = ProcessSnapshotBuilder(ProcessTreeResolver(StaticLookup({1: 0})))

        record = builder.detailed(FakeProcess(), HREF)

        assert record.parent_href is None
        assert record.children_hrefs is None
        assert record.dump_href == "http://host/api/processes/10/dump"

    @pytest.mark.parametrize(
        ("metric", "field"),
        [
            ("num_fds", "handle_count"),
            ("num_threads", "thread_count"),
            ("memory_maps", "module_count"),
            ("exe", "file_name"),
            ("create_time", "start_time"),
        ],
    )
    def test_single_failure_is_contained(self, builder, fake_procfs, metric, field):
        """Test one failing read leaves only its field absent."""
        reference = builder.detailed(FakeProcess(), HREF).as_dict()

        record = builder.detailed(FakeProcess(fail={metric}), HREF)

        assert getattr(record, field) is None
        data = record.as_dict()
        reference.pop(field)
        assert data == reference

    def test_cpu_times_failure(self, builder, fake_procfs):
        """Test a failing cpu_times read drops all three CPU fields."""
        record = builder.detailed(FakeProcess(fail={"cpu_times"}), HREF)

        assert record.total_cpu_time is None
        assert record.user_cpu_time is None
        assert record.privileged_cpu_time is None
        assert record.thread_count == 4

    def test_memory_info_failure(self, builder, fake_procfs):
        """Test a failing memory_info read leaves memory_info fields absent."""
        record = builder.detailed(FakeProcess(fail={"memory_info"}), HREF)

        assert record.working_set is None
        assert record.virtual_memory is None
        assert record.private_working_set == 3 * 1024 * 1024

    def test_empty_exe_is_absent(self, builder, fake_procfs, monkeypatch):
        """Test an empty executable path is treated as unavailable."""
        process = FakeProcess()
        monkeypatch.setattr(process, "exe", lambda: "")

        assert builder.detailed(process, HREF).file_name is None

    def test_exited_process_raises(self, builder):
        """Test an unresolvable identity propagates."""
        with pytest.raises(psutil.NoSuchProcess):
            builder.detailed(FakeProcess(gone=True), HREF)


class TestLiveProcess:
    """Detailed records of the test process itself."""

    def test_self_record_is_consistent(self):
        """Test populated fields of a live record agree with each other."""
        record = ProcessSnapshotBuilder().detailed(psutil.Process(os.getpid()), "/processes/self")

        assert record.id == os.getpid()
        assert record.name
        assert record.thread_count is not None and record.thread_count >= 1
        if record.working_set is not None and record.peak_working_set is not None:
            assert record.peak_working_set >= record.working_set
        if record.virtual_memory is not None and record.peak_virtual_memory is not None:
            assert record.peak_virtual_memory >= record.virtual_memory
        if record.total_cpu_time is not None:
            assert record.total_cpu_time >= record.user_cpu_time + record.privileged_cpu_time
        if record.start_time is not None:
            assert record.start_time.utcoffset() == timedelta(0)
        assert record.parent_href == f"/processes/{os.getppid()}"
