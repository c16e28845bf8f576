"""Tests for process ranking and row derivation."""

import math

import pytest
from conftest import make_record, make_snapshot

from taskman.models import SortKey
from taskman.ranking import build_rows, disk_rate, filter_records, make_row, rank


@pytest.fixture
def snapshot():
    """Snapshot with distinct values for every sort key, in scrambled order."""
    return make_snapshot(
        [
            make_record(pid=30, name="zsh", user_id=1000, cpu=5.0, memory=300, read=10, written=0),
            make_record(pid=10, name="Xorg", user_id=0, cpu=80.0, memory=100, read=500, written=500),
            make_record(pid=20, name="cron", user_id=None, cpu=0.0, memory=900, read=0, written=50),
            make_record(pid=40, name="alpha", user_id=33, cpu=20.0, memory=200, read=0, written=0),
        ]
    )


def pids(records):
    return [r.pid for r in records]


class TestRank:
    """Tests for rank()."""

    def test_name_ascending(self, snapshot):
        # Codepoint order: uppercase before lowercase
        assert pids(rank(snapshot, SortKey.NAME)) == [10, 40, 20, 30]

    def test_user_ascending_absent_first(self, snapshot):
        assert pids(rank(snapshot, SortKey.USER)) == [20, 10, 40, 30]

    def test_cpu_descending(self, snapshot):
        assert pids(rank(snapshot, SortKey.CPU)) == [10, 40, 30, 20]

    def test_memory_descending(self, snapshot):
        assert pids(rank(snapshot, SortKey.MEMORY)) == [20, 30, 40, 10]

    def test_disk_descending(self, snapshot):
        assert pids(rank(snapshot, SortKey.DISK)) == [10, 20, 30, 40]

    def test_network_keeps_snapshot_order(self, snapshot):
        assert pids(rank(snapshot, SortKey.NETWORK)) == [30, 10, 20, 40]

    def test_one_row_per_process(self, snapshot):
        """Test no record is lost or duplicated for any key."""
        for key in SortKey:
            ranked = rank(snapshot, key)
            assert sorted(pids(ranked)) == sorted(snapshot.processes)

    def test_deterministic(self, snapshot):
        for key in SortKey:
            assert rank(snapshot, key) == rank(snapshot, key)

    def test_resorting_does_not_mutate_input(self, snapshot):
        """Test Cpu -> Memory -> Cpu reproduces the first Cpu ordering."""
        first = rank(snapshot, SortKey.CPU)
        rank(snapshot, SortKey.MEMORY)
        assert rank(snapshot, SortKey.CPU) == first
        assert pids(snapshot.processes.values()) == [30, 10, 20, 40]

    def test_ties_keep_snapshot_order(self):
        """Test equal keys keep the provider's enumeration order."""
        snap = make_snapshot(
            [
                make_record(pid=9, cpu=1.0),
                make_record(pid=3, cpu=1.0),
                make_record(pid=5, cpu=2.0),
                make_record(pid=1, cpu=1.0),
            ]
        )
        assert pids(rank(snap, SortKey.CPU)) == [5, 9, 3, 1]

    def test_tie_break_by_pid(self):
        """Test the optional PID tie-break sorts equal keys by ascending PID."""
        snap = make_snapshot(
            [
                make_record(pid=9, cpu=1.0),
                make_record(pid=3, cpu=1.0),
                make_record(pid=5, cpu=2.0),
                make_record(pid=1, cpu=1.0),
            ]
        )
        assert pids(rank(snap, SortKey.CPU, tie_break_pid=True)) == [5, 1, 3, 9]
        assert pids(rank(snap, SortKey.NETWORK, tie_break_pid=True)) == [1, 3, 5, 9]

    def test_malformed_metrics_sort_as_zero(self):
        """Test NaN and missing values don't abort the sort."""
        snap = make_snapshot(
            [
                make_record(pid=1, cpu=math.nan),
                make_record(pid=2, cpu=3.0),
                make_record(pid=3, cpu=None),
                make_record(pid=4, cpu=-1.0),
            ]
        )
        ranked = pids(rank(snap, SortKey.CPU))
        assert ranked[0] == 2
        assert sorted(ranked) == [1, 2, 3, 4]

    def test_empty_snapshot(self):
        assert rank(make_snapshot([]), SortKey.CPU) == []


class TestFilterRecords:
    """Tests for filter_records()."""

    def test_blank_keeps_all(self, snapshot):
        records = list(snapshot.processes.values())
        assert filter_records(records, "  ") == records

    def test_name_substring_case_insensitive(self, snapshot):
        assert pids(filter_records(snapshot.processes.values(), "XO")) == [10]

    def test_pid_prefix(self, snapshot):
        assert pids(filter_records(snapshot.processes.values(), "4")) == [40]

    def test_keeps_order(self, snapshot):
        ranked = rank(snapshot, SortKey.CPU)
        assert pids(filter_records(ranked, "r")) == [10, 20]


class TestDiskRate:
    """Tests for disk_rate()."""

    def test_delta_over_elapsed(self):
        before = make_snapshot([make_record(pid=1, read=1000, written=0)])
        record = make_record(pid=1, read=3000, written=1000)
        assert disk_rate(record, before, 2.0) == 1500.0

    def test_first_sample(self):
        assert disk_rate(make_record(pid=1, read=5000), None, 1.0) == 0.0

    def test_new_pid(self):
        before = make_snapshot([make_record(pid=2, read=10)])
        assert disk_rate(make_record(pid=1, read=5000), before, 1.0) == 0.0

    def test_counter_went_backwards(self):
        """Test a reused PID with smaller counters reads as zero."""
        before = make_snapshot([make_record(pid=1, read=5000)])
        assert disk_rate(make_record(pid=1, read=10), before, 1.0) == 0.0

    def test_zero_elapsed(self):
        before = make_snapshot([make_record(pid=1, read=0)])
        assert disk_rate(make_record(pid=1, read=10), before, 0.0) == 0.0


class TestRows:
    """Tests for make_row() and build_rows()."""

    def test_derived_metrics(self):
        snap = make_snapshot(
            [make_record(pid=7, name="ffmpeg", user_id=1000, cpu=200.0, memory=1_572_864)],
            cores=8,
            user_names={1000: "alice"},
        )
        row = make_row(snap.processes[7], snap)

        assert row.cpu_percent == 25.0
        assert row.memory_mb == 1.5
        assert row.user == "alice"
        assert row.cells() == ("ffmpeg", "alice", "25.00%", "1.50 MB", "0 MB/s", "0 Mbps")

    def test_unknown_user_is_blank(self):
        snap = make_snapshot([make_record(pid=7, user_id=4242), make_record(pid=8, user_id=None)])
        assert make_row(snap.processes[7], snap).user == ""
        assert make_row(snap.processes[8], snap).user == ""

    def test_build_rows_uses_previous_snapshot(self):
        mib = 1024 * 1024
        before = make_snapshot([make_record(pid=1, read=0)], taken_at=10.0)
        after = make_snapshot([make_record(pid=1, read=4 * mib)], taken_at=12.0)

        rows = build_rows(after, SortKey.DISK, previous=before, elapsed=2.0)

        assert rows[0].disk_mb_per_second == 2.0
        assert rows[0].cells()[4] == "2.00 MB/s"

    def test_build_rows_filters_and_sorts(self, snapshot):
        rows = build_rows(snapshot, SortKey.MEMORY, search="r")
        assert [row.pid for row in rows] == [20, 10]

    def test_build_rows_skips_exited_process(self):
        """Test a PID gone from the current snapshot is not shown."""
        before = make_snapshot([make_record(pid=1), make_record(pid=2)])
        after = make_snapshot([make_record(pid=2)])

        rows = build_rows(after, SortKey.CPU, previous=before, elapsed=1.0)

        assert [row.pid for row in rows] == [2]
