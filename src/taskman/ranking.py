"""Process ranking: filter, sort and derive display metrics."""

import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from taskman.formatting import (
    BYTES_PER_MB,
    format_megabytes,
    format_network,
    format_percent,
    format_rate,
)
from taskman.models import ProcessRecord, Snapshot, SortKey


def _metric(value: object) -> float:
    """Normalize a numeric field; missing or malformed values sort as 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    return float(value)


def _name_key(record: ProcessRecord) -> str:
    return record.name if isinstance(record.name, str) else ""


def _user_key(record: ProcessRecord) -> tuple[int, int]:
    # Absent user ids sort before every real one
    if isinstance(record.user_id, int) and not isinstance(record.user_id, bool):
        return (1, record.user_id)
    return (0, 0)


def _disk_total(record: ProcessRecord) -> float:
    return _metric(record.disk_read_bytes) + _metric(record.disk_written_bytes)


# Descending keys are negated so that a pid tie-break still sorts ascending
_SORT_KEYS: dict[SortKey, Callable[[ProcessRecord], Any]] = {
    SortKey.NAME: _name_key,
    SortKey.USER: _user_key,
    SortKey.CPU: lambda r: -_metric(r.cpu_usage_raw),
    SortKey.MEMORY: lambda r: -_metric(r.memory_bytes),
    SortKey.DISK: lambda r: -_disk_total(r),
}


def rank(
    snapshot: Snapshot,
    sort_key: SortKey,
    *,
    tie_break_pid: bool = False,
) -> list[ProcessRecord]:
    """
    Order the snapshot's processes by sort_key.

    The sort is stable: ties keep the snapshot's iteration order, which is
    whatever order the provider enumerated in. Pass tie_break_pid=True to
    break ties by ascending PID for fully deterministic output.
    SortKey.NETWORK compares every record as equal.
    """
    records = list(snapshot.processes.values())
    key_func = _SORT_KEYS.get(sort_key)

    if key_func is None:
        if tie_break_pid:
            records.sort(key=lambda r: r.pid)
        return records

    if tie_break_pid:
        return sorted(records, key=lambda r: (key_func(r), r.pid))
    return sorted(records, key=key_func)


def filter_records(records: Iterable[ProcessRecord], text: str) -> list[ProcessRecord]:
    """Keep records whose name contains text (case-insensitive) or whose PID starts with it."""
    needle = text.strip().lower()
    if not needle:
        return list(records)
    return [
        record
        for record in records
        if needle in _name_key(record).lower() or str(record.pid).startswith(needle)
    ]


def disk_rate(record: ProcessRecord, previous: Snapshot | None, elapsed: float) -> float:
    """
    Disk throughput in bytes per second since the previous snapshot.

    The provider reports cumulative counters, so the rate is the counter
    delta divided by elapsed time. Returns 0.0 for new PIDs, the first
    sample, or a counter that went backwards (PID reused by a new process).
    """
    if previous is None or elapsed <= 0:
        return 0.0
    before = previous.processes.get(record.pid)
    if before is None:
        return 0.0
    delta = _disk_total(record) - _disk_total(before)
    if delta <= 0:
        return 0.0
    return delta / elapsed


@dataclass(slots=True, frozen=True)
class ProcessRow:
    """One table row with derived display metrics."""

    pid: int
    name: str
    user: str
    cpu_percent: float  # 0.0 - 100.0 of the whole system
    memory_bytes: int
    disk_bytes_per_second: float
    network_mbps: float = 0.0

    @property
    def memory_mb(self) -> float:
        return self.memory_bytes / BYTES_PER_MB

    @property
    def disk_mb_per_second(self) -> float:
        return self.disk_bytes_per_second / BYTES_PER_MB

    def cells(self) -> tuple[str, str, str, str, str, str]:
        """Formatted cells: name, user, CPU, memory, disk, network."""
        return (
            self.name,
            self.user,
            format_percent(self.cpu_percent),
            format_megabytes(self.memory_bytes),
            format_rate(self.disk_bytes_per_second),
            format_network(self.network_mbps),
        )


def make_row(
    record: ProcessRecord,
    snapshot: Snapshot,
    previous: Snapshot | None = None,
    elapsed: float = 0.0,
) -> ProcessRow:
    """Derive a ProcessRow from a record and the snapshot it belongs to."""
    user = ""
    if isinstance(record.user_id, int):
        user = snapshot.user_names.get(record.user_id, "")

    return ProcessRow(
        pid=record.pid,
        name=_name_key(record),
        user=user,
        cpu_percent=_metric(record.cpu_usage_raw) / snapshot.logical_core_count,
        memory_bytes=int(_metric(record.memory_bytes)),
        disk_bytes_per_second=disk_rate(record, previous, elapsed),
    )


def build_rows(
    snapshot: Snapshot,
    sort_key: SortKey,
    *,
    previous: Snapshot | None = None,
    elapsed: float = 0.0,
    search: str = "",
    tie_break_pid: bool = False,
) -> list[ProcessRow]:
    """Filter, rank and derive the rows to display for one tick."""
    ranked = rank(snapshot, sort_key, tie_break_pid=tie_break_pid)
    return [
        make_row(record, snapshot, previous, elapsed)
        for record in filter_records(ranked, search)
    ]
