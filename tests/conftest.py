"""Shared test fixtures for taskman."""

from pathlib import Path

import pytest

from taskman.errors import PermissionDenied, ProcessNotFound, ProviderUnavailable
from taskman.models import ProcessRecord, Snapshot
from taskman.provider import RefreshScope


def make_record(
    pid: int = 100,
    name: str = "proc",
    user_id: int | None = 1000,
    cpu: float = 0.0,
    memory: int = 0,
    read: int = 0,
    written: int = 0,
) -> ProcessRecord:
    """Create a ProcessRecord for testing."""
    return ProcessRecord(
        pid=pid,
        name=name,
        user_id=user_id,
        cpu_usage_raw=cpu,
        memory_bytes=memory,
        disk_read_bytes=read,
        disk_written_bytes=written,
    )


def make_snapshot(
    records: list[ProcessRecord],
    cores: int = 4,
    taken_at: float = 0.0,
    user_names: dict[int, str] | None = None,
) -> Snapshot:
    """Create a Snapshot from records, keyed by PID in list order."""
    return Snapshot(
        processes={r.pid: r for r in records},
        logical_core_count=cores,
        global_cpu_usage=12.5,
        used_memory_bytes=4 * 1024**3,
        total_memory_bytes=16 * 1024**3,
        taken_at=taken_at,
        user_names=user_names or {},
    )


class FakeProvider:
    """In-memory MetricsProvider for tests."""

    def __init__(
        self,
        records: list[ProcessRecord] | None = None,
        users: dict[int, str] | None = None,
        cores: int = 4,
    ) -> None:
        self.records = list(records or [])
        self.users = dict(users or {})
        self.cores = cores
        self.cpu = 12.5
        self.used = 4 * 1024**3
        self.total = 16 * 1024**3
        self.fail_refresh = False
        self.refresh_calls: list[RefreshScope] = []
        self.killed: list[int] = []
        self.protected: set[int] = set()

    def refresh(self, scope: RefreshScope = RefreshScope.ALL) -> None:
        self.refresh_calls.append(scope)
        if self.fail_refresh:
            raise ProviderUnavailable("process table unreadable")

    def enumerate_processes(self) -> list[ProcessRecord]:
        return list(self.records)

    def logical_core_count(self) -> int:
        return self.cores

    def global_cpu_usage(self) -> float:
        return self.cpu

    def used_memory(self) -> int:
        return self.used

    def total_memory(self) -> int:
        return self.total

    def resolve_user(self, user_id: int) -> str | None:
        return self.users.get(user_id)

    def kill(self, pid: int) -> None:
        if pid in self.protected:
            raise PermissionDenied(pid)
        if pid not in {r.pid for r in self.records}:
            raise ProcessNotFound(pid)
        self.killed.append(pid)


@pytest.fixture
def provider() -> FakeProvider:
    """Fake provider with a handful of processes."""
    return FakeProvider(
        records=[
            make_record(pid=1, name="init", user_id=0, cpu=0.5, memory=8 * 1024**2),
            make_record(pid=200, name="firefox", user_id=1000, cpu=150.0, memory=900 * 1024**2),
            make_record(pid=300, name="bash", user_id=1000, cpu=0.0, memory=4 * 1024**2),
        ],
        users={0: "root", 1000: "alice"},
    )


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    """Temporary view state file path."""
    return tmp_path / "state" / "view_state.json"
