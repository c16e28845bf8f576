"""System metrics provider for taskman."""

import math
from collections.abc import Iterable
from enum import Flag, auto
from typing import Protocol

import psutil
import structlog

from taskman.errors import PermissionDenied, ProcessNotFound, ProviderUnavailable
from taskman.models import ProcessRecord, Snapshot

log = structlog.get_logger()


class RefreshScope(Flag):
    """Which OS tables a refresh should re-read."""

    CPU = auto()
    MEMORY = auto()
    PROCESSES = auto()
    ALL = CPU | MEMORY | PROCESSES


class MetricsProvider(Protocol):
    """Boundary to the OS: process enumeration and control."""

    def refresh(self, scope: RefreshScope = RefreshScope.ALL) -> None: ...

    def enumerate_processes(self) -> Iterable[ProcessRecord]: ...

    def logical_core_count(self) -> int: ...

    def global_cpu_usage(self) -> float: ...

    def used_memory(self) -> int: ...

    def total_memory(self) -> int: ...

    def resolve_user(self, user_id: int) -> str | None: ...

    def kill(self, pid: int) -> None: ...


def _number(value: object, default: float = 0.0) -> float:
    """Coerce a provider value to a finite, non-negative float."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value) or value < 0:
        return default
    return float(value)


class PsutilProvider:
    """
    Metrics provider backed by psutil.

    Refresh reads the process table once and caches the result, so
    enumerate_processes() and friends are cheap between refreshes.
    Handles NoSuchProcess, AccessDenied and ZombieProcess errors gracefully.
    """

    def __init__(self) -> None:
        """Initialize the provider and prime CPU counters."""
        self._processes: list[ProcessRecord] = []
        self._user_names: dict[int, str] = {}
        # Session ids for platforms without uids, keyed by account name
        self._account_ids: dict[str, int] = {}
        self._cpu_usage = 0.0
        self._memory_used = 0
        self._memory_total = 0
        self._core_count = psutil.cpu_count(logical=True) or 1
        self._attrs = self._supported_attrs()
        # First cpu_percent call returns 0.0; later calls measure since this one
        psutil.cpu_percent(interval=None)

    @staticmethod
    def _supported_attrs() -> list[str]:
        """Attributes to fetch, limited to what this platform supports."""
        attrs = ["pid", "name", "username", "cpu_percent", "memory_info"]
        # io_counters is missing on macOS, uids on Windows
        for optional in ("io_counters", "uids"):
            if hasattr(psutil.Process, optional):
                attrs.append(optional)
        return attrs

    def refresh(self, scope: RefreshScope = RefreshScope.ALL) -> None:
        """Re-read the OS tables named by scope."""
        try:
            if RefreshScope.CPU in scope:
                self._cpu_usage = psutil.cpu_percent(interval=None)
            if RefreshScope.MEMORY in scope:
                mem = psutil.virtual_memory()
                self._memory_used = mem.used
                self._memory_total = mem.total
        except (OSError, RuntimeError) as exc:
            raise ProviderUnavailable(f"Failed to read system counters: {exc}") from exc

        if RefreshScope.PROCESSES in scope:
            self._processes = self._collect_processes()

    def _collect_processes(self) -> list[ProcessRecord]:
        """
        Collect records of all running processes.

        Uses psutil.process_iter() which caches Process objects, so
        cpu_percent is measured against the previous refresh.
        """
        records: list[ProcessRecord] = []
        try:
            proc_iter = psutil.process_iter(attrs=self._attrs, ad_value=None)
            for proc in proc_iter:
                try:
                    records.append(self._record_from_info(proc.info))
                except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                    # Process died mid-poll or is hidden from us
                    continue
        except OSError as exc:
            raise ProviderUnavailable(f"Failed to enumerate processes: {exc}") from exc
        return records

    def _record_from_info(self, info: dict) -> ProcessRecord:
        """Build a ProcessRecord with safe defaults for None values."""
        user_id = None
        uids = info.get("uids")
        username = info.get("username")
        if uids is not None:
            user_id = uids.real
        elif username:
            user_id = self._account_ids.setdefault(username, len(self._account_ids))
        if user_id is not None and username:
            self._user_names[user_id] = username

        mem_info = info.get("memory_info")
        io = info.get("io_counters")

        return ProcessRecord(
            pid=info["pid"],
            name=info.get("name") or "",
            user_id=user_id,
            cpu_usage_raw=_number(info.get("cpu_percent")),
            memory_bytes=int(_number(mem_info.rss)) if mem_info else 0,
            disk_read_bytes=int(_number(io.read_bytes)) if io else 0,
            disk_written_bytes=int(_number(io.write_bytes)) if io else 0,
        )

    def enumerate_processes(self) -> list[ProcessRecord]:
        """Records collected by the last refresh."""
        return list(self._processes)

    def logical_core_count(self) -> int:
        return self._core_count

    def global_cpu_usage(self) -> float:
        return self._cpu_usage

    def used_memory(self) -> int:
        return self._memory_used

    def total_memory(self) -> int:
        return self._memory_total

    def resolve_user(self, user_id: int) -> str | None:
        """Name of a user seen during refresh, or None."""
        return self._user_names.get(user_id)

    def kill(self, pid: int) -> None:
        """Send a kill signal; does not wait for the process to exit."""
        try:
            psutil.Process(pid).kill()
        except (psutil.NoSuchProcess, ValueError) as exc:
            raise ProcessNotFound(pid) from exc
        except psutil.AccessDenied as exc:
            raise PermissionDenied(pid) from exc


def take_snapshot(provider: MetricsProvider, taken_at: float) -> Snapshot:
    """
    Build a Snapshot from the provider's current tables.

    Duplicate PIDs keep their first record. User ids are resolved once each.

    Raises:
        ProviderUnavailable: If the provider's counters cannot be read.
    """
    try:
        records = list(provider.enumerate_processes())
        core_count = provider.logical_core_count()
        cpu_usage = provider.global_cpu_usage()
        used = provider.used_memory()
        total = provider.total_memory()
    except ProviderUnavailable:
        raise
    except (OSError, RuntimeError) as exc:
        raise ProviderUnavailable(str(exc)) from exc

    processes: dict[int, ProcessRecord] = {}
    user_names: dict[int, str] = {}
    for record in records:
        if record.pid in processes:
            log.debug("duplicate_pid", pid=record.pid)
            continue
        processes[record.pid] = record
        user_id = record.user_id
        if user_id is None or user_id in user_names:
            continue
        try:
            name = provider.resolve_user(user_id)
        except PermissionDenied:
            name = None
        if name:
            user_names[user_id] = name

    return Snapshot(
        processes=processes,
        logical_core_count=core_count or 1,
        global_cpu_usage=_number(cpu_usage),
        used_memory_bytes=int(_number(used)),
        total_memory_bytes=int(_number(total)),
        taken_at=taken_at,
        user_names=user_names,
    )
