"""Data models for taskman."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType


class SortKey(Enum):
    """Sort keys for the process table."""

    NAME = "Name"
    USER = "User"
    CPU = "Cpu"
    MEMORY = "Memory"
    DISK = "Disk"
    NETWORK = "Network"  # Reserved, always compares equal


class Window(Enum):
    """Top-level tabs of the application."""

    PROCESSES = "Processes"
    PERFORMANCE = "Performance"
    APP_HISTORY = "AppHistory"
    STARTUP_APPS = "StartupApps"
    USERS = "Users"
    DETAILS = "Details"
    SERVICES = "Services"
    SETTINGS = "Settings"


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable record of one live process at sample time."""

    pid: int
    name: str
    user_id: int | None  # None when the OS hides the owner
    cpu_usage_raw: float  # 0.0 - 100.0 * core_count
    memory_bytes: int
    disk_read_bytes: int  # Cumulative since process start
    disk_written_bytes: int

    @property
    def disk_total_bytes(self) -> int:
        """Bytes read plus bytes written."""
        return self.disk_read_bytes + self.disk_written_bytes


def _frozen_mapping(value: Mapping) -> Mapping:
    return MappingProxyType(dict(value))


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Full system state at one refresh instant."""

    processes: Mapping[int, ProcessRecord]
    logical_core_count: int
    global_cpu_usage: float
    used_memory_bytes: int
    total_memory_bytes: int
    taken_at: float = 0.0  # Monotonic seconds
    user_names: Mapping[int, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "processes", _frozen_mapping(self.processes))
        object.__setattr__(self, "user_names", _frozen_mapping(self.user_names))
        object.__setattr__(self, "logical_core_count", max(1, int(self.logical_core_count)))

    @property
    def memory_percent(self) -> float:
        """Used memory as a percentage of total memory."""
        if self.total_memory_bytes <= 0:
            return 0.0
        return self.used_memory_bytes / self.total_memory_bytes * 100.0

    @classmethod
    def empty(cls, taken_at: float = 0.0) -> "Snapshot":
        """Snapshot with no processes, used before the first refresh."""
        return cls(
            processes={},
            logical_core_count=1,
            global_cpu_usage=0.0,
            used_memory_bytes=0,
            total_memory_bytes=0,
            taken_at=taken_at,
        )


@dataclass(slots=True)
class AppViewState:
    """Persisted view state: active tab and process sort key."""

    current_window: Window = Window.PROCESSES
    processes_sort: SortKey = SortKey.CPU
