"""Error types for taskman."""

from enum import Enum


class TaskmanError(Exception):
    """Base class for taskman errors."""


class ProviderUnavailable(TaskmanError):
    """The metrics provider could not complete a refresh."""


class PermissionDenied(TaskmanError):
    """The OS refused access to a process."""

    def __init__(self, pid: int, message: str = "") -> None:
        super().__init__(message or f"Permission denied for PID {pid}")
        self.pid = pid


class ProcessNotFound(TaskmanError):
    """The process no longer exists."""

    def __init__(self, pid: int, message: str = "") -> None:
        super().__init__(message or f"No process with PID {pid}")
        self.pid = pid


class ActionFailure(Enum):
    """Why a process action was rejected."""

    NO_SUCH_PROCESS = "no such process"
    PERMISSION_DENIED = "permission denied"
    FAILED = "failed"


class ActionError(TaskmanError):
    """A user-triggered process action was rejected."""

    def __init__(self, pid: int, reason: ActionFailure, detail: str = "") -> None:
        message = f"Cannot terminate PID {pid}: {reason.value}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.pid = pid
        self.reason = reason
        self.detail = detail
