"""User-triggered process actions."""

from dataclasses import dataclass

import structlog

from taskman.errors import (
    ActionError,
    ActionFailure,
    PermissionDenied,
    ProcessNotFound,
)
from taskman.provider import MetricsProvider

log = structlog.get_logger()


@dataclass(slots=True, frozen=True)
class ActionResult:
    """Outcome of a process action. error is None on success."""

    pid: int
    error: ActionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        """Short text for a UI notice."""
        if self.error is None:
            return f"Sent kill to PID {self.pid}"
        return str(self.error)


class ActionGateway:
    """
    Runs process actions against the metrics provider.

    Actions are fire-and-forget: the gateway only reports whether the
    request was accepted. Whether the process exited is seen on the next
    refresh.
    """

    def __init__(self, provider: MetricsProvider) -> None:
        self._provider = provider

    def terminate(self, pid: int) -> ActionResult:
        """Ask the provider to kill pid. Never raises for provider failures."""
        try:
            self._provider.kill(pid)
        except ProcessNotFound:
            error = ActionError(pid, ActionFailure.NO_SUCH_PROCESS)
        except PermissionDenied:
            error = ActionError(pid, ActionFailure.PERMISSION_DENIED)
        except OSError as exc:
            error = ActionError(pid, ActionFailure.FAILED, str(exc))
        else:
            log.info("process_terminated", pid=pid)
            return ActionResult(pid)

        log.warning("terminate_failed", pid=pid, reason=error.reason.value)
        return ActionResult(pid, error)
