"""Refresh throttling for taskman."""

import time
from collections.abc import Callable

import structlog

from taskman.errors import ProviderUnavailable
from taskman.models import Snapshot
from taskman.provider import MetricsProvider, RefreshScope, take_snapshot

log = structlog.get_logger()

DEFAULT_REFRESH_INTERVAL = 1.0
MIN_REFRESH_INTERVAL = 0.1


def maybe_refresh(
    now: float,
    last_refresh: float,
    interval: float = DEFAULT_REFRESH_INTERVAL,
) -> bool:
    """Return True when at least `interval` seconds have passed since `last_refresh`."""
    return now - last_refresh >= interval


class RefreshScheduler:
    """
    Owns the metrics provider and decides when to pull a new snapshot.

    The UI calls tick() on every frame; the provider is polled at most once
    per interval. Exactly one previous snapshot is retained for rate metrics.
    """

    def __init__(
        self,
        provider: MetricsProvider,
        interval: float = DEFAULT_REFRESH_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the RefreshScheduler.

        Args:
            provider: Metrics provider to poll.
            interval: Minimum seconds between provider refreshes. Default 1.0s.
            clock: Monotonic time source.
        """
        self._provider = provider
        self._interval = max(MIN_REFRESH_INTERVAL, interval)
        self._clock = clock
        self._last_refresh: float | None = None
        self._snapshot = Snapshot.empty()
        self._previous: Snapshot | None = None
        self._has_snapshot = False
        self._last_error: ProviderUnavailable | None = None

    @property
    def interval(self) -> float:
        """Get the refresh interval."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Set the refresh interval."""
        self._interval = max(MIN_REFRESH_INTERVAL, value)

    @property
    def snapshot(self) -> Snapshot:
        """Latest good snapshot."""
        return self._snapshot

    @property
    def previous(self) -> Snapshot | None:
        """Snapshot before the latest one, if any."""
        return self._previous

    @property
    def elapsed(self) -> float:
        """Seconds between the previous and the latest snapshot."""
        if self._previous is None:
            return 0.0
        return self._snapshot.taken_at - self._previous.taken_at

    @property
    def last_error(self) -> ProviderUnavailable | None:
        """Error from the most recent refresh attempt, cleared on success."""
        return self._last_error

    def tick(self, now: float | None = None) -> bool:
        """
        Refresh the snapshot if the interval has elapsed.

        Returns:
            True if a new snapshot was taken.
        """
        if now is None:
            now = self._clock()
        if self._last_refresh is not None and not maybe_refresh(
            now, self._last_refresh, self._interval
        ):
            return False

        # Advance even on failure so a broken provider is not hammered every frame
        self._last_refresh = now
        try:
            self._provider.refresh(RefreshScope.ALL)
            snapshot = take_snapshot(self._provider, taken_at=now)
        except ProviderUnavailable as exc:
            self._last_error = exc
            log.warning("provider_unavailable", error=str(exc))
            return False

        if self._has_snapshot:
            self._previous = self._snapshot
        self._snapshot = snapshot
        self._has_snapshot = True
        self._last_error = None
        log.debug("snapshot_refreshed", process_count=len(snapshot.processes))
        return True
