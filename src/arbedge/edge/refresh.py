"""
Background refresh queue for stale cache entries.

Refreshes run as detached asyncio tasks so the request that found the entry
stale is never blocked. At most one refresh per key is in flight. Failures
flow through an explicit error channel: they are logged, counted, and the
most recent failure per key can be inspected.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from arbedge.telemetry.metrics import MetricsCollector


logger = logging.getLogger(__name__)


RefreshJob = Callable[[], Awaitable[bool]]
ErrorCallback = Callable[[str, BaseException], None]


class RefreshQueue:
    """
    Tracks detached refresh tasks keyed by cache key.

    A job returns True when it finished its work (stored a fresh entry, or
    dropped a result made obsolete by invalidation), False when the origin
    answered but the result was not cacheable. Raising counts as a failure.
    """

    def __init__(
        self,
        metrics: MetricsCollector | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._metrics = metrics
        self._on_error = on_error
        self._in_flight: dict[str, asyncio.Task[None]] = {}
        self._last_errors: dict[str, BaseException] = {}

    def schedule(self, key: str, job: RefreshJob) -> bool:
        """
        Start a refresh for ``key`` unless one is already running.

        Returns:
            True if a new refresh task was created.
        """
        if key in self._in_flight:
            return False

        task = asyncio.get_running_loop().create_task(self._run(key, job))
        self._in_flight[key] = task
        return True

    async def _run(self, key: str, job: RefreshJob) -> None:
        try:
            stored = await job()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._last_errors[key] = e
            logger.warning(f"Cache refresh failed for {key}: {e}")
            if self._metrics:
                self._metrics.record_refresh(success=False)
            if self._on_error:
                self._on_error(key, e)
        else:
            if stored:
                self._last_errors.pop(key, None)
                logger.debug(f"Cache refreshed: {key}")
            else:
                logger.info(f"Cache refresh for {key} returned an uncacheable response")
            if self._metrics:
                self._metrics.record_refresh(success=stored)
        finally:
            self._in_flight.pop(key, None)

    def is_pending(self, key: str) -> bool:
        return key in self._in_flight

    def pending_keys(self) -> list[str]:
        return list(self._in_flight)

    def last_error(self, key: str) -> BaseException | None:
        return self._last_errors.get(key)

    @property
    def pending_count(self) -> int:
        return len(self._in_flight)

    async def drain(self) -> None:
        """Wait for every in-flight refresh to finish."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    async def cancel_all(self) -> None:
        """Cancel in-flight refreshes (shutdown)."""
        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()
