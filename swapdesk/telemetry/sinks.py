"""
Telemetry sinks and the fan-out bus the swap core emits into.

Sinks never raise into the swap flow: a failing sink is logged and the
remaining sinks still receive the event.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

import httpx
import structlog

from ..config import Settings, settings as default_settings
from .events import TelemetryEvent, TelemetryEventKind

_slog = structlog.stdlib.get_logger("telemetry")


class TelemetrySink(Protocol):
    def emit(self, event: TelemetryEvent) -> None:
        ...


class TelemetryBus:
    """Fans events out to every registered sink."""

    def __init__(
        self,
        sinks: Optional[List[TelemetrySink]] = None,
        *,
        enabled: Optional[bool] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._sinks: List[TelemetrySink] = list(sinks or [])
        self._enabled = default_settings.telemetry_enabled if enabled is None else enabled
        self._logger = logger or logging.getLogger(__name__)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def add_sink(self, sink: TelemetrySink) -> None:
        self._sinks.append(sink)

    def emit(self, event: TelemetryEvent) -> None:
        if not self._enabled:
            return
        for sink in self._sinks:
            try:
                sink.emit(event)
            except Exception as e:
                self._logger.error(f"Telemetry sink {sink.__class__.__name__} failed on {event.kind.value}: {e}")


class InMemoryTelemetrySink:
    """Keeps every event in order. Used by the replay CLI and tests."""

    def __init__(self) -> None:
        self.events: List[TelemetryEvent] = []

    def emit(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: TelemetryEventKind) -> List[TelemetryEvent]:
        return [event for event in self.events if event.kind == kind]

    def clear(self) -> None:
        self.events.clear()


class LoggingTelemetrySink:
    """Writes each event as a structured log line."""

    def __init__(self, logger: Optional[Any] = None) -> None:
        self._log = logger or _slog

    def emit(self, event: TelemetryEvent) -> None:
        payload = event.to_dict()
        kind = payload.pop("kind")
        self._log.info(kind, **payload)


class HttpTelemetrySink:
    """
    Buffers events and posts them in batches to a collector endpoint.

    ``emit`` only buffers. A full batch schedules one background flush on
    the running event loop; while that flush is in flight, or while the
    sink is backing off after a failed post, further batches just wait in
    the buffer. The buffer holds at most ``telemetry_max_buffer`` events
    and drops the oldest beyond that. Callers should ``await close()`` on
    shutdown to post what is left.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        config: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        cfg = config or default_settings
        self._endpoint = endpoint or cfg.telemetry_endpoint
        if not self._endpoint:
            raise ValueError("HttpTelemetrySink requires a telemetry endpoint")
        self._batch_size = cfg.telemetry_batch_size
        self._max_buffer = max(cfg.telemetry_max_buffer, cfg.telemetry_batch_size)
        self._retry_seconds = cfg.telemetry_retry_seconds
        self._client = client or httpx.AsyncClient(timeout=cfg.telemetry_timeout_seconds)
        self._owns_client = client is None
        self._buffer: List[Dict[str, Any]] = []
        self._tasks: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()
        self._clock = clock
        self._retry_at = 0.0
        self._dropped = 0
        self._logger = logger or logging.getLogger(__name__)

    @property
    def pending(self) -> int:
        return len(self._buffer)

    @property
    def dropped(self) -> int:
        """Events discarded because the buffer was full."""
        return self._dropped

    @property
    def backing_off(self) -> bool:
        return self._clock() < self._retry_at

    def emit(self, event: TelemetryEvent) -> None:
        self._buffer.append(event.to_dict())
        self._trim()
        if len(self._buffer) < self._batch_size or self._tasks or self.backing_off:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # No loop; the batch waits for an explicit flush()
        task = loop.create_task(self.flush())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def flush(self) -> int:
        """Post buffered events. Returns how many were delivered."""
        async with self._lock:
            if not self._buffer:
                return 0
            batch, self._buffer = self._buffer, []
            try:
                response = await self._client.post(self._endpoint, json={"events": batch})
                response.raise_for_status()
            except httpx.HTTPError as e:
                self._retry_at = self._clock() + self._retry_seconds
                self._logger.warning(
                    f"Telemetry batch of {len(batch)} events not delivered, "
                    f"retrying in {self._retry_seconds}s: {e}"
                )
                # Undelivered events stay ahead of anything emitted meanwhile
                self._buffer = batch + self._buffer
                self._trim()
                return 0
            self._retry_at = 0.0
            return len(batch)

    async def drain(self) -> None:
        """Wait for background flushes already in flight."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self.flush()
        if self._owns_client:
            await self._client.aclose()

    def _trim(self) -> None:
        overflow = len(self._buffer) - self._max_buffer
        if overflow <= 0:
            return
        del self._buffer[:overflow]
        self._dropped += overflow
        self._logger.warning(f"Telemetry buffer full, dropped {overflow} oldest events ({self._dropped} total)")


def build_default_sinks(config: Optional[Settings] = None) -> List[TelemetrySink]:
    """Sinks wired from settings: structured logs always, HTTP when an endpoint is set."""
    cfg = config or default_settings
    if not cfg.telemetry_enabled:
        return []
    sinks: List[TelemetrySink] = [LoggingTelemetrySink()]
    if cfg.has_telemetry_endpoint:
        sinks.append(HttpTelemetrySink(config=cfg))
    return sinks


async def close_sinks(sinks: List[TelemetrySink]) -> None:
    """Await ``close()`` on every sink that has one."""
    for sink in sinks:
        close = getattr(sink, "close", None)
        if close is not None:
            await close()
