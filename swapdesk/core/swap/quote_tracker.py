"""
Quote latency tracking.

A fetch cycle runs from the first Loading tick to the first Valid quote.
Exactly one QuoteReceived event is emitted per cycle, however many
Loading/Syncing ticks (re-typing bursts, background refreshes) happen in
between. Clearing the inputs abandons the cycle without an event.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from ...telemetry.events import QuoteReceived
from ...telemetry.sinks import TelemetryBus
from .models import Quote, QuoteRequest, QuoteStatus


@dataclass
class QuoteTelemetryWindow:
    """
    Timer for one fetch cycle.

    A fresh session starts with the flag raised and no start time, so the
    first quote shown is logged even if its loading phase was never
    observed (elapsed is then None).
    """

    fetch_started_at: Optional[float] = None
    pending_log_flag: bool = True

    @property
    def is_open(self) -> bool:
        return self.pending_log_flag

    def begin_fetch(self, now: float) -> bool:
        """Raise the flag; start timing only if nothing is timed yet. True if the start time was set."""
        self.pending_log_flag = True
        if self.fetch_started_at is None:
            self.fetch_started_at = now
            return True
        return False

    def close(self, now: float) -> Optional[int]:
        """Close the window and return elapsed milliseconds (None if no start was recorded)."""
        elapsed_ms = None
        if self.fetch_started_at is not None:
            elapsed_ms = max(0, round((now - self.fetch_started_at) * 1000))
        self.discard()
        return elapsed_ms

    def discard(self) -> None:
        self.pending_log_flag = False
        self.fetch_started_at = None


class QuoteTracker:
    """Observes quote ticks and emits QuoteReceived once per fetch cycle."""

    def __init__(
        self,
        telemetry: Optional[TelemetryBus] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._telemetry = telemetry
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self.window = QuoteTelemetryWindow()
        self.quote_received_at: Optional[datetime] = None

    def observe(
        self,
        quote: Quote,
        current_request: Optional[QuoteRequest] = None,
    ) -> Optional[QuoteReceived]:
        """
        Feed one quote tick.

        Args:
            quote: Latest quote object from the stream
            current_request: What the user currently has typed; a quote
                computed for anything else is stale and ignored here

        Returns:
            The QuoteReceived event if this tick closed the window
        """
        if self._is_stale(quote, current_request):
            self._logger.debug(f"Ignoring stale quote {quote.version} for telemetry")
            return None

        if quote.status == QuoteStatus.IDLE:
            if self.window.is_open:
                self._logger.debug("Inputs cleared before a valid quote; discarding telemetry window")
            self.window.discard()
            return None

        now = self._clock()
        event: Optional[QuoteReceived] = None

        if self.window.pending_log_flag and quote.status == QuoteStatus.VALID and quote.trade is not None:
            elapsed_ms = self.window.close(now)
            self.quote_received_at = datetime.now(timezone.utc)
            event = QuoteReceived(trade=quote.trade, elapsed_ms=elapsed_ms)
            self._logger.info(f"Quote {quote.trade.id} received after {elapsed_ms} ms")
            if self._telemetry:
                self._telemetry.emit(event)

        if quote.status == QuoteStatus.LOADING:
            if self.window.begin_fetch(now):
                self._logger.debug("Quote fetch cycle started")

        return event

    @staticmethod
    def _is_stale(quote: Quote, current_request: Optional[QuoteRequest]) -> bool:
        if current_request is None or quote.request is None:
            return False
        return quote.request != current_request
