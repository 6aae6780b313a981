"""
Swap Telemetry

Event types emitted by the swap core and the sinks that deliver them.
"""

from .events import (
    AuthorizationSubmitted,
    ConnectWalletClicked,
    MaxInputApplied,
    QuoteReceived,
    SwapSubmitted,
    TelemetryEvent,
    TelemetryEventKind,
)
from .sinks import (
    HttpTelemetrySink,
    InMemoryTelemetrySink,
    LoggingTelemetrySink,
    TelemetryBus,
    TelemetrySink,
    build_default_sinks,
    close_sinks,
)

__all__ = [
    # Events
    "TelemetryEvent",
    "TelemetryEventKind",
    "QuoteReceived",
    "AuthorizationSubmitted",
    "SwapSubmitted",
    "ConnectWalletClicked",
    "MaxInputApplied",
    # Sinks
    "TelemetrySink",
    "TelemetryBus",
    "InMemoryTelemetrySink",
    "LoggingTelemetrySink",
    "HttpTelemetrySink",
    "build_default_sinks",
    "close_sinks",
]
