"""Telemetry events emitted by the swap core."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Union

if TYPE_CHECKING:
    from ..core.swap.models import Trade


class TelemetryEventKind(str, Enum):
    QUOTE_RECEIVED = "swap_quote_received"
    AUTHORIZATION_SUBMITTED = "approve_token_txn_submitted"
    SWAP_SUBMITTED = "swap_submitted"
    CONNECT_WALLET_CLICKED = "connect_wallet_button_clicked"
    MAX_INPUT_APPLIED = "swap_max_input_applied"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class QuoteReceived:
    """First usable quote of a fetch cycle, with the latency of that cycle."""

    trade: Trade
    elapsed_ms: Optional[int]
    timestamp: datetime = field(default_factory=_now)
    kind: TelemetryEventKind = field(default=TelemetryEventKind.QUOTE_RECEIVED, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
            "elapsedMs": self.elapsed_ms,
            "tokenInSymbol": self.trade.input_amount.token.symbol,
            "tokenOutSymbol": self.trade.output_amount.token.symbol,
            "tokenInAmount": str(self.trade.input_amount.amount),
            "tokenOutAmount": str(self.trade.output_amount.amount),
            "priceImpact": str(self.trade.price_impact) if self.trade.price_impact is not None else None,
            "gasEstimateUsd": str(self.trade.gas_estimate_usd) if self.trade.gas_estimate_usd is not None else None,
        }


@dataclass(frozen=True)
class AuthorizationSubmitted:
    token_symbol: str
    token_address: str
    amount: Decimal
    chain_id: Optional[int] = None
    timestamp: datetime = field(default_factory=_now)
    kind: TelemetryEventKind = field(default=TelemetryEventKind.AUTHORIZATION_SUBMITTED, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
            "chainId": self.chain_id,
            "tokenSymbol": self.token_symbol,
            "tokenAddress": self.token_address,
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class SwapSubmitted:
    """
    A swap settled with a result handle.

    ``label`` says how the recipient relates to the sender; ``route`` is
    the "<router>/<IN>/<OUT>/<suffix>" string the dashboards group on.
    """

    label: str
    route: str
    result_handle: str
    timestamp: datetime = field(default_factory=_now)
    kind: TelemetryEventKind = field(default=TelemetryEventKind.SWAP_SUBMITTED, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
            "label": self.label,
            "route": self.route,
            "resultHandle": self.result_handle,
        }


@dataclass(frozen=True)
class ConnectWalletClicked:
    received_swap_quote: bool
    timestamp: datetime = field(default_factory=_now)
    kind: TelemetryEventKind = field(default=TelemetryEventKind.CONNECT_WALLET_CLICKED, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
            "receivedSwapQuote": self.received_swap_quote,
        }


@dataclass(frozen=True)
class MaxInputApplied:
    token_symbol: str
    amount: Decimal
    timestamp: datetime = field(default_factory=_now)
    kind: TelemetryEventKind = field(default=TelemetryEventKind.MAX_INPUT_APPLIED, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
            "tokenSymbol": self.token_symbol,
            "amount": str(self.amount),
        }


TelemetryEvent = Union[
    QuoteReceived,
    AuthorizationSubmitted,
    SwapSubmitted,
    ConnectWalletClicked,
    MaxInputApplied,
]
