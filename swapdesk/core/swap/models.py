"""Typed models used by the swap decision core."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4


class QuoteStatus(str, Enum):
    """Lifecycle of the quote currently shown on the swap screen."""

    IDLE = "idle"          # No inputs to quote
    LOADING = "loading"    # First request in flight, nothing to show yet
    SYNCING = "syncing"    # Previous result shown while a refresh is in flight
    VALID = "valid"        # Usable result
    NO_ROUTE = "no_route"  # No executable path was found


class SwapField(str, Enum):
    INPUT = "input"
    OUTPUT = "output"


class WrapType(str, Enum):
    NOT_APPLICABLE = "not_applicable"
    WRAP = "wrap"
    UNWRAP = "unwrap"


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"                          # Precondition not met, nothing ran
    AWAITING_CONFIRMATION = "awaiting_confirmation"  # Confirmation opened instead of executing


@dataclass(frozen=True)
class Token:
    symbol: str
    address: str
    decimals: int = 18
    is_native: bool = False

    @property
    def key(self) -> str:
        return self.address.lower()


@dataclass(frozen=True)
class TokenAmount:
    token: Token
    amount: Decimal

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    def to_dict(self) -> Dict[str, Any]:
        return {"symbol": self.token.symbol, "address": self.token.address, "amount": str(self.amount)}


@dataclass(frozen=True)
class Trade:
    """A priced route between two tokens. Each object is a distinct version."""

    input_amount: TokenAmount
    output_amount: TokenAmount
    price_impact: Optional[Decimal] = None   # percent, as reported by the router
    maximum_amount_in: Optional[TokenAmount] = None  # slippage-adjusted input
    has_route: bool = True
    gas_estimate_usd: Optional[Decimal] = None
    id: str = field(default_factory=lambda: str(uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "inputAmount": self.input_amount.to_dict(),
            "outputAmount": self.output_amount.to_dict(),
            "priceImpact": str(self.price_impact) if self.price_impact is not None else None,
            "maximumAmountIn": self.maximum_amount_in.to_dict() if self.maximum_amount_in else None,
            "hasRoute": self.has_route,
            "gasEstimateUsd": str(self.gas_estimate_usd) if self.gas_estimate_usd is not None else None,
        }


def trade_meaningfully_differs(original: Trade, candidate: Trade) -> bool:
    """True when swapping ``candidate`` in for ``original`` would change what the user agreed to."""

    if original.id == candidate.id:
        return False
    return (
        original.input_amount.token.key != candidate.input_amount.token.key
        or original.output_amount.token.key != candidate.output_amount.token.key
        or original.input_amount.amount != candidate.input_amount.amount
        or original.output_amount.amount != candidate.output_amount.amount
    )


@dataclass(frozen=True)
class QuoteRequest:
    """What a quote was computed for; used to spot stale arrivals."""

    input_token: str
    output_token: str
    independent_field: SwapField
    amount: Decimal


@dataclass(frozen=True)
class Quote:
    """Immutable snapshot of the quote stream. Replaced wholesale, never mutated."""

    status: QuoteStatus = QuoteStatus.IDLE
    trade: Optional[Trade] = None
    request: Optional[QuoteRequest] = None
    version: str = field(default_factory=lambda: str(uuid4()))

    @property
    def is_loading(self) -> bool:
        return self.status == QuoteStatus.LOADING

    @property
    def is_syncing(self) -> bool:
        return self.status == QuoteStatus.SYNCING

    @property
    def route_not_found(self) -> bool:
        if self.status == QuoteStatus.IDLE:
            return False
        return self.status == QuoteStatus.NO_ROUTE or self.trade is None or not self.trade.has_route


@dataclass
class SwapInputs:
    """What the user typed. Owned by the orchestrator for one swap session."""

    independent_field: SwapField = SwapField.INPUT
    typed_value: str = ""


@dataclass(frozen=True)
class SwapEnvironment:
    """Snapshot of everything the surrounding screen reports on a tick."""

    account: Optional[str] = None
    chain_id: Optional[int] = None
    input_token: Optional[Token] = None
    output_token: Optional[Token] = None
    spender: Optional[str] = None
    swap_unsupported: bool = False
    wrap_type: WrapType = WrapType.NOT_APPLICABLE
    wrap_input_error: Optional[str] = None
    fair_value_in: Optional[Decimal] = None
    fair_value_out: Optional[Decimal] = None
    input_balance: Optional[Decimal] = None
    recipient: Optional[str] = None
    recipient_address: Optional[str] = None
    allowed_slippage: Optional[Decimal] = None
    expert_mode: bool = False


@dataclass(frozen=True)
class FiatValues:
    amount_in: Optional[Decimal] = None
    amount_out: Optional[Decimal] = None


@dataclass(frozen=True)
class OperationOutcome:
    """Result of an async swap operation; callers branch on ``status``."""

    status: OutcomeStatus
    error: Optional[str] = None
    result: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED

    @classmethod
    def success(cls, result: Optional[str] = None) -> OperationOutcome:
        return cls(status=OutcomeStatus.SUCCEEDED, result=result)

    @classmethod
    def failure(cls, error: str) -> OperationOutcome:
        return cls(status=OutcomeStatus.FAILED, error=error)

    @classmethod
    def skipped(cls, reason: Optional[str] = None) -> OperationOutcome:
        return cls(status=OutcomeStatus.SKIPPED, error=reason)

    @classmethod
    def awaiting_confirmation(cls) -> OperationOutcome:
        return cls(status=OutcomeStatus.AWAITING_CONFIRMATION)
