"""
Swap attempt lifecycle.

An attempt exists from the moment the user invokes the swap until it is
dismissed or replaced. Each phase is its own frozen type carrying exactly
the fields valid in that phase, so combinations such as "submitting
without a snapshot" cannot be built. The orchestrator advances an attempt
by replacing it with the next phase.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from .models import Trade


class AttemptPhase(str, Enum):
    CONFIRMING = "confirming"
    SUBMITTING = "submitting"
    SETTLED = "settled"
    FAILED = "failed"


@dataclass(frozen=True)
class Confirming:
    """Confirmation open on a frozen trade, waiting for the user to accept."""

    trade_snapshot: Trade
    accept_changes_required: bool = False

    phase = AttemptPhase.CONFIRMING
    confirmation_open = True

    def with_changes_accepted(self, trade: Trade) -> Confirming:
        return Confirming(trade_snapshot=trade)


@dataclass(frozen=True)
class Submitting:
    trade_snapshot: Trade
    confirmation_open: bool = False

    phase = AttemptPhase.SUBMITTING


@dataclass(frozen=True)
class Settled:
    trade_snapshot: Trade
    result_handle: str
    confirmation_open: bool = False

    phase = AttemptPhase.SETTLED


@dataclass(frozen=True)
class Failed:
    trade_snapshot: Trade
    error_message: str
    confirmation_open: bool = False

    phase = AttemptPhase.FAILED


SwapAttempt = Union[Confirming, Submitting, Settled, Failed]


def attempt_to_dict(attempt: Optional[SwapAttempt]) -> Optional[Dict[str, Any]]:
    if attempt is None:
        return None
    return {
        "phase": attempt.phase.value,
        "tradeSnapshot": attempt.trade_snapshot.to_dict(),
        "confirmationOpen": attempt.confirmation_open,
        "acceptChangesRequired": getattr(attempt, "accept_changes_required", False),
        "errorMessage": getattr(attempt, "error_message", None),
        "resultHandle": getattr(attempt, "result_handle", None),
    }
