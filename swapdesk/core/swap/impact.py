"""
Price impact grading.

Severity comes from the larger of two independent estimates of how much
value the trade loses: the router's execution price impact, and the drop
between the fiat value going in and the fiat value coming out. Tiers are
fixed breakpoints; the only ordering the rest of the core relies on is
that the override tier sits below the blocking tier.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import IntEnum
from typing import Optional, Sequence

from ...config import Settings, settings as default_settings
from .models import Trade

_HUNDRED = Decimal("100")


class ImpactSeverity(IntEnum):
    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3    # Explicit override required
    SEVERE = 4  # Blocked outside expert mode


def warning_severity(impact: Optional[Decimal], breakpoints: Sequence[Decimal]) -> ImpactSeverity:
    """Map an impact percentage to a tier. Favorable (negative) impact grades as NONE."""
    if impact is None or impact < 0:
        return ImpactSeverity.NONE
    severity = ImpactSeverity.NONE
    for tier, breakpoint in zip(
        (ImpactSeverity.LOW, ImpactSeverity.MEDIUM, ImpactSeverity.HIGH, ImpactSeverity.SEVERE),
        breakpoints,
    ):
        if impact > breakpoint:
            severity = tier
    return severity


def compute_fair_value_impact(
    fair_value_in: Optional[Decimal],
    fair_value_out: Optional[Decimal],
) -> Optional[Decimal]:
    """Percent of fiat value lost between input and output, or None if not computable."""
    if fair_value_in is None or fair_value_out is None or fair_value_in == 0:
        return None
    return (fair_value_in - fair_value_out) / fair_value_in * _HUNDRED


def larger_impact(a: Optional[Decimal], b: Optional[Decimal]) -> Optional[Decimal]:
    if a is not None and b is not None:
        return a if a > b else b
    return a if a is not None else b


@dataclass(frozen=True)
class ImpactAssessment:
    execution_impact: Optional[Decimal] = None
    fair_value_impact: Optional[Decimal] = None
    effective_impact: Optional[Decimal] = None
    severity: ImpactSeverity = ImpactSeverity.NONE

    @property
    def requires_override(self) -> bool:
        return self.severity >= ImpactSeverity.HIGH

    def is_blocked(self, expert_mode: bool) -> bool:
        return self.severity >= ImpactSeverity.SEVERE and not expert_mode


NO_IMPACT = ImpactAssessment()


class ImpactGate:
    """Grades trades against the configured breakpoints."""

    def __init__(self, config: Optional[Settings] = None) -> None:
        self._breakpoints = (config or default_settings).impact_breakpoints

    @property
    def breakpoints(self) -> Sequence[Decimal]:
        return self._breakpoints

    def assess(
        self,
        trade: Optional[Trade],
        fair_value_in: Optional[Decimal],
        fair_value_out: Optional[Decimal],
        *,
        syncing: bool = False,
    ) -> ImpactAssessment:
        """
        Grade a trade.

        Args:
            trade: Live trade, if any
            fair_value_in: Fiat value of the trade's input amount
            fair_value_out: Fiat value of the trade's output amount
            syncing: Quote is refreshing; its fiat values are not graded
        """
        if trade is None:
            return NO_IMPACT

        execution_impact = trade.price_impact
        fair_value_impact = None if syncing else compute_fair_value_impact(fair_value_in, fair_value_out)
        effective = larger_impact(execution_impact, fair_value_impact)

        return ImpactAssessment(
            execution_impact=execution_impact,
            fair_value_impact=fair_value_impact,
            effective_impact=effective,
            severity=warning_severity(effective, self._breakpoints),
        )
