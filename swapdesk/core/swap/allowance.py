"""
Allowance Coordinator

Tracks whether the input token may be spent by the swap router for the
amount the current trade needs, and runs the single-flight authorize step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Set, Tuple

from ...telemetry.events import AuthorizationSubmitted
from ...telemetry.sinks import TelemetryBus
from .collaborators import TokenApprover
from .errors import AllowanceContractError, AuthorizationError, user_readable_message
from .models import OperationOutcome, Token, TokenAmount


class AllowanceState(str, Enum):
    UNKNOWN = "unknown"            # On-chain allowance not reported yet
    NOT_REQUIRED = "not_required"  # Native token, or nothing to spend
    REQUIRED = "required"          # Allowance below the amount the trade needs
    PENDING = "pending"            # authorize() in flight
    GRANTED = "granted"            # Allowance covers the required amount


@dataclass(frozen=True)
class AllowanceKey:
    owner: str
    token: str
    spender: str

    @classmethod
    def build(cls, owner: str, token: Token, spender: str) -> AllowanceKey:
        return cls(owner=owner.lower(), token=token.key, spender=spender.lower())

    @property
    def pair(self) -> Tuple[str, str]:
        return (self.token, self.spender)


@dataclass(frozen=True)
class AllowanceStatus:
    state: AllowanceState
    key: Optional[AllowanceKey] = None
    token: Optional[Token] = None
    required_amount: Optional[Decimal] = None
    allowed_amount: Optional[Decimal] = None
    authorization: Optional[str] = None  # Opaque permit handed to the executor once granted

    @property
    def is_satisfied(self) -> bool:
        return self.state in (AllowanceState.GRANTED, AllowanceState.NOT_REQUIRED)


_NOT_REQUIRED = AllowanceStatus(state=AllowanceState.NOT_REQUIRED)


class AllowanceCoordinator:
    """
    Derives AllowanceStatus for (owner, token, spender, required amount).

    Granted is always re-derived against the amount currently required: an
    allowance recorded for a smaller amount reads as Required again once the
    trade needs more.
    """

    def __init__(
        self,
        approver: TokenApprover,
        telemetry: Optional[TelemetryBus] = None,
        *,
        chain_id: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._approver = approver
        self._telemetry = telemetry
        self._chain_id = chain_id
        self._logger = logger or logging.getLogger(__name__)

        self._allowances: Dict[AllowanceKey, Decimal] = {}
        self._authorizations: Dict[AllowanceKey, str] = {}
        self._pending: Set[Tuple[str, str]] = set()
        self._status: AllowanceStatus = AllowanceStatus(state=AllowanceState.UNKNOWN)

    @property
    def status(self) -> AllowanceStatus:
        """Status from the most recent current_status() call."""
        return self._status

    def is_pending(self, token: Token, spender: str) -> bool:
        return (token.key, spender.lower()) in self._pending

    def observe_allowance(self, owner: str, token: Token, spender: str, amount: Decimal) -> None:
        """Record the allowance reported by the chain for (owner, token, spender)."""
        key = AllowanceKey.build(owner, token, spender)
        self._allowances[key] = amount
        if self._status.key == key:
            self.current_status(owner, TokenAmount(token, self._status.required_amount or Decimal("0")), spender)

    def current_status(
        self,
        owner: Optional[str],
        required: Optional[TokenAmount],
        spender: Optional[str],
    ) -> AllowanceStatus:
        """Derive (and remember) the status for the amount the trade needs."""
        if not owner or not spender or required is None or required.token.is_native:
            self._status = _NOT_REQUIRED
            return self._status

        key = AllowanceKey.build(owner, required.token, spender)
        allowed = self._allowances.get(key)
        base = AllowanceStatus(
            state=AllowanceState.UNKNOWN,
            key=key,
            token=required.token,
            required_amount=required.amount,
            allowed_amount=allowed,
        )

        if key.pair in self._pending:
            self._status = replace(base, state=AllowanceState.PENDING)
        elif allowed is None:
            self._status = base
        elif allowed >= required.amount:
            self._status = replace(
                base,
                state=AllowanceState.GRANTED,
                authorization=self._authorizations.get(key),
            )
        else:
            self._status = replace(base, state=AllowanceState.REQUIRED)
        return self._status

    async def authorize(self) -> OperationOutcome:
        """
        Approve the router to spend the required amount of the input token.

        Returns:
            SKIPPED while an authorization for the same (token, spender) is
            in flight, FAILED if the approver failed (status reverts to
            Required), SUCCEEDED once Granted.

        Raises:
            AllowanceContractError: If the current status is not Required
        """
        status = self._status
        if status.key is not None and status.key.pair in self._pending:
            self._logger.info(f"Authorization for {status.token.symbol if status.token else status.key.token} already pending")
            return OperationOutcome.skipped("Authorization already pending")

        if status.state != AllowanceState.REQUIRED:
            raise AllowanceContractError(
                f"authorize() requires allowance state 'required', got '{status.state.value}'",
                details={"state": status.state.value},
            )

        key = status.key
        token = status.token
        amount = status.required_amount
        if key is None or token is None or amount is None:
            raise AllowanceContractError(
                "authorize() needs the token, spender and amount of the required allowance",
                details={"state": status.state.value},
            )

        self._pending.add(key.pair)
        self._status = replace(status, state=AllowanceState.PENDING)
        self._logger.info(f"Authorizing {amount} {token.symbol} for spender {key.spender}")

        try:
            authorization = await self._approver.approve(key.owner, token, key.spender, amount)
        except AuthorizationError as e:
            return self._authorization_failed(key, token, amount, e.message)
        except Exception as e:
            return self._authorization_failed(key, token, amount, user_readable_message(e))
        finally:
            self._pending.discard(key.pair)

        self._allowances[key] = max(amount, self._allowances.get(key, Decimal("0")))
        if authorization:
            self._authorizations[key] = authorization
        self.current_status(key.owner, TokenAmount(token, amount), key.spender)

        if self._telemetry:
            self._telemetry.emit(
                AuthorizationSubmitted(
                    token_symbol=token.symbol,
                    token_address=token.address,
                    amount=amount,
                    chain_id=self._chain_id,
                )
            )
        return OperationOutcome.success(authorization)

    def _authorization_failed(
        self,
        key: AllowanceKey,
        token: Token,
        amount: Decimal,
        message: str,
    ) -> OperationOutcome:
        self._logger.warning(f"Authorization of {token.symbol} for {key.spender} failed: {message}")
        self._status = AllowanceStatus(
            state=AllowanceState.REQUIRED,
            key=key,
            token=token,
            required_amount=amount,
            allowed_amount=self._allowances.get(key),
        )
        return OperationOutcome.failure(message)
