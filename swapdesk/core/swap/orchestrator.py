"""
Swap Orchestrator

The decision core of the swap screen. On every tick it derives the single
primary action the user may take from the latest quote, allowance status,
price impact grade and typed input, and it runs the asynchronous steps
that action triggers (authorize, confirm, submit, settle).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import uuid4

from ...config import Settings, settings as default_settings
from ...services.address import addresses_equal
from ...telemetry.events import ConnectWalletClicked, MaxInputApplied, QuoteReceived, SwapSubmitted
from ...telemetry.sinks import TelemetryBus
from .allowance import AllowanceCoordinator, AllowanceState, AllowanceStatus
from .attempt import AttemptPhase, Confirming, Failed, Settled, Submitting, SwapAttempt, attempt_to_dict
from .collaborators import SwapExecutor, TokenApprover, WalletConnector, WrapExecutor
from .constants import (
    LABEL_APPROVAL_PENDING,
    LABEL_APPROVE_TEMPLATE,
    LABEL_CONNECT_WALLET,
    LABEL_PRICE_IMPACT_TOO_HIGH,
    LABEL_SWAP,
    LABEL_SWAP_ANYWAY,
    LABEL_UNWRAP,
    LABEL_WRAP,
    SWAP_ACTION_NO_RECIPIENT,
    SWAP_ACTION_SELF_RECIPIENT,
    SWAP_ACTION_WITH_SEND,
    SWAP_LABEL_SUFFIX,
)
from .errors import (
    ExecutionError,
    InputError,
    InvalidTransitionError,
    RouteNotFoundError,
    SwapDeskError,
    UnsupportedAssetError,
    user_readable_message,
)
from .impact import ImpactAssessment, ImpactGate, ImpactSeverity
from .models import (
    FiatValues,
    OperationOutcome,
    Quote,
    QuoteRequest,
    QuoteStatus,
    SwapEnvironment,
    SwapField,
    SwapInputs,
    TokenAmount,
    Trade,
    WrapType,
    trade_meaningfully_differs,
)
from .quote_tracker import QuoteTracker
from .validation import derive_input_error, max_amount_spend, parse_amount


class SwapFlowState(str, Enum):
    NO_INPUT = "no_input"
    WALLET_DISCONNECTED = "wallet_disconnected"
    UNSUPPORTED = "unsupported"
    NEEDS_WRAP = "needs_wrap"
    INSUFFICIENT_LIQUIDITY = "insufficient_liquidity"
    NEEDS_AUTHORIZATION = "needs_authorization"
    READY_TO_CONFIRM = "ready_to_confirm"
    CONFIRMING = "confirming"
    SUBMITTING = "submitting"
    SETTLED = "settled"
    FAILED = "failed"


_PHASE_TO_STATE: Dict[AttemptPhase, SwapFlowState] = {
    AttemptPhase.CONFIRMING: SwapFlowState.CONFIRMING,
    AttemptPhase.SUBMITTING: SwapFlowState.SUBMITTING,
    AttemptPhase.SETTLED: SwapFlowState.SETTLED,
    AttemptPhase.FAILED: SwapFlowState.FAILED,
}

InvokeHandler = Callable[[], Awaitable[OperationOutcome]]


@dataclass(frozen=True)
class PrimaryAction:
    """The one button the swap screen shows."""

    state: SwapFlowState
    label: str
    enabled: bool
    danger: bool = False
    on_invoke: Optional[InvokeHandler] = field(default=None, compare=False, repr=False)
    error: Optional[SwapDeskError] = field(default=None, compare=False)

    @classmethod
    def blocked(cls, state: SwapFlowState, error: SwapDeskError) -> "PrimaryAction":
        """Disabled action whose label is the error message."""
        return cls(state, error.message, enabled=False, error=error)

    async def invoke(self) -> OperationOutcome:
        if not self.enabled or self.on_invoke is None:
            return OperationOutcome.skipped(f"Action '{self.label}' is disabled")
        return await self.on_invoke()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "label": self.label,
            "enabled": self.enabled,
            "danger": self.danger,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass(frozen=True)
class ConfirmationModalProps:
    open: bool
    trade_snapshot: Optional[Trade] = None
    live_trade: Optional[Trade] = None
    attempting: bool = False
    accept_changes_required: bool = False
    error_message: Optional[str] = None
    result_handle: Optional[str] = None
    recipient: Optional[str] = None
    allowed_slippage: Optional[Decimal] = None
    quote_received_at: Optional[datetime] = None
    fiat_value_input: Optional[Decimal] = None
    fiat_value_output: Optional[Decimal] = None
    on_accept: Optional[InvokeHandler] = field(default=None, compare=False, repr=False)
    on_accept_changes: Optional[Callable[[], None]] = field(default=None, compare=False, repr=False)
    on_dismiss: Optional[Callable[[], None]] = field(default=None, compare=False, repr=False)


class SwapOrchestrator:
    """
    One swap session's state machine.

    Decision table, evaluated in priority order on every read:

    1. Unsupported pair            -> UNSUPPORTED, disabled
    2. No wallet                   -> "Connect Wallet"
    3. Wrap/unwrap pair            -> NEEDS_WRAP, runs the wrap directly
    4. No route for a full form    -> INSUFFICIENT_LIQUIDITY, disabled
    5. Input error                 -> disabled, label is the error
    6. Allowance required/pending  -> NEEDS_AUTHORIZATION
    7. Otherwise                   -> READY_TO_CONFIRM

    Invoking READY_TO_CONFIRM opens confirmation when the price impact needs
    an override that was not yet given for this trade, and submits directly
    otherwise. Severe impact without expert mode never reaches submission.
    """

    def __init__(
        self,
        *,
        executor: SwapExecutor,
        allowance: AllowanceCoordinator,
        quote_tracker: Optional[QuoteTracker] = None,
        impact_gate: Optional[ImpactGate] = None,
        wrapper: Optional[WrapExecutor] = None,
        wallet: Optional[WalletConnector] = None,
        telemetry: Optional[TelemetryBus] = None,
        config: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.session_id = session_id or str(uuid4())
        self.config = config or default_settings
        self.allowance = allowance
        self.quote_tracker = quote_tracker or QuoteTracker(telemetry)
        self.impact_gate = impact_gate or ImpactGate(self.config)
        self._executor = executor
        self._wrapper = wrapper
        self._wallet = wallet
        self._telemetry = telemetry
        self._logger = logger or logging.getLogger(__name__)

        self.inputs = SwapInputs()
        self.environment = SwapEnvironment()
        self.quote = Quote()
        self._attempt: Optional[SwapAttempt] = None
        self._override_trade_id: Optional[str] = None

    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------

    def update_environment(self, environment: SwapEnvironment) -> None:
        self.environment = environment

    def type_input(self, independent_field: SwapField, value: str) -> None:
        self.inputs = SwapInputs(independent_field=independent_field, typed_value=value)

    def update_quote(self, quote: Quote) -> Optional[QuoteReceived]:
        """Take the latest quote (last write wins) and run quote telemetry on it."""
        self.quote = quote
        event = self.quote_tracker.observe(quote, self.current_request)
        self._flag_changed_trade()
        return event

    def use_max_input(self) -> Optional[Decimal]:
        """Type the largest spendable input amount. Returns it, or None without a balance."""
        token = self.environment.input_token
        balance = self.environment.input_balance
        if token is None or balance is None:
            return None
        amount = max_amount_spend(TokenAmount(token, balance), self.config.min_native_reserve)
        if amount is None:
            return None
        self.type_input(SwapField.INPUT, format(amount, "f"))
        if self._telemetry:
            self._telemetry.emit(MaxInputApplied(token_symbol=token.symbol, amount=amount))
        return amount

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------

    @property
    def attempt(self) -> Optional[SwapAttempt]:
        return self._attempt

    @property
    def trade(self) -> Optional[Trade]:
        return self.quote.trade

    @property
    def show_wrap(self) -> bool:
        return self.environment.wrap_type != WrapType.NOT_APPLICABLE

    @property
    def parsed_amount(self) -> Optional[Decimal]:
        env = self.environment
        token = env.input_token if self.inputs.independent_field == SwapField.INPUT else env.output_token
        return parse_amount(self.inputs.typed_value, token.decimals if token is not None else None)

    @property
    def current_request(self) -> Optional[QuoteRequest]:
        env = self.environment
        amount = self.parsed_amount
        if env.input_token is None or env.output_token is None or amount is None:
            return None
        return QuoteRequest(
            input_token=env.input_token.key,
            output_token=env.output_token.key,
            independent_field=self.inputs.independent_field,
            amount=amount,
        )

    def parsed_amounts(self) -> Dict[SwapField, Optional[TokenAmount]]:
        env = self.environment
        amount = self.parsed_amount
        independent = self.inputs.independent_field
        token = env.input_token if independent == SwapField.INPUT else env.output_token
        typed = TokenAmount(token, amount) if token is not None and amount is not None else None

        if self.show_wrap:
            return {SwapField.INPUT: typed, SwapField.OUTPUT: typed}
        trade = self.trade
        return {
            SwapField.INPUT: typed if independent == SwapField.INPUT else (trade.input_amount if trade else None),
            SwapField.OUTPUT: typed if independent == SwapField.OUTPUT else (trade.output_amount if trade else None),
        }

    @property
    def user_has_specified_input_output(self) -> bool:
        env = self.environment
        typed = self.parsed_amounts()[self.inputs.independent_field]
        return bool(env.input_token and env.output_token and typed is not None and typed.is_positive)

    @property
    def required_amount_in(self) -> Optional[TokenAmount]:
        """What the swap may spend: the slippage-adjusted maximum when the trade has one."""
        trade = self.trade
        if trade is not None and trade.maximum_amount_in is not None:
            return trade.maximum_amount_in
        return self.parsed_amounts()[SwapField.INPUT]

    @property
    def input_error(self) -> Optional[str]:
        return derive_input_error(self.environment, self.parsed_amount, self.required_amount_in)

    @property
    def fiat_values(self) -> FiatValues:
        return FiatValues(amount_in=self.environment.fair_value_in, amount_out=self.environment.fair_value_out)

    @property
    def allowed_slippage(self) -> Decimal:
        if self.environment.allowed_slippage is not None:
            return self.environment.allowed_slippage
        return self.config.default_slippage_percent

    @property
    def show_max_button(self) -> bool:
        token = self.environment.input_token
        balance = self.environment.input_balance
        if token is None or balance is None:
            return False
        max_amount = max_amount_spend(TokenAmount(token, balance), self.config.min_native_reserve)
        if max_amount is None or max_amount <= 0:
            return False
        current = self.parsed_amounts()[SwapField.INPUT]
        return current is None or current.amount != max_amount

    def allowance_status(self) -> AllowanceStatus:
        return self.allowance.current_status(
            self.environment.account,
            self.required_amount_in,
            self.environment.spender,
        )

    def impact_assessment(self) -> ImpactAssessment:
        return self.impact_gate.assess(
            self.trade,
            self.environment.fair_value_in,
            self.environment.fair_value_out,
            syncing=self.quote.is_syncing,
        )

    def is_valid_swap_quote(self) -> bool:
        return (
            self.input_error is None
            and self.trade is not None
            and self.quote.status in (QuoteStatus.VALID, QuoteStatus.SYNCING)
        )

    @property
    def flow_state(self) -> SwapFlowState:
        if self._attempt is not None:
            return _PHASE_TO_STATE[self._attempt.phase]
        return self._base_action().state

    # -------------------------------------------------------------------------
    # Exposed UI state
    # -------------------------------------------------------------------------

    def primary_action(self) -> PrimaryAction:
        action = self._base_action()
        if action.state != SwapFlowState.READY_TO_CONFIRM:
            return action
        if isinstance(self._attempt, Confirming):
            return replace(action, state=SwapFlowState.CONFIRMING, enabled=False, on_invoke=None)
        if isinstance(self._attempt, Submitting):
            return replace(action, state=SwapFlowState.SUBMITTING, enabled=False, on_invoke=None)
        return action

    async def invoke_primary_action(self) -> OperationOutcome:
        return await self.primary_action().invoke()

    def confirmation_modal(self) -> ConfirmationModalProps:
        attempt = self._attempt
        env = self.environment
        common = dict(
            live_trade=self.trade,
            recipient=env.recipient,
            allowed_slippage=self.allowed_slippage,
            quote_received_at=self.quote_tracker.quote_received_at,
            fiat_value_input=env.fair_value_in,
            fiat_value_output=env.fair_value_out,
            on_accept=self.accept,
            on_accept_changes=self.accept_changes,
            on_dismiss=self.dismiss,
        )
        if attempt is None:
            return ConfirmationModalProps(open=False, **common)
        return ConfirmationModalProps(
            open=attempt.confirmation_open,
            trade_snapshot=attempt.trade_snapshot,
            attempting=isinstance(attempt, Submitting),
            accept_changes_required=isinstance(attempt, Confirming) and attempt.accept_changes_required,
            error_message=attempt.error_message if isinstance(attempt, Failed) else None,
            result_handle=attempt.result_handle if isinstance(attempt, Settled) else None,
            **common,
        )

    def snapshot(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "flowState": self.flow_state.value,
            "primaryAction": self.primary_action().to_dict(),
            "quoteStatus": self.quote.status.value,
            "typedValue": self.inputs.typed_value,
            "independentField": self.inputs.independent_field.value,
            "allowance": self.allowance.status.state.value,
            "severity": self.impact_assessment().severity.name,
            "attempt": attempt_to_dict(self._attempt),
        }

    # -------------------------------------------------------------------------
    # Confirmation operations
    # -------------------------------------------------------------------------

    async def accept(self) -> OperationOutcome:
        """User accepted the confirmation: record the override and submit the snapshot."""
        attempt = self._attempt
        if not isinstance(attempt, Confirming):
            phase = attempt.phase.value if attempt else "absent"
            self._logger.warning(f"Swap {self.session_id}: accept ignored while attempt is {phase}")
            return OperationOutcome.skipped(f"Nothing to confirm (attempt {phase})")
        if attempt.accept_changes_required:
            return OperationOutcome.skipped("Price updated; accept the changes first")
        action = self._base_action()
        if action.state != SwapFlowState.READY_TO_CONFIRM:
            # Balance, allowance or route no longer allow this swap
            return OperationOutcome.skipped(action.label)
        if self.impact_assessment().is_blocked(self.environment.expert_mode):
            return OperationOutcome.skipped(LABEL_PRICE_IMPACT_TOO_HIGH)

        self._override_trade_id = attempt.trade_snapshot.id
        return await self._submit(attempt.trade_snapshot, confirmation_open=True)

    def accept_changes(self) -> None:
        """Re-freeze the confirmation on the live trade after a price update."""
        attempt = self._attempt
        if not isinstance(attempt, Confirming):
            raise InvalidTransitionError(attempt.phase.value if attempt else "absent", "accept changes")
        if self.trade is None:
            return
        self._attempt = attempt.with_changes_accepted(self.trade)

    def dismiss(self) -> None:
        """
        Close the confirmation.

        A settled attempt clears the typed input; an in-flight submission
        keeps running with the modal hidden.
        """
        attempt = self._attempt
        if attempt is None:
            return
        if isinstance(attempt, Submitting):
            self._attempt = replace(attempt, confirmation_open=False)
            return
        self._set_attempt(None)
        if isinstance(attempt, Settled):
            self.type_input(SwapField.INPUT, "")

    # -------------------------------------------------------------------------
    # Decision table
    # -------------------------------------------------------------------------

    def _base_action(self) -> PrimaryAction:
        env = self.environment
        quote = self.quote

        if env.swap_unsupported:
            return PrimaryAction.blocked(SwapFlowState.UNSUPPORTED, UnsupportedAssetError())

        if not env.account:
            return PrimaryAction(
                SwapFlowState.WALLET_DISCONNECTED,
                LABEL_CONNECT_WALLET,
                enabled=self._wallet is not None,
                on_invoke=self._connect_wallet,
            )

        if self.show_wrap:
            if env.wrap_input_error:
                return PrimaryAction.blocked(SwapFlowState.NEEDS_WRAP, InputError(env.wrap_input_error))
            label = LABEL_WRAP if env.wrap_type == WrapType.WRAP else LABEL_UNWRAP
            return PrimaryAction(
                SwapFlowState.NEEDS_WRAP,
                label,
                enabled=self._wrapper is not None,
                on_invoke=self._wrap,
            )

        if (
            quote.route_not_found
            and self.user_has_specified_input_output
            and not quote.is_loading
            and not quote.is_syncing
        ):
            return PrimaryAction.blocked(SwapFlowState.INSUFFICIENT_LIQUIDITY, RouteNotFoundError())

        input_error = self.input_error
        if input_error:
            return PrimaryAction.blocked(SwapFlowState.NO_INPUT, InputError(input_error))

        allowance = self.allowance_status()
        if allowance.state == AllowanceState.REQUIRED:
            symbol = allowance.token.symbol if allowance.token else ""
            return PrimaryAction(
                SwapFlowState.NEEDS_AUTHORIZATION,
                LABEL_APPROVE_TEMPLATE.format(symbol=symbol),
                enabled=True,
                on_invoke=self._authorize,
            )
        if allowance.state == AllowanceState.PENDING:
            return PrimaryAction(SwapFlowState.NEEDS_AUTHORIZATION, LABEL_APPROVAL_PENDING, enabled=False)

        assessment = self.impact_assessment()
        blocked = assessment.is_blocked(env.expert_mode)
        refreshing = quote.is_loading or quote.is_syncing

        if refreshing:
            label = LABEL_SWAP
        elif blocked:
            label = LABEL_PRICE_IMPACT_TOO_HIGH
        elif assessment.severity >= ImpactSeverity.HIGH:
            label = LABEL_SWAP_ANYWAY
        else:
            label = LABEL_SWAP

        enabled = not refreshing and not blocked and allowance.is_satisfied and self.trade is not None
        return PrimaryAction(
            SwapFlowState.READY_TO_CONFIRM,
            label,
            enabled=enabled,
            danger=assessment.severity >= ImpactSeverity.HIGH and allowance.is_satisfied,
            on_invoke=self._start_swap,
        )

    # -------------------------------------------------------------------------
    # Side effects
    # -------------------------------------------------------------------------

    async def _connect_wallet(self) -> OperationOutcome:
        if self._wallet is None:
            return OperationOutcome.skipped("No wallet connector")
        self._wallet.toggle_wallet()
        if self._telemetry:
            self._telemetry.emit(ConnectWalletClicked(received_swap_quote=self.is_valid_swap_quote()))
        return OperationOutcome.success()

    async def _wrap(self) -> OperationOutcome:
        if self._wrapper is None:
            return OperationOutcome.skipped("No wrap executor")
        try:
            result = await self._wrapper.execute_wrap()
        except Exception as e:
            message = user_readable_message(e)
            self._logger.warning(f"Swap {self.session_id}: {self.environment.wrap_type.value} failed: {message}")
            return OperationOutcome.failure(message)
        return OperationOutcome.success(result)

    async def _authorize(self) -> OperationOutcome:
        status = self.allowance_status()
        if status.state == AllowanceState.PENDING:
            return OperationOutcome.skipped("Authorization already pending")
        if status.state != AllowanceState.REQUIRED:
            return OperationOutcome.skipped(f"Allowance is {status.state.value}")
        return await self.allowance.authorize()

    async def _start_swap(self) -> OperationOutcome:
        if self._attempt is not None and self._attempt.phase in (AttemptPhase.CONFIRMING, AttemptPhase.SUBMITTING):
            return OperationOutcome.skipped(f"Swap already {self._attempt.phase.value}")

        action = self._base_action()
        trade = self.trade
        if action.state != SwapFlowState.READY_TO_CONFIRM or not action.enabled or trade is None:
            return OperationOutcome.skipped(f"Swap not available ({action.label})")

        assessment = self.impact_assessment()
        if assessment.requires_override and self._override_trade_id != trade.id:
            self._set_attempt(Confirming(trade_snapshot=trade))
            return OperationOutcome.awaiting_confirmation()

        return await self._submit(trade, confirmation_open=False)

    async def _submit(self, trade: Trade, *, confirmation_open: bool) -> OperationOutcome:
        if isinstance(self._attempt, Submitting):
            return OperationOutcome.skipped("Swap already submitting")

        self._set_attempt(Submitting(trade_snapshot=trade, confirmation_open=confirmation_open))
        allowance = self.allowance.status
        authorization = allowance.authorization if allowance.state == AllowanceState.GRANTED else None

        try:
            result_handle = await self._executor.execute(
                trade,
                self.fiat_values,
                self.allowed_slippage,
                authorization,
            )
        except ExecutionError as e:
            return self._submission_failed(trade, e.message)
        except Exception as e:
            return self._submission_failed(trade, user_readable_message(e))

        self._set_attempt(
            Settled(
                trade_snapshot=trade,
                result_handle=result_handle,
                confirmation_open=self._modal_open(confirmation_open),
            )
        )
        if self._telemetry:
            self._telemetry.emit(
                SwapSubmitted(
                    label=self._recipient_label(),
                    route=self._route_label(trade),
                    result_handle=result_handle,
                )
            )
        return OperationOutcome.success(result_handle)

    def _submission_failed(self, trade: Trade, message: str) -> OperationOutcome:
        self._set_attempt(
            Failed(
                trade_snapshot=trade,
                error_message=message,
                confirmation_open=self._modal_open(True),
            )
        )
        return OperationOutcome.failure(message)

    def _modal_open(self, default: bool) -> bool:
        # The user may have hidden the modal while the submission was in flight
        if isinstance(self._attempt, Submitting):
            return self._attempt.confirmation_open
        return default

    def _flag_changed_trade(self) -> None:
        attempt = self._attempt
        live = self.trade
        if not isinstance(attempt, Confirming) or attempt.accept_changes_required or live is None:
            return
        if trade_meaningfully_differs(attempt.trade_snapshot, live):
            self._attempt = replace(attempt, accept_changes_required=True)
            self._logger.info(f"Swap {self.session_id}: quote changed during confirmation")

    def _set_attempt(self, attempt: Optional[SwapAttempt]) -> None:
        previous = self._attempt.phase.value if self._attempt else "none"
        current = attempt.phase.value if attempt else "none"
        self._attempt = attempt
        detail = ""
        if isinstance(attempt, Failed):
            detail = f" ({attempt.error_message})"
        elif isinstance(attempt, Settled):
            detail = f" ({attempt.result_handle})"
        self._logger.info(f"Swap {self.session_id}: {previous} -> {current}{detail}")

    def _recipient_label(self) -> str:
        env = self.environment
        if env.recipient is None:
            return SWAP_ACTION_NO_RECIPIENT
        if addresses_equal(env.recipient_address or env.recipient, env.account):
            return SWAP_ACTION_SELF_RECIPIENT
        return SWAP_ACTION_WITH_SEND

    def _route_label(self, trade: Trade) -> str:
        return "/".join(
            [
                self.config.swap_route_label,
                trade.input_amount.token.symbol,
                trade.output_amount.token.symbol,
                SWAP_LABEL_SUFFIX,
            ]
        )


def build_orchestrator(
    *,
    executor: SwapExecutor,
    approver: TokenApprover,
    wrapper: Optional[WrapExecutor] = None,
    wallet: Optional[WalletConnector] = None,
    telemetry: Optional[TelemetryBus] = None,
    config: Optional[Settings] = None,
    chain_id: Optional[int] = None,
    session_id: Optional[str] = None,
) -> SwapOrchestrator:
    """Wire one swap session: leaf components share the session's telemetry bus."""
    cfg = config or default_settings
    return SwapOrchestrator(
        executor=executor,
        allowance=AllowanceCoordinator(approver, telemetry, chain_id=chain_id),
        quote_tracker=QuoteTracker(telemetry),
        impact_gate=ImpactGate(cfg),
        wrapper=wrapper,
        wallet=wallet,
        telemetry=telemetry,
        config=cfg,
        session_id=session_id,
    )
