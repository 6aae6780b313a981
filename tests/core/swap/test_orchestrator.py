"""
Tests for the Swap Orchestrator

Covers the primary-action decision table, the confirm/submit lifecycle,
single-flight guarantees and the telemetry emitted along the way.
"""

import asyncio
from dataclasses import replace
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from swapdesk.config import Settings
from swapdesk.core.swap import (
    AuthorizationError,
    ErrorCategory,
    ExecutionError,
    InvalidTransitionError,
    OutcomeStatus,
    Quote,
    QuoteRequest,
    QuoteStatus,
    Settled,
    SwapEnvironment,
    SwapField,
    SwapFlowState,
    Token,
    TokenAmount,
    Trade,
    WrapType,
    build_orchestrator,
)
from swapdesk.telemetry import InMemoryTelemetrySink, TelemetryBus, TelemetryEventKind


ACCOUNT = "0x1111111111111111111111111111111111111111"
OTHER_ACCOUNT = "0x3333333333333333333333333333333333333333"
SPENDER = "0x2222222222222222222222222222222222222222"
TX_HASH = "0xfeedfacefeedfacefeedfacefeedfacefeedfacefeedfacefeedfacefeedface"

USDC = Token(symbol="USDC", address="0xaAaAaAaaAaAaAaaAaAAAAAAAAaaaAaAaAaaAaaAa", decimals=6)
WETH = Token(symbol="WETH", address="0xbBbBBBBbbBBBbbbBbbBbbbbBBbBbbbbBbBbbBBbB")
ETH = Token(symbol="ETH", address="0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE", is_native=True)


def make_trade(amount_in="100", amount_out="0.05", price_impact="0.3", **kwargs) -> Trade:
    return Trade(
        input_amount=TokenAmount(USDC, Decimal(amount_in)),
        output_amount=TokenAmount(WETH, Decimal(amount_out)),
        price_impact=Decimal(price_impact) if price_impact is not None else None,
        **kwargs,
    )


def prepare(orchestrator, trade=None, allowance="1000", typed="100", **env_overrides) -> Trade:
    """Bring a session to a quoted state: wallet connected, amount typed, quote valid."""
    environment = SwapEnvironment(
        account=ACCOUNT,
        chain_id=1,
        input_token=USDC,
        output_token=WETH,
        spender=SPENDER,
        input_balance=Decimal("500"),
    )
    orchestrator.update_environment(replace(environment, **env_overrides))
    orchestrator.type_input(SwapField.INPUT, typed)
    if allowance is not None:
        orchestrator.allowance.observe_allowance(ACCOUNT, USDC, SPENDER, Decimal(allowance))
    trade = trade or make_trade()
    orchestrator.update_quote(Quote(status=QuoteStatus.VALID, trade=trade))
    return trade


def blocking_mock(result):
    """Async side effect that parks until the returned event is set."""
    gate = asyncio.Event()

    async def side_effect(*args, **kwargs):
        await gate.wait()
        return result

    return gate, side_effect


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def sink() -> InMemoryTelemetrySink:
    return InMemoryTelemetrySink()


@pytest.fixture
def executor():
    executor = AsyncMock()
    executor.execute.return_value = TX_HASH
    return executor


@pytest.fixture
def approver():
    approver = AsyncMock()
    approver.approve.return_value = "permit-1"
    return approver


@pytest.fixture
def wrapper():
    wrapper = AsyncMock()
    wrapper.execute_wrap.return_value = "0xwrap"
    return wrapper


@pytest.fixture
def wallet():
    return MagicMock()


@pytest.fixture
def orchestrator(executor, approver, wrapper, wallet, sink):
    return build_orchestrator(
        executor=executor,
        approver=approver,
        wrapper=wrapper,
        wallet=wallet,
        telemetry=TelemetryBus([sink], enabled=True),
        config=Settings(default_slippage_percent=Decimal("0.5"), swap_route_label="SwapRouter"),
        chain_id=1,
        session_id="test-session",
    )


# =============================================================================
# Decision Table Tests
# =============================================================================

class TestPrimaryAction:
    """Tests for the priority-ordered primary action rules."""

    def test_unsupported_pair_wins_over_everything(self, orchestrator):
        prepare(orchestrator, swap_unsupported=True, account=None)

        action = orchestrator.primary_action()

        assert action.state == SwapFlowState.UNSUPPORTED
        assert action.label == "Unsupported Asset"
        assert action.enabled is False
        assert action.error.category == ErrorCategory.UNSUPPORTED_ASSET
        assert action.error.recoverable is False

    def test_no_wallet_offers_connect(self, orchestrator):
        prepare(orchestrator, account=None)

        action = orchestrator.primary_action()

        assert action.state == SwapFlowState.WALLET_DISCONNECTED
        assert action.label == "Connect Wallet"
        assert action.enabled is True

    @pytest.mark.parametrize(
        "wrap_type,label",
        [(WrapType.WRAP, "Wrap"), (WrapType.UNWRAP, "Unwrap")],
    )
    def test_wrap_pair_shows_wrap_label(self, orchestrator, wrap_type, label):
        prepare(orchestrator, wrap_type=wrap_type, allowance=None)

        action = orchestrator.primary_action()

        assert action.state == SwapFlowState.NEEDS_WRAP
        assert action.label == label
        assert action.enabled is True

    def test_wrap_input_error_disables_wrap(self, orchestrator):
        prepare(orchestrator, wrap_type=WrapType.WRAP, wrap_input_error="Insufficient ETH balance")

        action = orchestrator.primary_action()

        assert action.label == "Insufficient ETH balance"
        assert action.enabled is False

    def test_scenario_e_no_route_is_insufficient_liquidity(self, orchestrator):
        prepare(orchestrator)
        orchestrator.update_quote(Quote(status=QuoteStatus.NO_ROUTE))

        action = orchestrator.primary_action()

        assert action.state == SwapFlowState.INSUFFICIENT_LIQUIDITY
        assert action.label == "Insufficient liquidity for this trade."
        assert action.enabled is False
        assert action.error.category == ErrorCategory.ROUTE
        assert action.to_dict()["error"]["message"] == "Insufficient liquidity for this trade."

    def test_valid_quote_without_route_is_insufficient_liquidity(self, orchestrator):
        prepare(orchestrator, trade=make_trade(has_route=False))

        assert orchestrator.primary_action().state == SwapFlowState.INSUFFICIENT_LIQUIDITY

    def test_loading_quote_is_not_insufficient_liquidity(self, orchestrator):
        prepare(orchestrator)
        orchestrator.update_quote(Quote(status=QuoteStatus.LOADING))

        action = orchestrator.primary_action()

        assert action.state == SwapFlowState.READY_TO_CONFIRM
        assert action.label == "Swap"
        assert action.enabled is False

    def test_syncing_quote_disables_swap(self, orchestrator):
        trade = prepare(orchestrator)
        orchestrator.update_quote(Quote(status=QuoteStatus.SYNCING, trade=trade))

        action = orchestrator.primary_action()

        assert action.label == "Swap"
        assert action.enabled is False

    def test_empty_amount_is_input_error(self, orchestrator):
        prepare(orchestrator, typed="")

        action = orchestrator.primary_action()

        assert action.state == SwapFlowState.NO_INPUT
        assert action.label == "Enter an amount"
        assert action.enabled is False
        assert action.error.category == ErrorCategory.INPUT

    def test_amount_finer_than_token_decimals_is_input_error(self, orchestrator):
        prepare(orchestrator, typed="0.0000001")

        action = orchestrator.primary_action()

        assert action.label == "Enter an amount"
        assert orchestrator.parsed_amount is None
        assert orchestrator.current_request is None

    def test_decimal_comma_is_accepted(self, orchestrator):
        prepare(orchestrator, typed="1,5")

        assert orchestrator.parsed_amount == Decimal("1.5")
        assert orchestrator.primary_action().label == "Swap"

    def test_missing_token_is_input_error(self, orchestrator):
        prepare(orchestrator, output_token=None)

        assert orchestrator.primary_action().label == "Select a token"

    def test_balance_checked_against_maximum_amount_in(self, orchestrator):
        trade = make_trade(maximum_amount_in=TokenAmount(USDC, Decimal("501")))
        prepare(orchestrator, trade=trade)

        action = orchestrator.primary_action()

        assert action.label == "Insufficient USDC balance"
        assert action.enabled is False

    def test_unresolved_recipient_is_input_error(self, orchestrator):
        prepare(orchestrator, recipient="not-an-address.eth")

        assert orchestrator.primary_action().label == "Invalid recipient"

    def test_resolved_recipient_passes(self, orchestrator):
        prepare(orchestrator, recipient="friend.eth", recipient_address=OTHER_ACCOUNT)

        assert orchestrator.primary_action().label == "Swap"

    def test_unknown_allowance_keeps_swap_disabled(self, orchestrator):
        prepare(orchestrator, allowance=None)

        action = orchestrator.primary_action()

        assert action.state == SwapFlowState.READY_TO_CONFIRM
        assert action.enabled is False

    def test_native_input_needs_no_allowance(self, orchestrator):
        trade = Trade(
            input_amount=TokenAmount(ETH, Decimal("1")),
            output_amount=TokenAmount(USDC, Decimal("3000")),
            price_impact=Decimal("0.1"),
        )
        prepare(orchestrator, trade=trade, allowance=None, typed="1", input_token=ETH, output_token=USDC,
                input_balance=Decimal("2"))

        action = orchestrator.primary_action()

        assert action.label == "Swap"
        assert action.enabled is True


# =============================================================================
# Scenario Tests
# =============================================================================

class TestSwapScenarios:
    """End-to-end flows through the primary action."""

    @pytest.mark.asyncio
    async def test_scenario_a_swaps_directly(self, orchestrator, executor):
        trade = prepare(orchestrator)
        seen = []

        async def execute(*args):
            seen.append((orchestrator.flow_state, orchestrator.confirmation_modal().open))
            return TX_HASH

        executor.execute.side_effect = execute

        action = orchestrator.primary_action()
        assert action.label == "Swap"
        assert action.enabled is True
        assert action.danger is False

        outcome = await action.invoke()

        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert outcome.result == TX_HASH
        assert seen == [(SwapFlowState.SUBMITTING, False)]
        executor.execute.assert_awaited_once()
        called_trade, fiat_values, slippage, authorization = executor.execute.await_args.args
        assert called_trade is trade
        assert slippage == Decimal("0.5")
        assert orchestrator.flow_state == SwapFlowState.SETTLED

    @pytest.mark.asyncio
    async def test_scenario_b_authorize_then_swap(self, orchestrator, approver, executor, sink):
        prepare(orchestrator, allowance="0")
        gate, side_effect = blocking_mock("permit-1")
        approver.approve.side_effect = side_effect

        action = orchestrator.primary_action()
        assert action.state == SwapFlowState.NEEDS_AUTHORIZATION
        assert action.label == "Approve use of USDC"
        assert action.enabled is True

        task = asyncio.create_task(action.invoke())
        await asyncio.sleep(0)

        pending = orchestrator.primary_action()
        assert pending.label == "Approval pending"
        assert pending.enabled is False

        gate.set()
        outcome = await task

        assert outcome.status == OutcomeStatus.SUCCEEDED
        approver.approve.assert_awaited_once_with(ACCOUNT.lower(), USDC, SPENDER.lower(), Decimal("100"))
        events = sink.of_kind(TelemetryEventKind.AUTHORIZATION_SUBMITTED)
        assert len(events) == 1
        assert events[0].token_symbol == "USDC"
        assert events[0].amount == Decimal("100")

        swap = orchestrator.primary_action()
        assert swap.label == "Swap"
        assert swap.enabled is True

        await swap.invoke()
        assert executor.execute.await_args.args[3] == "permit-1"

    @pytest.mark.asyncio
    async def test_failed_authorization_returns_to_approve(self, orchestrator, approver):
        prepare(orchestrator, allowance="0")
        approver.approve.side_effect = AuthorizationError("User rejected the request")

        outcome = await orchestrator.invoke_primary_action()

        assert outcome.status == OutcomeStatus.FAILED
        action = orchestrator.primary_action()
        assert action.label == "Approve use of USDC"
        assert action.enabled is True

    @pytest.mark.asyncio
    async def test_scenario_c_high_impact_requires_confirmation(self, orchestrator, executor):
        trade = prepare(orchestrator, trade=make_trade(price_impact="6"))

        action = orchestrator.primary_action()
        assert action.label == "Swap Anyway"
        assert action.danger is True

        outcome = await action.invoke()

        assert outcome.status == OutcomeStatus.AWAITING_CONFIRMATION
        executor.execute.assert_not_awaited()
        assert orchestrator.flow_state == SwapFlowState.CONFIRMING
        modal = orchestrator.confirmation_modal()
        assert modal.open is True
        assert modal.trade_snapshot is trade
        assert orchestrator.primary_action().enabled is False

        outcome = await orchestrator.accept()

        assert outcome.status == OutcomeStatus.SUCCEEDED
        executor.execute.assert_awaited_once()
        modal = orchestrator.confirmation_modal()
        assert modal.open is True
        assert modal.result_handle == TX_HASH

    @pytest.mark.asyncio
    async def test_scenario_c_dismiss_without_accept_keeps_input(self, orchestrator, executor):
        prepare(orchestrator, trade=make_trade(price_impact="6"))
        await orchestrator.invoke_primary_action()

        orchestrator.dismiss()

        assert orchestrator.attempt is None
        assert orchestrator.inputs.typed_value == "100"
        assert orchestrator.confirmation_modal().open is False
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dismiss_after_settlement_clears_input(self, orchestrator):
        prepare(orchestrator, trade=make_trade(price_impact="6"))
        await orchestrator.invoke_primary_action()
        await orchestrator.accept()

        orchestrator.dismiss()

        assert orchestrator.attempt is None
        assert orchestrator.inputs.typed_value == ""
        assert orchestrator.primary_action().label == "Enter an amount"

    @pytest.mark.asyncio
    async def test_override_is_remembered_for_the_same_trade(self, orchestrator, executor):
        trade = prepare(orchestrator, trade=make_trade(price_impact="6"))
        await orchestrator.invoke_primary_action()
        await orchestrator.accept()
        orchestrator.dismiss()
        orchestrator.type_input(SwapField.INPUT, "100")

        outcome = await orchestrator.invoke_primary_action()

        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert executor.execute.await_count == 2
        assert executor.execute.await_args.args[0] is trade

    @pytest.mark.asyncio
    async def test_scenario_d_wrap_runs_directly(self, orchestrator, wrapper, executor):
        prepare(orchestrator, wrap_type=WrapType.WRAP, allowance=None)

        outcome = await orchestrator.invoke_primary_action()

        assert outcome.status == OutcomeStatus.SUCCEEDED
        wrapper.execute_wrap.assert_awaited_once()
        executor.execute.assert_not_awaited()
        assert orchestrator.attempt is None
        assert orchestrator.confirmation_modal().open is False

    @pytest.mark.asyncio
    async def test_wrap_failure_is_an_outcome(self, orchestrator, wrapper):
        prepare(orchestrator, wrap_type=WrapType.WRAP, allowance=None)
        wrapper.execute_wrap.side_effect = RuntimeError("user denied transaction signature")

        outcome = await orchestrator.invoke_primary_action()

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error == "Transaction rejected"

    @pytest.mark.asyncio
    async def test_connect_wallet_reports_quote_presence(self, orchestrator, wallet, sink):
        prepare(orchestrator, account=None)

        outcome = await orchestrator.invoke_primary_action()

        assert outcome.status == OutcomeStatus.SUCCEEDED
        wallet.toggle_wallet.assert_called_once()
        events = sink.of_kind(TelemetryEventKind.CONNECT_WALLET_CLICKED)
        assert [event.received_swap_quote for event in events] == [True]

    @pytest.mark.asyncio
    async def test_connect_wallet_without_quote(self, orchestrator, sink):
        await orchestrator.invoke_primary_action()

        events = sink.of_kind(TelemetryEventKind.CONNECT_WALLET_CLICKED)
        assert [event.received_swap_quote for event in events] == [False]


# =============================================================================
# Price Impact Gate Tests
# =============================================================================

class TestImpactGating:
    """Tests for the severe tier hard block and expert mode."""

    @pytest.mark.asyncio
    async def test_severe_impact_blocks_without_expert_mode(self, orchestrator, executor):
        prepare(orchestrator, trade=make_trade(price_impact="20"))

        action = orchestrator.primary_action()
        assert action.label == "Price Impact Too High"
        assert action.enabled is False

        outcome = await action.invoke()

        assert outcome.status == OutcomeStatus.SKIPPED
        assert orchestrator.attempt is None
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fair_value_drop_alone_can_block(self, orchestrator):
        prepare(orchestrator, fair_value_in=Decimal("100"), fair_value_out=Decimal("80"))

        assert orchestrator.primary_action().label == "Price Impact Too High"

    @pytest.mark.asyncio
    async def test_expert_mode_still_needs_override_click(self, orchestrator, executor):
        prepare(orchestrator, trade=make_trade(price_impact="20"), expert_mode=True)

        action = orchestrator.primary_action()
        assert action.label == "Swap Anyway"
        assert action.enabled is True

        outcome = await action.invoke()
        assert outcome.status == OutcomeStatus.AWAITING_CONFIRMATION
        executor.execute.assert_not_awaited()

        outcome = await orchestrator.accept()
        assert outcome.status == OutcomeStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_accept_refused_once_trade_becomes_blocked(self, orchestrator, executor):
        trade = prepare(orchestrator, trade=make_trade(price_impact="6"))
        await orchestrator.invoke_primary_action()
        orchestrator.update_quote(Quote(status=QuoteStatus.VALID, trade=replace(trade, id="t-2", price_impact=Decimal("30"))))

        outcome = await orchestrator.accept()

        assert outcome.status == OutcomeStatus.SKIPPED
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_accept_refused_when_balance_no_longer_covers_trade(self, orchestrator, executor):
        prepare(orchestrator, trade=make_trade(price_impact="6"))
        await orchestrator.invoke_primary_action()
        costlier = make_trade(amount_in="101", price_impact="6", maximum_amount_in=TokenAmount(USDC, Decimal("600")))
        orchestrator.update_quote(Quote(status=QuoteStatus.VALID, trade=costlier))
        orchestrator.accept_changes()

        outcome = await orchestrator.accept()

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.error == "Insufficient USDC balance"
        executor.execute.assert_not_awaited()
        assert orchestrator.flow_state == SwapFlowState.CONFIRMING

    @pytest.mark.asyncio
    async def test_accept_refused_when_allowance_falls_short(self, orchestrator, executor):
        prepare(orchestrator, trade=make_trade(price_impact="6"), allowance="150")
        await orchestrator.invoke_primary_action()
        orchestrator.allowance.observe_allowance(ACCOUNT, USDC, SPENDER, Decimal("50"))

        outcome = await orchestrator.accept()

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.error == "Approve use of USDC"
        executor.execute.assert_not_awaited()


# =============================================================================
# Confirmation Lifecycle Tests
# =============================================================================

class TestConfirmation:
    """Tests for accept-changes, dismissal and single-flight submission."""

    @pytest.mark.asyncio
    async def test_changed_quote_requires_accepting_changes(self, orchestrator, executor):
        prepare(orchestrator, trade=make_trade(price_impact="6"))
        await orchestrator.invoke_primary_action()
        updated = make_trade(amount_out="0.049", price_impact="6.2")
        orchestrator.update_quote(Quote(status=QuoteStatus.VALID, trade=updated))

        assert orchestrator.confirmation_modal().accept_changes_required is True
        skipped = await orchestrator.accept()
        assert skipped.status == OutcomeStatus.SKIPPED
        executor.execute.assert_not_awaited()

        orchestrator.accept_changes()
        modal = orchestrator.confirmation_modal()
        assert modal.accept_changes_required is False
        assert modal.trade_snapshot is updated

        outcome = await orchestrator.accept()
        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert executor.execute.await_args.args[0] is updated

    @pytest.mark.asyncio
    async def test_refreshed_quote_with_same_amounts_is_not_a_change(self, orchestrator):
        prepare(orchestrator, trade=make_trade(price_impact="6"))
        await orchestrator.invoke_primary_action()

        orchestrator.update_quote(Quote(status=QuoteStatus.VALID, trade=make_trade(price_impact="6")))

        assert orchestrator.confirmation_modal().accept_changes_required is False

    def test_accept_changes_outside_confirmation_raises(self, orchestrator):
        prepare(orchestrator)

        with pytest.raises(InvalidTransitionError):
            orchestrator.accept_changes()

    @pytest.mark.asyncio
    async def test_accept_without_confirmation_is_skipped(self, orchestrator, executor):
        prepare(orchestrator)

        outcome = await orchestrator.accept()

        assert outcome.status == OutcomeStatus.SKIPPED
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_submission_is_single_flight(self, orchestrator, executor):
        prepare(orchestrator)
        gate, side_effect = blocking_mock(TX_HASH)
        executor.execute.side_effect = side_effect

        task = asyncio.create_task(orchestrator.invoke_primary_action())
        await asyncio.sleep(0)

        assert orchestrator.flow_state == SwapFlowState.SUBMITTING
        action = orchestrator.primary_action()
        assert action.state == SwapFlowState.SUBMITTING
        assert action.enabled is False
        second = await orchestrator.invoke_primary_action()
        assert second.status == OutcomeStatus.SKIPPED

        gate.set()
        await task

        executor.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_dismiss_while_submitting_hides_modal(self, orchestrator, executor):
        prepare(orchestrator, trade=make_trade(price_impact="6"))
        gate, side_effect = blocking_mock(TX_HASH)
        executor.execute.side_effect = side_effect
        await orchestrator.invoke_primary_action()

        task = asyncio.create_task(orchestrator.accept())
        await asyncio.sleep(0)
        assert orchestrator.confirmation_modal().attempting is True

        orchestrator.dismiss()
        assert orchestrator.confirmation_modal().open is False

        gate.set()
        outcome = await task

        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert isinstance(orchestrator.attempt, Settled)
        assert orchestrator.confirmation_modal().open is False

    @pytest.mark.asyncio
    async def test_execution_failure_allows_retry(self, orchestrator, executor):
        prepare(orchestrator, trade=make_trade(price_impact="6"))
        executor.execute.side_effect = [ExecutionError("Swap reverted"), TX_HASH]
        await orchestrator.invoke_primary_action()

        failed = await orchestrator.accept()

        assert failed.status == OutcomeStatus.FAILED
        assert orchestrator.flow_state == SwapFlowState.FAILED
        assert orchestrator.confirmation_modal().error_message == "Swap reverted"
        action = orchestrator.primary_action()
        assert action.state == SwapFlowState.READY_TO_CONFIRM
        assert action.enabled is True

        retried = await action.invoke()

        assert retried.status == OutcomeStatus.SUCCEEDED
        assert orchestrator.flow_state == SwapFlowState.SETTLED

    @pytest.mark.asyncio
    async def test_provider_errors_are_made_readable(self, orchestrator, executor):
        prepare(orchestrator)
        executor.execute.side_effect = RuntimeError("execution reverted: Too little received")

        outcome = await orchestrator.invoke_primary_action()

        assert outcome.status == OutcomeStatus.FAILED
        assert "slippage" in outcome.error


# =============================================================================
# Telemetry Tests
# =============================================================================

class TestSwapTelemetry:
    """Tests for events emitted by the orchestrator."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "recipient,label",
        [
            (None, "Swap w/o Send"),
            (ACCOUNT, "Swap w/o Send + recipient"),
            (OTHER_ACCOUNT, "Swap w/ Send"),
        ],
    )
    async def test_swap_submitted_label(self, orchestrator, sink, recipient, label):
        prepare(orchestrator, recipient=recipient)

        await orchestrator.invoke_primary_action()

        events = sink.of_kind(TelemetryEventKind.SWAP_SUBMITTED)
        assert len(events) == 1
        assert events[0].label == label
        assert events[0].route == "SwapRouter/USDC/WETH/MH"
        assert events[0].result_handle == TX_HASH

    @pytest.mark.asyncio
    async def test_failed_swap_emits_nothing(self, orchestrator, executor, sink):
        prepare(orchestrator)
        executor.execute.side_effect = ExecutionError("Swap reverted")

        await orchestrator.invoke_primary_action()

        assert sink.of_kind(TelemetryEventKind.SWAP_SUBMITTED) == []

    def test_quote_received_once_per_cycle(self, orchestrator, sink):
        prepare(orchestrator)
        sink.clear()
        trade = make_trade()

        orchestrator.update_quote(Quote(status=QuoteStatus.LOADING))
        orchestrator.update_quote(Quote(status=QuoteStatus.VALID, trade=trade))
        orchestrator.update_quote(Quote(status=QuoteStatus.SYNCING, trade=trade))
        orchestrator.update_quote(Quote(status=QuoteStatus.VALID, trade=trade))

        assert len(sink.of_kind(TelemetryEventKind.QUOTE_RECEIVED)) == 1

    def test_stale_quote_is_displayed_but_not_logged(self, orchestrator, sink):
        prepare(orchestrator, typed="100")
        sink.clear()
        orchestrator.update_quote(Quote(status=QuoteStatus.LOADING))
        stale_request = QuoteRequest(
            input_token=USDC.key,
            output_token=WETH.key,
            independent_field=SwapField.INPUT,
            amount=Decimal("50"),
        )
        stale = Quote(status=QuoteStatus.VALID, trade=make_trade(amount_in="50"), request=stale_request)

        event = orchestrator.update_quote(stale)

        assert event is None
        assert orchestrator.quote is stale
        assert sink.of_kind(TelemetryEventKind.QUOTE_RECEIVED) == []


# =============================================================================
# Max Input Tests
# =============================================================================

class TestMaxInput:
    """Tests for applying the maximum spendable amount."""

    def test_max_uses_full_token_balance(self, orchestrator, sink):
        prepare(orchestrator, typed="")
        assert orchestrator.show_max_button is True

        amount = orchestrator.use_max_input()

        assert amount == Decimal("500")
        assert orchestrator.inputs.typed_value == "500"
        assert orchestrator.inputs.independent_field == SwapField.INPUT
        assert orchestrator.show_max_button is False
        events = sink.of_kind(TelemetryEventKind.MAX_INPUT_APPLIED)
        assert [event.amount for event in events] == [Decimal("500")]

    def test_max_keeps_gas_reserve_for_native_token(self, orchestrator):
        orchestrator.update_environment(
            SwapEnvironment(account=ACCOUNT, input_token=ETH, output_token=USDC, input_balance=Decimal("1"))
        )

        amount = orchestrator.use_max_input()

        assert amount == Decimal("0.99")
        assert orchestrator.inputs.typed_value == "0.99"

    def test_max_without_balance_does_nothing(self, orchestrator, sink):
        orchestrator.update_environment(SwapEnvironment(account=ACCOUNT, input_token=USDC, output_token=WETH))

        assert orchestrator.use_max_input() is None
        assert orchestrator.show_max_button is False
        assert sink.events == []


# =============================================================================
# Snapshot Tests
# =============================================================================

class TestSnapshot:
    def test_snapshot_reports_state(self, orchestrator):
        prepare(orchestrator)

        snapshot = orchestrator.snapshot()

        assert snapshot["sessionId"] == "test-session"
        assert snapshot["flowState"] == "ready_to_confirm"
        assert snapshot["primaryAction"]["label"] == "Swap"
        assert snapshot["allowance"] == "granted"
        assert snapshot["severity"] == "NONE"
        assert snapshot["attempt"] is None
