"""
Session replay

Drives a SwapOrchestrator from a JSON script of screen events, with the
external services replaced by scripted outcomes. Used by the dev CLI to
walk through a swap session step by step.

Script layout::

    {
      "tokens": {"USDC": {"address": "0x...", "decimals": 6}},
      "approvals": [{"result": "permit-1"}, {"error": "User rejected"}],
      "swaps": [{"result": "0xhash"}],
      "steps": [
        {"op": "environment", "account": "0x...", "input": "USDC", "output": "WETH", ...},
        {"op": "type", "field": "input", "value": "100"},
        {"op": "quote", "status": "valid", "trade": "t1", "amountIn": "100", "amountOut": "0.05"},
        {"op": "allowance", "amount": "0"},
        {"op": "invoke"}
      ]
    }
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from .config import Settings
from .core.swap.errors import AuthorizationError, ExecutionError
from .core.swap.models import (
    FiatValues,
    OperationOutcome,
    Quote,
    QuoteStatus,
    SwapEnvironment,
    SwapField,
    Token,
    TokenAmount,
    Trade,
    WrapType,
)
from .core.swap.orchestrator import SwapOrchestrator, build_orchestrator
from .telemetry.events import TelemetryEvent
from .telemetry.sinks import InMemoryTelemetrySink, TelemetryBus, TelemetrySink

logger = logging.getLogger(__name__)


class ReplayError(ValueError):
    """The replay script is malformed."""


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


class _ScriptedOutcomes:
    def __init__(self, name: str, outcomes: List[Dict[str, Any]]):
        self._name = name
        self._outcomes = list(outcomes)
        self.calls = 0

    def next(self) -> Dict[str, Any]:
        self.calls += 1
        if not self._outcomes:
            raise ReplayError(f"No scripted {self._name} outcome left for call {self.calls}")
        return self._outcomes.pop(0)


class ScriptedApprover:
    def __init__(self, outcomes: List[Dict[str, Any]]):
        self._script = _ScriptedOutcomes("approval", outcomes)

    async def approve(self, owner: str, token: Token, spender: str, amount: Decimal) -> Optional[str]:
        outcome = self._script.next()
        if "error" in outcome:
            raise AuthorizationError(outcome["error"], token=token.address, spender=spender)
        return outcome.get("result")


class ScriptedExecutor:
    def __init__(self, outcomes: List[Dict[str, Any]]):
        self._script = _ScriptedOutcomes("swap", outcomes)

    async def execute(
        self,
        trade: Trade,
        fiat_values: FiatValues,
        allowed_slippage: Decimal,
        authorization: Optional[str],
    ) -> str:
        outcome = self._script.next()
        if "error" in outcome:
            raise ExecutionError(outcome["error"], code=outcome.get("code"))
        return outcome["result"]


class ScriptedWrapper:
    def __init__(self, outcomes: List[Dict[str, Any]]):
        self._script = _ScriptedOutcomes("wrap", outcomes)

    async def execute_wrap(self) -> Optional[str]:
        outcome = self._script.next()
        if "error" in outcome:
            raise ExecutionError(outcome["error"])
        return outcome.get("result")


class ScriptedWallet:
    def __init__(self) -> None:
        self.toggles = 0

    def toggle_wallet(self) -> None:
        self.toggles += 1


@dataclass
class ReplayStep:
    index: int
    op: str
    action: Dict[str, Any]
    outcome: Optional[OperationOutcome] = None
    events: List[TelemetryEvent] = field(default_factory=list)


class SessionReplay:
    """Applies script steps one at a time to a fresh orchestrator."""

    def __init__(
        self,
        script: Dict[str, Any],
        config: Optional[Settings] = None,
        sinks: Optional[List[TelemetrySink]] = None,
    ):
        self.script = script
        self.tokens: Dict[str, Token] = {
            symbol: Token(
                symbol=symbol,
                address=spec["address"],
                decimals=spec.get("decimals", 18),
                is_native=spec.get("native", False),
            )
            for symbol, spec in script.get("tokens", {}).items()
        }
        self.recorder = InMemoryTelemetrySink()
        self.telemetry = TelemetryBus([self.recorder, *(sinks or [])], enabled=True)
        self.wallet = ScriptedWallet()
        self.orchestrator: SwapOrchestrator = build_orchestrator(
            executor=ScriptedExecutor(script.get("swaps", [])),
            approver=ScriptedApprover(script.get("approvals", [])),
            wrapper=ScriptedWrapper(script.get("wraps", [])),
            wallet=self.wallet,
            telemetry=self.telemetry,
            config=config,
            chain_id=script.get("chainId"),
            session_id=script.get("sessionId"),
        )
        self._trades: Dict[str, Trade] = {}
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "environment": self._environment,
            "type": self._type,
            "quote": self._quote,
            "allowance": self._allowance,
            "max": self._max,
            "invoke": self._invoke,
            "accept": self._accept,
            "acceptChanges": self._accept_changes,
            "dismiss": self._dismiss,
        }

    async def run(self) -> List[ReplayStep]:
        return [await self.apply(index, step) for index, step in enumerate(self.script.get("steps", []), 1)]

    async def apply(self, index: int, step: Dict[str, Any]) -> ReplayStep:
        op = step.get("op")
        handler = self._handlers.get(op)
        if handler is None:
            raise ReplayError(f"Step {index}: unknown op {op!r}")

        seen = len(self.recorder.events)
        result = handler(step)
        if inspect.isawaitable(result):
            result = await result
        logger.debug(f"Replayed step {index} ({op})")

        return ReplayStep(
            index=index,
            op=op,
            action=self.orchestrator.primary_action().to_dict(),
            outcome=result if isinstance(result, OperationOutcome) else None,
            events=self.recorder.events[seen:],
        )

    def _token(self, symbol: Optional[str]) -> Optional[Token]:
        if symbol is None:
            return None
        try:
            return self.tokens[symbol]
        except KeyError:
            raise ReplayError(f"Unknown token {symbol!r}") from None

    def _environment(self, step: Dict[str, Any]) -> None:
        self.orchestrator.update_environment(
            SwapEnvironment(
                account=step.get("account"),
                chain_id=step.get("chainId"),
                input_token=self._token(step.get("input")),
                output_token=self._token(step.get("output")),
                spender=step.get("spender"),
                swap_unsupported=step.get("unsupported", False),
                wrap_type=WrapType(step.get("wrapType", WrapType.NOT_APPLICABLE.value)),
                wrap_input_error=step.get("wrapInputError"),
                fair_value_in=_decimal(step.get("fairValueIn")),
                fair_value_out=_decimal(step.get("fairValueOut")),
                input_balance=_decimal(step.get("balance")),
                recipient=step.get("recipient"),
                recipient_address=step.get("recipientAddress"),
                allowed_slippage=_decimal(step.get("slippage")),
                expert_mode=step.get("expertMode", False),
            )
        )

    def _type(self, step: Dict[str, Any]) -> None:
        self.orchestrator.type_input(SwapField(step.get("field", "input")), str(step.get("value", "")))

    def _quote(self, step: Dict[str, Any]) -> None:
        status = QuoteStatus(step.get("status", QuoteStatus.VALID.value))
        trade = None
        name = step.get("trade")
        if name is not None and name in self._trades:
            trade = self._trades[name]
        elif "amountIn" in step:
            env = self.orchestrator.environment
            if env.input_token is None or env.output_token is None:
                raise ReplayError("Quote with a trade needs input and output tokens in the environment")
            maximum_in = _decimal(step.get("maximumAmountIn"))
            trade = Trade(
                input_amount=TokenAmount(env.input_token, _decimal(step["amountIn"])),
                output_amount=TokenAmount(env.output_token, _decimal(step["amountOut"])),
                price_impact=_decimal(step.get("priceImpact")),
                maximum_amount_in=TokenAmount(env.input_token, maximum_in) if maximum_in is not None else None,
                has_route=step.get("hasRoute", True),
                gas_estimate_usd=_decimal(step.get("gasUsd")),
            )
            if name is not None:
                self._trades[name] = trade
        self.orchestrator.update_quote(Quote(status=status, trade=trade))

    def _allowance(self, step: Dict[str, Any]) -> None:
        env = self.orchestrator.environment
        if not env.account or not env.spender or env.input_token is None:
            raise ReplayError("Allowance step needs account, spender and input token in the environment")
        self.orchestrator.allowance.observe_allowance(
            env.account, env.input_token, env.spender, _decimal(step["amount"])
        )

    def _max(self, step: Dict[str, Any]) -> None:
        self.orchestrator.use_max_input()

    def _invoke(self, step: Dict[str, Any]):
        return self.orchestrator.invoke_primary_action()

    def _accept(self, step: Dict[str, Any]):
        return self.orchestrator.accept()

    def _accept_changes(self, step: Dict[str, Any]) -> None:
        self.orchestrator.accept_changes()

    def _dismiss(self, step: Dict[str, Any]) -> None:
        self.orchestrator.dismiss()
