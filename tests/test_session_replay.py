"""
Tests for scripted session replay and the CLI entry point.
"""

import json

import httpx
import pytest

from cli import build_parser, cli_replay
from swapdesk.config import Settings
from swapdesk.core.swap import OutcomeStatus, SwapFlowState
from swapdesk.replay import ReplayError, SessionReplay
from swapdesk.telemetry import HttpTelemetrySink, InMemoryTelemetrySink, TelemetryEventKind


ACCOUNT = "0x1111111111111111111111111111111111111111"
SPENDER = "0x68b3465833fb72A70ecDF485E0e4C7bD8665Fc45"


def high_impact_script():
    return {
        "sessionId": "replay-test",
        "chainId": 1,
        "tokens": {
            "USDC": {"address": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "decimals": 6},
            "WETH": {"address": "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"},
        },
        "approvals": [{"result": "permit-1"}],
        "swaps": [{"result": "0xhash"}],
        "steps": [
            {"op": "environment"},
            {"op": "environment", "account": ACCOUNT, "input": "USDC", "output": "WETH",
             "spender": SPENDER, "balance": "500"},
            {"op": "type", "field": "input", "value": "100"},
            {"op": "quote", "status": "loading"},
            {"op": "quote", "status": "valid", "trade": "t1", "amountIn": "100", "amountOut": "0.026",
             "priceImpact": "7"},
            {"op": "allowance", "amount": "0"},
            {"op": "invoke"},
            {"op": "invoke"},
            {"op": "quote", "status": "valid", "trade": "t2", "amountIn": "100", "amountOut": "0.025",
             "priceImpact": "7.4"},
            {"op": "acceptChanges"},
            {"op": "accept"},
            {"op": "dismiss"},
        ],
    }


class TestSessionReplay:

    @pytest.mark.asyncio
    async def test_high_impact_session(self):
        replay = SessionReplay(high_impact_script())

        steps = await replay.run()

        labels = [step.action["label"] for step in steps]
        assert labels[0] == "Connect Wallet"
        assert labels[5] == "Approve use of USDC"
        assert labels[6] == "Swap Anyway"
        assert steps[6].outcome.status == OutcomeStatus.SUCCEEDED
        assert steps[7].action["state"] == SwapFlowState.CONFIRMING.value
        assert steps[7].outcome.status == OutcomeStatus.AWAITING_CONFIRMATION
        assert steps[10].outcome.status == OutcomeStatus.SUCCEEDED
        assert steps[11].action["label"] == "Enter an amount"

        kinds = [event.kind for event in replay.recorder.events]
        assert kinds == [
            TelemetryEventKind.QUOTE_RECEIVED,
            TelemetryEventKind.AUTHORIZATION_SUBMITTED,
            TelemetryEventKind.SWAP_SUBMITTED,
        ]
        swap = replay.recorder.events[-1]
        assert swap.route.endswith("/USDC/WETH/MH")
        assert swap.result_handle == "0xhash"

    @pytest.mark.asyncio
    async def test_unknown_op_is_rejected(self):
        replay = SessionReplay({"steps": [{"op": "teleport"}]})

        with pytest.raises(ReplayError):
            await replay.run()

    @pytest.mark.asyncio
    async def test_running_out_of_scripted_outcomes(self):
        script = high_impact_script()
        script["approvals"] = []
        script["steps"] = script["steps"][:7]
        replay = SessionReplay(script)

        steps = await replay.run()

        assert steps[6].outcome.status == OutcomeStatus.FAILED
        assert "No scripted approval outcome" in steps[6].outcome.error
        assert steps[6].action["label"] == "Approve use of USDC"


class TestReplayCli:

    @pytest.mark.asyncio
    async def test_replay_command_prints_steps(self, tmp_path, capsys):
        path = tmp_path / "session.json"
        path.write_text(json.dumps(high_impact_script()))

        exit_code = await cli_replay(str(path))

        output = capsys.readouterr().out
        assert exit_code == 0
        assert "Swap Anyway" in output
        assert "swap_submitted" in output
        assert "Final state: no_input" in output

    @pytest.mark.asyncio
    async def test_missing_script(self, tmp_path, capsys):
        exit_code = await cli_replay(str(tmp_path / "missing.json"))

        assert exit_code == 1
        assert "Cannot read script" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_telemetry_sinks_are_fed_and_flushed_on_exit(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text(json.dumps(high_impact_script()))
        posted = []

        def handler(request: httpx.Request) -> httpx.Response:
            posted.append(json.loads(request.content))
            return httpx.Response(202)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            http_sink = HttpTelemetrySink(
                "https://collector.example.test/v1/events",
                client=client,
                config=Settings(telemetry_batch_size=50),
            )
            extra = InMemoryTelemetrySink()

            exit_code = await cli_replay(str(path), [extra, http_sink])

        assert exit_code == 0
        assert len(extra.events) == 3
        assert http_sink.pending == 0
        assert [event["kind"] for event in posted[0]["events"]] == [
            "swap_quote_received",
            "approve_token_txn_submitted",
            "swap_submitted",
        ]

    def test_telemetry_flag_is_parsed(self):
        args = build_parser().parse_args(["--json-logs", "replay", "session.json", "--telemetry"])

        assert args.telemetry is True
        assert args.json_logs is True
