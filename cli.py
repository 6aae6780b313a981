#!/usr/bin/env python3
"""Dev CLI for the swap decision core"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from swapdesk.config import settings
from swapdesk.logging_config import bind_session, setup_logging
from swapdesk.replay import ReplayError, ReplayStep, SessionReplay
from swapdesk.telemetry import TelemetrySink, build_default_sinks, close_sinks


def print_step(step: ReplayStep):
    """Pretty print one replayed step"""
    action = step.action
    marker = "🟢" if action["enabled"] else "⚪"
    danger = " ⚠️" if action["danger"] else ""

    print(f"{step.index:2d}. {step.op:<14} {marker} [{action['state']}] {action['label']}{danger}")
    if step.outcome is not None:
        detail = step.outcome.result or step.outcome.error or ""
        print(f"    ↳ {step.outcome.status.value} {detail}".rstrip())
    for event in step.events:
        payload = event.to_dict()
        kind = payload.pop("kind")
        payload.pop("timestamp", None)
        print(f"    📡 {kind} {json.dumps(payload, default=str)}")


def print_summary(replay: SessionReplay, steps: List[ReplayStep]):
    snapshot = replay.orchestrator.snapshot()
    print("\n" + "=" * 50)
    print(f"Session:     {snapshot['sessionId']}")
    print(f"Final state: {snapshot['flowState']}")
    print(f"Steps:       {len(steps)}")
    print(f"Telemetry:   {len(replay.recorder.events)} events")
    if snapshot["attempt"]:
        attempt = snapshot["attempt"]
        print(f"Attempt:     {attempt['phase']} (modal {'open' if attempt['confirmationOpen'] else 'closed'})")


async def cli_replay(script_path: str, sinks: Optional[List[TelemetrySink]] = None) -> int:
    """CLI command to replay a session script. Extra sinks are closed before returning."""
    sinks = sinks or []
    try:
        return await _replay(script_path, sinks)
    finally:
        await close_sinks(sinks)


async def _replay(script_path: str, sinks: List[TelemetrySink]) -> int:
    path = Path(script_path)
    try:
        script = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        print(f"❌ Cannot read script {path}: {e}")
        return 1

    replay = SessionReplay(script, sinks=sinks)
    bind_session(replay.orchestrator.session_id)

    print(f"🔁 Replaying {path.name} ({len(script.get('steps', []))} steps)")
    print("-" * 50)

    steps: List[ReplayStep] = []
    try:
        for index, raw in enumerate(script.get("steps", []), 1):
            step = await replay.apply(index, raw)
            steps.append(step)
            print_step(step)
    except ReplayError as e:
        print(f"❌ {e}")
        return 1

    print_summary(replay, steps)
    return 0


def cli_settings():
    print(json.dumps(settings.describe(), indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Swap desk CLI")
    parser.add_argument("--log-level", help="Override LOG_LEVEL for this run")
    parser.add_argument("--json-logs", action="store_true", help="Write log lines as JSON (default: LOG_JSON)")
    subparsers = parser.add_subparsers(dest="command")

    replay_parser = subparsers.add_parser("replay", help="Replay a JSON session script")
    replay_parser.add_argument("script", help="Path to the session script")
    replay_parser.add_argument(
        "--telemetry",
        action="store_true",
        help="Also deliver telemetry to the configured sinks (log lines, plus TELEMETRY_ENDPOINT when set)",
    )

    subparsers.add_parser("settings", help="Show effective settings")

    return parser


async def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(args.log_level, json_output=True if args.json_logs else None)

    if args.command == "replay":
        sinks = build_default_sinks(settings) if args.telemetry else None
        return await cli_replay(args.script, sinks)

    if args.command == "settings":
        cli_settings()
        return 0

    print(f"❌ Unknown command: {args.command}")
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
