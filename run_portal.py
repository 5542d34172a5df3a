from __future__ import annotations

import argparse
import json
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from portal_agents import (
    DEBUG_LOG,
    ActionExecutor,
    ActionParseError,
    BackgroundDispatcher,
    CommandResult,
    EventLoop,
    Orchestrator,
    PlannerClient,
    PortalConfig,
    SnapshotBuilder,
    action_from_dict,
    build_planner_agent,
)
from portal_agents.events import EventWriter
from portal_tools import AdbClient, AdbUiTree


@dataclass
class Portal:
    config: PortalConfig
    adb: AdbClient
    tree: AdbUiTree
    builder: SnapshotBuilder
    executor: ActionExecutor
    loop: EventLoop
    dispatcher: BackgroundDispatcher
    orchestrator: Orchestrator


def build_portal(config: PortalConfig, events_path: Optional[Path] = None) -> Portal:
    adb = AdbClient(device_id=config.device_id, dry_run=(config.mode != "adb"))
    tree = AdbUiTree(adb, dump_path=config.artifacts_dir / "runtime_uidump.xml")
    builder = SnapshotBuilder(min_element_size=config.min_element_size)
    executor = ActionExecutor(tree, offset_x=config.offset_x, offset_y=config.offset_y)
    planner = PlannerClient(
        agent=build_planner_agent(config.model),
        api_key=config.api_key,
        timeout=config.request_timeout_s,
    )
    loop = EventLoop()
    dispatcher = BackgroundDispatcher(loop, max_workers=config.planner_workers)
    events = EventWriter(events_path, uuid.uuid4().hex) if events_path else None
    orchestrator = Orchestrator(
        provider=tree,
        planner=planner,
        executor=executor,
        loop=loop,
        dispatcher=dispatcher,
        config=config,
        builder=builder,
        events=events,
    )
    return Portal(config, adb, tree, builder, executor, loop, dispatcher, orchestrator)


def run_goal(portal: Portal, goal: str, timeout: Optional[float] = None) -> Optional[CommandResult]:
    """Submits a goal and runs the loop until the command ends. None on timeout."""
    orchestrator = portal.orchestrator
    seen = len(orchestrator.results)
    command_id = orchestrator.submit(goal)
    finished = portal.loop.run_until(
        lambda: any(r.command_id == command_id for r in orchestrator.results[seen:]),
        timeout=timeout,
    )
    if not finished:
        return None
    return next(r for r in orchestrator.results[seen:] if r.command_id == command_id)


def print_result(result: Optional[CommandResult]) -> None:
    if result is None:
        print("run_portal: timed out before the command ended.")
        return
    print(
        f"[{result.status}] '{result.goal}' - {result.reason} "
        f"(planner calls: {result.planner_calls}, re-prompts: {result.reprompt_attempts}, "
        f"last action: {result.last_action or 'none'}, elements on last screen: {result.elements_seen})"
    )


def config_from_args(args: argparse.Namespace) -> PortalConfig:
    config = PortalConfig.from_env()
    if args.device_id is not None:
        config.device_id = args.device_id
    if args.mode is not None:
        config.mode = args.mode
    if args.model is not None:
        config.model = args.model
    if args.max_reprompts is not None:
        config.max_reprompt_attempts = args.max_reprompts
    if args.max_planner_calls is not None:
        config.max_planner_calls = args.max_planner_calls
    if args.offset_x is not None:
        config.offset_x = args.offset_x
    if args.offset_y is not None:
        config.offset_y = args.offset_y
    if args.verbose:
        config.verbose = True
    return config


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--device-id", type=str, default=None, help="ADB device/emulator id.")
    parser.add_argument(
        "--mode",
        choices=["dry", "adb"],
        default=None,
        help="dry: simulate actions; adb: send real ADB commands (default: adb).",
    )
    parser.add_argument("--model", type=str, default=None, help="Planner model, e.g. gemini-2.0-flash or ollama/qwen2.5.")
    parser.add_argument("--max-reprompts", type=int, default=None, help="Follow-up requests allowed for empty plans.")
    parser.add_argument("--max-planner-calls", type=int, default=None, help="Planner requests allowed per command.")
    parser.add_argument("--offset-x", type=int, default=None, help="X correction for coordinate clicks.")
    parser.add_argument("--offset-y", type=int, default=None, help="Y correction for coordinate clicks.")
    parser.add_argument("--events", type=Path, default=None, help="Append JSONL audit events to this file.")
    parser.add_argument("--package", type=str, default=None, help="Launch this app package before running.")
    parser.add_argument("--activity", type=str, default=None, help="Activity to launch with --package.")
    parser.add_argument("--timeout", type=float, default=600.0, help="Seconds to wait for a command to end.")
    parser.add_argument("--verbose", action="store_true", help="Print debug-level log lines.")


def launch_package(portal: Portal, package: str, activity: Optional[str]) -> bool:
    res = portal.adb.start_app(package=package, activity=activity)
    if res.get("status") not in ("ok", "simulated"):
        print(f"run_portal: failed to launch {package}: {res.get('stderr', '')}")
        return False
    return True


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Drive an Android app from a natural-language goal.")
    parser.add_argument("--goal", type=str, default=None, help="Natural-language goal to accomplish.")
    parser.add_argument("--dump-elements", action="store_true", help="Print the current element JSON and exit.")
    parser.add_argument("--all", action="store_true", help="With --dump-elements, include non-interactive elements.")
    parser.add_argument("--action", type=str, default=None, help="Execute one action JSON without the planner.")
    add_common_arguments(parser)
    args = parser.parse_args(argv)

    config = config_from_args(args)
    DEBUG_LOG.verbose = config.verbose
    portal = build_portal(config, events_path=args.events)

    try:
        if args.package and not launch_package(portal, args.package, args.activity):
            return 1

        if args.dump_elements:
            snapshot = portal.builder.capture(portal.tree.get_root())
            print(snapshot.to_json(include_all=args.all))
            return 0

        if args.action:
            try:
                action = action_from_dict(json.loads(args.action))
            except (json.JSONDecodeError, ActionParseError) as exc:
                print(f"run_portal: invalid --action: {exc}")
                return 2
            snapshot = portal.builder.capture(portal.tree.get_root())
            result = portal.executor.execute(action, snapshot)
            print(json.dumps(result, default=str))
            return 0 if result.get("status") == "ok" else 1

        if not args.goal:
            parser.error("one of --goal, --dump-elements or --action is required")

        result = run_goal(portal, args.goal, timeout=args.timeout)
        print_result(result)
        return 0 if result is not None and result.status == "completed" else 1
    finally:
        portal.dispatcher.shutdown()


if __name__ == "__main__":
    sys.exit(main())
