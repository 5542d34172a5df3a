from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from portal_agents import DEBUG_LOG, CommandResult
from run_portal import add_common_arguments, build_portal, config_from_args, launch_package, run_goal


def load_goals(path: Path) -> List[Dict[str, Any]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, list):
        return data
    raise ValueError(f"Unexpected goal list format in {path}")


def evaluate(case: Dict[str, Any], result: Optional[CommandResult]) -> Dict[str, Any]:
    """Compares how a command ended with how the case expects it to end."""
    expected = case.get("expected", "completed")
    status = result.status if result is not None else "timeout"
    return {
        "id": case.get("id"),
        "goal": case.get("goal"),
        "expected": expected,
        "status": status,
        "verdict": "pass" if status == expected else "fail",
        "reason": result.reason if result is not None else "command did not end before the timeout",
    }


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run a list of natural-language goals against a device.")
    parser.add_argument("--goals", type=Path, default=Path("goals.json"), help="JSON list of {id, goal, expected}.")
    add_common_arguments(parser)
    args = parser.parse_args(argv)

    config = config_from_args(args)
    DEBUG_LOG.verbose = config.verbose
    cases = load_goals(args.goals)
    portal = build_portal(config, events_path=args.events)

    results: List[Dict[str, Any]] = []
    try:
        for case in cases:
            if args.package:
                launch_package(portal, args.package, args.activity)
            result = run_goal(portal, str(case.get("goal", "")), timeout=args.timeout)
            row = evaluate(case, result)
            results.append(row)
            print(f"[{row['id']}] {row['verdict']} - {row['status']}: {row['reason']}")
    finally:
        portal.dispatcher.shutdown()

    passed = sum(1 for r in results if r["verdict"] == "pass")
    print(f"Completed {len(results)} goals: {passed} passed, {len(results) - passed} failed.")
    return 0 if passed == len(results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
