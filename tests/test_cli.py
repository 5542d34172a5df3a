from __future__ import annotations

import argparse
import json
from pathlib import Path

import pytest

import run_portal
import run_suite
from portal_agents.actions import GlobalNav
from portal_agents.config import PortalConfig
from portal_agents.orchestrator import CommandResult
from portal_agents.planner import PlanOutcome, PlannerClient

from portal_fakes import ScriptedPlanner


@pytest.fixture(autouse=True)
def _isolated(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("PORTAL_MODEL", "PORTAL_MODE", "PORTAL_DEVICE_ID", "PORTAL_VERBOSE", "PORTAL_MAX_REPROMPTS"):
        monkeypatch.delenv(name, raising=False)


def test_dump_elements_without_device_prints_empty_list(capsys) -> None:
    assert run_portal.main(["--mode", "dry", "--dump-elements"]) == 0
    assert capsys.readouterr().out.strip().splitlines()[-1] == "[]"


def test_single_action_in_dry_mode(capsys) -> None:
    assert run_portal.main(["--mode", "dry", "--action", '{"type":"back"}']) == 0
    printed = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert printed["status"] == "ok"
    assert printed["cmd"][-1] == "4"


def test_single_action_rejects_bad_json(capsys) -> None:
    assert run_portal.main(["--mode", "dry", "--action", '{"type":"warp"}']) == 2
    assert "invalid --action" in capsys.readouterr().out


def test_index_action_without_screen_fails() -> None:
    assert run_portal.main(["--mode", "dry", "--action", '{"type":"click","elementIndex":0}']) == 1


def test_cli_flags_override_environment(monkeypatch) -> None:
    monkeypatch.setenv("PORTAL_MAX_REPROMPTS", "9")
    parser = argparse.ArgumentParser()
    run_portal.add_common_arguments(parser)
    config = run_portal.config_from_args(parser.parse_args(["--max-reprompts", "1", "--offset-x", "12"]))
    assert config.max_reprompt_attempts == 1
    assert config.offset_x == 12

    config = run_portal.config_from_args(parser.parse_args([]))
    assert config.max_reprompt_attempts == 9


def test_run_goal_drives_real_loop(tmp_path: Path) -> None:
    config = PortalConfig(mode="dry", artifacts_dir=tmp_path, action_settle_s=0.0)
    portal = run_portal.build_portal(config, events_path=tmp_path / "events.jsonl")
    portal.orchestrator.planner = ScriptedPlanner(
        [PlanOutcome(actions=(GlobalNav(target="back"),)), PlanOutcome(finished=True)]
    )
    try:
        result = run_portal.run_goal(portal, "go back", timeout=5.0)
    finally:
        portal.dispatcher.shutdown(wait=True)

    assert result is not None
    assert result.status == "completed"
    assert result.planner_calls == 2
    assert result.last_action == "UIAction(type='back')"
    assert (tmp_path / "events.jsonl").exists()


def _result(status: str) -> CommandResult:
    return CommandResult(
        command_id="c1",
        goal="go home",
        status=status,
        reason="planner signalled finish",
        last_action=None,
        planner_calls=1,
        reprompt_attempts=0,
        elements_seen=0,
    )


def test_suite_evaluation_verdicts() -> None:
    case = {"id": "G1", "goal": "go home"}
    assert run_suite.evaluate(case, _result("completed"))["verdict"] == "pass"
    assert run_suite.evaluate(case, _result("failed"))["verdict"] == "fail"
    assert run_suite.evaluate({**case, "expected": "failed"}, _result("failed"))["verdict"] == "pass"
    timed_out = run_suite.evaluate(case, None)
    assert timed_out["status"] == "timeout"
    assert timed_out["verdict"] == "fail"


def test_suite_goal_file_must_be_a_list(tmp_path: Path) -> None:
    goals = tmp_path / "goals.json"
    goals.write_text(json.dumps([{"id": "G1", "goal": "go home"}]), encoding="utf-8")
    assert run_suite.load_goals(goals)[0]["id"] == "G1"
    goals.write_text(json.dumps({"goal": "go home"}), encoding="utf-8")
    with pytest.raises(ValueError):
        run_suite.load_goals(goals)


def test_malformed_envelope_ends_command_on_real_loop(tmp_path: Path) -> None:
    config = PortalConfig(mode="dry", artifacts_dir=tmp_path)
    portal = run_portal.build_portal(config)
    portal.orchestrator.planner = PlannerClient(transport=lambda prompt: json.dumps({"candidates": {"0": {}}}))
    try:
        result = run_portal.run_goal(portal, "press ok", timeout=5.0)
    finally:
        portal.dispatcher.shutdown(wait=True)

    assert result is not None
    assert result.status == "failed"
    assert "malformed Gemini envelope" in result.reason
    assert not portal.orchestrator.busy


def test_planner_worker_count_comes_from_config(tmp_path: Path) -> None:
    portal = run_portal.build_portal(PortalConfig(mode="dry", artifacts_dir=tmp_path, planner_workers=6))
    try:
        assert portal.dispatcher.max_workers == 6
    finally:
        portal.dispatcher.shutdown()
