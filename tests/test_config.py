from __future__ import annotations

import pytest

from portal_agents.config import DEFAULT_MODEL, PortalConfig
from portal_agents.debug_log import DebugLog


def test_defaults() -> None:
    config = PortalConfig()
    assert config.model == DEFAULT_MODEL
    assert config.max_reprompt_attempts == 5
    assert config.max_planner_calls == 30
    assert config.settle_delay_for("click") == 3.0
    assert config.settle_delay_for("scroll") == 1.0
    assert config.settle_delay_for("back") == 1.0


def test_from_env_reads_overrides() -> None:
    config = PortalConfig.from_env(
        {
            "PORTAL_MODEL": "ollama/llama3",
            "GEMINI_API_KEY": "abc",
            "PORTAL_MAX_REPROMPTS": "2",
            "PORTAL_OFFSET_Y": "-48",
            "PORTAL_DEVICE_ID": "emulator-5556",
            "PORTAL_MODE": "dry",
            "PORTAL_VERBOSE": "1",
        }
    )
    assert config.model == "ollama/llama3"
    assert config.api_key == "abc"
    assert config.max_reprompt_attempts == 2
    assert config.offset_y == -48
    assert config.device_id == "emulator-5556"
    assert config.mode == "dry"
    assert config.verbose


def test_from_env_empty_mapping_gives_defaults() -> None:
    assert PortalConfig.from_env({}) == PortalConfig()


def test_from_env_rejects_bad_integers() -> None:
    with pytest.raises(ValueError, match="PORTAL_MAX_PLANNER_CALLS"):
        PortalConfig.from_env({"PORTAL_MAX_PLANNER_CALLS": "lots"})


def test_debug_log_is_bounded_and_echoes(capsys) -> None:
    log = DebugLog(max_size=2)
    log.add("Orchestrator", "one")
    log.debug("Orchestrator", "two")
    log.add("Orchestrator", "three")
    lines = log.get_logs()
    assert len(lines) == 2
    assert lines[0].endswith("Orchestrator: two")
    assert lines[1].endswith("Orchestrator: three")
    out = capsys.readouterr().out
    assert "Orchestrator: one" in out
    assert "Orchestrator: two" not in out
    log.clear()
    assert log.get_logs() == []


def test_debug_log_verbose_prints_debug_lines(capsys) -> None:
    log = DebugLog(verbose=True)
    log.debug("Planner", "decoded 1 actions")
    assert "Planner: decoded 1 actions" in capsys.readouterr().out


def test_planner_workers_from_env() -> None:
    assert PortalConfig().planner_workers == 4
    assert PortalConfig.from_env({"PORTAL_PLANNER_WORKERS": "8"}).planner_workers == 8
    assert PortalConfig.from_env({"PORTAL_PLANNER_WORKERS": "0"}).planner_workers == 1
