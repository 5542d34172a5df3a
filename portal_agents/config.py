from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_MODEL = "gemini-2.0-flash"


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass
class PortalConfig:
    """Runtime settings for the portal. CLI flags override values read from the environment."""

    model: str = DEFAULT_MODEL
    api_key: Optional[str] = None
    request_timeout_s: float = 20.0

    # Follow-up requests allowed for empty plans, per command.
    max_reprompt_attempts: int = 5
    # Hard cap on planner requests per command, whatever they return.
    max_planner_calls: int = 30
    # Superseded commands keep their worker until the planner request times out.
    planner_workers: int = 4

    click_settle_s: float = 3.0
    action_settle_s: float = 1.0
    min_element_size: int = 5

    # Standing screen-space correction for coordinate-addressed clicks.
    offset_x: int = 0
    offset_y: int = 0

    device_id: Optional[str] = None
    mode: str = "adb"
    artifacts_dir: Path = Path("artifacts")
    verbose: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PortalConfig":
        env = os.environ if env is None else env
        return cls(
            model=(env.get("PORTAL_MODEL") or "").strip() or DEFAULT_MODEL,
            api_key=env.get("GOOGLE_API_KEY") or env.get("GEMINI_API_KEY") or None,
            max_reprompt_attempts=_env_int(env, "PORTAL_MAX_REPROMPTS", 5),
            max_planner_calls=_env_int(env, "PORTAL_MAX_PLANNER_CALLS", 30),
            planner_workers=max(1, _env_int(env, "PORTAL_PLANNER_WORKERS", 4)),
            offset_x=_env_int(env, "PORTAL_OFFSET_X", 0),
            offset_y=_env_int(env, "PORTAL_OFFSET_Y", 0),
            device_id=env.get("PORTAL_DEVICE_ID") or None,
            mode=(env.get("PORTAL_MODE") or "adb").strip(),
            verbose=env.get("PORTAL_VERBOSE") == "1",
        )

    def settle_delay_for(self, action_type: str) -> float:
        return self.click_settle_s if action_type == "click" else self.action_settle_s
