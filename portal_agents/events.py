"""Append-only JSONL audit stream of command activity."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

COMMAND_SUBMITTED = "command_submitted"
PLANNER_REQUEST = "planner_request"
PLAN_RESOLVED = "plan_resolved"
STALE_RESPONSE_DROPPED = "stale_response_dropped"
ACTION_EXECUTED = "action_executed"
COMMAND_FINISHED = "command_finished"

EVENT_TYPES = frozenset(
    {
        COMMAND_SUBMITTED,
        PLANNER_REQUEST,
        PLAN_RESOLVED,
        STALE_RESPONSE_DROPPED,
        ACTION_EXECUTED,
        COMMAND_FINISHED,
    }
)


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class EventWriter:
    """One JSON object per line: {"type", "session_id", "ts", **payload}."""

    path: Path
    session_id: str
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, init=False)

    def emit(self, event_type: str, **payload: Any) -> Dict[str, Any]:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"unknown event type '{event_type}'")
        event: Dict[str, Any] = {"type": event_type, "session_id": self.session_id, "ts": now_utc_iso(), **payload}
        line = json.dumps(event, default=str)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        return event
