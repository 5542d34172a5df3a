"""
UI action model: the closed set of things the planner may ask for.

The JSON form exchanged with the planner is
{type, elementIndex?, text?, x?, y?, direction?}; the text form produced by
str() is what prompts and logs show.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, Mapping, Optional, Union

DIRECTIONS = ("up", "down", "left", "right")
GLOBAL_TARGETS = ("home", "back", "recent")
_GLOBAL_ALIASES = {"recents": "recent"}


class ActionParseError(ValueError):
    """Raised when an action object from the planner cannot be decoded."""


class UIAction:
    action_type: ClassVar[str] = ""

    @property
    def type(self) -> str:
        return self.action_type

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if value is None or f.name == "target":
                continue
            data["elementIndex" if f.name == "index" else f.name] = value
        return data

    def __str__(self) -> str:
        parts = [f"type='{self.type}'"]
        index = getattr(self, "index", None)
        if index is not None:
            parts.append(f"index={index}")
        text = getattr(self, "text", None)
        if text:
            parts.append(f"text='{text}'")
        x, y = getattr(self, "x", None), getattr(self, "y", None)
        if x is not None or y is not None:
            parts.append(f"pos=({x},{y})")
        direction = getattr(self, "direction", None)
        if direction:
            parts.append(f"dir='{direction}'")
        return f"UIAction({', '.join(parts)})"


@dataclass(frozen=True)
class Click(UIAction):
    index: Optional[int] = None
    x: Optional[int] = None
    y: Optional[int] = None
    action_type: ClassVar[str] = "click"

    @property
    def by_coordinates(self) -> bool:
        return self.index is None and self.x is not None and self.y is not None


@dataclass(frozen=True)
class Type(UIAction):
    index: Optional[int] = None
    text: str = ""
    action_type: ClassVar[str] = "type"


@dataclass(frozen=True)
class Scroll(UIAction):
    direction: str = ""
    action_type: ClassVar[str] = "scroll"


@dataclass(frozen=True)
class Swipe(UIAction):
    direction: str = ""
    action_type: ClassVar[str] = "swipe"


@dataclass(frozen=True)
class GlobalNav(UIAction):
    target: str = "back"

    @property
    def type(self) -> str:
        return self.target


@dataclass(frozen=True)
class Finish(UIAction):
    action_type: ClassVar[str] = "finish"


Action = Union[Click, Type, Scroll, Swipe, GlobalNav, Finish]


def _opt_int(obj: Mapping[str, Any], key: str) -> Optional[int]:
    """Missing, null and negative values all mean "absent"."""
    value = obj.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ActionParseError(f"'{key}' must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ActionParseError(f"'{key}' must be an integer, got {value!r}") from exc
    return number if number >= 0 else None


def action_from_dict(obj: Any) -> Action:
    if not isinstance(obj, Mapping):
        raise ActionParseError(f"action must be a JSON object, got {type(obj).__name__}")
    raw_type = obj.get("type")
    if not isinstance(raw_type, str) or not raw_type.strip():
        raise ActionParseError(f"action type is missing or blank in {dict(obj)}")
    kind = raw_type.strip().lower()

    if kind == "click":
        return Click(index=_opt_int(obj, "elementIndex"), x=_opt_int(obj, "x"), y=_opt_int(obj, "y"))
    if kind == "type":
        return Type(index=_opt_int(obj, "elementIndex"), text=str(obj.get("text") or ""))
    if kind == "scroll":
        return Scroll(direction=str(obj.get("direction") or "").strip().lower())
    if kind == "swipe":
        return Swipe(direction=str(obj.get("direction") or "").strip().lower())
    if kind == "finish":
        return Finish()
    kind = _GLOBAL_ALIASES.get(kind, kind)
    if kind in GLOBAL_TARGETS:
        return GlobalNav(target=kind)
    raise ActionParseError(f"unknown action type '{raw_type}'")


def describe(action: Optional[UIAction]) -> str:
    return str(action) if action is not None else "None"
