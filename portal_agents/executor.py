from __future__ import annotations

from typing import Any, Dict, Optional

from .actions import Click, Finish, GlobalNav, Scroll, Swipe, Type, UIAction
from .debug_log import DEBUG_LOG
from .snapshot import UISnapshot, find_first_scrollable

TAG = "Executor"

OK_STATUSES = ("ok", "simulated")
SWIPE_DURATION_MS = 200
_SCROLL_FORWARD = {"down": True, "right": True, "up": False, "left": False}


def _error(action: UIAction, message: str) -> Dict[str, Any]:
    DEBUG_LOG.add(TAG, f"{action}: {message}")
    return {"status": "error", "action": str(action), "stderr": message}


class ActionExecutor:
    """
    Applies one action to the live UI through a tree provider (see
    portal_tools.ui_tree.AdbUiTree for the expected shape).

    Actuation is fire-and-forget: the executor never waits for the UI to
    settle, and a failed action is reported, not raised.
    """

    def __init__(self, provider: Any, offset_x: int = 0, offset_y: int = 0) -> None:
        self.provider = provider
        self.offset_x = offset_x
        self.offset_y = offset_y

    def execute(self, action: UIAction, snapshot: UISnapshot) -> Dict[str, Any]:
        DEBUG_LOG.add(TAG, f"execute: {action}")
        try:
            if isinstance(action, Click):
                result = self._click(action, snapshot)
            elif isinstance(action, Type):
                result = self._type(action, snapshot)
            elif isinstance(action, Scroll):
                result = self._scroll(action)
            elif isinstance(action, Swipe):
                result = self._swipe(action)
            elif isinstance(action, GlobalNav):
                result = self.provider.global_action(action.target)
            elif isinstance(action, Finish):
                # Completion is the orchestrator's business.
                result = {"status": "ok"}
            else:
                raise TypeError(f"not a UI action: {action!r}")
        except (RuntimeError, OSError, ValueError) as exc:
            return _error(action, f"{type(exc).__name__}: {exc}")

        if result.get("status") not in OK_STATUSES:
            if "action" in result:
                return result
            return _error(action, result.get("stderr") or f"provider returned {result.get('status')}")
        return {**result, "status": "ok", "action": str(action)}

    def _resolve(self, action: UIAction, index: Optional[int], snapshot: UISnapshot):
        view = snapshot.interactive()
        if index is None or not 0 <= index < len(view):
            return None, _error(action, f"element index {index} out of bounds (size: {len(view)})")
        return view[index], None

    def _click(self, action: Click, snapshot: UISnapshot) -> Dict[str, Any]:
        if action.index is not None:
            element, failure = self._resolve(action, action.index, snapshot)
            if failure:
                return failure
            return self.provider.click(element.bounds)
        if action.by_coordinates:
            x, y = action.x - self.offset_x, action.y - self.offset_y
            if (x, y) != (action.x, action.y):
                DEBUG_LOG.debug(TAG, f"adjusted click ({action.x},{action.y}) -> ({x},{y})")
            result = self.provider.tap(x, y)
            return {**result, "resolved_x": x, "resolved_y": y}
        return _error(action, "click needs an element index or x/y coordinates")

    def _type(self, action: Type, snapshot: UISnapshot) -> Dict[str, Any]:
        if action.index is None:
            return _error(action, "type needs an element index")
        element, failure = self._resolve(action, action.index, snapshot)
        if failure:
            return failure
        focused = self.provider.focus(element.bounds)
        if focused.get("status") not in OK_STATUSES:
            return focused
        return self.provider.set_text(element.bounds, action.text)

    def _scroll(self, action: Scroll) -> Dict[str, Any]:
        forward = _SCROLL_FORWARD.get(action.direction)
        if forward is None:
            return _error(action, f"unknown scroll direction '{action.direction}'")
        root = self.provider.get_root()
        if root is None:
            return _error(action, "no active window to scroll")
        target = find_first_scrollable(root)
        if target is None:
            DEBUG_LOG.debug(TAG, "no scrollable node, scrolling the root window")
            target = root
        return self.provider.scroll(target.bounds, forward)

    def _swipe(self, action: Swipe) -> Dict[str, Any]:
        width, height = self.provider.screen_size()
        mid_x, mid_y = width // 2, height // 2
        half = width // 6
        vectors = {
            "left": (mid_x + half, mid_y, mid_x - half, mid_y),
            "right": (mid_x - half, mid_y, mid_x + half, mid_y),
            "up": (mid_x, mid_y + half, mid_x, mid_y - half),
            "down": (mid_x, mid_y - half, mid_x, mid_y + half),
        }
        if action.direction not in vectors:
            return _error(action, f"unknown swipe direction '{action.direction}'")
        return self.provider.swipe(*vectors[action.direction], SWIPE_DURATION_MS)
