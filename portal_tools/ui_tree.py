from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

from portal_tools.adb_client import AdbClient

_BOUNDS_RE = re.compile(r"\[(-?\d+),(-?\d+)\]\[(-?\d+),(-?\d+)\]")


class Bounds(NamedTuple):
    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def center(self) -> tuple[int, int]:
        return (self.left + self.right) // 2, (self.top + self.bottom) // 2

    def to_dict(self) -> Dict[str, int]:
        return {"left": self.left, "top": self.top, "right": self.right, "bottom": self.bottom}


def parse_bounds(raw: str) -> Bounds:
    match = _BOUNDS_RE.match(raw or "")
    if not match:
        raise ValueError(f"cannot parse bounds: {raw!r}")
    return Bounds(*map(int, match.groups()))


@dataclass
class UiNode:
    """One node of the live UI tree, as reported by uiautomator."""

    bounds: Bounds
    text: str = ""
    content_desc: str = ""
    class_name: str = ""
    package: str = ""
    resource_id: str = ""
    visible: bool = True
    clickable: bool = False
    checkable: bool = False
    editable: bool = False
    scrollable: bool = False
    focusable: bool = False
    children: List["UiNode"] = field(default_factory=list)


def _flag(attrib: Dict[str, str], name: str, default: bool = False) -> bool:
    value = attrib.get(name)
    if value is None:
        return default
    return value.lower() == "true"


def _node_from_element(elem: ET.Element) -> UiNode:
    attrib = elem.attrib
    class_name = attrib.get("class", "")
    return UiNode(
        bounds=parse_bounds(attrib.get("bounds", "")),
        text=attrib.get("text", ""),
        content_desc=attrib.get("content-desc", ""),
        class_name=class_name,
        package=attrib.get("package", ""),
        resource_id=attrib.get("resource-id", ""),
        # Older uiautomator builds omit visible-to-user; anything dumped was on screen.
        visible=_flag(attrib, "visible-to-user", default=True),
        clickable=_flag(attrib, "clickable") or _flag(attrib, "long-clickable"),
        checkable=_flag(attrib, "checkable"),
        editable="EditText" in class_name,
        scrollable=_flag(attrib, "scrollable"),
        focusable=_flag(attrib, "focusable"),
        children=[_node_from_element(child) for child in elem if child.tag == "node"],
    )


def parse_hierarchy(xml_text: str) -> Optional[UiNode]:
    """
    Parses a uiautomator dump into a UiNode tree.

    A dump may hold several top-level window nodes; they are grouped under a
    synthetic root spanning their union. Returns None for an empty hierarchy.
    """
    root = ET.fromstring(xml_text)
    tops = [child for child in root if child.tag == "node"] if root.tag == "hierarchy" else [root]
    nodes = [_node_from_element(elem) for elem in tops]
    if not nodes:
        return None
    if len(nodes) == 1:
        return nodes[0]
    union = Bounds(
        min(n.bounds.left for n in nodes),
        min(n.bounds.top for n in nodes),
        max(n.bounds.right for n in nodes),
        max(n.bounds.bottom for n in nodes),
    )
    return UiNode(bounds=union, class_name="hierarchy", children=nodes)


class AdbUiTree:
    """
    UI tree provider backed by adb: the tree comes from `uiautomator dump`,
    actuation goes through `input` commands addressed by screen geometry.
    Every actuation returns the AdbClient result dict.
    """

    def __init__(self, adb: AdbClient, dump_path: Path = Path("artifacts/runtime_uidump.xml")) -> None:
        self.adb = adb
        self.dump_path = dump_path
        self._screen_size: Optional[tuple[int, int]] = None

    def get_root(self) -> Optional[UiNode]:
        res = self.adb.dump_ui(self.dump_path)
        if res.get("status") != "ok":
            print(f"get_root: ui dump unavailable ({res.get('status')}): {res.get('stderr', '')}")
            return None
        try:
            return parse_hierarchy(self.dump_path.read_text(encoding="utf-8"))
        except (OSError, ET.ParseError, ValueError) as exc:
            print(f"get_root: failed to read ui dump {self.dump_path}: {exc}")
            return None

    def screen_size(self) -> tuple[int, int]:
        if self._screen_size:
            return self._screen_size
        res = self.adb.get_screen_size()
        if res.get("status") != "ok":
            raise RuntimeError(res.get("stderr") or "Unable to read screen size")
        self._screen_size = (int(res["width"]), int(res["height"]))
        return self._screen_size

    def tap(self, x: int, y: int) -> Dict[str, Any]:
        return self.adb.tap(x, y)

    def click(self, bounds: Bounds) -> Dict[str, Any]:
        x, y = bounds.center
        return self.adb.tap(x, y)

    def focus(self, bounds: Bounds) -> Dict[str, Any]:
        return self.click(bounds)

    def set_text(self, bounds: Bounds, text: str) -> Dict[str, Any]:
        """Replaces the content of the focused field at bounds."""
        cleared = self.adb.clear_text()
        if cleared.get("status") not in ("ok", "simulated"):
            return cleared
        return self.adb.input_text(text)

    def scroll(self, bounds: Bounds, forward: bool) -> Dict[str, Any]:
        # Forward scrolling reveals content further down, so the finger moves up.
        x, _ = bounds.center
        upper = bounds.top + bounds.height // 4
        lower = bounds.bottom - bounds.height // 4
        if forward:
            return self.adb.swipe(x, lower, x, upper, 300)
        return self.adb.swipe(x, upper, x, lower, 300)

    def swipe(self, start_x: int, start_y: int, end_x: int, end_y: int, duration_ms: int) -> Dict[str, Any]:
        return self.adb.swipe(start_x, start_y, end_x, end_y, duration_ms)

    def global_action(self, name: str) -> Dict[str, Any]:
        return self.adb.press(name)
