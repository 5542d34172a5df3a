from __future__ import annotations

import hashlib
import json
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from portal_tools.ui_tree import Bounds

from .debug_log import DEBUG_LOG

TAG = "SnapshotBuilder"


def element_identity(bounds: Bounds, class_name: str, text: str) -> str:
    """Content-derived id, stable across captures while the element does not move or change."""
    raw = f"{bounds.left},{bounds.top},{bounds.right},{bounds.bottom}|{class_name}|{text}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class UIElement:
    bounds: Bounds
    text: str
    class_name: str
    depth: int
    clickable: bool = False
    checkable: bool = False
    editable: bool = False
    scrollable: bool = False
    focusable: bool = False
    element_id: str = ""
    created_at: float = field(default=0.0, compare=False)

    @property
    def interactive(self) -> bool:
        return self.clickable or self.checkable or self.editable or self.scrollable or self.focusable

    def to_dict(self, index: int) -> Dict[str, Any]:
        return {
            "index": index,
            "text": self.text,
            "class": self.class_name,
            "clickable": self.clickable,
            "checkable": self.checkable,
            "editable": self.editable,
            "scrollable": self.scrollable,
            "focusable": self.focusable,
            "bounds": self.bounds.to_dict(),
        }


@dataclass(frozen=True)
class UISnapshot:
    """
    Ordered capture of the visible UI. Action indices address `interactive()`
    of the exact snapshot they were derived from and mean nothing for any
    other capture.
    """

    elements: Tuple[UIElement, ...] = ()
    snapshot_id: str = field(default_factory=lambda: uuid.uuid4().hex, compare=False)
    captured_at: float = field(default_factory=time.time, compare=False)

    def interactive(self) -> List[UIElement]:
        # Recomputed on every call; the index space is never cached.
        return [element for element in self.elements if element.interactive]

    def element_at(self, index: int) -> Optional[UIElement]:
        view = self.interactive()
        if 0 <= index < len(view):
            return view[index]
        return None

    def to_payload(self, include_all: bool = False) -> List[Dict[str, Any]]:
        view = list(self.elements) if include_all else self.interactive()
        return [element.to_dict(index) for index, element in enumerate(view)]

    def to_json(self, include_all: bool = False) -> str:
        return json.dumps(self.to_payload(include_all), ensure_ascii=False)

    def __len__(self) -> int:
        return len(self.elements)


class SnapshotBuilder:
    """Walks a UI tree and flattens the visible nodes into a UISnapshot."""

    def __init__(self, min_element_size: int = 5) -> None:
        self.min_element_size = min_element_size

    def capture(self, root: Any) -> UISnapshot:
        if root is None:
            DEBUG_LOG.add(TAG, "capture: no foreground window, returning empty snapshot.")
            return UISnapshot()
        collected: List[UIElement] = []
        self._walk(root, collected, 0)
        DEBUG_LOG.debug(TAG, f"capture: {len(collected)} elements extracted.")
        return UISnapshot(elements=tuple(collected))

    def _walk(self, node: Any, out: List[UIElement], depth: int) -> None:
        try:
            bounds = node.bounds
            if bounds.width >= self.min_element_size and bounds.height >= self.min_element_size and node.visible:
                text = node.text or node.content_desc or ""
                out.append(
                    UIElement(
                        bounds=bounds,
                        text=text,
                        class_name=node.class_name or "",
                        depth=depth,
                        clickable=node.clickable,
                        checkable=node.checkable,
                        editable=node.editable,
                        scrollable=node.scrollable,
                        focusable=node.focusable,
                        element_id=element_identity(bounds, node.class_name or "", text),
                        created_at=time.time(),
                    )
                )
            children = list(node.children)
        except (AttributeError, TypeError, ValueError) as exc:
            DEBUG_LOG.add(TAG, f"Error extracting element {getattr(node, 'class_name', '?')}: {exc}")
            return
        for child in children:
            if child is not None and child.visible:
                self._walk(child, out, depth + 1)


def find_first_scrollable(root: Any) -> Optional[Any]:
    """Breadth-first search for the first scrollable node under root."""
    if root is None:
        return None
    queue = deque([root])
    while queue:
        node = queue.popleft()
        if node.scrollable:
            return node
        queue.extend(child for child in node.children if child is not None)
    return None
