from __future__ import annotations

from portal_agents.actions import Click, Finish, GlobalNav, Scroll, Swipe, Type
from portal_agents.executor import ActionExecutor
from portal_agents.snapshot import SnapshotBuilder
from portal_tools.ui_tree import Bounds

from portal_fakes import FakeUiTree, button, node


def _setup(root=None, **kwargs):
    root = root or node(0, 0, 1080, 1920, children=[button("Wi-Fi", top=100), button("Bluetooth", top=200)])
    tree = FakeUiTree(root)
    snapshot = SnapshotBuilder().capture(root)
    return tree, ActionExecutor(tree, **kwargs), snapshot


def test_click_by_index_targets_interactive_element() -> None:
    tree, executor, snapshot = _setup()
    result = executor.execute(Click(index=1), snapshot)
    assert result["status"] == "ok"
    assert result["action"] == "UIAction(type='click', index=1)"
    assert tree.calls == [("click", Bounds(0, 200, 200, 240))]


def test_out_of_range_index_is_rejected_without_actuation() -> None:
    tree, executor, snapshot = _setup()
    result = executor.execute(Click(index=7), snapshot)
    assert result["status"] == "error"
    assert "element index 7 out of bounds (size: 2)" in result["stderr"]
    assert tree.calls == []


def test_click_by_coordinates_applies_offset() -> None:
    tree, executor, snapshot = _setup(offset_x=10, offset_y=-20)
    result = executor.execute(Click(x=110, y=80), snapshot)
    assert result["status"] == "ok"
    assert (result["resolved_x"], result["resolved_y"]) == (100, 100)
    assert tree.calls == [("tap", 100, 100)]


def test_click_without_target_fails() -> None:
    tree, executor, snapshot = _setup()
    assert executor.execute(Click(x=5), snapshot)["status"] == "error"
    assert tree.calls == []


def test_type_focuses_then_sets_text() -> None:
    tree, executor, snapshot = _setup()
    result = executor.execute(Type(index=0, text="home-net"), snapshot)
    assert result["status"] == "ok"
    bounds = Bounds(0, 100, 200, 140)
    assert tree.calls == [("focus", bounds), ("set_text", bounds, "home-net")]


def test_type_needs_index() -> None:
    tree, executor, snapshot = _setup()
    assert executor.execute(Type(text="x"), snapshot)["status"] == "error"


def test_scroll_uses_first_scrollable_node() -> None:
    listing = node(0, 300, 1080, 1800, scrollable=True)
    tree, executor, snapshot = _setup(node(0, 0, 1080, 1920, children=[listing]))
    assert executor.execute(Scroll(direction="down"), snapshot)["status"] == "ok"
    assert executor.execute(Scroll(direction="up"), snapshot)["status"] == "ok"
    assert tree.calls == [("scroll", listing.bounds, True), ("scroll", listing.bounds, False)]


def test_scroll_falls_back_to_root_window() -> None:
    root = node(0, 0, 1080, 1920)
    tree, executor, snapshot = _setup(root)
    executor.execute(Scroll(direction="right"), snapshot)
    assert tree.calls == [("scroll", root.bounds, True)]


def test_scroll_rejects_unknown_direction_and_missing_window() -> None:
    tree, executor, snapshot = _setup()
    assert executor.execute(Scroll(direction="sideways"), snapshot)["status"] == "error"
    tree.root = None
    assert executor.execute(Scroll(direction="down"), snapshot)["status"] == "error"
    assert tree.calls == []


def test_swipe_runs_through_screen_centre() -> None:
    tree, executor, snapshot = _setup()
    executor.execute(Swipe(direction="left"), snapshot)
    executor.execute(Swipe(direction="up"), snapshot)
    # 1080x1920 screen: centre (540, 960), half length 180.
    assert tree.calls == [
        ("swipe", 720, 960, 360, 960, 200),
        ("swipe", 540, 1140, 540, 780, 200),
    ]


def test_global_navigation_and_finish() -> None:
    tree, executor, snapshot = _setup()
    assert executor.execute(GlobalNav(target="recent"), snapshot)["status"] == "ok"
    assert executor.execute(Finish(), snapshot)["status"] == "ok"
    assert tree.calls == [("global", "recent")]


def test_provider_failures_are_reported() -> None:
    tree, executor, snapshot = _setup()
    tree.status = "error"
    result = executor.execute(Click(index=0), snapshot)
    assert result["status"] == "error"
    assert result["stderr"] == "device said no"
    assert result["action"] == "UIAction(type='click', index=0)"


def test_provider_exceptions_do_not_escape() -> None:
    tree, executor, snapshot = _setup()

    def broken_size():
        raise RuntimeError("Unable to read screen size")

    tree.screen_size = broken_size
    result = executor.execute(Swipe(direction="down"), snapshot)
    assert result["status"] == "error"
    assert "Unable to read screen size" in result["stderr"]
