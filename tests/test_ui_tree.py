from __future__ import annotations

from pathlib import Path

import pytest

from portal_agents.snapshot import SnapshotBuilder
from portal_tools.adb_client import AdbClient
from portal_tools.ui_tree import AdbUiTree, Bounds, parse_bounds, parse_hierarchy

DUMP = """<?xml version='1.0' encoding='UTF-8' standalone='yes' ?>
<hierarchy rotation="0">
  <node index="0" text="" resource-id="" class="android.widget.FrameLayout" package="com.android.settings"
        content-desc="" checkable="false" checked="false" clickable="false" enabled="true" focusable="false"
        focused="false" scrollable="false" long-clickable="false" password="false" selected="false"
        visible-to-user="true" bounds="[0,0][1080,1920]">
    <node index="0" text="Network &amp; internet" resource-id="android:id/title" class="android.widget.TextView"
          package="com.android.settings" content-desc="" checkable="false" checked="false" clickable="true"
          enabled="true" focusable="true" focused="false" scrollable="false" long-clickable="false"
          password="false" selected="false" bounds="[42,300][1038,420]" />
    <node index="1" text="" resource-id="com.android.settings:id/search" class="android.widget.EditText"
          package="com.android.settings" content-desc="Search settings" checkable="false" checked="false"
          clickable="false" enabled="true" focusable="true" focused="false" scrollable="false"
          long-clickable="false" password="false" selected="false" visible-to-user="false"
          bounds="[0,100][1080,200]" />
  </node>
</hierarchy>
"""


def test_parse_bounds() -> None:
    assert parse_bounds("[42,300][1038,420]") == Bounds(42, 300, 1038, 420)
    assert Bounds(0, 0, 100, 50).center == (50, 25)
    with pytest.raises(ValueError):
        parse_bounds("0,0,10,10")


def test_parse_hierarchy_reads_flags() -> None:
    root = parse_hierarchy(DUMP)
    assert root is not None
    assert root.class_name == "android.widget.FrameLayout"
    title, search = root.children
    assert title.text == "Network & internet"
    assert title.clickable and title.focusable and title.visible
    assert title.resource_id == "android:id/title"
    assert search.editable
    assert not search.visible
    assert search.content_desc == "Search settings"


def test_parsed_tree_feeds_snapshot_builder() -> None:
    snapshot = SnapshotBuilder().capture(parse_hierarchy(DUMP))
    assert [e.text for e in snapshot.interactive()] == ["Network & internet"]


def test_multiple_windows_are_grouped_under_one_root() -> None:
    xml = (
        "<hierarchy>"
        '<node class="a" bounds="[0,0][1080,1800]" />'
        '<node class="b" bounds="[0,1800][1080,1920]" />'
        "</hierarchy>"
    )
    root = parse_hierarchy(xml)
    assert root.class_name == "hierarchy"
    assert root.bounds == Bounds(0, 0, 1080, 1920)
    assert [c.class_name for c in root.children] == ["a", "b"]
    assert parse_hierarchy("<hierarchy />") is None


def test_get_root_reads_pulled_dump(tmp_path: Path, monkeypatch) -> None:
    dump_path = tmp_path / "uidump.xml"
    adb = AdbClient()

    def fake_dump(local_path: Path):
        local_path.write_text(DUMP, encoding="utf-8")
        return {"status": "ok"}

    monkeypatch.setattr(adb, "dump_ui", fake_dump)
    root = AdbUiTree(adb, dump_path=dump_path).get_root()
    assert root is not None
    assert len(root.children) == 2


def test_get_root_without_device_is_none(tmp_path: Path) -> None:
    tree = AdbUiTree(AdbClient(dry_run=True), dump_path=tmp_path / "uidump.xml")
    assert tree.get_root() is None


def test_actuation_goes_through_adb_input(tmp_path: Path) -> None:
    tree = AdbUiTree(AdbClient(device_id="emulator-5554", dry_run=True), dump_path=tmp_path / "d.xml")
    assert tree.click(Bounds(0, 0, 100, 50))["cmd"] == [
        "adb", "-s", "emulator-5554", "shell", "input", "tap", "50", "25",
    ]
    assert tree.global_action("back")["cmd"][-1] == "4"
    assert tree.global_action("recent")["cmd"][-1] == "187"
    assert tree.global_action("sideways")["status"] == "error"

    forward = tree.scroll(Bounds(0, 0, 100, 400), forward=True)["cmd"]
    assert forward[-5:] == ["50", "300", "50", "100", "300"]
    backward = tree.scroll(Bounds(0, 0, 100, 400), forward=False)["cmd"]
    assert backward[-5:] == ["50", "100", "50", "300", "300"]


def test_set_text_clears_the_field_before_typing(tmp_path: Path, monkeypatch) -> None:
    adb = AdbClient(dry_run=True)
    sent = []
    real_run = adb.run

    def recording_run(*args, timeout=None):
        sent.append(args)
        return real_run(*args, timeout=timeout)

    monkeypatch.setattr(adb, "run", recording_run)
    result = AdbUiTree(adb, dump_path=tmp_path / "d.xml").set_text(Bounds(0, 0, 100, 40), "hello")

    assert result["status"] == "simulated"
    assert sent == [
        ("shell", "input", "keycombination", "113", "29"),
        ("shell", "input", "keyevent", "67"),
        ("shell", "input", "text", "hello"),
    ]
