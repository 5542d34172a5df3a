"""Device-side tools: adb command wrapper and the uiautomator-backed UI tree."""

from .adb_client import AdbClient
from .ui_tree import AdbUiTree, Bounds, UiNode, parse_hierarchy
