from __future__ import annotations

import re
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

DEVICE_DUMP_PATH = "/sdcard/uidump.xml"

# keyevent codes for system navigation, keyed by the planner's action names.
NAV_KEYCODES = {
    "home": 3,
    "back": 4,
    "recent": 187,
}

KEYCODE_A = 29
KEYCODE_DEL = 67
KEYCODE_CTRL_LEFT = 113
KEYCODE_MOVE_END = 123
CLEAR_FALLBACK_CHARS = 64

_SIZE_RE = {
    "override": re.compile(r"Override size:\s*(\d+)x(\d+)"),
    "physical": re.compile(r"Physical size:\s*(\d+)x(\d+)"),
}
_SHELL_SPECIAL = re.compile(r"([\\&|;<>()$`\"'*?~#!])")


def escape_input_text(text: str) -> str:
    """Makes text safe for `input text`: spaces become %s, shell metacharacters are escaped."""
    return _SHELL_SPECIAL.sub(r"\\\1", text).replace(" ", "%s")


class AdbClient:
    """
    Runs adb commands against one device and reports every outcome as a dict:
    {"cmd": [...], "status": "ok" | "error" | "timeout" | "simulated", ...}.

    With dry_run the command is built but not executed, so the portal can run
    without an attached device.
    """

    def __init__(
        self,
        device_id: Optional[str] = None,
        dry_run: bool = False,
        adb_path: str = "adb",
        timeout: int = 10,
    ) -> None:
        self.device_id = device_id
        self.dry_run = dry_run
        self.adb_path = adb_path
        self.timeout = timeout

    def command(self, *args: str) -> List[str]:
        target = ["-s", self.device_id] if self.device_id else []
        return [self.adb_path, *target, *args]

    def run(self, *args: str, timeout: Optional[int] = None) -> Dict[str, Any]:
        cmd = self.command(*args)
        if self.dry_run:
            return {"cmd": cmd, "status": "simulated"}
        limit = timeout or self.timeout
        try:
            proc = subprocess.run(cmd, check=False, capture_output=True, timeout=limit)
        except subprocess.TimeoutExpired:
            return {"cmd": cmd, "status": "timeout", "stderr": f"timed out after {limit}s"}
        except FileNotFoundError:
            return {"cmd": cmd, "status": "error", "stderr": f"{self.adb_path} executable not found"}
        return {
            "cmd": cmd,
            "status": "ok" if proc.returncode == 0 else "error",
            "stdout": (proc.stdout or b"").decode("utf-8", errors="ignore"),
            "stderr": (proc.stderr or b"").decode("utf-8", errors="ignore"),
            "returncode": proc.returncode,
        }

    def shell(self, *args: str, timeout: Optional[int] = None) -> Dict[str, Any]:
        return self.run("shell", *args, timeout=timeout)

    # Input

    def tap(self, x: int, y: int) -> Dict[str, Any]:
        return self.shell("input", "tap", str(x), str(y))

    def swipe(self, start_x: int, start_y: int, end_x: int, end_y: int, duration_ms: int = 300) -> Dict[str, Any]:
        return self.shell("input", "swipe", *(str(v) for v in (start_x, start_y, end_x, end_y, duration_ms)))

    def keyevent(self, key_code: int) -> Dict[str, Any]:
        return self.shell("input", "keyevent", str(key_code))

    def press(self, name: str) -> Dict[str, Any]:
        """Presses a navigation key by name: home, back or recent."""
        code = NAV_KEYCODES.get(name)
        if code is None:
            return {"cmd": [], "status": "error", "stderr": f"unknown navigation key '{name}'"}
        return self.keyevent(code)

    def input_text(self, text: str) -> Dict[str, Any]:
        return self.shell("input", "text", escape_input_text(text))

    def keycombination(self, *key_codes: int) -> Dict[str, Any]:
        """Android 13+ only, e.g. keycombination(KEYCODE_CTRL_LEFT, KEYCODE_A) selects all."""
        return self.shell("input", "keycombination", *(str(code) for code in key_codes))

    def clear_text(self, max_chars: int = CLEAR_FALLBACK_CHARS) -> Dict[str, Any]:
        """
        Empties the focused field: select-all then delete. Devices without
        keycombination get a move-to-end followed by max_chars deletes.
        """
        selected = self.keycombination(KEYCODE_CTRL_LEFT, KEYCODE_A)
        if selected["status"] in ("ok", "simulated") and "Error" not in selected.get("stderr", ""):
            return self.keyevent(KEYCODE_DEL)
        return self.shell("input", "keyevent", str(KEYCODE_MOVE_END), *[str(KEYCODE_DEL)] * max_chars)

    # Device state

    def dump_ui(self, local_path: Path, remote_path: str = DEVICE_DUMP_PATH) -> Dict[str, Any]:
        """Dumps the window hierarchy on the device and pulls it to local_path."""
        local_path.parent.mkdir(parents=True, exist_ok=True)
        dumped = self.shell("uiautomator", "dump", remote_path, timeout=max(self.timeout, 20))
        if dumped["status"] != "ok":
            return dumped
        # uiautomator exits 0 even when there is no window to dump.
        if "ERROR" in dumped.get("stdout", "") or "ERROR" in dumped.get("stderr", ""):
            message = (dumped.get("stdout") or dumped.get("stderr") or "").strip()
            return {**dumped, "status": "error", "stderr": message}
        return self.run("pull", remote_path, str(local_path))

    def start_app(self, package: str, activity: Optional[str] = None) -> Dict[str, Any]:
        if not activity:
            return self.shell("monkey", "-p", package, "-c", "android.intent.category.LAUNCHER", "1")
        component = activity if "/" in activity else f"{package}/{activity}"
        return self.shell("am", "start", "-n", component)

    def get_screen_size(self) -> Dict[str, Any]:
        """Adds width/height to the result; an override size wins over the physical one."""
        res = self.shell("wm", "size")
        if res["status"] != "ok":
            return res
        out = res.get("stdout", "")
        match = _SIZE_RE["override"].search(out) or _SIZE_RE["physical"].search(out)
        if match is None:
            return {**res, "status": "error", "stderr": f"Unable to parse screen size from: {out.strip()!r}"}
        return {**res, "width": int(match.group(1)), "height": int(match.group(2))}
