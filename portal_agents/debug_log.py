from __future__ import annotations

import threading
from collections import deque
from datetime import datetime
from typing import Deque, List

MAX_LOG_SIZE = 100


class DebugLog:
    """
    Bounded, thread-safe buffer of recent log lines ("HH:MM:SS TAG: message").

    `add` also prints the line; `debug` keeps the line in the buffer and only
    prints it when verbose is on.
    """

    def __init__(self, max_size: int = MAX_LOG_SIZE, verbose: bool = False, echo: bool = True) -> None:
        self._entries: Deque[str] = deque(maxlen=max_size)
        self._lock = threading.Lock()
        self.verbose = verbose
        self.echo = echo

    def _append(self, tag: str, message: str, show: bool) -> str:
        line = f"{datetime.now().strftime('%H:%M:%S')} {tag}: {message}"
        with self._lock:
            self._entries.append(line)
        if show and self.echo:
            print(f"{tag}: {message}")
        return line

    def add(self, tag: str, message: str) -> str:
        return self._append(tag, message, show=True)

    def debug(self, tag: str, message: str) -> str:
        return self._append(tag, message, show=self.verbose)

    def get_logs(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


DEBUG_LOG = DebugLog()
