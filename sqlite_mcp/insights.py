from __future__ import annotations

import threading

INSIGHTS_URI = "memo://insights"
INSIGHTS_NAME = "Business Insights Memo"
INSIGHTS_DESCRIPTION = "Continuously updated business insights memo"
INSIGHTS_MIME_TYPE = "text/plain"

SEPARATOR = "\n\n"


class InsightsLog:
    """Append-only, process-local list of business insights."""

    def __init__(self) -> None:
        self._entries: list[str] = []
        self._lock = threading.Lock()

    def append(self, text: str) -> None:
        with self._lock:
            self._entries.append(text)

    def render_all(self) -> str:
        with self._lock:
            return SEPARATOR.join(self._entries)

    def entries(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
