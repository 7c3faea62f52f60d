from __future__ import annotations

import logging
from typing import List, Tuple

log = logging.getLogger(__name__)

SUCCESS = "success"
WARNING = "warning"
ERROR = "error"


class Notifier:
    """Collects user-facing notices; the web layer decides how they are shown."""

    def __init__(self) -> None:
        self.messages: List[Tuple[str, str]] = []

    def _push(self, category: str, message: str) -> None:
        self.messages.append((category, message))
        log.debug("notify %s: %s", category, message)

    def success(self, message: str) -> None:
        self._push(SUCCESS, message)

    def warning(self, message: str) -> None:
        self._push(WARNING, message)

    def error(self, message: str) -> None:
        self._push(ERROR, message)

    def drain(self) -> List[Tuple[str, str]]:
        out, self.messages = self.messages, []
        return out
