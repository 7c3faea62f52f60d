from __future__ import annotations

import json
import logging
import os
import re
import sqlite3
from typing import Any, Dict, List, Mapping, Optional

from uniform_store.config import settings
from uniform_store.db import sqlite
from uniform_store.errors import CartPersistenceError
from uniform_store.models import LineItem

log = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_\-]{8,128}$")


class CartStore:
    """
    Cart persistence for one browser.
    user_id=None -> guest cart, a JSON file per guest token (device-local);
    user_id=<int> -> the per-user cart column in the backend database.
    """

    def __init__(self, guest_token: str, guest_dir: Optional[str] = None) -> None:
        if not _TOKEN_RE.match(guest_token or ""):
            raise ValueError("invalid guest token")
        self.guest_token = guest_token
        self.guest_dir = guest_dir or settings.guest_cart_dir

    @property
    def guest_path(self) -> str:
        return os.path.join(self.guest_dir, f"{self.guest_token}.json")

    def load(self, user_id: Optional[int]) -> List[LineItem]:
        try:
            raw = self._load_raw(user_id)
        except (OSError, ValueError, LookupError, sqlite3.Error) as e:
            raise CartPersistenceError(f"cart load failed: {e}") from e

        items: List[LineItem] = []
        for entry in raw:
            if not isinstance(entry, Mapping):
                log.warning("dropping malformed stored cart line: %r", entry)
                continue
            try:
                items.append(LineItem.from_dict(entry))
            except (ValueError, TypeError):
                log.warning("dropping malformed stored cart line: %r", entry)
        return items

    def save(self, user_id: Optional[int], items: List[LineItem]) -> None:
        payload = [it.to_dict() for it in items]
        try:
            if user_id is None:
                self._save_guest(payload)
            else:
                sqlite.save_user_cart(user_id, payload)
        except (OSError, LookupError, ValueError, sqlite3.Error) as e:
            raise CartPersistenceError(f"cart save failed: {e}") from e

    def _load_raw(self, user_id: Optional[int]) -> List[Dict[str, Any]]:
        if user_id is not None:
            return sqlite.load_user_cart(user_id)
        if not os.path.exists(self.guest_path):
            return []
        with open(self.guest_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, list) else []

    def _save_guest(self, payload: List[Dict[str, Any]]) -> None:
        os.makedirs(self.guest_dir, exist_ok=True)
        tmp = self.guest_path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False)
        os.replace(tmp, self.guest_path)
