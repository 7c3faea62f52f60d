from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import sqlite3
from datetime import datetime, timedelta
from typing import Optional, Tuple

from uniform_store.db import sqlite
from uniform_store.models import CurrentUser
from uniform_store.utils.validators import is_email

log = logging.getLogger(__name__)

SESSION_DAYS = 3
_TS = "%Y-%m-%d %H:%M:%S"


def hash_password(password: str, salt: Optional[str] = None) -> tuple[str, str]:
    if salt is None:
        salt = secrets.token_hex(16)
    pwd_hash = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), 100000
    ).hex()
    return pwd_hash, salt


def _to_user(row: dict) -> CurrentUser:
    return CurrentUser(
        id=int(row["id"]),
        email=row["email"],
        display_name=row["display_name"],
        is_admin=bool(row["is_admin"]),
    )


def register(email: str, password: str, display_name: str, phone: str = "") -> Tuple[bool, str, Optional[CurrentUser]]:
    email = email.strip().lower()
    if not is_email(email):
        return False, "Email inválido", None
    if len(password) < 6:
        return False, "A senha deve ter pelo menos 6 caracteres", None
    if not display_name.strip():
        return False, "Informe o nome", None

    pwd_hash, salt = hash_password(password)
    try:
        user_id = sqlite.create_user(email, display_name.strip(), pwd_hash, salt, phone=phone.strip())
    except sqlite3.IntegrityError:
        return False, "Email já cadastrado", None
    log.info("user registered: %s", email)
    return True, "ok", CurrentUser(id=user_id, email=email, display_name=display_name.strip())


def authenticate(email: str, password: str) -> Optional[CurrentUser]:
    row = sqlite.get_user_by_email(email.strip().lower())
    if not row:
        return None
    pwd_hash, _ = hash_password(password, row["salt"])
    if not hmac.compare_digest(pwd_hash, row["password_hash"]):
        return None
    return _to_user(row)


def create_session(user_id: int) -> str:
    token = secrets.token_urlsafe(32)
    expires_at = (datetime.now() + timedelta(days=SESSION_DAYS)).strftime(_TS)
    sqlite.save_session(token, user_id, expires_at)
    return token


def user_for_token(token: Optional[str]) -> Optional[CurrentUser]:
    if not token:
        return None
    session = sqlite.get_session(token)
    if not session:
        return None
    if datetime.strptime(session["expires_at"], _TS) < datetime.now():
        sqlite.delete_session(token)
        return None
    row = sqlite.get_user(int(session["user_id"]))
    return _to_user(row) if row else None


def end_session(token: Optional[str]) -> None:
    if token:
        sqlite.delete_session(token)


def new_guest_token() -> str:
    return secrets.token_urlsafe(24)
