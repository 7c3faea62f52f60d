from __future__ import annotations

import json
import logging
import os
import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from uniform_store.config import settings
from uniform_store.constants import CUSTOMIZATIONS, ORDER_STATUSES, PRODUCT_STATUSES

log = logging.getLogger(__name__)

_JSON_COLUMNS = ("sizes", "colors", "images", "customization", "items", "customer", "cart", "orders")


def _connect() -> sqlite3.Connection:
    os.makedirs(os.path.dirname(settings.db_path) or ".", exist_ok=True)
    conn = sqlite3.connect(settings.db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _now() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _row(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    d = dict(row)
    for col in _JSON_COLUMNS:
        if col in d and isinstance(d[col], str):
            d[col] = json.loads(d[col] or "null")
    return d


def init_db() -> None:
    conn = _connect()
    try:
        with open(os.path.join(os.path.dirname(__file__), "schema.sql"), "r", encoding="utf-8") as f:
            conn.executescript(f.read())
        conn.commit()
    finally:
        conn.close()


# ---------------- users / sessions ----------------

def create_user(
    email: str,
    display_name: str,
    password_hash: str,
    salt: str,
    phone: str = "",
    is_admin: bool = False,
) -> int:
    conn = _connect()
    try:
        cur = conn.execute(
            """
            INSERT INTO users(email, display_name, phone, password_hash, salt, is_admin, created_at)
            VALUES(?,?,?,?,?,?,?)
            """,
            (email, display_name, phone, password_hash, salt, int(is_admin), _now()),
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        return _row(conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone())
    finally:
        conn.close()


def get_user(user_id: int) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        return _row(conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone())
    finally:
        conn.close()


def set_admin(user_id: int, is_admin: bool = True) -> None:
    conn = _connect()
    try:
        conn.execute("UPDATE users SET is_admin=? WHERE id=?", (int(is_admin), user_id))
        conn.commit()
    finally:
        conn.close()


def save_session(token: str, user_id: int, expires_at: str) -> None:
    conn = _connect()
    try:
        conn.execute(
            "INSERT INTO sessions(token, user_id, expires_at) VALUES(?,?,?)",
            (token, user_id, expires_at),
        )
        conn.commit()
    finally:
        conn.close()


def get_session(token: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        return _row(conn.execute("SELECT * FROM sessions WHERE token = ?", (token,)).fetchone())
    finally:
        conn.close()


def delete_session(token: str) -> None:
    conn = _connect()
    try:
        conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
        conn.commit()
    finally:
        conn.close()


def load_user_cart(user_id: int) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT cart FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            return []
        data = json.loads(row["cart"] or "[]")
        return data if isinstance(data, list) else []
    finally:
        conn.close()


def save_user_cart(user_id: int, items: List[Dict[str, Any]]) -> None:
    conn = _connect()
    try:
        cur = conn.execute("UPDATE users SET cart=? WHERE id=?", (json.dumps(items), user_id))
        if cur.rowcount == 0:
            raise LookupError(f"user {user_id} not found")
        conn.commit()
    finally:
        conn.close()


# ---------------- products ----------------

def add_product(
    name: str,
    price: Decimal | float | str,
    category: str = "",
    description: str = "",
    sizes: Optional[List[str]] = None,
    colors: Optional[List[str]] = None,
    images: Optional[List[str]] = None,
    customization: Optional[Dict[str, Any]] = None,
    status: str = "active",
) -> int:
    if status not in PRODUCT_STATUSES:
        raise ValueError(f"unknown product status: {status}")
    price = Decimal(str(price))
    if price < 0:
        raise ValueError("price must be >= 0")
    extras = {k: str(v) for k, v in (customization or {}).items() if k in CUSTOMIZATIONS}

    conn = _connect()
    try:
        cur = conn.execute(
            """
            INSERT INTO products(name, description, category, price, sizes, colors, images, customization, status, created_at)
            VALUES(?,?,?,?,?,?,?,?,?,?)
            """,
            (
                name,
                description,
                category,
                str(price),
                json.dumps(sizes or []),
                json.dumps(colors or []),
                json.dumps(images or []),
                json.dumps(extras),
                status,
                _now(),
            ),
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def get_product(product_id: int) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        return _row(conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone())
    finally:
        conn.close()


def list_products(
    category: Optional[str] = None,
    query: Optional[str] = None,
    only_active: bool = True,
) -> List[Dict[str, Any]]:
    sql = "SELECT * FROM products WHERE 1=1"
    args: List[Any] = []
    if only_active:
        sql += " AND status = 'active'"
    if category:
        sql += " AND category = ?"
        args.append(category)
    if query:
        sql += " AND (name LIKE ? OR description LIKE ?)"
        args.extend([f"%{query}%", f"%{query}%"])
    sql += " ORDER BY created_at DESC, id DESC"

    conn = _connect()
    try:
        return [_row(r) for r in conn.execute(sql, args).fetchall()]
    finally:
        conn.close()


def list_categories() -> List[str]:
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT DISTINCT category FROM products WHERE status='active' AND category != '' ORDER BY category"
        ).fetchall()
        return [r["category"] for r in rows]
    finally:
        conn.close()


def update_product(
    product_id: int,
    name: str,
    price: Decimal | float | str,
    category: str = "",
    description: str = "",
    sizes: Optional[List[str]] = None,
    colors: Optional[List[str]] = None,
    images: Optional[List[str]] = None,
    customization: Optional[Dict[str, Any]] = None,
) -> Tuple[bool, str]:
    """Replaces the editable fields of a product; status and created_at are kept."""
    if not name.strip():
        return False, "nome obrigatório"
    try:
        price = Decimal(str(price))
    except ArithmeticError:
        return False, f"preço inválido: {price}"
    if not price.is_finite() or price < 0:
        return False, "preço deve ser >= 0"
    extras = {k: str(v) for k, v in (customization or {}).items() if k in CUSTOMIZATIONS}

    conn = _connect()
    try:
        cur = conn.execute(
            """
            UPDATE products
            SET name=?, description=?, category=?, price=?, sizes=?, colors=?, images=?, customization=?
            WHERE id=?
            """,
            (
                name.strip(),
                description,
                category,
                str(price),
                json.dumps(sizes or []),
                json.dumps(colors or []),
                json.dumps(images or []),
                json.dumps(extras),
                product_id,
            ),
        )
        conn.commit()
        if cur.rowcount == 0:
            return False, "produto não encontrado"
        return True, "ok"
    finally:
        conn.close()


def update_product_status(product_id: int, status: str) -> Tuple[bool, str]:
    if status not in PRODUCT_STATUSES:
        return False, f"status desconhecido: {status}"
    conn = _connect()
    try:
        cur = conn.execute("UPDATE products SET status=? WHERE id=?", (status, product_id))
        conn.commit()
        if cur.rowcount == 0:
            return False, "produto não encontrado"
        return True, "ok"
    finally:
        conn.close()


def delete_product(product_id: int) -> Tuple[bool, str]:
    conn = _connect()
    try:
        cur = conn.execute("DELETE FROM products WHERE id=?", (product_id,))
        conn.commit()
        if cur.rowcount == 0:
            return False, "produto não encontrado"
        return True, "ok"
    finally:
        conn.close()


# ---------------- news ----------------

def add_news(title: str, body: str = "", image: str = "") -> int:
    if not title.strip():
        raise ValueError("title is required")
    conn = _connect()
    try:
        cur = conn.execute(
            "INSERT INTO news(title, body, image, created_at) VALUES(?,?,?,?)",
            (title.strip(), body.strip(), image.strip(), _now()),
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def list_news(limit: Optional[int] = None) -> List[Dict[str, Any]]:
    sql = "SELECT * FROM news ORDER BY created_at DESC, id DESC"
    args: Tuple[Any, ...] = ()
    if limit:
        sql += " LIMIT ?"
        args = (limit,)
    conn = _connect()
    try:
        return [_row(r) for r in conn.execute(sql, args).fetchall()]
    finally:
        conn.close()


def get_news(news_id: int) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        return _row(conn.execute("SELECT * FROM news WHERE id = ?", (news_id,)).fetchone())
    finally:
        conn.close()


def update_news(news_id: int, title: str, body: str = "", image: str = "") -> Tuple[bool, str]:
    if not title.strip():
        return False, "título obrigatório"
    conn = _connect()
    try:
        cur = conn.execute(
            "UPDATE news SET title=?, body=?, image=? WHERE id=?",
            (title.strip(), body.strip(), image.strip(), news_id),
        )
        conn.commit()
        if cur.rowcount == 0:
            return False, "notícia não encontrada"
        return True, "ok"
    finally:
        conn.close()


def delete_news(news_id: int) -> Tuple[bool, str]:
    conn = _connect()
    try:
        cur = conn.execute("DELETE FROM news WHERE id=?", (news_id,))
        conn.commit()
        if cur.rowcount == 0:
            return False, "notícia não encontrada"
        return True, "ok"
    finally:
        conn.close()


# ---------------- orders ----------------

def create_order(snapshot: Dict[str, Any]) -> int:
    """
    Writes one order and appends its row id to the owner's order list.
    snapshot keys: order_id, items, total, customer, created_at, delivery_date,
    user_id/user_email/user_name (optional), pdf_generated.
    """
    conn = _connect()
    try:
        conn.execute("BEGIN")
        cur = conn.execute(
            """
            INSERT INTO orders(order_id, user_id, user_email, user_name, items, total, customer,
                               status, created_at, delivery_date, pdf_generated)
            VALUES(?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                snapshot["order_id"],
                snapshot.get("user_id"),
                snapshot.get("user_email", ""),
                snapshot.get("user_name", ""),
                json.dumps(snapshot["items"]),
                str(snapshot["total"]),
                json.dumps(snapshot["customer"]),
                snapshot.get("status", "pending"),
                snapshot["created_at"],
                snapshot["delivery_date"],
                int(bool(snapshot.get("pdf_generated"))),
            ),
        )
        row_id = int(cur.lastrowid)

        user_id = snapshot.get("user_id")
        if user_id is not None:
            row = conn.execute("SELECT orders FROM users WHERE id=?", (user_id,)).fetchone()
            existing = json.loads(row["orders"] or "[]") if row else []
            conn.execute(
                "UPDATE users SET orders=? WHERE id=?",
                (json.dumps(existing + [row_id]), user_id),
            )

        conn.commit()
        return row_id
    except Exception:
        conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


def get_order(row_id: int) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        return _row(conn.execute("SELECT * FROM orders WHERE id=?", (row_id,)).fetchone())
    finally:
        conn.close()


def list_orders(status: Optional[str] = None) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        if status:
            rows = conn.execute(
                "SELECT * FROM orders WHERE status=? ORDER BY created_at DESC, id DESC", (status,)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM orders ORDER BY created_at DESC, id DESC").fetchall()
        return [_row(r) for r in rows]
    finally:
        conn.close()


def list_user_orders(user_id: int) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(
            "SELECT * FROM orders WHERE user_id=? ORDER BY created_at DESC, id DESC", (user_id,)
        ).fetchall()
        return [_row(r) for r in rows]
    finally:
        conn.close()


def set_order_status(row_id: int, status: str) -> Tuple[bool, str]:
    if status not in ORDER_STATUSES:
        return False, f"status desconhecido: {status} (use: {', '.join(ORDER_STATUSES)})"
    conn = _connect()
    try:
        cur = conn.execute("UPDATE orders SET status=? WHERE id=?", (status, row_id))
        conn.commit()
        if cur.rowcount == 0:
            return False, "pedido não encontrado"
        log.info("order %s -> %s", row_id, status)
        return True, "ok"
    finally:
        conn.close()


# ---------------- leads ----------------

def create_lead(
    name: str,
    email: str = "",
    phone: str = "",
    company: str = "",
    address: str = "",
    message: str = "",
    source: str = "quote",
    order_id: str = "",
    total: Decimal | str = "0",
) -> int:
    conn = _connect()
    try:
        cur = conn.execute(
            """
            INSERT INTO leads(name, email, phone, company, address, message, source, order_id, total, created_at)
            VALUES(?,?,?,?,?,?,?,?,?,?)
            """,
            (name, email, phone, company, address, message, source, order_id, str(total), _now()),
        )
        conn.commit()
        return int(cur.lastrowid)
    finally:
        conn.close()


def delete_lead(lead_id: int) -> None:
    conn = _connect()
    try:
        conn.execute("DELETE FROM leads WHERE id=?", (lead_id,))
        conn.commit()
    finally:
        conn.close()


def list_leads(source: Optional[str] = None) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        if source:
            rows = conn.execute(
                "SELECT * FROM leads WHERE source=? ORDER BY created_at DESC, id DESC", (source,)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM leads ORDER BY created_at DESC, id DESC").fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()
