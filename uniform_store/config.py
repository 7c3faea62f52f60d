from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]  # .../uniform_store repo root
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_float(*keys: str, default: float) -> float:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v.replace(",", "."))


def _get_path(*keys: str, default: str) -> str:
    v = _get_env(*keys, default=default)
    return str(v)


@dataclass(frozen=True)
class Settings:
    bot_token: str
    admin_id: int
    db_path: str
    export_dir: str
    guest_cart_dir: str
    cart_cache_size: int
    currency: str
    decimals: int

    # quote layout
    items_per_page: int
    page_margin_mm: float
    render_scale: int
    render_workers: int
    delivery_days: int
    logo_path: str
    signature_path: str

    # seller identity printed on quotes and used for contact links
    seller_name: str
    seller_tagline: str
    seller_cnpj: str
    seller_site: str
    seller_email: str
    seller_contact: str
    whatsapp_number: str
    whatsapp_display: str


settings = Settings(
    bot_token=_get_env("BOT_TOKEN", "TELEGRAM_BOT_TOKEN", default="") or "",
    admin_id=_get_int("ADMIN_ID", "ADMIN_TG_ID", "ADMIN_TG", default=0) or 0,
    db_path=_get_path("DB_PATH", "DATABASE_PATH", default=str(ROOT_DIR / "data" / "store.db")),
    export_dir=_get_path("EXPORT_DIR", default=str(ROOT_DIR / "exports")),
    guest_cart_dir=_get_path("GUEST_CART_DIR", default=str(ROOT_DIR / "data" / "guest_carts")),
    cart_cache_size=_get_int("CART_CACHE_SIZE", default=1000) or 1000,
    currency=_get_env("CURRENCY", default="R$") or "R$",
    decimals=_get_int("DECIMALS", default=2) or 2,
    items_per_page=_get_int("ITEMS_PER_PAGE", default=15) or 15,
    page_margin_mm=_get_float("PAGE_MARGIN_MM", default=7.5),
    render_scale=_get_int("RENDER_SCALE", default=2) or 2,
    render_workers=_get_int("RENDER_WORKERS", default=1) or 1,
    delivery_days=_get_int("DELIVERY_DAYS", default=30) or 30,
    logo_path=_get_path("LOGO_PATH", default=str(ROOT_DIR / "assets" / "logo.png")),
    signature_path=_get_path("SIGNATURE_PATH", default=str(ROOT_DIR / "assets" / "signature.png")),
    seller_name=_get_env("SELLER_NAME", default="Cardoso Confecções") or "",
    seller_tagline=_get_env("SELLER_TAGLINE", default="Fardamentos Industriais de Qualidade") or "",
    seller_cnpj=_get_env("SELLER_CNPJ", default="34.346.582/0001-84") or "",
    seller_site=_get_env("SELLER_SITE", default="confeccoescardoso.online") or "",
    seller_email=_get_env("SELLER_EMAIL", default="contato@cardosoconfeccoes.com") or "",
    seller_contact=_get_env("SELLER_CONTACT", default="José Cardoso") or "",
    whatsapp_number=_get_env("WHATSAPP_NUMBER", default="5579999062401") or "",
    whatsapp_display=_get_env("WHATSAPP_DISPLAY", default="(79) 9 9906-2401") or "",
)


def require_bot_settings() -> None:
    if not settings.bot_token:
        raise RuntimeError("BOT_TOKEN is empty. Set BOT_TOKEN in .env")
    if not settings.admin_id:
        raise RuntimeError("ADMIN_ID is empty. Set ADMIN_ID (or ADMIN_TG_ID) in .env")
