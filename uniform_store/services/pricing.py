from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Mapping

from uniform_store.config import settings
from uniform_store.constants import CUSTOMIZATIONS
from uniform_store.models import normalize_customizations


def quantize(v: Decimal) -> Decimal:
    return v.quantize(Decimal(1).scaleb(-settings.decimals), rounding=ROUND_HALF_UP)


def unit_price(product: Mapping[str, Any], selected: Iterable[str] = ()) -> Decimal:
    """Base price plus every selected customization the product actually offers."""
    price = Decimal(str(product.get("price") or "0"))
    offered = product.get("customization") or {}
    for key in normalize_customizations(list(selected)):
        if key in CUSTOMIZATIONS and key in offered:
            price += Decimal(str(offered[key] or "0"))
    return quantize(price)


def candidate_from_product(
    product: Mapping[str, Any],
    size: str = "",
    color: str = "",
    customizations: Iterable[str] = (),
) -> Dict[str, Any]:
    offered = product.get("customization") or {}
    chosen = [c for c in normalize_customizations(list(customizations)) if c in offered]
    return {
        "product_id": str(product.get("id") or ""),
        "name": product.get("name") or "",
        "unit_price": unit_price(product, chosen),
        "size": size,
        "selected_color": color,
        "customizations": chosen,
        "images": product.get("images") or [],
        "description": product.get("description") or "",
    }
