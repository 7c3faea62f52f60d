from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from uniform_store.config import settings

GENERAL_MESSAGE = "Olá! Gostaria de mais informações sobre os produtos da {seller}."


def whatsapp_url(message: Optional[str] = None, number: Optional[str] = None) -> str:
    url = f"https://wa.me/{number or settings.whatsapp_number}"
    if message:
        url += f"?text={quote(message, safe='')}"
    return url


def general_contact_url() -> str:
    return whatsapp_url(GENERAL_MESSAGE.format(seller=settings.seller_name))


def product_enquiry_url(product_name: str) -> str:
    return whatsapp_url(f"Olá! Gostaria de saber mais sobre o produto {product_name}.")


def order_enquiry_url(order_id: str) -> str:
    return whatsapp_url(f"Olá! Gostaria de informações sobre o pedido {order_id}.")


def contact_form_url(name: str, message: str) -> str:
    text = f"Olá! Meu nome é {name}." if name else "Olá!"
    if message:
        text += f"\n\n{message}"
    return whatsapp_url(text)
