from __future__ import annotations

import logging
import os
import secrets
import sqlite3
import string
import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from uniform_store.config import settings
from uniform_store.constants import ORDER_ID_PREFIX, ORDER_STATUS_DEFAULT
from uniform_store.db import sqlite
from uniform_store.errors import CartValidationError, EmptyCartError, QuoteRenderError, QuoteStorageError
from uniform_store.models import CurrentUser, CustomerData, QuoteDocument
from uniform_store.services.cart import CartAggregator
from uniform_store.services.quote_pdf import write_quote_pdf
from uniform_store.utils.validators import is_email, require_fields

log = logging.getLogger(__name__)

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_id(now: Optional[float] = None) -> str:
    """
    ORC-<epoch millis>-<9 random chars>. Timestamp plus randomness only:
    good enough as a printed quote number, not a primary key.
    """
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(9))
    return f"{ORDER_ID_PREFIX}-{millis}-{suffix}"


def resolve_customer(entered: Optional[CustomerData], user: Optional[CurrentUser]) -> CustomerData:
    entered = entered or CustomerData()
    return CustomerData(
        name=entered.name or (user.display_name if user else "") or "",
        email=entered.email or (user.email if user else "") or "",
        phone=entered.phone or "",
        company=entered.company or "",
        address=entered.address or "",
    )


def build_quote_document(
    cart: CartAggregator,
    customer: Optional[CustomerData] = None,
    now: Optional[datetime] = None,
) -> QuoteDocument:
    if cart.is_empty():
        raise EmptyCartError("Carrinho vazio")
    return QuoteDocument(
        order_id=generate_order_id(),
        created_at=now or datetime.now(),
        items=[replace(it) for it in cart.items],
        total=cart.total_price(),
        customer=resolve_customer(customer, cart.session.current_user),
    )


@dataclass
class QuoteResult:
    order_id: str
    path: str
    filename: str
    pages: int
    order_row_id: Optional[int] = None
    lead_id: Optional[int] = None


def _validate_guest(customer: CustomerData) -> None:
    try:
        require_fields(customer.to_dict(), "name", "email", "phone")
    except ValueError as e:
        raise CartValidationError("Preencha os campos obrigatórios") from e
    if not is_email(customer.email):
        raise CartValidationError("Email inválido")


def _order_snapshot(doc: QuoteDocument, user: CurrentUser) -> dict:
    return {
        "order_id": doc.order_id,
        "items": [it.to_dict() for it in doc.items],
        "total": doc.total,
        "customer": doc.customer.to_dict(),
        "status": ORDER_STATUS_DEFAULT,
        "created_at": doc.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        "delivery_date": (doc.created_at + timedelta(days=settings.delivery_days)).strftime("%Y-%m-%d %H:%M:%S"),
        "pdf_generated": True,
        "user_id": user.id,
        "user_email": user.email or "",
        "user_name": user.display_name or "",
    }


def _discard(pdf_path: str, lead_id: Optional[int]) -> None:
    try:
        os.remove(pdf_path)
    except OSError as e:
        log.warning("could not remove %s: %s", pdf_path, e)
    if lead_id is not None:
        try:
            sqlite.delete_lead(lead_id)
        except sqlite3.Error as e:
            log.warning("could not remove lead %s: %s", lead_id, e)


def export_quote(
    cart: CartAggregator,
    customer: Optional[CustomerData] = None,
    path: Optional[str] = None,
) -> QuoteResult:
    """
    Cart -> PDF quote.

    Order of effects: validate, render every page, write the file, record
    the lead (always) and the order (signed-in only), then clear the cart
    of a signed-in session. A render or write failure leaves no file, no
    order and an untouched cart; if the lead or order cannot be stored the
    file and any lead already written are removed again.
    """
    notifier = cart.notifier
    user = cart.session.current_user

    if cart.is_empty():
        notifier.error("Carrinho vazio")
        raise EmptyCartError("Carrinho vazio")

    entered = customer or CustomerData()
    if user is None:
        try:
            _validate_guest(entered)
        except CartValidationError as e:
            notifier.error(str(e))
            raise

    doc = build_quote_document(cart, entered)

    try:
        pdf_path, pages = write_quote_pdf(doc, path)
    except QuoteRenderError as e:
        log.error("quote %s aborted: %s", doc.order_id, e)
        notifier.error("Erro ao gerar orçamento")
        raise

    lead_id = None
    order_row_id = None
    try:
        lead_id = sqlite.create_lead(
            name=doc.customer.name,
            email=doc.customer.email,
            phone=doc.customer.phone,
            company=doc.customer.company,
            address=doc.customer.address,
            source="quote",
            order_id=doc.order_id,
            total=doc.total,
        )
        if user is not None:
            order_row_id = sqlite.create_order(_order_snapshot(doc, user))
    except sqlite3.Error as e:
        log.error("quote %s not recorded: %s", doc.order_id, e)
        _discard(pdf_path, lead_id)
        notifier.error("Erro ao registrar orçamento")
        raise QuoteStorageError(f"quote {doc.order_id} not recorded: {e}") from e

    if user is not None:
        cart.clear()

    log.info("quote %s exported: %d pages, total=%s, user=%s", doc.order_id, pages, doc.total, user.id if user else None)
    notifier.success(f"Orçamento gerado com sucesso! ({pages} página{'s' if pages > 1 else ''})")
    return QuoteResult(
        order_id=doc.order_id,
        path=pdf_path,
        filename=os.path.basename(pdf_path),
        pages=pages,
        order_row_id=order_row_id,
        lead_id=lead_id,
    )
