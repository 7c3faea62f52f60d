import os
import re
import sqlite3
from decimal import Decimal

import pytest
from PIL import Image

from uniform_store.config import settings
from uniform_store.db import sqlite
from uniform_store.errors import CartValidationError, EmptyCartError, QuoteRenderError, QuoteStorageError
from uniform_store.models import CurrentUser, CustomerData, LineItem, QuoteDocument
from uniform_store.services import quote_pdf
from uniform_store.services.paginator import plan_pages
from uniform_store.services.quote import build_quote_document, export_quote, generate_order_id, resolve_customer

GUEST = CustomerData(name="João", email="joao@example.com", phone="79 99999-0000", company="Metalúrgica SE")


def _pdf_pages(path):
    with open(path, "rb") as f:
        data = f.read()
    assert data.startswith(b"%PDF")
    return len(re.findall(rb"/Type /Page\b", data))


def test_order_id_format_and_randomness():
    a = generate_order_id(now=1700000000.123)
    b = generate_order_id(now=1700000000.123)
    assert re.fullmatch(r"ORC-1700000000123-[A-Z0-9]{9}", a)
    assert a != b


def test_resolve_customer_prefers_entered_then_profile():
    user = CurrentUser(id=1, email="ana@example.com", display_name="Ana")
    c = resolve_customer(CustomerData(name="Empresa X"), user)
    assert c.name == "Empresa X"
    assert c.email == "ana@example.com"
    assert c.phone == ""
    assert resolve_customer(None, None) == CustomerData()


def test_empty_cart_is_rejected_before_pagination(guest_cart, monkeypatch):
    def boom(*a, **kw):
        raise AssertionError("paginator must not run")

    monkeypatch.setattr(quote_pdf, "plan_pages", boom)
    with pytest.raises(EmptyCartError):
        export_quote(guest_cart, GUEST)
    assert guest_cart.notifier.drain()[-1][0] == "error"


def test_guest_requires_contact_fields(guest_cart, item):
    guest_cart.add_item(item(), 1)
    with pytest.raises(CartValidationError):
        export_quote(guest_cart, CustomerData(name="João", email="joao@example.com"))
    assert sqlite.list_leads() == []


def test_guest_export_writes_pdf_and_lead(guest_cart, item):
    guest_cart.add_item(item(price="25.00"), 4)
    result = export_quote(guest_cart, GUEST)

    assert os.path.exists(result.path)
    assert result.pages == 2
    assert _pdf_pages(result.path) == 2
    assert result.filename == f"orcamento_{result.order_id}.pdf"
    assert result.order_row_id is None

    leads = sqlite.list_leads()
    assert len(leads) == 1
    assert leads[0]["order_id"] == result.order_id
    assert Decimal(leads[0]["total"]) == Decimal("100.00")
    # guest carts survive the export
    assert guest_cart.total_item_count() == 4
    assert sqlite.list_orders() == []


def test_signed_in_export_creates_order_and_clears_cart(user_cart, user, item):
    for i in range(37):
        user_cart.add_item(item(product_id=f"P{i}"), 1)

    result = export_quote(user_cart, CustomerData(phone="79 3222-0000"))

    assert result.pages == 4
    assert _pdf_pages(result.path) == 4
    assert user_cart.is_empty()
    assert user_cart.store.load(user.id) == []

    orders = sqlite.list_user_orders(user.id)
    assert len(orders) == 1
    o = orders[0]
    assert o["order_id"] == result.order_id
    assert o["status"] == "pending"
    assert o["pdf_generated"] == 1
    assert len(o["items"]) == 37
    assert o["customer"]["name"] == "Ana Souza"
    assert o["customer"]["email"] == "ana@example.com"
    assert sqlite.get_user(user.id)["orders"] == [result.order_row_id]
    assert [k for k, _ in user_cart.notifier.drain()][-1] == "success"


def test_render_failure_leaves_nothing_behind(user_cart, user, item, monkeypatch):
    for i in range(20):
        user_cart.add_item(item(product_id=f"P{i}"), 1)

    real = quote_pdf.render_page

    def flaky(page, doc, total_pages, scale=None):
        if page.number == 2:
            raise QuoteRenderError("rasterizer crashed", page.number)
        return real(page, doc, total_pages, scale)

    monkeypatch.setattr(quote_pdf, "render_page", flaky)
    with pytest.raises(QuoteRenderError):
        export_quote(user_cart, GUEST)

    assert user_cart.total_item_count() == 20
    assert sqlite.list_orders() == []
    assert sqlite.list_leads() == []
    assert not os.path.exists(settings.export_dir) or os.listdir(settings.export_dir) == []


def test_render_page_size_matches_content_box(guest_cart, item):
    guest_cart.add_item(item(customizations=["embroidery"]), 2)
    doc = build_quote_document(guest_cart, GUEST)
    pages = plan_pages(doc.items, 15)
    img = quote_pdf.render_page(pages[0], doc, len(pages), scale=1)
    assert isinstance(img, Image.Image)
    assert img.size == quote_pdf.content_size_px(scale=1)
    assert img.size == (round(195 * quote_pdf.PX_PER_MM), round(282 * quote_pdf.PX_PER_MM))


def test_parallel_rendering_keeps_page_order(guest_cart, item):
    for i in range(40):
        guest_cart.add_item(item(product_id=f"P{i}"), 1)
    doc = build_quote_document(guest_cart, GUEST)
    pages = plan_pages(doc.items, 15)

    serial = quote_pdf.render_pages(pages, doc, workers=1, scale=1)
    parallel = quote_pdf.render_pages(pages, doc, workers=4, scale=1)
    assert [im.tobytes() for im in serial] == [im.tobytes() for im in parallel]


def test_assemble_pdf_one_page_per_image():
    images = [Image.new("RGB", quote_pdf.content_size_px(scale=1), "white") for _ in range(3)]
    data = quote_pdf.assemble_pdf(images)
    assert data.startswith(b"%PDF")
    assert len(re.findall(rb"/Type /Page\b", data)) == 3
    with pytest.raises(QuoteRenderError):
        quote_pdf.assemble_pdf([])


def test_quote_document_snapshot_is_independent_of_cart(guest_cart, item):
    guest_cart.add_item(item(), 1)
    doc = build_quote_document(guest_cart, GUEST)
    guest_cart.add_item(item(product_id="P2"), 1)
    assert isinstance(doc, QuoteDocument)
    assert len(doc.items) == 1
    assert doc.total == Decimal("10.00")
    assert all(isinstance(it, LineItem) for it in doc.items)


def _fill(cart, item, count):
    for i in range(count):
        line = item(product_id=f"P{i}", customizations=["embroidery", "printing"])
        line["description"] = "Camisa em malha piquet com bolso e logo bordado"
        cart.add_item(line, 1)


@pytest.mark.parametrize("scale", [1, 2])
def test_full_header_page_table_ends_above_footer(guest_cart, item, scale):
    _fill(guest_cart, item, 15)
    customer = CustomerData(
        name="João", email="joao@example.com", phone="79 99999-0000",
        company="Metalúrgica SE", address="Av. Brasil, 100 - Aracaju",
    )
    doc = build_quote_document(guest_cart, customer)
    page = plan_pages(doc.items, 15)[0]
    assert len(page.items) == 15

    pc = quote_pdf._PageCanvas(scale)
    quote_pdf._seller_block(pc)
    quote_pdf._quote_meta(pc, doc)
    quote_pdf._item_table(pc, page.items, continued=False)
    assert pc.y <= pc.height - quote_pdf._footer_height(pc)


def test_page_with_too_many_rows_fails_instead_of_clipping(guest_cart, item):
    _fill(guest_cart, item, 60)
    doc = build_quote_document(guest_cart, GUEST)
    pages = plan_pages(doc.items, 60)
    with pytest.raises(QuoteRenderError) as exc:
        quote_pdf.render_page(pages[0], doc, len(pages), scale=1)
    assert exc.value.page_number == 1


def test_write_failure_is_reported_and_leaves_nothing(guest_cart, item, tmp_path):
    guest_cart.add_item(item(), 2)
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    target = str(blocker / "q.pdf")

    with pytest.raises(QuoteRenderError):
        export_quote(guest_cart, GUEST, path=target)

    assert guest_cart.notifier.drain()[-1][0] == "error"
    assert not os.path.exists(target + ".part")
    assert sqlite.list_leads() == []
    assert guest_cart.total_item_count() == 2


def test_lead_storage_failure_removes_pdf(guest_cart, item, monkeypatch):
    guest_cart.add_item(item(), 1)

    def locked(**kw):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(sqlite, "create_lead", locked)
    with pytest.raises(QuoteStorageError):
        export_quote(guest_cart, GUEST)

    assert guest_cart.notifier.drain()[-1][0] == "error"
    assert os.listdir(settings.export_dir) == []


def test_order_storage_failure_rolls_back_lead_and_keeps_cart(user_cart, user, item, monkeypatch):
    for i in range(3):
        user_cart.add_item(item(product_id=f"P{i}"), 2)

    def locked(snapshot):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(sqlite, "create_order", locked)
    with pytest.raises(QuoteStorageError):
        export_quote(user_cart, CustomerData(phone="79 3222-0000"))

    assert sqlite.list_leads() == []
    assert sqlite.list_orders() == []
    assert os.listdir(settings.export_dir) == []
    assert user_cart.total_item_count() == 6
    assert user_cart.store.load(user.id) != []
    assert user_cart.notifier.drain()[-1] == ("error", "Erro ao registrar orçamento")
