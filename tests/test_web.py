import sqlite3

import pytest
from fastapi.testclient import TestClient

from uniform_store.db import sqlite
from uniform_store.web import main as web
from uniform_store.web.main import CARTS, app


@pytest.fixture
def client():
    CARTS.clear()
    with TestClient(app) as c:
        yield c
    CARTS.clear()


@pytest.fixture
def product_id():
    return sqlite.add_product(
        "Camisa Polo",
        "45.00",
        category="Camisas",
        sizes=["P", "M", "G"],
        colors=["Azul", "Vermelho"],
        customization={"embroidery": "10", "printing": "5"},
    )


def _add(client, product_id, size="M", color="Azul", customizations=(), quantity=1):
    data = {"product_id": str(product_id), "size": size, "color": color, "quantity": str(quantity)}
    if customizations:
        data["customizations"] = list(customizations)
    return client.post("/cart/add", data=data, follow_redirects=False)


def _only_cart():
    assert len(CARTS) == 1
    return next(iter(CARTS.values()))


def test_catalog_pages(client, product_id):
    assert client.get("/").status_code == 200
    r = client.get("/products", params={"category": "Camisas"})
    assert r.status_code == 200
    assert "Camisa Polo" in r.text
    r = client.get(f"/products/{product_id}")
    assert r.status_code == 200
    assert "wa.me" in r.text
    assert client.get("/products/9999").status_code == 404


def test_add_sets_guest_cookie_and_merges(client, product_id):
    r = _add(client, product_id, quantity=2)
    assert r.status_code == 303
    assert "guest" in r.cookies

    _add(client, product_id, quantity=2)
    cart = _only_cart()
    assert len(cart) == 1
    assert cart.total_item_count() == 4


def test_customizations_in_any_order_merge(client, product_id):
    _add(client, product_id, customizations=["printing", "embroidery"])
    _add(client, product_id, customizations=["embroidery", "printing"])
    cart = _only_cart()
    assert len(cart) == 1
    assert str(cart.items[0].unit_price) == "60.00"


def test_add_requires_size(client, product_id):
    r = _add(client, product_id, size="")
    assert r.status_code == 303
    assert "Selecione" in r.headers["location"] or "Selecione" in client.get(r.headers["location"]).text
    assert _only_cart().is_empty()


def test_update_to_zero_removes_line(client, product_id):
    _add(client, product_id, size="M")
    _add(client, product_id, size="G")
    r = client.post(
        "/cart/update",
        data={"product_id": str(product_id), "size": "M", "color": "Azul", "customizations": "", "quantity": "0"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    assert [it.size for it in _only_cart().items] == ["G"]

    page = client.get("/cart")
    assert page.status_code == 200
    assert "Camisa Polo" in page.text


def test_guest_quote_requires_contact_fields(client, product_id):
    _add(client, product_id)
    r = client.post("/quote", data={"name": "João"}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("/cart?")
    assert sqlite.list_leads() == []


def test_guest_quote_downloads_pdf(client, product_id):
    _add(client, product_id, quantity=3)
    r = client.post(
        "/quote",
        data={"name": "João", "email": "joao@example.com", "phone": "79 99999-0000"},
    )
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.content.startswith(b"%PDF")
    assert r.headers["x-quote-pages"] == "2"
    assert r.headers["x-quote-id"].startswith("ORC-")
    assert len(sqlite.list_leads()) == 1
    assert _only_cart().total_item_count() == 3


def test_empty_cart_quote_is_rejected(client):
    r = client.post("/quote", data={"name": "x", "email": "x@example.com", "phone": "1"}, follow_redirects=False)
    assert r.status_code == 303
    assert "vazio" in client.get(r.headers["location"]).text


def test_register_merges_guest_cart_and_orders(client, product_id):
    _add(client, product_id, quantity=2)
    r = client.post(
        "/register",
        data={"name": "Ana", "email": "ana@example.com", "password": "segredo1"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    user = sqlite.get_user_by_email("ana@example.com")
    assert [it["quantity"] for it in user["cart"]] == [2]

    r = client.post("/quote", data={"phone": "79 3222-0000"})
    assert r.status_code == 200
    orders = sqlite.list_user_orders(user["id"])
    assert len(orders) == 1
    assert _only_cart().is_empty()

    page = client.get("/orders")
    assert orders[0]["order_id"] in page.text
    assert "Pendente" in page.text


def test_login_with_wrong_password(client):
    client.post("/register", data={"name": "Ana", "email": "ana@example.com", "password": "segredo1"})
    client.post("/logout")
    r = client.post("/login", data={"email": "ana@example.com", "password": "errada"}, follow_redirects=False)
    assert r.headers["location"].startswith("/login?")
    r = client.post("/login", data={"email": "ana@example.com", "password": "segredo1"}, follow_redirects=False)
    assert r.headers["location"].startswith("/?")
    assert "session" in r.cookies


def test_orders_page_requires_login(client):
    r = client.get("/orders", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("/login")


def test_admin_requires_admin_user(client):
    assert client.get("/admin").status_code == 403
    client.post("/register", data={"name": "Ana", "email": "ana@example.com", "password": "segredo1"})
    assert client.get("/admin").status_code == 403

    sqlite.set_admin(sqlite.get_user_by_email("ana@example.com")["id"])
    assert client.get("/admin").status_code == 200


def test_admin_manages_products_and_orders(client, product_id):
    client.post("/register", data={"name": "Ana", "email": "ana@example.com", "password": "segredo1"})
    user_id = sqlite.get_user_by_email("ana@example.com")["id"]
    sqlite.set_admin(user_id)

    r = client.post(
        "/admin/products",
        data={"name": "Jaleco", "price": "80,00", "sizes": "P, M", "embroidery": "12,50"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    jaleco = [p for p in sqlite.list_products() if p["name"] == "Jaleco"][0]
    assert jaleco["sizes"] == ["P", "M"]
    assert jaleco["customization"] == {"embroidery": "12.50"}

    client.post(f"/admin/products/{product_id}/status", data={"status": "inactive"})
    assert client.get(f"/products/{product_id}").status_code == 404

    _add(client, jaleco["id"], size="P")
    client.post("/quote", data={"phone": "1"})
    order = sqlite.list_user_orders(user_id)[0]
    client.post(f"/admin/orders/{order['id']}/status", data={"status": "approved"})
    assert sqlite.get_order(order["id"])["status"] == "approved"

    r = client.post(f"/admin/orders/{order['id']}/status", data={"status": "lost"}, follow_redirects=False)
    assert "desconhecido" in r.headers["location"]


def test_contact_records_lead_and_redirects_to_whatsapp(client):
    r = client.post("/contact", data={"name": "Maria", "phone": "79 1", "message": "Preciso de 50 jalecos"},
                    follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("https://wa.me/")
    leads = sqlite.list_leads("contact")
    assert leads[0]["message"] == "Preciso de 50 jalecos"


def _admin(client):
    client.post("/register", data={"name": "Ana", "email": "ana@example.com", "password": "segredo1"})
    sqlite.set_admin(sqlite.get_user_by_email("ana@example.com")["id"])


def test_quote_storage_failure_redirects_with_error(client, product_id, monkeypatch):
    _add(client, product_id)

    def locked(**kw):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(sqlite, "create_lead", locked)
    r = client.post(
        "/quote",
        data={"name": "João", "email": "joao@example.com", "phone": "79 99999-0000"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    assert r.headers["location"].startswith("/cart?")
    assert "Erro ao registrar" in client.get(r.headers["location"]).text
    assert _only_cart().total_item_count() == 1


def test_cart_registry_is_bounded_and_reloads_evicted_carts(client, product_id, monkeypatch):
    monkeypatch.setattr(web, "CART_CACHE_SIZE", 5)
    _add(client, product_id, quantity=3)
    token = client.cookies.get("guest")

    for _ in range(20):
        client.cookies.clear()
        assert client.get("/").status_code == 200
    assert len(CARTS) <= 5
    assert token not in CARTS

    client.cookies.clear()
    client.cookies.set("guest", token)
    page = client.get("/cart")
    assert "Camisa Polo" in page.text
    assert CARTS[token].total_item_count() == 3


def test_admin_edits_product(client, product_id):
    _admin(client)
    assert client.get(f"/admin/products/{product_id}/edit").status_code == 200
    assert client.get("/admin/products/9999/edit").status_code == 404

    r = client.post(
        f"/admin/products/{product_id}/edit",
        data={"name": "Camisa Polo Premium", "price": "52,90", "category": "Camisas",
              "sizes": "M, G", "colors": "Azul", "printing": "7"},
        follow_redirects=False,
    )
    assert r.status_code == 303
    p = sqlite.get_product(product_id)
    assert p["name"] == "Camisa Polo Premium"
    assert p["price"] == "52.90"
    assert p["sizes"] == ["M", "G"]
    assert p["customization"] == {"printing": "7"}
    assert p["status"] == "active"

    r = client.post(f"/admin/products/{product_id}/edit", data={"name": "X", "price": "abc"}, follow_redirects=False)
    assert r.headers["location"].startswith(f"/admin/products/{product_id}/edit?")
    assert sqlite.get_product(product_id)["name"] == "Camisa Polo Premium"


def test_admin_edits_news(client):
    _admin(client)
    news_id = sqlite.add_news("Nova coleção", "Jalecos em estoque")
    assert "Nova coleção" in client.get(f"/admin/news/{news_id}/edit").text
    assert client.get("/admin/news/9999/edit").status_code == 404

    client.post(f"/admin/news/{news_id}/edit", data={"title": "Coleção 2025", "body": "Jalecos e aventais"})
    item = sqlite.get_news(news_id)
    assert item["title"] == "Coleção 2025"
    assert item["body"] == "Jalecos e aventais"

    r = client.post(f"/admin/news/{news_id}/edit", data={"title": "  "}, follow_redirects=False)
    assert "/edit?" in r.headers["location"]
    assert sqlite.update_news(9999, "x") == (False, "notícia não encontrada")


def test_product_edit_requires_admin(client, product_id):
    r = client.post(f"/admin/products/{product_id}/edit", data={"name": "X", "price": "1"})
    assert r.status_code == 403
    assert sqlite.get_product(product_id)["name"] == "Camisa Polo"
