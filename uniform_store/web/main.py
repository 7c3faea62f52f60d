from __future__ import annotations

import logging
from collections import OrderedDict
from pathlib import Path
from typing import Any, List, Optional, Tuple
from urllib.parse import urlencode

from fastapi import FastAPI, Form, HTTPException, Request
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from uniform_store.config import settings
from uniform_store.constants import CUSTOMIZATIONS, ORDER_STATUSES, PRODUCT_STATUSES
from uniform_store.db.cart_store import CartStore
from uniform_store.db.sqlite import (
    add_news,
    add_product,
    create_lead,
    delete_news,
    delete_product,
    get_news,
    get_product,
    init_db,
    list_categories,
    list_leads,
    list_news,
    list_orders,
    list_products,
    list_user_orders,
    set_order_status,
    update_news,
    update_product,
    update_product_status,
)
from uniform_store.errors import CartValidationError, QuoteRenderError, QuoteStorageError
from uniform_store.models import CurrentUser, CustomerData, IdentityKey, Session, identity_key
from uniform_store.services import auth
from uniform_store.services.cart import CartAggregator
from uniform_store.services.pricing import candidate_from_product
from uniform_store.services.quote import export_quote
from uniform_store.services.whatsapp import (
    contact_form_url,
    general_contact_url,
    order_enquiry_url,
    product_enquiry_url,
)
from uniform_store.utils.formatters import date_br, money

log = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

GUEST_COOKIE = "guest"
SESSION_COOKIE = "session"

app = FastAPI(title="Uniform Store")

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["money"] = money
templates.env.filters["date_br"] = date_br

if STATIC_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

# guest token -> cart of that browser, least recently used first. Evicted
# carts are reloaded from their CartStore on the next request.
CARTS: "OrderedDict[str, CartAggregator]" = OrderedDict()
CART_CACHE_SIZE = settings.cart_cache_size


@app.on_event("startup")
def _startup() -> None:
    init_db()


def _uid(user: Optional[CurrentUser]) -> Optional[int]:
    return user.id if user else None


def _cart_for(request: Request) -> Tuple[CartAggregator, bool]:
    """Returns the browser's cart and whether a new guest cookie must be set."""
    token = request.cookies.get(GUEST_COOKIE) or ""
    created = False
    try:
        store = CartStore(token)
    except ValueError:
        token = auth.new_guest_token()
        store = CartStore(token)
        created = True

    user = auth.user_for_token(request.cookies.get(SESSION_COOKIE))
    cart = CARTS.get(token)
    if cart is None:
        cart = CartAggregator(Session(guest_token=token, current_user=user), store)
        cart.load()
        CARTS[token] = cart
        while len(CARTS) > CART_CACHE_SIZE:
            CARTS.popitem(last=False)
    else:
        CARTS.move_to_end(token)
    if _uid(cart.session.current_user) != _uid(user):
        cart.switch_user(user)
    return cart, created


def _finish(response: Response, cart: CartAggregator, created: bool) -> Response:
    if created:
        response.set_cookie(GUEST_COOKIE, cart.session.guest_token, httponly=True, samesite="lax", max_age=60 * 60 * 24 * 365)
    return response


def _redirect(url: str, cart: CartAggregator, created: bool, msg: str = "", kind: str = "") -> Response:
    notices = cart.notifier.drain()
    if notices and not msg:
        kind = notices[-1][0]
        msg = " | ".join(m for _, m in notices)
    if msg:
        sep = "&" if "?" in url else "?"
        url = f"{url}{sep}{urlencode({'msg': msg, 'kind': kind or 'info'})}"
    return _finish(RedirectResponse(url=url, status_code=303), cart, created)


def _render(
    request: Request,
    name: str,
    ctx: dict[str, Any],
    cart: Optional[CartAggregator] = None,
    created: bool = False,
) -> Response:
    if cart is None:
        cart, created = _cart_for(request)
    base = {
        "request": request,
        "user": cart.session.current_user,
        "cart_count": cart.total_item_count(),
        "message": request.query_params.get("msg", ""),
        "message_kind": request.query_params.get("kind", "info"),
        "whatsapp_url": general_contact_url(),
        "seller_name": settings.seller_name,
        "customizations": CUSTOMIZATIONS,
        "order_statuses": ORDER_STATUSES,
        "product_statuses": PRODUCT_STATUSES,
    }
    base.update(ctx)
    return _finish(templates.TemplateResponse(request, name, base), cart, created)


def _require_admin(request: Request) -> CurrentUser:
    user = auth.user_for_token(request.cookies.get(SESSION_COOKIE))
    if user is None or not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return user


def _split(raw: str) -> List[str]:
    return [x.strip() for x in raw.replace("\n", ",").split(",") if x.strip()]


def _extras(embroidery: str, printing: str, sublimation: str, paint: str) -> dict[str, str]:
    pairs = (("embroidery", embroidery), ("printing", printing), ("sublimation", sublimation), ("paint", paint))
    return {k: v.replace(",", ".").strip() for k, v in pairs if v.strip()}


# ---------------- catalog ----------------

@app.get("/", response_class=HTMLResponse)
def index(request: Request):
    return _render(
        request,
        "index.html",
        {"products": list_products()[:8], "news": list_news(limit=3)},
    )


@app.get("/products", response_class=HTMLResponse)
def products(request: Request, category: Optional[str] = None, q: Optional[str] = None):
    rows = list_products(category=category or None, query=(q or "").strip() or None)
    return _render(
        request,
        "products.html",
        {
            "products": rows,
            "categories": list_categories(),
            "selected_category": category or "",
            "query": q or "",
        },
    )


@app.get("/products/{product_id}", response_class=HTMLResponse)
def product_detail(request: Request, product_id: int):
    product = get_product(product_id)
    if not product or product["status"] != "active":
        raise HTTPException(status_code=404, detail="Produto não encontrado")
    related = [p for p in list_products(category=product["category"] or None) if p["id"] != product_id][:4]
    return _render(
        request,
        "product.html",
        {
            "product": product,
            "related": related,
            "enquiry_url": product_enquiry_url(product["name"]),
        },
    )


# ---------------- cart ----------------

@app.get("/cart", response_class=HTMLResponse)
def cart_get(request: Request):
    cart, created = _cart_for(request)
    lines = [(it, identity_key(it)) for it in cart.items]
    return _render(
        request,
        "cart.html",
        {"lines": lines, "total": cart.total_price(), "item_count": cart.total_item_count()},
        cart,
        created,
    )


@app.post("/cart/add")
def cart_add(
    request: Request,
    product_id: int = Form(...),
    size: str = Form(""),
    color: str = Form(""),
    customizations: List[str] = Form([]),
    quantity: int = Form(1),
):
    cart, created = _cart_for(request)
    back = f"/products/{product_id}"

    product = get_product(product_id)
    if not product or product["status"] != "active":
        return _redirect("/products", cart, created, "Produto não encontrado", "error")
    if product["sizes"] and not size:
        return _redirect(back, cart, created, "Selecione um tamanho", "error")
    if quantity < 1:
        return _redirect(back, cart, created, "Quantidade deve ser maior que zero", "error")

    try:
        cart.add_item(candidate_from_product(product, size, color, customizations), quantity)
    except CartValidationError as e:
        log.info("add to cart rejected: %s", e)
        return _redirect(back, cart, created, f"Erro ao adicionar ao carrinho: {e}", "error")

    if not cart.notifier.messages:
        cart.notifier.success("Produto adicionado ao carrinho!")
    return _redirect(back, cart, created)


def _key(product_id: str, size: str, color: str, customizations: str) -> IdentityKey:
    return identity_key(
        {"product_id": product_id, "size": size, "selected_color": color, "customizations": customizations}
    )


@app.post("/cart/update")
def cart_update(
    request: Request,
    product_id: str = Form(...),
    size: str = Form(""),
    color: str = Form(""),
    customizations: str = Form(""),
    quantity: int = Form(...),
):
    cart, created = _cart_for(request)
    cart.update_quantity(_key(product_id, size, color, customizations), quantity)
    if quantity <= 0 and not cart.notifier.messages:
        cart.notifier.success("Item removido do carrinho")
    return _redirect("/cart", cart, created)


@app.post("/cart/remove")
def cart_remove(
    request: Request,
    product_id: str = Form(...),
    size: str = Form(""),
    color: str = Form(""),
    customizations: str = Form(""),
):
    cart, created = _cart_for(request)
    cart.remove_item(_key(product_id, size, color, customizations))
    if not cart.notifier.messages:
        cart.notifier.success("Item removido do carrinho")
    return _redirect("/cart", cart, created)


@app.post("/cart/clear")
def cart_clear(request: Request):
    cart, created = _cart_for(request)
    cart.clear()
    return _redirect("/cart", cart, created)


@app.post("/quote")
def quote(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    phone: str = Form(""),
    company: str = Form(""),
    address: str = Form(""),
):
    cart, created = _cart_for(request)
    customer = CustomerData.from_mapping(
        {"name": name, "email": email, "phone": phone, "company": company, "address": address}
    )
    try:
        result = export_quote(cart, customer)
    except (CartValidationError, QuoteRenderError, QuoteStorageError):
        return _redirect("/cart", cart, created)

    cart.notifier.drain()
    response = FileResponse(result.path, filename=result.filename, media_type="application/pdf")
    response.headers["X-Quote-Id"] = result.order_id
    response.headers["X-Quote-Pages"] = str(result.pages)
    return _finish(response, cart, created)


# ---------------- accounts ----------------

@app.get("/register", response_class=HTMLResponse)
def register_get(request: Request):
    return _render(request, "register.html", {})


@app.post("/register")
def register_post(
    request: Request,
    name: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    phone: str = Form(""),
):
    cart, created = _cart_for(request)
    ok, err, user = auth.register(email, password, name, phone)
    if not ok:
        return _redirect("/register", cart, created, err, "error")

    cart.switch_user(user)
    response = _redirect("/", cart, created, "Conta criada com sucesso!", "success")
    response.set_cookie(SESSION_COOKIE, auth.create_session(user.id), httponly=True, samesite="lax")
    return response


@app.get("/login", response_class=HTMLResponse)
def login_get(request: Request):
    return _render(request, "login.html", {})


@app.post("/login")
def login_post(request: Request, email: str = Form(...), password: str = Form(...)):
    cart, created = _cart_for(request)
    user = auth.authenticate(email, password)
    if user is None:
        return _redirect("/login", cart, created, "Email ou senha inválidos", "error")

    cart.switch_user(user)
    response = _redirect("/", cart, created, f"Bem-vindo, {user.display_name}!", "success")
    response.set_cookie(SESSION_COOKIE, auth.create_session(user.id), httponly=True, samesite="lax")
    return response


@app.post("/logout")
def logout(request: Request):
    cart, created = _cart_for(request)
    auth.end_session(request.cookies.get(SESSION_COOKIE))
    cart.switch_user(None)
    response = _redirect("/", cart, created)
    response.delete_cookie(SESSION_COOKIE)
    return response


@app.get("/orders", response_class=HTMLResponse)
def my_orders(request: Request):
    cart, created = _cart_for(request)
    user = cart.session.current_user
    if user is None:
        return _redirect("/login", cart, created, "Entre para ver seus pedidos", "error")
    orders = list_user_orders(user.id)
    for o in orders:
        o["enquiry_url"] = order_enquiry_url(o["order_id"])
    return _render(request, "orders.html", {"orders": orders}, cart, created)


# ---------------- contact ----------------

@app.get("/contact", response_class=HTMLResponse)
def contact_get(request: Request):
    return _render(request, "contact.html", {})


@app.post("/contact")
def contact_post(
    request: Request,
    name: str = Form(...),
    email: str = Form(""),
    phone: str = Form(""),
    company: str = Form(""),
    message: str = Form(""),
):
    create_lead(name=name.strip(), email=email.strip(), phone=phone.strip(), company=company.strip(),
                message=message.strip(), source="contact")
    return RedirectResponse(url=contact_form_url(name.strip(), message.strip()), status_code=303)


@app.get("/whatsapp")
def whatsapp():
    return RedirectResponse(url=general_contact_url(), status_code=303)


# ---------------- admin ----------------

@app.get("/admin", response_class=HTMLResponse)
def admin(request: Request):
    _require_admin(request)
    return _render(
        request,
        "admin.html",
        {
            "products": list_products(only_active=False),
            "news": list_news(),
            "orders": list_orders(),
            "leads": list_leads(),
        },
    )


@app.post("/admin/products")
def admin_product_add(
    request: Request,
    name: str = Form(...),
    price: str = Form(...),
    category: str = Form(""),
    description: str = Form(""),
    sizes: str = Form(""),
    colors: str = Form(""),
    images: str = Form(""),
    embroidery: str = Form(""),
    printing: str = Form(""),
    sublimation: str = Form(""),
    paint: str = Form(""),
):
    _require_admin(request)
    try:
        add_product(
            name.strip(),
            price.replace(",", ".").strip(),
            category=category.strip(),
            description=description.strip(),
            sizes=_split(sizes),
            colors=_split(colors),
            images=_split(images),
            customization=_extras(embroidery, printing, sublimation, paint),
        )
        msg = "OK"
    except (ValueError, ArithmeticError) as e:
        msg = f"Erro: {e}"
    return RedirectResponse(url=f"/admin?{urlencode({'msg': msg})}", status_code=303)


@app.get("/admin/products/{product_id}/edit", response_class=HTMLResponse)
def admin_product_edit_get(request: Request, product_id: int):
    _require_admin(request)
    product = get_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Produto não encontrado")
    return _render(request, "admin_product_edit.html", {"product": product})


@app.post("/admin/products/{product_id}/edit")
def admin_product_edit(
    request: Request,
    product_id: int,
    name: str = Form(...),
    price: str = Form(...),
    category: str = Form(""),
    description: str = Form(""),
    sizes: str = Form(""),
    colors: str = Form(""),
    images: str = Form(""),
    embroidery: str = Form(""),
    printing: str = Form(""),
    sublimation: str = Form(""),
    paint: str = Form(""),
):
    _require_admin(request)
    ok, err = update_product(
        product_id,
        name,
        price.replace(",", ".").strip(),
        category=category.strip(),
        description=description.strip(),
        sizes=_split(sizes),
        colors=_split(colors),
        images=_split(images),
        customization=_extras(embroidery, printing, sublimation, paint),
    )
    if not ok:
        return RedirectResponse(url=f"/admin/products/{product_id}/edit?{urlencode({'msg': err, 'kind': 'error'})}", status_code=303)
    return RedirectResponse(url=f"/admin?{urlencode({'msg': 'OK'})}", status_code=303)


@app.post("/admin/products/{product_id}/status")
def admin_product_status(request: Request, product_id: int, status: str = Form(...)):
    _require_admin(request)
    ok, err = update_product_status(product_id, status)
    msg = "OK" if ok else err
    return RedirectResponse(url=f"/admin?{urlencode({'msg': msg})}", status_code=303)


@app.post("/admin/products/{product_id}/delete")
def admin_product_delete(request: Request, product_id: int):
    _require_admin(request)
    ok, err = delete_product(product_id)
    msg = "OK" if ok else err
    return RedirectResponse(url=f"/admin?{urlencode({'msg': msg})}", status_code=303)


@app.post("/admin/news")
def admin_news_add(request: Request, title: str = Form(...), body: str = Form(""), image: str = Form("")):
    _require_admin(request)
    try:
        add_news(title, body, image)
        msg = "OK"
    except ValueError as e:
        msg = f"Erro: {e}"
    return RedirectResponse(url=f"/admin?{urlencode({'msg': msg})}", status_code=303)


@app.get("/admin/news/{news_id}/edit", response_class=HTMLResponse)
def admin_news_edit_get(request: Request, news_id: int):
    _require_admin(request)
    item = get_news(news_id)
    if not item:
        raise HTTPException(status_code=404, detail="Notícia não encontrada")
    return _render(request, "admin_news_edit.html", {"item": item})


@app.post("/admin/news/{news_id}/edit")
def admin_news_edit(request: Request, news_id: int, title: str = Form(...), body: str = Form(""), image: str = Form("")):
    _require_admin(request)
    ok, err = update_news(news_id, title, body, image)
    if not ok:
        return RedirectResponse(url=f"/admin/news/{news_id}/edit?{urlencode({'msg': err, 'kind': 'error'})}", status_code=303)
    return RedirectResponse(url=f"/admin?{urlencode({'msg': 'OK'})}", status_code=303)


@app.post("/admin/news/{news_id}/delete")
def admin_news_delete(request: Request, news_id: int):
    _require_admin(request)
    ok, err = delete_news(news_id)
    msg = "OK" if ok else err
    return RedirectResponse(url=f"/admin?{urlencode({'msg': msg})}", status_code=303)


@app.post("/admin/orders/{order_row_id}/status")
def admin_order_status(request: Request, order_row_id: int, status: str = Form(...)):
    _require_admin(request)
    ok, err = set_order_status(order_row_id, status)
    msg = "OK" if ok else err
    return RedirectResponse(url=f"/admin?{urlencode({'msg': msg})}", status_code=303)
