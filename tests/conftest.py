import os
import shutil
import tempfile

import pytest

_TMP = tempfile.mkdtemp(prefix="uniform_store_tests_")
os.environ["DB_PATH"] = os.path.join(_TMP, "store.db")
os.environ["EXPORT_DIR"] = os.path.join(_TMP, "exports")
os.environ["GUEST_CART_DIR"] = os.path.join(_TMP, "guest_carts")
os.environ["RENDER_SCALE"] = "1"
os.environ["ITEMS_PER_PAGE"] = "15"
os.environ["LOGO_PATH"] = os.path.join(_TMP, "missing-logo.png")
os.environ["SIGNATURE_PATH"] = os.path.join(_TMP, "missing-signature.png")

from uniform_store.config import settings  # noqa: E402
from uniform_store.db import sqlite  # noqa: E402
from uniform_store.db.cart_store import CartStore  # noqa: E402
from uniform_store.models import CurrentUser, Session  # noqa: E402
from uniform_store.services.cart import CartAggregator  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    if os.path.exists(settings.db_path):
        os.remove(settings.db_path)
    for d in (settings.export_dir, settings.guest_cart_dir):
        shutil.rmtree(d, ignore_errors=True)
    sqlite.init_db()
    yield


@pytest.fixture
def guest_cart():
    store = CartStore("guest-token-0001")
    return CartAggregator(Session(guest_token="guest-token-0001"), store)


@pytest.fixture
def user():
    user_id = sqlite.create_user("ana@example.com", "Ana Souza", "hash", "salt", phone="79999990000")
    return CurrentUser(id=user_id, email="ana@example.com", display_name="Ana Souza")


@pytest.fixture
def user_cart(user):
    store = CartStore("guest-token-0002")
    cart = CartAggregator(Session(guest_token="guest-token-0002", current_user=user), store)
    cart.load()
    return cart


def make_item(product_id="P1", size="M", color="Azul", customizations=(), price="10.00", name="Camisa Polo"):
    return {
        "product_id": product_id,
        "name": name,
        "unit_price": price,
        "size": size,
        "selected_color": color,
        "customizations": list(customizations),
    }


@pytest.fixture
def item():
    return make_item
