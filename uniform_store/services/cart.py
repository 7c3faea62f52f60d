from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, List, Mapping, Optional

from uniform_store.db.cart_store import CartStore
from uniform_store.errors import CartPersistenceError, CartValidationError
from uniform_store.models import CurrentUser, IdentityKey, LineItem, Session, identity_key
from uniform_store.services.notify import Notifier

log = logging.getLogger(__name__)


def _require_quantity(v: Any, name: str = "quantity") -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise CartValidationError(f"{name} must be an integer")
    return v


class CartAggregator:
    """
    Ordered cart lines for one session.

    Every mutation commits to memory first and then persists; a storage
    failure keeps the in-memory state, is logged and surfaced through
    `last_persist_error` and the notifier.
    """

    def __init__(
        self,
        session: Session,
        store: CartStore,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.session = session
        self.store = store
        self.notifier = notifier or Notifier()
        self._items: List[LineItem] = []
        self.last_persist_error: Optional[CartPersistenceError] = None

    # ---------------- state ----------------

    @property
    def items(self) -> List[LineItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def find(self, key: IdentityKey) -> Optional[LineItem]:
        for it in self._items:
            if identity_key(it) == key:
                return it
        return None

    def load(self) -> List[LineItem]:
        try:
            self._items = self.store.load(self.session.user_id)
            self.last_persist_error = None
        except CartPersistenceError as e:
            log.warning("cart load failed (user=%s): %s", self.session.user_id, e)
            self.last_persist_error = e
            self.notifier.warning("Não foi possível carregar o carrinho salvo")
        return self.items

    def _persist(self) -> None:
        try:
            self.store.save(self.session.user_id, self._items)
            self.last_persist_error = None
        except CartPersistenceError as e:
            log.warning("cart save failed (user=%s): %s", self.session.user_id, e)
            self.last_persist_error = e
            self.notifier.warning("Não foi possível salvar o carrinho; as alterações ficam só nesta sessão")

    # ---------------- mutations ----------------

    def add_item(self, candidate: LineItem | Mapping[str, Any], quantity_to_add: int = 1) -> List[LineItem]:
        qty = _require_quantity(quantity_to_add, "quantity_to_add")
        if qty < 1:
            raise CartValidationError("quantity_to_add must be >= 1")

        if isinstance(candidate, LineItem):
            if not candidate.product_id:
                raise CartValidationError("product_id is required")
            line = LineItem.from_input(candidate.to_dict(), quantity=qty)
        else:
            line = LineItem.from_input(candidate, quantity=qty)

        existing = self.find(identity_key(line))
        if existing is not None:
            existing.quantity += qty
        else:
            self._items.append(line)

        self._persist()
        return self.items

    def update_quantity(self, key: IdentityKey, new_quantity: int) -> List[LineItem]:
        qty = _require_quantity(new_quantity, "new_quantity")
        if qty <= 0:
            return self.remove_item(key)

        existing = self.find(key)
        if existing is None:
            return self.items
        existing.quantity = qty
        self._persist()
        return self.items

    def remove_item(self, key: IdentityKey) -> List[LineItem]:
        for i, it in enumerate(self._items):
            if identity_key(it) == key:
                del self._items[i]
                self._persist()
                break
        return self.items

    def clear(self) -> List[LineItem]:
        self._items = []
        self._persist()
        return self.items

    # ---------------- totals ----------------

    def total_price(self) -> Decimal:
        return sum((it.unit_price * it.quantity for it in self._items), Decimal("0"))

    def total_item_count(self) -> int:
        return sum(it.quantity for it in self._items)

    # ---------------- session changes ----------------

    def switch_user(self, user: Optional[CurrentUser]) -> List[LineItem]:
        """
        Login: the guest lines are merged into the account cart by identity key
        (quantities summed), the result is saved remotely and the guest cart is
        emptied. Logout: the account cart stays with the account and the
        browser falls back to its (empty) guest cart.
        """
        guest_items = self.items if self.session.current_user is None else []
        self.session.current_user = user
        self.load()

        if user is not None and guest_items:
            for it in guest_items:
                existing = self.find(identity_key(it))
                if existing is not None:
                    existing.quantity += it.quantity
                else:
                    self._items.append(it)
            self._persist()
            try:
                self.store.save(None, [])
            except CartPersistenceError as e:
                log.warning("guest cart cleanup failed: %s", e)
        return self.items
