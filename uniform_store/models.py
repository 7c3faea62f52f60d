from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Mapping, NamedTuple, Optional, Tuple

from uniform_store.errors import CartValidationError


class IdentityKey(NamedTuple):
    product_id: str
    size: str
    selected_color: str
    customizations: str


def _str(v: Any) -> str:
    if v is None:
        return ""
    return str(v).strip()


def _price(v: Any) -> Decimal:
    if v is None or v == "":
        return Decimal("0")
    try:
        price = Decimal(str(v))
    except InvalidOperation:
        raise CartValidationError(f"invalid price: {v!r}")
    if price < 0:
        raise CartValidationError("price must be >= 0")
    return price


def normalize_customizations(labels: Any) -> Tuple[str, ...]:
    if not labels:
        return ()
    if isinstance(labels, str):
        labels = labels.split(",")
    return tuple(sorted({_str(x) for x in labels if _str(x)}))


@dataclass
class LineItem:
    product_id: str
    name: str = ""
    unit_price: Decimal = Decimal("0")
    quantity: int = 1
    size: str = ""
    selected_color: str = ""
    customizations: Tuple[str, ...] = ()
    images: List[str] = field(default_factory=list)
    description: str = ""

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def image(self) -> str:
        return self.images[0] if self.images else ""

    @classmethod
    def from_input(cls, data: Mapping[str, Any], quantity: int = 1) -> "LineItem":
        """
        Single normalizing boundary for anything that becomes a cart line:
        product page candidates, stored carts and form posts.
        """
        product_id = _str(data.get("product_id", data.get("id")))
        if not product_id:
            raise CartValidationError("product_id is required")

        images = data.get("images") or []
        if isinstance(images, str):
            images = [images]
        images = [str(x) for x in images if x]
        # older records only carry a single "image"
        if not images and data.get("image"):
            images = [str(data["image"])]

        return cls(
            product_id=product_id,
            name=_str(data.get("name")),
            unit_price=_price(data.get("unit_price", data.get("price"))),
            quantity=quantity,
            size=_str(data.get("size")),
            selected_color=_str(data.get("selected_color", data.get("color"))),
            customizations=normalize_customizations(data.get("customizations")),
            images=images,
            description=_str(data.get("description")),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LineItem":
        qty = int(data.get("quantity") or 0)
        if qty < 1:
            raise CartValidationError("stored line has quantity < 1")
        return cls.from_input(data, quantity=qty)

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "size": self.size,
            "selected_color": self.selected_color,
            "customizations": list(self.customizations),
            "images": list(self.images),
            "description": self.description,
        }


def identity_key(item: LineItem | Mapping[str, Any]) -> IdentityKey:
    if isinstance(item, LineItem):
        return IdentityKey(
            item.product_id,
            item.size,
            item.selected_color,
            ",".join(normalize_customizations(item.customizations)),
        )
    return IdentityKey(
        _str(item.get("product_id", item.get("id"))),
        _str(item.get("size")),
        _str(item.get("selected_color", item.get("color"))),
        ",".join(normalize_customizations(item.get("customizations"))),
    )


@dataclass(frozen=True)
class CurrentUser:
    id: int
    email: str
    display_name: str
    is_admin: bool = False


@dataclass
class Session:
    guest_token: str
    current_user: Optional[CurrentUser] = None

    @property
    def user_id(self) -> Optional[int]:
        return self.current_user.id if self.current_user else None


@dataclass
class CustomerData:
    name: str = ""
    email: str = ""
    phone: str = ""
    company: str = ""
    address: str = ""

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "CustomerData":
        data = data or {}
        return cls(
            name=_str(data.get("name")),
            email=_str(data.get("email")),
            phone=_str(data.get("phone")),
            company=_str(data.get("company")),
            address=_str(data.get("address")),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
            "address": self.address,
        }


@dataclass
class QuoteDocument:
    order_id: str
    created_at: datetime
    items: List[LineItem]
    total: Decimal
    customer: CustomerData

    @property
    def item_count(self) -> int:
        return sum(it.quantity for it in self.items)
