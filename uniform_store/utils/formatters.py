from datetime import datetime
from decimal import Decimal

from uniform_store.config import settings


def money(v: Decimal | float) -> str:
    return f"{settings.currency} {Decimal(str(v)):.{settings.decimals}f}"


def date_br(d: datetime | str | None) -> str:
    if not d:
        return ""
    if isinstance(d, str):
        d = datetime.strptime(d[:19], "%Y-%m-%d %H:%M:%S")
    return d.strftime("%d/%m/%Y")
