from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

from uniform_store.models import LineItem

HEADER = "header"
CONTINUATION = "continuation"
SUMMARY = "summary"


@dataclass
class PageDescriptor:
    number: int  # 1-based position in the document
    kind: str
    items: List[LineItem] = field(default_factory=list)
    first_item_index: int = 0

    @property
    def has_table(self) -> bool:
        return self.kind in (HEADER, CONTINUATION)


def plan_pages(items: Sequence[LineItem], items_per_page: int) -> List[PageDescriptor]:
    """
    Split the quote into pages.

    Page 1 is the header page and carries the first `items_per_page` lines.
    Remaining lines go to continuation pages of up to `items_per_page` each,
    in cart order and never split. A summary page always closes the document.
    """
    if items_per_page < 1:
        raise ValueError("items_per_page must be >= 1")
    if not items:
        raise ValueError("cannot paginate an empty quote")

    pages = [PageDescriptor(number=1, kind=HEADER, items=list(items[:items_per_page]))]
    for start in range(items_per_page, len(items), items_per_page):
        pages.append(
            PageDescriptor(
                number=len(pages) + 1,
                kind=CONTINUATION,
                items=list(items[start:start + items_per_page]),
                first_item_index=start,
            )
        )
    pages.append(PageDescriptor(number=len(pages) + 1, kind=SUMMARY, first_item_index=len(items)))
    return pages


def page_count(total_items: int, items_per_page: int) -> int:
    if total_items < 1:
        return 0
    continuation = max(0, -(-(total_items - items_per_page) // items_per_page))
    return 1 + continuation + 1
