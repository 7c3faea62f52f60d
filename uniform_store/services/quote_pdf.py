"""
Quote PDF output.

Each page descriptor is rasterized with Pillow into a fixed content box
(A4 minus a uniform margin, at 96 DPI times RENDER_SCALE), then the images
are placed one per A4 page with reportlab, each filling the box inside the
margin. Nothing is written unless every page rendered.
"""
from __future__ import annotations

import io
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from typing import List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from uniform_store.config import settings
from uniform_store.constants import COMMERCIAL_TERMS, CUSTOMIZATIONS, QUOTE_TABLE_COLUMNS
from uniform_store.errors import QuoteRenderError
from uniform_store.models import LineItem, QuoteDocument
from uniform_store.services.paginator import CONTINUATION, HEADER, SUMMARY, PageDescriptor, plan_pages
from uniform_store.utils.formatters import date_br, money

log = logging.getLogger(__name__)

PAGE_WIDTH_MM = 210.0
PAGE_HEIGHT_MM = 297.0
PX_PER_MM = 3.779527559  # 96 DPI

GREY = (102, 102, 102)
LIGHT = (248, 249, 250)
BORDER = (221, 221, 221)
BLACK = (0, 0, 0)
WHITE = (255, 255, 255)

# relative widths of QUOTE_TABLE_COLUMNS
_COLUMN_WIDTHS = (0.40, 0.11, 0.13, 0.08, 0.14, 0.14)
_COLUMN_ALIGN = ("left", "center", "center", "center", "right", "right")

# item rows are tighter than body text; fonts shrink in 5% steps down to 60%
# when a full page of rows would reach the footer
_TABLE_SPACING = 1.2
_TABLE_PAD_MM = 1.5
_SHRINK_STEPS = 8


def content_size_mm(margin_mm: Optional[float] = None) -> Tuple[float, float]:
    m = settings.page_margin_mm if margin_mm is None else margin_mm
    return PAGE_WIDTH_MM - 2 * m, PAGE_HEIGHT_MM - 2 * m


def content_size_px(margin_mm: Optional[float] = None, scale: Optional[int] = None) -> Tuple[int, int]:
    w_mm, h_mm = content_size_mm(margin_mm)
    k = PX_PER_MM * (scale or settings.render_scale)
    return round(w_mm * k), round(h_mm * k)


@lru_cache(maxsize=32)
def _font(size: int, bold: bool = False) -> ImageFont.ImageFont:
    names = (
        ("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", "arialbd.ttf")
        if bold
        else ("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf", "arial.ttf")
    )
    for name in names:
        try:
            return ImageFont.truetype(name, size)
        except (OSError, IOError):
            continue
    return ImageFont.load_default()


class _PageCanvas:
    """Pillow drawing surface with a top-down cursor measured in content pixels."""

    def __init__(self, scale: int) -> None:
        self.scale = scale
        self.k = PX_PER_MM * scale
        self.width, self.height = content_size_px(scale=scale)
        self.image = Image.new("RGB", (self.width, self.height), color=WHITE)
        self.draw = ImageDraw.Draw(self.image)
        self.y = 0.0

    def mm(self, v: float) -> int:
        return round(v * self.k)

    def font(self, css_px: float, bold: bool = False) -> ImageFont.ImageFont:
        return _font(max(1, round(css_px * self.scale)), bold)

    def line_height(self, css_px: float, spacing: float = 1.4) -> int:
        return round(css_px * self.scale * spacing)

    def fit(self, text: str, font: ImageFont.ImageFont, width: int) -> str:
        if self.draw.textlength(text, font=font) <= width:
            return text
        while text and self.draw.textlength(text + "...", font=font) > width:
            text = text[:-1]
        return text + "..."

    def text(
        self,
        text: str,
        css_px: float = 12,
        bold: bool = False,
        align: str = "left",
        fill: Tuple[int, int, int] = BLACK,
        x0: int = 0,
        x1: Optional[int] = None,
        spacing: float = 1.4,
    ) -> None:
        x1 = self.width if x1 is None else x1
        font = self.font(css_px, bold)
        text = self.fit(text, font, x1 - x0)
        w = self.draw.textlength(text, font=font)
        if align == "center":
            x = x0 + (x1 - x0 - w) / 2
        elif align == "right":
            x = x1 - w
        else:
            x = x0
        self.draw.text((x, self.y), text, font=font, fill=fill)
        self.y += self.line_height(css_px, spacing)

    def rule(self, thickness_css: int = 1, x0: int = 0, x1: Optional[int] = None) -> None:
        x1 = self.width if x1 is None else x1
        t = max(1, thickness_css * self.scale)
        self.draw.rectangle([x0, self.y, x1, self.y + t - 1], fill=BLACK)
        self.y += t

    def gap(self, v_mm: float) -> None:
        self.y += self.mm(v_mm)

    def picture(self, path: str, width_mm: float) -> bool:
        if not path or not os.path.exists(path):
            return False
        with Image.open(path) as src:
            src = src.convert("RGBA")
            w = self.mm(width_mm)
            h = round(src.height * w / src.width)
            src = src.resize((w, h))
            self.image.paste(src, ((self.width - w) // 2, round(self.y)), src)
        self.y += h
        return True


# ---------------- page sections ----------------

def _seller_block(pc: _PageCanvas) -> None:
    if not pc.picture(settings.logo_path, 50):
        pc.text(settings.seller_name, css_px=18, bold=True, align="center")
    pc.gap(2)
    pc.text(settings.seller_tagline, css_px=10, align="center", fill=GREY)
    pc.text(f"CNPJ: {settings.seller_cnpj}", css_px=9, align="center", fill=GREY)
    pc.text(f"WhatsApp: {settings.whatsapp_display}", css_px=9, align="center", fill=GREY)
    pc.text(f"Site: {settings.seller_site}", css_px=9, align="center", fill=GREY)
    pc.gap(6)
    pc.rule()
    pc.gap(8)


def _quote_meta(pc: _PageCanvas, doc: QuoteDocument) -> None:
    pc.text("ORÇAMENTO", css_px=14, bold=True)
    pc.gap(2)

    rows = [
        ("Data", date_br(doc.created_at)),
        ("Número do Orçamento", doc.order_id),
        ("Cliente", doc.customer.name),
        ("Email", doc.customer.email),
        ("Telefone", doc.customer.phone),
    ]
    if doc.customer.company:
        rows.append(("Empresa", doc.customer.company))
    if doc.customer.address:
        rows.append(("Endereço", doc.customer.address))

    pad = pc.mm(4)
    top = pc.y
    box_h = 2 * pad + len(rows) * pc.line_height(10)
    pc.draw.rectangle([0, top, pc.width, top + box_h], fill=LIGHT)
    pc.y = top + pad
    for label, value in rows:
        label_font = pc.font(10, bold=True)
        lw = pc.draw.textlength(f"{label}: ", font=label_font)
        pc.draw.text((pad, pc.y), f"{label}: ", font=label_font, fill=BLACK)
        pc.draw.text(
            (pad + lw, pc.y),
            pc.fit(value, pc.font(10), pc.width - 2 * pad - round(lw)),
            font=pc.font(10),
            fill=BLACK,
        )
        pc.y += pc.line_height(10)
    pc.y = top + box_h
    pc.gap(8)


def _columns(pc: _PageCanvas) -> List[Tuple[int, int]]:
    out = []
    x = 0
    for i, frac in enumerate(_COLUMN_WIDTHS):
        w = round(pc.width * frac) if i < len(_COLUMN_WIDTHS) - 1 else pc.width - x
        out.append((x, x + w))
        x += w
    return out


def _cell_lines(item: LineItem) -> List[Tuple[str, int, bool, Tuple[int, int, int]]]:
    lines = [(item.name, 9, True, BLACK)]
    if item.description:
        lines.append((item.description, 8, False, GREY))
    if item.customizations:
        labels = ", ".join(CUSTOMIZATIONS.get(c, c) for c in item.customizations)
        lines.append((f"Personalizações: {labels}", 8, False, GREY))
    return lines


def _footer_height(pc: _PageCanvas) -> int:
    return pc.line_height(8)


def _row_height(pc: _PageCanvas, lines, pad: int, shrink: float) -> int:
    return 2 * pad + sum(pc.line_height(px * shrink, _TABLE_SPACING) for _, px, _, _ in lines)


def _table_shrink(pc: _PageCanvas, items: Sequence[LineItem], top: float) -> float:
    """Largest font factor at which every row of the page ends above the footer."""
    limit = pc.height - _footer_height(pc)
    for step in range(_SHRINK_STEPS + 1):
        shrink = 1.0 - step * 0.05
        pad = pc.mm(_TABLE_PAD_MM * shrink)
        needed = _row_height(pc, [("", 9, True, BLACK)], pad, shrink)
        needed += sum(_row_height(pc, _cell_lines(it), pad, shrink) for it in items)
        if top + needed <= limit:
            return shrink
    raise ValueError(f"{len(items)} rows do not fit on one page, lower ITEMS_PER_PAGE")


def _item_table(pc: _PageCanvas, items: Sequence[LineItem], continued: bool) -> None:
    title = "ITENS SELECIONADOS (continuação)" if continued else "ITENS SELECIONADOS"
    pc.text(title, css_px=12, bold=True)
    pc.gap(2)

    cols = _columns(pc)
    k = _table_shrink(pc, items, pc.y)
    pad = pc.mm(_TABLE_PAD_MM * k)

    # header row
    row_h = _row_height(pc, [("", 9, True, BLACK)], pad, k)
    top = pc.y
    for (x0, x1), label, align in zip(cols, QUOTE_TABLE_COLUMNS, _COLUMN_ALIGN):
        pc.draw.rectangle([x0, top, x1, top + row_h], fill=LIGHT, outline=BORDER, width=pc.scale)
        pc.y = top + pad
        pc.text(label, css_px=9 * k, bold=True, align=align, x0=x0 + pad, x1=x1 - pad, spacing=_TABLE_SPACING)
    pc.y = top + row_h

    for it in items:
        lines = _cell_lines(it)
        row_h = _row_height(pc, lines, pad, k)
        top = pc.y
        for x0, x1 in cols:
            pc.draw.rectangle([x0, top, x1, top + row_h], outline=BORDER, width=pc.scale)

        (nx0, nx1) = cols[0]
        pc.y = top + pad
        for text, px, bold, fill in lines:
            pc.text(text, css_px=px * k, bold=bold, fill=fill, x0=nx0 + pad, x1=nx1 - pad, spacing=_TABLE_SPACING)

        cells = (
            it.size or "-",
            it.selected_color or "-",
            str(it.quantity),
            money(it.unit_price),
            money(it.line_total),
        )
        for (x0, x1), value, align, bold in zip(cols[1:], cells, _COLUMN_ALIGN[1:], (False, False, False, False, True)):
            pc.y = top + pad
            pc.text(value, css_px=9 * k, bold=bold, align=align, x0=x0 + pad, x1=x1 - pad, spacing=_TABLE_SPACING)

        pc.y = top + row_h


def _summary(pc: _PageCanvas, doc: QuoteDocument) -> None:
    pc.rule(thickness_css=2, x0=pc.width // 2)
    pc.gap(3)
    pc.text(f"Total: {money(doc.total)}", css_px=14, bold=True, align="right")
    pc.gap(10)

    terms = list(COMMERCIAL_TERMS) + [f"Dúvidas: {settings.whatsapp_display} - {settings.seller_contact}"]
    pad = pc.mm(4)
    top = pc.y
    box_h = 2 * pad + pc.line_height(10) + pc.mm(3) + len(terms) * pc.line_height(9)
    pc.draw.rectangle([0, top, pc.width, top + box_h], fill=LIGHT)
    pc.y = top + pad
    pc.text("CONDIÇÕES COMERCIAIS", css_px=10, bold=True, x0=pad)
    pc.gap(3)
    for term in terms:
        pc.text(f"-  {term}", css_px=9, x0=pad + pc.mm(5))
    pc.y = top + box_h
    pc.gap(12)

    pc.text("Para confirmar este orçamento, entre em contato conosco:", css_px=9, align="center", fill=GREY)
    pc.text(f"WhatsApp: {settings.whatsapp_display}", css_px=9, bold=True, align="center", fill=GREY)
    pc.text(f"Email: {settings.seller_email}", css_px=9, align="center", fill=GREY)
    pc.gap(15)

    if not pc.picture(settings.signature_path, 35):
        pc.gap(10)
        pc.rule(x0=pc.width // 3, x1=2 * pc.width // 3)
    pc.gap(3)
    pc.text(settings.seller_name, css_px=10, bold=True, align="center")
    pc.text("Responsável Técnico", css_px=8, align="center", fill=GREY)


def _footer(pc: _PageCanvas, page: PageDescriptor, total_pages: int) -> None:
    pc.y = pc.height - _footer_height(pc)
    pc.text(f"{page.number} / {total_pages}", css_px=8, align="right", fill=GREY)


# ---------------- rendering ----------------

def render_page(
    page: PageDescriptor,
    doc: QuoteDocument,
    total_pages: int,
    scale: Optional[int] = None,
) -> Image.Image:
    try:
        pc = _PageCanvas(scale or settings.render_scale)
        if page.kind == HEADER:
            _seller_block(pc)
            _quote_meta(pc, doc)
            _item_table(pc, page.items, continued=False)
        elif page.kind == CONTINUATION:
            _item_table(pc, page.items, continued=True)
        elif page.kind == SUMMARY:
            _summary(pc, doc)
        else:
            raise ValueError(f"unknown page kind: {page.kind}")
        _footer(pc, page, total_pages)
        return pc.image
    except Exception as e:
        raise QuoteRenderError(f"page {page.number} failed to render: {e}", page.number) from e


def render_pages(
    pages: Sequence[PageDescriptor],
    doc: QuoteDocument,
    workers: Optional[int] = None,
    scale: Optional[int] = None,
) -> List[Image.Image]:
    workers = workers or settings.render_workers
    total = len(pages)
    if workers <= 1 or total <= 1:
        return [render_page(p, doc, total, scale) for p in pages]

    # map() yields in submission order, so the result is ordered by page index
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(lambda p: render_page(p, doc, total, scale), pages))


def assemble_pdf(images: Sequence[Image.Image], margin_mm: Optional[float] = None) -> bytes:
    if not images:
        raise QuoteRenderError("no pages to assemble")
    m = settings.page_margin_mm if margin_mm is None else margin_mm
    w_mm, h_mm = content_size_mm(m)

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    try:
        for img in images:
            c.drawImage(ImageReader(img), m * mm, m * mm, width=w_mm * mm, height=h_mm * mm)
            c.showPage()
        c.save()
    except Exception as e:
        raise QuoteRenderError(f"pdf assembly failed: {e}") from e
    return buf.getvalue()


def quote_filename(doc: QuoteDocument) -> str:
    return f"orcamento_{doc.order_id}.pdf"


def write_quote_pdf(
    doc: QuoteDocument,
    path: Optional[str] = None,
    items_per_page: Optional[int] = None,
) -> Tuple[str, int]:
    """Renders the whole quote and writes it; returns (path, page count)."""
    pages = plan_pages(doc.items, items_per_page or settings.items_per_page)
    images = render_pages(pages, doc)
    data = assemble_pdf(images)

    tmp = None
    try:
        if path is None:
            os.makedirs(settings.export_dir, exist_ok=True)
            path = os.path.join(settings.export_dir, quote_filename(doc))
        tmp = path + ".part"
        with open(tmp, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except OSError as e:
        if tmp and os.path.exists(tmp):
            os.remove(tmp)
        raise QuoteRenderError(f"could not write {path}: {e}") from e

    log.info("quote %s written: %s (%d pages)", doc.order_id, path, len(pages))
    return path, len(pages)
