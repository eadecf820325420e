"""Shipment receipt — PDF rendering with the reportlab canvas."""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from reportlab.lib.colors import HexColor, white
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from order_bridge.config import settings
from order_bridge.services.i18n import format_money, format_quantity, translate
from order_bridge.services.reconciliation import ReceiptLine

logger = logging.getLogger(__name__)

# ─── Palette ───
BRAND = HexColor("#1565C0")
BRAND_LIGHT = HexColor("#E3F2FD")
ROW_ALT = HexColor("#F8FAFB")
GREY = HexColor("#666666")
TEXT = HexColor("#212121")

W, H = A4
MARGIN = 15 * mm
CONTENT_W = W - 2 * MARGIN
ROW_H = 7 * mm
FOOTER_H = 15 * mm

_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|]')


@dataclass
class ReceiptData:
    """Everything printed on one shipment receipt."""

    shipment_name: str
    lines: list[ReceiptLine]
    total: Decimal
    currency: str | None = None
    lang: str = "uz"
    moment: datetime | None = None
    status: str | None = None
    client_name: str | None = None
    client_phone: str | None = None
    delivery_address: str | None = None
    balance_before: Decimal | None = None
    balance_after: Decimal | None = None
    left_to_pay: Decimal | None = None
    shop_name: str = field(default_factory=lambda: settings.shop_name)
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def receipt_filename(name: str, moment: datetime | None = None) -> str:
    """``"00012"`` → ``"00012_2024-05-01_14-30.pdf"``."""
    safe = _UNSAFE_FILENAME.sub("_", name or "receipt")
    stamp = (moment or datetime.now(UTC)).strftime("%Y-%m-%d_%H-%M")
    return f"{safe}_{stamp}.pdf"


def _fonts() -> tuple[str, str]:
    """Register the configured TTF fonts once; Helvetica has no Cyrillic glyphs."""
    if not settings.receipt_font_path:
        return "Helvetica", "Helvetica-Bold"
    registered = pdfmetrics.getRegisteredFontNames()
    if "Receipt" not in registered:
        pdfmetrics.registerFont(TTFont("Receipt", settings.receipt_font_path))
    bold_path = settings.receipt_bold_font_path or settings.receipt_font_path
    if "Receipt-Bold" not in registered:
        pdfmetrics.registerFont(TTFont("Receipt-Bold", bold_path))
    return "Receipt", "Receipt-Bold"


class _ReceiptCanvas:
    def __init__(self, data: ReceiptData, buffer: io.BytesIO) -> None:
        self.data = data
        self.font, self.bold = _fonts()
        self.c = canvas.Canvas(buffer, pagesize=A4)
        self.c.setTitle(data.shipment_name)
        self.c.setAuthor(data.shop_name)
        self.page = 1
        self.y = H - MARGIN

    def t(self, key: str) -> str:
        return translate(self.data.lang, key)

    def money(self, amount: Decimal | None) -> str:
        if amount is None:
            return "—"
        return format_money(amount, self.data.currency, self.data.lang)

    # ─── Primitives ───

    def text(self, x, y, value, *, size=9, bold=False, color=TEXT, align="left"):
        self.c.setFillColor(color)
        self.c.setFont(self.bold if bold else self.font, size)
        if align == "right":
            self.c.drawRightString(x, y, value)
        elif align == "center":
            self.c.drawCentredString(x, y, value)
        else:
            self.c.drawString(x, y, value)

    def fit(self, value: str, width: float, size: float) -> str:
        if pdfmetrics.stringWidth(value, self.font, size) <= width:
            return value
        while value and pdfmetrics.stringWidth(value + "...", self.font, size) > width:
            value = value[:-1]
        return value + "..."

    def rect(self, x, y, w, h, fill):
        self.c.setFillColor(fill)
        self.c.rect(x, y, w, h, fill=1, stroke=0)

    def footer(self) -> None:
        generated = self.data.generated_at.strftime("%d.%m.%Y %H:%M")
        self.c.setStrokeColor(BRAND_LIGHT)
        self.c.line(MARGIN, FOOTER_H, W - MARGIN, FOOTER_H)
        self.text(MARGIN, FOOTER_H - 5 * mm, f"{self.t('receipt_generated')}: {generated}", size=7, color=GREY)
        self.text(W - MARGIN, FOOTER_H - 5 * mm, str(self.page), size=7, color=GREY, align="right")

    def ensure_space(self, needed: float) -> bool:
        """Start a new page when *needed* does not fit; True if a page was added."""
        if self.y - needed >= FOOTER_H + 5 * mm:
            return False
        self.footer()
        self.c.showPage()
        self.page += 1
        self.y = H - MARGIN
        return True

    # ─── Sections ───

    def header(self) -> None:
        band_h = 22 * mm
        self.rect(0, H - band_h, W, band_h, BRAND)
        self.text(MARGIN, H - 10 * mm, self.data.shop_name, size=16, bold=True, color=white)
        self.text(W - MARGIN, H - 9 * mm, self.t("receipt_doc_type"), size=12, bold=True, color=white, align="right")
        self.text(W - MARGIN, H - 16 * mm, f"№ {self.data.shipment_name}", size=10, color=white, align="right")
        self.y = H - band_h - 8 * mm

        if self.data.moment is not None:
            self.text(MARGIN, self.y, self.data.moment.strftime("%d.%m.%Y %H:%M"), size=9, color=GREY)
        if self.data.status:
            label = f"{self.t('label_status')}: {self.data.status}"
            self.text(W - MARGIN, self.y, label, size=9, color=GREY, align="right")
        self.y -= 6 * mm

    def client_box(self) -> None:
        box_h = 16 * mm
        self.rect(MARGIN, self.y - box_h, CONTENT_W, box_h, BRAND_LIGHT)
        self.text(MARGIN + 4 * mm, self.y - 5 * mm, self.t("receipt_client"), size=8, bold=True, color=BRAND)
        name = self.data.client_name or "—"
        self.text(MARGIN + 4 * mm, self.y - 10 * mm, f"{self.t('receipt_name')}: {name}", size=9)
        if self.data.client_phone:
            phone = f"{self.t('label_phone')}: {self.data.client_phone}"
            self.text(MARGIN + 4 * mm, self.y - 14 * mm, phone, size=9)
        self.y -= box_h + 6 * mm

    def columns(self, with_remaining: bool) -> list[tuple[str, float, str]]:
        if with_remaining:
            layout = [
                ("№", 0.06, "center"),
                (self.t("receipt_col_name"), 0.32, "left"),
                (self.t("receipt_col_qty"), 0.10, "right"),
                (self.t("receipt_col_price"), 0.14, "right"),
                (self.t("receipt_col_total"), 0.14, "right"),
                (self.t("receipt_col_remaining_qty"), 0.10, "right"),
                (self.t("receipt_col_remaining_sum"), 0.14, "right"),
            ]
        else:
            layout = [
                ("№", 0.06, "center"),
                (self.t("receipt_col_name"), 0.46, "left"),
                (self.t("receipt_col_qty"), 0.12, "right"),
                (self.t("receipt_col_price"), 0.18, "right"),
                (self.t("receipt_col_total"), 0.18, "right"),
            ]
        return [(title, share * CONTENT_W, align) for title, share, align in layout]

    def row(self, values: list[str], columns, *, fill=None, bold=False, color=TEXT) -> None:
        if fill is not None:
            self.rect(MARGIN, self.y - ROW_H + 2 * mm, CONTENT_W, ROW_H, fill)
        x = MARGIN
        for value, (_, width, align) in zip(values, columns):
            pad = 1.5 * mm
            value = self.fit(value, width - 2 * pad, 8)
            if align == "right":
                self.text(x + width - pad, self.y, value, size=8, bold=bold, color=color, align="right")
            elif align == "center":
                self.text(x + width / 2, self.y, value, size=8, bold=bold, color=color, align="center")
            else:
                self.text(x + pad, self.y, value, size=8, bold=bold, color=color)
            x += width
        self.y -= ROW_H

    def items_table(self) -> None:
        with_remaining = any(line.remaining_quantity for line in self.data.lines)
        columns = self.columns(with_remaining)
        titles = [title for title, _, _ in columns]
        self.row(titles, columns, fill=BRAND, bold=True, color=white)

        for number, line in enumerate(self.data.lines, start=1):
            if self.ensure_space(ROW_H * 2):
                self.row(titles, columns, fill=BRAND, bold=True, color=white)
            values = [
                str(number),
                line.name,
                format_quantity(line.quantity),
                self.money(line.price),
                self.money(line.total),
            ]
            if with_remaining:
                remaining_qty = (
                    format_quantity(line.remaining_quantity)
                    if line.remaining_quantity is not None
                    else "—"
                )
                values += [remaining_qty, self.money(line.remaining_sum)]
            self.row(values, columns, fill=ROW_ALT if number % 2 == 0 else None)

        self.ensure_space(ROW_H)
        self.rect(MARGIN, self.y - ROW_H + 2 * mm, CONTENT_W, ROW_H, BRAND_LIGHT)
        self.text(MARGIN + 1.5 * mm, self.y, self.t("label_total"), size=9, bold=True)
        self.text(W - MARGIN - 1.5 * mm, self.y, self.money(self.data.total), size=9, bold=True, align="right")
        self.y -= ROW_H + 6 * mm

    def summary_box(self) -> None:
        entries = []
        if self.data.delivery_address:
            entries.append((self.t("label_delivery_address"), self.data.delivery_address))
        if self.data.balance_before is not None:
            entries.append((self.t("receipt_balance_before"), self.money(self.data.balance_before)))
        entries.append((self.t("receipt_shipment_amount"), self.money(self.data.total)))
        if self.data.left_to_pay is not None:
            entries.append((self.t("receipt_left_to_pay"), self.money(self.data.left_to_pay)))
        if self.data.balance_after is not None:
            entries.append((self.t("receipt_balance_after"), self.money(self.data.balance_after)))

        box_h = (len(entries) * 6 + 4) * mm
        self.ensure_space(box_h)
        self.c.setStrokeColor(BRAND)
        self.c.rect(MARGIN, self.y - box_h, CONTENT_W, box_h, fill=0, stroke=1)
        y = self.y - 6 * mm
        for label, value in entries:
            self.text(MARGIN + 4 * mm, y, label, size=9, color=GREY)
            value = self.fit(value, CONTENT_W / 2, 9)
            self.text(W - MARGIN - 4 * mm, y, value, size=9, bold=True, align="right")
            y -= 6 * mm
        self.y -= box_h

    def render(self) -> None:
        self.header()
        self.client_box()
        self.items_table()
        self.summary_box()
        self.footer()
        self.c.save()


def render_receipt(data: ReceiptData) -> bytes:
    """Render *data* as an A4 PDF and return the file's bytes."""
    buffer = io.BytesIO()
    _ReceiptCanvas(data, buffer).render()
    logger.info("Rendered receipt %s (%d lines)", data.shipment_name, len(data.lines))
    return buffer.getvalue()
