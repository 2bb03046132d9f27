"""
Invoice PDF rendering
Draws A4 pages with Pillow and saves them as one PDF. Coordinates are
given in PDF points (72 per inch) and scaled onto a 144 dpi canvas.
Long item lists continue on extra pages; the footer repeats on each one.

The pages are raster images embedded in the PDF, so the text cannot be
selected or searched and files are larger than a vector PDF of the same
invoice (roughly 100-300 KB per page).
"""
import logging
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple

import requests
from PIL import Image, ImageDraw, ImageFont

from ..utils import formatting
from ..utils.dto import pre_order_fields


SCALE = 2
PAGE_WIDTH, PAGE_HEIGHT = 595, 842
MARGIN = 40
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN
# lowest y a body row may reach; the footer sits below
BODY_BOTTOM = PAGE_HEIGHT - MARGIN - 45

ORANGE = "#FF7A19"
INK = "#1A1A1A"
MUTED = "#666666"
PANEL = "#F8F9FA"
STRIPE = "#FAFAFA"
BORDER = "#E5E7EB"

STATUS_COLORS = {
    "completed": "#10B981",
    "delivered": "#10B981",
    "pending": "#F59E0B",
    "processing": "#F59E0B",
    "cancelled": "#EF4444",
}
PAYMENT_COLORS = {
    "paid": "#10B981",
    "completed": "#10B981",
    "pending": "#F59E0B",
    "failed": "#EF4444",
}
DEFAULT_COLOR = "#6B7280"


def _font(size: float, bold: bool = False):
    px = int(round(size * SCALE))
    try:
        return ImageFont.truetype("DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf", px)
    except OSError:
        return ImageFont.load_default(size=px)


class _Page:
    """Thin wrapper over ImageDraw that speaks PDF points."""

    def __init__(self) -> None:
        self.image = Image.new("RGB", (PAGE_WIDTH * SCALE, PAGE_HEIGHT * SCALE), "white")
        self.draw = ImageDraw.Draw(self.image)

    def text(self, x: float, y: float, value: str, *, size: float = 9, color: str = INK, bold: bool = False,
             width: Optional[float] = None, align: str = "left") -> None:
        font = _font(size, bold)
        value = str(value)
        if width is not None:
            value = self._fit(value, font, width)
            span = self.draw.textlength(value, font=font) / SCALE
            if align == "right":
                x = x + width - span
            elif align == "center":
                x = x + (width - span) / 2
        self.draw.text((x * SCALE, y * SCALE), value, fill=color, font=font)

    def lines(self, x: float, y: float, value: str, *, size: float = 9, color: str = INK, gap: float = 2) -> float:
        for line in str(value).splitlines() or [""]:
            self.text(x, y, line, size=size, color=color)
            y += size + gap
        return y

    def box(self, x: float, y: float, w: float, h: float, *, fill: Optional[str] = None,
            outline: Optional[str] = None, radius: float = 0) -> None:
        self.draw.rounded_rectangle(
            [x * SCALE, y * SCALE, (x + w) * SCALE, (y + h) * SCALE],
            radius=radius * SCALE,
            fill=fill,
            outline=outline,
            width=SCALE if outline else 0,
        )

    def rule(self, x1: float, y: float, x2: float, *, color: str = BORDER, width: float = 1) -> None:
        self.draw.line([(x1 * SCALE, y * SCALE), (x2 * SCALE, y * SCALE)], fill=color, width=int(width * SCALE))

    def paste(self, image: Image.Image, x: float, y: float, width: float) -> float:
        ratio = (width * SCALE) / image.width
        resized = image.resize((int(width * SCALE), max(1, int(image.height * ratio))), Image.LANCZOS)
        self.image.paste(resized, (int(x * SCALE), int(y * SCALE)), resized)
        return resized.height / SCALE

    def _fit(self, value: str, font, width: float) -> str:
        limit = width * SCALE
        if self.draw.textlength(value, font=font) <= limit:
            return value
        while value and self.draw.textlength(value + "...", font=font) > limit:
            value = value[:-1]
        return value + "..."


class _Document:
    def __init__(self) -> None:
        self.pages: List[_Page] = [_Page()]

    @property
    def page(self) -> _Page:
        return self.pages[-1]

    def new_page(self) -> _Page:
        self.pages.append(_Page())
        return self.page

    def to_pdf(self) -> bytes:
        buf = BytesIO()
        first, *rest = [p.image for p in self.pages]
        first.save(buf, format="PDF", resolution=72 * SCALE, save_all=True, append_images=rest)
        return buf.getvalue()


class InvoicePdfService:
    """Renders order invoices for download."""

    def __init__(self, config, http: Optional[Any] = None) -> None:
        self.config = config
        self._http = http if http is not None else requests
        self.logger = logging.getLogger(__name__)

    def generate_order_pdf(self, order: Dict) -> bytes:
        if not order or not order.get("order_number"):
            raise ValueError("Invalid order data: order_number is required")

        order = {**order, **pre_order_fields(order)}
        doc = _Document()
        page = doc.page

        logo = self._load_logo()
        if logo is not None:
            self._header(page, order, logo)
        else:
            self._header_fallback(page, order)
        self._order_info(page, order)
        self._customer_info(page, order)
        end_y = self._items(doc, order)
        self._summary(doc, order, end_y + 20)
        for number, sheet in enumerate(doc.pages, start=1):
            self._footer(sheet, number, len(doc.pages))
        return doc.to_pdf()

    # --- logo ---

    def _load_logo(self) -> Optional[Image.Image]:
        url = self.config.logo_url
        if not url:
            return None
        try:
            response = self._http.get(url, timeout=10, headers={"Accept": "image/png,image/jpeg,image/gif,*/*"})
            response.raise_for_status()
            content = response.content
            content_type = (response.headers or {}).get("content-type", "")
            if (content[:4] == b"RIFF" and content[8:12] == b"WEBP") or "webp" in content_type:
                raise ValueError("WebP logo is not supported, use PNG")
            with Image.open(BytesIO(content)) as img:
                return img.convert("RGBA")
        except (requests.RequestException, OSError, ValueError) as exc:
            self.logger.warning("Failed to load logo, using text fallback: %s", exc)
            return None

    # --- sections ---

    def _header(self, page: _Page, order: Dict, logo: Image.Image) -> None:
        page.paste(logo, MARGIN, MARGIN, 105)
        title = "PRE-ORDER INVOICE" if order.get("is_pre_order") else "INVOICE"
        title_x = MARGIN + 105 + 20
        page.text(title_x, 50, title, size=18, bold=True, width=380 - title_x - 20, align="center")
        self._contact_block(page, 380)
        self._number_and_date(page, order, 120)
        page.rule(MARGIN, 150, PAGE_WIDTH - MARGIN, color=ORANGE, width=2)

    def _header_fallback(self, page: _Page, order: Dict) -> None:
        page.text(MARGIN, 45, self.config.store_name, size=24, color=ORANGE, bold=True)
        page.text(MARGIN, 76, "Gadgets & Electronics", size=11, color="#3A3A3A")
        title = "PRE-ORDER INVOICE" if order.get("is_pre_order") else "ORDER INVOICE"
        page.text(200, 50, title, size=18, bold=True, width=160, align="center")
        self._contact_block(page, 380)
        self._number_and_date(page, order, 120)
        page.rule(MARGIN, 150, PAGE_WIDTH - MARGIN, color="#EDEDED")

    def _contact_block(self, page: _Page, x: float) -> None:
        site = self.config.site_url.split("://", 1)[-1]
        support = self.config.support_email
        if "<" in support:
            support = support.split("<", 1)[1].rstrip(">")
        rows = [("Email:", support, ORANGE), ("Phone:", "+233 55 134 4310", INK), ("Website:", site, ORANGE)]
        y = 45
        for label, value, color in rows:
            page.text(x, y, label, size=8, color=MUTED)
            page.text(x, y + 11, value, size=8, color=color)
            y += 25

    def _number_and_date(self, page: _Page, order: Dict, y: float) -> None:
        page.text(MARGIN, y, "Order Number:", size=8, color=MUTED)
        page.text(MARGIN + 62, y - 1, order.get("order_number") or "N/A", size=9, bold=True)
        page.text(MARGIN, y + 12, "Order Date:", size=8, color=MUTED)
        page.text(MARGIN + 62, y + 11, formatting.long_date(order.get("created_at"), default=""), size=9)

    def _section(self, page: _Page, y: float, title: str) -> None:
        page.box(MARGIN, y, CONTENT_WIDTH, 20, fill=PANEL, radius=3)
        page.text(50, y + 4, title, size=10, bold=True)

    def _order_info(self, page: _Page, order: Dict) -> None:
        y = 180
        self._section(page, y, "Order Details")
        top = y + 28
        status = str(order.get("status") or "pending").lower()
        payment = str(order.get("payment_status") or "pending").lower()

        page.text(50, top, "Status:", size=8, color=MUTED)
        page.text(50, top + 12, status.upper(), size=9, bold=True, color=STATUS_COLORS.get(status, DEFAULT_COLOR))
        page.text(50, top + 30, "Payment Status:", size=8, color=MUTED)
        page.text(50, top + 42, payment.upper(), size=9, bold=True, color=PAYMENT_COLORS.get(payment, DEFAULT_COLOR))

        if not order.get("is_pre_order"):
            return
        page.text(350, top, "Order Type:", size=8, color=MUTED)
        page.text(350, top + 12, "PRE-ORDER", size=9, bold=True)
        row = top + 30
        option = order.get("pre_order_shipping_option")
        if option:
            page.text(350, row, "Shipping Method:", size=8, color=MUTED)
            page.text(350, row + 12, str(option).replace("_", " ").upper(), size=9, width=150)
            row += 30
        if order.get("estimated_arrival_date"):
            page.text(350, row, "Estimated Arrival:", size=8, color=MUTED)
            page.text(350, row + 12, formatting.long_date(order["estimated_arrival_date"]), size=9, width=150)

    def _customer_info(self, page: _Page, order: Dict) -> None:
        y = 250
        self._section(page, y, "Customer Information")
        top = y + 28
        name, email, phone = self._customer(order)
        fields = [("Name:", name, True), ("Email:", email, False), ("Phone:", phone or "N/A", False)]
        for label, value, bold in fields:
            page.text(50, top, label, size=8, color=MUTED)
            page.text(50, top + 11, value, size=9, bold=bold, width=300)
            top += 28
        page.text(300, y + 28, "Delivery Details:", size=8, color=MUTED)
        address = order.get("shipping_address") or order.get("delivery_address")
        page.lines(300, y + 39, formatting.format_delivery_details(address), size=8)

    def _items(self, doc: _Document, order: Dict) -> float:
        page = doc.page
        y = 360
        self._section(page, y, "Order Items")
        items: List[Dict] = order.get("order_items") or order.get("items") or []
        if not items:
            page.text(50, y + 28, "No items found", size=9, color=MUTED)
            return y + 45

        row = self._item_columns(page, y + 28)
        currency = self.config.currency
        for index, item in enumerate(items):
            if row + 20 > BODY_BOTTOM:
                page = doc.new_page()
                row = self._item_columns(page, MARGIN)
            unit_price = float(item.get("unit_price") or 0)
            quantity = int(item.get("quantity") or 0)
            line_total = float(item.get("total_price") or item.get("subtotal") or unit_price * quantity)
            if index % 2 == 0:
                page.box(MARGIN, row - 3, CONTENT_WIDTH, 20, fill=STRIPE)
            page.text(50, row, item.get("product_name") or "Unknown Product", size=9, width=260)
            page.text(335, row, str(quantity), size=9, width=40, align="center")
            page.text(385, row, formatting.money(unit_price, currency), size=9, width=70, align="right")
            page.text(475, row, formatting.money(line_total, currency), size=9, bold=True, width=70, align="right")
            row += 22
        return row

    @staticmethod
    def _item_columns(page: _Page, head: float) -> float:
        page.box(MARGIN, head, CONTENT_WIDTH, 18, fill=PANEL)
        page.text(50, head + 4, "PRODUCT", size=8, color=MUTED, bold=True)
        page.text(335, head + 4, "QTY", size=8, color=MUTED, bold=True, width=40, align="center")
        page.text(385, head + 4, "UNIT PRICE", size=8, color=MUTED, bold=True, width=70, align="right")
        page.text(475, head + 4, "TOTAL", size=8, color=MUTED, bold=True, width=70, align="right")
        return head + 24

    def _summary(self, doc: _Document, order: Dict, y: float) -> float:
        currency = self.config.currency
        rows: List[Tuple[str, str]] = [("Subtotal:", formatting.money(order.get("subtotal"), currency))]
        discount = float(order.get("discount") or 0)
        tax = float(order.get("tax") or 0)
        shipping_fee = float(order.get("shipping_fee") or order.get("delivery_fee") or 0)
        if discount > 0:
            rows.append(("Discount:", "-" + formatting.money(discount, currency)))
        if tax > 0:
            rows.append(("Tax:", formatting.money(tax, currency)))
        if shipping_fee > 0:
            rows.append(("Shipment:" if order.get("is_pre_order") else "Delivery:", formatting.money(shipping_fee, currency)))

        width, x = 200, 355
        height = 15 + len(rows) * 16 + 3 + 26 + 10 + 15
        page = doc.page
        if y + height > BODY_BOTTOM:
            page = doc.new_page()
            y = MARGIN
        page.box(x, y, width, height, outline=BORDER, radius=4)

        row = y + 15
        for label, value in rows:
            page.text(x + 15, row, label, size=9, color=MUTED)
            page.text(x + 15, row, value, size=9, width=width - 30, align="right")
            row += 14
        page.rule(x + 15, row + 3, x + width - 15)

        total_y = row + 8
        page.box(x + 10, total_y, width - 20, 22, fill=ORANGE, radius=3)
        page.text(x + 20, total_y + 5, "TOTAL:", size=10, color="#FFFFFF", bold=True)
        page.text(x + 20, total_y + 5, formatting.money(order.get("total"), currency), size=10, color="#FFFFFF",
                  bold=True, width=width - 40, align="right")
        return total_y + 30

    def _footer(self, page: _Page, number: int = 1, total: int = 1) -> None:
        bottom = PAGE_HEIGHT - MARGIN
        page.rule(MARGIN, bottom - 36, PAGE_WIDTH - MARGIN)
        if total > 1:
            page.text(MARGIN, bottom - 30, f"Page {number} of {total}", size=7, color=MUTED, width=CONTENT_WIDTH,
                      align="right")
        page.text(MARGIN, bottom - 30, f"Thank you for choosing {self.config.store_name}!", size=9, bold=True,
                  width=CONTENT_WIDTH, align="center")
        page.text(MARGIN, bottom - 18, "For support, please contact us using the details above.", size=7,
                  color=MUTED, width=CONTENT_WIDTH, align="center")
        page.text(MARGIN, bottom - 8, f"{self.config.store_name} Gadgets & Electronics - Trusted for Tech in Ghana",
                  size=6, color="#CCCCCC", width=CONTENT_WIDTH, align="center")

    @staticmethod
    def _customer(order: Dict) -> Tuple[str, str, str]:
        bio = order.get("customer_bio") or {}
        user = order.get("user") or {}
        address = order.get("shipping_address") or order.get("delivery_address") or {}
        if not isinstance(address, dict):
            address = {}
        if bio.get("name"):
            name = bio["name"]
        elif user:
            name = f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip() or "Unknown"
        else:
            name = address.get("full_name") or "Guest Customer"
        email = bio.get("email") or user.get("email") or address.get("email") or "No email"
        return name, email, bio.get("phone") or ""
