"""One-page A4 PDF describing a purchased QR code."""
import logging
import os
from datetime import datetime
from io import BytesIO
from typing import List, Optional, Tuple, Union

from PIL import Image
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from shared.config import settings
from shared.models import Order, QRPdfMeta

logger = logging.getLogger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 20 * mm
QR_IMAGE_WIDTH = 240  # 320 px at 96 dpi
LABEL_COLUMN = 42 * mm
ROW_PADDING = 2 * mm
TABLE_FONT_SIZE = 9

TERMS_NOTE = (
    "Thank you for your order. Your purchase is subject to our General Terms of Service, "
    "Refund & Returns Policy, and Privacy Policy. We may update these policies periodically; "
    "the version posted on our website at the time of purchase governs this order."
)
MANAGE_TIP = (
    "Tip: Use the Manage URL to change where this QR sends people. The QR itself does not change."
)

Rows = List[Tuple[str, str]]

def flatten_png(png_path: str) -> Optional[ImageReader]:
    """Flatten the PNG onto white and re-encode it as a JPEG (quality 92)."""
    if not png_path or not os.path.isfile(png_path):
        return None
    try:
        with Image.open(png_path) as im:
            im = im.convert('RGBA')
            background = Image.new('RGB', im.size, (255, 255, 255))
            background.paste(im, (0, 0), im)
        buffer = BytesIO()
        background.save(buffer, format='JPEG', quality=92)
        buffer.seek(0)
        return ImageReader(buffer)
    except Exception as e:
        logger.warning(f"QR image {png_path} unreadable for PDF: {str(e)}")
        return None

def order_date(order: Optional[Order], with_time: bool = False) -> str:
    fmt = settings.DATE_FORMAT
    if with_time:
        fmt = f"{fmt} {settings.TIME_FORMAT}"
    created = order.date_created if order and order.date_created else datetime.now()
    return created.strftime(fmt)

def customer_rows(order: Optional[Order]) -> Rows:
    if order is None:
        return []
    rows = [
        ('Customer name', order.billing_full_name),
        ('Phone number', order.billing_phone),
        ('Email address', order.billing_email),
        ('Date of purchase', order_date(order, with_time=True)),
        ('Payment method', order.payment_method_title),
    ]
    return [(label, value) for label, value in rows if value]

def meta_rows(meta: QRPdfMeta) -> Rows:
    rows = [('Type', meta.type)]
    optional = [
        ('Payload', meta.display),
        ('Scan URL', meta.dynamic_url),
        ('Manage URL', meta.manage_url),
        ('Destination', meta.destination),
        ('Color', meta.style_color_label),
        ('Frame', meta.style_frame_label),
        ('Visual style', meta.style_visual_label),
    ]
    rows.extend((label, value) for label, value in optional if value)
    if meta.order_id is not None:
        rows.append(('Order', f"#{meta.order_id}"))
    return rows

class PageWriter:
    """Top-down text cursor over a reportlab canvas."""

    def __init__(self, c: canvas.Canvas):
        self.c = c
        self.y = PAGE_HEIGHT - MARGIN

    def ensure(self, height: float):
        if self.y - height < MARGIN:
            self.c.showPage()
            self.y = PAGE_HEIGHT - MARGIN

    def centered(self, text: str, font: str, size: float, gap: float = 0, color=(0, 0, 0)):
        self.ensure(size + gap)
        self.y -= size
        self.c.setFillColorRGB(*color)
        self.c.setFont(font, size)
        self.c.drawCentredString(PAGE_WIDTH / 2, self.y, text)
        self.c.setFillColorRGB(0, 0, 0)
        self.y -= gap

    def paragraph(self, text: str, font: str, size: float, gap: float = 0, color=(0, 0, 0)):
        lines = simpleSplit(text, font, size, PAGE_WIDTH - 2 * MARGIN)
        leading = size * 1.3
        self.c.setFillColorRGB(*color)
        self.c.setFont(font, size)
        for line in lines:
            self.ensure(leading)
            self.y -= leading
            self.c.drawString(MARGIN, self.y, line)
        self.c.setFillColorRGB(0, 0, 0)
        self.y -= gap

    def qr_image(self, image: Optional[ImageReader]):
        if image is None:
            self.ensure(QR_IMAGE_WIDTH)
            x = (PAGE_WIDTH - QR_IMAGE_WIDTH) / 2
            self.y -= QR_IMAGE_WIDTH
            self.c.setStrokeColorRGB(0.87, 0.87, 0.87)
            self.c.rect(x, self.y, QR_IMAGE_WIDTH, QR_IMAGE_WIDTH, stroke=1, fill=0)
            self.c.setFont('Helvetica', 11)
            self.c.drawCentredString(PAGE_WIDTH / 2, self.y + QR_IMAGE_WIDTH / 2, 'QR image unavailable')
            self.c.setStrokeColorRGB(0, 0, 0)
            return

        iw, ih = image.getSize()
        height = QR_IMAGE_WIDTH * ih / float(iw or 1)
        self.ensure(height)
        self.y -= height
        self.c.drawImage(image, (PAGE_WIDTH - QR_IMAGE_WIDTH) / 2, self.y,
                         width=QR_IMAGE_WIDTH, height=height)

    def table(self, rows: Rows, gap: float = 0):
        if not rows:
            return
        value_width = PAGE_WIDTH - 2 * MARGIN - LABEL_COLUMN
        leading = TABLE_FONT_SIZE * 1.3
        self.c.setStrokeColorRGB(0.87, 0.87, 0.87)
        for label, value in rows:
            lines = simpleSplit(value, 'Helvetica', TABLE_FONT_SIZE, value_width - 2 * ROW_PADDING) or ['']
            height = len(lines) * leading + 2 * ROW_PADDING
            self.ensure(height)
            top = self.y
            self.y -= height
            self.c.rect(MARGIN, self.y, LABEL_COLUMN, height, stroke=1, fill=0)
            self.c.rect(MARGIN + LABEL_COLUMN, self.y, value_width, height, stroke=1, fill=0)

            self.c.setFont('Helvetica', TABLE_FONT_SIZE)
            baseline = top - ROW_PADDING - TABLE_FONT_SIZE
            self.c.drawString(MARGIN + ROW_PADDING, baseline, label)
            for line in lines:
                self.c.drawString(MARGIN + LABEL_COLUMN + ROW_PADDING, baseline, line)
                baseline -= leading
        self.c.setStrokeColorRGB(0, 0, 0)
        self.y -= gap

def make_pdf(png_path: str, meta: Union[QRPdfMeta, dict], save_path: str,
             order: Optional[Order] = None) -> str:
    """Write the QR code PDF to ``save_path`` and return the path.

    Errors are logged; the path is returned either way.
    """
    if not isinstance(meta, QRPdfMeta):
        meta = QRPdfMeta(**(meta or {}))

    try:
        directory = os.path.dirname(save_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        c = canvas.Canvas(save_path, pagesize=A4)
        c.setTitle('Your QR Code')
        page = PageWriter(c)

        page.centered(settings.SITE_HEADER, 'Helvetica-Bold', 18, gap=2 * mm)
        page.centered(f"Order Date: {order_date(order)}", 'Helvetica', 10, gap=6 * mm,
                      color=(0.33, 0.33, 0.33))
        page.centered('Your QR Code', 'Helvetica-Bold', 16, gap=6 * mm)

        page.qr_image(flatten_png(png_path))
        caption = (meta.caption or '').strip()[:settings.CAPTION_MAX_LENGTH]
        if caption:
            page.y -= 3 * mm
            page.centered(caption, 'Helvetica-Bold', 13)
        page.y -= 8 * mm

        page.table(customer_rows(order), gap=4 * mm)
        page.table(meta_rows(meta), gap=5 * mm)

        if meta.manage_url:
            page.paragraph(MANAGE_TIP, 'Helvetica', 10, gap=4 * mm, color=(0.27, 0.27, 0.27))
        page.paragraph(TERMS_NOTE, 'Helvetica', 9, gap=4 * mm, color=(0.27, 0.27, 0.27))
        page.paragraph('Thank you for your order!', 'Helvetica-Bold', 10)
        page.paragraph(settings.COMPANY_NAME, 'Helvetica-Bold', 10)

        c.showPage()
        c.save()
        logger.info(f"PDF generated at: {save_path}")
    except Exception as e:
        logger.error(f"PDF generation failed for {save_path}: {str(e)}")
        logger.error("Stack trace:", exc_info=True)

    return save_path
