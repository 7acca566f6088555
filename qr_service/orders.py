"""Cart capture and order-completion asset generation."""
import logging
import os
import re
import secrets
import string
import unicodedata
from datetime import datetime
from typing import Any, List, Mapping, Optional

from pymongo.errors import DuplicateKeyError

from shared.config import settings
from shared.models import (
    CART_PAYLOAD_TYPES, QR_TYPES, Order, OrderAsset, OrderLineItem, OrderLineStyle,
    QRCodeRecord, QRLineItemMeta, QRPdfMeta, QRStyleOptions,
)
from .pdf import make_pdf
from .qr_utils import build_qr_data, sanitize_email, sanitize_text, sanitize_url
from .render import generate_png
from .storage import AssetStorage
from .styles import apply_item_style, line_style_from_options, style_labels

logger = logging.getLogger(__name__)

SLUG_LENGTH = 8
SLUG_ALPHABET = string.ascii_letters + string.digits
SLUG_ATTEMPTS = 5

COMPLETED_ORDER_EMAIL = 'customer_completed_order'

def capture_cart_data(form: Mapping[str, Any]) -> QRLineItemMeta:
    """Build the QR metadata of a cart line from the posted product form."""
    payload_type = sanitize_text(form.get('qr_payload_type') or 'website')
    if payload_type not in CART_PAYLOAD_TYPES:
        payload_type = 'website'

    qr_type = sanitize_text(form.get('qr_type') or 'static')
    if qr_type not in QR_TYPES:
        qr_type = 'static'

    caption = sanitize_text(form.get('qr_caption'))[:settings.CAPTION_MAX_LENGTH]

    payload = {}
    if payload_type == 'website':
        payload['url'] = sanitize_url(form.get('qr_website_url'))
    elif payload_type == 'wifi':
        payload['ssid'] = sanitize_text(form.get('qr_wifi_ssid'))
        payload['auth'] = sanitize_text(form.get('qr_wifi_auth') or 'WPA')
        payload['password'] = sanitize_text(form.get('qr_wifi_password'))
        payload['hidden'] = 'true' if form.get('qr_wifi_hidden') else 'false'
    elif payload_type == 'contact':
        payload['first'] = sanitize_text(form.get('qr_contact_first'))
        payload['last'] = sanitize_text(form.get('qr_contact_last'))
        payload['phone'] = sanitize_text(form.get('qr_contact_phone'))
        payload['email'] = sanitize_email(form.get('qr_contact_email'))
    elif payload_type == 'business':
        payload['text'] = sanitize_text(form.get('qr_business_text'))

    return QRLineItemMeta(type=qr_type, payload_type=payload_type, payload=payload, caption=caption)

def generate_slug() -> str:
    return ''.join(secrets.choice(SLUG_ALPHABET) for _ in range(SLUG_LENGTH))

def slugify(value: str) -> str:
    value = unicodedata.normalize('NFKD', value).encode('ascii', 'ignore').decode('ascii')
    value = re.sub(r'[^a-z0-9]+', '-', value.lower())
    return value.strip('-')

def buyer_file_base(order: Order) -> str:
    return slugify(order.billing_full_name) or 'customer'

def order_snapshot(order: Order) -> dict:
    return order.model_dump(mode='json', exclude={'items'})

def describe_record(record: QRCodeRecord, line_style: OrderLineStyle) -> QRPdfMeta:
    """PDF metadata for a code: scan/manage URLs only for dynamic codes."""
    meta = QRPdfMeta(
        type=f"{record.type.capitalize()} / {record.payload_type}",
        display=record.qr_data,
        order_id=record.order_id,
        caption=record.style.caption,
        **style_labels(line_style),
    )
    if record.type == 'dynamic':
        meta.manage_url = settings.manage_url(record.slug)
        if record.payload_type == 'website':
            meta.dynamic_url = settings.scan_url(record.slug)
            meta.display = meta.dynamic_url
            meta.destination = record.target_url or ''
    elif record.payload_type == 'website':
        meta.display = record.payload.get('url', '')
    return meta

async def insert_dynamic_record(db, record: QRCodeRecord) -> QRCodeRecord:
    """Insert a dynamic code, drawing a new slug when the unique index rejects it."""
    for attempt in range(1, SLUG_ATTEMPTS + 1):
        record.slug = generate_slug()
        if record.payload_type == 'website':
            record.qr_data = settings.scan_url(record.slug)
        try:
            result = await db.qr_codes.insert_one(record.model_dump(exclude={'id'}))
            record.id = str(result.inserted_id)
            logger.info(f"Created dynamic QR code {record.slug} for order {record.order_id}")
            return record
        except DuplicateKeyError:
            logger.warning(f"Slug collision on attempt {attempt}: {record.slug}")
    raise RuntimeError(f"Could not allocate a unique slug after {SLUG_ATTEMPTS} attempts")

def build_record(order: Order, item: OrderLineItem, options: QRStyleOptions) -> QRCodeRecord:
    qr = item.qr
    record = QRCodeRecord(
        slug='',
        type=qr.type if qr.type in QR_TYPES else 'static',
        payload_type=qr.payload_type,
        payload=qr.payload,
        order_id=order.order_id,
        order_item_id=item.item_id,
        customer_id=order.customer_id,
        style=options,
        order_snapshot=order_snapshot(order),
    )
    if record.type == 'dynamic' and record.payload_type == 'website':
        # The symbol encodes the scan URL, the destination stays editable
        record.target_url = qr.payload.get('url') or f"{settings.SITE_URL.rstrip('/')}/"
    else:
        record.qr_data = build_qr_data(record.payload_type, record.payload)
    return record

def publish_files(storage: Optional[AssetStorage], order_id, png_path: str, pdf_path: str):
    """Upload the PNG and PDF, returning their public URLs (None when not published)."""
    if storage is None:
        return None, None
    prefix = f"orders/{order_id if order_id is not None else 'manual'}"
    try:
        png_url = storage.upload_file(png_path, f"{prefix}/{os.path.basename(png_path)}")
        pdf_url = storage.upload_file(pdf_path, f"{prefix}/{os.path.basename(pdf_path)}")
        return png_url, pdf_url
    except Exception as e:
        logger.error(f"Publishing {png_path} and {pdf_path} failed: {str(e)}")
        return None, None

def publish_record(storage: Optional[AssetStorage], record: QRCodeRecord) -> QRCodeRecord:
    if record.png_path and record.pdf_path:
        png_url, pdf_url = publish_files(storage, record.order_id, record.png_path, record.pdf_path)
        record.png_url = png_url or record.png_url
        record.pdf_url = pdf_url or record.pdf_url
    return record

async def generate_item_assets(order: Order, item: OrderLineItem, db,
                               storage: Optional[AssetStorage] = None, slug: Optional[str] = None) -> OrderAsset:
    """Render one line item. A known slug keeps its stored code, edits included."""
    caption = item.qr.caption or item.style.caption
    options = QRStyleOptions(
        scale=settings.ORDER_QR_SCALE,
        margin=settings.ORDER_QR_MARGIN,
        caption=caption,
    )
    options = apply_item_style(options, item.style)

    record = None
    if slug:
        doc = await db.qr_codes.find_one({"slug": slug})
        if doc:
            record = QRCodeRecord(**doc)
            options = record.style
            logger.info(f"Reusing QR code {slug} for order {order.order_id} item {item.item_id}")
    if record is None:
        record = build_record(order, item, options)
        if record.type == 'dynamic':
            record = await insert_dynamic_record(db, record)

    directory = os.path.join(settings.ASSET_DIR, str(order.order_id))
    base_name = f"{buyer_file_base(order)}-{item.item_id}"
    png_path = generate_png(record.qr_data, os.path.join(directory, f"{base_name}.png"), options)

    meta = describe_record(record, item.style)
    pdf_path = make_pdf(png_path, meta, os.path.join(directory, f"{base_name}.pdf"), order)

    png_url, pdf_url = publish_files(storage, order.order_id, png_path, pdf_path)
    asset = OrderAsset(
        order_id=order.order_id,
        item_id=item.item_id,
        slug=record.slug or None,
        png_path=png_path,
        pdf_path=pdf_path,
        png_url=png_url,
        pdf_url=pdf_url,
    )

    if record.type == 'dynamic':
        await db.qr_codes.update_one(
            {"slug": record.slug},
            {"$set": {
                "png_path": png_path,
                "pdf_path": pdf_path,
                "png_url": asset.png_url,
                "pdf_url": asset.pdf_url,
                "updated_at": datetime.utcnow()
            }}
        )

    await db.order_assets.update_one(
        {"order_id": order.order_id, "item_id": item.item_id},
        {"$set": asset.model_dump()},
        upsert=True
    )
    item.pdf_path = pdf_path
    return asset

async def generate_order_assets(order: Order, db, storage: Optional[AssetStorage] = None) -> List[OrderAsset]:
    """Render PNG and PDF assets for every QR line item of a completed order.

    A failing line item is logged and skipped; the rest of the order still
    gets its assets. Items whose PDF already exists are not generated again.
    """
    assets = []
    for item in order.items:
        if item.qr is None:
            continue
        try:
            existing = await db.order_assets.find_one({"order_id": order.order_id, "item_id": item.item_id})
            if existing and os.path.exists(existing.get("pdf_path", "")):
                logger.info(f"Assets for order {order.order_id} item {item.item_id} already exist")
                asset = OrderAsset(**existing)
                item.pdf_path = asset.pdf_path
                assets.append(asset)
                continue

            slug = existing.get("slug") if existing else None
            assets.append(await generate_item_assets(order, item, db, storage, slug))
        except Exception as e:
            logger.error(f"QR generation failed for order {order.order_id} item {item.item_id}: {str(e)}")
            logger.error("Stack trace:", exc_info=True)
    return assets

def attach_qr_pdfs(attachments: List[str], email_id: str, assets: List[OrderAsset]) -> List[str]:
    """Append the order's QR PDFs to the completed-order email attachments."""
    if email_id != COMPLETED_ORDER_EMAIL:
        return attachments
    attachments = list(attachments)
    for asset in assets:
        if asset.pdf_path and os.path.exists(asset.pdf_path):
            attachments.append(asset.pdf_path)
    return attachments

def regenerate_record_assets(record: QRCodeRecord) -> QRCodeRecord:
    """Re-render the PNG and PDF of an edited code over its existing files.

    Only files that still exist on disk are rewritten.
    """
    if not record.png_path or not record.pdf_path:
        logger.info(f"QR code {record.slug} has no stored assets to regenerate")
        return record

    order = None
    if record.order_snapshot:
        try:
            order = Order(**record.order_snapshot)
        except Exception as e:
            logger.warning(f"Unreadable order snapshot for {record.slug}: {str(e)}")

    if os.path.exists(record.png_path):
        generate_png(record.qr_data, record.png_path, record.style)
    else:
        logger.warning(f"PNG {record.png_path} of QR code {record.slug} is missing, not regenerating it")

    if os.path.exists(record.pdf_path):
        meta = describe_record(record, line_style_from_options(record.style))
        make_pdf(record.png_path, meta, record.pdf_path, order)
    else:
        logger.warning(f"PDF {record.pdf_path} of QR code {record.slug} is missing, not regenerating it")

    logger.info(f"Regenerated assets for QR code {record.slug}")
    return record
