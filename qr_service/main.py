from fastapi import FastAPI, HTTPException, Depends, Request, Query
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
from io import BytesIO
import base64
import logging
from datetime import datetime

from shared.config import settings
from shared.models import Order, OrderAsset, QRCodeRecord, QRPreviewRequest
from .auth import get_current_user, can_manage
from .database import get_database, ensure_indexes
from .orders import (
    attach_qr_pdfs, capture_cart_data, generate_order_assets, publish_record, regenerate_record_assets,
)
from .qr_utils import build_qr_data
from .render import render_styled_image
from .storage import AssetStorage
from .styles import capture_style_fields, display_item_data

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="QR Service",
    version=settings.VERSION,
    docs_url="/docs",
    openapi_url="/openapi.json"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,
)

@app.on_event("startup")
async def startup_db_client():
    app.mongodb_client = AsyncIOMotorClient(settings.MONGODB_URL)
    app.mongodb = app.mongodb_client[settings.MONGODB_DB_NAME]
    await ensure_indexes(app.mongodb)
    app.storage = AssetStorage() if settings.MINIO_ENABLED else None
    logger.info(f"QR service started (storage {'enabled' if app.storage else 'disabled'})")

@app.on_event("shutdown")
async def shutdown_db_client():
    app.mongodb_client.close()

def get_storage(request: Request):
    return getattr(request.app, "storage", None)

def record_response(record: QRCodeRecord) -> dict:
    data = record.model_dump(mode="json", exclude={"order_snapshot"})
    data["scan_url"] = settings.scan_url(record.slug)
    data["manage_url"] = settings.manage_url(record.slug)
    return data

async def load_owned_record(db, slug: str, current_user: dict) -> QRCodeRecord:
    doc = await db.qr_codes.find_one({"slug": slug})
    if not doc:
        raise HTTPException(status_code=404, detail="QR code not found")
    record = QRCodeRecord(**doc)
    if not can_manage(current_user, record.customer_id):
        logger.warning(f"User {current_user['id']} may not access QR code {slug}")
        raise HTTPException(status_code=403, detail="You are not allowed to manage this QR code")
    return record

@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "qr-service"}

@app.post("/api/v1/cart/items")
async def capture_cart_item(request: Request):
    """Turn the posted product form into QR and style metadata for a cart line."""
    try:
        form = await request.form()
        qr = capture_cart_data(form)
        style = capture_style_fields(form)
        return {
            "qr": qr.model_dump(),
            "style": style.model_dump(),
            "display": display_item_data(style)
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error capturing cart item: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@app.post("/api/v1/qrcodes/preview")
async def preview_qr_code(preview: QRPreviewRequest):
    """Render a styled QR code in memory and return it as a PNG data URI."""
    try:
        qr_data = build_qr_data(preview.payload_type, preview.payload)
        if not qr_data:
            raise HTTPException(status_code=400, detail="Payload produces no QR data")

        image = render_styled_image(qr_data, preview.style)
        buffer = BytesIO()
        image.save(buffer, format="PNG", compress_level=6)
        base64_qr = base64.b64encode(buffer.getvalue()).decode("utf-8")
        return {
            "qr_data": qr_data,
            "qr_image_base64": f"data:image/png;base64,{base64_qr}"
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"QR preview failed: {str(e)}")
        logger.error("Stack trace:", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

@app.post("/api/v1/orders/completed")
async def order_completed(
    order: Order,
    request: Request,
    db = Depends(get_database),
    current_user: dict = Depends(get_current_user)
):
    """Generate the PNG/PDF assets of every QR line item of a completed order."""
    try:
        if order.status != "completed":
            raise HTTPException(status_code=400, detail=f"Order {order.order_id} is not completed")

        logger.info(f"Generating QR assets for order {order.order_id} (requested by {current_user['id']})")
        assets = await generate_order_assets(order, db, get_storage(request))
        return {
            "order_id": order.order_id,
            "assets": [asset.model_dump(mode="json") for asset in assets]
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error generating assets for order {order.order_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@app.get("/api/v1/orders/{order_id}/attachments")
async def order_attachments(
    order_id: int,
    email_id: str = Query(...),
    db = Depends(get_database),
    current_user: dict = Depends(get_current_user)
):
    """PDF paths to attach to the given order email."""
    try:
        docs = await db.order_assets.find({"order_id": order_id}).to_list(length=None)
        assets = [OrderAsset(**doc) for doc in docs]
        return {
            "order_id": order_id,
            "email_id": email_id,
            "attachments": attach_qr_pdfs([], email_id, assets)
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing attachments for order {order_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@app.get("/api/v1/qrcodes/{slug}")
async def get_qr_code(
    slug: str,
    db = Depends(get_database),
    current_user: dict = Depends(get_current_user)
):
    try:
        record = await load_owned_record(db, slug, current_user)
        return record_response(record)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting QR code {slug}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@app.post("/api/v1/qrcodes/{slug}/regenerate")
async def regenerate_qr_code(
    slug: str,
    request: Request,
    db = Depends(get_database),
    current_user: dict = Depends(get_current_user)
):
    """Re-render the stored PNG/PDF of a code after its payload was edited."""
    try:
        record = await load_owned_record(db, slug, current_user)
        record = regenerate_record_assets(record)
        publish_record(get_storage(request), record)

        await db.qr_codes.update_one(
            {"slug": slug},
            {"$set": {
                "png_url": record.png_url,
                "pdf_url": record.pdf_url,
                "updated_at": datetime.utcnow()
            }}
        )
        return record_response(record)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error regenerating QR code {slug}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
