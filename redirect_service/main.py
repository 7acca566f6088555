from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, RedirectResponse
from motor.motor_asyncio import AsyncIOMotorClient
from urllib.parse import urlencode
from datetime import datetime
from typing import Optional
import httpx
import logging

from shared.config import settings
from shared.models import QRCodeRecord
from qr_service.qr_utils import build_qr_data, sanitize_text, sanitize_url
from qr_service.auth import can_manage
from .auth import create_csrf_token, get_optional_user, verify_csrf_token
from .database import get_database
from .pages import (
    bad_request_page, forbidden_page, info_page, manage_page, not_found_page, redirect_page,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0"
}

app = FastAPI(title="Redirect Service")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def startup_db_client():
    app.mongodb_client = AsyncIOMotorClient(settings.MONGODB_URL)
    app.mongodb = app.mongodb_client[settings.MONGODB_DB_NAME]
    app.http_client = httpx.AsyncClient()

@app.on_event("shutdown")
async def shutdown_db_client():
    app.mongodb_client.close()
    await app.http_client.aclose()

def html(content: str, status_code: int = 200, headers: Optional[dict] = None) -> HTMLResponse:
    return HTMLResponse(content=content, status_code=status_code, headers={**NO_CACHE_HEADERS, **(headers or {})})

async def find_record(db, slug: str) -> Optional[QRCodeRecord]:
    doc = await db.qr_codes.find_one({"slug": slug})
    return QRCodeRecord(**doc) if doc else None

async def request_regeneration(request: Request, slug: str, user: dict) -> bool:
    """Ask the QR service to rebuild the PNG/PDF of an edited code. Failures are only logged."""
    http_client = getattr(request.app, "http_client", None)
    if http_client is None:
        logger.warning(f"No HTTP client available, skipping asset regeneration for {slug}")
        return False

    url = f"{settings.QR_SERVICE_URL.rstrip('/')}/api/v1/qrcodes/{slug}/regenerate"
    try:
        response = await http_client.post(
            url,
            headers={"Authorization": f"Bearer {user['token']}"},
            timeout=10.0
        )
        if response.status_code == 200:
            logger.info(f"QR service regenerated assets for {slug}")
            return True
        logger.error(f"QR service returned error for {slug}: {response.status_code} {response.text}")
    except httpx.HTTPError as e:
        logger.error(f"Error requesting asset regeneration for {slug}: {str(e)}")
    return False

@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "redirect-service"}

@app.get("/q/{slug}")
async def scan(slug: str, db = Depends(get_database)):
    """Scan endpoint: website codes redirect, other payloads get an info page."""
    try:
        record = await find_record(db, slug)
        if record is None:
            logger.info(f"Scan of unknown QR slug: {slug}")
            return html(not_found_page(), status_code=404)

        if (record.payload_type or 'website') == 'website':
            destination = sanitize_url(record.target_url)
            if destination:
                logger.info(f"Redirecting {slug} to {destination}")
                return html(redirect_page(destination), status_code=302, headers={"Location": destination})

        return html(info_page(record))
    except Exception as e:
        logger.error(f"Error handling scan of {slug}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

def apply_manage_form(record: QRCodeRecord, form) -> dict:
    """Validate the manage form and return the fields to update.

    Raises ValueError with the message shown to the user.
    """
    if record.payload_type == 'website':
        target_url = sanitize_url((form.get('target_url') or '').strip())
        if not target_url:
            raise ValueError("Please enter a valid URL.")
        return {"target_url": target_url}

    if record.payload_type == 'wifi':
        ssid = sanitize_text(form.get('wifi_ssid'))
        if not ssid:
            raise ValueError("SSID is required.")
        payload = {
            "ssid": ssid,
            "auth": sanitize_text(form.get('wifi_auth') or 'WPA'),
            "password": sanitize_text(form.get('wifi_password')),
            "hidden": 'true' if form.get('wifi_hidden') else 'false'
        }
        return {
            "payload": payload,
            "qr_data": build_qr_data('wifi', payload),
            "target_url": None
        }

    raise ValueError("Editing this payload type from the manage page is not yet supported.")

@app.api_route("/q/{slug}/manage", methods=["GET", "POST"])
async def manage(
    slug: str,
    request: Request,
    db = Depends(get_database),
    user: Optional[dict] = Depends(get_optional_user)
):
    """Owner/editor page to change where a code points or what it encodes."""
    try:
        record = await find_record(db, slug)
        if record is None:
            return html(not_found_page(), status_code=404)

        if user is None:
            query = urlencode({"redirect_to": settings.manage_url(slug)})
            separator = "&" if "?" in settings.LOGIN_URL else "?"
            return RedirectResponse(url=f"{settings.LOGIN_URL}{separator}{query}", status_code=302, headers=NO_CACHE_HEADERS)

        if not can_manage(user, record.customer_id):
            logger.warning(f"User {user['id']} denied management of {slug}")
            return html(forbidden_page(), status_code=403)

        updated = False
        error = ''
        if request.method == "POST":
            form = await request.form()
            if not verify_csrf_token(form.get("csrf_token"), slug, user):
                logger.warning(f"Rejected manage form for {slug}: bad CSRF token")
                return html(bad_request_page(), status_code=400)

            try:
                changes = apply_manage_form(record, form)
            except ValueError as e:
                error = str(e)
            else:
                changes["updated_at"] = datetime.utcnow()
                await db.qr_codes.update_one({"slug": slug}, {"$set": changes})
                logger.info(f"QR code {slug} updated by {user['id']}: {sorted(changes)}")
                updated = True
                record = await find_record(db, slug)
                if "qr_data" in changes:
                    await request_regeneration(request, slug, user)

        return html(manage_page(record, create_csrf_token(slug, user), updated=updated, error=error))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in manage page for {slug}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
