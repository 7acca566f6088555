import asyncio
import re

import httpx
import pytest
from fastapi.testclient import TestClient

from shared.config import settings
from qr_service import auth as qr_auth
from redirect_service import main as redirect_main
from redirect_service.main import app
from redirect_service.database import get_database
from redirect_service.auth import create_csrf_token, verify_csrf_token

WEBSITE = {
    "slug": "Web12345",
    "type": "dynamic",
    "payload_type": "website",
    "payload": {"url": "https://cornercafe.com"},
    "qr_data": "http://localhost:8000/q/Web12345",
    "target_url": "https://cornercafe.com/menu",
    "customer_id": "42",
}

WIFI = {
    "slug": "Wifi1234",
    "type": "dynamic",
    "payload_type": "wifi",
    "payload": {"ssid": "Cafe", "auth": "WPA", "password": "pw", "hidden": "false"},
    "qr_data": "WIFI:T:WPA;S:Cafe;P:pw;H:false;",
    "target_url": None,
    "customer_id": "42",
    "png_path": "/tmp/x.png",
    "pdf_path": "/tmp/x.pdf",
}

CONTACT = {
    "slug": "Card1234",
    "type": "dynamic",
    "payload_type": "contact",
    "payload": {"first": "Jane"},
    "qr_data": "BEGIN:VCARD\nVERSION:3.0\nN:;Jane;;;\nFN:Jane \nEND:VCARD",
    "customer_id": "42",
}

@pytest.fixture
def db(fake_db):
    for doc in (WEBSITE, WIFI, CONTACT):
        asyncio.run(fake_db.qr_codes.insert_one(dict(doc)))
    return fake_db

@pytest.fixture
def regenerate_calls():
    calls = []

    def handler(request: httpx.Request):
        calls.append(request)
        return httpx.Response(200, json={"status": "ok"})

    app.http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    yield calls
    del app.http_client

@pytest.fixture
def client(db):
    app.dependency_overrides[get_database] = lambda: db
    yield TestClient(app, follow_redirects=False)
    app.dependency_overrides.clear()

@pytest.fixture
def owner(token_factory):
    return {"Authorization": f"Bearer {token_factory(user_id='42')}"}

def csrf_from(html):
    return re.search(r'name="csrf_token" value="([^"]+)"', html).group(1)

class TestScan:
    def test_website_redirects(self, client):
        response = client.get("/q/Web12345")
        assert response.status_code == 302
        assert response.headers["location"] == "https://cornercafe.com/menu"
        assert "no-store" in response.headers["cache-control"]
        assert 'http-equiv="refresh"' in response.text
        assert 'location.replace("https://cornercafe.com/menu")' in response.text

    def test_unknown_slug(self, client):
        response = client.get("/q/Nope0000")
        assert response.status_code == 404
        assert "QR not found" in response.text

    def test_non_website_gets_info_page(self, client):
        response = client.get("/q/Wifi1234")
        assert response.status_code == 200
        assert "QR Info" in response.text
        assert "WIFI:T:WPA;S:Cafe;P:pw;H:false;" in response.text
        assert "/q/Wifi1234/manage" in response.text

    def test_website_without_valid_target_gets_info_page(self, client, db):
        asyncio.run(db.qr_codes.update_one({"slug": "Web12345"}, {"$set": {"target_url": "javascript:alert(1)"}}))
        response = client.get("/q/Web12345")
        assert response.status_code == 200
        assert "QR Info" in response.text

    def test_info_page_escapes_payload(self, client, db):
        asyncio.run(db.qr_codes.update_one({"slug": "Card1234"}, {"$set": {"qr_data": "<script>x</script>"}}))
        response = client.get("/q/Card1234")
        assert "<script>x</script>" not in response.text
        assert "&lt;script&gt;" in response.text

class TestManageAccess:
    def test_unknown_slug(self, client, owner):
        assert client.get("/q/Nope0000/manage", headers=owner).status_code == 404

    def test_anonymous_is_sent_to_login(self, client):
        response = client.get("/q/Web12345/manage")
        assert response.status_code == 302
        assert response.headers["location"].startswith(f"{settings.LOGIN_URL}?redirect_to=")
        assert "Web12345%2Fmanage" in response.headers["location"]

    def test_login_url_with_query_string(self, client, monkeypatch):
        monkeypatch.setattr(settings, "LOGIN_URL", "/my-account?tab=login")
        response = client.get("/q/Web12345/manage")
        assert response.headers["location"].startswith("/my-account?tab=login&redirect_to=")

    def test_invalid_token_is_anonymous(self, client):
        response = client.get("/q/Web12345/manage", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 302

    def test_other_customer_is_forbidden(self, client, token_factory):
        headers = {"Authorization": f"Bearer {token_factory(user_id='7')}"}
        response = client.get("/q/Web12345/manage", headers=headers)
        assert response.status_code == 403
        assert "Forbidden" in response.text

    def test_access_rule_is_shared_with_qr_service(self):
        assert redirect_main.can_manage is qr_auth.can_manage

    def test_admin_may_manage_any_code(self, client, token_factory):
        headers = {"Authorization": f"Bearer {token_factory(user_id='1', roles=['admin'])}"}
        assert client.get("/q/Web12345/manage", headers=headers).status_code == 200

    def test_session_cookie(self, client, token_factory):
        client.cookies.set("access_token", token_factory(user_id="42"))
        response = client.get("/q/Web12345/manage")
        assert response.status_code == 200
        assert "Manage QR Destination" in response.text

    def test_post_without_csrf_token(self, client, owner):
        response = client.post("/q/Web12345/manage", data={"target_url": "https://new.cornercafe.com"}, headers=owner)
        assert response.status_code == 400

    def test_csrf_token_is_bound_to_slug_and_user(self):
        user = {"id": "42"}
        token = create_csrf_token("Web12345", user)
        assert verify_csrf_token(token, "Web12345", user)
        assert not verify_csrf_token(token, "Wifi1234", user)
        assert not verify_csrf_token(token, "Web12345", {"id": "7"})
        assert not verify_csrf_token(None, "Web12345", user)

class TestManageEdits:
    def test_update_website_destination(self, client, owner, db):
        token = csrf_from(client.get("/q/Web12345/manage", headers=owner).text)
        response = client.post("/q/Web12345/manage", headers=owner, data={
            "csrf_token": token,
            "target_url": "https://cornercafe.com/specials",
        })
        assert response.status_code == 200
        assert "Updated." in response.text
        assert "no-store" in response.headers["cache-control"]

        record = asyncio.run(db.qr_codes.find_one({"slug": "Web12345"}))
        assert record["target_url"] == "https://cornercafe.com/specials"
        assert client.get("/q/Web12345").headers["location"] == "https://cornercafe.com/specials"

    def test_invalid_website_destination(self, client, owner, db):
        token = csrf_from(client.get("/q/Web12345/manage", headers=owner).text)
        response = client.post("/q/Web12345/manage", headers=owner, data={
            "csrf_token": token,
            "target_url": "javascript:alert(1)",
        })
        assert response.status_code == 200
        assert "Please enter a valid URL." in response.text
        record = asyncio.run(db.qr_codes.find_one({"slug": "Web12345"}))
        assert record["target_url"] == "https://cornercafe.com/menu"

    def test_update_wifi_requests_regeneration(self, client, owner, db, regenerate_calls):
        token = csrf_from(client.get("/q/Wifi1234/manage", headers=owner).text)
        response = client.post("/q/Wifi1234/manage", headers=owner, data={
            "csrf_token": token,
            "wifi_ssid": "Cafe 5G",
            "wifi_auth": "WPA",
            "wifi_password": "newpass",
            "wifi_hidden": "1",
        })
        assert response.status_code == 200
        assert "Updated." in response.text

        record = asyncio.run(db.qr_codes.find_one({"slug": "Wifi1234"}))
        assert record["qr_data"] == "WIFI:T:WPA;S:Cafe 5G;P:newpass;H:true;"
        assert record["payload"]["hidden"] == "true"
        assert record["target_url"] is None

        assert len(regenerate_calls) == 1
        call = regenerate_calls[0]
        assert str(call.url) == f"{settings.QR_SERVICE_URL.rstrip('/')}/api/v1/qrcodes/Wifi1234/regenerate"
        assert call.headers["authorization"] == owner["Authorization"]

    def test_regeneration_failure_is_not_fatal(self, client, owner, db):
        def handler(request):
            raise httpx.ConnectError("qr service down")

        app.http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        try:
            token = csrf_from(client.get("/q/Wifi1234/manage", headers=owner).text)
            response = client.post("/q/Wifi1234/manage", headers=owner, data={
                "csrf_token": token,
                "wifi_ssid": "Cafe",
            })
        finally:
            del app.http_client
        assert response.status_code == 200
        assert "Updated." in response.text

    def test_wifi_ssid_required(self, client, owner, regenerate_calls):
        token = csrf_from(client.get("/q/Wifi1234/manage", headers=owner).text)
        response = client.post("/q/Wifi1234/manage", headers=owner, data={"csrf_token": token, "wifi_ssid": " "})
        assert "SSID is required." in response.text
        assert regenerate_calls == []

    def test_other_payload_types_are_read_only(self, client, owner):
        page = client.get("/q/Card1234/manage", headers=owner).text
        assert "cannot be edited here yet" in page
        response = client.post("/q/Card1234/manage", headers=owner, data={"csrf_token": csrf_from(page)})
        assert "Editing this payload type from the manage page is not yet supported." in response.text
