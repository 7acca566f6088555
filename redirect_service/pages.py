"""HTML pages served on the scan and manage routes."""
import json
from html import escape
from typing import Optional

from shared.config import settings
from shared.models import QRCodeRecord

PAGE_STYLE = """
  body{font:16px/1.5 system-ui,-apple-system,Segoe UI,Roboto,Helvetica,Arial,sans-serif;padding:24px;background:#f6f7f9}
  .wrap{max-width:720px;margin:0 auto}
  .card{background:#fff;border:1px solid #e5e7eb;border-radius:8px;padding:20px}
  .row{display:flex;gap:12px;margin-top:12px}
  label{display:block;margin:8px 0 4px;font-weight:600}
  input,select{width:100%;padding:10px;border:1px solid #d1d5db;border-radius:6px}
  input[type=checkbox]{width:auto}
  .btn{display:inline-block;background:#111;color:#fff;border:none;border-radius:6px;padding:10px 14px;cursor:pointer;text-decoration:none}
  .msg{padding:10px;border-radius:6px;margin-bottom:10px}
  .ok{background:#e8f5e9;border:1px solid #a5d6a7}
  .err{background:#fdecea;border:1px solid #f5c2c7}
  code{background:#f6f8fa;padding:2px 6px;border-radius:4px}
"""

WIFI_SECURITY_OPTIONS = (
    ('WPA', 'WPA/WPA2/WPA3'),
    ('WEP', 'WEP'),
    ('nopass', 'Open (no password)'),
)

def _document(title: str, body: str) -> str:
    return (
        '<!doctype html>\n'
        '<meta charset="utf-8">\n'
        '<meta name="viewport" content="width=device-width,initial-scale=1">\n'
        f'<title>{escape(title)}</title>\n'
        f'<style>{PAGE_STYLE}</style>\n'
        f'{body}'
    )

def message_page(title: str, message: Optional[str] = None) -> str:
    body = f'<h1>{escape(title)}</h1>'
    if message:
        body += f'<p>{escape(message)}</p>'
    return _document(title, body)

def not_found_page() -> str:
    return message_page('QR not found')

def forbidden_page() -> str:
    return message_page('Forbidden', 'You do not have access to edit this QR.')

def bad_request_page() -> str:
    return message_page('Bad Request')

def redirect_page(destination: str) -> str:
    """Fallback body of a scan redirect for scanner apps that ignore Location."""
    attr = escape(destination, quote=True)
    script_url = json.dumps(destination).replace('</', '<\\/')
    return (
        '<!doctype html><meta charset="utf-8"><title>Redirecting...</title>'
        f'<meta http-equiv="refresh" content="0;url={attr}">'
        '<p style="font:16px/1.5 system-ui,-apple-system,Segoe UI,Roboto,Arial">'
        f'Redirecting to <a href="{attr}">{escape(destination)}</a>...</p>'
        f'<script>try{{location.replace({script_url})}}catch(e){{location.href={script_url}}};</script>'
    )

def info_page(record: QRCodeRecord) -> str:
    """Landing page for codes that do not redirect."""
    manage = escape(settings.manage_url(record.slug), quote=True)
    payload = ''
    if record.qr_data:
        payload = f'<p><strong>Payload:</strong> <code>{escape(record.qr_data)}</code></p>'
    body = f"""<div class="wrap">
  <h1>QR Info</h1>
  <div class="card">
    <p><strong>Slug:</strong> <code>{escape(record.slug)}</code></p>
    <p><strong>Type:</strong> {escape(record.type or '')} / {escape(record.payload_type or 'website')}</p>
    {payload}
    <p><a class="btn" href="{manage}">Manage</a></p>
  </div>
</div>"""
    return _document('QR Info', body)

def _website_fields(record: QRCodeRecord) -> str:
    value = escape(record.target_url or '', quote=True)
    return f"""
      <label for="target_url">Destination URL</label>
      <input type="url" name="target_url" id="target_url" placeholder="https://example.com/new" value="{value}" required>"""

def _wifi_fields(record: QRCodeRecord) -> str:
    payload = record.payload or {}
    auth = str(payload.get('auth') or 'WPA')
    options = ''.join(
        f'<option value="{key}"{" selected" if auth.upper() == key.upper() else ""}>{label}</option>'
        for key, label in WIFI_SECURITY_OPTIONS
    )
    checked = ' checked' if str(payload.get('hidden', 'false')) == 'true' else ''
    return f"""
      <label for="wifi_ssid">Wi-Fi SSID</label>
      <input type="text" name="wifi_ssid" id="wifi_ssid" value="{escape(str(payload.get('ssid', '')), quote=True)}" required>
      <label for="wifi_auth">Security</label>
      <select name="wifi_auth" id="wifi_auth">{options}</select>
      <label for="wifi_password">Password</label>
      <input type="text" name="wifi_password" id="wifi_password" value="{escape(str(payload.get('password', '')), quote=True)}">
      <label><input type="checkbox" name="wifi_hidden" value="1"{checked}> Hidden network</label>"""

def manage_page(record: QRCodeRecord, csrf_token: str, updated: bool = False, error: str = '') -> str:
    if record.payload_type == 'website':
        title = 'Manage QR Destination'
        fields = _website_fields(record)
    elif record.payload_type == 'wifi':
        title = 'Manage Wi-Fi QR'
        fields = _wifi_fields(record)
    else:
        title = 'Manage QR'
        fields = '<p>This payload type cannot be edited here yet.</p>'

    messages = ''
    if updated:
        messages += '<div class="msg ok">Updated.</div>'
    if error:
        messages += f'<div class="msg err">{escape(error)}</div>'

    home = escape(f"{settings.SITE_URL.rstrip('/')}/", quote=True)
    body = f"""<div class="wrap">
  <h1>{escape(title)}</h1>
  <p>QR slug: <code>{escape(record.slug)}</code></p>
  <div class="card">
    {messages}
    <form method="post">
      <input type="hidden" name="csrf_token" value="{escape(csrf_token, quote=True)}">{fields}
      <div class="row">
        <button class="btn" type="submit">Save</button>
        <a class="btn" style="background:#555;margin-left:8px" href="{home}">Back to site</a>
      </div>
    </form>
  </div>
</div>"""
    return _document(f"{settings.COMPANY_NAME} - Manage QR", body)
