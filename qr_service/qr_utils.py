import logging
import re
import uuid
from typing import Any, Dict, Tuple
from urllib.parse import quote, urlsplit

from email_validator import validate_email, EmailNotValidError

logger = logging.getLogger(__name__)

# Catalog color names accepted wherever a hex value is expected
NAMED_COLORS = {
    'black': '#000000',
    'blue': '#0057FF',
    'red': '#E53935',
    'green': '#2E7D32',
    'pink': '#D81B60',
    'orange': '#F97316',
    'purple': '#7C3AED',
    'light_blue': '#38BDF8',
    'gold': '#D4AF37',
}

HEX_PATTERN = re.compile(r'^#[0-9A-Fa-f]{6}$')
TAG_PATTERN = re.compile(r'<[^>]*>')
WHITESPACE_PATTERN = re.compile(r'[\r\n\t ]+')
HOST_PORT_PATTERN = re.compile(r'^[a-z0-9.-]+:\d+(?:[/?#]|$)', re.IGNORECASE)

def validate_color(color: tuple) -> bool:
    """Validate RGB color tuple"""
    return (
        isinstance(color, tuple) and
        len(color) == 3 and
        all(isinstance(c, int) and 0 <= c <= 255 for c in color)
    )

def normalize_hex(color) -> str:
    """Normalize "#RRGGBB", "RRGGBB" or a catalog name to "#RRGGBB"; "" when invalid."""
    c = str(color or '').strip()
    if not c:
        return ''
    named = NAMED_COLORS.get(c.lower())
    if named:
        return named
    if not c.startswith('#'):
        c = '#' + c
    if not HEX_PATTERN.match(c):
        return ''
    return c.upper()

def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    """Convert hex color to RGB tuple."""
    try:
        hex_color = hex_color.lstrip('#')
        rgb = tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))
        if not validate_color(rgb):
            raise ValueError(f"Invalid RGB values from hex color: {hex_color}")
        return rgb
    except Exception as e:
        logger.error(f"Error converting hex to RGB: {str(e)}")
        raise ValueError(f"Invalid hex color format: {hex_color}")

def color_to_rgb(color, default: str = '#000000') -> Tuple[int, int, int]:
    """RGB for a user supplied color, falling back to black when it is malformed."""
    return hex_to_rgb(normalize_hex(color) or default)

def sanitize_text(value) -> str:
    """Strip tags, collapse whitespace and trim a single-line form value."""
    if value is None:
        return ''
    text = TAG_PATTERN.sub('', str(value))
    return WHITESPACE_PATTERN.sub(' ', text).strip()

def sanitize_url(value) -> str:
    """Return an http(s) URL or "" when the value cannot be one."""
    url = str(value or '').strip()
    if not url or any(c in url for c in ' \r\n\t<>"'):
        return ''
    parts = urlsplit(url)
    # "host:port/path" parses with the host as scheme
    if not parts.scheme or '.' in parts.scheme or HOST_PORT_PATTERN.match(url):
        if url.startswith('/'):
            return ''
        url = 'http://' + url
        parts = urlsplit(url)
    if parts.scheme.lower() not in ('http', 'https') or not parts.netloc:
        return ''
    return url

def sanitize_email(value) -> str:
    address = str(value or '').strip()
    if not address:
        return ''
    try:
        return validate_email(address, check_deliverability=False).normalized
    except EmailNotValidError:
        logger.info(f"Dropping invalid email address: {address}")
        return ''

def _str(data: Dict[str, Any], key: str, default: str = '') -> str:
    value = data.get(key, default)
    return default if value is None else str(value)

def escape_wifi(value: str) -> str:
    for ch in (';', ',', ':', '"'):
        value = value.replace(ch, '\\' + ch)
    return value

def build_wifi_payload(data: Dict[str, Any]) -> str:
    auth = _str(data, 'auth', 'WPA').upper() or 'WPA'
    ssid = _str(data, 'ssid')
    password = _str(data, 'password')
    hidden = 'false' if data.get('hidden') in (None, False, 0, '', '0', 'false') else 'true'
    if auth == 'NOPASS':
        password = ''
    password_part = f"P:{escape_wifi(password)};" if password else ''
    return f"WIFI:T:{auth};S:{escape_wifi(ssid)};{password_part}H:{hidden};"

def build_contact_vcard(data: Dict[str, Any]) -> str:
    first = _str(data, 'first')
    last = _str(data, 'last')
    phone = _str(data, 'phone')
    email = sanitize_email(data.get('email'))

    vcard_lines = [
        "BEGIN:VCARD",
        "VERSION:3.0",
        f"N:{last};{first};;;",
        f"FN:{first} {last}",
    ]
    if phone:
        vcard_lines.append(f"TEL;TYPE=CELL:{phone}")
    if email:
        vcard_lines.append(f"EMAIL:{email}")
    vcard_lines.append("END:VCARD")
    return "\n".join(vcard_lines)

BUSINESS_FIELDS = ('org', 'title', 'phone', 'email', 'website',
                   'street', 'city', 'region', 'postal', 'country')

def build_business_vcard(data: Dict[str, Any]) -> str:
    org = _str(data, 'org')
    title = _str(data, 'title')
    phone = _str(data, 'phone')
    email = sanitize_email(data.get('email'))
    website = sanitize_url(data.get('website'))

    vcard_lines = [
        "BEGIN:VCARD",
        "VERSION:3.0",
        f"FN:{org}",
        f"ORG:{org}",
    ]
    if title:
        vcard_lines.append(f"TITLE:{title}")
    if phone:
        vcard_lines.append(f"TEL:{phone}")
    if email:
        vcard_lines.append(f"EMAIL:{email}")
    if website:
        vcard_lines.append(f"URL:{website}")

    address = [_str(data, field) for field in ('street', 'city', 'region', 'postal', 'country')]
    if any(address):
        vcard_lines.append(f"ADR;TYPE=WORK:;;{';'.join(address)}")

    vcard_lines.append("END:VCARD")
    return "\n".join(vcard_lines)

def _query(pairs) -> str:
    qs = [f"{key}={quote(str(value), safe='')}" for key, value in pairs if value]
    return '?' + '&'.join(qs) if qs else ''

def build_ical_event(data: Dict[str, Any]) -> str:
    summary = _str(data, 'summary', 'Event').strip() or 'Event'
    start = re.sub(r'[^0-9TZ]', '', _str(data, 'start'), flags=re.IGNORECASE)
    end = re.sub(r'[^0-9TZ]', '', _str(data, 'end'), flags=re.IGNORECASE)
    uid = f"qr{uuid.uuid4().hex}"

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"SUMMARY:{summary}",
    ]
    if start:
        lines.append(f"DTSTART:{start}")
    if end:
        lines.append(f"DTEND:{end}")
    lines.extend(["END:VEVENT", "END:VCALENDAR"])
    return "\n".join(lines)

def build_qr_data(payload_type: str, data: Dict[str, Any]) -> str:
    """Build the string encoded in the QR symbol for a payload type."""
    data = data or {}

    if payload_type == 'website':
        return sanitize_url(data.get('url'))

    if payload_type == 'wifi':
        return build_wifi_payload(data)

    if payload_type == 'contact':
        return build_contact_vcard(data)

    if payload_type == 'business':
        # Plain text entered in the storefront "Text" field
        if not any(data.get(field) for field in BUSINESS_FIELDS):
            return _str(data, 'text')
        return build_business_vcard(data)

    if payload_type == 'sms':
        to = re.sub(r'[^0-9+]', '', _str(data, 'to'))
        return f"sms:{to}{_query([('body', data.get('body'))])}"

    if payload_type == 'email':
        to = sanitize_email(data.get('to'))
        query = _query([('subject', data.get('subject')), ('body', data.get('body'))])
        return f"mailto:{to}{query}"

    if payload_type == 'ical':
        return build_ical_event(data)

    if payload_type == 'geo':
        lat = _str(data, 'lat').strip()
        lon = _str(data, 'lon').strip()
        return f"geo:{lat},{lon}"

    # payment links and anything unknown are encoded as a URL
    return sanitize_url(data.get('url'))
