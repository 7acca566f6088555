from datetime import datetime

import pytest

from shared.models import Order, QRPdfMeta
from qr_service.pdf import make_pdf, customer_rows, meta_rows, flatten_png
from qr_service.render import generate_png

@pytest.fixture
def order():
    return Order(
        order_id=1042,
        billing_first_name="Jane",
        billing_last_name="Doe",
        billing_email="jane@cornercafe.com",
        payment_method_title="Credit card",
        date_created=datetime(2025, 3, 14, 9, 30),
    )

@pytest.fixture
def meta():
    return QRPdfMeta(
        type="Dynamic / website",
        display="http://localhost:8000/q/AbCd1234",
        dynamic_url="http://localhost:8000/q/AbCd1234",
        manage_url="http://localhost:8000/q/AbCd1234/manage",
        destination="https://cornercafe.com/menu",
        order_id=1042,
        caption="Scan for the menu",
        style_color_label="Blue",
        style_frame_label="Classic",
        style_visual_label="Two-tone",
    )

class TestRows:
    def test_customer_rows_skip_unknown_values(self, order):
        rows = dict(customer_rows(order))
        assert rows["Customer name"] == "Jane Doe"
        assert rows["Email address"] == "jane@cornercafe.com"
        assert rows["Date of purchase"] == "March 14, 2025 09:30"
        assert "Phone number" not in rows

    def test_no_order_no_customer_rows(self):
        assert customer_rows(None) == []

    def test_meta_rows(self, meta):
        rows = meta_rows(meta)
        assert rows[0] == ("Type", "Dynamic / website")
        assert ("Manage URL", meta.manage_url) in rows
        assert ("Visual style", "Two-tone") in rows
        assert rows[-1] == ("Order", "#1042")

    def test_static_meta_rows_are_short(self):
        rows = meta_rows(QRPdfMeta(type="Static / wifi", display="WIFI:T:WPA;S:x;H:false;"))
        assert [label for label, _ in rows] == ["Type", "Payload"]

class TestMakePdf:
    def test_writes_pdf_with_image(self, tmp_path, order, meta):
        png = generate_png("https://cornercafe.com", str(tmp_path / "code.png"), {"caption": "Hi"})
        path = make_pdf(png, meta, str(tmp_path / "out" / "code.pdf"), order)
        assert path == str(tmp_path / "out" / "code.pdf")
        with open(path, "rb") as f:
            assert f.read(4) == b"%PDF"

    def test_missing_image_uses_placeholder(self, tmp_path, meta):
        path = make_pdf(str(tmp_path / "missing.png"), meta.model_dump(), str(tmp_path / "code.pdf"))
        with open(path, "rb") as f:
            assert f.read(4) == b"%PDF"

    def test_unreadable_image_is_ignored(self, tmp_path):
        broken = tmp_path / "broken.png"
        broken.write_bytes(b"not a png")
        assert flatten_png(str(broken)) is None

    def test_failure_returns_path(self, tmp_path, meta):
        blocker = tmp_path / "blocker"
        blocker.write_text("file")
        path = str(blocker / "code.pdf")
        assert make_pdf("", meta, path) == path
