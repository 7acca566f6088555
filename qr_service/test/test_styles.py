from shared.models import OrderLineStyle, QRStyleOptions
from qr_service.styles import (
    capture_style_fields, display_item_data, get_item_hex, get_item_visual, get_item_shape,
    get_item_frame, apply_item_style, line_style_from_options, style_labels,
)

class TestCaptureStyle:
    def test_capture_sanitizes_fields(self):
        style = capture_style_fields({
            "qr_color": " blue ",
            "qr_frame": "<b>classic</b>",
            "qr_caption": "Scan me",
            "qr_visual": "two_tone",
            "qr_shape": "dots",
            "unrelated": "x",
        })
        assert style == OrderLineStyle(color="blue", frame="classic", caption="Scan me",
                                       visual="two_tone", shape="dots")

    def test_missing_fields_stay_empty(self):
        assert capture_style_fields({}) == OrderLineStyle()

    def test_display_rows(self):
        rows = display_item_data(OrderLineStyle(color="light_blue", frame="badge", visual="gradient_radial",
                                                shape="diamond", caption="Hi"))
        assert rows == [
            {"key": "Visual style", "value": "Gradient - Radial"},
            {"key": "Module shape", "value": "Diamond"},
            {"key": "Frame", "value": "Badge"},
            {"key": "Color", "value": "Light Blue"},
            {"key": "Caption", "value": "Hi"},
        ]

    def test_display_passes_unknown_keys_through(self):
        rows = display_item_data(OrderLineStyle(color="teal"))
        assert rows == [{"key": "Color", "value": "teal"}]

class TestResolution:
    def test_known_values(self):
        style = OrderLineStyle(color="red", frame="rounded", visual="negative", shape="triangles")
        assert get_item_hex(style) == "#E53935"
        assert get_item_frame(style) == "rounded"
        assert get_item_visual(style) == "negative"
        assert get_item_shape(style) == "triangles"

    def test_fallbacks(self):
        style = OrderLineStyle(color="teal", frame="fancy", visual="glitter", shape="star")
        assert get_item_hex(style) == ""
        assert get_item_frame(style) == "none"
        assert get_item_visual(style) == "solid"
        assert get_item_shape(style) == "square"

    def test_apply_item_style_keeps_other_options(self):
        options = QRStyleOptions(scale=8, margin=2, caption="Menu")
        result = apply_item_style(options, OrderLineStyle(color="green", frame="classic", visual="two_tone"))
        assert result.color == "#2E7D32"
        assert result.frame_style == "classic"
        assert result.visual == "two_tone"
        assert result.shape == "square"
        assert (result.scale, result.margin, result.caption) == (8, 2, "Menu")

    def test_apply_item_style_without_color_keeps_existing(self):
        options = QRStyleOptions(color="#123456")
        assert apply_item_style(options, OrderLineStyle()).color == "#123456"

class TestLabels:
    def test_labels(self):
        labels = style_labels(OrderLineStyle(color="pink", frame="corner", visual="texture_halftone"))
        assert labels == {
            "style_color_key": "pink",
            "style_color_label": "Pink",
            "style_frame_key": "corner",
            "style_frame_label": "Corner",
            "style_visual_key": "texture_halftone",
            "style_visual_label": "Texture - Halftone",
        }

    def test_line_style_round_trips_catalog_keys(self):
        options = apply_item_style(QRStyleOptions(caption="Hi"),
                                   OrderLineStyle(color="gold", frame="badge", visual="negative", shape="dots"))
        assert line_style_from_options(options) == OrderLineStyle(
            color="gold", frame="badge", visual="negative", shape="dots", caption="Hi")
