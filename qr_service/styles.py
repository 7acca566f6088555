import logging
from typing import Any, Dict, List, Mapping, Tuple

from shared.models import OrderLineStyle, QRStyleOptions, VISUAL_STYLES, MODULE_SHAPES
from .qr_utils import NAMED_COLORS, normalize_hex, sanitize_text

logger = logging.getLogger(__name__)

# color key -> (label, hex)
COLOR_MAP: Dict[str, Tuple[str, str]] = {
    'black': ('Black', NAMED_COLORS['black']),
    'blue': ('Blue', NAMED_COLORS['blue']),
    'red': ('Red', NAMED_COLORS['red']),
    'green': ('Green', NAMED_COLORS['green']),
    'pink': ('Pink', NAMED_COLORS['pink']),
    'orange': ('Orange', NAMED_COLORS['orange']),
    'purple': ('Purple', NAMED_COLORS['purple']),
    'light_blue': ('Light Blue', NAMED_COLORS['light_blue']),
    'gold': ('Gold', NAMED_COLORS['gold']),
}

FRAME_STYLES: Dict[str, str] = {
    'none': 'No Frame',
    'classic': 'Classic',
    'rounded': 'Rounded',
    'badge': 'Badge',
    'corner': 'Corner',
}

VISUAL_LABELS: Dict[str, str] = {
    'solid': 'Single solid color',
    'two_tone': 'Two-tone',
    'negative': 'Negative',
    'gradient_linear': 'Gradient - Linear',
    'gradient_radial': 'Gradient - Radial',
    'gradient_multi': 'Gradient - Multi-stop',
    'texture_crosshatch': 'Texture - Crosshatch',
    'texture_halftone': 'Texture - Halftone',
}

SHAPE_LABELS: Dict[str, str] = {
    'square': 'Square',
    'dots': 'Dots',
    'triangles': 'Triangles',
    'diamond': 'Diamond',
}

# posted form field -> OrderLineStyle attribute
STYLE_FORM_FIELDS = {
    'qr_color': 'color',
    'qr_frame': 'frame',
    'qr_caption': 'caption',
    'qr_visual': 'visual',
    'qr_shape': 'shape',
}

def capture_style_fields(form: Mapping[str, Any]) -> OrderLineStyle:
    """Sanitize the style fields posted with an add-to-cart request."""
    values = {}
    for field, attr in STYLE_FORM_FIELDS.items():
        if form.get(field) is not None:
            values[attr] = sanitize_text(form[field])
    return OrderLineStyle(**values)

def display_item_data(style: OrderLineStyle) -> List[Dict[str, str]]:
    """Label/value rows shown for a line item in the cart and at checkout."""
    rows = []
    if style.visual:
        rows.append({'key': 'Visual style', 'value': VISUAL_LABELS.get(style.visual, style.visual)})
    if style.shape:
        rows.append({'key': 'Module shape', 'value': SHAPE_LABELS.get(style.shape, style.shape)})
    if style.frame:
        rows.append({'key': 'Frame', 'value': FRAME_STYLES.get(style.frame, style.frame)})
    if style.color:
        label = COLOR_MAP[style.color][0] if style.color in COLOR_MAP else style.color
        rows.append({'key': 'Color', 'value': label})
    if style.caption:
        rows.append({'key': 'Caption', 'value': style.caption})
    return rows

def get_item_hex(style: OrderLineStyle) -> str:
    entry = COLOR_MAP.get(style.color)
    return entry[1] if entry else ''

def get_item_visual(style: OrderLineStyle) -> str:
    return style.visual if style.visual in VISUAL_STYLES else 'solid'

def get_item_shape(style: OrderLineStyle) -> str:
    return style.shape if style.shape in MODULE_SHAPES else 'square'

def get_item_frame(style: OrderLineStyle) -> str:
    return style.frame if style.frame in FRAME_STYLES else 'none'

def apply_item_style(options: QRStyleOptions, line_style: OrderLineStyle) -> QRStyleOptions:
    """Return generator options with the line item's color, frame, visual and shape."""
    update = {
        'frame_style': get_item_frame(line_style),
        'visual': get_item_visual(line_style),
        'shape': get_item_shape(line_style),
    }
    hex_color = get_item_hex(line_style)
    if hex_color:
        update['color'] = hex_color
    return options.model_copy(update=update)

def line_style_from_options(options: QRStyleOptions) -> OrderLineStyle:
    """Recover catalog keys from stored generator options."""
    hex_color = normalize_hex(options.color)
    color_key = next((key for key, (_, value) in COLOR_MAP.items() if value == hex_color), '')
    return OrderLineStyle(
        color=color_key,
        frame=options.frame_style,
        visual=options.visual,
        shape=options.shape,
        caption=options.caption,
    )

def style_labels(line_style: OrderLineStyle) -> Dict[str, str]:
    """Keys and human labels of a line item style, as printed in the PDF.

    Unknown keys are passed through as their own label.
    """
    labels = {
        'style_color_key': line_style.color,
        'style_color_label': line_style.color,
        'style_frame_key': line_style.frame,
        'style_frame_label': line_style.frame,
        'style_visual_key': line_style.visual,
        'style_visual_label': line_style.visual,
    }
    if line_style.color in COLOR_MAP:
        labels['style_color_label'] = COLOR_MAP[line_style.color][0]
    if line_style.frame in FRAME_STYLES:
        labels['style_frame_label'] = FRAME_STYLES[line_style.frame]
    if line_style.visual in VISUAL_LABELS:
        labels['style_visual_label'] = VISUAL_LABELS[line_style.visual]
    return labels
