"""Styled QR PNG rendering.

The pipeline is a chain of in-memory filters over a Pillow image:

1. the plain symbol is drawn by ``qrcode`` (dark on white),
2. the module size is detected back from the raster,
3. every module cell is repainted according to the visual style and shape,
4. an optional frame is drawn around the symbol,
5. an optional caption strip is appended below it.

Each step after the base render is best effort: a failure is logged and the
image from the previous step is kept.
"""
import logging
import math
import os
from typing import Callable, List, Optional, Tuple, Union

import qrcode
from PIL import Image, ImageDraw, ImageFont

from shared.config import settings
from shared.models import QRStyleOptions
from .qr_utils import color_to_rgb, normalize_hex

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]

WHITE: RGB = (255, 255, 255)
BLACK: RGB = (0, 0, 0)

GRADIENT_VISUALS = ('gradient_linear', 'gradient_radial', 'gradient_multi')
TEXTURE_VISUALS = ('texture_crosshatch', 'texture_halftone')

CAPTION_STRIP_HEIGHT = 44
CAPTION_FONT_SIZE = 23  # 17pt at 96 dpi
CAPTION_FONT_CANDIDATES = (
    'arial/arialbd.ttf',
    'arial/Arial Bold.ttf',
    'dejavu-fonts-ttf-2.37/DejaVuSans-Bold.ttf',
    'DejaVuSans-Bold.ttf',
)
SYSTEM_FONT_CANDIDATES = (
    '/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf',
    '/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf',
    '/Library/Fonts/Arial Bold.ttf',
    'C:\\Windows\\Fonts\\arialbd.ttf',
)

# Pixels at or below this alpha count as transparent
TRANSPARENT_ALPHA = 14

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))

def blend(a: int, b: int, t: float) -> int:
    return round_half_up(a + (b - a) * max(0.0, min(1.0, t)))

def blend_rgb(start: RGB, end: RGB, t: float) -> RGB:
    return tuple(blend(a, b, t) for a, b in zip(start, end))

def lighten(color: RGB, t: float) -> RGB:
    return blend_rgb(color, WHITE, t)

def darken(color: RGB, t: float) -> RGB:
    return blend_rgb(color, BLACK, t)

def is_dark(pixel) -> bool:
    """A pixel is dark when it is opaque enough and any channel is below 128."""
    if isinstance(pixel, int):
        return pixel < 128
    if len(pixel) == 4 and pixel[3] <= TRANSPARENT_ALPHA:
        return False
    r, g, b = pixel[:3]
    return r < 128 or g < 128 or b < 128

class ModulePalette:
    """Background and per-pixel module colors of a visual style."""

    def __init__(self, visual: str, color: RGB, width: int, height: int):
        self.visual = visual
        self.color = color
        self.width = width
        self.height = height

        self.background = WHITE
        self.module = color
        if visual == 'two_tone':
            self.background = lighten(color, 0.85)
            self.module = darken(color, 0.15)
        elif visual == 'negative':
            self.background = color
            self.module = WHITE

    def module_color(self, x: int, y: int) -> RGB:
        if self.visual in GRADIENT_VISUALS:
            return self._gradient(x, y)
        if self.visual in TEXTURE_VISUALS:
            return self._texture(x, y)
        return self.module

    def _gradient(self, x: int, y: int) -> RGB:
        w, h, color = self.width, self.height, self.color

        if self.visual == 'gradient_linear':
            t = x / max(1, w - 1) if w > 1 else 0.0
            return blend_rgb(color, lighten(color, 0.35), t)

        if self.visual == 'gradient_radial':
            cx = (w - 1) / 2
            cy = (h - 1) / 2
            dist = math.hypot(x - cx, y - cy)
            max_dist = math.hypot(cx, cy)
            t = min(1.0, dist / max_dist) if max_dist > 0 else 0.0
            return blend_rgb(lighten(color, 0.45), color, t)

        # gradient_multi: color -> lighter at mid height -> darker at the bottom
        t = y / max(1, h - 1) if h > 1 else 0.0
        middle = lighten(color, 0.30)
        if t < 0.5:
            return blend_rgb(color, middle, t / 0.5)
        return blend_rgb(middle, darken(color, 0.20), (t - 0.5) / 0.5)

    def _texture(self, x: int, y: int) -> RGB:
        if self.visual == 'texture_crosshatch':
            if x % 6 == 0 or y % 6 == 0:
                return darken(self.color, 0.25)
            return self.color

        dot = ((x & 3) == 0 and (y & 3) == 0) or (((x + 2) & 3) == 0 and ((y + 2) & 3) == 0)
        return lighten(self.color, 0.35) if dot else self.color

def render_base_image(data: str, style: QRStyleOptions) -> Image.Image:
    """Draw the plain symbol, dark modules on white, as an RGBA image."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=getattr(qrcode.constants, f"ERROR_CORRECT_{style.ecc}"),
        box_size=style.scale,
        border=style.margin,
    )
    qr.add_data(data)
    qr.make(fit=True)

    qr_image = qr.make_image(fill_color="black", back_color="white")
    if not isinstance(qr_image, Image.Image):
        qr_image = qr_image.get_image()
    return qr_image.convert('RGBA')

def detect_module_size(image: Image.Image, fallback: int = 10) -> int:
    """Measure the module size from the top-left finder pattern.

    The first dark pixel in row-major order is the top-left corner of the
    finder pattern, whose top edge is seven modules wide.
    """
    fallback = max(1, fallback)
    width, height = image.size
    if width <= 0 or height <= 0:
        return fallback

    pixels = image.load()
    for y in range(height):
        for x in range(width):
            if not is_dark(pixels[x, y]):
                continue
            run = 0
            while x + run < width and is_dark(pixels[x + run, y]):
                run += 1
            size = round_half_up(run / 7)
            return size if size >= 1 else fallback
    return fallback

def module_padding(shape: str, visual: str, module_size: int) -> int:
    if visual == 'negative':
        return 0
    if shape == 'square':
        return max(0, int(math.floor(module_size * 0.05)))
    return max(0, int(math.floor(module_size * 0.18)))

def draw_module(draw: ImageDraw.ImageDraw, shape: str, box: Tuple[int, int, int, int],
                pad: int, color: RGB, upward: bool = True):
    left, top, right, bottom = box
    center_x = round_half_up((left + right) / 2)
    center_y = round_half_up((top + bottom) / 2)

    if shape == 'dots':
        width = max(1, right - left + 1 - pad * 2)
        height = max(1, bottom - top + 1 - pad * 2)
        x0 = center_x - width // 2
        y0 = center_y - height // 2
        draw.ellipse([x0, y0, x0 + width - 1, y0 + height - 1], fill=color)
    elif shape == 'diamond':
        draw.polygon([
            (center_x, top + pad),
            (right - pad, center_y),
            (center_x, bottom - pad),
            (left + pad, center_y),
        ], fill=color)
    elif shape == 'triangles':
        if upward:
            points = [(center_x, top + pad), (right - pad, bottom - pad), (left + pad, bottom - pad)]
        else:
            points = [(left + pad, top + pad), (right - pad, top + pad), (center_x, bottom - pad)]
        draw.polygon(points, fill=color)
    else:
        rect_left = max(left, min(right, left + pad))
        rect_top = max(top, min(bottom, top + pad))
        rect_right = max(rect_left, min(right, right - pad))
        rect_bottom = max(rect_top, min(bottom, bottom - pad))
        draw.rectangle([rect_left, rect_top, rect_right, rect_bottom], fill=color)

def repaint_modules(image: Image.Image, style: QRStyleOptions) -> Image.Image:
    """Repaint every module cell with the style's colors and module shape."""
    width, height = image.size
    color = color_to_rgb(style.color)
    palette = ModulePalette(style.visual, color, width, height)

    module_size = detect_module_size(image, style.scale)
    modules_x = max(1, round_half_up(width / module_size))
    modules_y = max(1, round_half_up(height / module_size))
    pad = module_padding(style.shape, style.visual, module_size)

    logger.info(f"Repainting {modules_x}x{modules_y} modules of {module_size}px "
                f"(visual={style.visual}, shape={style.shape})")

    source = image.load()
    canvas = Image.new('RGB', (width, height), WHITE)
    draw = ImageDraw.Draw(canvas)

    for my in range(modules_y):
        for mx in range(modules_x):
            left = mx * module_size
            top = my * module_size
            right = max(left, min(width - 1, (mx + 1) * module_size - 1))
            bottom = max(top, min(height - 1, (my + 1) * module_size - 1))

            cx = min(width - 1, round_half_up((left + right) / 2))
            cy = min(height - 1, round_half_up((top + bottom) / 2))

            draw.rectangle([left, top, right, bottom], fill=palette.background)
            if is_dark(source[cx, cy]):
                draw_module(
                    draw,
                    style.shape,
                    (left, top, right, bottom),
                    pad,
                    palette.module_color(cx, cy),
                    upward=(mx + my) % 2 == 0,
                )

    return canvas

def apply_frame(image: Image.Image, frame: str, hex_color: str, style: QRStyleOptions) -> Image.Image:
    """Place the symbol on a padded white canvas and draw the frame around it."""
    image = image.convert('RGB')
    w, h = image.size
    pad = style.frame_padding
    border = style.frame_border
    radius = style.frame_radius

    cw = w + pad * 2
    ch = h + pad * 2
    canvas = Image.new('RGB', (cw, ch), WHITE)
    draw = ImageDraw.Draw(canvas)
    color = color_to_rgb(hex_color)

    if frame == 'classic':
        draw.rectangle([0, 0, cw - 1, ch - 1], fill=color)
        draw.rectangle([border, border, cw - 1 - border, ch - 1 - border], fill=WHITE)
    elif frame == 'rounded':
        draw.rounded_rectangle([0, 0, cw - 1, ch - 1], radius=radius, fill=color)
        draw.rounded_rectangle(
            [border, border, cw - 1 - border, ch - 1 - border],
            radius=max(4, radius - border),
            fill=WHITE,
        )
    elif frame == 'badge':
        diameter = min(cw, ch) - max(2, border)
        cx = cw // 2
        cy = ch // 2
        r = diameter // 2
        draw.ellipse([cx - r, cy - r, cx - r + diameter - 1, cy - r + diameter - 1], fill=color)
        ring = max(12, pad - 6)
        inner = max(0, diameter - 2 * ring)
        if inner > 0:
            ir = inner // 2
            draw.ellipse([cx - ir, cy - ir, cx - ir + inner - 1, cy - ir + inner - 1], fill=WHITE)
    elif frame == 'corner':
        tab = max(18, int(pad * 0.8))
        draw.polygon([(0, 0), (tab, 0), (0, tab)], fill=color)
        draw.polygon([(cw, 0), (cw - tab, 0), (cw, tab)], fill=color)
        draw.polygon([(0, ch), (0, ch - tab), (tab, ch)], fill=color)
        draw.polygon([(cw, ch), (cw - tab, ch), (cw, ch - tab)], fill=color)
    else:
        logger.warning(f"Unknown frame style '{frame}', padding only")

    canvas.paste(image, (pad, pad))
    return canvas

def find_caption_font() -> Optional[str]:
    candidates: List[str] = [os.path.join(settings.FONT_DIR, name) for name in CAPTION_FONT_CANDIDATES]
    candidates.extend(SYSTEM_FONT_CANDIDATES)
    for path in candidates:
        if os.path.exists(path):
            return path
    return None

def load_caption_font():
    font_path = find_caption_font()
    if font_path:
        try:
            return ImageFont.truetype(font_path, CAPTION_FONT_SIZE)
        except OSError as e:
            logger.warning(f"Could not load caption font {font_path}: {str(e)}")
    logger.info("No TrueType caption font found, using Pillow default font")
    return ImageFont.load_default()

def truncate_caption(caption: str) -> str:
    return (caption or '').strip()[:settings.CAPTION_MAX_LENGTH]

def add_caption(image: Image.Image, caption: str) -> Image.Image:
    """Append a white strip under the image with the caption centered in black."""
    caption = truncate_caption(caption)
    if not caption:
        return image

    image = image.convert('RGB')
    w, h = image.size
    canvas = Image.new('RGB', (w, h + CAPTION_STRIP_HEIGHT), WHITE)
    canvas.paste(image, (0, 0))

    draw = ImageDraw.Draw(canvas)
    font = load_caption_font()
    left, top, right, bottom = draw.textbbox((0, 0), caption, font=font)
    text_w = right - left
    x = max(0, (w - text_w) // 2) - left
    y = h + 10 - top
    draw.text((x, y), caption, fill=BLACK, font=font)
    return canvas

def _run_step(name: str, image: Image.Image, step: Callable[[Image.Image], Image.Image]) -> Image.Image:
    try:
        return step(image)
    except Exception as e:
        logger.error(f"QR {name} step failed: {str(e)}")
        logger.error("Stack trace:", exc_info=True)
        return image

def coerce_style(style: Union[QRStyleOptions, dict, None]) -> QRStyleOptions:
    if isinstance(style, QRStyleOptions):
        return style
    return QRStyleOptions(**(style or {}))

def render_styled_image(data: str, style: Union[QRStyleOptions, dict, None] = None) -> Image.Image:
    """Render the full pipeline in memory. Only a base render failure raises."""
    style = coerce_style(style)
    hex_color = normalize_hex(style.color)
    if hex_color:
        logger.info(f"Rendering QR with color {hex_color}")
    else:
        logger.info("Rendering QR without a valid color (black)")

    image = render_base_image(data, style)
    image = _run_step('recolor', image, lambda im: repaint_modules(im, style))

    frame = (style.frame_style or 'none').lower()
    if frame != 'none':
        image = _run_step('frame', image, lambda im: apply_frame(im, frame, hex_color or '#000000', style))

    if style.caption:
        image = _run_step('caption', image, lambda im: add_caption(im, style.caption))

    return image.convert('RGB')

def generate_png(data: str, save_path: str, style: Union[QRStyleOptions, dict, None] = None) -> str:
    """Render a styled QR code to ``save_path``.

    Failures are logged and the path is returned unchanged so callers can
    carry on with the rest of the order.
    """
    try:
        image = render_styled_image(data, style)
    except Exception as e:
        logger.error(f"QR render failed for {save_path}: {str(e)}")
        logger.error("Stack trace:", exc_info=True)
        return save_path

    try:
        directory = os.path.dirname(save_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        image.save(save_path, format='PNG', compress_level=6)
    except Exception as e:
        logger.error(f"Could not write PNG {save_path}: {str(e)}")
        return save_path

    logger.info(f"PNG generated at: {save_path}")
    return save_path
