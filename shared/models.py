from pydantic import BaseModel, Field, ConfigDict, BeforeValidator, field_validator
from typing import Optional, Dict, Any, List, Annotated
from datetime import datetime

# Mongo ObjectIds are exposed as plain strings
PyObjectId = Annotated[str, BeforeValidator(str)]

ERROR_CORRECTION_LEVELS = ('L', 'M', 'Q', 'H')
VISUAL_STYLES = (
    'solid', 'two_tone', 'negative',
    'gradient_linear', 'gradient_radial', 'gradient_multi',
    'texture_crosshatch', 'texture_halftone',
)
MODULE_SHAPES = ('square', 'dots', 'triangles', 'diamond')
QR_TYPES = ('static', 'dynamic')
CART_PAYLOAD_TYPES = ('website', 'wifi', 'contact', 'business')
# Roles allowed to manage any customer's codes
MANAGER_ROLES = ('admin', 'editor')

class QRStyleOptions(BaseModel):
    """Rendering options for a styled QR PNG.

    Malformed values never raise: they fall back to the defaults so a bad
    order line still produces a plain black QR code.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "color": "#0057FF",
                "frame_style": "rounded",
                "visual": "two_tone",
                "shape": "dots",
                "caption": "Scan me",
                "ecc": "H",
                "scale": 8,
                "margin": 2
            }
        }
    )

    color: str = Field(default="", description="Module color: #RRGGBB or a catalog color name")
    frame_style: str = Field(default="none", description="Frame: none, classic, rounded, badge or corner")
    visual: str = Field(default="solid", description="Visual style used to repaint the modules")
    shape: str = Field(default="square", description="Module shape: square, dots, triangles or diamond")
    caption: str = Field(default="", description="Caption printed under the QR code")
    ecc: str = Field(default="H", description="Error correction level: L, M, Q or H")
    scale: int = Field(default=10, description="Pixels per module")
    margin: int = Field(default=2, description="Quiet zone in modules")
    frame_padding: int = 18
    frame_border: int = 12
    frame_radius: int = 20

    @field_validator('color', 'frame_style', 'caption', mode='before')
    @classmethod
    def coerce_text(cls, v):
        return '' if v is None else str(v).strip()

    @field_validator('visual', mode='before')
    @classmethod
    def validate_visual(cls, v):
        v = str(v or '').strip().lower()
        return v if v in VISUAL_STYLES else 'solid'

    @field_validator('shape', mode='before')
    @classmethod
    def validate_shape(cls, v):
        v = str(v or '').strip().lower()
        return v if v in MODULE_SHAPES else 'square'

    @field_validator('ecc', mode='before')
    @classmethod
    def validate_ecc(cls, v):
        v = str(v or '').strip().upper()
        return v if v in ERROR_CORRECTION_LEVELS else 'H'

    @field_validator('scale', mode='before')
    @classmethod
    def validate_scale(cls, v):
        try:
            v = int(v)
        except (TypeError, ValueError):
            return 10
        return v if v >= 1 else 10

    @field_validator('margin', 'frame_padding', 'frame_border', 'frame_radius', mode='before')
    @classmethod
    def validate_non_negative(cls, v, info):
        default = cls.model_fields[info.field_name].default
        try:
            v = int(v)
        except (TypeError, ValueError):
            return default
        return v if v >= 0 else default

class OrderLineStyle(BaseModel):
    """Style choices stored as order-item metadata (catalog keys, not hex values)."""
    color: str = ""
    frame: str = ""
    visual: str = ""
    shape: str = ""
    caption: str = ""

class QRLineItemMeta(BaseModel):
    type: str = "static"
    payload_type: str = "website"
    payload: Dict[str, Any] = Field(default_factory=dict)
    caption: str = ""

class OrderLineItem(BaseModel):
    item_id: int
    name: str = ""
    qr: Optional[QRLineItemMeta] = None
    style: OrderLineStyle = Field(default_factory=OrderLineStyle)
    pdf_path: Optional[str] = None

class Order(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "order_id": 1042,
                "customer_id": "507f1f77bcf86cd799439011",
                "billing_first_name": "Jane",
                "billing_last_name": "Doe",
                "billing_email": "jane@example.com",
                "payment_method_title": "Credit card",
                "items": [
                    {
                        "item_id": 7,
                        "qr": {"type": "dynamic", "payload_type": "website",
                               "payload": {"url": "https://example.com"}},
                        "style": {"color": "blue", "frame": "classic"}
                    }
                ]
            }
        }
    )

    order_id: int
    customer_id: Optional[str] = None
    status: str = "completed"
    billing_first_name: str = ""
    billing_last_name: str = ""
    billing_phone: str = ""
    billing_email: str = ""
    payment_method_title: str = ""
    date_created: Optional[datetime] = None
    items: List[OrderLineItem] = Field(default_factory=list)

    @property
    def billing_full_name(self) -> str:
        return f"{self.billing_first_name} {self.billing_last_name}".strip()

class QRPdfMeta(BaseModel):
    type: str = ""
    display: str = ""
    dynamic_url: str = ""
    manage_url: str = ""
    destination: str = ""
    order_id: Optional[int] = None
    caption: str = ""
    style_color_key: str = ""
    style_color_label: str = ""
    style_frame_key: str = ""
    style_frame_label: str = ""
    style_visual_key: str = ""
    style_visual_label: str = ""

class QRCodeRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    slug: str
    type: str = "dynamic"
    payload_type: str = "website"
    payload: Dict[str, Any] = Field(default_factory=dict)
    qr_data: str = ""
    target_url: Optional[str] = None
    png_path: Optional[str] = None
    pdf_path: Optional[str] = None
    png_url: Optional[str] = None
    pdf_url: Optional[str] = None
    order_id: Optional[int] = None
    order_item_id: Optional[int] = None
    customer_id: Optional[str] = None
    style: QRStyleOptions = Field(default_factory=QRStyleOptions)
    order_snapshot: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

class OrderAsset(BaseModel):
    order_id: int
    item_id: int
    slug: Optional[str] = None
    png_path: str
    pdf_path: str
    png_url: Optional[str] = None
    pdf_url: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

class QRPreviewRequest(BaseModel):
    payload_type: str = "website"
    payload: Dict[str, Any] = Field(default_factory=dict)
    style: QRStyleOptions = Field(default_factory=QRStyleOptions)
