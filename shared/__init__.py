"""
Shared module for the order QR project.
Contains common models and settings used by the qr and redirect services.
"""

from .models import (
    QRStyleOptions,
    OrderLineStyle,
    QRLineItemMeta,
    OrderLineItem,
    Order,
    QRPdfMeta,
    QRCodeRecord,
    OrderAsset,
    PyObjectId,
)

__all__ = [
    'QRStyleOptions',
    'OrderLineStyle',
    'QRLineItemMeta',
    'OrderLineItem',
    'Order',
    'QRPdfMeta',
    'QRCodeRecord',
    'OrderAsset',
    'PyObjectId',
]
