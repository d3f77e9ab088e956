"""Database models for the resale analytics backend"""

from app.models.product import (
    Product,
    ProductValuation,
    ProductDetail,
    ShippingGroup,
    TrackingEvent,
)

from app.models.sale import Sale
