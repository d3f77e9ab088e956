"""
Inventory models
Purchased units with their valuation, spec sheet and shipment tracking
"""
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from app.models.base import Base

# Tracking lifecycle, in the order a unit moves through it
STATE_NO_TRACKING = "purchased_no_tracking"
STATE_IN_TRANSIT = "in_transit"          # Carrier tracking known, travelling to the forwarder
STATE_AT_FORWARDER = "at_forwarder"      # Received by the logistics partner, on its way locally
STATE_PICKED_UP = "picked_up"            # Collected, physically in stock


class Product(Base):
    """A single purchased unit"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)

    # Free-form category tag: macbook, ipad, iphone, watch, otro...
    category = Column(String, index=True, nullable=False)
    condition = Column(String, nullable=True)  # new, used, broken

    valuation_id = Column(Integer, ForeignKey("product_valuations.id"), nullable=True)
    detail_id = Column(Integer, ForeignKey("product_details.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    valuation = relationship("ProductValuation", back_populates="products")
    detail = relationship("ProductDetail", back_populates="products")
    tracking = relationship(
        "TrackingEvent",
        back_populates="product",
        order_by="TrackingEvent.id",
        cascade="all, delete-orphan",
    )
    sales = relationship("Sale", back_populates="product")


class ProductValuation(Base):
    """Purchase cost breakdown of a unit"""
    __tablename__ = "product_valuations"

    id = Column(Integer, primary_key=True, index=True)

    purchase_price = Column(Float)  # Source currency (USD)
    declared_value = Column(Float)  # Declared customs value (USD)
    weight = Column(Float)  # kg
    purchase_date = Column(Date, index=True)

    # Computed when the unit is registered
    local_price = Column(Float, nullable=True)  # purchase_price at the fixed exchange rate
    shipping_cost = Column(Float, nullable=True)
    total_cost = Column(Float, nullable=True)

    # Set when the unit travelled with others and shares one shipping charge
    shipping_group_id = Column(Integer, ForeignKey("shipping_groups.id"), nullable=True, index=True)
    prorated_shipping_cost = Column(Float, nullable=True)
    prorated_total_cost = Column(Float, nullable=True)

    # Relationships
    products = relationship("Product", back_populates="valuation")
    shipping_group = relationship("ShippingGroup", back_populates="valuations")


class ShippingGroup(Base):
    """Units shipped together under one shipping charge"""
    __tablename__ = "shipping_groups"

    id = Column(Integer, primary_key=True, index=True)
    label = Column(String, nullable=True)
    total_shipping_cost = Column(Float, default=0.0)

    valuations = relationship("ProductValuation", back_populates="shipping_group")


class ProductDetail(Base):
    """
    Spec sheet of a unit.

    ``specs`` is an ordered JSON object (gama, procesador, tamanio, ram,
    almacenamiento, modelo, generacion, conexion, descripcionOtro, or any
    other key). Key order is significant for attribute extraction.
    """
    __tablename__ = "product_details"

    id = Column(Integer, primary_key=True, index=True)
    specs = Column(JSON, nullable=True)

    products = relationship("Product", back_populates="detail")


class TrackingEvent(Base):
    """Shipment tracking record of a unit (a unit may have several)"""
    __tablename__ = "tracking_events"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)

    carrier = Column(String, nullable=True)  # USPS, UPS, FedEx...
    carrier_tracking = Column(String, nullable=True)
    locker = Column(String, nullable=True)  # Mailbox / locker the unit was shipped to
    forwarder_tracking = Column(String, nullable=True)

    reception_date = Column(Date, nullable=True)  # Received by the logistics partner
    pickup_date = Column(Date, nullable=True)  # Collected

    state = Column(String, default=STATE_NO_TRACKING, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    product = relationship("Product", back_populates="tracking")
