"""
Sale model
"""
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from app.models.base import Base


class Sale(Base):
    """Resale of one unit, amounts in local currency"""
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)

    sale_date = Column(Date, index=True)
    exchange_rate = Column(Float, nullable=True)  # Rate used to recompute the unit cost
    sale_price = Column(Float)

    # Computed at sale time
    profit = Column(Float)
    profit_pct = Column(Float)

    # One of the named sellers, the split marker (50/50) or empty
    seller = Column(String(20), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    product = relationship("Product", back_populates="sales")
