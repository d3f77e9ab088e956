"""
Read-only data access for the analytics engine

Loads products and sales with every relation the aggregation touches, so the
engine never triggers lazy loads while it iterates.
"""
from typing import List, Optional, Set

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload, selectinload

from app.config import get_settings
from app.models.product import Product, ProductValuation
from app.models.sale import Sale
from app.services.period_utils import parse_date
from app.utils.logger import log


class AnalyticsStore:
    def __init__(self, db: Session, split_marker: Optional[str] = None):
        self.db = db
        self.split_marker = (split_marker or get_settings().split_seller_marker).lower()

    async def find_products_with_relations(self) -> List[Product]:
        """All products with valuation (and shipping group), detail and tracking."""
        products = (
            self.db.query(Product)
            .options(
                joinedload(Product.valuation).joinedload(ProductValuation.shipping_group),
                joinedload(Product.detail),
                selectinload(Product.tracking),
            )
            .order_by(Product.id)
            .all()
        )
        log.debug(f"Loaded {len(products)} products")
        return products

    async def find_sales_with_relations(
        self,
        sale_from: Optional[str] = None,
        sale_to: Optional[str] = None,
        category: Optional[str] = None,
        seller: Optional[str] = None,
    ) -> List[Sale]:
        """
        Sales joined to their product, filtered by sale date, category and seller.

        Unparsable dates are ignored. A seller filter also keeps split sales,
        the caller weighs them.
        """
        query = (
            self.db.query(Sale)
            .join(Product, Sale.product_id == Product.id)
            .options(
                joinedload(Sale.product).joinedload(Product.valuation).joinedload(ProductValuation.shipping_group),
                joinedload(Sale.product).joinedload(Product.detail),
                joinedload(Sale.product).selectinload(Product.tracking),
            )
        )

        start = parse_date(sale_from)
        if start is not None:
            query = query.filter(Sale.sale_date >= start)
        end = parse_date(sale_to)
        if end is not None:
            query = query.filter(Sale.sale_date <= end)

        if category and category.strip():
            cat = category.strip().lower()
            if "watch" in cat:
                query = query.filter(func.lower(Product.category).like("%watch%"))
            else:
                query = query.filter(func.lower(Product.category) == cat)

        if seller and seller.strip():
            query = query.filter(func.lower(Sale.seller).in_([seller.strip().lower(), self.split_marker]))

        sales = query.order_by(Sale.id).all()
        log.debug(f"Loaded {len(sales)} sales")
        return sales

    async def find_all_sale_product_ids(self) -> Set[int]:
        """Ids of every product that has ever sold, regardless of date filters."""
        rows = self.db.query(Sale.product_id).distinct().all()
        return {row[0] for row in rows}
