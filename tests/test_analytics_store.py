"""
Data store tests against an in-memory SQLite database.
"""
import asyncio
from datetime import date, datetime

import pytest
from sqlalchemy.orm import sessionmaker

from app.models.base import create_db_engine, init_db
from app.models.product import (
    STATE_NO_TRACKING,
    STATE_PICKED_UP,
    Product,
    ProductDetail,
    ProductValuation,
    TrackingEvent,
)
from app.models.sale import Sale
from app.services.analytics_service import AnalyticsService, SummaryFilters
from app.services.analytics_store import AnalyticsStore
from app.config import Settings


def _run(coro):
    """Run an async coroutine in a sync test."""
    return asyncio.run(coro)


@pytest.fixture
def db():
    engine = create_db_engine("sqlite://")
    init_db(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()

    def add_product(category, specs, bought, total_cost):
        product = Product(
            category=category,
            valuation=ProductValuation(purchase_date=bought, total_cost=total_cost),
            detail=ProductDetail(specs=specs),
            tracking=[TrackingEvent(state=STATE_PICKED_UP, created_at=datetime(2025, 1, 5),
                                    reception_date=date(2025, 1, 3), pickup_date=date(2025, 1, 5))],
        )
        session.add(product)
        session.flush()
        return product

    mac = add_product("MacBook", {"gama": "Air", "procesador": "M1", "tamanio": "13"}, date(2025, 1, 1), 3000)
    watch = add_product("Apple Watch", {"modelo": "Series 8"}, date(2025, 1, 1), 1000)
    iphone = add_product("iphone", {"modelo": "14"}, date(2025, 1, 1), 2000)
    add_product("ipad", {"gama": "Air"}, date(2025, 2, 1), 1500)

    session.add_all([
        Sale(product_id=mac.id, sale_date=date(2025, 2, 1), sale_price=4000, profit=1000, profit_pct=25, seller="gonzalo"),
        Sale(product_id=watch.id, sale_date=date(2025, 3, 1), sale_price=1300, profit=300, profit_pct=23, seller="ambos"),
        Sale(product_id=iphone.id, sale_date=date(2025, 4, 1), sale_price=2500, profit=500, profit_pct=20, seller="renato"),
    ])
    session.commit()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def test_products_with_relations(db):
    products = _run(AnalyticsStore(db).find_products_with_relations())
    assert len(products) == 4
    assert products[0].valuation.total_cost == 3000
    assert list(products[0].detail.specs) == ["gama", "procesador", "tamanio"]
    assert products[0].tracking[0].state == STATE_PICKED_UP


def test_sales_date_filter(db):
    store = AnalyticsStore(db)
    sales = _run(store.find_sales_with_relations(sale_from="2025-02-15", sale_to="2025-03-31"))
    assert [s.product.category for s in sales] == ["Apple Watch"]


def test_sales_unparsable_date_is_no_filter(db):
    sales = _run(AnalyticsStore(db).find_sales_with_relations(sale_from="whenever"))
    assert len(sales) == 3


def test_sales_category_filter(db):
    store = AnalyticsStore(db)
    assert len(_run(store.find_sales_with_relations(category="macbook"))) == 1
    assert [s.product.category for s in _run(store.find_sales_with_relations(category="watch"))] == ["Apple Watch"]
    assert _run(store.find_sales_with_relations(category="ipad")) == []


def test_sales_seller_filter_keeps_split_sales(db):
    store = AnalyticsStore(db, split_marker="ambos")
    sellers = sorted(s.seller for s in _run(store.find_sales_with_relations(seller="Gonzalo")))
    assert sellers == ["ambos", "gonzalo"]


def test_all_sale_product_ids(db):
    ids = _run(AnalyticsStore(db).find_all_sale_product_ids())
    assert len(ids) == 3


def test_summary_end_to_end(db):
    service = AnalyticsService(AnalyticsStore(db), settings=Settings())
    result = _run(service.get_summary(SummaryFilters(seller="gonzalo"), today=date(2025, 6, 1)))
    assert result["kpis"]["unsold_units"] == 1
    assert result["kpis"]["locked_capital"] == 1500
    assert result["kpis"]["income"] == 4650
    assert result["aging"]["bucket60_plus"][0]["category"] == "ipad"


def test_tracking_event_defaults_to_no_tracking(db):
    product = Product(category="ipad", tracking=[TrackingEvent(created_at=datetime(2025, 2, 2))])
    db.add(product)
    db.commit()
    assert product.tracking[0].state == STATE_NO_TRACKING
