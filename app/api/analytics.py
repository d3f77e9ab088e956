"""
Analytics API Endpoints

Inventory/logistics summary, profit series, period comparison and
marketplace listing matching.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional

from app.services.analytics_service import AnalyticsService, SummaryFilters
from app.services.analytics_store import AnalyticsStore
from app.models.base import get_db
from app.utils.cache import analytics_cache
from app.utils.swr_cache import CacheCoordinator
from app.utils.logger import log

router = APIRouter(prefix="/analytics", tags=["analytics"])

# One coordinator per process: owns the in-flight revalidation set
coordinator = CacheCoordinator(analytics_cache)


def get_analytics_service(db=Depends(get_db)) -> AnalyticsService:
    return AnalyticsService(AnalyticsStore(db), coordinator)


@router.get("/summary")
async def get_summary(
    purchase_from: Optional[str] = Query(None, description="Purchase date from (YYYY-MM-DD)"),
    purchase_to: Optional[str] = Query(None, description="Purchase date to (YYYY-MM-DD)"),
    sale_from: Optional[str] = Query(None, description="Sale date from (YYYY-MM-DD)"),
    sale_to: Optional[str] = Query(None, description="Sale date to (YYYY-MM-DD)"),
    category: Optional[str] = Query(None, description="macbook, ipad, iphone, watch..."),
    tier: Optional[str] = Query(None),
    processor: Optional[str] = Query(None),
    screen_size: Optional[str] = Query(None),
    tracking_state: Optional[str] = Query(None),
    seller: Optional[str] = Query(None),
    carrier: Optional[str] = Query(None),
    locker: Optional[str] = Query(None),
    late_days: Optional[str] = Query(None, description="Days before a shipment counts as late"),
    aging_15: Optional[str] = Query(None),
    aging_30: Optional[str] = Query(None),
    aging_60: Optional[str] = Query(None),
    margin_threshold: Optional[str] = Query(None, description="Low-margin alert threshold (%)"),
    refresh: bool = Query(False, description="Bypass the cache and recompute now"),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Full analytics summary

    Served stale-while-revalidate from the cache; refresh=true recomputes
    immediately and replaces the cached entry.
    """
    filters = SummaryFilters(
        purchase_from=purchase_from,
        purchase_to=purchase_to,
        sale_from=sale_from,
        sale_to=sale_to,
        category=category,
        tier=tier,
        processor=processor,
        screen_size=screen_size,
        tracking_state=tracking_state,
        seller=seller,
        carrier=carrier,
        locker=locker,
        late_days=late_days,
        aging_15=aging_15,
        aging_30=aging_30,
        aging_60=aging_60,
        margin_threshold=margin_threshold,
    )

    try:
        if refresh:
            return await service.refresh_summary_cache(filters)
        return await service.get_summary_cached(filters)

    except Exception as e:
        log.error(f"Error building analytics summary: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/profit")
async def get_profit_series(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None),
    group_by: str = Query("month", description="day, month or year"),
    category: Optional[str] = Query(None),
    tier: Optional[str] = Query(None),
    processor: Optional[str] = Query(None),
    screen_size: Optional[str] = Query(None),
    seller: Optional[str] = Query(None),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Income, cost, profit and margin per period"""
    if group_by not in ("day", "month", "year"):
        raise HTTPException(status_code=400, detail="group_by must be day, month or year")

    try:
        return await service.get_profit_series(
            from_=from_,
            to=to,
            granularity=group_by,
            category=category,
            tier=tier,
            processor=processor,
            screen_size=screen_size,
            seller=seller,
        )

    except Exception as e:
        log.error(f"Error building profit series: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/profit/compare")
async def compare_profit(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    tier: Optional[str] = Query(None),
    processor: Optional[str] = Query(None),
    screen_size: Optional[str] = Query(None),
    seller: Optional[str] = Query(None),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Compare a range with the previous equivalent range

    Whole months compare against the preceding whole months; any other range
    against the same number of days right before it.
    """
    try:
        return await service.get_profit_comparison(
            from_=from_,
            to=to,
            category=category,
            tier=tier,
            processor=processor,
            screen_size=screen_size,
            seller=seller,
        )

    except Exception as e:
        log.error(f"Error comparing profit periods: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/listing-match")
async def match_listing(
    title: str = Query(..., min_length=1, description="Marketplace listing title"),
    limit: int = Query(5, ge=1, le=20),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Best matching product groups for a listing title"""
    try:
        return await service.match_listing(title, limit=limit)

    except Exception as e:
        log.error(f"Error matching listing '{title}': {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/cache/clear")
async def clear_cache(service: AnalyticsService = Depends(get_analytics_service)):
    """Drop every cached analytics entry"""
    removed = service.clear_cache()
    return {"status": "success", "entries_removed": removed}
