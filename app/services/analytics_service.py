"""
Analytics Service - Inventory, Logistics and Profit Aggregation

Turns raw purchases, sales and shipment tracking into:
- Inventory KPIs (unsold units, locked capital, available stock, aging)
- Logistics timing (purchase -> reception -> pickup -> sale) and late rates
- Margin analysis, top/bottom sales and days-to-sale quartiles
- Product groups with price statistics and a suggested price band
- Profit time series and period-over-period comparisons

The store is only awaited for loading; every aggregation below is plain
in-memory computation over the loaded rows, and never mutates them.
"""
from collections import OrderedDict, defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, field_validator

from app.config import Settings, get_settings
from app.models.product import STATE_AT_FORWARDER, STATE_IN_TRANSIT, STATE_PICKED_UP
from app.services.analytics_stats import mean, median, quartiles
from app.services.analytics_store import AnalyticsStore
from app.services.period_utils import (
    DEFAULT_GRANULARITY,
    GRANULARITIES,
    days_between,
    normalize_date,
    parse_date,
    period_key,
)
from app.services.product_attributes import (
    AttributeTuple,
    build_display_label,
    extract_attributes,
    group_label,
    normalize_category,
    parse_free_text_attributes,
    score_group_match,
)
from app.services.profit_compare import build_insights, compute_deltas, compute_previous_range
from app.services.profit_series import aggregate_by_period
from app.services.shipping_allocation import build_group_shares, effective_total_cost
from app.utils.helpers import normalize_key, normalize_text, safe_divide
from app.utils.logger import log
from app.utils.money import margin_pct, to_money, to_number
from app.utils.swr_cache import CacheCoordinator, build_cache_key

# Suggested band = sale quartile / divisor (a 20% target margin)
TARGET_MARGIN_DIVISOR = 1.2

TOP_SALES_LIMIT = 10
TOP_GROUPS_LIMIT = 5
LISTING_MATCH_LIMIT = 5

SUMMARY_CACHE_PREFIX = "analytics:summary"
CACHE_NAMESPACE = "analytics:"

SPLIT_SHARE = 0.5

LOGISTICS_GAPS = (
    "purchase_to_reception",
    "purchase_to_pickup",
    "reception_to_pickup",
    "pickup_to_sale",
    "purchase_to_sale",
)

AGING_BUCKETS = ("bucket15_29", "bucket30_59", "bucket60_plus")


class SummaryFilters(BaseModel):
    """
    Summary query. Dates stay strings: an unparsable date means "no filter".
    Thresholds left as None fall back to the configured defaults.
    """
    purchase_from: Optional[str] = None
    purchase_to: Optional[str] = None
    sale_from: Optional[str] = None
    sale_to: Optional[str] = None
    category: Optional[str] = None
    tier: Optional[str] = None
    processor: Optional[str] = None
    screen_size: Optional[str] = None
    tracking_state: Optional[str] = None
    seller: Optional[str] = None
    carrier: Optional[str] = None
    locker: Optional[str] = None
    late_days: Optional[int] = None
    aging_15: Optional[int] = None
    aging_30: Optional[int] = None
    aging_60: Optional[int] = None
    margin_threshold: Optional[float] = None

    @field_validator("late_days", "aging_15", "aging_30", "aging_60", mode="before")
    @classmethod
    def _lenient_days(cls, value: Any) -> Optional[int]:
        # Unparsable or non-finite -> no override
        num = to_number(value, default=None)
        return None if num is None else int(num)

    @field_validator("margin_threshold", mode="before")
    @classmethod
    def _lenient_threshold(cls, value: Any) -> Optional[float]:
        return to_number(value, default=None)


@dataclass
class WeightedSale:
    """A sale with the share attributed to the filtered seller"""
    sale: Any
    weight: float
    attrs: AttributeTuple

    @property
    def price(self) -> float:
        return to_number(self.sale.sale_price) * self.weight

    @property
    def profit(self) -> float:
        return to_number(self.sale.profit) * self.weight

    @property
    def product(self) -> Any:
        return self.sale.product


# ---------------------------------------------------------------------------
# Small pure helpers
# ---------------------------------------------------------------------------


def aging_bucket(age_days: Optional[int], t15: int = 15, t30: int = 30, t60: int = 60) -> Optional[str]:
    """Bucket of an age in days, checked from the highest threshold down."""
    if age_days is None:
        return None
    if age_days >= t60:
        return "bucket60_plus"
    if age_days >= t30:
        return "bucket30_59"
    if age_days >= t15:
        return "bucket15_29"
    return None


def latest_event(events: Iterable[Any]) -> Optional[Any]:
    """Most recent tracking event by creation time, highest id on ties."""
    events = list(events or [])
    if not events:
        return None
    return max(events, key=lambda e: (e.created_at or datetime.min, e.id or 0))


def latest_date(events: Iterable[Any], field: str) -> Optional[str]:
    """Latest ISO date of ``field`` across events (ISO strings sort chronologically)."""
    values = sorted(d for d in (normalize_date(getattr(e, field, None)) for e in events or []) if d)
    return values[-1] if values else None


def seller_weight(sale_seller: Optional[str], wanted: Optional[str], split_marker: str) -> float:
    """1 for the filtered seller, 0.5 for a split sale, 0 for anyone else."""
    if not wanted or not wanted.strip():
        return 1.0
    author = (sale_seller or "").strip().lower()
    if author == wanted.strip().lower():
        return 1.0
    if author == split_marker.lower():
        return SPLIT_SHARE
    return 0.0


def category_matches(category: Optional[str], wanted: Optional[str]) -> bool:
    if not wanted or not wanted.strip():
        return True
    wanted = wanted.strip().lower()
    actual = (category or "").strip().lower()
    if "watch" in wanted:
        return "watch" in actual
    return actual == wanted


def attributes_match(
    attrs: AttributeTuple,
    tier: Optional[str] = None,
    processor: Optional[str] = None,
    screen_size: Optional[str] = None,
) -> bool:
    """Fuzzy attribute filters; processor matches as a substring."""
    if tier and normalize_key(attrs.tier) != normalize_key(tier):
        return False
    if processor and normalize_key(processor) not in normalize_key(attrs.processor):
        return False
    if screen_size and normalize_key(attrs.screen_size) != normalize_key(screen_size):
        return False
    return True


def _category_of(product: Any) -> str:
    return normalize_category(getattr(product, "category", None)) or "otro"


def _gap_stats(values: List[int]) -> Dict[str, Any]:
    return {"mean": mean(values), "median": median(values), "count": len(values)}


def _price_stats(values: List[float]) -> Dict[str, Any]:
    stats = {
        "count": len(values),
        "min": to_money(min(values)) if values else None,
        "mean": mean(values),
    }
    stats.update(quartiles(values))
    return stats


def _distinct_counts(labels: Iterable[str]) -> List[Dict[str, Any]]:
    counts: "OrderedDict[str, int]" = OrderedDict()
    for label in labels:
        counts[label] = counts.get(label, 0) + 1
    return [{"label": label, "count": count} for label, count in counts.items()]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AnalyticsService:
    def __init__(
        self,
        store: AnalyticsStore,
        coordinator: Optional[CacheCoordinator] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.coordinator = coordinator
        self.settings = settings or get_settings()

    # -- attribute / label caches (per call) ---------------------------------

    @staticmethod
    def _memo(fn: Callable[[Any], Any]) -> Callable[[Any], Any]:
        seen: Dict[int, Any] = {}

        def wrapper(product: Any) -> Any:
            key = id(product)
            if key not in seen:
                seen[key] = fn(product)
            return seen[key]
        return wrapper

    def _thresholds(self, filters: SummaryFilters) -> Dict[str, Any]:
        s = self.settings
        return {
            "late_days": filters.late_days if filters.late_days is not None else s.late_shipment_days,
            "aging_15": filters.aging_15 if filters.aging_15 is not None else s.aging_bucket_15,
            "aging_30": filters.aging_30 if filters.aging_30 is not None else s.aging_bucket_30,
            "aging_60": filters.aging_60 if filters.aging_60 is not None else s.aging_bucket_60,
            "margin_threshold": (
                filters.margin_threshold if filters.margin_threshold is not None
                else s.low_margin_threshold
            ),
        }

    async def _load_weighted_sales(
        self,
        attrs_of: Callable[[Any], AttributeTuple],
        sale_from: Optional[str] = None,
        sale_to: Optional[str] = None,
        category: Optional[str] = None,
        tier: Optional[str] = None,
        processor: Optional[str] = None,
        screen_size: Optional[str] = None,
        seller: Optional[str] = None,
    ) -> List[WeightedSale]:
        sales = await self.store.find_sales_with_relations(
            sale_from=sale_from,
            sale_to=sale_to,
            category=category,
            seller=seller,
        )
        weighted = []
        for sale in sales:
            attrs = attrs_of(sale.product)
            if not attributes_match(attrs, tier, processor, screen_size):
                continue
            weight = seller_weight(sale.seller, seller, self.settings.split_seller_marker)
            if weight <= 0:
                continue
            weighted.append(WeightedSale(sale=sale, weight=weight, attrs=attrs))
        return weighted

    # -- summary -------------------------------------------------------------

    async def get_summary(self, filters: Optional[SummaryFilters] = None, today: Optional[date] = None) -> Dict:
        """
        Full analytics summary for a filter set, always computed fresh.

        Args:
            filters: Summary filters (all optional)
            today: Reference day for aging and stuck-shipment alerts

        Returns:
            Dict with kpis, inventory, aging, logistics, sales, alerts and product groups
        """
        filters = filters or SummaryFilters()
        limits = self._thresholds(filters)
        today = today or date.today()

        attrs_of = self._memo(extract_attributes)
        label_of = self._memo(build_display_label)

        # 1. Products and the all-time sold set (ignores the sale-date filter)
        products = await self.store.find_products_with_relations()
        sold_ids = set(await self.store.find_all_sale_product_ids())

        # 2-3. Sales in the window, fuzzy attribute filters, seller attribution
        sales = await self._load_weighted_sales(
            attrs_of,
            sale_from=filters.sale_from,
            sale_to=filters.sale_to,
            category=filters.category,
            tier=filters.tier,
            processor=filters.processor,
            screen_size=filters.screen_size,
            seller=filters.seller,
        )

        valuations = [p.valuation for p in products] + [s.product.valuation for s in sales if s.product]
        shares = build_group_shares(valuations)
        rate = self.settings.usd_exchange_rate

        def cost_of(product: Any) -> float:
            return effective_total_cost(getattr(product, "valuation", None), shares, rate)

        # 4. Product filters
        filtered = [p for p in products if self._product_matches(p, filters, attrs_of)]

        # 5. Unsold / available
        unsold = [p for p in filtered if p.id not in sold_ids]
        available = [p for p in unsold if getattr(latest_event(p.tracking), "state", None) == STATE_PICKED_UP]

        # 6. Aging
        aging = self._aging(unsold, today, limits, label_of, cost_of)

        # 7. Logistics
        logistics = self._logistics(filtered, sales, limits["late_days"])

        # 8-10. Sales views
        sale_rows = [self._sale_row(ws, label_of) for ws in sales]
        ranked = sorted(sale_rows, key=lambda r: r["profit"], reverse=True)
        sales_view = {
            "monthly": self._monthly(sales),
            "margin_by_category": self._margin_by(sales, lambda ws: _category_of(ws.product), "category"),
            "margin_by_model": self._margin_by(sales, self._model_of, "model"),
            "detail_by_category": self._detail_by_category(sales, unsold, label_of),
            "top_sales": ranked[:TOP_SALES_LIMIT],
            "bottom_sales": ranked[-TOP_SALES_LIMIT:],
            "days_to_sale_by_category": self._days_to_sale(sales),
        }

        # 11. Alerts
        alerts = {
            "low_margin_sales": [
                row for ws, row in zip(sales, sale_rows)
                if to_number(ws.sale.profit_pct) < limits["margin_threshold"]
            ],
            "stuck_in_transit": self._stuck_in_transit(filtered, sold_ids, today, limits["late_days"], label_of),
        }

        # 12. Product groups
        groups = self._product_groups(filtered, sales, attrs_of, cost_of)

        income = sum(ws.price for ws in sales)
        profit = sum(ws.profit for ws in sales)
        purchase_to_sale = [
            d for d in (self._purchase_to_sale(ws) for ws in sales) if d is not None
        ]

        inventory_by_type: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for p in unsold:
            entry = inventory_by_type.setdefault(_category_of(p), {"units": 0, "capital": 0.0})
            entry["units"] += 1
            entry["capital"] += cost_of(p)

        log.info(
            f"Summary computed: {len(filtered)} products, {len(unsold)} unsold, "
            f"{len(sales)} sales, {len(groups)} groups"
        )

        return {
            "filters": {**filters.model_dump(), **limits},
            "generated_for": today.isoformat(),
            "kpis": {
                "unsold_units": len(unsold),
                "locked_capital": to_money(sum(cost_of(p) for p in unsold)),
                "available_units": len(available),
                "available_capital": to_money(sum(cost_of(p) for p in available)),
                "sales_count": len(sales),
                "income": to_money(income),
                "profit": to_money(profit),
                "margin": margin_pct(profit, income),
                "rotation_median_days": median(purchase_to_sale),
            },
            "inventory_by_type": [
                {"category": cat, "units": v["units"], "capital": to_money(v["capital"])}
                for cat, v in inventory_by_type.items()
            ],
            "aging": aging,
            "logistics": logistics,
            "sales": sales_view,
            "alerts": alerts,
            "product_groups": groups,
        }

    async def get_summary_cached(self, filters: Optional[SummaryFilters] = None) -> Dict:
        """Stale-while-revalidate summary; falls back to a fresh one without a coordinator."""
        filters = filters or SummaryFilters()
        if self.coordinator is None:
            return await self.get_summary(filters)
        return await self.coordinator.get_cached(
            self.summary_cache_key(filters),
            lambda: self.get_summary(filters),
            revalidate_after_ms=self.settings.summary_revalidate_after_ms,
            ttl_seconds=self.settings.summary_cache_ttl_seconds,
        )

    async def refresh_summary_cache(self, filters: Optional[SummaryFilters] = None) -> Dict:
        """Recompute a summary now and overwrite its cache entry."""
        filters = filters or SummaryFilters()
        summary = await self.get_summary(filters)
        if self.coordinator is not None:
            self.coordinator.prime(
                self.summary_cache_key(filters),
                summary,
                self.settings.summary_cache_ttl_seconds,
            )
        return summary

    def clear_cache(self) -> int:
        if self.coordinator is None:
            return 0
        removed = self.coordinator.cache.invalidate(CACHE_NAMESPACE)
        log.info(f"Cleared {removed} analytics cache entries")
        return removed

    @staticmethod
    def summary_cache_key(filters: SummaryFilters) -> str:
        return build_cache_key(SUMMARY_CACHE_PREFIX, filters.model_dump())

    # -- summary steps -------------------------------------------------------

    def _product_matches(self, product: Any, f: SummaryFilters, attrs_of: Callable) -> bool:
        if not category_matches(product.category, f.category):
            return False
        if not attributes_match(attrs_of(product), f.tier, f.processor, f.screen_size):
            return False

        valuation = product.valuation
        bought = parse_date(valuation.purchase_date) if valuation is not None else None
        start = parse_date(f.purchase_from)
        if start is not None and (bought is None or bought < start):
            return False
        end = parse_date(f.purchase_to)
        if end is not None and (bought is None or bought > end):
            return False

        events = product.tracking or []
        if f.tracking_state and not any(e.state == f.tracking_state for e in events):
            return False

        if f.carrier or f.locker:
            def event_ok(e: Any) -> bool:
                if f.carrier and normalize_text(e.carrier) != normalize_text(f.carrier):
                    return False
                if f.locker and normalize_text(e.locker) != normalize_text(f.locker):
                    return False
                return True
            if not any(event_ok(e) for e in events):
                return False
        return True

    def _aging(self, unsold, today, limits, label_of, cost_of) -> Dict[str, List[Dict]]:
        aging: Dict[str, List[Dict]] = {name: [] for name in AGING_BUCKETS}
        for p in unsold:
            picked = latest_date(p.tracking, "pickup_date")
            if picked is None:
                continue
            age = days_between(picked, today)
            bucket = aging_bucket(age, limits["aging_15"], limits["aging_30"], limits["aging_60"])
            if bucket is None:
                continue
            aging[bucket].append({
                "product_id": p.id,
                "category": p.category,
                "display": label_of(p),
                "condition": p.condition,
                "purchase_date": normalize_date(p.valuation.purchase_date) if p.valuation else None,
                "pickup_date": picked,
                "total_cost": cost_of(p),
                "days_in_stock": age,
            })
        return aging

    def _logistics(self, products, sales: List[WeightedSale], late_days: int) -> Dict:
        gaps: Dict[str, List[int]] = {name: [] for name in LOGISTICS_GAPS}
        by_category: Dict[str, Dict[str, List[int]]] = defaultdict(lambda: {name: [] for name in LOGISTICS_GAPS})
        carriers: "OrderedDict[str, List[int]]" = OrderedDict()
        lockers: "OrderedDict[str, List[int]]" = OrderedDict()

        def add(name: str, category: str, value: Optional[int]) -> None:
            if value is None:
                return
            gaps[name].append(value)
            by_category[category][name].append(value)

        for p in products:
            category = _category_of(p)
            bought = p.valuation.purchase_date if p.valuation else None
            received = latest_date(p.tracking, "reception_date")
            picked = latest_date(p.tracking, "pickup_date")

            to_reception = days_between(bought, received)
            add("purchase_to_reception", category, to_reception)
            add("purchase_to_pickup", category, days_between(bought, picked))
            add("reception_to_pickup", category, days_between(received, picked))

            if to_reception is None:
                continue
            with_meta = [e for e in p.tracking or [] if e.carrier or e.locker or e.reception_date]
            if not with_meta:
                continue
            meta = max(with_meta, key=lambda e: e.id or 0)
            if meta.carrier:
                carriers.setdefault(meta.carrier, []).append(to_reception)
            if meta.locker:
                lockers.setdefault(meta.locker, []).append(to_reception)

        for ws in sales:
            product = ws.product
            if product is None:
                continue
            category = _category_of(product)
            picked = latest_date(product.tracking, "pickup_date")
            add("pickup_to_sale", category, days_between(picked, ws.sale.sale_date))
            add("purchase_to_sale", category, self._purchase_to_sale(ws))

        def late_rows(agg: Dict[str, List[int]], name: str) -> List[Dict]:
            rows = []
            for key, days in agg.items():
                late = sum(1 for d in days if d > late_days)
                rows.append({
                    name: key,
                    "total": len(days),
                    "late": late,
                    "rate": to_money(safe_divide(late, len(days)) * 100),
                    "mean_days": mean(days),
                    "median_days": median(days),
                })
            return rows

        result: Dict[str, Any] = {name: _gap_stats(values) for name, values in gaps.items()}
        result["by_category"] = [
            {"category": cat, **{name: _gap_stats(values) for name, values in cat_gaps.items()}}
            for cat, cat_gaps in sorted(by_category.items())
        ]
        result["late_by_carrier"] = late_rows(carriers, "carrier")
        result["late_by_locker"] = late_rows(lockers, "locker")
        return result

    @staticmethod
    def _purchase_to_sale(ws: WeightedSale) -> Optional[int]:
        valuation = ws.product.valuation if ws.product is not None else None
        bought = valuation.purchase_date if valuation is not None else None
        return days_between(bought, ws.sale.sale_date)

    @staticmethod
    def _model_of(ws: WeightedSale) -> str:
        detail = ws.product.detail if ws.product is not None else None
        specs = detail.specs if detail is not None and isinstance(detail.specs, dict) else {}
        return str(specs.get("modelo") or "N/A")

    def _sale_row(self, ws: WeightedSale, label_of: Callable) -> Dict[str, Any]:
        product = ws.product
        return {
            "id": ws.sale.id,
            "product_id": ws.sale.product_id,
            "category": product.category if product is not None else None,
            "model": self._model_of(ws),
            "display": label_of(product) if product is not None else None,
            "sale_date": normalize_date(ws.sale.sale_date),
            "seller": ws.sale.seller,
            "weight": ws.weight,
            "sale_price": to_money(ws.price),
            "profit": to_money(ws.profit),
            "margin": to_money(ws.sale.profit_pct),
        }

    @staticmethod
    def _monthly(sales: List[WeightedSale]) -> List[Dict]:
        months: Dict[str, List[WeightedSale]] = defaultdict(list)
        for ws in sales:
            month = period_key(ws.sale.sale_date, "month")
            if month:
                months[month].append(ws)
        return [
            {
                "month": month,
                "income": to_money(sum(ws.price for ws in items)),
                "profit": to_money(sum(ws.profit for ws in items)),
                "avg_margin": mean([to_number(ws.sale.profit_pct) for ws in items]) or 0.0,
            }
            for month, items in sorted(months.items())
        ]

    @staticmethod
    def _margin_by(sales: List[WeightedSale], key_of: Callable, name: str) -> List[Dict]:
        groups: "OrderedDict[str, List[float]]" = OrderedDict()
        for ws in sales:
            groups.setdefault(key_of(ws), []).append(to_number(ws.sale.profit_pct))
        return [
            {name: key, "avg_margin": mean(values) or 0.0, "sales": len(values)}
            for key, values in groups.items()
        ]

    @staticmethod
    def _detail_by_category(sales: List[WeightedSale], unsold, label_of: Callable) -> List[Dict]:
        sold: Dict[str, List[str]] = defaultdict(list)
        in_stock: Dict[str, List[str]] = defaultdict(list)
        for ws in sales:
            if ws.product is not None:
                sold[_category_of(ws.product)].append(label_of(ws.product))
        for p in unsold:
            in_stock[_category_of(p)].append(label_of(p))
        return [
            {
                "category": cat,
                "sold": _distinct_counts(sold.get(cat, [])),
                "in_stock": _distinct_counts(in_stock.get(cat, [])),
            }
            for cat in sorted(set(sold) | set(in_stock))
        ]

    def _days_to_sale(self, sales: List[WeightedSale]) -> List[Dict]:
        by_category: "OrderedDict[str, List[int]]" = OrderedDict()
        for ws in sales:
            days = self._purchase_to_sale(ws)
            if days is not None:
                by_category.setdefault(_category_of(ws.product), []).append(days)
        return [
            {"category": cat, "count": len(days), **quartiles(days)}
            for cat, days in by_category.items()
        ]

    @staticmethod
    def _stuck_in_transit(products, sold_ids, today, late_days: int, label_of: Callable) -> List[Dict]:
        stuck = []
        for p in products:
            if p.id in sold_ids:
                continue
            latest = latest_event(p.tracking)
            if latest is None:
                continue
            if latest.state == STATE_IN_TRANSIT:
                days = days_between(p.valuation.purchase_date if p.valuation else None, today)
            elif latest.state == STATE_AT_FORWARDER:
                received = latest.reception_date or latest_date(p.tracking, "reception_date")
                days = days_between(received, today)
            else:
                continue
            if days is not None and days > late_days:
                stuck.append({
                    "product_id": p.id,
                    "category": p.category,
                    "display": label_of(p),
                    "state": latest.state,
                    "days": days,
                    "carrier": latest.carrier,
                    "locker": latest.locker,
                })
        return stuck

    @staticmethod
    def _product_groups(products, sales: List[WeightedSale], attrs_of: Callable, cost_of: Callable) -> List[Dict]:
        buckets: "OrderedDict[Tuple[str, str, str, str], Dict[str, Any]]" = OrderedDict()

        def bucket_for(attrs: AttributeTuple) -> Dict[str, Any]:
            bucket = buckets.get(attrs.group_key())
            if bucket is None:
                bucket = {"attrs": attrs, "purchases": [], "sales": [], "ram": set(), "storage": set()}
                buckets[attrs.group_key()] = bucket
            if attrs.ram:
                bucket["ram"].add(attrs.ram)
            if attrs.storage:
                bucket["storage"].add(attrs.storage)
            return bucket

        for p in products:
            bucket_for(attrs_of(p))["purchases"].append(cost_of(p))
        for ws in sales:
            bucket_for(ws.attrs)["sales"].append(to_number(ws.sale.sale_price))

        groups = []
        for key, bucket in buckets.items():
            attrs: AttributeTuple = bucket["attrs"]
            sale_stats = _price_stats(bucket["sales"])
            band = None
            if sale_stats["p25"] is not None:
                band = {
                    "low": to_money(sale_stats["p25"] / TARGET_MARGIN_DIVISOR),
                    "high": to_money(sale_stats["p75"] / TARGET_MARGIN_DIVISOR),
                }
            groups.append({
                "key": "|".join(key),
                "label": group_label(attrs),
                "type": attrs.type,
                "tier": attrs.tier,
                "processor": attrs.processor,
                "screen_size": attrs.screen_size,
                "ram_distinct": sorted(bucket["ram"]),
                "storage_distinct": sorted(bucket["storage"]),
                "purchase": _price_stats(bucket["purchases"]),
                "sale": sale_stats,
                "suggested_band": band,
            })
        groups.sort(key=lambda g: g["sale"]["count"], reverse=True)
        return groups

    # -- profit series and comparison ----------------------------------------

    async def get_profit_series(
        self,
        from_: Optional[str] = None,
        to: Optional[str] = None,
        granularity: str = DEFAULT_GRANULARITY,
        category: Optional[str] = None,
        tier: Optional[str] = None,
        processor: Optional[str] = None,
        screen_size: Optional[str] = None,
        seller: Optional[str] = None,
    ) -> Dict:
        """Income, cost and profit per period, gap-free between the bounds."""
        if granularity not in GRANULARITIES:
            granularity = DEFAULT_GRANULARITY
        sales = await self._load_weighted_sales(
            self._memo(extract_attributes),
            sale_from=from_,
            sale_to=to,
            category=category,
            tier=tier,
            processor=processor,
            screen_size=screen_size,
            seller=seller,
        )
        start = normalize_date(from_)
        end = normalize_date(to)
        rows = aggregate_by_period(self._series_rows(sales), start, end, granularity)
        return {
            "currency": self.settings.currency,
            "granularity": granularity,
            "from": start,
            "to": end,
            "rows": rows,
        }

    @staticmethod
    def _series_rows(sales: List[WeightedSale]) -> List[Dict[str, Any]]:
        return [
            {
                "date": ws.sale.sale_date,
                "income": ws.price,
                "cost": ws.price - ws.profit,
            }
            for ws in sales
        ]

    @staticmethod
    def _period_metrics(sales: List[WeightedSale]) -> Dict[str, Any]:
        income = to_money(sum(ws.price for ws in sales))
        profit = to_money(sum(ws.profit for ws in sales))
        orders = len(sales)
        return {
            "income": income,
            "cost": to_money(income - profit),
            "profit": profit,
            "margin": margin_pct(profit, income),
            "orders": orders,
            "avg_ticket": to_money(safe_divide(income, orders)),
        }

    @staticmethod
    def _top_groups(sales: List[WeightedSale]) -> List[Dict[str, Any]]:
        totals: "OrderedDict[str, float]" = OrderedDict()
        for ws in sales:
            name = group_label(ws.attrs)
            totals[name] = totals.get(name, 0.0) + ws.profit
        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        return [{"name": name, "profit": to_money(profit)} for name, profit in ranked[:TOP_GROUPS_LIMIT]]

    async def get_profit_comparison(
        self,
        from_: Optional[str] = None,
        to: Optional[str] = None,
        category: Optional[str] = None,
        tier: Optional[str] = None,
        processor: Optional[str] = None,
        screen_size: Optional[str] = None,
        seller: Optional[str] = None,
    ) -> Dict:
        """
        Compare ``[from_, to]`` with the previous equivalent range.

        Missing, unparsable or inverted bounds give the empty comparison
        instead of a guessed default range.
        """
        start, end = parse_date(from_), parse_date(to)
        empty = {
            "previous_range": None,
            "current": None,
            "previous": None,
            "delta": None,
            "insights": [],
            "top_groups": [],
        }
        if start is None or end is None or start > end:
            return empty
        previous_range = compute_previous_range(start, end)
        if previous_range is None:
            return empty

        attrs_of = self._memo(extract_attributes)
        attribute_filters = dict(
            category=category, tier=tier, processor=processor, screen_size=screen_size, seller=seller,
        )
        current_sales = await self._load_weighted_sales(
            attrs_of, sale_from=start.isoformat(), sale_to=end.isoformat(), **attribute_filters
        )
        previous_sales = await self._load_weighted_sales(
            attrs_of, sale_from=previous_range["from"], sale_to=previous_range["to"], **attribute_filters
        )

        current = self._period_metrics(current_sales)
        previous = self._period_metrics(previous_sales)
        delta = compute_deltas(current, previous)
        top_groups = self._top_groups(current_sales)

        return {
            "previous_range": previous_range,
            "current": current,
            "previous": previous,
            "delta": delta,
            "insights": build_insights(current, previous, delta, top_groups),
            "top_groups": top_groups,
        }

    # -- listing match -------------------------------------------------------

    async def match_listing(self, title: str, limit: int = LISTING_MATCH_LIMIT) -> Dict:
        """Score a marketplace listing title against the known product groups."""
        attrs = parse_free_text_attributes(title)
        summary = await self.get_summary_cached()
        scored = []
        for group in summary.get("product_groups", []):
            score = score_group_match(group, attrs)
            if score > 0:
                scored.append({**group, "score": score})
        scored.sort(key=lambda g: g["score"], reverse=True)
        return {"attributes": attrs.to_dict(), "matches": scored[:limit]}
