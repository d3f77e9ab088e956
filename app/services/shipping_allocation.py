"""
Shipping-group cost proration

Units that travelled together share one shipping charge. Each unit's share is
proportional to its declared value; shares are rounded to cents and the
rounding residue lands on the last member (members ordered by id), so the
shares always add up to the group total exactly.
"""
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.utils.money import to_money, to_number


def allocate_shipping(members: Sequence[Tuple[int, Any]], total_cost: Any) -> Dict[int, float]:
    """
    Split ``total_cost`` across ``(member_id, declared_value)`` pairs.

    Members with no declared value weigh 0; when every weight is 0 the cost
    is split evenly.
    """
    if not members:
        return {}

    total = to_money(total_cost)
    ordered = sorted(members, key=lambda m: m[0])
    weights = [max(to_number(weight), 0.0) for _, weight in ordered]
    weight_sum = sum(weights)

    shares: Dict[int, float] = {}
    allocated = 0.0
    for i, (member_id, _) in enumerate(ordered):
        if i == len(ordered) - 1:
            shares[member_id] = to_money(total - allocated)
            break
        if weight_sum > 0:
            share = to_money(total * weights[i] / weight_sum)
        else:
            share = to_money(total / len(ordered))
        shares[member_id] = share
        allocated = to_money(allocated + share)
    return shares


def build_group_shares(valuations: Iterable[Any]) -> Dict[int, float]:
    """Shipping share per valuation id, for every valuation in a shipping group."""
    members: Dict[int, List[Tuple[int, Any]]] = defaultdict(list)
    totals: Dict[int, Any] = {}
    seen = set()
    for valuation in valuations:
        if valuation is None or valuation.id in seen:
            continue
        seen.add(valuation.id)
        group = getattr(valuation, "shipping_group", None)
        if valuation.shipping_group_id is None or group is None:
            continue
        members[valuation.shipping_group_id].append((valuation.id, valuation.declared_value))
        totals[valuation.shipping_group_id] = group.total_shipping_cost

    shares: Dict[int, float] = {}
    for group_id, group_members in members.items():
        shares.update(allocate_shipping(group_members, totals[group_id]))
    return shares


def effective_total_cost(
    valuation: Any,
    group_shares: Optional[Dict[int, float]] = None,
    exchange_rate: float = 3.7,
) -> float:
    """
    Landed cost of a unit in local currency.

    A persisted prorated total wins. A grouped unit without one is priced at
    its local price plus its share of the group charge. Anything else uses
    the stored total cost.
    """
    if valuation is None:
        return 0.0
    if valuation.prorated_total_cost is not None:
        return to_money(valuation.prorated_total_cost)

    share = (group_shares or {}).get(valuation.id)
    if share is not None:
        if valuation.local_price is not None:
            base = to_number(valuation.local_price)
        else:
            base = to_number(valuation.purchase_price) * exchange_rate
        return to_money(base + share)

    return to_money(valuation.total_cost)
