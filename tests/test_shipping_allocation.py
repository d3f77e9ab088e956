"""
Shipping-group proration tests.

Shares must always sum to the group total to the cent, and the rounding
residue must land on the same member regardless of input order.
"""
import pytest

from app.models.product import ProductValuation, ShippingGroup
from app.services.shipping_allocation import (
    allocate_shipping,
    build_group_shares,
    effective_total_cost,
)


def test_proportional_to_declared_value():
    shares = allocate_shipping([(1, 100), (2, 300)], 40)
    assert shares == {1: 10, 2: 30}


def test_residual_goes_to_last_member_by_id():
    shares = allocate_shipping([(3, 1), (1, 1), (2, 1)], 100)
    assert shares[1] == pytest.approx(33.33)
    assert shares[2] == pytest.approx(33.33)
    assert shares[3] == pytest.approx(33.34)


def test_order_independent():
    a = allocate_shipping([(1, 10), (2, 20), (3, 30)], 99.99)
    b = allocate_shipping([(3, 30), (1, 10), (2, 20)], 99.99)
    assert a == b
    assert sum(a.values()) == pytest.approx(99.99)


def test_zero_weights_split_evenly():
    shares = allocate_shipping([(1, 0), (2, None)], 50)
    assert shares == {1: 25, 2: 25}


def test_empty_group():
    assert allocate_shipping([], 10) == {}


def _valuation(id, declared, group=None, **kwargs):
    v = ProductValuation(id=id, declared_value=declared, **kwargs)
    if group is not None:
        v.shipping_group = group
        v.shipping_group_id = group.id
    return v


def test_build_group_shares_skips_ungrouped():
    group = ShippingGroup(id=7, total_shipping_cost=60)
    valuations = [
        _valuation(1, 100, group),
        _valuation(2, 200, group),
        _valuation(3, 500),
        None,
    ]
    assert build_group_shares(valuations) == {1: 20, 2: 40}


def test_effective_cost_prefers_persisted_prorated_total():
    group = ShippingGroup(id=7, total_shipping_cost=60)
    v = _valuation(1, 100, group, prorated_total_cost=500, local_price=370, total_cost=450)
    assert effective_total_cost(v, {1: 20}) == 500


def test_effective_cost_from_group_share():
    group = ShippingGroup(id=7, total_shipping_cost=60)
    v = _valuation(1, 100, group, local_price=370, total_cost=450)
    assert effective_total_cost(v, {1: 20}) == 390


def test_effective_cost_converts_purchase_price_without_local_price():
    group = ShippingGroup(id=7, total_shipping_cost=60)
    v = _valuation(1, 100, group, purchase_price=100)
    assert effective_total_cost(v, {1: 20}, exchange_rate=3.7) == 390


def test_effective_cost_falls_back_to_total_cost():
    v = _valuation(5, 100, total_cost=450.5)
    assert effective_total_cost(v, {}) == 450.5
    assert effective_total_cost(None) == 0
