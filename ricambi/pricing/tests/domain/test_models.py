from datetime import timedelta
from decimal import Decimal

import pytest

from ricambi.pricing.domain.errors import DomainValidationError, InsufficientStockError
from ricambi.pricing.domain.models import (
    Article,
    Customer,
    CreditClass,
    CreditInfo,
    DiscountRule,
    NetPrice,
    StockInfo,
)

D = Decimal


def test_stock_reserve_never_exceeds_on_hand():
    stock = StockInfo(on_hand=D("5"))
    stock = stock.reserve(D("3"))

    assert stock.available == D("2")
    with pytest.raises(InsufficientStockError):
        stock.reserve(D("3"))


def test_stock_operations_return_new_snapshots():
    stock = StockInfo(on_hand=D("5"))
    added = stock.add(D("2"))

    assert stock.on_hand == D("5")
    assert added.on_hand == D("7")
    assert added.remove(D("7")).on_hand == D("0")


def test_stock_rejects_non_positive_quantities():
    with pytest.raises(DomainValidationError):
        StockInfo(on_hand=D("5")).reserve(D("0"))
    with pytest.raises(DomainValidationError):
        StockInfo(on_hand=D("5"), reserved=D("1")).release(D("2"))


def test_article_code_is_normalised_and_required():
    assert Article(id="a", code="  abc-1 ").code == "ABC-1"
    with pytest.raises(DomainValidationError):
        Article(id="a", code=" ")
    with pytest.raises(DomainValidationError):
        Article(id="a", code="X", list_price=D("-1"))


def test_net_price_window(article, fixed_now):
    np = NetPrice(
        customer_id="cust-1",
        price=D("90"),
        valid_from=fixed_now,
        valid_to=fixed_now + timedelta(days=1),
    )
    art = article.with_net_price(np)

    assert art.get_net_price("cust-1", fixed_now) is np
    assert art.get_net_price("cust-1", fixed_now - timedelta(seconds=1)) is None
    # valid_to itself is already outside
    assert art.get_net_price("cust-1", fixed_now + timedelta(days=1)) is None
    assert art.get_net_price("cust-2", fixed_now) is None


def test_with_net_price_replaces_existing_override(article):
    art = article.with_net_price(NetPrice(customer_id="cust-1", price=D("90")))
    art = art.with_net_price(NetPrice(customer_id="cust-1", price=D("85")))

    assert len(art.net_prices) == 1
    assert art.net_prices[0].price == D("85")


def test_expired_net_prices(article, fixed_now):
    old = NetPrice(customer_id="c1", price=D("1"), valid_to=fixed_now - timedelta(days=1))
    current = NetPrice(customer_id="c2", price=D("1"))
    art = article.with_net_price(old).with_net_price(current)

    assert art.expired_net_prices(fixed_now) == (old,)


def test_margin_and_sottocosto(article):
    # cost 60, selling 100 -> 40%
    assert article.calculate_margin(D("100")) == D("40")
    assert article.is_sottocosto(D("62"), D("5")) is True
    assert article.is_sottocosto(D("100"), D("5")) is False


def test_unknown_cost_is_never_sottocosto():
    unknown = Article(id="art-x", code="X-1", list_price=D("10"))

    assert unknown.calculate_margin(D("1")) == D("0")
    assert unknown.is_sottocosto(D("1"), D("5")) is False


def test_low_stock(article):
    low = article.with_stock(StockInfo(on_hand=D("3"), reorder_point=D("3")))
    assert low.is_low_stock() is True
    assert article.is_low_stock() is False


def test_discount_rule_percent_bounds(customer):
    with pytest.raises(DomainValidationError):
        customer.with_discount_rule(DiscountRule(family="x", discount_percent=D("101")))
    with pytest.raises(DomainValidationError):
        customer.with_discount_rule(DiscountRule(family="x", discount_cascade=(D("10"), D("-1"))))


def test_discount_rule_add_and_remove(customer):
    cust = customer.with_discount_rule(DiscountRule(id="r1", family="x", discount_percent=D("5"), is_active=False))

    assert cust.discount_grid[0].is_active is True
    assert customer.discount_grid == ()
    assert cust.without_discount_rule("r1").discount_grid == ()


def test_credit_exposure_and_rating():
    cust = Customer(
        id="c",
        code="C1",
        credit=CreditInfo(credit_class=CreditClass.A, unpaid_invoices=D("100"), open_orders=D("50")),
    )
    assert cust.credit.current_exposure == D("150")
    assert cust.credit_rating == "Excellent"
