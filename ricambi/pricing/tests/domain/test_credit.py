from decimal import Decimal

import pytest

from ricambi.pricing.credit import (
    available_fido,
    block_sales,
    can_make_purchase,
    check_sottocosto,
    fido_usage_percent,
    is_fido_blocked,
    is_fido_warning,
    unblock_sales,
    update_exposure,
    validate_operator_discount,
)
from ricambi.pricing.domain.errors import AuthorizationError, DomainValidationError
from ricambi.pricing.domain.models import CreditInfo, Customer, Operator, OperatorProfile

D = Decimal


@pytest.fixture
def credit_customer():
    return Customer(
        id="c1",
        code="C1",
        credit=CreditInfo(fido_limit=D("1000"), unpaid_invoices=D("500"), open_orders=D("100")),
    )


def test_usage_and_available_fido(credit_customer):
    assert fido_usage_percent(credit_customer) == D("60")
    assert available_fido(credit_customer) == D("400")
    assert is_fido_warning(credit_customer, D("50"))
    assert not is_fido_blocked(credit_customer, D("100"))


def test_purchase_allowed_below_warning(credit_customer):
    check = can_make_purchase(credit_customer, D("100"), D("80"), D("100"))
    assert check.allowed
    assert check.reason == ""
    assert not check.is_warning


def test_purchase_warns_when_approaching_limit(credit_customer):
    check = can_make_purchase(credit_customer, D("250"), D("80"), D("100"))
    assert check.allowed
    assert check.reason == "warning: approaching fido limit"


def test_purchase_blocked_over_limit(credit_customer):
    check = can_make_purchase(credit_customer, D("400"), D("80"), D("100"))
    assert not check
    assert check.reason == "purchase would exceed fido limit"


def test_blocked_and_inactive_customers(credit_customer):
    blocked = block_sales(credit_customer, "insoluti")
    assert can_make_purchase(blocked, D("1"), D("80"), D("100")).reason == "insoluti"
    assert can_make_purchase(unblock_sales(blocked), D("1"), D("80"), D("100")).allowed

    inactive = Customer(id="c2", code="C2", is_active=False)
    assert can_make_purchase(inactive, D("1"), D("80"), D("100")).reason == "customer is not active"


def test_zero_fido_limit(credit_customer):
    cust = credit_customer.with_credit(CreditInfo(fido_limit=D("0")))
    assert fido_usage_percent(cust) == D("0")
    assert not can_make_purchase(cust, D("1"), D("80"), D("100")).allowed


def test_update_exposure(credit_customer, fixed_now):
    cust = update_exposure(credit_customer, D("200"), D("0"), fixed_now)
    assert cust.credit.current_exposure == D("200")
    assert cust.credit.last_credit_check == fixed_now
    assert credit_customer.credit.current_exposure == D("600")


def test_sottocosto_check(article):
    check = check_sottocosto(article, D("62"), D("5"))
    assert check.is_sottocosto
    assert check.threshold == D("5")


def test_operator_discount_authorisation():
    sales = Operator(id="o1", username="vendite", profile=OperatorProfile.SALES)
    admin = Operator(id="o2", username="admin", profile=OperatorProfile.ADMIN)

    assert validate_operator_discount(sales, D("20"), D("20")) == D("20")
    with pytest.raises(AuthorizationError) as e:
        validate_operator_discount(sales, D("25"), D("20"))
    assert e.value.message == "discount exceeds authorized limit"

    assert validate_operator_discount(admin, D("25"), D("20")) == D("25")
    with pytest.raises(DomainValidationError):
        validate_operator_discount(admin, D("120"), D("20"))
