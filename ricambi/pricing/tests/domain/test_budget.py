from datetime import datetime, timezone
from decimal import Decimal

import pytest

from ricambi.pricing.domain.budget import Budget, BudgetType, budget_period
from ricambi.pricing.domain.errors import DomainValidationError, NotFoundError

D = Decimal

UTC = timezone.utc


@pytest.fixture
def budget():
    return Budget.create("cust-1", BudgetType.CUSTOMER, 2025, 1, "10000", "2500", 40)


def test_quarter_periods():
    assert budget_period(2025, 1) == (
        datetime(2025, 1, 1, tzinfo=UTC),
        datetime(2025, 3, 31, 23, 59, 59, tzinfo=UTC),
    )
    assert budget_period(2025, 4)[1] == datetime(2025, 12, 31, 23, 59, 59, tzinfo=UTC)
    # quarter 0 is the whole year
    assert budget_period(2025, 0)[0] == datetime(2025, 1, 1, tzinfo=UTC)


@pytest.mark.parametrize("year,quarter", [(1999, 1), (2025, 5), (2025, -1)])
def test_invalid_period_rejected(year, quarter):
    with pytest.raises(DomainValidationError) as e:
        Budget.create("cust-1", BudgetType.CUSTOMER, year, quarter, "1", "1", 1)
    assert e.value.code == "INVALID_BUDGET_PERIOD"


def test_negative_target_rejected():
    with pytest.raises(DomainValidationError):
        Budget.create("cust-1", BudgetType.CUSTOMER, 2025, 1, "-1", "0", 0)


@pytest.mark.parametrize("low,high", [("5000", "5000"), ("8000", "5000")])
def test_incentive_range_must_be_increasing(budget, low, high):
    with pytest.raises(DomainValidationError) as e:
        budget.add_incentive(low, high, incentive_percent="2")

    assert e.value.code == "INVALID_INCENTIVE_RANGE"
    assert budget.incentives == []


def test_incentive_band_lookup(budget, fixed_now):
    budget.add_incentive("0", "5000", description="none")
    budget.add_incentive("5000", "10000", incentive_percent="2")
    top = budget.add_incentive("10000", "999999", incentive_amount="500")

    budget.add_revenue("7500", fixed_now)
    assert budget.calculate_incentive() == D("150")

    # max is exclusive: 10000 falls in the fixed-amount band
    budget.add_revenue("2500", fixed_now)
    assert budget.applicable_incentive() == top
    assert budget.calculate_incentive() == D("500")


def test_no_band_means_no_incentive(budget):
    budget.add_incentive("5000", "10000", incentive_percent="2")
    assert budget.calculate_incentive() == D("0")


def test_remove_incentive(budget):
    inc = budget.add_incentive("0", "100", incentive_percent="1")
    budget.remove_incentive(inc.id)
    assert budget.incentives == []
    with pytest.raises(NotFoundError):
        budget.remove_incentive(inc.id)


def test_achievement_and_remaining(budget, fixed_now):
    budget.update_actuals("5000", "3000", 10, fixed_now)

    assert budget.revenue_achievement() == D("50")
    assert budget.margin_achievement() == D("120")
    assert budget.orders_achievement() == D("25")
    assert budget.remaining_revenue() == D("5000")
    assert budget.remaining_margin() == D("0")
    assert budget.remaining_orders() == 30


def test_zero_target_achievement_is_zero():
    b = Budget.create("op-1", BudgetType.OPERATOR, 2025, 0, "0", "0", 0)
    assert b.overall_achievement() == D("0")


def test_status_and_on_track(budget):
    before = datetime(2024, 12, 1, tzinfo=UTC)
    mid = datetime(2025, 2, 15, tzinfo=UTC)
    after = datetime(2025, 4, 2, tzinfo=UTC)

    assert budget.status(before) == "future"
    assert budget.status(mid) == "active"
    assert budget.status(after) == "expired"
    assert budget.time_progress(after) == D("100")

    # 45 of 89 days elapsed (~51%), revenue may lag by 10 points
    budget.add_revenue("3000", mid)
    assert budget.is_on_track(mid) is False
    budget.add_revenue("2000", mid)
    assert budget.is_on_track(mid) is True
