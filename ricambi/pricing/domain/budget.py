from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional, Tuple

from .errors import DomainValidationError, NotFoundError
from .models import HUNDRED, ZERO, new_id, require_percent, to_decimal

D = Decimal


class BudgetType(str, Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    OPERATOR = "operator"
    GLOBAL = "global"


@dataclass(frozen=True)
class BudgetIncentive:
    """Revenue band [min_revenue, max_revenue) paying a fixed amount, else a percent of revenue."""

    id: str
    min_revenue: D
    max_revenue: D
    incentive_percent: D = ZERO
    incentive_amount: D = ZERO
    description: str = ""

    def covers(self, revenue: D) -> bool:
        return self.min_revenue <= revenue < self.max_revenue


def budget_period(year: int, quarter: int) -> Tuple[datetime, datetime]:
    """Quarter 0 is the whole year. The end is the last second of the period, UTC."""
    if quarter == 0:
        return (
            datetime(year, 1, 1, tzinfo=timezone.utc),
            datetime(year, 12, 31, 23, 59, 59, tzinfo=timezone.utc),
        )
    start_month = (quarter - 1) * 3 + 1
    start = datetime(year, start_month, 1, tzinfo=timezone.utc)
    if quarter == 4:
        next_start = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        next_start = datetime(year, start_month + 3, 1, tzinfo=timezone.utc)
    return start, next_start - timedelta(seconds=1)


def _achievement(actual: D, target: D) -> D:
    if target == ZERO:
        return ZERO
    return actual / target * HUNDRED


@dataclass
class Budget:
    id: str
    entity_id: str
    type: BudgetType
    year: int
    quarter: int
    start_date: datetime
    end_date: datetime
    target_revenue: D = ZERO
    target_margin: D = ZERO
    target_orders: int = 0
    actual_revenue: D = ZERO
    actual_margin: D = ZERO
    actual_orders: int = 0
    incentives: List[BudgetIncentive] = field(default_factory=list)
    notes: str = ""
    created_by: str = ""
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.type = BudgetType(self.type)
        self.target_revenue = to_decimal(self.target_revenue)
        self.target_margin = to_decimal(self.target_margin)
        self.actual_revenue = to_decimal(self.actual_revenue)
        self.actual_margin = to_decimal(self.actual_margin)

    @classmethod
    def create(
        cls,
        entity_id: str,
        budget_type: BudgetType,
        year: int,
        quarter: int,
        target_revenue: Any,
        target_margin: Any,
        target_orders: int,
        created_by: str = "",
        **kwargs: Any,
    ) -> "Budget":
        if not 2000 <= year <= 2100 or not 0 <= quarter <= 4:
            raise DomainValidationError(
                "invalid budget period",
                code="INVALID_BUDGET_PERIOD",
                meta={"year": year, "quarter": quarter},
            )
        start, end = budget_period(year, quarter)
        budget = cls(
            id=kwargs.pop("id", None) or new_id(),
            entity_id=entity_id,
            type=budget_type,
            year=year,
            quarter=quarter,
            start_date=start,
            end_date=end,
            target_revenue=target_revenue,
            target_margin=target_margin,
            target_orders=target_orders,
            created_by=created_by,
            **kwargs,
        )
        budget.validate()
        return budget

    def validate(self) -> None:
        if not self.entity_id:
            raise DomainValidationError("entity ID is required")
        if self.target_revenue < ZERO:
            raise DomainValidationError("target revenue cannot be negative")
        if self.target_margin < ZERO:
            raise DomainValidationError("target margin cannot be negative")
        if self.target_orders < 0:
            raise DomainValidationError("target orders cannot be negative")
        if self.start_date > self.end_date:
            raise DomainValidationError("start date must be before end date")

    # --- actuals ---

    def update_actuals(self, revenue: Any, margin: Any, orders: int, now: datetime) -> None:
        self.actual_revenue = to_decimal(revenue)
        self.actual_margin = to_decimal(margin)
        self.actual_orders = orders
        self.updated_at = now

    def add_revenue(self, amount: Any, now: datetime) -> None:
        self.actual_revenue += to_decimal(amount)
        self.updated_at = now

    def add_margin(self, amount: Any, now: datetime) -> None:
        self.actual_margin += to_decimal(amount)
        self.updated_at = now

    def add_order(self, now: datetime) -> None:
        self.actual_orders += 1
        self.updated_at = now

    # --- achievement ---

    def revenue_achievement(self) -> D:
        return _achievement(self.actual_revenue, self.target_revenue)

    def margin_achievement(self) -> D:
        return _achievement(self.actual_margin, self.target_margin)

    def orders_achievement(self) -> D:
        return _achievement(D(self.actual_orders), D(self.target_orders))

    def overall_achievement(self) -> D:
        return (self.revenue_achievement() + self.margin_achievement() + self.orders_achievement()) / 3

    def remaining_revenue(self) -> D:
        return max(self.target_revenue - self.actual_revenue, ZERO)

    def remaining_margin(self) -> D:
        return max(self.target_margin - self.actual_margin, ZERO)

    def remaining_orders(self) -> int:
        return max(self.target_orders - self.actual_orders, 0)

    # --- calendar ---

    def total_days(self) -> int:
        return int((self.end_date - self.start_date).total_seconds() // 86400)

    def elapsed_days(self, now: datetime) -> int:
        if now < self.start_date:
            return 0
        end = min(now, self.end_date)
        return int((end - self.start_date).total_seconds() // 86400)

    def days_remaining(self, now: datetime) -> int:
        if now > self.end_date:
            return 0
        return int((self.end_date - now).total_seconds() // 86400)

    def time_progress(self, now: datetime) -> D:
        total = self.total_days()
        if total == 0:
            return ZERO
        return min(D(self.elapsed_days(now)) / D(total) * HUNDRED, HUNDRED)

    def is_on_track(self, now: datetime) -> bool:
        """Revenue may lag the calendar by at most 10 points."""
        return self.revenue_achievement() >= self.time_progress(now) - 10

    def is_active(self, now: datetime) -> bool:
        return self.start_date < now < self.end_date

    def is_expired(self, now: datetime) -> bool:
        return now > self.end_date

    def is_future(self, now: datetime) -> bool:
        return now < self.start_date

    def status(self, now: datetime) -> str:
        if self.is_future(now):
            return "future"
        if self.is_active(now):
            return "active"
        if self.is_expired(now):
            return "expired"
        return "unknown"

    # --- incentives ---

    def add_incentive(
        self,
        min_revenue: Any,
        max_revenue: Any,
        incentive_percent: Any = ZERO,
        incentive_amount: Any = ZERO,
        description: str = "",
        now: Optional[datetime] = None,
    ) -> BudgetIncentive:
        low, high = to_decimal(min_revenue), to_decimal(max_revenue)
        if low >= high:
            raise DomainValidationError(
                "invalid incentive range",
                code="INVALID_INCENTIVE_RANGE",
                meta={"min_revenue": str(low), "max_revenue": str(high)},
            )
        amount = to_decimal(incentive_amount)
        if amount < ZERO:
            raise DomainValidationError("incentive amount cannot be negative")
        incentive = BudgetIncentive(
            id=new_id(),
            min_revenue=low,
            max_revenue=high,
            incentive_percent=require_percent(incentive_percent, "incentive_percent"),
            incentive_amount=amount,
            description=description,
        )
        self.incentives.append(incentive)
        self.updated_at = now or self.updated_at
        return incentive

    def remove_incentive(self, incentive_id: str, now: Optional[datetime] = None) -> None:
        for i, inc in enumerate(self.incentives):
            if inc.id == incentive_id:
                del self.incentives[i]
                self.updated_at = now or self.updated_at
                return
        raise NotFoundError("incentive not found", meta={"incentive_id": incentive_id})

    def applicable_incentive(self) -> Optional[BudgetIncentive]:
        """First band (insertion order) covering the actual revenue."""
        for inc in self.incentives:
            if inc.covers(self.actual_revenue):
                return inc
        return None

    def calculate_incentive(self) -> D:
        inc = self.applicable_incentive()
        if inc is None:
            return ZERO
        if inc.incentive_amount > ZERO:
            return inc.incentive_amount
        return self.actual_revenue * inc.incentive_percent / HUNDRED
