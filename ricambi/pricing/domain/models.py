from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Tuple
from uuid import uuid4

from .errors import DomainValidationError, InsufficientStockError

D = Decimal

ZERO = D("0")
ONE = D("1")
HUNDRED = D("100")


def to_decimal(value: Any) -> D:
    if isinstance(value, D):
        return value
    return D(str(value))


def new_id() -> str:
    return uuid4().hex


def require_positive(quantity: Any, what: str = "quantity") -> D:
    q = to_decimal(quantity)
    if q <= ZERO:
        raise DomainValidationError(f"{what} must be positive", meta={what: str(q)})
    return q


def require_percent(pct: Any, what: str = "discount_percent") -> D:
    p = to_decimal(pct)
    if p < ZERO or p > HUNDRED:
        raise DomainValidationError(
            f"{what} must be between 0 and 100", meta={what: str(p)}
        )
    return p


def in_window(now: datetime, valid_from: Optional[datetime], valid_to: Optional[datetime]) -> bool:
    """Open bounds are None. Started means now >= valid_from; expired means now > valid_to."""
    if valid_from is not None and now < valid_from:
        return False
    if valid_to is not None and now > valid_to:
        return False
    return True


# -----------------------------
# Article
# -----------------------------


@dataclass(frozen=True)
class NetPrice:
    """Customer-specific negotiated price overriding the list price."""

    customer_id: str
    price: D
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    created_by: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "price", to_decimal(self.price))

    def is_valid_at(self, now: datetime) -> bool:
        if self.valid_from is not None and now < self.valid_from:
            return False
        return self.valid_to is None or now < self.valid_to

    def is_expired_at(self, now: datetime) -> bool:
        return self.valid_to is not None and now > self.valid_to


@dataclass(frozen=True)
class StockInfo:
    """
    Immutable stock snapshot. Mutations return a new StockInfo.
    Invariant: 0 <= reserved <= on_hand, available = on_hand - reserved.
    """

    on_hand: D = ZERO
    reserved: D = ZERO
    reorder_point: D = ZERO
    location: str = ""

    def __post_init__(self) -> None:
        for name in ("on_hand", "reserved", "reorder_point"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    @property
    def available(self) -> D:
        return self.on_hand - self.reserved

    def reserve(self, quantity: Any) -> "StockInfo":
        q = require_positive(quantity)
        if self.available < q:
            raise InsufficientStockError(
                "insufficient stock",
                meta={"requested": str(q), "available": str(self.available)},
            )
        return replace(self, reserved=self.reserved + q)

    def release(self, quantity: Any) -> "StockInfo":
        q = require_positive(quantity)
        if self.reserved < q:
            raise DomainValidationError(
                "cannot release more than reserved",
                meta={"requested": str(q), "reserved": str(self.reserved)},
            )
        return replace(self, reserved=self.reserved - q)

    def add(self, quantity: Any) -> "StockInfo":
        q = require_positive(quantity)
        return replace(self, on_hand=self.on_hand + q)

    def remove(self, quantity: Any) -> "StockInfo":
        q = require_positive(quantity)
        if self.available < q:
            raise InsufficientStockError(
                "insufficient stock",
                meta={"requested": str(q), "available": str(self.available)},
            )
        return replace(self, on_hand=self.on_hand - q)


@dataclass(frozen=True)
class Article:
    id: str
    code: str
    description: str = ""
    precode: str = ""
    family: str = ""
    classification: Tuple[str, ...] = ()
    category: str = ""
    list_price: D = ZERO
    currency: str = "EUR"
    last_purchase_cost: D = ZERO
    net_prices: Tuple[NetPrice, ...] = ()
    stock: StockInfo = field(default_factory=StockInfo)
    is_active: bool = True

    def __post_init__(self) -> None:
        code = (self.code or "").strip().upper()
        if not code:
            raise DomainValidationError("invalid article code")
        object.__setattr__(self, "code", code)
        object.__setattr__(self, "list_price", to_decimal(self.list_price))
        object.__setattr__(self, "last_purchase_cost", to_decimal(self.last_purchase_cost))
        if self.list_price < ZERO:
            raise DomainValidationError("invalid price", meta={"code": code})

    def get_net_price(self, customer_id: str, now: datetime) -> Optional[NetPrice]:
        for np in self.net_prices:
            if np.customer_id == customer_id and np.is_valid_at(now):
                return np
        return None

    def with_net_price(self, net_price: NetPrice) -> "Article":
        """Replace the customer's existing override, or append a new one."""
        if any(np.customer_id == net_price.customer_id for np in self.net_prices):
            prices = tuple(
                net_price if np.customer_id == net_price.customer_id else np
                for np in self.net_prices
            )
        else:
            prices = self.net_prices + (net_price,)
        return replace(self, net_prices=prices)

    def expired_net_prices(self, now: datetime) -> Tuple[NetPrice, ...]:
        return tuple(np for np in self.net_prices if np.is_expired_at(now))

    def with_stock(self, stock: StockInfo) -> "Article":
        return replace(self, stock=stock)

    def calculate_margin(self, selling_price: Any) -> D:
        """Margin % of selling_price over the last purchase cost (0 when the cost is unknown)."""
        price = to_decimal(selling_price)
        if self.last_purchase_cost == ZERO or price == ZERO:
            return ZERO
        return (price - self.last_purchase_cost) / price * HUNDRED

    def is_sottocosto(self, selling_price: Any, threshold: Any) -> bool:
        """Never flagged while the purchase cost is unknown."""
        if self.last_purchase_cost == ZERO:
            return False
        return self.calculate_margin(selling_price) < to_decimal(threshold)

    def is_low_stock(self) -> bool:
        return self.stock.available <= self.stock.reorder_point


# -----------------------------
# Customer
# -----------------------------


class CustomerCategory(str, Enum):
    RETAIL = "retail"
    WHOLESALE = "wholesale"
    WORKSHOP = "workshop"
    DEALER = "dealer"
    VIP = "vip"


class CreditClass(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"


CREDIT_RATINGS = {
    CreditClass.A: "Excellent",
    CreditClass.B: "Good",
    CreditClass.C: "Average",
    CreditClass.D: "Poor",
    CreditClass.E: "High Risk",
}


@dataclass(frozen=True)
class CreditInfo:
    credit_class: CreditClass = CreditClass.C
    fido_limit: D = D("5000")
    unpaid_invoices: D = ZERO
    open_orders: D = ZERO
    overdue_amount: D = ZERO
    block_sales: bool = False
    block_reason: str = ""
    last_credit_check: Optional[datetime] = None

    def __post_init__(self) -> None:
        for name in ("fido_limit", "unpaid_invoices", "open_orders", "overdue_amount"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

    @property
    def current_exposure(self) -> D:
        return self.unpaid_invoices + self.open_orders


@dataclass(frozen=True)
class DiscountRule:
    """
    One entry of a customer's discount grid.
    Selectors (first populated one decides): article_code, precode, family, classification.
    """

    id: str = field(default_factory=new_id)
    priority: int = 0
    article_code: str = ""
    precode: str = ""
    family: str = ""
    classification: str = ""
    discount_percent: D = ZERO
    discount_cascade: Tuple[D, ...] = ()
    min_quantity: D = ZERO
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    is_active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "discount_percent", to_decimal(self.discount_percent))
        object.__setattr__(
            self, "discount_cascade", tuple(to_decimal(p) for p in self.discount_cascade)
        )
        object.__setattr__(self, "min_quantity", to_decimal(self.min_quantity))

    def validate(self) -> None:
        require_percent(self.discount_percent)
        for step in self.discount_cascade:
            require_percent(step, "discount_cascade")


@dataclass(frozen=True)
class Customer:
    id: str
    code: str
    company_name: str = ""
    category: CustomerCategory = CustomerCategory.RETAIL
    credit: CreditInfo = field(default_factory=CreditInfo)
    discount_grid: Tuple[DiscountRule, ...] = ()
    is_active: bool = True

    def with_discount_rule(self, rule: DiscountRule) -> "Customer":
        rule.validate()
        rule = replace(rule, id=rule.id or new_id(), is_active=True)
        return replace(self, discount_grid=self.discount_grid + (rule,))

    def without_discount_rule(self, rule_id: str) -> "Customer":
        return replace(
            self, discount_grid=tuple(r for r in self.discount_grid if r.id != rule_id)
        )

    def with_credit(self, credit: CreditInfo) -> "Customer":
        return replace(self, credit=credit)

    @property
    def is_vip(self) -> bool:
        return self.category == CustomerCategory.VIP

    @property
    def credit_rating(self) -> str:
        return CREDIT_RATINGS.get(self.credit.credit_class, "Unknown")


# -----------------------------
# Operator
# -----------------------------


class OperatorProfile(str, Enum):
    ADMIN = "admin"
    WAREHOUSE = "warehouse"
    SALES = "sales"
    ACCOUNTING = "accounting"


@dataclass(frozen=True)
class Operator:
    id: str
    username: str
    profile: OperatorProfile = OperatorProfile.SALES
    is_active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.profile == OperatorProfile.ADMIN

    def can_override_fido(self) -> bool:
        return self.profile == OperatorProfile.ADMIN

    def can_approve_sottocosto(self) -> bool:
        return self.profile in (OperatorProfile.ADMIN, OperatorProfile.SALES)
