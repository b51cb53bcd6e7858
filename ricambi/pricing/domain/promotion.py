from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Type

from .errors import DomainValidationError
from .models import HUNDRED, ZERO, CustomerCategory, new_id, to_decimal

D = Decimal


class PromotionType(str, Enum):
    PERCENT_DISCOUNT = "percent_discount"
    FIXED_PRICE = "fixed_price"
    NXM = "nxm"
    BUNDLE = "bundle"
    FREE_SHIPPING = "free_shipping"


# -----------------------------
# Rules: one variant per PromotionType
# -----------------------------


class PromotionRules:
    """
    Base of the promotion rule variants. Each variant carries only its own fields.

    priced: whether calculate_discount knows how to price this variant.
    Unpriced variants are matched and recorded, but never selected for a price.
    """

    type_name: ClassVar[PromotionType]
    priced: ClassVar[bool] = True

    def calculate_discount(self, base_price: D, quantity: D) -> D:
        return ZERO

    def validate(self) -> None:
        return None

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "PromotionRules":
        raise NotImplementedError


# Registry: promotion type -> rules class
rules_registry: Dict[str, Type[PromotionRules]] = {}


def register(rules_cls: Type[PromotionRules]) -> Type[PromotionRules]:
    """
    Decorator to register a rules variant by its type_name.
    Fails fast on duplicate registrations.
    """
    key = getattr(rules_cls, "type_name", None)
    if not key:
        raise ValueError(f"Rules class {rules_cls.__name__} has no type_name")

    key = PromotionType(key).value
    if key in rules_registry and rules_registry[key] is not rules_cls:
        raise ValueError(
            f"Duplicate rules registration for type '{key}': "
            f"{rules_registry[key].__name__} vs {rules_cls.__name__}"
        )

    rules_registry[key] = rules_cls
    return rules_cls


def rules_from_dict(promotion_type: Any, params: Optional[Dict[str, Any]]) -> PromotionRules:
    """Accepts the type as a PromotionType member or its string value."""
    try:
        key = PromotionType(promotion_type).value
    except ValueError:
        raise DomainValidationError(
            f"unknown promotion type: {promotion_type}",
            code="INVALID_PROMOTION_RULE",
        ) from None
    return rules_registry[key].from_params(dict(params or {}))


@register
@dataclass(frozen=True)
class PercentDiscount(PromotionRules):
    percent: D

    type_name = PromotionType.PERCENT_DISCOUNT

    def __post_init__(self) -> None:
        object.__setattr__(self, "percent", to_decimal(self.percent))

    def calculate_discount(self, base_price: D, quantity: D) -> D:
        return base_price * quantity * (self.percent / HUNDRED)

    def validate(self) -> None:
        if self.percent <= ZERO or self.percent > HUNDRED:
            raise DomainValidationError(
                "invalid promotion rule", code="INVALID_PROMOTION_RULE",
                meta={"percent": str(self.percent)},
            )

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "PercentDiscount":
        return cls(percent=params.get("percent", params.get("discount_percent", "0")))


@register
@dataclass(frozen=True)
class FixedPrice(PromotionRules):
    price: D

    type_name = PromotionType.FIXED_PRICE

    def __post_init__(self) -> None:
        object.__setattr__(self, "price", to_decimal(self.price))

    def calculate_discount(self, base_price: D, quantity: D) -> D:
        return (base_price - self.price) * quantity

    def validate(self) -> None:
        if self.price <= ZERO:
            raise DomainValidationError(
                "invalid promotion rule", code="INVALID_PROMOTION_RULE",
                meta={"price": str(self.price)},
            )

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "FixedPrice":
        return cls(price=params.get("price", params.get("fixed_price", "0")))


@register
@dataclass(frozen=True)
class BuyNGetM(PromotionRules):
    """Buy `buy` units, get `get` units free, per complete set."""

    buy: int
    get: int

    type_name = PromotionType.NXM

    def calculate_discount(self, base_price: D, quantity: D) -> D:
        if self.buy <= 0:
            return ZERO
        sets = (quantity / D(self.buy)).to_integral_value(rounding=ROUND_FLOOR)
        return base_price * sets * D(self.get)

    def validate(self) -> None:
        if self.buy <= 0 or self.get < 0:
            raise DomainValidationError(
                "invalid promotion rule", code="INVALID_PROMOTION_RULE",
                meta={"buy": self.buy, "get": self.get},
            )

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "BuyNGetM":
        return cls(
            buy=int(params.get("buy", params.get("buy_quantity", 0))),
            get=int(params.get("get", params.get("get_quantity", 0))),
        )


@dataclass(frozen=True)
class BundleArticle:
    article_id: str
    article_code: str
    quantity: D = D("1")
    is_required: bool = True


@register
@dataclass(frozen=True)
class Bundle(PromotionRules):
    articles: Tuple[BundleArticle, ...]
    bundle_price: D = ZERO

    type_name = PromotionType.BUNDLE
    priced = False

    def validate(self) -> None:
        if len(self.articles) < 2:
            raise DomainValidationError(
                "bundle must contain at least 2 articles", code="INVALID_PROMOTION_RULE"
            )

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "Bundle":
        articles = tuple(
            BundleArticle(
                article_id=str(a.get("article_id", "")),
                article_code=str(a.get("article_code", "")),
                quantity=to_decimal(a.get("quantity", "1")),
                is_required=bool(a.get("is_required", True)),
            )
            for a in params.get("articles") or []
        )
        return cls(articles=articles, bundle_price=to_decimal(params.get("bundle_price", "0")))


@register
@dataclass(frozen=True)
class FreeShipping(PromotionRules):
    type_name = PromotionType.FREE_SHIPPING
    priced = False

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "FreeShipping":
        return cls()


# -----------------------------
# Filters, conditions, limits, statistics
# -----------------------------


@dataclass(frozen=True)
class Applicability:
    article_codes: Tuple[str, ...] = ()
    precodes: Tuple[str, ...] = ()
    families: Tuple[str, ...] = ()
    classifications: Tuple[str, ...] = ()
    categories: Tuple[str, ...] = ()
    customer_categories: Tuple[CustomerCategory, ...] = ()
    specific_customers: Tuple[str, ...] = ()
    excluded_articles: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Conditions:
    """Numeric conditions; a zero max means unbounded."""

    min_quantity: D = ZERO
    max_quantity: D = ZERO
    min_amount: D = ZERO
    max_amount: D = ZERO

    def __post_init__(self) -> None:
        for name in ("min_quantity", "max_quantity", "min_amount", "max_amount"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))


@dataclass(frozen=True)
class Limits:
    """Usage caps; 0 means unlimited."""

    max_usage_total: int = 0
    max_usage_per_customer: int = 0
    max_usage_per_day: int = 0


@dataclass
class Statistics:
    total_usages: int = 0
    usages_today: int = 0
    last_usage_date: Optional[datetime] = None
    customer_usages: Dict[str, int] = field(default_factory=dict)
    total_revenue: D = ZERO
    total_discount: D = ZERO


@dataclass(frozen=True)
class UsageCheck:
    """Result of a usage check. `reason` is empty when allowed."""

    ok: bool
    reason: str = ""

    @staticmethod
    def allowed() -> "UsageCheck":
        return UsageCheck(ok=True)

    @staticmethod
    def denied(reason: str) -> "UsageCheck":
        return UsageCheck(ok=False, reason=reason)

    def __bool__(self) -> bool:
        return self.ok


# -----------------------------
# Promotion
# -----------------------------


@dataclass
class Promotion:
    id: str
    code: str
    name: str
    rules: PromotionRules
    valid_from: datetime
    valid_to: Optional[datetime] = None
    description: str = ""
    priority: int = 0
    is_active: bool = True
    applicability: Applicability = field(default_factory=Applicability)
    conditions: Conditions = field(default_factory=Conditions)
    limits: Limits = field(default_factory=Limits)
    statistics: Statistics = field(default_factory=Statistics)
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.code = (self.code or "").strip().upper()
        self.name = (self.name or "").strip()

    @property
    def type(self) -> PromotionType:
        return self.rules.type_name

    @classmethod
    def create(
        cls,
        code: str,
        name: str,
        rules: PromotionRules,
        valid_from: datetime,
        valid_to: Optional[datetime],
        **kwargs: Any,
    ) -> "Promotion":
        promo = cls(
            id=kwargs.pop("id", None) or new_id(),
            code=code,
            name=name,
            rules=rules,
            valid_from=valid_from,
            valid_to=valid_to,
            **kwargs,
        )
        promo.validate()
        return promo

    def validate(self) -> None:
        if not self.code:
            raise DomainValidationError("promotion code cannot be empty")
        if not self.name:
            raise DomainValidationError("promotion name cannot be empty")
        if self.valid_to is not None and self.valid_from > self.valid_to:
            raise DomainValidationError("valid_from must be before valid_to")
        self.rules.validate()

    def is_valid(self, now: datetime) -> bool:
        if not self.is_active:
            return False
        if now < self.valid_from:
            return False
        if self.valid_to is not None and now > self.valid_to:
            return False
        return True

    def is_expired(self, now: datetime) -> bool:
        return self.valid_to is not None and now > self.valid_to

    def days_until_expiry(self, now: datetime) -> int:
        """-1 when the promotion never expires."""
        if self.valid_to is None:
            return -1
        return int((self.valid_to - now).total_seconds() // 86400)

    def is_expiring_soon(self, days: int, now: datetime) -> bool:
        left = self.days_until_expiry(now)
        return 0 <= left <= days

    def effectiveness_rate(self) -> D:
        s = self.statistics
        if s.total_revenue == ZERO:
            return ZERO
        return (s.total_revenue - s.total_discount) / s.total_revenue * HUNDRED

    # --- state changes (callers serialise these per promotion) ---

    def record_usage(self, customer_id: str, revenue: Any, discount: Any, now: datetime) -> None:
        s = self.statistics
        s.total_usages += 1
        s.usages_today += 1
        s.last_usage_date = now
        s.total_revenue += to_decimal(revenue)
        s.total_discount += to_decimal(discount)
        s.customer_usages[customer_id] = s.customer_usages.get(customer_id, 0) + 1
        self.updated_at = now

    def reset_daily_usage(self, now: datetime) -> None:
        self.statistics.usages_today = 0
        self.updated_at = now

    def activate(self, now: datetime) -> None:
        self.is_active = True
        self.updated_at = now

    def deactivate(self, now: datetime) -> None:
        self.is_active = False
        self.updated_at = now
