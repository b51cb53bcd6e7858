# ricambi/pricing/schemas/pricing_v1.py
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, constr, field_validator


# ----------------------------
# Quote
# ----------------------------


def _as_utc(v: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are taken as UTC, like the catalog dates."""
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class QuoteLineV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    article_id: constr(strip_whitespace=True, min_length=1)  # type: ignore
    quantity: Decimal = Field(gt=0)


class QuoteRequestV1(BaseModel):
    """Pricing is evaluated at `at` (defaults to now)."""

    model_config = ConfigDict(extra="forbid")

    customer_id: constr(strip_whitespace=True, min_length=1)  # type: ignore
    lines: List[QuoteLineV1] = Field(min_length=1)
    at: Optional[datetime] = None

    @field_validator("at")
    @classmethod
    def validate_at(cls, v):
        return _as_utc(v)


class LineQuoteV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    article_id: str
    article_code: str
    quantity: Decimal
    list_price: Decimal
    base_price: Decimal
    net_price: Optional[Decimal] = None
    customer_discount: Decimal
    promotion_discount: Decimal
    final_price: Decimal
    line_total: Decimal
    total_discount: Decimal
    discount_percent: Decimal
    applied_rule_id: Optional[str] = None
    applied_promotion_code: Optional[str] = None
    sottocosto: bool = False
    breakdown: List[str]


class CreditCheckV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    allowed: bool
    reason: str = ""


class QuoteResponseV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: Literal["v1"] = "v1"
    customer_id: str
    lines: List[LineQuoteV1]
    total: Decimal
    credit: CreditCheckV1


# ----------------------------
# Kits
# ----------------------------


class KitAvailabilityV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kit_id: str
    kit_code: str
    available_quantity: int
    requested_quantity: Optional[Decimal] = None
    can_fulfill: Optional[bool] = None
    shortages: List[str] = Field(default_factory=list)


class KitQuantityV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    quantity: Decimal = Field(gt=0)


class ArticleStockV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    article_id: str
    code: str
    on_hand: Decimal
    reserved: Decimal
    available: Decimal


class KitReservationV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kit_id: str
    kit_code: str
    quantity: Decimal
    articles: List[ArticleStockV1]


# ----------------------------
# Promotions / discounts
# ----------------------------


class PromotionUsageInputV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    customer_id: constr(strip_whitespace=True, min_length=1)  # type: ignore
    quantity: Decimal = Field(gt=0)
    revenue: Decimal = Field(ge=0)
    discount: Decimal = Field(ge=0)
    at: Optional[datetime] = None

    @field_validator("at")
    @classmethod
    def validate_at(cls, v):
        return _as_utc(v)


class PromotionUsageV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    promotion_id: str
    code: str
    total_usages: int
    usages_today: int
    customer_usages: int


class DiscountValidationInputV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    discount_percent: Decimal


class DiscountValidationV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    operator: str
    discount_percent: Decimal
    max_percent: Decimal
    authorized: bool = True
