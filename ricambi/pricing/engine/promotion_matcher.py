from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from ricambi.logging_config import get_logger

from ..domain.models import ZERO, Article, Customer, to_decimal
from ..domain.promotion import Promotion, UsageCheck
from .matchers import article_eligibility, customer_eligibility

D = Decimal

logger = get_logger(__name__)


@dataclass(frozen=True)
class PromotionMatch:
    promotion: Promotion
    discount_amount: D  # total for the whole quantity


def is_applicable_to_article(promotion: Promotion, article: Article) -> bool:
    return article_eligibility(promotion.applicability, article).matched


def is_applicable_to_customer(promotion: Promotion, customer: Customer) -> bool:
    return customer_eligibility(promotion.applicability, customer).matched


def can_be_used(promotion: Promotion, customer_id: str, quantity, amount) -> UsageCheck:
    """
    Usage limits first, then numeric conditions. The first failing check is reported.
    A zero limit or zero max is unbounded.
    """
    qty = to_decimal(quantity)
    amt = to_decimal(amount)
    lim = promotion.limits
    stats = promotion.statistics
    cond = promotion.conditions

    if lim.max_usage_total > 0 and stats.total_usages >= lim.max_usage_total:
        return UsageCheck.denied("promotion usage limit reached")
    if lim.max_usage_per_customer > 0:
        if stats.customer_usages.get(customer_id, 0) >= lim.max_usage_per_customer:
            return UsageCheck.denied("customer usage limit reached")
    if lim.max_usage_per_day > 0 and stats.usages_today >= lim.max_usage_per_day:
        return UsageCheck.denied("daily usage limit reached")

    if cond.min_quantity > ZERO and qty < cond.min_quantity:
        return UsageCheck.denied("minimum quantity not met")
    if cond.max_quantity > ZERO and qty > cond.max_quantity:
        return UsageCheck.denied("maximum quantity exceeded")
    if cond.min_amount > ZERO and amt < cond.min_amount:
        return UsageCheck.denied("minimum amount not met")
    if cond.max_amount > ZERO and amt > cond.max_amount:
        return UsageCheck.denied("maximum amount exceeded")

    return UsageCheck.allowed()


def calculate_discount(promotion: Promotion, base_price, quantity) -> D:
    return promotion.rules.calculate_discount(to_decimal(base_price), to_decimal(quantity))


def find_best_promotion(
    promotions: Iterable[Promotion],
    article: Article,
    customer: Customer,
    quantity,
    amount,
    now: datetime,
) -> Optional[PromotionMatch]:
    """
    Largest absolute discount wins; priority is not consulted here.
    Equal discounts keep the first seen. Variants this path cannot price
    (bundle, free shipping) never win, nor does a non-positive discount.
    """
    qty = to_decimal(quantity)
    amt = to_decimal(amount)
    base = amt / qty if qty != ZERO else ZERO
    best: Optional[PromotionMatch] = None

    for promo in promotions:
        if not promo.rules.priced:
            logger.debug("promotion {} ({}) not priced on this path", promo.code, promo.type.value)
            continue
        if not promo.is_valid(now):
            continue
        if not is_applicable_to_article(promo, article):
            continue
        if not is_applicable_to_customer(promo, customer):
            continue

        check = can_be_used(promo, customer.id, qty, amt)
        if not check:
            logger.debug("promotion {} skipped: {}", promo.code, check.reason)
            continue

        discount = calculate_discount(promo, base, qty)
        if discount <= ZERO:
            continue
        if best is None or discount > best.discount_amount:
            best = PromotionMatch(promotion=promo, discount_amount=discount)

    if best is not None:
        logger.debug(
            "promotion {} selected for {} (discount {})",
            best.promotion.code, article.code, best.discount_amount,
        )
    return best
