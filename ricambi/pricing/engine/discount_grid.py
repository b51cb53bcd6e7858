from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from ricambi.logging_config import get_logger

from ..domain.models import HUNDRED, ONE, ZERO, Article, DiscountRule, in_window, to_decimal
from .matchers import rule_selector_match

D = Decimal

logger = get_logger(__name__)


def is_rule_current(rule: DiscountRule, quantity: D, now: datetime) -> bool:
    """Active, inside its validity window, and min_quantity (when set) reached."""
    if not rule.is_active:
        return False
    if not in_window(now, rule.valid_from, rule.valid_to):
        return False
    if rule.min_quantity > ZERO and quantity < rule.min_quantity:
        return False
    return True


def find_applicable_discount(
    rules: Iterable[DiscountRule],
    article: Article,
    quantity,
    now: datetime,
) -> Optional[DiscountRule]:
    """
    Pick the single applicable rule of a discount grid for (article, quantity).

    - skip rules that are not current (inactive, outside window, min qty)
    - a rule matches via its first populated selector only
      (article_code > precode > family > classification)
    - strictly highest priority wins; equal priority keeps the first seen
    """
    qty = to_decimal(quantity)
    best: Optional[DiscountRule] = None

    for rule in rules:
        if not is_rule_current(rule, qty, now):
            continue

        m = rule_selector_match(rule, article)
        if not m.matched:
            continue

        if best is None or rule.priority > best.priority:
            best = rule

    if best is not None:
        logger.debug(
            "discount rule {} (priority {}) selected for {}", best.id, best.priority, article.code
        )
    return best


def apply_discount(price, rule: DiscountRule) -> D:
    """Cascade steps are applied one after the other; otherwise the single percent once."""
    out = to_decimal(price)
    if rule.discount_cascade:
        for pct in rule.discount_cascade:
            out = out * (ONE - pct / HUNDRED)
        return out
    return out * (ONE - rule.discount_percent / HUNDRED)


def effective_discount_amount(price, rule: DiscountRule) -> D:
    """Absolute discount per unit, cascade aware."""
    p = to_decimal(price)
    return p - apply_discount(p, rule)


def effective_discount_percent(rule: DiscountRule) -> D:
    """Equivalent single percent; cascade [10, 10] -> 19."""
    return effective_discount_amount(HUNDRED, rule)
