from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from ricambi.logging_config import LoggingContext, get_logger

from ..domain.models import HUNDRED, ZERO, Article, Customer, DiscountRule, require_positive
from ..domain.promotion import Promotion
from ..explain.breakdown_builder import Breakdown, CheckStatus
from ..repositories.base import PromotionRepository
from .discount_grid import effective_discount_amount, find_applicable_discount
from .promotion_matcher import PromotionMatch, find_best_promotion

D = Decimal

CENT = D("0.01")

logger = get_logger(__name__)


def _money(value: D) -> str:
    return str(value.quantize(CENT))


@dataclass
class DiscountCalculation:
    """
    Result of one pricing query. Discounts are per unit, absolute currency.
    At most one of customer_discount / promotion_discount is non-zero.
    """

    article_id: str
    customer_id: str
    quantity: D
    list_price: D
    base_price: D
    net_price: Optional[D] = None
    customer_discount: D = ZERO
    promotion_discount: D = ZERO
    final_price: D = ZERO
    total_discount: D = ZERO
    discount_percent: D = ZERO
    applied_rule: Optional[DiscountRule] = None
    applied_promotion: Optional[Promotion] = None
    breakdown: Breakdown = field(default_factory=Breakdown)

    @property
    def line_total(self) -> D:
        return self.final_price * self.quantity

    @property
    def has_discount(self) -> bool:
        return self.total_discount > ZERO


class PriceCalculator:
    """
    Orchestrates net price override, discount grid and promotions for one line.
    Pure: reads active promotions, never records usage.
    """

    def __init__(self, promotion_repository: PromotionRepository):
        self.promotions = promotion_repository

    def calculate_final_price(
        self,
        customer: Customer,
        article: Article,
        quantity,
        now: Optional[datetime] = None,
    ) -> DiscountCalculation:
        qty = require_positive(quantity)
        now = now or datetime.now(timezone.utc)
        # upstream failures propagate as-is
        active = self.promotions.find_active(now)
        return self._price_line(customer, article, qty, now, active)

    def quote_lines(
        self,
        customer: Customer,
        lines: Sequence[Tuple[Article, object]],
        now: Optional[datetime] = None,
    ) -> List[DiscountCalculation]:
        """Price several (article, quantity) lines against one read of the active promotions."""
        checked = [(article, require_positive(qty)) for article, qty in lines]
        now = now or datetime.now(timezone.utc)
        active = self.promotions.find_active(now)
        return [self._price_line(customer, a, q, now, active) for a, q in checked]

    # -----------------------------
    # internals
    # -----------------------------

    def _price_line(
        self,
        customer: Customer,
        article: Article,
        qty: D,
        now: datetime,
        promotions: Iterable[Promotion],
    ) -> DiscountCalculation:
        with LoggingContext(customer_id=customer.id):
            bd = Breakdown()
            calc = DiscountCalculation(
                article_id=article.id,
                customer_id=customer.id,
                quantity=qty,
                list_price=article.list_price,
                base_price=article.list_price,
                breakdown=bd,
            )
            bd.add_step("BASE_PRICE", f"List price {article.code}: {_money(article.list_price)}")

            # 1) net price override
            net = article.get_net_price(customer.id, now)
            if net is not None:
                calc.net_price = net.price
                calc.base_price = net.price
                bd.add_step("NET_PRICE", f"Net price for customer {customer.code}: {_money(net.price)}")

            base = calc.base_price

            # 2) promotion, normalised to per unit
            promo_match: Optional[PromotionMatch] = find_best_promotion(
                promotions, article, customer, qty, base * qty, now
            )
            if promo_match is not None:
                calc.applied_promotion = promo_match.promotion
                calc.promotion_discount = promo_match.discount_amount / qty

            # 3) discount grid
            rule = find_applicable_discount(customer.discount_grid, article, qty, now)
            if rule is not None:
                calc.applied_rule = rule
                calc.customer_discount = effective_discount_amount(base, rule)

            # 4) mutual exclusion, ties keep the customer discount
            if calc.customer_discount > ZERO and calc.promotion_discount > ZERO:
                if calc.promotion_discount > calc.customer_discount:
                    bd.add_check(
                        "MUTUAL_EXCLUSION",
                        f"Promotion {calc.applied_promotion.code} beats customer discount",
                        CheckStatus.SKIP,
                    )
                    calc.customer_discount = ZERO
                    calc.applied_rule = None
                else:
                    bd.add_check(
                        "MUTUAL_EXCLUSION",
                        f"Customer discount beats promotion {calc.applied_promotion.code}",
                        CheckStatus.SKIP,
                    )
                    calc.promotion_discount = ZERO
                    calc.applied_promotion = None

            if calc.applied_rule is not None:
                bd.add_step(
                    "CUSTOMER_DISCOUNT",
                    f"Customer discount rule {calc.applied_rule.id}: -{_money(calc.customer_discount)}",
                )
            if calc.applied_promotion is not None:
                bd.add_step(
                    "PROMOTION",
                    f"Promotion {calc.applied_promotion.code}: -{_money(calc.promotion_discount)}",
                )

            # 5) totals
            calc.total_discount = calc.customer_discount + calc.promotion_discount
            calc.final_price = base - calc.total_discount
            if base > ZERO:
                calc.discount_percent = calc.total_discount / base * HUNDRED
            bd.add_step("FINAL_PRICE", f"Final unit price: {_money(calc.final_price)}")

            logger.debug(
                "priced {} x{} for {}: {} -> {}",
                article.code, qty, customer.code, base, calc.final_price,
            )
            return calc
