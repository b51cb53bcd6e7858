from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_FLOOR, Decimal
from typing import Dict, List, Mapping, Optional, Tuple

from ricambi.logging_config import LoggingContext, get_logger

from ..domain.errors import DomainValidationError, KitUnfulfillableError, NotFoundError
from ..domain.kit import Kit
from ..domain.models import HUNDRED, ONE, ZERO, Article, require_positive
from ..repositories.base import ArticleRepository, KitRepository
from .locks import ArticleLockRegistry

D = Decimal

Articles = Mapping[str, Article]


def _fmt(value: D) -> str:
    # 6.000 -> "6", 2.50 -> "2.5"
    n = value.normalize()
    return f"{n:f}"


# -----------------------------
# Pure kit math over an article snapshot (article id -> Article)
# -----------------------------


def can_fulfill(kit: Kit, quantity, articles: Articles) -> Tuple[bool, List[str]]:
    """Every shortage is listed, not only the first one."""
    qty = require_positive(quantity)
    shortages: List[str] = []
    for comp in kit.components:
        article = articles.get(comp.article_id)
        if article is None:
            shortages.append(f"{comp.article_code} (not found)")
            continue
        required = comp.quantity * qty
        if article.stock.available < required:
            shortages.append(
                f"{comp.article_code} (need {_fmt(required)}, have {_fmt(article.stock.available)})"
            )
    return not shortages, shortages


def calculate_availability(kit: Kit, articles: Articles) -> int:
    """Whole kits buildable from current stock. Cached on the kit."""
    result: Optional[D] = None
    for comp in kit.components:
        article = articles.get(comp.article_id)
        if article is None or article.stock.available <= ZERO:
            result = ZERO
            break
        buildable = (article.stock.available / comp.quantity).to_integral_value(rounding=ROUND_FLOOR)
        if result is None or buildable < result:
            result = buildable
    if result is None or result < ZERO:
        result = ZERO
    kit.available_quantity = result
    return int(result)


def list_price_total(kit: Kit, articles: Articles) -> D:
    """Sum of component list prices; components missing from the snapshot are skipped."""
    total = ZERO
    for comp in kit.components:
        article = articles.get(comp.article_id)
        if article is not None:
            total += article.list_price * comp.quantity
    return total


def calculate_price(kit: Kit, articles: Articles) -> D:
    if not kit.components:
        raise DomainValidationError(
            "kit must have at least 2 components", code="INVALID_KIT_COMPONENTS"
        )
    missing = [c.article_code for c in kit.components if c.article_id not in articles]
    if missing:
        raise NotFoundError(
            f"article not found for component: {missing[0]}", meta={"missing": missing}
        )
    total = list_price_total(kit, articles)
    if kit.discount_percent > ZERO:
        total = total * (ONE - kit.discount_percent / HUNDRED)
    kit.calculated_price = total
    return total


def savings_percent(kit: Kit, articles: Articles) -> D:
    """Savings of the kit's final price against buying the components separately, never negative."""
    if not kit.calculated_price:
        return ZERO
    total = list_price_total(kit, articles)
    if total == ZERO:
        return ZERO
    savings = (total - kit.final_price()) / total * HUNDRED
    return savings if savings > ZERO else ZERO


# -----------------------------
# Stock-changing operations
# -----------------------------


class KitStockService:
    """
    Reservation, release and decomposition of kits against the article repository.

    Each operation holds the locks of every component article (sorted id order),
    re-reads the articles, computes every new StockInfo first and only then
    commits them with one save_many. A failure leaves stock untouched.
    When a kit repository is given, decompose_kit saves the kit with its
    updated sales count.
    """

    def __init__(
        self,
        article_repository: ArticleRepository,
        locks: Optional[ArticleLockRegistry] = None,
        kit_repository: Optional[KitRepository] = None,
    ):
        self.articles = article_repository
        self.locks = locks or ArticleLockRegistry()
        self.kits = kit_repository
        self.logger = get_logger(__name__)

    def snapshot(self, kit: Kit) -> Dict[str, Article]:
        return self.articles.find_by_ids(c.article_id for c in kit.components)

    def can_fulfill(self, kit: Kit, quantity) -> Tuple[bool, List[str]]:
        return can_fulfill(kit, quantity, self.snapshot(kit))

    def calculate_availability(self, kit: Kit) -> int:
        return calculate_availability(kit, self.snapshot(kit))

    def calculate_price(self, kit: Kit) -> D:
        return calculate_price(kit, self.snapshot(kit))

    def savings_percent(self, kit: Kit) -> D:
        return savings_percent(kit, self.snapshot(kit))

    def reserve_components(self, kit: Kit, quantity) -> List[Article]:
        qty = require_positive(quantity)
        with LoggingContext(kit_id=kit.id), self.locks.hold(c.article_id for c in kit.components):
            current = self.snapshot(kit)
            ok, shortages = can_fulfill(kit, qty, current)
            if not ok:
                self.logger.warning("reservation of kit {} x{} rejected: {}", kit.code, qty, shortages)
                raise KitUnfulfillableError(kit.code, shortages, action="fulfill")

            updated = [
                current[c.article_id].with_stock(
                    current[c.article_id].stock.reserve(c.quantity * qty)
                )
                for c in kit.components
            ]
            self.articles.save_many(updated)
            kit.available_quantity = None
            self.logger.info("reserved kit {} x{}", kit.code, qty)
            return updated

    def release_components(self, kit: Kit, quantity) -> List[Article]:
        """Components missing from the repository are skipped."""
        qty = require_positive(quantity)
        with LoggingContext(kit_id=kit.id), self.locks.hold(c.article_id for c in kit.components):
            current = self.snapshot(kit)
            updated = [
                current[c.article_id].with_stock(
                    current[c.article_id].stock.release(c.quantity * qty)
                )
                for c in kit.components
                if c.article_id in current
            ]
            self.articles.save_many(updated)
            kit.available_quantity = None
            self.logger.info("released kit {} x{}", kit.code, qty)
            return updated

    def decompose_kit(self, kit: Kit, quantity, now: Optional[datetime] = None) -> List[Article]:
        """Consume component stock for a sold kit, then count the sale."""
        qty = require_positive(quantity)
        now = now or datetime.now(timezone.utc)
        with LoggingContext(kit_id=kit.id), self.locks.hold(c.article_id for c in kit.components):
            current = self.snapshot(kit)
            ok, shortages = can_fulfill(kit, qty, current)
            if not ok:
                self.logger.warning("decomposition of kit {} x{} rejected: {}", kit.code, qty, shortages)
                raise KitUnfulfillableError(kit.code, shortages, action="decompose")

            updated = [
                current[c.article_id].with_stock(
                    current[c.article_id].stock.remove(c.quantity * qty)
                )
                for c in kit.components
            ]
            self.articles.save_many(updated)
            kit.record_sale(now)
            kit.available_quantity = None
            if self.kits is not None:
                self.kits.save(kit)
            self.logger.info("decomposed kit {} x{}", kit.code, qty)
            return updated
