from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, Optional

from ricambi.logging_config import get_logger

from ..domain.errors import DomainValidationError
from ..domain.models import to_decimal
from ..domain.promotion import Promotion
from ..repositories.base import PromotionRepository
from .promotion_matcher import can_be_used

logger = get_logger(__name__)


class PromotionUsageRecorder:
    """
    Commit-time usage accounting. Check and increment happen under one lock
    per promotion id, so a usage cap can never be overshot by concurrent commits.
    """

    def __init__(self, promotion_repository: PromotionRepository):
        self.promotions = promotion_repository
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, promotion_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(promotion_id)
            if lock is None:
                lock = self._locks[promotion_id] = threading.Lock()
            return lock

    def record_usage(
        self,
        promotion_id: str,
        customer_id: str,
        quantity,
        revenue,
        discount,
        now: Optional[datetime] = None,
    ) -> Promotion:
        now = now or datetime.now(timezone.utc)
        with self._lock_for(promotion_id):
            promo = self.promotions.get(promotion_id)
            if not promo.is_valid(now):
                raise DomainValidationError(
                    "promotion is not active",
                    code="PROMOTION_NOT_USABLE",
                    meta={"promotion": promo.code},
                )
            check = can_be_used(promo, customer_id, quantity, revenue)
            if not check:
                raise DomainValidationError(
                    check.reason,
                    code="PROMOTION_NOT_USABLE",
                    meta={"promotion": promo.code, "customer_id": customer_id},
                )
            promo.record_usage(customer_id, to_decimal(revenue), to_decimal(discount), now)
            self.promotions.save(promo)

        logger.info(
            "usage recorded for promotion {} by {} (total {})",
            promo.code, customer_id, promo.statistics.total_usages,
        )
        return promo

    def reset_daily_usage(self, promotion_id: str, now: Optional[datetime] = None) -> Promotion:
        now = now or datetime.now(timezone.utc)
        with self._lock_for(promotion_id):
            promo = self.promotions.get(promotion_id)
            promo.reset_daily_usage(now)
            self.promotions.save(promo)
        logger.info("daily usage reset for promotion {}", promo.code)
        return promo

    def reset_all_daily_usage(self, now: Optional[datetime] = None) -> int:
        count = 0
        for promo in self.promotions.list_all():
            self.reset_daily_usage(promo.id, now)
            count += 1
        return count
