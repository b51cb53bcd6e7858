from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from ricambi.logging_config import get_logger

from .domain.errors import AuthorizationError
from .domain.models import HUNDRED, ZERO, Article, Customer, Operator, require_percent, to_decimal

D = Decimal

logger = get_logger(__name__)


# -----------------------------
# Fido (customer credit limit)
# -----------------------------


@dataclass(frozen=True)
class FidoCheck:
    """Outcome of a credit check. A warning is allowed with a non-empty reason."""

    allowed: bool
    reason: str = ""

    @property
    def is_warning(self) -> bool:
        return self.allowed and bool(self.reason)

    def __bool__(self) -> bool:
        return self.allowed


def _usage_percent(exposure: D, limit: D) -> Optional[D]:
    """None when there is no limit to measure against."""
    if limit == ZERO:
        return None
    return exposure / limit * HUNDRED


def fido_usage_percent(customer: Customer) -> D:
    usage = _usage_percent(customer.credit.current_exposure, customer.credit.fido_limit)
    return ZERO if usage is None else usage


def available_fido(customer: Customer) -> D:
    available = customer.credit.fido_limit - customer.credit.current_exposure
    return available if available > ZERO else ZERO


def is_fido_warning(customer: Customer, warning_threshold: Any) -> bool:
    usage = fido_usage_percent(customer)
    return to_decimal(warning_threshold) <= usage < HUNDRED


def is_fido_blocked(customer: Customer, block_threshold: Any) -> bool:
    return customer.credit.block_sales or fido_usage_percent(customer) >= to_decimal(block_threshold)


def has_overdue_payments(customer: Customer) -> bool:
    return customer.credit.overdue_amount > ZERO


def can_make_purchase(
    customer: Customer,
    amount: Any,
    warning_threshold: Any,
    block_threshold: Any,
) -> FidoCheck:
    if not customer.is_active:
        return FidoCheck(False, "customer is not active")
    if customer.credit.block_sales:
        return FidoCheck(False, customer.credit.block_reason or "sales blocked")

    new_exposure = customer.credit.current_exposure + to_decimal(amount)
    usage = _usage_percent(new_exposure, customer.credit.fido_limit)
    # zero limit: any exposure is over the limit
    if usage is None:
        if new_exposure > ZERO:
            return FidoCheck(False, "purchase would exceed fido limit")
        return FidoCheck(True)

    if usage >= to_decimal(block_threshold):
        return FidoCheck(False, "purchase would exceed fido limit")
    if usage >= to_decimal(warning_threshold):
        return FidoCheck(True, "warning: approaching fido limit")
    return FidoCheck(True)


def update_exposure(
    customer: Customer,
    unpaid_invoices: Any,
    open_orders: Any,
    now: Optional[datetime] = None,
) -> Customer:
    credit = replace(
        customer.credit,
        unpaid_invoices=to_decimal(unpaid_invoices),
        open_orders=to_decimal(open_orders),
        last_credit_check=now or datetime.now(timezone.utc),
    )
    return customer.with_credit(credit)


def block_sales(customer: Customer, reason: str) -> Customer:
    logger.info("sales blocked for customer {}: {}", customer.code, reason)
    return customer.with_credit(replace(customer.credit, block_sales=True, block_reason=reason))


def unblock_sales(customer: Customer) -> Customer:
    return customer.with_credit(replace(customer.credit, block_sales=False, block_reason=""))


# -----------------------------
# Sottocosto and operator discount guards
# -----------------------------


@dataclass(frozen=True)
class SottocostoCheck:
    is_sottocosto: bool
    margin_percent: D
    threshold: D


def check_sottocosto(article: Article, selling_price: Any, threshold: Any) -> SottocostoCheck:
    """Selling below the margin threshold over the last purchase cost."""
    t = to_decimal(threshold)
    margin = article.calculate_margin(selling_price)
    flagged = article.is_sottocosto(selling_price, t)
    if flagged:
        logger.warning("sottocosto on {}: margin {} below {}", article.code, margin, t)
    return SottocostoCheck(is_sottocosto=flagged, margin_percent=margin, threshold=t)


def validate_operator_discount(operator: Operator, discount_percent: Any, max_percent: Any) -> D:
    """Returns the validated percent; only admins may go above max_percent."""
    pct = require_percent(discount_percent)
    limit = to_decimal(max_percent)
    if pct > limit and not operator.is_admin:
        raise AuthorizationError(
            "discount exceeds authorized limit",
            meta={"operator": operator.username, "percent": str(pct), "max_percent": str(limit)},
        )
    return pct
