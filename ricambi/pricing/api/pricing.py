from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from ricambi.auth.sessions import Session
from ricambi.logging_config import LoggingContext, get_logger
from ricambi.pricing.credit import can_make_purchase, check_sottocosto, validate_operator_discount
from ricambi.pricing.domain.errors import (
    AuthorizationError,
    DomainValidationError,
    InsufficientStockError,
    NotFoundError,
    RicambiError,
    SessionError,
)
from ricambi.pricing.domain.kit import Kit
from ricambi.pricing.domain.models import Article
from ricambi.pricing.engine.price_calculator import DiscountCalculation
from ricambi.pricing.schemas.pricing_v1 import (
    ArticleStockV1,
    CreditCheckV1,
    DiscountValidationInputV1,
    DiscountValidationV1,
    KitAvailabilityV1,
    KitQuantityV1,
    KitReservationV1,
    LineQuoteV1,
    PromotionUsageInputV1,
    PromotionUsageV1,
    QuoteRequestV1,
    QuoteResponseV1,
)

from .dependencies import PricingServices, get_services, require_session

router = APIRouter(prefix="/api/pricing", tags=["pricing"])

logger = get_logger(__name__)

CENT = Decimal("0.01")


# ----------------------------
# Error mapping
# ----------------------------
_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (DomainValidationError, 422),
    (InsufficientStockError, 409),
    (AuthorizationError, 403),
    (SessionError, 401),
)


def error_status(exc: RicambiError) -> int:
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return code
    return 400


async def ricambi_error_handler(request: Request, exc: RicambiError) -> JSONResponse:
    status_code = error_status(exc)
    logger.bind(endpoint=str(request.url.path), status_code=status_code).info(
        "request rejected: {}", exc
    )
    return JSONResponse(
        status_code=status_code,
        content={"code": exc.code, "message": exc.message, "meta": exc.meta},
    )


# ----------------------------
# Helpers
# ----------------------------
def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT)


def _line_out(calc: DiscountCalculation, article: Article, sottocosto: bool) -> LineQuoteV1:
    return LineQuoteV1(
        article_id=article.id,
        article_code=article.code,
        quantity=calc.quantity,
        list_price=_money(calc.list_price),
        base_price=_money(calc.base_price),
        net_price=_money(calc.net_price) if calc.net_price is not None else None,
        customer_discount=_money(calc.customer_discount),
        promotion_discount=_money(calc.promotion_discount),
        final_price=_money(calc.final_price),
        line_total=_money(calc.line_total),
        total_discount=_money(calc.total_discount),
        discount_percent=calc.discount_percent.quantize(CENT),
        applied_rule_id=calc.applied_rule.id if calc.applied_rule else None,
        applied_promotion_code=calc.applied_promotion.code if calc.applied_promotion else None,
        sottocosto=sottocosto,
        breakdown=calc.breakdown.as_strings(),
    )


def _stock_out(articles: List[Article]) -> List[ArticleStockV1]:
    return [
        ArticleStockV1(
            article_id=a.id,
            code=a.code,
            on_hand=a.stock.on_hand,
            reserved=a.stock.reserved,
            available=a.stock.available,
        )
        for a in articles
    ]


def _kit(services: PricingServices, kit_id: str) -> Kit:
    return services.catalog.kits.get(kit_id)


# ----------------------------
# Quote
# ----------------------------
@router.post("/quote", response_model=QuoteResponseV1)
def quote(payload: QuoteRequestV1, services: PricingServices = Depends(get_services)):
    settings = services.settings
    now = payload.at or datetime.now(timezone.utc)
    customer = services.catalog.customers.get(payload.customer_id)
    articles = [services.catalog.articles.get(line.article_id) for line in payload.lines]

    with LoggingContext(customer_id=customer.id):
        calcs = services.calculator.quote_lines(
            customer,
            [(a, line.quantity) for a, line in zip(articles, payload.lines)],
            now,
        )
        lines = [
            _line_out(
                calc,
                article,
                check_sottocosto(article, calc.final_price, settings.sottocosto_threshold_pct).is_sottocosto,
            )
            for calc, article in zip(calcs, articles)
        ]
        total = sum((c.line_total for c in calcs), Decimal("0"))
        fido = can_make_purchase(
            customer,
            total,
            settings.fido_warning_threshold_pct,
            settings.fido_block_threshold_pct,
        )
        logger.info("quote for {}: {} lines, total {}", customer.code, len(lines), _money(total))

    return QuoteResponseV1(
        customer_id=customer.id,
        lines=lines,
        total=_money(total),
        credit=CreditCheckV1(allowed=fido.allowed, reason=fido.reason),
    )


# ----------------------------
# Kits
# ----------------------------
@router.get("/kits/{kit_id}/availability", response_model=KitAvailabilityV1)
def kit_availability(
    kit_id: str,
    quantity: Optional[Decimal] = Query(None, gt=0),
    services: PricingServices = Depends(get_services),
):
    kit = _kit(services, kit_id)
    available = services.kits.calculate_availability(kit)
    out = KitAvailabilityV1(kit_id=kit.id, kit_code=kit.code, available_quantity=available)
    if quantity is not None:
        ok, shortages = services.kits.can_fulfill(kit, quantity)
        out.requested_quantity = quantity
        out.can_fulfill = ok
        out.shortages = shortages
    return out


@router.post("/kits/{kit_id}/reserve", response_model=KitReservationV1)
def reserve_kit(
    kit_id: str,
    payload: KitQuantityV1,
    services: PricingServices = Depends(get_services),
):
    kit = _kit(services, kit_id)
    updated = services.kits.reserve_components(kit, payload.quantity)
    return KitReservationV1(
        kit_id=kit.id, kit_code=kit.code, quantity=payload.quantity, articles=_stock_out(updated)
    )


@router.post("/kits/{kit_id}/release", response_model=KitReservationV1)
def release_kit(
    kit_id: str,
    payload: KitQuantityV1,
    services: PricingServices = Depends(get_services),
):
    kit = _kit(services, kit_id)
    updated = services.kits.release_components(kit, payload.quantity)
    return KitReservationV1(
        kit_id=kit.id, kit_code=kit.code, quantity=payload.quantity, articles=_stock_out(updated)
    )


# ----------------------------
# Promotions / discounts
# ----------------------------
@router.post("/promotions/{promotion_id}/usage", response_model=PromotionUsageV1)
def record_promotion_usage(
    promotion_id: str,
    payload: PromotionUsageInputV1,
    services: PricingServices = Depends(get_services),
):
    promo = services.usage.record_usage(
        promotion_id,
        payload.customer_id,
        payload.quantity,
        payload.revenue,
        payload.discount,
        payload.at,
    )
    stats = promo.statistics
    return PromotionUsageV1(
        promotion_id=promo.id,
        code=promo.code,
        total_usages=stats.total_usages,
        usages_today=stats.usages_today,
        customer_usages=stats.customer_usages.get(payload.customer_id, 0),
    )


@router.post("/discounts/validate", response_model=DiscountValidationV1)
def validate_discount(
    payload: DiscountValidationInputV1,
    session: Session = Depends(require_session),
    services: PricingServices = Depends(get_services),
):
    operator = services.catalog.operators.get(session.operator_id)
    max_pct = services.settings.max_operator_discount_pct
    with LoggingContext(operator_id=operator.id):
        pct = validate_operator_discount(operator, payload.discount_percent, max_pct)
    return DiscountValidationV1(operator=operator.username, discount_percent=pct, max_percent=max_pct)
