from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from ricambi.auth.sessions import InMemorySessionStore, Session
from ricambi.config import Settings
from ricambi.pricing.domain.errors import SessionError
from ricambi.pricing.engine.price_calculator import PriceCalculator
from ricambi.pricing.engine.usage import PromotionUsageRecorder
from ricambi.pricing.kits.availability import KitStockService
from ricambi.pricing.kits.locks import ArticleLockRegistry
from ricambi.pricing.storage.catalog_loader import Catalog


@dataclass
class PricingServices:
    settings: Settings
    catalog: Catalog
    calculator: PriceCalculator
    kits: KitStockService
    usage: PromotionUsageRecorder
    sessions: InMemorySessionStore

    @classmethod
    def build(
        cls,
        settings: Settings,
        catalog: Catalog,
        sessions: Optional[InMemorySessionStore] = None,
    ) -> "PricingServices":
        return cls(
            settings=settings,
            catalog=catalog,
            calculator=PriceCalculator(catalog.promotions),
            kits=KitStockService(catalog.articles, ArticleLockRegistry(), catalog.kits),
            usage=PromotionUsageRecorder(catalog.promotions),
            sessions=sessions or InMemorySessionStore(settings.session_timeout_minutes),
        )


def get_services(request: Request) -> PricingServices:
    return request.app.state.pricing


def require_session(
    x_session_token: Optional[str] = Header(None),
    services: PricingServices = Depends(get_services),
) -> Session:
    if not x_session_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session token",
        )
    try:
        return services.sessions.validate(x_session_token)
    except SessionError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": e.code, "message": e.message},
        ) from e
