from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

import ricambi.pricing.domain  # noqa: F401 (register promotion rule variants)

from ricambi.pricing.domain.kit import Kit, KitComponent
from ricambi.pricing.domain.models import (
    Article,
    Customer,
    CustomerCategory,
    StockInfo,
)
from ricambi.pricing.domain.promotion import Promotion
from ricambi.pricing.repositories.memory import (
    InMemoryArticleRepository,
    InMemoryPromotionRepository,
)

D = Decimal


@pytest.fixture
def fixed_now():
    return datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def article():
    return Article(
        id="art-1",
        code="flt-001",
        description="Filtro olio",
        precode="FLT",
        family="filtri",
        classification=("motore", "manutenzione"),
        category="ricambi",
        list_price=D("100.00"),
        last_purchase_cost=D("60.00"),
        stock=StockInfo(on_hand=D("10")),
    )


@pytest.fixture
def customer():
    return Customer(
        id="cust-1",
        code="C0001",
        company_name="Officina Rossi Srl",
        category=CustomerCategory.WORKSHOP,
    )


@pytest.fixture
def make_promotion(fixed_now):
    """Promotion valid around fixed_now; override any field by keyword."""

    def _make(rules, **kw):
        kw.setdefault("code", "PROMO")
        kw.setdefault("name", "Promo")
        kw.setdefault("valid_from", fixed_now - timedelta(days=1))
        kw.setdefault("valid_to", fixed_now + timedelta(days=30))
        return Promotion.create(rules=rules, **kw)

    return _make


@pytest.fixture
def promotion_repo():
    return InMemoryPromotionRepository()


# -----------------------------
# Kits: A (2 per kit, 10 available) + B (3 per kit, 9 available) -> 3 kits
# -----------------------------


@pytest.fixture
def kit_articles():
    return [
        Article(id="art-a", code="AAA-1", list_price=D("10.00"), stock=StockInfo(on_hand=D("10"))),
        Article(id="art-b", code="BBB-2", list_price=D("5.00"), stock=StockInfo(on_hand=D("9"))),
    ]


@pytest.fixture
def article_repo(kit_articles):
    return InMemoryArticleRepository(kit_articles)


@pytest.fixture
def kit():
    return Kit.create(
        id="kit-1",
        code="kit-service",
        name="Service kit",
        components=[
            KitComponent("art-a", "AAA-1", D("2")),
            KitComponent("art-b", "BBB-2", D("3")),
        ],
    )
