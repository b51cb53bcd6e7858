from datetime import timedelta
from decimal import Decimal

import pytest

from ricambi.pricing.domain.errors import NotFoundError
from ricambi.pricing.domain.models import StockInfo
from ricambi.pricing.domain.promotion import PercentDiscount

D = Decimal


def test_find_active_sorted_by_priority(make_promotion, promotion_repo, fixed_now):
    low = make_promotion(PercentDiscount(D("5")), code="LOW", priority=1)
    high = make_promotion(PercentDiscount(D("5")), code="HIGH", priority=9)
    expired = make_promotion(
        PercentDiscount(D("5")),
        code="OLD",
        priority=50,
        valid_from=fixed_now - timedelta(days=10),
        valid_to=fixed_now - timedelta(days=1),
    )
    for p in (low, high, expired):
        promotion_repo.save(p)

    assert [p.code for p in promotion_repo.find_active(fixed_now)] == ["HIGH", "LOW"]


def test_article_lookup(article_repo):
    assert article_repo.get_by_code("aaa-1").id == "art-a"
    assert set(article_repo.find_by_ids(["art-a", "missing"])) == {"art-a"}
    with pytest.raises(NotFoundError):
        article_repo.get("missing")
    with pytest.raises(NotFoundError):
        article_repo.get_by_code("ZZZ")


def test_save_many_replaces_snapshots(article_repo):
    a = article_repo.get("art-a")
    b = article_repo.get("art-b")

    article_repo.save_many([a.with_stock(StockInfo(on_hand=D("1"))), b.with_stock(StockInfo(on_hand=D("2")))])

    assert article_repo.get("art-a").stock.on_hand == D("1")
    assert article_repo.get("art-b").stock.on_hand == D("2")
    assert len(article_repo) == 2
