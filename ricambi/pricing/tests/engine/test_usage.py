import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from ricambi.pricing.domain.errors import DomainValidationError, NotFoundError
from ricambi.pricing.domain.promotion import Limits, PercentDiscount
from ricambi.pricing.engine.promotion_matcher import can_be_used, find_best_promotion
from ricambi.pricing.engine.usage import PromotionUsageRecorder

D = Decimal


def test_usage_cap_is_final(make_promotion, promotion_repo, article, customer, fixed_now):
    promo = make_promotion(PercentDiscount(D("10")), limits=Limits(max_usage_total=2))
    promotion_repo.save(promo)
    recorder = PromotionUsageRecorder(promotion_repo)

    recorder.record_usage(promo.id, "cust-1", D("1"), D("100"), D("10"), fixed_now)
    recorder.record_usage(promo.id, "cust-2", D("1"), D("100"), D("10"), fixed_now)

    with pytest.raises(DomainValidationError) as e:
        recorder.record_usage(promo.id, "cust-3", D("1"), D("100"), D("10"), fixed_now)
    assert e.value.code == "PROMOTION_NOT_USABLE"

    # every later check fails, whoever asks and whatever the amounts
    for cid, qty in (("cust-1", "1"), ("cust-9", "50")):
        check = can_be_used(promo, cid, D(qty), D("1"))
        assert check.reason == "promotion usage limit reached"
    assert find_best_promotion([promo], article, customer, D("1"), D("100"), fixed_now) is None


def test_record_usage_updates_statistics(make_promotion, promotion_repo, fixed_now):
    promo = make_promotion(PercentDiscount(D("10")))
    promotion_repo.save(promo)

    PromotionUsageRecorder(promotion_repo).record_usage(
        promo.id, "cust-1", D("2"), D("200"), D("20"), fixed_now
    )

    s = promo.statistics
    assert s.total_usages == 1
    assert s.usages_today == 1
    assert s.customer_usages == {"cust-1": 1}
    assert s.total_revenue == D("200")
    assert s.total_discount == D("20")
    assert s.last_usage_date == fixed_now
    assert promo.effectiveness_rate() == D("90")


def test_reset_daily_usage_keeps_totals(make_promotion, promotion_repo, fixed_now):
    promo = make_promotion(PercentDiscount(D("10")), limits=Limits(max_usage_per_day=1))
    promotion_repo.save(promo)
    recorder = PromotionUsageRecorder(promotion_repo)
    recorder.record_usage(promo.id, "cust-1", D("1"), D("10"), D("1"), fixed_now)

    assert can_be_used(promo, "cust-1", D("1"), D("10")).reason == "daily usage limit reached"

    recorder.reset_daily_usage(promo.id, fixed_now + timedelta(days=1))

    assert promo.statistics.usages_today == 0
    assert promo.statistics.total_usages == 1
    assert can_be_used(promo, "cust-1", D("1"), D("10")).ok


def test_inactive_promotion_cannot_be_recorded(make_promotion, promotion_repo, fixed_now):
    promo = make_promotion(PercentDiscount(D("10")), is_active=False)
    promotion_repo.save(promo)

    with pytest.raises(DomainValidationError):
        PromotionUsageRecorder(promotion_repo).record_usage(
            promo.id, "cust-1", D("1"), D("10"), D("1"), fixed_now
        )
    assert promo.statistics.total_usages == 0


def test_unknown_promotion(promotion_repo, fixed_now):
    with pytest.raises(NotFoundError):
        PromotionUsageRecorder(promotion_repo).record_usage(
            "missing", "cust-1", D("1"), D("10"), D("1"), fixed_now
        )


def test_concurrent_commits_never_exceed_cap(make_promotion, promotion_repo, fixed_now):
    promo = make_promotion(PercentDiscount(D("10")), limits=Limits(max_usage_total=5))
    promotion_repo.save(promo)
    recorder = PromotionUsageRecorder(promotion_repo)

    accepted = []
    rejected = []
    start = threading.Barrier(20)

    def commit(i):
        start.wait()
        try:
            recorder.record_usage(promo.id, f"cust-{i}", D("1"), D("10"), D("1"), fixed_now)
            accepted.append(i)
        except DomainValidationError:
            rejected.append(i)

    threads = [threading.Thread(target=commit, args=(i,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(accepted) == 5
    assert len(rejected) == 15
    assert promo.statistics.total_usages == 5
