from datetime import timedelta
from decimal import Decimal

import pytest

from ricambi.pricing.domain.errors import DomainValidationError
from ricambi.pricing.domain.models import CustomerCategory
from ricambi.pricing.domain.promotion import (
    Applicability,
    Bundle,
    BundleArticle,
    BuyNGetM,
    Conditions,
    FixedPrice,
    FreeShipping,
    Limits,
    PercentDiscount,
    PromotionType,
    rules_from_dict,
)
from ricambi.pricing.engine.promotion_matcher import (
    calculate_discount,
    can_be_used,
    find_best_promotion,
    is_applicable_to_article,
    is_applicable_to_customer,
)

D = Decimal


# -----------------------------
# Discount per variant
# -----------------------------


def test_buy_three_get_one_with_seven_units_gives_two_free(make_promotion):
    promo = make_promotion(BuyNGetM(buy=3, get=1))
    # floor(7 / 3) = 2 free units
    assert calculate_discount(promo, D("10"), D("7")) == D("20")


def test_percent_discount_over_whole_quantity(make_promotion):
    promo = make_promotion(PercentDiscount(D("10")))
    assert calculate_discount(promo, D("50"), D("2")) == D("10")


def test_fixed_price_discount(make_promotion):
    promo = make_promotion(FixedPrice(D("40")))
    assert calculate_discount(promo, D("50"), D("3")) == D("30")


def test_unpriced_variants_give_zero(make_promotion):
    bundle = Bundle(
        articles=(BundleArticle("a", "A"), BundleArticle("b", "B")),
        bundle_price=D("99"),
    )
    assert calculate_discount(make_promotion(bundle), D("50"), D("3")) == D("0")
    assert calculate_discount(make_promotion(FreeShipping()), D("50"), D("3")) == D("0")


def test_rules_from_dict_builds_variant_and_rejects_unknown_type():
    rules = rules_from_dict("nxm", {"buy": 3, "get": 1})
    assert rules == BuyNGetM(buy=3, get=1)

    with pytest.raises(DomainValidationError) as e:
        rules_from_dict("mystery", {})
    assert e.value.code == "INVALID_PROMOTION_RULE"


def test_rules_from_dict_accepts_enum_member():
    assert rules_from_dict(PromotionType.NXM, {"buy": 3, "get": 1}) == BuyNGetM(buy=3, get=1)
    assert rules_from_dict(PromotionType.FREE_SHIPPING, None) == FreeShipping()


def test_invalid_percent_rejected_on_create(make_promotion):
    with pytest.raises(DomainValidationError):
        make_promotion(PercentDiscount(D("0")))


# -----------------------------
# Applicability
# -----------------------------


def test_exclusion_beats_explicit_inclusion(make_promotion, article):
    promo = make_promotion(
        PercentDiscount(D("10")),
        applicability=Applicability(article_codes=("FLT-001",), excluded_articles=("flt-001",)),
    )
    assert is_applicable_to_article(promo, article) is False


def test_first_non_empty_article_list_decides(make_promotion, article):
    promo = make_promotion(
        PercentDiscount(D("10")),
        applicability=Applicability(article_codes=("OTHER-1",), precodes=("FLT",)),
    )
    assert is_applicable_to_article(promo, article) is False


def test_category_list_used_when_earlier_lists_empty(make_promotion, article):
    promo = make_promotion(
        PercentDiscount(D("10")), applicability=Applicability(categories=("ricambi",))
    )
    assert is_applicable_to_article(promo, article) is True


def test_empty_applicability_matches_every_article_and_customer(make_promotion, article, customer):
    promo = make_promotion(PercentDiscount(D("10")))
    assert is_applicable_to_article(promo, article) is True
    assert is_applicable_to_customer(promo, customer) is True


def test_specific_customers_are_authoritative(make_promotion, customer):
    promo = make_promotion(
        PercentDiscount(D("10")),
        applicability=Applicability(
            specific_customers=("someone-else",),
            customer_categories=(CustomerCategory.WORKSHOP,),
        ),
    )
    assert is_applicable_to_customer(promo, customer) is False


def test_customer_category_list(make_promotion, customer):
    promo = make_promotion(
        PercentDiscount(D("10")),
        applicability=Applicability(customer_categories=(CustomerCategory.VIP,)),
    )
    assert is_applicable_to_customer(promo, customer) is False


# -----------------------------
# Usage checks
# -----------------------------


def test_total_cap_reported_before_any_condition(make_promotion):
    promo = make_promotion(
        PercentDiscount(D("10")),
        limits=Limits(max_usage_total=1),
        conditions=Conditions(min_quantity=D("100")),
    )
    promo.statistics.total_usages = 1

    check = can_be_used(promo, "cust-1", D("1"), D("10"))

    assert not check
    assert check.reason == "promotion usage limit reached"


@pytest.mark.parametrize(
    "limits,conditions,qty,amount,reason",
    [
        (Limits(max_usage_per_customer=1), Conditions(), "1", "10", "customer usage limit reached"),
        (Limits(max_usage_per_day=1), Conditions(), "1", "10", "daily usage limit reached"),
        (Limits(), Conditions(min_quantity=D("5")), "4", "10", "minimum quantity not met"),
        (Limits(), Conditions(max_quantity=D("5")), "6", "10", "maximum quantity exceeded"),
        (Limits(), Conditions(min_amount=D("50")), "1", "49.99", "minimum amount not met"),
        (Limits(), Conditions(max_amount=D("50")), "1", "50.01", "maximum amount exceeded"),
    ],
)
def test_usage_check_reasons(make_promotion, limits, conditions, qty, amount, reason):
    promo = make_promotion(PercentDiscount(D("10")), limits=limits, conditions=conditions)
    promo.statistics.usages_today = 1
    promo.statistics.customer_usages["cust-1"] = 1

    check = can_be_used(promo, "cust-1", D(qty), D(amount))

    assert check.ok is False
    assert check.reason == reason


def test_usage_allowed_within_limits(make_promotion):
    promo = make_promotion(
        PercentDiscount(D("10")),
        limits=Limits(max_usage_total=10, max_usage_per_customer=2, max_usage_per_day=5),
        conditions=Conditions(min_quantity=D("1"), max_amount=D("1000")),
    )
    check = can_be_used(promo, "cust-1", D("2"), D("100"))
    assert check.ok is True
    assert check.reason == ""


# -----------------------------
# Selection
# -----------------------------


def test_largest_discount_wins_regardless_of_priority(make_promotion, article, customer, fixed_now):
    small = make_promotion(PercentDiscount(D("5")), code="SMALL", priority=100)
    large = make_promotion(PercentDiscount(D("20")), code="LARGE", priority=1)

    match = find_best_promotion([small, large], article, customer, D("2"), D("200"), fixed_now)

    assert match.promotion is large
    assert match.discount_amount == D("40")


def test_equal_discounts_keep_first_seen(make_promotion, article, customer, fixed_now):
    first = make_promotion(PercentDiscount(D("10")), code="FIRST")
    second = make_promotion(FixedPrice(D("90")), code="SECOND")

    match = find_best_promotion([first, second], article, customer, D("1"), D("100"), fixed_now)

    assert match.promotion is first


def test_unpriced_promotions_never_selected(make_promotion, article, customer, fixed_now):
    bundle = make_promotion(
        Bundle(articles=(BundleArticle("a", "A"), BundleArticle("b", "B"))), code="BUNDLE"
    )
    shipping = make_promotion(FreeShipping(), code="SHIP")

    assert find_best_promotion([bundle, shipping], article, customer, D("1"), D("100"), fixed_now) is None


def test_non_positive_discount_never_wins(make_promotion, article, customer, fixed_now):
    # fixed price above the base price would be a surcharge
    promo = make_promotion(FixedPrice(D("120")))
    assert find_best_promotion([promo], article, customer, D("1"), D("100"), fixed_now) is None


def test_promotions_outside_window_or_inactive_skipped(make_promotion, article, customer, fixed_now):
    future = make_promotion(
        PercentDiscount(D("10")),
        code="FUTURE",
        valid_from=fixed_now + timedelta(days=1),
        valid_to=fixed_now + timedelta(days=2),
    )
    inactive = make_promotion(PercentDiscount(D("10")), code="OFF", is_active=False)

    assert find_best_promotion([future, inactive], article, customer, D("1"), D("100"), fixed_now) is None
