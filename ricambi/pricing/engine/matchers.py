from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Sequence, Tuple, TypeVar

from ..domain.models import Article, Customer, DiscountRule
from ..domain.promotion import Applicability

S = TypeVar("S")  # selector source (rule / applicability)
T = TypeVar("T")  # subject (article / customer)


@dataclass(frozen=True)
class Selector(Generic[S, T]):
    """
    One step of an ordered applicability chain.
    - values: the selector values the source populates (empty = not populated)
    - hit: does the subject match one value
    """

    name: str
    values: Callable[[S], Sequence[Any]]
    hit: Callable[[T, Any], bool]


@dataclass(frozen=True)
class SelectorMatch:
    selector: Optional[str]  # None = no selector populated
    matched: bool


def first_populated(
    selectors: Sequence[Selector[S, T]], source: S, subject: T
) -> SelectorMatch:
    """
    Evaluate selectors in order. The first populated selector decides alone:
    a miss there is a miss, later selectors are not consulted.
    """
    for sel in selectors:
        values = sel.values(source)
        if values:
            return SelectorMatch(sel.name, any(sel.hit(subject, v) for v in values))
    return SelectorMatch(None, False)


def _single(value: str) -> Tuple[str, ...]:
    value = (value or "").strip()
    return (value,) if value else ()


# -----------------------------
# Discount grid: article_code > precode > family > classification
# -----------------------------

DISCOUNT_RULE_SELECTORS: Tuple[Selector[DiscountRule, Article], ...] = (
    Selector("article_code", lambda r: _single(r.article_code), lambda a, v: a.code == v.upper()),
    Selector("precode", lambda r: _single(r.precode), lambda a, v: a.precode == v),
    Selector("family", lambda r: _single(r.family), lambda a, v: a.family == v),
    Selector("classification", lambda r: _single(r.classification), lambda a, v: v in a.classification),
)


def rule_selector_match(rule: DiscountRule, article: Article) -> SelectorMatch:
    """A rule that populates no selector matches nothing."""
    return first_populated(DISCOUNT_RULE_SELECTORS, rule, article)


# -----------------------------
# Promotion articles: codes > precodes > families > classifications > categories
# -----------------------------

PROMOTION_ARTICLE_SELECTORS: Tuple[Selector[Applicability, Article], ...] = (
    Selector("article_codes", lambda ap: ap.article_codes, lambda a, v: a.code == v.upper()),
    Selector("precodes", lambda ap: ap.precodes, lambda a, v: a.precode == v),
    Selector("families", lambda ap: ap.families, lambda a, v: a.family == v),
    Selector("classifications", lambda ap: ap.classifications, lambda a, v: v in a.classification),
    Selector("categories", lambda ap: ap.categories, lambda a, v: a.category == v),
)

# Promotion customers: specific customers > customer categories
PROMOTION_CUSTOMER_SELECTORS: Tuple[Selector[Applicability, Customer], ...] = (
    Selector("specific_customers", lambda ap: ap.specific_customers, lambda c, v: c.id == v),
    Selector("customer_categories", lambda ap: ap.customer_categories, lambda c, v: c.category == v),
)


def is_excluded(applicability: Applicability, article: Article) -> bool:
    return any(article.code == code.upper() for code in applicability.excluded_articles)


def article_eligibility(applicability: Applicability, article: Article) -> SelectorMatch:
    """
    Exclusion always wins. Otherwise the first non-empty list decides;
    all lists empty means every article is eligible.
    """
    if is_excluded(applicability, article):
        return SelectorMatch("excluded_articles", False)
    m = first_populated(PROMOTION_ARTICLE_SELECTORS, applicability, article)
    if m.selector is None:
        return SelectorMatch(None, True)
    return m


def customer_eligibility(applicability: Applicability, customer: Customer) -> SelectorMatch:
    m = first_populated(PROMOTION_CUSTOMER_SELECTORS, applicability, customer)
    if m.selector is None:
        return SelectorMatch(None, True)
    return m
