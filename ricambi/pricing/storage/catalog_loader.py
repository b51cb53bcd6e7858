from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from jsonschema import Draft202012Validator, validate

from ricambi.logging_config import get_logger

from ..domain.kit import Kit, KitComponent, PricingStrategy
from ..domain.models import (
    Article,
    CreditClass,
    CreditInfo,
    Customer,
    CustomerCategory,
    DiscountRule,
    NetPrice,
    Operator,
    OperatorProfile,
    StockInfo,
    new_id,
    to_decimal,
)
from ..domain.promotion import Applicability, Conditions, Limits, Promotion, rules_from_dict
from ..repositories.memory import (
    InMemoryArticleRepository,
    InMemoryCustomerRepository,
    InMemoryKitRepository,
    InMemoryOperatorRepository,
    InMemoryPromotionRepository,
)

logger = get_logger(__name__)


# =============================================================================
# Paths
# =============================================================================


def vertical_root() -> Path:
    # .../ricambi/pricing/storage/catalog_loader.py -> parents[1] = .../ricambi/pricing
    return Path(__file__).resolve().parents[1]


def schema_path() -> Path:
    return vertical_root() / "schemas" / "catalog.schema.json"


def default_catalog_path() -> Path:
    return vertical_root() / "data" / "catalog.yaml"


# =============================================================================
# Field parsers
# =============================================================================


def parse_datetime(value: Any) -> Optional[datetime]:
    """ISO-8601 string (or YAML timestamp) -> aware datetime; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    dt = value if isinstance(value, datetime) else datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _article(d: Dict[str, Any]) -> Article:
    stock = d.get("stock") or {}
    return Article(
        id=d["id"],
        code=d["code"],
        description=d.get("description", ""),
        precode=d.get("precode", ""),
        family=d.get("family", ""),
        classification=tuple(d.get("classification") or ()),
        category=d.get("category", ""),
        list_price=to_decimal(d["list_price"]),
        currency=d.get("currency", "EUR"),
        last_purchase_cost=to_decimal(d.get("last_purchase_cost", "0")),
        net_prices=tuple(
            NetPrice(
                customer_id=np["customer_id"],
                price=to_decimal(np["price"]),
                valid_from=parse_datetime(np.get("valid_from")),
                valid_to=parse_datetime(np.get("valid_to")),
                created_by=np.get("created_by", ""),
            )
            for np in d.get("net_prices") or ()
        ),
        stock=StockInfo(
            on_hand=to_decimal(stock.get("on_hand", "0")),
            reserved=to_decimal(stock.get("reserved", "0")),
            reorder_point=to_decimal(stock.get("reorder_point", "0")),
            location=stock.get("location", ""),
        ),
        is_active=bool(d.get("is_active", True)),
    )


def _discount_rule(d: Dict[str, Any]) -> DiscountRule:
    rule = DiscountRule(
        id=d.get("id") or new_id(),
        priority=int(d.get("priority", 0)),
        article_code=d.get("article_code", ""),
        precode=d.get("precode", ""),
        family=d.get("family", ""),
        classification=d.get("classification", ""),
        discount_percent=to_decimal(d.get("discount_percent", "0")),
        discount_cascade=tuple(to_decimal(p) for p in d.get("discount_cascade") or ()),
        min_quantity=to_decimal(d.get("min_quantity", "0")),
        valid_from=parse_datetime(d.get("valid_from")),
        valid_to=parse_datetime(d.get("valid_to")),
        is_active=bool(d.get("is_active", True)),
    )
    rule.validate()
    return rule


def _customer(d: Dict[str, Any]) -> Customer:
    credit = d.get("credit") or {}
    return Customer(
        id=d["id"],
        code=d["code"],
        company_name=d.get("company_name", ""),
        category=CustomerCategory(d.get("category", "retail")),
        is_active=bool(d.get("is_active", True)),
        credit=CreditInfo(
            credit_class=CreditClass(credit.get("credit_class", "C")),
            fido_limit=to_decimal(credit.get("fido_limit", "5000")),
            unpaid_invoices=to_decimal(credit.get("unpaid_invoices", "0")),
            open_orders=to_decimal(credit.get("open_orders", "0")),
            overdue_amount=to_decimal(credit.get("overdue_amount", "0")),
            block_sales=bool(credit.get("block_sales", False)),
            block_reason=credit.get("block_reason", ""),
        ),
        discount_grid=tuple(_discount_rule(r) for r in d.get("discount_grid") or ()),
    )


def _promotion(d: Dict[str, Any]) -> Promotion:
    ap = d.get("applicability") or {}
    cond = d.get("conditions") or {}
    lim = d.get("limits") or {}
    return Promotion.create(
        id=d["id"],
        code=d["code"],
        name=d["name"],
        rules=rules_from_dict(d["type"], d.get("params")),
        valid_from=parse_datetime(d["valid_from"]),
        valid_to=parse_datetime(d.get("valid_to")),
        description=d.get("description", ""),
        priority=int(d.get("priority", 0)),
        is_active=bool(d.get("is_active", True)),
        applicability=Applicability(
            article_codes=tuple(ap.get("article_codes") or ()),
            precodes=tuple(ap.get("precodes") or ()),
            families=tuple(ap.get("families") or ()),
            classifications=tuple(ap.get("classifications") or ()),
            categories=tuple(ap.get("categories") or ()),
            customer_categories=tuple(CustomerCategory(c) for c in ap.get("customer_categories") or ()),
            specific_customers=tuple(ap.get("specific_customers") or ()),
            excluded_articles=tuple(ap.get("excluded_articles") or ()),
        ),
        conditions=Conditions(
            min_quantity=to_decimal(cond.get("min_quantity", "0")),
            max_quantity=to_decimal(cond.get("max_quantity", "0")),
            min_amount=to_decimal(cond.get("min_amount", "0")),
            max_amount=to_decimal(cond.get("max_amount", "0")),
        ),
        limits=Limits(
            max_usage_total=int(lim.get("max_usage_total", 0)),
            max_usage_per_customer=int(lim.get("max_usage_per_customer", 0)),
            max_usage_per_day=int(lim.get("max_usage_per_day", 0)),
        ),
    )


def _kit(d: Dict[str, Any]) -> Kit:
    return Kit.create(
        id=d["id"],
        code=d["code"],
        name=d["name"],
        components=[
            KitComponent(c["article_id"], c["article_code"], to_decimal(c["quantity"]))
            for c in d["components"]
        ],
        pricing_strategy=PricingStrategy(d.get("pricing_strategy", "calculated")),
        custom_price=to_decimal(d.get("custom_price", "0")),
        discount_percent=to_decimal(d.get("discount_percent", "0")),
        is_active=bool(d.get("is_active", True)),
    )


def _operator(d: Dict[str, Any]) -> Operator:
    return Operator(
        id=d["id"],
        username=d["username"],
        profile=OperatorProfile(d.get("profile", "sales")),
        is_active=bool(d.get("is_active", True)),
    )


# =============================================================================
# Catalog
# =============================================================================


@dataclass
class Catalog:
    articles: InMemoryArticleRepository = field(default_factory=InMemoryArticleRepository)
    customers: InMemoryCustomerRepository = field(default_factory=InMemoryCustomerRepository)
    promotions: InMemoryPromotionRepository = field(default_factory=InMemoryPromotionRepository)
    kits: InMemoryKitRepository = field(default_factory=InMemoryKitRepository)
    operators: InMemoryOperatorRepository = field(default_factory=InMemoryOperatorRepository)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Catalog":
        """Expects an already schema-validated document."""
        return cls(
            articles=InMemoryArticleRepository(_article(a) for a in d.get("articles") or ()),
            customers=InMemoryCustomerRepository(_customer(c) for c in d.get("customers") or ()),
            promotions=InMemoryPromotionRepository(_promotion(p) for p in d.get("promotions") or ()),
            kits=InMemoryKitRepository(_kit(k) for k in d.get("kits") or ()),
            operators=InMemoryOperatorRepository(_operator(o) for o in d.get("operators") or ()),
        )

    def summary(self) -> Dict[str, int]:
        return {
            "articles": len(self.articles),
            "customers": len(self.customers),
            "promotions": len(self.promotions),
            "kits": len(self.kits),
            "operators": len(self.operators),
        }


def _jsonable(value: Any) -> Any:
    # YAML turns unquoted timestamps into datetimes; the schema sees ISO strings
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


def load_catalog_dict(path: Union[str, Path]) -> Dict[str, Any]:
    catalog_path = Path(path)
    with catalog_path.open("r", encoding="utf-8") as f:
        d = _jsonable(yaml.safe_load(f) or {})

    with schema_path().open("r", encoding="utf-8") as f:
        schema = json.load(f)

    validate(instance=d, schema=schema)
    return d


def load_catalog(path: Union[str, Path, None] = None) -> Catalog:
    catalog_path = Path(path) if path else default_catalog_path()
    catalog = Catalog.from_dict(load_catalog_dict(catalog_path))
    logger.info("catalog loaded from {}: {}", catalog_path, catalog.summary())
    return catalog


def list_catalog_errors(d: Dict[str, Any]) -> List[str]:
    """All schema violations of a catalog document, as 'path: message' lines."""
    with schema_path().open("r", encoding="utf-8") as f:
        schema = json.load(f)
    validator = Draft202012Validator(schema)
    return [
        f"{'/'.join(str(p) for p in err.absolute_path) or '<root>'}: {err.message}"
        for err in sorted(validator.iter_errors(d), key=lambda e: [str(p) for p in e.absolute_path])
    ]
