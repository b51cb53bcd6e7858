from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from .errors import DomainValidationError, NotFoundError
from .models import ZERO, new_id, require_percent, require_positive, to_decimal

D = Decimal


class PricingStrategy(str, Enum):
    CALCULATED = "calculated"
    CUSTOM = "custom"


@dataclass(frozen=True)
class KitComponent:
    article_id: str
    article_code: str
    quantity: D

    def summary(self) -> str:
        qty = self.quantity.normalize()
        return f"{qty:f}x {self.article_code}"


@dataclass
class Kit:
    """
    Composite sellable product.

    calculated_price / available_quantity are caches, filled by the kit stock
    service and cleared by every component change. Never trust them across calls.
    """

    id: str
    code: str
    name: str
    components: List[KitComponent] = field(default_factory=list)
    pricing_strategy: PricingStrategy = PricingStrategy.CALCULATED
    custom_price: D = ZERO
    discount_percent: D = ZERO
    is_active: bool = True
    sales_count: int = 0
    last_sold_date: Optional[datetime] = None

    calculated_price: Optional[D] = None
    available_quantity: Optional[D] = None

    def __post_init__(self) -> None:
        self.code = (self.code or "").strip().upper()
        self.name = (self.name or "").strip()
        if not self.code:
            raise DomainValidationError("kit code cannot be empty")
        if not self.name:
            raise DomainValidationError("kit name cannot be empty")
        self.discount_percent = require_percent(self.discount_percent)
        self.custom_price = to_decimal(self.custom_price)

    @classmethod
    def create(cls, code: str, name: str, components: List[KitComponent], **kwargs: Any) -> "Kit":
        kit = cls(id=kwargs.pop("id", None) or new_id(), code=code, name=name, **kwargs)
        for comp in components:
            kit.add_component(comp.article_id, comp.article_code, comp.quantity)
        kit.validate()
        return kit

    def validate(self) -> None:
        if len(self.components) < 2:
            raise DomainValidationError(
                "kit must have at least 2 components", code="INVALID_KIT_COMPONENTS"
            )

    def invalidate_caches(self) -> None:
        self.calculated_price = None
        self.available_quantity = None

    # --- components ---

    def add_component(self, article_id: str, article_code: str, quantity: Any) -> None:
        """Adds a component, or updates the quantity when the article is already in the kit."""
        q = require_positive(quantity, "component quantity")
        for i, comp in enumerate(self.components):
            if comp.article_id == article_id:
                self.components[i] = KitComponent(comp.article_id, comp.article_code, q)
                self.invalidate_caches()
                return
        self.components.append(KitComponent(article_id, article_code, q))
        self.invalidate_caches()

    def update_component_quantity(self, article_id: str, quantity: Any) -> None:
        q = require_positive(quantity)
        for i, comp in enumerate(self.components):
            if comp.article_id == article_id:
                self.components[i] = KitComponent(comp.article_id, comp.article_code, q)
                self.invalidate_caches()
                return
        raise NotFoundError("component not found in kit", meta={"article_id": article_id})

    def remove_component(self, article_id: str) -> None:
        for i, comp in enumerate(self.components):
            if comp.article_id == article_id:
                del self.components[i]
                self.invalidate_caches()
                return
        raise NotFoundError("component not found in kit", meta={"article_id": article_id})

    def has_component(self, article_id: str) -> bool:
        return any(c.article_id == article_id for c in self.components)

    def component_quantity(self, article_id: str) -> D:
        for comp in self.components:
            if comp.article_id == article_id:
                return comp.quantity
        return ZERO

    def components_summary(self) -> List[str]:
        return [c.summary() for c in self.components]

    # --- pricing ---

    def set_custom_price(self, price: Any) -> None:
        self.custom_price = require_positive(price, "price")
        self.pricing_strategy = PricingStrategy.CUSTOM

    def use_calculated_price(self) -> None:
        self.pricing_strategy = PricingStrategy.CALCULATED

    def final_price(self) -> Optional[D]:
        """Custom price when the strategy says so, else the cached calculated price."""
        if self.pricing_strategy == PricingStrategy.CUSTOM and self.custom_price > ZERO:
            return self.custom_price
        return self.calculated_price

    # --- sales ---

    def record_sale(self, now: datetime) -> None:
        self.sales_count += 1
        self.last_sold_date = now

    def is_popular(self) -> bool:
        return self.sales_count > 10

    def days_since_last_sale(self, now: datetime) -> int:
        if self.last_sold_date is None:
            return -1
        return int((now - self.last_sold_date).total_seconds() // 86400)
