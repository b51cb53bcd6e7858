from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Protocol

from ..domain.kit import Kit
from ..domain.models import Article, Customer, Operator
from ..domain.promotion import Promotion


class ArticleRepository(Protocol):
    def get(self, article_id: str) -> Article: ...
    def get_by_code(self, code: str) -> Article: ...
    def find_by_ids(self, article_ids: Iterable[str]) -> Dict[str, Article]: ...
    def save(self, article: Article) -> None: ...
    def save_many(self, articles: Iterable[Article]) -> None: ...
    def list_all(self) -> List[Article]: ...


class CustomerRepository(Protocol):
    def get(self, customer_id: str) -> Customer: ...
    def save(self, customer: Customer) -> None: ...
    def list_all(self) -> List[Customer]: ...


class PromotionRepository(Protocol):
    def get(self, promotion_id: str) -> Promotion: ...
    def save(self, promotion: Promotion) -> None: ...
    def find_active(self, now: datetime) -> List[Promotion]: ...
    def list_all(self) -> List[Promotion]: ...


class KitRepository(Protocol):
    def get(self, kit_id: str) -> Kit: ...
    def save(self, kit: Kit) -> None: ...
    def list_all(self) -> List[Kit]: ...


class OperatorRepository(Protocol):
    def get(self, operator_id: str) -> Operator: ...
    def save(self, operator: Operator) -> None: ...
