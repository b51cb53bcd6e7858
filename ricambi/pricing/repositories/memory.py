import logging
import threading
from datetime import datetime
from typing import Dict, Generic, Iterable, List, TypeVar

from ..domain.errors import NotFoundError
from ..domain.kit import Kit
from ..domain.models import Article, Customer, Operator
from ..domain.promotion import Promotion

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _MemoryStore(Generic[T]):
    """Dict keyed by id, guarded by a re-entrant lock"""

    entity = "record"

    def __init__(self, items: Iterable[T] = ()):
        self._lock = threading.RLock()
        self._items: Dict[str, T] = {}
        for item in items:
            self._items[item.id] = item

    def get(self, item_id: str) -> T:
        with self._lock:
            try:
                return self._items[item_id]
            except KeyError:
                raise NotFoundError(
                    f"{self.entity} not found", meta={"id": item_id}
                ) from None

    def save(self, item: T) -> None:
        with self._lock:
            self._items[item.id] = item

    def list_all(self) -> List[T]:
        with self._lock:
            return list(self._items.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class InMemoryArticleRepository(_MemoryStore[Article]):
    entity = "article"

    def get_by_code(self, code: str) -> Article:
        wanted = (code or "").strip().upper()
        with self._lock:
            for article in self._items.values():
                if article.code == wanted:
                    return article
        raise NotFoundError("article not found", meta={"code": wanted})

    def find_by_ids(self, article_ids: Iterable[str]) -> Dict[str, Article]:
        """Unknown ids are simply absent from the result."""
        with self._lock:
            return {i: self._items[i] for i in article_ids if i in self._items}

    def save_many(self, articles: Iterable[Article]) -> None:
        batch = list(articles)
        with self._lock:
            for article in batch:
                self._items[article.id] = article
        logger.debug(f"Saved {len(batch)} articles")


class InMemoryCustomerRepository(_MemoryStore[Customer]):
    entity = "customer"


class InMemoryPromotionRepository(_MemoryStore[Promotion]):
    entity = "promotion"

    def find_active(self, now: datetime) -> List[Promotion]:
        """Promotions valid at `now`, highest priority first (stable for equal priority)."""
        with self._lock:
            active = [p for p in self._items.values() if p.is_valid(now)]
        return sorted(active, key=lambda p: p.priority, reverse=True)


class InMemoryKitRepository(_MemoryStore[Kit]):
    entity = "kit"


class InMemoryOperatorRepository(_MemoryStore[Operator]):
    entity = "operator"
