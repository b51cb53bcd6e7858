from .base import (
    ArticleRepository,
    CustomerRepository,
    KitRepository,
    OperatorRepository,
    PromotionRepository,
)
from .memory import (
    InMemoryArticleRepository,
    InMemoryCustomerRepository,
    InMemoryKitRepository,
    InMemoryOperatorRepository,
    InMemoryPromotionRepository,
)

__all__ = [
    "ArticleRepository",
    "CustomerRepository",
    "KitRepository",
    "OperatorRepository",
    "PromotionRepository",
    "InMemoryArticleRepository",
    "InMemoryCustomerRepository",
    "InMemoryKitRepository",
    "InMemoryOperatorRepository",
    "InMemoryPromotionRepository",
]
