# Ensure promotion rule variants are registered by importing the module
from .errors import (  # noqa
    AuthorizationError,
    DomainValidationError,
    InsufficientStockError,
    KitUnfulfillableError,
    NotFoundError,
    RicambiError,
)
from .promotion import Promotion, PromotionType, rules_registry  # noqa
