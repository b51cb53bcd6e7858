from __future__ import annotations

from typing import Any, Dict, List, Optional


class RicambiError(Exception):
    """
    Base error of the pricing vertical.
    - code: stable UPPER_SNAKE identifier (API / tests match on it)
    - message: human readable
    - meta: explainability payload
    """

    code = "RICAMBI_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ):
        if code is not None:
            self.code = str(code)
        self.message = str(message)
        self.meta = meta or {}
        super().__init__(f"{self.code}: {self.message}")


class DomainValidationError(RicambiError, ValueError):
    """Invalid input (quantity <= 0, percent outside 0..100, ...). Nothing was mutated."""

    code = "INVALID_INPUT"


class NotFoundError(RicambiError, LookupError):
    code = "NOT_FOUND"


class InsufficientStockError(RicambiError):
    code = "INSUFFICIENT_STOCK"


class KitUnfulfillableError(InsufficientStockError):
    code = "KIT_UNFULFILLABLE"

    def __init__(self, kit_code: str, shortages: List[str], *, action: str = "fulfill"):
        self.kit_code = kit_code
        self.shortages = list(shortages)
        super().__init__(
            f"cannot {action} kit {kit_code}: {', '.join(self.shortages)}",
            meta={"kit": kit_code, "shortages": list(self.shortages)},
        )


class AuthorizationError(RicambiError):
    code = "UNAUTHORIZED"


class SessionError(RicambiError):
    code = "SESSION_INVALID"


class SessionNotFoundError(SessionError):
    code = "SESSION_NOT_FOUND"


class SessionExpiredError(SessionError):
    code = "SESSION_EXPIRED"
