from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from .errors import DomainValidationError
from .models import HUNDRED, ZERO, new_id, require_positive, to_decimal
from .promotion import UsageCheck

D = Decimal


class VoucherStatus(str, Enum):
    ISSUED = "issued"
    PARTIALLY_USED = "partially_used"
    USED = "used"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


# status -> (error code, message) for vouchers that can no longer be spent
_CLOSED = {
    VoucherStatus.EXPIRED: ("VOUCHER_EXPIRED", "voucher has expired"),
    VoucherStatus.USED: ("VOUCHER_USED", "voucher is already fully used"),
    VoucherStatus.CANCELLED: ("VOUCHER_CANCELLED", "voucher has been cancelled"),
}


@dataclass(frozen=True)
class VoucherUsage:
    id: str
    document_id: str
    document_type: str
    amount: D
    used_by: str
    used_at: datetime
    notes: str = ""


@dataclass
class CreditVoucher:
    """
    Store credit issued to a customer (returns, goodwill), spent across documents.

    remaining_amount only decreases through use(); every use is kept in
    usage_history. expiry_date None means the voucher never expires.
    """

    id: str
    code: str
    customer_id: str
    original_amount: D
    remaining_amount: D
    issued_date: datetime
    status: VoucherStatus = VoucherStatus.ISSUED
    reason: str = ""
    expiry_date: Optional[datetime] = None
    last_used: Optional[datetime] = None
    usage_history: List[VoucherUsage] = field(default_factory=list)
    created_by: str = ""
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.original_amount = to_decimal(self.original_amount)
        self.remaining_amount = to_decimal(self.remaining_amount)
        self.status = VoucherStatus(self.status)

    @classmethod
    def issue(
        cls,
        customer_id: str,
        amount: Any,
        reason: str,
        expiry_days: int,
        created_by: str,
        now: datetime,
        **kwargs: Any,
    ) -> "CreditVoucher":
        """expiry_days <= 0 issues a voucher without expiry."""
        value = to_decimal(amount)
        if value <= ZERO:
            raise DomainValidationError(
                "invalid voucher amount", code="INVALID_VOUCHER_AMOUNT", meta={"amount": str(value)}
            )
        voucher = cls(
            id=kwargs.pop("id", None) or new_id(),
            code=kwargs.pop("code", None) or f"VC-{int(now.timestamp())}-{new_id()[:6].upper()}",
            customer_id=customer_id,
            original_amount=value,
            remaining_amount=value,
            issued_date=now,
            reason=reason,
            expiry_date=now + timedelta(days=expiry_days) if expiry_days > 0 else None,
            created_by=created_by,
            updated_at=now,
            **kwargs,
        )
        voucher.validate()
        return voucher

    def validate(self) -> None:
        if not self.customer_id:
            raise DomainValidationError("customer ID is required")
        if not self.code:
            raise DomainValidationError("voucher code is required")
        if self.original_amount <= ZERO:
            raise DomainValidationError("original amount must be positive")
        if self.remaining_amount < ZERO:
            raise DomainValidationError("remaining amount cannot be negative")
        if self.remaining_amount > self.original_amount:
            raise DomainValidationError("remaining amount cannot exceed original amount")

    # --- queries ---

    def is_expired(self, now: datetime) -> bool:
        return self.expiry_date is not None and now > self.expiry_date

    def is_valid(self, now: datetime) -> bool:
        if self.status in _CLOSED or self.is_expired(now):
            return False
        return self.remaining_amount > ZERO

    def can_be_used(self, amount: Any, now: datetime) -> UsageCheck:
        if not self.is_valid(now):
            return UsageCheck.denied("voucher is not valid")
        if to_decimal(amount) > self.remaining_amount:
            return UsageCheck.denied(f"insufficient balance (available: {self.remaining_amount:.2f})")
        return UsageCheck.allowed()

    def total_used(self) -> D:
        return self.original_amount - self.remaining_amount

    def usage_percent(self) -> D:
        if self.original_amount == ZERO:
            return ZERO
        return self.total_used() / self.original_amount * HUNDRED

    def usage_count(self) -> int:
        return len(self.usage_history)

    def last_usage(self) -> Optional[VoucherUsage]:
        return self.usage_history[-1] if self.usage_history else None

    def days_until_expiry(self, now: datetime) -> int:
        """-1 when the voucher never expires, 0 once expired."""
        if self.expiry_date is None:
            return -1
        if now > self.expiry_date:
            return 0
        return int((self.expiry_date - now).total_seconds() // 86400)

    def is_expiring_soon(self, days: int, now: datetime) -> bool:
        left = self.days_until_expiry(now)
        return 0 < left <= days

    # --- state changes ---

    def use(
        self,
        amount: Any,
        document_id: str,
        document_type: str,
        used_by: str,
        now: datetime,
        notes: str = "",
    ) -> VoucherUsage:
        closed = _CLOSED.get(self.status)
        if closed:
            code, message = closed
            raise DomainValidationError(message, code=code, meta={"voucher": self.code})

        if self.is_expired(now):
            # the status catches up with the calendar
            self.status = VoucherStatus.EXPIRED
            self.updated_at = now
            code, message = _CLOSED[VoucherStatus.EXPIRED]
            raise DomainValidationError(message, code=code, meta={"voucher": self.code})

        value = require_positive(amount, "amount")
        if value > self.remaining_amount:
            raise DomainValidationError(
                "insufficient voucher balance",
                code="INSUFFICIENT_BALANCE",
                meta={"voucher": self.code, "requested": str(value), "available": str(self.remaining_amount)},
            )

        usage = VoucherUsage(
            id=new_id(),
            document_id=document_id,
            document_type=document_type,
            amount=value,
            used_by=used_by,
            used_at=now,
            notes=notes,
        )
        self.usage_history.append(usage)
        self.remaining_amount -= value
        self.last_used = now

        if self.remaining_amount <= ZERO:
            self.remaining_amount = ZERO
            self.status = VoucherStatus.USED
        else:
            self.status = VoucherStatus.PARTIALLY_USED

        self.updated_at = now
        return usage

    def cancel(self, reason: str, now: datetime) -> None:
        if self.status == VoucherStatus.USED:
            raise DomainValidationError("cannot cancel a fully used voucher", code="VOUCHER_USED")
        if self.status == VoucherStatus.CANCELLED:
            raise DomainValidationError("voucher is already cancelled", code="VOUCHER_CANCELLED")
        self.status = VoucherStatus.CANCELLED
        self.reason = reason
        self.updated_at = now

    def extend(self, days: int, now: datetime) -> None:
        """Pushes the expiry forward; an expired voucher with balance left is reopened."""
        if days <= 0:
            raise DomainValidationError("extension days must be positive", meta={"days": days})
        base = self.expiry_date if self.expiry_date is not None else now
        self.expiry_date = base + timedelta(days=days)

        if self.status == VoucherStatus.EXPIRED and self.remaining_amount > ZERO:
            if self.remaining_amount == self.original_amount:
                self.status = VoucherStatus.ISSUED
            else:
                self.status = VoucherStatus.PARTIALLY_USED
        self.updated_at = now
