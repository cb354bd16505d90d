"""
Receipt Data Model
==================

Represents a receipt extracted from an uploaded image or document.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Any


class ReceiptCategory(str, Enum):
    """Merchant category assigned during extraction."""
    FOOD = "food"
    RETAIL = "retail"
    OFFICE = "office"
    TRAVEL = "travel"
    ENTERTAINMENT = "entertainment"
    OTHER = "other"


class ExtractionStatus(str, Enum):
    """Outcome of the extraction collaborator."""
    SUCCESS = "success"
    PARTIAL = "partial"
    NOT_A_RECEIPT = "not_a_receipt"
    UNREADABLE = "unreadable"


@dataclass(frozen=True)
class ReceiptRecord:
    """
    A successfully extracted receipt.

    Immutable once received; lives for a single matching request.
    """

    merchant: str
    transaction_date: date
    total: Decimal
    category: ReceiptCategory = ReceiptCategory.OTHER
    notes: Optional[str] = None

    def __post_init__(self):
        if not self.merchant or not self.merchant.strip():
            raise ValueError("Receipt merchant is required")
        if self.total <= 0:
            raise ValueError(f"Receipt total must be positive, got {self.total}")

    @classmethod
    def from_dict(cls, data: dict) -> "ReceiptRecord":
        """
        Create ReceiptRecord from a request payload.

        Accepts ``date`` or ``transaction_date`` for the date field.
        Raises ValueError on missing or invalid fields.
        """
        if not isinstance(data, dict):
            raise ValueError("Receipt payload must be a JSON object")

        merchant = data.get("merchant")
        if not isinstance(merchant, str):
            raise ValueError("Receipt merchant is required")

        raw_date = data.get("transaction_date", data.get("date"))
        transaction_date = cls._parse_date(raw_date)
        if transaction_date is None:
            raise ValueError(f"Invalid receipt date: {raw_date!r}")

        total = parse_amount(data.get("total"))
        if total is None:
            raise ValueError(f"Invalid receipt total: {data.get('total')!r}")

        raw_category = data.get("category") or "other"
        if not isinstance(raw_category, str):
            raise ValueError(f"Receipt category must be a string: {raw_category!r}")
        category_value = raw_category.lower()
        try:
            category = ReceiptCategory(category_value)
        except ValueError:
            raise ValueError(f"Unknown receipt category: {category_value}") from None

        notes = data.get("notes")
        return cls(
            merchant=merchant.strip(),
            transaction_date=transaction_date,
            total=total,
            category=category,
            notes=notes.strip() if isinstance(notes, str) and notes.strip() else None,
        )

    @staticmethod
    def _parse_date(value: Any) -> Optional[date]:
        """Parse date from various formats."""
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return datetime.strptime(value[:10], "%Y-%m-%d").date()
            except ValueError:
                return None
        return None

    def to_dict(self) -> dict:
        """Convert to a JSON-safe dictionary."""
        return {
            "merchant": self.merchant,
            "date": self.transaction_date.isoformat(),
            "total": float(self.total),
            "category": self.category.value,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class ExtractionRejection:
    """Typed rejection returned by the extraction collaborator."""

    status: ExtractionStatus
    reason: str
    suggestions: list[str] = field(default_factory=list)
    missing_fields: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "reason": self.reason,
            "suggestions": list(self.suggestions),
            "missing_fields": list(self.missing_fields),
        }


def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse a currency amount into a Decimal, or None if it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        # str() first so floats like 0.1 don't carry binary noise
        amount = Decimal(str(value).strip().lstrip("$").replace(",", ""))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount
