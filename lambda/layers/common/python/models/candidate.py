"""
Candidate Data Models
=====================

Work items (tasks with budgets and date windows) that receipts are
matched against, plus the per-request views derived from them.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Any

from .receipt import parse_amount


@dataclass(frozen=True)
class CandidateItem:
    """
    A catalog work item eligible to be matched against a receipt.

    Read-only for the lifetime of the process. The window is inclusive
    on both ends and window_start <= window_end always holds.
    """

    id: str
    title: str
    budget: Decimal
    window_start: date
    window_end: date
    description: Optional[str] = None
    assignee: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("Candidate id is required")
        if self.budget < 0:
            raise ValueError(f"Candidate {self.id} has a negative budget")
        if self.window_start > self.window_end:
            raise ValueError(
                f"Candidate {self.id} window starts after it ends "
                f"({self.window_start} > {self.window_end})"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "CandidateItem":
        """
        Create CandidateItem from a catalog row.

        Catalog rows use ``createdAt``/``dueDate`` for the window; the
        snake_case ``window_start``/``window_end`` keys are accepted too.
        Raises ValueError when a required field is missing or invalid.
        """
        budget = parse_amount(data.get("budget"))
        if budget is None:
            raise ValueError(f"Candidate {data.get('id')} has no budget")

        window_start = cls._parse_date(data.get("window_start", data.get("createdAt")))
        window_end = cls._parse_date(data.get("window_end", data.get("dueDate")))
        if window_start is None or window_end is None:
            raise ValueError(f"Candidate {data.get('id')} has an incomplete date window")

        return cls(
            id=str(data.get("id", "")),
            title=data.get("title", ""),
            description=data.get("description") or None,
            assignee=data.get("assignee"),
            budget=budget,
            window_start=window_start,
            window_end=window_end,
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

    @property
    def embedding_text(self) -> str:
        """Text the semantic index embeds for this item."""
        if self.description:
            return f"{self.title}: {self.description}"
        return self.title

    def is_active_on(self, day: date) -> bool:
        """Check whether ``day`` falls inside the inclusive window."""
        return self.window_start <= day <= self.window_end

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "assignee": self.assignee,
            "budget": float(self.budget),
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
        }


@dataclass(frozen=True)
class IndexedCandidate:
    """CandidateItem plus its embedding vector. Created once at index build."""
    candidate: CandidateItem
    embedding: tuple[float, ...]


@dataclass(frozen=True)
class SearchHit:
    """A candidate with the similarity score it was retrieved with, if any."""
    candidate: CandidateItem
    similarity: Optional[float] = None

    def to_dict(self) -> dict:
        data = self.candidate.to_dict()
        data["similarity"] = round(self.similarity, 4) if self.similarity is not None else None
        return data


@dataclass(frozen=True)
class RankedCandidate:
    """
    A candidate that fits the receipt's budget.

    Transient; recomputed for every request.
    """

    candidate: CandidateItem
    similarity: Optional[float]
    utilization_percentage: Decimal
    remaining_budget: Decimal

    def to_dict(self) -> dict:
        data = self.candidate.to_dict()
        data.update({
            "similarity": round(self.similarity, 4) if self.similarity is not None else None,
            "utilization_percentage": float(self.utilization_percentage),
            "remaining_budget": float(self.remaining_budget),
        })
        return data
