"""
Deterministic Filters
=====================

Pure business rules that narrow and rank candidates. No external calls,
no side effects; empty input always yields empty output.
"""

from datetime import date
from decimal import Decimal

from models import SearchHit, RankedCandidate


def filter_by_date(receipt_date: date, hits: list[SearchHit]) -> list[SearchHit]:
    """Keep candidates whose inclusive window contains the receipt date."""
    return [hit for hit in hits if hit.candidate.is_active_on(receipt_date)]


def rank_by_budget(receipt_total: Decimal, hits: list[SearchHit]) -> list[RankedCandidate]:
    """
    Rank candidates by how tightly the receipt fits their budget.

    Candidates whose budget the receipt exceeds are dropped. Survivors are
    sorted by utilization descending; ties keep input order.
    """
    ranked = []
    for hit in hits:
        budget = hit.candidate.budget
        if receipt_total > budget or budget <= 0:
            continue
        utilization = receipt_total / budget * 100
        ranked.append(RankedCandidate(
            candidate=hit.candidate,
            similarity=hit.similarity,
            utilization_percentage=utilization,
            remaining_budget=budget - receipt_total,
        ))

    # sorted() is stable
    return sorted(ranked, key=lambda r: r.utilization_percentage, reverse=True)
