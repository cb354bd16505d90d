"""
Deterministic Filter Tests
==========================

Tests for date-window filtering and budget ranking.

Usage:
    pytest tests/test_filters.py -v
"""

from datetime import date
from decimal import Decimal

from models import SearchHit
from filters import filter_by_date, rank_by_budget

from helpers import make_candidate


def _hits(*candidates):
    return [SearchHit(candidate=c, similarity=0.5) for c in candidates]


class TestFilterByDate:
    """Tests for the inclusive date window filter."""

    def test_keeps_candidates_active_on_receipt_date(self):
        """Test that only candidates whose window contains the date survive."""
        active = make_candidate("a", "Active", 100, "2025-10-01", "2025-11-15")
        expired = make_candidate("b", "Expired", 100, "2025-06-01", "2025-08-31")
        future = make_candidate("c", "Future", 100, "2025-11-01", "2025-12-31")

        result = filter_by_date(date(2025, 10, 28), _hits(active, expired, future))

        assert [h.candidate.id for h in result] == ["a"]

    def test_window_boundaries_are_inclusive(self):
        """Test that the first and last day of the window both count."""
        candidate = make_candidate("a", "Edge", 100, "2025-10-01", "2025-11-15")

        assert filter_by_date(date(2025, 10, 1), _hits(candidate))
        assert filter_by_date(date(2025, 11, 15), _hits(candidate))
        assert not filter_by_date(date(2025, 11, 16), _hits(candidate))
        assert not filter_by_date(date(2025, 9, 30), _hits(candidate))

    def test_output_is_subset_preserving_order(self):
        """Test that survivors keep their input order and scores."""
        candidates = [
            make_candidate(f"t{i}", f"Task {i}", 100, "2025-01-01", end)
            for i, end in enumerate(["2025-12-31", "2025-02-01", "2025-12-31", "2025-11-01"])
        ]
        hits = _hits(*candidates)

        result = filter_by_date(date(2025, 10, 28), hits)

        assert [h.candidate.id for h in result] == ["t0", "t2", "t3"]
        assert all(h in hits for h in result)
        assert all(h.candidate.window_start <= date(2025, 10, 28) <= h.candidate.window_end for h in result)

    def test_empty_input_yields_empty_output(self):
        """Test that an empty list stays empty."""
        assert filter_by_date(date(2025, 10, 28), []) == []


class TestRankByBudget:
    """Tests for budget-fit ranking."""

    def test_utilization_and_remaining_budget(self):
        """Test that utilization is total over budget as a percentage."""
        candidate = make_candidate("a", "AWS Infrastructure Migration", 500, "2025-10-01", "2025-11-15")

        [ranked] = rank_by_budget(Decimal("150"), _hits(candidate))

        assert ranked.utilization_percentage == Decimal("30")
        assert ranked.remaining_budget == Decimal("350")
        assert ranked.similarity == 0.5

    def test_excludes_candidates_the_receipt_exceeds(self):
        """Test that a budget below the total is dropped."""
        small = make_candidate("small", "Small", 100, "2025-10-01", "2025-11-15")
        large = make_candidate("large", "Large", 500, "2025-10-01", "2025-11-15")

        result = rank_by_budget(Decimal("150"), _hits(small, large))

        assert [r.candidate.id for r in result] == ["large"]

    def test_exact_budget_is_full_utilization(self):
        """Test that a total equal to the budget ranks at 100%."""
        candidate = make_candidate("a", "Exact", 150, "2025-10-01", "2025-11-15")

        [ranked] = rank_by_budget(Decimal("150"), _hits(candidate))

        assert ranked.utilization_percentage == Decimal("100")
        assert ranked.remaining_budget == Decimal("0")

    def test_zero_budget_is_excluded(self):
        """Test that a zero budget never produces a division."""
        candidate = make_candidate("a", "Unfunded", 0, "2025-10-01", "2025-11-15")

        assert rank_by_budget(Decimal("0.01"), _hits(candidate)) == []

    def test_sorted_by_utilization_descending(self):
        """Test that the tightest fit ranks first."""
        loose = make_candidate("loose", "Loose", 1000, "2025-10-01", "2025-11-15")
        tight = make_candidate("tight", "Tight", 160, "2025-10-01", "2025-11-15")
        middle = make_candidate("middle", "Middle", 300, "2025-10-01", "2025-11-15")

        result = rank_by_budget(Decimal("150"), _hits(loose, tight, middle))

        assert [r.candidate.id for r in result] == ["tight", "middle", "loose"]

    def test_ties_keep_input_order(self):
        """Test that equal utilization keeps the incoming order."""
        first = make_candidate("first", "First", 300, "2025-10-01", "2025-11-15")
        second = make_candidate("second", "Second", 300, "2025-10-01", "2025-11-15")

        result = rank_by_budget(Decimal("150"), _hits(first, second))

        assert [r.candidate.id for r in result] == ["first", "second"]

    def test_utilization_always_within_bounds(self):
        """Test that every survivor has utilization in (0, 100]."""
        candidates = [
            make_candidate(f"t{b}", f"Budget {b}", b, "2025-10-01", "2025-11-15")
            for b in (1, 99, 150, 151, 10_000, 1_000_000)
        ]
        total = Decimal("0.01")

        for receipt_total in (total, Decimal("150"), Decimal("9999.99")):
            for ranked in rank_by_budget(receipt_total, _hits(*candidates)):
                assert ranked.candidate.budget >= receipt_total
                assert Decimal("0") < ranked.utilization_percentage <= Decimal("100")

    def test_empty_input_yields_empty_output(self):
        """Test that an empty list stays empty."""
        assert rank_by_budget(Decimal("150"), []) == []
