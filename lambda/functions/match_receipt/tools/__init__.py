"""
Matching Tools
==============

Tool implementations exposed to the matching agent.
"""

from .arguments import ToolArgumentError
from .candidate_search import search_candidates
from .date_filtering import filter_by_date
from .budget_ranking import rank_by_budget

__all__ = [
    "ToolArgumentError",
    "search_candidates",
    "filter_by_date",
    "rank_by_budget",
]
