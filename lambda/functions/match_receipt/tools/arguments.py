"""
Tool Argument Helpers
=====================

Validation of model-supplied tool arguments.
"""

from typing import Any

from models import SearchHit


class ToolArgumentError(ValueError):
    """The model supplied malformed tool arguments."""


def parse_candidate_ids(input_args: dict) -> list[str]:
    """Read and validate the candidateIds argument, keeping order and dropping duplicates."""
    candidate_ids = input_args.get("candidateIds")
    if not isinstance(candidate_ids, list) or not all(isinstance(c, str) for c in candidate_ids):
        raise ToolArgumentError("candidateIds must be an array of candidate id strings")
    return list(dict.fromkeys(candidate_ids))


def resolve_hits(candidate_ids: list[str], context: Any) -> tuple[list[SearchHit], list[str]]:
    """
    Resolve ids against the index.

    Returns:
        Tuple of (hits with any known similarity score, unknown ids)
    """
    hits, unknown = [], []
    for candidate_id in candidate_ids:
        candidate = context.index.get(candidate_id)
        if candidate is None:
            unknown.append(candidate_id)
            continue
        hits.append(SearchHit(candidate=candidate, similarity=context.similarities.get(candidate_id)))
    return hits, unknown
