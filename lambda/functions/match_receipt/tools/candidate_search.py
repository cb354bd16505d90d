"""
Candidate Search Tool
=====================

Semantic search over the candidate catalog with a model-written query.
"""

from typing import Any

from aws_lambda_powertools import Logger

from candidate_index import MAX_SEARCH_RESULTS

from .arguments import ToolArgumentError

logger = Logger()


async def search_candidates(input_args: dict, context: Any) -> dict:
    """
    Find candidates semantically similar to a free-text query.

    Args:
        input_args: Tool input with query and optional limit
        context: ToolContext with the candidate index

    Returns:
        Candidates ordered by similarity, at most MAX_SEARCH_RESULTS
    """
    query = input_args.get("query")
    limit = input_args.get("limit", MAX_SEARCH_RESULTS)

    if not isinstance(query, str) or not query.strip():
        raise ToolArgumentError("query must be a non-empty string")
    if isinstance(limit, bool) or not isinstance(limit, (int, float)) or limit < 1:
        raise ToolArgumentError("limit must be a positive integer")

    limit = min(int(limit), MAX_SEARCH_RESULTS)
    logger.info(f"Searching candidates for: {query!r} (limit {limit})")

    hits = await context.index.search(query, limit)
    for hit in hits:
        context.similarities[hit.candidate.id] = hit.similarity

    return {
        "success": True,
        "count": len(hits),
        "candidates": [hit.to_dict() for hit in hits],
    }
