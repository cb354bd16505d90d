"""
Budget Ranking Tool
===================

Ranks candidates by how tightly the receipt fits their budget.
"""

from typing import Any

from aws_lambda_powertools import Logger

from filters import rank_by_budget as rank_hits_by_budget

from .arguments import parse_candidate_ids, resolve_hits

logger = Logger()


async def rank_by_budget(input_args: dict, context: Any) -> dict:
    """
    Drop candidates whose budget the receipt exceeds and rank the rest.

    The ranking is kept on the context so the agent can fall back to
    its top entry if the final answer can't be parsed.

    Args:
        input_args: Tool input with candidateIds
        context: ToolContext with receipt and index

    Returns:
        Candidates ordered by utilization, tightest fit first
    """
    candidate_ids = parse_candidate_ids(input_args)
    receipt_total = context.receipt.total

    hits, unknown = resolve_hits(candidate_ids, context)
    ranked = rank_hits_by_budget(receipt_total, hits)
    context.last_ranking = ranked
    logger.info(f"{len(ranked)} of {len(candidate_ids)} candidates fit ${receipt_total}")

    output = {
        "success": True,
        "receipt_total": float(receipt_total),
        "count": len(ranked),
        "candidates": [r.to_dict() for r in ranked],
    }
    if unknown:
        output["unknown_ids"] = unknown
    return output
