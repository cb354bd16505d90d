"""
Date Filtering Tool
===================

Keeps the candidates that were active on the receipt date.
"""

from typing import Any

from aws_lambda_powertools import Logger

from filters import filter_by_date as filter_hits_by_date

from .arguments import parse_candidate_ids, resolve_hits

logger = Logger()


async def filter_by_date(input_args: dict, context: Any) -> dict:
    """
    Filter candidates by whether their window contains the receipt date.

    The receipt date comes from the request, not from the model.

    Args:
        input_args: Tool input with candidateIds
        context: ToolContext with receipt and index

    Returns:
        Surviving candidates plus any ids the catalog doesn't know
    """
    candidate_ids = parse_candidate_ids(input_args)
    receipt_date = context.receipt.transaction_date

    hits, unknown = resolve_hits(candidate_ids, context)
    filtered = filter_hits_by_date(receipt_date, hits)
    logger.info(f"{len(filtered)} of {len(candidate_ids)} candidates active on {receipt_date}")

    output = {
        "success": True,
        "receipt_date": receipt_date.isoformat(),
        "count": len(filtered),
        "candidates": [hit.to_dict() for hit in filtered],
    }
    if unknown:
        output["unknown_ids"] = unknown
    return output
