"""
Matching Pipeline
=================

Fixed, developer-specified matching sequence:

    SemanticSearch -> DateFilter -> BudgetRank -> Adjudicate

Each stage appends its output to the accumulated context. Any stage
that leaves no candidates short-circuits to a null match; the
adjudicator is never called on an empty shortlist.
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from aws_lambda_powertools import Logger

from models import MatchResult, RankedCandidate, ReceiptRecord, SearchHit
from candidate_index import CandidateIndex, MAX_SEARCH_RESULTS
from adjudicator import Adjudicator
from filters import filter_by_date, rank_by_budget

logger = Logger()


class Stage(str, Enum):
    """Pipeline stages in execution order."""
    START = "start"
    SEMANTIC_SEARCH = "semantic_search"
    DATE_FILTER = "date_filter"
    BUDGET_RANK = "budget_rank"
    ADJUDICATE = "adjudicate"
    DONE = "done"


NO_SEMANTIC_MATCHES = "No semantically similar candidates found for this receipt"
NO_ACTIVE_CANDIDATES = "No similar candidates were active during the receipt date"
NO_BUDGET_FIT = "No active candidates have budget within the receipt total"


@dataclass(frozen=True)
class PipelineContext:
    """Everything the pipeline has learned so far about one receipt."""
    receipt: ReceiptRecord
    stage: Stage = Stage.START
    query: str = ""
    semantic_matches: list[SearchHit] = field(default_factory=list)
    date_filtered: list[SearchHit] = field(default_factory=list)
    ranked: list[RankedCandidate] = field(default_factory=list)
    result: Optional[MatchResult] = None


def build_search_query(receipt: ReceiptRecord) -> str:
    """Concatenate merchant, category and notes into the semantic search query."""
    parts = [receipt.merchant, receipt.category.value, receipt.notes or ""]
    return " ".join(part for part in parts if part).strip()


class MatchingPipeline:
    """Runs the fixed matching sequence against a shared, read-only index."""

    def __init__(
        self,
        index: CandidateIndex,
        adjudicator: Optional[Adjudicator] = None,
        search_limit: int = MAX_SEARCH_RESULTS,
    ):
        self.index = index
        self.adjudicator = adjudicator or Adjudicator()
        self.search_limit = search_limit

    async def run(self, receipt: ReceiptRecord) -> MatchResult:
        """
        Match a receipt to a candidate.

        Never raises: an unrecovered error becomes a failure result.
        """
        started = time.time()
        logger.info(f"Starting pipeline for {receipt.merchant} ${receipt.total} on {receipt.transaction_date}")

        context = PipelineContext(receipt=receipt)
        try:
            for step in (self._semantic_search, self._date_filter, self._budget_rank, self._adjudicate):
                context = await step(context)
                if context.result is not None:
                    break
        except Exception as e:
            logger.exception(f"Pipeline failed at stage {context.stage.value}: {e}")
            return MatchResult.failed(f"{context.stage.value}: {e}")

        duration_ms = int((time.time() - started) * 1000)
        logger.info(f"Pipeline finished at {context.stage.value} in {duration_ms}ms: {context.result.to_summary()}")
        return context.result

    async def _semantic_search(self, context: PipelineContext) -> PipelineContext:
        query = build_search_query(context.receipt)
        context = replace(context, stage=Stage.SEMANTIC_SEARCH, query=query)
        logger.info(f"[Step 1/4] Semantic search with query: {query}")

        matches = await self.index.search(query, self.search_limit)
        logger.info(f"  Found {len(matches)} semantically similar candidates")

        context = replace(context, semantic_matches=matches)
        if not matches:
            return replace(context, stage=Stage.DONE, result=MatchResult.no_match(NO_SEMANTIC_MATCHES))
        return context

    async def _date_filter(self, context: PipelineContext) -> PipelineContext:
        context = replace(context, stage=Stage.DATE_FILTER)
        logger.info("[Step 2/4] Filtering by date window...")

        filtered = filter_by_date(context.receipt.transaction_date, context.semantic_matches)
        logger.info(f"  {len(filtered)} candidates active on {context.receipt.transaction_date}")

        context = replace(context, date_filtered=filtered)
        if not filtered:
            return replace(context, stage=Stage.DONE, result=MatchResult.no_match(NO_ACTIVE_CANDIDATES))
        return context

    async def _budget_rank(self, context: PipelineContext) -> PipelineContext:
        context = replace(context, stage=Stage.BUDGET_RANK)
        logger.info("[Step 3/4] Ranking by budget fit...")

        ranked = rank_by_budget(context.receipt.total, context.date_filtered)
        logger.info(f"  {len(ranked)} candidates ranked by budget fit")

        context = replace(context, ranked=ranked)
        if not ranked:
            return replace(context, stage=Stage.DONE, result=MatchResult.no_match(NO_BUDGET_FIT))
        return context

    async def _adjudicate(self, context: PipelineContext) -> PipelineContext:
        context = replace(context, stage=Stage.ADJUDICATE)
        logger.info("[Step 4/4] Adjudicating shortlist...")

        result = await self.adjudicator.adjudicate(context.receipt, context.ranked)
        return replace(context, stage=Stage.DONE, result=result)
