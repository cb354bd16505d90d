"""
Reasoning Adjudicator
=====================

Asks Claude to pick the best candidate from a short, pre-filtered
shortlist and explain why. Malformed output never raises: the parse is
retried once with relaxed extraction, then falls back to the top-ranked
candidate at a fixed low confidence.
"""

import json
import os
import re
from typing import Any, Iterable, Optional

from aws_lambda_powertools import Logger
from pydantic import ValidationError

from models import (
    AdjudicationVerdict,
    DegradedVerdict,
    MatchResult,
    ParsedVerdict,
    RankedCandidate,
    ReceiptRecord,
    VerdictOutcome,
)
from prompts import build_adjudication_prompt
from utils.anthropic_client import MODEL, TIMEOUT_SECONDS, extract_text, get_anthropic_client

logger = Logger()

MAX_SHORTLIST = int(os.environ.get("MAX_SHORTLIST", "3"))
MAX_TOKENS = 1024

FALLBACK_CONFIDENCE = 25
FALLBACK_REASON = "automatic selection after adjudication parse failure"

# Keys models have been seen to use instead of candidateId
_ID_ALIASES = ("candidateId", "candidate_id", "taskId", "bestTaskId", "bestCandidateId", "id")
_MISSING = object()


class VerdictContractError(ValueError):
    """Adjudicator output does not satisfy the verdict contract."""


def parse_verdict(text: str, allowed_ids: Iterable[str]) -> VerdictOutcome:
    """
    Parse adjudicator output into a verdict.

    Tries the strict contract first, then one relaxed extraction
    (markdown fences, surrounding prose, alias keys). A candidate id
    outside ``allowed_ids`` violates the contract.

    Returns:
        ParsedVerdict on success, DegradedVerdict if both attempts fail
    """
    allowed = set(allowed_ids)

    try:
        return ParsedVerdict(_parse_strict(text, allowed))
    except (ValueError, ValidationError) as strict_error:
        logger.info(f"Strict verdict parse failed, retrying relaxed: {strict_error}")

    try:
        return ParsedVerdict(_parse_relaxed(text, allowed))
    except (ValueError, ValidationError) as relaxed_error:
        logger.warning(f"Relaxed verdict parse failed: {relaxed_error}")
        return DegradedVerdict(fallback_reason=str(relaxed_error), raw_text=text or "")


def _parse_strict(text: str, allowed: set[str]) -> AdjudicationVerdict:
    data = json.loads((text or "").strip())
    if not isinstance(data, dict) or "candidateId" not in data:
        raise VerdictContractError("Verdict must be an object with a candidateId field")
    return _check_candidate(AdjudicationVerdict.model_validate(data), allowed)


def _parse_relaxed(text: str, allowed: set[str]) -> AdjudicationVerdict:
    cleaned = (text or "").strip()
    fenced = re.search(r"```[a-zA-Z0-9_-]*\s*(.*?)\s*```", cleaned, re.DOTALL)
    if fenced:
        cleaned = fenced.group(1).strip()

    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise VerdictContractError("No JSON object found in adjudicator output")
    data = json.loads(cleaned[start:end + 1])
    if not isinstance(data, dict):
        raise VerdictContractError("Verdict must be a JSON object")

    candidate_id = next((data[key] for key in _ID_ALIASES if key in data), _MISSING)
    if candidate_id is _MISSING:
        raise VerdictContractError("Verdict has no candidate id field")

    confidence = data.get("confidence", data.get("confidenceScore", 0))
    reasons = data.get("reasons", data.get("matchReasons", []))
    if isinstance(reasons, str):
        reasons = [reasons]

    verdict = AdjudicationVerdict(
        candidate_id=candidate_id if candidate_id is None else str(candidate_id),
        confidence=confidence,
        reasons=[str(r) for r in reasons or []],
        reasoning=str(data.get("reasoning") or ""),
    )
    return _check_candidate(verdict, allowed)


def _check_candidate(verdict: AdjudicationVerdict, allowed: set[str]) -> AdjudicationVerdict:
    if verdict.candidate_id is not None and verdict.candidate_id not in allowed:
        raise VerdictContractError(f"Verdict names unknown candidate {verdict.candidate_id}")
    return verdict


def default_match_reasons(receipt: ReceiptRecord, ranked: RankedCandidate) -> list[str]:
    """Deterministic reasons describing why a ranked candidate fits."""
    return [
        f"Semantic match: receipt from {receipt.merchant} matches \"{ranked.candidate.title}\"",
        f"Budget fit: ${receipt.total:.2f} of ${ranked.candidate.budget:.2f} "
        f"({ranked.utilization_percentage:.2f}% utilization)",
        "Date match: receipt date falls within the task work period",
    ]


def resolve_verdict(
    outcome: VerdictOutcome,
    receipt: ReceiptRecord,
    shortlist: list[RankedCandidate],
) -> MatchResult:
    """Turn a parse outcome into a MatchResult, applying the fallback for degraded output."""
    if isinstance(outcome, DegradedVerdict):
        if not shortlist:
            return MatchResult.no_match(
                "No ranked candidates available after adjudication parse failure",
                reasoning=f"Adjudicator output could not be parsed: {outcome.fallback_reason}",
            )
        top = shortlist[0]
        logger.warning(f"Falling back to top-ranked candidate {top.candidate.id}")
        return MatchResult.matched(
            top,
            confidence=FALLBACK_CONFIDENCE,
            reasons=[FALLBACK_REASON] + default_match_reasons(receipt, top)[1:],
            reasoning=f"Adjudicator output could not be parsed: {outcome.fallback_reason}",
            degraded=True,
        )

    verdict = outcome.verdict
    if verdict.candidate_id is None:
        reasons = verdict.reasons or ["No shortlisted candidate explains this receipt"]
        return MatchResult(reasons=list(reasons), reasoning=verdict.reasoning or "; ".join(reasons))

    ranked = next(r for r in shortlist if r.candidate.id == verdict.candidate_id)
    return MatchResult.matched(
        ranked,
        confidence=verdict.confidence,
        reasons=verdict.reasons or default_match_reasons(receipt, ranked),
        reasoning=verdict.reasoning or "; ".join(verdict.reasons),
    )


class Adjudicator:
    """Picks the best candidate from a shortlist with one Claude call."""

    def __init__(
        self,
        client: Optional[Any] = None,
        model: str = MODEL,
        max_candidates: int = MAX_SHORTLIST,
        timeout_seconds: float = TIMEOUT_SECONDS,
    ):
        self._client = client
        self.model = model
        self.max_candidates = max_candidates
        self.timeout_seconds = timeout_seconds

    @property
    def client(self):
        if self._client is None:
            self._client = get_anthropic_client()
        return self._client

    async def adjudicate(
        self,
        receipt: ReceiptRecord,
        shortlist: list[RankedCandidate],
        max_candidates: Optional[int] = None,
    ) -> MatchResult:
        """
        Pick the best candidate among the top-ranked shortlist.

        Raises:
            anthropic.APIError: If the model call itself fails
        """
        shortlist = shortlist[:max_candidates or self.max_candidates]
        if not shortlist:
            return MatchResult.no_match("No candidates to adjudicate")

        logger.info(f"Adjudicating {len(shortlist)} candidates for {receipt.merchant}")
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=MAX_TOKENS,
            temperature=0.0,
            messages=[{"role": "user", "content": build_adjudication_prompt(receipt, shortlist)}],
            timeout=self.timeout_seconds,
        )
        text = extract_text(response)

        outcome = parse_verdict(text, [r.candidate.id for r in shortlist])
        result = resolve_verdict(outcome, receipt, shortlist)
        logger.info(f"Adjudication complete: {result.to_summary()}")
        return result
