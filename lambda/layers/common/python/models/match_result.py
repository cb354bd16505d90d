"""
Match Result Data Model
=======================

Represents the outcome of matching a receipt against the candidate
catalog, by either the fixed pipeline or the matching agent.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Any

from .candidate import CandidateItem, RankedCandidate

MIN_CONFIDENCE = 0
MAX_CONFIDENCE = 100


def clamp_confidence(value: Any) -> int:
    """Clamp a confidence score into [0, 100]. Accepts strings like "85%"."""
    if isinstance(value, str):
        value = value.strip().rstrip("%")
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return MIN_CONFIDENCE
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, score))


@dataclass
class ToolCall:
    """Record of a single tool invocation."""
    tool_name: str
    input_args: dict
    output: Any
    success: bool
    error_message: Optional[str] = None
    duration_ms: Optional[int] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "name": self.tool_name,
            "input": self.input_args,
            "output": self.output,
            "success": self.success,
            "error": self.error_message,
            "duration_ms": self.duration_ms,
        }


@dataclass
class MatchResult:
    """
    Result of receipt-to-candidate matching.

    ``candidate`` is None when no acceptable candidate exists; the
    confidence score is only set alongside a candidate. ``reasoning``
    is always present, even for a null match.
    """

    candidate: Optional[CandidateItem] = None
    confidence_score: Optional[int] = None
    reasons: list[str] = field(default_factory=list)
    reasoning: str = ""

    # Budget fit of the chosen candidate
    utilization_percentage: Optional[Decimal] = None
    remaining_budget: Optional[Decimal] = None

    # Set when the adjudicator output could not be parsed
    degraded: bool = False

    # Set when the run failed with an unrecovered error
    error: Optional[str] = None

    # Tool call history (agent runs only)
    tool_calls: list[ToolCall] = field(default_factory=list)

    def __post_init__(self):
        if self.candidate is None:
            self.confidence_score = None
        elif self.confidence_score is not None:
            self.confidence_score = clamp_confidence(self.confidence_score)

    @classmethod
    def matched(
        cls,
        ranked: RankedCandidate,
        confidence: Any,
        reasons: list[str],
        reasoning: str = "",
        degraded: bool = False,
    ) -> "MatchResult":
        """Build a match on a ranked candidate."""
        return cls(
            candidate=ranked.candidate,
            confidence_score=clamp_confidence(confidence),
            reasons=list(reasons),
            reasoning=reasoning,
            utilization_percentage=ranked.utilization_percentage,
            remaining_budget=ranked.remaining_budget,
            degraded=degraded,
        )

    @classmethod
    def no_match(cls, reason: str, reasoning: Optional[str] = None) -> "MatchResult":
        """Build a null match carrying a single reason."""
        return cls(reasons=[reason], reasoning=reasoning if reasoning is not None else reason)

    @classmethod
    def failed(cls, error: str) -> "MatchResult":
        """Build a failure result for an unrecovered error."""
        return cls(
            reasons=["Matching failed before a decision could be made"],
            reasoning=f"Matching failed: {error}",
            error=error,
        )

    @property
    def is_match(self) -> bool:
        return self.candidate is not None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def tool_call_count(self) -> int:
        return len(self.tool_calls)

    def add_tool_call(
        self,
        tool_name: str,
        input_args: dict,
        output: Any,
        success: bool,
        error_message: Optional[str] = None,
        duration_ms: Optional[int] = None
    ) -> None:
        """Record a tool call."""
        self.tool_calls.append(ToolCall(
            tool_name=tool_name,
            input_args=input_args,
            output=output,
            success=success,
            error_message=error_message,
            duration_ms=duration_ms,
            timestamp=datetime.utcnow()
        ))

    def to_dict(self) -> dict:
        """Convert to a JSON-safe dictionary."""
        data = {
            "candidate": self.candidate.to_dict() if self.candidate else None,
            "confidence_score": self.confidence_score,
            "reasons": list(self.reasons),
            "reasoning": self.reasoning,
            "utilization_percentage": (
                float(self.utilization_percentage) if self.utilization_percentage is not None else None
            ),
            "remaining_budget": float(self.remaining_budget) if self.remaining_budget is not None else None,
            "degraded": self.degraded,
        }
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.error:
            data["error"] = self.error
        return data

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        if self.error:
            return f"Matching failed: {self.error}"
        if not self.candidate:
            return f"No match: {'; '.join(self.reasons)}"
        summary = f"Matched {self.candidate.id} ({self.candidate.title}) at {self.confidence_score}% confidence"
        if self.degraded:
            summary += " [fallback]"
        return summary
