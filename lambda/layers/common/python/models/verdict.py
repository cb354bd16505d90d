"""
Adjudication Verdict Models
===========================

The output contract the reasoning model must satisfy, and the two-way
outcome of parsing it.
"""

from dataclasses import dataclass
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .match_result import clamp_confidence


class AdjudicationVerdict(BaseModel):
    """Strict verdict contract: candidate id or null, confidence 0-100, ordered reasons."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    candidate_id: Optional[str] = Field(alias="candidateId")
    confidence: int = Field(default=0)
    reasons: list[str] = Field(default_factory=list)
    reasoning: str = ""

    @field_validator("candidate_id", mode="before")
    @classmethod
    def _normalize_null_id(cls, value):
        if isinstance(value, str) and value.strip().lower() in ("", "null", "none"):
            return None
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value):
        return clamp_confidence(value)


@dataclass(frozen=True)
class ParsedVerdict:
    """The adjudicator output satisfied the contract."""
    verdict: AdjudicationVerdict


@dataclass(frozen=True)
class DegradedVerdict:
    """The adjudicator output could not be parsed; the fallback must be applied."""
    fallback_reason: str
    raw_text: str = ""


VerdictOutcome = Union[ParsedVerdict, DegradedVerdict]
