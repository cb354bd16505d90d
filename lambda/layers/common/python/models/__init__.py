"""
Task Matcher - Data Models
==========================

Typed data models for receipt-to-task matching.
"""

from .receipt import (
    ReceiptRecord,
    ReceiptCategory,
    ExtractionStatus,
    ExtractionRejection,
    parse_amount,
)
from .candidate import CandidateItem, IndexedCandidate, SearchHit, RankedCandidate
from .match_result import MatchResult, ToolCall, clamp_confidence
from .verdict import AdjudicationVerdict, ParsedVerdict, DegradedVerdict, VerdictOutcome
from .pipeline_event import PipelineEvent, EventType

__all__ = [
    "ReceiptRecord",
    "ReceiptCategory",
    "ExtractionStatus",
    "ExtractionRejection",
    "parse_amount",
    "CandidateItem",
    "IndexedCandidate",
    "SearchHit",
    "RankedCandidate",
    "MatchResult",
    "ToolCall",
    "clamp_confidence",
    "AdjudicationVerdict",
    "ParsedVerdict",
    "DegradedVerdict",
    "VerdictOutcome",
    "PipelineEvent",
    "EventType",
]
