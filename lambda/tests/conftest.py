"""
Shared pytest configuration.

Puts the common layer and the function directory on sys.path the way
the Lambda runtime does, and provides catalog, index and fake client
fixtures.
"""

import asyncio
import os
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest

LAMBDA_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(LAMBDA_ROOT / "layers" / "common" / "python"))
sys.path.insert(0, str(LAMBDA_ROOT / "functions" / "match_receipt"))

os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "task-matcher")
os.environ.setdefault("POWERTOOLS_METRICS_NAMESPACE", "TaskMatcher")
os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "1")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

from helpers import HashingEmbedder, make_candidate, make_receipt  # noqa: E402


@dataclass
class FakeLambdaContext:
    function_name: str = "match-receipt"
    memory_limit_in_mb: int = 512
    invoked_function_arn: str = "arn:aws:lambda:us-east-1:123456789012:function:match-receipt"
    aws_request_id: str = "test-request-id"


@pytest.fixture
def lambda_context():
    return FakeLambdaContext()


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def receipt():
    """The AWS receipt used across the end-to-end scenarios."""
    return make_receipt()


@pytest.fixture
def catalog():
    return [
        make_candidate(
            "task-1", "AWS Infrastructure Migration", 500, "2025-10-01", "2025-11-15",
            description="Move workloads to AWS cloud infrastructure",
        ),
        make_candidate(
            "task-2", "Quarterly Client Dinner", 300, "2025-10-10", "2025-10-31",
            description="Restaurant dinner with the client team",
        ),
        make_candidate(
            "task-3", "Office Supplies Restock", 200, "2025-09-15", "2025-12-31",
            description="Printer paper, toner and office supplies",
        ),
        make_candidate(
            "task-4", "Setup AWS cloud infrastructure", 150, "2025-06-01", "2025-08-31",
            description="Provision AWS VPC and IAM roles",
        ),
    ]


@pytest.fixture
def index(catalog, embedder):
    from candidate_index import CandidateIndex

    return asyncio.run(CandidateIndex.build(catalog, embedder))
