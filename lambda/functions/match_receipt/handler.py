"""
Match Receipt Lambda Handler
============================

Synchronous matching API. Triggered by API Gateway with an extracted
receipt record as the body; returns the pipeline's MatchResult as one
JSON object.

The candidate index is built on the first invocation of a container
and reused by every later invocation.
"""

import asyncio
import json
import time
from typing import Optional

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext

from models import MatchResult, ReceiptRecord
from utils.catalog import load_catalog
from utils.embeddings import EmbeddingClient
from candidate_index import CandidateIndex, IndexBuildError
from pipeline import MatchingPipeline

# Initialize AWS Lambda Powertools
logger = Logger()
metrics = Metrics()
tracer = Tracer()

# One loop per container so the async SDK clients stay bound to it
_loop = asyncio.new_event_loop()

# Built on first use, then shared
_pipeline: Optional[MatchingPipeline] = None


def get_pipeline() -> MatchingPipeline:
    """
    Get or build the matching pipeline for this container.

    Raises:
        IndexBuildError: If the candidate index can't be built
        OSError: If the catalog file can't be read
    """
    global _pipeline
    if _pipeline is None:
        catalog = load_catalog()
        index = _loop.run_until_complete(CandidateIndex.build(catalog, EmbeddingClient()))
        _pipeline = MatchingPipeline(index)
    return _pipeline


@logger.inject_lambda_context
@metrics.log_metrics
@tracer.capture_lambda_handler
def lambda_handler(event: dict, context: LambdaContext) -> dict:
    """
    Main Lambda handler for matching receipts.

    Expected payload:
    {
        "merchant": "AWS",
        "date": "2025-10-28",
        "total": 150.00,
        "category": "office",
        "notes": "optional"
    }
    """
    logger.info("Received receipt matching request")
    metrics.add_metric(name="MatchRequests", unit=MetricUnit.Count, value=1)

    try:
        receipt = ReceiptRecord.from_dict(_parse_request_body(event))
    except ValueError as e:
        logger.warning(f"Rejected invalid receipt record: {e}")
        return _error_response(400, str(e))

    try:
        pipeline = get_pipeline()
    except (IndexBuildError, OSError, ValueError) as e:
        logger.exception(f"Candidate index unavailable: {e}")
        metrics.add_metric(name="MatchFailures", unit=MetricUnit.Count, value=1)
        return _error_response(503, "Candidate index unavailable")

    try:
        result = match_receipt(pipeline, receipt)
    except Exception as e:
        logger.exception(f"Unhandled error matching receipt: {e}")
        metrics.add_metric(name="MatchFailures", unit=MetricUnit.Count, value=1)
        return _error_response(500, str(e))

    if not result.succeeded:
        return _error_response(500, result.error)
    return _success_response(result.to_dict())


@tracer.capture_method
def match_receipt(pipeline: MatchingPipeline, receipt: ReceiptRecord) -> MatchResult:
    """Run the pipeline for one receipt and record metrics."""
    started = time.time()
    result = _loop.run_until_complete(pipeline.run(receipt))
    duration_ms = int((time.time() - started) * 1000)

    _record_metrics(result, duration_ms)
    logger.info(f"Match finished in {duration_ms}ms: {result.to_summary()}")
    return result


def _record_metrics(result: MatchResult, duration_ms: int) -> None:
    """Record CloudWatch metrics."""
    if not result.succeeded:
        metrics.add_metric(name="MatchFailures", unit=MetricUnit.Count, value=1)
    elif result.is_match:
        metrics.add_metric(name="MatchesFound", unit=MetricUnit.Count, value=1)
        metrics.add_metric(name="Confidence", unit=MetricUnit.Count, value=result.confidence_score or 0)
    else:
        metrics.add_metric(name="NoMatch", unit=MetricUnit.Count, value=1)

    if result.degraded:
        metrics.add_metric(name="DegradedAdjudications", unit=MetricUnit.Count, value=1)

    metrics.add_metric(name="MatchDuration", unit=MetricUnit.Milliseconds, value=duration_ms)


def _parse_request_body(event: dict) -> dict:
    """Parse request body from API Gateway event."""
    body = event.get("body") or "{}"
    if isinstance(body, str):
        return json.loads(body)
    return body


def _success_response(data: dict) -> dict:
    """Create success API Gateway response."""
    return {
        "statusCode": 200,
        "headers": {
            "Content-Type": "application/json"
        },
        "body": json.dumps(data)
    }


def _error_response(status_code: int, message: str) -> dict:
    """Create error API Gateway response."""
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json"
        },
        "body": json.dumps({"success": False, "error": message})
    }
