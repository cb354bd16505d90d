"""
Task Matcher HTTP API
=====================

Flask surface for receipt-to-task matching:

    GET  /health                      liveness and index size
    POST /api/match                   receipt record -> pipeline result
    POST /api/match/stream            receipt record -> agent SSE stream
    POST /api/receipts/match          upload -> extraction -> pipeline result
    POST /api/receipts/match/stream   upload -> extraction -> agent SSE stream

The candidate index is built in ``create_app``; if it can't be built the
app is never created.
"""

import os
from typing import Any, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import RequestEntityTooLarge
from aws_lambda_powertools import Logger

from models import ExtractionRejection, ReceiptRecord
from utils.catalog import load_catalog
from utils.embeddings import EmbeddingClient
from adjudicator import Adjudicator
from agent import run_matching_agent
from candidate_index import CandidateIndex
from extraction import MAX_UPLOAD_BYTES, extract_receipt, uploaded_receipt
from pipeline import MatchingPipeline
from streaming import BackgroundLoop, sse_stream

logger = Logger()

EXTRACTION_FAILED = "Receipt parsing failed - cannot match to task"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


def create_app(
    index: Optional[CandidateIndex] = None,
    adjudicator: Optional[Adjudicator] = None,
    agent_client: Optional[Any] = None,
    extraction_client: Optional[Any] = None,
    loop: Optional[BackgroundLoop] = None,
) -> Flask:
    """
    Build the Flask app.

    Raises:
        IndexBuildError: If the candidate index can't be built
    """
    loop = loop or BackgroundLoop()
    if index is None:
        index = loop.run(CandidateIndex.build(load_catalog(), EmbeddingClient()))
    pipeline = MatchingPipeline(index, adjudicator=adjudicator)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_BYTES
    CORS(app, resources={r"/api/*": {"origins": "*", "methods": ["GET", "POST", "OPTIONS"]}})

    def stream_agent(receipt: ReceiptRecord) -> Response:
        async def produce(channel):
            await run_matching_agent(receipt, index, channel, client=agent_client)

        return Response(sse_stream(loop, produce), mimetype="text/event-stream", headers=SSE_HEADERS)

    def run_pipeline(receipt: ReceiptRecord, **extra) -> tuple[Response, int]:
        result = loop.run(pipeline.run(receipt))
        status = 200 if result.succeeded else 500
        return jsonify({
            "success": result.succeeded,
            "receipt": receipt.to_dict(),
            "match": result.to_dict(),
            **extra,
        }), status

    def extract_upload() -> Any:
        with uploaded_receipt(request.files.get("receipt")) as path:
            return loop.run(extract_receipt(path, client=extraction_client))

    def rejection_response(rejection: ExtractionRejection) -> tuple[Response, int]:
        return jsonify({
            "success": False,
            "extraction": rejection.to_dict(),
            "error": EXTRACTION_FAILED,
        }), 422

    @app.get("/health")
    def health():
        return jsonify({"status": "ok", "candidates": len(index)})

    @app.post("/api/match")
    def match():
        receipt = ReceiptRecord.from_dict(_json_body())
        logger.info(f"Pipeline match requested for {receipt.merchant}")
        return run_pipeline(receipt)

    @app.post("/api/match/stream")
    def match_stream():
        receipt = ReceiptRecord.from_dict(_json_body())
        logger.info(f"Agent match stream requested for {receipt.merchant}")
        return stream_agent(receipt)

    @app.post("/api/receipts/match")
    def match_upload():
        outcome = extract_upload()
        if isinstance(outcome, ExtractionRejection):
            return rejection_response(outcome)
        return run_pipeline(outcome, extraction={"status": "success"})

    @app.post("/api/receipts/match/stream")
    def match_upload_stream():
        outcome = extract_upload()
        if isinstance(outcome, ExtractionRejection):
            return rejection_response(outcome)
        return stream_agent(outcome)

    @app.errorhandler(ValueError)
    def bad_request(e):
        logger.warning(f"Bad request: {e}")
        return jsonify({"success": False, "error": str(e)}), 400

    @app.errorhandler(RequestEntityTooLarge)
    def too_large(e):
        return jsonify({"success": False, "error": "Upload exceeds the 10MB limit"}), 413

    logger.info(f"Task matcher ready with {len(index)} candidates")
    return app


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        raise ValueError("Request body must be a JSON receipt record")
    return body


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", "3000")), threaded=True)
