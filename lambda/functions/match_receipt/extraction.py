"""
Receipt Extraction
==================

Uses Claude vision to turn an uploaded receipt image or PDF into a
ReceiptRecord, or a typed rejection when it can't.

Uploads are scoped to the request: ``uploaded_receipt`` deletes the
saved file when the block exits, whatever happened inside it.
"""

import base64
import json
import os
import tempfile
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from aws_lambda_powertools import Logger
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from models import ExtractionRejection, ExtractionStatus, ReceiptRecord
from prompts import build_extraction_prompt
from utils.anthropic_client import MODEL, TIMEOUT_SECONDS, extract_text, get_anthropic_client

logger = Logger()

MAX_TOKENS = 2000
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
UPLOAD_DIR = os.environ.get("UPLOAD_DIR") or tempfile.gettempdir()

MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
}

UNREADABLE_SUGGESTIONS = [
    "Ensure good lighting",
    "Hold camera steady",
    "Capture the entire receipt",
    "Avoid glare and shadows",
]

ExtractionOutcome = Union[ReceiptRecord, ExtractionRejection]


def get_media_type(path: Union[str, Path]) -> str:
    """Determine media type from file extension."""
    return MEDIA_TYPES.get(Path(path).suffix.lower(), "image/jpeg")


def parse_extraction(text: str) -> ExtractionOutcome:
    """
    Parse the vision model's JSON answer.

    Raises:
        ValueError: If the answer isn't valid JSON or a success answer
            carries an invalid receipt
    """
    data = json.loads(text.strip())
    if not isinstance(data, dict):
        raise ValueError("Extraction result must be a JSON object")

    status = data.get("status")
    if status == ExtractionStatus.SUCCESS.value:
        receipt = dict(data.get("receipt") or {})
        receipt.setdefault("notes", data.get("notes"))
        return ReceiptRecord.from_dict(receipt)

    if status == ExtractionStatus.PARTIAL.value:
        return ExtractionRejection(
            status=ExtractionStatus.PARTIAL,
            reason=data.get("message") or "Some receipt fields could not be read",
            suggestions=list(data.get("suggestions") or []),
            missing_fields=list(data.get("missingFields") or []),
        )

    if status == ExtractionStatus.NOT_A_RECEIPT.value:
        suggestion = data.get("suggestion")
        return ExtractionRejection(
            status=ExtractionStatus.NOT_A_RECEIPT,
            reason=data.get("reason") or "The upload does not look like a receipt",
            suggestions=[suggestion] if suggestion else [],
        )

    if status == ExtractionStatus.UNREADABLE.value:
        return ExtractionRejection(
            status=ExtractionStatus.UNREADABLE,
            reason=data.get("reason") or "The receipt could not be read",
            suggestions=list(data.get("suggestions") or UNREADABLE_SUGGESTIONS),
        )

    raise ValueError(f"Unknown extraction status: {status!r}")


async def extract_receipt(path: Union[str, Path], client: Optional[Any] = None) -> ExtractionOutcome:
    """
    Extract a receipt from an image or PDF file.

    Never raises; any failure becomes an ``unreadable`` rejection.

    Args:
        path: Local path to the uploaded file
        client: Optional Anthropic client (defaults to the shared one)

    Returns:
        ReceiptRecord on success, ExtractionRejection otherwise
    """
    path = Path(path)
    try:
        media_type = get_media_type(path)
        encoded = base64.standard_b64encode(path.read_bytes()).decode("utf-8")
        block_type = "document" if media_type == "application/pdf" else "image"

        client = client or get_anthropic_client()
        response = await client.messages.create(
            model=MODEL,
            max_tokens=MAX_TOKENS,
            temperature=0.0,
            messages=[{
                "role": "user",
                "content": [
                    {
                        "type": block_type,
                        "source": {"type": "base64", "media_type": media_type, "data": encoded},
                    },
                    {"type": "text", "text": build_extraction_prompt()},
                ],
            }],
            timeout=TIMEOUT_SECONDS,
        )
        outcome = parse_extraction(extract_text(response))
    except Exception as e:
        logger.error(f"Receipt extraction failed for {path.name}: {e}")
        return ExtractionRejection(
            status=ExtractionStatus.UNREADABLE,
            reason="Failed to process image. Please try again with a clearer photo.",
            suggestions=list(UNREADABLE_SUGGESTIONS),
        )

    if isinstance(outcome, ReceiptRecord):
        logger.info(f"Extracted receipt: {outcome.merchant} ${outcome.total} on {outcome.transaction_date}")
    else:
        logger.info(f"Extraction rejected: {outcome.status.value} - {outcome.reason}")
    return outcome


@contextmanager
def uploaded_receipt(upload: FileStorage, upload_dir: Optional[str] = None) -> Iterator[Path]:
    """
    Save an uploaded receipt for the duration of a block.

    Raises:
        ValueError: If the upload is missing or is not an image or PDF
    """
    if upload is None or not upload.filename:
        raise ValueError("No receipt image provided")

    suffix = Path(upload.filename).suffix.lower()
    if suffix not in MEDIA_TYPES or upload.mimetype not in MEDIA_TYPES.values():
        raise ValueError("Only image and PDF files are allowed")

    directory = Path(upload_dir or UPLOAD_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"receipt-{uuid.uuid4().hex}-{secure_filename(upload.filename)}"

    try:
        upload.save(str(path))
        logger.info(f"Saved upload {upload.filename} to {path.name}")
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Error deleting uploaded file {path}: {e}")
