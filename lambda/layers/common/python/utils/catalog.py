"""
Candidate Catalog Loader
========================

Loads the task catalog that receipts are matched against.
"""

import json
import os
from pathlib import Path

from aws_lambda_powertools import Logger

from models import CandidateItem

logger = Logger()

DEFAULT_CATALOG_PATH = (
    Path(__file__).resolve().parents[4] / "functions" / "match_receipt" / "data" / "tasks.json"
)


def load_catalog(path: str | os.PathLike | None = None) -> list[CandidateItem]:
    """
    Load catalog items from a JSON task list.

    Only tasks with a budget are expense-trackable. Rows with a missing
    or inverted date window are skipped with a warning, since the date
    filter treats an open window as an exclusion.

    Args:
        path: Catalog file (defaults to CATALOG_PATH or the bundled sample)

    Returns:
        Candidate items in file order
    """
    catalog_path = Path(path or os.environ.get("CATALOG_PATH") or DEFAULT_CATALOG_PATH)
    with catalog_path.open(encoding="utf-8") as f:
        rows = json.load(f)

    items = []
    for row in rows:
        if row.get("budget") is None:
            continue
        try:
            items.append(CandidateItem.from_dict(row))
        except ValueError as e:
            logger.warning(f"Skipping catalog row {row.get('id')}: {e}")

    logger.info(f"Loaded {len(items)} budgeted candidates from {catalog_path}")
    return items
