"""
Test helpers: model factories, a deterministic embedder and fake
Anthropic responses.
"""

import hashlib
import re
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import numpy as np

from models import CandidateItem, ReceiptCategory, ReceiptRecord

DIMENSIONS = 64


class HashingEmbedder:
    """Bag-of-words embedder: every token hashes to one dimension."""

    def __init__(self):
        self.calls = []

    async def embed(self, texts):
        self.calls.append(list(texts))
        vectors = np.zeros((len(texts), DIMENSIONS), dtype=np.float32)
        for row, text in enumerate(texts):
            for token in re.findall(r"[a-z0-9]+", text.lower()):
                slot = int(hashlib.md5(token.encode()).hexdigest(), 16) % DIMENSIONS
                vectors[row, slot] += 1.0
        return vectors


class FailingEmbedder:
    """Embedder whose backend is unreachable."""

    async def embed(self, texts):
        raise ConnectionError("embedding backend unreachable")


def make_candidate(candidate_id, title, budget, start, end, description=None, assignee=None):
    return CandidateItem(
        id=candidate_id,
        title=title,
        budget=Decimal(str(budget)),
        window_start=date.fromisoformat(start),
        window_end=date.fromisoformat(end),
        description=description,
        assignee=assignee,
    )


def make_receipt(merchant="AWS", total=150, on="2025-10-28", category=ReceiptCategory.OFFICE, notes=None):
    return ReceiptRecord(
        merchant=merchant,
        transaction_date=date.fromisoformat(on),
        total=Decimal(str(total)),
        category=category,
        notes=notes,
    )


def text_block(text):
    return SimpleNamespace(type="text", text=text)


def tool_use_block(name, tool_input, block_id=None):
    return SimpleNamespace(type="tool_use", id=block_id or f"toolu_{name}", name=name, input=tool_input)


def text_response(text):
    """Claude response that ends the turn with text."""
    return Mock(content=[text_block(text)], stop_reason="end_turn")


def tool_use_response(*blocks, text=""):
    """Claude response asking for one or more tool calls."""
    content = ([text_block(text)] if text else []) + list(blocks)
    return Mock(content=content, stop_reason="tool_use")


def fake_anthropic(*responses):
    """Anthropic client whose messages.create returns the given responses in order."""
    client = Mock()
    client.messages.create = AsyncMock(side_effect=list(responses))
    return client
