"""
Task Matcher - Common Utilities
===============================

Shared utilities for all functions.
"""

from .secrets import get_secret, get_all_secrets
from .anthropic_client import get_anthropic_client, extract_text
from .embeddings import EmbeddingClient
from .catalog import load_catalog

__all__ = [
    "get_secret",
    "get_all_secrets",
    "get_anthropic_client",
    "extract_text",
    "EmbeddingClient",
    "load_catalog",
]
