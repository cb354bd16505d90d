"""
Anthropic Client
================

Lazily initialized async Claude client shared by the adjudicator,
the matching agent and receipt extraction.
"""

import os

import anthropic

from .secrets import get_secret

# Model configuration
MODEL = os.environ.get("ADJUDICATOR_MODEL", "claude-sonnet-4-20250514")
TIMEOUT_SECONDS = float(os.environ.get("ADJUDICATOR_TIMEOUT_SECONDS", "30"))

# Anthropic client - lazily initialized
_client = None


def get_anthropic_client() -> anthropic.AsyncAnthropic:
    """Get or create Anthropic client with API key from Secrets Manager."""
    global _client
    if _client is None:
        api_key = get_secret("ANTHROPIC_API_KEY")
        # Transport retries stay off so the timeout bounds every call
        _client = anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=TIMEOUT_SECONDS,
            max_retries=0,
        )
    return _client


def extract_text(response) -> str:
    """Join the text blocks of a Claude response."""
    return "\n".join(
        block.text for block in response.content
        if getattr(block, "type", None) == "text"
    )
