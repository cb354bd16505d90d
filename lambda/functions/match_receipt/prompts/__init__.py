"""
Matching Prompts
================

Prompts for adjudication, the matching agent and receipt extraction.
"""

from .matcher import build_adjudication_prompt, build_agent_system_prompt, build_agent_prompt
from .extraction import build_extraction_prompt

__all__ = [
    "build_adjudication_prompt",
    "build_agent_system_prompt",
    "build_agent_prompt",
    "build_extraction_prompt",
]
