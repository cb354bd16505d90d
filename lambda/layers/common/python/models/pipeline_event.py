"""
Pipeline Event Model
====================

Typed progress events emitted by the matching agent over the push
channel. A stream always ends with exactly one ``complete`` or ``error``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    """Event types carried on the stream."""
    PROGRESS = "progress"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    REASONING = "reasoning"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_EVENTS = frozenset({EventType.COMPLETE, EventType.ERROR})


@dataclass(frozen=True)
class PipelineEvent:
    """A single event on the stream."""

    type: EventType
    data: dict = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    @classmethod
    def progress(cls, message: str) -> "PipelineEvent":
        return cls(EventType.PROGRESS, {"message": message})

    @classmethod
    def tool_call(cls, name: str, input_args: dict) -> "PipelineEvent":
        return cls(EventType.TOOL_CALL, {"name": name, "input": input_args})

    @classmethod
    def tool_result(cls, name: str, output: Any) -> "PipelineEvent":
        return cls(EventType.TOOL_RESULT, {"name": name, "output": output})

    @classmethod
    def reasoning(cls, text: str) -> "PipelineEvent":
        return cls(EventType.REASONING, {"text": text})

    @classmethod
    def complete(cls, result: dict) -> "PipelineEvent":
        return cls(EventType.COMPLETE, {"result": result})

    @classmethod
    def error(cls, message: str) -> "PipelineEvent":
        return cls(EventType.ERROR, {"message": message})
