"""
Receipt Matching AI Agent
=========================

Implements the agentic loop using Anthropic SDK with tool_use. The
model writes its own search query and decides which of the matching
tools to call, within a hard cap on tool calls. Every step is pushed
to an event channel before the loop moves on.
"""

import asyncio
import json
import os
import time
from typing import Any, Callable, Optional

from aws_lambda_powertools import Logger

from models import (
    DegradedVerdict,
    MatchResult,
    PipelineEvent,
    RankedCandidate,
    ReceiptRecord,
    SearchHit,
)
from candidate_index import CandidateIndex
from adjudicator import default_match_reasons, parse_verdict, resolve_verdict
from filters import filter_by_date as filter_hits_by_date, rank_by_budget as rank_hits_by_budget
from streaming import EventChannel
from tools import search_candidates, filter_by_date, rank_by_budget
from prompts import build_agent_system_prompt, build_agent_prompt
from utils.anthropic_client import MODEL, TIMEOUT_SECONDS, extract_text, get_anthropic_client

logger = Logger()

MAX_TOKENS = 2048
MAX_TOOL_CALLS = int(os.environ.get("AGENT_MAX_TOOL_CALLS", "6"))

STEP_BUDGET_REASON = "adjudication exceeded step budget"


# Tool definitions for Anthropic API
MATCHING_TOOLS = [
    {
        "name": "search_candidates",
        "description": "Semantic search over the task catalog. Returns the most similar tasks with their id, title, description, budget, work period and similarity score.",
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Free-text description of what the expense was for"
                },
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of tasks to return (default 10, max 10)"
                }
            },
            "required": ["query"]
        }
    },
    {
        "name": "filter_by_date",
        "description": "Keep only the tasks whose work period contains the receipt date. Uses the receipt date automatically.",
        "input_schema": {
            "type": "object",
            "properties": {
                "candidateIds": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Task ids to check"
                }
            },
            "required": ["candidateIds"]
        }
    },
    {
        "name": "rank_by_budget",
        "description": "Drop tasks whose budget is smaller than the receipt total and rank the rest by budget utilization, tightest fit first. Uses the receipt total automatically.",
        "input_schema": {
            "type": "object",
            "properties": {
                "candidateIds": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Task ids to rank"
                }
            },
            "required": ["candidateIds"]
        }
    }
]


class ToolContext:
    """Context passed to tool functions."""

    def __init__(self, receipt: ReceiptRecord, index: CandidateIndex, result: MatchResult):
        self.receipt = receipt
        self.index = index
        self.result = result
        # Similarity scores seen in search results, by candidate id
        self.similarities: dict[str, float] = {}
        # Output of the most recent rank_by_budget call
        self.last_ranking: list[RankedCandidate] = []


async def execute_tool(tool_name: str, tool_input: dict, context: ToolContext) -> dict:
    """Execute a tool by name with given input."""
    tools_map: dict[str, Callable] = {
        "search_candidates": lambda inp: search_candidates(inp, context),
        "filter_by_date": lambda inp: filter_by_date(inp, context),
        "rank_by_budget": lambda inp: rank_by_budget(inp, context),
    }

    if tool_name not in tools_map:
        raise ValueError(f"Unknown tool: {tool_name}")
    if not isinstance(tool_input, dict):
        raise ValueError(f"Tool input for {tool_name} must be an object")

    return await tools_map[tool_name](tool_input)


class MatchingAgent:
    """Bounded tool-calling loop that matches one receipt per run."""

    def __init__(
        self,
        index: CandidateIndex,
        client: Optional[Any] = None,
        model: str = MODEL,
        max_tool_calls: int = MAX_TOOL_CALLS,
        timeout_seconds: float = TIMEOUT_SECONDS,
    ):
        self.index = index
        self._client = client
        self.model = model
        self.max_tool_calls = max_tool_calls
        self.timeout_seconds = timeout_seconds

    @property
    def client(self):
        if self._client is None:
            self._client = get_anthropic_client()
        return self._client

    async def run(self, receipt: ReceiptRecord, channel: EventChannel) -> MatchResult:
        """
        Match a receipt, streaming every step to ``channel``.

        The channel receives exactly one ``complete`` or ``error`` event,
        last. If the run is cancelled nothing further is sent and the
        cancellation propagates.
        """
        audit = MatchResult()
        context = ToolContext(receipt=receipt, index=self.index, result=audit)

        logger.info(f"Starting agent loop for {receipt.merchant} ${receipt.total} on {receipt.transaction_date}")
        try:
            await channel.send(PipelineEvent.progress(
                f"Matching receipt from {receipt.merchant} (${receipt.total:.2f}, {receipt.transaction_date.isoformat()})"
            ))
            result = await self._loop(receipt, channel, context)
        except asyncio.CancelledError:
            logger.info(f"Agent run cancelled after {audit.tool_call_count} tool calls")
            raise
        except Exception as e:
            logger.exception(f"Agent run failed: {e}")
            result = MatchResult.failed(str(e))
            result.tool_calls = list(audit.tool_calls)
            if not channel.closed:
                await channel.send(PipelineEvent.error(str(e)))
            return result

        result.tool_calls = list(audit.tool_calls)
        logger.info(f"Agent completed: {result.to_summary()} ({result.tool_call_count} tool calls)")
        await channel.send(PipelineEvent.complete(result.to_dict()))
        return result

    async def _loop(self, receipt: ReceiptRecord, channel: EventChannel, context: ToolContext) -> MatchResult:
        system_prompt = build_agent_system_prompt(self.max_tool_calls)
        messages: list[dict] = [{"role": "user", "content": build_agent_prompt(receipt)}]

        # Every turn but the last executes at least one tool call
        for turn in range(self.max_tool_calls + 1):
            start_time = time.time()
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=MAX_TOKENS,
                system=system_prompt,
                tools=MATCHING_TOOLS,
                messages=messages,
                timeout=self.timeout_seconds,
            )
            api_duration_ms = int((time.time() - start_time) * 1000)
            logger.info(f"Turn {turn + 1}: stop_reason={response.stop_reason} in {api_duration_ms}ms")

            tool_uses = [block for block in response.content if getattr(block, "type", None) == "tool_use"]
            text = extract_text(response)

            if response.stop_reason != "tool_use" or not tool_uses:
                await channel.send(PipelineEvent.progress("Evaluating final answer"))
                return await self._final_answer(text, receipt, channel, context)

            if text.strip():
                await channel.send(PipelineEvent.reasoning(text.strip()))

            tool_results = []
            for block in tool_uses:
                if context.result.tool_call_count >= self.max_tool_calls:
                    logger.warning(f"Tool call cap ({self.max_tool_calls}) reached, stopping")
                    return MatchResult.no_match(
                        STEP_BUDGET_REASON,
                        reasoning=f"Stopped after {self.max_tool_calls} tool calls without a final answer",
                    )
                tool_results.append(await self._run_tool(block, channel, context))

            # Add assistant response and tool results to conversation
            messages.append({"role": "assistant", "content": response.content})
            messages.append({"role": "user", "content": tool_results})

        logger.warning(f"Turn limit reached after {context.result.tool_call_count} tool calls")
        return MatchResult.no_match(STEP_BUDGET_REASON)

    async def _run_tool(self, block: Any, channel: EventChannel, context: ToolContext) -> dict:
        tool_name = block.name
        tool_input = block.input

        await channel.send(PipelineEvent.tool_call(tool_name, tool_input))
        logger.info(f"Executing tool: {tool_name}")

        tool_start = time.time()
        try:
            tool_output = await execute_tool(tool_name, tool_input, context)
            tool_success = True
            tool_error = None
        except Exception as e:
            logger.error(f"Tool {tool_name} failed: {e}")
            tool_output = {"success": False, "error": str(e)}
            tool_success = False
            tool_error = str(e)

        tool_duration = int((time.time() - tool_start) * 1000)

        # Record tool call
        context.result.add_tool_call(
            tool_name=tool_name,
            input_args=tool_input,
            output=tool_output,
            success=tool_success,
            error_message=tool_error,
            duration_ms=tool_duration
        )

        await channel.send(PipelineEvent.tool_result(tool_name, tool_output))

        # Format result for Claude
        return {
            "type": "tool_result",
            "tool_use_id": block.id,
            "content": json.dumps(tool_output, default=str),
            "is_error": not tool_success,
        }

    async def _final_answer(
        self,
        text: str,
        receipt: ReceiptRecord,
        channel: EventChannel,
        context: ToolContext,
    ) -> MatchResult:
        outcome = parse_verdict(text, [c.id for c in self.index.candidates])

        if isinstance(outcome, DegradedVerdict):
            logger.warning("Final answer unparseable, falling back to last budget ranking")
            # rank_by_budget never checks dates, so re-apply both filters to its output
            active = filter_hits_by_date(
                receipt.transaction_date,
                [SearchHit(candidate=r.candidate, similarity=r.similarity) for r in context.last_ranking],
            )
            return resolve_verdict(outcome, receipt, rank_hits_by_budget(receipt.total, active))

        verdict = outcome.verdict
        if verdict.reasoning:
            await channel.send(PipelineEvent.reasoning(verdict.reasoning))
        if verdict.candidate_id is None:
            return resolve_verdict(outcome, receipt, [])

        ranked = self._verify_candidate(verdict.candidate_id, receipt, context)
        if ranked is None:
            logger.warning(f"Agent chose {verdict.candidate_id}, which fails the date or budget check")
            return MatchResult.no_match(
                f"Chosen candidate {verdict.candidate_id} is not active on the receipt date "
                f"or has no budget for the receipt total",
                reasoning=verdict.reasoning or None,
            )

        return MatchResult.matched(
            ranked,
            confidence=verdict.confidence,
            reasons=verdict.reasons or default_match_reasons(receipt, ranked),
            reasoning=verdict.reasoning or "; ".join(verdict.reasons),
        )

    def _verify_candidate(
        self,
        candidate_id: str,
        receipt: ReceiptRecord,
        context: ToolContext,
    ) -> Optional[RankedCandidate]:
        """Apply the deterministic filters to the model's pick."""
        hit = SearchHit(
            candidate=self.index.get(candidate_id),
            similarity=context.similarities.get(candidate_id),
        )
        active = filter_hits_by_date(receipt.transaction_date, [hit])
        ranked = rank_hits_by_budget(receipt.total, active)
        return ranked[0] if ranked else None


async def run_matching_agent(
    receipt: ReceiptRecord,
    index: CandidateIndex,
    channel: EventChannel,
    client: Optional[Any] = None,
    max_tool_calls: int = MAX_TOOL_CALLS,
) -> MatchResult:
    """
    Run the AI agent to match a receipt.

    The agent autonomously:
    1. Searches the catalog with a query it writes itself
    2. Filters the results to tasks active on the receipt date
    3. Ranks the survivors by budget fit
    4. Picks the best task, or none, and explains why

    Args:
        receipt: Extracted receipt to match
        index: Shared candidate index
        channel: Event channel for progress
        client: Optional Anthropic client (defaults to the shared one)
        max_tool_calls: Hard cap on tool calls for this run

    Returns:
        MatchResult with full tool-call audit trail
    """
    agent = MatchingAgent(index, client=client, max_tool_calls=max_tool_calls)
    return await agent.run(receipt, channel)
