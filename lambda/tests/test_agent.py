"""
Matching Agent Tests
====================

Tests for the bounded tool-calling loop: event ordering, the tool-call
cap, tool error recovery, guards on the final answer, and cancellation.

Usage:
    pytest tests/test_agent.py -v
"""

import asyncio
import json
from decimal import Decimal
from unittest.mock import Mock

import pytest

from models import EventType, MatchResult
from adjudicator import FALLBACK_CONFIDENCE, FALLBACK_REASON
from agent import STEP_BUDGET_REASON, MatchingAgent, ToolContext, execute_tool
from streaming import EventChannel

from helpers import fake_anthropic, make_receipt, text_response, tool_use_block, tool_use_response


def _final(candidate_id="task-1", confidence=88):
    return text_response(json.dumps({
        "candidateId": candidate_id,
        "confidence": confidence,
        "reasons": ["Semantic match: AWS migration", "Budget fit: 30% utilization"],
        "reasoning": "AWS spend inside the migration window",
    }))


def _run(agent, receipt):
    events = []
    result = asyncio.run(agent.run(receipt, EventChannel(events.append)))
    return result, events


def _types(events):
    return [e.type for e in events]


class TestAgentEventStream:
    """Tests for the ordering guarantees of the event stream."""

    def test_full_tool_sequence_matches(self, index):
        """Test that search, filter and rank followed by an answer produce a match."""
        client = fake_anthropic(
            tool_use_response(
                tool_use_block("search_candidates", {"query": "AWS cloud infrastructure", "limit": 5}, "t1"),
                text="Let me search for cloud work.",
            ),
            tool_use_response(tool_use_block("filter_by_date", {"candidateIds": ["task-1", "task-4"]}, "t2")),
            tool_use_response(tool_use_block("rank_by_budget", {"candidateIds": ["task-1"]}, "t3")),
            _final(),
        )

        result, events = _run(MatchingAgent(index, client=client), make_receipt())

        assert result.candidate.id == "task-1"
        assert result.utilization_percentage == Decimal("30")
        assert result.confidence_score == 88
        assert [tc.tool_name for tc in result.tool_calls] == [
            "search_candidates", "filter_by_date", "rank_by_budget",
        ]

        assert events[0].type == EventType.PROGRESS
        assert events[-1].type == EventType.COMPLETE
        assert events[-1].data["result"]["candidate"]["id"] == "task-1"
        assert EventType.REASONING in _types(events)

    def test_tool_call_precedes_its_result(self, index):
        """Test that every tool_result directly follows its tool_call."""
        client = fake_anthropic(
            tool_use_response(
                tool_use_block("search_candidates", {"query": "AWS"}, "t1"),
                tool_use_block("filter_by_date", {"candidateIds": ["task-1"]}, "t2"),
            ),
            _final(),
        )

        _, events = _run(MatchingAgent(index, client=client), make_receipt())

        for position, event in enumerate(events):
            if event.type == EventType.TOOL_RESULT:
                previous = events[position - 1]
                assert previous.type == EventType.TOOL_CALL
                assert previous.data["name"] == event.data["name"]

    def test_exactly_one_terminal_event_last(self, index):
        """Test that complete appears once, at the end."""
        client = fake_anthropic(_final())

        _, events = _run(MatchingAgent(index, client=client), make_receipt())

        terminal = [e for e in events if e.is_terminal]
        assert terminal == [events[-1]]

    def test_filter_tool_uses_receipt_date_not_model_input(self, index):
        """Test that the date filter applies the receipt's own date."""
        client = fake_anthropic(
            tool_use_response(tool_use_block("filter_by_date", {"candidateIds": ["task-1", "task-4"], "date": "2025-07-01"})),
            _final(),
        )

        _, events = _run(MatchingAgent(index, client=client), make_receipt())

        [tool_result] = [e for e in events if e.type == EventType.TOOL_RESULT]
        assert [c["id"] for c in tool_result.data["output"]["candidates"]] == ["task-1"]


class TestToolCallCap:
    """Tests for the hard step budget."""

    def test_exceeding_cap_returns_null_match(self, index):
        """Test that a model that keeps calling tools is stopped at the cap."""
        searches = [
            tool_use_response(tool_use_block("search_candidates", {"query": f"AWS {i}"}, f"t{i}"))
            for i in range(5)
        ]
        client = fake_anthropic(*searches)

        result, events = _run(MatchingAgent(index, client=client, max_tool_calls=2), make_receipt())

        assert result.candidate is None
        assert result.reasons == [STEP_BUDGET_REASON]
        assert result.tool_call_count == 2
        assert _types(events).count(EventType.TOOL_CALL) == 2
        assert events[-1].type == EventType.COMPLETE

    def test_multiple_calls_in_one_turn_count_against_cap(self, index):
        """Test that parallel tool calls are capped individually."""
        client = fake_anthropic(tool_use_response(*[
            tool_use_block("search_candidates", {"query": "AWS"}, f"t{i}") for i in range(4)
        ]))

        result, _ = _run(MatchingAgent(index, client=client, max_tool_calls=3), make_receipt())

        assert result.tool_call_count == 3
        assert result.reasons == [STEP_BUDGET_REASON]
        assert client.messages.create.await_count == 1


class TestToolErrors:
    """Tests for tool errors being fed back to the model."""

    def test_malformed_arguments_become_error_result(self, index):
        """Test that bad arguments produce an error payload and the loop continues."""
        client = fake_anthropic(
            tool_use_response(tool_use_block("filter_by_date", {"candidateIds": "task-1"}, "bad")),
            _final(),
        )

        result, events = _run(MatchingAgent(index, client=client), make_receipt())

        [tool_result] = [e for e in events if e.type == EventType.TOOL_RESULT]
        assert tool_result.data["output"]["success"] is False
        assert "candidateIds" in tool_result.data["output"]["error"]
        assert result.candidate.id == "task-1"
        assert result.tool_calls[0].success is False

        messages = client.messages.create.call_args_list[1].kwargs["messages"]
        [fed_back] = messages[-1]["content"]
        assert fed_back["tool_use_id"] == "bad"
        assert fed_back["is_error"] is True

    def test_unknown_tool_is_a_tool_error(self, index):
        """Test that an unknown tool name does not crash the loop."""
        client = fake_anthropic(
            tool_use_response(tool_use_block("delete_catalog", {}, "x")),
            _final(),
        )

        result, events = _run(MatchingAgent(index, client=client), make_receipt())

        [tool_result] = [e for e in events if e.type == EventType.TOOL_RESULT]
        assert "Unknown tool" in tool_result.data["output"]["error"]
        assert events[-1].type == EventType.COMPLETE
        assert result.succeeded

    def test_execute_tool_rejects_unknown_names(self, index):
        """Test the tool dispatcher directly."""
        context = ToolContext(receipt=make_receipt(), index=index, result=MatchResult())

        with pytest.raises(ValueError, match="Unknown tool"):
            asyncio.run(execute_tool("nope", {}, context))


class TestFinalAnswer:
    """Tests for checks applied to the model's final answer."""

    def test_unparseable_answer_falls_back_to_last_ranking(self, index):
        """Test that a malformed answer selects the top of the last budget ranking."""
        client = fake_anthropic(
            tool_use_response(tool_use_block("rank_by_budget", {"candidateIds": ["task-1", "task-3"]})),
            text_response("I'd go with the migration task"),
        )

        result, _ = _run(MatchingAgent(index, client=client), make_receipt())

        assert result.candidate.id == "task-3"
        assert result.confidence_score == FALLBACK_CONFIDENCE
        assert result.reasons[0] == FALLBACK_REASON
        assert result.degraded is True

    def test_fallback_skips_ranked_candidates_outside_receipt_window(self, index):
        """Test that a ranking made without the date filter can't select an expired task."""
        client = fake_anthropic(
            tool_use_response(tool_use_block("rank_by_budget", {"candidateIds": ["task-4", "task-1"]})),
            text_response("task-4 looks right {oops"),
        )
        receipt = make_receipt()

        result, _ = _run(MatchingAgent(index, client=client), receipt)

        assert result.candidate.id == "task-1"
        assert result.candidate.is_active_on(receipt.transaction_date)
        assert result.degraded is True

    def test_fallback_with_only_expired_ranking_is_null(self, index):
        client = fake_anthropic(
            tool_use_response(tool_use_block("rank_by_budget", {"candidateIds": ["task-4"]})),
            text_response("task-4 {oops"),
        )

        result, _ = _run(MatchingAgent(index, client=client), make_receipt())

        assert result.candidate is None

    def test_unparseable_answer_without_ranking_is_null(self, index):
        """Test that there is nothing to fall back to before any ranking."""
        client = fake_anthropic(text_response("no idea"))

        result, events = _run(MatchingAgent(index, client=client), make_receipt())

        assert result.candidate is None
        assert events[-1].type == EventType.COMPLETE

    def test_answer_outside_receipt_window_is_rejected(self, index):
        """Test that the model can't select an expired task."""
        client = fake_anthropic(_final(candidate_id="task-4"))

        result, _ = _run(MatchingAgent(index, client=client), make_receipt())

        assert result.candidate is None
        assert "task-4" in result.reasons[0]

    def test_answer_naming_unknown_candidate_degrades(self, index):
        """Test that an invented id is treated as a contract violation."""
        client = fake_anthropic(_final(candidate_id="task-999"))

        result, _ = _run(MatchingAgent(index, client=client), make_receipt())

        assert result.candidate is None
        assert "parse failure" in result.reasons[0]


class TestAgentFailures:
    """Tests for unrecovered errors and cancellation."""

    def test_api_error_emits_single_error_event(self, index):
        """Test that a provider failure ends the stream with one error event."""
        client = fake_anthropic(ConnectionError("provider down"))

        result, events = _run(MatchingAgent(index, client=client), make_receipt())

        assert not result.succeeded
        assert events[-1].type == EventType.ERROR
        assert "provider down" in events[-1].data["message"]
        assert EventType.COMPLETE not in _types(events)
        assert [e for e in events if e.is_terminal] == [events[-1]]

    def test_cancellation_stops_without_terminal_event(self, index):
        """Test that a cancelled run sends nothing further and re-raises."""
        events = []

        async def scenario():
            started = asyncio.Event()

            async def hang(**kwargs):
                started.set()
                await asyncio.sleep(10)

            client = Mock()
            client.messages.create = hang
            task = asyncio.create_task(
                MatchingAgent(index, client=client).run(make_receipt(), EventChannel(events.append))
            )
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert _types(events) == [EventType.PROGRESS]
