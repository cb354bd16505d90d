"""
Matcher Prompts
===============

Builds prompts for shortlist adjudication and for the matching agent.
"""

from models import ReceiptRecord, RankedCandidate

VERDICT_FORMAT = """{
  "candidateId": "task-26",
  "confidence": 85,
  "reasons": [
    "Semantic match: receipt from AWS matches 'Setup AWS cloud infrastructure'",
    "Budget fit: $127.43 of $150.00 budget (85% utilization)",
    "Date match: receipt date falls within the task work period"
  ],
  "reasoning": "Brief explanation of the decision"
}"""


def _receipt_details(receipt: ReceiptRecord) -> str:
    return f"""- Merchant: {receipt.merchant}
- Amount: ${receipt.total:.2f}
- Date: {receipt.transaction_date.isoformat()}
- Category: {receipt.category.value}
- Notes: {receipt.notes or 'None'}"""


def build_adjudication_prompt(receipt: ReceiptRecord, shortlist: list[RankedCandidate]) -> str:
    """Build the prompt asking the model to pick the best shortlisted candidate."""
    candidates = "\n".join(
        f"""
{i}. {ranked.candidate.title}
   - Candidate ID: {ranked.candidate.id}
   - Budget: ${ranked.candidate.budget:.2f} ({ranked.utilization_percentage:.2f}% utilization)
   - Description: {ranked.candidate.description or 'N/A'}
   - Period: {ranked.candidate.window_start.isoformat()} to {ranked.candidate.window_end.isoformat()}
   - Assignee: {ranked.candidate.assignee or 'Unassigned'}"""
        for i, ranked in enumerate(shortlist, start=1)
    )

    return f"""You are analyzing expense receipt matching results.

## Receipt Details
{_receipt_details(receipt)}

## Top Matching Tasks
Every task below is active on the receipt date and has budget for the amount.
{candidates}

Determine which task is the best match, how confident you are (0-100),
and the key reasons, strongest first. If none of them plausibly
explains this expense, use "candidateId": null and say why in reasons.

Respond with ONLY raw JSON in this exact format, no markdown:
{VERDICT_FORMAT}"""


def build_agent_system_prompt(max_tool_calls: int) -> str:
    """Build the system prompt for the matching agent."""
    return f"""You are a matching agent that attributes expense receipts to project tasks.

## Available Tools

1. `search_candidates` - Semantic search over the task catalog. You write the query;
   describe what the purchase was for rather than copying the merchant name.
2. `filter_by_date` - Keep only the given tasks that were active on the receipt date.
3. `rank_by_budget` - Drop the given tasks whose budget the receipt exceeds and rank
   the rest by budget utilization (tightest fit first).

## Rules
- Use the tools intelligently; you may not need all of them.
- Only recommend a task id returned by a tool.
- You have a budget of {max_tool_calls} tool calls. Be efficient and don't repeat calls.
- If a tool returns an error, correct the arguments or try another tool.

## Output Format

When done, respond with ONLY raw JSON in this exact format:
{VERDICT_FORMAT}

If no good match exists, use "candidateId": null and explain why in reasons."""


def build_agent_prompt(receipt: ReceiptRecord) -> str:
    """Build the user prompt for matching a specific receipt."""
    return f"""Find the best matching task for this expense receipt:

## Receipt Details
{_receipt_details(receipt)}

Begin matching."""
