"""
Receipt Extraction Prompt
=========================

Prompt for turning a receipt image or PDF into structured data.
"""

from datetime import date


def build_extraction_prompt(today: date | None = None) -> str:
    """
    Build the receipt parsing prompt.

    Handles all response states: success, partial, not_a_receipt, unreadable.
    """
    today = today or date.today()

    return f"""Analyze this receipt image and extract structured data.

IMPORTANT RULES:
- If this is clearly a receipt, parse it and return status: "success"
- If image quality is poor but you can read some fields, return status: "partial" with what you found
- If this is not a receipt (e.g., a document, random image), return status: "not_a_receipt"
- If image is completely unreadable, return status: "unreadable" with suggestions

For successful/partial parsing:
- Return all amounts as numbers (no currency symbols)
- Date in ISO format (YYYY-MM-DD) - if year is missing, use {today.year}
- Categorize based on merchant type:
  * food: restaurants, cafes, grocery stores
  * retail: clothing, electronics, general stores
  * office: office supplies, business services, software and cloud services
  * travel: gas stations, airlines, hotels
  * entertainment: movies, events, recreation
  * other: anything else
- If handwritten, read carefully and note it in notes

For partial success:
- List which fields you couldn't read in missingFields
- Explain why in message

Current date: {today.isoformat()}

Respond with ONLY raw JSON, no markdown:
- Success: {{"status": "success", "receipt": {{"merchant": "...", "date": "YYYY-MM-DD", "total": 0.0, "category": "..."}}, "notes": "..."}}
- Partial: {{"status": "partial", "receipt": {{...}}, "missingFields": [...], "message": "...", "suggestions": [...]}}
- Not a receipt: {{"status": "not_a_receipt", "reason": "...", "suggestion": "..."}}
- Unreadable: {{"status": "unreadable", "reason": "...", "suggestions": [...]}}"""
