"""
Expense Parsing Agent

Turns a spoken or typed description ("I paid for dinner, Sam had the
ramen for 14, Alex and I split a pizza for 20") into a ParsedExpense
using Gemini.

CRITICAL BOUNDARIES:
- CAN: Extract description, payer, items, prices and who had what
- CANNOT: Resolve names to members (the draft validator does that)
- CANNOT: Persist anything; the user confirms every draft
- MUST: Report the speaker as "me"

The LLM is a TRANSLATOR, not an ORACLE.
It converts human language into a structured draft and nothing more.
"""

import json
import re
from decimal import Decimal, InvalidOperation
from typing import Optional

import google.generativeai as genai
from tenacity import retry, stop_after_attempt, wait_exponential

from splitledger.config import get_settings
from splitledger.models.draft import ParsedExpense, ParsedItem


SYSTEM_PROMPT = """You are an expense parser. The user will describe an expense in natural language.
Extract all information and return a JSON object with this exact shape:
{
  "description": string,
  "payer_name": string,
  "total_amount": number,
  "items": [
    {"name": string, "price": number, "claimants": [string]}
  ]
}
Rules:
- description is a concise name for the whole expense, max 40 characters
  (infer it when not stated: sushi + steak -> "Dinner", Uber + Lyft -> "Transport").
- Each distinct thing a person got, ordered or consumed becomes its own item.
- If several people share one item, list all of them in claimants; they split it equally.
- payer_name is whoever paid for everyone upfront.
- total_amount is the sum of item prices unless the user states a different total.
- Normalise spoken numbers: "ten fifty" -> 10.50.
- If the speaker refers to themselves ("I", "me", "myself"), always use the name "me".
- If no items are distinguishable, return a single item with the total price
  and all participants as claimants.
- Return ONLY valid JSON, no markdown, no extra text."""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

DESCRIPTION_MAX_LENGTH = 40


class ExpenseParseError(Exception):
    """The transcript could not be turned into an expense."""
    pass


def extract_expense_json(texts: list[str]) -> dict:
    """
    Find the first text part that contains a JSON object.

    Thinking models may put the answer in a later part, so every part
    is tried in order.

    Raises:
        ExpenseParseError: If no part holds a JSON object
    """
    for text in texts:
        match = _JSON_OBJECT.search(text or "")
        if not match:
            continue
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    raise ExpenseParseError("Could not understand the expense. Please try rephrasing.")


def _to_price(value) -> Optional[Decimal]:
    try:
        price = Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        return None
    return price if price >= 0 else None


def payload_to_expense(transcript: str, data: dict) -> ParsedExpense:
    """
    Build a ParsedExpense from the model's JSON.

    Items without a usable price are dropped. A missing total falls back
    to the sum of the items.
    """
    items = []
    for raw in data.get("items") or []:
        if not isinstance(raw, dict):
            continue
        price = _to_price(raw.get("price"))
        name = str(raw.get("name") or "").strip()
        if price is None or not name:
            continue
        claimants = [
            str(claimant).strip()
            for claimant in raw.get("claimants") or []
            if str(claimant).strip()
        ]
        items.append(ParsedItem(name=name[:200], price=price, claimants=claimants))

    total = _to_price(data.get("total_amount"))
    if total is None:
        total = sum((item.price for item in items), Decimal("0.00"))

    description = str(data.get("description") or "").strip() or "Expense"
    payer_name = str(data.get("payer_name") or "").strip() or None

    return ParsedExpense(
        transcript=transcript,
        description=description[:DESCRIPTION_MAX_LENGTH],
        payer_name=payer_name,
        total_amount=total,
        items=items,
    )


class GeminiExpenseParser:
    """
    Parses expense transcripts with Gemini.

    BOUNDARIES:
    - NEVER persists data
    - NEVER guesses member ids
    - ALWAYS returns a draft for the user to confirm
    """

    def __init__(self):
        self._settings = get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            system_instruction=SYSTEM_PROMPT,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, transcript: str) -> list[str]:
        response = await self._model.generate_content_async(transcript)
        return [
            part.text
            for part in response.parts
            if getattr(part, "text", None)
        ]

    async def parse_transcript(self, transcript: str) -> ParsedExpense:
        """
        Parse a transcript into a draft expense.

        Raises:
            ExpenseParseError: If the transcript is empty, Gemini fails,
                or the reply is not usable JSON
        """
        if not transcript or not transcript.strip():
            raise ExpenseParseError("No transcript provided.")

        try:
            texts = await self._generate(transcript.strip())
        except Exception as e:
            raise ExpenseParseError(f"Gemini error: {e}")

        return payload_to_expense(transcript.strip(), extract_expense_json(texts))
