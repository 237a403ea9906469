"""
AI Agents for FinBot Ledger

DESIGN DECISION: Every call to Gemini returns a best-effort GUESS.
Nothing an agent returns is ever persisted directly; the orchestrator
turns guesses into unsaved drafts that the user confirms or discards.

CRITICAL BOUNDARIES:

1. ADVISOR AGENT:
   - CAN: Comment on monthly figures it is given
   - CAN: Propose insights and savings goals
   - CANNOT: See records it was not handed

2. ENTRY AGENT:
   - CAN: Read an amount/date/vendor off a receipt photo
   - CAN: Turn a voice transcript into an amount/category/note
   - CAN: Suggest a category from free text
   - CANNOT: Invent category ids; anything unknown maps to "other"

The model is a TRANSLATOR, not a bookkeeper.

Failures (network, quota, unparseable output) raise AiResponseError.
There are no retries; see finbot.agents.tasks for how callers wrap
these coroutines into cancellable tasks.
"""

import json
from typing import Any, Iterable, Optional

import google.generativeai as genai
from pydantic import BaseModel, Field, ValidationError, field_validator

from finbot.config import get_settings
from finbot.models.catalog import OTHER_CATEGORY_ID
from finbot.models.ledger import (
    Category,
    CategoryType,
    TransactionType,
    literal_calendar_date,
)
from finbot.models.views import CategoryShare, MonthlySummary
from finbot.validation.validator import parse_amount


class AiResponseError(Exception):
    """The AI collaborator failed or answered with something unusable."""
    pass


# =============================================================================
# REQUEST / RESPONSE MODELS
# =============================================================================

class AdviceRequest(BaseModel):
    """Figures the advisor is allowed to see."""
    income: float
    expense: float
    balance: float
    top_category: str = Field(default="", description="Name of the largest expense category")
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$", description="YYYY-MM")


class _Guess(BaseModel):
    @field_validator("amount", mode="before", check_fields=False)
    @classmethod
    def read_amount(cls, v: Any) -> Optional[float]:
        if v is None or v == "":
            return None
        amount = parse_amount(v)
        if amount is None or amount < 0:
            return None
        return amount


class ReceiptGuess(_Guess):
    """What could be read off a receipt photo."""
    amount: Optional[float] = None
    currency: str = "RUB"
    date: Optional[str] = None
    vendor: Optional[str] = None
    category_id: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def read_date(cls, v: Any) -> Optional[str]:
        if not v:
            return None
        try:
            return literal_calendar_date(v)
        except ValueError:
            return None

    @field_validator("currency", mode="before")
    @classmethod
    def read_currency(cls, v: Any) -> str:
        return str(v).upper() if v else "RUB"


class VoiceEntryGuess(_Guess):
    """A transaction dictated by voice."""
    amount: Optional[float] = None
    type: TransactionType = TransactionType.EXPENSE
    category_id: Optional[str] = None
    note: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def read_type(cls, v: Any) -> Any:
        if isinstance(v, str) and v.upper() in TransactionType.__members__:
            return v.upper()
        return TransactionType.EXPENSE


class CategorySuggestion(BaseModel):
    """AI's suggestion for a transaction category."""
    category_id: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = ""


class Insight(BaseModel):
    title: str
    text: str


class GoalSuggestion(BaseModel):
    name: str
    target_amount: float = Field(..., gt=0)
    reasoning: str = ""


# =============================================================================
# HELPERS
# =============================================================================

def extract_json(text: str) -> dict:
    """
    Pull the first JSON object out of a model answer.

    Models like to wrap JSON in prose or code fences; everything outside
    the outermost braces is ignored.
    """
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise AiResponseError("No JSON object in model response")
    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError as e:
        raise AiResponseError(f"Malformed JSON in model response: {e}")
    if not isinstance(data, dict):
        raise AiResponseError("Model response is not a JSON object")
    return data


def _category_lines(categories: Iterable[Category], kinds: set[CategoryType]) -> str:
    return "\n".join(
        f"- {c.id}: {c.name}"
        for c in categories
        if c.type in kinds and not c.is_archived
    )


class GeminiAgent:
    """
    Shared Gemini plumbing.

    `model` is anything with an async `generate_content_async(contents)`
    returning an object with `.text`; tests pass a fake.
    """

    temperature: Optional[float] = None

    def __init__(self, model=None):
        if model is None:
            model = self._configure_genai()
        self._model = model

    def _configure_genai(self):
        """Configure Google Generative AI."""
        settings = get_settings().gemini
        genai.configure(api_key=settings.api_key)
        return genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": self.temperature if self.temperature is not None else settings.temperature,
                "max_output_tokens": settings.max_tokens,
            }
        )

    async def _generate(self, contents) -> str:
        try:
            response = await self._model.generate_content_async(contents)
            text = (response.text or "").strip()
        except Exception as e:
            raise AiResponseError(f"Gemini request failed: {e}") from e
        if not text:
            raise AiResponseError("Empty model response")
        return text

    async def _generate_json(self, contents) -> dict:
        return extract_json(await self._generate(contents))


# =============================================================================
# AGENTS
# =============================================================================

class AdvisorAgent(GeminiAgent):
    """
    Budget advice, insights and goal ideas.

    The agent only ever sees aggregates; no individual transactions are
    sent to the model.
    """

    temperature = 0.4

    async def generate_advice(self, request: AdviceRequest) -> str:
        prompt = f"""You are a friendly personal finance coach.

Month: {request.month}
Income: {request.income:.0f} RUB
Expenses: {request.expense:.0f} RUB
Balance: {request.balance:.0f} RUB
Largest expense category: {request.top_category or "none"}

Give one short, concrete piece of advice (2-3 sentences). Plain text only."""
        return await self._generate(prompt)

    async def generate_insights(
        self,
        summary: MonthlySummary,
        breakdown: list[CategoryShare],
        category_names: Optional[dict[str, str]] = None,
    ) -> list[Insight]:
        names = category_names or {}
        lines = "\n".join(
            f"- {names.get(s.category_id, s.category_id)}: {s.total:.0f} RUB ({s.pct:.0f}%)"
            for s in breakdown[:8]
        ) or "- no expenses"
        prompt = f"""Analyse this month of a personal budget.

Income: {summary.income:.0f} RUB, expenses: {summary.expense:.0f} RUB, saved: {summary.savings_change:.0f} RUB.
Expenses by category:
{lines}

Respond with ONLY a JSON object:
{{"insights": [{{"title": "short title", "text": "one sentence"}}]}}
Return at most 3 insights."""
        data = await self._generate_json(prompt)
        try:
            return [Insight.model_validate(item) for item in data.get("insights", [])]
        except (ValidationError, TypeError) as e:
            raise AiResponseError(f"Unusable insights: {e}")

    async def suggest_goals(
        self,
        summary: MonthlySummary,
        existing_goals: Iterable[str] = (),
    ) -> list[GoalSuggestion]:
        existing = ", ".join(existing_goals) or "none"
        prompt = f"""Suggest savings goals for a person with monthly income {summary.income:.0f} RUB
and monthly expenses {summary.expense:.0f} RUB. Existing goals: {existing}.

Respond with ONLY a JSON object:
{{"goals": [{{"name": "goal name", "target_amount": 100000, "reasoning": "why"}}]}}
Return at most 3 goals that are not already on the list."""
        data = await self._generate_json(prompt)
        try:
            return [GoalSuggestion.model_validate(item) for item in data.get("goals", [])]
        except (ValidationError, TypeError) as e:
            raise AiResponseError(f"Unusable goal suggestions: {e}")


class EntryAgent(GeminiAgent):
    """
    Helps fill in the transaction form.

    RESPONSIBILITIES:
    - Read receipts and voice transcripts into guesses
    - Suggest a category for free text

    BOUNDARIES:
    - NEVER persists data
    - Category ids outside the given list are replaced with "other"
    """

    temperature = 0.1

    async def parse_receipt(
        self,
        image_bytes: bytes,
        mime_type: str = "image/jpeg",
        categories: Iterable[Category] = (),
    ) -> ReceiptGuess:
        categories = list(categories)
        prompt = f"""Read this receipt.

Expense categories:
{_category_lines(categories, {CategoryType.EXPENSE, CategoryType.BOTH})}

Respond with ONLY a JSON object:
{{"amount": 123.45, "currency": "RUB", "date": "YYYY-MM-DD", "vendor": "shop name", "category_id": "id from the list"}}
Use null for anything you cannot read."""
        data = await self._generate_json([prompt, {"mime_type": mime_type, "data": image_bytes}])
        guess = self._validate(ReceiptGuess, data)
        guess.category_id = self._known_category(guess.category_id, categories)
        return guess

    async def parse_voice(
        self,
        transcript: str,
        categories: Iterable[Category] = (),
    ) -> VoiceEntryGuess:
        categories = list(categories)
        prompt = f"""Turn this spoken note into a transaction: "{transcript}"

Categories:
{_category_lines(categories, {CategoryType.INCOME, CategoryType.EXPENSE})}

Respond with ONLY a JSON object:
{{"amount": 500, "type": "EXPENSE", "category_id": "id from the list", "note": "short note"}}
type is INCOME or EXPENSE. Use null for the amount if none was said."""
        data = await self._generate_json(prompt)
        guess = self._validate(VoiceEntryGuess, data)
        guess.category_id = self._known_category(guess.category_id, categories)
        return guess

    async def suggest_category(
        self,
        text: str,
        categories: Iterable[Category],
    ) -> CategorySuggestion:
        categories = list(categories)
        prompt = f"""Pick the best category for this expense: "{text}"

Categories:
{_category_lines(categories, {CategoryType.EXPENSE, CategoryType.BOTH})}

Respond with ONLY a JSON object in this exact format:
{{"category_id": "id from the list", "confidence": 0.8, "reasoning": "brief explanation"}}

Be conservative - if unsure, use "{OTHER_CATEGORY_ID}"."""
        data = await self._generate_json(prompt)
        suggestion = self._validate(CategorySuggestion, data)
        known = self._known_category(suggestion.category_id, categories)
        if known != suggestion.category_id:
            return CategorySuggestion(
                category_id=OTHER_CATEGORY_ID,
                confidence=0.3,
                reasoning="Could not determine category - please select manually",
            )
        return suggestion

    @staticmethod
    def _validate(model: type[BaseModel], data: dict):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise AiResponseError(f"Unusable {model.__name__}: {e.error_count()} invalid fields")

    @staticmethod
    def _known_category(category_id: Optional[str], categories: list[Category]) -> Optional[str]:
        if category_id is None:
            return None
        if categories and category_id not in {c.id for c in categories}:
            return OTHER_CATEGORY_ID
        return category_id
