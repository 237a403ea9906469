"""
Tests for the AI agents, cancellable tasks and the assistant flow.

Gemini is replaced with a fake model; coroutines are driven with
asyncio.run.
"""

import asyncio
from types import SimpleNamespace

import pytest

from finbot.agents import (
    AdviceRequest,
    AdvisorAgent,
    AiResponseError,
    CancellationToken,
    EntryAgent,
    Err,
    Ok,
    extract_json,
    run_ai_task,
)
from finbot.agents.tasks import CANCELLED, TIMED_OUT
from finbot.audit import AuditLogger
from finbot.models.audit import AuditEventType
from finbot.models.catalog import DEFAULT_CATEGORIES
from finbot.models.ledger import TransactionType
from finbot.models.views import MonthlySummary
from finbot.orchestrator import AI_FAILURE_MESSAGE, AssistantFlow, LedgerFlow
from finbot.services.storage import MemoryBackend, RecordStore
from finbot.validation import EntryValidator


class FakeModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, text="", error=None, delay=0.0):
        self.text = text
        self.error = error
        self.delay = delay
        self.calls = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


def make_assistant(model, timeout=None):
    store = RecordStore(MemoryBackend())
    audit = AuditLogger(store)
    ledger = LedgerFlow(
        store,
        validator=EntryValidator(max_amount=100_000_000),
        audit_logger=audit,
        big_purchase_threshold=10_000,
    )
    assistant = AssistantFlow(
        ledger,
        advisor=AdvisorAgent(model=model),
        entry_agent=EntryAgent(model=model),
        audit_logger=audit,
        timeout=timeout,
    )
    return assistant, ledger, audit


class TestExtractJson:
    """Tests for pulling JSON out of model answers."""

    def test_code_fence(self):
        """Test JSON wrapped in a markdown fence."""
        assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_no_json(self):
        """Test an answer without any object."""
        with pytest.raises(AiResponseError):
            extract_json("Sorry, I cannot help")

    def test_malformed(self):
        """Test broken JSON."""
        with pytest.raises(AiResponseError):
            extract_json("{amount: }")


class TestAgents:
    """Tests for the agents against a fake model."""

    def test_advice_text(self):
        """Test that advice is returned as plain text."""
        model = FakeModel(text="  Spend less on cafes.  ")
        request = AdviceRequest(income=1000, expense=800, balance=200, top_category="Cafes", month="2024-03")
        assert asyncio.run(AdvisorAgent(model=model).generate_advice(request)) == "Spend less on cafes."
        assert "Cafes" in model.calls[0]

    def test_empty_answer_is_error(self):
        """Test that an empty answer counts as a failure."""
        advisor = AdvisorAgent(model=FakeModel(text="   "))
        with pytest.raises(AiResponseError):
            asyncio.run(advisor.suggest_goals(MonthlySummary(year=2024, month=3)))

    def test_insights(self):
        """Test parsing insights."""
        model = FakeModel(text='{"insights": [{"title": "Cafes", "text": "Cafes grew."}]}')
        insights = asyncio.run(
            AdvisorAgent(model=model).generate_insights(MonthlySummary(year=2024, month=3), [])
        )
        assert insights[0].title == "Cafes"

    def test_receipt_with_image_part(self):
        """Test that the receipt image is sent next to the prompt."""
        model = FakeModel(text='{"amount": "1 250,50", "currency": "usd", "date": "2024-03-10T12:00:00", '
                               '"vendor": "Shop", "category_id": "exp_food"}')
        guess = asyncio.run(EntryAgent(model=model).parse_receipt(b"img", "image/png", DEFAULT_CATEGORIES))
        assert guess.amount == 1250.5
        assert guess.currency == "USD"
        assert guess.date == "2024-03-10"
        assert guess.category_id == "exp_food"
        assert model.calls[0][1] == {"mime_type": "image/png", "data": b"img"}

    def test_unknown_category_becomes_other(self):
        """Test that invented category ids are not passed through."""
        model = FakeModel(text='{"category_id": "exp_yachts", "confidence": 0.9, "reasoning": "boat"}')
        suggestion = asyncio.run(EntryAgent(model=model).suggest_category("yacht fuel", DEFAULT_CATEGORIES))
        assert suggestion.category_id == "exp_other"
        assert suggestion.confidence == 0.3

    def test_voice_type(self):
        """Test that a lowercase type is understood."""
        model = FakeModel(text='{"amount": 500, "type": "income", "category_id": "inc_freelance", "note": "Logo"}')
        guess = asyncio.run(EntryAgent(model=model).parse_voice("got 500 for a logo", DEFAULT_CATEGORIES))
        assert guess.type == TransactionType.INCOME
        assert guess.amount == 500

    def test_model_error_wrapped(self):
        """Test that transport errors surface as AiResponseError."""
        model = FakeModel(error=RuntimeError("quota exceeded"))
        with pytest.raises(AiResponseError):
            asyncio.run(EntryAgent(model=model).parse_voice("coffee 200"))


class TestAiTasks:
    """Tests for cancellable task handles."""

    def test_ok(self):
        """Test that a finished call resolves to Ok."""
        async def scenario():
            async def answer():
                return 42
            return await run_ai_task(answer()).outcome()

        outcome = asyncio.run(scenario())
        assert isinstance(outcome, Ok)
        assert outcome.value == 42

    def test_failure(self):
        """Test that an exception resolves to Err."""
        async def scenario():
            async def broken():
                raise AiResponseError("bad answer")
            return await run_ai_task(broken()).outcome()

        outcome = asyncio.run(scenario())
        assert isinstance(outcome, Err)
        assert outcome.reason == "bad answer"
        assert outcome.error_type == "AiResponseError"

    def test_cancel_running(self):
        """Test that cancelling the token stops the running task."""
        async def scenario():
            token = CancellationToken()
            started = asyncio.Event()

            async def slow():
                started.set()
                await asyncio.sleep(10)

            task = run_ai_task(slow(), token=token)
            await started.wait()
            token.cancel()
            outcome = await task.outcome()
            return outcome, task.done()

        outcome, done = asyncio.run(scenario())
        assert outcome.reason == CANCELLED
        assert done is True

    def test_cancelled_token_cancels_new_tasks(self):
        """Test that tasks started after cancel never run."""
        async def scenario():
            token = CancellationToken()
            token.cancel()
            ran = []

            async def work():
                ran.append(True)

            outcome = await run_ai_task(work(), token=token).outcome()
            return outcome, ran

        outcome, ran = asyncio.run(scenario())
        assert outcome.reason == CANCELLED
        assert ran == []

    def test_timeout(self):
        """Test that a slow call times out."""
        async def scenario():
            return await run_ai_task(asyncio.sleep(10), timeout=0.01).outcome()

        assert asyncio.run(scenario()).reason == TIMED_OUT


class TestAssistantFlow:
    """Tests for the assistant orchestration."""

    def test_advice_ok(self):
        """Test a successful advice call."""
        assistant, _, _ = make_assistant(FakeModel(text="Save 10% of income."))
        outcome = asyncio.run(assistant.advice("2024-03"))
        assert outcome.ok is True
        assert outcome.value == "Save 10% of income."

    def test_failure_is_generic_and_audited(self):
        """Test that failures get a generic message and an audit entry."""
        assistant, _, audit = make_assistant(FakeModel(error=RuntimeError("503 from upstream")))
        outcome = asyncio.run(assistant.advice("2024-03"))
        assert outcome.ok is False
        assert outcome.reason == AI_FAILURE_MESSAGE
        events = audit.recent()
        assert events[0].event_type == AuditEventType.AI_REQUEST_FAILED
        assert "503" in events[0].error_message

    def test_timeout_is_failure(self):
        """Test that a timed out call is reported like any failure."""
        assistant, _, _ = make_assistant(FakeModel(text="late", delay=5), timeout=0.01)
        outcome = asyncio.run(assistant.advice("2024-03"))
        assert outcome.reason == AI_FAILURE_MESSAGE
        assert outcome.error_type == "TimeoutError"

    def test_cancelled_call(self):
        """Test that a cancelled call reports cancellation, not failure."""
        assistant, _, audit = make_assistant(FakeModel(text="late", delay=5))

        async def scenario():
            token = CancellationToken()
            call = asyncio.ensure_future(assistant.advice("2024-03", token=token))
            await asyncio.sleep(0.05)
            token.cancel()
            return await call

        outcome = asyncio.run(scenario())
        assert outcome.reason == CANCELLED
        assert audit.recent() == []

    def test_advice_request_figures(self):
        """Test the aggregates handed to the advisor."""
        assistant, ledger, _ = make_assistant(FakeModel())
        ledger.add_transaction(50_000, "INCOME", "inc_salary", date="2024-03-01")
        ledger.add_transaction(3_000, "EXPENSE", "exp_cafe", date="2024-03-02")
        ledger.add_transaction(1_000, "EXPENSE", "exp_food", date="2024-03-03")
        request = assistant.advice_request("2024-03")
        assert request.income == 50_000
        assert request.expense == 4_000
        assert request.top_category == "Cafes"
        assert request.month == "2024-03"

    def test_receipt_draft_not_saved_until_confirmed(self):
        """Test that a receipt guess becomes a draft and only confirm saves it."""
        model = FakeModel(text='{"amount": 12.5, "currency": "USD", "date": "2024-03-10", '
                               '"vendor": "Diner", "category_id": "exp_cafe"}')
        assistant, ledger, _ = make_assistant(model)

        outcome = asyncio.run(assistant.draft_from_receipt(b"jpeg-bytes"))
        assert outcome.ok is True
        draft = outcome.value
        assert draft.source == "receipt"
        assert draft.note == "Diner"
        assert ledger.transactions() == []

        tx = assistant.confirm_draft(draft)
        assert tx.amount == 1125
        assert tx.original_amount == 12.5
        assert tx.category_id == "exp_cafe"
        assert tx.date == "2024-03-10"

    def test_voice_draft(self):
        """Test a voice draft."""
        model = FakeModel(text='{"amount": 700, "type": "EXPENSE", "category_id": "exp_transport", "note": "Taxi"}')
        assistant, _, _ = make_assistant(model)
        draft = asyncio.run(assistant.draft_from_voice("taxi seven hundred")).value
        assert draft.amount == 700
        assert draft.category_id == "exp_transport"
        assert draft.source == "voice"

    def test_unreadable_amount_draft_cannot_be_confirmed(self):
        """Test that a draft without an amount is rejected on confirm."""
        model = FakeModel(text='{"amount": null, "type": "EXPENSE", "note": "something"}')
        assistant, ledger, _ = make_assistant(model)
        draft = asyncio.run(assistant.draft_from_voice("bought something")).value
        assert draft.amount is None
        assert assistant.confirm_draft(draft) is None
        assert ledger.transactions() == []

    def test_oversized_receipt_not_sent(self, monkeypatch):
        """Test that an image over the upload limit never reaches the model."""
        monkeypatch.setenv("MAX_UPLOAD_SIZE_MB", "1")
        model = FakeModel(text='{"amount": 1}')
        assistant, _, audit = make_assistant(model)

        outcome = asyncio.run(assistant.draft_from_receipt(b"x" * (1024 * 1024 + 1)))
        assert outcome.ok is False
        assert outcome.error_type == "InvalidUpload"
        assert model.calls == []
        assert audit.recent()[0].event_type == AuditEventType.ENTRY_REJECTED

    def test_unsupported_receipt_format(self):
        """Test that an unsupported mime type is refused."""
        model = FakeModel(text='{"amount": 1}')
        assistant, _, _ = make_assistant(model)
        outcome = asyncio.run(assistant.draft_from_receipt(b"gif-bytes", "image/gif"))
        assert outcome.reason == "Unsupported image format: gif."
        assert model.calls == []
