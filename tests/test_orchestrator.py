"""
Integration tests for LedgerFlow over in-memory storage.
"""

from datetime import datetime

import pytest

from finbot.audit import AuditLogger
from finbot.models.audit import AuditEventType
from finbot.models.catalog import ACH_BIG_BUY, ACH_DEBT_FREE, ACH_GOAL_SETTER
from finbot.models.ledger import (
    BillingPeriod,
    Category,
    CategoryType,
    Collection,
    Debt,
    DebtType,
    Goal,
    Subscription,
    SubscriptionLevel,
    Theme,
    TransactionType,
)
from finbot.orchestrator import LedgerFlow, create_app_components
from finbot.queries import goal_progress, monthly_summary
from finbot.services.storage import FileBackend, MemoryBackend, RecordStore
from finbot.validation import EntryValidator


NOW = datetime(2024, 3, 13, 12, 0)


@pytest.fixture
def store():
    return RecordStore(MemoryBackend())


@pytest.fixture
def audit(store):
    return AuditLogger(store)


@pytest.fixture
def ledger(store, audit):
    return LedgerFlow(
        store,
        validator=EntryValidator(max_amount=100_000_000),
        audit_logger=audit,
        clock=lambda: NOW,
        big_purchase_threshold=10_000,
    )


def unlocked_ids(ledger):
    return {a.id for a in ledger.achievements() if a.is_unlocked}


class TestTransactions:
    """Tests for recording transactions."""

    def test_add_expense(self, ledger):
        """Test a typed-in expense with defaults filled in."""
        tx = ledger.add_transaction("1 500,5", "EXPENSE", "exp_food")
        assert tx.amount == 1500.5
        assert tx.date == "2024-03-13"
        assert tx.created_at == NOW
        assert tx.original_amount is None
        assert [t.id for t in ledger.transactions()] == [tx.id]

    def test_invalid_amount_is_noop(self, ledger, audit):
        """Test that bad input writes nothing and is audited."""
        assert ledger.add_transaction("abc", "EXPENSE", "exp_food") is None
        assert ledger.add_transaction(0, "EXPENSE", "exp_food") is None
        assert ledger.transactions() == []
        assert audit.recent()[0].event_type == AuditEventType.ENTRY_REJECTED

    def test_unknown_type_is_noop(self, ledger):
        """Test that an unknown transaction type is rejected."""
        assert ledger.add_transaction(10, "GIFT", "exp_food") is None

    def test_foreign_currency_normalized(self, ledger):
        """Test that amounts are stored in RUB with the typed value kept."""
        tx = ledger.add_transaction(10, TransactionType.EXPENSE, "exp_cafe", currency="usd")
        assert tx.amount == 900
        assert tx.original_amount == 10
        assert tx.currency == "USD"

    def test_unsupported_currency(self, ledger):
        """Test that an unknown currency is rejected."""
        assert ledger.add_transaction(10, "EXPENSE", "exp_cafe", currency="GBP") is None

    def test_unknown_category_falls_back(self, ledger):
        """Test fallback categories for expenses and income."""
        expense = ledger.add_transaction(10, "EXPENSE", "no_such_category")
        income = ledger.add_transaction(10, "INCOME")
        assert expense.category_id == "exp_other"
        assert income.category_id == "inc_salary"

    def test_savings_use_savings_category(self, ledger):
        """Test that savings movements always book to the savings category."""
        goal = ledger.save_goal(Goal(name="Car", target_amount=1000))
        tx = ledger.add_transaction(300, "SAVING_DEPOSIT", "exp_food", goal_id=goal.id)
        assert tx.category_id == "sav_transfer"
        assert ledger.store.get(Collection.GOALS, goal.id).current_amount == 300

    def test_goal_dropped_for_expense(self, ledger):
        """Test that an expense never carries a goal link."""
        goal = ledger.save_goal(Goal(name="Car", target_amount=1000))
        tx = ledger.add_transaction(300, "EXPENSE", "exp_food", goal_id=goal.id)
        assert tx.goal_id is None

    def test_update_deposit_moves_goal_by_difference(self, ledger):
        """Test that editing a deposit adjusts its goal by the delta."""
        goal = ledger.save_goal(Goal(name="Car", target_amount=5000))
        tx = ledger.add_transaction(1000, "SAVING_DEPOSIT", goal_id=goal.id)
        tx.amount = 1500
        assert ledger.update_transaction(tx) is True
        assert ledger.store.get(Collection.GOALS, goal.id).current_amount == 1500

    def test_update_moves_deposit_between_goals(self, ledger):
        """Test that re-pointing a deposit takes the money out of the old goal."""
        car = ledger.save_goal(Goal(name="Car", target_amount=5000))
        bike = ledger.save_goal(Goal(name="Bike", target_amount=5000))
        tx = ledger.add_transaction(400, "SAVING_DEPOSIT", goal_id=car.id)
        tx.goal_id = bike.id
        assert ledger.update_transaction(tx) is True
        assert ledger.store.get(Collection.GOALS, car.id).current_amount == 0
        assert ledger.store.get(Collection.GOALS, bike.id).current_amount == 400

    def test_update_deposit_to_expense_reverses_goal(self, ledger):
        """Test that a deposit turned into an expense no longer counts toward its goal."""
        goal = ledger.save_goal(Goal(name="Car", target_amount=5000))
        tx = ledger.add_transaction(400, "SAVING_DEPOSIT", goal_id=goal.id)
        tx.type = TransactionType.EXPENSE
        tx.category_id = "exp_food"
        assert ledger.update_transaction(tx) is True
        assert ledger.store.get(Collection.GOALS, goal.id).current_amount == 0
        assert ledger.store.get(Collection.TRANSACTIONS, tx.id).goal_id is None

    def test_update_is_audited(self, ledger, audit):
        """Test that edits leave an update event."""
        tx = ledger.add_transaction(10, "EXPENSE", "exp_food")
        tx.amount = 25
        ledger.update_transaction(tx)
        updates = [e for e in audit.recent() if e.event_type == AuditEventType.TRANSACTION_UPDATED]
        assert updates[0].details == {"previous_amount": 10, "amount": 25}

    def test_undecodable_file_is_reset(self, tmp_path):
        """Test that a transactions file with broken bytes does not block new entries."""
        (tmp_path / "transactions.json").write_bytes(b'[{"id": "\xff\xfe"}]')
        ledger = LedgerFlow(
            RecordStore(FileBackend(tmp_path)),
            validator=EntryValidator(max_amount=100_000_000),
            clock=lambda: NOW,
        )
        tx = ledger.add_transaction(100, "EXPENSE", "exp_food")
        assert [t.id for t in ledger.transactions()] == [tx.id]

    def test_update_unknown(self, ledger):
        """Test updating a transaction that does not exist."""
        tx = ledger.add_transaction(10, "EXPENSE", "exp_food")
        ledger.delete_transaction(tx.id)
        assert ledger.update_transaction(tx) is False

    def test_delete(self, ledger, audit):
        """Test deleting a transaction is audited."""
        tx = ledger.add_transaction(10, "EXPENSE", "exp_food")
        assert ledger.delete_transaction(tx.id) is True
        assert ledger.delete_transaction(tx.id) is False
        assert any(e.event_type == AuditEventType.TRANSACTION_DELETED for e in audit.recent())


class TestCompositeEntries:
    """Tests for income-with-savings and prepayments."""

    def test_income_with_savings(self, ledger):
        """Test that a percentage of income moves into savings."""
        income, transfer = ledger.add_income_with_savings(10_000, 10)
        assert income.type == TransactionType.INCOME
        assert transfer.type == TransactionType.SAVING_DEPOSIT
        assert transfer.amount == 1000
        summary = monthly_summary(ledger.transactions(), "2024-03")
        assert summary.balance == 9000

    def test_income_without_savings(self, ledger):
        """Test that zero percent creates no transfer."""
        _, transfer = ledger.add_income_with_savings(10_000, 0)
        assert transfer is None

    def test_savings_percent_bounds(self, ledger):
        """Test that percentages above 100 are rejected."""
        assert ledger.add_income_with_savings(10_000, 150) is None
        assert ledger.transactions() == []

    def test_prepayment_creates_receivable(self, ledger):
        """Test that the unpaid part of a project becomes an OWE_ME debt."""
        income, debt = ledger.add_prepayment(30_000, 100_000, "ACME", due_date="2024-04-01")
        assert income.amount == 30_000
        assert debt.type == DebtType.OWE_ME
        assert debt.remaining_amount == 70_000
        assert debt.next_payment_date == "2024-04-01"

    def test_full_prepayment_has_no_debt(self, ledger):
        """Test that paying the whole project leaves nothing owed."""
        _, debt = ledger.add_prepayment(100_000, 100_000, "ACME")
        assert debt is None


class TestGoalsAndDebts:
    """Tests for goal deposits and debt payments."""

    def test_overfunded_goal(self, ledger):
        """Test that deposits may exceed the target."""
        goal = ledger.save_goal(Goal(name="Bike", target_amount=1000))
        updated = ledger.deposit_to_goal(goal.id, 1100)
        assert updated.current_amount == 1100
        assert goal_progress(updated) == 110

    def test_deposits_add_up(self, ledger):
        """Test that deposits of 400 and 700 leave 1100 in the goal."""
        goal = ledger.save_goal(Goal(name="Bike", target_amount=1000))
        ledger.deposit_to_goal(goal.id, 400)
        updated = ledger.deposit_to_goal(goal.id, 700)
        assert updated.current_amount == 1100
        assert goal_progress(updated) == 110

    def test_deposit_order_does_not_matter(self, ledger):
        """Test that two deposits give the same total in either order."""
        first = ledger.save_goal(Goal(name="A", target_amount=1000))
        second = ledger.save_goal(Goal(name="B", target_amount=1000))
        ledger.deposit_to_goal(first.id, 250.5)
        ledger.deposit_to_goal(first.id, 99.25)
        ledger.deposit_to_goal(second.id, 99.25)
        ledger.deposit_to_goal(second.id, 250.5)
        assert (
            ledger.store.get(Collection.GOALS, first.id).current_amount
            == ledger.store.get(Collection.GOALS, second.id).current_amount
            == 349.75
        )

    def test_deposit_is_audited(self, ledger, audit):
        """Test that goal deposits leave an activity event."""
        goal = ledger.save_goal(Goal(name="Bike", target_amount=1000))
        ledger.deposit_to_goal(goal.id, 300)
        deposits = [e for e in audit.recent() if e.event_type == AuditEventType.GOAL_DEPOSIT]
        assert deposits[0].entity_id == goal.id
        assert deposits[0].details["current_amount"] == 300

    def test_deposit_unknown_goal(self, ledger):
        """Test depositing into a missing goal."""
        assert ledger.deposit_to_goal("missing", 100) is None

    def test_partial_payment(self, ledger):
        """Test a partial repayment of money the user owes."""
        debt = ledger.save_debt(Debt(
            type=DebtType.I_OWE, title="Sam", total_amount=1000,
            remaining_amount=1000, start_date="2024-01-01",
        ))
        tx = ledger.pay_debt(debt.id, 400)
        assert tx.type == TransactionType.EXPENSE
        assert tx.category_id == "exp_debt"
        assert tx.amount == 400
        assert tx.note == "Debt repayment: Sam"
        assert ledger.store.get(Collection.DEBTS, debt.id).remaining_amount == 600

    def test_overpayment_clamps(self, ledger):
        """Test that paying more than remains records only what was owed."""
        debt = ledger.save_debt(Debt(
            type=DebtType.BANK_LOAN, title="Bank", total_amount=1000,
            remaining_amount=300, start_date="2024-01-01",
        ))
        tx = ledger.pay_debt(debt.id, 500)
        assert tx.amount == 300
        stored = ledger.store.get(Collection.DEBTS, debt.id)
        assert stored.remaining_amount == 0
        assert ledger.pay_debt(debt.id, 100) is None

    def test_payment_received(self, ledger):
        """Test money coming back from someone who owes the user."""
        debt = ledger.save_debt(Debt(
            type=DebtType.OWE_ME, title="Kim", total_amount=500,
            remaining_amount=500, start_date="2024-01-01",
        ))
        tx = ledger.pay_debt(debt.id, 200)
        assert tx.type == TransactionType.INCOME
        assert tx.category_id == "inc_salary"
        assert tx.note == "Payment from: Kim"

    def test_debt_free_after_repayment(self, ledger):
        """Test the debt-free badge once the last debt is repaid."""
        debt = ledger.save_debt(Debt(
            type=DebtType.I_OWE, title="Sam", total_amount=1000,
            remaining_amount=1000, start_date="2024-01-01",
        ))
        assert ACH_DEBT_FREE not in unlocked_ids(ledger)
        ledger.pay_debt(debt.id, 1000)
        assert ACH_DEBT_FREE in unlocked_ids(ledger)

    def test_delete_goal_and_debt(self, ledger):
        """Test removing goals and debts."""
        goal = ledger.save_goal(Goal(name="Bike", target_amount=1000))
        debt = ledger.save_debt(Debt(
            type=DebtType.I_OWE, title="Sam", total_amount=100,
            remaining_amount=100, start_date="2024-01-01",
        ))
        assert ledger.delete_goal(goal.id) is True
        assert ledger.delete_debt(debt.id) is True
        assert ledger.delete_debt(debt.id) is False
        assert ledger.store.get(Collection.GOALS, goal.id) is None


class TestSubscriptions:
    """Tests for subscription renewal."""

    def test_renew_monthly(self, ledger):
        """Test renewal expense and next date clamped to month end."""
        sub = ledger.save_subscription(Subscription(
            name="Music", amount=10, currency="USD", next_payment_date="2024-01-31",
        ))
        tx = ledger.renew_subscription(sub.id)
        assert tx.amount == 900
        assert tx.original_amount == 10
        assert tx.category_id == "exp_regular"
        assert tx.date == "2024-03-13"
        assert ledger.store.get(Collection.SUBSCRIPTIONS, sub.id).next_payment_date == "2024-02-29"

    def test_renew_yearly(self, ledger):
        """Test that yearly subscriptions move a full year."""
        sub = ledger.save_subscription(Subscription(
            name="Cloud", amount=1200, billing_period=BillingPeriod.YEARLY,
            next_payment_date="2024-02-29",
        ))
        ledger.renew_subscription(sub.id)
        assert ledger.store.get(Collection.SUBSCRIPTIONS, sub.id).next_payment_date == "2025-02-28"

    def test_unsupported_currency_rejected(self, ledger):
        """Test that subscriptions in unknown currencies are not saved."""
        sub = Subscription(name="x", amount=1, currency="GBP", next_payment_date="2024-01-01")
        assert ledger.save_subscription(sub) is None

    def test_delete_subscription(self, ledger):
        """Test that a deleted subscription can no longer be renewed."""
        sub = ledger.save_subscription(Subscription(name="Music", amount=10, next_payment_date="2024-01-31"))
        assert ledger.delete_subscription(sub.id) is True
        assert ledger.renew_subscription(sub.id) is None


class TestSettingsAndCategories:
    """Tests for profile settings and category rules."""

    def test_custom_category_needs_paid_level(self, ledger):
        """Test that FREE users cannot add custom categories."""
        pets = Category(id="exp_pets", name="Pets", type=CategoryType.EXPENSE)
        assert ledger.save_category(pets) is None
        ledger.set_subscription_level("PRO")
        assert ledger.save_category(pets) is not None
        assert ledger.category_name("exp_pets") == "Pets"

    def test_builtin_category_editable_not_deletable(self, ledger):
        """Test built-in category rules."""
        food = next(c for c in ledger.categories() if c.id == "exp_food")
        food.budget_limit = 20_000
        assert ledger.save_category(food) is not None
        assert ledger.delete_category("exp_food") is False

    def test_theme_and_level(self, ledger):
        """Test defaults and validation for theme and level."""
        assert ledger.get_theme() == Theme.DARK
        assert ledger.get_subscription_level() == SubscriptionLevel.FREE
        ledger.set_theme("LIGHT")
        assert ledger.get_theme() == Theme.LIGHT
        with pytest.raises(ValueError):
            ledger.set_theme("BLUE")
        with pytest.raises(ValueError):
            ledger.set_subscription_level("GOLD")


class TestAchievementSweep:
    """Tests for achievements unlocked by ledger activity."""

    def test_badges_stay_after_metric_drops(self, ledger):
        """Test that deleting what earned a badge does not take it back."""
        goal = ledger.save_goal(Goal(name="Bike", target_amount=1000))
        tx = ledger.add_transaction(10, "EXPENSE", "exp_food")
        assert {ACH_GOAL_SETTER, "ach_tx_1"} <= unlocked_ids(ledger)

        ledger.delete_goal(goal.id)
        ledger.delete_transaction(tx.id)
        ledger.refresh_achievements()
        assert {ACH_GOAL_SETTER, "ach_tx_1"} <= unlocked_ids(ledger)

    def test_first_transaction_unlocks(self, ledger):
        """Test that the first entry unlocks the first transaction badge."""
        ledger.add_transaction(10, "EXPENSE", "exp_food")
        badge = next(a for a in ledger.achievements() if a.id == "ach_tx_1")
        assert badge.is_unlocked is True
        assert badge.unlocked_at == NOW

    def test_big_purchase(self, ledger):
        """Test the big purchase badge."""
        ledger.add_transaction(10_000, "EXPENSE", "exp_shopping")
        assert ACH_BIG_BUY in unlocked_ids(ledger)

    def test_reading_articles(self, ledger):
        """Test that reading an article unlocks the first scholar badge."""
        assert ledger.mark_article_read() == 1
        assert "ach_read_1" in unlocked_ids(ledger)

    def test_refresh_is_idempotent(self, ledger):
        """Test that a second sweep unlocks nothing new."""
        ledger.add_transaction(10, "EXPENSE", "exp_food")
        assert ledger.refresh_achievements() == []


class TestAppComponents:
    """Tests for component wiring."""

    def test_create_app_components(self):
        """Test that the factory wires a working ledger."""
        components = create_app_components(backend=MemoryBackend())
        tx = components.ledger.add_transaction(10, "EXPENSE", "exp_food")
        assert tx is not None
        events = components.audit_logger.recent()
        assert any(e.event_type == AuditEventType.TRANSACTION_SAVED for e in events)
