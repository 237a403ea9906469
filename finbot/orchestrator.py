"""
Main Orchestrator for FinBot Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Ledger entries (validate → normalize currency → save → re-sweep achievements)
2. Reminders (define → schedule next run → deliver → record history)
3. Assistant (AI guess → unsaved draft → user confirms → ledger entry)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Invalid user input is a silent no-op (None) with a warning, never a crash
- Every stored amount is in the storage currency
- AI output is never persisted without an explicit confirm step
- Every money movement is audited

Control flow for every mutation: the collection is rewritten whole,
then the achievement evaluator sweeps the fresh data.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional, Union

import structlog
from pydantic import BaseModel, Field, ValidationError

from finbot.agents import (
    AdviceRequest,
    AdvisorAgent,
    CancellationToken,
    EntryAgent,
    Err,
    Ok,
    run_ai_task,
)
from finbot.agents.tasks import CANCELLED, Outcome
from finbot.audit import AuditLogger, create_correlation_id
from finbot.config import get_settings
from finbot.ledger.achievements import (
    apply_unlocks,
    build_snapshot,
    merge_catalog,
    re_evaluate,
)
from finbot.ledger.currency import CurrencyNormalizer, UnsupportedCurrencyError
from finbot.ledger.reminders import add_months, is_due, next_occurrence
from finbot.models.catalog import (
    BUILT_IN_CATEGORY_IDS,
    DEBT_CATEGORY_ID,
    OTHER_CATEGORY_ID,
    SALARY_CATEGORY_ID,
    SAVINGS_CATEGORY_ID,
    SUBSCRIPTION_CATEGORY_ID,
)
from finbot.models.ledger import (
    Achievement,
    AchievementState,
    BillingPeriod,
    Category,
    CategoryType,
    Collection,
    Debt,
    DebtType,
    DeliveryStatus,
    Goal,
    Reminder,
    ReminderHistoryItem,
    ReminderSettings,
    RepeatType,
    Subscription,
    SubscriptionLevel,
    Theme,
    Transaction,
    TransactionType,
    ValidationIssue,
    parse_calendar_date,
)
from finbot.queries import category_breakdown, category_label, monthly_summary
from finbot.services.delivery import DeliveryChannel, DeliveryError, LoggingDeliveryChannel
from finbot.services.storage import (
    BlobBackend,
    FileBackend,
    GoogleSheetsBackend,
    MemoryBackend,
    RecordStore,
)
from finbot.validation import EntryValidator


logger = structlog.get_logger()

SUBSCRIPTION_LEVEL_KEY = "subscription_level"
THEME_KEY = "theme"
ARTICLES_READ_KEY = "articles_read"
ACHIEVEMENT_STATE_KEY = "achievement_state"
REMINDER_SETTINGS_KEY = "reminder_settings"

SAVING_TYPES = (TransactionType.SAVING_DEPOSIT, TransactionType.SAVING_WITHDRAWAL)

AI_FAILURE_MESSAGE = "The assistant is unavailable right now. Please try again later."

Clock = Callable[[], datetime]


class LedgerFlow:
    """
    Orchestrates every change to the local ledger.

    Methods that take user input return None when the input is invalid;
    the reason is logged, nothing is written.
    """

    def __init__(
        self,
        store: RecordStore,
        normalizer: Optional[CurrencyNormalizer] = None,
        validator: Optional[EntryValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
        big_purchase_threshold: Optional[float] = None,
    ):
        app_settings = get_settings().app
        self._store = store
        self._normalizer = normalizer or CurrencyNormalizer(
            storage_currency=app_settings.storage_currency
        )
        self._validator = validator or EntryValidator(app_settings.max_entry_amount)
        self._audit_logger = audit_logger
        self._clock = clock or datetime.now
        self._big_purchase_threshold = (
            big_purchase_threshold
            if big_purchase_threshold is not None
            else app_settings.big_purchase_threshold
        )

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def normalizer(self) -> CurrencyNormalizer:
        return self._normalizer

    def _today(self) -> str:
        return self._clock().date().isoformat()

    def _reject(self, reason: str, issues: Optional[list[ValidationIssue]] = None) -> None:
        details = {"issues": EntryValidator.issues_summary(issues or [])}
        if self._audit_logger:
            self._audit_logger.log_entry_rejected(reason, details)
        else:
            logger.warning("entry_rejected", reason=reason, **details)

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    def categories(self) -> list[Category]:
        return self._store.get_all(Collection.CATEGORIES)

    def _fallback_category(self, tx_type: TransactionType, categories: list[Category]) -> str:
        if tx_type in SAVING_TYPES:
            return SAVINGS_CATEGORY_ID
        if tx_type == TransactionType.INCOME:
            for category in categories:
                if category.type == CategoryType.INCOME and not category.is_archived:
                    return category.id
            return SALARY_CATEGORY_ID
        return OTHER_CATEGORY_ID

    def save_category(self, category: Category) -> Optional[Category]:
        """
        Create or edit a category.

        Built-in categories can always be edited. New custom categories
        need a paid subscription level.
        """
        is_custom = category.id not in BUILT_IN_CATEGORY_IDS
        exists = self._store.get(Collection.CATEGORIES, category.id) is not None
        if is_custom and not exists and self.get_subscription_level() == SubscriptionLevel.FREE:
            self._reject("custom categories require a paid subscription level")
            return None
        return self._store.save(Collection.CATEGORIES, category)

    def delete_category(self, category_id: str) -> bool:
        """Remove a custom category. Built-ins can only be archived."""
        if category_id in BUILT_IN_CATEGORY_IDS:
            self._reject(f"built-in category {category_id} cannot be deleted")
            return False
        return self._store.delete(Collection.CATEGORIES, category_id)

    def category_name(self, category_id: str) -> str:
        return category_label(self.categories(), category_id)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def transactions(self) -> list[Transaction]:
        return self._store.get_all(Collection.TRANSACTIONS)

    def add_transaction(
        self,
        raw_amount,
        tx_type: Union[TransactionType, str],
        category_id: Optional[str] = None,
        date: Optional[str] = None,
        currency: Optional[str] = None,
        note: Optional[str] = None,
        goal_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> Optional[Transaction]:
        """
        Record a transaction typed in by the user.

        Returns:
            The saved transaction, or None if the input was invalid
        """
        tx = self._build_transaction(
            raw_amount, tx_type, category_id, date, currency, note, goal_id
        )
        if tx is None:
            return None
        self._record(tx, correlation_id)
        self.refresh_achievements()
        return tx

    def _build_transaction(
        self,
        raw_amount,
        tx_type,
        category_id=None,
        date=None,
        currency=None,
        note=None,
        goal_id=None,
    ) -> Optional[Transaction]:
        try:
            tx_type = TransactionType(tx_type)
        except ValueError:
            self._reject(f"unknown transaction type {tx_type!r}")
            return None

        categories = self.categories()
        category = next((c for c in categories if c.id == category_id), None)
        result = self._validator.validate_transaction(
            raw_amount, tx_type, category=category, entry_date=date,
            today=self._clock().date(),
        )
        if not result.is_valid:
            self._reject("invalid transaction", result.errors)
            return None
        for warning in result.warnings:
            logger.warning("entry_warning", field=warning.field, message=warning.message)

        currency = (currency or self._normalizer.storage_currency).upper()
        try:
            amount = self._normalizer.to_storage(result.amount, currency)
        except UnsupportedCurrencyError as e:
            self._reject(str(e))
            return None

        if tx_type in SAVING_TYPES:
            resolved_category = SAVINGS_CATEGORY_ID
        elif category is not None:
            resolved_category = category.id
        else:
            resolved_category = self._fallback_category(tx_type, categories)

        if goal_id and (tx_type not in SAVING_TYPES or self._store.get(Collection.GOALS, goal_id) is None):
            goal_id = None

        return Transaction(
            amount=amount,
            original_amount=result.amount if currency != self._normalizer.storage_currency else None,
            currency=currency,
            type=tx_type,
            category_id=resolved_category,
            date=date or self._today(),
            note=note or None,
            goal_id=goal_id,
            created_at=self._clock(),
        )

    def _record(self, tx: Transaction, correlation_id: Optional[str] = None) -> Transaction:
        """Persist a built transaction and apply its goal side effect."""
        self._store.save(Collection.TRANSACTIONS, tx)
        if tx.type == TransactionType.SAVING_DEPOSIT and tx.goal_id:
            self._adjust_goal(tx.goal_id, tx.amount)
        if self._audit_logger:
            self._audit_logger.log_transaction_saved(
                transaction_id=tx.id,
                tx_type=tx.type.value,
                amount=tx.amount,
                category_id=tx.category_id,
                correlation_id=correlation_id,
            )
        return tx

    def add_income_with_savings(
        self,
        raw_amount,
        percent: float,
        category_id: Optional[str] = None,
        date: Optional[str] = None,
        currency: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Optional[tuple[Transaction, Optional[Transaction]]]:
        """
        Record income and move `percent` of it into savings.

        Returns:
            (income, savings transfer or None when percent is 0)
        """
        if percent < 0 or percent > 100:
            self._reject(f"savings percent {percent} is outside 0..100")
            return None

        income = self._build_transaction(
            raw_amount, TransactionType.INCOME, category_id, date, currency, note
        )
        if income is None:
            return None

        correlation_id = create_correlation_id()
        self._record(income, correlation_id)

        transfer = None
        if percent > 0:
            transfer = Transaction(
                amount=income.amount * percent / 100,
                currency=self._normalizer.storage_currency,
                type=TransactionType.SAVING_DEPOSIT,
                category_id=SAVINGS_CATEGORY_ID,
                date=income.date,
                note=f"Auto-savings ({percent:g}%)",
                created_at=income.created_at,
            )
            self._record(transfer, correlation_id)

        self.refresh_achievements()
        return income, transfer

    def add_prepayment(
        self,
        raw_amount,
        project_total,
        client: str,
        category_id: Optional[str] = None,
        date: Optional[str] = None,
        due_date: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Optional[tuple[Transaction, Optional[Debt]]]:
        """
        Record a partial payment for a project.

        The rest of the project total becomes an OWE_ME debt for `client`.
        """
        total = self._validator.validate_amount(project_total)
        if not total.is_valid:
            self._reject("invalid project total", total.errors)
            return None

        income = self._build_transaction(
            raw_amount, TransactionType.INCOME, category_id, date,
            note=f"{note} (prepayment)" if note else "Project prepayment",
        )
        if income is None:
            return None

        correlation_id = create_correlation_id()
        self._record(income, correlation_id)

        debt = None
        remaining = total.amount - income.amount
        if remaining > 0 and client and client.strip():
            debt = Debt(
                type=DebtType.OWE_ME,
                title=client,
                total_amount=remaining,
                remaining_amount=remaining,
                start_date=income.date,
                next_payment_date=due_date,
            )
            self._store.save(Collection.DEBTS, debt)

        self.refresh_achievements()
        return income, debt

    def update_transaction(self, transaction: Transaction) -> bool:
        """
        Replace an existing transaction.

        The goal credit of the previous version is taken back before the
        new version is applied, so moving a deposit between goals or turning
        it into another type never counts the money twice.
        """
        previous = self._store.get(Collection.TRANSACTIONS, transaction.id)
        if previous is None:
            return False
        if transaction.amount <= 0:
            self._reject("amount must be greater than zero")
            return False

        if transaction.type not in SAVING_TYPES:
            transaction.goal_id = None
        transaction.created_at = previous.created_at

        self._store.update(Collection.TRANSACTIONS, transaction)

        goal_deltas: dict[str, float] = {}
        if previous.type == TransactionType.SAVING_DEPOSIT and previous.goal_id:
            goal_deltas[previous.goal_id] = -previous.amount
        if transaction.type == TransactionType.SAVING_DEPOSIT and transaction.goal_id:
            goal_id = transaction.goal_id
            goal_deltas[goal_id] = goal_deltas.get(goal_id, 0.0) + transaction.amount
        for goal_id, delta in goal_deltas.items():
            if delta:
                self._adjust_goal(goal_id, delta)

        if self._audit_logger:
            self._audit_logger.log_transaction_updated(transaction.id, previous.amount, transaction.amount)
        self.refresh_achievements()
        return True

    def delete_transaction(self, transaction_id: str) -> bool:
        deleted = self._store.delete(Collection.TRANSACTIONS, transaction_id)
        if deleted and self._audit_logger:
            self._audit_logger.log_transaction_deleted(transaction_id)
        return deleted

    # =========================================================================
    # GOALS
    # =========================================================================

    def save_goal(self, goal: Goal) -> Goal:
        self._store.save(Collection.GOALS, goal)
        self.refresh_achievements()
        return goal

    def delete_goal(self, goal_id: str) -> bool:
        return self._store.delete(Collection.GOALS, goal_id)

    def _adjust_goal(self, goal_id: str, amount: float) -> Optional[Goal]:
        goal = self._store.get(Collection.GOALS, goal_id)
        if goal is None:
            return None
        goal.current_amount += amount
        self._store.save(Collection.GOALS, goal)
        if self._audit_logger:
            self._audit_logger.log_goal_deposit(goal_id, amount, goal.current_amount)
        return goal

    def deposit_to_goal(self, goal_id: str, raw_amount) -> Optional[Goal]:
        """Add money to a goal. Deposits simply add up; no cap at the target."""
        result = self._validator.validate_amount(raw_amount)
        if not result.is_valid:
            self._reject("invalid deposit", result.errors)
            return None
        goal = self._adjust_goal(goal_id, result.amount)
        if goal is None:
            self._reject(f"goal {goal_id} not found")
            return None
        self.refresh_achievements()
        return goal

    # =========================================================================
    # DEBTS
    # =========================================================================

    def save_debt(self, debt: Debt) -> Debt:
        self._store.save(Collection.DEBTS, debt)
        self.refresh_achievements()
        return debt

    def delete_debt(self, debt_id: str) -> bool:
        deleted = self._store.delete(Collection.DEBTS, debt_id)
        if deleted:
            self.refresh_achievements()
        return deleted

    def pay_debt(self, debt_id: str, raw_amount) -> Optional[Transaction]:
        """
        Pay (or receive) part of a debt.

        Remaining never drops below zero; the correlated transaction
        records the amount that actually settled the debt. Fully repaid
        debts stay in the list with remaining 0.
        """
        result = self._validator.validate_amount(raw_amount)
        if not result.is_valid:
            self._reject("invalid payment", result.errors)
            return None

        debt = self._store.get(Collection.DEBTS, debt_id)
        if debt is None:
            self._reject(f"debt {debt_id} not found")
            return None
        if debt.is_settled:
            self._reject(f"debt {debt_id} is already settled")
            return None

        paid = min(result.amount, debt.remaining_amount)
        debt.remaining_amount = max(0.0, debt.remaining_amount - result.amount)
        self._store.save(Collection.DEBTS, debt)

        if debt.type.is_owed_by_user:
            tx_type, category_id = TransactionType.EXPENSE, DEBT_CATEGORY_ID
            note = f"Debt repayment: {debt.title}"
        else:
            tx_type = TransactionType.INCOME
            category_id = self._fallback_category(tx_type, self.categories())
            note = f"Payment from: {debt.title}"

        correlation_id = create_correlation_id()
        tx = Transaction(
            amount=paid,
            currency=self._normalizer.storage_currency,
            type=tx_type,
            category_id=category_id,
            date=self._today(),
            note=note,
            created_at=self._clock(),
        )
        self._record(tx, correlation_id)

        if self._audit_logger:
            self._audit_logger.log_debt_paid(
                debt_id=debt.id,
                paid=paid,
                remaining=debt.remaining_amount,
                correlation_id=correlation_id,
            )

        self.refresh_achievements()
        return tx

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    def save_subscription(self, subscription: Subscription) -> Optional[Subscription]:
        if not self._normalizer.supports(subscription.currency):
            self._reject(f"Unsupported currency: {subscription.currency}")
            return None
        self._store.save(Collection.SUBSCRIPTIONS, subscription)
        self.refresh_achievements()
        return subscription

    def delete_subscription(self, subscription_id: str) -> bool:
        return self._store.delete(Collection.SUBSCRIPTIONS, subscription_id)

    def renew_subscription(self, subscription_id: str) -> Optional[Transaction]:
        """
        Pay for the next period of a subscription.

        Creates an expense in storage currency and moves the next payment
        date one billing period ahead (day clamped to the month length).
        """
        subscription = self._store.get(Collection.SUBSCRIPTIONS, subscription_id)
        if subscription is None:
            self._reject(f"subscription {subscription_id} not found")
            return None

        tx = Transaction(
            amount=self._normalizer.to_storage(subscription.amount, subscription.currency),
            original_amount=(
                subscription.amount
                if subscription.currency != self._normalizer.storage_currency
                else None
            ),
            currency=subscription.currency,
            type=TransactionType.EXPENSE,
            category_id=subscription.category_id or SUBSCRIPTION_CATEGORY_ID,
            date=self._today(),
            note=f"Subscription: {subscription.name}",
            created_at=self._clock(),
        )
        self._record(tx)

        months = 1 if subscription.billing_period == BillingPeriod.MONTHLY else 12
        next_date = add_months(parse_calendar_date(subscription.next_payment_date), months)
        subscription.next_payment_date = next_date.isoformat()
        self._store.save(Collection.SUBSCRIPTIONS, subscription)

        if self._audit_logger:
            self._audit_logger.log_subscription_renewed(subscription.id, subscription.next_payment_date)

        self.refresh_achievements()
        return tx

    # =========================================================================
    # PROFILE & SETTINGS
    # =========================================================================

    def get_subscription_level(self) -> SubscriptionLevel:
        value = self._store.get_value(SUBSCRIPTION_LEVEL_KEY, SubscriptionLevel.FREE.value)
        try:
            return SubscriptionLevel(value)
        except ValueError:
            return SubscriptionLevel.FREE

    def set_subscription_level(self, level: Union[SubscriptionLevel, str]) -> SubscriptionLevel:
        """Raises ValueError for an unknown level."""
        level = SubscriptionLevel(level)
        self._store.set_value(SUBSCRIPTION_LEVEL_KEY, level.value)
        return level

    def get_theme(self) -> Theme:
        value = self._store.get_value(THEME_KEY, Theme.DARK.value)
        try:
            return Theme(value)
        except ValueError:
            return Theme.DARK

    def set_theme(self, theme: Union[Theme, str]) -> Theme:
        """Raises ValueError for an unknown theme."""
        theme = Theme(theme)
        self._store.set_value(THEME_KEY, theme.value)
        return theme

    def articles_read(self) -> int:
        return int(self._store.get_value(ARTICLES_READ_KEY, 0))

    def mark_article_read(self) -> int:
        count = self.articles_read() + 1
        self._store.set_value(ARTICLES_READ_KEY, count)
        self.refresh_achievements()
        return count

    # =========================================================================
    # ACHIEVEMENTS
    # =========================================================================

    def achievement_state(self) -> AchievementState:
        raw = self._store.get_value(ACHIEVEMENT_STATE_KEY)
        if not raw:
            return AchievementState()
        try:
            return AchievementState.model_validate(raw)
        except ValidationError:
            logger.warning("achievement_state_reset")
            return AchievementState()

    def achievements(self) -> list[Achievement]:
        """The full catalog with the stored unlock state merged in."""
        return merge_catalog(self._store.get_all(Collection.ACHIEVEMENTS))

    def refresh_achievements(self) -> list[Achievement]:
        """
        Re-sweep the ledger and persist any newly unlocked badges.

        Returns:
            The achievements unlocked by this sweep
        """
        snapshot = build_snapshot(
            transactions=self._store.get_all(Collection.TRANSACTIONS),
            goals=self._store.get_all(Collection.GOALS),
            debts=self._store.get_all(Collection.DEBTS),
            subscriptions=self._store.get_all(Collection.SUBSCRIPTIONS),
            articles_read=self.articles_read(),
            big_purchase_threshold=self._big_purchase_threshold,
        )
        merged = self.achievements()
        state = self.achievement_state()
        result = re_evaluate(
            snapshot,
            already_unlocked=[a.id for a in merged if a.is_unlocked],
            state=state,
        )

        if result.state != state:
            self._store.set_value(ACHIEVEMENT_STATE_KEY, result.state.model_dump())

        if not result.newly_unlocked:
            return []

        apply_unlocks(merged, result.newly_unlocked, now=self._clock())
        self._store.replace_all(
            Collection.ACHIEVEMENTS,
            [a for a in merged if a.is_unlocked],
        )

        unlocked = [a for a in merged if a.id in set(result.newly_unlocked)]
        for achievement in unlocked:
            if self._audit_logger:
                self._audit_logger.log_achievement_unlocked(achievement.id, achievement.title)
            else:
                logger.info("achievement_unlocked", achievement_id=achievement.id)
        return unlocked


class ReminderPage(BaseModel):
    items: list[Reminder]
    total: int


class ReminderFlow:
    """
    Reminder definitions, delivery and history.

    Nothing here runs on a timer. A caller (cron, bot loop) asks for
    `due_reminders` or calls `dispatch_due`; delivery itself is the
    DeliveryChannel's job.
    """

    def __init__(
        self,
        store: RecordStore,
        channel: Optional[DeliveryChannel] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._channel = channel or LoggingDeliveryChannel()
        self._audit_logger = audit_logger
        self._clock = clock

    def _now(self, zone) -> datetime:
        return self._clock() if self._clock else datetime.now(zone)

    def list_reminders(self, limit: int = 20, offset: int = 0) -> ReminderPage:
        items = self._store.get_all(Collection.REMINDERS)
        return ReminderPage(items=items[offset:offset + limit], total=len(items))

    def get_reminder(self, reminder_id: str) -> Optional[Reminder]:
        return self._store.get(Collection.REMINDERS, reminder_id)

    def create_reminder(self, reminder: Reminder) -> Reminder:
        """Store a new reminder with its first run computed."""
        reminder.next_run = next_occurrence(reminder, self._now(reminder.zone))
        return self._store.save(Collection.REMINDERS, reminder)

    def update_reminder(self, reminder_id: str, **changes) -> Optional[Reminder]:
        """
        Merge `changes` into a reminder and recompute its next run.

        Returns None if the reminder does not exist or the result is invalid.
        """
        existing = self.get_reminder(reminder_id)
        if existing is None:
            return None
        data = existing.model_dump()
        data.update(changes)
        data["id"] = reminder_id
        data.pop("next_run", None)
        try:
            updated = Reminder.model_validate(data)
        except ValidationError as e:
            logger.warning("reminder_update_rejected", reminder_id=reminder_id, error_count=e.error_count())
            return None
        updated.next_run = next_occurrence(updated, self._now(updated.zone))
        self._store.save(Collection.REMINDERS, updated)
        return updated

    def delete_reminder(self, reminder_id: str) -> bool:
        return self._store.delete(Collection.REMINDERS, reminder_id)

    def run_now(self, reminder_id: str) -> Optional[ReminderHistoryItem]:
        """Deliver a reminder immediately and record the attempt."""
        reminder = self.get_reminder(reminder_id)
        if reminder is None:
            return None
        return self._deliver(reminder, self._now(reminder.zone))

    def _deliver(self, reminder: Reminder, scheduled_at: datetime) -> ReminderHistoryItem:
        error = None
        try:
            self._channel.send(reminder)
            status = DeliveryStatus.SENT
        except DeliveryError as e:
            status = DeliveryStatus.FAILED
            error = str(e)

        item = ReminderHistoryItem(
            reminder_id=reminder.id,
            title=reminder.title,
            scheduled_at=scheduled_at,
            sent_at=self._now(reminder.zone),
            status=status,
            provider=self._channel.provider,
            error=error,
        )
        self._store.append(Collection.REMINDER_HISTORY, item)

        if self._audit_logger:
            self._audit_logger.log_reminder_delivered(
                reminder.id, status == DeliveryStatus.SENT, error
            )
        return item

    def history(self, limit: int = 20, offset: int = 0) -> list[ReminderHistoryItem]:
        """Delivery attempts, newest first."""
        items = self._store.get_all(Collection.REMINDER_HISTORY)
        items.sort(key=lambda h: h.sent_at, reverse=True)
        return items[offset:offset + limit]

    def due_reminders(self, now: Optional[datetime] = None) -> list[Reminder]:
        if not self.get_settings().enabled:
            return []
        due = []
        for reminder in self._store.get_all(Collection.REMINDERS):
            moment = now or self._now(reminder.zone)
            if is_due(reminder, moment):
                due.append(reminder)
        return due

    def dispatch_due(self, now: Optional[datetime] = None) -> list[ReminderHistoryItem]:
        """
        Deliver every due reminder and move it to its next run.

        One-shot reminders are deactivated after delivery.
        """
        delivered = []
        for reminder in self.due_reminders(now):
            fired_at = reminder.next_run or reminder.scheduled_at
            delivered.append(self._deliver(reminder, fired_at))
            if reminder.repeat.type == RepeatType.NONE:
                reminder.is_active = False
            else:
                reminder.next_run = next_occurrence(reminder, fired_at + timedelta(seconds=1))
            self._store.save(Collection.REMINDERS, reminder)
        return delivered

    def get_settings(self) -> ReminderSettings:
        raw = self._store.get_value(REMINDER_SETTINGS_KEY)
        if not raw:
            return ReminderSettings()
        try:
            return ReminderSettings.model_validate(raw)
        except ValidationError:
            logger.warning("reminder_settings_reset")
            return ReminderSettings()

    def update_settings(self, **changes) -> Optional[ReminderSettings]:
        data = self.get_settings().model_dump()
        data.update(changes)
        try:
            settings = ReminderSettings.model_validate(data)
        except ValidationError as e:
            logger.warning("reminder_settings_rejected", error_count=e.error_count())
            return None
        self._store.set_value(REMINDER_SETTINGS_KEY, settings.to_record())
        return settings


class TransactionDraft(BaseModel):
    """An AI-proposed transaction waiting for the user's confirmation."""
    amount: Optional[float] = None
    currency: str = "RUB"
    type: TransactionType = TransactionType.EXPENSE
    category_id: Optional[str] = None
    date: Optional[str] = None
    note: Optional[str] = None
    source: str = Field(..., description="receipt or voice")


class AssistantFlow:
    """
    Orchestrates the AI collaborator.

    Every call runs as a cancellable task and resolves to Ok | Err.
    Failures carry a generic user-facing message; the technical reason
    goes to the activity log. Nothing is saved until `confirm_draft`.
    """

    def __init__(
        self,
        ledger: LedgerFlow,
        advisor: Optional[AdvisorAgent] = None,
        entry_agent: Optional[EntryAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
        timeout: Optional[float] = None,
    ):
        self._ledger = ledger
        self._advisor = advisor
        self._entry_agent = entry_agent
        self._audit_logger = audit_logger
        self._timeout = timeout
        self._app_settings = get_settings().app

    @property
    def advisor(self) -> AdvisorAgent:
        if self._advisor is None:
            self._advisor = AdvisorAgent()
        return self._advisor

    @property
    def entry_agent(self) -> EntryAgent:
        if self._entry_agent is None:
            self._entry_agent = EntryAgent()
        return self._entry_agent

    async def _run(self, operation: str, make_call, token: Optional[CancellationToken]) -> Outcome:
        """Start `make_call()` as a task; setup errors count as failures too."""
        try:
            coro = make_call()
        except Exception as e:
            outcome = Err(reason=str(e) or type(e).__name__, error_type=type(e).__name__)
        else:
            outcome = await run_ai_task(
                coro, token=token, timeout=self._timeout, name=operation
            ).outcome()
        if isinstance(outcome, Err) and outcome.reason != CANCELLED:
            if self._audit_logger:
                self._audit_logger.log_ai_failure(operation, outcome.reason)
            else:
                logger.error("ai_request_failed", operation=operation, reason=outcome.reason)
            return Err(reason=AI_FAILURE_MESSAGE, error_type=outcome.error_type)
        return outcome

    def advice_request(self, ref) -> AdviceRequest:
        """Aggregate figures for one month, as the advisor gets to see them."""
        transactions = self._ledger.transactions()
        summary = monthly_summary(transactions, ref)
        breakdown = category_breakdown(transactions, ref)
        top = self._ledger.category_name(breakdown[0].category_id) if breakdown else ""
        return AdviceRequest(
            income=summary.income,
            expense=summary.expense,
            balance=summary.balance,
            top_category=top,
            month=f"{summary.year:04d}-{summary.month:02d}",
        )

    async def advice(self, ref, token: Optional[CancellationToken] = None) -> Outcome:
        return await self._run(
            "generate_advice",
            lambda: self.advisor.generate_advice(self.advice_request(ref)),
            token,
        )

    async def insights(self, ref, token: Optional[CancellationToken] = None) -> Outcome:
        transactions = self._ledger.transactions()
        names = {c.id: c.name for c in self._ledger.categories()}
        return await self._run(
            "generate_insights",
            lambda: self.advisor.generate_insights(
                monthly_summary(transactions, ref),
                category_breakdown(transactions, ref),
                names,
            ),
            token,
        )

    async def suggest_goals(self, ref, token: Optional[CancellationToken] = None) -> Outcome:
        existing = [g.name for g in self._ledger.store.get_all(Collection.GOALS)]
        return await self._run(
            "suggest_goals",
            lambda: self.advisor.suggest_goals(monthly_summary(self._ledger.transactions(), ref), existing),
            token,
        )

    async def suggest_category(self, text: str, token: Optional[CancellationToken] = None) -> Outcome:
        return await self._run(
            "suggest_category",
            lambda: self.entry_agent.suggest_category(text, self._ledger.categories()),
            token,
        )

    def _check_upload(self, image_bytes: bytes, mime_type: str) -> Optional[str]:
        """User-facing reason why a receipt image cannot be sent, or None."""
        if not image_bytes:
            return "The image is empty."
        if len(image_bytes) > self._app_settings.max_upload_size_bytes:
            return f"The image is larger than {self._app_settings.max_upload_size_mb} MB."
        fmt = mime_type.split("/")[-1].lower()
        if fmt not in self._app_settings.supported_formats_list:
            return f"Unsupported image format: {fmt}."
        return None

    async def draft_from_receipt(
        self,
        image_bytes: bytes,
        mime_type: str = "image/jpeg",
        token: Optional[CancellationToken] = None,
    ) -> Outcome:
        upload_error = self._check_upload(image_bytes, mime_type)
        if upload_error:
            if self._audit_logger:
                self._audit_logger.log_entry_rejected(upload_error, {"source": "receipt", "mime_type": mime_type})
            return Err(reason=upload_error, error_type="InvalidUpload")

        outcome = await self._run(
            "parse_receipt",
            lambda: self.entry_agent.parse_receipt(image_bytes, mime_type, self._ledger.categories()),
            token,
        )
        if isinstance(outcome, Ok):
            guess = outcome.value
            return Ok(value=TransactionDraft(
                amount=guess.amount,
                currency=guess.currency,
                type=TransactionType.EXPENSE,
                category_id=guess.category_id,
                date=guess.date,
                note=guess.vendor,
                source="receipt",
            ))
        return outcome

    async def draft_from_voice(self, transcript: str, token: Optional[CancellationToken] = None) -> Outcome:
        outcome = await self._run(
            "parse_voice",
            lambda: self.entry_agent.parse_voice(transcript, self._ledger.categories()),
            token,
        )
        if isinstance(outcome, Ok):
            guess = outcome.value
            return Ok(value=TransactionDraft(
                amount=guess.amount,
                type=guess.type,
                category_id=guess.category_id,
                note=guess.note,
                source="voice",
            ))
        return outcome

    def confirm_draft(self, draft: TransactionDraft) -> Optional[Transaction]:
        """The user accepted a draft: record it like a typed-in entry."""
        return self._ledger.add_transaction(
            raw_amount=draft.amount,
            tx_type=draft.type,
            category_id=draft.category_id,
            date=draft.date,
            currency=draft.currency,
            note=draft.note,
        )


class AppComponents(BaseModel):
    model_config = {"arbitrary_types_allowed": True}

    store: RecordStore
    audit_logger: AuditLogger
    ledger: LedgerFlow
    reminders: ReminderFlow
    assistant: AssistantFlow


def create_backend(kind: Optional[str] = None) -> BlobBackend:
    """Blob backend selected by FINBOT_STORAGE_BACKEND."""
    storage = get_settings().storage
    kind = kind or storage.backend
    if kind == "memory":
        return MemoryBackend()
    if kind == "sheets":
        return GoogleSheetsBackend()
    return FileBackend(storage.data_path)


def create_app_components(
    backend: Optional[BlobBackend] = None,
    channel: Optional[DeliveryChannel] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        backend: Blob backend to use. Defaults to the configured one.
        channel: Reminder delivery channel. Defaults to log-only delivery.
    """
    store = RecordStore(backend or create_backend())
    audit_logger = AuditLogger(store)
    store.attach_audit(audit_logger)

    ledger = LedgerFlow(store, audit_logger=audit_logger)
    reminders = ReminderFlow(store, channel=channel, audit_logger=audit_logger)
    assistant = AssistantFlow(ledger, audit_logger=audit_logger)

    return AppComponents(
        store=store,
        audit_logger=audit_logger,
        ledger=ledger,
        reminders=reminders,
        assistant=assistant,
    )
