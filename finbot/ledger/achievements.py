"""
Achievement Evaluator

A stateless sweep over a snapshot of the ledger that unlocks badges when
numeric thresholds are crossed.

GUARANTEES:
- Monotonic: nothing here can ever set an unlocked badge back to locked
- Idempotent: re-running with the same inputs reports nothing new
- Thresholds compare with `>=`, so landing exactly on a tier unlocks it

The debt-free badge cannot be decided from the current data alone ("was
in debt, now is not"), so it reads and advances AchievementState, a
persisted one-way flag.
"""

from datetime import datetime
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from finbot.models.catalog import (
    ACH_BIG_BUY,
    ACH_DEBT_FREE,
    ACH_EARLY_BIRD,
    ACH_GOAL_SETTER,
    ACH_NIGHT_OWL,
    ACH_WEEKEND,
    ACHIEVEMENT_CATALOG,
    Metric,
    THRESHOLD_RULES,
)
from finbot.models.ledger import (
    Achievement,
    AchievementState,
    Debt,
    Goal,
    Subscription,
    Transaction,
    TransactionType,
)


EARLY_BIRD_HOUR = 9
NIGHT_OWL_HOUR = 23
BIG_PURCHASE_THRESHOLD = 10_000.0


class AchievementSnapshot(BaseModel):
    """Everything the evaluator looks at, reduced to plain numbers and flags."""
    total_saved: float = 0.0
    transaction_count: int = 0
    articles_read: int = 0
    active_subscriptions: int = 0
    total_income: float = 0.0
    has_owed_debt: bool = False
    goal_count: int = 0
    has_weekend_expense: bool = False
    has_big_expense: bool = False
    has_early_entry: bool = False
    has_late_entry: bool = False

    def metric(self, metric: Metric) -> float:
        return float(getattr(self, metric.value))


class EvaluationResult(BaseModel):
    newly_unlocked: list[str] = Field(default_factory=list)
    state: AchievementState


def build_snapshot(
    transactions: Iterable[Transaction],
    goals: Iterable[Goal],
    debts: Iterable[Debt],
    subscriptions: Iterable[Subscription],
    articles_read: int = 0,
    big_purchase_threshold: float = BIG_PURCHASE_THRESHOLD,
) -> AchievementSnapshot:
    """Reduce the ledger collections to an AchievementSnapshot."""
    transactions = list(transactions)
    goals = list(goals)

    snapshot = AchievementSnapshot(
        total_saved=sum(g.current_amount for g in goals),
        transaction_count=len(transactions),
        articles_read=articles_read,
        active_subscriptions=sum(1 for s in subscriptions if s.is_active),
        goal_count=len(goals),
        has_owed_debt=any(
            d.type.is_owed_by_user and d.remaining_amount > 0 for d in debts
        ),
    )

    for tx in transactions:
        if tx.type == TransactionType.INCOME:
            snapshot.total_income += tx.amount
        if tx.type == TransactionType.EXPENSE:
            if tx.calendar_date.weekday() >= 5:
                snapshot.has_weekend_expense = True
            if tx.amount >= big_purchase_threshold:
                snapshot.has_big_expense = True
        if tx.created_at is not None:
            if tx.created_at.hour < EARLY_BIRD_HOUR:
                snapshot.has_early_entry = True
            if tx.created_at.hour >= NIGHT_OWL_HOUR:
                snapshot.has_late_entry = True

    return snapshot


def re_evaluate(
    snapshot: AchievementSnapshot,
    already_unlocked: Iterable[str],
    state: Optional[AchievementState] = None,
) -> EvaluationResult:
    """
    Decide which badges unlock now.

    Args:
        snapshot: Current ledger figures
        already_unlocked: Ids unlocked by earlier sweeps (never re-emitted)
        state: Persisted ratchet from the previous sweep

    Returns:
        The ids that are newly unlocked, in catalog order, plus the state
        to persist for the next sweep.
    """
    state = state or AchievementState()
    unlocked = set(already_unlocked)
    earned: set[str] = set()

    for rule in THRESHOLD_RULES:
        if snapshot.metric(rule.metric) >= rule.threshold:
            earned.add(rule.achievement_id)

    # Only a debt seen on an earlier sweep counts
    if state.had_debts_ever and not snapshot.has_owed_debt:
        earned.add(ACH_DEBT_FREE)

    flags = {
        ACH_GOAL_SETTER: snapshot.goal_count >= 1,
        ACH_WEEKEND: snapshot.has_weekend_expense,
        ACH_BIG_BUY: snapshot.has_big_expense,
        ACH_EARLY_BIRD: snapshot.has_early_entry,
        ACH_NIGHT_OWL: snapshot.has_late_entry,
    }
    earned.update(ach_id for ach_id, hit in flags.items() if hit)

    newly = [a.id for a in ACHIEVEMENT_CATALOG if a.id in earned and a.id not in unlocked]
    next_state = AchievementState(
        had_debts_ever=state.had_debts_ever or snapshot.has_owed_debt
    )
    return EvaluationResult(newly_unlocked=newly, state=next_state)


def merge_catalog(stored: Iterable[Achievement]) -> list[Achievement]:
    """
    Overlay stored unlock state onto the static catalog.

    Stored entries for ids no longer in the catalog are ignored; stored
    titles or descriptions never override the catalog text.
    """
    unlocked = {a.id: a for a in stored if a.is_unlocked}
    merged = []
    for definition in ACHIEVEMENT_CATALOG:
        item = definition.model_copy()
        if definition.id in unlocked:
            item.is_unlocked = True
            item.unlocked_at = unlocked[definition.id].unlocked_at
        merged.append(item)
    return merged


def apply_unlocks(
    achievements: list[Achievement],
    newly_unlocked: Iterable[str],
    now: Optional[datetime] = None,
) -> list[Achievement]:
    """Mark ids as unlocked. Already unlocked badges keep their timestamp."""
    now = now or datetime.now()
    ids = set(newly_unlocked)
    for item in achievements:
        if item.id in ids and not item.is_unlocked:
            item.is_unlocked = True
            item.unlocked_at = now
    return achievements
