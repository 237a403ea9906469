"""Ledger domain logic: currency, achievements, reminder scheduling."""

from finbot.ledger.achievements import (
    AchievementSnapshot,
    EvaluationResult,
    apply_unlocks,
    build_snapshot,
    merge_catalog,
    re_evaluate,
)
from finbot.ledger.currency import (
    RATES,
    STORAGE_CURRENCY,
    CurrencyNormalizer,
    UnsupportedCurrencyError,
)
from finbot.ledger.reminders import add_months, is_due, next_occurrence

__all__ = [
    "AchievementSnapshot",
    "EvaluationResult",
    "apply_unlocks",
    "build_snapshot",
    "merge_catalog",
    "re_evaluate",
    "RATES",
    "STORAGE_CURRENCY",
    "CurrencyNormalizer",
    "UnsupportedCurrencyError",
    "add_months",
    "is_due",
    "next_occurrence",
]
