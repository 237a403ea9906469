"""Derived views over ledger records."""

from finbot.queries.aggregators import (
    UNKNOWN_CATEGORY_LABEL,
    annuity_payment,
    category_breakdown,
    category_label,
    daily_totals,
    debt_overview,
    goal_progress,
    month_of,
    monthly_summary,
    split_bill,
    subscriptions_monthly_cost,
    transactions_in_month,
)

__all__ = [
    "UNKNOWN_CATEGORY_LABEL",
    "annuity_payment",
    "category_breakdown",
    "category_label",
    "daily_totals",
    "debt_overview",
    "goal_progress",
    "month_of",
    "monthly_summary",
    "split_bill",
    "subscriptions_monthly_cost",
    "transactions_in_month",
]
