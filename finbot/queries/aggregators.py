"""
Derived Aggregators

DESIGN DECISION: Every view is a PURE function of the records it is given.
Nothing here reads the store, caches, or mutates its inputs; callers pass
in whatever collections they already loaded.

Month filtering works on the literal "YYYY-MM" prefix of a transaction's
date string. No Date/datetime is constructed from the stored value, so a
record can never slide into the neighbouring month because of the
viewer's timezone.
"""

import calendar
import math
from datetime import date, datetime
from typing import Iterable, Optional, Union

from finbot.ledger.currency import CurrencyNormalizer
from finbot.models.ledger import (
    BillingPeriod,
    Category,
    Debt,
    Goal,
    Subscription,
    Transaction,
    TransactionType,
)
from finbot.models.views import (
    CategoryShare,
    DailyTotal,
    DebtOverview,
    MonthlySummary,
)


MonthRef = Union[date, datetime, str, tuple[int, int]]

UNKNOWN_CATEGORY_LABEL = "Unknown"


def round_half_up(value: float) -> int:
    """Round .5 away from zero like a spreadsheet does (not banker's rounding)."""
    return int(math.floor(value + 0.5)) if value >= 0 else -int(math.floor(-value + 0.5))


def month_of(ref: MonthRef) -> tuple[int, int]:
    """
    Literal (year, month) of a reference.

    Strings are read from their "YYYY-MM" prefix without parsing a date.
    """
    if isinstance(ref, tuple):
        year, month = ref
    elif isinstance(ref, (date, datetime)):
        year, month = ref.year, ref.month
    elif isinstance(ref, str) and len(ref) >= 7 and ref[4] == "-":
        year, month = int(ref[0:4]), int(ref[5:7])
    else:
        raise ValueError(f"Not a month reference: {ref!r}")

    if not 1 <= month <= 12:
        raise ValueError(f"Month out of range: {month}")
    return year, month


def previous_month(year: int, month: int) -> tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)


def transactions_in_month(transactions: Iterable[Transaction], ref: MonthRef) -> list[Transaction]:
    """Transactions whose literal year/month equal those of `ref`."""
    target = month_of(ref)
    return [tx for tx in transactions if tx.year_month == target]


def _sum(transactions: Iterable[Transaction], tx_type: TransactionType) -> float:
    return sum(tx.amount for tx in transactions if tx.type == tx_type)


def monthly_summary(transactions: Iterable[Transaction], ref: MonthRef) -> MonthlySummary:
    """
    Income, expense, savings movement and balance for one month.

    `expense_delta_pct` compares expense with the previous month and is
    None when the previous month had no expense.
    """
    transactions = list(transactions)
    year, month = month_of(ref)
    current = transactions_in_month(transactions, (year, month))
    previous = transactions_in_month(transactions, previous_month(year, month))

    income = _sum(current, TransactionType.INCOME)
    expense = _sum(current, TransactionType.EXPENSE)
    savings_change = (
        _sum(current, TransactionType.SAVING_DEPOSIT)
        - _sum(current, TransactionType.SAVING_WITHDRAWAL)
    )

    previous_expense = _sum(previous, TransactionType.EXPENSE)
    delta = None
    if previous_expense > 0:
        delta = (expense - previous_expense) / previous_expense * 100

    return MonthlySummary(
        year=year,
        month=month,
        income=income,
        expense=expense,
        savings_change=savings_change,
        balance=income - expense - savings_change,
        expense_delta_pct=delta,
    )


def category_breakdown(
    transactions: Iterable[Transaction],
    ref: MonthRef,
    kind: TransactionType = TransactionType.EXPENSE,
) -> list[CategoryShare]:
    """Per-category totals of one month, largest first."""
    totals: dict[str, float] = {}
    for tx in transactions_in_month(transactions, ref):
        if tx.type == kind:
            totals[tx.category_id] = totals.get(tx.category_id, 0.0) + tx.amount

    grand_total = sum(totals.values())
    shares = [
        CategoryShare(
            category_id=category_id,
            total=total,
            pct=(total / grand_total * 100) if grand_total > 0 else 0.0,
        )
        for category_id, total in totals.items()
    ]
    shares.sort(key=lambda s: (-s.total, s.category_id))
    return shares


def daily_totals(
    transactions: Iterable[Transaction],
    ref: MonthRef,
    kind: TransactionType = TransactionType.EXPENSE,
) -> list[DailyTotal]:
    """One entry per day of the month (zero days included)."""
    year, month = month_of(ref)
    days_in_month = calendar.monthrange(year, month)[1]
    totals = [0.0] * (days_in_month + 1)
    for tx in transactions_in_month(transactions, (year, month)):
        if tx.type == kind:
            totals[int(tx.date[8:10])] += tx.amount
    return [DailyTotal(day=day, total=totals[day]) for day in range(1, days_in_month + 1)]


def goal_progress(goal: Goal) -> int:
    """Percent funded, rounded. Over-funded goals go above 100."""
    if goal.target_amount <= 0:
        return 0
    return round_half_up(goal.current_amount / goal.target_amount * 100)


def annuity_payment(principal: float, annual_rate_pct: float, term_months: int) -> float:
    """Fixed monthly payment that repays `principal` over `term_months`."""
    if term_months <= 0:
        raise ValueError("term_months must be positive")
    r = annual_rate_pct / 100 / 12
    if r == 0:
        return principal / term_months
    growth = (1 + r) ** term_months
    return principal * r * growth / (growth - 1)


def debt_overview(debt: Debt) -> DebtOverview:
    """
    Display figures for a debt.

    An explicit `monthly_payment` wins; otherwise an annuity payment is
    derived from total, rate and term when the term is known.
    """
    paid = max(0.0, debt.total_amount - debt.remaining_amount)
    paid_pct = round_half_up(paid / debt.total_amount * 100) if debt.total_amount > 0 else 0

    payment = debt.monthly_payment
    if payment is None and debt.term_months:
        payment = annuity_payment(debt.total_amount, debt.interest_rate or 0.0, debt.term_months)

    months_left = None
    if payment and payment > 0:
        months_left = math.ceil(debt.remaining_amount / payment)

    return DebtOverview(
        debt_id=debt.id,
        paid_amount=paid,
        paid_pct=max(0, paid_pct),
        monthly_payment=payment,
        months_left=months_left,
    )


def subscriptions_monthly_cost(
    subscriptions: Iterable[Subscription],
    normalizer: Optional[CurrencyNormalizer] = None,
) -> float:
    """Monthly cost of active subscriptions in storage currency (yearly / 12)."""
    normalizer = normalizer or CurrencyNormalizer()
    total = 0.0
    for sub in subscriptions:
        if not sub.is_active:
            continue
        amount = normalizer.to_storage(sub.amount, sub.currency)
        if sub.billing_period == BillingPeriod.YEARLY:
            amount /= 12
        total += amount
    return total


def split_bill(amount: float, tip_pct: float = 0.0, people: int = 1) -> float:
    """Per-person share of a bill with a percentage tip on top."""
    if people < 1:
        raise ValueError("people must be at least 1")
    if amount < 0 or tip_pct < 0:
        raise ValueError("amount and tip must not be negative")
    return amount * (1 + tip_pct / 100) / people


def category_label(categories: Iterable[Category], category_id: str) -> str:
    """Name of a category, or "Unknown" for a dangling reference."""
    for category in categories:
        if category.id == category_id:
            return category.name
    return UNKNOWN_CATEGORY_LABEL
