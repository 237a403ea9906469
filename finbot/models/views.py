"""
Derived View Models

Read-only results of the aggregators in finbot.queries. Nothing here is
ever persisted; every field is recomputed from the store on demand.
"""

from typing import Optional

from pydantic import BaseModel, Field


class MonthlySummary(BaseModel):
    """Totals for one calendar month."""
    year: int
    month: int = Field(..., ge=1, le=12)
    income: float = 0.0
    expense: float = 0.0
    savings_change: float = Field(
        default=0.0,
        description="Deposits minus withdrawals"
    )
    balance: float = Field(
        default=0.0,
        description="income - expense - savings_change"
    )
    expense_delta_pct: Optional[float] = Field(
        default=None,
        description="Expense change vs previous month; None when that month had no expense"
    )


class CategoryShare(BaseModel):
    category_id: str
    total: float
    pct: float = Field(..., description="Share of the month total, 0..100")


class DailyTotal(BaseModel):
    day: int = Field(..., ge=1, le=31)
    total: float


class DebtOverview(BaseModel):
    """Display figures for a single debt."""
    debt_id: str
    paid_amount: float
    paid_pct: int
    monthly_payment: Optional[float] = None
    months_left: Optional[int] = None
