"""
Tests for derived views and currency conversion.
"""

import pytest

from finbot.ledger.currency import RATES, CurrencyNormalizer, UnsupportedCurrencyError
from finbot.models.catalog import DEFAULT_CATEGORIES
from finbot.models.ledger import (
    BillingPeriod,
    Debt,
    DebtType,
    Goal,
    Subscription,
    Transaction,
    TransactionType,
)
from finbot.queries import (
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


def tx(amount, tx_type, day, category_id="exp_food"):
    return Transaction(amount=amount, type=tx_type, category_id=category_id, date=day)


INCOME = TransactionType.INCOME
EXPENSE = TransactionType.EXPENSE
DEPOSIT = TransactionType.SAVING_DEPOSIT
WITHDRAWAL = TransactionType.SAVING_WITHDRAWAL


class TestMonthFiltering:
    """Tests for literal month filtering."""

    def test_month_boundaries_use_literal_date(self):
        """Test that the last and first day land in their own months."""
        records = [
            tx(10, EXPENSE, "2024-01-31"),
            tx(20, EXPENSE, "2024-02-01"),
            tx(30, EXPENSE, "2024-02-29T23:59:59+03:00"),
        ]
        february = transactions_in_month(records, "2024-02")
        assert [t.amount for t in february] == [20, 30]

    def test_month_of_accepts_tuple_and_string(self):
        """Test the supported month reference forms."""
        assert month_of((2024, 5)) == (2024, 5)
        assert month_of("2024-05-17") == (2024, 5)

    def test_month_of_rejects_garbage(self):
        """Test that an unreadable reference raises."""
        with pytest.raises(ValueError):
            month_of("May 2024")


class TestMonthlySummary:
    """Tests for monthly totals."""

    def test_totals_and_balance(self):
        """Test income, expense, savings change and balance."""
        records = [
            tx(50_000, INCOME, "2024-03-01", "inc_salary"),
            tx(12_000, EXPENSE, "2024-03-05"),
            tx(5_000, DEPOSIT, "2024-03-06", "sav_transfer"),
            tx(1_000, WITHDRAWAL, "2024-03-20", "sav_transfer"),
            tx(99_999, INCOME, "2024-04-01", "inc_salary"),
        ]
        summary = monthly_summary(records, (2024, 3))
        assert summary.income == 50_000
        assert summary.expense == 12_000
        assert summary.savings_change == 4_000
        assert summary.balance == 34_000

    def test_expense_delta(self):
        """Test expense change against the previous month."""
        records = [
            tx(1000, EXPENSE, "2023-12-10"),
            tx(1500, EXPENSE, "2024-01-10"),
        ]
        summary = monthly_summary(records, "2024-01")
        assert summary.expense_delta_pct == pytest.approx(50.0)

    def test_no_delta_without_previous_expense(self):
        """Test that the delta is absent when last month had no expense."""
        summary = monthly_summary([tx(1500, EXPENSE, "2024-01-10")], "2024-01")
        assert summary.expense_delta_pct is None

    def test_empty_month(self):
        """Test a month without records."""
        summary = monthly_summary([], (2024, 7))
        assert summary.income == 0
        assert summary.balance == 0


class TestBreakdowns:
    """Tests for per-category and per-day views."""

    def test_category_breakdown_sorted(self):
        """Test shares are largest first and sum to 100."""
        records = [
            tx(300, EXPENSE, "2024-03-01", "exp_cafe"),
            tx(100, EXPENSE, "2024-03-02", "exp_food"),
            tx(600, EXPENSE, "2024-03-03", "exp_food"),
            tx(5000, INCOME, "2024-03-03", "inc_salary"),
        ]
        shares = category_breakdown(records, "2024-03")
        assert [s.category_id for s in shares] == ["exp_food", "exp_cafe"]
        assert shares[0].total == 700
        assert shares[0].pct == pytest.approx(70.0)
        assert sum(s.pct for s in shares) == pytest.approx(100.0)

    def test_category_breakdown_income(self):
        """Test the breakdown of income categories."""
        records = [tx(5000, INCOME, "2024-03-03", "inc_salary")]
        shares = category_breakdown(records, "2024-03", kind=INCOME)
        assert shares[0].category_id == "inc_salary"

    def test_daily_totals_cover_whole_month(self):
        """Test one entry per day including empty days."""
        records = [tx(10, EXPENSE, "2024-02-29"), tx(5, EXPENSE, "2024-02-29")]
        days = daily_totals(records, "2024-02")
        assert len(days) == 29
        assert days[-1].total == 15
        assert days[0].total == 0


class TestGoalAndDebtViews:
    """Tests for goal progress and debt figures."""

    def test_goal_progress_rounds_half_up(self):
        """Test that 0.5 percent rounds up."""
        goal = Goal(name="x", target_amount=200, current_amount=1)
        assert goal_progress(goal) == 1

    def test_goal_progress_overfunded(self):
        """Test that over-funded goals go above 100 percent."""
        goal = Goal(name="x", target_amount=1000, current_amount=1100)
        assert goal_progress(goal) == 110

    def test_goal_progress_zero_target(self):
        """Test that a zero target reports zero."""
        assert goal_progress(Goal(name="x", target_amount=0, current_amount=50)) == 0

    def test_debt_overview_explicit_payment(self):
        """Test paid share and months left with a set monthly payment."""
        debt = Debt(
            type=DebtType.BANK_LOAN,
            title="Bank",
            total_amount=100_000,
            remaining_amount=25_000,
            monthly_payment=10_000,
            start_date="2024-01-01",
        )
        overview = debt_overview(debt)
        assert overview.paid_amount == 75_000
        assert overview.paid_pct == 75
        assert overview.months_left == 3

    def test_debt_overview_annuity(self):
        """Test that term and rate derive an annuity payment."""
        debt = Debt(
            type=DebtType.BANK_LOAN,
            title="Bank",
            total_amount=120_000,
            remaining_amount=120_000,
            interest_rate=12,
            term_months=12,
            start_date="2024-01-01",
        )
        overview = debt_overview(debt)
        assert overview.monthly_payment == pytest.approx(10_661.85, abs=0.05)
        assert overview.months_left == 12

    def test_annuity_without_interest(self):
        """Test that a zero rate splits the principal evenly."""
        assert annuity_payment(1200, 0, 12) == 100

    def test_debt_overview_without_payment(self):
        """Test that months left is unknown without a payment."""
        debt = Debt(
            type=DebtType.I_OWE,
            title="Sam",
            total_amount=100,
            remaining_amount=100,
            start_date="2024-01-01",
        )
        assert debt_overview(debt).months_left is None


class TestSmallHelpers:
    """Tests for subscription cost, bill split and labels."""

    def test_subscriptions_monthly_cost(self):
        """Test active monthly plus yearly over twelve, converted to RUB."""
        subs = [
            Subscription(name="Music", amount=10, currency="USD", next_payment_date="2024-05-01"),
            Subscription(
                name="Cloud",
                amount=1200,
                billing_period=BillingPeriod.YEARLY,
                next_payment_date="2024-05-01",
            ),
            Subscription(name="Old", amount=500, is_active=False, next_payment_date="2024-05-01"),
        ]
        assert subscriptions_monthly_cost(subs) == pytest.approx(1000.0)

    def test_split_bill(self):
        """Test tip and per-person share."""
        assert split_bill(1000, tip_pct=10, people=4) == pytest.approx(275.0)

    def test_split_bill_requires_people(self):
        """Test that zero people is rejected."""
        with pytest.raises(ValueError):
            split_bill(1000, people=0)

    def test_category_label_unknown(self):
        """Test the label for a dangling category id."""
        assert category_label(DEFAULT_CATEGORIES, "exp_food") == "Groceries"
        assert category_label(DEFAULT_CATEGORIES, "gone") == "Unknown"


class TestCurrencyNormalizer:
    """Tests for static-rate conversion."""

    def test_to_storage(self):
        """Test conversion into RUB."""
        assert CurrencyNormalizer().to_storage(100, "usd") == 9000

    def test_from_storage(self):
        """Test conversion out of RUB."""
        assert CurrencyNormalizer().from_storage(980, "EUR") == pytest.approx(10.0)

    @pytest.mark.parametrize("currency", sorted(RATES))
    @pytest.mark.parametrize("amount", [0.01, 12.5, 1_234_567.89])
    def test_round_trip(self, currency, amount):
        """Test that converting in and back out returns the entered amount."""
        normalizer = CurrencyNormalizer()
        stored = normalizer.to_storage(amount, currency)
        assert normalizer.from_storage(stored, currency) == pytest.approx(amount)

    def test_unsupported_currency(self):
        """Test that unknown codes raise."""
        with pytest.raises(UnsupportedCurrencyError):
            CurrencyNormalizer().to_storage(1, "XYZ")

    def test_format_display(self):
        """Test whole-unit rendering with a space separator."""
        normalizer = CurrencyNormalizer()
        assert normalizer.format_display(9000, "USD") == "100 $"
        assert normalizer.format_display(1_234_567) == "1 234 567 ₽"

    def test_rate_table_must_anchor_storage(self):
        """Test that the storage currency must be priced at 1."""
        with pytest.raises(ValueError):
            CurrencyNormalizer(rates={"RUB": 2.0})
