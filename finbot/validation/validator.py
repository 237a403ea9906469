"""
Entry Validation

DESIGN DECISION: User input is checked BEFORE anything is written.
Invalid input (non-numeric amount, zero or negative amount, empty
required field) turns the ledger operation into a no-op; the caller gets
None back and a warning is logged with the collected issues.

Issues come in two severities:
- error:   the entry is dropped
- warning: the entry is saved, but something looks suspicious
           (absurd amount, date in the future, category of the wrong kind)
"""

import math
import re
from datetime import date, timedelta
from typing import Iterable, Optional, Union

from finbot.config import get_settings
from finbot.models.ledger import (
    Category,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    parse_calendar_date,
)


_SPACES = re.compile(r"[\s ]+")


def parse_amount(raw: Union[str, int, float, None]) -> Optional[float]:
    """
    Read an amount the way people type it.

    "1 250,50" and "1250.50" both give 1250.5. Returns None when the
    input is not a finite number.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = _SPACES.sub("", str(raw)).replace(",", ".")
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


class EntryValidator:
    """
    Validates what the user typed into an entry form.

    Only the sanity thresholds come from settings; everything else is
    plain checks on the values passed in.
    """

    def __init__(self, max_amount: Optional[float] = None):
        self._max_amount = (
            max_amount if max_amount is not None else get_settings().app.max_entry_amount
        )

    def validate_amount(self, raw_amount) -> ValidationResult:
        issues = []
        amount = parse_amount(raw_amount)

        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="not_a_number",
                message=f"Amount {raw_amount!r} is not a number",
                severity="error",
            ))
        elif amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))
        elif amount > self._max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount {amount:,.2f} is unusually large",
                severity="warning",
            ))

        return ValidationResult(
            is_valid=not any(i.severity == "error" for i in issues),
            amount=amount,
            issues=issues,
        )

    def validate_transaction(
        self,
        raw_amount,
        tx_type: TransactionType,
        category: Optional[Category] = None,
        entry_date: Optional[str] = None,
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Validate a transaction entry.

        A missing category is fine (the ledger falls back to "other"); a
        category of the wrong kind only produces a warning.
        """
        result = self.validate_amount(raw_amount)
        issues = list(result.issues)

        if entry_date is not None:
            try:
                parsed = parse_calendar_date(entry_date)
            except ValueError:
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="invalid_format",
                    message=f"Date {entry_date!r} is not a calendar date",
                    severity="error",
                ))
            else:
                today = today or date.today()
                if parsed > today + timedelta(days=1):
                    issues.append(ValidationIssue(
                        field="date",
                        issue_type="future_date",
                        message=f"Date {parsed.isoformat()} is in the future",
                        severity="warning",
                    ))

        if category is not None and tx_type in (TransactionType.INCOME, TransactionType.EXPENSE):
            if not category.accepts(tx_type):
                issues.append(ValidationIssue(
                    field="category_id",
                    issue_type="type_mismatch",
                    message=f"Category {category.name} is not a {tx_type.value.lower()} category",
                    severity="warning",
                ))

        return ValidationResult(
            is_valid=not any(i.severity == "error" for i in issues),
            amount=result.amount,
            issues=issues,
        )

    def validate_required(self, **fields) -> ValidationResult:
        """Every keyword must be a non-blank value."""
        issues = [
            ValidationIssue(
                field=name,
                issue_type="missing",
                message=f"{name} is required",
                severity="error",
            )
            for name, value in fields.items()
            if value is None or (isinstance(value, str) and not value.strip())
        ]
        return ValidationResult(is_valid=not issues, issues=issues)

    @staticmethod
    def issues_summary(issues: Iterable[ValidationIssue]) -> list[dict]:
        return [i.model_dump() for i in issues]
