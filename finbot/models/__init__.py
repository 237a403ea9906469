"""
Data Models Package

This package contains all Pydantic models used by the FinBot ledger.
Every record read from or written to a store passes through these schemas.
"""

from finbot.models.ledger import (
    Achievement,
    AchievementCategory,
    AchievementState,
    BillingPeriod,
    Category,
    CategoryType,
    Collection,
    Debt,
    DebtType,
    DeliveryStatus,
    Goal,
    Icon,
    LedgerModel,
    Reminder,
    ReminderChannel,
    ReminderHistoryItem,
    ReminderSettings,
    RepeatConfig,
    RepeatType,
    Subscription,
    SubscriptionLevel,
    Theme,
    Transaction,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    new_id,
    parse_calendar_date,
    resolve_icon,
)
from finbot.models.catalog import (
    ACHIEVEMENT_CATALOG,
    DEFAULT_CATEGORIES,
    Metric,
    THRESHOLD_RULES,
    ThresholdRule,
)
from finbot.models.views import (
    CategoryShare,
    DailyTotal,
    DebtOverview,
    MonthlySummary,
)
from finbot.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Achievement",
    "AchievementCategory",
    "AchievementState",
    "BillingPeriod",
    "Category",
    "CategoryType",
    "Collection",
    "Debt",
    "DebtType",
    "DeliveryStatus",
    "Goal",
    "Icon",
    "LedgerModel",
    "Reminder",
    "ReminderChannel",
    "ReminderHistoryItem",
    "ReminderSettings",
    "RepeatConfig",
    "RepeatType",
    "Subscription",
    "SubscriptionLevel",
    "Theme",
    "Transaction",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    "new_id",
    "parse_calendar_date",
    "resolve_icon",
    # Catalogs
    "ACHIEVEMENT_CATALOG",
    "DEFAULT_CATEGORIES",
    "Metric",
    "THRESHOLD_RULES",
    "ThresholdRule",
    # Derived views
    "CategoryShare",
    "DailyTotal",
    "DebtOverview",
    "MonthlySummary",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
