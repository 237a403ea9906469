"""
Audit Logger

DESIGN DECISION: Every significant ledger action is logged.
This provides:
1. Traceability of money movements
2. Debugging capability when a blob had to be reset
3. A visible activity history for the user

The audit logger:
- Always writes a structured local log line
- Optionally appends the event to the `activity` collection
- Never lets a logging failure break the ledger operation that caused it
"""

from typing import Optional
from uuid import uuid4

import structlog

from finbot.config import get_settings
from finbot.models.audit import AuditEvent, AuditEventBuilder
from finbot.models.ledger import Collection
from finbot.services.storage.interface import StorageError


# JSON lines on stdout, one per event
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Writes ledger activity to the structlog stream and, when a store is
    attached, to the `activity` collection the user can browse.
    """

    def __init__(self, store=None, max_events: Optional[int] = None):
        """
        Args:
            store: RecordStore receiving events; without one events are
                   only logged.
            max_events: How many of the newest events the store keeps.
                        Defaults to ACTIVITY_LOG_LIMIT.
        """
        self._store = store
        self._max_events = max_events or get_settings().app.activity_log_limit
        self._logger = structlog.get_logger()

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the store write succeeded (or no store configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._store is not None:
            try:
                events = self._store.get_all(Collection.ACTIVITY)
                events.append(event)
                self._store.replace_all(Collection.ACTIVITY, events[-self._max_events:])
                return True
            except StorageError as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=event.id,
                )
                return False

        return True

    def recent(self, limit: int = 50) -> list[AuditEvent]:
        """Most recent persisted events, newest first."""
        if self._store is None:
            return []
        events = self._store.get_all(Collection.ACTIVITY)
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

    def log_transaction_saved(
        self,
        transaction_id: str,
        tx_type: str,
        amount: float,
        category_id: str,
        correlation_id: Optional[str] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_saved(
            transaction_id=transaction_id,
            tx_type=tx_type,
            amount=amount,
            category_id=category_id,
            correlation_id=correlation_id,
        ))

    def log_transaction_deleted(self, transaction_id: str) -> None:
        self.log(AuditEventBuilder.transaction_deleted(transaction_id))

    def log_transaction_updated(self, transaction_id: str, previous_amount: float, amount: float) -> None:
        self.log(AuditEventBuilder.transaction_updated(transaction_id, previous_amount, amount))

    def log_goal_deposit(self, goal_id: str, amount: float, current_amount: float) -> None:
        self.log(AuditEventBuilder.goal_deposit(goal_id, amount, current_amount))

    def log_entry_rejected(self, reason: str, details: Optional[dict] = None) -> None:
        """Log a user entry that was dropped as invalid."""
        self.log(AuditEventBuilder.entry_rejected(reason, details))

    def log_debt_paid(
        self,
        debt_id: str,
        paid: float,
        remaining: float,
        correlation_id: Optional[str] = None,
    ) -> None:
        self.log(AuditEventBuilder.debt_paid(
            debt_id=debt_id,
            paid=paid,
            remaining=remaining,
            correlation_id=correlation_id,
        ))

    def log_subscription_renewed(self, subscription_id: str, next_payment_date: str) -> None:
        self.log(AuditEventBuilder.subscription_renewed(subscription_id, next_payment_date))

    def log_achievement_unlocked(self, achievement_id: str, title: str) -> None:
        self.log(AuditEventBuilder.achievement_unlocked(achievement_id, title))

    def log_reminder_delivered(
        self,
        reminder_id: str,
        sent: bool,
        error_message: Optional[str] = None,
    ) -> None:
        self.log(AuditEventBuilder.reminder_delivered(reminder_id, sent, error_message))

    def log_backup(self, keys: list[str], restore: bool = False) -> None:
        """Log a finished backup or restore."""
        self.log(AuditEventBuilder.backup_completed(keys, restore))

    def log_ai_failure(self, operation: str, error_message: str) -> None:
        """Log a failed call to the AI collaborator."""
        self.log(AuditEventBuilder.ai_request_failed(operation, error_message))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
        ))


def create_correlation_id() -> str:
    """
    Fresh id shared by every event of one user action.

    Use this at the start of a user action that writes several records
    (e.g. income plus its automatic savings transfer).
    """
    return str(uuid4())
