"""
Activity Models for FinBot Ledger

Every significant ledger action produces an activity event. This provides:
1. Traceability of money movements
2. Debugging information when a blob had to be reset
3. A record of which achievements unlocked and when

DESIGN DECISION: Activity events are append-only. They are never edited;
the only way they disappear is a full collection replace (e.g. a restore).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we record."""
    # Ledger entries
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    ENTRY_REJECTED = "entry_rejected"

    # Goals, debts, subscriptions
    GOAL_DEPOSIT = "goal_deposit"
    DEBT_PAID = "debt_paid"
    SUBSCRIPTION_RENEWED = "subscription_renewed"

    # Gamification
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"

    # Reminders
    REMINDER_SENT = "reminder_sent"
    REMINDER_FAILED = "reminder_failed"

    # Storage
    STORE_RESET = "store_reset"
    BACKUP_COMPLETED = "backup_completed"
    RESTORE_COMPLETED = "restore_completed"

    # AI collaborator
    AI_REQUEST_FAILED = "ai_request_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """How loudly an event is logged."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single activity event.

    Stored in the `activity` collection, so it carries an `id` like every
    other record.
    """

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Collection the entity lives in (e.g., 'transactions')"
    )
    entity_id: Optional[str] = None

    correlation_id: Optional[str] = Field(
        default=None,
        description="Groups events caused by one user action"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": self.id,
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": self.correlation_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_record(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class AuditEventBuilder:
    """
    Prebuilt events for the ledger actions that are audited.

    Usage:
        event = AuditEventBuilder.transaction_saved(tx_id, "EXPENSE", 500.0, "exp_food")
        event = AuditEventBuilder.achievement_unlocked("ach_tx_1", "Active user 1")
    """

    @staticmethod
    def transaction_saved(
        transaction_id: str,
        tx_type: str,
        amount: float,
        category_id: str,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transactions",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{tx_type} of {amount:.2f} saved to {category_id}",
            details={
                "type": tx_type,
                "amount": amount,
                "category_id": category_id,
            },
        )

    @staticmethod
    def transaction_updated(transaction_id: str, previous_amount: float, amount: float) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transactions",
            entity_id=transaction_id,
            description=f"Transaction changed from {previous_amount:.2f} to {amount:.2f}",
            details={"previous_amount": previous_amount, "amount": amount},
        )

    @staticmethod
    def goal_deposit(goal_id: str, amount: float, current_amount: float) -> AuditEvent:
        # amount is negative when an edited deposit is taken back
        return AuditEvent(
            event_type=AuditEventType.GOAL_DEPOSIT,
            entity_type="goals",
            entity_id=goal_id,
            description=f"Goal moved by {amount:.2f}, now {current_amount:.2f}",
            details={"amount": amount, "current_amount": current_amount},
        )

    @staticmethod
    def transaction_deleted(transaction_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transactions",
            entity_id=transaction_id,
            description="Transaction deleted",
        )

    @staticmethod
    def entry_rejected(reason: str, details: Optional[dict] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_REJECTED,
            severity=AuditSeverity.WARNING,
            description=f"Entry rejected: {reason}",
            details=details or {},
        )

    @staticmethod
    def debt_paid(
        debt_id: str,
        paid: float,
        remaining: float,
        correlation_id: Optional[str] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_PAID,
            entity_type="debts",
            entity_id=debt_id,
            correlation_id=correlation_id,
            description=f"Debt payment of {paid:.2f}, {remaining:.2f} left",
            details={
                "paid": paid,
                "remaining": remaining,
            },
        )

    @staticmethod
    def subscription_renewed(subscription_id: str, next_payment_date: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_RENEWED,
            entity_type="subscriptions",
            entity_id=subscription_id,
            description=f"Subscription renewed until {next_payment_date}",
            details={"next_payment_date": next_payment_date},
        )

    @staticmethod
    def achievement_unlocked(achievement_id: str, title: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACHIEVEMENT_UNLOCKED,
            entity_type="achievements",
            entity_id=achievement_id,
            description=f"Achievement unlocked: {title}",
        )

    @staticmethod
    def reminder_delivered(
        reminder_id: str,
        sent: bool,
        error_message: Optional[str] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_SENT if sent else AuditEventType.REMINDER_FAILED,
            severity=AuditSeverity.INFO if sent else AuditSeverity.WARNING,
            entity_type="reminders",
            entity_id=reminder_id,
            description="Reminder delivered" if sent else "Reminder delivery failed",
            error_message=error_message,
        )

    @staticmethod
    def store_reset(collection: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_RESET,
            severity=AuditSeverity.WARNING,
            entity_type=collection,
            description=f"Unreadable {collection} blob reset to defaults",
            error_message=error_message,
        )

    @staticmethod
    def backup_completed(keys: list[str], restore: bool = False) -> AuditEvent:
        action = "Restore" if restore else "Backup"
        return AuditEvent(
            event_type=AuditEventType.RESTORE_COMPLETED if restore else AuditEventType.BACKUP_COMPLETED,
            description=f"{action} of {len(keys)} blobs completed",
            details={"keys": keys},
        )

    @staticmethod
    def ai_request_failed(operation: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_REQUEST_FAILED,
            severity=AuditSeverity.ERROR,
            description=f"AI request failed: {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
