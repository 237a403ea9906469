"""
Reminder Delivery Channels

The ledger never talks to Telegram itself. ReminderFlow hands a due
reminder to a DeliveryChannel and records what happened.
"""

from abc import ABC, abstractmethod

import structlog

from finbot.models.ledger import Reminder, ReminderChannel


class DeliveryError(Exception):
    """The channel could not deliver a reminder."""
    pass


class DeliveryChannel(ABC):
    """External collaborator that actually sends reminders."""

    provider: ReminderChannel = ReminderChannel.TELEGRAM

    @abstractmethod
    def send(self, reminder: Reminder) -> None:
        """
        Deliver `reminder` now.

        Raises:
            DeliveryError: If the message could not be sent
        """
        pass


class LoggingDeliveryChannel(DeliveryChannel):
    """Writes the reminder to the log instead of sending it anywhere."""

    def __init__(self):
        self._logger = structlog.get_logger()

    def send(self, reminder: Reminder) -> None:
        self._logger.info(
            "reminder_delivered",
            reminder_id=reminder.id,
            title=reminder.title,
            provider=self.provider.value,
        )
