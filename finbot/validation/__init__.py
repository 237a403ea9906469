"""Entry validation package."""

from finbot.validation.validator import EntryValidator, parse_amount

__all__ = ["EntryValidator", "parse_amount"]
