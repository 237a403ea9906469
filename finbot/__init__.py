"""
FinBot Ledger - Source Package

A personal-finance ledger: transactions, budgets, goals, debts,
subscriptions, reminders and gamified achievements, with a small
CRUD backend and an AI assistant for advice and data entry.

DESIGN PRINCIPLES:
1. One explicit repository per session, swappable storage backing
2. Derived views are pure functions over stored data
3. Achievements only ever unlock, never re-lock
4. AI output is a suggestion the user confirms, never a saved fact
5. Amounts are stored in one currency (RUB)
"""

__version__ = "1.0.0"
__author__ = "FinBot Team"
