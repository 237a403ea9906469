"""
Static Catalogs

Built-in categories and the achievement catalog. Stored data only ever
overrides the mutable parts (custom categories, unlock state); the
definitions themselves live here.
"""

from enum import Enum

from pydantic import BaseModel

from finbot.models.ledger import (
    Achievement,
    AchievementCategory,
    Category,
    CategoryType,
    Icon,
)


OTHER_CATEGORY_ID = "exp_other"
DEBT_CATEGORY_ID = "exp_debt"
SAVINGS_CATEGORY_ID = "sav_transfer"
SUBSCRIPTION_CATEGORY_ID = "exp_regular"
SALARY_CATEGORY_ID = "inc_salary"


DEFAULT_CATEGORIES: list[Category] = [
    # Income
    Category(id="inc_salary", name="Salary", type=CategoryType.INCOME, color="#10b981", icon=Icon.WALLET),
    Category(id="inc_freelance", name="Freelance", type=CategoryType.INCOME, color="#34d399", icon=Icon.LAPTOP),
    Category(id="inc_gift", name="Gifts", type=CategoryType.INCOME, color="#6ee7b7", icon=Icon.GIFT),
    # Expense
    Category(id="exp_food", name="Groceries", type=CategoryType.EXPENSE, color="#f87171", icon=Icon.SHOPPING_CART),
    Category(id="exp_cafe", name="Cafes", type=CategoryType.EXPENSE, color="#f43f5e", icon=Icon.COFFEE),
    Category(id="exp_transport", name="Transport", type=CategoryType.EXPENSE, color="#fb923c", icon=Icon.BUS),
    Category(id="exp_housing", name="Home", type=CategoryType.EXPENSE, color="#60a5fa", icon=Icon.HOME),
    Category(id="exp_entertainment", name="Entertainment", type=CategoryType.EXPENSE, color="#a78bfa", icon=Icon.CLAPPERBOARD),
    Category(id="exp_health", name="Health", type=CategoryType.EXPENSE, color="#f472b6", icon=Icon.HEART_PULSE),
    Category(id="exp_shopping", name="Shopping", type=CategoryType.EXPENSE, color="#818cf8", icon=Icon.SHOPPING_BAG),
    Category(id="exp_regular", name="Bills", type=CategoryType.EXPENSE, color="#fbbf24", icon=Icon.RECEIPT),
    Category(id="exp_debt", name="Loans & Debts", type=CategoryType.EXPENSE, color="#ef4444", icon=Icon.HAND_COINS),
    Category(id="exp_other", name="Other", type=CategoryType.EXPENSE, color="#94a3b8", icon=Icon.BOX),
    # Savings (internal)
    Category(id="sav_transfer", name="To savings", type=CategoryType.BOTH, color="#f59e0b", icon=Icon.PIGGY_BANK),
]

BUILT_IN_CATEGORY_IDS = frozenset(c.id for c in DEFAULT_CATEGORIES)


# =============================================================================
# ACHIEVEMENTS
# =============================================================================

class Metric(str, Enum):
    """Numeric quantities that tiered achievements are measured on."""
    TOTAL_SAVED = "total_saved"
    TRANSACTION_COUNT = "transaction_count"
    ARTICLES_READ = "articles_read"
    ACTIVE_SUBSCRIPTIONS = "active_subscriptions"
    TOTAL_INCOME = "total_income"


class ThresholdRule(BaseModel):
    """Unlock `achievement_id` once `metric` >= `threshold`."""
    achievement_id: str
    metric: Metric
    threshold: float


SAVINGS_TIERS = [
    (1_000, "Piggy Bank: Start"),
    (10_000, "Piggy Bank: Bronze"),
    (50_000, "Piggy Bank: Silver"),
    (100_000, "Piggy Bank: Gold"),
    (250_000, "Piggy Bank: Platinum"),
    (500_000, "Piggy Bank: Emerald"),
    (1_000_000, "Millionaire"),
    (5_000_000, "Multimillionaire"),
    (10_000_000, "Tycoon"),
]
TRANSACTION_TIERS = [1, 10, 50, 100, 250, 500, 1000, 2500, 5000]
READING_TIERS = [1, 5, 10, 20, 50]
SUBSCRIPTION_TIERS = [1, 5, 10]
INCOME_TIERS = [100_000, 500_000, 1_000_000]


def _build_tiers() -> tuple[list[Achievement], list[ThresholdRule]]:
    achievements = []
    rules = []

    def add(ach_id, metric, threshold, title, description, icon, category):
        achievements.append(Achievement(
            id=ach_id,
            title=title,
            description=description,
            icon=icon,
            category=category,
        ))
        rules.append(ThresholdRule(achievement_id=ach_id, metric=metric, threshold=threshold))

    for i, (amount, title) in enumerate(SAVINGS_TIERS, start=1):
        add(f"ach_save_{i}", Metric.TOTAL_SAVED, amount, title,
            f"Save {amount:,} RUB", Icon.PIGGY_BANK, AchievementCategory.SAVINGS)

    for i, count in enumerate(TRANSACTION_TIERS, start=1):
        add(f"ach_tx_{i}", Metric.TRANSACTION_COUNT, count, f"Active user {i}",
            f"Record {count} transactions", Icon.ZAP, AchievementCategory.SPENDING)

    for i, count in enumerate(READING_TIERS, start=1):
        add(f"ach_read_{i}", Metric.ARTICLES_READ, count, f"Scholar {i}",
            f"Read {count} articles", Icon.BOOK_OPEN, AchievementCategory.LEARNING)

    for i, count in enumerate(SUBSCRIPTION_TIERS, start=1):
        add(f"ach_sub_{i}", Metric.ACTIVE_SUBSCRIPTIONS, count, f"Subscription manager {i}",
            f"Have {count} active subscriptions", Icon.CALENDAR, AchievementCategory.SPENDING)

    for i, amount in enumerate(INCOME_TIERS, start=1):
        add(f"ach_inc_{i}", Metric.TOTAL_INCOME, amount, f"Breadwinner {i}",
            f"Earn {amount:,} RUB in total", Icon.BRIEFCASE, AchievementCategory.SAVINGS)

    return achievements, rules


_TIERED_ACHIEVEMENTS, THRESHOLD_RULES = _build_tiers()

ACH_DEBT_FREE = "ach_debt_free"
ACH_GOAL_SETTER = "ach_goal_setter"
ACH_WEEKEND = "ach_weekend"
ACH_EARLY_BIRD = "ach_early_bird"
ACH_NIGHT_OWL = "ach_night_owl"
ACH_BIG_BUY = "ach_big_buy"

ACHIEVEMENT_CATALOG: list[Achievement] = [
    *_TIERED_ACHIEVEMENTS,
    Achievement(id=ACH_DEBT_FREE, title="Freedom", description="Pay off all your debts",
                icon=Icon.DOVE, category=AchievementCategory.SAVINGS),
    Achievement(id=ACH_GOAL_SETTER, title="Dreamer", description="Create your first goal",
                icon=Icon.TARGET, category=AchievementCategory.SAVINGS),
    Achievement(id=ACH_WEEKEND, title="Party animal", description="Spend on a weekend",
                icon=Icon.PARTY_POPPER, category=AchievementCategory.FUN),
    Achievement(id=ACH_EARLY_BIRD, title="Early bird", description="Add a transaction before 9:00",
                icon=Icon.SUNRISE, category=AchievementCategory.FUN),
    Achievement(id=ACH_NIGHT_OWL, title="Night owl", description="Add a transaction after 23:00",
                icon=Icon.MOON, category=AchievementCategory.FUN),
    Achievement(id=ACH_BIG_BUY, title="Big fish", description="A single purchase of 10,000 RUB or more",
                icon=Icon.WHALE, category=AchievementCategory.SPENDING),
]

ACHIEVEMENT_IDS = frozenset(a.id for a in ACHIEVEMENT_CATALOG)
