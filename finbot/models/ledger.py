"""
Core Data Models for FinBot Ledger

These models define the schemas for every record the ledger persists.
They are designed to:
1. Enforce type safety at runtime
2. Round-trip through the camelCase JSON blobs the stores keep
3. Tolerate older stored data (unknown keys ignored, unknown icons mapped)

DESIGN DECISION: Calendar dates are kept as literal "YYYY-MM-DD" strings.
Month filtering works on the literal year/month components, so a record
never shifts to a neighbouring day because of the viewer's timezone.
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Optional
from uuid import uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate a record identifier."""
    return str(uuid4())


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    SAVING_DEPOSIT = "SAVING_DEPOSIT"
    SAVING_WITHDRAWAL = "SAVING_WITHDRAWAL"


class CategoryType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    BOTH = "BOTH"


class DebtType(str, Enum):
    """
    Debt direction.

    BANK_LOAN and I_OWE are owed by the user, OWE_ME is owed to the user.
    """
    BANK_LOAN = "BANK_LOAN"
    I_OWE = "I_OWE"
    OWE_ME = "OWE_ME"

    @property
    def is_owed_by_user(self) -> bool:
        return self in (DebtType.BANK_LOAN, DebtType.I_OWE)


class BillingPeriod(str, Enum):
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class AchievementCategory(str, Enum):
    SAVINGS = "SAVINGS"
    SPENDING = "SPENDING"
    LEARNING = "LEARNING"
    FUN = "FUN"


class RepeatType(str, Enum):
    NONE = "NONE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class ReminderChannel(str, Enum):
    TELEGRAM = "TELEGRAM"


class DeliveryStatus(str, Enum):
    SENT = "SENT"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class SubscriptionLevel(str, Enum):
    """Paid tier of the app. Custom categories need anything above FREE."""
    FREE = "FREE"
    PRO = "PRO"
    PREMIUM = "PREMIUM"


class Theme(str, Enum):
    LIGHT = "LIGHT"
    DARK = "DARK"


class Collection(str, Enum):
    """Named, independently serialized groups of records."""
    TRANSACTIONS = "transactions"
    CATEGORIES = "categories"
    GOALS = "goals"
    DEBTS = "debts"
    SUBSCRIPTIONS = "subscriptions"
    ACHIEVEMENTS = "achievements"
    REMINDERS = "reminders"
    REMINDER_HISTORY = "reminder_history"
    ACTIVITY = "activity"


class Icon(str, Enum):
    """
    Supported icon identifiers.

    Stored records may carry icon names from older versions; those
    resolve to BOX instead of failing validation.
    """
    WALLET = "wallet"
    LAPTOP = "laptop"
    GIFT = "gift"
    SHOPPING_CART = "shopping-cart"
    COFFEE = "coffee"
    BUS = "bus"
    HOME = "home"
    CLAPPERBOARD = "clapperboard"
    HEART_PULSE = "heart-pulse"
    SHOPPING_BAG = "shopping-bag"
    RECEIPT = "receipt"
    BOX = "box"
    PIGGY_BANK = "piggy-bank"
    PLANE = "plane"
    CAR = "car"
    GAMEPAD = "gamepad-2"
    GRADUATION_CAP = "graduation-cap"
    DUMBBELL = "dumbbell"
    UTENSILS = "utensils"
    WRENCH = "wrench"
    BRIEFCASE = "briefcase"
    CREDIT_CARD = "credit-card"
    BANKNOTE = "banknote"
    COINS = "coins"
    ROCKET = "rocket"
    SMILE = "smile"
    SUN = "sun"
    MOON = "moon"
    MUSIC = "music"
    CAMERA = "camera"
    HAND_COINS = "hand-coins"
    LANDMARK = "landmark"
    CROWN = "crown"
    GEM = "gem"
    ZAP = "zap"
    STAR = "star"
    FLAG = "flag"
    BOOK = "book"
    BOOK_OPEN = "book-open"
    CALENDAR = "calendar"
    TARGET = "target"
    DOVE = "dove"
    PARTY_POPPER = "party-popper"
    SUNRISE = "sunrise"
    WHALE = "whale"
    BABY = "baby"
    BIKE = "bike"
    CAT = "cat"
    DOG = "dog"
    FUEL = "fuel"
    PHONE = "phone"
    PIZZA = "pizza"
    SHIRT = "shirt"
    TICKET = "ticket"
    TRAIN = "train"
    TV = "tv"
    WIFI = "wifi"


def resolve_icon(value) -> Icon:
    """Map a stored icon name onto the supported set."""
    if isinstance(value, Icon):
        return value
    try:
        return Icon(str(value))
    except ValueError:
        return Icon.BOX


_DATE_PREFIX = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def literal_calendar_date(value) -> str:
    """
    Normalize a calendar date to its literal "YYYY-MM-DD" form.

    ISO timestamps keep only their date prefix; no timezone conversion
    is ever applied.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        match = _DATE_PREFIX.match(value.strip())
        if match:
            year, month, day = (int(part) for part in match.groups())
            # Raises ValueError for impossible dates such as 2024-02-30
            date(year, month, day)
            return match.group(0)
    raise ValueError(f"Not a calendar date: {value!r}")


def parse_calendar_date(value: str) -> date:
    """Turn a literal calendar date string into a `date`."""
    return date.fromisoformat(literal_calendar_date(value))


CalendarDate = Annotated[str, BeforeValidator(literal_calendar_date)]
IconField = Annotated[Icon, BeforeValidator(resolve_icon)]


class LedgerModel(BaseModel):
    """
    Base for persisted records.

    snake_case in Python, camelCase in stored blobs and on the wire.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    def to_record(self) -> dict:
        """Serialize for storage (camelCase keys, no empty optionals)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class Transaction(LedgerModel):
    """
    A single money movement.

    `amount` is always in the storage currency; `original_amount` and
    `currency` record what the user actually typed.
    """
    id: str = Field(default_factory=new_id)
    amount: float = Field(..., ge=0, description="Amount in storage currency")
    original_amount: Optional[float] = Field(default=None, ge=0)
    currency: str = Field(default="RUB", min_length=3, max_length=3)
    type: TransactionType
    category_id: str = Field(..., min_length=1)
    date: CalendarDate
    note: Optional[str] = Field(default=None, max_length=500)
    goal_id: Optional[str] = None
    created_at: Optional[datetime] = Field(
        default=None,
        description="Local wall-clock time the entry was made"
    )

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def year_month(self) -> tuple[int, int]:
        """Literal (year, month) components of the date string."""
        return int(self.date[0:4]), int(self.date[5:7])

    @property
    def calendar_date(self) -> date:
        return parse_calendar_date(self.date)


class Category(LedgerModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    color: str = Field(default="#94a3b8")
    icon: IconField = Icon.BOX
    order: Optional[int] = None
    budget_limit: Optional[float] = Field(default=None, ge=0)
    is_archived: bool = False

    def accepts(self, tx_type: TransactionType) -> bool:
        """Whether transactions of this type may use the category."""
        if self.type == CategoryType.BOTH:
            return True
        if tx_type == TransactionType.INCOME:
            return self.type == CategoryType.INCOME
        if tx_type == TransactionType.EXPENSE:
            return self.type == CategoryType.EXPENSE
        return False


class Goal(LedgerModel):
    """
    A savings goal.

    Over-funding is allowed: current_amount may exceed target_amount.
    """
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    target_amount: float = Field(..., ge=0)
    current_amount: float = Field(default=0.0)
    color: str = Field(default="#3b82f6")
    icon: IconField = Icon.TARGET
    deadline: Optional[CalendarDate] = None


class Debt(LedgerModel):
    id: str = Field(default_factory=new_id)
    type: DebtType
    title: str = Field(..., min_length=1, max_length=200, description="Bank or person")
    total_amount: float = Field(..., ge=0)
    remaining_amount: float = Field(..., ge=0)
    interest_rate: Optional[float] = Field(default=None, ge=0, description="% per year")
    monthly_payment: Optional[float] = Field(default=None, ge=0)
    term_months: Optional[int] = Field(default=None, ge=1)
    start_date: CalendarDate
    next_payment_date: Optional[CalendarDate] = None

    @property
    def is_settled(self) -> bool:
        return self.remaining_amount <= 0


class Subscription(LedgerModel):
    """An external recurring service the user pays for."""
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., ge=0, description="Amount in `currency`")
    currency: str = Field(default="RUB", min_length=3, max_length=3)
    billing_period: BillingPeriod = BillingPeriod.MONTHLY
    next_payment_date: CalendarDate
    category_id: str = Field(default="exp_regular")
    is_active: bool = True

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class Achievement(LedgerModel):
    id: str
    title: str
    description: str
    icon: IconField = Icon.STAR
    is_unlocked: bool = False
    unlocked_at: Optional[datetime] = None
    category: AchievementCategory


class AchievementState(LedgerModel):
    """
    Persisted history the evaluator cannot derive from current data.

    had_debts_ever is a ratchet: once True it is never reset.
    """
    had_debts_ever: bool = False


# =============================================================================
# REMINDERS
# =============================================================================

class RepeatConfig(LedgerModel):
    type: RepeatType = RepeatType.NONE
    every: int = Field(default=1, ge=1, le=99)
    week_days: list[int] = Field(
        default_factory=list,
        description="ISO weekdays, 1=Mon ... 7=Sun"
    )

    @field_validator('week_days')
    @classmethod
    def validate_week_days(cls, v: list[int]) -> list[int]:
        for day in v:
            if day < 1 or day > 7:
                raise ValueError(f"Weekday must be between 1 and 7, got {day}")
        return sorted(set(v))


class Reminder(LedgerModel):
    id: str = Field(default_factory=new_id)
    title: str = Field(..., min_length=1, max_length=200)
    message: Optional[str] = Field(default=None, max_length=1000)
    scheduled_at: datetime
    next_run: Optional[datetime] = None
    repeat: RepeatConfig = Field(default_factory=RepeatConfig)
    timezone: str = Field(default="Europe/Moscow")
    channels: list[ReminderChannel] = Field(
        default_factory=lambda: [ReminderChannel.TELEGRAM]
    )
    is_active: bool = True

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @model_validator(mode='after')
    def localize_naive_times(self) -> 'Reminder':
        """Naive timestamps are read as wall-clock time in the reminder's zone."""
        zone = ZoneInfo(self.timezone)
        if self.scheduled_at.tzinfo is None:
            self.scheduled_at = self.scheduled_at.replace(tzinfo=zone)
        if self.next_run is not None and self.next_run.tzinfo is None:
            self.next_run = self.next_run.replace(tzinfo=zone)
        return self

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class ReminderHistoryItem(LedgerModel):
    id: str = Field(default_factory=new_id)
    reminder_id: str
    title: str
    scheduled_at: datetime
    sent_at: datetime
    status: DeliveryStatus
    provider: ReminderChannel = ReminderChannel.TELEGRAM
    error: Optional[str] = None


class ReminderSettings(LedgerModel):
    enabled: bool = True
    timezone: str = Field(default="Europe/Moscow")
    default_channels: list[ReminderChannel] = Field(
        default_factory=lambda: [ReminderChannel.TELEGRAM]
    )
    default_time: str = Field(default="09:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found in user input."""

    field: str = Field(..., description="Field with the issue")
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'not_a_number', 'suspicious_value')"
    )
    message: str
    severity: str = Field(..., pattern="^(error|warning|info)$")


class ValidationResult(BaseModel):
    """
    Outcome of validating one entry form.

    `amount` carries the parsed number when it could be read at all.
    """
    is_valid: bool
    amount: Optional[float] = None
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]
