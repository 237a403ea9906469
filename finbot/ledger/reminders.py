"""
Reminder Scheduler

Computes when a reminder should fire next. Delivery is someone else's
job (see ReminderFlow and the channel collaborator); this module is pure
date arithmetic.

All stepping happens on the wall clock of the reminder's own timezone,
so a daily 09:00 reminder stays at 09:00 across DST changes. Month and
year steps are always counted from `scheduled_at` and clamp the day to
the target month length, so Jan 31 -> Feb 28 -> Mar 31 (no drift).
"""

import calendar
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional

from finbot.models.ledger import Reminder, RepeatType


def add_months(value: date, months: int) -> date:
    """
    Shift a date by whole months, clamping the day to the month length.

    Works for `datetime` too (time of day is kept).
    """
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _wall_clock(moment: datetime, zone: tzinfo) -> datetime:
    """Naive wall-clock time of `moment` in `zone`."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(zone).replace(tzinfo=None)


def _ceil_steps(delta: timedelta, step: timedelta) -> int:
    if delta <= timedelta(0):
        return 0
    return -((-delta) // step)


def _next_fixed_step(base: datetime, target: datetime, step: timedelta) -> datetime:
    return base + step * _ceil_steps(target - base, step)


def _next_month_step(base: datetime, target: datetime, months: int) -> datetime:
    elapsed = (target.year - base.year) * 12 + (target.month - base.month)
    k = max(0, elapsed // months - 1)
    candidate = add_months(base, k * months)
    while candidate < target:
        k += 1
        candidate = add_months(base, k * months)
    return candidate


def _next_weekday(base: datetime, target: datetime, every: int, week_days: list[int]) -> datetime:
    """
    First selected weekday >= max(base, target).

    Weeks run Monday..Sunday; only every `every`-th week counted from the
    week of `base` is eligible.
    """
    anchor = base - timedelta(days=base.weekday())
    floor = max(base, target)
    week = max(0, (floor - anchor).days // 7)
    if week % every:
        week += every - week % every

    while True:
        monday = anchor + timedelta(weeks=week)
        for day in week_days:
            candidate = monday + timedelta(days=day - 1)
            if candidate >= floor:
                return candidate
        week += every


def next_occurrence(reminder: Reminder, from_: Optional[datetime] = None) -> datetime:
    """
    Next time `reminder` fires at or after `from_`.

    NONE reminders always return `scheduled_at` (one-shot). Everything
    else advances `repeat.every` units from `scheduled_at` until the
    result is >= `from_`. The result is an aware datetime in the
    reminder's timezone.

    Args:
        reminder: Reminder definition
        from_: Lower bound; defaults to now. Naive values are read as
               wall-clock time in the reminder's timezone.
    """
    zone = reminder.zone
    if reminder.repeat.type == RepeatType.NONE:
        return reminder.scheduled_at.astimezone(zone)

    base = _wall_clock(reminder.scheduled_at, zone)
    target = _wall_clock(from_ or datetime.now(zone), zone)
    every = reminder.repeat.every
    repeat = reminder.repeat.type

    if repeat == RepeatType.DAILY:
        local = _next_fixed_step(base, target, timedelta(days=every))
    elif repeat == RepeatType.WEEKLY and reminder.repeat.week_days:
        local = _next_weekday(base, target, every, reminder.repeat.week_days)
    elif repeat == RepeatType.WEEKLY:
        local = _next_fixed_step(base, target, timedelta(weeks=every))
    elif repeat == RepeatType.MONTHLY:
        local = _next_month_step(base, target, every)
    else:
        local = _next_month_step(base, target, 12 * every)

    return local.replace(tzinfo=zone)


def is_due(reminder: Reminder, now: datetime) -> bool:
    """Whether an active reminder's next run has arrived."""
    if not reminder.is_active:
        return False
    next_run = reminder.next_run or next_occurrence(reminder, reminder.scheduled_at)
    if now.tzinfo is None:
        now = now.replace(tzinfo=reminder.zone)
    return next_run <= now
