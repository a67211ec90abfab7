"""
Streak engine: current/longest writing streak from a set of activity dates, plus the
milestone table shared by the email templates and the streak API.

Pure functions only; callers pass `today` explicitly so results are deterministic.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable

# Streak lengths with their own celebratory copy. Ascending.
MILESTONES: dict[int, tuple[str, str, str]] = {
    7: ("🎯", "1 Week Streak!", "You've journaled for 7 days straight!"),
    14: ("🌟", "2 Week Streak!", "Two weeks of consistent journaling!"),
    30: ("🏆", "1 Month Streak!", "An entire month of self-reflection!"),
    60: ("💎", "2 Month Streak!", "Your dedication is inspiring!"),
    90: ("👑", "3 Month Streak!", "You're a journaling champion!"),
    365: ("🎊", "1 Year Streak!", "A full year of journaling! Incredible!"),
}

# Targets used for "next milestone" progress in the UI (not the email table above)
NEXT_MILESTONE_TARGETS = (7, 14, 30, 50, 100, 365)
BEYOND_LAST_TARGET = 1000

CONSISTENCY_WINDOW_DAYS = 30

# Days without an entry before a re-engagement email goes out. Ascending.
INACTIVITY_THRESHOLDS = (3, 7, 14, 30)


@dataclass(frozen=True)
class StreakResult:
    current_streak: int
    longest_streak: int


@dataclass(frozen=True)
class Milestone:
    days: int
    emoji: str
    title: str
    message: str
    is_configured: bool


@dataclass(frozen=True)
class NextMilestone:
    days: int
    message: str


def longest_streak(dates: Iterable[date]) -> int:
    ordered = sorted(set(dates))
    if not ordered:
        return 0
    best = run = 1
    for prev, cur in zip(ordered, ordered[1:]):
        if (cur - prev).days == 1:
            run += 1
        else:
            run = 1
        best = max(best, run)
    return best


def current_streak(dates: Iterable[date], today: date) -> int:
    """
    0 unless the most recent date is today or yesterday; otherwise count back one day at a
    time from the most recent date until the first gap.
    """
    present = set(dates)
    if not present:
        return 0
    latest = max(present)
    if latest not in (today, today - timedelta(days=1)):
        return 0
    count = 0
    day = latest
    while day in present:
        count += 1
        day -= timedelta(days=1)
    return count


def compute_streaks(dates: Iterable[date], today: date) -> StreakResult:
    present = set(dates)
    return StreakResult(
        current_streak=current_streak(present, today),
        longest_streak=longest_streak(present),
    )


def milestone_for(streak: int) -> Milestone:
    """Exact-match milestone copy, or the generic "{N}-Day Streak!" fallback."""
    if streak in MILESTONES:
        emoji, title, message = MILESTONES[streak]
        return Milestone(days=streak, emoji=emoji, title=title, message=message, is_configured=True)
    return Milestone(
        days=streak,
        emoji="🔥",
        title=f"{streak}-Day Streak!",
        message="Keep the fire burning!",
        is_configured=False,
    )


def is_milestone(streak: int) -> bool:
    return streak in MILESTONES


def _days(n: int) -> str:
    return "day" if n == 1 else "days"


def next_milestone(current: int) -> NextMilestone:
    target = next((m for m in NEXT_MILESTONE_TARGETS if m > current), BEYOND_LAST_TARGET)
    remaining = target - current
    if current == 0:
        message = "🌱 Start your first streak today!"
    elif current < 7:
        message = f"🔥 {remaining} more {_days(remaining)} to reach a week!"
    elif current < 14:
        message = f"💪 {remaining} more {_days(remaining)} to reach 2 weeks!"
    elif current < 30:
        message = f"🚀 {remaining} more {_days(remaining)} to reach a month!"
    elif current < 100:
        message = f"⭐ {remaining} more {_days(remaining)} to reach 100 days!"
    elif current < 365:
        message = f"🏆 {remaining} more {_days(remaining)} to reach a year!"
    else:
        message = "🎉 Amazing! You're a writing legend!"
    return NextMilestone(days=target, message=message)


def is_streak_at_risk(last_activity: date | None, today: date) -> bool:
    """True when there is a streak to lose and nothing has been written today."""
    if last_activity is None:
        return False
    return last_activity < today


def streak_stats(dates: Iterable[date], today: date) -> dict:
    """Everything the streak widget shows, computed from activity dates."""
    present = set(dates)
    result = compute_streaks(present, today)
    window_start = today - timedelta(days=CONSISTENCY_WINDOW_DAYS)
    recent = sum(1 for d in present if window_start <= d <= today)
    last_activity = max(present) if present else None
    nxt = next_milestone(result.current_streak)
    return {
        "current_streak": result.current_streak,
        "longest_streak": result.longest_streak,
        "active_days": len(present),
        "last_activity_date": last_activity.isoformat() if last_activity else None,
        "consistency_percentage": round(recent / CONSISTENCY_WINDOW_DAYS * 100),
        "at_risk": result.current_streak > 0 and is_streak_at_risk(last_activity, today),
        "next_milestone": {"days": nxt.days, "message": nxt.message},
    }


def streak_start(last_activity: date, streak: int) -> date:
    """First day of the run of `streak` consecutive days ending on last_activity."""
    return last_activity - timedelta(days=max(streak, 1) - 1)


def days_since(last_activity_at: datetime, now: datetime) -> int:
    """Whole days elapsed since the last entry was written."""
    return max(0, (now - last_activity_at) // timedelta(days=1))


def inactivity_threshold(days_inactive: int) -> int | None:
    """Largest re-engagement threshold reached, or None while the user is still active."""
    reached = [t for t in INACTIVITY_THRESHOLDS if days_inactive >= t]
    return reached[-1] if reached else None
