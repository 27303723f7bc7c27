from enum import Enum

from services.streaks import current_streak

EARLY_BIRD_HOUR = 8
WEEK_STREAK_DAYS = 7
LEVEL_BADGE_THRESHOLD = 5


class Badge(str, Enum):
    LEVEL_5 = "level_5"
    WEEK_STREAK = "week_streak"
    FIRST_STEP = "first_step"
    EARLY_BIRD = "early_bird"


# highest first; only one badge is reported per completion
PRIORITY = (Badge.LEVEL_5, Badge.WEEK_STREAK, Badge.FIRST_STEP, Badge.EARLY_BIRD)


def unlocked_badges(*, previous_level, level, completion_dates, completed_at, today):
    """Every badge whose condition holds right after a completion was added.

    ``completion_dates`` are the dates of all the user's completions (one per
    row, so the length is the completion count). ``completed_at`` must already
    be in the user's local time.
    """
    found = set()
    dates = list(completion_dates or ())

    if previous_level is not None and level is not None:
        if previous_level < LEVEL_BADGE_THRESHOLD <= level:
            found.add(Badge.LEVEL_5)

    if current_streak(dates, today) == WEEK_STREAK_DAYS:
        found.add(Badge.WEEK_STREAK)

    if len(dates) == 1:
        found.add(Badge.FIRST_STEP)

    if completed_at is not None and completed_at.hour < EARLY_BIRD_HOUR:
        found.add(Badge.EARLY_BIRD)

    return found


def pick_badge(badges):
    for badge in PRIORITY:
        if badge in badges:
            return badge
    return None


def evaluate_badge(**context):
    """The single badge to announce for a new completion, or None."""
    badge = pick_badge(unlocked_badges(**context))
    return badge.value if badge else None
