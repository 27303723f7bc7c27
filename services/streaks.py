from datetime import timedelta


def current_streak(dates, today):
    """Length of the run of consecutive days ending today or yesterday.

    ``dates`` may contain duplicates and come in any order. If neither today
    nor yesterday is present the streak is broken and 0 is returned; a missing
    today alone does not break a streak that reached yesterday.
    """
    days = set(dates)
    if not days:
        return 0

    yesterday = today - timedelta(days=1)
    if today in days:
        cursor = today
    elif yesterday in days:
        cursor = yesterday
    else:
        return 0

    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak
