import math
from collections import Counter
from datetime import timedelta

from services.streaks import current_streak

HEATMAP_DAYS = 365
WEEK_DAYS = 7

STAT_AXES = ("VIT", "INT", "DIS", "CHA", "WIS", "STA")

CATEGORY_STATS = {
    "health": "VIT",
    "mind": "INT",
    "mindfulness": "INT",
    "work": "DIS",
    "social": "CHA",
    "growth": "WIS",
    "energy": "STA",
}

# substring fallback, checked in this order
STAT_KEYWORDS = (
    ("health", "VIT"),
    ("mind", "INT"),
    ("work", "DIS"),
    ("social", "CHA"),
    ("growth", "WIS"),
    ("energy", "STA"),
)


def stat_for_category(category):
    """Stat axis for a free-text habit category, or None if it maps to none."""
    if not category:
        return None
    key = category.strip().lower()
    if key in CATEGORY_STATS:
        return CATEGORY_STATS[key]
    for keyword, stat in STAT_KEYWORDS:
        if keyword in key:
            return stat
    return None


def heat_level(count):
    return min(max(count, 0), 4)


def weekly_counts(dates, today):
    counts = Counter(dates)
    start = today - timedelta(days=WEEK_DAYS - 1)
    days = [start + timedelta(days=i) for i in range(WEEK_DAYS)]
    return [
        {"day": d.strftime("%a"), "date": d.isoformat(), "count": counts.get(d, 0)}
        for d in days
    ]


def heatmap(dates, today):
    counts = Counter(dates)
    start = today - timedelta(days=HEATMAP_DAYS - 1)
    cells = []
    for i in range(HEATMAP_DAYS):
        d = start + timedelta(days=i)
        count = counts.get(d, 0)
        cells.append({"date": d.isoformat(), "count": count, "level": heat_level(count)})
    return {
        "heatmap": cells,
        "totalCompletions": len(dates),
        "currentStreak": current_streak(dates, today),
    }


def radar(categories):
    """Radar scores from the categories of completed habits (one per completion)."""
    scores = dict.fromkeys(STAT_AXES, 0)
    for category in categories:
        stat = stat_for_category(category)
        if stat:
            scores[stat] += 1
    full_mark = max(math.ceil(max(scores.values()) * 1.2), 10)
    return [{"subject": s, "A": scores[s], "fullMark": full_mark} for s in STAT_AXES]


class StatsService:
    def __init__(self, store):
        self.store = store

    async def weekly(self, user_id, today):
        start = today - timedelta(days=WEEK_DAYS - 1)
        rows = await self.store.find("completions", {"user_id": user_id, "date__gte": start})
        return weekly_counts([r["date"] for r in rows], today)

    async def heatmap(self, user_id, today):
        rows = await self.store.find("completions", {"user_id": user_id})
        return heatmap([r["date"] for r in rows], today)

    async def radar(self, user_id):
        rows = await self.store.find("completions", {"user_id": user_id})
        habits = await self.store.find("habits", {"user_id": user_id})
        category_by_habit = {h["id"]: h.get("category") for h in habits}
        return radar(category_by_habit.get(r["habit_id"]) for r in rows)

    async def streak(self, user_id, today):
        rows = await self.store.find("completions", {"user_id": user_id})
        return current_streak([r["date"] for r in rows], today)
