import logging
from collections import defaultdict

from services.progression import DEFAULT_COINS_REWARD
from services.streaks import current_streak

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "title",
    "category",
    "priority",
    "color",
    "icon",
    "reminder_time",
    "reminder_date",
    "reminder_days",
    "is_archived",
}


class HabitService:
    def __init__(self, store):
        self.store = store

    async def active(self, user_id):
        return await self.store.find(
            "habits", {"user_id": user_id, "is_archived": False}, order_by="created_at"
        )

    async def for_date(self, user_id, day, today):
        """Active habits annotated with the completion for ``day`` and their streak."""
        habits = await self.active(user_id)
        if not habits:
            return []

        ids = [h["id"] for h in habits]
        completions = await self.store.find("completions", {"habit_id__in": ids})

        dates_by_habit = defaultdict(list)
        on_day = {}
        for c in completions:
            dates_by_habit[c["habit_id"]].append(c["date"])
            if c["date"] == day:
                on_day[c["habit_id"]] = c

        result = []
        for habit in habits:
            done = on_day.get(habit["id"])
            result.append({
                **habit,
                "completed": done is not None,
                "completionId": done["id"] if done else None,
                "todayNote": done.get("note") if done else None,
                "currentStreak": current_streak(dates_by_habit[habit["id"]], today),
            })
        return result

    async def create(self, user_id, fields):
        record = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}
        record.update({
            "user_id": user_id,
            "icon": record.get("icon") or "star",
            "is_archived": False,
            "coins_reward": DEFAULT_COINS_REWARD,
        })
        habit = await self.store.insert("habits", record)
        logger.info("User %s created habit %s", user_id, habit["id"])
        return habit

    async def update(self, user_id, habit_id, fields):
        patch = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}
        if not patch:
            return False
        updated = await self.store.update("habits", {"id": habit_id, "user_id": user_id}, patch)
        return bool(updated)

    async def delete(self, user_id, habit_id):
        deleted = await self.store.delete("habits", {"id": habit_id, "user_id": user_id})
        return bool(deleted)
