"""Marking habits done / not done for a calendar day.

The ``UNIQUE (habit_id, date)`` constraint on completions decides races: the
first insert wins and every other caller falls back to the "already done"
answer. Each toggle is safe to retry as a whole.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from database import DuplicateKeyError, StoreError
from services.badges import evaluate_badge
from services.progression import LedgerError, ProgressionLedger, reward_for
from services.streaks import current_streak
from utils.dates import local_now, local_today, parse_day, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ToggleResult:
    success: bool
    coins_earned: int = 0
    new_badge: Optional[str] = None
    completion_id: Optional[int] = None

    def to_dict(self):
        data = {
            "success": self.success,
            "coinsEarned": self.coins_earned,
            "newBadge": self.new_badge,
        }
        if self.completion_id is not None:
            data["newId"] = self.completion_id
        return data


FAILED = ToggleResult(success=False)


class CompletionService:
    def __init__(self, store, ledger=None, clock=utcnow):
        self.store = store
        self.ledger = ledger or ProgressionLedger(store)
        self.clock = clock

    async def toggle(self, habit_id, user_id, day, completed, note=None) -> ToggleResult:
        """Set or clear the completion of a habit for ``day``.

        ``day`` defaults to today in the user's timezone.
        """
        if not habit_id or not user_id:
            return FAILED
        if day is not None:
            try:
                day = parse_day(day)
            except ValueError:
                logger.warning("Rejected toggle with bad date %r", day)
                return FAILED

        try:
            habit = await self.store.find_one("habits", {"id": habit_id, "user_id": user_id})
            if habit is None:
                logger.warning("Habit %s is not owned by user %s", habit_id, user_id)
                return FAILED
            if day is None:
                day = await self._today(user_id)
            if completed:
                return await self._complete(habit, user_id, day, note)
            return await self._uncomplete(habit, user_id, day)
        except StoreError:
            logger.exception("Toggle failed for habit %s on %s", habit_id, day)
            return FAILED

    async def _today(self, user_id):
        user = await self.store.find_one("users", {"telegram_id": user_id})
        return local_today(user.get("timezone") if user else None, self.clock())

    async def _existing(self, habit_id, day):
        return await self.store.find_one("completions", {"habit_id": habit_id, "date": day})

    async def _complete(self, habit, user_id, day, note):
        existing = await self._existing(habit["id"], day)
        if existing:
            return ToggleResult(True, 0, None, existing["id"])

        user = await self.store.find_one("users", {"telegram_id": user_id})
        if user is None:
            logger.warning("Toggle for unregistered user %s", user_id)
            return FAILED

        now = self.clock()
        try:
            row = await self.store.insert("completions", {
                "habit_id": habit["id"],
                "user_id": user_id,
                "date": day,
                "completed_at": now,
                "note": note,
            })
        except DuplicateKeyError:
            # lost the race to a concurrent toggle for the same day
            existing = await self._existing(habit["id"], day)
            return ToggleResult(True, 0, None, existing["id"] if existing else None)

        reward = reward_for(habit)
        try:
            change = await self.ledger.credit(user_id, reward)
        except (LedgerError, StoreError):
            logger.error(
                "Ledger credit failed after completion %s (habit %s, user %s, %s)",
                row["id"], habit["id"], user_id, day,
            )
            await self._compensate_insert(row)
            return FAILED

        badge = await self._evaluate(user_id, user.get("timezone"), change, now)
        return ToggleResult(True, reward, badge, row["id"])

    async def _uncomplete(self, habit, user_id, day):
        existing = await self._existing(habit["id"], day)
        if existing is None:
            return ToggleResult(True, 0, None)

        deleted = await self.store.delete("completions", {"id": existing["id"]})
        if not deleted:
            # a concurrent toggle already removed it and took the coins back
            return ToggleResult(True, 0, None)

        reward = reward_for(habit)
        try:
            await self.ledger.debit(user_id, reward)
        except (LedgerError, StoreError):
            logger.error(
                "Ledger debit failed after removing completion %s (habit %s, user %s, %s)",
                existing["id"], habit["id"], user_id, day,
            )
            await self._compensate_delete(existing)
            return FAILED

        # committed; nothing below may turn this into a failure
        await self._refresh_after_removal(user_id)
        return ToggleResult(True, -reward, None)

    async def _compensate_insert(self, row):
        try:
            await self.store.delete("completions", {"id": row["id"]})
        except StoreError:
            logger.critical(
                "Completion %s kept without reward for user %s",
                row["id"], row["user_id"],
            )

    async def _compensate_delete(self, row):
        try:
            await self.store.insert("completions", {k: v for k, v in row.items() if k != "id"})
        except StoreError:
            logger.critical(
                "Completion %s removed without reverting reward for user %s",
                row["id"], row["user_id"],
            )

    async def _user_dates(self, user_id):
        rows = await self.store.find("completions", {"user_id": user_id})
        return [r["date"] for r in rows]

    async def _refresh_streak(self, user_id, tz_name, now, dates=None):
        try:
            if dates is None:
                dates = await self._user_dates(user_id)
            streak = current_streak(dates, local_now(tz_name, now).date())
            await self.store.update("users", {"telegram_id": user_id}, {"current_streak": streak})
        except StoreError:
            logger.warning("Could not refresh streak for user %s", user_id)

    async def _refresh_after_removal(self, user_id):
        try:
            user = await self.store.find_one("users", {"telegram_id": user_id})
        except StoreError:
            logger.warning("Could not refresh streak for user %s", user_id)
            return
        tz_name = user.get("timezone") if user else None
        await self._refresh_streak(user_id, tz_name, self.clock())

    async def _evaluate(self, user_id, tz_name, change, now):
        try:
            dates = await self._user_dates(user_id)
        except StoreError:
            logger.warning("Badge check skipped for user %s", user_id)
            return None

        local = local_now(tz_name, now)
        badge = evaluate_badge(
            previous_level=change.previous_level,
            level=change.level,
            completion_dates=dates,
            completed_at=local,
            today=local.date(),
        )
        await self._refresh_streak(user_id, tz_name, now, dates)
        if badge:
            logger.info("User %s unlocked %s", user_id, badge)
        return badge

    async def update_note(self, completion_id, user_id, note):
        if not completion_id:
            return False
        updated = await self.store.update(
            "completions",
            {"id": completion_id, "user_id": user_id},
            {"note": note},
        )
        return bool(updated)

    async def history(self, habit_id, user_id):
        habit = await self.store.find_one("habits", {"id": habit_id, "user_id": user_id})
        if habit is None:
            return []
        return await self.store.find(
            "completions", {"habit_id": habit_id}, order_by="date", descending=True
        )
