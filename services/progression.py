"""XP, level and coin bookkeeping attached to a user row.

Every change is a single atomic ``increment`` on the users table clamped at
zero, so two toggles for the same user never lose each other's delta. The
``level`` column is generated from ``xp`` by the database.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

XP_PER_COMPLETION = 10
DEFAULT_COINS_REWARD = 10
XP_PER_LEVEL = 100


def level_for(xp: int) -> int:
    return max(0, xp) // XP_PER_LEVEL + 1


def reward_for(habit) -> int:
    """Coins granted by a habit; unset or zero means the default reward."""
    reward = (habit or {}).get("coins_reward")
    return reward or DEFAULT_COINS_REWARD


class LedgerError(Exception):
    """The user row could not be adjusted."""


@dataclass(frozen=True)
class LedgerChange:
    xp: int
    level: int
    total_coins: int
    previous_level: Optional[int] = None

    @property
    def leveled_up(self) -> bool:
        return self.previous_level is not None and self.level > self.previous_level


class ProgressionLedger:
    def __init__(self, store):
        self.store = store

    async def _apply(self, user_id, xp_delta: int, coins_delta: int):
        row = await self.store.increment(
            "users",
            {"telegram_id": user_id},
            {"xp": xp_delta, "total_coins": coins_delta},
            floor=0,
        )
        if row is None:
            raise LedgerError(f"user {user_id} not found")
        return row

    async def credit(self, user_id, reward: int) -> LedgerChange:
        row = await self._apply(user_id, XP_PER_COMPLETION, reward)
        xp = row["xp"]
        # additions are never clamped, so the pre-update xp is exact
        return LedgerChange(
            xp=xp,
            level=level_for(xp),
            total_coins=row["total_coins"],
            previous_level=level_for(xp - XP_PER_COMPLETION),
        )

    async def debit(self, user_id, reward: int) -> LedgerChange:
        row = await self._apply(user_id, -XP_PER_COMPLETION, -reward)
        return LedgerChange(
            xp=row["xp"],
            level=level_for(row["xp"]),
            total_coins=row["total_coins"],
        )

    async def grant_xp(self, user_id, xp: int) -> LedgerChange:
        """Flat xp bonus (referrals)."""
        row = await self._apply(user_id, xp, 0)
        logger.info("Granted %s xp to user %s", xp, user_id)
        return LedgerChange(
            xp=row["xp"],
            level=level_for(row["xp"]),
            total_coins=row["total_coins"],
            previous_level=level_for(row["xp"] - xp),
        )
