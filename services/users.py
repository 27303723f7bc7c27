import logging
import re

from database import StoreError
from services.progression import LedgerError, ProgressionLedger
from utils.dates import local_today, resolve_timezone

logger = logging.getLogger(__name__)

REFERRAL_PREFIX = "ref_"
REFERRAL_WELCOME_XP = 50
REFERRER_BONUS_XP = 100

CREATED = "created"
UPDATED = "updated"


def parse_referrer(start_param):
    """Telegram id encoded in a ``ref_<id>`` start parameter, else None."""
    if not isinstance(start_param, str) or not start_param.startswith(REFERRAL_PREFIX):
        return None
    digits = re.sub(r"\D", "", start_param)
    return int(digits) if digits else None


class UserService:
    def __init__(self, store, ledger=None):
        self.store = store
        self.ledger = ledger or ProgressionLedger(store)

    async def get(self, telegram_id):
        return await self.store.find_one("users", {"telegram_id": telegram_id})

    async def today(self, telegram_id, now=None):
        """Current calendar day in the user's own timezone."""
        user = await self.get(telegram_id)
        return local_today(user.get("timezone") if user else None, now)

    async def register(
        self,
        telegram_id,
        username=None,
        first_name=None,
        last_name=None,
        language_code=None,
        timezone=None,
        start_param=None,
    ):
        """Create the user on first sight, refresh profile fields afterwards.

        Safe to call any number of times and from concurrent requests: the
        insert is skipped when the row already exists, and the referral bonus
        is paid only by the call that actually created it.
        """
        profile = {
            "username": username or None,
            "first_name": first_name or None,
            "last_name": last_name or None,
            "language_code": language_code or None,
        }
        # the bot does not know the timezone; keep whatever the app stored
        if timezone:
            profile["timezone"] = resolve_timezone(timezone).zone

        if await self.get(telegram_id):
            await self.store.update("users", {"telegram_id": telegram_id}, profile)
            return UPDATED

        referrer = await self._valid_referrer(telegram_id, start_param)
        inserted = await self.store.insert_ignore(
            "users",
            {
                "telegram_id": telegram_id,
                **profile,
                "timezone": resolve_timezone(timezone).zone,
                "referred_by": referrer,
                "xp": REFERRAL_WELCOME_XP if referrer else 0,
                "total_coins": 0,
                "current_streak": 0,
            },
            conflict=("telegram_id",),
        )
        if inserted is None:
            await self.store.update("users", {"telegram_id": telegram_id}, profile)
            return UPDATED

        if referrer:
            logger.info("User %s invited by %s", telegram_id, referrer)
            try:
                await self.ledger.grant_xp(referrer, REFERRER_BONUS_XP)
            except (LedgerError, StoreError):
                logger.exception("Failed to reward referrer %s", referrer)
        return CREATED

    async def _valid_referrer(self, telegram_id, start_param):
        referrer = parse_referrer(start_param)
        if referrer is None or referrer == telegram_id:
            return None
        if await self.get(referrer) is None:
            return None
        return referrer

    async def notifications_enabled(self, telegram_id):
        user = await self.get(telegram_id)
        return bool(user and user.get("notifications_enabled"))

    async def enable_notifications(self, telegram_id):
        updated = await self.store.update(
            "users", {"telegram_id": telegram_id}, {"notifications_enabled": True}
        )
        return bool(updated)
