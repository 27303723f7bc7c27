import logging
from datetime import timedelta

from aiogram.exceptions import TelegramAPIError

from config import REMINDER_INTERVAL_MINUTES, REMINDER_PRIMARY_TZ
from keyboards import reminder_keyboard
from utils.dates import resolve_timezone, utcnow
from utils.texts import text

logger = logging.getLogger(__name__)


def reminder_slots(now, primary_tz=REMINDER_PRIMARY_TZ, interval=REMINDER_INTERVAL_MINUTES):
    """``HH:MM`` strings for the current slot: (UTC, primary timezone).

    ``now`` must be timezone-aware; minutes are rounded down to ``interval``.
    """
    utc = now.astimezone(resolve_timezone("UTC"))
    slot = utc.replace(second=0, microsecond=0) - timedelta(minutes=utc.minute % interval)
    local = slot.astimezone(resolve_timezone(primary_tz))
    return slot.strftime("%H:%M"), local.strftime("%H:%M")


class ReminderDispatcher:
    """Sends a reminder with a "Done" button for every habit due in the current slot.

    Failures for one recipient are logged and do not stop the rest. Nothing
    remembers what was sent, so a slot scanned twice notifies twice.
    """

    def __init__(self, store, bot, primary_tz=REMINDER_PRIMARY_TZ, clock=utcnow):
        self.store = store
        self.bot = bot
        self.primary_tz = primary_tz
        self.clock = clock

    async def dispatch(self):
        slots = reminder_slots(self.clock(), self.primary_tz)
        logger.info("Checking reminders at %s (UTC) / %s (%s)", slots[0], slots[1], self.primary_tz)

        habits = await self.store.find(
            "habits", {"reminder_time__in": sorted(set(slots)), "is_archived": False}
        )
        users = {}
        if habits:
            rows = await self.store.find(
                "users", {"telegram_id__in": sorted({h["user_id"] for h in habits})}
            )
            users = {u["telegram_id"]: u for u in rows}

        sent = 0
        for habit in habits:
            if await self._send(habit, users.get(habit["user_id"])):
                sent += 1

        logger.info("Reminders: %s found, %s sent", len(habits), sent)
        return {"checked": list(slots), "found": len(habits), "sent": sent}

    async def _send(self, habit, user):
        chat_id = habit["user_id"]
        lang = user.get("language_code") if user else None
        try:
            await self.bot.send_message(
                chat_id,
                text(lang, "reminder", title=habit["title"]),
                parse_mode="HTML",
                reply_markup=reminder_keyboard(habit["id"], lang),
            )
        except TelegramAPIError as e:
            logger.warning("Failed to send reminder for habit %s to %s: %s", habit["id"], chat_id, e)
            return False
        return True
