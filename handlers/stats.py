import logging

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import BufferedInputFile, Message

from database import StoreError
from services.stats import StatsService
from services.users import UserService
from utils.charts import weekly_chart
from utils.texts import text

logger = logging.getLogger(__name__)

router = Router()


@router.message(Command("stats"))
async def stats(message: Message, store):
    user = message.from_user
    lang = user.language_code
    service = StatsService(store)

    try:
        today = await UserService(store).today(user.id)
        week = await service.weekly(user.id, today)
        streak = await service.streak(user.id, today)
    except StoreError:
        logger.exception("Stats failed for user %s", user.id)
        await message.answer(text(lang, "done_error"))
        return

    total = sum(d["count"] for d in week)
    if not total:
        await message.answer(text(lang, "stats_empty"))
        return

    await message.answer_photo(
        BufferedInputFile(weekly_chart(week), filename="weekly.png"),
        caption=text(lang, "stats_caption", total=total, streak=streak),
        parse_mode="HTML",
    )
