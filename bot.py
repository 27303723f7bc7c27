import asyncio
import logging

from aiogram import Bot, Dispatcher
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import BOT_TOKEN, LOG_LEVEL, REMINDER_INTERVAL_MINUTES
from database import Store, init_db
from handlers.habits import router as habits_router
from handlers.start import router as start_router
from handlers.stats import router as stats_router
from services.reminders import ReminderDispatcher

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# =========================
# STARTUP
# =========================

def build_scheduler(store, bot):
    scheduler = AsyncIOScheduler(timezone="UTC")
    reminders = ReminderDispatcher(store, bot)
    scheduler.add_job(
        reminders.dispatch,
        "cron",
        minute=f"*/{REMINDER_INTERVAL_MINUTES}",
        id="reminders",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def main():
    if not BOT_TOKEN:
        raise RuntimeError("BOT_TOKEN is not set")

    store = await Store.connect()
    await init_db(store)

    bot = Bot(token=BOT_TOKEN)
    dp = Dispatcher(store=store)
    dp.include_routers(start_router, habits_router, stats_router)

    scheduler = build_scheduler(store, bot)
    scheduler.start()
    logger.info("✅ Bot started successfully")

    try:
        await dp.start_polling(bot)
    finally:
        scheduler.shutdown(wait=False)
        await store.close()
        await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())
