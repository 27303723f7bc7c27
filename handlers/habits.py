import logging

from aiogram import F, Router
from aiogram.exceptions import TelegramAPIError
from aiogram.types import CallbackQuery

from keyboards import DONE_PREFIX
from services.completions import CompletionService
from utils.texts import text

logger = logging.getLogger(__name__)

router = Router()


# -------------------------
# callback done:ID — "Done" button under a reminder
# -------------------------
@router.callback_query(F.data.startswith(DONE_PREFIX))
async def done_callback(callback: CallbackQuery, store):
    user = callback.from_user
    lang = user.language_code

    try:
        habit_id = int(callback.data[len(DONE_PREFIX):])
    except ValueError:
        await callback.answer(text(lang, "done_error"), show_alert=True)
        return

    # no date: today in the user's own timezone
    result = await CompletionService(store).toggle(habit_id, user.id, None, True)
    if not result.success:
        await callback.answer(text(lang, "done_error"), show_alert=True)
        return

    reply = text(lang, "done_success" if result.coins_earned else "done_already")
    if result.new_badge:
        reply += "\n" + text(lang, "new_badge", badge=result.new_badge)
    await callback.answer(reply)

    if callback.message:
        try:
            await callback.message.edit_text(
                f"{callback.message.html_text}\n\n{text(lang, 'done_label')}",
                parse_mode="HTML",
                reply_markup=None,
            )
        except TelegramAPIError as e:
            logger.warning("Could not edit reminder for habit %s of %s: %s", habit_id, user.id, e)
