import logging

from aiogram import F, Router
from aiogram.filters import CommandObject, CommandStart
from aiogram.types import CallbackQuery, Message

from database import StoreError
from keyboards import HELP_CALLBACK, start_keyboard
from services.users import UserService
from utils.texts import text

logger = logging.getLogger(__name__)

router = Router()


@router.message(CommandStart())
async def start_cmd(message: Message, command: CommandObject, store):
    user = message.from_user
    start_param = (command.args or "").strip() or None

    users = UserService(store)
    try:
        await users.register(
            user.id,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            language_code=user.language_code,
            start_param=start_param,
        )
        await users.enable_notifications(user.id)
    except StoreError:
        logger.exception("Could not register user %s from /start", user.id)

    await message.answer(
        text(user.language_code, "welcome", name=user.first_name or "Friend"),
        reply_markup=start_keyboard(user.language_code, start_param),
        parse_mode="HTML",
    )


@router.callback_query(F.data == HELP_CALLBACK)
async def help_callback(callback: CallbackQuery):
    await callback.message.answer(
        text(callback.from_user.language_code, "help"),
        parse_mode="HTML",
    )
    await callback.answer()
