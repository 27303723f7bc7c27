from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, WebAppInfo

from config import SUPPORT_URL, WEB_APP_URL
from utils.texts import text

DONE_PREFIX = "done:"
HELP_CALLBACK = "help"


def app_url(start_param=None):
    url = WEB_APP_URL
    if start_param:
        separator = "&" if "?" in url else "?"
        url += f"{separator}start_param={start_param}"
    return url


def start_keyboard(lang_code=None, start_param=None):
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(
                text=text(lang_code, "btn_open"),
                web_app=WebAppInfo(url=app_url(start_param)),
            )],
            [InlineKeyboardButton(text=text(lang_code, "btn_help"), callback_data=HELP_CALLBACK)],
            [InlineKeyboardButton(text=text(lang_code, "btn_support"), url=SUPPORT_URL)],
        ]
    )


def reminder_keyboard(habit_id, lang_code=None):
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(
                text=text(lang_code, "btn_done"),
                callback_data=f"{DONE_PREFIX}{habit_id}",
            )]
        ]
    )
