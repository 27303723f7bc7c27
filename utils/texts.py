from html import escape

TEXTS = {
    "en": {
        "welcome": "👋 Hello, {name}!\n\nWelcome to <b>HabitFlow</b> — your personal habit tracker.\n\nStart building better habits today! 🚀",
        "btn_open": "🚀 Open HabitFlow",
        "btn_help": "❓ How it works",
        "btn_support": "👨‍💻 Support / Feedback",
        "help": "🧩 <b>How to use HabitFlow:</b>\n\n1. Tap <b>Open HabitFlow</b>.\n2. Add your habits.\n3. Track daily.\n4. Keep the streak alive! 🔥",
        "reminder": "🔔 Reminder: it's time for <b>{title}</b>!\n\nMark it as done: 👇",
        "btn_done": "✅ Done",
        "done_success": "Great job! Habit marked as done. 🔥",
        "done_already": "Already marked for today 👌",
        "done_error": "Could not mark as done.",
        "done_label": "✅ Completed!",
        "new_badge": "🏅 New badge: {badge}",
        "stats_empty": "No completions in the last 7 days yet",
        "stats_caption": "📊 Last 7 days: {total} completions, streak {streak} 🔥",
    },
    "ru": {
        "welcome": "👋 Привет, {name}!\n\nДобро пожаловать в <b>HabitFlow</b> — твой личный трекер привычек.\n\nНачни менять свою жизнь уже сегодня! 🚀",
        "btn_open": "🚀 Открыть HabitFlow",
        "btn_help": "❓ Как это работает",
        "btn_support": "👨‍💻 Поддержка / Автор",
        "help": "🧩 <b>Как пользоваться HabitFlow:</b>\n\n1. Нажми кнопку <b>Открыть HabitFlow</b>.\n2. Добавь свои привычки.\n3. Отмечай выполнение.\n4. Не разрывай серию! 🔥",
        "reminder": "🔔 Напоминание\nПора: <b>{title}</b>!\n\nОтметь выполнение: 👇",
        "btn_done": "✅ Выполнено",
        "done_success": "Отлично! Привычка выполнена. 🔥",
        "done_already": "Сегодня уже отмечено 👌",
        "done_error": "Ошибка записи.",
        "done_label": "✅ Выполнено!",
        "new_badge": "🏅 Новый бейдж: {badge}",
        "stats_empty": "За последние 7 дней отметок пока нет",
        "stats_caption": "📊 Последние 7 дней: {total} выполнений, серия {streak} 🔥",
    },
}


def language(code=None):
    if code and (code == "ru" or code.startswith("ru-")):
        return "ru"
    return "en"


def text(lang_code, key, **params):
    template = TEXTS[language(lang_code)][key]
    return template.format(**{k: escape(str(v)) for k, v in params.items()})
