import os

BOT_TOKEN = os.getenv("BOT_TOKEN")
DATABASE_URL = os.getenv("DATABASE_URL")

WEB_APP_URL = os.getenv("WEB_APP_URL", "https://habitflow-app.ru")
SUPPORT_URL = os.getenv("SUPPORT_URL", "https://t.me/volskov")

# shared secret for the external scheduler hitting /api/cron
CRON_SECRET = os.getenv("CRON_SECRET")

# reminder scan checks UTC and this zone (UTC+3 by default)
REMINDER_PRIMARY_TZ = os.getenv("REMINDER_PRIMARY_TZ", "Europe/Moscow")
REMINDER_INTERVAL_MINUTES = int(os.getenv("REMINDER_INTERVAL_MINUTES", "10"))

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")

DB_POOL_MIN_SIZE = int(os.getenv("DB_POOL_MIN_SIZE", "1"))
DB_POOL_MAX_SIZE = int(os.getenv("DB_POOL_MAX_SIZE", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
