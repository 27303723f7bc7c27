import logging
from datetime import date, datetime

import pytz

from config import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)


def resolve_timezone(name=None):
    """pytz zone for ``name``; unknown or empty names fall back to the default."""
    try:
        return pytz.timezone(name or DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown timezone %r, using %s", name, DEFAULT_TIMEZONE)
        return pytz.timezone(DEFAULT_TIMEZONE)


def utcnow():
    return datetime.now(pytz.UTC)


def local_now(tz_name=None, now=None):
    now = now or utcnow()
    return now.astimezone(resolve_timezone(tz_name))


def local_today(tz_name=None, now=None):
    return local_now(tz_name, now).date()


def parse_day(value):
    """``YYYY-MM-DD`` (or a date) to a date; raises ValueError on garbage."""
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


def day_key(d):
    return d.isoformat()
