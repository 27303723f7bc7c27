import asyncio
import copy
import itertools
from datetime import datetime, timedelta

import pytest
import pytz

from database import DuplicateKeyError, StoreError
from services.progression import level_for

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=pytz.UTC)
TODAY = NOW.date()

DEFAULTS = {
    "users": {
        "username": None,
        "first_name": None,
        "last_name": None,
        "language_code": None,
        "timezone": "UTC",
        "xp": 0,
        "total_coins": 0,
        "current_streak": 0,
        "notifications_enabled": False,
        "referred_by": None,
    },
    "habits": {
        "category": None,
        "priority": "medium",
        "color": None,
        "icon": "star",
        "coins_reward": 10,
        "reminder_time": None,
        "reminder_date": None,
        "reminder_days": None,
        "is_archived": False,
    },
    "completions": {
        "completed_at": None,
        "note": None,
    },
}

PRIMARY_KEYS = {"users": "telegram_id", "habits": "id", "completions": "id"}
UNIQUE = {"completions": [("habit_id", "date")]}


def _matches(row, filters):
    for key, expected in (filters or {}).items():
        column, _, op = key.partition("__")
        value = row.get(column)
        if op == "in":
            if value not in list(expected):
                return False
        elif op in ("", "eq"):
            if value != expected:
                return False
        elif value is None:
            return False
        elif op == "gte" and not value >= expected:
            return False
        elif op == "gt" and not value > expected:
            return False
        elif op == "lte" and not value <= expected:
            return False
        elif op == "lt" and not value < expected:
            return False
    return True


class MemoryStore:
    """In-memory stand-in for ``database.Store`` with the schema's constraints."""

    def __init__(self):
        self.tables = {name: [] for name in PRIMARY_KEYS}
        self._ids = itertools.count(1)
        self._created = itertools.count()
        self.failures = {}

    def fail(self, method, table, exc=None):
        self.failures[(method, table)] = exc or StoreError("connection refused")

    async def _check(self, method, table):
        await asyncio.sleep(0)
        if (method, table) in self.failures:
            raise self.failures[(method, table)]

    def _finish(self, table, row):
        if table == "users":
            row["level"] = level_for(row["xp"])
        return row

    def _violates(self, table, row):
        pk = PRIMARY_KEYS[table]
        keys = [(pk,)] + UNIQUE.get(table, [])
        for existing in self.tables[table]:
            for key in keys:
                if all(existing.get(c) == row.get(c) for c in key):
                    return True
        return False

    def seed(self, table, **record):
        row = {**DEFAULTS[table], **record}
        pk = PRIMARY_KEYS[table]
        if pk not in row:
            row[pk] = next(self._ids)
        if table != "completions":
            row.setdefault("created_at", datetime(2026, 1, 1) + timedelta(seconds=next(self._created)))
        if self._violates(table, row):
            raise DuplicateKeyError(f"duplicate key in {table}")
        self.tables[table].append(self._finish(table, row))
        return copy.deepcopy(row)

    def rows(self, table, **filters):
        return [copy.deepcopy(r) for r in self.tables[table] if _matches(r, filters)]

    async def find(self, table, filters=None, *, order_by=None, descending=False, limit=None):
        await self._check("find", table)
        rows = [copy.deepcopy(r) for r in self.tables[table] if _matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: r[order_by], reverse=descending)
        return rows[:limit] if limit else rows

    async def find_one(self, table, filters=None):
        rows = await self.find(table, filters, limit=1)
        return rows[0] if rows else None

    async def insert(self, table, record):
        await self._check("insert", table)
        return self.seed(table, **record)

    async def insert_ignore(self, table, record, conflict):
        await self._check("insert", table)
        if any(all(r.get(c) == record.get(c) for c in conflict) for r in self.tables[table]):
            return None
        return self.seed(table, **record)

    async def update(self, table, filters, patch):
        await self._check("update", table)
        count = 0
        for row in self.tables[table]:
            if _matches(row, filters):
                row.update(patch)
                self._finish(table, row)
                count += 1
        return count

    async def increment(self, table, filters, deltas, floor=0):
        await self._check("increment", table)
        for row in self.tables[table]:
            if _matches(row, filters):
                for column, delta in deltas.items():
                    row[column] = max(floor, row[column] + delta)
                return copy.deepcopy(self._finish(table, row))
        return None

    async def delete(self, table, filters):
        await self._check("delete", table)
        before = len(self.tables[table])
        self.tables[table] = [r for r in self.tables[table] if not _matches(r, filters)]
        return before - len(self.tables[table])


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def user(store):
    return store.seed("users", telegram_id=1001, first_name="Ann")


@pytest.fixture
def habit(store, user):
    return store.seed("habits", user_id=user["telegram_id"], title="Read", category="Growth")


def days_ago(n, today=TODAY):
    return today - timedelta(days=n)


