import asyncio
import logging
import re
from contextlib import contextmanager
from pathlib import Path

import asyncpg

from config import DATABASE_URL, DB_POOL_MAX_SIZE, DB_POOL_MIN_SIZE

logger = logging.getLogger(__name__)

SCHEMA_FILE = Path(__file__).with_name("models.sql")

TABLES = {"users", "habits", "completions"}

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

_OPERATORS = {
    "eq": "=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}


class StoreError(Exception):
    """The datastore could not be reached or rejected the statement."""


class DuplicateKeyError(StoreError):
    """A unique constraint rejected the row."""


@contextmanager
def _translate_errors():
    try:
        yield
    except asyncpg.UniqueViolationError as e:
        raise DuplicateKeyError(str(e)) from e
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
        raise StoreError(str(e)) from e


def _table(name):
    if name not in TABLES:
        raise ValueError(f"unknown table {name!r}")
    return name


def _column(name):
    if not _IDENTIFIER.match(name):
        raise ValueError(f"bad column name {name!r}")
    return name


def build_where(filters, start=1):
    """Compile ``{"date__gte": d, "habit_id": 3}`` into a WHERE clause.

    A key is a column name with an optional ``__op`` suffix (``gt``, ``gte``,
    ``lt``, ``lte``, ``in``). Plain keys compare for equality. Returns the
    clause (empty when there are no filters) and its positional arguments.
    """
    parts, args = [], []
    for key, value in (filters or {}).items():
        column, _, op = key.partition("__")
        column = _column(column)
        op = op or "eq"
        args.append(list(value) if op == "in" else value)
        placeholder = f"${start + len(args) - 1}"
        if op == "in":
            parts.append(f"{column} = ANY({placeholder})")
        elif op in _OPERATORS:
            parts.append(f"{column} {_OPERATORS[op]} {placeholder}")
        else:
            raise ValueError(f"unknown filter operator {op!r}")
    clause = " WHERE " + " AND ".join(parts) if parts else ""
    return clause, args


def _affected(status):
    # asyncpg returns command tags like "DELETE 3"
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


class Store:
    """Thin record store over an asyncpg pool."""

    def __init__(self, pool):
        self.pool = pool

    @classmethod
    async def connect(cls, dsn=None):
        dsn = dsn or DATABASE_URL
        if not dsn:
            raise RuntimeError("DATABASE_URL is not set")
        with _translate_errors():
            pool = await asyncpg.create_pool(
                dsn,
                min_size=DB_POOL_MIN_SIZE,
                max_size=DB_POOL_MAX_SIZE,
            )
        return cls(pool)

    async def close(self):
        await self.pool.close()

    async def find(self, table, filters=None, *, order_by=None, descending=False, limit=None):
        where, args = build_where(filters)
        sql = f"SELECT * FROM {_table(table)}{where}"
        if order_by:
            sql += f" ORDER BY {_column(order_by)} {'DESC' if descending else 'ASC'}"
        if limit:
            sql += f" LIMIT {int(limit)}"
        with _translate_errors():
            rows = await self.pool.fetch(sql, *args)
        return [dict(r) for r in rows]

    async def find_one(self, table, filters=None):
        rows = await self.find(table, filters, limit=1)
        return rows[0] if rows else None

    async def insert(self, table, record):
        columns = [_column(c) for c in record]
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        sql = (
            f"INSERT INTO {_table(table)} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) RETURNING *"
        )
        with _translate_errors():
            row = await self.pool.fetchrow(sql, *record.values())
        return dict(row)

    async def insert_ignore(self, table, record, conflict):
        """Insert unless ``conflict`` columns already exist; None when skipped."""
        columns = [_column(c) for c in record]
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        target = ", ".join(_column(c) for c in conflict)
        sql = (
            f"INSERT INTO {_table(table)} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) "
            f"ON CONFLICT ({target}) DO NOTHING RETURNING *"
        )
        with _translate_errors():
            row = await self.pool.fetchrow(sql, *record.values())
        return dict(row) if row else None

    async def update(self, table, filters, patch):
        if not patch:
            return 0
        columns = [_column(c) for c in patch]
        assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=1))
        where, args = build_where(filters, start=len(columns) + 1)
        sql = f"UPDATE {_table(table)} SET {assignments}{where}"
        with _translate_errors():
            status = await self.pool.execute(sql, *patch.values(), *args)
        return _affected(status)

    async def increment(self, table, filters, deltas, floor=0):
        """Atomically add ``deltas`` to numeric columns, never going below ``floor``.

        Returns the updated row, or None when no row matched.
        """
        columns = [_column(c) for c in deltas]
        assignments = ", ".join(
            f"{c} = GREATEST($1, {c} + ${i})" for i, c in enumerate(columns, start=2)
        )
        where, args = build_where(filters, start=len(columns) + 2)
        sql = f"UPDATE {_table(table)} SET {assignments}{where} RETURNING *"
        with _translate_errors():
            row = await self.pool.fetchrow(sql, floor, *deltas.values(), *args)
        return dict(row) if row else None

    async def delete(self, table, filters):
        where, args = build_where(filters)
        if not where:
            raise ValueError("refusing to delete without filters")
        with _translate_errors():
            status = await self.pool.execute(f"DELETE FROM {_table(table)}{where}", *args)
        return _affected(status)


async def init_db(store):
    schema = SCHEMA_FILE.read_text(encoding="utf-8")
    with _translate_errors():
        await store.pool.execute(schema)
    logger.info("Schema applied from %s", SCHEMA_FILE.name)
