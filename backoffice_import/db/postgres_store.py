from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import psycopg2
from psycopg2 import sql

from .record_store import StoreError

"""PostgreSQL record store adapter.

Each call runs in its own transaction (``with connection:`` commits on
success and rolls back on error), so a rejected row never leaves a partial
write behind and earlier rows stay committed.

テーブル前提: ``id`` (DEFAULT 付き), 自然キー列 ``import_key`` (UNIQUE),
残りの列名はエンティティのフィールドキーと一致していること。
"""

__all__ = [
    "PostgresRecordStore",
]

logger = logging.getLogger(__name__)


def _wrap(exc: psycopg2.Error, action: str, table: str) -> StoreError:
    diag = getattr(exc, "diag", None)
    constraint = getattr(diag, "constraint_name", None) if diag is not None else None
    message = (getattr(exc, "pgerror", None) or str(exc)).strip()
    return StoreError(f"{table} {action} failed: {message}", constraint=constraint)


class PostgresRecordStore:
    def __init__(
        self,
        connection: Any,
        table: str,
        *,
        key_column: str = "import_key",
        id_column: str = "id",
    ) -> None:
        self._connection = connection
        self.table = table
        self.key_column = key_column
        self.id_column = id_column

    def _table_ident(self) -> sql.Composable:
        if "." in self.table:
            schema, name = self.table.split(".", 1)
            return sql.Identifier(schema, name)
        return sql.Identifier(self.table)

    def _fetch_id(self, query: sql.Composable, params: list[Any], action: str) -> str | None:
        try:
            with self._connection:
                with self._connection.cursor() as cur:
                    cur.execute(query, params)
                    row = cur.fetchone()
        except psycopg2.Error as e:
            raise _wrap(e, action, self.table) from e
        return str(row[0]) if row else None

    def find_by_key(self, key: str) -> str | None:
        query = sql.SQL("SELECT {id} FROM {table} WHERE {key} = %s LIMIT 1").format(
            id=sql.Identifier(self.id_column),
            table=self._table_ident(),
            key=sql.Identifier(self.key_column),
        )
        return self._fetch_id(query, [key], "lookup")

    def exists(self, record_id: str) -> bool:
        query = sql.SQL("SELECT {id} FROM {table} WHERE {id} = %s LIMIT 1").format(
            id=sql.Identifier(self.id_column),
            table=self._table_ident(),
        )
        return self._fetch_id(query, [record_id], "lookup") is not None

    def find_by_fields(self, criteria: Mapping[str, Any]) -> str | None:
        if not criteria:
            return None
        # 文字列は大文字小文字を区別せず比較
        conditions = [
            sql.SQL("lower({col}::text) = lower(%s)").format(col=sql.Identifier(col))
            for col in criteria
        ]
        query = sql.SQL("SELECT {id} FROM {table} WHERE {cond} LIMIT 1").format(
            id=sql.Identifier(self.id_column),
            table=self._table_ident(),
            cond=sql.SQL(" AND ").join(conditions),
        )
        return self._fetch_id(query, [str(v) for v in criteria.values()], "lookup")

    def create(self, key: str, record: Mapping[str, Any]) -> str:
        columns = [self.key_column, *record.keys()]
        query = sql.SQL("INSERT INTO {table} ({cols}) VALUES ({vals}) RETURNING {id}").format(
            table=self._table_ident(),
            cols=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            vals=sql.SQL(", ").join(sql.Placeholder() * len(columns)),
            id=sql.Identifier(self.id_column),
        )
        record_id = self._fetch_id(query, [key, *record.values()], "insert")
        if record_id is None:
            raise StoreError(f"{self.table} insert returned no id")
        logger.debug("inserted %s id=%s", self.table, record_id)
        return record_id

    def update(self, record_id: str, record: Mapping[str, Any]) -> None:
        changes = {k: v for k, v in record.items() if v is not None}
        if not changes:
            return
        query = sql.SQL("UPDATE {table} SET {assignments} WHERE {id} = %s").format(
            table=self._table_ident(),
            assignments=sql.SQL(", ").join(
                sql.SQL("{} = %s").format(sql.Identifier(c)) for c in changes
            ),
            id=sql.Identifier(self.id_column),
        )
        try:
            with self._connection:
                with self._connection.cursor() as cur:
                    cur.execute(query, [*changes.values(), record_id])
                    affected = cur.rowcount
        except psycopg2.Error as e:
            raise _wrap(e, "update", self.table) from e
        if affected == 0:
            raise StoreError(f"{self.table} record {record_id} does not exist")
