"""
Membaca skema database project secara live.

Hasilnya (daftar tabel, ColumnSet) adalah whitelist satu-satunya untuk
identifier yang datang dari request. Inspector dibuat baru per handle,
jadi tidak ada cache skema antar request.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, inspect, select, table
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from app.core.exceptions import TableNotFound
from app.system.connection_manager import ConnectionHandle
from app.system.db_types import ColumnSet, ForeignKeyMap, TableSchema

logger = logging.getLogger(__name__)


class SchemaIntrospector:
    def __init__(self, handle: Optional[ConnectionHandle]):
        self.handle = handle
        self._inspector = inspect(handle.connection) if handle is not None else None

    def list_tables(self) -> List[str]:
        if self._inspector is None:
            return []
        # Base table dulu, lalu view (sama seperti SHOW TABLES)
        names = list(self._inspector.get_table_names())
        names.extend(name for name in self._inspector.get_view_names() if name not in names)
        return names

    def has_table(self, name) -> bool:
        """Exact match terhadap daftar tabel live."""
        return isinstance(name, str) and name in self.list_tables()

    def list_columns(self, table_name: str) -> ColumnSet:
        if self._inspector is None:
            return ColumnSet(table_name, ())
        try:
            columns = self._inspector.get_columns(table_name)
        except NoSuchTableError:
            raise TableNotFound(table_name) from None
        return ColumnSet(table_name, (col["name"] for col in columns))

    def get_primary_key(self, table_name: str) -> Optional[str]:
        """Nama kolom PK, atau None kalau tidak ada / composite (belum didukung)."""
        if self._inspector is None:
            return None
        constraint = self._inspector.get_pk_constraint(table_name) or {}
        columns = constraint.get("constrained_columns") or []
        if len(columns) != 1:
            return None
        return columns[0]

    def get_foreign_keys(self, table_name: str) -> ForeignKeyMap:
        if self._inspector is None:
            return {}
        try:
            foreign_keys = self._inspector.get_foreign_keys(table_name)
        except (NotImplementedError, SQLAlchemyError) as e:
            # Best effort: FK cuma buat link di UI
            logger.warning("[DB] Cannot read foreign keys of %s: %s", table_name, type(e).__name__)
            return {}

        result = {}
        for fk in foreign_keys:
            referred_table = fk.get("referred_table")
            pairs = zip(fk.get("constrained_columns") or [], fk.get("referred_columns") or [])
            for column, referred_column in pairs:
                if column and referred_table and referred_column:
                    result.setdefault(column, {"table": referred_table, "column": referred_column})
        return result

    def row_count(self, table_name: str) -> int:
        if self.handle is None:
            return 0
        stmt = select(func.count()).select_from(table(table_name))
        return int(self.handle.connection.execute(stmt).scalar() or 0)

    def describe(self, table_name: str) -> TableSchema:
        return TableSchema(
            name=table_name,
            columns=self.list_columns(table_name),
            primary_key=self.get_primary_key(table_name),
            foreign_keys=self.get_foreign_keys(table_name),
        )
