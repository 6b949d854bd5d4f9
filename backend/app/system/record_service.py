"""
Akses record generic ke tabel apapun di database project.

Alur tiap operasi: connect -> introspeksi live -> validasi identifier
terhadap whitelist -> query (nilai selalu di-bind) -> close.
"""

import logging
from contextlib import contextmanager
from typing import Dict, List, Optional

from sqlalchemy import String, cast, column, or_, select, table, update, func
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from app.core.config import PAGE_SIZE
from app.core.exceptions import (
    ConnectionFailure,
    NoDatabaseConfigured,
    RecordWriteError,
    TableNotFound,
    ValidationRejected,
)
from app.system.connection_manager import ConnectionManager, sanitize_error
from app.system.db_types import (
    ASC,
    DESC,
    PageRequest,
    Row,
    RowPage,
    TableDescriptor,
    TableSchema,
    TargetDescriptor,
    normalize_direction,
    to_row,
)
from app.system.schema_introspector import SchemaIntrospector

logger = logging.getLogger(__name__)

TABLE_SORT_COLUMNS = ("name", "row_count")

# Tab semantic: role -> (atribut override di target, nama default)
ROLE_TABLES = {
    "users": ("users_table", "users"),
    "feedbacks": ("feedbacks_table", None),
}


def _table_clause(schema: TableSchema):
    # Identifier di sini sudah lolos whitelist, quoting diurus dialect
    return table(schema.name, *[column(name) for name in schema.columns])


def _search_clause(tbl, term: str):
    return or_(*[cast(col, String).icontains(term, autoescape=True) for col in tbl.c])


def _same_value(stored, submitted) -> bool:
    """Bandingkan nilai tersimpan (sudah dinormalisasi) dengan nilai dari form."""
    if stored is None or submitted is None:
        return stored is None and submitted is None
    if stored == submitted:
        return True
    return str(stored) == str(submitted)


@contextmanager
def _read_errors(action: str):
    """Error driver di tengah sesi baca (koneksi putus, view rusak) -> ConnectionFailure tersanitasi."""
    try:
        yield
    except DBAPIError as e:
        category = sanitize_error(e)
        logger.warning("[DB] %s failed: %s", action, category)
        raise ConnectionFailure(category) from None


class RecordService:
    def __init__(self, manager: ConnectionManager, per_page: int = PAGE_SIZE):
        self.manager = manager
        self.per_page = per_page

    # --- helpers ---

    def _resolve(self, introspector: SchemaIntrospector, table_name) -> TableSchema:
        """Tolak nama tabel yang tidak ada persis di daftar tabel live."""
        if not introspector.has_table(table_name):
            logger.info("[DB] Rejected unknown table name %r", table_name)
            raise TableNotFound(table_name)
        return introspector.describe(table_name)

    # --- tables ---

    def list_tables(self, target: TargetDescriptor) -> List[str]:
        with self.manager.session(target) as handle:
            return SchemaIntrospector(handle).list_tables()

    def check_table(self, target: TargetDescriptor, table_name) -> bool:
        with self.manager.session(target) as handle:
            if handle is None:
                return False
            return SchemaIntrospector(handle).has_table(table_name)

    def list_tables_with_counts(self, target: TargetDescriptor, search: str = None, sort: str = "name",
                                direction: str = ASC) -> List[TableDescriptor]:
        if sort not in TABLE_SORT_COLUMNS:
            sort = "name"
        direction = normalize_direction(direction, ASC)

        with _read_errors("List tables"), self.manager.session(target) as handle:
            if handle is None:
                return []
            introspector = SchemaIntrospector(handle)
            tables = [
                TableDescriptor(name=name, row_count=introspector.row_count(name))
                for name in introspector.list_tables()
            ]

        if search:
            needle = search.lower()
            tables = [t for t in tables if needle in t.name.lower()]

        # Sort nama case-insensitive (seperti strcasecmp)
        if sort == "name":
            key = lambda t: (t.name.lower(), t.name)
        else:
            key = lambda t: (t.row_count, t.name.lower())
        return sorted(tables, key=key, reverse=(direction == DESC))

    # --- rows ---

    def list_rows(self, target: TargetDescriptor, table_name: str, page_request: PageRequest = None) -> RowPage:
        page_request = page_request or PageRequest(per_page=self.per_page)

        with _read_errors("List rows"), self.manager.session(target) as handle:
            if handle is None:
                return RowPage.empty(table_name or "", self.per_page)

            introspector = SchemaIntrospector(handle)
            schema = self._resolve(introspector, table_name)
            tbl = _table_clause(schema)
            conn = handle.connection

            # 1. Search di semua kolom (OR)
            where = _search_clause(tbl, page_request.search) if page_request.search and len(tbl.c) else None

            count_stmt = select(func.count()).select_from(tbl)
            if where is not None:
                count_stmt = count_stmt.where(where)
            total = int(conn.execute(count_stmt).scalar() or 0)

            # 2. Sort: kolom harus ada di ColumnSet, kalau tidak -> urutan default (PK)
            sort_column = page_request.sort if page_request.sort in schema.columns else None
            if page_request.sort and sort_column is None:
                logger.info("[DB] Ignoring unknown sort column %r on %s", page_request.sort, schema.name)
            if sort_column is None:
                sort_column = schema.primary_key

            order_by = []
            if sort_column is not None:
                col = tbl.c[sort_column]
                order_by.append(col.asc() if page_request.direction == ASC else col.desc())
                # Tie-breaker biar halaman deterministik
                if schema.primary_key and schema.primary_key != sort_column:
                    order_by.append(tbl.c[schema.primary_key].asc())

            # 3. Pagination offset (page size fix)
            stmt = select(tbl)
            if where is not None:
                stmt = stmt.where(where)
            if order_by:
                stmt = stmt.order_by(*order_by)
            offset = (page_request.page - 1) * self.per_page
            stmt = stmt.limit(self.per_page).offset(offset)

            # Halaman di luar jangkauan tidak perlu query (offset raksasa bisa overflow di driver)
            rows = ()
            if offset < total:
                rows = tuple(to_row(row) for row in conn.execute(stmt).mappings())

        return RowPage(
            table=schema.name,
            rows=rows,
            columns=schema.columns,
            foreign_keys=schema.foreign_keys,
            primary_key=schema.primary_key,
            total=total,
            current_page=page_request.page,
            per_page=self.per_page,
        )

    def describe_table(self, target: TargetDescriptor, table_name: str) -> Optional[TableSchema]:
        with self.manager.session(target) as handle:
            if handle is None:
                return None
            return self._resolve(SchemaIntrospector(handle), table_name)

    def _fetch_row(self, handle, schema: TableSchema, key_column: str, id_value) -> Optional[Row]:
        if key_column not in schema.columns:
            logger.info("[DB] Unknown key column %r on %s", key_column, schema.name)
            return None

        tbl = _table_clause(schema)
        stmt = select(tbl).where(tbl.c[key_column] == id_value).limit(1)
        row = handle.connection.execute(stmt).mappings().first()
        return to_row(row) if row is not None else None

    def get_row(self, target: TargetDescriptor, table_name: str, primary_key_column: str, id_value) -> Optional[Row]:
        with self.manager.session(target) as handle:
            if handle is None:
                return None
            schema = self._resolve(SchemaIntrospector(handle), table_name)
            return self._fetch_row(handle, schema, primary_key_column, id_value)

    def find_record(self, target: TargetDescriptor, table_name: str, id_value):
        """Skema + record dalam satu sesi. Kolom kunci = PK hasil introspeksi, fallback 'id'."""
        with _read_errors("Read record"), self.manager.session(target) as handle:
            if handle is None:
                return None, None
            schema = self._resolve(SchemaIntrospector(handle), table_name)
            return schema, self._fetch_row(handle, schema, schema.primary_key or "id", id_value)

    def update_row(self, target: TargetDescriptor, table_name: str, primary_key_column: Optional[str], id_value,
                   field_values: Dict) -> bool:
        """
        Update satu record lewat primary key.

        primary_key_column=None berarti pakai PK hasil introspeksi.
        Kolom yang tidak ada di skema dan kolom PK sendiri dibuang sebelum
        query dibuat. Return False kalau tidak ada yang berubah atau record
        tidak ketemu. Tidak ada locking: last write wins.
        """
        if not target.has_database():
            raise NoDatabaseConfigured()

        with self.manager.session(target) as handle:
            schema = self._resolve(SchemaIntrospector(handle), table_name)

            # 1. Tabel wajib punya PK tunggal, dan kolom kunci harus PK itu
            if schema.primary_key is None:
                raise ValidationRejected("Table has no single-column primary key")
            if primary_key_column is not None and primary_key_column != schema.primary_key:
                raise ValidationRejected("Invalid primary key column")

            # 2. Whitelist field
            values = {}
            rejected = []
            for key, value in (field_values or {}).items():
                if key in schema.columns and key != schema.primary_key:
                    values[key] = value
                else:
                    rejected.append(key)
            if rejected:
                logger.info("[DB] Dropped %d non-writable field(s) on %s: %s", len(rejected), schema.name,
                            ", ".join(repr(k) for k in rejected))
            if not values:
                return False

            # 3. Record harus ada dan minimal satu nilai beda dari yang tersimpan
            with _read_errors("Read record before update"):
                current = self._fetch_row(handle, schema, schema.primary_key, id_value)
            if current is None:
                return False
            if all(_same_value(current.get(key), value) for key, value in values.items()):
                logger.info("[DB] No changes for %s #%s", schema.name, id_value)
                return False

            # 4. Eksekusi
            tbl = _table_clause(schema)
            stmt = (
                update(tbl)
                .where(tbl.c[schema.primary_key] == id_value)
                .values({tbl.c[key]: value for key, value in values.items()})
            )
            conn = handle.connection
            try:
                result = conn.execute(stmt)
                conn.commit()
            except SQLAlchemyError as e:
                conn.rollback()
                detail = str(getattr(e, "orig", None) or e)
                logger.error("[DB] Update on %s failed: %s", schema.name, detail)
                raise RecordWriteError(detail) from e

            return result.rowcount > 0

    # --- tab users / feedbacks ---

    def role_table(self, target: TargetDescriptor, role: str) -> Optional[str]:
        attr, default = ROLE_TABLES[role]
        return getattr(target, attr) or default

    def list_role_rows(self, target: TargetDescriptor, role: str, page: int = 1) -> RowPage:
        table_name = self.role_table(target, role)
        if not table_name:
            return RowPage.empty("", self.per_page)

        page_request = PageRequest.build(page=page, sort="created_at", direction=DESC, per_page=self.per_page)
        try:
            return self.list_rows(target, table_name, page_request)
        except TableNotFound:
            logger.info("[DB] %s table %r not found", role, table_name)
            return RowPage.empty(table_name, self.per_page)
