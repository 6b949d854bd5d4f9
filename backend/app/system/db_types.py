"""
Value object untuk database project (target eksternal).

Semua object di sini immutable dan hidup per request, kecuali
TargetDescriptor yang dibentuk dari konfigurasi Project.
"""

import base64
import datetime
import decimal
import hashlib
import json
import math
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from pydantic import SecretStr

SUPPORTED_DRIVERS = ("mysql", "mariadb")

ASC = "asc"
DESC = "desc"

# Nilai satu sel: tagged variant, bukan Any
CellValue = Union[None, bool, int, float, str, bytes]
Row = Dict[str, CellValue]


@dataclass(frozen=True)
class TargetDescriptor:
    driver: str = "mysql"
    host: Optional[str] = None
    port: Optional[int] = 3306
    database: Optional[str] = None
    username: Optional[str] = None
    secret: SecretStr = field(default_factory=lambda: SecretStr(""), repr=False, compare=False)
    users_table: Optional[str] = None
    feedbacks_table: Optional[str] = None

    def __post_init__(self):
        if self.driver not in SUPPORTED_DRIVERS:
            raise ValueError(f"Unsupported driver: {self.driver}")
        if not isinstance(self.secret, SecretStr):
            object.__setattr__(self, "secret", SecretStr(self.secret or ""))

    def has_database(self) -> bool:
        return bool(self.host) and bool(self.database)

    @property
    def identity(self) -> str:
        """Hash stabil dari {driver, host, port, database, username}. Secret tidak ikut."""
        raw = "|".join(
            str(part or "") for part in (self.driver, self.host, self.port, self.database, self.username)
        )
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    @property
    def connection_name(self) -> str:
        return f"project_{self.identity[:16]}"


class ColumnSet(Sequence):
    """Urutan kolom satu tabel, sesuai urutan dari database. Dipakai sebagai whitelist."""

    __slots__ = ("table", "_names")

    def __init__(self, table: str, names):
        self.table = table
        self._names = tuple(names)

    def __getitem__(self, index):
        return self._names[index]

    def __len__(self):
        return len(self._names)

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __contains__(self, name) -> bool:
        # Exact match, case-sensitive, tanpa normalisasi
        return isinstance(name, str) and name in self._names

    def __eq__(self, other):
        if isinstance(other, ColumnSet):
            return self.table == other.table and self._names == other._names
        if isinstance(other, (list, tuple)):
            return list(self._names) == list(other)
        return NotImplemented

    def __repr__(self):
        return f"ColumnSet({self.table!r}, {list(self._names)!r})"

    def to_list(self) -> List[str]:
        return list(self._names)


ForeignKeyMap = Dict[str, Dict[str, str]]


@dataclass(frozen=True)
class TableDescriptor:
    name: str
    row_count: int = 0

    def to_dict(self):
        return {"name": self.name, "row_count": self.row_count}


@dataclass(frozen=True)
class TableSchema:
    name: str
    columns: ColumnSet
    primary_key: Optional[str]
    foreign_keys: ForeignKeyMap


def normalize_direction(direction, default: str = DESC) -> str:
    """Selain persis 'asc' / 'desc' -> pakai default endpoint."""
    if direction in (ASC, DESC):
        return direction
    return default


# Batas atas nomor halaman, offset tetap muat di BIGINT
MAX_PAGE = 2 ** 31 - 1


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    per_page: int = 15
    search: Optional[str] = None
    sort: Optional[str] = None
    direction: str = DESC

    @classmethod
    def build(cls, page=1, search=None, sort=None, direction=None, default_direction=DESC, per_page=15):
        try:
            page = int(page)
        except (TypeError, ValueError):
            page = 1
        search = search.strip() if isinstance(search, str) else None
        return cls(
            page=min(max(page, 1), MAX_PAGE),
            per_page=per_page,
            search=search or None,
            sort=sort or None,
            direction=normalize_direction(direction, default_direction),
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


@dataclass(frozen=True)
class RowPage:
    table: str
    rows: Tuple[Row, ...]
    columns: ColumnSet
    foreign_keys: ForeignKeyMap
    primary_key: Optional[str]
    total: int
    current_page: int
    per_page: int

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))

    @property
    def from_index(self) -> Optional[int]:
        if not self.rows:
            return None
        return (self.current_page - 1) * self.per_page + 1

    @property
    def to_index(self) -> Optional[int]:
        if not self.rows:
            return None
        return self.from_index + len(self.rows) - 1

    def pagination(self):
        return {
            "total": self.total,
            "per_page": self.per_page,
            "current_page": self.current_page,
            "last_page": self.last_page,
            "from": self.from_index,
            "to": self.to_index,
        }

    def to_dict(self):
        return {
            "table": self.table,
            "data": [jsonable_row(row) for row in self.rows],
            "columns": self.columns.to_list(),
            "foreign_keys": dict(self.foreign_keys),
            "primary_key": self.primary_key,
            "pagination": self.pagination(),
        }

    @classmethod
    def empty(cls, table: str = "", per_page: int = 15):
        return cls(
            table=table,
            rows=(),
            columns=ColumnSet(table, ()),
            foreign_keys={},
            primary_key=None,
            total=0,
            current_page=1,
            per_page=per_page,
        )


@dataclass(frozen=True)
class ConnectionStatus:
    connected: bool
    error: Optional[str] = None

    def to_dict(self):
        return {"connected": self.connected, "error": self.error}


def to_cell_value(value) -> CellValue:
    """Ubah nilai mentah dari driver jadi salah satu varian CellValue."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, decimal.Decimal):
        # Decimal integral tetap int, sisanya str biar presisi gak hilang
        if value == value.to_integral_value() and abs(value) < 2 ** 63:
            return int(value)
        return str(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return str(value)
    if isinstance(value, (set, frozenset)):
        # Kolom SET MySQL
        return ",".join(sorted(str(item) for item in value))
    if isinstance(value, (dict, list)):
        # Kolom JSON
        return json.dumps(value)
    return str(value)


def to_row(mapping) -> Row:
    return {str(key): to_cell_value(value) for key, value in mapping.items()}


def jsonable_cell(value: CellValue):
    """Bytes tidak bisa langsung masuk JSON, kirim sebagai base64."""
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    return value


def jsonable_row(row: Row):
    return {key: jsonable_cell(value) for key, value in row.items()}
