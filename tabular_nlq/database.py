from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from sqlalchemy import Column, Integer, MetaData, REAL, Table, Text, create_engine, inspect, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from tabular_nlq.config import Settings, get_settings
from tabular_nlq.errors import ExecutionFailure, ParameterError, StorageClosedError
from tabular_nlq.models.results import QueryResult
from tabular_nlq.models.schema import Schema
from tabular_nlq.services.type_mapper import to_storage_type, to_storage_value

logger = logging.getLogger(__name__)

QueryParams = Union[Mapping[str, Any], Sequence[Any], None]

_SAFE_TABLE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'")

_STORAGE_COLUMN_TYPES = {
    "TEXT": Text,
    "REAL": REAL,
    "INTEGER": Integer,
}


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    storage_type: str
    primary_key: bool = False
    nullable: bool = True


def validate_table_name(table: str) -> str:
    if not table or not _SAFE_TABLE.match(table):
        raise ParameterError(
            "Invalid table name; only letters, digits and underscores are allowed",
            "table",
            table,
        )
    return table


def escape_literal_colons(sql: str) -> str:
    """Escape colons inside string literals so ``text()`` does not read them as binds."""
    return _STRING_LITERAL.sub(lambda match: match.group(0).replace(":", "\\:"), sql)


def _redact(conn_str: str) -> str:
    # avoid logging credentials
    return conn_str.split("@", 1)[0] + "@…" if "@" in conn_str else conn_str


def build_engine(connection_string: str | None = None, settings: Settings | None = None) -> Engine:
    settings = settings or get_settings()
    conn_str = connection_string or settings.database.connection_string
    if not conn_str:
        raise ValueError("Database connection string is required.")

    try:
        url = make_url(conn_str)
    except ArgumentError as exc:
        raise ValueError(f"Invalid database connection string: {_redact(conn_str)}") from exc

    backend = url.get_backend_name()
    driver = url.get_driver_name() or ""
    # Prefer psycopg v3 when a bare 'postgresql://' URL is given.
    if backend in {"postgresql", "postgres"} and driver in {"", "psycopg2", "psycopg2cffi"}:
        url = url.set(drivername="postgresql+psycopg")
        logger.info("Upgraded Postgres URL to psycopg v3 driver: %s", _redact(conn_str))

    if backend == "sqlite":
        return create_engine(url)
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=settings.database.pool_size,
        pool_timeout=settings.database.pool_timeout,
    )


def convert_value(value: Any) -> Any:
    """Convert a driver value to a JSON-friendly scalar."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return value


def convert_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: convert_value(value) for key, value in row.items()}


class StorageHandle:
    """A live connection to the relational store.

    All operations require the handle to be open; ``close`` disposes the
    engine and permanently invalidates the handle. There is no internal
    locking, so writes made by other processes are visible to the next read.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._location = _redact(str(engine.url))
        self._open = True
        logger.info("Storage opened: %s", self._location)

    @classmethod
    def open(cls, connection_string: str | None = None, settings: Settings | None = None) -> "StorageHandle":
        return cls(build_engine(connection_string, settings))

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    def close(self) -> None:
        if not self._open:
            return
        self._engine.dispose()
        self._open = False
        logger.info("Storage closed: %s", self._location)

    def __enter__(self) -> "StorageHandle":
        self._ensure_open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if not self._open:
            raise StorageClosedError(self._location)

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        self._ensure_open()
        with self._engine.connect() as conn:
            yield conn

    @contextmanager
    def begin(self) -> Iterator[Connection]:
        self._ensure_open()
        with self._engine.begin() as conn:
            yield conn

    def quote_identifier(self, name: str) -> str:
        return self._engine.dialect.identifier_preparer.quote_identifier(name)

    def execute_query(self, sql: str, params: QueryParams = None) -> QueryResult:
        """Run a SELECT statement and materialize its rows.

        Without params the text goes to the driver untouched. Mapping params
        bind by name (``:name``, colons inside literals are not parameters);
        sequence params bind positionally in the driver's paramstyle.
        """
        self._ensure_open()
        if not sql.strip().upper().startswith("SELECT"):
            raise ExecutionFailure(sql, "Only SELECT statements may be executed")

        logger.debug("Executing query: %s", sql[:200])
        try:
            with self._engine.connect() as conn:
                if params is None:
                    result = conn.exec_driver_sql(sql)
                elif isinstance(params, Mapping):
                    result = conn.execute(text(escape_literal_colons(sql)), dict(params))
                else:
                    result = conn.exec_driver_sql(sql, tuple(params))
                rows = [convert_row(row._mapping) for row in result]
        except SQLAlchemyError as exc:
            raise ExecutionFailure(sql, str(getattr(exc, "orig", None) or exc)) from exc

        logger.debug("Query returned %d rows", len(rows))
        return QueryResult(rows=rows, row_count=len(rows), sql=sql)

    def get_columns(self, table: str) -> List[ColumnInfo]:
        validate_table_name(table)
        self._ensure_open()
        try:
            with self._engine.connect() as conn:
                columns = inspect(conn).get_columns(table)
        except SQLAlchemyError as exc:
            raise ExecutionFailure(f"<inspect {table}>", str(exc)) from exc
        return [
            ColumnInfo(
                name=column["name"],
                storage_type=str(column["type"]),
                primary_key=bool(column.get("primary_key")),
                nullable=bool(column.get("nullable", True)),
            )
            for column in columns
        ]

    def table_exists(self, table: str) -> bool:
        self._ensure_open()
        with self._engine.connect() as conn:
            return inspect(conn).has_table(table)

    def row_count(self, table: str) -> int:
        validate_table_name(table)
        result = self.execute_query(f"SELECT COUNT(*) AS count FROM {self.quote_identifier(table)}")
        return int(result.rows[0]["count"]) if result.rows else 0

    def create_table_from_schema(self, schema: Schema, table: str) -> None:
        """Create ``table`` with an auto-increment ``id`` plus one column per attribute."""
        validate_table_name(table)
        columns = [Column("id", Integer, primary_key=True, autoincrement=True)]
        for name, attribute in schema.properties.items():
            if name.lower() == "id":
                logger.debug("Skipping attribute 'id'; it conflicts with the primary key")
                continue
            column_type = _STORAGE_COLUMN_TYPES[to_storage_type(attribute.type)]
            columns.append(Column(name, column_type, nullable=not schema.is_required(name)))

        metadata = MetaData()
        Table(table, metadata, *columns)
        try:
            with self.begin() as conn:
                metadata.create_all(conn, checkfirst=True)
        except SQLAlchemyError as exc:
            raise ExecutionFailure(f"<create {table}>", str(exc)) from exc
        logger.info("Table %s created with %d columns", table, len(columns))

    def insert_records(self, records: Sequence[Mapping[str, Any]], table: str) -> int:
        """Insert records in a single transaction; booleans are stored as 0/1."""
        validate_table_name(table)
        if not records:
            logger.debug("No records to insert")
            return 0

        keys = list(records[0].keys())
        payload = [{key: to_storage_value(record.get(key)) for key in keys} for record in records]
        try:
            with self.begin() as conn:
                target = Table(table, MetaData(), autoload_with=conn)
                conn.execute(target.insert(), payload)
        except SQLAlchemyError as exc:
            raise ExecutionFailure(f"<insert {table}>", str(exc)) from exc
        logger.info("Inserted %d records into %s", len(payload), table)
        return len(payload)

    def drop_table(self, table: str) -> None:
        validate_table_name(table)
        try:
            with self.begin() as conn:
                conn.execute(text(f"DROP TABLE IF EXISTS {self.quote_identifier(table)}"))
        except SQLAlchemyError as exc:
            raise ExecutionFailure(f"<drop {table}>", str(exc)) from exc
        logger.info("Table %s dropped", table)


def open_storage(connection_string: Optional[str] = None, settings: Settings | None = None) -> StorageHandle:
    return StorageHandle.open(connection_string, settings)
