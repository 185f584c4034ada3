"""
Relational store access for users and questions.

Two implementations share the `RelationalClient` interface: a SQLAlchemy
client for Postgres (or SQLite in tests) and an in-memory test double.
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Protocol, Sequence

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    String,
    Text,
    and_,
    create_engine,
    func,
    select,
    update as sql_update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from famhub.errors import AdapterError, NotFoundError

logger = logging.getLogger(__name__)

USERS_TABLE = "users"
QUESTIONS_TABLE = "questions"


@dataclass(frozen=True)
class Embed:
    """
    Declares a joined projection to attach to a returned row.

    The row's `foreign_key` value is matched against `table.id` and the listed
    `columns` of that related row are embedded under `key`.
    """

    key: str
    table: str
    foreign_key: str
    columns: Sequence[str]


QUESTION_AUTHOR = Embed(
    key="user",
    table=USERS_TABLE,
    foreign_key="user_id",
    columns=("id", "first_name", "last_name"),
)


class RelationalClient(Protocol):
    """Interface for relational store access."""

    def fetch_single(self, table: str, filters: Mapping[str, Any]) -> dict:
        ...

    def update(
        self,
        table: str,
        filters: Mapping[str, Any],
        patch: Mapping[str, Any],
        *,
        embed: Iterable[Embed] = (),
    ) -> dict:
        ...

    def insert(self, table: str, record: Mapping[str, Any]) -> None:
        ...

    def increment(
        self,
        table: str,
        filters: Mapping[str, Any],
        column: str,
        *,
        embed: Iterable[Embed] = (),
    ) -> dict:
        ...


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


Base = declarative_base()


class UserRow(Base):
    __tablename__ = USERS_TABLE

    id = Column(String, primary_key=True, default=_new_id)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    password = Column(String, nullable=True)
    status = Column(String, nullable=False, default="Validating")
    role = Column(String, nullable=True)
    persona = Column(String, nullable=True)
    created_at = Column(String, nullable=False, default=_utc_now_iso)


class QuestionRow(Base):
    __tablename__ = QUESTIONS_TABLE

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, ForeignKey(f"{USERS_TABLE}.id"), nullable=False, index=True)
    question = Column(Text, nullable=False)
    file_url = Column(String, nullable=True)
    like_count = Column(Integer, nullable=True, default=0)
    comment_count = Column(Integer, nullable=True, default=0)
    media_type = Column(String, nullable=True)
    folder_path = Column(String, nullable=True)
    created_at = Column(String, nullable=False, default=_utc_now_iso)


class SqlRelationalClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    Every operation runs in its own transaction, so a patch either lands
    completely or not at all.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlRelationalClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        self._schema_ready = False

    def _ensure_schema(self) -> None:
        # Deferred to the first operation so construction never connects.
        if not self._schema_ready:
            Base.metadata.create_all(self.engine)
            self._schema_ready = True

    def _table(self, name: str):
        table = Base.metadata.tables.get(name)
        if table is None:
            raise AdapterError(
                f"Unknown table: {name}",
                details={"code": "42P01", "message": f'relation "{name}" does not exist'},
            )
        return table

    def _where(self, table, filters: Mapping[str, Any]):
        if not filters:
            raise AdapterError("A filter is required")
        clauses = []
        for column, value in filters.items():
            if column not in table.c:
                raise AdapterError(
                    f"Unknown column {column} on {table.name}",
                    details={"code": "42703", "column": column},
                )
            clauses.append(table.c[column] == value)
        return and_(*clauses)

    def _check_columns(self, table, values: Mapping[str, Any]) -> None:
        unknown = [name for name in values if name not in table.c]
        if unknown:
            raise AdapterError(
                f"Unknown column(s) on {table.name}: {', '.join(unknown)}",
                details={"code": "42703", "columns": unknown},
            )

    def _select_single(self, session: Session, table, filters: Mapping[str, Any]) -> dict:
        rows = (
            session.execute(select(table).where(self._where(table, filters)).limit(2))
            .mappings()
            .all()
        )
        if not rows:
            raise NotFoundError(
                f"No {table.name} row matches {dict(filters)}",
                details={"table": table.name, "filters": dict(filters)},
            )
        if len(rows) > 1:
            raise AdapterError(
                f"Multiple {table.name} rows match {dict(filters)}",
                details={"table": table.name, "filters": dict(filters)},
            )
        return dict(rows[0])

    def _embed(self, session: Session, row: dict, embed: Iterable[Embed]) -> dict:
        for join in embed:
            related = self._table(join.table)
            self._check_columns(related, {name: None for name in join.columns})
            fk_value = row.get(join.foreign_key)
            if fk_value is None:
                row[join.key] = None
                continue
            columns = [related.c[name] for name in join.columns]
            match = (
                session.execute(select(*columns).where(related.c.id == fk_value))
                .mappings()
                .first()
            )
            row[join.key] = dict(match) if match else None
        return row

    def _run(self, operation: str, fn):
        try:
            self._ensure_schema()
            with self.Session.begin() as session:
                return fn(session)
        except (AdapterError, NotFoundError):
            raise
        except IntegrityError as exc:
            logger.warning("Relational %s rejected: %s", operation, exc.orig)
            raise AdapterError(
                f"{operation} violated a constraint",
                details={"code": "23505", "message": str(exc.orig)},
            ) from exc
        except SQLAlchemyError as exc:
            raise AdapterError(
                f"{operation} failed", details={"message": str(exc)}
            ) from exc

    def fetch_single(self, table: str, filters: Mapping[str, Any]) -> dict:
        target = self._table(table)
        return self._run("fetch", lambda session: self._select_single(session, target, filters))

    def update(
        self,
        table: str,
        filters: Mapping[str, Any],
        patch: Mapping[str, Any],
        *,
        embed: Iterable[Embed] = (),
    ) -> dict:
        target = self._table(table)
        self._check_columns(target, patch)

        def _do(session: Session) -> dict:
            result = session.execute(
                sql_update(target).where(self._where(target, filters)).values(**patch)
            )
            if result.rowcount == 0:
                raise NotFoundError(
                    f"No {target.name} row matches {dict(filters)}",
                    details={"table": target.name, "filters": dict(filters)},
                )
            row = self._select_single(session, target, filters)
            return self._embed(session, row, embed)

        return self._run("update", _do)

    def increment(
        self,
        table: str,
        filters: Mapping[str, Any],
        column: str,
        *,
        embed: Iterable[Embed] = (),
    ) -> dict:
        target = self._table(table)
        self._check_columns(target, {column: None})

        def _do(session: Session) -> dict:
            result = session.execute(
                sql_update(target)
                .where(self._where(target, filters))
                .values({column: func.coalesce(target.c[column], 0) + 1})
            )
            if result.rowcount == 0:
                raise NotFoundError(
                    f"No {target.name} row matches {dict(filters)}",
                    details={"table": target.name, "filters": dict(filters)},
                )
            row = self._select_single(session, target, filters)
            return self._embed(session, row, embed)

        return self._run("increment", _do)

    def insert(self, table: str, record: Mapping[str, Any]) -> None:
        target = self._table(table)
        self._check_columns(target, record)
        self._run("insert", lambda session: session.execute(target.insert().values(**record)))


# Defaults applied on insert by the in-memory client, mirroring the SQL columns.
_IN_MEMORY_DEFAULTS = {
    USERS_TABLE: {"status": "Validating", "password": None, "role": None, "persona": None},
    QUESTIONS_TABLE: {
        "file_url": None,
        "like_count": 0,
        "comment_count": 0,
        "media_type": None,
        "folder_path": None,
    },
}
_UNIQUE_COLUMNS = {USERS_TABLE: ("id", "email"), QUESTIONS_TABLE: ("id",)}
_KNOWN_COLUMNS = {name: frozenset(table.c.keys()) for name, table in Base.metadata.tables.items()}


class InMemoryRelationalClient:
    """Simple in-memory relational store for development and tests."""

    def __init__(self):
        self.tables: Dict[str, Dict[str, dict]] = {name: {} for name in _KNOWN_COLUMNS}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        for rows in self.tables.values():
            rows.clear()

    def _rows(self, table: str) -> Dict[str, dict]:
        rows = self.tables.get(table)
        if rows is None:
            raise AdapterError(
                f"Unknown table: {table}",
                details={"code": "42P01", "message": f'relation "{table}" does not exist'},
            )
        return rows

    def _check_columns(self, table: str, values: Iterable[str]) -> None:
        self._rows(table)
        unknown = [name for name in values if name not in _KNOWN_COLUMNS[table]]
        if unknown:
            raise AdapterError(
                f"Unknown column(s) on {table}: {', '.join(unknown)}",
                details={"code": "42703", "columns": unknown},
            )

    def _matching(self, table: str, filters: Mapping[str, Any]) -> list[dict]:
        if not filters:
            raise AdapterError("A filter is required")
        self._check_columns(table, filters)
        return [
            row
            for row in self._rows(table).values()
            if all(row.get(column) == value for column, value in filters.items())
        ]

    def _single(self, table: str, filters: Mapping[str, Any]) -> dict:
        matches = self._matching(table, filters)
        if not matches:
            raise NotFoundError(
                f"No {table} row matches {dict(filters)}",
                details={"table": table, "filters": dict(filters)},
            )
        if len(matches) > 1:
            raise AdapterError(
                f"Multiple {table} rows match {dict(filters)}",
                details={"table": table, "filters": dict(filters)},
            )
        return matches[0]

    def _embed(self, row: dict, embed: Iterable[Embed]) -> dict:
        result = copy.deepcopy(row)
        for join in embed:
            related = self._rows(join.table).get(row.get(join.foreign_key))
            result[join.key] = (
                {name: related.get(name) for name in join.columns} if related else None
            )
        return result

    def fetch_single(self, table: str, filters: Mapping[str, Any]) -> dict:
        return copy.deepcopy(self._single(table, filters))

    def update(
        self,
        table: str,
        filters: Mapping[str, Any],
        patch: Mapping[str, Any],
        *,
        embed: Iterable[Embed] = (),
    ) -> dict:
        self._check_columns(table, patch)
        row = self._single(table, filters)
        row.update(copy.deepcopy(dict(patch)))
        return self._embed(row, embed)

    def increment(
        self,
        table: str,
        filters: Mapping[str, Any],
        column: str,
        *,
        embed: Iterable[Embed] = (),
    ) -> dict:
        self._check_columns(table, [column])
        row = self._single(table, filters)
        row[column] = (row.get(column) or 0) + 1
        return self._embed(row, embed)

    def insert(self, table: str, record: Mapping[str, Any]) -> None:
        rows = self._rows(table)
        self._check_columns(table, record)
        row = {**_IN_MEMORY_DEFAULTS.get(table, {}), **copy.deepcopy(dict(record))}
        row.setdefault("id", _new_id())
        row.setdefault("created_at", _utc_now_iso())
        for column in _UNIQUE_COLUMNS.get(table, ("id",)):
            value = row.get(column)
            if value is not None and any(
                existing.get(column) == value for existing in rows.values()
            ):
                raise AdapterError(
                    f"duplicate key value violates unique constraint on {table}.{column}",
                    details={"code": "23505", "column": column},
                )
        rows[row["id"]] = row
