import logging
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import Table, and_, delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models  # noqa: F401  registers tables on Base.metadata
from .database import Base
from .errors import ConflictError, ConstraintError, PersistenceError

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    # psycopg2 exposes pgcode, psycopg 3 sqlstate; SQLite only has the message
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code:
        return code == UNIQUE_VIOLATION
    return "unique constraint" in str(orig).lower()


def _row_to_dict(row: Any) -> dict[str, Any]:
    out = dict(row)
    for key, value in out.items():
        # SQLite hands back naive datetimes; everything is stored as UTC
        if isinstance(value, datetime):
            out[key] = as_utc(value)
    return out


class SqlStore:
    """
    Persistence port over the SQLAlchemy tables in ``models``.

    ``kind`` is a table name. Lookups return ``None`` for a missing row, unique
    constraint violations surface as ``ConflictError``, other integrity
    violations (foreign key, NOT NULL) as ``ConstraintError`` and any other
    driver failure as ``PersistenceError``.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _table(self, kind: str) -> Table:
        try:
            return Base.metadata.tables[kind]
        except KeyError:
            raise ValueError(f"Unknown entity kind: {kind}") from None

    def _where(self, table: Table, criteria: dict[str, Any]):
        clauses = []
        for column, value in criteria.items():
            if column not in table.c:
                raise ValueError(f"Unknown column {table.name}.{column}")
            clauses.append(table.c[column] == value)
        return and_(*clauses)

    def _fetch_one(self, stmt, kind: str) -> dict[str, Any] | None:
        try:
            with self._session_factory() as db:
                row = db.execute(stmt).mappings().first()
        except SQLAlchemyError as exc:
            logger.exception(f"[repo] lookup failed kind={kind}")
            raise PersistenceError() from exc
        return _row_to_dict(row) if row else None

    def _fetch_all(self, stmt, kind: str) -> list[dict[str, Any]]:
        try:
            with self._session_factory() as db:
                rows = db.execute(stmt).mappings().all()
        except SQLAlchemyError as exc:
            logger.exception(f"[repo] listing failed kind={kind}")
            raise PersistenceError() from exc
        return [_row_to_dict(r) for r in rows]

    def _write(self, stmt, kind: str):
        try:
            with self._session_factory() as db:
                result = db.execute(stmt)
                db.commit()
                return result
        except IntegrityError as exc:
            if is_unique_violation(exc):
                logger.info(f"[repo] unique constraint hit kind={kind}")
                raise ConflictError() from exc
            logger.warning(f"[repo] integrity violation kind={kind}: {exc.orig}")
            raise ConstraintError() from exc
        except SQLAlchemyError as exc:
            logger.exception(f"[repo] write failed kind={kind}")
            raise PersistenceError() from exc

    def find_by_id(self, kind: str, row_id: int) -> dict[str, Any] | None:
        return self.find_one_where(kind, id=row_id)

    def find_one_where(self, kind: str, **criteria: Any) -> dict[str, Any] | None:
        table = self._table(kind)
        stmt = select(table).where(self._where(table, criteria)).limit(1)
        return self._fetch_one(stmt, kind)

    def find_all_where(self, kind: str, order_by: str = "id", descending: bool = False, **criteria: Any) -> list[dict[str, Any]]:
        table = self._table(kind)
        order_col = table.c[order_by]
        stmt = select(table).order_by(order_col.desc() if descending else order_col.asc())
        if criteria:
            stmt = stmt.where(self._where(table, criteria))
        return self._fetch_all(stmt, kind)

    def insert(self, kind: str, values: dict[str, Any]) -> int:
        table = self._table(kind)
        result = self._write(insert(table).values(**values), kind)
        return int(result.inserted_primary_key[0])

    def update(self, kind: str, row_id: int, values: dict[str, Any], **expected: Any) -> int:
        """Update one row; ``expected`` column values make it a compare-and-set."""
        table = self._table(kind)
        stmt = update(table).where(self._where(table, {"id": row_id, **expected})).values(**values)
        return int(self._write(stmt, kind).rowcount or 0)

    def delete(self, kind: str, row_id: int) -> bool:
        table = self._table(kind)
        result = self._write(delete(table).where(table.c.id == row_id), kind)
        return bool(result.rowcount)

    def delete_where(self, kind: str, **criteria: Any) -> int:
        table = self._table(kind)
        result = self._write(delete(table).where(self._where(table, criteria)), kind)
        return int(result.rowcount or 0)

    def list_open_matches(self, now: datetime) -> list[dict[str, Any]]:
        matches = self._table("matches")
        stmt = (
            select(matches)
            .where(matches.c.status == "open", matches.c.match_time > as_utc(now))
            .order_by(matches.c.match_time.asc())
        )
        return self._fetch_all(stmt, "matches")

    def list_completed_matches_for_user(self, user_id: int) -> list[dict[str, Any]]:
        matches = self._table("matches")
        participants = self._table("match_participants")
        stmt = (
            select(matches)
            .join(participants, participants.c.match_id == matches.c.id)
            .where(participants.c.user_id == user_id, matches.c.status == "completed")
            .order_by(matches.c.match_time.desc())
        )
        return self._fetch_all(stmt, "matches")

    def close_elapsed_matches(self, now: datetime) -> int:
        matches = self._table("matches")
        stmt = (
            update(matches)
            .where(matches.c.status == "open", matches.c.match_time <= as_utc(now))
            .values(status="closed")
        )
        return int(self._write(stmt, "matches").rowcount or 0)

    def delete_expired_refresh_tokens(self, now: datetime | None = None) -> int:
        tokens = self._table("refresh_tokens")
        stmt = delete(tokens).where(tokens.c.expires_at <= as_utc(now or _now_utc()))
        return int(self._write(stmt, "refresh_tokens").rowcount or 0)

    def ping(self) -> None:
        try:
            with self._session_factory() as db:
                db.execute(select(1))
        except SQLAlchemyError as exc:
            raise PersistenceError() from exc

    def create_schema(self) -> None:
        with self._session_factory() as db:
            Base.metadata.create_all(db.get_bind())
