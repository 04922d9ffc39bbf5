from __future__ import annotations

import logging
import os
from collections import defaultdict
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    and_,
    create_engine,
    insert,
    or_,
    select,
    update,
)

from feature_state.backends.base import FeatureRecord, Pair, PersistenceBackend
from feature_state.metrics import backend_timer

# Import SQLAlchemy types only during type checking
if TYPE_CHECKING:
    from sqlalchemy.engine import Engine
    from sqlalchemy.sql.elements import ColumnElement

_log = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Schema
# -----------------------------------------------------------------------------


def features_table(metadata: MetaData, name: str = "features") -> Table:
    """Build the features table on ``metadata``.

    The unique constraint covers ``(name, scope)``. Most dialects treat NULLs
    as distinct inside unique constraints, so global (``scope IS NULL``) rows
    are only unique by convention.
    """
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("name", String(255), nullable=False),
        Column("scope", String(255), nullable=True),
        Column("value", LargeBinary, nullable=False),
        Column("created_at", DateTime(timezone=True), nullable=False),
        Column("updated_at", DateTime(timezone=True), nullable=False),
        UniqueConstraint("name", "scope", name=f"uq_{name}_name_scope"),
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_sqlite_dir(dsn: str) -> None:
    # If using local SQLite, ensure the directory exists.
    if dsn.startswith("sqlite:///") and not dsn.endswith(":memory:"):
        path = dsn.replace("sqlite:///", "", 1)
        dir_ = os.path.dirname(path or ".")
        if dir_:
            os.makedirs(dir_, exist_ok=True)


# -----------------------------------------------------------------------------
# Backend
# -----------------------------------------------------------------------------


class SqlBackend(PersistenceBackend):
    """SQLAlchemy Core backend.

    Every method runs in its own ``engine.begin()`` transaction; database
    errors (``IntegrityError`` on a duplicate pair, connectivity failures)
    propagate to the caller untouched.
    """

    name = "sql"

    def __init__(
        self,
        engine: "Engine",
        *,
        table_name: str = "features",
        autocreate: bool = False,
    ) -> None:
        self.engine = engine
        self.metadata = MetaData()
        self.table = features_table(self.metadata, table_name)
        if autocreate:
            self.create_schema()

    @classmethod
    def from_dsn(
        cls,
        dsn: str,
        *,
        table_name: str = "features",
        autocreate: bool = True,
    ) -> "SqlBackend":
        _ensure_sqlite_dir(dsn)
        eng = create_engine(dsn, future=True, pool_pre_ping=True)
        return cls(eng, table_name=table_name, autocreate=autocreate)

    def create_schema(self) -> None:
        self.metadata.create_all(self.engine)
        _log.debug("feature table %s ready", self.table.name)

    # -- helpers -----------------------------------------------------------

    def _scope_matches(self, scope_key: Optional[str]) -> "ColumnElement[bool]":
        col = self.table.c.scope
        return col.is_(None) if scope_key is None else col == scope_key

    def _pair_clause(self, name: str, scope_key: Optional[str]) -> "ColumnElement[bool]":
        return and_(self.table.c.name == name, self._scope_matches(scope_key))

    def _batch_clause(self, pairs: Sequence[Pair]) -> "ColumnElement[bool]":
        # Group by feature so the predicate depth tracks the number of
        # features, not the number of pairs.
        by_name: Dict[str, Dict[Optional[str], None]] = defaultdict(dict)
        for name, scope_key in pairs:
            by_name[name].setdefault(scope_key, None)

        clauses = []
        c = self.table.c
        for name, keys in by_name.items():
            scoped = [k for k in keys if k is not None]
            scope_terms = []
            if scoped:
                scope_terms.append(c.scope.in_(scoped))
            if None in keys:
                scope_terms.append(c.scope.is_(None))
            clauses.append(and_(c.name == name, or_(*scope_terms)))
        return or_(*clauses)

    @staticmethod
    def _to_record(row: Any) -> FeatureRecord:
        return FeatureRecord(row.name, row.scope, bytes(row.value))

    # -- PersistenceBackend ------------------------------------------------

    def lookup_one(self, name: str, scope_key: Optional[str]) -> Optional[FeatureRecord]:
        t = self.table
        stmt = (
            select(t.c.name, t.c.scope, t.c.value)
            .where(self._pair_clause(name, scope_key))
            .order_by(t.c.id.asc())
            .limit(1)
        )
        with backend_timer(self.name, "lookup_one"), self.engine.begin() as cx:
            row = cx.execute(stmt).first()
        return self._to_record(row) if row is not None else None

    def lookup_many(self, pairs: Sequence[Pair]) -> List[FeatureRecord]:
        if not pairs:
            return []
        t = self.table
        stmt = (
            select(t.c.name, t.c.scope, t.c.value)
            .where(self._batch_clause(pairs))
            .order_by(t.c.id.asc())
        )
        with backend_timer(self.name, "lookup_many"), self.engine.begin() as cx:
            rows = list(cx.execute(stmt))
        return [self._to_record(r) for r in rows]

    def insert_one(self, name: str, scope_key: Optional[str], value: bytes) -> None:
        now = _utcnow()
        payload = {
            "name": name,
            "scope": scope_key,
            "value": value,
            "created_at": now,
            "updated_at": now,
        }
        with backend_timer(self.name, "insert_one"), self.engine.begin() as cx:
            cx.execute(insert(self.table).values(**payload))

    def insert_many(self, records: Sequence[FeatureRecord]) -> None:
        if not records:
            return
        now = _utcnow()
        rows = [
            {
                "name": r.name,
                "scope": r.scope_key,
                "value": r.value,
                "created_at": now,
                "updated_at": now,
            }
            for r in records
        ]
        with backend_timer(self.name, "insert_many"), self.engine.begin() as cx:
            cx.execute(insert(self.table), rows)

    def update_one(self, name: str, scope_key: Optional[str], value: bytes) -> bool:
        stmt = (
            update(self.table)
            .where(self._pair_clause(name, scope_key))
            .values(value=value, updated_at=_utcnow())
        )
        with backend_timer(self.name, "update_one"), self.engine.begin() as cx:
            res = cx.execute(stmt)
            return int(res.rowcount or 0) > 0

    def dispose(self) -> None:
        self.engine.dispose()


__all__ = ["SqlBackend", "features_table"]
