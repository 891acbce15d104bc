# dora/store.py
"""
Relational store for the service inventory.

Identity rows (service, entitlement, library, symbol) are only ever created
through get_or_create(), which is idempotent on the row's natural key:

    INSERT ... ON CONFLICT DO NOTHING
    SELECT id FROM <table> WHERE <first column> = <first value>

Whichever branch actually ran, equal first-column values always resolve to
the same id. Join rows (service_entitlement, service_library,
service_symbol) and mach endpoints are written with insert_ignore() and
need no identity.

Rows are never updated or deleted. A store is the artifact of exactly one
scan run; its freshness is recorded in PRAGMA user_version, which
mark_complete() sets to SCHEMA_GENERATION once the run succeeded.
"""

from __future__ import annotations

import logging
import os
import posixpath
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Sequence

from sqlalchemy import create_engine, event, select, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from dora.extensions import db
from dora.values import TaggedValue

logger = logging.getLogger(__name__)

# Bump whenever the schema or the meaning of stored values changes.
# Stores stamped with another generation are rebuilt.
SCHEMA_GENERATION = 1


class StoreError(Exception):
    """Schema violation or storage I/O failure. Fatal for a population run."""


class NotAStoreError(StoreError):
    """The path does not name a store file, so it is never created or discarded."""


class StoreState(Enum):
    MISSING = "missing"     # no store file
    STALE = "stale"         # file exists, but no completed run of this generation
    CURRENT = "current"     # completed run of SCHEMA_GENERATION


def library_name(library_path: str) -> str:
    """Final path segment: /usr/lib/libSystem.B.dylib → libSystem.B.dylib"""
    return posixpath.basename(library_path.rstrip("/")) or library_path


def _render(value: Any) -> str:
    if not isinstance(value, TaggedValue):
        value = TaggedValue.of(value)
    return value.render()


# ---------------------------------------------------------------------------
# Store files
# ---------------------------------------------------------------------------

def read_generation(path: str) -> int:
    engine = create_engine(f"sqlite:///{path}")
    try:
        with engine.connect() as conn:
            return int(conn.execute(text("PRAGMA user_version")).scalar() or 0)
    finally:
        engine.dispose()


def store_state(path: str) -> StoreState:
    """Population gate: only a CURRENT store is served without rebuilding."""
    if not os.path.exists(path):
        return StoreState.MISSING
    try:
        generation = read_generation(path)
    except SQLAlchemyError as e:
        logger.warning("Store %s is unreadable, treating as stale: %s", path, e)
        return StoreState.STALE
    if generation != SCHEMA_GENERATION:
        logger.info(
            "Store %s has generation %d, expected %d", path, generation, SCHEMA_GENERATION,
        )
        return StoreState.STALE
    return StoreState.CURRENT


def discard_store(path: str):
    """Remove a store file together with its WAL side files."""
    for candidate in (path, f"{path}-wal", f"{path}-shm"):
        if os.path.isfile(candidate):
            os.remove(candidate)
            logger.info("Removed %s", candidate)


def open_readonly_engine(path: str):
    """Engine for serving an already populated store. Every connection is query-only."""
    engine = create_engine(f"sqlite:///{path}")

    @event.listens_for(engine, "connect")
    def set_query_only(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA query_only=ON")
        cursor.close()

    return engine


# ---------------------------------------------------------------------------
# RelationalStore
# ---------------------------------------------------------------------------

class RelationalStore:
    """
    Write access to the inventory tables.

    Wraps a SQLAlchemy session (db.session by default, so it must be used
    inside an application context). Every SQLAlchemyError is re-raised as
    StoreError so callers only have one storage failure type to propagate.
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    # ── Schema ──────────────────────────────────────────────────────

    def create_schema(self):
        try:
            db.metadata.create_all(bind=self.session.get_bind())
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to create schema: {e}") from e

    def generation(self) -> int:
        try:
            return int(self.session.execute(text("PRAGMA user_version")).scalar() or 0)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read store generation: {e}") from e

    def mark_complete(self):
        """Stamp the store as a completed run of the current generation."""
        try:
            self.session.commit()
            self.session.execute(text(f"PRAGMA user_version = {int(SCHEMA_GENERATION)}"))
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreError(f"Failed to stamp store generation: {e}") from e

    # ── Primitives ──────────────────────────────────────────────────

    def _table(self, name: str):
        table = db.metadata.tables.get(name)
        if table is None:
            raise StoreError(f"Unknown table '{name}'")
        return table

    def get_or_create(self, table: str, columns: Sequence[str], values: Sequence[Any]) -> int:
        """
        Insert a row unless it conflicts with a unique key, then return the id
        of the row whose first column equals values[0].
        """
        if not columns or len(columns) != len(values):
            raise StoreError(
                f"get_or_create({table}): {len(columns)} columns but {len(values)} values"
            )

        t = self._table(table)
        row = dict(zip(columns, values))

        try:
            self.session.execute(sqlite_insert(t).values(row).on_conflict_do_nothing())
            identity = self.session.execute(
                select(t.c.id).where(t.c[columns[0]] == values[0])
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreError(f"get_or_create({table}, {columns[0]}={values[0]!r}) failed: {e}") from e

        if identity is None:
            # The insert was suppressed by a different unique column
            raise StoreError(
                f"get_or_create({table}): no row with {columns[0]}={values[0]!r} after insert"
            )
        return identity

    def insert_ignore(self, table: str, **values: Any):
        t = self._table(table)
        try:
            self.session.execute(sqlite_insert(t).values(values).on_conflict_do_nothing())
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreError(f"insert into {table} failed: {e}") from e

    def commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreError(f"Commit failed: {e}") from e

    # ── Domain writers ──────────────────────────────────────────────

    def save_service(
        self,
        label: str,
        path: str,
        run_as_user: Optional[str] = None,
        run_at_load: Optional[bool] = None,
        keep_alive: Optional[bool] = None,
        descriptor_path: Optional[str] = None,
    ) -> int:
        """Service identity is its label."""
        columns = ["label", "path"]
        values: list = [label, path]
        if descriptor_path is not None:
            columns += ["run_as_user", "run_at_load", "keep_alive", "descriptor_path"]
            values += [run_as_user, run_at_load, keep_alive, descriptor_path]
        return self.get_or_create("service", columns, values)

    def save_mach_endpoints(self, service_id: int, endpoints: Dict[str, Any]):
        for name, value in endpoints.items():
            self.insert_ignore(
                "mach_service", name=name, value=_render(value), service_id=service_id,
            )

    def save_entitlements(self, service_id: int, entitlements: Dict[str, Any]):
        for name, value in entitlements.items():
            entitlement_id = self.get_or_create("entitlement", ["name"], [name])
            self.insert_ignore(
                "service_entitlement",
                service_id=service_id,
                entitlement_id=entitlement_id,
                value=_render(value),
            )

    def save_dependencies(self, service_id: int, library_paths: Iterable[str]):
        for library_path in library_paths:
            library_id = self.get_or_create(
                "library", ["path", "name"], [library_path, library_name(library_path)],
            )
            self.insert_ignore("service_library", service_id=service_id, library_id=library_id)

    def save_symbols(self, service_id: int, symbols: Iterable[str]):
        for symbol in symbols:
            symbol_id = self.get_or_create("symbol", ["name"], [symbol])
            self.insert_ignore("service_symbol", service_id=service_id, symbol_id=symbol_id)
