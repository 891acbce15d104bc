from pathlib import Path

import pytest
from sqlalchemy import func, text
from sqlalchemy.exc import OperationalError

from dora.extensions import db
from dora.models import Entitlement, Library, MachService, Service, ServiceEntitlement, ServiceLibrary, Symbol
from dora.store import (
    SCHEMA_GENERATION,
    RelationalStore,
    StoreError,
    StoreState,
    discard_store,
    library_name,
    open_readonly_engine,
    store_state,
)
from dora.values import TaggedValue


def _count(model) -> int:
    return db.session.query(func.count()).select_from(model).scalar()


def test_get_or_create_is_idempotent(store: RelationalStore) -> None:
    first = store.get_or_create("entitlement", ["name"], ["com.apple.private.tcc.allow"])
    second = store.get_or_create("entitlement", ["name"], ["com.apple.private.tcc.allow"])
    other = store.get_or_create("entitlement", ["name"], ["com.apple.security.app-sandbox"])
    store.commit()

    assert first == second
    assert other != first
    assert _count(Entitlement) == 2


def test_get_or_create_rejects_mismatched_columns(store: RelationalStore) -> None:
    with pytest.raises(StoreError):
        store.get_or_create("symbol", ["name"], ["_a", "_b"])


def test_unknown_table_is_a_store_error(store: RelationalStore) -> None:
    with pytest.raises(StoreError):
        store.get_or_create("nonexistent", ["name"], ["x"])


def test_conflict_on_other_unique_column_is_a_store_error(store: RelationalStore) -> None:
    store.save_service("com.example.a", "/usr/bin/a", descriptor_path="/L/a.plist")
    # descriptor_path conflicts, label does not exist: no row to resolve to
    with pytest.raises(StoreError):
        store.save_service("com.example.b", "/usr/bin/b", descriptor_path="/L/a.plist")


def test_service_identity_is_the_label(store: RelationalStore) -> None:
    first = store.save_service("com.example.foo", "/usr/bin/foo")
    second = store.save_service("com.example.foo", "/usr/local/bin/foo")
    store.commit()

    assert first == second
    row = db.session.get(Service, first)
    # first write wins, rows are never updated
    assert row.path == "/usr/bin/foo"
    assert row.run_as_user is None


def test_join_rows_are_deduplicated(store: RelationalStore) -> None:
    service_id = store.save_service("com.example.foo", "/usr/bin/foo")
    for _ in range(2):
        store.save_entitlements(service_id, {"com.apple.security.app-sandbox": TaggedValue.of(True)})
        store.save_dependencies(service_id, ["/usr/lib/libSystem.B.dylib"])
        store.save_symbols(service_id, ["_CFRelease"])
        store.save_mach_endpoints(service_id, {"com.example.mach": TaggedValue.of(True)})
    store.commit()

    assert _count(ServiceEntitlement) == 1
    assert _count(ServiceLibrary) == 1
    assert _count(MachService) == 1
    assert _count(Symbol) == 1


def test_values_are_rendered_on_write(store: RelationalStore) -> None:
    service_id = store.save_service("com.example.foo", "/usr/bin/foo")
    store.save_entitlements(service_id, {
        "com.apple.private.tcc.allow": TaggedValue.of(["kTCCServiceCamera", "kTCCServiceMicrophone"]),
        "com.apple.developer.team-identifier": "ABCDE12345",
    })
    store.save_mach_endpoints(service_id, {"com.example.mach": True})
    store.commit()

    values = dict(
        db.session.query(Entitlement.name, ServiceEntitlement.value)
        .join(ServiceEntitlement, ServiceEntitlement.entitlement_id == Entitlement.id)
        .all()
    )
    assert values == {
        "com.apple.private.tcc.allow": '"kTCCServiceCamera", "kTCCServiceMicrophone"',
        "com.apple.developer.team-identifier": "ABCDE12345",
    }
    assert db.session.query(MachService.value).scalar() == "true"


def test_library_rows_carry_the_file_name(store: RelationalStore) -> None:
    first = store.save_service("com.example.a", "/usr/bin/a")
    second = store.save_service("com.example.b", "/usr/bin/b")
    store.save_dependencies(first, ["/usr/lib/libSystem.B.dylib"])
    store.save_dependencies(second, ["/usr/lib/libSystem.B.dylib"])
    store.commit()

    library = db.session.query(Library).one()
    assert library.name == "libSystem.B.dylib"
    assert _count(ServiceLibrary) == 2


def test_library_name() -> None:
    assert library_name("/usr/lib/libSystem.B.dylib") == "libSystem.B.dylib"
    assert library_name("@rpath/Foo.framework/Foo") == "Foo"
    assert library_name("libbare.dylib") == "libbare.dylib"


# ── Generation stamp ────────────────────────────────────────────────

def test_missing_store(tmp_path: Path) -> None:
    assert store_state(str(tmp_path / "absent.sqlite")) is StoreState.MISSING


def test_schema_without_stamp_is_stale(store: RelationalStore, db_path: Path) -> None:
    store.save_service("com.example.foo", "/usr/bin/foo")
    store.commit()
    assert store.generation() == 0
    assert store_state(str(db_path)) is StoreState.STALE


def test_mark_complete_makes_store_current(store: RelationalStore, db_path: Path) -> None:
    store.mark_complete()
    assert store.generation() == SCHEMA_GENERATION
    assert store_state(str(db_path)) is StoreState.CURRENT


def test_foreign_file_is_stale(tmp_path: Path) -> None:
    path = tmp_path / "dora_other.sqlite"
    path.write_text("not a database, just text padding " * 10)
    assert store_state(str(path)) is StoreState.STALE


def test_discard_store_removes_side_files(tmp_path: Path) -> None:
    path = tmp_path / "dora_old.sqlite"
    for name in ("dora_old.sqlite", "dora_old.sqlite-wal", "dora_old.sqlite-shm"):
        (tmp_path / name).write_bytes(b"")
    discard_store(str(path))
    assert list(tmp_path.iterdir()) == []


def test_readonly_engine_refuses_writes(store: RelationalStore, db_path: Path) -> None:
    store.save_service("com.example.foo", "/usr/bin/foo")
    store.mark_complete()

    engine = open_readonly_engine(str(db_path))
    try:
        with engine.connect() as conn:
            assert conn.execute(text("SELECT label FROM service")).scalar() == "com.example.foo"
            with pytest.raises(OperationalError):
                conn.execute(text("DELETE FROM service"))
    finally:
        engine.dispose()


def test_discard_store_leaves_directories_alone(tmp_path: Path) -> None:
    path = tmp_path / "dora_dir.sqlite"
    path.mkdir()
    discard_store(str(path))
    assert path.is_dir()
