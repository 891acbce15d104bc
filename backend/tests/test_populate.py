from pathlib import Path

import pytest

import populate
from dora import create_app
from dora.host import is_valid_store_name
from dora.models import RUN_AS_ROOT, RUN_AS_STANDARD
from dora.scanner import ScanOrchestrator
from dora.store import NotAStoreError, StoreError, StoreState, store_state

from fakes import fake_capabilities, write_descriptor


def _orchestrator(tmp_path: Path) -> ScanOrchestrator:
    write_descriptor(tmp_path / "LaunchDaemons", "foo.plist", {"Label": "com.example.foo", "Program": "/usr/bin/foo"})
    return ScanOrchestrator(
        capabilities=fake_capabilities(identities={"/usr/bin/foo": "com.example.foo"}),
        descriptor_directories=[
            (str(tmp_path / "LaunchAgents"), RUN_AS_STANDARD),
            (str(tmp_path / "LaunchDaemons"), RUN_AS_ROOT),
        ],
        sweep_directories=[],
    )


class ExplodingOrchestrator:
    def run(self):
        raise StoreError("disk I/O error")


def test_missing_store_is_populated_and_stamped(tmp_path: Path) -> None:
    db_path = str(tmp_path / "dora_test.sqlite")

    stats = populate.populate(db_path, orchestrator=_orchestrator(tmp_path))

    assert stats.descriptors_loaded == 1
    assert store_state(db_path) is StoreState.CURRENT


def test_current_store_is_left_alone(tmp_path: Path) -> None:
    db_path = str(tmp_path / "dora_test.sqlite")
    populate.populate(db_path, orchestrator=_orchestrator(tmp_path))

    assert populate.populate(db_path, orchestrator=ExplodingOrchestrator()) is None
    assert store_state(db_path) is StoreState.CURRENT


def test_force_rebuilds_a_current_store(tmp_path: Path) -> None:
    db_path = str(tmp_path / "dora_test.sqlite")
    populate.populate(db_path, orchestrator=_orchestrator(tmp_path))

    stats = populate.populate(db_path, force=True, orchestrator=_orchestrator(tmp_path))

    assert stats is not None
    assert store_state(db_path) is StoreState.CURRENT


def test_stale_store_is_discarded_and_rebuilt(tmp_path: Path) -> None:
    db_path = tmp_path / "dora_test.sqlite"
    db_path.write_text("left over from an older build " * 20)

    stats = populate.populate(str(db_path), orchestrator=_orchestrator(tmp_path))

    assert stats.descriptors_loaded == 1
    assert store_state(str(db_path)) is StoreState.CURRENT


def test_store_error_leaves_store_unstamped(tmp_path: Path) -> None:
    db_path = str(tmp_path / "dora_test.sqlite")

    with pytest.raises(StoreError):
        populate.populate(db_path, orchestrator=ExplodingOrchestrator())

    assert store_state(db_path) is StoreState.STALE


def test_main_reports_store_error(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(ScanOrchestrator, "from_config", classmethod(lambda cls, config, store=None: ExplodingOrchestrator()))

    code = populate.main(["--db", str(tmp_path / "dora_test.sqlite")])

    assert code == 1
    assert "FAILED" in capsys.readouterr().err


def test_foreign_file_is_left_untouched(tmp_path: Path) -> None:
    notes = tmp_path / "notes.txt"
    notes.write_text("my important notes")

    with pytest.raises(NotAStoreError):
        populate.populate(str(notes), orchestrator=ExplodingOrchestrator())

    assert notes.read_text() == "my important notes"


def test_directory_with_store_name_is_refused(tmp_path: Path) -> None:
    directory = tmp_path / "dora_dir.sqlite"
    directory.mkdir()

    with pytest.raises(NotAStoreError):
        populate.populate(str(directory), orchestrator=ExplodingOrchestrator())

    assert directory.is_dir()


def test_main_refuses_foreign_path(tmp_path: Path, capsys) -> None:
    other_db = tmp_path / "someone_else.sqlite"
    other_db.write_bytes(b"SQLite format 3\x00")

    code = populate.main(["--db", str(other_db)])

    assert code == 2
    assert "Refusing" in capsys.readouterr().err
    assert other_db.read_bytes() == b"SQLite format 3\x00"


def test_default_database_name_is_a_store_name(monkeypatch) -> None:
    monkeypatch.delenv("DORA_DATABASE", raising=False)
    config = create_app({"SQLALCHEMY_DATABASE_URI": "sqlite://"}).config
    assert is_valid_store_name(Path(config["DORA_DATABASE"]).name)
