from __future__ import annotations

from pathlib import Path

import pytest

from dora import create_app
from dora.extensions import db
from dora.store import RelationalStore


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "dora_test.sqlite"


@pytest.fixture()
def app(db_path: Path):
    app = create_app({
        "TESTING": True,
        "DORA_DATABASE": str(db_path),
        "DORA_LOG_LEVEL": "DEBUG",
    })
    with app.app_context():
        RelationalStore().create_schema()
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture()
def store(app) -> RelationalStore:
    return RelationalStore()


@pytest.fixture()
def client(app):
    return app.test_client()
