import asyncio

import pytest

from fakes import make_booking
from punchin.app import run_sync
from punchin.app.core import db
from punchin.app.services.sync_services import AvailabilitySynchronizer


@pytest.fixture(autouse=True)
def _quiet(monkeypatch):
    async def _dispose():
        return None

    monkeypatch.setattr(run_sync, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(run_sync, "dispose_engine", _dispose)


def test_sync_once_command(store, monkeypatch, capsys):
    monkeypatch.setattr(run_sync, "_build", lambda: (store, AvailabilitySynchronizer(store)))

    asyncio.run(store.create_booking(make_booking()))

    assert run_sync.main(["sync-once"]) == 0
    assert "Handled 1 booking change(s)." in capsys.readouterr().out
    assert len(store.holds_for("bk-1")) == 2


def test_worker_refuses_when_disabled(monkeypatch):
    monkeypatch.setattr(run_sync, "SYNC_WORKER_ENABLED", False)
    assert run_sync.main([]) == 1
    assert run_sync.main(["worker"]) == 1


def test_init_db_command(monkeypatch, tmp_path):
    pytest.importorskip("aiosqlite")
    db._reset_engine_for_tests()
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setattr(run_sync, "dispose_engine", db.dispose_engine)

    assert run_sync.main(["init-db"]) == 0
    assert (tmp_path / "cli.db").exists()
    assert db._engine is None
