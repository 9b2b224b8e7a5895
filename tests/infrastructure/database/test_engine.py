"""Tests for database engine setup and initialization."""

from pathlib import Path

from sqlalchemy import inspect, text

from worldvar.infrastructure.database.engine import create_db_engine, init_database


class TestCreateDbEngine:
    def test_wal_mode_enabled(self, tmp_path: Path) -> None:
        engine = create_db_engine(tmp_path / "test.db")
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA journal_mode")).scalar() == "wal"
        engine.dispose()


class TestInitDatabase:
    def test_creates_parent_and_table(self, tmp_path: Path) -> None:
        db_path = tmp_path / ".worldvar" / "worldvar.db"
        engine = init_database(db_path)
        assert db_path.exists()
        assert "variable_trees" in inspect(engine).get_table_names()
        engine.dispose()

    def test_idempotent(self, tmp_path: Path) -> None:
        db_path = tmp_path / "worldvar.db"
        init_database(db_path).dispose()
        engine = init_database(db_path)
        columns = {c["name"] for c in inspect(engine).get_columns("variable_trees")}
        assert columns == {"selector", "payload", "revision", "updated"}
        engine.dispose()
