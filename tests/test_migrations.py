import importlib.util
import pathlib

import pytest
import sqlalchemy as sa

from leadpilot.models import Base

MIGRATION = (
    pathlib.Path(__file__).resolve().parents[1]
    / "leadpilot"
    / "migrations"
    / "001_create_automation_tables.py"
)


class RecordingOp:
    """Stand-in for ``alembic.op`` capturing DDL calls."""

    def __init__(self) -> None:
        self.tables: dict[str, list[str]] = {}
        self.indexes: dict[str, tuple[str, tuple[str, ...], bool]] = {}
        self.dropped_tables: list[str] = []
        self.dropped_indexes: list[str] = []

    def create_table(self, name, *elements, **kwargs):
        self.tables[name] = [el.name for el in elements if isinstance(el, sa.Column)]

    def create_index(self, name, table, columns, unique=False, **kwargs):
        self.indexes[name] = (table, tuple(columns), unique)

    def drop_table(self, name, **kwargs):
        self.dropped_tables.append(name)

    def drop_index(self, name, **kwargs):
        self.dropped_indexes.append(name)


@pytest.fixture
def migration(monkeypatch):
    spec = importlib.util.spec_from_file_location("create_automation_tables", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    recorder = RecordingOp()
    monkeypatch.setattr(module, "op", recorder)
    return module, recorder


def test_upgrade_matches_models(migration):
    module, recorder = migration
    module.upgrade()

    assert module.down_revision is None
    assert set(recorder.tables) == set(Base.metadata.tables)
    for name, table in Base.metadata.tables.items():
        assert recorder.tables[name] == [column.name for column in table.columns], name

    model_indexes = {
        index.name: (table.name, tuple(col.name for col in index.columns), bool(index.unique))
        for table in Base.metadata.tables.values()
        for index in table.indexes
    }
    assert recorder.indexes == model_indexes


def test_parent_table_created_first(migration):
    module, recorder = migration
    module.upgrade()
    assert next(iter(recorder.tables)) == "leads"


def test_downgrade_drops_everything(migration):
    module, recorder = migration
    module.upgrade()
    module.downgrade()

    assert set(recorder.dropped_tables) == set(recorder.tables)
    assert set(recorder.dropped_indexes) == set(recorder.indexes)
    assert recorder.dropped_tables[-1] == "leads"
