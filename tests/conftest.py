"""Shared pytest fixtures."""

import pytest
from sqlalchemy import create_engine

from pgdesk.models import Column, ForeignKeyTarget


@pytest.fixture
def users_columns():
    """Columns of a typical users table with a single primary key."""
    return [
        Column("id", "integer", is_nullable=False, is_primary_key=True),
        Column("name", "text"),
        Column("age", "int4"),
        Column("active", "boolean"),
        Column("created_at", "timestamp with time zone"),
        Column("token", "uuid"),
        Column("meta", "jsonb"),
        Column("tags", "ARRAY"),
        Column("mood", "USER-DEFINED", enum_values=("sad", "ok", "happy")),
        Column(
            "team_id",
            "integer",
            is_foreign_key=True,
            foreign_key_target=ForeignKeyTarget("public", "teams", "id"),
        ),
    ]


@pytest.fixture
def sqlite_engine(tmp_path):
    """File-backed SQLite engine, fresh for each test."""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", echo=False)
    yield engine
    engine.dispose()


@pytest.fixture
def engine_factory(sqlite_engine):
    """Engine factory for QueryService that ignores the database name."""
    return lambda _dbname: sqlite_engine
