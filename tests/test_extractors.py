"""Tests for schema introspection: model assembly and the PostgreSQL extractor's row handling."""

import pytest

from pgdesk.extractors.base import BaseExtractor
from pgdesk.extractors.postgres import PostgresExtractor
from pgdesk.filters.categories import classify
from pgdesk.models import ColumnCategory, ForeignKeyAction, ForeignKeyReference, ForeignKeyTarget
from pgdesk.sql.ddl import generate_alter_table


class StaticExtractor(BaseExtractor):
    """Extractor backed by in-memory catalog rows."""

    def __init__(self):
        super().__init__({"dbname": "app"})
        self.enum_requests = []

    def list_tables(self, *, schemas=None, include_system_schemas=False):
        return [{"schema": "public", "name": "users", "kind": "table"}]

    def list_columns(self, table_schema, table_name):
        return [
            {"name": "id", "data_type": "integer", "udt_name": "int4", "is_nullable": False,
             "ordinal_position": 1, "default": "nextval('users_id_seq'::regclass)"},
            {"name": "team_id", "data_type": "integer", "udt_name": "int4", "is_nullable": True,
             "ordinal_position": 2, "default": None},
            {"name": "mood", "data_type": "USER-DEFINED", "udt_name": "mood", "is_nullable": True,
             "ordinal_position": 3, "default": None},
            {"name": "point", "data_type": "USER-DEFINED", "udt_name": "geo_point", "is_nullable": True,
             "ordinal_position": 4, "default": None},
            {"name": "tags", "data_type": "ARRAY", "udt_name": "_text", "is_nullable": True,
             "ordinal_position": 5, "default": None},
            {"name": "email", "data_type": "text", "udt_name": "text", "is_nullable": False,
             "ordinal_position": 6, "default": None},
        ]

    def list_primary_keys(self, table_schema, table_name):
        return [{"constraint_name": "users_pkey", "columns": ["id"]}]

    def list_foreign_keys(self, table_schema, table_name):
        return [{
            "constraint_name": "users_team_fk",
            "columns": ["team_id"],
            "referenced_schema": "public",
            "referenced_table": "teams",
            "referenced_columns": ["id"],
            "column_pairs": [("team_id", "id")],
            "on_delete": ForeignKeyAction.CASCADE,
            "on_update": ForeignKeyAction.NO_ACTION,
        }]

    def list_indexes(self, table_schema, table_name):
        return [
            {"name": "users_pkey", "method": "btree", "is_unique": True, "is_primary": True, "columns": ["id"]},
            {"name": "users_email_key", "method": "btree", "is_unique": True, "is_primary": False,
             "columns": ["email"]},
            {"name": "users_team_mood", "method": "btree", "is_unique": True, "is_primary": False,
             "columns": ["team_id", "mood"]},
        ]

    def list_enum_values(self, type_names):
        names = list(type_names)
        self.enum_requests.append(names)
        return {"mood": ["sad", "ok", "happy"]} if "mood" in names else {}


class TestDescribeTable:

    @pytest.fixture
    def columns(self):
        return {c.name: c for c in StaticExtractor().describe_table("public", "users")}

    def test_order_and_flags(self):
        cols = StaticExtractor().describe_table("public", "users")
        assert [c.name for c in cols] == ["id", "team_id", "mood", "point", "tags", "email"]
        assert cols[0].is_primary_key and not cols[0].is_nullable
        assert cols[0].default_value == "nextval('users_id_seq'::regclass)"

    def test_foreign_key_target(self, columns):
        assert columns["team_id"].is_foreign_key
        assert columns["team_id"].foreign_key_target == ForeignKeyTarget("public", "teams", "id")
        assert columns["id"].foreign_key_target is None

    def test_enum_labels(self, columns):
        assert columns["mood"].enum_values == ("sad", "ok", "happy")
        assert classify(columns["mood"]) is ColumnCategory.ENUM
        # составной тип без меток остаётся текстом
        assert columns["point"].enum_values == ()
        assert classify(columns["point"]) is ColumnCategory.TEXT
        assert classify(columns["tags"]) is ColumnCategory.ARRAY

    def test_enum_lookup_only_for_user_defined(self):
        ex = StaticExtractor()
        ex.describe_table("public", "users")
        assert ex.enum_requests == [["geo_point", "mood"]]

    def test_context_manager(self):
        with StaticExtractor() as ex:
            assert ex.list_tables()[0]["name"] == "users"


class TestAlterDefinitions:

    @pytest.fixture
    def defs(self):
        return {d.name: d for d in StaticExtractor().alter_definitions("public", "users")}

    def test_ids_are_ordinal_positions(self, defs):
        assert [d.id for d in defs.values()] == ["1", "2", "3", "4", "5", "6"]

    def test_ddl_types(self, defs):
        assert defs["tags"].data_type == "text[]"
        assert defs["mood"].data_type == "mood"
        assert defs["id"].data_type == "integer"

    def test_unique_only_for_single_column_indexes(self, defs):
        assert defs["email"].is_unique
        assert not defs["team_id"].is_unique
        assert not defs["id"].is_unique

    def test_foreign_key(self, defs):
        assert defs["team_id"].references == ForeignKeyReference(
            "public", "teams", "id", on_delete=ForeignKeyAction.CASCADE, on_update=ForeignKeyAction.NO_ACTION,
        )
        assert defs["team_id"].foreign_key_constraint_name == "users_team_fk"
        assert defs["id"].default_value == "nextval('users_id_seq'::regclass)"
        assert defs["mood"].default_value == ""

    def test_unchanged_definitions_produce_no_statements(self):
        defs = StaticExtractor().alter_definitions("public", "users")
        assert generate_alter_table("public", "users", defs, list(defs)) == []

    def test_dropping_reference_uses_real_constraint_name(self, defs):
        original = list(defs.values())
        edited = [d if d.name != "team_id" else d.__class__(d.id, d.name, d.data_type) for d in original]
        assert generate_alter_table("public", "users", original, edited) == [
            'ALTER TABLE "public"."users" DROP CONSTRAINT "users_team_fk"',
        ]


class FakeCursor:

    def __init__(self, rows):
        self.rows = rows
        self.executed = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.executed.append((sql, params))

    def fetchall(self):
        return self.rows


class FakeRawConnection:

    def __init__(self, rows):
        self.cursor_obj = FakeCursor(rows)
        self.closed = False

    def cursor(self):
        return self.cursor_obj

    def close(self):
        self.closed = True


class FakeEngine:

    def __init__(self, rows):
        self.raw = FakeRawConnection(rows)

    def raw_connection(self):
        return self.raw


def make_extractor(rows):
    engine = FakeEngine(rows)
    requested = []

    def factory(dbname):
        requested.append(dbname)
        return engine

    return PostgresExtractor({"dbname": "app"}, engine_factory=factory), engine, requested


class TestPostgresExtractor:

    def test_list_tables(self):
        ex, engine, requested = make_extractor([("public", "users", "r"), ("public", "active_users", "v")])
        tables = ex.list_tables(schemas=["public"])
        assert tables == [
            {"schema": "public", "name": "users", "kind": "table"},
            {"schema": "public", "name": "active_users", "kind": "view"},
        ]
        assert requested == ["app"]
        sql, params = engine.raw.cursor_obj.executed[0]
        assert params[-1] == ["public"]
        assert "pg_catalog" in params[1]

    def test_list_tables_with_system_schemas(self):
        ex, engine, _ = make_extractor([])
        ex.list_tables(include_system_schemas=True)
        sql, params = engine.raw.cursor_obj.executed[0]
        assert len(params) == 1
        assert "ALL(" not in sql

    def test_list_columns(self):
        ex, _, _ = make_extractor([("id", "integer", "int4", False, 1, None)])
        assert ex.list_columns("public", "users") == [{
            "name": "id", "data_type": "integer", "udt_name": "int4",
            "is_nullable": False, "ordinal_position": 1, "default": None,
        }]

    def test_list_primary_keys_groups_columns(self):
        ex, engine, _ = make_extractor([("pk", "a"), ("pk", "b")])
        assert ex.list_primary_keys("public", "t") == [{"constraint_name": "pk", "columns": ["a", "b"]}]
        assert engine.raw.cursor_obj.executed[0][1] == ("public", "t")

    def test_list_foreign_keys_pairs_columns_and_actions(self):
        ex, _, _ = make_extractor([
            ("fk", "public", "teams", "team_id", "id", "c", "a"),
            ("fk", "public", "teams", "org_id", "org", "c", "a"),
        ])
        (fk,) = ex.list_foreign_keys("public", "users")
        assert fk["columns"] == ["team_id", "org_id"]
        assert fk["column_pairs"] == [("team_id", "id"), ("org_id", "org")]
        assert fk["on_delete"] is ForeignKeyAction.CASCADE
        assert fk["on_update"] is ForeignKeyAction.NO_ACTION

    def test_list_indexes(self):
        ex, _, _ = make_extractor([
            ("users_pkey", "btree", True, True, ["id"]),
            ("users_lower_email", "btree", False, False, []),
        ])
        assert ex.list_indexes("public", "users") == [
            {"name": "users_pkey", "method": "btree", "is_unique": True, "is_primary": True, "columns": ["id"]},
            {"name": "users_lower_email", "method": "btree", "is_unique": False, "is_primary": False,
             "columns": []},
        ]

    def test_list_enum_values(self):
        ex, engine, _ = make_extractor([("mood", "sad"), ("mood", "happy")])
        assert ex.list_enum_values(["mood"]) == {"mood": ["sad", "happy"]}
        assert engine.raw.cursor_obj.executed[0][1] == (["mood"],)

    def test_list_enum_values_empty_skips_query(self):
        ex, engine, requested = make_extractor([])
        assert ex.list_enum_values([]) == {}
        assert requested == []

    def test_close_returns_connection(self):
        ex, engine, _ = make_extractor([])
        with ex:
            ex.list_tables()
        assert engine.raw.closed
        assert ex.conn is None
