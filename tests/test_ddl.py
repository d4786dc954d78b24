"""Tests for CREATE TABLE, ALTER TABLE and index DDL."""

import pytest

from pgdesk.errors import GenerationError
from pgdesk.models import (
    AlterColumnDefinition,
    ColumnDefinition,
    ForeignKeyAction,
    ForeignKeyReference,
    IndexColumn,
    IndexDefinition,
    IndexMethod,
    SortDirection,
)
from pgdesk.sql.ddl import (
    generate_alter_table,
    generate_create_index,
    generate_create_table,
    generate_drop_index,
    references_clause,
    suggest_index_name,
)


class TestCreateTable:

    def test_single_primary_key_inline(self):
        sql = generate_create_table("public", "users", [
            ColumnDefinition("id", "serial", is_nullable=False, is_primary_key=True, is_unique=True),
            ColumnDefinition("email", "text", is_nullable=False, is_unique=True),
            ColumnDefinition("created_at", "timestamptz", default_value="now()"),
        ])
        assert sql == (
            'CREATE TABLE "public"."users" (\n'
            '  "id" serial PRIMARY KEY,\n'
            '  "email" text NOT NULL UNIQUE,\n'
            '  "created_at" timestamptz DEFAULT now()\n'
            ')'
        )

    def test_composite_primary_key(self):
        sql = generate_create_table("public", "memberships", [
            ColumnDefinition("a", "integer", is_primary_key=True),
            ColumnDefinition("b", "integer", is_primary_key=True),
            ColumnDefinition("note", "text"),
        ])
        assert sql.count("PRIMARY KEY") == 1
        assert sql.rstrip().endswith("PRIMARY KEY (a, b)\n)")
        assert '"a" integer,' in sql
        assert '"b" integer,' in sql

    def test_references(self):
        ref = ForeignKeyReference("public", "teams", "id", on_delete=ForeignKeyAction.CASCADE)
        sql = generate_create_table("public", "users", [ColumnDefinition("team_id", "integer", references=ref)])
        assert '"team_id" integer REFERENCES "public"."teams"("id") ON DELETE CASCADE' in sql

    def test_no_columns_raises(self):
        with pytest.raises(GenerationError):
            generate_create_table("public", "users", [])

    def test_blank_table_name_raises(self):
        with pytest.raises(GenerationError):
            generate_create_table("public", "  ", [ColumnDefinition("id", "int")])

    def test_blank_column_name_raises(self):
        with pytest.raises(GenerationError, match="Column name is required"):
            generate_create_table("public", "t", [ColumnDefinition(" ", "int")])

    def test_blank_type_raises(self):
        with pytest.raises(GenerationError):
            generate_create_table("public", "t", [ColumnDefinition("id", "")])


class TestReferencesClause:

    def test_no_action_is_omitted(self):
        ref = ForeignKeyReference("s", "t", "c", on_delete=ForeignKeyAction.NO_ACTION,
                                  on_update=ForeignKeyAction.SET_NULL)
        assert references_clause(ref) == 'REFERENCES "s"."t"("c") ON UPDATE SET NULL'


class TestAlterTable:

    @pytest.fixture
    def original(self):
        return [
            AlterColumnDefinition("1", "id", "integer", is_nullable=False, is_primary_key=True),
            AlterColumnDefinition("2", "name", "text"),
            AlterColumnDefinition("3", "legacy", "text"),
        ]

    def test_no_changes(self, original):
        assert generate_alter_table("public", "users", original, list(original)) == []

    def test_rename_table_first(self, original):
        stmts = generate_alter_table("public", "users", original, list(original), new_table_name="people")
        assert stmts == ['ALTER TABLE "public"."users" RENAME TO "people"']

    def test_drop_rename_and_add(self, original):
        edited = [
            original[0],
            AlterColumnDefinition("2", "full_name", "varchar(200)", is_nullable=False, default_value="''"),
            AlterColumnDefinition("new-1", "age", "integer", is_nullable=False),
        ]
        tbl = '"public"."users"'
        assert generate_alter_table("public", "users", original, edited) == [
            f'ALTER TABLE {tbl} DROP COLUMN "legacy"',
            f'ALTER TABLE {tbl} RENAME COLUMN "name" TO "full_name"',
            f'ALTER TABLE {tbl} ALTER COLUMN "full_name" TYPE varchar(200) USING "full_name"::varchar(200)',
            f'ALTER TABLE {tbl} ALTER COLUMN "full_name" SET NOT NULL',
            f'ALTER TABLE {tbl} ALTER COLUMN "full_name" SET DEFAULT \'\'',
            f'ALTER TABLE {tbl} ADD COLUMN "age" integer NOT NULL',
        ]

    def test_drop_default_and_unique(self):
        orig = [AlterColumnDefinition("1", "code", "text", is_unique=True, default_value="'x'")]
        edited = [AlterColumnDefinition("1", "code", "text")]
        assert generate_alter_table("s", "t", orig, edited) == [
            'ALTER TABLE "s"."t" ALTER COLUMN "code" DROP DEFAULT',
            'ALTER TABLE "s"."t" DROP CONSTRAINT "t_code_key"',
        ]

    def test_foreign_key_change(self):
        old_ref = ForeignKeyReference("public", "teams", "id")
        new_ref = ForeignKeyReference("public", "groups", "id")
        orig = [AlterColumnDefinition("1", "team_id", "integer", references=old_ref,
                                      foreign_key_constraint_name="fk_team")]
        edited = [AlterColumnDefinition("1", "team_id", "integer", references=new_ref)]
        assert generate_alter_table("public", "users", orig, edited) == [
            'ALTER TABLE "public"."users" DROP CONSTRAINT "fk_team"',
            'ALTER TABLE "public"."users" ADD FOREIGN KEY ("team_id") REFERENCES "public"."groups"("id")',
        ]

    def test_new_column_without_name_is_ignored(self, original):
        edited = list(original) + [AlterColumnDefinition("x", "", "text")]
        assert generate_alter_table("public", "users", original, edited) == []


class TestIndexes:

    def test_simple_index(self):
        idx = IndexDefinition("idx_users_email", (IndexColumn("email"),))
        assert generate_create_index("public", "users", idx) == \
            'CREATE INDEX "idx_users_email" ON "public"."users" ("email")'

    def test_unique_concurrent_partial(self):
        idx = IndexDefinition(
            "u_email",
            (IndexColumn("email", direction=SortDirection.DESC, nulls_order="NULLS LAST"),),
            is_unique=True,
            concurrently=True,
            where="deleted_at IS NULL",
        )
        assert generate_create_index("public", "users", idx) == (
            'CREATE UNIQUE INDEX CONCURRENTLY "u_email" ON "public"."users" '
            '("email" DESC NULLS LAST) WHERE deleted_at IS NULL'
        )

    def test_gin_expression_ignores_direction(self):
        idx = IndexDefinition(
            "idx_docs",
            (IndexColumn(expression="to_tsvector('english', body)", direction=SortDirection.DESC),),
            method=IndexMethod.GIN,
        )
        assert generate_create_index("public", "docs", idx) == \
            'CREATE INDEX "idx_docs" ON "public"."docs" USING gin ((to_tsvector(\'english\', body)))'

    def test_requires_name_and_columns(self):
        with pytest.raises(GenerationError):
            generate_create_index("public", "users", IndexDefinition(" ", (IndexColumn("a"),)))
        with pytest.raises(GenerationError):
            generate_create_index("public", "users", IndexDefinition("i", (IndexColumn(),)))

    def test_drop_index(self):
        assert generate_drop_index("public", "idx_a") == 'DROP INDEX "public"."idx_a"'
        assert generate_drop_index("public", "idx_a", concurrently=True) == \
            'DROP INDEX CONCURRENTLY "public"."idx_a"'

    def test_suggest_index_name(self):
        assert suggest_index_name("users", [IndexColumn("Email"), IndexColumn("name")]) == "idx_users_email_name"
        assert suggest_index_name("users", []) == "idx_users"
        assert suggest_index_name("", [IndexColumn(expression="lower(email)")]) == "idx_table_loweremail"
