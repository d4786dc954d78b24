"""
DDL: CREATE TABLE, ALTER TABLE (по разнице старых и новых определений колонок),
CREATE / DROP INDEX.
"""
from __future__ import annotations
import re
from typing import Dict, List, Optional, Sequence

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
from pgdesk.sql.generator import qualified, quote_ident, quote_name


def references_clause(ref: ForeignKeyReference) -> str:
    clause = f"REFERENCES {qualified(ref.schema, ref.table)}({quote_name(ref.column)})"
    if ref.on_delete and ForeignKeyAction(ref.on_delete) is not ForeignKeyAction.NO_ACTION:
        clause += f" ON DELETE {ForeignKeyAction(ref.on_delete).value}"
    if ref.on_update and ForeignKeyAction(ref.on_update) is not ForeignKeyAction.NO_ACTION:
        clause += f" ON UPDATE {ForeignKeyAction(ref.on_update).value}"
    return clause


def generate_create_table(schema: str, table: str, column_defs: Sequence[ColumnDefinition]) -> str:
    """
    CREATE TABLE из описаний колонок.

    Один PK: инлайн `PRIMARY KEY`; составной: отдельным ограничением в конце.
    DEFAULT подставляется как есть, без экранирования: это выражение, а не литерал.
    """
    if not (table or "").strip():
        raise GenerationError("Table name is required")
    if not column_defs:
        raise GenerationError("At least one column is required")

    pk_columns = [c for c in column_defs if c.is_primary_key]
    composite_pk = len(pk_columns) > 1

    lines: List[str] = []
    for col in column_defs:
        if not (col.name or "").strip():
            raise GenerationError("Column name is required")
        if not (col.data_type or "").strip():
            raise GenerationError(f'Data type is required for column "{col.name}"')

        parts = [quote_name(col.name), col.data_type]
        if col.is_primary_key and not composite_pk:
            parts.append("PRIMARY KEY")
        # PK и так NOT NULL
        if not col.is_nullable and not col.is_primary_key:
            parts.append("NOT NULL")
        if col.is_unique and not col.is_primary_key:
            parts.append("UNIQUE")
        if (col.default_value or "").strip():
            parts.append(f"DEFAULT {col.default_value}")
        if col.references:
            parts.append(references_clause(col.references))
        lines.append(" ".join(parts))

    if composite_pk:
        lines.append(f"PRIMARY KEY ({', '.join(quote_ident(c.name) for c in pk_columns)})")

    body = ",\n  ".join(lines)
    return f"CREATE TABLE {qualified(schema, table)} (\n  {body}\n)"


def _has_fk(col: AlterColumnDefinition) -> bool:
    ref = col.references
    return bool(ref and ref.schema and ref.table and ref.column)


def _fk_constraint_name(table: str, col: AlterColumnDefinition) -> str:
    return col.foreign_key_constraint_name or f"{table}_{col.name}_fkey"


def generate_alter_table(
    schema: str,
    table: str,
    original: Sequence[AlterColumnDefinition],
    edited: Sequence[AlterColumnDefinition],
    new_table_name: Optional[str] = None,
) -> List[str]:
    """
    Список ALTER TABLE, переводящих таблицу из `original` в `edited`.
    Колонки сопоставляются по id, так что переименование не выглядит как drop+add.
    """
    stmts: List[str] = []
    eff_table = new_table_name or table
    tbl = qualified(schema, eff_table)

    # переименование таблицы первым: дальше все команды идут по новому имени
    if new_table_name and new_table_name != table:
        stmts.append(f"ALTER TABLE {qualified(schema, table)} RENAME TO {quote_name(new_table_name)}")

    original_by_id: Dict[str, AlterColumnDefinition] = {c.id: c for c in original}
    edited_ids = {c.id for c in edited}

    for orig in original:
        if orig.id not in edited_ids:
            stmts.append(f"ALTER TABLE {tbl} DROP COLUMN {quote_name(orig.name)}")

    for col in edited:
        orig = original_by_id.get(col.id)
        if orig is None:
            continue
        name = quote_name(col.name)

        if col.name != orig.name:
            stmts.append(f"ALTER TABLE {tbl} RENAME COLUMN {quote_name(orig.name)} TO {name}")

        if col.data_type != orig.data_type:
            stmts.append(
                f"ALTER TABLE {tbl} ALTER COLUMN {name} TYPE {col.data_type} USING {name}::{col.data_type}"
            )

        if col.is_nullable != orig.is_nullable:
            action = "DROP NOT NULL" if col.is_nullable else "SET NOT NULL"
            stmts.append(f"ALTER TABLE {tbl} ALTER COLUMN {name} {action}")

        if col.default_value != orig.default_value:
            if (col.default_value or "").strip():
                stmts.append(f"ALTER TABLE {tbl} ALTER COLUMN {name} SET DEFAULT {col.default_value}")
            else:
                stmts.append(f"ALTER TABLE {tbl} ALTER COLUMN {name} DROP DEFAULT")

        if col.is_primary_key != orig.is_primary_key:
            if col.is_primary_key:
                stmts.append(f"ALTER TABLE {tbl} ADD PRIMARY KEY ({name})")
            else:
                stmts.append(f"ALTER TABLE {tbl} DROP CONSTRAINT {quote_name(eff_table + '_pkey')}")

        if col.is_unique != orig.is_unique:
            if col.is_unique:
                stmts.append(f"ALTER TABLE {tbl} ADD UNIQUE ({name})")
            else:
                stmts.append(
                    f"ALTER TABLE {tbl} DROP CONSTRAINT {quote_name(f'{eff_table}_{col.name}_key')}"
                )

        had_fk, has_fk = _has_fk(orig), _has_fk(col)
        if had_fk and (not has_fk or orig.references != col.references):
            stmts.append(
                f"ALTER TABLE {tbl} DROP CONSTRAINT {quote_name(_fk_constraint_name(eff_table, orig))}"
            )
        if has_fk and (not had_fk or orig.references != col.references):
            stmts.append(f"ALTER TABLE {tbl} ADD FOREIGN KEY ({name}) {references_clause(col.references)}")

    for col in edited:
        if col.id in original_by_id or not (col.name or "").strip():
            continue
        parts = [f"ADD COLUMN {quote_name(col.name)} {col.data_type}"]
        if col.is_primary_key:
            parts.append("PRIMARY KEY")
        else:
            if not col.is_nullable:
                parts.append("NOT NULL")
            if col.is_unique:
                parts.append("UNIQUE")
        if (col.default_value or "").strip():
            parts.append(f"DEFAULT {col.default_value}")
        if _has_fk(col):
            parts.append(references_clause(col.references))
        stmts.append(f"ALTER TABLE {tbl} {' '.join(parts)}")

    return stmts


def _index_column_sql(col: IndexColumn, method: IndexMethod) -> str:
    parts: List[str] = []
    expr = (col.expression or "").strip()
    if expr:
        parts.append(expr if expr.startswith("(") and expr.endswith(")") else f"({expr})")
    elif col.column:
        parts.append(quote_name(col.column))
    else:
        return ""
    # направление и NULLS имеют смысл только для btree
    if method is IndexMethod.BTREE:
        if col.direction == SortDirection.DESC:
            parts.append("DESC")
        if col.nulls_order:
            parts.append(col.nulls_order)
    return " ".join(parts)


def generate_create_index(schema: str, table: str, index: IndexDefinition) -> str:
    if not (index.name or "").strip():
        raise GenerationError("Index name is required")
    method = IndexMethod(index.method)
    cols = [s for s in (_index_column_sql(c, method) for c in index.columns) if s]
    if not cols:
        raise GenerationError("At least one index column is required")

    parts = ["CREATE"]
    if index.is_unique:
        parts.append("UNIQUE")
    parts.append("INDEX")
    if index.concurrently:
        parts.append("CONCURRENTLY")
    parts += [quote_name(index.name), "ON", qualified(schema, table)]
    if method is not IndexMethod.BTREE:
        parts.append(f"USING {method.value}")
    parts.append(f"({', '.join(cols)})")
    if (index.where or "").strip():
        parts.append(f"WHERE {index.where.strip()}")
    return " ".join(parts)


def generate_drop_index(schema: str, index_name: str, concurrently: bool = False) -> str:
    parts = ["DROP INDEX"]
    if concurrently:
        parts.append("CONCURRENTLY")
    parts.append(qualified(schema, index_name))
    return " ".join(parts)


def suggest_index_name(table: str, columns: Sequence[IndexColumn]) -> str:
    """Имя по соглашению idx_<table>_<col1>_<col2>."""
    tbl = (table or "").strip() or "table"
    names: List[str] = []
    for c in columns:
        expr = (c.expression or "").strip()
        if expr:
            names.append(re.sub(r"[^a-zA-Z0-9_]", "", expr)[:20].lower())
        elif c.column:
            names.append(c.column.lower())
    names = [n for n in names if n]
    if not names:
        return f"idx_{tbl}"
    return f"idx_{tbl}_{'_'.join(names)}"
