"""
Генерация INSERT / UPDATE / DELETE для правок строк в гриде.

Чистые функции: на входе схема, таблица, данные строки и метаданные колонок,
на выходе готовый текст SQL с литералами (без параметров).
"""
from __future__ import annotations
import json
import math
import re
from decimal import Decimal
from typing import Any, List, Mapping, Sequence

from pgdesk.cells import UNDEFINED, Bool, Json, Null, Num, Str, to_cell
from pgdesk.errors import GenerationError
from pgdesk.models import Column, Row

_PLAIN_IDENT_RE = re.compile(r"^[a-z_][a-z0-9_$]*$")

# зарезервированные слова PostgreSQL, которые quote_ident() всегда берёт в кавычки
RESERVED_WORDS = frozenset("""
    all analyse analyze and any array as asc asymmetric authorization binary both case cast
    check collate collation column concurrently constraint create cross current_catalog
    current_date current_role current_schema current_time current_timestamp current_user
    default deferrable desc distinct do else end except false fetch for foreign freeze from
    full grant group having ilike in initially inner intersect into is isnull join lateral
    leading left like limit localtime localtimestamp natural not notnull null offset on only
    or order outer overlaps placing primary references returning right select session_user
    similar some symmetric system_user table tablesample then to trailing true union unique
    user using variadic verbose when where window with
""".split())


def quote_name(ident: str) -> str:
    # экранируем двойные кавычки внутри идентификатора
    return '"' + str(ident).replace('"', '""') + '"'


def quote_ident(ident: str) -> str:
    """
    Как quote_ident() в PostgreSQL: 'id' -> id, 'userName' -> "userName", 'order' -> "order".
    Используется в списках колонок.
    """
    s = str(ident)
    if _PLAIN_IDENT_RE.match(s) and s not in RESERVED_WORDS:
        return s
    return quote_name(s)


def qualified(schema: str, table: str) -> str:
    return f"{quote_name(schema)}.{quote_name(table)}"


def escape_literal(text: str) -> str:
    return text.replace("'", "''")


def _format_number(value) -> str:
    if isinstance(value, float):
        if not math.isfinite(value):
            # PostgreSQL понимает 'NaN' / 'Infinity' только в кавычках
            return "'NaN'" if math.isnan(value) else ("'Infinity'" if value > 0 else "'-Infinity'")
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, Decimal):
        return str(value)
    return str(value)


def format_value(value: Any) -> str:
    """Литерал SQL для значения ячейки."""
    cell = to_cell(value)
    if isinstance(cell, Null):
        return "NULL"
    if isinstance(cell, Bool):
        return "TRUE" if cell.value else "FALSE"
    if isinstance(cell, Num):
        return _format_number(cell.value)
    if isinstance(cell, Json):
        dumped = json.dumps(cell.value, separators=(",", ":"), ensure_ascii=False, default=str)
        return f"'{escape_literal(dumped)}'::jsonb"
    if isinstance(cell, Str):
        return f"'{escape_literal(cell.value)}'"
    raise TypeError(f"unsupported cell value: {cell!r}")


def build_where(row: Mapping[str, Any], columns: Sequence[Column]) -> str:
    """
    WHERE по первичному ключу, если он есть; иначе по всем ключам строки
    (NULL сравнивается через IS NULL).
    """
    pk_columns = [c for c in columns if c.is_primary_key]
    if pk_columns:
        missing = [c.name for c in pk_columns if row.get(c.name, UNDEFINED) is UNDEFINED]
        if missing:
            raise GenerationError(f"Row has no value for primary key column(s): {', '.join(missing)}")
        return " AND ".join(
            f"{quote_name(c.name)} = {format_value(row.get(c.name))}" for c in pk_columns
        )

    parts: List[str] = []
    for key, value in row.items():
        if value is None or value is UNDEFINED:
            parts.append(f"{quote_name(key)} IS NULL")
        else:
            parts.append(f"{quote_name(key)} = {format_value(value)}")
    return " AND ".join(parts)


def generate_insert(schema: str, table: str, data: Row, columns: Sequence[Column] = ()) -> str:
    keys = [k for k, v in data.items() if v is not UNDEFINED]
    if not keys:
        raise GenerationError("Nothing to insert: row has no values")
    col_list = ", ".join(quote_ident(k) for k in keys)
    val_list = ", ".join(format_value(data[k]) for k in keys)
    return f"INSERT INTO {qualified(schema, table)} ({col_list}) VALUES ({val_list})"


def _changed(new: Any, old: Any) -> bool:
    # объекты сравниваем по ссылке: новый, но равный по содержимому dict считается изменённым
    if isinstance(new, (dict, list)) or isinstance(old, (dict, list)):
        return new is not old
    if isinstance(new, bool) != isinstance(old, bool):
        return True
    return new != old


def changed_keys(data: Row, original_data: Row) -> List[str]:
    return [
        k for k, v in data.items()
        if v is not UNDEFINED and _changed(v, original_data.get(k, UNDEFINED))
    ]


def generate_update(
    schema: str,
    table: str,
    data: Row,
    original_data: Row,
    columns: Sequence[Column],
) -> str:
    keys = changed_keys(data, original_data)
    if not keys:
        raise GenerationError("Nothing to update: no column value changed")
    set_clause = ", ".join(f"{quote_name(k)} = {format_value(data[k])}" for k in keys)
    # строку ищем по её состоянию ДО правки
    where = build_where(original_data, columns)
    if not where:
        raise GenerationError("Cannot identify the row to update")
    return f"UPDATE {qualified(schema, table)} SET {set_clause} WHERE {where}"


def generate_delete(schema: str, table: str, data: Row, columns: Sequence[Column]) -> str:
    where = build_where(data, columns)
    if not where:
        raise GenerationError("Cannot identify the row to delete")
    return f"DELETE FROM {qualified(schema, table)} WHERE {where}"
