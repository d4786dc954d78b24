from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


# ---- колонки (снимок от интроспекции схемы)

@dataclass(frozen=True)
class ForeignKeyTarget:
    schema: str
    table: str
    column: str


@dataclass(frozen=True)
class Column:
    name: str
    data_type: str = ""             # сырое имя типа от бэкенда: "int4", "timestamp with time zone", "text[]"
    is_nullable: bool = True
    is_primary_key: bool = False
    is_foreign_key: bool = False
    foreign_key_target: Optional[ForeignKeyTarget] = None
    enum_values: Tuple[str, ...] = ()
    default_value: Optional[str] = None


class ColumnCategory(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ENUM = "enum"
    UUID = "uuid"
    JSON = "json"
    ARRAY = "array"


class FilterOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    IS_TRUE = "is_true"
    IS_FALSE = "is_false"
    BETWEEN = "between"
    IN = "in"


# ---- фильтры и сортировка

@dataclass(frozen=True)
class FilterCondition:
    """Committed filter: values are present only where the operator needs them."""
    column: str
    operator: FilterOperator
    value: Optional[str] = None
    value2: Optional[str] = None


@dataclass(frozen=True)
class DraftFilter:
    """In-progress filter rule; column may be "" and values may be invalid."""
    column: str = ""
    operator: FilterOperator = FilterOperator.CONTAINS
    value: str = ""
    value2: str = ""


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"

    def flipped(self) -> "SortDirection":
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


@dataclass(frozen=True)
class SortColumn:
    column: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class DraftSort:
    column: str = ""
    direction: SortDirection = SortDirection.ASC


# ---- staged changes

Row = Dict[str, Any]


class ChangeType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class StagedChange:
    type: ChangeType
    schema: str
    table: str
    data: Row
    sql: str
    original_data: Optional[Row] = None
    id: str = ""


# ---- DDL

class ForeignKeyAction(str, Enum):
    NO_ACTION = "NO ACTION"
    RESTRICT = "RESTRICT"
    CASCADE = "CASCADE"
    SET_NULL = "SET NULL"
    SET_DEFAULT = "SET DEFAULT"


@dataclass(frozen=True)
class ForeignKeyReference:
    schema: str
    table: str
    column: str
    on_delete: Optional[ForeignKeyAction] = None
    on_update: Optional[ForeignKeyAction] = None


@dataclass(frozen=True)
class ColumnDefinition:
    name: str
    data_type: str
    is_nullable: bool = True
    is_primary_key: bool = False
    is_unique: bool = False
    default_value: str = ""
    references: Optional[ForeignKeyReference] = None


@dataclass(frozen=True)
class AlterColumnDefinition:
    """Column of an existing table; `id` stays stable across renames for diffing."""
    id: str
    name: str
    data_type: str
    is_nullable: bool = True
    is_primary_key: bool = False
    is_unique: bool = False
    default_value: str = ""
    references: Optional[ForeignKeyReference] = None
    foreign_key_constraint_name: str = ""   # исходное имя ограничения, нужно для DROP CONSTRAINT


class IndexMethod(str, Enum):
    BTREE = "btree"
    HASH = "hash"
    GIN = "gin"
    GIST = "gist"
    SPGIST = "spgist"
    BRIN = "brin"


@dataclass(frozen=True)
class IndexColumn:
    column: str = ""
    expression: str = ""            # если задано, используется вместо column
    direction: SortDirection = SortDirection.ASC
    nulls_order: str = ""           # "", "NULLS FIRST" или "NULLS LAST"


@dataclass(frozen=True)
class IndexDefinition:
    name: str
    columns: Tuple[IndexColumn, ...] = field(default_factory=tuple)
    method: IndexMethod = IndexMethod.BTREE
    is_unique: bool = False
    concurrently: bool = False
    where: str = ""
