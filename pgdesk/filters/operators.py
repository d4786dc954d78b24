from __future__ import annotations
from typing import Dict, Iterable, List, Tuple

from pgdesk.models import Column, ColumnCategory, FilterCondition, FilterOperator as Op

OperatorDef = Tuple[Op, str]   # (оператор, подпись в выпадающем списке)

TEXT_OPERATORS: List[OperatorDef] = [
    (Op.CONTAINS, "contains"),
    (Op.NOT_CONTAINS, "not contains"),
    (Op.EQUALS, "="),
    (Op.NOT_EQUALS, "!="),
    (Op.STARTS_WITH, "starts with"),
    (Op.ENDS_WITH, "ends with"),
    (Op.IS_NULL, "is null"),
    (Op.IS_NOT_NULL, "is not null"),
]

NUMBER_OPERATORS: List[OperatorDef] = [
    (Op.EQUALS, "="),
    (Op.NOT_EQUALS, "!="),
    (Op.GREATER_THAN, ">"),
    (Op.LESS_THAN, "<"),
    (Op.GREATER_THAN_OR_EQUAL, ">="),
    (Op.LESS_THAN_OR_EQUAL, "<="),
    (Op.BETWEEN, "between"),
    (Op.IS_NULL, "is null"),
    (Op.IS_NOT_NULL, "is not null"),
]

BOOLEAN_OPERATORS: List[OperatorDef] = [
    (Op.IS_TRUE, "is true"),
    (Op.IS_FALSE, "is false"),
    (Op.IS_NULL, "is null"),
    (Op.IS_NOT_NULL, "is not null"),
]

DATE_OPERATORS: List[OperatorDef] = [
    (Op.EQUALS, "="),
    (Op.NOT_EQUALS, "!="),
    (Op.GREATER_THAN, "after"),
    (Op.LESS_THAN, "before"),
    (Op.BETWEEN, "between"),
    (Op.IS_NULL, "is null"),
    (Op.IS_NOT_NULL, "is not null"),
]

ENUM_OPERATORS: List[OperatorDef] = [
    (Op.EQUALS, "="),
    (Op.NOT_EQUALS, "!="),
    (Op.IS_NULL, "is null"),
    (Op.IS_NOT_NULL, "is not null"),
]

UUID_OPERATORS: List[OperatorDef] = list(ENUM_OPERATORS)

JSON_OPERATORS: List[OperatorDef] = [
    (Op.IS_NULL, "is null"),
    (Op.IS_NOT_NULL, "is not null"),
    (Op.CONTAINS, "contains"),
]

ARRAY_OPERATORS: List[OperatorDef] = list(JSON_OPERATORS)

OPERATORS_BY_CATEGORY: Dict[ColumnCategory, List[OperatorDef]] = {
    ColumnCategory.TEXT: TEXT_OPERATORS,
    ColumnCategory.NUMBER: NUMBER_OPERATORS,
    ColumnCategory.BOOLEAN: BOOLEAN_OPERATORS,
    ColumnCategory.DATE: DATE_OPERATORS,
    ColumnCategory.ENUM: ENUM_OPERATORS,
    ColumnCategory.UUID: UUID_OPERATORS,
    ColumnCategory.JSON: JSON_OPERATORS,
    ColumnCategory.ARRAY: ARRAY_OPERATORS,
}

DEFAULT_OPERATOR: Dict[ColumnCategory, Op] = {
    ColumnCategory.TEXT: Op.CONTAINS,
    ColumnCategory.NUMBER: Op.EQUALS,
    ColumnCategory.BOOLEAN: Op.IS_TRUE,
    ColumnCategory.DATE: Op.EQUALS,
    ColumnCategory.ENUM: Op.EQUALS,
    ColumnCategory.UUID: Op.EQUALS,
    ColumnCategory.JSON: Op.IS_NOT_NULL,
    ColumnCategory.ARRAY: Op.IS_NOT_NULL,
}

NO_VALUE_OPERATORS = frozenset({Op.IS_NULL, Op.IS_NOT_NULL, Op.IS_TRUE, Op.IS_FALSE})

# короткие подписи для "чипов" над гридом
OPERATOR_LABELS: Dict[Op, str] = {
    Op.EQUALS: "=",
    Op.NOT_EQUALS: "!=",
    Op.GREATER_THAN: ">",
    Op.LESS_THAN: "<",
    Op.GREATER_THAN_OR_EQUAL: ">=",
    Op.LESS_THAN_OR_EQUAL: "<=",
    Op.CONTAINS: "contains",
    Op.NOT_CONTAINS: "not contains",
    Op.STARTS_WITH: "starts with",
    Op.ENDS_WITH: "ends with",
    Op.IS_NULL: "is null",
    Op.IS_NOT_NULL: "is not null",
    Op.IS_TRUE: "is true",
    Op.IS_FALSE: "is false",
    Op.BETWEEN: "between",
    Op.IN: "in",
}


def operators_for(category: ColumnCategory) -> List[OperatorDef]:
    return list(OPERATORS_BY_CATEGORY[ColumnCategory(category)])


def default_operator(category: ColumnCategory) -> Op:
    return DEFAULT_OPERATOR[ColumnCategory(category)]


def requires_value(operator: Op) -> bool:
    return Op(operator) not in NO_VALUE_OPERATORS


def filter_chip_label(condition: FilterCondition, columns: Iterable[Column] = ()) -> str:
    """
    Короткая подпись фильтра: "age > 30", "created 2024-01-01..2024-02-01", "deleted_at is null".
    """
    col = next((c for c in columns if c.name == condition.column), None)
    col_name = col.name if col else condition.column
    op_label = OPERATOR_LABELS.get(condition.operator, str(condition.operator))

    if condition.operator in NO_VALUE_OPERATORS:
        return f"{col_name} {op_label}"
    if condition.operator == Op.BETWEEN and condition.value and condition.value2:
        return f"{col_name} {condition.value}..{condition.value2}"
    if condition.value:
        return f"{col_name} {op_label} {condition.value}"
    return f"{col_name} {op_label}"


def _check_registry() -> None:
    for cat in ColumnCategory:
        ops = [op for op, _label in OPERATORS_BY_CATEGORY[cat]]
        if DEFAULT_OPERATOR[cat] not in ops:
            raise RuntimeError(f"default operator for '{cat.value}' is not in its operator list")
        if any(not label for _op, label in OPERATORS_BY_CATEGORY[cat]):
            raise RuntimeError(f"empty operator label for '{cat.value}'")


_check_registry()
