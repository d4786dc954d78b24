from pgdesk.models import Column, ColumnCategory

NUMBER_TYPES = frozenset({
    "INTEGER", "SMALLINT", "BIGINT", "NUMERIC", "DECIMAL",
    "REAL", "DOUBLE PRECISION", "SERIAL", "BIGSERIAL", "SMALLSERIAL",
    "INT2", "INT4", "INT8", "FLOAT4", "FLOAT8",
})


def classify(column: Column) -> ColumnCategory:
    """
    Категория колонки по сырому имени типа. Первое совпадение выигрывает.

    Проверка enum идёт последней: enum-колонка с типом-массивом попадает в ARRAY.
    """
    t = (column.data_type or "").upper()

    if t in ("BOOLEAN", "BOOL"):
        return ColumnCategory.BOOLEAN
    if t in NUMBER_TYPES:
        return ColumnCategory.NUMBER
    if t.startswith(("TIMESTAMP", "DATE", "TIME")):
        return ColumnCategory.DATE
    if t == "UUID":
        return ColumnCategory.UUID
    if t in ("JSON", "JSONB"):
        return ColumnCategory.JSON
    if t == "ARRAY" or t.endswith("[]"):
        return ColumnCategory.ARRAY
    if column.enum_values:
        return ColumnCategory.ENUM
    return ColumnCategory.TEXT
