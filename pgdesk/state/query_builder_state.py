from __future__ import annotations
import logging
import math
from typing import List, Optional, Sequence

from pgdesk.models import Column, ColumnCategory, FilterCondition, FilterOperator as Op, SortColumn, SortDirection
from pgdesk.filters.categories import classify
from pgdesk.sql.generator import escape_literal, qualified, quote_name

log = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100

_COMPARISONS = {
    Op.EQUALS: "=",
    Op.NOT_EQUALS: "<>",
    Op.GREATER_THAN: ">",
    Op.LESS_THAN: "<",
    Op.GREATER_THAN_OR_EQUAL: ">=",
    Op.LESS_THAN_OR_EQUAL: "<=",
}


def _like_pattern(value: str, prefix: str, suffix: str) -> str:
    # экранируем спецсимволы LIKE (escape-символ по умолчанию: обратный слэш)
    v = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return "'" + escape_literal(prefix + v + suffix) + "'"


class QueryBuilderState:
    """
    Состояние вкладки таблицы: выбранная таблица, закоммиченные фильтры и сортировки,
    страница. Списки фильтров/сортировок всегда заменяются целиком.

    revision у списка: номер коммита менеджера черновиков, который его выпустил,
    или None, если список поменялся снаружи (сброс, клик по заголовку колонки).
    """

    def __init__(
        self,
        dbname: Optional[str] = None,
        schema: Optional[str] = None,
        table: Optional[str] = None,
        columns: Sequence[Column] = (),
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.dbname = dbname
        self.schema = schema
        self.table = table
        self.columns: List[Column] = list(columns)
        self.filters: List[FilterCondition] = []
        self.sorts: List[SortColumn] = []
        self.filters_revision: Optional[int] = None
        self.sorts_revision: Optional[int] = None
        self.page = 1
        self.page_size = page_size
        self._filter_managers: list = []
        self._sort_managers: list = []

    # --- подписки (менеджеры черновиков) ---

    def attach_filters(self, manager) -> None:
        """Связать менеджер черновиков фильтров с этим состоянием в обе стороны."""
        manager.on_commit = self.apply_filters
        if manager not in self._filter_managers:
            self._filter_managers.append(manager)
        manager.sync(self.filters, None)

    def attach_sorts(self, manager) -> None:
        manager.on_commit = self.apply_sorts
        if manager not in self._sort_managers:
            self._sort_managers.append(manager)
        manager.sync(self.sorts, None)

    def detach_filters(self, manager) -> None:
        """Панель фильтров закрыта: менеджер больше не получает и не отправляет изменения."""
        self._filter_managers = [m for m in self._filter_managers if m is not manager]
        manager.on_commit = None

    def detach_sorts(self, manager) -> None:
        self._sort_managers = [m for m in self._sort_managers if m is not manager]
        manager.on_commit = None

    # --- изменения ---

    def set_table(self, schema: str, table: str, columns: Sequence[Column]) -> None:
        self.schema = schema
        self.table = table
        self.columns = list(columns)
        self.page = 1
        for manager in self._filter_managers + self._sort_managers:
            manager.set_columns(self.columns)
        self.apply_filters([])
        self.apply_sorts([])

    def apply_filters(self, filters: Sequence[FilterCondition], revision: Optional[int] = None) -> None:
        self.filters = list(filters)
        self.filters_revision = revision
        self.page = 1
        log.debug("[query] filters -> %d rule(s), rev=%s", len(self.filters), revision)
        for manager in self._filter_managers:
            manager.sync(list(self.filters), revision)

    def apply_sorts(self, sorts: Sequence[SortColumn], revision: Optional[int] = None) -> None:
        self.sorts = list(sorts)
        self.sorts_revision = revision
        log.debug("[query] sorts -> %d rule(s), rev=%s", len(self.sorts), revision)
        for manager in self._sort_managers:
            manager.sync(list(self.sorts), revision)

    def reset(self) -> None:
        """Кнопка Reset: убрать все фильтры и сортировки."""
        self.apply_filters([])
        self.apply_sorts([])

    def toggle_sort(self, column: str, add_to_sort: bool = False) -> List[SortColumn]:
        """
        Клик по заголовку колонки: ASC -> DESC -> без сортировки.
        Без add_to_sort сортировка по другой колонке заменяет текущие правила,
        с add_to_sort (Shift+клик) колонка добавляется в конец списка.
        """
        current = next((s for s in self.sorts if s.column == column), None)
        others = [s for s in self.sorts if s.column != column]

        if current is None:
            new = (self.sorts if add_to_sort else []) + [SortColumn(column, SortDirection.ASC)]
        elif not add_to_sort and others:
            new = [SortColumn(column, SortDirection.ASC)]
        elif current.direction == SortDirection.ASC:
            new = [SortColumn(column, SortDirection.DESC) if s.column == column else s for s in self.sorts]
        else:
            new = others

        self.apply_sorts(new)
        return list(self.sorts)

    def set_page(self, page: int) -> None:
        self.page = max(1, int(page))

    # --- SQL ---

    def _category(self, column: str) -> ColumnCategory:
        col = next((c for c in self.columns if c.name == column), None)
        return classify(col) if col else ColumnCategory.TEXT

    def _literal(self, value: str, category: ColumnCategory) -> str:
        # грубая типизация: число для числовой колонки -> без кавычек, иначе строка
        if category is ColumnCategory.NUMBER:
            try:
                if math.isfinite(float(value)):
                    return value.strip()
            except (TypeError, ValueError):
                pass
        return "'" + escape_literal(str(value or "")) + "'"

    def condition_sql(self, f: FilterCondition) -> Optional[str]:
        col = quote_name(f.column)
        cat = self._category(f.column)
        op = Op(f.operator)

        if op is Op.IS_NULL:
            return f"{col} IS NULL"
        if op is Op.IS_NOT_NULL:
            return f"{col} IS NOT NULL"
        if op is Op.IS_TRUE:
            return f"{col} IS TRUE"
        if op is Op.IS_FALSE:
            return f"{col} IS FALSE"
        if f.value is None:
            return None
        if op in _COMPARISONS:
            return f"{col} {_COMPARISONS[op]} {self._literal(f.value, cat)}"
        if op is Op.CONTAINS:
            return f"{col}::text ILIKE {_like_pattern(f.value, '%', '%')}"
        if op is Op.NOT_CONTAINS:
            return f"{col}::text NOT ILIKE {_like_pattern(f.value, '%', '%')}"
        if op is Op.STARTS_WITH:
            return f"{col}::text ILIKE {_like_pattern(f.value, '', '%')}"
        if op is Op.ENDS_WITH:
            return f"{col}::text ILIKE {_like_pattern(f.value, '%', '')}"
        if op is Op.BETWEEN:
            if f.value2 is None:
                return None
            return f"{col} BETWEEN {self._literal(f.value, cat)} AND {self._literal(f.value2, cat)}"
        if op is Op.IN:
            items = [v.strip() for v in f.value.split(",") if v.strip()]
            if not items:
                return None
            return f"{col} IN ({', '.join(self._literal(v, cat) for v in items)})"
        return None

    def build_where(self) -> str:
        conds = [c for c in (self.condition_sql(f) for f in self.filters) if c]
        return ("WHERE " + " AND ".join(conds)) if conds else ""

    def build_order_by(self) -> str:
        if not self.sorts:
            return ""
        parts = [f"{quote_name(s.column)} {SortDirection(s.direction).value}" for s in self.sorts]
        return "ORDER BY " + ", ".join(parts)

    def build_sql(self) -> str:
        if not self.schema or not self.table:
            return "-- select a database and a table"

        from_clause = f"FROM {qualified(self.schema, self.table)}"
        limit = int(self.page_size) if self.page_size else DEFAULT_PAGE_SIZE
        offset = (self.page - 1) * limit
        paging = f"LIMIT {limit} OFFSET {offset}"
        parts = ["SELECT *", from_clause, self.build_where(), self.build_order_by(), paging]
        return "\n".join(p for p in parts if p)

    def build_count_sql(self) -> str:
        parts = ["SELECT COUNT(*)", f"FROM {qualified(self.schema, self.table)}", self.build_where()]
        return "\n".join(p for p in parts if p)
