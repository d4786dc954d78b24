"""
Черновики правил фильтрации и сортировки.

Менеджер держит список черновиков (в том числе незаполненных) и выпускает
наружу только полные и валидные правила. Каждый выпуск получает новый номер
ревизии; по нему внешний владелец списка (QueryBuilderState) и сам менеджер
отличают "своё эхо" от внешнего сброса.

Ввод значения двухфазный: stage_*() меняет черновик, flush() коммитит.
Таймер (дебаунс) принадлежит вызывающему коду, см. DebouncedField.
"""
from __future__ import annotations
import logging
from dataclasses import replace
from typing import Any, Callable, Generic, Iterable, List, Optional, Protocol, Sequence, TypeVar

from pgdesk.models import (
    Column,
    ColumnCategory,
    DraftFilter,
    DraftSort,
    FilterCondition,
    FilterOperator,
    SortColumn,
)
from pgdesk.filters.categories import classify
from pgdesk.filters.operators import (
    NO_VALUE_OPERATORS,
    TEXT_OPERATORS,
    OperatorDef,
    default_operator,
    operators_for,
)
from pgdesk.filters.validation import is_valid

log = logging.getLogger(__name__)

DEBOUNCE_MS = 300

D = TypeVar("D")   # тип черновика
C = TypeVar("C")   # тип закоммиченного правила

CommitCallback = Callable[[List[Any], int], None]


def to_drafts(filters: Iterable[FilterCondition]) -> List[DraftFilter]:
    return [
        DraftFilter(
            column=f.column,
            operator=FilterOperator(f.operator),
            value=f.value or "",
            value2=f.value2 or "",
        )
        for f in filters
    ]


def to_sort_drafts(sorts: Iterable[SortColumn]) -> List[DraftSort]:
    drafts: List[DraftSort] = []
    seen = set()
    for s in sorts:
        # одна колонка, одно правило: при внешней синхронизации оставляем первое
        if s.column in seen:
            continue
        seen.add(s.column)
        drafts.append(DraftSort(column=s.column, direction=s.direction))
    return drafts


class _RuleList(Generic[D, C]):

    def __init__(
        self,
        columns: Sequence[Column],
        committed: Iterable[C] = (),
        on_commit: Optional[CommitCallback] = None,
    ):
        self.columns: List[Column] = list(columns)
        self.committed: List[C] = list(committed)
        self.drafts: List[D] = self._to_drafts(self.committed)
        self.on_commit = on_commit
        self.revision = 0
        self._dirty = False

    # --- переопределяется в наследниках ---

    def _to_drafts(self, committed: Iterable[C]) -> List[D]:
        raise NotImplementedError

    def _is_committable(self, draft: D) -> bool:
        raise NotImplementedError

    def _to_committed(self, draft: D) -> C:
        raise NotImplementedError

    # --- общее ---

    @property
    def has_pending_blank(self) -> bool:
        return any(d.column == "" for d in self.drafts)

    def column(self, name: str) -> Optional[Column]:
        return next((c for c in self.columns if c.name == name), None)

    def _replace_at(self, index: int, draft: D) -> List[D]:
        if not 0 <= index < len(self.drafts):
            raise IndexError(f"no rule at position {index}")
        return [draft if i == index else d for i, d in enumerate(self.drafts)]

    def commit(self, drafts: Optional[List[D]] = None) -> List[C]:
        """
        Отфильтровать черновики до полных и валидных правил и выпустить их наружу.
        Черновики сохраняются как есть.
        """
        if drafts is not None:
            self.drafts = drafts
        self.committed = [self._to_committed(d) for d in self.drafts if self._is_committable(d)]
        self.revision += 1
        self._dirty = False
        log.debug("[drafts] commit rev=%d: %d of %d rule(s)", self.revision, len(self.committed), len(self.drafts))
        if self.on_commit is not None:
            self.on_commit(list(self.committed), self.revision)
        return list(self.committed)

    def flush(self) -> List[C]:
        """Закоммитить отложенный ввод (если он есть)."""
        if self._dirty:
            return self.commit()
        return list(self.committed)

    def sync(self, committed: Iterable[C], revision: Optional[int] = None) -> bool:
        """
        Внешнее изменение закоммиченного списка (сброс, клик по заголовку колонки).
        Если это эхо нашего же последнего коммита, черновики не трогаем.
        Возвращает True, если черновики были заменены.
        """
        if revision is not None and revision == self.revision:
            return False
        self.committed = list(committed)
        self.drafts = self._to_drafts(self.committed)
        self._dirty = False
        return True

    def set_columns(self, columns: Sequence[Column]) -> None:
        """Смена таблицы: новый набор колонок, черновики пересобираются из закоммиченного."""
        self.columns = list(columns)
        self.sync(self.committed)

    def remove_rule(
self, index: int) -> List[C]:
        if not 0 <= index < len(self.drafts):
            raise IndexError(f"no rule at position {index}")
        return self.commit([d for i, d in enumerate(self.drafts) if i != index])

    def clear_all(self) -> List[C]:
        return self.commit([])

    def close(self) -> None:
        """Панель закрывается: дописать ввод и выбросить правила без колонки."""
        self.flush()
        self.drafts = [d for d in self.drafts if d.column != ""]


class FilterDraftManager(_RuleList[DraftFilter, FilterCondition]):

    def _to_drafts(self, committed):
        return to_drafts(committed)

    def category_for_draft(self, draft: DraftFilter) -> ColumnCategory:
        col = self.column(draft.column)
        return classify(col) if col else ColumnCategory.TEXT

    def operators_for_draft(self, index: int) -> List[OperatorDef]:
        draft = self.drafts[index]
        if not draft.column:
            return list(TEXT_OPERATORS)
        return operators_for(self.category_for_draft(draft))

    def _is_committable(self, d: DraftFilter) -> bool:
        if not d.column:
            return False
        if d.operator in NO_VALUE_OPERATORS:
            return True
        cat = self.category_for_draft(d)
        if d.operator == FilterOperator.BETWEEN:
            return is_valid(cat, d.operator, d.value) and is_valid(cat, d.operator, d.value2)
        return is_valid(cat, d.operator, d.value)

    def _to_committed(self, d: DraftFilter) -> FilterCondition:
        if d.operator in NO_VALUE_OPERATORS:
            return FilterCondition(column=d.column, operator=d.operator)
        if d.operator == FilterOperator.BETWEEN:
            return FilterCondition(column=d.column, operator=d.operator, value=d.value, value2=d.value2)
        return FilterCondition(column=d.column, operator=d.operator, value=d.value)

    @property
    def can_add_rule(self) -> bool:
        return bool(self.columns) and not self.has_pending_blank

    def add_rule(self) -> bool:
        """Добавить пустое правило. Пока есть незаполненное, второе не добавляем."""
        if not self.can_add_rule:
            return False
        self.drafts = self.drafts + [DraftFilter()]
        return True

    def set_column(self, index: int, name: str) -> List[FilterCondition]:
        col = self.column(name)
        cat = classify(col) if col else ColumnCategory.TEXT
        draft = replace(self.drafts[index], column=name, operator=default_operator(cat), value="", value2="")
        return self.commit(self._replace_at(index, draft))

    def set_operator(self, index: int, operator: FilterOperator) -> List[FilterCondition]:
        op = FilterOperator(operator)
        draft = replace(self.drafts[index], operator=op)
        if op != FilterOperator.BETWEEN:
            draft = replace(draft, value2="")
        return self.commit(self._replace_at(index, draft))

    def stage_value(self, index: int, text: str) -> None:
        self.drafts = self._replace_at(index, replace(self.drafts[index], value=text))
        self._dirty = True

    def stage_value2(self, index: int, text: str) -> None:
        self.drafts = self._replace_at(index, replace(self.drafts[index], value2=text))
        self._dirty = True

    def set_value(self, index: int, text: str) -> List[FilterCondition]:
        self.stage_value(index, text)
        return self.flush()

    def set_value2(self, index: int, text: str) -> List[FilterCondition]:
        self.stage_value2(index, text)
        return self.flush()


class SortDraftManager(_RuleList[DraftSort, SortColumn]):

    def _to_drafts(self, committed):
        return to_sort_drafts(committed)

    def _is_committable(self, d: DraftSort) -> bool:
        return d.column != ""

    def _to_committed(self, d: DraftSort) -> SortColumn:
        return SortColumn(column=d.column, direction=d.direction)

    def used_columns(self, exclude_index: Optional[int] = None) -> set:
        return {d.column for i, d in enumerate(self.drafts) if d.column and i != exclude_index}

    def available_columns(self, index: Optional[int] = None) -> List[str]:
        """Колонки, которые можно выбрать для правила `index` (занятые другими правилами исключены)."""
        used = self.used_columns(exclude_index=index)
        return [c.name for c in self.columns if c.name not in used]

    @property
    def can_add_rule(self) -> bool:
        return len(self.columns) > len(self.drafts) and not self.has_pending_blank

    def add_rule(self) -> bool:
        if not self.can_add_rule:
            return False
        self.drafts = self.drafts + [DraftSort()]
        return True

    def set_column(self, index: int, name: str) -> List[SortColumn]:
        if name and name in self.used_columns(exclude_index=index):
            raise ValueError(f"Column '{name}' is already used by another sort rule")
        draft = replace(self.drafts[index], column=name)
        return self.commit(self._replace_at(index, draft))

    def toggle_direction(self, index: int) -> List[SortColumn]:
        draft = self.drafts[index]
        if not draft.column:
            return list(self.committed)
        return self.commit(self._replace_at(index, replace(draft, direction=draft.direction.flipped())))


class Scheduler(Protocol):
    """То, что умеет tk-виджет: after(ms, fn) -> id и after_cancel(id)."""

    def after(self, ms: int, func: Callable[[], Any]) -> Any: ...

    def after_cancel(self, handle: Any) -> None: ...


class DebouncedField:
    """
    Поле ввода значения: каждое нажатие сразу попадает в черновик (stage),
    коммит откладывается на DEBOUNCE_MS после последнего нажатия.
    Потеря фокуса коммитит немедленно.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        stage: Callable[[str], None],
        flush: Callable[[], Any],
        delay_ms: int = DEBOUNCE_MS,
    ):
        self.scheduler = scheduler
        self.stage = stage
        self._flush = flush
        self.delay_ms = delay_ms
        self._timer = None

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def keystroke(self, text: str) -> None:
        self.stage(text)
        self.cancel()
        self._timer = self.scheduler.after(self.delay_ms, self._fire)

    def blur(self) -> None:
        self.cancel()
        self._flush()

    def cancel(self) -> None:
        if self._timer is not None:
            self.scheduler.after_cancel(self._timer)
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        self._flush()
