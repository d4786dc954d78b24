import json
import logging
import uuid
from collections import Counter
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence

from pgdesk.models import ChangeType, Column, Row, StagedChange
from pgdesk.sql.generator import changed_keys, generate_delete, generate_insert, generate_update

log = logging.getLogger(__name__)


def row_identity(row: Row, columns: Sequence[Column] = ()) -> str:
    """
    Ключ строки для склейки правок: значения PK, если они есть. У таблицы без PK
    строку определяют все её значения (как и WHERE в generate_update).
    Без метаданных колонок: поле 'id', иначе первое поле.
    """
    pk = [c.name for c in columns if c.is_primary_key]
    if pk:
        return "|".join(str(row.get(name)) for name in pk)
    if columns:
        return json.dumps(row, sort_keys=True, default=str)
    if "id" in row:
        return str(row["id"])
    first = next(iter(row), None)
    return str(row[first]) if first is not None else ""


def summarize(changes: Sequence[StagedChange]) -> str:
    """Строка summary для истории коммитов: '2 inserts, 1 update'."""
    counts = Counter(c.type for c in changes)
    parts = []
    for t in (ChangeType.INSERT, ChangeType.UPDATE, ChangeType.DELETE):
        n = counts.get(t, 0)
        if n:
            parts.append(f"{n} {t.value}{'s' if n != 1 else ''}")
    return ", ".join(parts) or "no changes"


class ChangeStore:
    """
    Отложенные правки (staged changes): SQL сгенерирован, но ещё не выполнен.
    Повторные UPDATE одной и той же строки склеиваются в один.
    """

    def __init__(self):
        self.changes: List[StagedChange] = []

    def _find_update(self, schema: str, table: str, identity: str, columns: Sequence[Column]) -> Optional[int]:
        for i, c in enumerate(self.changes):
            if (
                c.type is ChangeType.UPDATE
                and c.schema == schema
                and c.table == table
                and row_identity(c.original_data or c.data, columns) == identity
            ):
                return i
        return None

    def add(self, change: StagedChange, columns: Sequence[Column] = ()) -> StagedChange:
        if change.type is ChangeType.UPDATE and change.original_data is not None:
            identity = row_identity(change.original_data, columns)
            idx = self._find_update(change.schema, change.table, identity, columns)
            if idx is not None:
                existing = self.changes[idx]
                merged = replace(existing, data={**existing.data, **change.data}, sql=change.sql)
                self.changes = [merged if i == idx else c for i, c in enumerate(self.changes)]
                return merged

        stored = replace(change, id=change.id or uuid.uuid4().hex[:9])
        self.changes = self.changes + [stored]
        return stored

    def stage_insert(self, schema: str, table: str, data: Row, columns: Sequence[Column]) -> StagedChange:
        sql = generate_insert(schema, table, data, columns)
        return self.add(StagedChange(ChangeType.INSERT, schema, table, dict(data), sql))

    def stage_update(
        self,
        schema: str,
        table: str,
        data: Row,
        original_data: Row,
        columns: Sequence[Column],
    ) -> Optional[StagedChange]:
        """
        Возвращает None, если после склейки строка совпала с исходной:
        такая правка просто снимается.
        """
        identity = row_identity(original_data, columns)
        idx = self._find_update(schema, table, identity, columns)
        if idx is not None:
            # пересобираем SQL от исходной строки, чтобы не потерять прошлые правки
            existing = self.changes[idx]
            merged_data = {**existing.data, **data}
            if not changed_keys(merged_data, existing.original_data):
                self.remove(existing.id)
                return None
            sql = generate_update(schema, table, merged_data, existing.original_data, columns)
            merged = replace(existing, data=merged_data, sql=sql)
            self.changes = [merged if i == idx else c for i, c in enumerate(self.changes)]
            return merged

        sql = generate_update(schema, table, data, original_data, columns)
        return self.add(
            StagedChange(ChangeType.UPDATE, schema, table, dict(data), sql, original_data=dict(original_data)),
            columns,
        )

    def stage_delete(self, schema: str, table: str, data: Row, columns: Sequence[Column]) -> StagedChange:
        sql = generate_delete(schema, table, data, columns)
        return self.add(StagedChange(ChangeType.DELETE, schema, table, dict(data), sql))

    def remove(self, change_id: str) -> None:
        self.changes = [c for c in self.changes if c.id != change_id]

    def clear(self) -> None:
        self.changes = []

    def for_table(self, schema: str, table: str) -> List[StagedChange]:
        return [c for c in self.changes if c.schema == schema and c.table == table]

    def has_changes(self) -> bool:
        return bool(self.changes)

    def apply(self, query_service, dbname: str, repo=None, message: str = "") -> Dict[str, Any]:
        """
        Выполнить все правки одной транзакцией. При успехе записать коммит
        в историю (если передан repo) и очистить список; при ошибке список
        не трогаем, ошибка БД возвращается как есть.
        """
        changes = list(self.changes)
        if not changes:
            return {"ok": True, "rows_affected": 0, "error": None, "commit": None}

        result = query_service.run_many(dbname, [c.sql for c in changes])
        if not result["ok"]:
            return {**result, "commit": None}

        commit = None
        if repo is not None:
            summary = summarize(changes)
            commit = repo.save_commit(message or summary, summary, changes)
        log.info("[changes] applied %d change(s) to '%s'", len(changes), dbname)
        self.clear()
        return {**result, "commit": commit}
