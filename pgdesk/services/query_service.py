import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.engine import Engine

from pgdesk.db.connections import get_engine
from pgdesk.sql.guard import ensure_safe

log = logging.getLogger(__name__)

QueryResult = Dict[str, Any]


def _result(ok=True, rows=None, columns=None, rows_affected=0, duration_ms=0, error=None) -> QueryResult:
    return {
        "ok": ok,
        "rows": rows or [],
        "columns": columns or [],
        "rows_affected": rows_affected,
        "duration_ms": duration_ms,
        "error": error,
    }


class QueryService:
    """
    Выполнение готового текста SQL. SQL отдаётся драйверу как есть
    (exec_driver_sql, без разбора ':param'), ошибки БД возвращаются строкой.
    """

    def __init__(self, engine_factory: Callable[[str], Engine] = get_engine):
        self.engine_factory = engine_factory
        self.on_executed: Optional[Callable[[str, QueryResult], None]] = None

    def run(self, dbname: str, sql: str, *, guard: bool = True) -> QueryResult:
        sql = (sql or "").strip()
        if not sql:
            return _result(ok=False, error="Empty query")
        if guard:
            # GuardRejection уходит вызывающему: запрос не отправляется
            ensure_safe(sql)

        engine = self.engine_factory(dbname)
        t0 = time.perf_counter()
        result = _result()
        try:
            with engine.begin() as conn:
                res = conn.exec_driver_sql(sql)
                if res.returns_rows:
                    result["columns"] = list(res.keys())
                    result["rows"] = [dict(r) for r in res.mappings()]
                else:
                    result["rows_affected"] = max(res.rowcount, 0)
        except Exception as e:
            result.update(ok=False, error=str(e))
            log.warning("[query] '%s' failed: %s", dbname, e)
        result["duration_ms"] = round((time.perf_counter() - t0) * 1000)

        if self.on_executed is not None:
            self.on_executed(sql, result)
        return result

    def run_many(self, dbname: str, statements: Sequence[str]) -> QueryResult:
        """
        Несколько команд в одной транзакции: либо все, либо ни одной.
        Сгенерированный SQL через guard не пропускается.
        """
        if not statements:
            return _result()
        engine = self.engine_factory(dbname)
        t0 = time.perf_counter()
        affected: List[int] = []
        try:
            with engine.begin() as conn:
                for stmt in statements:
                    res = conn.exec_driver_sql(stmt)
                    affected.append(max(res.rowcount, 0))
        except Exception as e:
            log.warning("[query] batch of %d on '%s' rolled back: %s", len(statements), dbname, e)
            return _result(ok=False, error=str(e), duration_ms=round((time.perf_counter() - t0) * 1000))
        return _result(rows_affected=sum(affected), duration_ms=round((time.perf_counter() - t0) * 1000))
