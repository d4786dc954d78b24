# pgdesk/repositories/commit_repository.py
import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Engine

from pgdesk.db.connections import get_commits_engine
from pgdesk.models import StagedChange


def _commit_hash(parent_id: Optional[str], timestamp: str, sql_statements: Sequence[str]) -> str:
    h = hashlib.sha256()
    h.update((parent_id or "root").encode("utf-8"))
    h.update(timestamp.encode("utf-8"))
    for sql in sql_statements:
        h.update(sql.encode("utf-8"))
    return h.hexdigest()


class CommitRepository:
    """
    История применённых изменений: коммит = упорядоченный набор staged changes.
    Коммиты выстроены в цепочку через parent_id (предыдущий коммит).
    """

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine if engine is not None else get_commits_engine()
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        pk = "BIGSERIAL PRIMARY KEY" if self.engine.dialect.name == "postgresql" else "INTEGER PRIMARY KEY"
        with self.engine.begin() as conn:
            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS commits (
                    id TEXT PRIMARY KEY,
                    parent_id TEXT,
                    seq INTEGER NOT NULL,
                    message TEXT NOT NULL,
                    summary TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    change_count INTEGER NOT NULL
                )
            """))
            conn.execute(text(f"""
                CREATE TABLE IF NOT EXISTS commit_changes (
                    id {pk},
                    commit_id TEXT NOT NULL REFERENCES commits(id),
                    type TEXT NOT NULL,
                    schema_name TEXT NOT NULL,
                    table_name TEXT NOT NULL,
                    data TEXT NOT NULL,
                    original_data TEXT,
                    sql TEXT NOT NULL,
                    sort_order INTEGER NOT NULL
                )
            """))
            conn.execute(text(
                "CREATE INDEX IF NOT EXISTS idx_commit_changes_commit_id ON commit_changes(commit_id)"
            ))

    def save_commit(self, message: str, summary: str, changes: Sequence[StagedChange]) -> Dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        with self.engine.begin() as conn:
            latest = conn.execute(
                text("SELECT id, seq FROM commits ORDER BY seq DESC LIMIT 1")
            ).fetchone()
            parent_id = latest[0] if latest else None
            seq = int(latest[1]) + 1 if latest else 1
            commit_id = _commit_hash(parent_id, now, [c.sql for c in changes])

            commit = {
                "id": commit_id,
                "parent_id": parent_id,
                "message": message,
                "summary": summary,
                "created_at": now,
                "change_count": len(changes),
            }
            conn.execute(
                text("""
                    INSERT INTO commits (id, parent_id, seq, message, summary, created_at, change_count)
                    VALUES (:id, :parent_id, :seq, :message, :summary, :created_at, :change_count)
                """),
                {**commit, "seq": seq},
            )
            for i, change in enumerate(changes):
                conn.execute(
                    text("""
                        INSERT INTO commit_changes
                            (commit_id, type, schema_name, table_name, data, original_data, sql, sort_order)
                        VALUES (:commit_id, :type, :schema_name, :table_name, :data, :original_data, :sql, :ord)
                    """),
                    {
                        "commit_id": commit_id,
                        "type": change.type.value,
                        "schema_name": change.schema,
                        "table_name": change.table,
                        "data": json.dumps(change.data, default=str),
                        "original_data": (
                            json.dumps(change.original_data, default=str)
                            if change.original_data is not None else None
                        ),
                        "sql": change.sql,
                        "ord": i,
                    },
                )
        return commit

    def list_commits(self) -> List[Dict[str, Any]]:
        """Новые сверху."""
        with self.engine.connect() as conn:
            rows = conn.execute(text("""
                SELECT id, parent_id, message, summary, created_at, change_count
                FROM commits
                ORDER BY seq DESC
            """)).mappings().all()
        return [dict(r) for r in rows]

    def get_commit_detail(self, commit_id: str) -> Dict[str, Any]:
        with self.engine.connect() as conn:
            commit = conn.execute(
                text("""
                    SELECT id, parent_id, message, summary, created_at, change_count
                    FROM commits WHERE id = :id
                """),
                {"id": commit_id},
            ).mappings().fetchone()
            if commit is None:
                raise LookupError(f"Commit '{commit_id}' not found")
            changes = conn.execute(
                text("""
                    SELECT id, commit_id, type, schema_name, table_name, data, original_data, sql, sort_order
                    FROM commit_changes
                    WHERE commit_id = :id
                    ORDER BY sort_order
                """),
                {"id": commit_id},
            ).mappings().all()
        return {"commit": dict(commit), "changes": [dict(c) for c in changes]}
