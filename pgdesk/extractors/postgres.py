from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional

from psycopg2.extensions import connection as PGConnection

from pgdesk.db.connections import get_engine
from pgdesk.models import ForeignKeyAction
from .base import (
    BaseExtractor,
    ColumnInfo,
    ForeignKeyInfo,
    IndexInfo,
    PrimaryKeyInfo,
    TableInfo,
)

# pg_class.relkind -> человекочитаемый вид объекта
RELKINDS = {
    "r": "table",
    "p": "partitioned table",
    "v": "view",
    "m": "materialized view",
    "f": "foreign table",
}

# pg_constraint.confdeltype / confupdtype
FK_ACTIONS = {
    "a": ForeignKeyAction.NO_ACTION,
    "r": ForeignKeyAction.RESTRICT,
    "c": ForeignKeyAction.CASCADE,
    "n": ForeignKeyAction.SET_NULL,
    "d": ForeignKeyAction.SET_DEFAULT,
}

SYSTEM_SCHEMAS = ("pg_catalog", "information_schema", "pg_toast")

# таблица по схеме и имени без ручного экранирования
_REGCLASS = "(quote_ident(%s) || '.' || quote_ident(%s))::regclass"


class PostgresExtractor(BaseExtractor):
    """
    BaseExtractor для PostgreSQL: pg_catalog, а для типов колонок information_schema
    (его data_type отличает "ARRAY" и "USER-DEFINED" от обычных типов).

    Соединение берётся из общего пула get_engine() и возвращается туда в close().
    """

    def __init__(self, conn_params: Dict[str, Any], engine_factory=get_engine):
        super().__init__(conn_params)
        self.engine_factory = engine_factory
        self._engine = None
        self.conn: Optional[PGConnection] = None

    def connect(self) -> None:
        if self.conn is not None:
            return
        self._engine = self.engine_factory(self.conn_params["dbname"])
        # raw DBAPI-соединение: дальше работаем с курсором psycopg2 напрямую
        self.conn = self._engine.raw_connection()

    def close(self) -> None:
        if self.conn is not None:
            # незакрытая читающая транзакция откатится при возврате в пул
            self.conn.close()
        self.conn = None
        self._engine = None

    def _fetchall(self, sql: str, params=None) -> List[tuple]:
        self.connect()
        with self.conn.cursor() as cur:
            cur.execute(sql, params)
            return cur.fetchall()

    # ---- каталог

    def list_tables(
        self,
        *,
        schemas: Optional[List[str]] = None,
        include_system_schemas: bool = False,
    ) -> List[TableInfo]:
        conds = ["c.relkind::text = ANY(%s)"]
        params: List[Any] = [list(RELKINDS)]
        if not include_system_schemas:
            conds.append("n.nspname::text <> ALL(%s)")
            conds.append("n.nspname NOT LIKE 'pg\\_temp\\_%%'")
            params.append(list(SYSTEM_SCHEMAS))
        if schemas:
            conds.append("n.nspname::text = ANY(%s)")
            params.append(list(schemas))

        sql = f"""
            SELECT n.nspname, c.relname, c.relkind
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE {" AND ".join(conds)}
            ORDER BY n.nspname, c.relname
        """
        return [
            TableInfo(schema=schema, name=name, kind=RELKINDS.get(kind, kind))
            for schema, name, kind in self._fetchall(sql, params)
        ]

    def list_columns(self, table_schema: str, table_name: str) -> List[ColumnInfo]:
        sql = """
            SELECT column_name, data_type, udt_name, is_nullable = 'YES', ordinal_position, column_default
            FROM information_schema.columns
            WHERE table_schema = %s AND table_name = %s
            ORDER BY ordinal_position
        """
        return [
            ColumnInfo(
                name=name,
                data_type=data_type,
                udt_name=udt_name,
                is_nullable=bool(nullable),
                ordinal_position=int(position),
                default=default,
            )
            for name, data_type, udt_name, nullable, position, default
            in self._fetchall(sql, (table_schema, table_name))
        ]

    def list_primary_keys(self, table_schema: str, table_name: str) -> List[PrimaryKeyInfo]:
        sql = f"""
            SELECT con.conname, a.attname
            FROM pg_constraint con
            CROSS JOIN LATERAL unnest(con.conkey) WITH ORDINALITY AS k(attnum, pos)
            JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
            WHERE con.contype = 'p' AND con.conrelid = {_REGCLASS}
            ORDER BY k.pos
        """
        keys: Dict[str, PrimaryKeyInfo] = {}
        for conname, column in self._fetchall(sql, (table_schema, table_name)):
            keys.setdefault(conname, PrimaryKeyInfo(constraint_name=conname, columns=[]))["columns"].append(column)
        return list(keys.values())

    def list_foreign_keys(self, table_schema: str, table_name: str) -> List[ForeignKeyInfo]:
        sql = f"""
            SELECT
                con.conname,
                tn.nspname,
                tc.relname,
                sa.attname,
                ta.attname,
                con.confdeltype,
                con.confupdtype
            FROM pg_constraint con
            CROSS JOIN LATERAL unnest(con.conkey, con.confkey) WITH ORDINALITY AS k(src, tgt, pos)
            JOIN pg_class tc ON tc.oid = con.confrelid
            JOIN pg_namespace tn ON tn.oid = tc.relnamespace
            JOIN pg_attribute sa ON sa.attrelid = con.conrelid AND sa.attnum = k.src
            JOIN pg_attribute ta ON ta.attrelid = con.confrelid AND ta.attnum = k.tgt
            WHERE con.contype = 'f' AND con.conrelid = {_REGCLASS}
            ORDER BY con.conname, k.pos
        """
        fks: Dict[str, ForeignKeyInfo] = {}
        for conname, ref_schema, ref_table, src, tgt, on_delete, on_update in self._fetchall(
            sql, (table_schema, table_name)
        ):
            fk = fks.get(conname)
            if fk is None:
                fk = fks[conname] = ForeignKeyInfo(
                    constraint_name=conname,
                    columns=[],
                    referenced_schema=ref_schema,
                    referenced_table=ref_table,
                    referenced_columns=[],
                    column_pairs=[],
                    on_delete=FK_ACTIONS.get(on_delete, ForeignKeyAction.NO_ACTION),
                    on_update=FK_ACTIONS.get(on_update, ForeignKeyAction.NO_ACTION),
                )
            fk["columns"].append(src)
            fk["referenced_columns"].append(tgt)
            fk["column_pairs"].append((src, tgt))
        return list(fks.values())

    def list_indexes(self, table_schema: str, table_name: str) -> List[IndexInfo]:
        # attnum = 0 в indkey означает выражение: такие позиции в columns не попадают
        sql = f"""
            SELECT
                ic.relname,
                am.amname,
                ix.indisunique,
                ix.indisprimary,
                COALESCE(
                    array_agg(a.attname::text ORDER BY k.pos) FILTER (WHERE a.attname IS NOT NULL),
                    '{{}}'::text[]
                )
            FROM pg_index ix
            JOIN pg_class ic ON ic.oid = ix.indexrelid
            JOIN pg_am am ON am.oid = ic.relam
            CROSS JOIN LATERAL unnest(ix.indkey::int2[]) WITH ORDINALITY AS k(attnum, pos)
            LEFT JOIN pg_attribute a ON a.attrelid = ix.indrelid AND a.attnum = k.attnum AND k.attnum > 0
            WHERE ix.indrelid = {_REGCLASS}
            GROUP BY ic.relname, am.amname, ix.indisunique, ix.indisprimary
            ORDER BY ic.relname
        """
        return [
            IndexInfo(
                name=name,
                method=method,
                is_unique=bool(is_unique),
                is_primary=bool(is_primary),
                columns=list(columns or []),
            )
            for name, method, is_unique, is_primary, columns in self._fetchall(sql, (table_schema, table_name))
        ]

    def list_enum_values(self, type_names: Iterable[str]) -> Dict[str, List[str]]:
        names = list(type_names)
        if not names:
            return {}
        sql = """
            SELECT t.typname, e.enumlabel
            FROM pg_enum e
            JOIN pg_type t ON t.oid = e.enumtypid
            WHERE t.typname::text = ANY(%s)
            ORDER BY t.typname, e.enumsortorder
        """
        labels: Dict[str, List[str]] = {}
        for typname, label in self._fetchall(sql, (names,)):
            labels.setdefault(typname, []).append(label)
        return labels
