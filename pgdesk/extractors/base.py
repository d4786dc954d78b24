from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple, TypedDict

from pgdesk.models import AlterColumnDefinition, Column, ForeignKeyAction, ForeignKeyReference, ForeignKeyTarget


# ---- сырые записи каталога

class TableInfo(TypedDict):
    schema: str
    name: str
    kind: str                     # 'table', 'view', 'materialized view', 'foreign table', 'partitioned table'


class ColumnInfo(TypedDict, total=False):
    name: str
    data_type: str                # как в information_schema: "integer", "ARRAY", "USER-DEFINED"
    udt_name: str                 # имя в pg_type: "int4", "_text", "mood"
    is_nullable: bool
    ordinal_position: int
    default: Optional[str]


class PrimaryKeyInfo(TypedDict):
    constraint_name: str
    columns: List[str]            # в порядке объявления ключа


class ForeignKeyInfo(TypedDict):
    constraint_name: str
    columns: List[str]
    referenced_schema: str
    referenced_table: str
    referenced_columns: List[str]
    column_pairs: List[Tuple[str, str]]
    on_delete: ForeignKeyAction
    on_update: ForeignKeyAction


class IndexInfo(TypedDict):
    name: str
    method: str                   # btree, hash, gin...
    is_unique: bool
    is_primary: bool
    columns: List[str]            # пусто для чисто выражений


class BaseExtractor(ABC):
    """
    Чтение метаданных схемы. Реализации отдают сырые записи каталога,
    а describe_table() / alter_definitions() собирают из них модели ядра.
    """

    def __init__(self, conn_params: Dict[str, Any]):
        # для PostgreSQL достаточно {'dbname': 'app'}
        self.conn_params = conn_params

    def connect(self) -> None:
        pass

    def close(self) -> None:
        pass

    def __enter__(self) -> "BaseExtractor":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @abstractmethod
    def list_tables(
        self,
        *,
        schemas: Optional[List[str]] = None,
        include_system_schemas: bool = False,
    ) -> List[TableInfo]:
        ...

    @abstractmethod
    def list_columns(self, table_schema: str, table_name: str) -> List[ColumnInfo]:
        ...

    @abstractmethod
    def list_primary_keys(self, table_schema: str, table_name: str) -> List[PrimaryKeyInfo]:
        ...

    @abstractmethod
    def list_foreign_keys(self, table_schema: str, table_name: str) -> List[ForeignKeyInfo]:
        ...

    @abstractmethod
    def list_indexes(self, table_schema: str, table_name: str) -> List[IndexInfo]:
        ...

    @abstractmethod
    def list_enum_values(self, type_names: Iterable[str]) -> Dict[str, List[str]]:
        """Метки enum-типов по имени типа: {'mood': ['sad', 'ok', 'happy']}."""

    # ---- сборка моделей

    def _primary_key_names(self, table_schema: str, table_name: str) -> set:
        return {
            name
            for pk in self.list_primary_keys(table_schema, table_name)
            for name in pk["columns"]
        }

    def _foreign_keys_by_column(self, table_schema: str, table_name: str) -> Dict[str, Tuple[ForeignKeyInfo, str]]:
        # колонка -> (ограничение, целевая колонка); у колонки берём первое ограничение
        out: Dict[str, Tuple[ForeignKeyInfo, str]] = {}
        for fk in self.list_foreign_keys(table_schema, table_name):
            pairs = fk.get("column_pairs") or list(zip(fk["columns"], fk["referenced_columns"]))
            for src, tgt in pairs:
                out.setdefault(src, (fk, tgt))
        return out

    def describe_table(self, table_schema: str, table_name: str) -> List[Column]:
        """Снимки колонок для фильтров, грида и генератора SQL."""
        cols = self.list_columns(table_schema, table_name)
        pk_names = self._primary_key_names(table_schema, table_name)
        fks = self._foreign_keys_by_column(table_schema, table_name)

        # USER-DEFINED бывает и составным типом: у такого меток просто не найдётся
        udts = sorted({c.get("udt_name", "") for c in cols if c.get("data_type") == "USER-DEFINED"} - {""})
        enums = self.list_enum_values(udts) if udts else {}

        result: List[Column] = []
        for c in cols:
            fk = fks.get(c["name"])
            target = ForeignKeyTarget(fk[0]["referenced_schema"], fk[0]["referenced_table"], fk[1]) if fk else None
            result.append(Column(
                name=c["name"],
                data_type=c.get("data_type", ""),
                is_nullable=bool(c.get("is_nullable", True)),
                is_primary_key=c["name"] in pk_names,
                is_foreign_key=fk is not None,
                foreign_key_target=target,
                enum_values=tuple(enums.get(c.get("udt_name", ""), ())),
                default_value=c.get("default"),
            ))
        return result

    def alter_definitions(self, table_schema: str, table_name: str) -> List[AlterColumnDefinition]:
        """
        Исходное состояние колонок для редактора структуры таблицы
        (то, что потом сравнивает generate_alter_table).

        id колонки = её порядковый номер: он не меняется при переименовании.
        UNIQUE отмечается только для одноколоночных уникальных индексов.
        """
        cols = self.list_columns(table_schema, table_name)
        pk_names = self._primary_key_names(table_schema, table_name)
        fks = self._foreign_keys_by_column(table_schema, table_name)
        unique = {
            ix["columns"][0]
            for ix in self.list_indexes(table_schema, table_name)
            if ix["is_unique"] and not ix["is_primary"] and len(ix["columns"]) == 1
        }

        result: List[AlterColumnDefinition] = []
        for i, c in enumerate(cols, start=1):
            fk = fks.get(c["name"])
            ref = None
            if fk:
                info, tgt = fk
                ref = ForeignKeyReference(
                    info["referenced_schema"],
                    info["referenced_table"],
                    tgt,
                    on_delete=info.get("on_delete"),
                    on_update=info.get("on_update"),
                )
            # "ARRAY" и "USER-DEFINED" в DDL не годятся: берём udt_name ("_text" -> text[], "mood")
            data_type = c.get("data_type", "")
            if data_type in ("ARRAY", "USER-DEFINED"):
                udt = c.get("udt_name", "")
                data_type = f"{udt[1:]}[]" if udt.startswith("_") else udt
            result.append(AlterColumnDefinition(
                id=str(c.get("ordinal_position", i)),
                name=c["name"],
                data_type=data_type,
                is_nullable=bool(c.get("is_nullable", True)),
                is_primary_key=c["name"] in pk_names,
                is_unique=c["name"] in unique,
                default_value=c.get("default") or "",
                references=ref,
                foreign_key_constraint_name=fk[0]["constraint_name"] if fk else "",
            ))
        return result
