"""
Значения ячеек грида как замкнутое объединение типов.

Сырые значения из грида (None / bool / число / строка / dict / list)
один раз переводятся в CellValue через to_cell(), дальше генератор SQL
разбирает только эти пять вариантов.
"""
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Union


class _Undefined:
    """Значение отсутствует (ключ есть, но значения нет): INSERT такой ключ пропускает."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


@dataclass(frozen=True)
class Null:
    pass


@dataclass(frozen=True)
class Bool:
    value: bool


@dataclass(frozen=True)
class Num:
    value: Union[int, float, Decimal]


@dataclass(frozen=True)
class Str:
    value: str


@dataclass(frozen=True)
class Json:
    value: Any   # dict или list


CellValue = Union[Null, Bool, Num, Str, Json]

_CELL_TYPES = (Null, Bool, Num, Str, Json)


def to_cell(raw: Any) -> CellValue:
    if isinstance(raw, _CELL_TYPES):
        return raw
    if raw is None or raw is UNDEFINED:
        return Null()
    # bool раньше int: bool является подклассом int
    if isinstance(raw, bool):
        return Bool(raw)
    if isinstance(raw, (int, float, Decimal)):
        return Num(raw)
    if isinstance(raw, (dict, list, tuple)):
        return Json(list(raw) if isinstance(raw, tuple) else raw)
    return Str(str(raw))
