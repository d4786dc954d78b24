import math
import re
from datetime import date, datetime, time

from pgdesk.models import ColumnCategory, DraftFilter, FilterOperator
from pgdesk.filters.operators import NO_VALUE_OPERATORS

_TIME_RE = re.compile(r"^\d{2}:\d{2}")

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

# форматы, не зависящие от локали (ISO 8601 разбирается отдельно)
DATE_FORMATS = (
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%a, %d %b %Y %H:%M:%S",
    "%a, %d %b %Y %H:%M:%S %z",
    "%d %b %Y %H:%M:%S",
)


def _parses_as_number(text: str) -> bool:
    s = text.strip()
    if not s or "_" in s:
        return False
    try:
        return math.isfinite(float(s))
    except ValueError:
        return False


def _parses_as_iso(text: str) -> bool:
    s = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    parsers = [datetime.fromisoformat, date.fromisoformat]
    # время только в виде HH:MM[...]: иначе "2024-13-01" на 3.11+ читается как 20:24 со смещением
    if _TIME_RE.match(s):
        parsers.append(time.fromisoformat)
    for parse in parsers:
        try:
            parse(s)
            return True
        except ValueError:
            continue
    return False


def _parses_as_date(text: str) -> bool:
    s = text.strip()
    if not s:
        return False
    if _parses_as_iso(s):
        return True
    for fmt in DATE_FORMATS:
        try:
            datetime.strptime(s, fmt)
            return True
        except ValueError:
            continue
    return False


def is_valid(category: ColumnCategory, operator: FilterOperator, raw_text: str) -> bool:
    """
    Синтаксическая проверка введённого значения для категории колонки.

    Пустая строка всегда невалидна. Оператор сейчас не влияет на результат;
    операторы без значения вызывающий код сюда не передаёт.
    """
    if raw_text == "" or raw_text is None:
        return False

    category = ColumnCategory(category)
    if category is ColumnCategory.NUMBER:
        return _parses_as_number(raw_text)
    if category is ColumnCategory.DATE:
        return _parses_as_date(raw_text)
    if category is ColumnCategory.UUID:
        return UUID_RE.match(raw_text.strip()) is not None
    return True


def is_value_invalid(draft: DraftFilter, category: ColumnCategory, text: str) -> bool:
    """Подсветка поля в UI: пустое поле и незаполненное правило красным не считаем."""
    if not draft.column or text == "":
        return False
    if draft.operator in NO_VALUE_OPERATORS:
        return False
    return not is_valid(category, draft.operator, text)
