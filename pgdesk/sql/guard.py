"""
Грубая проверка произвольного SQL перед отправкой на выполнение.

Это сигнальная проволока, а не граница безопасности: запрос не парсится,
ищутся только явные признаки "прицепленных" опасных команд и комментариев.
"""
import re
from typing import Dict, Union

from pgdesk.errors import GuardRejection

REJECTION_REASON = "Query contains potentially dangerous patterns"

DANGEROUS_PATTERNS = [
    re.compile(r";\s*drop\s+", re.IGNORECASE),
    # DELETE без WHERE в пределах той же команды (до следующей ';')
    re.compile(r";\s*delete\s+from\s+(?![^;]*\bwhere\b)", re.IGNORECASE),
    re.compile(r";\s*truncate\s+", re.IGNORECASE),
    re.compile(r";\s*alter\s+", re.IGNORECASE),
    re.compile(r"--"),
    re.compile(r"/\*"),
]


def validate_sql(sql: str) -> Dict[str, Union[bool, str]]:
    for pattern in DANGEROUS_PATTERNS:
        if pattern.search(sql or ""):
            return {"valid": False, "error": REJECTION_REASON}
    return {"valid": True}


def ensure_safe(sql: str) -> str:
    result = validate_sql(sql)
    if not result["valid"]:
        raise GuardRejection(str(result["error"]), sql)
    return sql
