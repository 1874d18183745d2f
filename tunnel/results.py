"""Turning driver results into JSON-ready payloads."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Union

from sqlalchemy.engine import CursorResult


def jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, timedelta):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (set, frozenset)):
        return sorted(jsonable(v) for v in value)
    return value


def normalize_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(key): jsonable(value) for key, value in row.items()}


@dataclass
class QueryResult:
    data: Union[List[Dict[str, Any]], Dict[str, Any]]
    row_count: int

    @property
    def is_rowset(self) -> bool:
        return isinstance(self.data, list)

    @classmethod
    def from_cursor(cls, result: CursorResult) -> "QueryResult":
        """Rows for SELECT-like statements, an affected-rows header otherwise."""

        if result.returns_rows:
            rows = [normalize_row(row._mapping) for row in result]
            return cls(data=rows, row_count=len(rows))

        affected = result.rowcount if result.rowcount and result.rowcount > 0 else 0
        header = {
            "affectedRows": affected,
            "insertId": getattr(result, "lastrowid", None) or 0,
        }
        return cls(data=header, row_count=affected)
