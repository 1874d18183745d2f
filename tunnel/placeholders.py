"""Positional ``?`` placeholder handling for parameterized queries.

Clients always send ``?`` placeholders. DBAPI drivers disagree on the marker
(sqlite3 takes ``?``, the MySQL drivers take ``%s``), so the statement is
rewritten to the driver's paramstyle before binding. Placeholders inside string
literals, quoted identifiers and comments are left alone.

The MySQL drivers get named ``%(pN)s`` markers and a mapping, never bare
``%s`` with a sequence: mysql-connector substitutes every ``%s`` in a
sequence-bound statement, including ones inside literals such as
``DATE_FORMAT(d, '%H:%i:%s')``, while its mapping path only touches
``%(name)s``.
"""
from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple, Union

# Drivers that run the statement through Python %-formatting when params are
# given, so a literal percent sign has to be doubled.
PERCENT_FORMATTING_DRIVERS = {"pymysql", "mysqldb", "psycopg2"}

_QUOTES = {"'", '"', "`"}


def _scan(query: str) -> List[Tuple[str, bool]]:
    """Split ``query`` into ``(chunk, is_code)`` pieces."""

    pieces: List[Tuple[str, bool]] = []
    i = 0
    start = 0
    n = len(query)

    def flush_code(end: int) -> None:
        if end > start:
            pieces.append((query[start:end], True))

    while i < n:
        ch = query[i]
        nxt = query[i + 1] if i + 1 < n else ""

        if ch in _QUOTES:
            flush_code(i)
            j = i + 1
            while j < n:
                if query[j] == "\\" and ch != "`":
                    j += 2
                    continue
                if query[j] == ch:
                    if j + 1 < n and query[j + 1] == ch:
                        j += 2
                        continue
                    break
                j += 1
            end = min(j + 1, n)
            pieces.append((query[i:end], False))
            i = start = end
            continue

        if (ch == "-" and nxt == "-") or ch == "#":
            flush_code(i)
            j = query.find("\n", i)
            end = n if j == -1 else j
            pieces.append((query[i:end], False))
            i = start = end
            continue

        if ch == "/" and nxt == "*":
            flush_code(i)
            j = query.find("*/", i + 2)
            end = n if j == -1 else j + 2
            pieces.append((query[i:end], False))
            i = start = end
            continue

        i += 1

    flush_code(n)
    return pieces


def count_placeholders(query: str) -> int:
    return sum(chunk.count("?") for chunk, is_code in _scan(query) if is_code)


def _uses_named_markers(paramstyle: str) -> bool:
    return paramstyle in ("format", "pyformat")


def marker_name(index: int) -> str:
    return f"p{index}"


def to_paramstyle(query: str, paramstyle: str, driver: str = "") -> Tuple[str, int]:
    """Rewrite ``?`` placeholders for ``paramstyle``.

    Returns the rewritten statement and the number of placeholders found.
    For the ``%`` paramstyles each placeholder becomes a named ``%(pN)s``
    marker, bound with the mapping from :func:`bind_params`.
    """

    pieces = _scan(query)
    count = sum(chunk.count("?") for chunk, is_code in pieces if is_code)
    if not _uses_named_markers(paramstyle):
        return query, count

    escape_percent = driver in PERCENT_FORMATTING_DRIVERS
    out = []
    index = 0
    for chunk, is_code in pieces:
        if escape_percent:
            chunk = chunk.replace("%", "%%")
        if is_code and "?" in chunk:
            parts = chunk.split("?")
            rewritten = [parts[0]]
            for part in parts[1:]:
                rewritten.append(f"%({marker_name(index)})s")
                rewritten.append(part)
                index += 1
            chunk = "".join(rewritten)
        out.append(chunk)
    return "".join(out), count


def bind_params(params: Sequence[Any], paramstyle: str) -> Union[Tuple[Any, ...], Dict[str, Any]]:
    """Shape ``params`` to match the markers written by :func:`to_paramstyle`."""

    if _uses_named_markers(paramstyle):
        return {marker_name(i): value for i, value in enumerate(params)}
    return tuple(params)
