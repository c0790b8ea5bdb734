"""Pull a SQL candidate out of free-form generated text.

Rules are tried in order and the first match wins:

1. a fenced block tagged ``sql``
2. any fenced block whose content starts with SELECT
3. the longest ``SELECT ...`` run ending at ``;`` or end of text
4. the whole trimmed response (usually rejected later by validation)

The result is either ``SqlCandidate`` or ``NoCandidate``; nothing here
decides whether the SQL is safe.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

_SQL_FENCE = re.compile(r"```sql\s*(.*?)```", re.IGNORECASE | re.DOTALL)
_ANY_FENCE = re.compile(r"```(?:[A-Za-z0-9_+-]*\n)?(.*?)```", re.DOTALL)
_SELECT_RUN = re.compile(r"\bSELECT\b.*?(?:;|\Z)", re.IGNORECASE | re.DOTALL)
_TRAILING_SEMICOLONS = re.compile(r";+\s*$")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class SqlCandidate:
    sql: str
    rule: str


@dataclass(frozen=True)
class NoCandidate:
    reason: str


ExtractionResult = Union[SqlCandidate, NoCandidate]


def clean_sql(sql: str) -> str:
    sql = _TRAILING_SEMICOLONS.sub("", sql.strip())
    return _WHITESPACE.sub(" ", sql).strip()


def _from_sql_fence(response: str) -> Optional[str]:
    match = _SQL_FENCE.search(response)
    return match.group(1) if match else None


def _from_any_fence(response: str) -> Optional[str]:
    for match in _ANY_FENCE.finditer(response):
        body = match.group(1).strip()
        if body.upper().startswith("SELECT"):
            return body
    return None


def _from_select_run(response: str) -> Optional[str]:
    runs = [match.group(0) for match in _SELECT_RUN.finditer(response)]
    return max(runs, key=len) if runs else None


_RULES = (
    ("sql_fence", _from_sql_fence),
    ("select_fence", _from_any_fence),
    ("select_run", _from_select_run),
    ("raw", lambda response: response),
)


def extract(response: Optional[str]) -> ExtractionResult:
    if not response or not response.strip():
        return NoCandidate("empty response")
    for rule, finder in _RULES:
        found = finder(response)
        if found is None:
            continue
        sql = clean_sql(found)
        if sql:
            return SqlCandidate(sql=sql, rule=rule)
    return NoCandidate("no SQL found in response")


def extract_sql(response: Optional[str]) -> str:
    """Like ``extract`` but returns an empty string when nothing was found."""
    result = extract(response)
    return result.sql if isinstance(result, SqlCandidate) else ""
