"""Type-aware materialization of query results.

Booleans come back from storage as 0/1 integers (0.0/1.0 from REAL columns). They are rehydrated by a
column-naming policy, not by the declared schema; the policy is swappable.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Protocol, Union

from tabular_nlq.errors import FormattingFailure
from tabular_nlq.models.results import (
    ColumnMetadata,
    FormattedPaginatedQueryResult,
    FormattedQueryResult,
    PaginatedQueryResult,
    QueryResult,
    ResultMetadata,
)

logger = logging.getLogger(__name__)

BOOLEAN_PREFIXES = ("is_", "has_", "can_", "should_", "will_", "was_", "were_")
BOOLEAN_SUFFIXES = ("_flag", "_enabled", "_disabled", "_active", "_visible")


class BooleanColumnPolicy(Protocol):
    def is_boolean_column(self, column: str) -> bool: ...


class NamingConventionPolicy:
    """Treats ``is_active``, ``has_pool``, ``email_enabled`` ... as boolean columns."""

    def __init__(
        self,
        prefixes: Iterable[str] = BOOLEAN_PREFIXES,
        suffixes: Iterable[str] = BOOLEAN_SUFFIXES,
    ) -> None:
        self.prefixes = tuple(prefixes)
        self.suffixes = tuple(suffixes)

    def is_boolean_column(self, column: str) -> bool:
        name = column.lower()
        return name.startswith(self.prefixes) or name.endswith(self.suffixes)


def infer_type(value: Any) -> str:
    if value is None:
        return "null"
    # bool is a subclass of int
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, str):
        return "string"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    return "unknown"


class ResultFormatter:
    def __init__(self, policy: BooleanColumnPolicy | None = None) -> None:
        self.policy = policy or NamingConventionPolicy()

    def format_row(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        formatted: Dict[str, Any] = {}
        for key, value in row.items():
            if (
                isinstance(value, (int, float))
                and not isinstance(value, bool)
                and value in (0, 1)
                and self.policy.is_boolean_column(key)
            ):
                formatted[key] = value == 1
            else:
                formatted[key] = value
        return formatted

    def format_results(
        self, result: QueryResult
    ) -> Union[FormattedQueryResult, FormattedPaginatedQueryResult]:
        """Page fields survive: a paginated result comes back as a formatted paginated one."""
        logger.debug("Formatting %d rows", result.row_count)
        rows = [self.format_row(row) for row in result.rows]
        metadata = self.get_result_metadata(result)
        if isinstance(result, PaginatedQueryResult):
            fields = result.model_dump(exclude={"rows", "metadata"})
            return FormattedPaginatedQueryResult(**fields, rows=rows, metadata=metadata)
        return FormattedQueryResult(rows=rows, row_count=result.row_count, sql=result.sql, metadata=metadata)

    def get_result_metadata(self, result: QueryResult) -> ResultMetadata:
        """Column types come from the first row; nullable if any row holds None."""
        try:
            columns = self._columns(result.rows)
        except FormattingFailure as exc:
            logger.warning("Failed to extract result metadata, returning empty metadata: %s", exc)
            columns = []
        return ResultMetadata(
            columns=columns,
            row_count=result.row_count,
            has_results=result.row_count > 0,
        )

    @staticmethod
    def _columns(rows: List[Mapping[str, Any]]) -> List[ColumnMetadata]:
        if not rows:
            return []
        try:
            return [
                ColumnMetadata(
                    name=name,
                    type=infer_type(value),
                    nullable=any(row.get(name) is None for row in rows),
                )
                for name, value in rows[0].items()
            ]
        except (AttributeError, TypeError) as exc:
            raise FormattingFailure(f"Result rows are not column mappings: {exc}") from exc
