from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, Optional, Union

from tabular_nlq.database import QueryParams, StorageHandle
from tabular_nlq.errors import ExecutionFailure, ParameterError
from tabular_nlq.models.results import (
    FormattedPaginatedQueryResult,
    FormattedQueryResult,
    PaginatedQueryResult,
    QueryResult,
    ResultMetadata,
)
from tabular_nlq.services.result_formatter import ResultFormatter

logger = logging.getLogger(__name__)

_TRAILING_SEMICOLON = re.compile(r";+\s*$")


def strip_statement(sql: str) -> str:
    return _TRAILING_SEMICOLON.sub("", sql.strip()).strip()


def add_pagination(sql: str, page: int, page_size: int) -> str:
    """'SELECT * FROM t', 2, 10 -> 'SELECT * FROM t LIMIT 10 OFFSET 10'."""
    return f"{strip_statement(sql)} LIMIT {page_size} OFFSET {(page - 1) * page_size}"


def check_page(page: int, page_size: int) -> None:
    if not isinstance(page, int) or page < 1:
        raise ParameterError("Page number must be >= 1", "page", page)
    if not isinstance(page_size, int) or page_size < 1:
        raise ParameterError("Page size must be >= 1", "page_size", page_size)


class QueryExecutor:
    """Executes validated SELECT statements against one storage handle.

    SQL reaching this class is expected to have passed ``QueryValidator``;
    runtime storage errors surface as ``ExecutionFailure`` without retry.
    """

    def __init__(self, storage: StorageHandle, formatter: Optional[ResultFormatter] = None) -> None:
        self._storage = storage
        self.formatter = formatter or ResultFormatter()

    def execute(
        self,
        sql: str,
        params: QueryParams = None,
        *,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        formatted: bool = False,
    ) -> Union[QueryResult, FormattedQueryResult]:
        final_sql = sql
        if page is not None and page_size is not None:
            check_page(page, page_size)
            final_sql = add_pagination(sql, page, page_size)

        logger.debug("Executing query (page=%s, page_size=%s, formatted=%s)", page, page_size, formatted)
        result = self._storage.execute_query(final_sql, params)
        if formatted:
            return self.formatter.format_results(result)
        return result

    def format_results(
        self, result: QueryResult
    ) -> Union[FormattedQueryResult, FormattedPaginatedQueryResult]:
        return self.formatter.format_results(result)

    def get_result_metadata(self, result: QueryResult) -> ResultMetadata:
        return self.formatter.get_result_metadata(result)

    def paginate(
        self,
        sql: str,
        page: int,
        page_size: int,
        params: QueryParams = None,
    ) -> PaginatedQueryResult:
        check_page(page, page_size)
        result = self._storage.execute_query(add_pagination(sql, page, page_size), params)
        total_rows = self._total_row_count(sql, params)
        total_pages = math.ceil(total_rows / page_size)
        return PaginatedQueryResult(
            rows=result.rows,
            row_count=result.row_count,
            sql=result.sql,
            page=page,
            page_size=page_size,
            total_rows=total_rows,
            total_pages=total_pages,
            has_more=page < total_pages,
            has_previous=page > 1,
        )

    def _total_row_count(self, sql: str, params: QueryParams = None) -> int:
        count_sql = f"SELECT COUNT(*) AS total FROM ({strip_statement(sql)}) AS counted"
        try:
            result = self._storage.execute_query(count_sql, params)
        except ExecutionFailure as exc:
            # Only the total degrades; the page itself was already fetched.
            logger.warning("Failed to get total row count, reporting 0: %s", exc)
            return 0
        return int(result.rows[0]["total"] or 0) if result.rows else 0

    def execute_and_format(self, sql: str, params: QueryParams = None) -> FormattedQueryResult:
        return self.execute(sql, params, formatted=True)

    def execute_with_pagination(self, sql: str, page: int, page_size: int) -> PaginatedQueryResult:
        return self.paginate(sql, page, page_size)

    def execute_one(self, sql: str, params: QueryParams = None) -> Optional[Dict[str, Any]]:
        result = self._storage.execute_query(sql, params)
        return result.rows[0] if result.rows else None

    def has_results(self, sql: str, params: QueryParams = None) -> bool:
        return self._storage.execute_query(sql, params).row_count > 0

    def count(self, sql: str, params: QueryParams = None) -> int:
        result = self._storage.execute_query(
            f"SELECT COUNT(*) AS count FROM ({strip_statement(sql)}) AS counted", params
        )
        return int(result.rows[0]["count"] or 0) if result.rows else 0
