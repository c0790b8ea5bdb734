from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from tabular_nlq.config import Settings, configure_logging, get_settings
from tabular_nlq.database import StorageHandle
from tabular_nlq.models.results import FormattedPaginatedQueryResult, FormattedQueryResult
from tabular_nlq.models.schema import Schema
from tabular_nlq.services.llm_client import LLMClient
from tabular_nlq.services.query_executor import QueryExecutor
from tabular_nlq.services.query_history import QueryHistory
from tabular_nlq.services.query_translator import QueryTranslator
from tabular_nlq.services.statistics_engine import ColumnStatisticsEngine

logger = logging.getLogger(__name__)


@dataclass
class QueryAnswer:
    question: str
    sql: str
    result: Union[FormattedQueryResult, FormattedPaginatedQueryResult]
    metrics: Dict[str, Any] = field(default_factory=dict)


class QueryEngine:
    """Question -> statistics -> SQL -> validated execution -> formatted rows.

    Statistics are recomputed for every question so the prompt always
    reflects the table as it is now.
    """

    def __init__(
        self,
        storage: StorageHandle,
        translator: QueryTranslator,
        executor: Optional[QueryExecutor] = None,
        statistics: Optional[ColumnStatisticsEngine] = None,
        history: Optional[QueryHistory] = None,
    ) -> None:
        self.storage = storage
        self.translator = translator
        self.executor = executor or QueryExecutor(storage)
        self.statistics = statistics or ColumnStatisticsEngine(storage)
        self.history = history if history is not None else QueryHistory()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "QueryEngine":
        settings = settings or get_settings()
        configure_logging(settings)
        storage = StorageHandle.open(settings=settings)
        translator = QueryTranslator(LLMClient(settings), settings=settings)
        return cls(
            storage,
            translator,
            statistics=ColumnStatisticsEngine(storage, settings=settings),
        )

    def ask(
        self,
        question: str,
        schema: Union[Schema, Mapping[str, Any]],
        table: str,
        *,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> QueryAnswer:
        start_time = time.perf_counter()
        stats = self.statistics.get_column_statistics(table)
        sql = self.translator.translate(question, schema, stats, table)

        if page is not None and page_size is not None:
            result: Union[FormattedQueryResult, FormattedPaginatedQueryResult] = self.executor.format_results(
                self.executor.paginate(sql, page, page_size)
            )
        else:
            result = self.executor.execute(sql, formatted=True)

        metrics = {
            "response_ms": round((time.perf_counter() - start_time) * 1000, 2),
            "row_count": result.row_count,
        }
        self.history.record(question, table, sql, result.row_count)
        logger.info("Answered question on %s with %d rows in %sms", table, result.row_count, metrics["response_ms"])
        return QueryAnswer(question=question, sql=sql, result=result, metrics=metrics)

    def get_history(self) -> List[Dict[str, Any]]:
        return self.history.as_dicts()

    def close(self) -> None:
        self.storage.close()
