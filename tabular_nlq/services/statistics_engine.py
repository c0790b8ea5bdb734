"""Per-column profiles of a stored table.

Statistics are recomputed on every call and never cached; a concurrent
write makes a previously returned map stale immediately.
"""
from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from tabular_nlq.config import Settings, get_settings
from tabular_nlq.database import StorageHandle, convert_value, validate_table_name
from tabular_nlq.errors import ExecutionFailure, ParameterError, StatisticsError
from tabular_nlq.models.statistics import (
    CategoricalStatistics,
    ColumnStatistics,
    ColumnStatisticsDetail,
    DistributionAnalysis,
    NumericStatistics,
    StatisticsSummary,
)
from tabular_nlq.services.type_mapper import is_numeric_storage_type

logger = logging.getLogger(__name__)


def format_number(value: Any) -> str:
    """Render integral floats without a trailing ``.0`` (5.0 -> "5")."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _as_number(value: Any) -> Any:
    if value is None:
        return 0
    if isinstance(value, Decimal):
        return float(value)
    return value


class ColumnStatisticsEngine:
    """Computes numeric or categorical profiles for every non-identifier column."""

    def __init__(
        self,
        storage: StorageHandle,
        *,
        categorical_limit: Optional[int] = None,
        identifier_column: Optional[str] = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._storage = storage
        self.categorical_limit = categorical_limit or settings.statistics.categorical_limit
        self.identifier_column = identifier_column or settings.statistics.identifier_column
        self.prompt_value_limit = settings.statistics.prompt_value_limit

    def get_column_statistics(self, table: str) -> Dict[str, ColumnStatistics]:
        validate_table_name(table)
        logger.debug("Calculating statistics for table %s", table)
        stats: Dict[str, ColumnStatistics] = {}
        try:
            columns = self._storage.get_columns(table)
            with self._storage.connect() as conn:
                for column in columns:
                    if column.name == self.identifier_column:
                        continue
                    if is_numeric_storage_type(column.storage_type):
                        stats[column.name] = self._numeric(conn, table, column.name)
                    else:
                        stats[column.name] = self._categorical(conn, table, column.name)
        except (SQLAlchemyError, ExecutionFailure) as exc:
            raise StatisticsError(table, str(exc)) from exc

        logger.info("Statistics calculated for %d columns of %s", len(stats), table)
        return stats

    def _numeric(self, conn: Connection, table: str, column: str) -> NumericStatistics:
        col = self._storage.quote_identifier(column)
        row = conn.execute(
            text(
                f"SELECT MIN({col}) AS min_val, MAX({col}) AS max_val, "
                f"AVG({col}) AS mean_val, COUNT({col}) AS count_val "
                f"FROM {self._storage.quote_identifier(table)} WHERE {col} IS NOT NULL"
            )
        ).mappings().one()
        return NumericStatistics(
            min=_as_number(row["min_val"]),
            max=_as_number(row["max_val"]),
            mean=float(_as_number(row["mean_val"])),
            count=int(row["count_val"] or 0),
        )

    def _categorical(self, conn: Connection, table: str, column: str) -> CategoricalStatistics:
        # Silently truncated at categorical_limit distinct values.
        col = self._storage.quote_identifier(column)
        result = conn.execute(
            text(
                f"SELECT DISTINCT {col} FROM {self._storage.quote_identifier(table)} "
                f"WHERE {col} IS NOT NULL ORDER BY {col} LIMIT :limit"
            ),
            {"limit": self.categorical_limit},
        )
        values = [convert_value(row[0]) for row in result if row[0] is not None]
        return CategoricalStatistics(unique_values=values, count=len(values))

    def get_statistics_summary(self, table: str) -> StatisticsSummary:
        statistics = self.get_column_statistics(table)
        numeric = sum(1 for stat in statistics.values() if stat.type == "numeric")
        return StatisticsSummary(
            table_name=table,
            total_columns=len(statistics),
            numeric_columns=numeric,
            categorical_columns=len(statistics) - numeric,
            row_count=self._storage.row_count(table),
            statistics=statistics,
        )

    def get_numeric_statistics(self, table: str) -> Dict[str, NumericStatistics]:
        return {
            name: stat
            for name, stat in self.get_column_statistics(table).items()
            if isinstance(stat, NumericStatistics)
        }

    def get_categorical_statistics(self, table: str) -> Dict[str, CategoricalStatistics]:
        return {
            name: stat
            for name, stat in self.get_column_statistics(table).items()
            if isinstance(stat, CategoricalStatistics)
        }

    def format_column_for_llm(self, column: str, stats: ColumnStatistics) -> str:
        if isinstance(stats, NumericStatistics):
            return "\n".join(
                [
                    f"{column} (numeric):",
                    f"  - Range: {format_number(stats.min)} to {format_number(stats.max)}",
                    f"  - Average: {stats.mean:.2f}",
                    f"  - Count: {stats.count} values",
                ]
            )
        limit = self.prompt_value_limit
        shown = ", ".join(str(v) for v in stats.unique_values[:limit])
        if len(stats.unique_values) > limit:
            shown = f"{shown} ... ({stats.count} total)"
        return f"{column} (categorical):\n  - Unique values ({stats.count}): {shown}"

    def format_for_llm(self, table: str) -> str:
        summary = self.get_statistics_summary(table)
        lines = [
            f"Table: {table} ({summary.row_count} rows)",
            "",
            f"Columns ({summary.total_columns} total, {summary.numeric_columns} numeric, "
            f"{summary.categorical_columns} categorical):",
            "",
        ]
        for name, stats in summary.statistics.items():
            lines.append(self.format_column_for_llm(name, stats))
            lines.append("")
        return "\n".join(lines)

    def format_compact(self, table: str) -> str:
        parts = []
        for name, stats in self.get_column_statistics(table).items():
            if isinstance(stats, NumericStatistics):
                parts.append(
                    f"{name}: {format_number(stats.min)}-{format_number(stats.max)} (avg {stats.mean:.1f})"
                )
            elif stats.count <= 5:
                parts.append(f"{name}: [{', '.join(str(v) for v in stats.unique_values)}]")
            else:
                parts.append(f"{name}: {stats.count} unique values")
        return ", ".join(parts)

    def get_column_detail(self, table: str, column: str) -> ColumnStatisticsDetail:
        stats = self.get_column_statistics(table).get(column)
        if stats is None:
            raise ParameterError(f"Column not found in table {table}", "column", column)
        return ColumnStatisticsDetail(
            column_name=column,
            type=stats.type,
            statistics=stats,
            summary=self.format_column_for_llm(column, stats),
            warnings=self.detect_warnings(stats, self._storage.row_count(table)),
        )

    @staticmethod
    def detect_warnings(stats: ColumnStatistics, row_count: int) -> List[str]:
        warnings: List[str] = []
        if isinstance(stats, NumericStatistics):
            if row_count and stats.count < row_count * 0.5:
                coverage = stats.count / row_count * 100
                warnings.append(
                    f"Only {stats.count} out of {row_count} rows have values ({coverage:.1f}% coverage)"
                )
            if stats.min == stats.max and stats.count > 1:
                warnings.append(f"All values are identical ({format_number(stats.min)})")
            if (stats.max - stats.min) / 2 > abs(stats.mean) * 10:
                warnings.append(
                    f"Large range detected ({format_number(stats.min)} to "
                    f"{format_number(stats.max)}), potential outliers"
                )
            return warnings

        if stats.count == 1:
            warnings.append(f"Only one unique value: {stats.unique_values[0]}")
        if row_count > 10 and stats.count >= row_count * 0.9:
            warnings.append(
                f"Very high cardinality ({stats.count} unique values out of {row_count} rows), "
                "possibly an ID column"
            )
        if row_count > 100 and stats.count <= 5:
            warnings.append(f"Very few unique values ({stats.count}) in large dataset ({row_count} rows)")
        return warnings

    def analyze_distribution(self, table: str, column: str) -> DistributionAnalysis:
        stats = self.get_column_statistics(table).get(column)
        if not isinstance(stats, NumericStatistics):
            raise ParameterError("Column is not numeric", "column", column)

        value_range = float(stats.max - stats.min)
        midpoint = (stats.max + stats.min) / 2
        spread = value_range / 2
        if stats.mean < midpoint - spread * 0.2:
            description = "Left-skewed (most values are higher)"
        elif stats.mean > midpoint + spread * 0.2:
            description = "Right-skewed (most values are lower)"
        else:
            description = "Approximately centered"
        return DistributionAnalysis(range=value_range, midpoint=midpoint, spread=spread, description=description)


def suggest_column_name(name: str) -> str:
    """'User Name' -> 'user_name'."""
    suggested = re.sub(r"\s+", "_", name.lower())
    suggested = re.sub(r"[^a-z0-9_]", "", suggested)
    suggested = re.sub(r"_+", "_", suggested)
    return suggested.strip("_")
