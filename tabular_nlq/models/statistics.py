from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

Number = Union[int, float]


class NumericStatistics(BaseModel):
    type: Literal["numeric"] = "numeric"
    min: Number
    max: Number
    mean: float
    count: int


class CategoricalStatistics(BaseModel):
    # At most `categorical_limit` sorted values; count is len(unique_values).
    type: Literal["categorical"] = "categorical"
    unique_values: List[Union[bool, int, float, str]] = Field(default_factory=list)
    count: int


ColumnStatistics = Annotated[
    Union[NumericStatistics, CategoricalStatistics], Field(discriminator="type")
]
TableStatistics = Dict[str, ColumnStatistics]

_TABLE_STATISTICS = TypeAdapter(TableStatistics)


def parse_table_statistics(raw: dict) -> Dict[str, Union[NumericStatistics, CategoricalStatistics]]:
    """Build typed statistics from plain dicts, e.g. loaded from JSON."""
    return _TABLE_STATISTICS.validate_python(raw)


class StatisticsSummary(BaseModel):
    table_name: str
    total_columns: int
    numeric_columns: int
    categorical_columns: int
    row_count: int
    statistics: TableStatistics


class ColumnStatisticsDetail(BaseModel):
    column_name: str
    type: Literal["numeric", "categorical"]
    statistics: ColumnStatistics
    summary: str
    warnings: List[str] = Field(default_factory=list)


class DistributionAnalysis(BaseModel):
    range: float
    midpoint: float
    spread: float
    description: str
