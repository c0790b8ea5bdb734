from __future__ import annotations

from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field

InferredType = Literal["string", "integer", "number", "boolean", "null", "unknown"]


class QueryResult(BaseModel):
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    sql: str


class PaginatedQueryResult(QueryResult):
    page: int
    page_size: int
    total_rows: int
    total_pages: int
    has_more: bool
    has_previous: bool


class ColumnMetadata(BaseModel):
    name: str
    type: InferredType
    nullable: bool


class ResultMetadata(BaseModel):
    columns: List[ColumnMetadata] = Field(default_factory=list)
    row_count: int = 0
    has_results: bool = False


class FormattedQueryResult(QueryResult):
    metadata: ResultMetadata = Field(default_factory=ResultMetadata)


class FormattedPaginatedQueryResult(PaginatedQueryResult):
    metadata: ResultMetadata = Field(default_factory=ResultMetadata)
