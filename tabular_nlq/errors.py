"""Error taxonomy shared by the translation, validation and execution layers."""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ValidationStage(str, Enum):
    STATEMENT_TYPE = "statement_type"
    KEYWORD = "keyword"
    INJECTION_PATTERN = "injection_pattern"
    TABLE_REFERENCE = "table_reference"
    SYNTAX = "syntax"


class TabularNLQError(Exception):
    """Base class for every error raised by this package."""


class TranslationFailure(TabularNLQError):
    """The text generator failed or produced no usable SQL candidate."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class ValidationRejected(TabularNLQError):
    def __init__(self, sql: str, stage: ValidationStage, reason: str) -> None:
        super().__init__(f"Invalid or unsafe SQL rejected at {stage.value} ({reason}): {sql}")
        self.sql = sql
        self.stage = stage
        self.reason = reason


class ExecutionFailure(TabularNLQError):
    def __init__(self, sql: str, message: str) -> None:
        super().__init__(f"Query execution failed: {message} [sql: {sql}]")
        self.sql = sql


class ParameterError(TabularNLQError):
    def __init__(self, message: str, parameter: str, value: Any) -> None:
        super().__init__(f"{message} ({parameter}={value!r})")
        self.parameter = parameter
        self.value = value


class FormattingFailure(TabularNLQError):
    pass


class StatisticsError(TabularNLQError):
    def __init__(self, table: str, message: str) -> None:
        super().__init__(f"Failed to calculate statistics for {table}: {message}")
        self.table = table


class StorageClosedError(TabularNLQError):
    def __init__(self, location: str = "") -> None:
        suffix = f": {location}" if location else ""
        super().__init__(f"Storage handle is closed{suffix}")


class SchemaError(TabularNLQError):
    pass
