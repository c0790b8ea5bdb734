from __future__ import annotations

import pytest

from tabular_nlq.models.results import QueryResult
from tabular_nlq.services.result_formatter import NamingConventionPolicy, ResultFormatter, infer_type


@pytest.fixture
def formatter():
    return ResultFormatter()


@pytest.mark.parametrize(
    "column, expected",
    [
        ("is_active", True),
        ("Has_Pool", True),
        ("was_renovated", True),
        ("email_enabled", True),
        ("promo_flag", True),
        ("age", False),
        ("island", False),
        ("rating", False),
    ],
)
def test_naming_convention(column, expected):
    assert NamingConventionPolicy().is_boolean_column(column) is expected


def test_only_flag_columns_with_zero_or_one_become_booleans(formatter):
    row = formatter.format_row({"is_active": 1, "age": 1, "has_pool": 0, "is_open": 2, "is_new": None})
    assert row == {"is_active": True, "age": 1, "has_pool": False, "is_open": 2, "is_new": None}
    assert row["is_active"] is True


def test_format_results_carries_metadata(formatter):
    raw = QueryResult(
        rows=[
            {"name": "Sea View", "rating": 4.0, "price": 150, "is_active": 1, "note": None},
            {"name": "City Inn", "rating": 3.5, "price": 100, "is_active": 0, "note": "quiet"},
        ],
        row_count=2,
        sql="SELECT ...",
    )
    formatted = formatter.format_results(raw)

    assert formatted.rows[0]["is_active"] is True
    assert formatted.rows[1]["is_active"] is False
    assert formatted.sql == "SELECT ..."
    columns = {column.name: column for column in formatted.metadata.columns}
    assert columns["name"].type == "string"
    assert columns["rating"].type == "number"
    assert columns["price"].type == "integer"
    # metadata is derived from the raw rows, before boolean rehydration
    assert columns["is_active"].type == "integer"
    assert columns["note"].type == "null"
    assert columns["note"].nullable
    assert not columns["name"].nullable
    assert formatted.metadata.has_results


def test_empty_result_metadata(formatter):
    metadata = formatter.get_result_metadata(QueryResult(rows=[], row_count=0, sql="SELECT 1"))
    assert metadata.columns == []
    assert metadata.row_count == 0
    assert not metadata.has_results


def test_unreadable_rows_degrade_to_empty_metadata(formatter):
    raw = QueryResult.model_construct(rows=[("a", 1)], row_count=1, sql="SELECT a, b FROM t")
    metadata = formatter.get_result_metadata(raw)
    assert metadata.columns == []
    assert metadata.row_count == 1


def test_custom_policy():
    class NoBooleans:
        def is_boolean_column(self, column):
            return False

    assert ResultFormatter(NoBooleans()).format_row({"is_active": 1}) == {"is_active": 1}


def test_infer_type_checks_bool_before_int():
    assert infer_type(True) == "boolean"
    assert infer_type(1) == "integer"
    assert infer_type(1.5) == "number"
    assert infer_type(b"x") == "unknown"


def test_whole_float_flags_become_booleans(formatter):
    row = formatter.format_row({"is_active": 1.0, "has_pool": 0.0, "is_rated": 0.5, "rating": 1.0})
    assert row == {"is_active": True, "has_pool": False, "is_rated": 0.5, "rating": 1.0}
    assert row["is_active"] is True
