from __future__ import annotations

import pytest

from tabular_nlq.errors import ValidationRejected, ValidationStage
from tabular_nlq.services.query_validator import (
    QueryValidator,
    SyntaxConfirmation,
    TextPolicyFilter,
    mask_string_literals,
)


@pytest.fixture
def validator(settings):
    return QueryValidator(settings=settings)


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT name, city FROM hotels",
        "select * from hotels where rating >= 4 order by price desc limit 3",
        "SELECT COUNT(*) AS total FROM hotels WHERE is_active = 1",
        "SELECT name FROM hotels WHERE name = 'Drop Inn'",
        'SELECT name FROM hotels WHERE city = "Paris"',
        "SELECT `name` FROM hotels",
        "SELECT * FROM hotels WHERE id = (SELECT password FROM users)",
        "SELECT * FROM Hotels",
        "SELECT name, description FROM hotels",
    ],
)
def test_accepts_reasonable_selects(validator, sql):
    assert validator.validate_sql(sql, "hotels")


@pytest.mark.parametrize(
    "sql, stage",
    [
        ("", ValidationStage.STATEMENT_TYPE),
        ("   ", ValidationStage.STATEMENT_TYPE),
        ("DELETE FROM hotels", ValidationStage.STATEMENT_TYPE),
        ("WITH x AS (SELECT 1) SELECT * FROM hotels", ValidationStage.STATEMENT_TYPE),
        ("SELECT * FROM hotels; DROP TABLE hotels", ValidationStage.KEYWORD),
        ("SELECT * FROM hotels WHERE name IN (PRAGMA table_info)", ValidationStage.KEYWORD),
        (
            "SELECT 'a\"' FROM hotels; DELETE FROM hotels WHERE name <> '\"'",
            ValidationStage.KEYWORD,
        ),
        ("SELECT * FROM hotels -- all of them", ValidationStage.INJECTION_PATTERN),
        ("SELECT * FROM hotels /* note */", ValidationStage.INJECTION_PATTERN),
        ("SELECT * FROM hotels; SELECT * FROM users", ValidationStage.INJECTION_PATTERN),
        ("SELECT name FROM hotels UNION SELECT name FROM users", ValidationStage.INJECTION_PATTERN),
        ("SELECT * FROM hotels UNION SELECT * FROM users", ValidationStage.INJECTION_PATTERN),
        ("SELECT * FROM users", ValidationStage.TABLE_REFERENCE),
        ("SELECT * FROM hotels_archive", ValidationStage.TABLE_REFERENCE),
        ("SELECT FROM hotels WHERE", ValidationStage.SYNTAX),
    ],
)
def test_rejection_stage(validator, sql, stage):
    verdict = validator.check(sql, "hotels")
    assert not verdict
    assert verdict.stage == stage
    assert not validator.validate_sql(sql, "hotels")


def test_keywords_inside_literals_are_ignored():
    assert mask_string_literals("SELECT * FROM t WHERE a = 'DROP' AND b = \"DELETE\"") == (
        "SELECT * FROM t WHERE a = '' AND b = \"\""
    )


def test_ensure_valid_raises_with_stage(validator):
    with pytest.raises(ValidationRejected) as excinfo:
        validator.ensure_valid("UPDATE hotels SET price = 0", "hotels")
    assert excinfo.value.stage == ValidationStage.STATEMENT_TYPE
    assert excinfo.value.sql == "UPDATE hotels SET price = 0"
    assert validator.ensure_valid("SELECT name FROM hotels", "hotels") == "SELECT name FROM hotels"


def test_policy_filter_alone_skips_syntax():
    assert TextPolicyFilter().check("SELECT FROM hotels WHERE", "hotels")
    assert QueryValidator(confirm_syntax=False).validate_sql("SELECT FROM hotels WHERE", "hotels")


def test_strict_syntax_has_no_fallback():
    strict = SyntaxConfirmation(dialect="sqlite", lenient=False)
    assert strict.check("SELECT name FROM hotels")
    assert strict.check("SELECT FROM hotels WHERE").stage == ValidationStage.SYNTAX


def test_validation_rules_are_introspectable():
    rules = QueryValidator.validation_rules()
    assert rules["allowed_statements"] == ["SELECT"]
    assert "PRAGMA" in rules["forbidden_keywords"]
    assert "UNION injection" in rules["injection_patterns"]


def test_quote_inside_other_literal_does_not_hide_sql():
    sql = "SELECT 'a\"' FROM hotels; DELETE FROM hotels WHERE name <> '\"'"
    assert mask_string_literals(sql) == "SELECT '' FROM hotels; DELETE FROM hotels WHERE name <> ''"
    assert mask_string_literals("SELECT 'it''s' FROM t") == "SELECT '' FROM t"


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT name FROM hotels; SELECT city FROM hotels",
        "SELECT name FROM hotels UNION SELECT city FROM hotels",
    ],
)
def test_parsed_non_select_shapes_skip_the_lenient_fallback(sql):
    verdict = SyntaxConfirmation(dialect="sqlite", lenient=True).check(sql)
    assert not verdict
    assert verdict.stage == ValidationStage.SYNTAX
