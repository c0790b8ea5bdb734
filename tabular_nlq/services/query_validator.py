"""Layered safety and correctness checks for candidate SQL.

Two stages are kept independent so either can be replaced:

* ``TextPolicyFilter`` - cheap textual policy: SELECT-only whitelist,
  forbidden keywords outside string literals, injection patterns and the
  expected-table reference.
* ``SyntaxConfirmation`` - a sqlglot parse with a lenient structural
  fallback for dialect features the parser does not understand.

UNION queries are always rejected, including legitimate ones.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from tabular_nlq.config import Settings, get_settings
from tabular_nlq.errors import ValidationRejected, ValidationStage

logger = logging.getLogger(__name__)

ALLOWED_STATEMENTS = ("SELECT",)

FORBIDDEN_KEYWORDS = (
    "DROP",
    "DELETE",
    "INSERT",
    "UPDATE",
    "ALTER",
    "CREATE",
    "TRUNCATE",
    "REPLACE",
    "EXEC",
    "EXECUTE",
    "PRAGMA",
)

_FORBIDDEN_RE = {kw: re.compile(rf"\b{kw}\b", re.IGNORECASE) for kw in FORBIDDEN_KEYWORDS}

# One alternation so whichever quote opens first wins; doubled quotes escape.
_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"")

INJECTION_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"--"), "SQL comments (--)"),
    (re.compile(r"/\*"), "Block comments (/* */)"),
    (re.compile(r";.*SELECT", re.IGNORECASE | re.DOTALL), "Multiple statements (;)"),
    (re.compile(r"\bUNION\b.*\bSELECT\b", re.IGNORECASE | re.DOTALL), "UNION injection"),
)

# Minimal shape accepted when the parser cannot handle the statement.
_MINIMAL_SELECT = re.compile(r"SELECT\s+.+\s+FROM\s+\w+", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class ValidationVerdict:
    accepted: bool
    stage: Optional[ValidationStage] = None
    reason: str = ""

    @classmethod
    def accept(cls, reason: str = "ok") -> "ValidationVerdict":
        return cls(True, None, reason)

    @classmethod
    def reject(cls, stage: ValidationStage, reason: str) -> "ValidationVerdict":
        return cls(False, stage, reason)

    def __bool__(self) -> bool:
        return self.accepted

    def raise_if_rejected(self, sql: str) -> None:
        if not self.accepted:
            raise ValidationRejected(sql, self.stage, self.reason)


def mask_string_literals(sql: str) -> str:
    """Blank out the contents of quoted literals: ``'DROP it'`` -> ``''``."""
    return _STRING_LITERAL.sub(lambda match: match.group(0)[0] * 2, sql)


class TextPolicyFilter:
    def check(self, sql: str, table: str) -> ValidationVerdict:
        if not sql or not sql.strip():
            return ValidationVerdict.reject(ValidationStage.STATEMENT_TYPE, "empty SQL")

        if not sql.strip().upper().startswith("SELECT"):
            return ValidationVerdict.reject(ValidationStage.STATEMENT_TYPE, "statement is not a SELECT")

        masked = mask_string_literals(sql)
        for keyword, pattern in _FORBIDDEN_RE.items():
            if pattern.search(masked):
                return ValidationVerdict.reject(ValidationStage.KEYWORD, f"forbidden keyword {keyword}")

        for pattern, label in INJECTION_PATTERNS:
            if pattern.search(sql):
                return ValidationVerdict.reject(ValidationStage.INJECTION_PATTERN, label)

        table_ref = re.compile(rf"\bFROM\s+{re.escape(table)}\b", re.IGNORECASE)
        if not table_ref.search(sql):
            return ValidationVerdict.reject(
                ValidationStage.TABLE_REFERENCE, f"expected table {table} is not referenced"
            )
        return ValidationVerdict.accept()


class StatementShapeError(ValueError):
    """The parser understood the text, and it is not one SELECT."""


class SyntaxConfirmation:
    def __init__(self, dialect: Optional[str] = "sqlite", lenient: bool = True) -> None:
        self.dialect = dialect
        self.lenient = lenient

    def parse(self, sql: str) -> exp.Select:
        statements = [stmt for stmt in sqlglot.parse(sql, read=self.dialect) if stmt is not None]
        if len(statements) != 1:
            raise StatementShapeError(f"expected one statement, found {len(statements)}")
        statement = statements[0]
        if not isinstance(statement, exp.Select) or not statement.expressions:
            raise StatementShapeError(f"expected a SELECT with a projection, found {statement.key}")
        return statement

    def check(self, sql: str) -> ValidationVerdict:
        try:
            self.parse(sql)
        except StatementShapeError as exc:
            # no lenient fallback: the parse succeeded
            return ValidationVerdict.reject(ValidationStage.SYNTAX, str(exc))
        except SqlglotError as exc:
            if self.lenient and _MINIMAL_SELECT.search(sql):
                logger.debug("Parser rejected SQL with a valid basic shape, allowing: %s (%s)", sql, exc)
                return ValidationVerdict.accept("lenient fallback")
            return ValidationVerdict.reject(ValidationStage.SYNTAX, str(exc).splitlines()[0] if str(exc) else "parse error")
        return ValidationVerdict.accept()


class QueryValidator:
    """Runs the policy filter, then the syntax stage, stopping at the first failure."""

    def __init__(
        self,
        policy: Optional[TextPolicyFilter] = None,
        syntax: Optional[SyntaxConfirmation] = None,
        *,
        confirm_syntax: bool = True,
        settings: Settings | None = None,
    ) -> None:
        if syntax is None and confirm_syntax:
            settings = settings or get_settings()
            syntax = SyntaxConfirmation(settings.validation.dialect, settings.validation.lenient_syntax)
        self.policy = policy or TextPolicyFilter()
        self.syntax = syntax if confirm_syntax else None

    def check(self, sql: str, table: str) -> ValidationVerdict:
        verdict = self.policy.check(sql, table)
        if verdict and self.syntax is not None:
            verdict = self.syntax.check(sql)
        if not verdict:
            logger.warning("SQL rejected at %s: %s | sql=%s", verdict.stage.value, verdict.reason, sql)
        return verdict

    def validate_sql(self, sql: str, table: str) -> bool:
        return self.check(sql, table).accepted

    def ensure_valid(self, sql: str, table: str) -> str:
        self.check(sql, table).raise_if_rejected(sql)
        return sql

    @staticmethod
    def validation_rules() -> Dict[str, List[str]]:
        return {
            "allowed_statements": list(ALLOWED_STATEMENTS),
            "forbidden_keywords": list(FORBIDDEN_KEYWORDS),
            "injection_patterns": [label for _, label in INJECTION_PATTERNS],
        }
