from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from tabular_nlq.config import Settings, get_settings
from tabular_nlq.database import validate_table_name
from tabular_nlq.errors import ParameterError, TranslationFailure
from tabular_nlq.models.schema import Schema
from tabular_nlq.models.statistics import ColumnStatistics, NumericStatistics, parse_table_statistics
from tabular_nlq.services.llm_client import TextGenerator
from tabular_nlq.services.prompts import TEXT_TO_SQL_TEMPLATE
from tabular_nlq.services.query_validator import QueryValidator
from tabular_nlq.services.sql_extractor import NoCandidate, extract, extract_sql
from tabular_nlq.services.statistics_engine import format_number
from tabular_nlq.utils.sanitizer import clean_input, is_too_long

logger = logging.getLogger(__name__)

StatisticsInput = Mapping[str, Union[ColumnStatistics, Mapping[str, Any]]]


class QueryTranslator:
    """Turns a natural-language question into validated SQL for one table.

    The generator's reply is untrusted: it goes through extraction and the
    full validator before anything is returned. A rejected candidate raises;
    re-prompting is left to the caller.
    """

    def __init__(
        self,
        generator: TextGenerator,
        validator: Optional[QueryValidator] = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._generator = generator
        self.validator = validator or QueryValidator(settings=self._settings)

    def translate(
        self,
        question: str,
        schema: Union[Schema, Mapping[str, Any]],
        statistics: StatisticsInput,
        table: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        question = self._clean_question(question)
        validate_table_name(table)
        logger.info("Translating question for table %s: %s", table, question)

        prompt = self.build_prompt(question, schema, statistics, table)
        try:
            content = self._generator.generate(
                prompt,
                model=model,
                temperature=self._settings.inference.temperature if temperature is None else temperature,
                max_tokens=self._settings.inference.max_tokens,
            ).content
        except Exception as exc:  # noqa: BLE001 - any generator failure is a translation failure
            logger.error("SQL translation failed for %r: %s", question, exc)
            raise TranslationFailure(f"Failed to translate question to SQL: {exc}", cause=exc) from exc

        result = extract(content)
        if isinstance(result, NoCandidate):
            logger.error("No SQL candidate for %r: %s", question, result.reason)
            raise TranslationFailure(f"Failed to translate question to SQL: {result.reason}")

        logger.debug("SQL extracted via %s: %s", result.rule, result.sql)
        self.validator.ensure_valid(result.sql, table)
        logger.info("SQL translation successful: %s", result.sql)
        return result.sql

    def build_prompt(
        self,
        question: str,
        schema: Union[Schema, Mapping[str, Any]],
        statistics: StatisticsInput,
        table: str,
    ) -> str:
        if not isinstance(schema, Schema):
            schema = Schema.from_dict(dict(schema))

        schema_lines = [
            f"- {name} ({attribute.type}): {attribute.description}"
            for name, attribute in schema.properties.items()
        ]
        stats_lines = [
            self._format_statistic(name, stats) for name, stats in self._typed(statistics).items()
        ]
        return TEXT_TO_SQL_TEMPLATE.format(
            table_name=table,
            schema="\n".join(schema_lines),
            statistics="\n".join(stats_lines) or "- (no statistics available)",
            question=question,
        )

    def extract_sql(self, response: str) -> str:
        return extract_sql(response)

    def validate_sql(self, sql: str, table: str) -> bool:
        return self.validator.validate_sql(sql, table)

    def _format_statistic(self, name: str, stats: ColumnStatistics) -> str:
        if isinstance(stats, NumericStatistics):
            return (
                f"- {name}: range {format_number(stats.min)} to {format_number(stats.max)}, "
                f"average {stats.mean:.2f}"
            )
        limit = self._settings.statistics.prompt_value_limit
        shown = ", ".join(str(value) for value in stats.unique_values[:limit])
        if len(stats.unique_values) <= limit:
            return f"- {name}: values: [{shown}]"
        return f"- {name}: example values: [{shown}] ({stats.count} unique total)"

    def _clean_question(self, question: str) -> str:
        cleaned = clean_input(question)
        if not cleaned:
            raise ParameterError("Question cannot be empty", "question", question)
        limit = self._settings.inference.max_question_length
        if is_too_long(cleaned, limit):
            raise ParameterError(f"Question is too long (>{limit} chars)", "question", cleaned[:50] + "...")
        return cleaned

    @staticmethod
    def _typed(statistics: StatisticsInput):
        if any(isinstance(value, Mapping) for value in statistics.values()):
            return parse_table_statistics(dict(statistics))
        return statistics
