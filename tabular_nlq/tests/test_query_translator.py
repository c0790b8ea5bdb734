from __future__ import annotations

import pytest

from tabular_nlq.errors import ParameterError, TranslationFailure, ValidationRejected, ValidationStage
from tabular_nlq.models.statistics import CategoricalStatistics, NumericStatistics
from tabular_nlq.services.llm_client import LLMResponse
from tabular_nlq.services.query_translator import QueryTranslator

STATS = {
    "name": CategoricalStatistics(unique_values=[f"Hotel {i:02d}" for i in range(15)], count=15),
    "city": CategoricalStatistics(unique_values=["Geneva", "Nice", "Paris"], count=3),
    "rating": NumericStatistics(min=3.5, max=5.0, mean=4.2, count=5),
    "price": NumericStatistics(min=100, max=300, mean=200.0, count=5),
}


def test_translate_returns_validated_sql(settings, hotel_schema, generator_factory):
    generator = generator_factory("```sql\nSELECT name FROM hotels WHERE city = 'Paris';\n```")
    translator = QueryTranslator(generator, settings=settings)

    sql = translator.translate("Which hotels are in Paris?", hotel_schema, STATS, "hotels")

    assert sql == "SELECT name FROM hotels WHERE city = 'Paris'"
    assert len(generator.prompts) == 1
    assert generator.calls[0]["temperature"] == settings.inference.temperature
    assert generator.calls[0]["max_tokens"] == settings.inference.max_tokens


def test_prompt_contents(settings, hotel_schema, generator_factory):
    prompt = QueryTranslator(generator_factory(), settings=settings).build_prompt(
        "Cheap hotels?", hotel_schema, STATS, "hotels"
    )
    assert "Table name: hotels" in prompt
    assert "- rating (number): Guest rating out of 5" in prompt
    assert "- rating: range 3.5 to 5, average 4.20" in prompt
    assert "- price: range 100 to 300, average 200.00" in prompt
    assert "- city: values: [Geneva, Nice, Paris]" in prompt
    assert "(15 unique total)" in prompt
    assert "Hotel 09" in prompt and "Hotel 10" not in prompt
    assert '"Cheap hotels?"' in prompt


def test_prompt_accepts_plain_dicts(settings, hotel_schema_dict, generator_factory):
    stats = {"rating": {"type": "numeric", "min": 3.5, "max": 5.0, "mean": 4.2, "count": 5}}
    prompt = QueryTranslator(generator_factory(), settings=settings).build_prompt(
        "q", hotel_schema_dict, stats, "hotels"
    )
    assert "- rating: range 3.5 to 5, average 4.20" in prompt


def test_unsafe_candidate_is_rejected(settings, hotel_schema, generator_factory):
    generator = generator_factory("DROP TABLE hotels")
    translator = QueryTranslator(generator, settings=settings)
    with pytest.raises(ValidationRejected) as excinfo:
        translator.translate("delete everything", hotel_schema, STATS, "hotels")
    assert excinfo.value.stage == ValidationStage.STATEMENT_TYPE


def test_wrong_table_is_rejected(settings, hotel_schema, generator_factory):
    translator = QueryTranslator(generator_factory("SELECT * FROM users"), settings=settings)
    with pytest.raises(ValidationRejected) as excinfo:
        translator.translate("list users", hotel_schema, STATS, "hotels")
    assert excinfo.value.stage == ValidationStage.TABLE_REFERENCE


def test_generator_error_is_translation_failure(settings, hotel_schema, generator_factory):
    boom = ConnectionError("network down")
    translator = QueryTranslator(generator_factory(error=boom), settings=settings)
    with pytest.raises(TranslationFailure) as excinfo:
        translator.translate("anything", hotel_schema, STATS, "hotels")
    assert excinfo.value.cause is boom


def test_empty_completion_is_translation_failure(settings, hotel_schema, generator_factory):
    translator = QueryTranslator(generator_factory("   "), settings=settings)
    with pytest.raises(TranslationFailure):
        translator.translate("anything", hotel_schema, STATS, "hotels")


@pytest.mark.parametrize("question", ["", "   \n ", "x" * 2001])
def test_bad_questions(settings, hotel_schema, generator_factory, question):
    generator = generator_factory("SELECT name FROM hotels")
    with pytest.raises(ParameterError):
        QueryTranslator(generator, settings=settings).translate(question, hotel_schema, STATS, "hotels")
    assert generator.prompts == []


def test_question_is_cleaned(settings, hotel_schema, generator_factory):
    generator = generator_factory("SELECT name FROM hotels")
    QueryTranslator(generator, settings=settings).translate("  top\x00  hotels\n\n", hotel_schema, STATS, "hotels")
    assert '"top hotels"' in generator.prompts[0]


@pytest.mark.parametrize("reply", [None, object(), LLMResponse(content=None)])
def test_malformed_generator_reply_is_translation_failure(settings, hotel_schema, reply):
    class OddGenerator:
        def generate(self, prompt, **kwargs):
            return reply

    with pytest.raises(TranslationFailure):
        QueryTranslator(OddGenerator(), settings=settings).translate("anything", hotel_schema, STATS, "hotels")
