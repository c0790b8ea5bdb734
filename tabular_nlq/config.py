from __future__ import annotations

import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


class DatabaseConfig(BaseModel):
    connection_string: Optional[str] = Field(default=None)
    pool_size: int = Field(default=5, ge=1)
    pool_timeout: int = Field(default=30, ge=1)


class LLMConfig(BaseModel):
    # Provider can be 'groq' or 'openai' (default).
    provider: str = Field(default="openai")
    api_key: Optional[str] = None
    model: str = Field(default="gpt-4o")
    # Tried once when the primary model call raises.
    fallback_model: Optional[str] = None


class InferenceConfig(BaseModel):
    # 0 keeps SQL generation deterministic.
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: int = Field(default=500, ge=1)
    max_question_length: int = Field(default=2000, ge=1)


class StatisticsConfig(BaseModel):
    categorical_limit: int = Field(default=100, ge=1)
    prompt_value_limit: int = Field(default=10, ge=1)
    identifier_column: str = Field(default="id")


class ValidationConfig(BaseModel):
    dialect: str = Field(default="sqlite")
    lenient_syntax: bool = True


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(default="%(asctime)s %(levelname)s %(name)s: %(message)s")


class Settings(BaseModel):
    database: DatabaseConfig = DatabaseConfig()
    llm: LLMConfig = LLMConfig()
    inference: InferenceConfig = InferenceConfig()
    statistics: StatisticsConfig = StatisticsConfig()
    validation: ValidationConfig = ValidationConfig()
    logging: LoggingConfig = LoggingConfig()


def _load_yaml_config(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    # Interpolate environment variables like ${VAR}
    pattern = re.compile(r"\$\{([^}]+)\}")

    def interpolate(value):
        if isinstance(value, str):
            def repl(match):
                var = match.group(1)
                return os.getenv(var, match.group(0))
            return pattern.sub(repl, value)
        return value

    def walk(obj):
        if isinstance(obj, dict):
            return {k: walk(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(v) for v in obj]
        return interpolate(obj)

    return walk(raw)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    config_path = Path(os.getenv("CONFIG_PATH", Path.cwd() / "config.yml"))
    raw = _load_yaml_config(config_path)
    return Settings.model_validate(raw)


def reload_settings() -> Settings:
    """Invalidate cache and reload settings, useful after editing config.yml."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
    return get_settings()


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    level = os.getenv("LOG_LEVEL", settings.logging.level).upper()
    logging.basicConfig(level=level, format=settings.logging.format)
    # basicConfig leaves an already configured root logger alone
    logging.getLogger().setLevel(level)
