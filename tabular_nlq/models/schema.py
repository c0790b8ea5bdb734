from __future__ import annotations

import json
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from tabular_nlq.errors import SchemaError

PrimitiveType = Literal["string", "number", "integer", "boolean"]
PRIMITIVE_TYPES = ("string", "number", "integer", "boolean")


class AttributeDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: PrimitiveType
    description: str = Field(..., min_length=1)
    examples: List[Union[bool, int, float, str]] = Field(..., min_length=1)


class Schema(BaseModel):
    """Flat, primitive-only record schema produced by the ingestion side.

    Attribute order is preserved; it drives column order in storage and
    line order in the translation prompt.
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    type: Literal["object"] = "object"
    properties: Dict[str, AttributeDefinition]
    required: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_properties(self) -> "Schema":
        if not self.properties:
            raise ValueError("At least one property is required")
        unknown = [name for name in self.required if name not in self.properties]
        if unknown:
            raise ValueError(f"Required attributes not defined in properties: {', '.join(unknown)}")
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "Schema":
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            issues = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
            raise SchemaError(f"Invalid schema: {issues}") from exc

    @classmethod
    def from_json(cls, text: str) -> "Schema":
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SchemaError(f"Invalid JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise SchemaError("Schema JSON must be an object")
        return cls.from_dict(parsed)

    def property_names(self) -> List[str]:
        return list(self.properties)

    def is_required(self, name: str) -> bool:
        return name in self.required

    def property_type(self, name: str) -> Optional[str]:
        attribute = self.properties.get(name)
        return attribute.type if attribute else None

    def summary(self) -> str:
        return (
            f'Schema "{self.title}": {len(self.properties)} properties '
            f"({len(self.required)} required)"
        )
