from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class Parameter(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    unit: str = ""
    normal_range: str = Field(default="", alias="normalRange")  # free text, e.g. "13.8-17.2"

    @field_validator("name", "unit", "normal_range", mode="before")
    @classmethod
    def as_text(cls, v):
        if v is None:
            return ""
        if isinstance(v, (dict, list)):
            raise ValueError("Parameter fields must be text")
        return str(v)


class LabTest(BaseModel):
    name: str
    # NaN when a stored price could not be parsed
    price: float
    parameters: list[Parameter]

    @field_serializer("price", when_used="json")
    def nan_as_null(self, v: float) -> float | None:
        return None if math.isnan(v) else v


class LabTestIn(LabTest):
    """Submitted test as accepted by add/update."""

    parameters: list[Parameter] = Field(min_length=1)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Test name must not be empty")
        return v

    @field_validator("price")
    @classmethod
    def price_non_negative(cls, v: float) -> float:
        if math.isnan(v) or math.isinf(v):
            raise ValueError("Price must be a finite number")
        if v < 0:
            raise ValueError("Price must not be negative")
        return v
