from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from ..errors import InvalidInput
from ..schemas import LabTest, LabTestIn


def _describe(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ())) or "body"
    return f"{loc}: {err.get('msg', 'invalid value')}"


def validate_candidate(payload: Any) -> LabTest:
    """
    Checks a submitted test: non-empty name, price present and >= 0,
    at least one parameter. Returns the record to store or raises InvalidInput.
    """
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(by_alias=True)
    if not isinstance(payload, Mapping):
        raise InvalidInput("Request body must be a JSON object")

    try:
        candidate = LabTestIn.model_validate(dict(payload))
    except ValidationError as exc:
        raise InvalidInput(_describe(exc)) from exc

    return LabTest.model_validate(candidate.model_dump(by_alias=True))
