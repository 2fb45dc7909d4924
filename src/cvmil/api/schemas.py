from __future__ import annotations

from pydantic.dataclasses import dataclass as pydantic_dataclass


@pydantic_dataclass(frozen=True)
class ConfidenceOut:
    label: str
    confidence: float


@pydantic_dataclass(frozen=True)
class PredictionOut:
    label: str
    confidences: list[ConfidenceOut]


@pydantic_dataclass(frozen=True)
class PredictResponse:
    success: bool
    prediction: PredictionOut


@pydantic_dataclass(frozen=True)
class ErrorBody:
    code: str
    message: str
    request_id: str
    details: str | None = None
