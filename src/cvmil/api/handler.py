from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Final

from starlette.datastructures import FormData, UploadFile

from ..config import Limits, Settings
from ..errors import ErrorCode, RemoteError, default_message, status_for
from ..logging import log_event
from ..remote.service import PredictionService
from ..remote.types import MODEL_CHOICES, ModelChoice, Prediction, PredictionRequest

PHOTO_FIELD: Final[str] = "chosenPhoto"
MODEL_FIELD: Final[str] = "chosenModel"


@dataclass(frozen=True)
class PredictSuccess:
    prediction: Prediction

    def to_dict(self) -> dict[str, object]:
        return {"success": True, "prediction": self.prediction.to_dict()}


@dataclass(frozen=True)
class PredictFailure:
    code: ErrorCode
    http_status: int
    message: str
    details: str | None = None


HandlerResult = PredictSuccess | PredictFailure


def _fail(code: ErrorCode, details: str | None = None) -> PredictFailure:
    return PredictFailure(
        code=code, http_status=status_for(code), message=default_message(code), details=details
    )


def _remote_failure(exc: BaseException) -> PredictFailure:
    code = exc.code if isinstance(exc, RemoteError) else ErrorCode.prediction_failed
    # The remote service message is surfaced as-is; tracebacks never are.
    return _fail(code, details=str(exc) or type(exc).__name__)


def _single(form: FormData, key: str) -> object | None:
    values = form.getlist(key)
    if len(values) != 1:
        return None
    return values[0]


def _validate_model(value: object | None) -> ModelChoice | None:
    if not isinstance(value, str):
        return None
    for choice in MODEL_CHOICES:
        if value == choice:
            return choice
    return None


class PredictHandler:
    """Validate a ``chosenPhoto``/``chosenModel`` form and run one remote prediction."""

    def __init__(self, service: PredictionService, settings: Settings) -> None:
        self._service = service
        self._settings = settings
        self._limits = Limits.from_settings(settings)

    async def handle(self, form: FormData) -> HandlerResult:
        photo = _single(form, PHOTO_FIELD)
        if not isinstance(photo, UploadFile):
            return self._reject(ErrorCode.invalid_photo)
        model_choice = _validate_model(_single(form, MODEL_FIELD))
        if model_choice is None:
            return self._reject(ErrorCode.invalid_model)

        raw = await photo.read()
        if len(raw) > self._limits.max_photo_bytes:
            return self._reject(ErrorCode.too_large)

        request = PredictionRequest(
            photo=raw, filename=photo.filename or "", model_choice=model_choice
        )
        return await self._dispatch(request)

    async def _dispatch(self, request: PredictionRequest) -> HandlerResult:
        t0 = time.perf_counter()
        try:
            prediction = await self._await_prediction(request)
        except TimeoutError:
            result = _fail(ErrorCode.timeout, details="Prediction timed out")
            self._log_failure(request, result, t0)
            return result
        except Exception as exc:
            result = _remote_failure(exc)
            self._log_failure(request, result, t0)
            return result

        top = max(prediction.confidences, key=lambda c: c.confidence, default=None)
        log_event(
            "predict_finished",
            fields={
                "latency_ms": _elapsed_ms(t0),
                "model_choice": request.model_choice,
                "label": prediction.label,
                "confidence": top.confidence if top is not None else None,
            },
        )
        return PredictSuccess(prediction=prediction)

    async def _await_prediction(self, request: PredictionRequest) -> Prediction:
        # submit raises RuntimeError once the pool is shut down
        fut = self._service.submit_predict(request)
        try:
            return await asyncio.wait_for(
                asyncio.wrap_future(fut), timeout=float(self._settings.predict.timeout_seconds)
            )
        except TimeoutError:
            fut.cancel()
            raise

    def _reject(self, code: ErrorCode) -> PredictFailure:
        result = _fail(code)
        log_event("predict_rejected", fields={"code": code.value, "status": result.http_status})
        return result

    @staticmethod
    def _log_failure(request: PredictionRequest, result: PredictFailure, t0: float) -> None:
        log_event(
            "predict_failed",
            fields={
                "latency_ms": _elapsed_ms(t0),
                "model_choice": request.model_choice,
                "code": result.code.value,
            },
        )


def _elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000.0)
