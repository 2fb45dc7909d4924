from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final

from fastapi import status


class ErrorCode(str, Enum):
    invalid_photo = "invalid_photo"
    invalid_model = "invalid_model"
    too_large = "too_large"
    prediction_failed = "prediction_failed"
    empty_prediction = "empty_prediction"
    malformed_prediction = "malformed_prediction"
    timeout = "timeout"
    unauthorized = "unauthorized"
    internal_error = "internal_error"


_DEFAULT_MESSAGE: Final[dict[ErrorCode, str]] = {
    ErrorCode.invalid_photo: "Invalid or missing photo input.",
    ErrorCode.invalid_model: "Invalid or missing model input.",
    ErrorCode.too_large: "File exceeds size limit.",
    ErrorCode.prediction_failed: "Failed to get prediction from model.",
    ErrorCode.empty_prediction: "Failed to get prediction from model.",
    ErrorCode.malformed_prediction: "Failed to get prediction from model.",
    ErrorCode.timeout: "Failed to get prediction from model.",
    ErrorCode.unauthorized: "Unauthorized.",
    ErrorCode.internal_error: "Internal server error.",
}


@dataclass(frozen=True)
class ErrorResponse:
    code: ErrorCode
    message: str
    request_id: str
    details: str | None = None

    def to_dict(self) -> dict[str, str]:
        out = {
            "code": self.code.value,
            "message": self.message,
            "request_id": self.request_id,
        }
        if self.details is not None:
            out["details"] = self.details
        return out


class RemoteError(Exception):
    """Base for failures of the remote prediction call."""

    code: ErrorCode = ErrorCode.prediction_failed


class RemoteCallError(RemoteError):
    pass


class EmptyResultError(RemoteError):
    code = ErrorCode.empty_prediction


class MalformedResultError(RemoteError):
    code = ErrorCode.malformed_prediction


def default_message(code: ErrorCode) -> str:
    return _DEFAULT_MESSAGE.get(code, "")


def new_error(
    code: ErrorCode,
    request_id: str,
    message: str | None = None,
    details: str | None = None,
) -> ErrorResponse:
    msg = message if message is not None else default_message(code)
    return ErrorResponse(code=code, message=msg, request_id=request_id, details=details)


def status_for(code: ErrorCode) -> int:
    if code is ErrorCode.invalid_photo:
        return status.HTTP_400_BAD_REQUEST
    if code is ErrorCode.invalid_model:
        return status.HTTP_400_BAD_REQUEST
    if code is ErrorCode.too_large:
        return status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    if code is ErrorCode.unauthorized:
        return status.HTTP_401_UNAUTHORIZED
    # Every remote-side failure surfaces as a 500 to the caller.
    return status.HTTP_500_INTERNAL_SERVER_ERROR
