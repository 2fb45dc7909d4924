from __future__ import annotations

from collections.abc import Mapping, Sequence

from ..errors import EmptyResultError, MalformedResultError
from .types import Confidence, Prediction


def parse_prediction(raw: object) -> Prediction:
    """Validate a remote ``/predict`` payload and return its first record.

    The Python client unwraps single-output endpoints, so a bare mapping is
    accepted as a one-record sequence. Records after the first are ignored.
    """
    records: Sequence[object]
    if isinstance(raw, Mapping):
        records = (raw,)
    elif isinstance(raw, list | tuple):
        records = raw
    else:
        raise MalformedResultError(f"Unexpected prediction payload type: {type(raw).__name__}")
    if len(records) == 0:
        raise EmptyResultError("Empty prediction result")
    return _parse_record(records[0])


def _parse_record(rec: object) -> Prediction:
    if not isinstance(rec, Mapping):
        raise MalformedResultError("Prediction record must be an object")
    label = rec.get("label")
    if not isinstance(label, str):
        raise MalformedResultError("Prediction record is missing a string label")
    confs = rec.get("confidences")
    if not isinstance(confs, list | tuple):
        raise MalformedResultError("Prediction record is missing confidences")
    return Prediction(label=label, confidences=tuple(_parse_confidence(c) for c in confs))


def _parse_confidence(item: object) -> Confidence:
    if not isinstance(item, Mapping):
        raise MalformedResultError("Confidence entry must be an object")
    label = item.get("label")
    value = item.get("confidence")
    if not isinstance(label, str):
        raise MalformedResultError("Confidence entry is missing a string label")
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise MalformedResultError("Confidence entry is missing a numeric confidence")
    return Confidence(label=label, confidence=float(value))
