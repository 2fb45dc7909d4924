from __future__ import annotations

import pytest

from cvmil.errors import EmptyResultError, ErrorCode, MalformedResultError
from cvmil.remote.parse import parse_prediction
from cvmil.remote.types import Confidence


def _record(label: str = "cat") -> dict[str, object]:
    return {
        "label": label,
        "confidences": [
            {"label": "cat", "confidence": 0.91},
            {"label": "dog", "confidence": 0.09},
        ],
    }


def test_sequence_uses_first_record_only() -> None:
    p = parse_prediction([_record("cat"), _record("dog")])
    assert p.label == "cat"
    assert p.confidences == (Confidence("cat", 0.91), Confidence("dog", 0.09))


def test_bare_mapping_is_one_record() -> None:
    p = parse_prediction(_record("dog"))
    assert p.label == "dog" and len(p.confidences) == 2


def test_tuple_payload_and_int_confidence() -> None:
    p = parse_prediction(({"label": "x", "confidences": [{"label": "x", "confidence": 1}]},))
    assert p.confidences[0].confidence == 1.0
    assert isinstance(p.confidences[0].confidence, float)


def test_empty_sequence_raises_defined_error() -> None:
    with pytest.raises(EmptyResultError, match="Empty prediction result") as ei:
        parse_prediction([])
    assert ei.value.code is ErrorCode.empty_prediction


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "cat",
        42,
        ["cat"],
        [{"confidences": []}],
        [{"label": 3, "confidences": []}],
        [{"label": "cat"}],
        [{"label": "cat", "confidences": "high"}],
        [{"label": "cat", "confidences": [["cat", 0.9]]}],
        [{"label": "cat", "confidences": [{"label": "cat"}]}],
        [{"label": "cat", "confidences": [{"label": "cat", "confidence": "0.9"}]}],
        [{"label": "cat", "confidences": [{"label": "cat", "confidence": True}]}],
        [{"label": "cat", "confidences": [{"label": None, "confidence": 0.9}]}],
    ],
)
def test_malformed_payloads_raise(raw: object) -> None:
    with pytest.raises(MalformedResultError) as ei:
        parse_prediction(raw)
    assert ei.value.code is ErrorCode.malformed_prediction


def test_confidence_values_are_not_range_checked() -> None:
    p = parse_prediction([{"label": "a", "confidences": [{"label": "a", "confidence": 1.7}]}])
    assert p.confidences[0].confidence == 1.7


def test_prediction_to_dict_shape() -> None:
    d = parse_prediction([_record()]).to_dict()
    assert d == {
        "label": "cat",
        "confidences": [
            {"label": "cat", "confidence": 0.91},
            {"label": "dog", "confidence": 0.09},
        ],
    }
