from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Literal, Protocol

ModelChoice = Literal["ViT", "CNN"]

MODEL_CHOICES: Final[tuple[ModelChoice, ...]] = ("ViT", "CNN")


class RemoteHandle(Protocol):
    """Established session with the remote inference Space.

    Matches the call shape of ``gradio_client.Client.predict``.
    """

    def predict(self, *args: object, api_name: str | None = None, **kwargs: object) -> object: ...


class Connector(Protocol):
    def __call__(self, space_id: str) -> RemoteHandle: ...


@dataclass(frozen=True)
class PredictionRequest:
    photo: bytes
    filename: str
    model_choice: ModelChoice


@dataclass(frozen=True)
class Confidence:
    label: str
    confidence: float

    def to_dict(self) -> dict[str, object]:
        return {"label": self.label, "confidence": self.confidence}


@dataclass(frozen=True)
class Prediction:
    label: str
    confidences: tuple[Confidence, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "label": self.label,
            "confidences": [c.to_dict() for c in self.confidences],
        }
