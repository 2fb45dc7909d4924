from __future__ import annotations

import contextvars
import tempfile
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Final

from ..config import Settings
from ..errors import RemoteCallError
from .connection import ConnectionManager
from .parse import parse_prediction
from .types import Prediction, PredictionRequest

_DEFAULT_SUFFIX: Final[str] = ".jpg"


def _photo_suffix(filename: str) -> str:
    suffix = Path(filename).suffix.lower()
    if suffix and suffix[1:].isalnum():
        return suffix
    return _DEFAULT_SUFFIX


def _file_param(path: Path) -> object:
    from gradio_client import handle_file

    return handle_file(path.as_posix())


class PredictionService:
    """Runs remote predictions on a bounded worker pool.

    ``gradio_client`` is synchronous, so connection setup and the remote call
    happen on worker threads and the caller receives a future.
    """

    def __init__(self, settings: Settings, connections: ConnectionManager) -> None:
        self._settings = settings
        self._connections = connections
        self._pool = ThreadPoolExecutor(
            max_workers=int(settings.predict.workers), thread_name_prefix="cvmil-predict"
        )

    @property
    def connections(self) -> ConnectionManager:
        return self._connections

    def submit_predict(self, request: PredictionRequest) -> Future[Prediction]:
        # Worker log events carry the caller request id
        ctx = contextvars.copy_context()
        return self._pool.submit(ctx.run, self._predict_impl, request)

    def shutdown(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    def _predict_impl(self, request: PredictionRequest) -> Prediction:
        client = self._connections.get_connection()
        with tempfile.TemporaryDirectory(prefix="cvmil-") as td:
            path = Path(td) / f"upload{_photo_suffix(request.filename)}"
            path.write_bytes(request.photo)
            try:
                raw = client.predict(
                    image=_file_param(path),
                    model_choice=request.model_choice,
                    api_name=self._settings.remote.api_name,
                )
            except Exception as exc:
                raise RemoteCallError(str(exc) or type(exc).__name__) from exc
        return parse_prediction(raw)
