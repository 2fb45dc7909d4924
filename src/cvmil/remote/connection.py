from __future__ import annotations

import threading
import time
from collections.abc import Callable

from ..config import RemoteConfig
from ..logging import get_logger, log_event
from .types import Connector, RemoteHandle


def gradio_connector(hf_token: str = "") -> Connector:
    """Build a connector that opens a ``gradio_client.Client`` to a Space."""

    def _connect(space_id: str) -> RemoteHandle:
        from gradio_client import Client

        client: RemoteHandle = Client(space_id, hf_token=hf_token or None, verbose=False)
        return client

    return _connect


class ConnectionManager:
    """Lazily established, cached handle to the remote inference Space.

    The first successful ``get_connection`` stores the handle; later calls
    return it without reconnecting. Establishment is serialized so concurrent
    first callers connect once. A failed establishment leaves the slot empty,
    so the next call starts over.
    """

    def __init__(
        self,
        space_id: str,
        connector: Connector,
        *,
        attempts: int = 1,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self._space_id = space_id
        self._connector = connector
        self._attempts = attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._lock = threading.Lock()
        self._handle: RemoteHandle | None = None
        self._logger = get_logger()

    @classmethod
    def from_config(
        cls, cfg: RemoteConfig, connector: Connector | None = None
    ) -> ConnectionManager:
        return cls(
            cfg.space_id,
            connector if connector is not None else gradio_connector(cfg.hf_token),
            attempts=cfg.connect_attempts,
            backoff_seconds=cfg.connect_backoff_seconds,
        )

    @property
    def space_id(self) -> str:
        return self._space_id

    @property
    def connected(self) -> bool:
        return self._handle is not None

    def get_connection(self) -> RemoteHandle:
        handle = self._handle
        if handle is not None:
            return handle
        with self._lock:
            if self._handle is None:
                self._handle = self._establish()
            return self._handle

    def reset(self) -> None:
        with self._lock:
            self._handle = None
        self._logger.info("connection_reset space_id=%s", self._space_id)

    def _establish(self) -> RemoteHandle:
        delay = self._backoff_seconds
        attempt = 1
        while True:
            t0 = time.perf_counter()
            try:
                handle = self._connector(self._space_id)
            except Exception as exc:
                log_event(
                    "connection_failed",
                    fields={
                        "space_id": self._space_id,
                        "attempt": attempt,
                        "attempts": self._attempts,
                        "error": type(exc).__name__,
                    },
                )
                if attempt >= self._attempts:
                    raise
                if delay > 0:
                    self._sleep(delay)
                delay *= 2
                attempt += 1
                continue
            log_event(
                "connection_established",
                fields={
                    "space_id": self._space_id,
                    "attempt": attempt,
                    "latency_ms": int((time.perf_counter() - t0) * 1000.0),
                },
            )
            return handle
