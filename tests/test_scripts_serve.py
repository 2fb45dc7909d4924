from __future__ import annotations

from pathlib import Path

import pytest
from fastapi import FastAPI

import scripts.serve as serve


def test_main_runs_uvicorn_with_config_port(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    seen: dict[str, object] = {}

    def _run(app: object, host: str, port: int, log_level: str) -> None:
        seen.update(app=app, host=host, port=port, log_level=log_level)

    monkeypatch.setenv("CVMIL_CONFIG", (tmp_path / "missing.toml").as_posix())
    monkeypatch.setenv("APP__PORT", "8123")
    monkeypatch.setattr(serve.uvicorn, "run", _run)
    assert serve.main([]) == 0
    assert isinstance(seen["app"], FastAPI)
    assert seen["host"] == "0.0.0.0" and seen["port"] == 8123 and seen["log_level"] == "info"


def test_main_port_flag_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    ports: list[int] = []

    def _run(app: object, host: str, port: int, log_level: str) -> None:
        ports.append(port)

    monkeypatch.setenv("CVMIL_CONFIG", (tmp_path / "missing.toml").as_posix())
    monkeypatch.setattr(serve.uvicorn, "run", _run)
    assert serve.main(["--port", "9001", "--host", "127.0.0.1"]) == 0
    assert ports == [9001]
