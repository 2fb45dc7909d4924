from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

from cvmil.config import DEFAULT_SPACE_ID, Limits, Settings


def _load_with_env(env: dict[str, str]) -> Settings:
    old = os.environ.copy()
    try:
        os.environ.clear()
        for k, v in env.items():
            os.environ[k] = v
        return Settings.load()
    finally:
        os.environ.clear()
        for k, v in old.items():
            os.environ[k] = v


def _missing_toml(td: str) -> str:
    return (Path(td) / "missing.toml").as_posix()


def test_defaults_without_config() -> None:
    with tempfile.TemporaryDirectory() as td:
        s = _load_with_env({"CVMIL_CONFIG": _missing_toml(td)})
    assert s == Settings.default()
    assert s.remote.space_id == DEFAULT_SPACE_ID == "Dundale/CVMIL-1"
    assert s.remote.api_name == "/predict"
    assert s.remote.connect_attempts == 1
    assert s.security.api_key == ""


def test_env_overrides_happy_paths() -> None:
    with tempfile.TemporaryDirectory() as td:
        env = {
            "CVMIL_CONFIG": _missing_toml(td),
            "APP__PORT": "9000",
            "REMOTE__SPACE_ID": "me/other-space",
            "REMOTE__HF_TOKEN": "hf_x",
            "REMOTE__CONNECT_ATTEMPTS": "3",
            "REMOTE__CONNECT_BACKOFF_SECONDS": "0.1",
            "REMOTE__WARM_ON_STARTUP": "yes",
            "PREDICT__TIMEOUT_SECONDS": "2.5",
            "PREDICT__WORKERS": "8",
            "PREDICT__MAX_PHOTO_MB": "1",
            "SECURITY__API_KEY": "k",
        }
        s = _load_with_env(env)
    assert s.app.port == 9000
    assert s.remote.space_id == "me/other-space" and s.remote.hf_token == "hf_x"
    assert s.remote.connect_attempts == 3
    assert abs(s.remote.connect_backoff_seconds - 0.1) < 1e-9
    assert s.remote.warm_on_startup is True
    assert s.predict.timeout_seconds == 2.5 and s.predict.workers == 8
    assert Limits.from_settings(s).max_photo_bytes == 1024 * 1024
    assert s.security.api_key == "k"


def test_app_port_out_of_range_raises() -> None:
    with tempfile.TemporaryDirectory() as td, pytest.raises(RuntimeError):
        _load_with_env({"CVMIL_CONFIG": _missing_toml(td), "APP__PORT": "70000"})


@pytest.mark.parametrize(
    "key",
    [
        "REMOTE__CONNECT_ATTEMPTS",
        "PREDICT__TIMEOUT_SECONDS",
        "PREDICT__WORKERS",
        "PREDICT__MAX_PHOTO_MB",
    ],
)
def test_non_positive_values_raise(key: str) -> None:
    with tempfile.TemporaryDirectory() as td, pytest.raises(RuntimeError):
        _load_with_env({"CVMIL_CONFIG": _missing_toml(td), key: "0"})


def test_toml_overrides_env() -> None:
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "cfg.toml"
        p.write_text(
            """
[remote]
space_id = "toml/space"
connect_attempts = 4
warm_on_startup = true

[predict]
timeout_seconds = 12
max_photo_mb = 3
""".strip(),
            encoding="utf-8",
        )
        s = _load_with_env({"CVMIL_CONFIG": p.as_posix(), "REMOTE__SPACE_ID": "env/space"})
    assert s.remote.space_id == "toml/space"
    assert s.remote.connect_attempts == 4 and s.remote.warm_on_startup is True
    assert s.predict.timeout_seconds == 12.0 and s.predict.max_photo_mb == 3


def test_security_api_key_enabled_false_disables_key() -> None:
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "cfg.toml"
        p.write_text(
            """
[security]
api_key = "secret"
api_key_enabled = false
""".strip(),
            encoding="utf-8",
        )
        s = _load_with_env({"CVMIL_CONFIG": p.as_posix()})
    assert s.security.api_key == ""


def test_invalid_toml_config_raises_runtime() -> None:
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "cfg.toml"
        p.write_text("[remote\nspace_id='x'", encoding="utf-8")
        with pytest.raises(RuntimeError):
            _load_with_env({"CVMIL_CONFIG": p.as_posix()})


def test_failed_read_config_raises_runtime() -> None:
    # A directory exists but cannot be read as a file
    with tempfile.TemporaryDirectory() as td, pytest.raises(RuntimeError):
        _load_with_env({"CVMIL_CONFIG": Path(td).as_posix()})


def test_non_table_sections_are_ignored() -> None:
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "cfg.toml"
        p.write_text('remote = "not-a-table"\n', encoding="utf-8")
        s = _load_with_env({"CVMIL_CONFIG": p.as_posix()})
    assert s.remote.space_id == DEFAULT_SPACE_ID


def test_toml_warm_on_startup_requires_bool() -> None:
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "cfg.toml"
        p.write_text('[remote]\nwarm_on_startup = "false"\n', encoding="utf-8")
        s = _load_with_env({"CVMIL_CONFIG": p.as_posix(), "REMOTE__WARM_ON_STARTUP": "1"})
    # String values are ignored; the env value stands
    assert s.remote.warm_on_startup is True


@pytest.mark.parametrize("value", ["0", "-2"])
def test_toml_max_photo_mb_must_be_positive(value: str) -> None:
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "cfg.toml"
        p.write_text(f"[predict]\nmax_photo_mb = {value}\n", encoding="utf-8")
        with pytest.raises(RuntimeError, match="max_photo_mb"):
            _load_with_env({"CVMIL_CONFIG": p.as_posix()})
