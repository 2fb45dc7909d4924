from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Final

_DEFAULT_CONFIG_PATH: Final[Path] = Path("config/cvmil.toml")

DEFAULT_SPACE_ID: Final[str] = "Dundale/CVMIL-1"
DEFAULT_API_NAME: Final[str] = "/predict"


@dataclass(frozen=True)
class AppConfig:
    port: int = 8080


@dataclass(frozen=True)
class RemoteConfig:
    space_id: str = DEFAULT_SPACE_ID
    api_name: str = DEFAULT_API_NAME
    # Empty string means anonymous access to the Space
    hf_token: str = ""
    connect_attempts: int = 1
    connect_backoff_seconds: float = 0.5
    warm_on_startup: bool = False


@dataclass(frozen=True)
class PredictConfig:
    timeout_seconds: float = 60.0
    workers: int = 4
    max_photo_mb: int = 10


@dataclass(frozen=True)
class SecurityConfig:
    # Empty string disables check
    api_key: str = ""


@dataclass(frozen=True)
class Settings:
    app: AppConfig
    remote: RemoteConfig
    predict: PredictConfig
    security: SecurityConfig

    @staticmethod
    def default() -> Settings:
        return Settings(
            app=AppConfig(),
            remote=RemoteConfig(),
            predict=PredictConfig(),
            security=SecurityConfig(),
        )

    @staticmethod
    def _toml_path() -> Path:
        env_val = os.getenv("CVMIL_CONFIG")
        if env_val:
            return Path(env_val)
        return _DEFAULT_CONFIG_PATH

    @classmethod
    def load(cls) -> Settings:
        # Load env first, then override from TOML if present.
        base = cls(
            app=_load_app_from_env(),
            remote=_load_remote_from_env(),
            predict=_load_predict_from_env(),
            security=_load_security_from_env(),
        )
        cfg_path = cls._toml_path()
        if not cfg_path.exists():
            return base
        try:
            raw: object = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise RuntimeError(f"Failed to read config TOML: {cfg_path}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise RuntimeError(f"Invalid TOML config: {cfg_path}") from exc
        return cls(
            app=_merge_app(base.app, _toml_table(raw, "app")),
            remote=_merge_remote(base.remote, _toml_table(raw, "remote")),
            predict=_merge_predict(base.predict, _toml_table(raw, "predict")),
            security=_merge_security(base.security, _toml_table(raw, "security")),
        )


def _truthy(v: str) -> bool:
    return v.strip().lower() in {"1", "true", "yes", "on"}


def _check_port(p: int) -> int:
    if not (1 <= p <= 65535):
        raise RuntimeError("port out of range")
    return p


def _check_positive(name: str, v: float) -> None:
    if v <= 0:
        raise RuntimeError(f"{name} must be > 0")


def _load_app_from_env() -> AppConfig:
    a = AppConfig()
    pt = os.getenv("APP__PORT")
    if pt is not None and pt.isdigit():
        a = replace(a, port=_check_port(int(pt)))
    return a


def _load_remote_from_env() -> RemoteConfig:
    r = RemoteConfig()
    sid = os.getenv("REMOTE__SPACE_ID")
    api = os.getenv("REMOTE__API_NAME")
    tok = os.getenv("REMOTE__HF_TOKEN")
    att = os.getenv("REMOTE__CONNECT_ATTEMPTS")
    bo = os.getenv("REMOTE__CONNECT_BACKOFF_SECONDS")
    warm = os.getenv("REMOTE__WARM_ON_STARTUP")
    if sid:
        r = replace(r, space_id=sid)
    if api:
        r = replace(r, api_name=api)
    if tok is not None:
        r = replace(r, hf_token=tok)
    if att is not None:
        n = int(att)
        _check_positive("REMOTE__CONNECT_ATTEMPTS", n)
        r = replace(r, connect_attempts=n)
    if bo is not None:
        r = replace(r, connect_backoff_seconds=float(bo))
    if warm is not None:
        r = replace(r, warm_on_startup=_truthy(warm))
    return r


def _load_predict_from_env() -> PredictConfig:
    p = PredictConfig()
    to = os.getenv("PREDICT__TIMEOUT_SECONDS")
    wk = os.getenv("PREDICT__WORKERS")
    mb = os.getenv("PREDICT__MAX_PHOTO_MB")
    if to is not None:
        t = float(to)
        _check_positive("PREDICT__TIMEOUT_SECONDS", t)
        p = replace(p, timeout_seconds=t)
    if wk is not None:
        w = int(wk)
        _check_positive("PREDICT__WORKERS", w)
        p = replace(p, workers=w)
    if mb is not None:
        m = int(mb)
        _check_positive("PREDICT__MAX_PHOTO_MB", m)
        p = replace(p, max_photo_mb=m)
    return p


def _load_security_from_env() -> SecurityConfig:
    s = SecurityConfig()
    key = os.getenv("SECURITY__API_KEY")
    if key is not None:
        s = replace(s, api_key=key)
    return s


def _merge_app(base: AppConfig, data: dict[str, object]) -> AppConfig:
    out = base
    if "port" in data:
        out = replace(out, port=_check_port(int(str(data["port"]))))
    return out


def _merge_remote(base: RemoteConfig, data: dict[str, object]) -> RemoteConfig:
    out = base
    if "space_id" in data:
        out = replace(out, space_id=str(data["space_id"]))
    if "api_name" in data:
        out = replace(out, api_name=str(data["api_name"]))
    if "hf_token" in data:
        out = replace(out, hf_token=str(data["hf_token"]))
    if "connect_attempts" in data:
        n = int(str(data["connect_attempts"]))
        _check_positive("connect_attempts", n)
        out = replace(out, connect_attempts=n)
    if "connect_backoff_seconds" in data:
        out = replace(out, connect_backoff_seconds=float(str(data["connect_backoff_seconds"])))
    if "warm_on_startup" in data:
        warm = data["warm_on_startup"]
        if isinstance(warm, bool):
            out = replace(out, warm_on_startup=warm)
    return out


def _merge_predict(base: PredictConfig, data: dict[str, object]) -> PredictConfig:
    out = base
    if "timeout_seconds" in data:
        t = float(str(data["timeout_seconds"]))
        _check_positive("timeout_seconds", t)
        out = replace(out, timeout_seconds=t)
    if "workers" in data:
        w = int(str(data["workers"]))
        _check_positive("workers", w)
        out = replace(out, workers=w)
    if "max_photo_mb" in data:
        m = int(str(data["max_photo_mb"]))
        _check_positive("max_photo_mb", m)
        out = replace(out, max_photo_mb=m)
    return out


def _toml_table(raw: object, key: str) -> dict[str, object]:
    if isinstance(raw, dict):
        tab: object = raw.get(key, {})
        if isinstance(tab, dict):
            return {str(k): v for k, v in tab.items()}
    return {}


def _merge_security(base: SecurityConfig, data: dict[str, object]) -> SecurityConfig:
    out = base
    api_key_val = data.get("api_key")
    if isinstance(api_key_val, str):
        out = replace(out, api_key=api_key_val)
    enabled = data.get("api_key_enabled")
    if isinstance(enabled, bool) and not enabled:
        out = replace(out, api_key="")
    return out


@dataclass(frozen=True)
class Limits:
    max_photo_bytes: int

    @staticmethod
    def from_settings(s: Settings) -> Limits:
        return Limits(max_photo_bytes=int(s.predict.max_photo_mb) * 1024 * 1024)
