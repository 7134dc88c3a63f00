from __future__ import annotations

import math
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .api import DEFAULT_API_BASE_URL
from .auth import DEFAULT_MARGIN_SECONDS, DEFAULT_SCOPE, DEFAULT_TOKEN_URL
from .models import Secret


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


@dataclass(frozen=True)
class Settings:
    # -----------------
    # Credentials
    # -----------------
    client_id: str = ""
    client_secret: Secret = field(default_factory=lambda: Secret(""))

    # -----------------
    # Polling cadence
    # -----------------
    # Seconds between fast sample-polling cycles.
    interval: float = 60
    # Seconds between device-list refreshes (independent of `interval`).
    device_list_interval: float = 600
    # Granularity of the stop check while sleeping between cycles.
    stop_check_seconds: float = 1.0

    # -----------------
    # Remote API
    # -----------------
    api_base_url: str = DEFAULT_API_BASE_URL
    token_url: str = DEFAULT_TOKEN_URL
    scope: Tuple[str, ...] = DEFAULT_SCOPE
    # Tokens are treated as expired this many seconds before the server says so.
    token_margin_seconds: float = DEFAULT_MARGIN_SECONDS
    request_timeout_seconds: float = 30

    # -----------------
    # Output
    # -----------------
    sink: str = "stdout"  # stdout|file|redis
    sink_path: str = ""
    redis_url: str = "redis://localhost:6379/0"
    redis_key: str = "airthings:events"
    # Event decoration (Logstash-style `tags` / `add_field`).
    tags: Tuple[str, ...] = ()
    add_field: Dict[str, Any] = field(default_factory=dict)

    # -----------------
    # Logging
    # -----------------
    log_level: str = "INFO"
    log_format: str = "json"  # json|console


# env var -> settings field
_ENV_VARS: Dict[str, str] = {
    "AIRTHINGS_CLIENT_ID": "client_id",
    "AIRTHINGS_CLIENT_SECRET": "client_secret",
    "AIRTHINGS_INTERVAL": "interval",
    "AIRTHINGS_DEVICE_LIST_INTERVAL": "device_list_interval",
    "AIRTHINGS_STOP_CHECK_SECONDS": "stop_check_seconds",
    "AIRTHINGS_API_BASE_URL": "api_base_url",
    "AIRTHINGS_TOKEN_URL": "token_url",
    "AIRTHINGS_SCOPE": "scope",
    "AIRTHINGS_TOKEN_MARGIN_SECONDS": "token_margin_seconds",
    "AIRTHINGS_REQUEST_TIMEOUT_SECONDS": "request_timeout_seconds",
    "AIRTHINGS_SINK": "sink",
    "AIRTHINGS_SINK_PATH": "sink_path",
    "REDIS_URL": "redis_url",
    "AIRTHINGS_REDIS_KEY": "redis_key",
    "AIRTHINGS_TAGS": "tags",
    "LOG_LEVEL": "log_level",
    "LOG_FORMAT": "log_format",
}

_NUMERIC_FIELDS = (
    "interval",
    "device_list_interval",
    "stop_check_seconds",
    "token_margin_seconds",
    "request_timeout_seconds",
)


def normalize_sink(sink: str) -> str:
    """Normalize the sink name.

    Accept a few aliases so environment config is forgiving.
    """

    s = (sink or "").strip().lower()
    if s in ("", "stdout", "console", "-"):
        return "stdout"
    if s in ("file", "jsonl", "json_lines"):
        return "file"
    if s in ("redis", "redis_list"):
        return "redis"
    raise ValueError(f"Unsupported sink {sink!r}. Allowed: stdout, file, redis")


def normalize_log_format(log_format: str) -> str:
    f = (log_format or "").strip().lower()
    if f in ("", "json"):
        return "json"
    if f in ("console", "text", "plain"):
        return "console"
    raise ValueError(f"Unsupported log format {log_format!r}. Allowed: json, console")


def _coerce(name: str, value: Any) -> Any:
    if name == "client_secret":
        return value if isinstance(value, Secret) else Secret(str(value or ""))
    if name in ("scope", "tags"):
        if isinstance(value, str):
            return tuple(_split_csv(value))
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"{name!r} must be a list or comma-separated string.")
        return tuple(str(v) for v in value)
    if name == "add_field":
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("'add_field' must be a mapping.")
        return {str(k): v for k, v in value.items()}
    if name in _NUMERIC_FIELDS:
        if isinstance(value, bool):
            raise ValueError(f"{name!r} must be a number, got {value!r}")
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{name!r} must be a number, got {value!r}") from exc
    return "" if value is None else str(value).strip()


def _read_yaml(path: Path) -> Dict[str, Any]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {path} must parse to an object/dict.")

    known = {f.name for f in fields(Settings)}
    unknown = sorted(str(k) for k in raw if k not in known)
    if unknown:
        raise ValueError(f"Unknown config keys in {path}: {unknown}")
    return dict(raw)


def validate_settings(s: Settings) -> Settings:
    if not s.client_id:
        raise ValueError("client_id is required (AIRTHINGS_CLIENT_ID).")
    if not s.client_secret:
        raise ValueError("client_secret is required (AIRTHINGS_CLIENT_SECRET).")

    for name in ("interval", "device_list_interval", "stop_check_seconds", "request_timeout_seconds"):
        value = getattr(s, name)
        if not math.isfinite(value) or value <= 0:
            raise ValueError(f"{name} must be a finite number > 0, got {value!r}")
    if not math.isfinite(s.token_margin_seconds) or s.token_margin_seconds < 0:
        raise ValueError(f"token_margin_seconds must be >= 0, got {s.token_margin_seconds!r}")

    if not s.scope:
        raise ValueError("scope must name at least one OAuth scope.")
    for name in ("api_base_url", "token_url"):
        if not getattr(s, name).startswith(("http://", "https://")):
            raise ValueError(f"{name} must be an http(s) URL, got {getattr(s, name)!r}")

    if s.sink == "file" and not s.sink_path:
        raise ValueError("sink_path is required when sink=file (AIRTHINGS_SINK_PATH).")
    if s.sink == "redis" and not s.redis_key:
        raise ValueError("redis_key is required when sink=redis.")
    return s


def load_settings(
    config_path: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Settings:
    """Build validated settings.

    Precedence (lowest to highest): defaults, YAML file, environment,
    explicit overrides (CLI flags).
    """

    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    if config_path:
        values.update(_read_yaml(Path(config_path)))

    for var, name in _ENV_VARS.items():
        raw = env.get(var)
        if raw is not None and str(raw).strip() != "":
            values[name] = str(raw).strip()

    for name, value in (overrides or {}).items():
        if value is not None:
            values[name] = value

    coerced = {name: _coerce(name, value) for name, value in values.items()}
    if "sink" in coerced:
        coerced["sink"] = normalize_sink(coerced["sink"])
    if "log_format" in coerced:
        coerced["log_format"] = normalize_log_format(coerced["log_format"])
    if "log_level" in coerced:
        coerced["log_level"] = coerced["log_level"].upper()

    return validate_settings(Settings(**coerced))
