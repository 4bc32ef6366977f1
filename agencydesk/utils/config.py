# Rev 0.3.0
# agencydesk/utils/config.py
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional
from .paths import config_dir

SETTINGS_NAME = "settings.json"

_DEFAULTS: Dict[str, Any] = {
    "backend": {
        "url": "",
        "anon_key": "",
    },
    "timers": {
        "heartbeat_ms": 60_000,
        "notification_ms": 5_000,
        "refetch_debounce_ms": 250,
    },
    "chat": {
        "default_channel": "general",
    },
    "insight": {
        "provider": "gemini",
        "model": "gemini-1.5-flash",
        "api_key": None,
        "timeout": 15.0,
    },
}

# env var -> (section, key)
_ENV_OVERRIDES = {
    "AGENCYDESK_BACKEND_URL": ("backend", "url"),
    "AGENCYDESK_BACKEND_KEY": ("backend", "anon_key"),
    "GEMINI_API_KEY": ("insight", "api_key"),
    "LLM_MODEL": ("insight", "model"),
}


def settings_file() -> Path:
    return config_dir() / SETTINGS_NAME


def _merge(base: Dict[str, Any], over: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: (dict(v) if isinstance(v, dict) else v) for k, v in base.items()}
    for k, v in over.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = {**out[k], **v}
        else:
            out[k] = v
    return out


def load_settings(path: Optional[Path] = None) -> Dict[str, Any]:
    path = path or settings_file()
    data = _merge(_DEFAULTS, {})
    if path.exists():
        try:
            data = _merge(_DEFAULTS, json.loads(path.read_text()))
        except Exception:
            data = _merge(_DEFAULTS, {})
    for env, (section, key) in _ENV_OVERRIDES.items():
        val = os.environ.get(env)
        if val:
            data.setdefault(section, {})[key] = val
    return data


def save_settings(data: Dict[str, Any], path: Optional[Path] = None) -> None:
    path = path or settings_file()
    path.write_text(json.dumps(data, indent=2))


def is_backend_configured(settings: Dict[str, Any]) -> bool:
    backend = settings.get("backend") or {}
    return bool(backend.get("url")) and bool(backend.get("anon_key"))


def default_settings() -> Dict[str, Any]:
    return _merge(_DEFAULTS, {})
