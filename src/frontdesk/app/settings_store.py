from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
from uuid import uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from frontdesk.app.errors import ConfigurationError
from frontdesk.app.runtime_paths import app_root, is_frozen_runtime

_REWRITE_ROOT = app_root()
_APP_SETTINGS_DIRNAME = "frontdesk"
_LEGACY_SETTINGS_PATH = _REWRITE_ROOT / "config" / "settings.json"

BACKEND_LOCAL_SQLITE = "local_sqlite"
BACKEND_SUPABASE = "supabase"
SUPPORTED_BACKENDS: tuple[str, ...] = (BACKEND_LOCAL_SQLITE, BACKEND_SUPABASE)
SCOPE_PUBLIC = "public"
SCOPE_PRIVATE = "private"
SUPPORTED_SCOPES: tuple[str, ...] = (SCOPE_PUBLIC, SCOPE_PRIVATE)

DEFAULT_BACKEND = BACKEND_LOCAL_SQLITE
DEFAULT_NAMESPACE = "frontdesk"
DEFAULT_TIMEZONE = "America/Sao_Paulo"
DEFAULT_NOTIFICATION_TIMEOUT_MS = 4_000
DEFAULT_SUPABASE_SCHEMA = "public"
DEFAULT_SUPABASE_TABLE = "frontdesk_records"
DEFAULT_SUPABASE_TIMEOUT_SECONDS = 8.0

_BACKEND_KEY = "backend"
_NAMESPACE_KEY = "namespace"
_DATA_FOLDER_KEY = "dataFolder"
_SUPABASE_URL_KEY = "supabaseUrl"
_SUPABASE_API_KEY = "supabaseApiKey"
_SUPABASE_SCHEMA_KEY = "supabaseSchema"
_SUPABASE_TABLE_KEY = "supabaseTable"
_SUPABASE_TIMEOUT_KEY = "supabaseTimeoutSeconds"
_AUTH_TOKEN_KEY = "authToken"
_VISIT_SCOPE_KEY = "visitScope"
_RESIDENT_SCOPE_KEY = "residentScope"
_TIMEZONE_KEY = "timezone"
_NOTIFICATION_TIMEOUT_KEY = "notificationTimeoutMs"
_LOCAL_DEVICE_ID_KEY = "localDeviceId"
_DARK_MODE_KEY = "darkMode"

_ENV_KEYS: dict[str, tuple[str, ...]] = {
    "backend": ("FRONTDESK_BACKEND",),
    "namespace": ("FRONTDESK_NAMESPACE",),
    "data_folder": ("FRONTDESK_DATA_FOLDER",),
    "supabase_url": ("FRONTDESK_SUPABASE_URL", "SUPABASE_URL"),
    "supabase_api_key": ("FRONTDESK_SUPABASE_API_KEY", "SUPABASE_ANON_KEY", "SUPABASE_PUBLISHABLE_KEY"),
    "supabase_schema": ("FRONTDESK_SUPABASE_SCHEMA",),
    "supabase_table": ("FRONTDESK_SUPABASE_TABLE",),
    "auth_token": ("FRONTDESK_AUTH_TOKEN",),
    "timezone": ("FRONTDESK_TIMEZONE",),
}


def _resolve_settings_path() -> Path:
    env = os.environ
    if os.name == "nt":
        appdata = str(env.get("APPDATA", "") or "").strip()
        if appdata:
            return Path(appdata) / _APP_SETTINGS_DIRNAME / "config" / "settings.json"
        localappdata = str(env.get("LOCALAPPDATA", "") or "").strip()
        if localappdata:
            return Path(localappdata) / _APP_SETTINGS_DIRNAME / "config" / "settings.json"
    else:
        xdg_config_home = str(env.get("XDG_CONFIG_HOME", "") or "").strip()
        if xdg_config_home:
            return Path(xdg_config_home) / _APP_SETTINGS_DIRNAME / "settings.json"
        home = str(env.get("HOME", "") or "").strip()
        if home:
            return Path(home) / ".config" / _APP_SETTINGS_DIRNAME / "settings.json"

    return _LEGACY_SETTINGS_PATH


@dataclass(frozen=True, slots=True)
class SupabaseSettings:
    url: str = ""
    api_key: str = ""
    schema: str = DEFAULT_SUPABASE_SCHEMA
    table: str = DEFAULT_SUPABASE_TABLE
    timeout_seconds: float = DEFAULT_SUPABASE_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key)

    def to_mapping(self, *, redact_api_key: bool = False) -> dict[str, object]:
        api_key = self.api_key
        if redact_api_key and api_key:
            api_key = "********"
        return {
            "url": self.url,
            "api_key": api_key,
            "schema": self.schema,
            "table": self.table,
            "timeout_seconds": self.timeout_seconds,
        }


@dataclass(frozen=True, slots=True)
class FrontDeskConfig:
    backend: str = DEFAULT_BACKEND
    namespace: str = DEFAULT_NAMESPACE
    data_folder: Path = field(default_factory=lambda: default_data_folder())
    supabase: SupabaseSettings = field(default_factory=SupabaseSettings)
    auth_token: str = ""
    visit_scope: str = SCOPE_PUBLIC
    resident_scope: str = SCOPE_PUBLIC
    timezone: str = DEFAULT_TIMEZONE
    notification_timeout_ms: int = DEFAULT_NOTIFICATION_TIMEOUT_MS

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def scope_for(self, entity_kind: str) -> str:
        if entity_kind == "resident":
            return self.resident_scope
        return self.visit_scope


def settings_path() -> Path:
    return _resolve_settings_path()


def default_data_folder() -> Path:
    """Per-user data directory; frozen builds keep their data beside the executable."""
    if is_frozen_runtime():
        return (_REWRITE_ROOT / "data").resolve()
    env = os.environ
    if os.name == "nt":
        for key in ("LOCALAPPDATA", "APPDATA"):
            base = str(env.get(key, "") or "").strip()
            if base:
                return Path(base) / _APP_SETTINGS_DIRNAME / "data"
    else:
        xdg_data_home = str(env.get("XDG_DATA_HOME", "") or "").strip()
        if xdg_data_home:
            return Path(xdg_data_home) / _APP_SETTINGS_DIRNAME
        home = str(env.get("HOME", "") or "").strip()
        if home:
            return Path(home) / ".local" / "share" / _APP_SETTINGS_DIRNAME

    return (_REWRITE_ROOT / "data").resolve()


def load_settings() -> dict[str, Any]:
    path = settings_path()
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def save_settings(settings: dict[str, Any]) -> None:
    path = settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings, indent=2), encoding="utf-8")


def load_local_device_id() -> str:
    settings = load_settings()
    value = settings.get(_LOCAL_DEVICE_ID_KEY)
    if isinstance(value, str) and value.strip():
        return value.strip()
    device_id = f"local-{uuid4().hex}"
    settings[_LOCAL_DEVICE_ID_KEY] = device_id
    save_settings(settings)
    return device_id


def load_dark_mode(default: bool = False) -> bool:
    settings = load_settings()
    value = settings.get(_DARK_MODE_KEY, default)
    if isinstance(value, bool):
        return value
    return bool(default)


def normalize_data_folder(value: str | Path | None, *, default: Path | None = None) -> Path:
    fallback = Path(default) if default is not None else default_data_folder()
    if isinstance(value, Path):
        candidate = value
    elif isinstance(value, str) and value.strip():
        candidate = Path(value.strip())
    else:
        candidate = fallback

    candidate = candidate.expanduser()
    if not candidate.is_absolute():
        candidate = Path.cwd() / candidate
    try:
        return candidate.resolve()
    except OSError:
        return candidate


def build_config(
    *,
    stored: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> FrontDeskConfig:
    """Layer defaults, the settings file, the environment and explicit overrides.

    Values are normalized (trimmed, lower-cased where they are tokens) but not
    validated; call `validate_config` on the result before using it.
    """
    stored = stored or {}
    env = env if env is not None else os.environ
    overrides = overrides or {}

    def pick(name: str, stored_key: str, default: object) -> object:
        override = overrides.get(name)
        if override is not None and str(override).strip() != "":
            return override
        env_value = _first_env(env, _ENV_KEYS.get(name, ()))
        if env_value:
            return env_value
        stored_value = stored.get(stored_key)
        if stored_value is not None and str(stored_value).strip() != "":
            return stored_value
        return default

    timeout_raw = pick("supabase_timeout_seconds", _SUPABASE_TIMEOUT_KEY, DEFAULT_SUPABASE_TIMEOUT_SECONDS)
    try:
        timeout_seconds = max(1.0, float(timeout_raw))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        timeout_seconds = DEFAULT_SUPABASE_TIMEOUT_SECONDS

    notify_raw = pick("notification_timeout_ms", _NOTIFICATION_TIMEOUT_KEY, DEFAULT_NOTIFICATION_TIMEOUT_MS)
    try:
        notification_timeout_ms = max(0, int(notify_raw))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        notification_timeout_ms = DEFAULT_NOTIFICATION_TIMEOUT_MS

    supabase = SupabaseSettings(
        url=str(pick("supabase_url", _SUPABASE_URL_KEY, "") or "").strip().rstrip("/"),
        api_key=str(pick("supabase_api_key", _SUPABASE_API_KEY, "") or "").strip(),
        schema=str(pick("supabase_schema", _SUPABASE_SCHEMA_KEY, DEFAULT_SUPABASE_SCHEMA) or "").strip()
        or DEFAULT_SUPABASE_SCHEMA,
        table=str(pick("supabase_table", _SUPABASE_TABLE_KEY, DEFAULT_SUPABASE_TABLE) or "").strip()
        or DEFAULT_SUPABASE_TABLE,
        timeout_seconds=timeout_seconds,
    )
    data_folder_raw = pick("data_folder", _DATA_FOLDER_KEY, None)
    return FrontDeskConfig(
        backend=str(pick("backend", _BACKEND_KEY, DEFAULT_BACKEND) or "").strip().lower(),
        namespace=str(pick("namespace", _NAMESPACE_KEY, DEFAULT_NAMESPACE) or "").strip().strip("/"),
        data_folder=normalize_data_folder(data_folder_raw if isinstance(data_folder_raw, (str, Path)) else None),
        supabase=supabase,
        auth_token=str(pick("auth_token", _AUTH_TOKEN_KEY, "") or "").strip(),
        visit_scope=str(pick("visit_scope", _VISIT_SCOPE_KEY, SCOPE_PUBLIC) or "").strip().lower(),
        resident_scope=str(pick("resident_scope", _RESIDENT_SCOPE_KEY, SCOPE_PUBLIC) or "").strip().lower(),
        timezone=str(pick("timezone", _TIMEZONE_KEY, DEFAULT_TIMEZONE) or "").strip(),
        notification_timeout_ms=notification_timeout_ms,
    )


def validate_config(config: FrontDeskConfig) -> FrontDeskConfig:
    problems: list[str] = []
    if config.backend not in SUPPORTED_BACKENDS:
        problems.append(
            f"backend must be one of {', '.join(SUPPORTED_BACKENDS)} (got {config.backend!r})"
        )
    if not config.namespace:
        problems.append("namespace is empty")
    if config.backend == BACKEND_SUPABASE:
        if not config.supabase.url:
            problems.append("Supabase URL is missing")
        if not config.supabase.api_key:
            problems.append("Supabase API key is missing")
    for label, scope in (("visit scope", config.visit_scope), ("resident scope", config.resident_scope)):
        if scope not in SUPPORTED_SCOPES:
            problems.append(f"{label} must be 'public' or 'private' (got {scope!r})")
    try:
        ZoneInfo(config.timezone)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        problems.append(f"unknown timezone {config.timezone!r}")
    if problems:
        raise ConfigurationError(problems)
    return config


def load_config(overrides: Mapping[str, Any] | None = None) -> FrontDeskConfig:
    return validate_config(build_config(stored=load_settings(), overrides=overrides))


def _first_env(values: Mapping[str, str], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = str(values.get(key, "") or "").strip()
        if value:
            return value
    return ""
