from __future__ import annotations

import os
from pathlib import Path

import pytest

from frontdesk.app.errors import ConfigurationError
from frontdesk.app.settings_store import (
    BACKEND_LOCAL_SQLITE,
    BACKEND_SUPABASE,
    DEFAULT_TIMEZONE,
    SCOPE_PRIVATE,
    SCOPE_PUBLIC,
    build_config,
    default_data_folder,
    load_dark_mode,
    load_local_device_id,
    load_settings,
    normalize_data_folder,
    settings_path,
    validate_config,
)


@pytest.fixture
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    return tmp_path / "frontdesk" / "settings.json"


def test_defaults():
    config = build_config(stored={}, env={})

    assert config.backend == BACKEND_LOCAL_SQLITE
    assert config.namespace == "frontdesk"
    assert config.timezone == DEFAULT_TIMEZONE
    assert config.visit_scope == SCOPE_PUBLIC
    assert config.resident_scope == SCOPE_PUBLIC
    assert config.notification_timeout_ms == 4000
    assert validate_config(config) is config


def test_priority_is_override_then_env_then_stored():
    stored = {"backend": "supabase", "namespace": "stored-ns", "timezone": "UTC", "supabaseUrl": "https://stored"}
    env = {"FRONTDESK_NAMESPACE": "env-ns", "SUPABASE_URL": "https://env.supabase.co/"}

    config = build_config(stored=stored, env=env, overrides={"namespace": "cli-ns", "backend": None})

    assert config.namespace == "cli-ns"
    assert config.backend == BACKEND_SUPABASE
    assert config.supabase.url == "https://env.supabase.co"
    assert config.timezone == "UTC"


def test_scope_for_entity_kind():
    config = build_config(stored={"residentScope": "Private"}, env={})
    assert config.scope_for("resident") == SCOPE_PRIVATE
    assert config.scope_for("visit") == SCOPE_PUBLIC


def test_data_folder_override(tmp_path):
    config = build_config(stored={}, env={}, overrides={"data_folder": str(tmp_path / "records")})
    assert config.data_folder == (tmp_path / "records").resolve()


def test_validate_lists_every_problem():
    config = build_config(
        stored={"visitScope": "shared", "timezone": "Mars/Olympus_Mons"},
        env={"FRONTDESK_BACKEND": "supabase"},
    )

    with pytest.raises(ConfigurationError) as excinfo:
        validate_config(config)

    problems = " | ".join(excinfo.value.problems)
    assert "Supabase URL is missing" in problems
    assert "Supabase API key is missing" in problems
    assert "visit scope" in problems
    assert "Mars/Olympus_Mons" in problems


def test_validate_rejects_unknown_backend():
    with pytest.raises(ConfigurationError):
        validate_config(build_config(stored={}, env={}, overrides={"backend": "firebase"}))


def test_invalid_numbers_fall_back_to_defaults():
    config = build_config(stored={"notificationTimeoutMs": "soon", "supabaseTimeoutSeconds": "x"}, env={})
    assert config.notification_timeout_ms == 4000
    assert config.supabase.timeout_seconds == 8.0


def test_local_device_id_is_persisted(isolated_settings):
    first = load_local_device_id()
    second = load_local_device_id()

    assert first.startswith("local-")
    assert first == second
    assert settings_path() == isolated_settings
    assert load_settings()["localDeviceId"] == first


def test_dark_mode_defaults_when_unset_or_invalid(isolated_settings):
    assert load_dark_mode(default=False) is False
    isolated_settings.parent.mkdir(parents=True, exist_ok=True)
    isolated_settings.write_text('{"darkMode": "yes"}', encoding="utf-8")
    assert load_dark_mode(default=True) is True
    isolated_settings.write_text('{"darkMode": true}', encoding="utf-8")
    assert load_dark_mode() is True


def test_api_key_is_redacted_in_mapping():
    config = build_config(stored={}, env={"SUPABASE_ANON_KEY": "anon-key"})
    assert config.supabase.to_mapping(redact_api_key=True)["api_key"] == "********"
    assert isinstance(config.data_folder, Path)


@pytest.mark.skipif(os.name == "nt", reason="POSIX data directory layout")
def test_default_data_folder_follows_xdg_data_home(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "share"))
    assert default_data_folder() == tmp_path / "share" / "frontdesk"
    assert build_config(stored={}, env={}).data_folder == (tmp_path / "share" / "frontdesk").resolve()


@pytest.mark.skipif(os.name == "nt", reason="POSIX data directory layout")
def test_default_data_folder_falls_back_to_home(tmp_path, monkeypatch):
    monkeypatch.delenv("XDG_DATA_HOME", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    assert default_data_folder() == tmp_path / ".local" / "share" / "frontdesk"


def test_relative_data_folder_resolves_against_working_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert normalize_data_folder("records") == (tmp_path / "records").resolve()
