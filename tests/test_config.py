"""
tests/test_config.py — Settings loading: defaults, JSON file, environment.
"""

import json
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from oncall.config import DEFAULT_STORE_PATH, Settings, load_settings
from oncall.models import ConfigError


class TestLoadSettings:

    def test_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "missing.json", environ={})
        assert settings.store_path == str(DEFAULT_STORE_PATH)
        assert settings.max_upload_bytes == 5 * 1024 * 1024
        assert settings.delete_page_size == 400
        assert settings.resolve_on_import is True
        assert settings.static_tokens == {}

    def test_file_then_env(self, tmp_path):
        path = tmp_path / "oncall.json"
        path.write_text(json.dumps({
            "store_path": "/srv/store.json",
            "delete_page_size": 50,
            "static_tokens": {"tok": "u-admin"},
            "something_else": 1,
        }), encoding="utf-8")
        env = {"ONCALL_DELETE_PAGE_SIZE": "25", "ONCALL_RESOLVE_ON_IMPORT": "no"}

        settings = load_settings(path, environ=env)
        assert settings.store_path == "/srv/store.json"
        assert settings.delete_page_size == 25
        assert settings.resolve_on_import is False
        assert settings.static_tokens == {"tok": "u-admin"}

    def test_config_path_from_env(self, tmp_path):
        path = tmp_path / "alt.json"
        path.write_text(json.dumps({"log_level": "debug"}), encoding="utf-8")
        settings = load_settings(environ={"ONCALL_CONFIG": str(path)})
        assert settings.log_level == "debug"

    @pytest.mark.parametrize("raw, expected", [
        ("a=u1;b=u2", {"a": "u1", "b": "u2"}),
        (" a = u1 ; ", {"a": "u1"}),
        ('{"a": "u1"}', {"a": "u1"}),
        ("", {}),
    ])
    def test_static_tokens_from_env(self, tmp_path, raw, expected):
        settings = load_settings(tmp_path / "missing.json", environ={"ONCALL_STATIC_TOKENS": raw})
        assert settings.static_tokens == expected

    @pytest.mark.parametrize("env", [
        {"ONCALL_MAX_UPLOAD_BYTES": "lots"},
        {"ONCALL_MAX_UPLOAD_BYTES": "0"},
        {"ONCALL_DELETE_PAGE_SIZE": "-1"},
        {"ONCALL_LOG_LEVEL": "chatty"},
        {"ONCALL_STATIC_TOKENS": "no-equals-sign"},
    ])
    def test_invalid(self, tmp_path, env):
        with pytest.raises(ConfigError):
            load_settings(tmp_path / "missing.json", environ=env)

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "oncall.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_settings(path, environ={})

    def test_validate_returns_self(self):
        settings = Settings(store_path="x")
        assert settings.validate() is settings
