"""
config.py — Configuration for the On-Call Schedule service

Resolution order (later wins):
  1. DEFAULTS below
  2. JSON config file (config/oncall.json, optional)
  3. Environment variables prefixed ONCALL_

Example config/oncall.json:
  {
    "store_path": "data/oncall_store.json",
    "max_upload_bytes": 5242880,
    "static_tokens": {"dev-token": "admin-uid"}
  }
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from datetime import date
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from oncall.models import ConfigError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "oncall.json"
DEFAULT_STORE_PATH = PROJECT_ROOT / "data" / "oncall_store.json"

ENV_PREFIX = "ONCALL_"

# ---------------------------------------------------------------------------
# Fixed import / migration constants
# ---------------------------------------------------------------------------
WORKBOOK_HEADER_ROWS = 2          # title row + column-label row
CSV_HEADER_ROWS = 1
MAX_CSV_COLUMNS = 256            # wider rows are rejected as unreadable
SPREADSHEET_EPOCH = date(1899, 12, 30)
MAX_SHIFT_DELTA_DAYS = 7

# Collections in the document store
DAYS_COLLECTION = "onCallDays"
USERS_COLLECTION = "users"
ALIASES_COLLECTION = "onCallAliases"

DEFAULT_IDENTITY_URL = "https://identitytoolkit.googleapis.com/v1"


@dataclass
class Settings:
    store_path: Optional[str] = None
    max_upload_bytes: int = 5 * 1024 * 1024
    delete_page_size: int = 400
    resolve_on_import: bool = True
    identity_api_key: Optional[str] = None
    identity_url: str = DEFAULT_IDENTITY_URL
    static_tokens: Dict[str, str] = field(default_factory=dict)   # token → uid
    log_level: str = "INFO"

    def validate(self) -> "Settings":
        if self.max_upload_bytes <= 0:
            raise ConfigError(f"max_upload_bytes must be positive, got {self.max_upload_bytes}")
        if self.delete_page_size <= 0:
            raise ConfigError(f"delete_page_size must be positive, got {self.delete_page_size}")
        if logging.getLevelName(self.log_level.upper()) == f"Level {self.log_level.upper()}":
            raise ConfigError(f"Unknown log level: {self.log_level}")
        return self


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("yes", "true", "1", "y", "on")


def _parse_tokens(raw: str) -> Dict[str, str]:
    """Parse "token=uid;token2=uid2" (or a JSON object) into a dict."""
    raw = raw.strip()
    if not raw:
        return {}
    if raw.startswith("{"):
        data = json.loads(raw)
        return {str(k): str(v) for k, v in data.items()}
    out: Dict[str, str] = {}
    for part in raw.split(";"):
        if not part.strip():
            continue
        if "=" not in part:
            raise ConfigError(f"Malformed static token entry: {part!r} (expected token=uid)")
        token, uid = part.split("=", 1)
        out[token.strip()] = uid.strip()
    return out


def _coerce(name: str, value: Any) -> Any:
    if name in ("max_upload_bytes", "delete_page_size"):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{name} must be an integer, got {value!r}")
    if name == "resolve_on_import":
        return _parse_bool(value)
    if name == "static_tokens":
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        return _parse_tokens(str(value))
    return value


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Build Settings from defaults, an optional JSON file and the environment.

    A missing config file is not an error; a malformed one is.
    """
    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    known = {f.name for f in fields(Settings)}

    path = config_path or Path(env.get(f"{ENV_PREFIX}CONFIG", DEFAULT_CONFIG_PATH))
    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Config file {path} is not valid JSON: {e}")
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys in {path}: {sorted(unknown)}")
        values.update({k: v for k, v in data.items() if k in known})
        logger.info(f"Loaded config from {path}")

    for name in known:
        env_key = f"{ENV_PREFIX}{name.upper()}"
        if env_key in env:
            values[name] = env[env_key]

    settings = Settings(**{k: _coerce(k, v) for k, v in values.items()})
    if not settings.store_path:
        settings.store_path = str(DEFAULT_STORE_PATH)
    return settings.validate()
