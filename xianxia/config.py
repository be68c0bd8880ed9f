"""Application settings.

Resolution order, later wins:
  1. Built-in defaults (Settings field defaults).
  2. {data_dir}/config.json, merged key by key; unknown keys are ignored.
  3. Environment variables (a .env file at the repo root is loaded first).
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from xianxia.i18n import DEFAULT_LANG
from xianxia.llm import DEFAULT_GEMINI_MODEL, ProviderFormat
from xianxia.persistence import SAVE_DEBOUNCE_SECONDS, SAVE_SLOT_KEY

logger = logging.getLogger(__name__)

ROOT = Path(__file__).parent.parent
DEFAULT_DATA_DIR = ROOT / "data"
DEFAULT_PROVIDER_URL = "https://generativelanguage.googleapis.com"

# env var → Settings field
_ENV_FIELDS: dict[str, str] = {
    "LLM_PROVIDER_URL": "provider_url",
    "LLM_API_KEY": "api_key",
    "LLM_FORMAT": "provider_format",
    "LLM_MODEL": "model",
    "LLM_TEMPERATURE": "temperature",
    "LLM_TIMEOUT": "timeout",
    "SAVE_SLOT": "save_slot",
    "SAVE_DEBOUNCE_SECONDS": "save_debounce_seconds",
    "DEFAULT_LANGUAGE": "default_language",
}


class Settings(BaseModel):
    data_dir: Path = DEFAULT_DATA_DIR
    provider_url: str = DEFAULT_PROVIDER_URL
    api_key: str = ""
    provider_format: ProviderFormat = "gemini"
    model: str = DEFAULT_GEMINI_MODEL
    temperature: float = Field(default=0.9, ge=0.0, le=2.0)
    timeout: float = Field(default=120.0, gt=0)
    save_slot: str = SAVE_SLOT_KEY
    save_debounce_seconds: float = Field(default=SAVE_DEBOUNCE_SECONDS, ge=0)
    default_language: str = DEFAULT_LANG


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def _read_stored(data_dir: Path) -> dict[str, Any]:
    path = _config_path(data_dir)
    if not path.is_file():
        return {}
    stored = json.loads(path.read_text())
    if not isinstance(stored, dict):
        logger.warning("Ignoring %s: expected a JSON object", path)
        return {}
    return {k: v for k, v in stored.items() if k in Settings.model_fields and k != "data_dir"}


def load_settings(data_dir: Path | None = None) -> Settings:
    """Build Settings from defaults, config.json and the environment."""
    load_dotenv(ROOT / ".env")
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))

    fields: dict[str, Any] = {"data_dir": resolved}
    fields.update(_read_stored(resolved))
    for env_name, field in _ENV_FIELDS.items():
        value = os.getenv(env_name)
        if value:
            fields[field] = value
    return Settings.model_validate(fields)


def update_config(data_dir: Path, fields: dict[str, Any]) -> Settings:
    """Merge fields into config.json and persist. Returns the merged settings."""
    data_dir.mkdir(parents=True, exist_ok=True)
    stored = _read_stored(data_dir)
    for key, value in fields.items():
        if key in Settings.model_fields and key != "data_dir":
            stored[key] = value
    # Raises ValidationError before anything is written
    Settings.model_validate({**stored, "data_dir": data_dir})
    _config_path(data_dir).write_text(json.dumps(stored, indent=2))
    return load_settings(data_dir)
