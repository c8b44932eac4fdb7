from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from study_mentor.errors import ConfigurationError

from .schema import Settings

DEFAULT_CONFIG_PATH = Path("config/default.yaml")

OVERRIDES_ENV = "STUDY_MENTOR_CONFIG_OVERRIDES"
FIREBASE_CONFIG_ENV = "STUDY_MENTOR_FIREBASE_CONFIG"
APP_ID_ENV = "STUDY_MENTOR_APP_ID"
INITIAL_AUTH_TOKEN_ENV = "STUDY_MENTOR_INITIAL_AUTH_TOKEN"
GEMINI_API_KEY_ENV = "GEMINI_API_KEY"


def read_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file into a dictionary, returning an empty mapping when the file is blank."""
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries, letting override values replace base entries."""
    result: Dict[str, Any] = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            result[key] = merge_dicts(base[key], value)
        else:
            result[key] = value
    return result


def _parse_json_env(environ: Mapping[str, str], name: str) -> Dict[str, Any]:
    try:
        value = json.loads(environ[name])
    except json.JSONDecodeError as err:
        raise ConfigurationError(f"Failed to parse {name} env var as JSON.") from err
    if not isinstance(value, dict):
        raise ConfigurationError(f"{name} must be a JSON object.")
    return value


def environment_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Collect the deployment-supplied values that sit on top of the YAML file."""
    data: Dict[str, Any] = {}
    if environ.get(OVERRIDES_ENV):
        data = _parse_json_env(environ, OVERRIDES_ENV)
    if environ.get(FIREBASE_CONFIG_ENV):
        data = merge_dicts(data, {"firebase": _parse_json_env(environ, FIREBASE_CONFIG_ENV)})
    if environ.get(APP_ID_ENV):
        data["app_id"] = environ[APP_ID_ENV]
    if environ.get(INITIAL_AUTH_TOKEN_ENV):
        data["initial_auth_token"] = environ[INITIAL_AUTH_TOKEN_ENV]
    if environ.get(GEMINI_API_KEY_ENV):
        data = merge_dicts(data, {"gateway": {"api_key": environ[GEMINI_API_KEY_ENV]}})
    return data


def load_settings(
    config_path: str | Path | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Read configuration, apply environment overrides, and return validated Settings.

    The YAML file is optional unless a path is passed explicitly. JSON overrides from
    `STUDY_MENTOR_CONFIG_OVERRIDES` are merged first, then the credential bundle, tenant id,
    session token and Gemini key from the deployment environment.
    """
    environ = os.environ if environ is None else environ

    if config_path:
        data = read_yaml(Path(config_path))
    elif DEFAULT_CONFIG_PATH.exists():
        data = read_yaml(DEFAULT_CONFIG_PATH)
    else:
        data = {}

    data = merge_dicts(data, environment_overrides(environ))

    try:
        settings = Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    return settings
