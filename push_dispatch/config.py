"""Configuration loading.

Config comes from a YAML file (default ``~/.push_dispatch/push_dispatch.yml``,
overridable with ``PUSH_DISPATCH_CONFIG``). ``${VAR}`` references are expanded
from the environment after ``.env`` is loaded. A missing or unreadable file
yields defaults.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = "~/.push_dispatch/push_dispatch.yml"


class DatabaseConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    path: str = "~/.push_dispatch/push.db"


class FcmConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    project_id: str = ""
    access_token_env: str = "FCM_ACCESS_TOKEN"
    timeout_s: float = Field(default=10.0, gt=0)


class DispatchConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    send_timeout_s: float = Field(default=30.0, gt=0)
    store_timeout_s: float = Field(default=10.0, gt=0)
    # A DISPATCHING claim older than this is considered abandoned
    lock_ttl_s: float = Field(default=120.0, gt=0)
    # Attach a rendered title/body next to the data payload
    compose_display: bool = False


class PushDispatchConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    database: DatabaseConfig = DatabaseConfig()
    fcm: FcmConfig = FcmConfig()
    dispatch: DispatchConfig = DispatchConfig()


def expand_env_vars(config: object) -> object:
    """Recursively replace ${VAR} patterns with environment values; unknown vars are left as-is."""
    if isinstance(config, dict):
        return {k: expand_env_vars(v) for k, v in config.items()}
    if isinstance(config, list):
        return [expand_env_vars(item) for item in config]
    if isinstance(config, str):

        def replace_env_var(match: re.Match[str]) -> str:
            return os.getenv(match.group(1), match.group(0))

        return re.sub(r"\$\{([^}]+)\}", replace_env_var, config)
    return config


def _warn_unknown_keys(model: BaseModel, path: str, config_path: Path) -> None:
    if model.model_extra:
        logger.warning("unknown config keys", section=path, config_path=str(config_path), keys=list(model.model_extra))
    for field_name, field_value in model.__dict__.items():
        if isinstance(field_value, BaseModel):
            _warn_unknown_keys(field_value, f"{path}.{field_name}", config_path)


def load_config(path: Optional[Path] = None) -> PushDispatchConfig:
    load_dotenv()
    if path is None:
        path = Path(os.getenv("PUSH_DISPATCH_CONFIG", DEFAULT_CONFIG_PATH)).expanduser()

    if not path.exists():
        return PushDispatchConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("failed to read config file", config_path=str(path), error=str(e))
        return PushDispatchConfig()

    config = PushDispatchConfig.model_validate(expand_env_vars(raw))
    _warn_unknown_keys(config, "root", path)
    return config
