"""Configuration loading for safevk.

Non-secret settings (polling behavior, logging, offset storage) live in an
optional JSON file; secrets come from the environment (see ``client.py``).
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from safevk.adapters.vk_client import WAIT_TIME
from safevk.core.config import PollingConfig

# Config path used when none is passed explicitly.
CONFIG_ENV = "SAFEVK_CONFIG"


@dataclass(frozen=True)
class Settings:
    """Everything the entry point needs besides credentials."""

    polling: PollingConfig = field(default_factory=PollingConfig)
    wait: int = WAIT_TIME
    logging: Dict[str, Any] = field(default_factory=dict)
    offsets_db: Optional[str] = None
    config_path: Optional[str] = None


def _load_json_config(path: str) -> dict:
    """Load the JSON config with a flat, user-friendly schema."""

    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a JSON object: {path}")
    return data


def _polling_config(raw: dict) -> PollingConfig:
    defaults = PollingConfig()
    timeout = raw.get("request_timeout", defaults.request_timeout)
    return PollingConfig(
        request_timeout=float(timeout) if timeout is not None else None,
        concurrency=int(raw.get("concurrency", defaults.concurrency)),
        retry_on_startup=bool(raw.get("retry_on_startup", defaults.retry_on_startup)),
        backoff_base=float(raw.get("backoff_base", defaults.backoff_base)),
        backoff_factor=float(raw.get("backoff_factor", defaults.backoff_factor)),
        backoff_max=float(raw.get("backoff_max", defaults.backoff_max)),
        max_retries=int(raw.get("max_retries", defaults.max_retries)),
        offset_key=str(raw.get("offset_key", defaults.offset_key)),
    )


def load_settings(path: Optional[str] = None) -> Settings:
    """Build ``Settings`` from ``path``, ``$SAFEVK_CONFIG`` or defaults.

    Schema::

        {
          "polling": {"concurrency": 4, "max_retries": 8, ...},
          "wait": 25,
          "logging": {"enabled": true, "level": "INFO", ...},
          "storage": {"offsets_db": "safevk.db"}
        }

    A relative ``offsets_db`` is resolved against the config file's directory.
    """

    path = path or os.getenv(CONFIG_ENV)
    if not path:
        return Settings()

    config = _load_json_config(path)
    base_dir = os.path.dirname(os.path.abspath(path))

    offsets_db = config.get("storage", {}).get("offsets_db")
    if offsets_db and not os.path.isabs(offsets_db):
        offsets_db = os.path.join(base_dir, offsets_db)

    return Settings(
        polling=_polling_config(config.get("polling", {})),
        wait=int(config.get("wait", WAIT_TIME)),
        logging=config.get("logging", {}),
        offsets_db=offsets_db,
        config_path=os.path.abspath(path),
    )
