"""Configuration loading: ``config.yaml`` plus environment overrides."""

from __future__ import annotations

import os

import yaml

CONFIG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "config.yaml")

# (environment variable, section, key)
_ENV_OVERRIDES = (
    ("DATABASE_URL", "database", "url"),
    ("REDIS_URL", "cache", "redis_url"),
    ("STORAGE_DIR", "stockage", "dossier"),
    ("AI_GATEWAY_URL", "ia", "gateway_url"),
    ("AI_GATEWAY_API_KEY", "ia", "api_key"),
)


def load_config(path: str | None = None) -> dict:
    with open(path or CONFIG_PATH, encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}
    for env_var, section, key in _ENV_OVERRIDES:
        value = os.environ.get(env_var)
        if value:
            config.setdefault(section, {})[key] = value
    return config
