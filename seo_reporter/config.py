"""Settings loading: YAML file for tunables, environment (``.env``) for secrets."""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/settings.yaml"
DEFAULT_ENV_PATH = ".env"

DEFAULTS: dict[str, Any] = {
    "app": {
        "name": "SEO Reporter",
        "data_dir": "data",
        "url": "",
    },
    "database": {
        "url": "sqlite:///data/seo_reporter.db",
        "echo": False,
    },
    "google": {
        "credentials_path": "config/gsc_credentials.json",
    },
    "llm": {
        "openai_model": "gpt-4o-mini",
        "gemini_model": "gemini-2.0-flash",
        "timeout": 60,
        "temperature": 0.5,
        "max_tokens": 2000,
        "task_max_tokens": 1500,
        "quick_max_tokens": 150,
        "budget": {
            "max_monthly_usd": 25.0,
            "warning_threshold_pct": 80.0,
        },
    },
    "reporting": {
        "top_n": 10,
        "include_monthly_comparison": True,
        "generate_tasks": True,
        "backfill_days": 30,
    },
    "email": {
        "smtp_host": "smtp.gmail.com",
        "smtp_port": 587,
        "sender_name": "SEO Reporter",
        "timeout": 30,
    },
    "scheduler": {
        "job_store": "sqlite:///data/scheduler_jobs.db",
        "timezone": "UTC",
        "max_concurrent_jobs": 2,
        "data_collection_cron": "0 3 * * *",
        "weekly_report_cron": "0 8 * * 1",
    },
    "rate_limits": {
        "google": {"requests_per_minute": 600},
        "openai": {"requests_per_minute": 60},
        "gemini": {"requests_per_minute": 15},
    },
}

# Environment variables that override a config key when set.
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "DATABASE_URL": ("database", "url"),
    "GSC_CREDENTIALS_PATH": ("google", "credentials_path"),
    "SMTP_HOST": ("email", "smtp_host"),
    "SMTP_PORT": ("email", "smtp_port"),
    "SMTP_USER": ("email", "smtp_user"),
    "SMTP_PASSWORD": ("email", "smtp_password"),
    "EMAIL_FROM": ("email", "sender"),
    "APP_URL": ("app", "url"),
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_yaml(config_path: str) -> dict[str, Any]:
    """Read the YAML file, or return ``{}`` with a warning when it is missing."""
    config_file = Path(config_path)
    if not config_file.exists():
        logger.warning("Config file not found: %s, using defaults.", config_path)
        return {}
    with open(config_file, "r", encoding="utf-8") as fh:
        config = yaml.safe_load(fh) or {}
    if not isinstance(config, dict):
        logger.warning("Config file %s is not a mapping, ignoring it.", config_path)
        return {}
    logger.info("Configuration loaded from %s", config_path)
    return config


def load_config(
    config_path: Optional[str] = None,
    env_path: Optional[str] = None,
) -> dict[str, Any]:
    """Merge defaults, the YAML file, and environment overrides.

    Args:
        config_path: YAML settings file (``SEO_REPORTER_CONFIG`` or
            ``config/settings.yaml`` when omitted).
        env_path: ``.env`` file to load into the process environment.

    Returns:
        Nested settings dict with every section of ``DEFAULTS`` present.
    """
    env_file = Path(env_path or DEFAULT_ENV_PATH)
    if env_file.exists():
        load_dotenv(env_file)
        logger.info("Loaded environment from %s", env_file)

    config_path = config_path or os.getenv("SEO_REPORTER_CONFIG", DEFAULT_CONFIG_PATH)
    config = _deep_merge(DEFAULTS, load_yaml(config_path))

    for env_key, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_key)
        if value:
            config[section][key] = value
    config["email"]["smtp_port"] = int(config["email"]["smtp_port"])
    return config
