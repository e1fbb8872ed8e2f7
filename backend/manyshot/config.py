# -*- coding: utf-8 -*-
"""Environment driven settings for the prediction service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_MODEL = "Qwen/Qwen1.5-0.5B-Chat"
DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:5173"

# provider -> environment variables checked in order
API_KEY_ENV_VARS: Dict[str, Tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY", "CLAUDE_API_KEY"),
    "gemini": ("GEMINI_API_KEY",),
}

_TRUTHY = {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid float for %s=%r, using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"
    local_model_name: str = DEFAULT_LOCAL_MODEL
    run_delay_seconds: float = 0.5
    max_runs: int = 500
    run_ttl_seconds: int = 6 * 3600
    enforce_answer_options: bool = True
    cors_origins: Tuple[str, ...] = tuple(DEFAULT_CORS_ORIGINS.split(","))
    model_catalog_path: Optional[Path] = None

    def api_key_for(self, provider: str) -> Tuple[Optional[str], str]:
        """Return ``(api_key, env_var_name)`` for a remote provider.

        The key is read at call time so that credentials added after start-up
        (or patched in tests) are honoured.
        """

        names = API_KEY_ENV_VARS.get(provider)
        if not names:
            raise KeyError(f"No credentials are defined for provider: {provider}")
        for name in names:
            value = os.getenv(name, "").strip()
            if value:
                return value, name
        return None, names[0]


def get_settings() -> Settings:
    catalog_path = os.getenv("MODEL_CATALOG_PATH", "").strip()
    origins = os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
    return Settings(
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        local_model_name=os.getenv("LOCAL_MODEL_NAME", DEFAULT_LOCAL_MODEL).strip() or DEFAULT_LOCAL_MODEL,
        run_delay_seconds=max(_env_float("RUN_DELAY_SECONDS", 0.5), 0.0),
        max_runs=max(_env_int("MAX_RUNS", 500), 1),
        run_ttl_seconds=max(_env_int("RUN_TTL_SECONDS", 6 * 3600), 60),
        enforce_answer_options=os.getenv("ENFORCE_ANSWER_OPTIONS", "true").strip().lower() in _TRUTHY,
        cors_origins=tuple(origin.strip() for origin in origins.split(",") if origin.strip()),
        model_catalog_path=Path(catalog_path) if catalog_path else None,
    )


def load_catalog_file(path: Path) -> List[Dict[str, Any]]:
    """Read a YAML model catalog and return its raw ``models`` entries."""

    if not path.exists():
        raise FileNotFoundError(f"Model catalog not found at: {path}")

    with path.open("r", encoding="utf-8") as handle:
        content = yaml.safe_load(handle) or {}

    if not isinstance(content, dict):
        raise ValueError("Model catalog must be a mapping with a 'models' list.")

    models = content.get("models")
    if not isinstance(models, list) or not models:
        raise ValueError("Model catalog must define a non-empty 'models' list.")

    return [dict(entry) for entry in models if isinstance(entry, dict)]


__all__ = ["API_KEY_ENV_VARS", "Settings", "get_settings", "load_catalog_file"]
