"""Runtime settings for the pipeline, read from the process environment.

Entry points load a local ``.env`` with ``python-dotenv`` (never overriding
variables that are already set) before calling :func:`load_settings`. Nothing
here reads the environment at import time.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import ConfigurationError
from .logging_setup import LOG_LEVEL_ENV, parse_level

DEFAULT_MODEL = "gpt-5"
DEFAULT_BATCH_SIZE = 50
DEFAULT_MAX_ITERATIONS = 20
DEFAULT_CLAIM_TTL_MINUTES = 15
DEFAULT_MAX_RETRIES = 0


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str
    openai_api_key: str | None
    model: str = DEFAULT_MODEL
    batch_size: int = DEFAULT_BATCH_SIZE
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    claim_ttl_minutes: int = DEFAULT_CLAIM_TTL_MINUTES
    max_retries: int = DEFAULT_MAX_RETRIES

    def require_openai_key(self) -> str:
        if not self.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is not set in the environment")
        return self.openai_api_key


def _int_setting(env: Mapping[str, str], name: str, default: int, *, minimum: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_settings(
    env: Mapping[str, str] | None = None,
    *,
    database_url: str | None = None,
    require_classifier: bool = True,
) -> Settings:
    """Build :class:`Settings` from ``env`` (defaults to ``os.environ``).

    ``database_url`` overrides ``DATABASE_URL``. When ``require_classifier`` is
    True, a missing ``OPENAI_API_KEY`` raises :class:`ConfigurationError`
    (commands that never call the classifier, such as ingest, pass False).
    """

    env = os.environ if env is None else env

    url = database_url or env.get("DATABASE_URL")
    if not url:
        raise ConfigurationError("DATABASE_URL is not set; cannot reach the ledger stores")

    api_key = env.get("OPENAI_API_KEY") or None
    settings = Settings(
        database_url=url,
        openai_api_key=api_key,
        model=(env.get("LEDGER_PIPELINE_MODEL") or DEFAULT_MODEL).strip(),
        batch_size=_int_setting(env, "LEDGER_PIPELINE_BATCH_SIZE", DEFAULT_BATCH_SIZE, minimum=1),
        max_iterations=_int_setting(
            env, "LEDGER_PIPELINE_MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS, minimum=1
        ),
        claim_ttl_minutes=_int_setting(
            env, "LEDGER_PIPELINE_CLAIM_TTL_MINUTES", DEFAULT_CLAIM_TTL_MINUTES, minimum=1
        ),
        max_retries=_int_setting(
            env, "LEDGER_PIPELINE_MAX_RETRIES", DEFAULT_MAX_RETRIES, minimum=0
        ),
    )
    if require_classifier:
        settings.require_openai_key()
    return settings


def load_log_level(env: Mapping[str, str] | None = None) -> int:
    """Return the level named by ``LEDGER_PIPELINE_LOG_LEVEL`` (INFO when unset)."""

    env = os.environ if env is None else env
    raw = env.get(LOG_LEVEL_ENV)
    if raw is None or not raw.strip():
        return logging.INFO
    try:
        return parse_level(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{LOG_LEVEL_ENV} must be a logging level name, got {raw!r}"
        ) from e


__all__ = ["Settings", "load_log_level", "load_settings"]
