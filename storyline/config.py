"""Runtime configuration and logging setup.

Settings come from the environment (optionally a `.env` file). Every knob has a
default so a worker can start with only PG_DSN and OPENAI_API_KEY set.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv


DEFAULT_PG_DSN = "dbname=storyline user=storyline password=storylinepass host=localhost port=5432"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    pg_dsn: str = DEFAULT_PG_DSN
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"

    # AI clients: standard (robust) and quick (fresh, less patient)
    ai_timeout: float = 30.0
    ai_max_retries: int = 2
    ai_quick_timeout: float = 15.0
    ai_quick_max_retries: int = 1
    ai_cache_ttl_hours: float = 24.0
    translation_language: str = "Turkish"

    # Circuit breaker
    circuit_failure_threshold: int = 5
    circuit_reset_timeout: float = 60.0
    circuit_half_open_max_calls: int = 3

    # Ingestion
    feed_timeout: float = 20.0
    ingest_interval_minutes: int = 30
    source_delay_seconds: float = 2.0
    max_items_per_source: int = 10
    dedup_window_hours: int = 24
    dedup_window_limit: int = 100
    similarity_threshold: float = 0.85

    # Logging
    log_level: str = "INFO"
    log_file: str = ""
    log_debug_ai: bool = False

    @classmethod
    def from_env(cls, *, dotenv: bool = True) -> "Settings":
        """Load settings from environment variables (and `.env` when present)."""
        if dotenv:
            load_dotenv()
        return cls(
            pg_dsn=os.getenv("PG_DSN", DEFAULT_PG_DSN),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            embedding_model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
            ai_timeout=float(os.getenv("AI_TIMEOUT", "30")),
            ai_max_retries=int(os.getenv("AI_MAX_RETRIES", "2")),
            ai_quick_timeout=float(os.getenv("AI_QUICK_TIMEOUT", "15")),
            ai_quick_max_retries=int(os.getenv("AI_QUICK_MAX_RETRIES", "1")),
            ai_cache_ttl_hours=float(os.getenv("AI_CACHE_TTL_HOURS", "24")),
            translation_language=os.getenv("TRANSLATION_LANGUAGE", "Turkish"),
            circuit_failure_threshold=int(os.getenv("CIRCUIT_FAILURE_THRESHOLD", "5")),
            circuit_reset_timeout=float(os.getenv("CIRCUIT_RESET_TIMEOUT", "60")),
            circuit_half_open_max_calls=int(os.getenv("CIRCUIT_HALF_OPEN_MAX_CALLS", "3")),
            feed_timeout=float(os.getenv("FEED_TIMEOUT", "20")),
            ingest_interval_minutes=int(os.getenv("INGEST_INTERVAL_MINUTES", "30")),
            source_delay_seconds=float(os.getenv("SOURCE_DELAY_SECONDS", "2.0")),
            max_items_per_source=int(os.getenv("MAX_ITEMS_PER_SOURCE", "10")),
            dedup_window_hours=int(os.getenv("DEDUP_WINDOW_HOURS", "24")),
            dedup_window_limit=int(os.getenv("DEDUP_WINDOW_LIMIT", "100")),
            similarity_threshold=float(os.getenv("SIMILARITY_THRESHOLD", "0.85")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE", ""),
            log_debug_ai=_env_bool("LOG_DEBUG_AI"),
        )

    def validate(self, *, require_ai: bool = True) -> None:
        """Raise ValueError listing every invalid setting."""
        errors: List[str] = []

        if not self.pg_dsn.strip():
            errors.append("PG_DSN is required")

        if require_ai:
            if not self.openai_api_key:
                errors.append("OPENAI_API_KEY is required")
            elif not self.openai_api_key.startswith(("sk-", "sk-proj-")):
                errors.append("OPENAI_API_KEY appears to be invalid (wrong format)")

        if not 0.0 < self.similarity_threshold <= 1.0:
            errors.append("SIMILARITY_THRESHOLD should be in (0, 1]")
        if self.circuit_failure_threshold < 1:
            errors.append("CIRCUIT_FAILURE_THRESHOLD should be at least 1")
        if self.circuit_half_open_max_calls < 1:
            errors.append("CIRCUIT_HALF_OPEN_MAX_CALLS should be at least 1")
        if self.circuit_reset_timeout <= 0:
            errors.append("CIRCUIT_RESET_TIMEOUT should be positive")
        for name, value in (
            ("AI_TIMEOUT", self.ai_timeout),
            ("AI_QUICK_TIMEOUT", self.ai_quick_timeout),
            ("FEED_TIMEOUT", self.feed_timeout),
        ):
            if value < 1 or value > 300:
                errors.append(f"{name} should be between 1 and 300 seconds")
        if self.ingest_interval_minutes < 1:
            errors.append("INGEST_INTERVAL_MINUTES should be at least 1")
        if self.source_delay_seconds < 0:
            errors.append("SOURCE_DELAY_SECONDS cannot be negative")
        if self.max_items_per_source < 1:
            errors.append("MAX_ITEMS_PER_SOURCE should be at least 1")
        if self.dedup_window_hours < 1 or self.dedup_window_limit < 1:
            errors.append("DEDUP_WINDOW_HOURS and DEDUP_WINDOW_LIMIT should be at least 1")
        if logging.getLevelName(self.log_level.upper()) not in (
            logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL
        ):
            errors.append(f"LOG_LEVEL '{self.log_level}' is not a logging level")

        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
            raise ValueError(error_msg)


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging once for a worker process."""
    settings = settings or Settings()
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file))
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # The SDK logs every HTTP request at INFO.
    if not settings.log_debug_ai:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("openai").setLevel(logging.WARNING)
