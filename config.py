"""Configuration management for the Herald newsletter pipeline.

This module provides centralized configuration for the CLI and the default
model agents. All settings are loaded from environment variables with
sensible defaults. Collaborators owned by the host process (storage, task
tracking, crawl targets) are not configured here; they are supplied by the
factory passed to `main.py run --factory`.

Environment Variables:
    Content:
        OUTPUT_LANGUAGE: Language the newsletter and tags are written in
        EXPERT_FIELDS: Comma-separated target domains (e.g. 'AI,Cloud')

    Models (PydanticAI format - provider:model):
        TAGGER_MODEL: Model for 3-tag classification
        IMAGE_MODEL: Multimodal model for image context extraction
        SCORER_MODEL: Model for importance scoring
        WRITER_MODEL: Model for newsletter drafting

    Newsletter:
        NEWSLETTER_BRAND_NAME: Brand name used in the writer prompt
        SUBSCRIBE_PAGE_URL: Optional CTA link inserted by the writer
        MIN_ARTICLE_COUNT: Minimum candidates needed to issue (default: 5)
        PRIORITY_SCORE_THRESHOLD: Score that forces an issue (default: 8)
        WRITER_TEMPERATURE: Sampling temperature for the writer (default: 0.3)
        PREVIEW_WEBHOOK_URL: Endpoint that receives preview emails as JSON

    Pipeline Behavior:
        LLM_MAX_RETRIES: Retries per model call (default: 5)
        CHAIN_STOP_AFTER_ATTEMPT: Whole-chain attempts (default: 3)
        MAX_CONCURRENCY: Concurrent crawl targets per group (default: 5)

    Optional Features:
        ENABLE_LOGFIRE: Enable Logfire/OpenTelemetry tracing
        LOGFIRE_TOKEN: Logfire authentication token

    Logging:
        LOG_DIR: Directory for log files
        LOG_LEVEL: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_BACKUP_COUNT: Number of rotated log files to keep
        LOG_MAX_BYTES: Max log file size in bytes (0 = time-based rotation)
        LOG_FORMAT: Log format ('text' or 'json' for structured logging)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env(key: str, default: str = "") -> str:
    """Get string environment variable with optional default."""
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as integer
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer value for {key}: '{val}'")


def _env_float(key: str, default: float) -> float:
    """Get float environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as float
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"Invalid float value for {key}: '{val}'")


def _env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable with default.

    Recognizes truthy values: '1', 'true', 'yes', 'on'
    Recognizes falsy values: '0', 'false', 'no', 'off'
    """
    val = os.environ.get(key, "").lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


def _env_list(key: str, default: list[str]) -> list[str]:
    """Get comma-separated list environment variable with default."""
    val = os.environ.get(key)
    if not val:
        return list(default)
    return [item.strip() for item in val.split(",") if item.strip()]


DEFAULT_MODEL = "google-gla:gemini-3-flash-preview"


@dataclass
class Config:
    """Application configuration loaded from environment variables.

    Example:
        >>> config = Config.load()
        >>> if error := config.validate():
        ...     print(f"Config error: {error}")
    """

    # === Content ===
    output_language: str = "English"  # OUTPUT_LANGUAGE
    expert_fields: list[str] = field(default_factory=lambda: ["Technology"])  # EXPERT_FIELDS

    # === AI Models ===
    tagger_model: str = DEFAULT_MODEL  # TAGGER_MODEL
    image_model: str = DEFAULT_MODEL  # IMAGE_MODEL - must be multimodal
    scorer_model: str = DEFAULT_MODEL  # SCORER_MODEL
    writer_model: str = "google-gla:gemini-3-pro-preview"  # WRITER_MODEL

    # === Newsletter ===
    newsletter_brand_name: str = "Herald"  # NEWSLETTER_BRAND_NAME
    subscribe_page_url: str = ""  # SUBSCRIBE_PAGE_URL
    min_article_count: int = 5  # MIN_ARTICLE_COUNT
    priority_score_threshold: int = 8  # PRIORITY_SCORE_THRESHOLD
    writer_temperature: float = 0.3  # WRITER_TEMPERATURE
    preview_webhook_url: str = ""  # PREVIEW_WEBHOOK_URL

    # === Retry Behavior ===
    llm_max_retries: int = 5  # LLM_MAX_RETRIES
    chain_stop_after_attempt: int = 3  # CHAIN_STOP_AFTER_ATTEMPT

    # === Pipeline Behavior ===
    max_concurrency: int = 5  # MAX_CONCURRENCY

    # === Logging Configuration ===
    log_dir: Path = field(default_factory=lambda: Path("log"))  # LOG_DIR
    log_level: str = "INFO"  # LOG_LEVEL
    log_backup_count: int = 30  # LOG_BACKUP_COUNT
    log_max_bytes: int = 0  # LOG_MAX_BYTES - 0 = time-based rotation
    log_format: str = "text"  # LOG_FORMAT - 'text' or 'json'

    # === Optional: Observability ===
    enable_logfire: bool = False  # ENABLE_LOGFIRE
    logfire_token: str = ""  # LOGFIRE_TOKEN

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            output_language=_env("OUTPUT_LANGUAGE", "English"),
            expert_fields=_env_list("EXPERT_FIELDS", ["Technology"]),
            tagger_model=_env("TAGGER_MODEL", DEFAULT_MODEL),
            image_model=_env("IMAGE_MODEL", DEFAULT_MODEL),
            scorer_model=_env("SCORER_MODEL", DEFAULT_MODEL),
            writer_model=_env("WRITER_MODEL", "google-gla:gemini-3-pro-preview"),
            newsletter_brand_name=_env("NEWSLETTER_BRAND_NAME", "Herald"),
            subscribe_page_url=_env("SUBSCRIBE_PAGE_URL"),
            min_article_count=_env_int("MIN_ARTICLE_COUNT", 5),
            priority_score_threshold=_env_int("PRIORITY_SCORE_THRESHOLD", 8),
            writer_temperature=_env_float("WRITER_TEMPERATURE", 0.3),
            preview_webhook_url=_env("PREVIEW_WEBHOOK_URL"),
            llm_max_retries=_env_int("LLM_MAX_RETRIES", 5),
            chain_stop_after_attempt=_env_int("CHAIN_STOP_AFTER_ATTEMPT", 3),
            max_concurrency=_env_int("MAX_CONCURRENCY", 5),
            log_dir=Path(_env("LOG_DIR", "log")),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_backup_count=_env_int("LOG_BACKUP_COUNT", 30),
            log_max_bytes=_env_int("LOG_MAX_BYTES", 0),
            log_format=_env("LOG_FORMAT", "text").lower(),
            enable_logfire=_env_bool("ENABLE_LOGFIRE", False),
            logfire_token=_env("LOGFIRE_TOKEN"),
        )

    def validate(self) -> str | None:
        """Validate configuration values.

        Returns:
            Error message string if invalid, None if valid.
        """
        if not self.output_language:
            return "OUTPUT_LANGUAGE must not be empty"
        if not self.expert_fields:
            return "EXPERT_FIELDS must list at least one field"
        if self.llm_max_retries < 0:
            return "LLM_MAX_RETRIES must be non-negative"
        if self.chain_stop_after_attempt <= 0:
            return "CHAIN_STOP_AFTER_ATTEMPT must be positive"
        if self.max_concurrency <= 0:
            return "MAX_CONCURRENCY must be positive"
        if self.min_article_count < 0:
            return "MIN_ARTICLE_COUNT must be non-negative"
        if not 1 <= self.priority_score_threshold <= 10:
            return "PRIORITY_SCORE_THRESHOLD must be between 1 and 10"
        if not 0.0 <= self.writer_temperature <= 1.0:
            return "WRITER_TEMPERATURE must be between 0.0 and 1.0"
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return f"Invalid LOG_LEVEL '{self.log_level}' - must be DEBUG, INFO, WARNING, ERROR, or CRITICAL"
        if self.log_format not in ("text", "json"):
            return f"Invalid LOG_FORMAT '{self.log_format}' - must be 'text' or 'json'"
        if self.log_backup_count < 0:
            return "LOG_BACKUP_COUNT must be non-negative"
        if self.log_max_bytes < 0:
            return "LOG_MAX_BYTES must be non-negative"
        return None
