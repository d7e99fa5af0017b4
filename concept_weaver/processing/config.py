from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from .errors import ConfigurationError

ALLOWED_MIME_TYPES: Tuple[str, ...] = (
    "application/pdf",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "image/jpeg",
    "image/png",
    "image/webp",
)


@dataclass
class PipelineConfig:
    storage_backend: str = "local"
    upload_dir: str = "uploads"
    max_file_size: int = 50 * 1024 * 1024
    min_text_length: int = 20
    enrichment_model: str = "cohere_chat/command-a-03-2025"
    enrichment_api_key_env: str = "COHERE_API_KEY"
    enrichment_max_tokens: int = 1000
    enrichment_timeout: float = 120.0
    extraction_timeout: float = 300.0
    summary_input_chars: int = 100_000
    concept_input_chars: int = 10_000
    dispatch_delay: float = 0.1
    cors_origin: str = "*"
    api_token: Optional[str] = None
    allowed_mime_types: Tuple[str, ...] = field(default=ALLOWED_MIME_TYPES)


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


def load_config(env: Optional[Mapping[str, str]] = None) -> PipelineConfig:
    """
    Build a PipelineConfig from environment variables. Unset variables keep
    their defaults; malformed numbers raise ConfigurationError.
    """
    env = os.environ if env is None else env
    defaults = PipelineConfig()
    storage_backend = env.get("STORAGE", defaults.storage_backend).strip().lower()
    if storage_backend != "local":
        raise ConfigurationError(
            f"Storage backend {storage_backend!r} is not implemented. Set STORAGE=local."
        )
    return PipelineConfig(
        storage_backend=storage_backend,
        upload_dir=env.get("UPLOAD_DIR", defaults.upload_dir),
        max_file_size=_int(env, "MAX_FILE_SIZE", defaults.max_file_size),
        min_text_length=_int(env, "MIN_TEXT_LENGTH", defaults.min_text_length),
        enrichment_model=env.get("ENRICHMENT_MODEL", defaults.enrichment_model),
        enrichment_api_key_env=env.get("ENRICHMENT_API_KEY_ENV", defaults.enrichment_api_key_env),
        enrichment_max_tokens=_int(env, "ENRICHMENT_MAX_TOKENS", defaults.enrichment_max_tokens),
        enrichment_timeout=_float(env, "ENRICHMENT_TIMEOUT", defaults.enrichment_timeout),
        extraction_timeout=_float(env, "EXTRACTION_TIMEOUT", defaults.extraction_timeout),
        summary_input_chars=_int(env, "SUMMARY_INPUT_CHARS", defaults.summary_input_chars),
        concept_input_chars=_int(env, "CONCEPT_INPUT_CHARS", defaults.concept_input_chars),
        dispatch_delay=_float(env, "DISPATCH_DELAY", defaults.dispatch_delay),
        cors_origin=env.get("CORS_ORIGIN", defaults.cors_origin),
        api_token=env.get("API_TOKEN") or None,
    )
