from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from fastapi import Depends, Header, HTTPException

from concept_weaver.processing import (
    EnrichmentClient,
    InMemoryJobRepository,
    JobDispatcher,
    JobRepository,
    LocalFileStorage,
    PipelineConfig,
    StoragePaths,
    TextExtractor,
    load_config,
)


@lru_cache(maxsize=1)
def get_config() -> PipelineConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_storage() -> LocalFileStorage:
    config = get_config()
    storage = LocalFileStorage(StoragePaths(Path(config.upload_dir).resolve()))
    storage.ensure_base_dirs()
    return storage


@lru_cache(maxsize=1)
def get_repo() -> JobRepository:
    return InMemoryJobRepository()


@lru_cache(maxsize=1)
def get_enricher() -> EnrichmentClient:
    config = get_config()
    return EnrichmentClient(
        model=config.enrichment_model,
        api_key_env=config.enrichment_api_key_env,
        max_tokens=config.enrichment_max_tokens,
        timeout=config.enrichment_timeout,
        summary_input_chars=config.summary_input_chars,
        concept_input_chars=config.concept_input_chars,
    )


@lru_cache(maxsize=1)
def get_dispatcher() -> JobDispatcher:
    config = get_config()
    extractor = TextExtractor(get_storage(), min_text_length=config.min_text_length)
    return JobDispatcher(
        repository=get_repo(),
        extractor=extractor,
        enricher=get_enricher(),
        extraction_timeout=config.extraction_timeout,
        enrichment_timeout=config.enrichment_timeout,
        continuation_delay=config.dispatch_delay,
    )


def require_api_token(
    authorization: Optional[str] = Header(None),
    config: PipelineConfig = Depends(get_config),
) -> None:
    """
    Placeholder auth. Does nothing unless API_TOKEN is configured, in which case
    a matching bearer token is required.
    """
    if not config.api_token:
        return None
    if authorization != f"Bearer {config.api_token}":
        raise HTTPException(status_code=401, detail="Unauthorized")
    return None
