"""
Example: run local documents through the full processing pipeline
(extraction + summary + concept map) without the HTTP layer.

Usage:
    COHERE_API_KEY=... python3 processing_demo.py notes.pdf slides.pptx --out results.json
"""

import argparse
import asyncio
import json
import logging
import mimetypes
from pathlib import Path

from concept_weaver.processing import (
    EnrichmentClient,
    InMemoryJobRepository,
    JobDispatcher,
    LocalFileStorage,
    StoragePaths,
    TextExtractor,
    ValidationError,
    load_config,
    submit_upload,
)


async def run(paths, storage_root: Path):
    config = load_config()
    storage = LocalFileStorage(StoragePaths(storage_root))
    repo = InMemoryJobRepository()
    dispatcher = JobDispatcher(
        repository=repo,
        extractor=TextExtractor(storage, min_text_length=config.min_text_length),
        enricher=EnrichmentClient(
            model=config.enrichment_model,
            api_key_env=config.enrichment_api_key_env,
            max_tokens=config.enrichment_max_tokens,
            timeout=config.enrichment_timeout,
        ),
        extraction_timeout=config.extraction_timeout,
        enrichment_timeout=config.enrichment_timeout,
        continuation_delay=config.dispatch_delay,
    )

    job_ids = []
    for path in paths:
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        try:
            job = submit_upload(dispatcher, storage, config, path.read_bytes(), path.name, content_type)
        except ValidationError as exc:
            print(f"Skipped {path}: {exc}")
            continue
        print(f"Queued {path} as job {job.id}")
        job_ids.append(job.id)

    await dispatcher.wait_idle()
    return [repo.get(job_id).to_snapshot() for job_id in job_ids]


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("files", nargs="+", type=Path, help="Documents to process")
    parser.add_argument("--storage-root", default=Path("./uploads"), type=Path, help="Where uploaded copies are kept")
    parser.add_argument("--out", default=None, type=Path, help="Write job snapshots to this JSON file")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    for path in args.files:
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

    snapshots = asyncio.run(run(args.files, args.storage_root))
    for snapshot in snapshots:
        print(f"Job {snapshot['id']} finished with status={snapshot['status']}, message={snapshot.get('message')}")
    if args.out:
        args.out.write_text(json.dumps(snapshots, ensure_ascii=False, indent=2), encoding="utf-8")
        print(f"Results written to {args.out}")


if __name__ == "__main__":
    main()
