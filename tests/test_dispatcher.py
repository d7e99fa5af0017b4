import asyncio
import time
from types import SimpleNamespace

from concept_weaver.processing import (
    EnrichmentClient,
    EnrichmentError,
    JobStatus,
    UploadMeta,
)

from concept_weaver.processing import enrichment

from conftest import FakeEnricher


LONG_TEXT = "Cellular respiration releases energy from glucose in the mitochondria."


def _submit(dispatcher, store, name, data):
    store.save(data, name)
    return dispatcher.submit(UploadMeta(original_name=name, stored_ref=name, size=len(data), content_type="text/plain"))


def test_job_is_queued_right_after_submit(store, repo, enricher, make_dispatcher):
    async def scenario():
        dispatcher = make_dispatcher(enricher)
        job = _submit(dispatcher, store, "notes.txt", LONG_TEXT.encode())
        queued = repo.get(job.id)
        await dispatcher.wait_idle()
        return job, queued, repo.get(job.id)

    job, queued, final = asyncio.run(scenario())
    assert job.status == JobStatus.QUEUED
    assert queued.status == JobStatus.QUEUED
    assert final.status == JobStatus.DONE
    assert repo.history[job.id] == ["queued", "processing", "done"]


def test_successful_job_carries_summary_and_concept_map(store, repo, make_dispatcher):
    enricher = FakeEnricher(
        summary="## Respiration\n- glucose to ATP",
        concept_response='{"nodes": [{"id": "r", "label": "Respiration"}, {"id": "m", "label": "Mitochondria"}],'
        ' "edges": [{"source": "r", "target": "m", "label": "happens in"}, {"source": "r", "target": "zzz"}]}',
    )

    async def scenario():
        dispatcher = make_dispatcher(enricher)
        job = _submit(dispatcher, store, "notes.txt", LONG_TEXT.encode())
        await dispatcher.wait_idle()
        return repo.get(job.id)

    job = asyncio.run(scenario())
    snapshot = job.to_snapshot()
    assert snapshot["status"] == "done"
    assert snapshot["result"]["summary"] == "## Respiration\n- glucose to ATP"
    assert snapshot["result"]["conceptMap"]["edges"] == [
        {"id": "edge-0", "source": "r", "target": "m", "label": "happens in"}
    ]
    assert job.started_at <= job.finished_at
    assert enricher.calls == [f"summarize:{LONG_TEXT[:20]}", f"map_concepts:{LONG_TEXT[:20]}"]


def test_prose_concept_map_degrades_to_null(store, repo, make_dispatcher):
    enricher = FakeEnricher(concept_response="Here are the key concepts: respiration, glucose, ATP.")

    async def scenario():
        dispatcher = make_dispatcher(enricher)
        job = _submit(dispatcher, store, "notes.txt", LONG_TEXT.encode())
        await dispatcher.wait_idle()
        return repo.get(job.id)

    job = asyncio.run(scenario())
    assert job.status == JobStatus.DONE
    assert job.result.summary == "Summary text"
    assert job.result.concept_map is None
    assert job.to_snapshot()["result"]["conceptMap"] is None


def test_concept_map_provider_error_is_not_fatal(store, repo, make_dispatcher):
    enricher = FakeEnricher(concept_error=EnrichmentError("503 upstream unavailable"))

    async def scenario():
        dispatcher = make_dispatcher(enricher)
        job = _submit(dispatcher, store, "notes.txt", LONG_TEXT.encode())
        await dispatcher.wait_idle()
        return repo.get(job.id)

    job = asyncio.run(scenario())
    assert job.status == JobStatus.DONE
    assert job.result.concept_map is None


def test_empty_concept_map_response_from_provider_is_not_fatal(store, repo, make_dispatcher, monkeypatch):
    monkeypatch.setenv("TEST_MODEL_KEY", "secret")
    responses = iter(
        [
            SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="summary"))]),
            SimpleNamespace(choices=[]),
        ]
    )
    monkeypatch.setattr(enrichment.litellm, "completion", lambda **kwargs: next(responses))

    async def scenario():
        dispatcher = make_dispatcher(EnrichmentClient(api_key_env="TEST_MODEL_KEY"))
        job = _submit(dispatcher, store, "notes.txt", LONG_TEXT.encode())
        await dispatcher.wait_idle()
        return repo.get(job.id)

    job = asyncio.run(scenario())
    assert job.status == JobStatus.DONE
    assert job.result.summary == "summary"
    assert job.result.concept_map is None


def test_unexpected_concept_map_crash_is_not_fatal(store, repo, make_dispatcher):
    enricher = FakeEnricher(concept_error=RecursionError("maximum recursion depth exceeded"))

    async def scenario():
        dispatcher = make_dispatcher(enricher)
        job = _submit(dispatcher, store, "notes.txt", LONG_TEXT.encode())
        await dispatcher.wait_idle()
        return repo.get(job.id)

    job = asyncio.run(scenario())
    assert job.status == JobStatus.DONE
    assert job.result.concept_map is None


def test_unregistered_suffix_falls_back_to_declared_mime_type(store, repo, enricher, make_dispatcher):
    async def scenario():
        dispatcher = make_dispatcher(enricher)
        job = _submit(dispatcher, store, "notes.md", LONG_TEXT.encode())
        await dispatcher.wait_idle()
        return repo.get(job.id)

    job = asyncio.run(scenario())
    assert job.status == JobStatus.DONE
    assert enricher.calls[0] == f"summarize:{LONG_TEXT[:20]}"


def test_short_text_errors_without_calling_the_model(store, repo, enricher, make_dispatcher):
    async def scenario():
        dispatcher = make_dispatcher(enricher)
        job = _submit(dispatcher, store, "tiny.txt", b"0123456789")
        await dispatcher.wait_idle()
        return repo.get(job.id)

    job = asyncio.run(scenario())
    assert job.status == JobStatus.ERROR
    assert "Not enough readable text" in job.message
    assert job.result is None and job.finished_at is not None
    assert enricher.calls == []
    assert repo.history[job.id] == ["queued", "processing", "error"]


def test_summary_failure_is_job_fatal(store, repo, make_dispatcher):
    enricher = FakeEnricher(summary_error=EnrichmentError("invalid api token"))

    async def scenario():
        dispatcher = make_dispatcher(enricher)
        job = _submit(dispatcher, store, "notes.txt", LONG_TEXT.encode())
        await dispatcher.wait_idle()
        return repo.get(job.id)

    job = asyncio.run(scenario())
    assert job.status == JobStatus.ERROR
    assert job.message == "invalid api token"
    assert all(not call.startswith("map_concepts") for call in enricher.calls)


def test_unexpected_errors_are_recorded_and_worker_survives(store, repo, make_dispatcher):
    enricher = FakeEnricher(summary_error=KeyError("choices"))

    async def scenario():
        dispatcher = make_dispatcher(enricher)
        first = _submit(dispatcher, store, "first.txt", LONG_TEXT.encode())
        await dispatcher.wait_idle()
        enricher.summary_error = None
        second = _submit(dispatcher, store, "second.txt", LONG_TEXT.encode())
        await dispatcher.wait_idle()
        return repo.get(first.id), repo.get(second.id)

    first, second = asyncio.run(scenario())
    assert first.status == JobStatus.ERROR and "choices" in first.message
    assert second.status == JobStatus.DONE


def test_fifo_order_and_no_overlap(store, repo, make_dispatcher):
    enricher = FakeEnricher(delay=0.05)

    async def scenario():
        dispatcher = make_dispatcher(enricher)
        ids = [_submit(dispatcher, store, f"{name}.txt", f"{name}: {LONG_TEXT}".encode()).id for name in "ABC"]
        await asyncio.sleep(0)
        depth_after_start = dispatcher.queue_depth
        await dispatcher.wait_idle()
        return ids, depth_after_start, [repo.get(job_id) for job_id in ids]

    ids, depth_after_start, jobs = asyncio.run(scenario())
    assert depth_after_start == 2
    assert all(job.status == JobStatus.DONE for job in jobs)
    a, b, c = jobs
    assert a.started_at <= b.started_at <= c.started_at
    assert a.finished_at <= b.started_at
    assert b.finished_at <= c.started_at
    assert [call.split(":")[1] for call in enricher.calls if call.startswith("summarize")] == ["A", "B", "C"]


def test_failed_job_does_not_affect_later_jobs(store, repo, enricher, make_dispatcher):
    async def scenario():
        dispatcher = make_dispatcher(enricher)
        bad = _submit(dispatcher, store, "bad.pptx", b"corrupted")
        good = _submit(dispatcher, store, "good.txt", LONG_TEXT.encode())
        await dispatcher.wait_idle()
        return repo.get(bad.id), repo.get(good.id)

    bad, good = asyncio.run(scenario())
    assert bad.status == JobStatus.ERROR and "pptx" in bad.message
    assert good.status == JobStatus.DONE


def test_hung_model_call_times_out_into_error(store, repo, make_dispatcher):
    enricher = FakeEnricher(delay=1.0)

    async def scenario():
        dispatcher = make_dispatcher(enricher, enrichment_timeout=0.05)
        job = _submit(dispatcher, store, "notes.txt", LONG_TEXT.encode())
        started = time.monotonic()
        await dispatcher.wait_idle()
        return repo.get(job.id), time.monotonic() - started

    job, elapsed = asyncio.run(scenario())
    assert job.status == JobStatus.ERROR
    assert "timed out" in job.message
    assert elapsed < 1.0


def test_terminal_records_are_stable_across_queries(store, repo, enricher, make_dispatcher):
    async def scenario():
        dispatcher = make_dispatcher(enricher)
        job = _submit(dispatcher, store, "notes.txt", LONG_TEXT.encode())
        await dispatcher.wait_idle()
        first = repo.get(job.id).to_snapshot()
        await asyncio.sleep(0.05)
        return first, repo.get(job.id).to_snapshot()

    first, second = asyncio.run(scenario())
    assert first == second
