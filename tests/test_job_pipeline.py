import threading

import pytest

from draft_intake.intake import (
    AccessDenied,
    InvalidRequest,
    JobStatus,
    NotFound,
    ProviderFailure,
    ReferenceStatus,
    RetryLimitExceeded,
    ThreadPoolJobExecutor,
    TimelineEventType,
    dispatch_key,
)
from draft_intake.intake import job_queue


def test_text_upload_is_extracted_end_to_end(pipeline, project):
    result = pipeline.intake.upload_file(project.id, "owner-1", "notes.txt", b"Hello world, these are my notes.")

    reference = pipeline.repo.get_reference(result.reference_id)
    job = pipeline.repo.get_job(result.job_id)
    assert reference.status == ReferenceStatus.DONE
    assert reference.extracted_text == "Hello world, these are my notes."
    assert reference.error_text is None
    assert job.status == JobStatus.SUCCEEDED
    assert job.started_at is not None and job.finished_at is not None
    assert job.worker_response["strategy"] == "text"
    assert job.worker_response["char_count"] == len(reference.extracted_text)

    events = pipeline.repo.list_timeline(project.id)
    assert [e.event_type for e in events] == [TimelineEventType.REFERENCE_ADDED]


def test_one_failed_source_does_not_block_the_others(pipeline, project, model):
    model.responses = [ProviderFailure("Gemini API error (500): internal"), "Scanned page text"]

    pdf = pipeline.intake.upload_file(project.id, "owner-1", "report.pdf", b"%PDF-1.4 fake", "application/pdf")
    image = pipeline.intake.upload_file(project.id, "owner-1", "page.png", b"\x89PNG fake", "image/png")
    text = pipeline.intake.upload_file(project.id, "owner-1", "notes.md", b"Plain notes")

    failed = pipeline.repo.get_reference(pdf.reference_id)
    assert failed.status == ReferenceStatus.FAILED
    assert "internal" in failed.error_text
    assert failed.extracted_text is None
    assert pipeline.repo.get_reference(image.reference_id).extracted_text == "Scanned page text"
    assert pipeline.repo.get_reference(text.reference_id).status == ReferenceStatus.DONE

    status = pipeline.aggregator.snapshot(project.id)
    assert status.total_jobs == 3
    assert status.completed_jobs == 3
    assert status.failed_jobs == 1
    assert status.all_jobs_complete
    assert status.has_failed_references
    assert status.ready_to_consolidate


def test_document_strategy_sends_inline_pdf(pipeline, project, model):
    pipeline.intake.upload_file(project.id, "owner-1", "brief.pdf", b"%PDF-1.4 data", "application/pdf")

    parts = model.calls[0]["parts"]
    assert "Extract every word" in parts[0]["text"]
    assert parts[1]["inline_data"]["mime_type"] == "application/pdf"


def test_audio_upload_is_transcribed_with_speaker_markers(pipeline, project, model):
    model.default = "Speaker 1: Welcome to the bakery."
    result = pipeline.intake.upload_file(project.id, "owner-1", "talk.mp3", b"ID3 audio bytes")

    parts = model.calls[0]["parts"]
    assert "Transcribe all speech in this audio recording" in parts[0]["text"]
    assert "Speaker 1:" in parts[0]["text"]
    assert parts[1]["inline_data"]["mime_type"] == "audio/mpeg"
    job = pipeline.repo.get_job(result.job_id)
    assert job.job_type == "audio_transcribe"
    assert job.worker_response["mime_type"] == "audio/mpeg"
    assert pipeline.repo.get_reference(result.reference_id).extracted_text == "Speaker 1: Welcome to the bakery."


def test_video_mime_type_follows_extension_then_kind(pipeline, project, model):
    pipeline.intake.upload_file(project.id, "owner-1", "clip.mov", b"moov bytes")
    pipeline.intake.upload_file(project.id, "owner-1", "recording", b"raw bytes", "video")

    mov, unnamed = model.calls
    assert "Transcribe all speech in this video" in mov["parts"][0]["text"]
    assert mov["parts"][1]["inline_data"]["mime_type"] == "video/quicktime"
    assert unnamed["parts"][1]["inline_data"]["mime_type"] == "video/mp4"


def test_empty_transcription_fails_the_reference(pipeline, project, model):
    model.responses = ["   \n"]
    result = pipeline.intake.upload_file(project.id, "owner-1", "silence.wav", b"RIFF bytes")

    reference = pipeline.repo.get_reference(result.reference_id)
    assert reference.status == ReferenceStatus.FAILED
    assert reference.error_text == "No text was extracted"
    assert pipeline.repo.get_job(result.job_id).status == JobStatus.FAILED


def test_non_member_cannot_add_references(pipeline, project):
    with pytest.raises(AccessDenied):
        pipeline.intake.add_link(project.id, "stranger", "https://example.com/post")
    assert pipeline.repo.list_references(project.id) == []


def test_member_can_add_references(pipeline, project, fetcher):
    fetcher.pages["https://example.com/post"] = "<html><body><p>Member post</p></body></html>"
    pipeline.projects.add_member(project.id, "editor-1", requested_by="owner-1")

    result = pipeline.intake.add_link(project.id, "editor-1", "https://example.com/post")

    reference = pipeline.repo.get_reference(result.reference_id)
    assert reference.file_name == "example.com"
    assert reference.extracted_text == "Member post"


def test_unknown_job_type_fails_the_job(pipeline, project, recorder):
    result = pipeline.intake.add_link(project.id, "owner-1", "https://example.com/a")
    job = pipeline.queue.enqueue(result.reference_id, "hologram_parse", "owner-1")

    pipeline.dispatcher.run_job(job.id)

    stored = pipeline.repo.get_job(job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.error_message == "Unknown job type: hologram_parse"
    assert stored.worker_response["error_type"] == "UnsupportedJobType"


def test_enqueue_validates_input(pipeline, project):
    with pytest.raises(InvalidRequest):
        pipeline.queue.enqueue("ref-1", "", "owner-1")
    with pytest.raises(NotFound):
        pipeline.queue.enqueue("missing", "txt_parse", "owner-1")


def test_stale_result_does_not_overwrite_newer_attempt(pipeline, project, recorder):
    result = pipeline.intake.add_link(project.id, "owner-1", "https://example.com/slow")
    first_job = result.job_id
    second = pipeline.queue.retry(result.reference_id, "owner-1")

    applied = pipeline.completion.complete(first_job, "succeeded", extracted_text="old text")

    assert applied is False
    reference = pipeline.repo.get_reference(result.reference_id)
    assert reference.current_job_id == second.id
    assert reference.status == ReferenceStatus.QUEUED
    assert reference.extracted_text is None
    assert pipeline.repo.get_job(first_job).status == JobStatus.SUCCEEDED

    assert pipeline.completion.complete(second.id, "succeeded", extracted_text="new text") is True
    assert pipeline.repo.get_reference(result.reference_id).extracted_text == "new text"


def test_completion_of_finished_job_is_ignored(pipeline, project):
    result = pipeline.intake.upload_file(project.id, "owner-1", "a.txt", b"first")

    assert pipeline.completion.complete(result.job_id, "failed", error_message="late failure") is False
    assert pipeline.repo.get_reference(result.reference_id).status == ReferenceStatus.DONE


def test_completion_rejects_non_terminal_status(pipeline, project, recorder):
    result = pipeline.intake.add_link(project.id, "owner-1", "https://example.com/a")
    with pytest.raises(InvalidRequest):
        pipeline.completion.complete(result.job_id, "running")
    with pytest.raises(NotFound):
        pipeline.completion.complete("missing-job", "succeeded", extracted_text="x")


def test_empty_success_is_recorded_as_failure(pipeline, project, recorder):
    result = pipeline.intake.add_link(project.id, "owner-1", "https://example.com/empty")

    pipeline.completion.complete(result.job_id, "succeeded", extracted_text="   ")

    reference = pipeline.repo.get_reference(result.reference_id)
    assert reference.status == ReferenceStatus.FAILED
    assert reference.error_text == "No text was extracted"
    assert pipeline.repo.get_job(result.job_id).status == JobStatus.FAILED


def test_duplicate_dispatch_runs_strategy_once(pipeline, project, recorder, fetcher):
    fetcher.pages["https://example.com/once"] = "<p>Only once</p>"
    result = pipeline.intake.add_link(project.id, "owner-1", "https://example.com/once")

    pipeline.dispatcher.run_job(result.job_id)
    pipeline.dispatcher.run_job(result.job_id)

    assert fetcher.calls == ["https://example.com/once"]
    assert pipeline.repo.get_job(result.job_id).status == JobStatus.SUCCEEDED


def test_retry_after_failure_and_attempt_limit(pipeline, project, fetcher):
    result = pipeline.intake.add_link(project.id, "owner-1", "https://example.com/flaky")
    assert pipeline.repo.get_reference(result.reference_id).status == ReferenceStatus.FAILED

    fetcher.pages["https://example.com/flaky"] = "<p>Back online</p>"
    retry = pipeline.queue.retry(result.reference_id, "owner-1")

    reference = pipeline.repo.get_reference(result.reference_id)
    assert retry.job_type == "url_parse"
    assert retry.attempt == 2
    assert reference.status == ReferenceStatus.DONE
    assert reference.error_text is None
    assert reference.extracted_text == "Back online"

    pipeline.queue.retry(result.reference_id, "owner-1")
    with pytest.raises(RetryLimitExceeded):
        pipeline.queue.retry(result.reference_id, "owner-1")
    assert len(pipeline.repo.list_jobs(reference_id=result.reference_id)) == 3


def test_deleted_reference_fails_its_pending_job(pipeline, project, recorder):
    result = pipeline.intake.upload_file(project.id, "owner-1", "gone.txt", b"soon deleted")
    stored_path = pipeline.repo.get_reference(result.reference_id).storage_path
    assert pipeline.storage.paths.object_path(stored_path).exists()
    pipeline.intake.delete_reference(result.reference_id, "owner-1")

    pipeline.dispatcher.run_job(result.job_id)

    job = pipeline.repo.get_job(result.job_id)
    assert job.status == JobStatus.FAILED
    assert job.error_message == "Reference not found"
    assert pipeline.repo.get_reference(result.reference_id) is None
    assert not pipeline.storage.paths.object_path(stored_path).exists()
    kinds = [e.event_type for e in pipeline.repo.list_timeline(project.id)]
    assert TimelineEventType.REFERENCE_DELETED in kinds


def test_dispatch_failure_marks_job_failed(pipeline, project):
    class BrokenExecutor:
        def submit(self, reference_id, job_id):
            raise ConnectionError("redis unavailable")

    pipeline.queue.executor = BrokenExecutor()
    result = pipeline.intake.add_link(project.id, "owner-1", "https://example.com/x")

    job = pipeline.repo.get_job(result.job_id)
    assert job.status == JobStatus.FAILED
    assert job.error_message == "Dispatch failed: redis unavailable"
    assert pipeline.repo.get_reference(result.reference_id).status == ReferenceStatus.FAILED


def test_pasted_text_needs_no_job(pipeline, project):
    result = pipeline.intake.add_text(project.id, "owner-1", "Some pasted paragraph.", name="Interview notes")

    assert result.job_id is None
    reference = pipeline.repo.get_reference(result.reference_id)
    assert reference.status == ReferenceStatus.DONE
    assert reference.extracted_text == "Some pasted paragraph."
    assert pipeline.repo.list_jobs(project_id=project.id) == []
    with pytest.raises(InvalidRequest):
        pipeline.queue.retry(result.reference_id, "owner-1")


def test_update_notes(pipeline, project):
    result = pipeline.intake.add_text(project.id, "owner-1", "text")
    updated = pipeline.intake.update_notes(result.reference_id, "owner-1", "  focus on the intro  ")
    assert updated.user_notes == "focus on the intro"
    with pytest.raises(AccessDenied):
        pipeline.intake.update_notes(result.reference_id, "stranger", "nope")


def test_thread_pool_executor_skips_in_flight_duplicates():
    started = threading.Event()
    release = threading.Event()
    ran = []

    def runner(job_id):
        ran.append(job_id)
        started.set()
        release.wait(5)

    executor = ThreadPoolJobExecutor(runner, max_workers=2)
    assert executor.submit("ref-1", "job-1") is True
    assert started.wait(5)
    assert executor.submit("ref-1", "job-1") is False
    release.set()
    executor.shutdown(wait=True)
    assert ran == ["job-1"]


def test_rq_executor_uses_dispatch_key_as_job_id(monkeypatch, settings):
    class FakeQueue:
        def __init__(self, name, connection=None):
            self.name = name
            self.jobs = {}

        def fetch_job(self, job_id):
            return self.jobs.get(job_id)

        def enqueue(self, func, *args, job_id=None, **kwargs):
            self.jobs[job_id] = (func, args)
            return job_id

    monkeypatch.setattr(job_queue, "Queue", FakeQueue)
    executor = job_queue.RQJobExecutor(settings)

    assert executor.submit("ref-1", "job-1") is True
    assert executor.submit("ref-1", "job-1") is False
    func, args = executor.queue.jobs[dispatch_key("ref-1", "job-1")]
    assert func is job_queue.run_extraction_job
    assert args == ("job-1", settings)


def test_plain_text_is_kept_verbatim(pipeline, project):
    result = pipeline.intake.upload_file(project.id, "owner-1", "lines.txt", b"line1\nline2")
    assert pipeline.repo.get_reference(result.reference_id).extracted_text == "line1\nline2"


def test_enqueue_for_unknown_reference_creates_no_rows(pipeline, project):
    with pytest.raises(NotFound):
        pipeline.queue.enqueue("ref-does-not-exist", "pdf_parse", "owner-1")
    assert pipeline.repo.list_jobs() == []


def test_retry_leaves_previous_job_row_untouched(pipeline, project, fetcher):
    result = pipeline.intake.add_link(project.id, "owner-1", "https://example.com/down")
    before = pipeline.repo.get_job(result.job_id)

    fetcher.pages["https://example.com/down"] = "<p>up again</p>"
    retry = pipeline.queue.retry(result.reference_id, "owner-1")

    assert retry.id != before.id
    assert pipeline.repo.get_job(before.id) == before
    assert pipeline.repo.get_job(retry.id).status == JobStatus.SUCCEEDED


def test_url_text_is_capped_by_default(pipeline, project, fetcher):
    fetcher.pages["https://example.com/huge"] = "<p>" + "x" * 60_000 + "</p>"
    result = pipeline.intake.add_link(project.id, "owner-1", "https://example.com/huge")
    assert len(pipeline.repo.get_reference(result.reference_id).extracted_text) == 50_000
