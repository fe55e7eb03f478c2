import pytest

from draft_intake.intake import (
    ExtractionPending,
    InvalidRequest,
    NoReferencesAvailable,
    ProviderFailure,
    ReferenceRecord,
    ReferenceStatus,
    SourceKind,
    TimelineEventType,
    consolidate,
)
from draft_intake.intake.consolidation import build_instructions, parse_vocabulary


def _reference(name, text, notes=None):
    return ReferenceRecord(
        id=f"ref-{name}",
        project_id="proj-1",
        uploaded_by="owner-1",
        storage_path=f"proj-1/{name}",
        file_name=name,
        source_kind=SourceKind.TXT,
        status=ReferenceStatus.DONE,
        extracted_text=text,
        user_notes=notes,
    )


def test_every_source_is_wrapped_exactly_once():
    references = [
        _reference("a.txt", "Alpha facts."),
        _reference("b.pdf", "Beta findings.", notes="Use only the summary table"),
    ]

    blob = consolidate("wordpress_blog", references)

    for ref in references:
        assert blob.count(f"=== BEGIN SOURCE: {ref.file_name} ===") == 1
        assert blob.count(f"=== END SOURCE: {ref.file_name} ===") == 1
        assert blob.count(ref.extracted_text) == 1
    assert "Notes for this source: Use only the summary table\n=== BEGIN SOURCE: b.pdf ===" in blob
    assert blob.index("BEGIN SOURCE: a.txt") < blob.index("BEGIN SOURCE: b.pdf")
    assert "CRITICAL INSTRUCTIONS:" in blob
    assert "WordPress blog post" in blob


def test_instructions_include_user_requirements_and_vocabulary():
    text = build_instructions(
        "substack_newsletter",
        llm_chat="Keep it under 800 words.",
        vocabulary=["AI -> artificial intelligence", "clients => customers", "Sourdough"],
        target_language="French",
    )

    assert "ADDITIONAL USER REQUIREMENTS:\nKeep it under 800 words." in text
    assert 'Use "artificial intelligence" instead of "AI"' in text
    assert 'Use "customers" instead of "clients"' in text
    assert 'Use the term "Sourdough" exactly as written' in text
    assert "Write the entire output in French." in text


def test_parse_vocabulary_forms():
    assert parse_vocabulary(["a -> b", "c=d", " ", "plain"]) == [("a", "b"), ("c", "d"), ("plain", None)]


def test_custom_goal_and_translation_language():
    assert "a grant proposal" in build_instructions("a grant proposal")
    with pytest.raises(InvalidRequest):
        build_instructions("translation")
    assert "Translate the full text faithfully" in build_instructions("translation", target_language="German")
    with pytest.raises(NoReferencesAvailable):
        consolidate("note", [])


def test_generate_versions_creates_raw_and_draft(pipeline, project, model):
    pipeline.intake.upload_file(project.id, "owner-1", "interview.txt", b"The baker starts at 4am.")
    pipeline.intake.add_text(project.id, "owner-1", "Readers love the crumb photos.", name="Reader mail")
    model.responses = ["# Draft\nA day in the bakery."]

    result = pipeline.generator.generate_versions(project.id, "owner-1", "substack_newsletter", vocabulary=["bread -> loaf"])

    raw = pipeline.repo.get_version(result.raw_version_id)
    draft = pipeline.repo.get_version(result.draft_version_id)
    assert result.status == "completed"
    assert (raw.version_number, draft.version_number) == (1, 2)
    assert raw.title == "v1 - Raw Extracted Text"
    assert draft.title == "v2 - Draft"
    assert "=== BEGIN SOURCE: interview.txt ===" in raw.content
    assert "=== BEGIN SOURCE: Reader mail ===" in raw.content
    assert draft.content == "# Draft\nA day in the bakery."
    assert model.calls[-1]["parts"][0]["text"] == raw.content

    events = [e for e in pipeline.repo.list_timeline(project.id) if e.event_type == TimelineEventType.VERSION_CREATED]
    assert [e.event_details["version"] for e in events] == [1, 2]

    metadata = pipeline.repo.get_project(project.id).metadata
    assert metadata["goal"] == "substack_newsletter"
    assert metadata["vocabulary"] == ["bread -> loaf"]
    assert metadata["intake_completed"] is True


def test_generate_fails_when_nothing_was_extracted(pipeline, project):
    pipeline.intake.add_link(project.id, "owner-1", "https://example.com/unreachable")

    with pytest.raises(NoReferencesAvailable):
        pipeline.generator.generate_versions(project.id, "owner-1", "note")
    assert pipeline.repo.list_versions(project.id) == []


def test_generate_waits_for_active_jobs(pipeline, project, recorder):
    pipeline.intake.add_text(project.id, "owner-1", "ready text")
    pipeline.intake.add_link(project.id, "owner-1", "https://example.com/pending")

    with pytest.raises(ExtractionPending):
        pipeline.generator.generate_versions(project.id, "owner-1", "note")


def test_generate_without_done_references_ignores_pending_jobs(pipeline, project, recorder):
    pipeline.intake.add_link(project.id, "owner-1", "https://example.com/pending")

    with pytest.raises(NoReferencesAvailable):
        pipeline.generator.generate_versions(project.id, "owner-1", "note")


def test_lost_dispatch_does_not_block_generation_after_retry(pipeline, project, recorder, fetcher, model):
    added = pipeline.intake.add_link(project.id, "owner-1", "https://example.com/story")
    retry = pipeline.queue.retry(added.reference_id, "owner-1")
    fetcher.pages["https://example.com/story"] = "<p>The mill reopened in May.</p>"
    pipeline.dispatcher.run_job(retry.id)

    lost = pipeline.repo.get_job(added.job_id)
    status = pipeline.aggregator.snapshot(project.id)
    assert lost.status.value == "queued"
    assert (status.active_jobs, status.stale_jobs, status.pending_jobs) == (1, 1, 0)
    assert not status.all_jobs_complete
    assert status.ready_to_consolidate

    model.responses = ["Mill news."]
    result = pipeline.generator.generate_versions(project.id, "owner-1", "note")
    assert pipeline.repo.get_version(result.draft_version_id).content == "Mill news."


def test_generate_with_only_pasted_text(pipeline, project):
    pipeline.intake.add_text(project.id, "owner-1", "Only pasted content here.")

    result = pipeline.generator.generate_versions(project.id, "owner-1", "note")

    assert pipeline.repo.get_version(result.raw_version_id).content.count("Only pasted content here.") == 1


def test_provider_failure_persists_nothing(pipeline, project, model):
    pipeline.intake.add_text(project.id, "owner-1", "Some text.")
    model.responses = [ProviderFailure("Gemini returned an empty response")]

    with pytest.raises(ProviderFailure):
        pipeline.generator.generate_versions(project.id, "owner-1", "note")

    assert pipeline.repo.list_versions(project.id) == []
    assert "intake_completed" not in pipeline.repo.get_project(project.id).metadata


def test_generate_uses_selected_references_only(pipeline, project):
    keep = pipeline.intake.add_text(project.id, "owner-1", "Keep me.", name="keep")
    pipeline.intake.add_text(project.id, "owner-1", "Skip me.", name="skip")

    result = pipeline.generator.generate_versions(
        project.id, "owner-1", "note", reference_ids=[keep.reference_id]
    )

    content = pipeline.repo.get_version(result.raw_version_id).content
    assert "Keep me." in content
    assert "Skip me." not in content


def test_late_reference_is_appended_to_raw_version(pipeline, project):
    pipeline.intake.add_text(project.id, "owner-1", "First source.", name="first")
    result = pipeline.generator.generate_versions(project.id, "owner-1", "note")

    pipeline.intake.upload_file(project.id, "owner-1", "late.txt", b"Arrived after the draft.")

    raw = pipeline.repo.get_version(result.raw_version_id)
    assert raw.content.endswith("=== BEGIN SOURCE: late.txt ===\nArrived after the draft.\n=== END SOURCE: late.txt ===")
    edited = [e for e in pipeline.repo.list_timeline(project.id) if e.event_type == TimelineEventType.EDITED]
    assert edited[0].event_details["action"] == "reference_added"


def test_regenerate_adds_a_new_draft(pipeline, project, model):
    pipeline.intake.add_text(project.id, "owner-1", "Source text.")
    pipeline.generator.generate_versions(project.id, "owner-1", "note")
    model.responses = ["Shorter draft."]

    version = pipeline.generator.regenerate(project.id, "owner-1", "edited blob", extra_instructions="Make it shorter")

    assert version.version_number == 3
    assert version.content == "Shorter draft."
    prompt = model.calls[-1]["parts"][0]["text"]
    assert prompt.startswith("edited blob")
    assert prompt.endswith("Make it shorter")
    with pytest.raises(InvalidRequest):
        pipeline.generator.regenerate(project.id, "owner-1", "   ")
