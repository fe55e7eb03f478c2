from datetime import datetime

import pytest

from draft_intake.intake import (
    ExtractionJobRecord,
    InMemoryIntakeRepository,
    JobStatus,
    ProjectRecord,
    ReferenceRecord,
    ReferenceStatus,
    SourceKind,
    SqlAlchemyIntakeRepository,
    TimelineEventRecord,
    TimelineEventType,
    VersionConflict,
    VersionRecord,
)


def _job(job_id, reference_id="ref-1"):
    return ExtractionJobRecord(
        id=job_id,
        reference_id=reference_id,
        project_id="proj-1",
        requested_by="user-1",
        job_type="pdf_parse",
    )


def test_sqlalchemy_repository_roundtrip(tmp_path):
    db_path = tmp_path / "test.db"
    repo = SqlAlchemyIntakeRepository(f"sqlite+pysqlite:///{db_path}")

    repo.save_project(ProjectRecord(id="proj-1", owner_id="user-1", title="Test", metadata={"goal": "note"}))
    repo.add_member("proj-1", "user-2")
    repo.update_project_metadata("proj-1", {"intake_completed": True})
    project = repo.get_project("proj-1")
    assert project and project.metadata == {"goal": "note", "intake_completed": True}
    assert repo.is_member("proj-1", "user-2")
    assert not repo.is_member("proj-1", "user-3")

    repo.save_reference(
        ReferenceRecord(
            id="ref-1",
            project_id="proj-1",
            uploaded_by="user-1",
            storage_path="proj-1/report.pdf",
            file_name="report.pdf",
            source_kind=SourceKind.PDF,
            size_bytes=1024,
            metadata={"file_type": "application/pdf"},
        )
    )
    repo.update_reference("ref-1", user_notes="Focus on chapter 2")
    reference = repo.get_reference("ref-1")
    assert reference and reference.source_kind == SourceKind.PDF
    assert reference.metadata == {"file_type": "application/pdf"}
    assert reference.user_notes == "Focus on chapter 2"

    repo.create_job(_job("job-1"))
    reference = repo.get_reference("ref-1")
    assert reference.current_job_id == "job-1"
    assert reference.attempt_count == 1
    assert reference.status == ReferenceStatus.QUEUED

    assert repo.claim_job("job-1", started_at=datetime.utcnow()) is True
    assert repo.claim_job("job-1", started_at=datetime.utcnow()) is False
    assert repo.mark_reference_extracting("ref-1", "job-1") is True
    assert repo.get_reference("ref-1").status == ReferenceStatus.EXTRACTING

    applied = repo.complete_job(
        "job-1",
        status=JobStatus.SUCCEEDED,
        finished_at=datetime.utcnow(),
        error_message=None,
        worker_response={"strategy": "document_vision", "char_count": 11},
        reference_status=ReferenceStatus.DONE,
        extracted_text="Hello world",
        extracted_chunks=[{"page": 1}],
        error_text=None,
    )
    assert applied is True
    job = repo.get_job("job-1")
    assert job.status == JobStatus.SUCCEEDED
    assert job.worker_response["strategy"] == "document_vision"
    reference = repo.get_reference("ref-1")
    assert reference.extracted_text == "Hello world"
    assert reference.extracted_chunks == [{"page": 1}]
    assert [r.id for r in repo.list_references("proj-1")] == ["ref-1"]
    assert [j.id for j in repo.list_jobs(project_id="proj-1")] == ["job-1"]


def test_sqlalchemy_complete_job_only_updates_current_reference(tmp_path):
    repo = SqlAlchemyIntakeRepository(f"sqlite+pysqlite:///{tmp_path / 'cas.db'}")
    repo.save_reference(
        ReferenceRecord(
            id="ref-1",
            project_id="proj-1",
            uploaded_by="user-1",
            storage_path="https://example.com",
            file_name="example.com",
            source_kind=SourceKind.URL,
        )
    )
    repo.create_job(_job("job-old"))
    repo.create_job(_job("job-new"))
    assert repo.get_reference("ref-1").attempt_count == 2
    assert repo.mark_reference_extracting("ref-1", "job-old") is False

    applied = repo.complete_job(
        "job-old",
        status=JobStatus.FAILED,
        finished_at=datetime.utcnow(),
        error_message="timeout",
        worker_response={},
        reference_status=ReferenceStatus.FAILED,
        extracted_text=None,
        extracted_chunks=None,
        error_text="timeout",
    )

    assert applied is False
    assert repo.get_job("job-old").status == JobStatus.FAILED
    reference = repo.get_reference("ref-1")
    assert reference.status == ReferenceStatus.QUEUED
    assert reference.error_text is None

    repo.delete_reference("ref-1")
    assert repo.get_reference("ref-1") is None


def test_sqlalchemy_versions_and_timeline(tmp_path):
    repo = SqlAlchemyIntakeRepository(f"sqlite+pysqlite:///{tmp_path / 'versions.db'}")
    assert repo.next_version_number("proj-1") == 1

    versions = [
        VersionRecord(id="v-1", project_id="proj-1", version_number=1, title="v1 - Raw Extracted Text", description=None, content="raw", created_by="user-1"),
        VersionRecord(id="v-2", project_id="proj-1", version_number=2, title="v2 - Draft", description=None, content="draft", created_by="user-1"),
    ]
    events = [
        TimelineEventRecord(id="e-1", project_id="proj-1", event_type=TimelineEventType.VERSION_CREATED, event_details={"version": 1}, user_id="user-1"),
        TimelineEventRecord(id="e-2", project_id="proj-1", event_type=TimelineEventType.VERSION_CREATED, event_details={"version": 2}, user_id="user-1"),
    ]
    repo.save_versions(versions, events)
    repo.update_version_content("v-1", "raw\n\nmore")

    assert repo.next_version_number("proj-1") == 3
    assert [v.version_number for v in repo.list_versions("proj-1")] == [1, 2]
    assert repo.get_version("v-1").content == "raw\n\nmore"
    timeline = repo.list_timeline("proj-1")
    assert {e.event_details["version"] for e in timeline} == {1, 2}
    assert all(e.event_type == TimelineEventType.VERSION_CREATED for e in timeline)


def _version(version_id, number, project_id="proj-1"):
    return VersionRecord(
        id=version_id,
        project_id=project_id,
        version_number=number,
        title=f"v{number}",
        description=None,
        content="text",
        created_by="user-1",
    )


def test_sqlalchemy_version_numbers_are_unique_per_project(tmp_path):
    repo = SqlAlchemyIntakeRepository(f"sqlite+pysqlite:///{tmp_path / 'unique.db'}")
    repo.save_versions([_version("v-1", 1)])

    with pytest.raises(VersionConflict):
        repo.save_versions([_version("v-dup", 1)])

    repo.save_versions([_version("v-other", 1, project_id="proj-2")])
    assert [v.id for v in repo.list_versions("proj-1")] == ["v-1"]
    assert repo.next_version_number("proj-1") == 2


def test_in_memory_version_numbers_are_unique_per_project():
    repo = InMemoryIntakeRepository()
    repo.save_versions([_version("v-1", 1)])

    with pytest.raises(VersionConflict):
        repo.save_versions([_version("v-2", 2), _version("v-dup", 1)])

    assert [v.id for v in repo.list_versions("proj-1")] == ["v-1"]
