from __future__ import annotations

import json
import threading
from copy import deepcopy
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import Column, DateTime, Enum, Integer, String, Text, UniqueConstraint, create_engine, func, select, update
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .errors import VersionConflict
from .models import (
    ExtractionJobRecord,
    JobStatus,
    ProjectRecord,
    ReferenceRecord,
    ReferenceStatus,
    SourceKind,
    TimelineEventRecord,
    TimelineEventType,
    VersionRecord,
)

Base = declarative_base()


class ProjectModel(Base):
    __tablename__ = "projects"
    id = Column(String, primary_key=True)
    owner_id = Column(String, index=True)
    title = Column(String)
    metadata_json = Column(Text)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class ProjectMemberModel(Base):
    __tablename__ = "project_members"
    project_id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True)
    created_at = Column(DateTime)


class ReferenceModel(Base):
    __tablename__ = "reference_files"
    id = Column(String, primary_key=True)
    project_id = Column(String, index=True)
    uploaded_by = Column(String)
    storage_path = Column(String)
    file_name = Column(String)
    source_kind = Column(Enum(SourceKind))
    size_bytes = Column(Integer)
    status = Column(Enum(ReferenceStatus))
    error_text = Column(Text)
    extracted_text = Column(Text)
    extracted_chunks_json = Column(Text)
    metadata_json = Column(Text)
    user_notes = Column(Text)
    current_job_id = Column(String)
    attempt_count = Column(Integer, default=0)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class ExtractionJobModel(Base):
    __tablename__ = "extraction_jobs"
    id = Column(String, primary_key=True)
    reference_id = Column(String, index=True)
    project_id = Column(String, index=True)
    requested_by = Column(String)
    job_type = Column(String)
    status = Column(Enum(JobStatus))
    worker_response_json = Column(Text)
    error_message = Column(Text)
    attempt = Column(Integer)
    created_at = Column(DateTime)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)


class VersionModel(Base):
    __tablename__ = "versions"
    __table_args__ = (UniqueConstraint("project_id", "version_number", name="uq_versions_project_number"),)
    id = Column(String, primary_key=True)
    project_id = Column(String, index=True)
    version_number = Column(Integer)
    title = Column(String)
    description = Column(Text)
    content = Column(Text)
    created_by = Column(String)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class TimelineModel(Base):
    __tablename__ = "timeline"
    id = Column(String, primary_key=True)
    project_id = Column(String, index=True)
    event_type = Column(Enum(TimelineEventType))
    event_details_json = Column(Text)
    user_id = Column(String)
    created_at = Column(DateTime)


class IntakeRepository:
    """
    Abstract persistence boundary for intake. Implementations can target
    SQLite/Postgres or any other backing store. Methods that touch both a job
    and its reference run in a single transaction.
    """

    # Project operations
    def save_project(self, project: ProjectRecord) -> None:
        raise NotImplementedError

    def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        raise NotImplementedError

    def update_project_metadata(self, project_id: str, updates: Dict[str, Any]) -> None:
        raise NotImplementedError

    def add_member(self, project_id: str, user_id: str) -> None:
        raise NotImplementedError

    def is_member(self, project_id: str, user_id: str) -> bool:
        raise NotImplementedError

    # Reference operations
    def save_reference(self, reference: ReferenceRecord) -> None:
        raise NotImplementedError

    def get_reference(self, reference_id: str) -> Optional[ReferenceRecord]:
        raise NotImplementedError

    def list_references(self, project_id: str) -> List[ReferenceRecord]:
        raise NotImplementedError

    def update_reference(self, reference_id: str, **values: Any) -> None:
        raise NotImplementedError

    def delete_reference(self, reference_id: str) -> None:
        raise NotImplementedError

    # Extraction job operations
    def get_job(self, job_id: str) -> Optional[ExtractionJobRecord]:
        raise NotImplementedError

    def list_jobs(self, project_id: Optional[str] = None, reference_id: Optional[str] = None) -> List[ExtractionJobRecord]:
        raise NotImplementedError

    def create_job(self, job: ExtractionJobRecord) -> None:
        """
        Insert a queued job and point its reference at it: the reference goes
        back to ``queued`` with text and error cleared and ``attempt_count``
        incremented.
        """
        raise NotImplementedError

    def claim_job(self, job_id: str, started_at: datetime) -> bool:
        """Move a job from queued to running. Returns False if it was not queued."""
        raise NotImplementedError

    def mark_reference_extracting(self, reference_id: str, job_id: str) -> bool:
        """Set ``extracting`` only while ``job_id`` is the reference's current job."""
        raise NotImplementedError

    def complete_job(
        self,
        job_id: str,
        status: JobStatus,
        finished_at: datetime,
        error_message: Optional[str],
        worker_response: Dict[str, Any],
        reference_status: ReferenceStatus,
        extracted_text: Optional[str],
        extracted_chunks: Optional[List[Any]],
        error_text: Optional[str],
    ) -> bool:
        """
        Write the terminal job state and mirror it onto the reference when the
        job is still the reference's current job. Returns whether the
        reference was updated.
        """
        raise NotImplementedError

    # Versions and timeline
    def next_version_number(self, project_id: str) -> int:
        raise NotImplementedError

    def save_versions(self, versions: Iterable[VersionRecord], events: Iterable[TimelineEventRecord] = ()) -> None:
        raise NotImplementedError

    def get_version(self, version_id: str) -> Optional[VersionRecord]:
        raise NotImplementedError

    def list_versions(self, project_id: str) -> List[VersionRecord]:
        raise NotImplementedError

    def update_version_content(self, version_id: str, content: str) -> None:
        raise NotImplementedError

    def add_timeline_events(self, events: Iterable[TimelineEventRecord]) -> None:
        raise NotImplementedError

    def list_timeline(self, project_id: str) -> List[TimelineEventRecord]:
        raise NotImplementedError


class InMemoryIntakeRepository(IntakeRepository):
    """
    Simple in-memory store for local runs and tests. It mirrors the DB shape
    and keeps copies of dataclasses to avoid cross-mutation between calls.
    A lock serialises access because jobs may run on worker threads.
    """

    def __init__(self):
        self.projects: Dict[str, ProjectRecord] = {}
        self.members: set = set()
        self.references: Dict[str, ReferenceRecord] = {}
        self.jobs: Dict[str, ExtractionJobRecord] = {}
        self.versions: Dict[str, VersionRecord] = {}
        self.timeline: List[TimelineEventRecord] = []
        self._lock = threading.RLock()

    def _clone(self, obj):
        return deepcopy(obj)

    def save_project(self, project: ProjectRecord) -> None:
        with self._lock:
            self.projects[project.id] = self._clone(project)

    def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        with self._lock:
            project = self.projects.get(project_id)
            return self._clone(project) if project else None

    def update_project_metadata(self, project_id: str, updates: Dict[str, Any]) -> None:
        with self._lock:
            project = self.projects.get(project_id)
            if not project:
                return
            project.metadata.update(self._clone(updates))
            project.updated_at = datetime.utcnow()

    def add_member(self, project_id: str, user_id: str) -> None:
        with self._lock:
            self.members.add((project_id, user_id))

    def is_member(self, project_id: str, user_id: str) -> bool:
        with self._lock:
            return (project_id, user_id) in self.members

    def save_reference(self, reference: ReferenceRecord) -> None:
        with self._lock:
            self.references[reference.id] = self._clone(reference)

    def get_reference(self, reference_id: str) -> Optional[ReferenceRecord]:
        with self._lock:
            reference = self.references.get(reference_id)
            return self._clone(reference) if reference else None

    def list_references(self, project_id: str) -> List[ReferenceRecord]:
        with self._lock:
            refs = [self._clone(r) for r in self.references.values() if r.project_id == project_id]
        return sorted(refs, key=lambda r: r.created_at)

    def update_reference(self, reference_id: str, **values: Any) -> None:
        with self._lock:
            reference = self.references.get(reference_id)
            if not reference:
                return
            for key, value in values.items():
                setattr(reference, key, self._clone(value))
            reference.updated_at = datetime.utcnow()

    def delete_reference(self, reference_id: str) -> None:
        with self._lock:
            self.references.pop(reference_id, None)

    def get_job(self, job_id: str) -> Optional[ExtractionJobRecord]:
        with self._lock:
            job = self.jobs.get(job_id)
            return self._clone(job) if job else None

    def list_jobs(self, project_id: Optional[str] = None, reference_id: Optional[str] = None) -> List[ExtractionJobRecord]:
        with self._lock:
            jobs = [
                self._clone(j)
                for j in self.jobs.values()
                if (project_id is None or j.project_id == project_id)
                and (reference_id is None or j.reference_id == reference_id)
            ]
        return sorted(jobs, key=lambda j: j.created_at)

    def create_job(self, job: ExtractionJobRecord) -> None:
        with self._lock:
            reference = self.references.get(job.reference_id)
            if reference:
                reference.status = ReferenceStatus.QUEUED
                reference.extracted_text = None
                reference.extracted_chunks = None
                reference.error_text = None
                reference.current_job_id = job.id
                reference.attempt_count += 1
                reference.updated_at = datetime.utcnow()
            self.jobs[job.id] = self._clone(job)

    def claim_job(self, job_id: str, started_at: datetime) -> bool:
        with self._lock:
            job = self.jobs.get(job_id)
            if not job or job.status != JobStatus.QUEUED:
                return False
            job.status = JobStatus.RUNNING
            job.started_at = started_at
            return True

    def mark_reference_extracting(self, reference_id: str, job_id: str) -> bool:
        with self._lock:
            reference = self.references.get(reference_id)
            if not reference or reference.current_job_id != job_id:
                return False
            reference.status = ReferenceStatus.EXTRACTING
            reference.updated_at = datetime.utcnow()
            return True

    def complete_job(
        self,
        job_id: str,
        status: JobStatus,
        finished_at: datetime,
        error_message: Optional[str],
        worker_response: Dict[str, Any],
        reference_status: ReferenceStatus,
        extracted_text: Optional[str],
        extracted_chunks: Optional[List[Any]],
        error_text: Optional[str],
    ) -> bool:
        with self._lock:
            job = self.jobs.get(job_id)
            if not job:
                return False
            job.status = status
            job.finished_at = finished_at
            job.error_message = error_message
            job.worker_response = self._clone(worker_response)

            reference = self.references.get(job.reference_id)
            if not reference or reference.current_job_id != job_id:
                return False
            reference.status = reference_status
            reference.extracted_text = extracted_text
            reference.extracted_chunks = self._clone(extracted_chunks)
            reference.error_text = error_text
            reference.updated_at = finished_at
            return True

    def next_version_number(self, project_id: str) -> int:
        with self._lock:
            numbers = [v.version_number for v in self.versions.values() if v.project_id == project_id]
        return (max(numbers) if numbers else 0) + 1

    def save_versions(self, versions: Iterable[VersionRecord], events: Iterable[TimelineEventRecord] = ()) -> None:
        with self._lock:
            versions = list(versions)
            taken = {(v.project_id, v.version_number) for v in self.versions.values()}
            for version in versions:
                key = (version.project_id, version.version_number)
                if key in taken:
                    raise VersionConflict(f"Version {version.version_number} already exists in project {version.project_id}")
                taken.add(key)
            for version in versions:
                self.versions[version.id] = self._clone(version)
            for event in events:
                self.timeline.append(self._clone(event))

    def get_version(self, version_id: str) -> Optional[VersionRecord]:
        with self._lock:
            version = self.versions.get(version_id)
            return self._clone(version) if version else None

    def list_versions(self, project_id: str) -> List[VersionRecord]:
        with self._lock:
            versions = [self._clone(v) for v in self.versions.values() if v.project_id == project_id]
        return sorted(versions, key=lambda v: v.version_number)

    def update_version_content(self, version_id: str, content: str) -> None:
        with self._lock:
            version = self.versions.get(version_id)
            if not version:
                return
            version.content = content
            version.updated_at = datetime.utcnow()

    def add_timeline_events(self, events: Iterable[TimelineEventRecord]) -> None:
        with self._lock:
            for event in events:
                self.timeline.append(self._clone(event))

    def list_timeline(self, project_id: str) -> List[TimelineEventRecord]:
        with self._lock:
            return [self._clone(e) for e in self.timeline if e.project_id == project_id]


class SqlAlchemyIntakeRepository(IntakeRepository):
    """
    SQL-backed repository using SQLAlchemy. Works with SQLite/Postgres URLs.
    """

    def __init__(self, database_url: str):
        url = make_url(database_url)
        connect_args = {}
        if url.get_backend_name() == "sqlite":
            connect_args = {"check_same_thread": False}
            if url.database and url.database != ":memory:":
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(database_url, future=True, connect_args=connect_args)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    # region Project operations
    def save_project(self, project: ProjectRecord) -> None:
        with self._session() as session:
            session.merge(
                ProjectModel(
                    id=project.id,
                    owner_id=project.owner_id,
                    title=project.title,
                    metadata_json=json.dumps(project.metadata or {}),
                    created_at=project.created_at,
                    updated_at=project.updated_at,
                )
            )
            session.commit()

    def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        with self._session() as session:
            model = session.get(ProjectModel, project_id)
            if not model:
                return None
            return ProjectRecord(
                id=model.id,
                owner_id=model.owner_id,
                title=model.title,
                metadata=json.loads(model.metadata_json or "{}"),
                created_at=model.created_at,
                updated_at=model.updated_at,
            )

    def update_project_metadata(self, project_id: str, updates: Dict[str, Any]) -> None:
        with self._session() as session:
            model = session.get(ProjectModel, project_id)
            if not model:
                return
            metadata = json.loads(model.metadata_json or "{}")
            metadata.update(updates)
            model.metadata_json = json.dumps(metadata)
            model.updated_at = datetime.utcnow()
            session.commit()

    def add_member(self, project_id: str, user_id: str) -> None:
        with self._session() as session:
            session.merge(ProjectMemberModel(project_id=project_id, user_id=user_id, created_at=datetime.utcnow()))
            session.commit()

    def is_member(self, project_id: str, user_id: str) -> bool:
        with self._session() as session:
            return session.get(ProjectMemberModel, (project_id, user_id)) is not None

    # endregion

    # region Reference operations
    def _to_reference(self, model: ReferenceModel) -> ReferenceRecord:
        return ReferenceRecord(
            id=model.id,
            project_id=model.project_id,
            uploaded_by=model.uploaded_by,
            storage_path=model.storage_path,
            file_name=model.file_name,
            source_kind=model.source_kind,
            size_bytes=model.size_bytes,
            status=model.status,
            error_text=model.error_text,
            extracted_text=model.extracted_text,
            extracted_chunks=json.loads(model.extracted_chunks_json) if model.extracted_chunks_json else None,
            metadata=json.loads(model.metadata_json or "{}"),
            user_notes=model.user_notes,
            current_job_id=model.current_job_id,
            attempt_count=int(model.attempt_count or 0),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def save_reference(self, reference: ReferenceRecord) -> None:
        with self._session() as session:
            session.merge(
                ReferenceModel(
                    id=reference.id,
                    project_id=reference.project_id,
                    uploaded_by=reference.uploaded_by,
                    storage_path=reference.storage_path,
                    file_name=reference.file_name,
                    source_kind=reference.source_kind,
                    size_bytes=reference.size_bytes,
                    status=reference.status,
                    error_text=reference.error_text,
                    extracted_text=reference.extracted_text,
                    extracted_chunks_json=json.dumps(reference.extracted_chunks) if reference.extracted_chunks is not None else None,
                    metadata_json=json.dumps(reference.metadata or {}),
                    user_notes=reference.user_notes,
                    current_job_id=reference.current_job_id,
                    attempt_count=reference.attempt_count,
                    created_at=reference.created_at,
                    updated_at=reference.updated_at,
                )
            )
            session.commit()

    def get_reference(self, reference_id: str) -> Optional[ReferenceRecord]:
        with self._session() as session:
            model = session.get(ReferenceModel, reference_id)
            return self._to_reference(model) if model else None

    def list_references(self, project_id: str) -> List[ReferenceRecord]:
        with self._session() as session:
            stmt = (
                select(ReferenceModel)
                .where(ReferenceModel.project_id == project_id)
                .order_by(ReferenceModel.created_at)
            )
            return [self._to_reference(m) for m in session.execute(stmt).scalars().all()]

    def update_reference(self, reference_id: str, **values: Any) -> None:
        columns: Dict[str, Any] = {}
        for key, value in values.items():
            if key == "metadata":
                columns["metadata_json"] = json.dumps(value or {})
            elif key == "extracted_chunks":
                columns["extracted_chunks_json"] = json.dumps(value) if value is not None else None
            else:
                columns[key] = value
        columns["updated_at"] = datetime.utcnow()
        with self._session() as session:
            session.execute(update(ReferenceModel).where(ReferenceModel.id == reference_id).values(**columns))
            session.commit()

    def delete_reference(self, reference_id: str) -> None:
        with self._session() as session:
            model = session.get(ReferenceModel, reference_id)
            if model:
                session.delete(model)
                session.commit()

    # endregion

    # region Job operations
    def _to_job(self, model: ExtractionJobModel) -> ExtractionJobRecord:
        return ExtractionJobRecord(
            id=model.id,
            reference_id=model.reference_id,
            project_id=model.project_id,
            requested_by=model.requested_by,
            job_type=model.job_type,
            status=model.status,
            worker_response=json.loads(model.worker_response_json or "{}"),
            error_message=model.error_message,
            attempt=int(model.attempt or 1),
            created_at=model.created_at,
            started_at=model.started_at,
            finished_at=model.finished_at,
        )

    def get_job(self, job_id: str) -> Optional[ExtractionJobRecord]:
        with self._session() as session:
            model = session.get(ExtractionJobModel, job_id)
            return self._to_job(model) if model else None

    def list_jobs(self, project_id: Optional[str] = None, reference_id: Optional[str] = None) -> List[ExtractionJobRecord]:
        with self._session() as session:
            stmt = select(ExtractionJobModel)
            if project_id is not None:
                stmt = stmt.where(ExtractionJobModel.project_id == project_id)
            if reference_id is not None:
                stmt = stmt.where(ExtractionJobModel.reference_id == reference_id)
            stmt = stmt.order_by(ExtractionJobModel.created_at)
            return [self._to_job(m) for m in session.execute(stmt).scalars().all()]

    def create_job(self, job: ExtractionJobRecord) -> None:
        with self._session() as session:
            session.add(
                ExtractionJobModel(
                    id=job.id,
                    reference_id=job.reference_id,
                    project_id=job.project_id,
                    requested_by=job.requested_by,
                    job_type=job.job_type,
                    status=job.status,
                    worker_response_json=json.dumps(job.worker_response or {}),
                    error_message=job.error_message,
                    attempt=job.attempt,
                    created_at=job.created_at,
                    started_at=job.started_at,
                    finished_at=job.finished_at,
                )
            )
            session.execute(
                update(ReferenceModel)
                .where(ReferenceModel.id == job.reference_id)
                .values(
                    status=ReferenceStatus.QUEUED,
                    extracted_text=None,
                    extracted_chunks_json=None,
                    error_text=None,
                    current_job_id=job.id,
                    attempt_count=func.coalesce(ReferenceModel.attempt_count, 0) + 1,
                    updated_at=datetime.utcnow(),
                )
            )
            session.commit()

    def claim_job(self, job_id: str, started_at: datetime) -> bool:
        with self._session() as session:
            result = session.execute(
                update(ExtractionJobModel)
                .where(ExtractionJobModel.id == job_id, ExtractionJobModel.status == JobStatus.QUEUED)
                .values(status=JobStatus.RUNNING, started_at=started_at)
            )
            session.commit()
            return result.rowcount == 1

    def mark_reference_extracting(self, reference_id: str, job_id: str) -> bool:
        with self._session() as session:
            result = session.execute(
                update(ReferenceModel)
                .where(ReferenceModel.id == reference_id, ReferenceModel.current_job_id == job_id)
                .values(status=ReferenceStatus.EXTRACTING, updated_at=datetime.utcnow())
            )
            session.commit()
            return result.rowcount == 1

    def complete_job(
        self,
        job_id: str,
        status: JobStatus,
        finished_at: datetime,
        error_message: Optional[str],
        worker_response: Dict[str, Any],
        reference_status: ReferenceStatus,
        extracted_text: Optional[str],
        extracted_chunks: Optional[List[Any]],
        error_text: Optional[str],
    ) -> bool:
        with self._session() as session:
            model = session.get(ExtractionJobModel, job_id)
            if not model:
                return False
            model.status = status
            model.finished_at = finished_at
            model.error_message = error_message
            model.worker_response_json = json.dumps(worker_response or {})
            result = session.execute(
                update(ReferenceModel)
                .where(ReferenceModel.id == model.reference_id, ReferenceModel.current_job_id == job_id)
                .values(
                    status=reference_status,
                    extracted_text=extracted_text,
                    extracted_chunks_json=json.dumps(extracted_chunks) if extracted_chunks is not None else None,
                    error_text=error_text,
                    updated_at=finished_at,
                )
            )
            session.commit()
            return result.rowcount == 1

    # endregion

    # region Versions and timeline
    def _to_version(self, model: VersionModel) -> VersionRecord:
        return VersionRecord(
            id=model.id,
            project_id=model.project_id,
            version_number=int(model.version_number),
            title=model.title,
            description=model.description,
            content=model.content or "",
            created_by=model.created_by,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_event_model(self, event: TimelineEventRecord) -> TimelineModel:
        return TimelineModel(
            id=event.id,
            project_id=event.project_id,
            event_type=event.event_type,
            event_details_json=json.dumps(event.event_details or {}),
            user_id=event.user_id,
            created_at=event.created_at,
        )

    def next_version_number(self, project_id: str) -> int:
        with self._session() as session:
            current = session.execute(
                select(func.max(VersionModel.version_number)).where(VersionModel.project_id == project_id)
            ).scalar()
            return int(current or 0) + 1

    def save_versions(self, versions: Iterable[VersionRecord], events: Iterable[TimelineEventRecord] = ()) -> None:
        versions = list(versions)
        with self._session() as session:
            for version in versions:
                session.add(
                    VersionModel(
                        id=version.id,
                        project_id=version.project_id,
                        version_number=version.version_number,
                        title=version.title,
                        description=version.description,
                        content=version.content,
                        created_by=version.created_by,
                        created_at=version.created_at,
                        updated_at=version.updated_at,
                    )
                )
            for event in events:
                session.add(self._to_event_model(event))
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                numbers = sorted(v.version_number for v in versions)
                raise VersionConflict(f"Version number(s) {numbers} already taken") from exc

    def get_version(self, version_id: str) -> Optional[VersionRecord]:
        with self._session() as session:
            model = session.get(VersionModel, version_id)
            return self._to_version(model) if model else None

    def list_versions(self, project_id: str) -> List[VersionRecord]:
        with self._session() as session:
            stmt = (
                select(VersionModel)
                .where(VersionModel.project_id == project_id)
                .order_by(VersionModel.version_number)
            )
            return [self._to_version(m) for m in session.execute(stmt).scalars().all()]

    def update_version_content(self, version_id: str, content: str) -> None:
        with self._session() as session:
            session.execute(
                update(VersionModel)
                .where(VersionModel.id == version_id)
                .values(content=content, updated_at=datetime.utcnow())
            )
            session.commit()

    def add_timeline_events(self, events: Iterable[TimelineEventRecord]) -> None:
        with self._session() as session:
            for event in events:
                session.add(self._to_event_model(event))
            session.commit()

    def list_timeline(self, project_id: str) -> List[TimelineEventRecord]:
        with self._session() as session:
            stmt = select(TimelineModel).where(TimelineModel.project_id == project_id).order_by(TimelineModel.created_at)
            return [
                TimelineEventRecord(
                    id=m.id,
                    project_id=m.project_id,
                    event_type=m.event_type,
                    event_details=json.loads(m.event_details_json or "{}"),
                    user_id=m.user_id,
                    created_at=m.created_at,
                )
                for m in session.execute(stmt).scalars().all()
            ]

    # endregion
