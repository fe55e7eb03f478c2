from pathlib import Path

import pytest
from youtube_transcript_api import TranscriptsDisabled

from draft_intake.intake import InMemoryIntakeRepository, IntakeSettings, NetworkFailure, build_pipeline


class FakeModel:
    """Stands in for the Gemini client; records every call."""

    def __init__(self, responses=None, default="Generated text from the model."):
        self.responses = list(responses or [])
        self.default = default
        self.calls = []

    def generate(self, parts, temperature=None):
        self.calls.append({"parts": list(parts), "temperature": temperature})
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return self.default


class FakeFetcher:
    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls = []

    def get_text(self, url, headers=None):
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            raise NetworkFailure(f"Failed to fetch {url}: 404 Client Error")
        if isinstance(page, Exception):
            raise page
        return page


class FakeTranscriptApi:
    """Stands in for YouTubeTranscriptApi; maps video ids to caption segments or errors."""

    def __init__(self, transcripts=None):
        self.transcripts = dict(transcripts or {})
        self.calls = []

    def fetch(self, video_id, languages=("en",)):
        self.calls.append((video_id, list(languages)))
        transcript = self.transcripts.get(video_id)
        if transcript is None:
            raise TranscriptsDisabled(video_id)
        if isinstance(transcript, Exception):
            raise transcript
        return transcript


class RecordingExecutor:
    """Accepts dispatches without running them, so tests decide when jobs run."""

    def __init__(self):
        self.submitted = []

    def submit(self, reference_id, job_id):
        self.submitted.append(job_id)
        return True


@pytest.fixture
def settings(tmp_path: Path) -> IntakeSettings:
    return IntakeSettings(
        database_url=f"sqlite+pysqlite:///{tmp_path / 'intake.db'}",
        blob_storage_root=str(tmp_path / "data"),
        max_attempts=3,
        executor="inline",
    )


@pytest.fixture
def model() -> FakeModel:
    return FakeModel()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def transcripts() -> FakeTranscriptApi:
    return FakeTranscriptApi()


@pytest.fixture
def pipeline(settings, model, fetcher, transcripts):
    return build_pipeline(
        settings,
        executor="inline",
        repository=InMemoryIntakeRepository(),
        model=model,
        fetcher=fetcher,
        transcripts=transcripts,
    )


@pytest.fixture
def project(pipeline):
    return pipeline.projects.create_project("owner-1", "Spring newsletter")


@pytest.fixture
def recorder(pipeline) -> RecordingExecutor:
    executor = RecordingExecutor()
    pipeline.queue.executor = executor
    return executor
