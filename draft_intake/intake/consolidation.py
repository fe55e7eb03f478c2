"""
Consolidation of extracted references into one prompt, and draft generation.

The consolidated text is a goal-specific instruction template followed by
every usable reference wrapped in ``BEGIN SOURCE`` / ``END SOURCE`` markers.
It is stored verbatim as the project's raw version; the model's answer is
stored as the draft version.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .access import AccessChecker, require_access
from .completion import RAW_VERSION_MARKER, append_to_raw_version, source_block
from .errors import ExtractionPending, InvalidRequest, NoReferencesAvailable, NotFound
from .llm import GenerativeModel, text_part
from .models import ReferenceRecord, ReferenceStatus, TimelineEventRecord, TimelineEventType, VersionRecord
from .repository import IntakeRepository
from .status import StatusAggregator

logger = logging.getLogger(__name__)

DRAFT_TEMPERATURE = 0.7


@dataclass(frozen=True)
class GoalTemplate:
    key: str
    description: str
    rules: Tuple[str, ...]
    requires_language: bool = False


GOALS: Dict[str, GoalTemplate] = {
    t.key: t
    for t in (
        GoalTemplate(
            "substack_newsletter",
            "a Substack newsletter issue",
            (
                "Open with a compelling headline and a one-paragraph hook.",
                "Use short sections with descriptive subheadings.",
                "Keep a warm, conversational first-person tone addressed to subscribers.",
                "Close with a brief takeaway and an invitation to reply or share.",
            ),
        ),
        GoalTemplate(
            "wordpress_blog",
            "a WordPress blog post",
            (
                "Write an SEO-friendly title and an introduction that states what the reader will learn.",
                "Structure the body with H2/H3 headings, short paragraphs and lists where useful.",
                "Keep the tone informative and approachable.",
                "End with a conclusion that summarises the key points.",
            ),
        ),
        GoalTemplate(
            "note",
            "a concise note",
            (
                "Be brief and factual; prefer bullet points.",
                "Capture decisions, facts and open questions only.",
            ),
        ),
        GoalTemplate(
            "book_article",
            "a long-form book chapter or article",
            (
                "Write in polished, literary prose with a clear narrative arc.",
                "Use chapter-style section headings.",
                "Develop ideas fully; do not compress the material into a summary.",
            ),
        ),
        GoalTemplate(
            "story_children",
            "a story for children",
            (
                "Use simple vocabulary and short sentences suitable for young readers.",
                "Keep the tone gentle, playful and positive.",
                "Give the story a clear beginning, middle and end.",
            ),
        ),
        GoalTemplate(
            "story_adults",
            "a story for adult readers",
            (
                "Use rich, vivid prose with developed characters and setting.",
                "Build tension and resolve it with a satisfying ending.",
            ),
        ),
        GoalTemplate(
            "proofreading",
            "a proofread version of the reference text",
            (
                "Correct spelling, grammar and punctuation only.",
                "Keep the author's wording, voice and structure; do not rewrite or reorder content.",
                "Do not add or remove information.",
            ),
        ),
        GoalTemplate(
            "translation",
            "a faithful translation of the reference text",
            (
                "Translate the full text faithfully; do not summarize or omit anything.",
                "Preserve headings, lists and paragraph structure.",
                "Keep names, numbers and quotations accurate.",
            ),
            requires_language=True,
        ),
        GoalTemplate(
            "substack_article",
            "a Substack article with engaging headlines, clear sections, and conversational tone",
            ("Use engaging headlines and clear sections.", "Keep a conversational tone."),
        ),
        GoalTemplate(
            "email",
            "a professional email with clear subject line, greeting, body paragraphs, and call-to-action",
            ("Start with a subject line.", "Keep paragraphs short and end with a clear call-to-action."),
        ),
        GoalTemplate(
            "report",
            "a formal report with executive summary, findings, analysis, and recommendations",
            ("Use a formal, neutral tone.", "Begin with an executive summary."),
        ),
        GoalTemplate(
            "research_summary",
            "a research summary with key findings, methodology overview, and implications",
            ("Lead with the key findings.", "Describe methodology briefly and state implications."),
        ),
    )
}

BASE_INSTRUCTIONS = (
    "1. READ AND USE ALL the reference text provided below - do not skip or summarize the source material",
    "2. Transform the raw extracted content into well-structured, polished {description}",
    "3. Preserve all key information, facts, data, and insights from the references",
    "4. Organize the content logically with appropriate headings and structure",
    "5. Use ONLY information present in the references - do not add external information",
    "6. If references contain tables or structured data, present them clearly",
)

_VOCAB_SPLIT = re.compile(r"\s*(?:->|=>|=)\s*")


def resolve_goal(goal: str) -> GoalTemplate:
    key = (goal or "").strip()
    if not key:
        raise InvalidRequest("goal is required")
    template = GOALS.get(key)
    if template:
        return template
    return GoalTemplate(key="other", description=key, rules=())


def parse_vocabulary(vocabulary: Iterable[str]) -> List[Tuple[str, Optional[str]]]:
    entries: List[Tuple[str, Optional[str]]] = []
    for raw in vocabulary or ():
        item = (raw or "").strip()
        if not item:
            continue
        parts = _VOCAB_SPLIT.split(item, maxsplit=1)
        if len(parts) == 2 and parts[0] and parts[1]:
            entries.append((parts[0], parts[1]))
        else:
            entries.append((item, None))
    return entries


def build_instructions(
    goal: str,
    llm_chat: str = "",
    vocabulary: Sequence[str] = (),
    target_language: Optional[str] = None,
) -> str:
    template = resolve_goal(goal)
    if template.requires_language and not target_language:
        raise InvalidRequest(f"Goal '{template.key}' requires a target language")

    lines = [
        "You are an expert content writer and editor. "
        f"Your task is to transform the provided reference materials into {template.description}.",
        "",
        "CRITICAL INSTRUCTIONS:",
    ]
    lines.extend(rule.format(description=template.description) for rule in BASE_INSTRUCTIONS)
    if template.rules:
        lines += ["", "GOAL-SPECIFIC RULES:"]
        lines.extend(f"- {rule}" for rule in template.rules)

    lines += ["", "LANGUAGE:"]
    if target_language:
        lines.append(f"Write the entire output in {target_language}.")
    else:
        lines.append("Write the output in the same language as the reference materials.")

    if llm_chat and llm_chat.strip():
        lines += ["", "ADDITIONAL USER REQUIREMENTS:", llm_chat.strip()]

    vocab = parse_vocabulary(vocabulary)
    if vocab:
        lines += ["", "PREFERRED VOCABULARY (apply consistently):"]
        for term, replacement in vocab:
            if replacement:
                lines.append(f'- Use "{replacement}" instead of "{term}"')
            else:
                lines.append(f'- Use the term "{term}" exactly as written')
    return "\n".join(lines)


def build_sources(references: Sequence[ReferenceRecord]) -> str:
    blocks: List[str] = []
    for reference in references:
        block = source_block(reference.display_name, reference.extracted_text or "")
        if reference.user_notes:
            block = f"Notes for this source: {reference.user_notes}\n{block}"
        blocks.append(block)
    return "\n\n".join(blocks)


def consolidate(
    goal: str,
    references: Sequence[ReferenceRecord],
    llm_chat: str = "",
    vocabulary: Sequence[str] = (),
    target_language: Optional[str] = None,
) -> str:
    if not references:
        raise NoReferencesAvailable("No reference files found")
    description = resolve_goal(goal).description
    return (
        f"{build_instructions(goal, llm_chat, vocabulary, target_language)}\n\n"
        "REFERENCE MATERIALS (USE ALL OF THIS CONTENT):\n\n"
        f"{build_sources(references)}\n\n"
        f"Now, create {description} using ALL the information provided above."
    )


@dataclass
class GenerationResult:
    raw_version_id: str
    draft_version_id: str
    status: str = "completed"


class DraftGenerator:
    def __init__(
        self,
        repository: IntakeRepository,
        access: AccessChecker,
        aggregator: StatusAggregator,
        model: GenerativeModel,
    ):
        self.repo = repository
        self.access = access
        self.aggregator = aggregator
        self.model = model

    def _usable_references(self, project_id: str, reference_ids: Sequence[str]) -> List[ReferenceRecord]:
        """
        Done references with text, optionally narrowed to ``reference_ids``.
        Jobs that no reference points at any more (lost dispatches that were
        retried, deleted references) do not hold up generation.
        """
        wanted = set(reference_ids or ())
        usable = [
            r
            for r in self.repo.list_references(project_id)
            if r.status == ReferenceStatus.DONE
            and (r.extracted_text or "").strip()
            and (not wanted or r.id in wanted)
        ]
        if not usable:
            raise NoReferencesAvailable("No reference files found")

        status = self.aggregator.snapshot(project_id)
        if status.pending_jobs:
            raise ExtractionPending(f"{status.pending_jobs} extraction job(s) still running")
        return usable

    def _event(self, project_id: str, user_id: str, details: dict) -> TimelineEventRecord:
        return TimelineEventRecord(
            id=str(uuid.uuid4()),
            project_id=project_id,
            event_type=TimelineEventType.VERSION_CREATED,
            event_details=details,
            user_id=user_id,
        )

    def generate_versions(
        self,
        project_id: str,
        user_id: str,
        goal: str,
        llm_chat: str = "",
        vocabulary: Sequence[str] = (),
        reference_ids: Sequence[str] = (),
        target_language: Optional[str] = None,
    ) -> GenerationResult:
        require_access(self.access, project_id, user_id)
        references = self._usable_references(project_id, reference_ids)

        consolidated = consolidate(goal, references, llm_chat, vocabulary, target_language)
        logger.info(
            "Generating %s draft for project %s from %d reference(s), %d chars",
            goal,
            project_id,
            len(references),
            len(consolidated),
        )
        draft = self.model.generate([text_part(consolidated)], temperature=DRAFT_TEMPERATURE)

        number = self.repo.next_version_number(project_id)
        description = resolve_goal(goal).description
        raw = VersionRecord(
            id=str(uuid.uuid4()),
            project_id=project_id,
            version_number=number,
            title=f"v{number} - {RAW_VERSION_MARKER}",
            description=f"Aggregated text from {len(references)} reference files",
            content=consolidated,
            created_by=user_id,
        )
        draft_version = VersionRecord(
            id=str(uuid.uuid4()),
            project_id=project_id,
            version_number=number + 1,
            title=f"v{number + 1} - Draft",
            description=f"AI-generated {description}",
            content=draft,
            created_by=user_id,
        )
        self.repo.save_versions(
            [raw, draft_version],
            [
                self._event(project_id, user_id, {"version": raw.version_number, "title": raw.title, "auto_generated": True}),
                self._event(
                    project_id,
                    user_id,
                    {"version": draft_version.version_number, "title": draft_version.title, "auto_generated": True, "goal": goal},
                ),
            ],
        )
        self.repo.update_project_metadata(
            project_id, {"goal": goal, "vocabulary": list(vocabulary or ()), "intake_completed": True}
        )
        return GenerationResult(raw_version_id=raw.id, draft_version_id=draft_version.id)

    def regenerate(
        self, project_id: str, user_id: str, consolidated_text: str, extra_instructions: str = ""
    ) -> VersionRecord:
        """Send an edited consolidated blob again and store the answer as a new draft."""
        require_access(self.access, project_id, user_id)
        if not consolidated_text or not consolidated_text.strip():
            raise InvalidRequest("consolidated_text is empty")
        prompt = consolidated_text
        if extra_instructions and extra_instructions.strip():
            prompt = f"{prompt}\n\nADDITIONAL INSTRUCTIONS FOR THIS REVISION:\n{extra_instructions.strip()}"
        draft = self.model.generate([text_part(prompt)], temperature=DRAFT_TEMPERATURE)

        number = self.repo.next_version_number(project_id)
        version = VersionRecord(
            id=str(uuid.uuid4()),
            project_id=project_id,
            version_number=number,
            title=f"v{number} - Draft (regenerated)",
            description="AI-regenerated draft",
            content=draft,
            created_by=user_id,
        )
        self.repo.save_versions(
            [version],
            [self._event(project_id, user_id, {"version": number, "title": version.title, "regenerated": True})],
        )
        return version

    def augment_raw_version(self, project_id: str, user_id: str, reference_id: str) -> str:
        require_access(self.access, project_id, user_id)
        reference = self.repo.get_reference(reference_id)
        if not reference or reference.project_id != project_id:
            raise NotFound(f"Reference file not found: {reference_id}")
        if reference.status != ReferenceStatus.DONE:
            raise InvalidRequest("Reference file not ready")
        version_id = append_to_raw_version(self.repo, project_id, reference.display_name, reference.extracted_text or "")
        if version_id is None:
            raise NotFound("Project has no raw version yet")
        self.repo.add_timeline_events(
            [
                TimelineEventRecord(
                    id=str(uuid.uuid4()),
                    project_id=project_id,
                    event_type=TimelineEventType.EDITED,
                    event_details={"action": "reference_added", "file_name": reference.display_name, "augmented_raw_version": True},
                    user_id=user_id,
                )
            ]
        )
        return version_id

    def list_versions(self, project_id: str, user_id: str) -> List[VersionRecord]:
        require_access(self.access, project_id, user_id)
        return self.repo.list_versions(project_id)

    def list_timeline(self, project_id: str, user_id: str) -> List[TimelineEventRecord]:
        require_access(self.access, project_id, user_id)
        return self.repo.list_timeline(project_id)
