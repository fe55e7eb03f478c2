"""
Example: ingest local files, links and YouTube videos into a fresh project,
wait for extraction and generate a draft with Gemini.

Usage:
    GEMINI_API_KEY=... python3 intake_demo.py run --file notes.pdf --url https://example.com/post --goal wordpress_blog
    python3 intake_demo.py worker   # RQ worker for INTAKE_EXECUTOR=rq
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from draft_intake.intake import IntakeError, IntakeSettings, RQJobExecutor, build_pipeline
from draft_intake.intake.youtube import extract_video_id

logger = logging.getLogger("intake_demo")


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )


def run(args: argparse.Namespace, settings: IntakeSettings) -> int:
    pipeline = build_pipeline(settings, executor=args.executor)
    user_id = "local-user"
    project = pipeline.projects.create_project(user_id, args.title)
    print(f"Created project {project.id}")

    for path in args.file:
        result = pipeline.intake.upload_file(project.id, user_id, path.name, path.read_bytes())
        print(f"Queued {path.name} as job {result.job_id}")
    for url in args.url:
        if extract_video_id(url):
            result = pipeline.intake.add_youtube(project.id, user_id, url)
        else:
            result = pipeline.intake.add_link(project.id, user_id, url)
        print(f"Queued {url} as job {result.job_id}")
    if args.text:
        pipeline.intake.add_text(project.id, user_id, args.text)

    deadline = time.monotonic() + args.timeout
    with pipeline.subscribe(project.id) as subscription:
        status = subscription.refresh()
        while status.pending_jobs and time.monotonic() < deadline:
            time.sleep(1)
            status = subscription.refresh()
    pipeline.shutdown()
    print(f"Extraction: {status.done_references} done, {status.failed_references} failed")

    for reference in pipeline.repo.list_references(project.id):
        if reference.error_text:
            print(f"  {reference.display_name}: {reference.error_text}")

    result = pipeline.generator.generate_versions(
        project.id,
        user_id,
        args.goal,
        llm_chat=args.instructions or "",
        vocabulary=args.vocabulary,
        target_language=args.language,
    )
    draft = pipeline.repo.get_version(result.draft_version_id)
    print(f"Draft version {draft.title}:\n")
    print(draft.content)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--db", default=None, type=Path, help="SQLite DB path (overrides DATABASE_URL)")
    parser.add_argument("--storage-root", default=None, type=Path, help="Blob storage root")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Ingest sources and generate a draft")
    run_parser.add_argument("--title", default="Demo project")
    run_parser.add_argument("--file", action="append", type=Path, default=[], help="Local file to upload")
    run_parser.add_argument("--url", action="append", default=[], help="Web page or YouTube link")
    run_parser.add_argument("--text", default=None, help="Pasted text")
    run_parser.add_argument("--goal", default="note")
    run_parser.add_argument("--instructions", default=None, help="Additional requirements for the model")
    run_parser.add_argument("--vocabulary", action="append", default=[], help='Preferred term, e.g. "AI -> artificial intelligence"')
    run_parser.add_argument("--language", default=None, help="Target language")
    run_parser.add_argument("--executor", default="thread", choices=["inline", "thread", "rq"])
    run_parser.add_argument("--timeout", default=600.0, type=float, help="Seconds to wait for extraction")

    sub.add_parser("worker", help="Run an RQ worker for the extraction queue")
    args = parser.parse_args()

    setup_logging(args.verbose)
    settings = IntakeSettings.from_env()
    if args.db:
        settings.database_url = f"sqlite+pysqlite:///{args.db}"
    if args.storage_root:
        settings.blob_storage_root = str(args.storage_root)

    if args.command == "worker":
        RQJobExecutor(settings).work()
        return 0

    missing = [p for p in args.file if not p.exists()]
    if missing:
        raise FileNotFoundError(f"File not found: {missing[0]}")
    try:
        return run(args, settings)
    except IntakeError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
