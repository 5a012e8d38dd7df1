#!/usr/bin/env python3
"""
vttscribe v1.0.0: main entry point.

    vttscribe            bootstrap the session and drain the lecture queue
    vttscribe convert    rebuild transcripts from already-captured segments

Settings come from the JSON config (see vttscribe.core.config); login
credentials from the EMAIL / PASSWORD environment variables.
"""

import os
import sys
import logging
from datetime import datetime

from vttscribe.core.constants import APP_NAME, APP_VERSION, LOG_DIR
from vttscribe.core.config import AppConfig
from vttscribe.core.error_codes import AuthenticationError
from vttscribe.core.job_queue import build_job_queue, load_manifest
from vttscribe.core.output_writer import convert_stored_segments, write_run_summary
from vttscribe.core.pipeline import HlsCapturePipeline
from vttscribe.core.segment_store import SegmentStore
from vttscribe.core.session import TeachablePlatform, bootstrap_session
from vttscribe.core.worker_pool import WorkerPool

logger = logging.getLogger(APP_NAME)


def setup_logging():
    """Log to <data dir>/logs/app.log and the console."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    level = logging.DEBUG if os.environ.get("VTTSCRIBE_LOG_LEVEL", "").lower() == "debug" else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(LOG_DIR / "app.log", encoding="utf-8"),
            logging.StreamHandler(sys.stderr),
        ],
    )


def run_queue(config: AppConfig) -> int:
    """Full run: bootstrap → queue → pool → summary. Returns an exit code."""
    try:
        manifest = load_manifest(config.manifest_path)
    except (OSError, ValueError) as e:
        logger.error("Could not load manifest %s: %s", config.manifest_path, e)
        return 1

    jobs = build_job_queue(manifest, section=config.section, batch_size=config.batch_size)
    if not jobs:
        logger.warning("Nothing to process.")
        return 0
    logger.info("Queued %d lecture(s).", len(jobs))

    platform = TeachablePlatform(base_url=config.get('base_url'), login_url=config.get('login_url'))
    email, password = AppConfig.credentials_from_env()
    try:
        credentials = bootstrap_session(platform, email, password)
    except AuthenticationError as e:
        logger.critical("Aborting run: %s", e.message)
        return 1

    pipeline = HlsCapturePipeline(
        video_id_timeout=config.get('video_id_timeout_sec'),
        playback_timeout=config.get('playback_timeout_sec'),
    )
    pool = WorkerPool(
        pipeline,
        SegmentStore(config.segments_dir),
        config.output_root,
        concurrency=config.concurrency,
        stagger_sec=config.stagger_sec,
    )
    summary = pool.run(credentials, jobs)

    path = write_run_summary(summary, config.output_root)
    logger.info("Run summary written to %s", path)
    return 0 if summary.failed == 0 else 2


def run_convert(config: AppConfig, args: list[str]) -> int:
    force = "--force" in args
    video_ids = [a for a in args if not a.startswith("--")] or None
    store = SegmentStore(config.segments_dir)
    counts = convert_stored_segments(store, config.output_root, video_ids=video_ids, force=force)
    return 0 if counts['failed'] == 0 else 2


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    setup_logging()

    logger.info("=" * 60)
    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())
    logger.info("Python: %s", sys.executable)
    logger.info("=" * 60)

    config = AppConfig()
    try:
        if argv and argv[0] == "convert":
            return run_convert(config, argv[1:])
        return run_queue(config)
    except KeyboardInterrupt:
        logger.warning("Interrupted.")
        return 130
    except Exception as e:
        logger.critical("Fatal error: %s: %s", type(e).__name__, e, exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
