"""
Output writer: transcript files, the run summary, and batch conversion of
already-captured segments.
"""

import json
import logging
from pathlib import Path

from vttscribe.core.constants import (
    TRANSCRIPT_SUFFIX, RUN_SUMMARY_FILENAME, UNKNOWN_LECTURE_TITLE,
)
from vttscribe.core.models import RunSummary, VideoJob
from vttscribe.core.security_utils import safe_output_path, sanitize_filename
from vttscribe.core.segment_store import SegmentStore
from vttscribe.core.transcript_assembler import assemble_video

logger = logging.getLogger(__name__)


def lecture_label(job: VideoJob) -> str:
    """Lecture title, or lecture_<id> when the scraper found none."""
    if job.title and job.title != UNKNOWN_LECTURE_TITLE:
        return job.title
    return f"lecture_{job.lecture_id}"


def transcript_path(output_root: Path, job: VideoJob) -> Path:
    """<OutputRoot>/<Section>/<Lecture>.txt, stable for the same job."""
    fallback = f"lecture_{sanitize_filename(job.lecture_id) or 'unknown'}"
    path = safe_output_path(output_root, job.section_label, lecture_label(job), fallback)
    return path.with_name(path.name + TRANSCRIPT_SUFFIX)


def write_transcript(text: str, path: Path) -> Path:
    """Write transcript text, replacing any earlier run's file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding='utf-8')
    logger.info("Wrote transcript: %s", path)
    return path


def write_run_summary(summary: RunSummary, output_root: Path) -> Path:
    """Persist the machine-readable run summary next to the transcripts."""
    output_root.mkdir(parents=True, exist_ok=True)
    path = output_root / RUN_SUMMARY_FILENAME
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(summary.to_dict(), f, indent=2)
    return path


def transcript_exists(output_root: Path, video_id: str) -> bool:
    return (output_root / f"{sanitize_filename(video_id)}{TRANSCRIPT_SUFFIX}").exists()


def convert_stored_segments(store: SegmentStore, output_root: Path,
                            video_ids: list[str] | None = None,
                            force: bool = False) -> dict:
    """
    Re-assemble transcripts from segments already on disk, one
    <OutputRoot>/<video_id>.txt per video. Existing files are skipped
    unless force is set.
    """
    ids = video_ids if video_ids is not None else store.video_ids()
    counts = {'converted': 0, 'skipped': 0, 'failed': 0}

    if not ids:
        logger.warning("No VTT segments found to convert.")
        return counts

    logger.info("Found %d video(s) to convert.", len(ids))

    for video_id in ids:
        if transcript_exists(output_root, video_id) and not force:
            logger.info("[skip] %s — transcript already exists", video_id)
            counts['skipped'] += 1
            continue

        text = assemble_video(store, video_id)
        if text is None:
            logger.warning("[failed] %s — no segments or nothing to assemble", video_id)
            counts['failed'] += 1
            continue

        out = output_root / f"{sanitize_filename(video_id)}{TRANSCRIPT_SUFFIX}"
        try:
            write_transcript(text, out)
        except OSError as e:
            logger.error("[failed] %s — %s", video_id, e)
            counts['failed'] += 1
            continue
        counts['converted'] += 1

    logger.info("Conversion complete: %d converted, %d skipped, %d failed.",
                counts['converted'], counts['skipped'], counts['failed'])
    return counts
