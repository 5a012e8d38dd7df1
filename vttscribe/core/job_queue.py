"""
Job queue: manifest loading, queue building and the shared work queue
that every worker thread pops from.
"""

import json
import logging
import threading
from collections import deque
from pathlib import Path

from vttscribe.core.constants import DEFAULT_BATCH_SIZE, DEFAULT_MANIFEST_PATH
from vttscribe.core.models import Manifest, Section, VideoJob

logger = logging.getLogger(__name__)


# ── Manifest I/O ──────────────────────────────────────────────────────

def load_manifest(path: Path | None = None) -> Manifest:
    """Load the course manifest JSON written by the scraper."""
    manifest_path = path or DEFAULT_MANIFEST_PATH
    with open(manifest_path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return Manifest.from_dict(data)


def save_manifest(manifest: Manifest, path: Path | None = None):
    manifest_path = path or DEFAULT_MANIFEST_PATH
    manifest_path.parent.mkdir(parents=True, exist_ok=True)
    with open(manifest_path, 'w', encoding='utf-8') as f:
        json.dump(manifest.to_dict(), f, indent=2)


# ── Queue building ────────────────────────────────────────────────────

def find_section(manifest: Manifest, selector: str) -> Section | None:
    """
    Resolve a section by 1-based index ("3") or case-insensitive substring
    of its title ("networking"). First match wins.
    """
    selector = selector.strip()
    if selector.isdigit():
        index = int(selector)
        if 1 <= index <= len(manifest.sections):
            return manifest.sections[index - 1]
        return None

    target = selector.lower()
    for section in manifest.sections:
        if target in section.section_title.lower():
            return section
    return None


def _jobs_for_section(section: Section) -> list[VideoJob]:
    return [
        VideoJob(
            section_label=section.section_title,
            title=lecture.title,
            lecture_id=lecture.id,
            source_url=lecture.url,
        )
        for lecture in section.lectures
    ]


def build_job_queue(manifest: Manifest, section: str | None = None,
                    batch_size: int = DEFAULT_BATCH_SIZE) -> list[VideoJob]:
    """
    Flatten the manifest into an ordered job list.
    An explicit section is returned whole; batch_size only caps unfiltered runs.
    """
    if section:
        match = find_section(manifest, section)
        if match is None:
            logger.warning("No section matches %r", section)
            return []
        return _jobs_for_section(match)

    jobs: list[VideoJob] = []
    for s in manifest.sections:
        jobs.extend(_jobs_for_section(s))
    return jobs[:max(batch_size, 0)]


# ── Shared queue ──────────────────────────────────────────────────────

class JobQueue:
    """
    FIFO of pending jobs shared by all workers.
    pop_next() hands each job to exactly one caller.
    """

    def __init__(self, jobs: list[VideoJob]):
        self._items: deque[VideoJob] = deque(jobs)
        self._lock = threading.Lock()
        self.total = len(self._items)

    def pop_next(self) -> VideoJob | None:
        """Remove and return the head job, or None once drained."""
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
