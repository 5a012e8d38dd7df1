"""
Data models (plain dataclasses) for vttscribe.
"""

from dataclasses import dataclass, field
from typing import Optional

from vttscribe.core.constants import JobStatus
from vttscribe.core.error_codes import is_retryable


@dataclass(frozen=True)
class Cue:
    start_ms: int
    end_ms: int
    text: str
    sequence_id: Optional[str] = None


# ── Manifest ──────────────────────────────────────────────────────────

@dataclass
class Lecture:
    id: str
    title: str
    url: str


@dataclass
class Section:
    section_title: str
    lectures: list[Lecture] = field(default_factory=list)


@dataclass
class Manifest:
    course_id: str = ""
    sections: list[Section] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Manifest":
        sections = []
        for raw_section in data.get('sections', []):
            lectures = [
                Lecture(id=str(l.get('id', '')), title=l.get('title', ''), url=l.get('url', ''))
                for l in raw_section.get('lectures', [])
            ]
            sections.append(Section(section_title=raw_section.get('section_title', ''),
                                    lectures=lectures))
        return cls(course_id=str(data.get('course_id', '')), sections=sections)

    def to_dict(self) -> dict:
        return {
            'course_id': self.course_id,
            'sections': [
                {
                    'section_title': s.section_title,
                    'lectures': [{'id': l.id, 'title': l.title, 'url': l.url} for l in s.lectures],
                }
                for s in self.sections
            ],
        }


# ── Jobs ──────────────────────────────────────────────────────────────

@dataclass
class VideoJob:
    section_label: str
    title: str
    lecture_id: str
    source_url: str
    discovered_video_id: Optional[str] = None

    def describe(self) -> str:
        return f"[{self.section_label}] {self.title}"


@dataclass(frozen=True)
class SessionCredentials:
    """Cookie bundle captured once per run. Never mutated after bootstrap."""
    base_url: str
    cookies: tuple[dict, ...] = ()


@dataclass
class PlaybackOutcome:
    video_id: Optional[str] = None
    finished: bool = False
    segments_captured: int = 0


@dataclass
class JobResult:
    job: VideoJob
    status: str
    outcome: Optional[str] = None
    output_path: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    worker_id: Optional[int] = None


@dataclass
class RunSummary:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failed_jobs: list[dict] = field(default_factory=list)
    results: list[JobResult] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: list[JobResult]) -> "RunSummary":
        failed = [r for r in results if r.status != JobStatus.COMPLETED]
        return cls(
            total=len(results),
            succeeded=len(results) - len(failed),
            failed=len(failed),
            failed_jobs=[
                {
                    'section': r.job.section_label,
                    'title': r.job.title,
                    'lecture_id': r.job.lecture_id,
                    'url': r.job.source_url,
                    'error_code': r.error_code,
                    'error_message': r.error_message,
                    'retryable': is_retryable(r.error_code),
                }
                for r in failed
            ],
            results=list(results),
        )

    def to_dict(self) -> dict:
        return {
            'total': self.total,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'failed_jobs': list(self.failed_jobs),
        }
