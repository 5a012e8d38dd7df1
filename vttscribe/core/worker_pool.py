"""
Worker pool: N threads, each with its own seeded session, draining one
shared JobQueue. A failing job is recorded and the worker moves on; only the
bootstrap (done before the pool exists) can abort a run.
"""

import logging
import threading
from pathlib import Path
from typing import Callable

import requests

from vttscribe.core.capture import SegmentCapture
from vttscribe.core.constants import (
    JobStatus, JobOutcome, WorkerState, ErrorCode,
    DEFAULT_CONCURRENCY, STAGGER_SEC,
)
from vttscribe.core.error_codes import JobError
from vttscribe.core.job_queue import JobQueue
from vttscribe.core.models import JobResult, RunSummary, SessionCredentials, VideoJob
from vttscribe.core.output_writer import transcript_path, write_transcript
from vttscribe.core.pipeline import JobPipeline
from vttscribe.core.segment_store import SegmentStore
from vttscribe.core.session import seed_session
from vttscribe.core.transcript_assembler import assemble_video

logger = logging.getLogger(__name__)


class WorkerPool:
    """
    Spawns `concurrency` workers staggered by `stagger_sec` each. Every worker
    gets an independent session from `session_factory(credentials)` and
    releases it when the queue is empty, on stop, or on error.
    """

    def __init__(self, pipeline: JobPipeline, store: SegmentStore, output_root: Path,
                 concurrency: int = DEFAULT_CONCURRENCY,
                 stagger_sec: float = STAGGER_SEC,
                 session_factory: Callable[[SessionCredentials], requests.Session] = seed_session):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.pipeline = pipeline
        self.store = store
        self.output_root = Path(output_root)
        self.concurrency = concurrency
        self.stagger_sec = stagger_sec
        self.session_factory = session_factory

        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._results: list[JobResult] = []
        self.worker_states: dict[int, str] = {}

    # ── Control ───────────────────────────────────────────────────────

    def stop(self):
        """
        Finish the current jobs, pop nothing new, release every context.
        Only affects the run in progress; the next run() starts clean.
        """
        self._stop_event.set()

    def start_delay(self, worker_id: int) -> float:
        return worker_id * self.stagger_sec

    def _set_state(self, worker_id: int, state: str):
        with self._lock:
            self.worker_states[worker_id] = state

    def _record(self, result: JobResult):
        with self._lock:
            self._results.append(result)

    # ── Run ───────────────────────────────────────────────────────────

    def run(self, credentials: SessionCredentials, jobs: list[VideoJob]) -> RunSummary:
        """Drain `jobs` with the pool and return once every worker has closed."""
        queue = JobQueue(jobs)
        self._stop_event.clear()
        self._results = []
        self.worker_states = {}

        logger.info("Spawning %d worker(s) for %d job(s)...", self.concurrency, queue.total)

        threads = []
        for worker_id in range(self.concurrency):
            self._set_state(worker_id, WorkerState.STARTING)
            t = threading.Thread(
                target=self._worker_loop,
                args=(worker_id, credentials, queue),
                name=f"worker-{worker_id}",
                daemon=True,
            )
            threads.append(t)
            t.start()

        try:
            for t in threads:
                while t.is_alive():
                    t.join(0.5)
        except KeyboardInterrupt:
            logger.warning("Interrupted — waiting for workers to release their sessions...")
            self.stop()
            for t in threads:
                t.join()
            raise

        # Anything still queued was never attempted (stop requested, or no
        # worker could open a session)
        while True:
            job = queue.pop_next()
            if job is None:
                break
            self._record(JobResult(job=job, status=JobStatus.FAILED,
                                   error_code=ErrorCode.NOT_PROCESSED,
                                   error_message="Job was not processed"))

        summary = RunSummary.from_results(self._results)
        self._log_summary(summary)
        return summary

    def _worker_loop(self, worker_id: int, credentials: SessionCredentials, queue: JobQueue):
        """Starting → Seeded → Draining → Closed."""
        delay = self.start_delay(worker_id)
        if delay > 0 and self._stop_event.wait(delay):
            self._set_state(worker_id, WorkerState.CLOSED)
            return

        try:
            context = self.session_factory(credentials)
        except Exception as e:
            logger.error("[Worker %d] Could not create session: %s", worker_id, e, exc_info=True)
            self._set_state(worker_id, WorkerState.CLOSED)
            return

        self._set_state(worker_id, WorkerState.SEEDED)
        try:
            self._set_state(worker_id, WorkerState.DRAINING)
            while not self._stop_event.is_set():
                job = queue.pop_next()
                if job is None:
                    break
                logger.info("[Worker %d] → %s", worker_id, job.describe())
                self._record(self._process_job(worker_id, context, job))
        finally:
            context.close()
            self._set_state(worker_id, WorkerState.CLOSED)
            logger.debug("[Worker %d] Closed", worker_id)

    # ── Per-job pipeline ──────────────────────────────────────────────

    def _process_job(self, worker_id: int, context: requests.Session, job: VideoJob) -> JobResult:
        """Capture, assemble and write one job. Never raises."""
        capture = SegmentCapture(self.store)
        try:
            outcome = self.pipeline.run(context, job, capture)

            video_id = outcome.video_id or capture.video_id
            if not video_id:
                raise JobError(ErrorCode.VIDEO_ID_NOT_FOUND,
                               f"Video ID not captured for {job.describe()}")
            job.discovered_video_id = video_id

            if outcome.finished:
                outcome_label = JobOutcome.FINISHED
            else:
                # Bounded wait ran out: keep whatever was captured
                outcome_label = JobOutcome.TIMED_OUT
                logger.warning("[Worker %d] [%s] Playback did not finish in time, "
                               "assembling captured segments", worker_id, video_id)

            segment_count = len(self.store.list(video_id))
            if segment_count == 0:
                raise JobError(ErrorCode.NO_SEGMENTS, f"No subtitle segments for video {video_id}")

            text = assemble_video(self.store, video_id)
            if text is None:
                raise JobError(ErrorCode.EMPTY_TRANSCRIPT, f"No transcript produced for video {video_id}")

            path = transcript_path(self.output_root, job)
            try:
                write_transcript(text, path)
            except OSError as e:
                raise JobError(ErrorCode.OUTPUT_WRITE_FAILED, f"Could not write {path}: {e}") from e

            logger.info("[Worker %d] ✓ Done: %s (%d segments)", worker_id, path.stem, segment_count)
            return JobResult(job=job, status=JobStatus.COMPLETED, outcome=outcome_label,
                             output_path=str(path), worker_id=worker_id)

        except JobError as e:
            logger.warning("[Worker %d] ✗ %s: %s", worker_id, job.describe(), e.message)
            return JobResult(job=job, status=JobStatus.FAILED, outcome=e.code,
                             error_code=e.code, error_message=e.message[:2000],
                             worker_id=worker_id)
        except Exception as e:
            logger.error("[Worker %d] Error on %s: %s", worker_id, job.describe(), e, exc_info=True)
            return JobResult(job=job, status=JobStatus.FAILED, outcome=ErrorCode.UNEXPECTED,
                             error_code=ErrorCode.UNEXPECTED, error_message=str(e)[:2000],
                             worker_id=worker_id)

    def _log_summary(self, summary: RunSummary):
        logger.info("=" * 40)
        logger.info("Run complete: %d/%d lectures succeeded.", summary.succeeded, summary.total)
        if summary.failed:
            logger.warning("%d lecture(s) failed or were skipped:", summary.failed)
            for item in summary.failed_jobs:
                logger.warning("  - [%s] %s (%s) %s%s", item['section'], item['title'],
                               item['lecture_id'], item['error_code'],
                               " (retryable)" if item['retryable'] else "")
        logger.info("=" * 40)
