#!/usr/bin/env python3
"""
Tests for the concurrent side of vttscribe: worker pool, session bootstrap
and the HLS capture pipeline. No network access; sessions are fakes.
"""

import sys
import tempfile
import threading
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest
from unittest import mock

import requests

from vttscribe.core.constants import ErrorCode, JobOutcome, JobStatus, WorkerState
from vttscribe.core.capture import SegmentCapture
from vttscribe.core.error_codes import AuthenticationError, JobError
from vttscribe.core.models import PlaybackOutcome, SessionCredentials, VideoJob
from vttscribe.core.pipeline import (
    HlsCapturePipeline, JobPipeline, find_subtitle_playlist, list_playlist_segments,
)
from vttscribe.core.segment_store import SegmentStore
from vttscribe.core.session import (
    Platform, TeachablePlatform, bootstrap_session, seed_session,
)
from vttscribe.core.worker_pool import WorkerPool

CREDENTIALS = SessionCredentials(
    base_url="https://learn.example.com",
    cookies=({'name': '_session', 'value': 'abc', 'domain': 'learn.example.com',
              'path': '/', 'secure': True},),
)


def segment_url(video_id: str, n: int) -> str:
    return (f"https://vod-akm.play.hotmart.com/video/{video_id}/hls/"
            f"{video_id}-1700000000000-textstream_eng=1000-{n}.webvtt")


def segment_body(start: str, text: str) -> bytes:
    return f"WEBVTT\n\n{start} --> 00:59:59.000\n{text}\n".encode()


def make_jobs(count: int) -> list[VideoJob]:
    return [VideoJob("Section", f"Lecture {i}", str(i), f"https://learn.example.com/l/{i}")
            for i in range(count)]


class FakeContext:
    """Stands in for a worker's requests.Session."""

    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class ContextFactory:
    def __init__(self):
        self._lock = threading.Lock()
        self.created: list[FakeContext] = []

    def __call__(self, credentials):
        ctx = FakeContext()
        with self._lock:
            self.created.append(ctx)
        return ctx


class ScriptedPipeline(JobPipeline):
    """
    Emits one English segment per job (video id v<lecture_id>) unless the
    lecture id is listed in one of the failure sets.
    """

    def __init__(self, raise_for=(), no_video_for=(), empty_for=(), timeout_for=()):
        self.raise_for = set(raise_for)
        self.no_video_for = set(no_video_for)
        self.empty_for = set(empty_for)
        self.timeout_for = set(timeout_for)
        self._lock = threading.Lock()
        self.seen: list[str] = []

    def run(self, context, job, capture):
        with self._lock:
            self.seen.append(job.lecture_id)
        if job.lecture_id in self.raise_for:
            raise RuntimeError("player crashed")
        if job.lecture_id in self.no_video_for:
            return PlaybackOutcome(finished=False)

        video_id = f"v{job.lecture_id}"
        if job.lecture_id in self.empty_for:
            capture.handle_response(segment_url(video_id, 1), 200, b"WEBVTT\n\n")
        else:
            capture.handle_response(segment_url(video_id, 1), 200,
                                    segment_body("00:00:01.000", f"Transcript of {job.title}."))
        return PlaybackOutcome(video_id=capture.video_id,
                               finished=job.lecture_id not in self.timeout_for,
                               segments_captured=capture.segments_captured)


class TestWorkerPool(unittest.TestCase):
    """Test queue draining, failure isolation and context release."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.store = SegmentStore(root / "segments")
        self.output_root = root / "out"
        self.factory = ContextFactory()

    def tearDown(self):
        self._tmp.cleanup()

    def make_pool(self, pipeline, concurrency):
        return WorkerPool(pipeline, self.store, self.output_root, concurrency=concurrency,
                          stagger_sec=0, session_factory=self.factory)

    def test_more_workers_than_jobs(self):
        pipeline = ScriptedPipeline()
        pool = self.make_pool(pipeline, 3)
        summary = pool.run(CREDENTIALS, make_jobs(1))

        self.assertEqual(summary.total, 1)
        self.assertEqual(summary.succeeded, 1)
        self.assertEqual(pipeline.seen, ["0"])
        self.assertEqual(len(self.factory.created), 3)
        self.assertTrue(all(ctx.closed for ctx in self.factory.created))
        self.assertEqual(set(pool.worker_states.values()), {WorkerState.CLOSED})

        result = summary.results[0]
        self.assertEqual(result.outcome, JobOutcome.FINISHED)
        self.assertEqual(Path(result.output_path).read_text(), "Transcript of Lecture 0.")
        self.assertEqual(result.job.discovered_video_id, "v0")

    def test_every_job_processed_exactly_once(self):
        pipeline = ScriptedPipeline()
        summary = self.make_pool(pipeline, 4).run(CREDENTIALS, make_jobs(25))

        self.assertEqual(summary.total, 25)
        self.assertEqual(summary.succeeded, 25)
        self.assertEqual(sorted(pipeline.seen, key=int), [str(i) for i in range(25)])
        ids = [r.job.lecture_id for r in summary.results]
        self.assertEqual(len(ids), len(set(ids)))

    def test_failing_job_does_not_halt_pool(self):
        pipeline = ScriptedPipeline(raise_for={"1"}, no_video_for={"2"}, empty_for={"3"})
        summary = self.make_pool(pipeline, 2).run(CREDENTIALS, make_jobs(6))

        self.assertEqual(summary.total, 6)
        self.assertEqual(summary.succeeded, 3)
        self.assertEqual(summary.failed, 3)
        codes = {item['lecture_id']: item['error_code'] for item in summary.failed_jobs}
        self.assertEqual(codes, {
            "1": ErrorCode.UNEXPECTED,
            "2": ErrorCode.VIDEO_ID_NOT_FOUND,
            "3": ErrorCode.EMPTY_TRANSCRIPT,
        })
        retryable = {item['lecture_id']: item['retryable'] for item in summary.failed_jobs}
        self.assertEqual(retryable, {"1": False, "2": True, "3": False})
        self.assertTrue(all(ctx.closed for ctx in self.factory.created))

    def test_contexts_released_when_every_job_fails(self):
        pipeline = ScriptedPipeline(raise_for={"0", "1", "2"})
        summary = self.make_pool(pipeline, 2).run(CREDENTIALS, make_jobs(3))
        self.assertEqual(summary.failed, 3)
        self.assertEqual(len(self.factory.created), 2)
        self.assertTrue(all(ctx.closed for ctx in self.factory.created))

    def test_timed_out_job_still_writes_transcript(self):
        pipeline = ScriptedPipeline(timeout_for={"0"})
        summary = self.make_pool(pipeline, 1).run(CREDENTIALS, make_jobs(1))
        result = summary.results[0]
        self.assertEqual(result.status, JobStatus.COMPLETED)
        self.assertEqual(result.outcome, JobOutcome.TIMED_OUT)

    def test_no_segments_failure(self):
        class NoSegmentPipeline(JobPipeline):
            def run(self, context, job, capture):
                capture.observe_url("https://cdn/video/vx/hls/master.m3u8")
                return PlaybackOutcome(video_id=capture.video_id, finished=True)

        summary = self.make_pool(NoSegmentPipeline(), 1).run(CREDENTIALS, make_jobs(1))
        self.assertEqual(summary.failed_jobs[0]['error_code'], ErrorCode.NO_SEGMENTS)

    def test_empty_queue(self):
        summary = self.make_pool(ScriptedPipeline(), 2).run(CREDENTIALS, [])
        self.assertEqual(summary.total, 0)
        self.assertTrue(all(ctx.closed for ctx in self.factory.created))

    def test_stop_mid_run_leaves_rest_unprocessed(self):
        class StoppingPipeline(ScriptedPipeline):
            def run(self, context, job, capture):
                pool.stop()
                return super().run(context, job, capture)

        pipeline = StoppingPipeline()
        pool = self.make_pool(pipeline, 1)
        summary = pool.run(CREDENTIALS, make_jobs(3))

        self.assertEqual(pipeline.seen, ["0"])
        self.assertEqual(summary.succeeded, 1)
        self.assertEqual(summary.failed, 2)
        self.assertTrue(all(item['error_code'] == ErrorCode.NOT_PROCESSED and item['retryable']
                            for item in summary.failed_jobs))
        self.assertTrue(all(ctx.closed for ctx in self.factory.created))

    def test_pool_reusable_after_stop(self):
        pipeline = ScriptedPipeline()
        pool = self.make_pool(pipeline, 2)
        pool.stop()
        summary = pool.run(CREDENTIALS, make_jobs(3))

        self.assertEqual(summary.succeeded, 3)
        self.assertEqual(sorted(pipeline.seen), ["0", "1", "2"])

    def test_session_factory_failure(self):
        def broken_factory(credentials):
            raise RuntimeError("cannot open context")

        pool = WorkerPool(ScriptedPipeline(), self.store, self.output_root, concurrency=2,
                          stagger_sec=0, session_factory=broken_factory)
        summary = pool.run(CREDENTIALS, make_jobs(2))
        self.assertEqual(summary.failed, 2)
        self.assertEqual(set(pool.worker_states.values()), {WorkerState.CLOSED})

    def test_stagger_delay(self):
        pool = WorkerPool(ScriptedPipeline(), self.store, self.output_root,
                          concurrency=3, stagger_sec=3.0)
        self.assertEqual([pool.start_delay(i) for i in range(3)], [0.0, 3.0, 6.0])

    def test_invalid_concurrency(self):
        with self.assertRaises(ValueError):
            WorkerPool(ScriptedPipeline(), self.store, self.output_root, concurrency=0)


class FakePlatform(Platform):
    name = "Fake"

    def __init__(self, already_in=False, login_ok=True, network_error=False):
        self.already_in = already_in
        self.login_ok = login_ok
        self.network_error = network_error
        self.login_calls = 0

    @property
    def base_url(self):
        return "https://learn.example.com/courses/1"

    def is_authenticated(self, session):
        if self.network_error:
            raise requests.exceptions.ConnectionError("unreachable")
        return self.already_in

    def authenticate(self, session, email, password):
        self.login_calls += 1
        if self.login_ok:
            session.cookies.set('_session', 'token-1', domain='learn.example.com', path='/')
        return self.login_ok

    def scrape_manifest(self, session, course_id):
        raise NotImplementedError


class TestSession(unittest.TestCase):
    """Test bootstrap and per-worker seeding."""

    def test_bootstrap_captures_cookies(self):
        creds = bootstrap_session(FakePlatform(), "me@example.com", "secret")
        self.assertEqual(creds.base_url, "https://learn.example.com")
        self.assertEqual([c['name'] for c in creds.cookies], ['_session'])
        self.assertEqual(creds.cookies[0]['value'], 'token-1')

    def test_already_authenticated_skips_login(self):
        platform = FakePlatform(already_in=True)
        bootstrap_session(platform, "", "")
        self.assertEqual(platform.login_calls, 0)

    def test_missing_credentials(self):
        with self.assertRaises(AuthenticationError) as ctx:
            bootstrap_session(FakePlatform(), "", "")
        self.assertEqual(ctx.exception.code, ErrorCode.AUTH_FAILED)

    def test_rejected_login(self):
        with self.assertRaises(AuthenticationError):
            bootstrap_session(FakePlatform(login_ok=False), "me@example.com", "wrong")

    def test_network_error_is_authentication_error(self):
        with self.assertRaises(AuthenticationError):
            bootstrap_session(FakePlatform(network_error=True), "me@example.com", "secret")

    def test_seeded_sessions_are_independent(self):
        first = seed_session(CREDENTIALS)
        second = seed_session(CREDENTIALS)
        try:
            self.assertEqual(first.cookies.get('_session'), 'abc')
            first.cookies.set('_session', 'changed', domain='learn.example.com', path='/')
            self.assertEqual(second.cookies.get('_session'), 'abc')
            self.assertEqual(CREDENTIALS.cookies[0]['value'], 'abc')
            self.assertEqual(first.headers['Referer'], "https://learn.example.com")
        finally:
            first.close()
            second.close()

    def test_teachable_login_redirect_means_anonymous(self):
        platform = TeachablePlatform(base_url="https://learn.example.com/")
        session = mock.MagicMock()
        session.get.return_value = mock.MagicMock(url="https://sso.teachable.com/secure/1/identity/login")
        self.assertFalse(platform.is_authenticated(session))
        session.get.return_value = mock.MagicMock(url="https://learn.example.com/courses/enrolled")
        self.assertTrue(platform.is_authenticated(session))

    def test_teachable_authenticate_posts_form(self):
        platform = TeachablePlatform(base_url="https://learn.example.com/",
                                     login_url="https://sso.example.com/login")
        session = mock.MagicMock()
        form = mock.MagicMock(text='<input name="authenticity_token" value="tok123">')
        home = mock.MagicMock(url="https://learn.example.com/courses")
        session.get.side_effect = [form, home]
        session.post.return_value = mock.MagicMock(status_code=200)

        self.assertTrue(platform.authenticate(session, "me@example.com", "secret"))
        payload = session.post.call_args.kwargs['data']
        self.assertEqual(payload['authenticity_token'], "tok123")
        self.assertEqual(payload['email'], "me@example.com")


class FakeResponse:
    def __init__(self, url, status_code=200, text=""):
        self.url = url
        self.status_code = status_code
        self.text = text
        self.content = text.encode()


class FakeHttp:
    """Serves canned pages by URL; unknown URLs are 404s."""

    def __init__(self, pages):
        self.pages = pages
        self.requested: list[str] = []

    def get(self, url, timeout=None):
        self.requested.append(url)
        status, text = self.pages.get(url, (404, ""))
        return FakeResponse(url, status, text)

    def close(self):
        pass


HLS_BASE = "https://vod-akm.play.hotmart.com/video/VID123/hls/"
MASTER_URL = HLS_BASE + "master.m3u8?token=abc"
SUBS_URL = HLS_BASE + "VID123-textstream_eng=1000.m3u8"

MASTER = """#EXTM3U
#EXT-X-MEDIA:TYPE=SUBTITLES,GROUP-ID="subs",NAME="Portugues",LANGUAGE="pt",URI="VID123-textstream_por=1000.m3u8"
#EXT-X-MEDIA:TYPE=SUBTITLES,GROUP-ID="subs",NAME="English",LANGUAGE="en",URI="VID123-textstream_eng=1000.m3u8"
#EXT-X-STREAM-INF:BANDWIDTH=1000,SUBTITLES="subs"
VID123-video=1000.m3u8
"""

SUBS = """#EXTM3U
#EXTINF:60,
VID123-textstream_eng=1000-1.webvtt
#EXTINF:60,
VID123-textstream_eng=1000-2.webvtt
#EXT-X-ENDLIST
"""


def hls_pages():
    return {
        "https://learn.example.com/l/1": (
            200, '<div><iframe class="player" src="https://player.hotmart.com/embed/VID123"></iframe></div>'),
        "https://player.hotmart.com/embed/VID123": (
            200, f'<script>var src = "{MASTER_URL}";</script>'),
        MASTER_URL: (200, MASTER),
        SUBS_URL: (200, SUBS),
        HLS_BASE + "VID123-textstream_eng=1000-1.webvtt": (
            200, "WEBVTT\n\n00:00:01.000 --> 00:00:04.000\nFirst segment.\n"),
        HLS_BASE + "VID123-textstream_eng=1000-2.webvtt": (
            200, "WEBVTT\n\n00:01:01.000 --> 00:01:04.000\nSecond segment.\n"),
    }


class TestHlsCapturePipeline(unittest.TestCase):
    """Test playlist discovery and segment capture against canned responses."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SegmentStore(Path(self._tmp.name))
        self.job = VideoJob("Intro", "Welcome", "1", "https://learn.example.com/l/1")

    def tearDown(self):
        self._tmp.cleanup()

    def test_subtitle_playlist_prefers_english(self):
        self.assertEqual(find_subtitle_playlist(MASTER, MASTER_URL), SUBS_URL)

    def test_list_playlist_segments(self):
        urls = list_playlist_segments(SUBS, SUBS_URL)
        self.assertEqual(urls, [HLS_BASE + "VID123-textstream_eng=1000-1.webvtt",
                                HLS_BASE + "VID123-textstream_eng=1000-2.webvtt"])

    def test_captures_all_segments(self):
        http = FakeHttp(hls_pages())
        capture = SegmentCapture(self.store)
        outcome = HlsCapturePipeline().run(http, self.job, capture)

        self.assertTrue(outcome.finished)
        self.assertEqual(outcome.video_id, "VID123")
        self.assertEqual(outcome.segments_captured, 2)
        self.assertEqual(self.store.list("VID123"),
                         ["VID123-textstream_eng=1000-1", "VID123-textstream_eng=1000-2"])

    def test_no_playlist_means_no_video_id(self):
        http = FakeHttp({"https://learn.example.com/l/1": (200, "<p>no player here</p>")})
        outcome = HlsCapturePipeline().run(http, self.job, SegmentCapture(self.store))
        self.assertFalse(outcome.finished)
        self.assertIsNone(outcome.video_id)

    def test_wait_bound_exceeded(self):
        http = FakeHttp(hls_pages())
        pipeline = HlsCapturePipeline(playback_timeout=-1)
        outcome = pipeline.run(http, self.job, SegmentCapture(self.store))
        self.assertFalse(outcome.finished)
        self.assertEqual(outcome.video_id, "VID123")
        self.assertEqual(outcome.segments_captured, 0)

    def test_network_error_becomes_job_error(self):
        http = mock.MagicMock()
        http.get.side_effect = requests.exceptions.Timeout("slow")
        with self.assertRaises(JobError) as ctx:
            HlsCapturePipeline().run(http, self.job, SegmentCapture(self.store))
        self.assertEqual(ctx.exception.code, ErrorCode.NETWORK)

    def test_pipeline_through_pool(self):
        pages = hls_pages()
        out = Path(self._tmp.name) / "out"
        pool = WorkerPool(HlsCapturePipeline(), self.store, out, concurrency=2,
                          stagger_sec=0, session_factory=lambda creds: FakeHttp(pages))
        summary = pool.run(CREDENTIALS, [self.job])

        self.assertEqual(summary.succeeded, 1)
        text = (out / "Intro" / "Welcome.txt").read_text()
        self.assertEqual(text, "First segment.\n\nSecond segment.")


if __name__ == "__main__":
    unittest.main()
