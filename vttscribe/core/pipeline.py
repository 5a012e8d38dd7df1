"""
Per-job pipeline: everything between "job popped" and "segments captured".

JobPipeline is the boundary the worker pool drives. HlsCapturePipeline is a
browser-free implementation: it finds the lecture's HLS stream, follows the
English subtitle rendition and requests every WebVTT segment, which makes
the capture fire for the whole timeline without real-time playback.
"""

import re
import time
import logging
from abc import ABC, abstractmethod
from urllib.parse import urljoin

import requests

from vttscribe.core.capture import SegmentCapture
from vttscribe.core.constants import (
    ErrorCode, HTTP_TIMEOUT_SEC, PLAYBACK_TIMEOUT_SEC, VIDEO_ID_TIMEOUT_SEC,
)
from vttscribe.core.error_codes import JobError
from vttscribe.core.models import PlaybackOutcome, VideoJob

logger = logging.getLogger(__name__)

_PLAYLIST_URL_RE = re.compile(r'https?://[^\s"\'<>]+/video/[^/\s"\'<>]+/hls/[^\s"\'<>]*?\.m3u8[^\s"\'<>]*')
_IFRAME_SRC_RE = re.compile(r'<iframe[^>]+src="([^"]+)"', re.IGNORECASE)
_MEDIA_ATTR_RE = re.compile(r'([A-Z0-9-]+)=("[^"]*"|[^,]*)')

FRAME_URL_PATTERNS = ("hotmart", "wistia", "player")


class JobPipeline(ABC):
    """Drives one job until its subtitle segments have been captured."""

    @abstractmethod
    def run(self, context: requests.Session, job: VideoJob,
            capture: SegmentCapture) -> PlaybackOutcome:
        """
        Cause the capture to fire for `job` using the worker's `context`.
        Must return once playback ended or the bounded wait ran out.
        """


def parse_media_attributes(line: str) -> dict[str, str]:
    """Parse the attribute list of an #EXT-X-MEDIA tag."""
    _, _, attrs = line.partition(':')
    return {k: v.strip('"') for k, v in _MEDIA_ATTR_RE.findall(attrs)}


def find_subtitle_playlist(master: str, base_url: str) -> str | None:
    """Pick the English subtitle rendition from an HLS master playlist."""
    fallback = None
    for line in master.splitlines():
        if not line.startswith('#EXT-X-MEDIA:'):
            continue
        attrs = parse_media_attributes(line)
        if attrs.get('TYPE') != 'SUBTITLES' or not attrs.get('URI'):
            continue
        uri = urljoin(base_url, attrs['URI'])
        language = attrs.get('LANGUAGE', '').lower()
        if language.startswith('en') or 'textstream_eng' in uri:
            return uri
        fallback = fallback or uri
    return fallback


def list_playlist_segments(playlist: str, base_url: str) -> list[str]:
    """Absolute segment URLs of a media playlist, in order."""
    return [
        urljoin(base_url, line.strip())
        for line in playlist.splitlines()
        if line.strip() and not line.startswith('#')
    ]


class HlsCapturePipeline(JobPipeline):

    def __init__(self, video_id_timeout: float = VIDEO_ID_TIMEOUT_SEC,
                 playback_timeout: float = PLAYBACK_TIMEOUT_SEC,
                 http_timeout: float = HTTP_TIMEOUT_SEC):
        self.video_id_timeout = video_id_timeout
        self.playback_timeout = playback_timeout
        self.http_timeout = http_timeout

    def _get(self, context: requests.Session, url: str, timeout: float) -> requests.Response:
        try:
            return context.get(url, timeout=timeout)
        except requests.exceptions.RequestException as e:
            raise JobError(ErrorCode.NETWORK, f"GET {url} failed: {e}") from e

    def _discover_playlist(self, context: requests.Session, job: VideoJob,
                           capture: SegmentCapture) -> str | None:
        """
        Look for the HLS master playlist on the lecture page, then inside any
        embedded player frames. Every URL found is shown to the capture so
        it can pick up the video id.
        """
        deadline = time.monotonic() + self.video_id_timeout
        timeout = min(self.http_timeout, self.video_id_timeout)

        pages = [job.source_url]
        while pages and time.monotonic() < deadline:
            page_url = pages.pop(0)
            resp = self._get(context, page_url, timeout)
            capture.observe_url(resp.url or page_url)
            html = resp.text or ""

            for playlist_url in _PLAYLIST_URL_RE.findall(html):
                if capture.observe_url(playlist_url):
                    return playlist_url

            if page_url == job.source_url:
                for src in _IFRAME_SRC_RE.findall(html):
                    frame_url = urljoin(page_url, src)
                    if any(p in frame_url for p in FRAME_URL_PATTERNS):
                        pages.append(frame_url)
        return None

    def run(self, context: requests.Session, job: VideoJob,
            capture: SegmentCapture) -> PlaybackOutcome:
        started = time.monotonic()

        master_url = self._discover_playlist(context, job, capture)
        if not master_url:
            return PlaybackOutcome(video_id=capture.video_id, finished=False,
                                   segments_captured=capture.segments_captured)

        master = self._get(context, master_url, self.http_timeout)
        subtitle_url = find_subtitle_playlist(master.text or "", master_url)
        if not subtitle_url:
            logger.warning("No subtitle rendition in playlist for %s", job.describe())
            return PlaybackOutcome(video_id=capture.video_id, finished=True,
                                   segments_captured=capture.segments_captured)

        playlist = self._get(context, subtitle_url, self.http_timeout)
        segment_urls = list_playlist_segments(playlist.text or "", subtitle_url)
        logger.debug("%d subtitle segment(s) listed for %s", len(segment_urls), capture.video_id)

        for idx, url in enumerate(segment_urls, start=1):
            if time.monotonic() - started > self.playback_timeout:
                logger.warning("Capture wait exceeded after %d/%d segments: %s",
                               idx - 1, len(segment_urls), job.describe())
                return PlaybackOutcome(video_id=capture.video_id, finished=False,
                                       segments_captured=capture.segments_captured)

            resp = self._get(context, url, self.http_timeout)
            capture.handle_response(resp.url or url, resp.status_code, lambda: resp.content)

        return PlaybackOutcome(video_id=capture.video_id, finished=True,
                               segments_captured=capture.segments_captured)
