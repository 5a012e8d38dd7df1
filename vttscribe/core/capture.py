"""
Subtitle capture: decide which HTTP responses are English WebVTT segments
and hand their bodies to the segment store.

CDN segment URLs look like:
    https://vod-akm.play.hotmart.com/video/<videoId>/hls/<videoId>-<ts>-textstream_eng=1000-70.webvtt?...
"""

import re
import logging
import threading
from typing import Callable
from urllib.parse import urlparse

from vttscribe.core.constants import (
    VTT_EXTENSION, HLS_VIDEO_PATH_PATTERN, HLS_LANG_PATTERN, CAPTURE_LANGUAGE,
)
from vttscribe.core.segment_store import SegmentStore

logger = logging.getLogger(__name__)

_VIDEO_PATH_RE = re.compile(HLS_VIDEO_PATH_PATTERN)
_HLS_LANG_RE = re.compile(HLS_LANG_PATTERN)


def extract_video_id(url: str) -> str | None:
    """Return the video id from an HLS URL, or None."""
    m = _VIDEO_PATH_RE.search(url)
    return m.group(1) if m else None


def is_english_vtt_response(url: str, status: int) -> bool:
    """
    True for a 200 WebVTT response that is English or carries no language
    marker at all.
    """
    if VTT_EXTENSION not in url or status != 200:
        return False
    m = _HLS_LANG_RE.search(url)
    return m is None or m.group(1) == CAPTURE_LANGUAGE


def extract_video_id_and_filename(url: str) -> tuple[str | None, str | None]:
    """
    Split a segment URL into (video_id, segment_name).
    Either part is None when the URL does not have the expected shape.
    """
    video_id = extract_video_id(url)
    if not video_id:
        return None, None

    filename = None
    try:
        segments = [s for s in urlparse(url).path.split('/') if s]
    except ValueError as e:
        logger.error("Failed to parse VTT URL %s: %s", url, e)
        return video_id, None

    if segments and segments[-1].endswith(VTT_EXTENSION):
        filename = segments[-1][:-len(VTT_EXTENSION)] or None

    return video_id, filename


class SegmentCapture:
    """
    Per-job capture sink. Observes every response URL seen while a job runs,
    remembers the first video id, and saves matching subtitle segments.
    Safe to feed from several threads.
    """

    def __init__(self, store: SegmentStore):
        self.store = store
        self._lock = threading.Lock()
        self._video_id: str | None = None
        self._count = 0

    @property
    def video_id(self) -> str | None:
        with self._lock:
            return self._video_id

    @property
    def segments_captured(self) -> int:
        with self._lock:
            return self._count

    def observe_url(self, url: str) -> str | None:
        """Record the video id if this URL reveals one. Returns the id seen so far."""
        found = extract_video_id(url)
        with self._lock:
            if found and self._video_id is None:
                self._video_id = found
                logger.debug("Discovered video id %s", found)
            return self._video_id

    def handle_response(self, url: str, status: int, body: bytes | Callable[[], bytes]) -> bool:
        """
        Process one response. `body` may be a callable so the payload is only
        read for responses we keep. Returns True if a new segment was stored.
        """
        self.observe_url(url)
        if not is_english_vtt_response(url, status):
            return False

        video_id, filename = extract_video_id_and_filename(url)
        if not video_id or not filename:
            return False

        if self.store.exists(video_id, filename):
            return False

        data = body() if callable(body) else body
        if isinstance(data, str):
            data = data.encode('utf-8')

        stored = self.store.put(video_id, filename, data)
        if stored:
            with self._lock:
                self._count += 1
        return stored
