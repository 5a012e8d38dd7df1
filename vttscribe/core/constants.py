"""
Shared constants for vttscribe.
Single source of truth, imported by every other module.
"""

import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "vttscribe"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

APP_DATA_DIR = HOME / ".local" / "share" / APP_NAME
APP_CONFIG_DIR = HOME / ".config" / APP_NAME
LOG_DIR = APP_DATA_DIR / "logs"

DEFAULT_SEGMENTS_DIR = APP_DATA_DIR / "vtt_segments"
DEFAULT_OUTPUT_ROOT = APP_DATA_DIR / "transcripts"
DEFAULT_MANIFEST_PATH = APP_DATA_DIR / "course_manifest.json"
CONFIG_PATH = APP_CONFIG_DIR / "config.json"

SEGMENT_SUFFIX = ".txt"
TRANSCRIPT_SUFFIX = ".txt"
RUN_SUMMARY_FILENAME = "run_summary.json"

# ── Job status values ─────────────────────────────────────────────────
class JobStatus:
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

# ── Playback outcome values ───────────────────────────────────────────
class JobOutcome:
    FINISHED = "FINISHED"
    TIMED_OUT = "TIMED_OUT"

# ── Worker lifecycle ──────────────────────────────────────────────────
class WorkerState:
    STARTING = "STARTING"
    SEEDED = "SEEDED"
    DRAINING = "DRAINING"
    CLOSED = "CLOSED"

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Run-fatal
    AUTH_FAILED = "ERR_AUTH_FAILED"

    # Per job
    VIDEO_ID_NOT_FOUND = "ERR_VIDEO_ID_NOT_FOUND"
    NOT_PROCESSED = "ERR_NOT_PROCESSED"
    NO_SEGMENTS = "ERR_NO_SEGMENTS"
    EMPTY_TRANSCRIPT = "ERR_EMPTY_TRANSCRIPT"
    OUTPUT_WRITE_FAILED = "ERR_OUTPUT_WRITE_FAILED"
    NETWORK = "ERR_NETWORK"
    UNEXPECTED = "ERR_UNEXPECTED"

RETRYABLE_ERRORS = {
    ErrorCode.NETWORK,
    ErrorCode.VIDEO_ID_NOT_FOUND,
    ErrorCode.NO_SEGMENTS,
    ErrorCode.NOT_PROCESSED,
}

# ── Worker pool defaults ──────────────────────────────────────────────
DEFAULT_CONCURRENCY = 4
MAX_CONCURRENCY = 16
DEFAULT_BATCH_SIZE = 10
STAGGER_SEC = 3.0              # delay between worker cold starts
VIDEO_ID_TIMEOUT_SEC = 15      # discovery window for the video id
PLAYBACK_TIMEOUT_SEC = 3600    # upper bound on a single job's capture wait
HTTP_TIMEOUT_SEC = 60

# ── Platform ──────────────────────────────────────────────────────────
DEFAULT_BASE_URL = "https://learn.cantrill.io/"
DEFAULT_LOGIN_URL = (
    "https://sso.teachable.com/secure/212820/identity/login/password?force=true"
)
LOGIN_URL_MARKERS = ("login", "sign_in")
UNKNOWN_LECTURE_TITLE = "Lecture unknown"

# ── WebVTT ────────────────────────────────────────────────────────────
TIME_RANGE_SEPARATOR = " --> "
VTT_HEADER_PREFIXES = ("WEBVTT", "X-TIMESTAMP-MAP", "NOTE", "Kind:", "Language:")
TIMESTAMP_PATTERN = r'(\d{2}):(\d{2}):(\d{2})\.(\d{3})'

# Terminal punctuation that closes a paragraph outright
SENTENCE_TERMINATORS = (".", "!", "?")
# Punctuation after which an uppercase cue still continues the sentence
CLAUSE_TERMINATORS = (".", "!", "?", ":", ";")
CONTINUATION_WORDS = ("And", "But", "Or", "So", "Then", "However", "Therefore")

# ── Capture ───────────────────────────────────────────────────────────
VTT_EXTENSION = ".webvtt"
HLS_VIDEO_PATH_PATTERN = r'/video/([^/]+)/hls/'
HLS_LANG_PATTERN = r'textstream_([a-z]{2,3})='
CAPTURE_LANGUAGE = "eng"

# Characters forbidden in file and folder names
UNSAFE_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'
MAX_FILENAME_LEN = 200
