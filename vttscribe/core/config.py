"""
Application configuration manager.
Stores settings in a JSON file under the user config directory.
Login credentials come from the environment and are never persisted.
"""

import os
import json
import logging
from pathlib import Path

from vttscribe.core.constants import (
    CONFIG_PATH, DEFAULT_OUTPUT_ROOT, DEFAULT_SEGMENTS_DIR, DEFAULT_MANIFEST_PATH,
    DEFAULT_BASE_URL, DEFAULT_LOGIN_URL,
    DEFAULT_CONCURRENCY, MAX_CONCURRENCY, DEFAULT_BATCH_SIZE, STAGGER_SEC,
    VIDEO_ID_TIMEOUT_SEC, PLAYBACK_TIMEOUT_SEC,
)

# Validation bounds
_STAGGER_MAX = 60
_VIDEO_ID_TIMEOUT_MIN = 1
_VIDEO_ID_TIMEOUT_MAX = 300
_PLAYBACK_TIMEOUT_MIN = 10
_PLAYBACK_TIMEOUT_MAX = 6 * 3600

logger = logging.getLogger(__name__)

_DEFAULTS = {
    'output_root': str(DEFAULT_OUTPUT_ROOT),
    'segments_dir': str(DEFAULT_SEGMENTS_DIR),
    'manifest_path': str(DEFAULT_MANIFEST_PATH),
    'base_url': DEFAULT_BASE_URL,
    'login_url': DEFAULT_LOGIN_URL,
    'course_id': "",
    'section': None,
    'batch_size': DEFAULT_BATCH_SIZE,
    'concurrency': DEFAULT_CONCURRENCY,
    'stagger_sec': STAGGER_SEC,
    'video_id_timeout_sec': VIDEO_ID_TIMEOUT_SEC,
    'playback_timeout_sec': PLAYBACK_TIMEOUT_SEC,
}


def _clamp(value, low, high):
    return max(low, min(high, value))


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, config_path: Path | None = None):
        self.path = config_path or CONFIG_PATH
        self._data: dict = {}
        self.load()

    def load(self):
        """Load config from disk, merging with defaults."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning("Failed to load config: %s", e)
                return
            for key, value in saved.items():
                self._data[key] = self._validate(key, value)

    def save(self):
        """Persist config to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        value = self._validate(key, value)
        self._data[key] = value
        self.save()

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key in ('concurrency', 'batch_size'):
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.warning("Invalid %s %r — using default", key, value)
                return _DEFAULTS[key]
            if key == 'concurrency':
                return _clamp(value, 1, MAX_CONCURRENCY)
            return max(1, value)

        if key in ('stagger_sec', 'video_id_timeout_sec', 'playback_timeout_sec'):
            try:
                value = float(value)
            except (TypeError, ValueError):
                logger.warning("Invalid %s %r — using default", key, value)
                return _DEFAULTS[key]
            if key == 'stagger_sec':
                return _clamp(value, 0, _STAGGER_MAX)
            if key == 'video_id_timeout_sec':
                return _clamp(value, _VIDEO_ID_TIMEOUT_MIN, _VIDEO_ID_TIMEOUT_MAX)
            return _clamp(value, _PLAYBACK_TIMEOUT_MIN, _PLAYBACK_TIMEOUT_MAX)

        if key == 'section':
            if value is None:
                return None
            return str(value).strip() or None

        return value

    def as_dict(self) -> dict:
        return dict(self._data)

    # ── Paths ──

    @property
    def output_root(self) -> Path:
        return Path(self._data['output_root']).expanduser()

    @property
    def segments_dir(self) -> Path:
        return Path(self._data['segments_dir']).expanduser()

    @property
    def manifest_path(self) -> Path:
        return Path(self._data['manifest_path']).expanduser()

    # ── Run tuning ──

    @property
    def concurrency(self) -> int:
        return self._data['concurrency']

    @property
    def batch_size(self) -> int:
        return self._data['batch_size']

    @property
    def stagger_sec(self) -> float:
        return self._data['stagger_sec']

    @property
    def section(self) -> str | None:
        return self._data.get('section')

    # ── Credentials ──

    @staticmethod
    def credentials_from_env() -> tuple[str, str]:
        """(email, password) from EMAIL / PASSWORD; empty strings if unset."""
        return os.environ.get('EMAIL', ''), os.environ.get('PASSWORD', '')
