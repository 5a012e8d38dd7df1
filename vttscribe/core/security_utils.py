"""
Security utilities for vttscribe.
- Filename sanitization (stable and idempotent)
- Path traversal protection for output paths
"""

import re
import pathlib
import logging

from vttscribe.core.constants import UNSAFE_FILENAME_CHARS, MAX_FILENAME_LEN

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r'\s+')


# ── Filename / path safety ────────────────────────────────────────────

def sanitize_filename(raw: str) -> str:
    """
    Turn an arbitrary label into a safe file or folder name.
    The same input always yields the same output, and sanitizing an already
    sanitized name is a no-op.
    """
    if not raw:
        return ""
    # Tabs, newlines and other whitespace controls collapse to one space
    # before the remaining control characters are replaced
    safe = _WHITESPACE_RE.sub(' ', raw)
    # Replace unsafe characters (including path separators) with underscore
    safe = re.sub(UNSAFE_FILENAME_CHARS, '_', safe)
    # Remove path traversal sequences
    safe = safe.replace('..', '')
    safe = _WHITESPACE_RE.sub(' ', safe).strip()
    if len(safe) > MAX_FILENAME_LEN:
        safe = safe[:MAX_FILENAME_LEN].rstrip()
    # Remove leading/trailing dots (hidden files, Windows trailing dots)
    safe = safe.strip(' .')
    return safe


def is_within(root: pathlib.Path, candidate: pathlib.Path) -> bool:
    """True when candidate resolves to a location inside root."""
    real_root = root.resolve(strict=False)
    real_candidate = candidate.resolve(strict=False)
    return real_candidate == real_root or real_root in real_candidate.parents


def safe_output_path(output_root: pathlib.Path, section: str, name: str,
                     fallback: str) -> pathlib.Path:
    """
    Build <output_root>/<section>/<name> from sanitized labels.
    Enforces that the result stays under output_root; empty or escaping
    labels fall back to `fallback`.
    """
    folder = sanitize_filename(section) or fallback
    filename = sanitize_filename(name) or fallback

    candidate = output_root / folder / filename
    if not is_within(output_root, candidate):
        logger.warning("Path traversal detected for %r / %r", section, name)
        candidate = output_root / fallback / fallback

    return candidate
