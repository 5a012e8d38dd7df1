"""
On-disk store for captured WebVTT segments.

Layout: <root>/<video_id>/<segment_name>.txt

Both key parts are percent-encoded (dots included), so distinct keys always
map to distinct files and names read back exactly as they were stored. Keys
too long for a filename are stored under a digest, with the original key in
a `<digest>.key` file beside them.

Writes are first-write-wins: a replayed or retried capture may deliver a
truncated body for a segment we already hold, so an existing key is never
overwritten.
"""

import os
import hashlib
import logging
import tempfile
from pathlib import Path
from urllib.parse import quote, unquote

from vttscribe.core.constants import SEGMENT_SUFFIX

logger = logging.getLogger(__name__)

KEY_SUFFIX = ".key"
HASHED_KEY_PREFIX = ".h-"
MAX_ENCODED_KEY_LEN = 200


def encode_key(key: str) -> str:
    """Filesystem-safe, reversible name for a store key."""
    if not key:
        raise ValueError("Store keys must be non-empty")
    # '.' is left alone by quote(); encode it so no name is '.', '..' or hidden
    encoded = quote(key, safe='').replace('.', '%2E')
    if len(encoded) <= MAX_ENCODED_KEY_LEN:
        return encoded
    return HASHED_KEY_PREFIX + hashlib.sha256(key.encode('utf-8')).hexdigest()


def decode_key(parent: Path, encoded: str) -> str:
    """Inverse of encode_key for a name found under `parent`."""
    if encoded.startswith(HASHED_KEY_PREFIX):
        return (parent / f"{encoded}{KEY_SUFFIX}").read_text(encoding='utf-8')
    return unquote(encoded)


def _remember_key(parent: Path, encoded: str, key: str):
    """Write the sidecar holding the original of a digest-named key."""
    if not encoded.startswith(HASHED_KEY_PREFIX):
        return
    sidecar = parent / f"{encoded}{KEY_SUFFIX}"
    if sidecar.exists():
        return
    fd, tmp_name = tempfile.mkstemp(dir=parent, prefix=".key-", suffix=".part")
    with os.fdopen(fd, 'w', encoding='utf-8') as f:
        f.write(key)
    os.replace(tmp_name, sidecar)


class SegmentStore:
    """Filesystem-backed segment store keyed by (video_id, segment_name)."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _video_dir(self, video_id: str) -> Path:
        return self.root / encode_key(video_id)

    def _segment_path(self, video_id: str, segment_name: str) -> Path:
        return self._video_dir(video_id) / f"{encode_key(segment_name)}{SEGMENT_SUFFIX}"

    def exists(self, video_id: str, segment_name: str) -> bool:
        return self._segment_path(video_id, segment_name).exists()

    def put(self, video_id: str, segment_name: str, data: bytes) -> bool:
        """
        Persist a segment. Returns True if written, False if the key already
        existed (no-op). The body is staged in a temp file and published with
        a hard link, which fails atomically when the target exists.
        """
        target = self._segment_path(video_id, segment_name)
        if target.exists():
            return False

        target.parent.mkdir(parents=True, exist_ok=True)
        _remember_key(self.root, target.parent.name, video_id)
        _remember_key(target.parent, target.name[:-len(SEGMENT_SUFFIX)], segment_name)

        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".seg-", suffix=".part")
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            try:
                os.link(tmp_name, target)
            except FileExistsError:
                return False
        finally:
            os.unlink(tmp_name)

        logger.debug("Saved segment: %s -> %s", video_id, segment_name)
        return True

    def read(self, video_id: str, segment_name: str) -> bytes:
        return self._segment_path(video_id, segment_name).read_bytes()

    def video_ids(self) -> list[str]:
        """Every video that has a segment directory."""
        if not self.root.is_dir():
            return []
        return sorted(decode_key(self.root, p.name) for p in self.root.iterdir() if p.is_dir())

    # Keep last: from here on `list` in this class body is the method, not the builtin
    def list(self, video_id: str) -> list[str]:
        """Stored segment names for a video; empty if none were captured."""
        video_dir = self._video_dir(video_id)
        if not video_dir.is_dir():
            return []
        return sorted(
            decode_key(video_dir, p.name[:-len(SEGMENT_SUFFIX)])
            for p in video_dir.iterdir()
            if p.is_file() and p.name.endswith(SEGMENT_SUFFIX)
        )
