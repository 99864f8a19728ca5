"""Content fingerprints used as document identity."""

import hashlib

from ..errors import FileAccessError

_BLOCK_SIZE = 1024 * 1024


def content_hash(data: bytes) -> str:
    """SHA-256 hex digest of a byte buffer."""
    return hashlib.sha256(data).hexdigest()


def file_hash(file_path: str) -> str:
    """SHA-256 hex digest of a file's bytes, read in blocks."""
    digest = hashlib.sha256()
    try:
        with open(file_path, 'rb') as f:
            for block in iter(lambda: f.read(_BLOCK_SIZE), b''):
                digest.update(block)
    except OSError as e:
        raise FileAccessError("Failed to hash file", {"path": file_path, "error": e}) from e
    return digest.hexdigest()
