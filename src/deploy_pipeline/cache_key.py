"""Deterministic cache keys for dependency installs."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable, Sequence, Union

from .errors import InvalidInput

PathLike = Union[str, Path]


def derive_cache_key(fingerprints: Sequence[str], prefix: str = "deploy") -> str:
    """Combine ordered fingerprints into a single stable key.

    Each fingerprint is length-prefixed before hashing, so moving characters
    across a fingerprint boundary (``["ab", "c"]`` vs ``["a", "bc"]``) yields a
    different key. Order matters.
    """
    if not fingerprints:
        raise InvalidInput("Cannot derive a cache key from an empty fingerprint list")

    digest = hashlib.sha256()
    for fingerprint in fingerprints:
        if not isinstance(fingerprint, str):
            raise InvalidInput(
                f"Fingerprints must be strings (got {type(fingerprint).__name__})"
            )
        encoded = fingerprint.encode("utf-8")
        digest.update(str(len(encoded)).encode("ascii"))
        digest.update(b":")
        digest.update(encoded)
    return f"{prefix}-{digest.hexdigest()}"


def fingerprint_files(paths: Iterable[PathLike]) -> str:
    """Hash the contents of the given files, skipping the ones that are missing.

    Returns an empty string when none of the files exist. Raises
    ``InvalidInput`` when an existing file cannot be read.
    """
    combined = hashlib.sha256()
    matched = False
    for path in paths:
        candidate = Path(path)
        if not candidate.is_file():
            continue
        try:
            content = candidate.read_bytes()
        except OSError as exc:
            raise InvalidInput(f"Cannot fingerprint {candidate}: {exc}") from exc
        matched = True
        combined.update(hashlib.sha256(content).digest())
    return combined.hexdigest() if matched else ""
