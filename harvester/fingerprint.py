"""Content fingerprints used to detect changed pages between runs."""

from __future__ import annotations

import hashlib
from typing import Dict, Mapping, Optional


def compute_fingerprint(content: str) -> str:
    """Return the SHA-256 hex digest of the UTF-8 encoded content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class Fingerprinter:
    """Lookup table of previously recorded fingerprints keyed by URL."""

    def __init__(self, existing: Optional[Mapping[str, str]] = None):
        self._known: Dict[str, str] = dict(existing or {})

    def __len__(self) -> int:
        return len(self._known)

    def get(self, url: str) -> Optional[str]:
        return self._known.get(url)

    def has_changed(self, url: str, fingerprint: str) -> bool:
        """True when the URL has no recorded fingerprint or a different one."""
        previous = self._known.get(url)
        return previous is None or previous != fingerprint
