"""Structural drift detection (core domain).

A fingerprint of a few landmark elements of the host page is stored on the
first run. Later sessions only proceed when the freshly computed fingerprint
is identical; any change in tag, classes or data attributes of a landmark
means the page was updated and extraction must stop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence, Tuple

from core.ports import FingerprintStore, HostDocument

LOGGER = logging.getLogger(__name__)

NOT_FOUND = "NOT_FOUND"
SEGMENT_DELIMITER = "|"
STORAGE_KEY = "fiberscope-version-hash"

DEFAULT_LANDMARKS: Tuple[str, ...] = (
    "#app",
    '[data-testid="chat-list"]',
    '[data-testid="conversation-panel-wrapper"]',
    '[data-testid="conversation-header"]',
    '[data-testid="conversation-panel-messages"]',
    '[data-testid="conversation-compose-box-input"]',
)


@dataclass(frozen=True)
class LandmarkProbe:
    """What one landmark element looked like when probed."""

    tag_name: str
    class_list: Tuple[str, ...] = ()
    data_attributes: Tuple[Tuple[str, str], ...] = field(default=())


@dataclass(frozen=True)
class VersionCheckResult:
    current_hash: str
    is_compatible: bool


def encode_segment(probe: Optional[LandmarkProbe]) -> str:
    if probe is None:
        return NOT_FOUND
    tag_name = probe.tag_name.lower()
    classes = ",".join(sorted(probe.class_list))
    data_attrs = ";".join(sorted(f"{name}={value}" for name, value in probe.data_attributes))
    return f"{tag_name}:{classes}:{data_attrs}"


def _utf16_units(text: str) -> Iterable[int]:
    # Astral characters contribute only their high surrogate, matching how
    # the page-side hash reads one code unit per character.
    for char in text:
        code = ord(char)
        if code > 0xFFFF:
            code = 0xD800 + ((code - 0x10000) >> 10)
        yield code


def rolling_hash(text: str) -> int:
    """Polynomial hash ``acc * 31 + code`` wrapped to a signed 32-bit int."""

    acc = 0
    for code in _utf16_units(text):
        acc = (acc * 31 + code) & 0xFFFFFFFF
    if acc >= 0x80000000:
        acc -= 0x100000000
    return acc


def fingerprint_from_probes(probes: Iterable[Optional[LandmarkProbe]]) -> str:
    joined = SEGMENT_DELIMITER.join(encode_segment(probe) for probe in probes)
    return format(rolling_hash(joined), "x")


async def compute_fingerprint(document: HostDocument, landmarks: Sequence[str] = DEFAULT_LANDMARKS) -> str:
    """Probe each landmark once, in order, and hash the result."""

    probes = await document.probe_landmarks(list(landmarks))
    return fingerprint_from_probes(probes)


class VersionGuard:
    """Gates a session on the host page still looking like it used to."""

    def __init__(
        self,
        document: HostDocument,
        store: FingerprintStore,
        landmarks: Sequence[str] = DEFAULT_LANDMARKS,
        storage_key: str = STORAGE_KEY,
    ) -> None:
        self._document = document
        self._store = store
        self._landmarks = tuple(landmarks)
        self._storage_key = storage_key
        self._stored_hash: Optional[str] = None
        self._loaded = False

    def _load(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        try:
            self._stored_hash = self._store.get(self._storage_key)
        except Exception:
            LOGGER.warning("Fingerprint store unavailable; treating as first run", exc_info=True)
            self._stored_hash = None

    def get_stored_hash(self) -> Optional[str]:
        self._load()
        return self._stored_hash

    def update_hash(self, value: str) -> None:
        self._loaded = True
        self._stored_hash = value
        try:
            self._store.set(self._storage_key, value)
        except Exception:
            LOGGER.warning("Could not persist fingerprint; continuing without it", exc_info=True)

    async def check(self) -> VersionCheckResult:
        current_hash = await compute_fingerprint(self._document, self._landmarks)
        stored = self.get_stored_hash()

        if stored is None:
            LOGGER.info("No stored fingerprint; recording %s", current_hash)
            self.update_hash(current_hash)
            return VersionCheckResult(current_hash=current_hash, is_compatible=True)

        is_compatible = stored == current_hash
        if not is_compatible:
            LOGGER.warning("Host structure changed: stored=%s current=%s", stored, current_hash)
        return VersionCheckResult(current_hash=current_hash, is_compatible=is_compatible)
