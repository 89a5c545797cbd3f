"""Classify a live specification against the committed snapshot."""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass

from contract_sync.canonical import canonicalize, digest, pretty
from contract_sync.errors import DriftError

__all__ = [
    "Diverged",
    "DriftResult",
    "InSync",
    "check_drift",
    "ensure_in_sync",
    "render_diff",
]

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InSync:
    """The live specification matches the snapshot."""

    in_sync = True


@dataclass(frozen=True, slots=True)
class Diverged:
    """The live specification differs from the snapshot.

    Attributes:
        snapshot_digest: SHA-256 of the snapshot's canonical form.
        live_digest: SHA-256 of the live document's canonical form.
    """

    snapshot_digest: str
    live_digest: str

    in_sync = False

    def to_error(self) -> DriftError:
        """Return the :class:`DriftError` describing this divergence."""

        return DriftError(self.snapshot_digest, self.live_digest)


DriftResult = InSync | Diverged


def check_drift(snapshot_doc: object, live_doc: object) -> DriftResult:
    """Compare two documents by canonical form.

    Formatting differences such as key order, whitespace or JSON versus YAML
    origin never count as drift. Digests are only computed once the canonical
    strings are known to differ.
    """

    snapshot_text = canonicalize(snapshot_doc)
    live_text = canonicalize(live_doc)
    if snapshot_text == live_text:
        return InSync()

    result = Diverged(snapshot_digest=digest(snapshot_text), live_digest=digest(live_text))
    LOGGER.info(
        "Contract drift detected",
        extra={
            "snapshot_digest": result.snapshot_digest,
            "live_digest": result.live_digest,
        },
    )
    return result


def ensure_in_sync(result: DriftResult) -> None:
    """Raise :class:`DriftError` when ``result`` reports divergence."""

    if isinstance(result, Diverged):
        raise result.to_error()


def render_diff(snapshot_doc: object, live_doc: object, *, context: int = 3) -> str:
    """Return a unified diff between the pretty canonical forms of both documents."""

    lines = difflib.unified_diff(
        pretty(snapshot_doc).splitlines(keepends=True),
        pretty(live_doc).splitlines(keepends=True),
        fromfile="snapshot",
        tofile="live",
        n=context,
    )
    return "".join(lines)
