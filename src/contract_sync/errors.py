"""Exception taxonomy for :mod:`contract_sync`."""

from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "ContractSyncError",
    "DriftError",
    "FetchError",
    "FormatError",
    "SpecIOError",
]


class ContractSyncError(Exception):
    """Base class for every failure raised by the contract tooling."""


class ConfigurationError(ContractSyncError):
    """Raised when no live specification source is configured."""


class FetchError(ContractSyncError):
    """Raised when the live specification cannot be fetched over HTTP.

    Attributes:
        url: The URL that was requested.
        status_code: HTTP status of the response, or ``None`` when the
            request failed before a response was received.
    """

    def __init__(self, url: str, status_code: int | None, detail: str | None = None):
        self.url = url
        self.status_code = status_code
        if status_code is not None:
            message = f"Failed to fetch OpenAPI spec from {url} (status {status_code})."
        else:
            message = f"Failed to fetch OpenAPI spec from {url}"
            message += f": {detail}" if detail else "."
        super().__init__(message)


class SpecIOError(ContractSyncError, OSError):
    """Raised when a specification or snapshot file cannot be read or written."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        super().__init__(f"Unable to access {path}: {detail}")


class FormatError(ContractSyncError):
    """Raised when a document is neither valid JSON nor valid YAML."""

    def __init__(self, source_label: str) -> None:
        self.source_label = source_label
        super().__init__(f"OpenAPI spec at {source_label} is not valid JSON or YAML.")


class DriftError(ContractSyncError):
    """Reported outcome when the live specification differs from the snapshot."""

    def __init__(self, snapshot_digest: str, live_digest: str) -> None:
        self.snapshot_digest = snapshot_digest
        self.live_digest = live_digest
        super().__init__(
            "OpenAPI contract drift detected "
            f"(contract {snapshot_digest}, source {live_digest})."
        )
