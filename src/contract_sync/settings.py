"""Environment-backed settings primitives for :mod:`contract_sync`."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "ContractPaths",
    "ContractSyncSettings",
    "DEFAULT_SNAPSHOT_RELPATH",
    "get_settings",
]

DEFAULT_SNAPSHOT_RELPATH = Path("openapi") / "contract.json"
_DEFAULT_FETCH_TIMEOUT = 10.0


class ContractSyncSettings(BaseSettings):
    """Expose environment-derived configuration knobs for contract syncing.

    All environment lookups go through this class. Every attribute maps to a
    documented environment variable; blank values are treated as unset.

    Attributes:
        spec_url: URL serving the live OpenAPI document.
        spec_path: Filesystem path of the live OpenAPI document. Ignored when
            ``spec_url`` is also configured.
        repo_root: Repository root used to resolve the snapshot path. Defaults
            to the current working directory.
        snapshot_path: Explicit snapshot location. Relative values resolve
            against ``repo_root``.
        fetch_timeout: Timeout in seconds applied to the HTTP fetch.
        log_level: Logging level name used when structured logging is enabled.
    """

    spec_url: str | None = Field(default=None, alias="OPENAPI_SPEC_URL")
    spec_path: str | None = Field(default=None, alias="OPENAPI_SPEC_PATH")
    repo_root: str | None = Field(default=None, alias="CONTRACT_SYNC_REPO_ROOT")
    snapshot_path: str | None = Field(
        default=None, alias="CONTRACT_SYNC_SNAPSHOT_PATH"
    )
    fetch_timeout: float = Field(
        default=_DEFAULT_FETCH_TIMEOUT, alias="CONTRACT_SYNC_FETCH_TIMEOUT"
    )
    log_level: str = Field(default="WARNING", alias="CONTRACT_SYNC_LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=None, extra="ignore", populate_by_name=True
    )

    @field_validator(
        "spec_url", "spec_path", "repo_root", "snapshot_path", mode="before"
    )
    @classmethod
    def _blank_to_none(cls, value: object) -> str | None:
        """Treat empty or whitespace-only strings as unset."""

        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("fetch_timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value: object) -> float:
        """Parse the fetch timeout while tolerating malformed input.

        Args:
            value: Raw environment value.

        Returns:
            Parsed positive float, otherwise the default timeout.
        """

        parsed: float | None = None
        if isinstance(value, (int, float)):
            parsed = float(value)
        elif isinstance(value, str):
            try:
                parsed = float(value.strip())
            except ValueError:
                parsed = None
        if parsed is None or parsed <= 0:
            return _DEFAULT_FETCH_TIMEOUT
        return parsed

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_level(cls, value: object) -> str:
        """Upper-case the level name and fall back to ``WARNING`` when unknown."""

        name = str(value).strip().upper() if value is not None else ""
        if name not in logging.getLevelNamesMapping():
            return "WARNING"
        return name

    @property
    def log_level_value(self) -> int:
        """Return the numeric logging level for :attr:`log_level`."""

        return logging.getLevelNamesMapping()[self.log_level]

    def contract_paths(self) -> ContractPaths:
        """Build :class:`ContractPaths` from the configured root and override."""

        root = Path(self.repo_root) if self.repo_root else Path.cwd()
        return ContractPaths.for_root(root, self.snapshot_path)


@dataclass(frozen=True, slots=True)
class ContractPaths:
    """Filesystem locations used by the snapshot loader and writer.

    Attributes:
        repo_root: Repository root directory.
        snapshot_path: Absolute location of the committed contract snapshot.
    """

    repo_root: Path
    snapshot_path: Path

    @classmethod
    def for_root(
        cls, repo_root: str | Path, snapshot_path: str | Path | None = None
    ) -> ContractPaths:
        """Resolve snapshot location relative to ``repo_root``.

        Args:
            repo_root: Repository root directory.
            snapshot_path: Optional override; relative values are joined to
                ``repo_root``.

        Returns:
            Paths with an absolute snapshot location.
        """

        root = Path(repo_root).resolve()
        if snapshot_path is None:
            target = root / DEFAULT_SNAPSHOT_RELPATH
        else:
            candidate = Path(snapshot_path)
            target = candidate if candidate.is_absolute() else root / candidate
        return cls(repo_root=root, snapshot_path=target)


def get_settings() -> ContractSyncSettings:
    """Return a :class:`ContractSyncSettings` instance.

    Returns:
        Settings parsed from environment variables.
    """

    return ContractSyncSettings()
