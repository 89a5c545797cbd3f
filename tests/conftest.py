"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import inspect
import os
import sys
from pathlib import Path
from typing import Any

import pytest

# Ensure src/ is on sys.path for tests so the src layout is used during test runs
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from contract_sync.settings import ContractPaths  # noqa: E402

_ENV_VARS = (
    "OPENAPI_SPEC_URL",
    "OPENAPI_SPEC_PATH",
    "CONTRACT_SYNC_REPO_ROOT",
    "CONTRACT_SYNC_SNAPSHOT_PATH",
    "CONTRACT_SYNC_FETCH_TIMEOUT",
    "CONTRACT_SYNC_LOG_LEVEL",
)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test as requiring an event loop")


def pytest_pyfunc_call(pyfuncitem: Any) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames  # type: ignore[attr-defined]
        }

        event_loop = asyncio.new_event_loop()
        try:
            event_loop.run_until_complete(pyfuncitem.obj(**call_kwargs))
        finally:
            event_loop.close()
        return True
    return None


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's shell configuration out of the tests."""

    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def paths(tmp_path: Path) -> ContractPaths:
    """Contract paths rooted in a throwaway repository."""

    return ContractPaths.for_root(tmp_path)


@pytest.fixture
def write_spec(tmp_path: Path):
    """Write ``text`` to ``tmp_path / name`` and return the path."""

    def _write(name: str, text: str) -> Path:
        target = tmp_path / name
        target.write_text(text, encoding="utf-8")
        return target

    return _write

