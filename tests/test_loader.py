"""Tests for loading specifications from files and URLs."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from contract_sync import loader as loader_module
from contract_sync.canonical import canonicalize
from contract_sync.errors import (
    ConfigurationError,
    FetchError,
    FormatError,
    SpecIOError,
)
from contract_sync.loader import ParseResult, SpecLoader, SpecSource, parse_spec
from contract_sync.settings import ContractPaths, ContractSyncSettings

JSON_SPEC = """
{
  "openapi": "3.0.3",
  "info": {"title": "Units API", "version": "1.2.0"},
  "paths": {
    "/units": {
      "get": {"responses": {"200": {"description": "OK"}}, "tags": ["units", "inventory"]}
    }
  }
}
"""

YAML_SPEC = """
paths:
  /units:
    get:
      tags: [units, inventory]
      responses:
        200:
          description: OK
info:
  version: "1.2.0"
  title: Units API
openapi: 3.0.3
"""


def _loader(paths: ContractPaths, **settings: object) -> SpecLoader:
    return SpecLoader(paths, settings=ContractSyncSettings(**settings))


def test_json_and_yaml_sources_canonicalize_identically(paths, write_spec):
    loader = _loader(paths)
    from_json = loader.load(SpecSource.path(write_spec("spec.json", JSON_SPEC)))
    from_yaml = loader.load(SpecSource.path(write_spec("spec.yaml", YAML_SPEC)))
    assert canonicalize(from_json) == canonicalize(from_yaml)


def test_yaml_integer_keys_become_json_names():
    doc = parse_spec("responses:\n  404: {}\n  true: x\n  ~: y\n", "inline")
    assert doc == {"responses": {"404": {}, "true": "x", "null": "y"}}


def test_yaml_timestamps_stay_strings():
    doc = parse_spec("released: 2024-05-01\n", "inline")
    assert doc == {"released": "2024-05-01"}


def test_yaml_string_true_differs_from_boolean_true():
    quoted = parse_spec('flag: "true"\n', "inline")
    plain = parse_spec("flag: true\n", "inline")
    assert quoted == {"flag": "true"}
    assert plain == {"flag": True}
    assert canonicalize(quoted) != canonicalize(plain)


def test_strict_json_rejects_nan_and_falls_through_to_yaml():
    # ``NaN`` is not JSON; as YAML it is a plain string scalar.
    assert parse_spec('{"limit": NaN}', "inline") == {"limit": "NaN"}


def test_yaml_non_finite_numbers_are_rejected():
    with pytest.raises(FormatError):
        parse_spec("limit: .inf\n", "inline")


def test_format_error_names_source(paths, write_spec):
    bad = write_spec("broken.yaml", "openapi: [3.0\n  info: {")
    with pytest.raises(FormatError) as excinfo:
        _loader(paths).load(SpecSource.path(bad))
    assert str(bad) in str(excinfo.value)
    assert excinfo.value.source_label == str(bad)


def test_parse_spec_short_circuits_on_first_success():
    calls: list[str] = []

    def first(raw: str) -> ParseResult:
        calls.append("first")
        return ParseResult(parser="first", document={"ok": True})

    def second(raw: str) -> ParseResult:
        calls.append("second")
        return ParseResult(parser="second", error=ValueError("unused"))

    assert parse_spec("ignored", "inline", (first, second)) == {"ok": True}
    assert calls == ["first"]


def test_missing_file_raises_spec_io_error(paths, tmp_path: Path):
    missing = tmp_path / "absent.json"
    with pytest.raises(SpecIOError) as excinfo:
        _loader(paths).load(SpecSource.path(missing))
    assert excinfo.value.path == str(missing)
    assert isinstance(excinfo.value, OSError)


def test_missing_configuration_performs_no_io(paths):
    loader = _loader(paths)
    with (
        patch("httpx.Client") as client_spy,
        patch.object(Path, "read_text") as read_spy,
    ):
        with pytest.raises(ConfigurationError) as excinfo:
            loader.load_live()
    client_spy.assert_not_called()
    read_spy.assert_not_called()
    assert "OPENAPI_SPEC_URL" in str(excinfo.value)
    assert "OPENAPI_SPEC_PATH" in str(excinfo.value)


def test_live_source_reads_environment(paths, write_spec, monkeypatch):
    spec_file = write_spec("live.json", '{"openapi": "3.1.0"}')
    monkeypatch.setenv("OPENAPI_SPEC_PATH", str(spec_file))
    loader = SpecLoader(paths)
    assert loader.resolve_live_source() == SpecSource.path(spec_file)
    assert loader.load_live() == {"openapi": "3.1.0"}


def test_url_takes_precedence_over_path(paths):
    loader = _loader(paths, spec_url="https://api.test/openapi.json", spec_path="spec.json")
    assert loader.resolve_live_source() == SpecSource.url("https://api.test/openapi.json")


def _mock_response(status_code: int, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.is_success = 200 <= status_code < 300
    response.text = text
    return response


@patch("httpx.Client")
def test_fetch_success_parses_body(mock_client_class, paths):
    mock_client = MagicMock()
    mock_client_class.return_value.__enter__.return_value = mock_client
    mock_client.get.return_value = _mock_response(200, YAML_SPEC)

    loader = _loader(paths, spec_url="https://api.test/openapi.yaml", fetch_timeout=3)
    doc = loader.load_live()

    mock_client.get.assert_called_once_with("https://api.test/openapi.yaml")
    assert mock_client_class.call_args.kwargs["timeout"] == 3.0
    assert doc["info"]["title"] == "Units API"


@patch("httpx.Client")
def test_fetch_non_success_raises_fetch_error(mock_client_class, paths):
    mock_client = MagicMock()
    mock_client_class.return_value.__enter__.return_value = mock_client
    mock_client.get.return_value = _mock_response(503, "unavailable")

    url = "https://api.test/openapi.json"
    with pytest.raises(FetchError) as excinfo:
        _loader(paths).load(SpecSource.url(url))
    assert excinfo.value.status_code == 503
    assert excinfo.value.url == url
    assert str(excinfo.value) == f"Failed to fetch OpenAPI spec from {url} (status 503)."


@patch("httpx.Client")
def test_fetch_transport_error_raises_fetch_error(mock_client_class, paths):
    mock_client = MagicMock()
    mock_client_class.return_value.__enter__.return_value = mock_client
    mock_client.get.side_effect = httpx.ConnectError("connection refused")

    with pytest.raises(FetchError) as excinfo:
        _loader(paths).load(SpecSource.url("https://api.test/openapi.json"))
    assert excinfo.value.status_code is None
    assert "connection refused" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def test_load_snapshot_reads_configured_path(tmp_path):
    snapshot = tmp_path / "contracts" / "api.json"
    snapshot.parent.mkdir()
    snapshot.write_text('{"openapi": "3.0.0"}\n', encoding="utf-8")
    loader = _loader(ContractPaths.for_root(tmp_path, "contracts/api.json"))
    assert loader.load_snapshot() == {"openapi": "3.0.0"}


async def test_concurrent_loads_join_results(paths, write_spec):
    spec_file = write_spec("live.yaml", YAML_SPEC)
    paths.snapshot_path.parent.mkdir(parents=True)
    paths.snapshot_path.write_text(JSON_SPEC, encoding="utf-8")
    loader = _loader(paths, spec_path=str(spec_file))

    snapshot_doc, live_doc = await asyncio.gather(
        loader.load_snapshot_async(), loader.load_live_async()
    )
    assert canonicalize(snapshot_doc) == canonicalize(live_doc)


async def test_concurrent_loads_surface_first_failure(paths):
    paths.snapshot_path.parent.mkdir(parents=True)
    paths.snapshot_path.write_text(JSON_SPEC, encoding="utf-8")
    loader = _loader(paths)
    with pytest.raises(ConfigurationError):
        await asyncio.gather(loader.load_snapshot_async(), loader.load_live_async())


def test_yaml_11_boolean_words_stay_strings():
    doc = parse_spec("enum: [yes, no, on, off, NO, Yes]\nflags: [true, False, TRUE]\n", "inline")
    assert doc == {
        "enum": ["yes", "no", "on", "off", "NO", "Yes"],
        "flags": [True, False, True],
    }


def test_yaml_numbers_follow_core_schema():
    doc = parse_spec(
        "mode: 0755\noctal: 0o755\nhex: 0x1F\nsize: 1_000\nclock: 1:30\n"
        "ratio: 1.5\nexp: 1e3\nversion: 3.0.3\n",
        "inline",
    )
    assert doc == {
        "mode": 755,
        "octal": 493,
        "hex": 31,
        "size": "1_000",
        "clock": "1:30",
        "ratio": 1.5,
        "exp": 1000.0,
        "version": "3.0.3",
    }


def test_yaml_and_json_twins_agree_on_ambiguous_scalars():
    from_yaml = parse_spec("enum: [yes, off]\nmode: 0755\nwhen: 2024-05-01\n", "a.yaml")
    from_json = parse_spec(
        '{"when": "2024-05-01", "mode": 755, "enum": ["yes", "off"]}', "a.json"
    )
    assert canonicalize(from_yaml) == canonicalize(from_json)


def test_yaml_equals_sign_is_a_string():
    assert parse_spec("op: =\n", "inline") == {"op": "="}


@pytest.mark.parametrize(
    "text",
    [
        "info:\n  title: A\n  title: B\n",
        "responses:\n  1: a\n  '1': b\n",
        "flags:\n  true: a\n  'true': b\n",
    ],
)
def test_yaml_duplicate_keys_are_rejected(text):
    with pytest.raises(FormatError):
        parse_spec(text, "dupes.yaml")


def test_yaml_merge_keys_may_be_overridden():
    doc = parse_spec("base: &b {x: 1, y: 1}\nchild:\n  <<: *b\n  x: 2\n", "inline")
    assert doc["child"] == {"x": 2, "y": 1}


def test_yaml_shared_aliases_are_expanded():
    assert parse_spec("a: &a [1, 2]\nb: *a\n", "inline") == {"a": [1, 2], "b": [1, 2]}


@pytest.mark.parametrize("text", ["a: &x [*x]\n", "a: &x {b: *x}\n"])
def test_yaml_recursive_alias_raises_format_error(text):
    with pytest.raises(FormatError) as excinfo:
        parse_spec(text, "cyclic.yaml")
    assert excinfo.value.source_label == "cyclic.yaml"


def test_yaml_alias_fan_out_is_bounded(monkeypatch):
    monkeypatch.setattr(loader_module, "MAX_YAML_NODES", 50)
    text = (
        "a: &a [x, x, x, x, x]\n"
        "b: &b [*a, *a, *a, *a, *a]\n"
        "c: [*b, *b, *b, *b, *b]\n"
    )
    with pytest.raises(FormatError):
        parse_spec(text, "laughs.yaml")


def test_deeply_nested_input_raises_format_error():
    with pytest.raises(FormatError):
        parse_spec("[" * 10_000 + "]" * 10_000, "deep.json")
