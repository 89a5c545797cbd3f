"""Load OpenAPI documents from a URL or a file, accepting JSON or YAML."""

from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import httpx
import yaml

from contract_sync.canonical import SpecDocument
from contract_sync.errors import (
    ConfigurationError,
    FetchError,
    FormatError,
    SpecIOError,
)
from contract_sync.settings import ContractPaths, ContractSyncSettings, get_settings

__all__ = [
    "DEFAULT_PARSERS",
    "ParseResult",
    "SpecLoader",
    "SpecSource",
    "parse_spec",
]

LOGGER = logging.getLogger(__name__)

SourceKind = Literal["url", "path"]


@dataclass(frozen=True, slots=True)
class SpecSource:
    """Location of a specification document.

    Attributes:
        kind: ``"url"`` for HTTP sources, ``"path"`` for local files.
        location: The URL or filesystem path.
    """

    kind: SourceKind
    location: str

    @classmethod
    def url(cls, url: str) -> SpecSource:
        """Source fetched over HTTP from ``url``."""

        return cls(kind="url", location=url)

    @classmethod
    def path(cls, path: str | Path) -> SpecSource:
        """Source read from the local file at ``path``."""

        return cls(kind="path", location=str(path))

    @property
    def label(self) -> str:
        """Human-readable identifier used in error messages."""

        return self.location


@dataclass(frozen=True, slots=True)
class ParseResult:
    """Outcome of a single parser attempt."""

    parser: str
    document: SpecDocument = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


_CORE_BOOL = re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$")
_CORE_INT = re.compile(r"^(?:[-+]?[0-9]+|0o[0-7]+|0x[0-9a-fA-F]+)$")
_CORE_FLOAT = re.compile(
    r"""^(?:[-+]?(?:\.[0-9]+|[0-9]+(?:\.[0-9]*)?)(?:[eE][-+]?[0-9]+)?
        |[-+]?\.(?:inf|Inf|INF)
        |\.(?:nan|NaN|NAN))$""",
    re.X,
)
# YAML 1.1 resolvers that the core schema replaces or drops.
_YAML11_TAGS = frozenset(
    f"tag:yaml.org,2002:{name}"
    for name in ("bool", "int", "float", "timestamp", "value")
)

# Upper bound on values produced from one document, so alias fan-out cannot
# expand without limit.
MAX_YAML_NODES = 1_000_000


class _ContractYamlLoader(yaml.SafeLoader):
    """Safe loader resolving plain scalars with the YAML 1.2 core schema.

    PyYAML defaults to YAML 1.1, where ``yes``/``off`` are booleans, ``0755``
    is octal and dates become ``datetime.date``. Here those stay strings or
    decimal integers, matching what a JSON source would carry. Duplicate keys
    in a mapping are rejected.
    """

    def construct_mapping(self, node: yaml.Node, deep: bool = False) -> dict:
        if isinstance(node, yaml.MappingNode):
            seen: set[str] = set()
            for key_node, _ in node.value:
                if key_node.tag == "tag:yaml.org,2002:merge":
                    continue
                if not isinstance(key_node, yaml.ScalarNode):
                    continue
                key = _key_text(self.construct_object(key_node, deep=True))
                if key in seen:
                    raise yaml.constructor.ConstructorError(
                        "while constructing a mapping",
                        node.start_mark,
                        f"found duplicate key {key!r}",
                        key_node.start_mark,
                    )
                seen.add(key)
        return super().construct_mapping(node, deep=deep)

    def construct_core_int(self, node: yaml.Node) -> int:
        value = self.construct_scalar(node)
        if value.startswith("0o"):
            return int(value[2:], 8)
        if value.startswith("0x"):
            return int(value[2:], 16)
        return int(value, 10)

    def construct_core_float(self, node: yaml.Node) -> float:
        value = self.construct_scalar(node).lower()
        if value.endswith(".inf"):
            return float("-inf") if value.startswith("-") else float("inf")
        if value == ".nan":
            return float("nan")
        return float(value)


_ContractYamlLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag not in _YAML11_TAGS]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
_ContractYamlLoader.add_implicit_resolver(
    "tag:yaml.org,2002:bool", _CORE_BOOL, list("tTfF")
)
_ContractYamlLoader.add_implicit_resolver(
    "tag:yaml.org,2002:int", _CORE_INT, list("-+0123456789")
)
_ContractYamlLoader.add_implicit_resolver(
    "tag:yaml.org,2002:float", _CORE_FLOAT, list("-+.0123456789")
)
_ContractYamlLoader.add_constructor(
    "tag:yaml.org,2002:int", _ContractYamlLoader.construct_core_int
)
_ContractYamlLoader.add_constructor(
    "tag:yaml.org,2002:float", _ContractYamlLoader.construct_core_float
)


def _reject_constant(name: str) -> float:
    raise ValueError(f"Invalid JSON constant {name!r}")


def _parse_json(raw: str) -> ParseResult:
    try:
        document = json.loads(raw, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as exc:
        return ParseResult(parser="json", error=exc)
    return ParseResult(parser="json", document=document)


def _parse_yaml(raw: str) -> ParseResult:
    try:
        loaded = yaml.load(raw, Loader=_ContractYamlLoader)  # noqa: S506 - safe loader subclass
        document = _YamlTreeConverter().convert(loaded)
    except (yaml.YAMLError, TypeError, ValueError, RecursionError) as exc:
        return ParseResult(parser="yaml", error=exc)
    return ParseResult(parser="yaml", document=document)


def _key_text(key: object) -> str:
    """Render a YAML mapping key the way a JSON object would name it."""

    if isinstance(key, str):
        return key
    if key is None or isinstance(key, (bool, int, float)):
        return json.dumps(key)
    raise TypeError(f"Unsupported mapping key type {type(key).__name__}")


class _YamlTreeConverter:
    """Turn a PyYAML tree into a JSON-compatible document.

    Aliases may make the tree cyclic or share subtrees many times over; cycles
    are rejected and the expanded size is capped at ``max_nodes``.
    """

    def __init__(self, max_nodes: int | None = None) -> None:
        self._max_nodes = MAX_YAML_NODES if max_nodes is None else max_nodes
        self._count = 0
        self._active: set[int] = set()

    def convert(self, value: object) -> SpecDocument:
        self._count += 1
        if self._count > self._max_nodes:
            raise ValueError(f"YAML document expands beyond {self._max_nodes} values")

        if isinstance(value, (list, Mapping)):
            marker = id(value)
            if marker in self._active:
                raise ValueError("YAML document contains a recursive alias")
            self._active.add(marker)
            try:
                if isinstance(value, list):
                    return [self.convert(item) for item in value]
                return self._convert_mapping(value)
            finally:
                self._active.discard(marker)

        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError(f"Non-finite number {value!r} is not JSON-compatible")
        if isinstance(value, (str, int, float, bool)) or value is None:
            return value
        raise TypeError(
            f"YAML value of type {type(value).__name__} is not JSON-compatible"
        )

    def _convert_mapping(self, value: Mapping) -> dict[str, SpecDocument]:
        converted: dict[str, SpecDocument] = {}
        for key, item in value.items():
            text = _key_text(key)
            if text in converted:
                raise ValueError(f"Mapping keys collide on {text!r}")
            converted[text] = self.convert(item)
        return converted


Parser = Callable[[str], ParseResult]

DEFAULT_PARSERS: tuple[Parser, ...] = (_parse_json, _parse_yaml)


def parse_spec(
    raw: str, source_label: str, parsers: Iterable[Parser] = DEFAULT_PARSERS
) -> SpecDocument:
    """Parse ``raw`` with each parser in turn, returning the first success.

    Args:
        raw: Document text.
        source_label: URL or path reported when every parser fails.
        parsers: Ordered parser attempts.

    Returns:
        The parsed document.

    Raises:
        FormatError: If no parser accepts the input.
    """

    for parser in parsers:
        result = parser(raw)
        if result.ok:
            LOGGER.debug(
                "Parsed specification",
                extra={"source": source_label, "parser": result.parser},
            )
            return result.document
        LOGGER.debug(
            "Parser rejected specification",
            extra={
                "source": source_label,
                "parser": result.parser,
                "error_type": type(result.error).__name__,
            },
        )
    raise FormatError(source_label)


class SpecLoader:
    """Read specification documents from HTTP or the local filesystem."""

    def __init__(
        self,
        paths: ContractPaths | None = None,
        *,
        settings: ContractSyncSettings | None = None,
        parsers: Iterable[Parser] = DEFAULT_PARSERS,
    ) -> None:
        self._settings = settings or get_settings()
        self._paths = paths or self._settings.contract_paths()
        self._parsers = tuple(parsers)

    @property
    def paths(self) -> ContractPaths:
        return self._paths

    def resolve_live_source(self) -> SpecSource:
        """Return the configured live source.

        Raises:
            ConfigurationError: If neither ``OPENAPI_SPEC_URL`` nor
                ``OPENAPI_SPEC_PATH`` is set.
        """

        if self._settings.spec_url:
            return SpecSource.url(self._settings.spec_url)
        if self._settings.spec_path:
            return SpecSource.path(self._settings.spec_path)
        raise ConfigurationError(
            "Missing OPENAPI_SPEC_URL or OPENAPI_SPEC_PATH. "
            f"Set one to compare against {self._paths.snapshot_path}."
        )

    def load(self, source: SpecSource) -> SpecDocument:
        """Read and parse the document at ``source``."""

        if source.kind == "url":
            raw = self._fetch(source.location)
        else:
            raw = self._read(Path(source.location))
        return parse_spec(raw, source.label, self._parsers)

    def load_live(self) -> SpecDocument:
        """Load the live specification named by the environment."""

        return self.load(self.resolve_live_source())

    def load_snapshot(self) -> SpecDocument:
        """Load the committed contract snapshot."""

        return self.load(SpecSource.path(self._paths.snapshot_path))

    async def load_async(self, source: SpecSource) -> SpecDocument:
        """Async wrapper for :meth:`load`."""

        return await asyncio.to_thread(self.load, source)

    async def load_live_async(self) -> SpecDocument:
        """Async wrapper for :meth:`load_live`.

        The source is resolved before any thread is started so configuration
        errors surface without I/O.
        """

        source = self.resolve_live_source()
        return await self.load_async(source)

    async def load_snapshot_async(self) -> SpecDocument:
        """Async wrapper for :meth:`load_snapshot`."""

        return await asyncio.to_thread(self.load_snapshot)

    def _fetch(self, url: str) -> str:
        LOGGER.info("Fetching specification", extra={"source": url})
        try:
            with httpx.Client(
                timeout=self._settings.fetch_timeout, follow_redirects=True
            ) as client:
                response = client.get(url)
        except httpx.HTTPError as exc:
            LOGGER.warning(
                "Specification transport error",
                extra={"source": url, "error_type": type(exc).__name__},
                exc_info=exc,
            )
            raise FetchError(url, None, str(exc)) from exc

        if not response.is_success:
            LOGGER.warning(
                "Specification HTTP error",
                extra={"source": url, "status_code": response.status_code},
            )
            raise FetchError(url, response.status_code)
        return response.text

    def _read(self, path: Path) -> str:
        LOGGER.info("Reading specification", extra={"source": str(path)})
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SpecIOError(str(path), str(exc)) from exc
