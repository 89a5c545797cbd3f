"""Command-line entry points for syncing the OpenAPI contract snapshot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Callable
from logging.handlers import QueueListener

from .drift import Diverged, check_drift, render_diff
from .loader import SpecLoader
from .logging_pipeline import (
    configure_structured_logging,
    detach_queue_handlers,
    shutdown_listeners,
)
from .settings import ContractPaths, ContractSyncSettings, get_settings
from .snapshot import SnapshotWriter

UPDATE_HINT = "Run contract-update to sync the snapshot."
SETUP_HINT = (
    "Run contract-update after setting OPENAPI_SPEC_URL or OPENAPI_SPEC_PATH."
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contract-sync",
        description="Keep the committed OpenAPI contract snapshot in sync with the live spec.",
    )
    parser.add_argument(
        "--root",
        help="Repository root. Defaults to CONTRACT_SYNC_REPO_ROOT or the current directory.",
    )
    parser.add_argument(
        "--snapshot",
        help="Snapshot path. Relative paths resolve against the repository root.",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit structured JSON logs to stderr at CONTRACT_SYNC_LOG_LEVEL.",
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("update", help="Overwrite the snapshot with the live spec.")
    check = commands.add_parser("check", help="Fail when the live spec drifts.")
    check.add_argument(
        "--diff",
        action="store_true",
        help="Print a unified diff of the canonical documents on drift.",
    )
    return parser


def _resolve_paths(
    args: argparse.Namespace, settings: ContractSyncSettings
) -> ContractPaths:
    if args.root is None and args.snapshot is None:
        return settings.contract_paths()
    defaults = settings.contract_paths()
    root = args.root if args.root is not None else defaults.repo_root
    snapshot = args.snapshot if args.snapshot is not None else settings.snapshot_path
    return ContractPaths.for_root(root, snapshot)


def _run_update(loader: SpecLoader, writer: SnapshotWriter) -> int:
    spec = loader.load_live()
    path = writer.write(spec)
    print(f"Updated contract snapshot at {path}.")
    return 0


async def _load_pair(loader: SpecLoader) -> tuple[object, object]:
    snapshot_doc, live_doc = await asyncio.gather(
        loader.load_snapshot_async(), loader.load_live_async()
    )
    return snapshot_doc, live_doc


def _run_check(loader: SpecLoader, writer: SnapshotWriter, *, show_diff: bool) -> int:
    if not writer.exists():
        print(f"Missing contract snapshot at {writer.path}.", file=sys.stderr)
        print(SETUP_HINT, file=sys.stderr)
        return 1

    snapshot_doc, live_doc = asyncio.run(_load_pair(loader))
    result = check_drift(snapshot_doc, live_doc)

    if isinstance(result, Diverged):
        print("OpenAPI contract drift detected.", file=sys.stderr)
        print(f"Contract hash: {result.snapshot_digest}", file=sys.stderr)
        print(f"Source hash:   {result.live_digest}", file=sys.stderr)
        if show_diff:
            print(render_diff(snapshot_doc, live_doc), end="", file=sys.stderr)
        print(UPDATE_HINT, file=sys.stderr)
        return 1

    print("OpenAPI contract is in sync.")
    return 0


def main(
    argv: list[str] | None = None, *, settings: ContractSyncSettings | None = None
) -> int:
    """Run the contract-sync command line."""
    parser = _build_parser()

    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:  # pragma: no cover - controlled via tests
        exit_code = int(exc.code) if isinstance(exc.code, int) else 1
        return 0 if exit_code == 0 else 1

    listeners: list[QueueListener] = []
    try:
        env_settings = settings or get_settings()
        if args.log_json:
            listeners.append(
                configure_structured_logging(
                    logging.getLogger("contract_sync"),
                    level=env_settings.log_level_value,
                )
            )

        paths = _resolve_paths(args, env_settings)
        loader = SpecLoader(paths, settings=env_settings)
        writer = SnapshotWriter(paths)

        if args.command == "update":
            return _run_update(loader, writer)
        return _run_check(loader, writer, show_diff=args.diff)

    except Exception as exc:
        print(str(exc), file=sys.stderr)
        return 1
    finally:
        shutdown_listeners(listeners)
        if listeners:
            detach_queue_handlers(logging.getLogger("contract_sync"))


def _subcommand_entry(command: str) -> Callable[[list[str] | None], int]:
    def _entry(argv: list[str] | None = None) -> int:
        extra = sys.argv[1:] if argv is None else argv
        options = [arg for arg in extra if arg != "--diff"]
        trailing = ["--diff"] if "--diff" in extra and command == "check" else []
        return main([*options, command, *trailing])

    _entry.__name__ = f"{command}_main"
    return _entry


update_main = _subcommand_entry("update")
check_main = _subcommand_entry("check")


if __name__ == "__main__":
    raise SystemExit(main())
