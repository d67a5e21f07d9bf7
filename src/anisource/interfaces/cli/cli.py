from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from anisource.domain.entities import MappingMode, ResolveOptions, ShowType
from anisource.domain.errors import (
    ConfigurationError,
    NotFoundError,
    ResolutionError,
    UpstreamError,
)
from anisource.infrastructure.config import AppConfig, load_config
from anisource.infrastructure.logging.setup import configure_logging
from anisource.interfaces.composition import lifespan

log = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_NOT_FOUND = 2
EXIT_UPSTREAM = 3
EXIT_CONFIGURATION = 4


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="anisource",
        description="Resolve an anime episode to playable stream URLs.",
    )

    # Config wiring flags (no business logic)
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file.",
    )
    parser.add_argument(
        "--dotenv",
        default=None,
        help="Path to .env file.",
    )
    parser.add_argument(
        "--profile",
        default=None,
        help="Resolver profile (default, fast, thorough).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level.",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Override log format.",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    resolve = commands.add_parser("resolve", help="Resolve one episode.")
    resolve.add_argument("identifier", help="AniList id or free-text title.")
    resolve.add_argument("episode", type=_positive_int, help="Episode number (>= 1).")
    resolve.add_argument(
        "--source",
        default=None,
        help="Preferred source id (see `anisource sources`).",
    )
    resolve.add_argument(
        "--no-cache",
        action="store_true",
        help="Skip the cache lookup (the result is still stored).",
    )
    resolve.add_argument(
        "--mapping",
        default=MappingMode.AUTO.value,
        choices=[m.value for m in MappingMode],
        help="Episode-number mapping mode.",
    )
    resolve.add_argument(
        "--type",
        dest="show_type",
        default=None,
        choices=[t.value for t in ShowType],
        help="Override the show type reported by the metadata service.",
    )

    commands.add_parser("sources", help="List the registered sources.")

    return parser.parse_args(list(argv) if argv is not None else None)


def _emit(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")
    sys.stdout.flush()


def _error_payload(exc: BaseException) -> dict[str, Any]:
    payload: dict[str, Any] = {"error": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, NotFoundError):
        payload["errors"] = exc.errors
        payload["upstream_only"] = exc.upstream_only
    return payload


def _exit_code(exc: ResolutionError) -> int:
    if isinstance(exc, ConfigurationError):
        return EXIT_CONFIGURATION
    if isinstance(exc, UpstreamError):
        return EXIT_UPSTREAM
    return EXIT_NOT_FOUND


async def _run(config: AppConfig, args: argparse.Namespace) -> int:
    async with lifespan(config) as state:
        if args.command == "sources":
            _emit(
                {
                    "sources": [
                        {
                            "id": a.descriptor.id,
                            "name": a.descriptor.display_name,
                            "priority": a.descriptor.priority,
                            "timeout_seconds": a.descriptor.timeout_seconds,
                            "season_aware": a.descriptor.season_aware,
                            "enabled": a.descriptor.enabled,
                        }
                        for a in state.registry.all()
                    ]
                }
            )
            return EXIT_OK

        options = ResolveOptions(
            preferred_source=args.source,
            bypass_cache=args.no_cache,
            mapping_mode=MappingMode(args.mapping),
            show_type=ShowType(args.show_type) if args.show_type else None,
        )
        try:
            result = await state.use_case.execute(args.identifier, args.episode, options)
        except ResolutionError as exc:
            log.error("resolve_failed", error=str(exc), kind=type(exc).__name__)
            _emit(_error_payload(exc))
            return _exit_code(exc)
        finally:
            log.debug("metrics_snapshot", **state.metrics.snapshot())

        _emit(result.to_dict())
        return EXIT_OK


def start(argv: Iterable[str] | None = None) -> int:
    """
    Process entrypoint.

    Loads config exactly once, configures logging, then runs the command.
    Returns the process exit code.
    """
    if argv is None:
        argv = sys.argv[1:]

    args = _parse_args(argv)

    config_path = Path(args.config) if args.config else None
    dotenv_path = Path(args.dotenv) if args.dotenv else None

    cli_overrides: dict[str, Any] = {}
    if args.log_level:
        cli_overrides["log_level"] = args.log_level
    if args.log_format:
        cli_overrides["log_format"] = args.log_format
    if args.profile:
        cli_overrides["resolver_profile"] = args.profile

    try:
        config = load_config(
            config_path=config_path,
            dotenv_path=dotenv_path,
            cli_overrides=cli_overrides,
        )
    except (FileNotFoundError, ValidationError, ValueError) as exc:
        _emit(_error_payload(exc))
        return EXIT_CONFIGURATION

    configure_logging(config)

    try:
        return asyncio.run(_run(config, args))
    except ConfigurationError as exc:
        _emit(_error_payload(exc))
        return EXIT_CONFIGURATION


if __name__ == "__main__":
    raise SystemExit(start())
