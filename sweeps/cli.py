"""Cron entry point for enrichment sweeps and source registration."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from typing import Any

from opentelemetry import trace

from sweeps.core.config import get_settings
from sweeps.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from sweeps.services.fetcher import DiagnosticFetcher, build_http_client
from sweeps.services.orchestrator import SweepAbortedError, SweepOrchestrator
from sweeps.services.registry import SourceRegistry
from sweeps.services.repository import RepositoryError, get_repository

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sweeps", description="Tournament and assignor enrichment sweeps.")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Run one enrichment sweep and print its summary as JSON")
    run.add_argument("--limit", type=int, default=None, help="Maximum entities to attempt (clamped to 1..2000)")
    run.add_argument("--entity-type", choices=["tournament", "assignor"], default="tournament")
    run.add_argument("--strategy", choices=["default", "usssa"], default=None)
    run.add_argument("--no-contacts", action="store_true", help="Skip the contact enrichment step")

    register = commands.add_parser("register", help="Register a source URL in the registry")
    register.add_argument("url")
    register.add_argument("--source-type", default=None)
    register.add_argument("--sport", default=None)
    register.add_argument("--state", default=None)
    return parser


async def run_command(args: argparse.Namespace) -> dict[str, Any]:
    settings = get_settings()
    repository = get_repository()
    try:
        if args.command == "register":
            entry = await SourceRegistry(repository).ensure(
                args.url,
                {"source_type": args.source_type, "sport": args.sport, "state": args.state},
            )
            return {"ok": True, "source": asdict(entry)}

        async with build_http_client(settings) as client:
            orchestrator = SweepOrchestrator(repository, DiagnosticFetcher.from_settings(client, settings), settings)
            with tracer.start_as_current_span("cron.sweep"):
                summary = await orchestrator.run_sweep(
                    limit=args.limit,
                    entity_type=args.entity_type,
                    strategy=args.strategy,
                    include_contacts=not args.no_contacts,
                )
        return {"ok": True, **summary.as_dict()}
    finally:
        await repository.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging()
    runtime = setup_telemetry(settings, component="cron")
    try:
        result = asyncio.run(run_command(args))
    except SweepAbortedError as exc:
        print(json.dumps({"ok": False, "error": exc.code, "detail": exc.message, **exc.partial}, default=str))
        return 1
    except RepositoryError as exc:
        logger.error("sweep command failed: %s", exc)
        print(json.dumps({"ok": False, "error": type(exc).__name__, "detail": str(exc)}))
        return 1
    finally:
        shutdown_telemetry(runtime)

    print(json.dumps(result, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
