#!/usr/bin/env python3
"""resultsink - Deliver diagnostic results to Google Drive and BigQuery."""

import argparse
import json
import logging
import sys
from contextlib import closing
from dataclasses import replace
from typing import List, Optional

from dotenv import load_dotenv

from resultsink import Config, setup_logging, __version__
from resultsink.errors import ConfigurationError, ResultSinkError
from resultsink.payload import ResultPayload
from workflows import build_runtime, run_reconcile, run_retry_sweep

logger = logging.getLogger("resultsink")


def serve(config: Config, host: str, port: int) -> int:
    """Run the HTTP service (ingest endpoint and scheduled task routes)."""
    import uvicorn
    from webapp import create_app

    uvicorn.run(create_app(config), host=host, port=port, log_config=None)
    return 0


def ingest_file(config: Config, path: str) -> int:
    """Deliver a payload saved as a JSON file.

    Returns:
        0 if both deliveries succeeded, 1 if anything was queued or failed
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            payload = ResultPayload.from_dict(json.load(f))
    except (OSError, ValueError, ResultSinkError) as e:
        logger.error("cannot read payload %s - %s", path, e)
        return 1

    try:
        with closing(build_runtime(config)) as runtime:
            outcome = runtime.ingest_handler().handle_result(payload, runtime.deadline())
    except ConfigurationError as e:
        logger.critical("not enough configuration, cannot process! (%s)", e)
        return 1
    except ResultSinkError as e:
        logger.error("cannot process payload %s - %s", payload.key, e)
        return 1

    return 0 if outcome.document_delivered and outcome.record_inserted else 1


def reconcile(config: Config) -> int:
    """Run one folder reconciliation pass."""
    try:
        with closing(build_runtime(config)) as runtime:
            report = run_reconcile(runtime.reconciler(), runtime.deadline())
    except ResultSinkError as e:
        logger.error("reconciliation not started - %s", e)
        return 1
    return 0 if report is not None else 1


def retry(config: Config) -> int:
    """Replay both retry queues once."""
    try:
        with closing(build_runtime(config)) as runtime:
            reports = run_retry_sweep(runtime.coordinator, runtime.retry_queue(), runtime.deadline())
    except ResultSinkError as e:
        logger.error("retry sweep not started - %s", e)
        return 1
    return 0 if all(r is not None for r in reports.values()) else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Diagnostic result delivery service")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true",
                        help="Verbose logging (overrides DEBUG)")
    parser.add_argument("--env-file", type=str, default=None,
                        help="Load environment variables from this file (default: .env)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service")
    serve_parser.add_argument("--host", type=str, default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=8080)

    ingest_parser = subparsers.add_parser("ingest", help="Deliver a payload JSON file")
    ingest_parser.add_argument("file", type=str, help="Path to the payload JSON")

    subparsers.add_parser("reconcile", help="Run one folder reconciliation pass")
    subparsers.add_parser("retry", help="Replay failed deliveries once")

    args = parser.parse_args(argv)

    load_dotenv(args.env_file)
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    if args.debug:
        config = replace(config, debug=True)
    setup_logging(config.debug)

    if args.command == "serve":
        return serve(config, args.host, args.port)
    elif args.command == "ingest":
        return ingest_file(config, args.file)
    elif args.command == "reconcile":
        return reconcile(config)
    elif args.command == "retry":
        return retry(config)
    return 2


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
