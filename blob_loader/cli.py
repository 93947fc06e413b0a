"""Command-line interface for the blob loader.

Subcommands:
    run-test    run a JSON test plan
    basic-test  run a single scenario described by flags
    query       list the keys under a prefix in a bucket
    cleanup     delete every key under a prefix in a bucket
"""

import argparse
import logging
import os
import signal
import sys
import time
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler

from blob_loader.clients import build_chain_client, build_chain_clients
from blob_loader.config import ENV_NETWORK, ENV_PRIVATE_KEY, load_plan, parse_plan
from blob_loader.errors import BlobOpError, ConfigError, ScenarioAbort
from blob_loader.models import (
    DEFAULT_BLOB_COUNT,
    DEFAULT_BLOB_SIZE_MB,
    DEFAULT_CONCURRENCY,
    BroadcastMode,
    Network,
    Target,
    TestPlan,
)
from blob_loader.provisioning import resolve_account
from blob_loader.reporters import ConsoleReporter, JsonReporter, Reporter
from blob_loader.runner import Orchestrator, RunResult
from blob_loader.stats import format_duration
from blob_loader.workloads import DeleteDriver, WorkloadContext

logger = logging.getLogger("blob_loader")

ENV_LOG_LEVEL = "BLOB_LOADER_LOG_LEVEL"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


class CompositeReporter(Reporter):
    """Reporter that delegates to multiple reporters."""

    def __init__(self, reporters: list[Reporter]):
        self._reporters = reporters

    def on_scenario_start(self, scenario) -> None:
        for reporter in self._reporters:
            reporter.on_scenario_start(scenario)

    def on_phase_complete(self, scenario, result) -> None:
        for reporter in self._reporters:
            reporter.on_phase_complete(scenario, result)

    def on_scenario_complete(self, result, status) -> None:
        for reporter in self._reporters:
            reporter.on_scenario_complete(result, status)

    def on_run_complete(self, result) -> None:
        for reporter in self._reporters:
            reporter.on_run_complete(result)


def setup_logging(verbose: bool = False) -> None:
    """Route the package logger through rich on stderr."""
    level = logging.DEBUG if verbose else os.environ.get(ENV_LOG_LEVEL, "INFO").upper()
    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.handlers[:] = [handler]
    logger.propagate = False
    try:
        logger.setLevel(level)
    except ValueError:
        logger.setLevel(logging.INFO)
        logger.warning("unknown log level %r, using INFO", level)


def _add_output_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress per-phase output, show only summary",
    )
    parser.add_argument(
        "-j", "--json-output",
        metavar="PATH",
        help="Write JSON results to file",
    )
    parser.add_argument(
        "--github-actions",
        action="store_true",
        help="Enable GitHub Actions output mode",
    )
    parser.add_argument(
        "--max-error-rate",
        type=float,
        metavar="RATE",
        help="Tolerated failed/attempted ratio per phase (overrides the plan)",
    )


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-k", "--key",
        default=os.environ.get(ENV_PRIVATE_KEY),
        help=f"Signing key (default: ${ENV_PRIVATE_KEY})",
    )
    parser.add_argument(
        "-n", "--network",
        choices=[n.value for n in Network],
        default=os.environ.get(ENV_NETWORK),
        help=f"Network (default: ${ENV_NETWORK} or devnet)",
    )
    parser.add_argument(
        "--endpoint",
        help="Gateway URL override",
    )
    parser.add_argument(
        "--target",
        choices=[t.value for t in Target],
        default=Target.SDK.value,
        help="Client to drive (default: sdk)",
    )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="blob-loader",
        description="Load test a blob storage network with declarative scenarios",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run-test", aliases=["run"], help="Run a test plan file")
    run.add_argument(
        "-p", "--path",
        default="config.json",
        help="Path to the plan file (default: config.json)",
    )
    _add_output_args(run)

    basic = commands.add_parser("basic-test", aliases=["basic"], help="Run one scenario from flags")
    _add_connection_args(basic)
    _add_output_args(basic)
    basic.add_argument("--prefix", default="foo", help="Key prefix (default: foo)")
    basic.add_argument("-f", "--funder-key", help="Funding key for --request-funds")
    basic.add_argument("-b", "--bucket", help="Existing bucket address (default: create one)")
    basic.add_argument("--buy-credits", type=int, help="Credits to buy before starting")
    basic.add_argument("--request-funds", type=int, help="Tokens to request from the funding key")
    basic.add_argument("--delete", action="store_true", help="Delete blobs afterwards")
    basic.add_argument("--download", action="store_true", help="Download blobs after uploading")
    basic.add_argument("-c", "--blob-count", type=int, default=DEFAULT_BLOB_COUNT)
    basic.add_argument("-s", "--blob-size-mb", type=float, default=DEFAULT_BLOB_SIZE_MB)
    basic.add_argument(
        "--broadcast",
        choices=[m.value for m in BroadcastMode],
        default=BroadcastMode.COMMIT.value,
        help="Broadcast mode for uploads and deletes",
    )
    basic.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY)
    basic.add_argument("--no-overwrite", action="store_true", help="Fail uploads to existing keys")

    for name, aliases, help_text in (
        ("query", [], "List keys under a prefix in a bucket"),
        ("cleanup", ["delete"], "Delete every key under a prefix in a bucket"),
    ):
        sub = commands.add_parser(name, aliases=aliases, help=help_text)
        _add_connection_args(sub)
        sub.add_argument("-b", "--bucket", required=True, help="Bucket address")
        sub.add_argument("-p", "--prefix", default="foo/", help="Key prefix (default: foo/)")
        sub.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY)

    args = parser.parse_args(argv)
    args.command = {"run": "run-test", "basic": "basic-test", "delete": "cleanup"}.get(
        args.command, args.command
    )
    return args


def plan_from_args(args: argparse.Namespace) -> TestPlan:
    """Build a one-scenario plan from basic-test flags."""
    scenario: dict[str, Any] = {
        "target": args.target,
        "broadcastMode": args.broadcast,
        "concurrency": args.concurrency,
        "upload": {
            "prefix": args.prefix,
            "blobCount": args.blob_count,
            "blobSizeMb": args.blob_size_mb,
            "overwrite": not args.no_overwrite,
        },
        "download": args.download,
        "delete": args.delete,
    }
    if args.bucket:
        scenario["upload"]["bucket"] = args.bucket
    if args.buy_credits is not None:
        scenario["buyCredit"] = args.buy_credits
    if args.request_funds is not None:
        scenario["requestFunds"] = args.request_funds

    data: dict[str, Any] = {"scenarios": [scenario]}
    for field, value in (
        ("privateKey", args.key),
        ("funderPrivateKey", args.funder_key),
        ("network", args.network),
        ("endpoint", args.endpoint),
    ):
        if value:
            data[field] = value
    return parse_plan(data)


def create_reporters(args: argparse.Namespace) -> list[Reporter]:
    """Create reporters based on command-line arguments."""
    reporters: list[Reporter] = [ConsoleReporter(quiet=args.quiet)]

    if args.json_output or args.github_actions:
        reporters.append(JsonReporter(
            output_path=args.json_output,
            github_output=args.github_actions,
        ))

    return reporters


def run_plan(plan: TestPlan, args: argparse.Namespace) -> int:
    """Execute a plan with the configured reporters and return the exit code."""
    if args.max_error_rate is not None and not 0.0 <= args.max_error_rate <= 1.0:
        print("Configuration error: --max-error-rate must be between 0 and 1", file=sys.stderr)
        return EXIT_USAGE

    try:
        clients = build_chain_clients(plan)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE

    reporters = create_reporters(args)
    reporter = reporters[0] if len(reporters) == 1 else CompositeReporter(reporters)
    orchestrator = Orchestrator(plan, clients, reporter=reporter, max_error_rate=args.max_error_rate)

    previous = signal.signal(signal.SIGINT, lambda signum, frame: orchestrator.shutdown())
    try:
        result: RunResult = orchestrator.run()
    finally:
        signal.signal(signal.SIGINT, previous)
        for client in clients.values():
            client.close()

    if orchestrator.stop.is_set():
        return EXIT_INTERRUPTED
    return result.exit_code


def _bucket_context(args: argparse.Namespace) -> tuple[WorkloadContext, Any]:
    """Resolve plan, client and identity for the query/cleanup commands."""
    data: dict[str, Any] = {
        "scenarios": [{
            "name": args.command,
            "target": args.target,
            "concurrency": args.concurrency,
            "upload": {"bucket": args.bucket, "prefix": args.prefix},
        }],
    }
    for field, value in (("privateKey", args.key), ("network", args.network), ("endpoint", args.endpoint)):
        if value:
            data[field] = value
    plan = parse_plan(data)
    scenario = plan.scenarios[0]
    client = build_chain_client(scenario.target, plan)
    identity = resolve_account(client, scenario, plan)
    context = WorkloadContext(client=client, identity=identity, bucket=args.bucket, scenario=scenario)
    return context, client


def query(args: argparse.Namespace) -> int:
    """List keys under the exact prefix given and report the listing time."""
    context, client = _bucket_context(args)
    try:
        start = time.monotonic()
        keys = client.list_bucket(context.identity, context.bucket, prefix=args.prefix)
        elapsed = time.monotonic() - start
    finally:
        client.close()

    for key in sorted(keys):
        print(key)
    logger.info("queried %d keys under %r in %s", len(keys), args.prefix, format_duration(elapsed))
    return EXIT_OK


def cleanup(args: argparse.Namespace) -> int:
    """Delete every key under the prefix."""
    context, client = _bucket_context(args)
    try:
        result = DeleteDriver(context).run()
    finally:
        client.close()

    if result.skipped:
        print(f"Listing failed: {result.first_error}", file=sys.stderr)
        return EXIT_FAILED
    if result.attempted == 0:
        print(f"Found no data to delete in bucket {args.bucket} with {args.prefix}", file=sys.stderr)
        return EXIT_FAILED

    logger.info("deleted %d/%d keys from %s", result.succeeded, result.attempted, args.bucket)
    return EXIT_OK if result.failed == 0 else EXIT_FAILED


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code: 0 for success, 1 for failures, 2 for configuration
        errors, 130 when interrupted
    """
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        if args.command == "run-test":
            return run_plan(load_plan(args.path), args)
        if args.command == "basic-test":
            return run_plan(plan_from_args(args), args)
        if args.command == "query":
            return query(args)
        return cleanup(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except (ScenarioAbort, BlobOpError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
