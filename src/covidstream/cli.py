"""Command-line interface for covid-stream.

Downloads the time series, reshapes it and publishes every observation to Kafka.

Usage:
    covidstream run
    covidstream run --brokers kafka-0:9092,kafka-1:9092 --topic covid19
    covidstream run --data-url https://example.org/series.csv --format json

Exit codes:
    0  every observation was published
    1  the run failed (bad arguments, download or parse error)
    2  some observations were not published (including an unreachable broker)
    130  interrupted
"""

import argparse
import asyncio
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from covidstream import __version__
from covidstream.config import parse_broker_list, settings
from covidstream.clients.kafka import KafkaSink
from covidstream.errors import PipelineError
from covidstream.pipeline.orchestrator import Orchestrator
from covidstream.pipeline.publisher import PublishReport

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=1)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2
EXIT_INTERRUPTED = 130


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser.

    Returns:
        Configured ArgumentParser with all commands and arguments.
    """
    parser = argparse.ArgumentParser(
        prog="covidstream",
        description="covid-stream — publish COVID-19 time series observations to Kafka",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  covidstream run
  covidstream run --brokers kafka-0:9092,kafka-1:9092 --topic covid19
  covidstream run --format json

Defaults can also be set with COVIDSTREAM_* environment variables.
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser(
        "run",
        help="Fetch, reshape and publish the dataset",
        description="Fetch the wide-format CSV and publish one message per region and date",
    )
    run_parser.add_argument(
        "--data-url",
        type=str,
        default=settings.data_url,
        help="URL of the time series CSV (default: JHU CSSE confirmed cases)",
    )
    run_parser.add_argument(
        "--brokers",
        type=str,
        default=settings.kafka_brokers,
        help=f"Comma-separated Kafka broker list (default: {settings.kafka_brokers})",
    )
    run_parser.add_argument(
        "--topic",
        type=str,
        default=settings.kafka_topic,
        help=f"Kafka topic to publish to (default: {settings.kafka_topic})",
    )
    run_parser.add_argument(
        "--concurrency",
        type=int,
        default=settings.publish_concurrency,
        help=f"Max concurrent publishes (default: {settings.publish_concurrency})",
    )
    run_parser.add_argument(
        "--timeout",
        type=float,
        default=settings.publish_timeout,
        help=f"Per-record publish timeout in seconds (default: {settings.publish_timeout})",
    )
    run_parser.add_argument(
        "--format",
        type=str,
        choices=["text", "json"],
        default="text",
        help="Summary output format (default: text)",
    )

    # version command
    subparsers.add_parser(
        "version",
        help="Show version information",
    )

    return parser


def _run_async(coro):
    """Run an async coroutine from synchronous CLI context.

    Spins up a new event loop in a dedicated thread to avoid conflicts
    with any existing event loop.
    """
    def _target():
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()

    future = _executor.submit(_target)
    return future.result()


async def run_pipeline(
    data_url: str,
    brokers: list[str],
    topic: str,
    concurrency: int,
    timeout: float,
) -> PublishReport:
    """Run the pipeline once against a Kafka sink.

    The orchestrator starts the sink after the document is reshaped and stops it
    when publishing ends.
    """
    sink = KafkaSink.configure(brokers, topic)
    orchestrator = Orchestrator(sink, concurrency=concurrency, timeout=timeout)
    return await orchestrator.run(data_url)


def format_report(report: PublishReport) -> str:
    """Human-readable one-line summary of a run."""
    status = "OK" if report.ok else "PARTIAL"
    return (
        f"{status}: {report.succeeded}/{report.attempted} observations published, "
        f"{report.failed} failed"
    )


def cmd_run(args: argparse.Namespace) -> int:
    """Execute the run command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (see module docstring)
    """
    brokers = parse_broker_list(args.brokers)
    if not brokers:
        print("Error: --brokers must name at least one broker", file=sys.stderr)
        return EXIT_FAILED
    if args.concurrency < 1:
        print("Error: --concurrency must be at least 1", file=sys.stderr)
        return EXIT_FAILED
    if args.timeout <= 0:
        print("Error: --timeout must be positive", file=sys.stderr)
        return EXIT_FAILED

    try:
        logger.info(
            "Running pipeline (data_url=%s, brokers=%s, topic=%s)",
            args.data_url, brokers, args.topic,
        )
        report = _run_async(
            run_pipeline(
                data_url=args.data_url,
                brokers=brokers,
                topic=args.topic,
                concurrency=args.concurrency,
                timeout=args.timeout,
            )
        )

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return EXIT_INTERRUPTED
    except PipelineError as e:
        logger.error("Run failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED
    except Exception as e:
        logger.error("Run failed: %s", e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED

    if args.format == "json":
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(format_report(report))

    return EXIT_OK if report.ok else EXIT_PARTIAL


def cmd_version(args: argparse.Namespace) -> int:
    """Execute the version command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    print(f"covid-stream v{__version__}")
    print("COVID-19 time series → Kafka publisher")
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    parser = create_parser()
    args = parser.parse_args(argv)

    # Route to command handler
    if args.command == "run":
        return cmd_run(args)
    elif args.command == "version":
        return cmd_version(args)
    else:
        # No command specified
        parser.print_help()
        return EXIT_OK


def cli_entry() -> None:
    """Console script entry point for setuptools."""
    sys.exit(main())


if __name__ == "__main__":
    cli_entry()
