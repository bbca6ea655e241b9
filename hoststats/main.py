from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from hoststats.aggregator import StatsAggregator
from hoststats.config import load_config
from hoststats.logging_utils import configure_logging, resolve_log_level
from hoststats.models import StatsSnapshot
from hoststats.schema import validate_payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Capture host telemetry snapshots")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to CFG configuration file (defaults and HOSTSTATS_* env vars otherwise)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level (TRACE, DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Capture a single snapshot, print it and exit",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between captures when polling (overrides the config file)",
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Indent the JSON output",
    )
    return parser


def emit(snapshot: StatsSnapshot, pretty: bool, logger: logging.Logger) -> None:
    payload = snapshot.to_dict()
    schema_errors = validate_payload(payload)
    if schema_errors:
        logger.warning("Schema validation failed with %s errors.", len(schema_errors))
        logger.debug("Schema errors: %s", schema_errors)
    sys.stdout.write(json.dumps(payload, indent=2 if pretty else None) + "\n")
    sys.stdout.flush()


async def run(args: argparse.Namespace, aggregator: StatsAggregator, interval: int) -> None:
    logger = logging.getLogger("hoststats")
    emit(await aggregator.capture(), args.pretty, logger)
    if args.once:
        return
    logger.info("Polling every %s seconds.", interval)
    while True:
        await asyncio.sleep(interval)
        emit(await aggregator.capture(), args.pretty, logger)


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    configure_logging(resolve_log_level(args.verbose, args.log_level))
    config = load_config(args.config)
    interval = max(1, args.interval if args.interval is not None else config.capture.interval_s)

    try:
        asyncio.run(run(args, StatsAggregator(config), interval))
    except KeyboardInterrupt:
        logging.getLogger("hoststats").info("Stopped.")


if __name__ == "__main__":
    main()
