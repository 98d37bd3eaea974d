"""CLI entry point for relaycover.

Loads a user's followees, runs the coverage analysis and logs progress.
With ``--dump`` the ranked result is printed as comma-separated lines once
the analysis and the background profile phase have finished.

Examples:
    ```bash
    python -m relaycover npub1...
    python -m relaycover 7e7e9c42...df4e --legacy --dump
    python -m relaycover npub1... --config config/relaycover.yaml --log-level DEBUG
    ```
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from relaycover import __version__
from relaycover.core import NostrSdkRelayPool, start_metrics_server
from relaycover.core.exceptions import ConfigurationError
from relaycover.core.logger import Logger, StructuredFormatter
from relaycover.core.metrics import SERVICE_INFO
from relaycover.core.yaml import load_yaml
from relaycover.models.constants import AnalysisPhase
from relaycover.services.coverage import CoverageConfig, FolloweeCoverage, format_dump


DEFAULT_CONFIG = Path("config") / "relaycover.yaml"

logger = Logger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="relaycover",
        description="Relay coverage of the accounts a Nostr user follows",
    )

    parser.add_argument(
        "identity",
        help="User public key as npub or 64-char hex",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help=f"Config path (default: {DEFAULT_CONFIG} if present)",
    )

    parser.add_argument(
        "--directory",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Use kind-10002 relay lists (default: from config)",
    )

    parser.add_argument(
        "--legacy",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Fall back to relay maps in kind-3 content (default: from config)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit driver and CLI log records as JSON objects",
    )

    parser.add_argument(
        "--dump",
        action="store_true",
        help="Print the ranked result when the analysis completes",
    )

    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Install a ``StructuredFormatter`` on the root handler."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def load_config(path: Path | None, overrides: dict[str, Any] | None = None) -> CoverageConfig:
    """Build the driver configuration from YAML plus CLI source overrides.

    Without an explicit ``path`` the default location is used when it
    exists, otherwise built-in defaults apply.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid.
    """
    data: dict[str, Any] = {}
    try:
        if path is not None:
            data = load_yaml(path)
        elif DEFAULT_CONFIG.exists():
            data = load_yaml(DEFAULT_CONFIG)
        if overrides:
            data.setdefault("sources", {}).update(overrides)
        return CoverageConfig(**data)
    except (FileNotFoundError, yaml.YAMLError, ValidationError, ValueError) as e:
        raise ConfigurationError(str(e)) from e


async def run(args: argparse.Namespace, config: CoverageConfig, log: Logger = logger) -> int:
    """Load the user, run the analysis and optionally print the dump.

    Returns:
        Exit code: 0 on success, 1 if the identity is invalid or has no
        followees, 130 if interrupted.
    """
    metrics_server = await start_metrics_server(config.metrics)
    if config.metrics.enabled:
        log.info(
            "metrics_server_started",
            host=config.metrics.host,
            port=config.metrics.port,
            path=config.metrics.path,
        )

    interrupted = False

    try:
        async with (
            NostrSdkRelayPool(timeout=config.timeouts.fetch) as pool,
            FolloweeCoverage(pool, config, json_logs=args.json_logs) as driver,
        ):

            def handle_signal(sig: signal.Signals) -> None:
                nonlocal interrupted
                log.info("shutdown_signal", signal=sig.name)
                interrupted = True
                driver.cancel()

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, handle_signal, sig)

            async for load in driver.load_user(args.identity):
                log.info("load_progress", phase=load.phase, status=load.status_message)

            if interrupted:
                return 130
            if not driver.can_analyze:
                return 1

            status = ""
            async for update in driver.start_analysis():
                if update.status_message != status:
                    status = update.status_message
                    log.info("analysis_progress", status=status)

            if interrupted:
                return 130
            if driver.phase is not AnalysisPhase.COMPLETE:
                return 1

            if args.dump:
                await driver.join()
                for line in format_dump(driver.user_profile, driver.user_relays, driver.analyses):
                    print(line)
            return 0
    finally:
        await metrics_server.stop()
        if config.metrics.enabled:
            log.info("metrics_server_stopped")


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, build the config, and run the analysis."""
    args = parse_args(argv)
    setup_logging(args.log_level)
    log = Logger("cli", json_output=args.json_logs)

    overrides: dict[str, Any] = {}
    if args.directory is not None:
        overrides["use_directory_format"] = args.directory
    if args.legacy is not None:
        overrides["use_legacy_format"] = args.legacy

    try:
        config = load_config(args.config, overrides)
    except ConfigurationError as e:
        log.error("config_invalid", error=str(e))
        return 2

    SERVICE_INFO.info({"version": __version__})

    try:
        return await run(args, config, log)
    except KeyboardInterrupt:
        log.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
