"""CLI entry point for relaysite.

Examples:
    ```bash
    python -m relaysite show
    python -m relaysite sync --config config/site.yaml
    python -m relaysite responses 30168:<pubkey>:<identifier>
    python -m relaysite watch --interval 300 --json-logs
    ```

The signing identity is read from ``PRIVATE_KEY`` (nsec1 or hex) when set;
without it the site runs anonymously and only the controller's site
configuration is reconciled.
"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path

from relaysite.core.exceptions import RelaySiteError
from relaysite.core.logger import Logger, configure_logging
from relaysite.core.metrics import MetricsServer
from relaysite.core.settings import SiteSettings
from relaysite.models import EventFilter, EventKind
from relaysite.services import Site
from relaysite.utils.keys import load_optional_keys


DEFAULT_CONFIG = Path("config") / "site.yaml"
DEFAULT_INTERVAL = 300.0

logger = Logger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="relaysite",
        description="Nostr relay-backed site configuration tool",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Site settings path (default: {DEFAULT_CONFIG})",
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
        help="Emit log lines as JSON objects",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("show", help="Print the effective configuration as JSON")
    commands.add_parser("sync", help="Reconcile once with the relays and print the outcome")

    responses = commands.add_parser("responses", help="Count responses to a form")
    responses.add_argument("address", help="Form address: <kind>:<pubkey>:<identifier>")

    watch = commands.add_parser("watch", help="Reconcile periodically and expose metrics")
    watch.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_INTERVAL,
        help=f"Seconds between reconciliations (default: {DEFAULT_INTERVAL:g})",
    )

    return parser.parse_args(argv)


def load_settings(path: Path) -> SiteSettings:
    """Load settings from *path*, falling back to defaults plus environment."""
    if not path.exists():
        logger.warning("config_not_found", path=str(path))
        return SiteSettings()
    return SiteSettings.from_yaml(path)


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def show(site: Site) -> int:
    _print_json(site.get_config().to_json_dict())
    return 0


async def sync(site: Site) -> int:
    outcomes = await site.sync()
    _print_json({source: outcome.value for source, outcome in outcomes.items()})
    return 0


async def responses(site: Site, address: str) -> int:
    """Print the number of responses to the form at *address*."""
    try:
        kind, author, identifier = address.split(":", 2)
        form_filter = EventFilter(
            kinds=(int(kind),), authors=(author,), identifiers=(identifier,), limit=1
        )
    except ValueError as e:
        logger.error("invalid_address", address=address, error=str(e))
        return 2

    relays = site.reconciler.read_relays()
    forms = [f for f in await site.query_aggregate([form_filter], relays) if f.address == address]
    if not forms or forms[0].kind != EventKind.FORM:
        logger.error("form_not_found", address=address)
        return 1

    counts = await site.aggregator.count_responses(
        forms[:1], relays, default_relay=site.settings.default_relay_url
    )
    _print_json({"address": address, "responses": counts.get(address, 0)})
    return 0


async def watch(site: Site, interval: float) -> int:
    """Reconcile every *interval* seconds until SIGINT/SIGTERM."""
    metrics_config = site.settings.metrics
    metrics_server = MetricsServer(metrics_config)
    await metrics_server.start()
    if metrics_config.enabled:
        logger.info(
            "metrics_server_started",
            host=metrics_config.host,
            port=metrics_config.port,
            path=metrics_config.path,
        )

    stop = asyncio.Event()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        stop.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        while not stop.is_set():
            site.reconciler.reset_session()
            outcomes = await site.sync()
            logger.info("sync_cycle", **{k: v.value for k, v in outcomes.items()})
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except TimeoutError:
                continue
        return 0
    finally:
        await metrics_server.stop()
        if metrics_config.enabled:
            logger.info("metrics_server_stopped")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, build the site, and run one command."""
    args = parse_args(argv)
    configure_logging(args.log_level, json_output=args.json_logs)

    try:
        settings = load_settings(args.config)
        site = Site.from_settings(settings, keys=load_optional_keys())
        async with site:
            if args.command == "show":
                return await show(site)
            if args.command == "sync":
                return await sync(site)
            if args.command == "responses":
                return await responses(site, args.address)
            return await watch(site, args.interval)
    except RelaySiteError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
