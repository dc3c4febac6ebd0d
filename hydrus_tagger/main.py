"""
Main entry point for the Hydrus Auto-Tagger.
"""

import argparse
import asyncio
import sys
from typing import Optional
from pydantic import ValidationError
from .config import settings
from .exceptions import ConfigurationError, ModelLoadError, NetworkError, ServiceNotFoundError
from .health_server import HealthServer
from .hydrus_client import HydrusClient
from .interrogator import Interrogator
from .logging import MetricsLogger, get_logger, setup_logging
from .scheduler import Daemon, run_eval
from .tagger import Tagger

# CLI option -> Settings field
OVERRIDES = {
    "model_dir": "model_dir",
    "threshold": "threshold",
    "tag_service": "tag_service",
    "access_key": "hydrus_access_key",
    "host": "hydrus_host",
    "dry_run": "dry_run",
    "workers": "workers",
    "log_level": "log_level",
    "interval": "interval",
    "health_port": "health_port",
}


def _add_common_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--model-dir", help=f"Path to the model folder (default: {settings.model_dir})")
    parser.add_argument("--threshold", type=float, help=f"The threshold for a tag to be used (default: {settings.threshold})")
    parser.add_argument("--tag-service", help=f"The tag service to use (default: {settings.tag_service})")
    parser.add_argument("--access-key", help="Access key for the Hydrus Client API")
    parser.add_argument("--host", help=f"URL for the Hydrus Client API server (default: {settings.hydrus_host})")
    parser.add_argument("-d", "--dry-run", action="store_true", default=None, help="Don't commit anything to Hydrus")
    parser.add_argument("--workers", type=int, help="Number of images tagged in parallel (default: CPU count)")
    parser.add_argument("--log-level", help=f"Logging level (default: {settings.log_level})")


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Hydrus Auto-Tagger - AI-powered image tagging for Hydrus"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    eval_parser = subparsers.add_parser("eval", help="Tag a set of files once")
    _add_common_arguments(eval_parser)
    source = eval_parser.add_mutually_exclusive_group()
    source.add_argument("--hashes", nargs="+", metavar="HASH", help="Hashes to evaluate")
    source.add_argument("--hashes-file", metavar="PATH", help="File with one hash per line")
    source.add_argument("--untagged", action="store_true", help="Evaluate every untagged image")

    daemon_parser = subparsers.add_parser("daemon", help="Keep tagging untagged images")
    _add_common_arguments(daemon_parser)
    daemon_parser.add_argument(
        "--interval",
        type=int,
        help=f"Time in minutes to sleep between searches (default: {settings.interval})"
    )
    daemon_parser.add_argument(
        "--health-port",
        type=int,
        help="Serve /health, /metrics and /lookup on this port (default: disabled)"
    )

    return parser.parse_args(argv)


def apply_overrides(args: argparse.Namespace):
    """Copy CLI options that were given onto the global settings."""
    for option, field in OVERRIDES.items():
        value = getattr(args, option, None)
        if value is not None:
            setattr(settings, field, value)


async def run_daemon(daemon: Daemon, health_port: int = 0):
    """Run the daemon, with the health server alongside when enabled."""
    logger = get_logger("main")
    health_server = None
    runner = None
    if health_port:
        health_server = HealthServer(daemon)
        runner = await health_server.start(health_port)

    try:
        await daemon.run()
    finally:
        daemon.stop()
        if runner is not None:
            await health_server.stop(runner)
        logger.info("⏹️  Daemon stopped")


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    try:
        apply_overrides(args)
    except ValidationError as e:
        setup_logging(settings.log_level)
        get_logger("main").error(f"❌ Invalid option: {e}")
        return 1

    setup_logging(settings.log_level)
    logger = get_logger("main")
    logger.info(f"🚀 Starting Hydrus Auto-Tagger in {args.command} mode")

    client: Optional[HydrusClient] = None
    try:
        interrogator = Interrogator(settings.model_dir)
        client = HydrusClient(host=settings.hydrus_host, access_key=settings.hydrus_access_key)
        tagger = Tagger(client, interrogator, settings.threshold)
        metrics = MetricsLogger()

        if args.command == "eval":
            result = run_eval(
                tagger,
                settings.tag_service,
                hashes=args.hashes,
                hashes_file=args.hashes_file,
                untagged=args.untagged,
                dry_run=settings.dry_run,
                max_workers=settings.workers,
                metrics=metrics,
            )
            logger.info(
                f"🏁 Done: {result.successful}/{result.batch_size} images tagged, "
                f"{result.failed} failed in {result.processing_time:.1f}s"
            )
        else:
            daemon = Daemon(
                tagger,
                settings.tag_service,
                settings.interval,
                dry_run=settings.dry_run,
                max_workers=settings.workers,
                metrics=metrics,
            )
            asyncio.run(run_daemon(daemon, settings.health_port))

        return 0

    except (ConfigurationError, ModelLoadError, ServiceNotFoundError, NetworkError, OSError) as e:
        logger.error(f"❌ {type(e).__name__}: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("⏹️  Interrupted by user")
        return 130
    finally:
        if client is not None:
            client.close()


if __name__ == "__main__":
    sys.exit(main())
