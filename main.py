#!/usr/bin/env python3
"""Herald: newsletter pipeline that crawls, enriches and writes.

The pipeline core owns no storage; a host factory supplies the providers
(crawl targets, article storage, task tracking) and returns a ready
NewsletterPipeline.

Commands:
    run         Build the pipeline from a host factory and run it once
    fetch       Fetch a URL with the resilient fetcher and print its size
    status      Show the effective configuration

Examples:
    python main.py run --factory myhost.pipeline:build
    python main.py -v fetch https://example.com/board
    python main.py status

Environment:
    GEMINI_API_KEY: Required for the default google-gla models
    See config.py for all configuration options
"""

import argparse
import asyncio
import importlib
import inspect
import json
import logging
import sys
from dataclasses import asdict

from config import Config
from errors import ConfigError, FetchError
from observability.logging import setup_logging
from observability.tracing import setup_tracing, trace_operation


def load_factory(spec: str):
    """Resolve 'package.module:function' to the callable it names.

    Raises:
        ConfigError: If the spec is malformed or does not resolve
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Factory must look like 'module:function', got '{spec}'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import factory module '{module_name}': {e}") from e

    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ConfigError(f"Factory '{attr}' not found or not callable in '{module_name}'")
    return factory


async def _build_and_run(factory, config: Config):
    pipeline = factory(config)
    if inspect.isawaitable(pipeline):
        pipeline = await pipeline
    return await pipeline.generate()


def cmd_run(args: argparse.Namespace, config: Config) -> int:
    """Run the newsletter pipeline once.

    The factory is called with the loaded Config and may be sync or async.

    Returns:
        Exit code (0 for success)
    """
    logger = logging.getLogger(__name__)

    try:
        factory = load_factory(args.factory)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    tracing = setup_tracing(
        enabled=config.enable_logfire,
        service_name="herald",
        token=config.logfire_token,
    )

    try:
        with trace_operation(tracing, "newsletter_run", {"factory": args.factory}) as attrs:
            newsletter_id = asyncio.run(_build_and_run(factory, config))
            attrs["newsletter_id"] = newsletter_id
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        return 130  # Standard exit code for SIGINT
    except Exception as e:
        logger.error("Pipeline failed | error=%s type=%s", e, type(e).__name__, exc_info=True)
        return 1

    if newsletter_id is None:
        logger.info("Run complete | newsletter=none")
    else:
        logger.info("Run complete | newsletter=%s", newsletter_id)
    return 0


def cmd_fetch(args: argparse.Namespace, config: Config) -> int:
    """Fetch one URL through the resilient fetcher."""
    from tools.fetch import fetch_html

    kwargs = {"referer": args.referer} if args.referer else {}
    try:
        html = asyncio.run(fetch_html(args.url, **kwargs))
    except FetchError as e:
        print(f"Fetch failed: {e.message} (status={e.status} attempt={e.attempt})", file=sys.stderr)
        return 1

    print(json.dumps({"url": args.url, "length": len(html)}))
    if args.show:
        print(html)
    return 0


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    """Display the effective configuration."""
    status = asdict(config)
    status["log_dir"] = str(config.log_dir)
    status["logfire_token"] = "***" if config.logfire_token else ""
    status["valid"] = config.validate() is None

    print(json.dumps(status, indent=2))
    return 0


def main() -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        description="Herald: newsletter generation pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Run the pipeline once")
    run_parser.add_argument(
        "--factory",
        required=True,
        help="Host factory 'module:function' taking Config and returning a NewsletterPipeline",
    )

    # fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Fetch a page with retries")
    fetch_parser.add_argument("url", help="URL to fetch")
    fetch_parser.add_argument(
        "--referer",
        help="Referer header (default: Google)",
    )
    fetch_parser.add_argument(
        "--show",
        action="store_true",
        help="Print the body after the summary line",
    )

    # status command
    subparsers.add_parser("status", help="Show configuration")

    args = parser.parse_args()

    config = Config.load()
    setup_logging(config, verbose=args.verbose)

    if args.command == "run":
        error = config.validate()
        if error:
            print(f"Configuration error: {error}", file=sys.stderr)
            return 1

    commands = {
        "run": cmd_run,
        "fetch": cmd_fetch,
        "status": cmd_status,
    }

    if args.command in commands:
        return commands[args.command](args, config)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
