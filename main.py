"""CLI entry point for the caterer.com job harvester."""

import argparse
import asyncio
import logging
import sys

from harvester.core.config import ConfigError, SearchSpec, Settings, load_input
from harvester.core.sink import SinkError
from harvester.pipeline.orchestrator import harvest


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Harvest job listings from caterer.com into a local dataset",
    )
    parser.add_argument(
        "--input",
        default="INPUT.json",
        help="Path to the run input record, JSON or YAML (default: INPUT.json)",
    )
    parser.add_argument(
        "--settings",
        default=None,
        help="Optional runtime settings YAML (tier timeouts, pacing, storage)",
    )
    parser.add_argument(
        "--storage",
        default=None,
        help="Override the storage directory for dataset and stats",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def load_run_config(args: argparse.Namespace) -> tuple[SearchSpec, Settings]:
    """Resolve the input record and runtime settings from CLI arguments."""
    spec = SearchSpec.from_input(load_input(args.input))
    settings = Settings.from_yaml(args.settings) if args.settings else Settings()
    if args.storage:
        settings = settings.model_copy(
            update={"output": settings.output.model_copy(update={"storage_dir": args.storage})},
        )
    return spec, settings


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        spec, settings = load_run_config(args)
    except (ConfigError, FileNotFoundError, ValueError) as e:
        print(f"Error loading input: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        stats = asyncio.run(harvest(spec, settings))
    except SinkError as e:
        print(f"Output failure, run aborted: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"\nHarvest complete: {stats.jobs_saved}/{spec.results_wanted} jobs saved "
          f"from {stats.pages_processed} pages "
          f"(http {stats.http_pages}, browser {stats.browser_pages}).")
    print(f"Dataset written under {settings.output.storage_dir}")


if __name__ == "__main__":
    main()
