"""
Command-line entry point for winbox-stats.

    winbox-stats            capture one snapshot into the capture directory
    winbox-stats graph      export and chart every store under the graph root

Scheduling is left to cron / Task Scheduler; each invocation does one unit of
work and exits.
"""

from __future__ import annotations

import sys

from winbox_stats.capture import run_capture
from winbox_stats.config import MODE_GRAPH, AppConfig, load_config
from winbox_stats.errors import ConfigError, StatsError
from winbox_stats.graph import run_graph
from winbox_stats.logging import get_logger, setup_logging

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def run(config: AppConfig) -> int:
    """
    Execute the configured mode.

    Args:
        config: Loaded application configuration.

    Returns:
        Process exit status.
    """
    if config.mode == MODE_GRAPH:
        report = run_graph(config.graph)
        for skipped in report.skipped:
            if skipped.error_code != "path_parse_failure":
                print(
                    f"warning: skipped {skipped.path}: {skipped.reason}",
                    file=sys.stderr,
                )
        return EXIT_OK

    try:
        run_capture(config.capture)
    except StatsError as e:
        logger.error(
            "Capture failed",
            extra={"error_code": e.error_code, "error": e.message, "details": e.details},
        )
        print(f"error: {e.message}", file=sys.stderr)
        return EXIT_FAILURE
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """
    Parse arguments, configure logging and run.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        Process exit status.
    """
    try:
        config = load_config(cli_args=argv)
    except ConfigError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return EXIT_FAILURE

    setup_logging(config.logging)
    return run(config)
