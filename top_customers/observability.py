"""Logging configuration for pipeline runs.

Library modules log through the standard library ``logging`` module; the
pipeline and CLI emit structured events through structlog. Both write to
stderr so stdout stays free for piping.
"""

import logging
import os
import sys

import structlog


def configure_logging(verbose: bool = False, json_format: bool = True) -> None:
    """Configure stdlib logging and structlog for a run.

    Args:
        verbose: Enable DEBUG level. ``VERBOSE=true`` in the environment has
            the same effect.
        json_format: Render structlog events as JSON lines; otherwise use the
            human-friendly console renderer.
    """
    if verbose or os.getenv("VERBOSE", "").strip().lower() == "true":
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        level=level,
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
