import logging

import structlog


def configure_logging(*, json_output: bool = False, verbose: bool = False) -> None:
    """Configure structlog for the command-line tools."""
    level = logging.DEBUG if verbose else logging.INFO
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S" if not json_output else "iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        # The live UI swaps sys.stdout while it runs, so loggers must not hold on to it.
        cache_logger_on_first_use=False,
    )
