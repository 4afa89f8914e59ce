"""Logging setup for the sticker service."""

import logging

# Client libraries that log every image request at INFO.
_CHATTY_LOGGERS = ("httpx", "openai")


def configure_logging(level: str | int = logging.INFO) -> None:
    """Route ``sticker_forge`` logs to stderr at the given level.

    Safe to call repeatedly: the handler is installed once, the level is
    updated on every call. Outbound HTTP request logs never drop below
    WARNING.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved
    logger = logging.getLogger("sticker_forge")
    logger.setLevel(level)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    logger.addHandler(handler)
    logger.propagate = False
