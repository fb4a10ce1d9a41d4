"""Logging configuration for wordloop."""

import logging
import logging.handlers

from wordloop.config import LoggingSettings

_HANDLER_MARK = "_wordloop_handler"


def setup_logging(settings: LoggingSettings) -> None:
    """Set up console and optional rotating file logging on the root logger."""
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.level)

    # Replace handlers from an earlier call (tests invoke the CLI repeatedly)
    for handler in list(root_logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(settings.format)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    setattr(console_handler, _HANDLER_MARK, True)
    root_logger.addHandler(console_handler)

    if settings.file:
        settings.file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            settings.file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_MARK, True)
        root_logger.addHandler(file_handler)

    logging.getLogger(__name__).debug("Logging configured at %s", settings.level)
