import logging
import sys

LOGGER_NAME = "slideshow"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the shared "slideshow" logger.

    Every module logs through logging.getLogger(__name__), which lands under
    this logger. Calling this more than once only updates the level.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())

    # If no handlers exist, add one (avoid duplicate logs)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False  # Prevent duplicate uvicorn logs
    return logger
