import logging
import sys

from .config import LOG_LEVEL

_configured = False


def configure_logging(level: str = LOG_LEVEL) -> None:
    """configure root logging once for the api and the worker"""
    global _configured
    if _configured:
        return
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """get a configured logger instance"""
    return logging.getLogger(name)
