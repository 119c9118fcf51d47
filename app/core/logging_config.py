import logging
import os
import sys

FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Upstream URLs carry the access token in the query string
QUIET_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: str = "INFO", log_file: str = None) -> None:
    """configure root logging once at startup"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="a"))

    logging.basicConfig(level=level.upper(), format=FORMAT, handlers=handlers)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
