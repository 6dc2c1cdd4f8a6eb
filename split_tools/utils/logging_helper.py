"""A basic logging helper."""
import logging
import sys


def setup_logging(level=logging.INFO, log_file=None):
    """Configures basic logging to stdout and, optionally, to *log_file*."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=handlers,
        force=True,
    )
