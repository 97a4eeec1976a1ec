"""
config.py — Environment-driven settings for the runner and exporters.

The analysis functions take every knob as a plain parameter; only the CLI
and report builders read these module-level values.
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "My School")
EXCUSE_DEADLINE_DAYS = int(os.getenv("EXCUSE_DEADLINE_DAYS", "7"))
# Comma-separated HH:MM values, e.g. 15:20,16:50
raw_end_times = os.getenv("LESSON_END_TIMES", "16:50")
LESSON_END_TIMES = tuple(t.strip() for t in raw_end_times.split(",") if t.strip())
TRAILING_WEEKS = int(os.getenv("TRAILING_WEEKS", "4"))
MOVING_AVERAGE_WINDOW = int(os.getenv("MOVING_AVERAGE_WINDOW", "3"))
SPARSE_SERIES_THRESHOLD = int(os.getenv("SPARSE_SERIES_THRESHOLD", "5"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Install a single stream handler on the root logger."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        force=True,
    )
