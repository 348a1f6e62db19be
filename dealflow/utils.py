# dealflow/utils.py
"""Shared utilities: logging setup, retry decorator and small text helpers."""
import os
import re
import logging
import time
from functools import wraps
from datetime import datetime, timezone
from dotenv import load_dotenv

load_dotenv()

def get_logger(name=__name__):
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        level=getattr(logging, level, logging.INFO)
    )
    return logging.getLogger(name)

logger = get_logger("dealflow")

def retry(exceptions, tries=3, delay=1, backoff=2, logger=logger):
    def deco_retry(f):
        @wraps(f)
        def f_retry(*args, **kwargs):
            mtries, mdelay = tries, delay
            while mtries > 1:
                try:
                    return f(*args, **kwargs)
                except exceptions as e:
                    logger.warning("Retryable error: %s, retrying in %s sec", e, mdelay)
                    time.sleep(mdelay)
                    mtries -= 1
                    mdelay *= backoff
            return f(*args, **kwargs)
        return f_retry
    return deco_retry


def utcnow():
    return datetime.now(timezone.utc)


_WS = re.compile(r"\s+")

def collapse_ws(text) -> str:
    """Trim and collapse runs of whitespace (newlines included) to one space."""
    if text is None:
        return ""
    return _WS.sub(" ", str(text)).strip()


def clamp(value, low, high):
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    # round() is banker's rounding; money and scores here round .5 upwards
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)
