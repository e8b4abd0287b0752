"""Utilities package."""
from innofeed.utils.batching import run_in_batches
from innofeed.utils.retry import retry_async
from innofeed.utils.text import (
    clean_content, clean_html, content_hash, detect_language,
)
from innofeed.utils.time_utils import is_due, local_day_start_utc, parse_interval, utcnow
from innofeed.utils.urlnorm import extract_domain, is_valid_url, make_absolute, normalize_url

__all__ = [
    "run_in_batches", "retry_async",
    "clean_content", "clean_html", "content_hash", "detect_language",
    "is_due", "local_day_start_utc", "parse_interval", "utcnow",
    "extract_domain", "is_valid_url", "make_absolute", "normalize_url",
]
