"""
Utility modules for the docs crawler.

Contains logging, URL and path handling, rate limiting, the worker pool and
constants.
"""

from .log import setup_logger, get_logger
from .paths import normalize_url, build_output_path, build_asset_path, ensure_dir
from .ratelimit import HostRateLimiter
from .concurrency import PauseController, run_pool
from .constants import (
    DEFAULT_USER_AGENT,
    DEFAULT_TIMEOUT,
    DEFAULT_REQUEST_DELAY,
    DEFAULT_MAX_PAGES,
    DEFAULT_MAX_DEPTH,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "normalize_url",
    "build_output_path",
    "build_asset_path",
    "ensure_dir",
    "HostRateLimiter",
    "PauseController",
    "run_pool",
    "DEFAULT_USER_AGENT",
    "DEFAULT_TIMEOUT",
    "DEFAULT_REQUEST_DELAY",
    "DEFAULT_MAX_PAGES",
    "DEFAULT_MAX_DEPTH",
]
