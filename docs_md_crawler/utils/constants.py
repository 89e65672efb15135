"""
Shared constants for the docs crawler.

Contains common configuration values used across multiple modules.
"""

# Default user agent string for all HTTP requests
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36 docs-md-crawler/1.0"
)

# Maximum pages to discover by default
DEFAULT_MAX_PAGES = 300

# Upper bound accepted from user input
MAX_PAGES_LIMIT = 2000

# Maximum crawl depth by default
DEFAULT_MAX_DEPTH = 6

# Minimum gap between two requests to the same host, in seconds
DEFAULT_REQUEST_DELAY = 0.3

# Per-request timeout in seconds
DEFAULT_TIMEOUT = 15

# Retries after the first attempt for retryable failures
DEFAULT_RETRIES = 2

# Base of the exponential backoff (base * 2 ** attempt), in seconds
DEFAULT_BACKOFF_BASE = 0.3

# Concurrency bounds
DEFAULT_DISCOVERY_CONCURRENCY = 6
DEFAULT_EXPORT_CONCURRENCY = 6
DEFAULT_IMAGE_CONCURRENCY = 4

# Image handling during export: 'local', 'external' or 'none'
DEFAULT_IMAGE_MODE = "local"

# Path/query substrings never crawled
DEFAULT_EXCLUDES = ("/api/", "/login", "/admin", "token=")

# Deadline for each compression-library tier of the archive encoder, in seconds
DEFAULT_ARCHIVE_DEADLINE = 30.0

# Name used when nothing better can be derived for the archive
DEFAULT_ARCHIVE_NAME = "docs-md-export"

# Name of the failure manifest added to archives
FAILED_MANIFEST_NAME = "failed-urls.txt"

# Name of the generated index page
SUMMARY_NAME = "SUMMARY.md"
