"""
Crawl scope classification.

is_in_scope() is deliberately permissive: it only rejects what can never be
a documentation page. Narrowing to the docs root and category sections is
done by the discovery engine with the inferred root and prefixes.
"""

from typing import Iterable, Optional
from urllib.parse import urljoin, urlsplit

from ..utils.paths import get_origin, path_starts_with_root, normalize_root_path


STATIC_EXTENSIONS = (
    # images
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico", ".bmp", ".avif", ".tif", ".tiff",
    # archives
    ".zip", ".tar", ".gz", ".tgz", ".bz2", ".xz", ".rar", ".7z",
    # audio / video
    ".mp4", ".webm", ".mov", ".avi", ".mkv", ".m4v", ".mp3", ".wav", ".ogg", ".m4a", ".flac",
    # fonts
    ".woff", ".woff2", ".ttf", ".otf", ".eot",
    # documents
    ".pdf",
)


def has_static_extension(path: str) -> bool:
    """Check whether a URL path names a static asset."""
    return path.lower().endswith(STATIC_EXTENSIONS)


def is_in_scope(
    url: str,
    origin: str,
    base_url: Optional[str] = None,
    exclude_patterns: Optional[Iterable[str]] = None
) -> bool:
    """
    Decide whether a URL may be crawled.

    Args:
        url: Absolute URL, or a relative one resolved against base_url
        origin: Origin of the crawl, e.g. "https://example.com"
        base_url: Base for resolving relative URLs
        exclude_patterns: Case-insensitive substrings of path+query to reject

    Returns:
        False for non-http(s), cross-origin, excluded or static-asset URLs
    """
    try:
        absolute = urljoin(base_url, url) if base_url else url
        parsed = urlsplit(absolute)
    except ValueError:
        return False

    if parsed.scheme.lower() not in ("http", "https"):
        return False
    if get_origin(absolute) != get_origin(origin):
        return False

    path = parsed.path or "/"
    target = (path + ("?" + parsed.query if parsed.query else "")).lower()
    for pattern in exclude_patterns or ():
        if pattern and str(pattern).lower() in target:
            return False

    return not has_static_extension(path)


def matches_path_prefix(url: str, prefixes: Optional[Iterable[str]]) -> bool:
    """
    Check whether a URL lies under any of the given path prefixes.

    Returns True when no prefixes are given.
    """
    prefixes = [p for p in (prefixes or ()) if p]
    if not prefixes:
        return True
    try:
        path = urlsplit(url).path or "/"
    except ValueError:
        return False
    return any(path_starts_with_root(path, normalize_root_path(prefix)) for prefix in prefixes)
