"""
Path and URL utilities for the docs crawler.

Provides URL normalization, root-path helpers, archive path generation for
Markdown pages and localized images, and directory management.
"""

import os
import re
import unicodedata
from typing import List, Optional, Set
from urllib.parse import quote, urlsplit, urlunsplit, unquote


_DEFAULT_PORTS = {"http": 80, "https": 443}
_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|]')
_WHITESPACE = re.compile(r"\s+")
_TRAILING_DOTS = re.compile(r"\.+$")
_SAFE_EXTENSION = re.compile(r"\.[A-Za-z0-9]{1,8}")
# Characters left as-is when percent-encoding a URL path
_PATH_SAFE = "/%:@!$&'()*+,;=-._~"

# Longest file or directory name produced from titles and URL segments
MAX_SEGMENT_LENGTH = 80


def _netloc(scheme: str, hostname: str, port: Optional[int]) -> str:
    host = f"[{hostname}]" if ":" in hostname else hostname
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        return f"{host}:{port}"
    return host


def normalize_url(url: str) -> str:
    """
    Canonicalize an absolute URL for deduplication.

    Lowercases scheme and host, drops credentials and default ports, removes
    the query string and fragment, and collapses a non-root trailing slash.
    Never raises: unparsable or relative input yields an empty string.

    Args:
        url: Absolute URL to normalize

    Returns:
        Normalized URL string, or "" if it cannot be normalized
    """
    if not url or not isinstance(url, str):
        return ""

    try:
        parsed = urlsplit(url.strip())
        scheme = parsed.scheme.lower()
        hostname = parsed.hostname
        port = parsed.port
    except ValueError:
        return ""

    if not scheme or not hostname:
        return ""

    path = parsed.path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    path = quote(path, safe=_PATH_SAFE)

    return urlunsplit((scheme, _netloc(scheme, hostname, port), path, "", ""))


def get_origin(url: str) -> str:
    """
    Get the scheme://host[:port] origin of a URL.

    Returns:
        Origin string, or "" for unparsable input
    """
    try:
        parsed = urlsplit(url)
        scheme = parsed.scheme.lower()
        hostname = parsed.hostname
        port = parsed.port
    except ValueError:
        return ""
    if not scheme or not hostname:
        return ""
    return f"{scheme}://{_netloc(scheme, hostname, port)}"


def get_host(url: str) -> str:
    """Get the lowercase host name of a URL ("" if there is none)."""
    try:
        return urlsplit(url).hostname or ""
    except ValueError:
        return ""


def get_url_path(url: str) -> str:
    """Get the path component of a URL, "/" when empty."""
    try:
        return urlsplit(url).path or "/"
    except ValueError:
        return "/"


def normalize_root_path(raw: Optional[str]) -> str:
    """
    Normalize a docs root path to a leading-slash, no-trailing-slash form.

    Args:
        raw: User or inferred root path, e.g. "docs/" or "/guide"

    Returns:
        Root path such as "/docs", or "/" for the site root
    """
    root = str(raw or "/").strip()
    if not root.startswith("/"):
        root = "/" + root
    if len(root) > 1:
        root = root.rstrip("/")
    return quote(root, safe=_PATH_SAFE) or "/"


def path_starts_with_root(path: str, root_path: str) -> bool:
    """Check whether a URL path equals or lies below a root path."""
    if root_path == "/":
        return True
    return path == root_path or path.startswith(root_path + "/")


def split_path_segments(path: str) -> List[str]:
    """Split a URL path into its non-empty segments."""
    return [segment for segment in path.strip("/").split("/") if segment]


def relative_segments(path_segments: List[str], root_segments: List[str]) -> List[str]:
    """Strip the root segments from a path when the path lies under the root."""
    if not root_segments:
        return list(path_segments)
    if path_segments[:len(root_segments)] != root_segments:
        return list(path_segments)
    return path_segments[len(root_segments):]


def sanitize_segment(value: Optional[str], fallback: str = "untitled") -> str:
    """
    Turn arbitrary text into a file-system-safe path segment.

    Args:
        value: Title or URL segment
        fallback: Value used when nothing printable remains

    Returns:
        Sanitized segment of at most MAX_SEGMENT_LENGTH characters
    """
    cleaned = unicodedata.normalize("NFKC", str(value or ""))
    cleaned = _UNSAFE_CHARS.sub(" ", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    cleaned = _TRAILING_DOTS.sub("", cleaned).strip()
    if not cleaned:
        return fallback or "untitled"
    return cleaned[:MAX_SEGMENT_LENGTH].strip()


def title_from_url(url: str) -> str:
    """Fallback display title: the percent-decoded last path segment."""
    segments = split_path_segments(get_url_path(url))
    if not segments:
        return get_host(url) or "index"
    return unquote(segments[-1]) or "index"


def build_output_path(
    url: str,
    title: Optional[str],
    root_path: str,
    used_paths: Optional[Set[str]] = None
) -> str:
    """
    Build the archive path of a page's Markdown file.

    Directories follow the URL path below the docs root, the file name is the
    sanitized title. When used_paths is given, collisions get "-2", "-3", ...
    suffixes and the chosen path is added to the set.

    Args:
        url: Page URL
        title: Display title of the page
        root_path: Docs root path stripped from the directory structure
        used_paths: Paths already taken in this archive

    Returns:
        Posix-style relative path ending in ".md"
    """
    try:
        raw_path = urlsplit(url).path
    except ValueError:
        raw_path = ""
    normalized = normalize_url(url) or url

    segments = [unquote(s) for s in split_path_segments(get_url_path(normalized))]
    root_segments = [unquote(s) for s in split_path_segments(normalize_root_path(root_path))]
    rel = relative_segments(segments, root_segments)

    directory_like = len(raw_path) > 1 and raw_path.endswith("/")
    dirs = rel if directory_like else rel[:-1]
    leaf = rel[-1] if rel and not directory_like else "index"

    safe_leaf = sanitize_segment(leaf, "index")
    safe_title = sanitize_segment(title or safe_leaf, safe_leaf)
    base_dir = "/".join(sanitize_segment(d, "section") for d in dirs)
    prefix = f"{base_dir}/" if base_dir else ""

    candidate = f"{prefix}{safe_title}.md"
    if used_paths is not None:
        counter = 2
        while candidate in used_paths:
            candidate = f"{prefix}{safe_title}-{counter}.md"
            counter += 1
        used_paths.add(candidate)
    return candidate


def build_asset_path(image_url: str, used_paths: Set[str]) -> str:
    """
    Build a collision-free archive path for a localized image.

    Images land under assets/<host>/<basename><ext>; ".bin" is used when the
    URL carries no usable extension.

    Args:
        image_url: Absolute image URL
        used_paths: Asset paths already taken (updated in place)

    Returns:
        Posix-style relative asset path
    """
    parsed = urlsplit(image_url)
    host = sanitize_segment(parsed.hostname or "", "assets")
    raw_name = unquote(parsed.path.rsplit("/", 1)[-1]) or "image"

    dot = raw_name.rfind(".")
    if dot > 0:
        base, ext = raw_name[:dot], raw_name[dot:]
    else:
        base, ext = raw_name, ".bin"
    if not _SAFE_EXTENSION.fullmatch(ext):
        ext = ".bin"
    safe_base = sanitize_segment(base, "image")

    candidate = f"assets/{host}/{safe_base}{ext}"
    index = 2
    while candidate in used_paths:
        candidate = f"assets/{host}/{safe_base}-{index}{ext}"
        index += 1
    used_paths.add(candidate)
    return candidate


def relative_path(from_file: str, to_file: str) -> str:
    """
    Calculate the relative path from one archive file to another.

    Args:
        from_file: Path of the referencing file
        to_file: Path of the referenced file

    Returns:
        Relative posix path, e.g. "../assets/example.com/logo.png"
    """
    from_parts = from_file.split("/")[:-1]
    to_parts = to_file.split("/")
    common = 0
    while (
        common < len(from_parts)
        and common < len(to_parts)
        and from_parts[common] == to_parts[common]
    ):
        common += 1
    up = len(from_parts) - common
    return "../" * up + "/".join(to_parts[common:])


def ensure_dir(path: str) -> None:
    """Ensure a directory exists, creating it if necessary."""
    os.makedirs(path, exist_ok=True)
