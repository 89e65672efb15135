"""
Data records shared by the discovery engine, export pipeline and archive encoder.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from bs4 import BeautifulSoup


class SourceKind(str, Enum):
    """How a URL entered the crawl queue."""

    START = "start"
    SEED = "seed"
    NAV_SEED = "nav-seed"
    CATEGORY_SEED = "category-seed"
    SITEMAP = "sitemap"
    NAV = "nav"
    CATEGORY = "category"
    CRAWL = "crawl"


class ImageMode(str, Enum):
    """What happens to images found in exported content."""

    LOCAL = "local"
    EXTERNAL = "external"
    NONE = "none"


class DiscoveryMode(str, Enum):
    """Deep crawl, or a shallow pass over the seeded table of contents."""

    DEEP = "deep"
    DIRECTORY = "directory"


@dataclass
class DiscoveredPage:
    """A page accepted into the discovered set."""

    url: str
    title: str

    def to_dict(self) -> Dict[str, str]:
        return {"url": self.url, "title": self.title}


@dataclass
class CrawlQueueEntry:
    """An entry of the discovery queue."""

    url: str
    depth: int
    source: SourceKind


@dataclass
class FailedItem:
    """A recoverable failure recorded during a session."""

    id: int
    url: str
    reason: str
    title: str = ""

    @property
    def kind(self) -> str:
        """Reason tag without its detail, e.g. "page-fetch-fail"."""
        return self.reason.split(":", 1)[0]

    @property
    def origin_kind(self) -> str:
        """Tag of the first failure, looking through "retry-fail:" prefixes."""
        for part in self.reason.split(":"):
            if part != "retry-fail":
                return part
        return self.kind

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "url": self.url, "reason": self.reason, "title": self.title}


@dataclass
class PageDraft:
    """A fetched page waiting for Markdown conversion."""

    url: str
    document: Optional[BeautifulSoup]
    title: str
    output_path: str
    byte_count: int = 0


@dataclass
class ImageJob:
    """A unique image scheduled for download into the archive."""

    url: str
    path: str


@dataclass
class ZipEntry:
    """A file of the output archive."""

    path: str
    payload: Union[str, bytes]

    def data(self) -> bytes:
        """Payload as bytes (text is encoded as UTF-8)."""
        if isinstance(self.payload, str):
            return self.payload.encode("utf-8")
        return bytes(self.payload)


@dataclass
class ExportResult:
    """Outcome of one export run."""

    entries: List[ZipEntry] = field(default_factory=list)
    pages: List[PageDraft] = field(default_factory=list)
    image_paths: Dict[str, str] = field(default_factory=dict)
    archive: bytes = b""
    filename: str = ""
    delivered_to: Optional[str] = None
    delivery_error: Optional[str] = None
    bytes_fetched: int = 0
    images_downloaded: int = 0
    stopped: bool = False

    def url_to_path(self) -> Dict[str, str]:
        """Source URL -> archive path of every exported page."""
        mapping: Dict[str, str] = {}
        for page in self.pages:
            mapping.setdefault(page.url, page.output_path)
        return mapping

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "files": len(self.entries),
            "pages": len(self.pages),
            "images": self.images_downloaded,
            "bytes": len(self.archive),
            "bytesFetched": self.bytes_fetched,
            "deliveredTo": self.delivered_to,
            "deliveryError": self.delivery_error,
            "stopped": self.stopped,
        }
