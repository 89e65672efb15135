"""
Link and image rewriter for exported pages.

Links to other exported pages become relative archive paths; images are kept
external, localized into the archive, or dropped.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Set
from urllib.parse import urljoin, urlsplit

from bs4 import Tag

from ..models import ImageJob, ImageMode
from ..utils.log import get_logger
from ..utils.paths import build_asset_path, normalize_url, relative_path


@dataclass
class ImageRegistry:
    """Localized images of one export: source URL -> archive path."""

    by_url: Dict[str, str] = field(default_factory=dict)
    used_paths: Set[str] = field(default_factory=set)


def link_target(path: str) -> str:
    """Escape the characters that break Markdown link destinations."""
    return path.replace(" ", "%20").replace("(", "%28").replace(")", "%29")


def get_image_src(img: Tag) -> str:
    """Image source, honoring lazy-loading data-src."""
    return (img.get("src") or img.get("data-src") or "").strip()


class LinkRewriter:
    """
    Rewrites anchors and images of a content node in place.

    The node belongs to a single page draft, so mutating it is safe.
    """

    def __init__(self, image_mode: ImageMode = ImageMode.LOCAL):
        """
        Args:
            image_mode: How images are handled (local, external or none)
        """
        self.image_mode = ImageMode(image_mode)
        self.logger = get_logger("rewriter")

    def rewrite(
        self,
        node: Tag,
        page_url: str,
        page_path: str,
        url_to_path: Mapping[str, str],
        registry: ImageRegistry
    ) -> List[ImageJob]:
        """
        Rewrite links and images of one page.

        Args:
            node: Content node of the page
            page_url: URL the page was fetched from
            page_path: Archive path of the page's Markdown file
            url_to_path: Normalized URL -> archive path of every exported page
            registry: Image registry shared by the whole export

        Returns:
            Image download jobs first seen on this page
        """
        self.rewrite_links(node, page_url, page_path, url_to_path)
        return self.rewrite_images(node, page_url, page_path, registry)

    def rewrite_links(
        self,
        node: Tag,
        page_url: str,
        page_path: str,
        url_to_path: Mapping[str, str]
    ) -> None:
        """Point links at exported pages to their relative archive path."""
        for anchor in node.find_all("a", href=True):
            raw = (anchor.get("href") or "").strip()
            if not raw or raw.lower().startswith(("javascript:", "mailto:", "tel:", "data:")):
                continue
            if raw.startswith("#"):
                continue
            try:
                absolute = urljoin(page_url, raw)
                fragment = urlsplit(absolute).fragment
            except ValueError:
                continue

            mapped = url_to_path.get(normalize_url(absolute))
            if mapped:
                target = link_target(relative_path(page_path, mapped))
                anchor["href"] = f"{target}#{fragment}" if fragment else target
            else:
                anchor["href"] = absolute

    def rewrite_images(
        self,
        node: Tag,
        page_url: str,
        page_path: str,
        registry: ImageRegistry
    ) -> List[ImageJob]:
        """Apply the image mode to every <img> of the node."""
        jobs: List[ImageJob] = []

        for img in node.find_all("img"):
            if self.image_mode == ImageMode.NONE:
                img.decompose()
                continue

            raw = get_image_src(img)
            if not raw:
                continue
            absolute = self._absolute_image_url(raw, page_url)
            if absolute is None:
                continue

            img.attrs.pop("srcset", None)
            img.attrs.pop("data-src", None)

            if self.image_mode == ImageMode.EXTERNAL or absolute.startswith("data:"):
                img["src"] = absolute
                continue

            asset_path = registry.by_url.get(absolute)
            if asset_path is None:
                asset_path = build_asset_path(absolute, registry.used_paths)
                registry.by_url[absolute] = asset_path
                jobs.append(ImageJob(url=absolute, path=asset_path))
            img["src"] = link_target(relative_path(page_path, asset_path))

        if self.image_mode == ImageMode.NONE:
            for picture in node.find_all("picture"):
                picture.decompose()

        return jobs

    @staticmethod
    def _absolute_image_url(raw: str, page_url: str) -> Optional[str]:
        if raw.startswith("data:"):
            return raw
        try:
            absolute = urljoin(page_url, raw)
        except ValueError:
            return None
        if urlsplit(absolute).scheme.lower() not in ("http", "https"):
            return None
        return absolute
