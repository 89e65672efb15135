"""
Export pipeline: discovered pages -> Markdown files + images -> ZIP archive.

Stages run in order over the selected pages:
fetch (bounded concurrency) -> path assignment -> convert -> image download
(bounded concurrency, local mode only) -> package -> encode.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Set

from ..archive.encoder import ArchiveEncoder
from ..models import DiscoveredPage, ExportResult, ImageJob, ImageMode, PageDraft, ZipEntry
from ..session import Session
from ..utils.concurrency import run_pool
from ..utils.constants import (
    DEFAULT_ARCHIVE_NAME,
    DEFAULT_EXPORT_CONCURRENCY,
    DEFAULT_IMAGE_CONCURRENCY,
    DEFAULT_IMAGE_MODE,
    FAILED_MANIFEST_NAME,
    SUMMARY_NAME,
)
from ..utils.log import get_logger
from ..utils.paths import build_output_path, get_host, normalize_url, sanitize_segment
from .content import clean_node_for_markdown, extract_doc_title, extract_main_node, front_matter
from .fetcher import FetchError, HttpFetcher
from .harvester import parse_html
from .markdown import MarkdownConverter
from .rewrite import ImageRegistry, LinkRewriter, link_target


RESERVED_PATHS = frozenset({SUMMARY_NAME, FAILED_MANIFEST_NAME})

_FILENAME_SPACES = re.compile(r"\s+")


@dataclass
class ExportOptions:
    """Parameters of one export run."""

    image_mode: ImageMode = ImageMode(DEFAULT_IMAGE_MODE)
    concurrency: int = DEFAULT_EXPORT_CONCURRENCY
    image_concurrency: int = DEFAULT_IMAGE_CONCURRENCY
    retries: Optional[int] = None
    include_summary: bool = True
    root_path: Optional[str] = None


def archive_filename(site_name: str, fallback_url: str = "", now: Optional[datetime] = None) -> str:
    """
    Derive the archive file name.

    Site metadata wins, then the host of fallback_url, then a generic name;
    a UTC timestamp keeps repeated exports apart.

    Returns:
        e.g. "Example-Docs-2024-05-01T10-20-30Z.zip"
    """
    name = DEFAULT_ARCHIVE_NAME
    for candidate in ((site_name or "").strip(), get_host(fallback_url) if fallback_url else ""):
        if candidate:
            name = sanitize_segment(candidate, DEFAULT_ARCHIVE_NAME)
            break
    name = _FILENAME_SPACES.sub("-", name).replace(".", "-")
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H-%M-%SZ")
    return f"{name}-{stamp}.zip"


def build_summary(pages: Sequence[PageDraft]) -> str:
    """Markdown index of the exported pages, sorted by archive path."""
    lines = ["# Summary", ""]
    for page in sorted(pages, key=lambda p: p.output_path):
        title = page.title.replace("[", "\\[").replace("]", "\\]")
        lines.append(f"- [{title}]({link_target(page.output_path)})")
    return "\n".join(lines) + "\n"


class ExportPipeline:
    """
    Converts discovered pages of a session into an archive.

    The HTML cache filled during discovery is reused, so pages seen by the
    crawl are not requested twice.
    """

    def __init__(
        self,
        fetcher: HttpFetcher,
        session: Session,
        options: Optional[ExportOptions] = None,
        converter=None,
        rewriter: Optional[LinkRewriter] = None,
        encoder: Optional[ArchiveEncoder] = None
    ):
        """
        Args:
            fetcher: HTTP fetcher shared with discovery
            session: Session providing pages, cache, failures and controls
            options: Export options
            converter: Object with convert(node) -> str (default: markdownify)
            rewriter: Link and image rewriter (default: from options.image_mode)
            encoder: Archive encoder (default: zipfile with STORE fallback)
        """
        self.fetcher = fetcher
        self.session = session
        self.options = options or ExportOptions()
        self.options.image_mode = ImageMode(self.options.image_mode)
        self.converter = converter or MarkdownConverter()
        self.rewriter = rewriter or LinkRewriter(self.options.image_mode)
        self.encoder = encoder or ArchiveEncoder()
        self.logger = get_logger("exporter")

    @property
    def root_path(self) -> str:
        return self.options.root_path or self.session.root_path or "/"

    async def run(self, pages: Optional[Sequence[DiscoveredPage]] = None) -> ExportResult:
        """
        Export pages into a ZIP archive.

        Args:
            pages: Pages to export (default: every page of the session)

        Returns:
            ExportResult with the archive bytes and its file name

        Raises:
            ArchiveError: If no archive could be encoded at all
        """
        selected = list(self.session.pages if pages is None else pages)
        control = self.session.control
        result = ExportResult()
        self.session.update_progress(found=len(selected), queued=len(selected), done=0)

        # Fetch
        self.session.note(f"Fetching {len(selected)} pages")
        fetched = await run_pool(selected, self.options.concurrency, self._fetch_stage)
        drafts = [draft for draft in fetched if draft is not None]
        result.bytes_fetched = sum(draft.byte_count for draft in drafts)

        # Path assignment
        used_paths: Set[str] = set(RESERVED_PATHS)
        for draft in drafts:
            draft.output_path = build_output_path(draft.url, draft.title, self.root_path, used_paths)
        url_to_path: Dict[str, str] = {}
        for draft in drafts:
            url_to_path.setdefault(draft.url, draft.output_path)

        # Convert
        self.session.note(f"Converting {len(drafts)} pages")
        registry = ImageRegistry()
        jobs: List[ImageJob] = []
        page_entries: List[ZipEntry] = []
        for draft in drafts:
            entry = self._convert(draft, url_to_path, registry, jobs)
            if entry is not None:
                page_entries.append(entry)
                result.pages.append(draft)
        result.image_paths = dict(registry.by_url)

        # Images
        image_entries: List[ZipEntry] = []
        if self.options.image_mode == ImageMode.LOCAL and jobs:
            self.session.note(f"Downloading {len(jobs)} images")
            downloaded = await run_pool(jobs, self.options.image_concurrency, self._image_stage)
            image_entries = [entry for entry in downloaded if entry is not None]
        result.images_downloaded = len(image_entries)

        # Package and encode
        result.stopped = control.stop_requested
        result.entries = page_entries + image_entries
        await self.repack(result)
        self.session.update_progress(queued=0, current_url="")
        return result

    async def repack(self, result: ExportResult) -> ExportResult:
        """
        Rebuild the generated entries and re-encode the archive.

        Used after the initial export and after every successful manual retry,
        so the index and the failure manifest always match the session.
        """
        content = [entry for entry in result.entries if entry.path not in RESERVED_PATHS]
        if self.options.include_summary and result.pages:
            content.append(ZipEntry(path=SUMMARY_NAME, payload=build_summary(result.pages)))
        if len(self.session.failed):
            content.append(ZipEntry(path=FAILED_MANIFEST_NAME, payload=self.session.failed.manifest()))
        result.entries = content

        self.session.note(f"Packing {len(content)} files")
        result.archive = await self.encoder.pack(content)
        if not result.filename:
            fallback = self.session.start_url or (result.pages[0].url if result.pages else "")
            result.filename = archive_filename(self.session.site_name, fallback)
        self.session.last_export = result
        return result

    async def retry_page(self, url: str, title: str, result: ExportResult) -> PageDraft:
        """
        Fetch and convert one page again, adding it to an earlier export.

        Raises:
            FetchError: If the page still cannot be fetched
            Exception: Whatever the Markdown converter raises
        """
        url = normalize_url(url) or url
        html = self.session.html_cache.get(url)
        if html is None:
            html = await self.fetcher.fetch_text(url, retries=self.options.retries)
            self.session.html_cache[url] = html
        soup = parse_html(html)
        draft = PageDraft(
            url=url,
            document=soup,
            title=title or extract_doc_title(soup, url),
            output_path="",
            byte_count=len(html.encode("utf-8"))
        )

        existing = result.url_to_path()
        used_paths = set(RESERVED_PATHS) | {entry.path for entry in result.entries}
        draft.output_path = existing.get(url) or build_output_path(
            url, draft.title, self.root_path, used_paths
        )
        url_to_path = dict(existing)
        url_to_path[url] = draft.output_path

        registry = ImageRegistry(
            by_url=dict(result.image_paths),
            used_paths={path for path in result.image_paths.values()}
        )
        jobs: List[ImageJob] = []
        markdown = self._render(draft, url_to_path, registry, jobs)

        result.entries = [entry for entry in result.entries if entry.path != draft.output_path]
        result.entries.append(ZipEntry(path=draft.output_path, payload=markdown))
        result.pages = [page for page in result.pages if page.url != url] + [draft]
        result.image_paths = dict(registry.by_url)
        result.bytes_fetched += draft.byte_count

        if self.options.image_mode == ImageMode.LOCAL:
            for job in jobs:
                entry = await self._image_stage(job, 0)
                if entry is not None:
                    result.entries.append(entry)
                    result.images_downloaded += 1
        return draft

    async def retry_image(self, url: str, result: ExportResult) -> ZipEntry:
        """
        Download one image of an earlier export again.

        Raises:
            FetchError: If the image still cannot be downloaded
            KeyError: If the image is not part of the export
        """
        path = result.image_paths[url]
        data = await self.fetcher.fetch_binary(url, retries=self.options.retries)
        entry = ZipEntry(path=path, payload=data)
        result.entries = [e for e in result.entries if e.path != path] + [entry]
        result.images_downloaded += 1
        return entry

    async def _fetch_stage(self, page: DiscoveredPage, index: int) -> Optional[PageDraft]:
        if not await self.session.control.checkpoint():
            return None
        url = normalize_url(page.url) or page.url
        self.session.update_progress(current_url=url)

        html = self.session.html_cache.get(url)
        if html is None:
            try:
                html = await self.fetcher.fetch_text(url, retries=self.options.retries)
            except FetchError as e:
                self.session.record_failure(url, f"page-fetch-fail:{e}", page.title)
                return None
            self.session.html_cache[url] = html

        soup = parse_html(html)
        return PageDraft(
            url=url,
            document=soup,
            title=page.title or extract_doc_title(soup, url),
            output_path="",
            byte_count=len(html.encode("utf-8"))
        )

    def _convert(
        self,
        draft: PageDraft,
        url_to_path: Dict[str, str],
        registry: ImageRegistry,
        jobs: List[ImageJob]
    ) -> Optional[ZipEntry]:
        try:
            markdown = self._render(draft, url_to_path, registry, jobs)
        except Exception as e:
            self.session.record_failure(draft.url, f"markdown-fail:{e}", draft.title)
            return None
        finally:
            draft.document = None
        self.session.update_progress(done=self.session.progress.done + 1)
        return ZipEntry(path=draft.output_path, payload=markdown)

    def _render(
        self,
        draft: PageDraft,
        url_to_path: Dict[str, str],
        registry: ImageRegistry,
        jobs: List[ImageJob]
    ) -> str:
        node = clean_node_for_markdown(extract_main_node(draft.document))
        page_jobs = self.rewriter.rewrite(node, draft.url, draft.output_path, url_to_path, registry)
        try:
            body = self.converter.convert(node)
        except Exception:
            # Images of a page that is not exported are not downloaded
            for job in page_jobs:
                registry.by_url.pop(job.url, None)
                registry.used_paths.discard(job.path)
            raise
        jobs.extend(page_jobs)
        return f"{front_matter(draft.title, draft.url)}\n{body}\n"

    async def _image_stage(self, job: ImageJob, index: int) -> Optional[ZipEntry]:
        if not await self.session.control.checkpoint():
            return None
        self.session.update_progress(current_url=job.url)
        try:
            data = await self.fetcher.fetch_binary(job.url, retries=self.options.retries)
        except FetchError as e:
            self.session.record_failure(job.url, f"image-download-fail:{e}")
            return None
        return ZipEntry(path=job.path, payload=data)
