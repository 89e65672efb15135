"""
Main docs crawler module.

Drives one session: scan (discovery), export (Markdown archive), manual
retries of recorded failures, and pause/resume/stop requests.
"""

from typing import List, Optional, Sequence

from ..archive.encoder import ArchiveEncoder
from ..delivery import DeliveryError, FileDelivery
from ..models import DiscoveredPage, ExportResult, FailedItem
from ..session import Session, SessionBusyError, SessionState
from ..utils.constants import DEFAULT_REQUEST_DELAY, DEFAULT_RETRIES, DEFAULT_TIMEOUT
from ..utils.log import get_logger
from ..utils.ratelimit import HostRateLimiter
from .discovery import DiscoveryEngine, DiscoveryOptions, DiscoveryResult
from .exporter import ExportOptions, ExportPipeline
from .fetcher import HttpFetcher, Transport
from .inference import DocLikenessPolicy


PAGE_FAILURE_KINDS = ("page-fetch-fail", "markdown-fail")


class DocsCrawler:
    """
    Documentation crawler facade.

    Scanning and exporting share one Session, one fetcher (and thus one host
    rate limiter) and the HTML cache, and never run at the same time.
    """

    def __init__(
        self,
        output_dir: Optional[str] = ".",
        discovery_options: Optional[DiscoveryOptions] = None,
        export_options: Optional[ExportOptions] = None,
        delay: float = DEFAULT_REQUEST_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        transport: Optional[Transport] = None,
        fetcher: Optional[HttpFetcher] = None,
        session: Optional[Session] = None,
        delivery: Optional[FileDelivery] = None,
        encoder: Optional[ArchiveEncoder] = None,
        converter=None,
        doc_policy: Optional[DocLikenessPolicy] = None
    ):
        """
        Initialize the docs crawler.

        Args:
            output_dir: Directory archives are saved to; None disables saving
            discovery_options: Defaults for scan()
            export_options: Defaults for export()
            delay: Minimum seconds between two requests to the same host
            timeout: Per-request timeout in seconds
            retries: Retries for retryable request failures
            transport: Raw HTTP transport (default: aiohttp)
            fetcher: Pre-built fetcher; overrides delay/timeout/retries/transport
            session: Session to drive (default: a new one)
            delivery: Archive delivery (default: FileDelivery(output_dir))
            encoder: Archive encoder (default: zipfile with STORE fallback)
            converter: Markdown converter with convert(node) -> str
            doc_policy: Article-vs-listing policy for deep crawls
        """
        self.session = session or Session()
        self.fetcher = fetcher or HttpFetcher(
            transport=transport,
            rate_limiter=HostRateLimiter(delay),
            timeout=timeout,
            retries=retries
        )
        if delivery is None and output_dir is not None:
            delivery = FileDelivery(output_dir)
        self.delivery = delivery
        self.encoder = encoder or ArchiveEncoder()
        self.converter = converter
        self.doc_policy = doc_policy
        self.discovery_options = discovery_options or DiscoveryOptions()
        self.export_options = export_options or ExportOptions()
        self.logger = get_logger("crawler")

        self._engine: Optional[DiscoveryEngine] = None
        self._pipeline: Optional[ExportPipeline] = None

    async def __aenter__(self) -> "DocsCrawler":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Release network resources."""
        await self.fetcher.close()

    # Scan

    async def scan(
        self,
        start_url: str,
        options: Optional[DiscoveryOptions] = None,
        seed_html: Optional[str] = None
    ) -> DiscoveryResult:
        """
        Discover the documentation pages reachable from a start page.

        Args:
            start_url: Page to start from
            options: Discovery options (default: the crawler's)
            seed_html: Already-loaded HTML of the start page

        Returns:
            DiscoveryResult; the pages are also stored on the session

        Raises:
            SessionBusyError: If a scan or export is running
            ValueError: If start_url is not an absolute http(s) URL
        """
        self.session.begin(SessionState.SCANNING)
        self.session.reset_for_scan(start_url)
        engine = DiscoveryEngine(
            self.fetcher,
            session=self.session,
            options=options or self.discovery_options,
            doc_policy=self.doc_policy
        )
        self._engine = engine
        self._pipeline = None
        self.session.note(f"Scanning {start_url}")

        try:
            result = await engine.discover(start_url, seed_html=seed_html)
        except Exception as e:
            self.session.finish(SessionState.FAILED, f"Scan failed: {e}")
            raise

        if result.stopped:
            self.session.finish(SessionState.STOPPED, f"Scan stopped with {len(result.pages)} pages")
        else:
            self.session.finish(SessionState.COMPLETED, f"Found {len(result.pages)} pages")
        return result

    # Export

    async def export(
        self,
        pages: Optional[Sequence[DiscoveredPage]] = None,
        options: Optional[ExportOptions] = None
    ) -> ExportResult:
        """
        Export discovered pages to a Markdown archive and deliver it.

        Args:
            pages: Subset of the session's pages (default: all)
            options: Export options (default: the crawler's)

        Returns:
            ExportResult; a delivery failure is reported in delivery_error

        Raises:
            SessionBusyError: If a scan or export is running
            ArchiveError: If no archive could be encoded
        """
        self.session.begin(SessionState.EXPORTING)
        pipeline = self._make_pipeline(options)
        self._pipeline = pipeline

        try:
            result = await pipeline.run(pages)
        except Exception as e:
            self.session.finish(SessionState.FAILED, f"Export failed: {e}")
            raise

        self._deliver(result)
        summary = f"Exported {len(result.pages)} pages and {result.images_downloaded} images"
        if result.stopped:
            self.session.finish(SessionState.STOPPED, f"{summary} (stopped)")
        else:
            self.session.finish(SessionState.COMPLETED, summary)
        return result

    # Manual retries

    async def retry_failed(self, item_id: int) -> bool:
        """
        Retry one recorded failure.

        On success the item leaves the ledger; on failure it is replaced by a
        "retry-fail:" item. When an export exists, its archive is re-packed so
        the content and the failure manifest stay current.

        Args:
            item_id: FailedItem id

        Returns:
            True if the retry succeeded

        Raises:
            KeyError: If no failure has that id
            SessionBusyError: If a scan or export is running
        """
        item = self.session.failed.get(item_id)
        if item is None:
            raise KeyError(item_id)
        if self.session.busy:
            raise SessionBusyError(f"session is {self.session.state.value}")

        kind = item.origin_kind
        self.session.update_progress(current_url=item.url)
        try:
            await self._retry(item, kind)
        except Exception as e:
            self.session.failed.remove(item.id)
            self.session.record_failure(item.url, f"retry-fail:{kind}:{e}", item.title)
            self.session.update_progress(current_url="")
            return False

        self.session.failed.remove(item.id)
        self.session.note(f"Retry succeeded: {item.url}")
        if self.session.last_export is not None:
            result = await self._get_pipeline().repack(self.session.last_export)
            self._deliver(result)
        self.session.update_progress(current_url="")
        return True

    async def retry_all(self) -> List[bool]:
        """Retry every recorded failure once, in ledger order."""
        return [await self.retry_failed(item.id) for item in self.session.failed.items]

    async def _retry(self, item: FailedItem, kind: str) -> None:
        result = self.session.last_export
        if kind == "discover":
            await self._get_engine().rediscover(item.url)
        elif kind in PAGE_FAILURE_KINDS:
            if result is None:
                self.session.html_cache[item.url] = await self.fetcher.fetch_text(item.url)
            else:
                await self._get_pipeline().retry_page(item.url, item.title, result)
        elif kind == "image-download-fail":
            if result is None:
                raise KeyError(f"no export holds image {item.url}")
            await self._get_pipeline().retry_image(item.url, result)
        else:
            raise ValueError(f"unknown failure kind: {kind}")

    # Controls

    def pause(self) -> None:
        self.session.request_pause()

    def resume(self) -> None:
        self.session.resume()

    def stop(self) -> None:
        self.session.request_stop()

    # Helpers

    def _make_pipeline(self, options: Optional[ExportOptions] = None) -> ExportPipeline:
        return ExportPipeline(
            self.fetcher,
            self.session,
            options=options or self.export_options,
            converter=self.converter,
            encoder=self.encoder
        )

    def _get_pipeline(self) -> ExportPipeline:
        if self._pipeline is None:
            self._pipeline = self._make_pipeline()
        return self._pipeline

    def _get_engine(self) -> DiscoveryEngine:
        if self._engine is None:
            self._engine = DiscoveryEngine(
                self.fetcher,
                session=self.session,
                options=self.discovery_options,
                doc_policy=self.doc_policy
            )
        return self._engine

    def _deliver(self, result: ExportResult) -> None:
        if self.delivery is None:
            return
        try:
            result.delivered_to = self.delivery.deliver(result.archive, result.filename)
            result.delivery_error = None
        except DeliveryError as e:
            result.delivery_error = str(e)
            self.logger.error(f"Could not save {result.filename}: {e}")
