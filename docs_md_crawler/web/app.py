"""
Flask control API for the docs crawler.

The crawler runs on a private asyncio loop in a background thread; request
handlers hand work to it with run_coroutine_threadsafe and answer from the
session snapshot.
"""

import asyncio
import io
import threading
from concurrent.futures import Future
from concurrent.futures import wait as wait_futures
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from flask import Flask, jsonify, request, send_file

from ..crawler import DocsCrawler, DiscoveryOptions, ExportOptions
from ..crawler.discovery import clamp_max_pages
from ..models import DiscoveryMode, ImageMode
from ..utils.constants import (
    DEFAULT_DISCOVERY_CONCURRENCY,
    DEFAULT_EXCLUDES,
    DEFAULT_EXPORT_CONCURRENCY,
    DEFAULT_IMAGE_CONCURRENCY,
    DEFAULT_IMAGE_MODE,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
)
from ..utils.log import get_logger


# Seconds a handler waits for a manual retry to finish
RETRY_WAIT = 120


class CrawlerService:
    """Runs one DocsCrawler on a background event loop."""

    def __init__(self, crawler: Optional[DocsCrawler] = None, output_dir: Optional[str] = "."):
        self.logger = get_logger("web")
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self._run_loop, name="crawler-loop", daemon=True)
        self.thread.start()
        self.crawler = crawler or DocsCrawler(output_dir=output_dir)
        self.last_error: Optional[str] = None
        self._job: Optional[Future] = None
        self._lock = threading.Lock()

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    @property
    def session(self):
        return self.crawler.session

    @property
    def running(self) -> bool:
        return self._job is not None and not self._job.done()

    def submit(self, coro) -> bool:
        """
        Start a scan or export unless one is running.

        Returns:
            False if the session is busy
        """
        with self._lock:
            if self.running or self.session.busy:
                coro.close()
                return False
            self.last_error = None
            self._job = asyncio.run_coroutine_threadsafe(coro, self.loop)
            self._job.add_done_callback(self._on_done)
            return True

    def wait(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        """
        Block until the current job has finished.

        Returns:
            The exception the job raised, if any
        """
        job = self._job
        if job is None:
            return None
        wait_futures([job], timeout=timeout)
        if not job.done() or job.cancelled():
            return None
        return job.exception()

    def call(self, coro, timeout: Optional[float] = None) -> Any:
        """Run a coroutine on the loop and wait for its result."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout=timeout)

    def control(self, action: str) -> None:
        """Forward pause/resume/stop into the loop thread."""
        self.loop.call_soon_threadsafe(getattr(self.crawler, action))

    def shutdown(self) -> None:
        if self.loop.is_running():
            self.call(self.crawler.close(), timeout=10)
            self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=5)

    def _on_done(self, future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self.last_error = str(error)
            self.logger.error(f"Background job failed: {error}")


def _parse_scan_options(data: Dict[str, Any]) -> DiscoveryOptions:
    excludes = data.get('excludes')
    if excludes is None:
        excludes = DEFAULT_EXCLUDES
    elif isinstance(excludes, str):
        excludes = [part.strip() for part in excludes.split(',') if part.strip()]

    return DiscoveryOptions(
        root_path=(data.get('rootPath') or None),
        max_pages=clamp_max_pages(data.get('maxPages', DEFAULT_MAX_PAGES)),
        max_depth=max(1, int(data.get('maxDepth', DEFAULT_MAX_DEPTH))),
        concurrency=max(1, int(data.get('concurrency', DEFAULT_DISCOVERY_CONCURRENCY))),
        exclude_patterns=tuple(excludes),
        mode=DiscoveryMode(data.get('mode', DiscoveryMode.DEEP.value)),
        expand_articles=bool(data.get('expandArticles', False)),
        use_sitemap=bool(data.get('useSitemap', True))
    )


def _parse_export_options(data: Dict[str, Any]) -> ExportOptions:
    return ExportOptions(
        image_mode=ImageMode(data.get('imageMode', DEFAULT_IMAGE_MODE)),
        concurrency=max(1, int(data.get('concurrency', DEFAULT_EXPORT_CONCURRENCY))),
        image_concurrency=max(1, int(data.get('imageConcurrency', DEFAULT_IMAGE_CONCURRENCY))),
        include_summary=bool(data.get('includeSummary', True))
    )


def create_app(crawler: Optional[DocsCrawler] = None, output_dir: Optional[str] = "."):
    """
    Create and configure the Flask application.

    Args:
        crawler: Crawler to control (default: a new DocsCrawler)
        output_dir: Where the default crawler saves archives
    """
    app = Flask(__name__)
    service = CrawlerService(crawler, output_dir)
    app.crawler_service = service

    def busy():
        return jsonify({'error': f'Session is {service.session.state.value}'}), 409

    @app.route('/api/scan', methods=['POST'])
    def start_scan():
        """Start discovery from a start URL."""
        data = request.get_json(silent=True) or {}
        url = str(data.get('url', '')).strip()
        if not url:
            return jsonify({'error': 'URL is required'}), 400
        if not url.startswith(('http://', 'https://')):
            url = 'https://' + url
        if not urlparse(url).netloc:
            return jsonify({'error': 'Invalid URL format'}), 400

        try:
            options = _parse_scan_options(data)
        except (TypeError, ValueError) as e:
            return jsonify({'error': f'Invalid parameter value: {e}'}), 400

        if not service.submit(service.crawler.scan(url, options)):
            return busy()
        return jsonify({'message': 'Scan started', 'url': url}), 202

    @app.route('/api/export', methods=['POST'])
    def start_export():
        """Export all (or the listed) discovered pages."""
        data = request.get_json(silent=True) or {}
        try:
            options = _parse_export_options(data)
        except (TypeError, ValueError) as e:
            return jsonify({'error': f'Invalid parameter value: {e}'}), 400

        pages = service.session.pages
        if not pages:
            return jsonify({'error': 'Nothing to export; run a scan first'}), 400
        urls = data.get('urls')
        if urls:
            wanted = set(urls)
            pages = [page for page in pages if page.url in wanted]
            if not pages:
                return jsonify({'error': 'None of the requested pages were discovered'}), 400

        if not service.submit(service.crawler.export(pages, options)):
            return busy()
        return jsonify({'message': 'Export started', 'pages': len(pages)}), 202

    @app.route('/api/pause', methods=['POST'])
    def pause():
        if not service.session.busy:
            return jsonify({'error': 'Nothing is running'}), 400
        service.control('pause')
        return jsonify({'message': 'Pause requested'})

    @app.route('/api/resume', methods=['POST'])
    def resume():
        service.control('resume')
        return jsonify({'message': 'Resumed'})

    @app.route('/api/stop', methods=['POST'])
    def stop():
        if not service.session.busy:
            return jsonify({'error': 'Nothing is running'}), 400
        service.control('stop')
        return jsonify({'message': 'Stop requested'})

    @app.route('/api/status')
    def status():
        snapshot = service.session.snapshot()
        snapshot['running'] = service.running
        snapshot['error'] = service.last_error
        return jsonify(snapshot)

    @app.route('/api/pages')
    def pages():
        return jsonify({'pages': [page.to_dict() for page in service.session.pages]})

    @app.route('/api/failed')
    def failed():
        return jsonify({'failed': [item.to_dict() for item in service.session.failed]})

    @app.route('/api/failed/<int:item_id>/retry', methods=['POST'])
    def retry(item_id):
        """Retry one failure and report whether it succeeded."""
        if service.session.failed.get(item_id) is None:
            return jsonify({'error': 'Failure not found'}), 404
        if service.running or service.session.busy:
            return busy()
        ok = service.call(service.crawler.retry_failed(item_id), timeout=RETRY_WAIT)
        return jsonify({
            'ok': ok,
            'failed': [item.to_dict() for item in service.session.failed],
        })

    @app.route('/api/download')
    def download():
        result = service.session.last_export
        if result is None or not result.archive:
            return jsonify({'error': 'No archive available'}), 404
        return send_file(
            io.BytesIO(result.archive),
            mimetype='application/zip',
            as_attachment=True,
            download_name=result.filename
        )

    return app


def run_app(host: str = '127.0.0.1', port: int = 5000, debug: bool = False, output_dir: str = '.'):
    """Run the Flask web application."""
    app = create_app(output_dir=output_dir)
    try:
        app.run(host=host, port=port, debug=debug, use_reloader=False)
    finally:
        app.crawler_service.shutdown()
