#!/usr/bin/env python3
"""
Docs MD Crawler - export a documentation site as a Markdown archive.

Usage:
    python -m docs_md_crawler.main --url https://example.com/docs/intro --output ./exports

Features:
    - Discovers pages from the sidebar, header categories and links
    - Infers the docs root and stays inside its sections
    - Rewrites cross-links to relative Markdown paths
    - Downloads images into the archive (or keeps/drops them)
    - Writes a ZIP with a SUMMARY.md index and a failure manifest
"""

import argparse
import asyncio
import logging
import sys

from .crawler import DocsCrawler, DiscoveryOptions, ExportOptions
from .crawler.discovery import clamp_max_pages
from .delivery import FileDelivery
from .models import DiscoveryMode, ImageMode
from .session import SessionEvent
from .utils.constants import (
    DEFAULT_DISCOVERY_CONCURRENCY,
    DEFAULT_EXCLUDES,
    DEFAULT_IMAGE_MODE,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
    DEFAULT_REQUEST_DELAY,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    MAX_PAGES_LIMIT,
)
from .utils.log import (
    create_progress,
    print_error,
    print_info,
    print_status,
    print_success,
    print_warning,
    setup_logger,
)


def parse_arguments(argv=None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog='docs-md-crawler',
        description='Export a documentation site as a ZIP of Markdown files',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s --url https://example.com/docs/intro
    %(prog)s --url https://example.com/docs/ --mode directory --image-mode external
    %(prog)s --url https://example.com/guide/ --root /guide --max-pages 50 -o ./exports
        """
    )

    parser.add_argument(
        '--url', '-u',
        type=str,
        required=True,
        help='Documentation page to start from'
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        default='.',
        help='Directory the archive is written to (default: current directory)'
    )

    parser.add_argument(
        '--mode',
        choices=[mode.value for mode in DiscoveryMode],
        default=DiscoveryMode.DEEP.value,
        help='deep: crawl links; directory: sidebar, categories and sitemaps only (default: deep)'
    )

    parser.add_argument(
        '--root',
        type=str,
        default=None,
        help='Docs root path such as /docs (default: inferred)'
    )

    parser.add_argument(
        '--max-pages', '-m',
        type=int,
        default=DEFAULT_MAX_PAGES,
        help=f'Maximum number of pages, 1-{MAX_PAGES_LIMIT} (default: {DEFAULT_MAX_PAGES})'
    )

    parser.add_argument(
        '--depth', '-d',
        type=int,
        default=DEFAULT_MAX_DEPTH,
        help=f'Maximum crawl depth (default: {DEFAULT_MAX_DEPTH})'
    )

    parser.add_argument(
        '--image-mode',
        choices=[mode.value for mode in ImageMode],
        default=DEFAULT_IMAGE_MODE,
        help=f'local: download into the archive; external: keep URLs; none: drop (default: {DEFAULT_IMAGE_MODE})'
    )

    parser.add_argument(
        '--exclude',
        action='append',
        default=None,
        metavar='PATTERN',
        help='Skip URLs whose path contains PATTERN (repeatable; replaces the defaults)'
    )

    parser.add_argument(
        '--delay',
        type=float,
        default=DEFAULT_REQUEST_DELAY,
        help=f'Minimum seconds between requests to one host (default: {DEFAULT_REQUEST_DELAY})'
    )

    parser.add_argument(
        '--timeout',
        type=float,
        default=DEFAULT_TIMEOUT,
        help=f'Request timeout in seconds (default: {DEFAULT_TIMEOUT})'
    )

    parser.add_argument(
        '--retries',
        type=int,
        default=DEFAULT_RETRIES,
        help=f'Retries for timeouts, throttling and server errors (default: {DEFAULT_RETRIES})'
    )

    parser.add_argument(
        '--concurrency', '-c',
        type=int,
        default=DEFAULT_DISCOVERY_CONCURRENCY,
        help=f'Concurrent page requests (default: {DEFAULT_DISCOVERY_CONCURRENCY})'
    )

    parser.add_argument(
        '--expand-articles',
        action='store_true',
        help='Also follow content links of pages that look like articles'
    )

    parser.add_argument(
        '--no-sitemap',
        action='store_true',
        help='Do not read robots.txt/sitemaps in directory mode'
    )

    parser.add_argument(
        '--scan-only',
        action='store_true',
        help='List discovered pages without exporting'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Suppress output except errors'
    )

    return parser.parse_args(argv)


def validate_url(url: str) -> str:
    """
    Validate the start URL, adding https:// when no scheme is given.

    Raises:
        ValueError: If URL is invalid
    """
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url

    from urllib.parse import urlparse
    parsed = urlparse(url)

    if not parsed.netloc:
        raise ValueError(f"Invalid URL: {url}")

    return url


def print_banner() -> None:
    """Print the application banner."""
    banner = """
╔═══════════════════════════════════════════════════════════════╗
║                     DOCS MD CRAWLER v1.0                      ║
║           Documentation sites to Markdown archives            ║
╚═══════════════════════════════════════════════════════════════╝
    """
    print_status(banner, "bold cyan")


def print_summary(session, result) -> None:
    """
    Print the export summary.

    Args:
        session: Session of the run
        result: ExportResult of the export
    """
    print_status("=" * 60, "bold")
    print_success("EXPORT SUMMARY")
    print_status("=" * 60, "bold")
    print_status(f"  Docs root:         {session.root_path}", "")
    print_status(f"  Pages discovered:  {len(session.pages)}", "")
    print_status(f"  Pages exported:    {len(result.pages)}", "")
    print_status(f"  Images saved:      {result.images_downloaded}", "")
    print_status(f"  Archive size:      {len(result.archive) / 1024:.1f} KiB", "")
    print_status(f"  Failures:          {len(session.failed)}", "")
    print_status("=" * 60, "bold")

    for item in session.failed:
        print_warning(f"{item.url} | {item.reason}")


async def main(argv=None) -> int:
    """
    Main entry point for the docs crawler.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_arguments(argv)

    log_level = logging.DEBUG if args.verbose else (logging.WARNING if args.quiet else logging.INFO)
    setup_logger(level=log_level)

    if not args.quiet:
        print_banner()

    try:
        url = validate_url(args.url)

        discovery_options = DiscoveryOptions(
            root_path=args.root,
            max_pages=clamp_max_pages(args.max_pages),
            max_depth=max(1, args.depth),
            concurrency=max(1, args.concurrency),
            exclude_patterns=tuple(args.exclude) if args.exclude else DEFAULT_EXCLUDES,
            mode=DiscoveryMode(args.mode),
            expand_articles=args.expand_articles,
            use_sitemap=not args.no_sitemap
        )
        export_options = ExportOptions(
            image_mode=ImageMode(args.image_mode),
            concurrency=max(1, args.concurrency)
        )

        if not args.quiet:
            print_info(f"Start URL: {url}")
            print_info(f"Mode: {args.mode}, max pages: {discovery_options.max_pages}, depth: {args.depth}")
            if not args.scan_only:
                print_info(f"Output: {args.output}, images: {args.image_mode}")

        async with DocsCrawler(
            output_dir=args.output,
            discovery_options=discovery_options,
            export_options=export_options,
            delay=args.delay,
            timeout=args.timeout,
            retries=args.retries,
            delivery=FileDelivery(args.output)
        ) as crawler:
            with create_progress() as progress:
                task = progress.add_task("Scanning", total=None)

                def on_event(event: SessionEvent) -> None:
                    if event.kind == "progress":
                        total = event.data["found"] or None
                        progress.update(task, completed=event.data["done"], total=total)
                    elif event.kind == "log":
                        progress.update(task, description=event.data["message"])

                unsubscribe = crawler.session.subscribe(on_event)
                try:
                    scan = await crawler.scan(url)
                    if not scan.pages:
                        print_error("No documentation pages found")
                        return 1
                    if args.scan_only:
                        progress.stop()
                        for page in scan.pages:
                            print_status(f"{page.url}  {page.title}", "")
                        return 0
                    progress.reset(task, description="Exporting", total=len(scan.pages))
                    result = await crawler.export()
                finally:
                    unsubscribe()

            if not args.quiet:
                print_summary(crawler.session, result)

            if result.delivered_to:
                print_success(f"Archive saved to: {result.delivered_to}")
                return 0
            print_error(f"Archive not saved: {result.delivery_error}")
            return 1

    except KeyboardInterrupt:
        print_error("Interrupted by user")
        return 1
    except ValueError as e:
        print_error(f"Invalid input: {e}")
        return 1
    except Exception as e:
        print_error(f"Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def run() -> None:
    """Entry point wrapper for running as module."""
    sys.exit(asyncio.run(main()))


if __name__ == '__main__':
    run()
