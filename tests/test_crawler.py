"""Tests for the DocsCrawler facade: scan, export, delivery and manual retries."""

import io
import os
import zipfile
from unittest.mock import AsyncMock, Mock

import pytest

from conftest import html_page
from docs_md_crawler.crawler import DocsCrawler
from docs_md_crawler.crawler.exporter import ExportOptions
from docs_md_crawler.delivery import DeliveryError, FileDelivery
from docs_md_crawler.models import ImageMode
from docs_md_crawler.session import SessionBusyError, SessionState


START = "https://example.com/docs/start"
CHILD = "https://example.com/docs/start/child"
LOGO = "https://example.com/img/logo.png"

FILLER = "<p>" + "Plenty of documentation text for the content extractor. " * 3 + "</p>"

START_HTML = html_page(
    "<main><h1>Start</h1>" + FILLER + '<p><a href="/docs/start/child">Child</a></p></main>',
    title="Start | Example",
    head='<meta property="og:site_name" content="Example Docs">'
)
CHILD_HTML = html_page(
    "<main><h1>Child Page</h1>" + FILLER + '<p><img src="/img/logo.png" alt="logo"></p></main>'
)


def archive_names(data):
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return sorted(archive.namelist())


def archive_text(data, name):
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return archive.read(name).decode("utf-8")


@pytest.fixture
def crawler(fetcher, transport, session, tmp_path):
    transport.routes.update({START: START_HTML, CHILD: CHILD_HTML, LOGO: b"\x89PNG-bytes"})
    return DocsCrawler(
        output_dir=str(tmp_path),
        fetcher=fetcher,
        session=session,
        export_options=ExportOptions(image_mode=ImageMode.LOCAL)
    )


@pytest.mark.asyncio
async def test_scan_then_export_delivers_archive(crawler, transport, session, tmp_path):
    states = []
    session.subscribe(lambda event: states.append(event.data["state"]) if event.kind == "state" else None)

    scan = await crawler.scan(START)
    assert [page.url for page in scan.pages] == [START, CHILD]
    assert session.state == SessionState.COMPLETED
    assert session.site_name == "Example Docs"

    result = await crawler.export()

    assert session.state == SessionState.COMPLETED
    assert states == ["scanning", "completed", "exporting", "completed"]
    assert archive_names(result.archive) == [
        "SUMMARY.md",
        "Start.md",
        "assets/example.com/logo.png",
        "start/Child Page.md",
    ]
    assert result.delivered_to == os.path.join(str(tmp_path), result.filename)
    with open(result.delivered_to, "rb") as f:
        assert f.read() == result.archive
    # Both pages came from the discovery cache
    assert transport.calls[START] == 1
    assert transport.calls[CHILD] == 1


@pytest.mark.asyncio
async def test_operations_are_exclusive(crawler, session):
    session.begin(SessionState.EXPORTING)
    with pytest.raises(SessionBusyError):
        await crawler.scan(START)

    item = session.record_failure(CHILD, "page-fetch-fail:http-500")
    with pytest.raises(SessionBusyError):
        await crawler.retry_failed(item.id)


@pytest.mark.asyncio
async def test_invalid_start_url_fails_scan(crawler, session):
    with pytest.raises(ValueError):
        await crawler.scan("not a url")
    assert session.state == SessionState.FAILED
    assert not session.busy


@pytest.mark.asyncio
async def test_stop_during_scan(crawler, transport, session):
    def stop(url):
        if url == START:
            crawler.stop()

    transport.on_request = stop
    result = await crawler.scan(START)

    assert result.stopped
    assert session.state == SessionState.STOPPED


@pytest.mark.asyncio
async def test_retry_discovery_failure(crawler, transport, session):
    transport.routes[CHILD] = (500, "")
    await crawler.scan(START)

    [item] = session.failed.items
    assert item.reason == "discover:http-500"
    assert [page.url for page in session.pages] == [START, CHILD]

    transport.routes[CHILD] = CHILD_HTML
    assert await crawler.retry_failed(item.id) is True
    assert len(session.failed) == 0
    assert [page.title for page in session.pages] == ["Start", "Child Page"]


@pytest.mark.asyncio
async def test_retry_page_repacks_and_redelivers(crawler, transport, session):
    await crawler.scan(START)
    session.html_cache.pop(CHILD)
    transport.routes[CHILD] = (500, "")

    result = await crawler.export()
    assert "start/Child Page.md" not in archive_names(result.archive)
    assert archive_text(result.archive, "failed-urls.txt") == f"{CHILD} | page-fetch-fail:http-500\n"

    [item] = session.failed.items
    assert await crawler.retry_failed(item.id) is False
    [again] = session.failed.items
    assert again.id != item.id
    assert again.reason == "retry-fail:page-fetch-fail:http-500"

    transport.routes[CHILD] = CHILD_HTML
    assert await crawler.retry_failed(again.id) is True

    repacked = session.last_export
    names = archive_names(repacked.archive)
    assert "start/Child Page.md" in names
    assert "assets/example.com/logo.png" in names
    assert "failed-urls.txt" not in names
    assert "[Child Page](start/Child%20Page.md)" in archive_text(repacked.archive, "SUMMARY.md")
    with open(repacked.delivered_to, "rb") as f:
        assert f.read() == repacked.archive


@pytest.mark.asyncio
async def test_retry_image(crawler, transport, session):
    png = transport.routes.pop(LOGO)
    await crawler.scan(START)
    await crawler.export()

    [item] = session.failed.items
    assert item.kind == "image-download-fail"

    transport.routes[LOGO] = png
    assert await crawler.retry_all() == [True]
    assert "assets/example.com/logo.png" in archive_names(session.last_export.archive)


@pytest.mark.asyncio
async def test_retry_unknown_item(crawler):
    with pytest.raises(KeyError):
        await crawler.retry_failed(42)


@pytest.mark.asyncio
async def test_delivery_failure_is_reported(fetcher, transport, session):
    transport.routes.update({START: START_HTML, CHILD: CHILD_HTML})
    delivery = Mock(spec=FileDelivery)
    delivery.deliver.side_effect = DeliveryError("disk full")
    crawler = DocsCrawler(
        fetcher=fetcher,
        session=session,
        delivery=delivery,
        export_options=ExportOptions(image_mode=ImageMode.NONE)
    )
    await crawler.scan(START)

    result = await crawler.export()

    delivery.deliver.assert_called_once_with(result.archive, result.filename)
    assert result.delivery_error == "disk full"
    assert result.delivered_to is None
    assert result.archive
    assert session.state == SessionState.COMPLETED


@pytest.mark.asyncio
async def test_context_manager_closes_fetcher(session):
    fetcher = Mock()
    fetcher.close = AsyncMock()

    async with DocsCrawler(output_dir=None, fetcher=fetcher, session=session) as crawler:
        assert crawler.delivery is None

    fetcher.close.assert_awaited_once()


def test_file_delivery_falls_back(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")
    fallback = tmp_path / "fallback"

    path = FileDelivery(str(blocker), str(fallback)).deliver(b"zip", "../out.zip")

    assert path == os.path.abspath(str(fallback / "out.zip"))
    assert (fallback / "out.zip").read_bytes() == b"zip"


def test_file_delivery_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    with pytest.raises(DeliveryError):
        FileDelivery(str(blocker), str(blocker)).deliver(b"zip", "out.zip")
