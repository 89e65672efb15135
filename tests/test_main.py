"""Tests for the command line entry point."""

import os
from unittest.mock import patch

import pytest

from conftest import FakeTransport, html_page
from docs_md_crawler.crawler import DocsCrawler
from docs_md_crawler.main import main, parse_arguments, validate_url


START = "https://example.com/docs/start"

ROUTES = {
    START: html_page(
        "<main><h1>Start</h1>" + "<p>Long enough introduction text.</p>" * 5
        + '<a href="/docs/start/next">Next</a></main>'
    ),
    "https://example.com/docs/start/next": html_page("<main><h1>Next</h1></main>"),
}


def test_parse_arguments_defaults():
    args = parse_arguments(["--url", "example.com/docs"])
    assert args.mode == "deep"
    assert args.image_mode == "local"
    assert args.exclude is None
    assert args.output == "."


def test_parse_arguments_repeatable_exclude():
    args = parse_arguments(["-u", START, "--exclude", "/blog", "--exclude", "/news", "--mode", "directory"])
    assert args.exclude == ["/blog", "/news"]
    assert args.mode == "directory"


def test_validate_url():
    assert validate_url("example.com/docs") == "https://example.com/docs"
    assert validate_url("http://example.com") == "http://example.com"
    with pytest.raises(ValueError):
        validate_url("https://")


def crawler_factory(transport):
    def build(**kwargs):
        return DocsCrawler(transport=transport, **kwargs)
    return build


@pytest.mark.asyncio
async def test_main_exports_archive(tmp_path):
    transport = FakeTransport(ROUTES)
    argv = ["--url", START, "--output", str(tmp_path), "--delay", "0", "--image-mode", "none", "-q"]

    with patch("docs_md_crawler.main.DocsCrawler", side_effect=crawler_factory(transport)):
        code = await main(argv)

    assert code == 0
    archives = [name for name in os.listdir(tmp_path) if name.endswith(".zip")]
    assert len(archives) == 1
    assert transport.closed


@pytest.mark.asyncio
async def test_main_scan_only_writes_nothing(tmp_path):
    transport = FakeTransport(ROUTES)
    argv = ["--url", START, "--output", str(tmp_path), "--delay", "0", "--scan-only", "-q"]

    with patch("docs_md_crawler.main.DocsCrawler", side_effect=crawler_factory(transport)):
        code = await main(argv)

    assert code == 0
    assert os.listdir(tmp_path) == []


@pytest.mark.asyncio
async def test_main_rejects_invalid_url(tmp_path):
    assert await main(["--url", "https://", "--output", str(tmp_path), "-q"]) == 1
    assert os.listdir(tmp_path) == []
