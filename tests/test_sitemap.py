"""Tests for robots.txt and sitemap discovery."""

import pytest

from docs_md_crawler.crawler.sitemap import (
    SitemapDiscovery,
    parse_sitemap_xml,
    parse_sitemaps_from_robots,
)


ORIGIN = "https://example.com"

URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://example.com/docs/a</loc></url>
  <url><loc> https://example.com/docs/b </loc></url>
</urlset>
"""

INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://example.com/sitemap-docs.xml</loc></sitemap>
</sitemapindex>
"""


def test_robots_sitemap_lines():
    robots = "User-agent: *\nDisallow: /admin\nSITEMAP: /maps/one.xml\nsitemap:https://cdn.example.com/two.xml\n"
    assert parse_sitemaps_from_robots(robots, ORIGIN) == [
        "https://example.com/maps/one.xml",
        "https://cdn.example.com/two.xml",
    ]


def test_parse_urlset_and_index():
    assert parse_sitemap_xml(URLSET) == (
        ["https://example.com/docs/a", "https://example.com/docs/b"], []
    )
    assert parse_sitemap_xml(INDEX) == ([], ["https://example.com/sitemap-docs.xml"])


def test_malformed_sitemap_is_none():
    assert parse_sitemap_xml("<urlset><url><loc>x</loc></url>") is None
    assert parse_sitemap_xml("not xml at all") is None


@pytest.mark.asyncio
async def test_discovery_follows_robots_and_nested_indexes(fetcher, transport):
    transport.routes.update({
        "https://example.com/robots.txt": "Sitemap: https://example.com/index.xml\n",
        "https://example.com/sitemap.xml": "<broken",
        "https://example.com/index.xml": INDEX,
        "https://example.com/sitemap-docs.xml": URLSET,
    })

    urls = await SitemapDiscovery(fetcher).discover(ORIGIN, max_urls=10, max_depth=3)

    assert urls == ["https://example.com/docs/a", "https://example.com/docs/b"]
    assert transport.calls["https://example.com/sitemap.xml"] == 1


@pytest.mark.asyncio
async def test_discovery_respects_limits(fetcher, transport):
    transport.routes.update({
        "https://example.com/sitemap.xml": INDEX,
        "https://example.com/sitemap-docs.xml": URLSET,
    })

    shallow = await SitemapDiscovery(fetcher).discover(ORIGIN, max_urls=10, max_depth=0)
    assert shallow == []

    capped = await SitemapDiscovery(fetcher).discover(ORIGIN, max_urls=1, max_depth=2)
    assert capped == ["https://example.com/docs/a"]


@pytest.mark.asyncio
async def test_discovery_can_be_cancelled(fetcher, transport):
    transport.routes["https://example.com/sitemap.xml"] = URLSET
    urls = await SitemapDiscovery(fetcher).discover(
        ORIGIN, max_urls=10, max_depth=1, should_continue=lambda: False
    )
    assert urls == []
