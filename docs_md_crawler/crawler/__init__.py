"""
Crawler module for documentation export.

Contains components for discovery, fetching, content extraction, link
rewriting, Markdown conversion and export.
"""

from .crawler import DocsCrawler
from .discovery import DiscoveryEngine, DiscoveryOptions, DiscoveryResult
from .exporter import ExportOptions, ExportPipeline
from .fetcher import HttpFetcher, FetchError
from .harvester import LinkHarvester
from .markdown import MarkdownConverter
from .rewrite import LinkRewriter

__all__ = [
    "DocsCrawler",
    "DiscoveryEngine",
    "DiscoveryOptions",
    "DiscoveryResult",
    "ExportOptions",
    "ExportPipeline",
    "HttpFetcher",
    "FetchError",
    "LinkHarvester",
    "MarkdownConverter",
    "LinkRewriter",
]
