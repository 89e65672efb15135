"""
Docs MD Crawler - documentation sites to Markdown archives.

This package discovers the pages of a documentation site from a starting page,
converts them to Markdown with rewritten cross-links and optionally localized
images, and bundles everything into a single ZIP archive.
"""

__version__ = "1.0.0"
__author__ = "Docs MD Crawler Team"
