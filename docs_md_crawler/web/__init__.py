"""
Web module for the docs crawler.

Provides a Flask JSON API for scanning, exporting and retrying failures.
"""

from .app import create_app

__all__ = ["create_app"]
