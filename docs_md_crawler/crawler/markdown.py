"""
Default HTML-to-Markdown conversion collaborator.

Any object with a convert(node) -> str method can replace it in the export
pipeline; exceptions it raises are recorded as page failures.
"""

import re

from bs4 import Tag
from markdownify import MarkdownConverter as _Markdownify


_EXCESS_BLANK_LINES = re.compile(r"\n{3,}")


class _DocsMarkdownify(_Markdownify):
    """markdownify with code-block language detection from class names."""

    def convert_pre(self, el, text, *args, **kwargs):
        if not text:
            return ""
        language = ""
        code = el.find("code")
        for tag in (code, el):
            if tag is None:
                continue
            for cls in tag.get("class") or []:
                if cls.startswith(("language-", "lang-")):
                    language = cls.split("-", 1)[1]
                    break
            if language:
                break
        body = el.get_text().strip("\n")
        return f"\n\n```{language}\n{body}\n```\n\n"


class MarkdownConverter:
    """Converts a sanitized content node to GitHub-flavored Markdown."""

    def __init__(self, **options):
        """
        Args:
            **options: Extra markdownify options
        """
        settings = {
            "heading_style": "atx",
            "bullets": "-",
            "escape_underscores": False,
            "escape_asterisks": False,
        }
        settings.update(options)
        self._converter = _DocsMarkdownify(**settings)

    def convert(self, node: Tag) -> str:
        """
        Convert a content node.

        Returns:
            Markdown text without leading/trailing blank lines
        """
        markdown = self._converter.convert_soup(node)
        return _EXCESS_BLANK_LINES.sub("\n\n", markdown).strip()
