"""Tests for docs-root inference and the doc-likeness heuristic."""

import pytest

from docs_md_crawler.crawler.inference import (
    NeverDocPolicy,
    StructuralDocPolicy,
    derive_category_path_prefixes,
    infer_docs_root_path,
    is_likely_doc_url_by_structure,
    resolve_root,
)


def test_root_from_homepage_seed_links():
    root = infer_docs_root_path("https://example.com/", ["/docs/a", "/docs/b/c"])
    assert root == "/docs"


def test_root_from_start_url_first_segment():
    assert infer_docs_root_path("https://example.com/handbook/intro", []) == "/handbook"


def test_generic_start_segment_falls_back_to_votes():
    root = infer_docs_root_path(
        "https://example.com/tags/python",
        ["https://example.com/guide/a", "https://example.com/blog/x"]
    )
    assert root == "/guide"


def test_single_plain_vote_is_not_enough():
    assert infer_docs_root_path("https://example.com/", ["/blog/x"]) == "/"


def test_plain_segment_with_enough_votes_wins():
    root = infer_docs_root_path("https://example.com/", ["/kb-old/a", "/kb-old/b", "/blog/x"])
    assert root == "/kb-old"


def test_cross_origin_candidates_are_ignored():
    root = infer_docs_root_path("https://example.com/", ["https://other.com/docs/a"])
    assert root == "/"


def test_explicit_root_wins():
    assert resolve_root("docs/", "https://example.com/guide/x", []) == "/docs"
    assert resolve_root(None, "https://example.com/guide/x", []) == "/guide"


def test_category_prefixes():
    prefixes = derive_category_path_prefixes(
        "https://example.com/docs/start",
        [
            "https://example.com/docs/guide/intro",
            "/docs/api/reference",
            "https://example.com/blog/post",
            "https://other.com/docs/x",
        ],
        "/docs"
    )
    assert prefixes == ["/docs/api", "/docs/guide"]


def test_category_prefixes_collapse_to_root():
    prefixes = derive_category_path_prefixes(
        "https://example.com/docs/start", ["/docs", "/docs/guide/a"], "/docs"
    )
    assert prefixes == ["/docs"]
    assert derive_category_path_prefixes("https://example.com/docs", [], "/docs") == ["/docs"]


@pytest.mark.parametrize("url, expected", [
    ("https://example.com/docs/guide/install", True),
    ("https://example.com/how-to-configure-things", True),
    ("https://example.com/short-slug", False),
    ("https://example.com/", False),
    ("https://example.com/about", False),
    ("https://example.com/category/python", False),
    ("https://example.com/blog/page/2", False),
    ("https://example.com/blog/feed", False),
])
def test_is_likely_doc_url_by_structure(url, expected):
    assert is_likely_doc_url_by_structure(url) is expected


def test_policies():
    assert StructuralDocPolicy().is_likely_doc("https://example.com/docs/a")
    assert not NeverDocPolicy().is_likely_doc("https://example.com/docs/a")
