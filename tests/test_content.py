"""Tests for content extraction and Markdown conversion."""

from bs4 import BeautifulSoup

from docs_md_crawler.crawler.content import (
    clean_node_for_markdown,
    extract_doc_title,
    extract_main_node,
    extract_site_name,
    front_matter,
)
from docs_md_crawler.crawler.markdown import MarkdownConverter


def soup(html):
    return BeautifulSoup(html, "lxml")


def test_title_prefers_h1_then_title_then_url():
    assert extract_doc_title(soup("<title>T</title><h1> Heading </h1>"), "https://x.org/a") == "Heading"
    assert extract_doc_title(soup("<title>Only Title</title>"), "https://x.org/a") == "Only Title"
    assert extract_doc_title(soup("<p>none</p>"), "https://x.org/docs/getting%20started") == "getting started"


def test_site_name_from_metadata():
    assert extract_site_name(soup('<meta property="og:site_name" content=" My Docs ">')) == "My Docs"
    assert extract_site_name(soup('<meta name="application-name" content="App">')) == "App"
    assert extract_site_name(soup("<p>nothing</p>")) == ""


def test_main_node_needs_enough_text():
    short = soup("<body><main>tiny</main><p>body text</p></body>")
    assert extract_main_node(short).name == "body"

    long_text = "word " * 40
    page = soup(f"<body><nav>menu</nav><article>{long_text}</article></body>")
    assert extract_main_node(page).name == "article"


def test_clean_node_strips_chrome():
    page = soup("<body><header>h</header><p>keep</p><script>x()</script><aside>side</aside></body>")
    node = clean_node_for_markdown(page.body)
    assert node.get_text() == "keep"


def test_front_matter_escapes_quotes():
    assert front_matter('Say "hi" \\ bye', "https://x.org/a") == (
        '---\ntitle: "Say \\"hi\\" \\\\ bye"\nsource: "https://x.org/a"\n---\n'
    )


def test_markdown_conversion():
    page = soup(
        "<body><h2>Install</h2><ul><li>one</li><li>two</li></ul>"
        '<pre class="lang-python"><code>print("hi")\n</code></pre>'
        "<p>snake_case</p></body>"
    )
    markdown = MarkdownConverter().convert(page.body)

    assert markdown.startswith("## Install")
    assert "- one\n- two" in markdown
    assert '```python\nprint("hi")\n```' in markdown
    assert "snake_case" in markdown
    assert "\n\n\n" not in markdown
