"""Tests for HTML content extraction."""

import pytest

from pipelines.errors import ExtractionTooThin
from pipelines.extractor import MAX_LINKS, MIN_CONTENT_LENGTH, extract

BASE_URL = "https://shop.example.com/"
BODY_TEXT = (
    "Our store ships orders within two business days. Returns are accepted for "
    "thirty days after delivery with the original receipt."
)


def page(body: str, head: str = "<title>Example Shop</title>") -> str:
    return f"<html><head>{head}</head><body>{body}</body></html>"


def test_thin_body_raises():
    html = page("<p>" + "x" * 50 + "</p>")
    with pytest.raises(ExtractionTooThin) as exc_info:
        extract(html, BASE_URL)
    assert exc_info.value.length == 50
    assert exc_info.value.minimum == MIN_CONTENT_LENGTH


def test_extracts_title_description_and_text():
    head = '<title> Example   Shop </title><meta name="description" content="Shoes and more">'
    result = extract(page(f"<p>{BODY_TEXT}</p>", head=head), BASE_URL)
    assert result.title == "Example Shop"
    assert result.description == "Shoes and more"
    assert result.main_text == BODY_TEXT
    assert result.url == BASE_URL


def test_title_falls_back_to_h1():
    result = extract(page(f"<h1>Help Center</h1><p>{BODY_TEXT}</p>", head=""), BASE_URL)
    assert result.title == "Help Center"


def test_boilerplate_is_removed():
    body = (
        "<header>Top banner</header><nav>Menu items</nav>"
        f"<p>{BODY_TEXT}</p>"
        "<script>var tracking = 1;</script><footer>Copyright</footer>"
    )
    result = extract(page(body), BASE_URL)
    assert "Menu items" not in result.main_text
    assert "tracking" not in result.main_text
    assert "Copyright" not in result.main_text
    assert result.main_text == BODY_TEXT


def test_article_preferred_over_body():
    body = f"<div>Sidebar promotions</div><article><p>{BODY_TEXT}</p></article>"
    result = extract(page(body), BASE_URL)
    assert result.main_text == BODY_TEXT


def test_whitespace_is_collapsed():
    body = "<p>" + BODY_TEXT.replace(" ", "\n\n   ") + "</p>"
    result = extract(page(body), BASE_URL)
    assert result.main_text == BODY_TEXT


def test_links_follow_same_domain_only():
    body = (
        '<nav><a href="/faq">FAQ</a></nav>'
        '<a href="https://shop.example.com/shipping#rates">Shipping</a>'
        '<a href="https://other.example.org/page">Elsewhere</a>'
        '<a href="#top">Top</a>'
        '<a href="mailto:help@example.com">Mail</a>'
        '<a href="/catalog.pdf">Catalog</a>'
        '<a href="/faq">FAQ again</a>'
        '<a href="/">Home</a>'
        f"<p>{BODY_TEXT}</p>"
    )
    result = extract(page(body), BASE_URL)
    assert result.links == [
        "https://shop.example.com/faq",
        "https://shop.example.com/shipping",
    ]


def test_links_are_capped():
    anchors = "".join(f'<a href="/page-{i}">Page {i}</a>' for i in range(30))
    result = extract(page(anchors + f"<p>{BODY_TEXT}</p>"), BASE_URL)
    assert len(result.links) == MAX_LINKS
    assert result.links[0] == "https://shop.example.com/page-0"


def test_relative_links_resolve_against_page_url():
    body = f'<a href="pricing">Pricing</a><p>{BODY_TEXT}</p>'
    result = extract(page(body), "https://shop.example.com/help/")
    assert result.links == ["https://shop.example.com/help/pricing"]


def test_bare_host_link_matches_page_url():
    body = f'<a href="https://Shop.Example.com">Home</a><a href="/faq">FAQ</a><p>{BODY_TEXT}</p>'
    result = extract(page(body), "https://shop.example.com/")
    assert result.links == ["https://shop.example.com/faq"]
