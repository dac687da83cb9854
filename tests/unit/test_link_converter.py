import pytest

from translation_flow.utils.link_converter import (
    convert_links_for_locale,
    has_locale_prefix,
    should_skip_url,
    transform_url,
    validate_market_config,
)


MARKET = {
    "primary_host": "shop.com",
    "primary_url": "https://shop.com",
    "mappings": {
        "fr": {"type": "subfolder", "suffix": "fr"},
        "de": {"type": "subdomain", "url": "https://de.shop.com"},
    },
}


@pytest.mark.unit
def test_relative_links_get_locale_target():
    html = "<a href='/products/a' class=\"x\">A</a>"
    assert convert_links_for_locale(html, "fr", MARKET) == '<a href="/fr/products/a" class="x">A</a>'
    assert convert_links_for_locale(html, "de", MARKET) == '<a href="https://de.shop.com/products/a" class="x">A</a>'
    assert convert_links_for_locale(html, "fr-CA", MARKET) == '<a href="/fr/products/a" class="x">A</a>'


@pytest.mark.unit
def test_links_left_alone():
    html = (
        '<a href="/en/products">x</a><a href="mailto:a@b.c">m</a>'
        '<a href="https://www.shop.com/products/a">abs</a><a href="#top">t</a>'
    )
    assert convert_links_for_locale(html, "fr", MARKET) == html
    assert convert_links_for_locale(html, "ja", MARKET) == html
    assert convert_links_for_locale(html, "fr", MARKET, enabled=False) == html
    assert convert_links_for_locale(html, "fr", {}) == html


@pytest.mark.unit
def test_aggressive_rewrites_internal_absolute_urls():
    url = "https://www.shop.com/en/products/a?x=1#top"
    fr = MARKET["mappings"]["fr"]
    de = MARKET["mappings"]["de"]
    assert transform_url(url, fr, "shop.com", "https://shop.com", strategy="aggressive") == (
        "https://shop.com/fr/products/a?x=1#top"
    )
    assert transform_url(url, de, "shop.com", "https://shop.com", strategy="aggressive") == (
        "https://de.shop.com/products/a?x=1#top"
    )
    assert transform_url(
        url, de, "shop.com", "https://shop.com", strategy="aggressive",
        preserve_query_params=False, preserve_anchors=False,
    ) == "https://de.shop.com/products/a"
    assert transform_url("https://other.com/x", de, "shop.com", "https://shop.com", strategy="aggressive") == (
        "https://other.com/x"
    )
    assert transform_url(url, de, "shop.com", "https://shop.com") == url


@pytest.mark.unit
def test_aggressive_also_rewrites_link_tags():
    html = '<link rel="alternate" href="/blog"><link href="https://cdn.example.com/a.css">'
    converted = convert_links_for_locale(html, "fr", MARKET, strategy="aggressive")
    assert converted == '<link rel="alternate" href="/fr/blog"><link href="https://cdn.example.com/a.css">'
    assert convert_links_for_locale(html, "fr", MARKET) == html


@pytest.mark.unit
def test_url_helpers():
    assert should_skip_url("tel:123")
    assert should_skip_url("ftp://host/x")
    assert should_skip_url("")
    assert not should_skip_url("/a")
    assert has_locale_prefix("/fr/a")
    assert has_locale_prefix("/zh-CN")
    assert not has_locale_prefix("/products")


@pytest.mark.unit
def test_validate_market_config():
    assert validate_market_config(MARKET)
    assert validate_market_config({"primaryHost": "a", "primaryUrl": "b", "mappings": {"fr": {}}})
    assert not validate_market_config({"primary_host": "a", "mappings": {}})
    assert not validate_market_config(None)
