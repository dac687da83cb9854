import pytest

from translation_flow.models import LinkConversionOptions
from translation_flow.utils.post_processing import PostProcessContext, apply_post_processors, build_pipeline


MARKET = {"primary_host": "shop.com", "primary_url": "https://shop.com", "mappings": {"fr": {"type": "subfolder", "suffix": "fr"}}}


@pytest.mark.unit
def test_base_processors_normalize_and_trim():
    ctx = PostProcessContext(target_lang="fr", original_text="Hello")
    assert apply_post_processors("  a\r\nb\rc  ", ctx) == "a\nb\nc"
    assert apply_post_processors("   ", ctx) == "Hello"
    assert apply_post_processors(None, ctx) is None


@pytest.mark.unit
def test_placeholders_are_restored_first():
    ctx = PostProcessContext(
        target_lang="fr",
        placeholder_mapping={"__PROTECTED_URL_0__": "/cart"},
    )
    assert apply_post_processors('<a href="__PROTECTED_URL_0__">Panier</a>', ctx) == '<a href="/cart">Panier</a>'


@pytest.mark.unit
def test_link_conversion_runs_unless_skipped():
    link = LinkConversionOptions(market_config=MARKET)
    html = '<a href="/a">a</a>'
    assert apply_post_processors(html, PostProcessContext(target_lang="fr", link_conversion=link)) == (
        '<a href="/fr/a">a</a>'
    )
    skipped = PostProcessContext(target_lang="fr", link_conversion=link, skip_link_conversion=True)
    assert apply_post_processors(html, skipped) == html
    disabled = PostProcessContext(target_lang="fr", link_conversion=LinkConversionOptions(market_config=MARKET, enabled=False))
    assert len(build_pipeline(disabled)) == 3


@pytest.mark.unit
def test_failing_extra_processor_is_skipped():
    def explode(text, ctx):
        raise RuntimeError("boom")

    def shout(text, ctx):
        return text.upper()

    ctx = PostProcessContext(target_lang="fr", extra_processors=[explode, shout, "not callable"])
    assert apply_post_processors("bonjour", ctx) == "BONJOUR"


@pytest.mark.unit
def test_incomplete_market_config_skips_link_conversion():
    link = LinkConversionOptions(market_config={"primary_host": "shop.com", "mappings": {}})
    ctx = PostProcessContext(target_lang="fr", link_conversion=link)
    assert len(build_pipeline(ctx)) == 3
    assert apply_post_processors('<a href="/a">a</a>', ctx) == '<a href="/a">a</a>'
