import pytest

from translation_flow.utils.rules import (
    check_brand_words,
    classify_identical_result,
    is_brand_word,
    is_placeholder_only,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    "text,field_name,expected",
    [
        ("Nike", None, "brand_word_pattern"),
        ("SKU-1234", None, "product_code_pattern"),
        ("USB", None, "technical_acronym"),
        ("Anything here", "vendor", "vendor_field_protection"),
    ],
)
def test_check_brand_words_skips(text, field_name, expected):
    decision = check_brand_words(text, field_name)
    assert decision.should_skip
    assert decision.reason == expected


@pytest.mark.unit
def test_check_brand_words_translates_everything_else():
    assert not check_brand_words("Nike", "name").should_skip
    assert not check_brand_words("Free shipping on all orders").should_skip
    assert not check_brand_words("Tote" * 20).should_skip
    assert not check_brand_words("").should_skip
    assert not check_brand_words("Ok").should_skip


@pytest.mark.unit
def test_classify_identical_result():
    assert classify_identical_result("12345") == "product_code"
    assert classify_identical_result("SKU-1234") == "product_code"
    assert classify_identical_result("Nike") == "possible_brand"
    assert classify_identical_result("nike") == "possible_brand"
    assert classify_identical_result("USB HDMI") == "technical_term"
    assert classify_identical_result("Please keep this text") == "identical_result"


@pytest.mark.unit
def test_brand_word_and_placeholder_helpers():
    assert is_brand_word("iPhone")
    assert is_brand_word("5kg")
    assert is_brand_word("12.5")
    assert not is_brand_word("blanket")
    assert is_placeholder_only(" __PROTECTED_STYLE_BLOCK_0__ ")
    assert not is_placeholder_only("text __PROTECTED_URL_1__")
    assert not is_placeholder_only("")
