"""Brand-word protection, identical-result classification and placeholder checks."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Optional


SKIP_BRAND_CHECK_FIELDS = frozenset({"name", "value", "optionName", "valueName"})
BRAND_CHECK_MAX_LENGTH = 50

BRAND_WORDS = frozenset({
    # technology
    "apple", "iphone", "ipad", "mac", "macbook", "macbook pro", "imac", "airpods", "samsung", "galaxy",
    "pixel", "google", "chromecast", "microsoft", "surface", "xbox", "playstation", "sony", "ps4", "ps5",
    "nintendo", "switch", "lenovo", "thinkpad", "asus", "rog", "dell", "alienware", "hp", "acer", "msi",
    "razer", "huawei", "matebook", "xiaomi", "redmi", "oppo", "vivo", "oneplus", "motorola", "nokia",
    # fashion
    "gucci", "prada", "louis vuitton", "lv", "chanel", "hermes", "burberry", "versace", "armani", "dior",
    "balenciaga", "fendi", "celine", "ysl", "saint laurent", "givenchy", "loewe", "valentino", "tiffany",
    "cartier",
    # sports
    "nike", "adidas", "puma", "reebok", "under armour", "new balance", "asics", "fila", "salomon", "columbia",
    # automotive
    "tesla", "bmw", "audi", "mercedes", "mercedes-benz", "benz", "toyota", "honda", "nissan", "lexus",
    "porsche", "volkswagen", "vw", "ford", "chevrolet", "mazda", "subaru", "hyundai", "kia", "ferrari",
    # watches
    "rolex", "omega", "patek philippe", "bvlgari", "breitling", "tag heuer",
    # commerce and payments
    "shopify", "amazon", "alibaba", "aliexpress", "paypal", "stripe", "visa", "mastercard",
    # technical terms
    "usb", "hdmi", "bluetooth", "wifi", "gps", "nfc", "led", "oled", "lcd", "amoled",
    "cpu", "gpu", "ram", "ssd", "hdd", "api", "sdk", "app", "web", "ios", "pc",
    # sizes and units
    "xs", "sm", "md", "lg", "xl", "xxl", "xxxl", "oz", "lb", "kg", "mm", "cm",
    # abbreviations
    "id", "url", "seo", "ui", "ux", "css", "html", "js", "php", "sql", "json", "xml", "pdf",
})

_TECHNICAL_PATTERNS = (
    re.compile(r"\b[A-Z]{2,}\b"),
    re.compile(r"\b\d+[a-zA-Z]+\b"),
    re.compile(r"\b[a-zA-Z]+\d+[a-zA-Z]*\b"),
    re.compile(r"\b\w+-\w+\b"),
)
_NUMBER_RE = re.compile(r"^\d+(\.\d+)?$")
_UNIT_RE = re.compile(r"^(ml|kg|lb|oz|cm|mm|in|ft|yd|gal|qt|pt|fl|°c|°f)$", re.I)

_BRAND_PATTERN_RE = re.compile(r"^[A-Z][a-z]+$")
_PRODUCT_CODE_RE = re.compile(r"^[A-Z]{2,}[-_]?\d+")
_ACRONYM_RE = re.compile(r"^[A-Z]{2,}$")
_PLACEHOLDER_ONLY_RE = re.compile(r"^__PROTECTED_[A-Z0-9_]+__$")
_HAS_LETTER_RE = re.compile(r"[^\W\d_]")


@dataclass(frozen=True)
class SkipDecision:
    should_skip: bool
    reason: Optional[str] = None


_NO_SKIP = SkipDecision(False)


def is_technical_term(word: str) -> bool:
    return any(pattern.search(word) for pattern in _TECHNICAL_PATTERNS)


def is_brand_word(word: str | None) -> bool:
    if not word:
        return False
    if word.lower() in BRAND_WORDS:
        return True
    if is_technical_term(word):
        return True
    return bool(_NUMBER_RE.match(word) or _UNIT_RE.match(word))


def check_brand_words(text: str | None, field_name: str | None = None) -> SkipDecision:
    """Decide whether a short field should stay untranslated."""
    if not text or not isinstance(text, str):
        return _NO_SKIP
    trimmed = text.strip()
    if len(trimmed) >= BRAND_CHECK_MAX_LENGTH:
        return _NO_SKIP
    if field_name and field_name in SKIP_BRAND_CHECK_FIELDS:
        return _NO_SKIP
    if field_name == "vendor" and trimmed:
        return SkipDecision(True, "vendor_field_protection")
    if _BRAND_PATTERN_RE.match(trimmed) and len(trimmed) >= 3:
        return SkipDecision(True, "brand_word_pattern")
    if _PRODUCT_CODE_RE.match(trimmed):
        return SkipDecision(True, "product_code_pattern")
    if _ACRONYM_RE.match(trimmed):
        return SkipDecision(True, "technical_acronym")
    return _NO_SKIP


def is_placeholder_only(text: str | None) -> bool:
    return bool(text) and bool(_PLACEHOLDER_ONLY_RE.match(text.strip()))  # type: ignore[union-attr]


def classify_identical_result(text: str) -> str:
    """Label why a translation came back identical to its source."""
    trimmed = (text or "").strip()
    if not trimmed or not _HAS_LETTER_RE.search(trimmed):
        return "product_code"
    if _PRODUCT_CODE_RE.match(trimmed) or _NUMBER_RE.match(trimmed):
        return "product_code"
    words = trimmed.split()
    if trimmed.lower() in BRAND_WORDS and not is_technical_term(trimmed):
        return "possible_brand"
    if len(words) <= 2 and all(_BRAND_PATTERN_RE.match(word) for word in words):
        return "possible_brand"
    if len(words) <= 3 and all(is_brand_word(word) for word in words):
        return "technical_term"
    return "identical_result"
