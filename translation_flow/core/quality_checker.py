"""
Translation quality checks.

Two independent, side-effect-free evaluators score an
(original, translated, target_lang) triple:

* completeness: was the text actually translated, is it truncated, is it a
  mix of source and target language;
* quality: empty or unchanged output, tag-count drift, brand-word drift,
  length anomalies, missing target script, residual English.

Both return structured ``ValidationRecord`` entries. Callers decide what to
log or report; nothing here has side effects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Any, Dict, List, Optional


LATIN_SCRIPT_LANGUAGES = frozenset({
    "en", "es", "fr", "de", "it", "pt", "nl", "sv", "da", "no", "fi",
    "pl", "tr", "ro", "cs", "sk", "hu", "bg", "et", "lv", "lt",
})

SHORT_TEXT_MIN = 15
SHORT_TEXT_MAX = 100

TECHNICAL_KEYWORDS = (
    "safety", "warning", "caution", "danger", "hazard", "risk",
    "installation", "assembly", "maintenance", "repair",
    "equipment", "components", "specifications", "parts",
    "hanging", "suspension", "mounting", "setup",
    "worn", "sharp", "rip", "damage", "broken",
    "rocks", "scissors", "knife", "blade",
)

PRODUCT_KEYWORDS = (
    "description", "features", "benefits", "product", "item", "material",
    "fabric", "design", "color", "size", "weight", "dimensions", "specifications",
    "outdoor", "camping", "hiking", "backpacking", "gear", "equipment",
    "lightweight", "waterproof", "durable", "portable", "compact",
    "choice", "perfect", "ideal", "suitable", "recommended",
)

BRAND_WORDS = ("Shopify", "Onewind", "Lightsler")

ENGLISH_TERM_ALLOWLIST = frozenset({
    "online", "shop", "store", "product", "collection", "blog", "page",
    "menu", "theme", "template",
})

INCOMPLETE_PATTERNS = (
    re.compile(r"^(Here is|Here's|I'll translate|The translation|Translation:|翻译如下|翻译结果)", re.I),
    re.compile(r"\.{3}$"),
    re.compile(r"\[继续\]|\[continued\]|\[more\]", re.I),
    re.compile(r"TEXT_TOO_LONG"),
)

_TARGET_SCRIPT_PATTERNS = {
    "zh": re.compile(r"[\u4e00-\u9fff]"),
    "ja": re.compile(r"[\u3040-\u309f\u30a0-\u30ff\u4e00-\u9fff]"),
    "ko": re.compile(r"[\uac00-\ud7af]"),
    "ar": re.compile(r"[\u0600-\u06ff]"),
    "ru": re.compile(r"[\u0400-\u04ff]"),
    "th": re.compile(r"[\u0e00-\u0e7f]"),
}
_CHINESE_CHAR_RE = _TARGET_SCRIPT_PATTERNS["zh"]
_ASCII_WORDS_RE = re.compile(r"^[a-zA-Z\s\-_,.!?]+$")
_ENGLISH_LETTER_RE = re.compile(r"[a-zA-Z]")
_ENGLISH_WORD_RE = re.compile(r"\b[a-zA-Z]{4,}\b")
_TAG_RE = re.compile(r"<[^>]+>")
_OPEN_TAG_RE = re.compile(r"<[^/][^>]*>")
_CLOSE_TAG_RE = re.compile(r"</[^>]+>")
_URL_RE = re.compile(r"https?://\S+")
_PRODUCT_NOISE_RE = re.compile(r"\b(?:Onewind|YouTube|iframe|UHMWPE|PU|Silpoly)\b", re.I)
_MEASUREMENT_RE = re.compile(r"\d+[\w\s\-×′″]*(?:mm|cm|m|ft|lb|oz|g|kg)", re.I)
_SPACE_RE = re.compile(r"\s+")
_TWO_LETTER_WORD_RE = re.compile(r"\b[a-zA-Z]{2,}\b")


class CompletenessCode:
    SHORT_TEXT_UNCHANGED = "SHORT_TEXT_UNCHANGED"
    NO_TARGET_CHAR = "NO_TARGET_LANGUAGE_CHAR"
    ENGLISH_RATIO_HIGH = "EXCESSIVE_ENGLISH_RATIO"
    MIXING_RATIO_HIGH = "MIXED_LANGUAGE_CONTENT"
    INCOMPLETE_PATTERN = "INCOMPLETE_PATTERN"
    LENGTH_TOO_SHORT = "LENGTH_TOO_SHORT"
    HTML_UNBALANCED = "HTML_UNBALANCED"
    PRODUCT_CHINESE_INSUFFICIENT = "INSUFFICIENT_CHINESE_CONTENT"


class QualityCode:
    EMPTY_TRANSLATION = "EMPTY_TRANSLATION"
    SAME_AS_ORIGINAL = "SAME_AS_ORIGINAL"
    TRANSLATION_UNCHANGED = "TRANSLATION_UNCHANGED"
    HTML_TAG_MISMATCH = "HTML_TAG_MISMATCH"
    HTML_TAG_COUNT_MISMATCH = "HTML_TAG_COUNT_MISMATCH"
    BRAND_WORD_ALTERED = "BRAND_WORD_ALTERED"
    TRANSLATION_TOO_SHORT = "TRANSLATION_TOO_SHORT"
    TOO_LONG = "TOO_LONG"
    MISSING_TARGET_LANGUAGE = "MISSING_TARGET_LANGUAGE"
    EXCESSIVE_ENGLISH = "EXCESSIVE_ENGLISH_REMNANTS"


@dataclass
class ValidationRecord:
    category: str
    code: str
    message: str
    severity: int
    retryable: bool
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "retryable": self.retryable,
            "context": dict(self.context),
        }


@dataclass
class ValidationThresholds:
    """Tunables for heuristics that were fitted by hand."""
    html_balance_ratio: float = 0.3
    html_balance_min: int = 10


@dataclass
class CompletenessResult:
    is_complete: bool
    reason: str
    code: Optional[str] = None
    records: List[ValidationRecord] = field(default_factory=list)


@dataclass
class QualityResult:
    is_valid: bool
    terminate: bool = False
    termination_code: Optional[str] = None
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    records: List[ValidationRecord] = field(default_factory=list)


@dataclass
class ValidationOutcome:
    completeness: CompletenessResult
    quality: QualityResult

    @property
    def passed(self) -> bool:
        return self.completeness.is_complete and self.quality.is_valid

    @property
    def records(self) -> List[ValidationRecord]:
        return [*self.completeness.records, *self.quality.records]

    def summary(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "complete": self.completeness.is_complete,
            "completeness_reason": self.completeness.reason,
            "completeness_code": self.completeness.code,
            "quality_valid": self.quality.is_valid,
            "termination_code": self.quality.termination_code,
            "issues": list(self.quality.issues),
            "warnings": list(self.quality.warnings),
        }


def base_language(target_lang: str | None) -> str:
    return str(target_lang or "").strip().lower().split("-")[0]


def is_chinese_target(target_lang: str | None) -> bool:
    return base_language(target_lang) == "zh"


def is_latin_target(target_lang: str | None) -> bool:
    return base_language(target_lang) in LATIN_SCRIPT_LANGUAGES


def has_target_script(text: str, target_lang: str | None) -> Optional[bool]:
    """True/False for languages with a known script, None otherwise."""
    pattern = _TARGET_SCRIPT_PATTERNS.get(base_language(target_lang))
    if pattern is None:
        return None
    return bool(pattern.search(text or ""))


def _contains_keyword(text: str, keywords: tuple) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in keywords)


def _incomplete(code: str, reason: str, context: Dict[str, Any]) -> CompletenessResult:
    record = ValidationRecord(
        category="COMPLETENESS",
        code=code,
        message=reason,
        severity=2,
        retryable=True,
        context=context,
    )
    return CompletenessResult(is_complete=False, reason=reason, code=code, records=[record])


def evaluate_completeness(
    original_text: str,
    translated_text: str,
    target_lang: str,
    thresholds: ValidationThresholds | None = None,
) -> CompletenessResult:
    thresholds = thresholds or ValidationThresholds()
    original_text = original_text or ""
    translated_text = translated_text or ""
    context = {"target_language": target_lang, "original_length": len(original_text)}

    if len(original_text) <= SHORT_TEXT_MIN:
        return CompletenessResult(is_complete=True, reason="very short text")

    is_technical = _contains_keyword(original_text, TECHNICAL_KEYWORDS)
    is_product = _contains_keyword(original_text, PRODUCT_KEYWORDS)
    chinese_target = is_chinese_target(target_lang)

    if len(original_text) <= SHORT_TEXT_MAX:
        if original_text.strip() == translated_text.strip():
            if not is_latin_target(target_lang) and _ASCII_WORDS_RE.match(original_text):
                return _incomplete(
                    CompletenessCode.SHORT_TEXT_UNCHANGED,
                    "short text left untranslated for a non-Latin target",
                    context,
                )

        if has_target_script(translated_text, target_lang) is False:
            return _incomplete(
                CompletenessCode.NO_TARGET_CHAR,
                f"short text has no {target_lang} characters",
                context,
            )

        if not is_latin_target(target_lang) and not chinese_target:
            english_chars = len(_ENGLISH_LETTER_RE.findall(translated_text))
            ratio = english_chars / max(len(translated_text), 1)
            threshold = 0.7
            if is_product:
                threshold = 0.8
            elif is_technical:
                threshold = 0.75
            if ratio > threshold:
                return _incomplete(
                    CompletenessCode.ENGLISH_RATIO_HIGH,
                    f"short text English ratio {ratio:.1%} above {threshold:.1%}",
                    {**context, "ratio": round(ratio, 3), "threshold": threshold},
                )

        return CompletenessResult(is_complete=True, reason="short text translated")

    is_html = "<" in original_text and ">" in original_text

    if not is_html and not is_product:
        original_words = [w for w in original_text.lower().split() if len(w) > 3]
        translated_words = translated_text.lower().split()
        brand_lower = {brand.lower() for brand in BRAND_WORDS}
        carried_over = 0
        for word in original_words:
            if word in brand_lower:
                continue
            if any(word in candidate for candidate in translated_words):
                carried_over += 1
        mixing_ratio = carried_over / max(len(original_words), 1)
        if mixing_ratio > 0.8 and len(original_words) > 10:
            return _incomplete(
                CompletenessCode.MIXING_RATIO_HIGH,
                f"source and translation are mixed ({mixing_ratio:.1%})",
                {**context, "mixing_ratio": round(mixing_ratio, 3)},
            )

    if is_html or is_product:
        if "TEXT_TOO_LONG" in translated_text:
            return _incomplete(
                CompletenessCode.INCOMPLETE_PATTERN,
                "API reported TEXT_TOO_LONG",
                context,
            )
    else:
        for pattern in INCOMPLETE_PATTERNS:
            if pattern.search(translated_text):
                return _incomplete(
                    CompletenessCode.INCOMPLETE_PATTERN,
                    f"incomplete translation pattern: {pattern.pattern}",
                    context,
                )

    length_ratio = len(translated_text) / len(original_text)
    if is_html:
        min_ratio, content_type = 0.05, "html"
    elif is_product:
        min_ratio, content_type = (0.1 if chinese_target else 0.15), "product"
    elif is_technical:
        min_ratio, content_type = (0.15 if chinese_target else 0.2), "technical"
    else:
        min_ratio, content_type = (0.2 if chinese_target else 0.3), "generic"
    if length_ratio < min_ratio:
        return _incomplete(
            CompletenessCode.LENGTH_TOO_SHORT,
            f"translation too short for {content_type} content ({length_ratio:.1%} < {min_ratio:.1%})",
            {**context, "length_ratio": round(length_ratio, 3), "content_type": content_type},
        )

    if is_html:
        open_tags = len(_OPEN_TAG_RE.findall(original_text))
        close_tags = len(_CLOSE_TAG_RE.findall(original_text))
        trans_open = len(_OPEN_TAG_RE.findall(translated_text))
        trans_close = len(_CLOSE_TAG_RE.findall(translated_text))
        allowed = max(thresholds.html_balance_min, int(open_tags * thresholds.html_balance_ratio))
        drift = abs((open_tags - close_tags) - (trans_open - trans_close))
        if drift > allowed:
            return _incomplete(
                CompletenessCode.HTML_UNBALANCED,
                f"HTML tags unbalanced (drift {drift}, allowed {allowed})",
                {**context, "drift": drift, "allowed": allowed},
            )

    if is_product and chinese_target:
        plain = _TAG_RE.sub(" ", translated_text)
        plain = _URL_RE.sub(" ", plain)
        plain = _PRODUCT_NOISE_RE.sub(" ", plain)
        plain = _MEASUREMENT_RE.sub(" ", plain)
        plain = _SPACE_RE.sub(" ", plain).strip()

        chinese_chars = len(_CHINESE_CHAR_RE.findall(plain))
        english_words = len(_TWO_LETTER_WORD_RE.findall(plain))
        chinese_ratio = chinese_chars / max(len(plain), 1)
        min_chinese_ratio = 0.1 if is_technical else 0.15
        if len(_TAG_RE.findall(translated_text)) > 10:
            min_chinese_ratio = 0.08

        passes_ratio = chinese_ratio >= min_chinese_ratio
        passes_count = chinese_chars > max(50, len(plain) * 0.05)
        reasonable = chinese_chars > english_words * 0.5
        if not passes_ratio and not passes_count and not reasonable:
            return _incomplete(
                CompletenessCode.PRODUCT_CHINESE_INSUFFICIENT,
                f"product text has too little Chinese ({chinese_ratio:.1%})",
                {**context, "chinese_ratio": round(chinese_ratio, 3)},
            )

    return CompletenessResult(is_complete=True, reason="translation complete")


def evaluate_quality(original_text: str, translated_text: str, target_lang: str) -> QualityResult:
    original_text = original_text or ""
    result = QualityResult(is_valid=True)

    def _record(category: str, code: str, message: str, severity: int, retryable: bool, **context: Any) -> None:
        context.setdefault("target_language", target_lang)
        result.records.append(
            ValidationRecord(category, code, message, severity, retryable, context)
        )

    def _terminate(code: str) -> QualityResult:
        result.is_valid = False
        result.terminate = True
        result.termination_code = code
        return result

    if not translated_text or not translated_text.strip():
        result.issues.append(QualityCode.EMPTY_TRANSLATION)
        _record(
            "VALIDATION_ERROR",
            QualityCode.EMPTY_TRANSLATION,
            "Translation result is empty",
            2,
            True,
            original_length=len(original_text),
        )
        return _terminate(QualityCode.EMPTY_TRANSLATION)

    if original_text.strip() == translated_text.strip():
        result.issues.append(QualityCode.SAME_AS_ORIGINAL)
        if len(original_text) > 20:
            _record(
                "WARNING",
                QualityCode.TRANSLATION_UNCHANGED,
                "Translation is identical to original text",
                1,
                True,
                original_text=original_text[:100],
            )
        return _terminate(QualityCode.SAME_AS_ORIGINAL)

    original_tags = sorted(_TAG_RE.findall(original_text))
    translated_tags = sorted(_TAG_RE.findall(translated_text))
    if len(original_tags) != len(translated_tags):
        result.warnings.append(QualityCode.HTML_TAG_MISMATCH)
        _record(
            "WARNING",
            QualityCode.HTML_TAG_COUNT_MISMATCH,
            f"HTML tag count mismatch: original {len(original_tags)}, translated {len(translated_tags)}",
            2,
            True,
            original_tags=original_tags[:10],
            translated_tags=translated_tags[:10],
        )

    for brand in BRAND_WORDS:
        pattern = re.compile(re.escape(brand), re.I)
        original_count = len(pattern.findall(original_text))
        translated_count = len(pattern.findall(translated_text))
        if original_count != translated_count:
            result.warnings.append(f"{QualityCode.BRAND_WORD_ALTERED}_{brand}")
            _record(
                "WARNING",
                QualityCode.BRAND_WORD_ALTERED,
                f'Brand word "{brand}" count changed: {original_count} -> {translated_count}',
                2,
                False,
                brand_word=brand,
                original_count=original_count,
                translated_count=translated_count,
            )

    chinese_target = is_chinese_target(target_lang)
    min_ratio = 0.2 if chinese_target else 0.4
    max_ratio = 1.5 if chinese_target else 3.0
    script_present = has_target_script(translated_text, target_lang)

    if len(translated_text) < len(original_text) * min_ratio:
        if len(original_text) < 50 and script_present:
            return result
        result.warnings.append(QualityCode.TRANSLATION_TOO_SHORT)
        _record(
            "WARNING",
            QualityCode.TRANSLATION_TOO_SHORT,
            f"Translation seems too short: {len(translated_text)} chars vs original {len(original_text)} chars",
            2,
            True,
            original_length=len(original_text),
            translated_length=len(translated_text),
            ratio=round(len(translated_text) / max(len(original_text), 1), 2),
        )
        return _terminate(QualityCode.TRANSLATION_TOO_SHORT)

    if len(translated_text) > len(original_text) * max_ratio:
        result.warnings.append(QualityCode.TOO_LONG)

    if script_present is False:
        result.warnings.append(QualityCode.MISSING_TARGET_LANGUAGE)
        _record(
            "WARNING",
            QualityCode.MISSING_TARGET_LANGUAGE,
            f"Translation lacks {target_lang} language characteristics",
            3,
            True,
            sample_text=translated_text[:100],
        )
        return _terminate(QualityCode.MISSING_TARGET_LANGUAGE)

    if base_language(target_lang) != "en" and not is_latin_target(target_lang):
        brand_lower = {brand.lower() for brand in BRAND_WORDS}
        leftovers = [
            word
            for word in _ENGLISH_WORD_RE.findall(translated_text)
            if word.lower() not in brand_lower and word.lower() not in ENGLISH_TERM_ALLOWLIST
        ]
        source_words = len(original_text.split())
        if len(leftovers) > source_words * 0.6:
            result.warnings.append(QualityCode.EXCESSIVE_ENGLISH)
            _record(
                "WARNING",
                QualityCode.EXCESSIVE_ENGLISH,
                f"Too many English words remain in {target_lang} translation",
                2,
                True,
                english_word_count=len(leftovers),
                total_word_count=source_words,
                english_words=leftovers[:10],
            )

    result.is_valid = not result.issues
    return result


def run_validation_pipeline(
    original_text: str,
    translated_text: str,
    target_lang: str,
    thresholds: ValidationThresholds | None = None,
) -> ValidationOutcome:
    return ValidationOutcome(
        completeness=evaluate_completeness(original_text, translated_text, target_lang, thresholds),
        quality=evaluate_quality(original_text, translated_text, target_lang),
    )


def count_records_by_code(records: List[ValidationRecord]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for record in records:
        counts[record.code] = counts.get(record.code, 0) + 1
    return counts
