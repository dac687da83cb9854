"""Markup protection: hide structural HTML behind opaque placeholders."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from types import MappingProxyType
from typing import Dict, Mapping, Union


logger = logging.getLogger("translation_flow.protector")

PLACEHOLDER_PREFIX = "__PROTECTED_"

_BLOCK_RULES = (
    ("STYLE_BLOCK", re.compile(r"<style[^>]*>.*?</style>", re.I | re.S)),
    ("SCRIPT_BLOCK", re.compile(r"<script[^>]*>.*?</script>", re.I | re.S)),
    ("COMMENT", re.compile(r"<!--.*?-->", re.S)),
    ("PRE", re.compile(r"<pre[^>]*>.*?</pre>", re.I | re.S)),
    ("CODE", re.compile(r"<code[^>]*>.*?</code>", re.I | re.S)),
)
_TAG_RE = re.compile(r"<([a-zA-Z0-9-]+)([^>]*?)>")
_STYLE_ATTR_RE = re.compile(r"(?<![\w-])(style\s*=\s*)([\"'])(.*?)\2", re.I | re.S)
_URL_ATTR_RE = re.compile(r"(?<![\w-])((?:href|src)\s*=\s*)([\"'])(.*?)\2", re.I | re.S)
_ARIA_ATTR_RE = re.compile(r"(?<![\w-])aria-[a-zA-Z0-9-]+\s*=\s*([\"']).*?\1", re.I | re.S)
_SELF_CLOSING_RULES = (
    ("IMG", re.compile(r"<img\b[^>]*>", re.I)),
    ("MEDIA_TAG", re.compile(r"<(?:source|track)\b[^>]*>", re.I)),
)
# Coaching sentence some models append after the translation.
_COACHING_NOTE_RE = re.compile(r"\n\n注意[：:].*?一致性和连贯性[。.]")


@dataclass(frozen=True)
class ProtectionResult:
    text: str
    mapping: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def placeholder_count(self) -> int:
        return len(self.mapping)


class _PlaceholderBuilder:
    def __init__(self, source: str):
        self._source = source
        self._counter = 0
        self._mapping: Dict[str, str] = {}

    def add(self, kind: str, original: str) -> str:
        placeholder = f"{PLACEHOLDER_PREFIX}{kind}_{self._counter}__"
        # Never reuse a token that already occurs verbatim in the input.
        while placeholder in self._source:
            self._counter += 1
            placeholder = f"{PLACEHOLDER_PREFIX}{kind}_{self._counter}__"
        self._counter += 1
        self._mapping[placeholder] = original
        return placeholder

    def build(self, text: str) -> ProtectionResult:
        return ProtectionResult(text=text, mapping=MappingProxyType(dict(self._mapping)))


def _protect_attributes(match: re.Match[str], builder: _PlaceholderBuilder) -> str:
    tag_name, attributes = match.group(1), match.group(2)
    if not attributes:
        return match.group(0)

    def _mask_value(kind: str):
        def _replace(attr: re.Match[str]) -> str:
            prefix, quote, value = attr.group(1), attr.group(2), attr.group(3)
            return f"{prefix}{quote}{builder.add(kind, value)}{quote}"

        return _replace

    attributes = _STYLE_ATTR_RE.sub(_mask_value("STYLE_ATTR"), attributes)
    attributes = _URL_ATTR_RE.sub(_mask_value("URL"), attributes)
    attributes = _ARIA_ATTR_RE.sub(lambda attr: builder.add("ARIA", attr.group(0)), attributes)
    return f"<{tag_name}{attributes}>"


def protect_markup(text: str) -> ProtectionResult:
    """Replace sensitive markup with ``__PROTECTED_<KIND>_<n>__`` tokens.

    Blocks (style, script, comments, pre, code) are masked first so that
    attributes inside them are never processed twice. Attribute values are
    masked in place, keeping the tag itself visible to the translator.
    Self-closing media tags are masked last.
    """
    if not isinstance(text, str) or "<" not in text:
        return ProtectionResult(text=text if isinstance(text, str) else "")

    builder = _PlaceholderBuilder(text)
    protected = text

    for kind, pattern in _BLOCK_RULES:
        protected = pattern.sub(lambda m, k=kind: builder.add(k, m.group(0)), protected)

    protected = _TAG_RE.sub(lambda m: _protect_attributes(m, builder), protected)

    for kind, pattern in _SELF_CLOSING_RULES:
        protected = pattern.sub(lambda m, k=kind: builder.add(k, m.group(0)), protected)

    result = builder.build(protected)
    logger.debug(
        "Protected markup: original=%d protected=%d placeholders=%d",
        len(text),
        len(protected),
        result.placeholder_count,
    )
    return result


def restore_markup(
    text: str, protection: Union[ProtectionResult, Mapping[str, str], None]
) -> str:
    """Put every placeholder back, looping until the text stops changing."""
    mapping = protection.mapping if isinstance(protection, ProtectionResult) else protection
    if not isinstance(text, str) or not mapping:
        return text

    restored = text
    # Each pass resolves one level of nesting (e.g. a URL inside an <img>).
    for _ in range(len(mapping) + 1):
        previous = restored
        for placeholder, original in mapping.items():
            if placeholder in restored:
                restored = restored.replace(placeholder, original)
        if restored == previous:
            break

    if restored == text:
        logger.debug("No placeholder matched during restore (%d expected)", len(mapping))

    return _COACHING_NOTE_RE.sub("", restored)


def contains_placeholder(text: str | None) -> bool:
    return bool(text) and PLACEHOLDER_PREFIX in str(text)
