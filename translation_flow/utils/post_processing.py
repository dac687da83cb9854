"""Post-processing applied to every translated text before it is returned."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Any, Callable, List, Mapping, Optional

from translation_flow.core.protector import restore_markup
from translation_flow.models import LinkConversionOptions
from translation_flow.utils.link_converter import convert_links_for_locale, validate_market_config


logger = logging.getLogger("translation_flow.post_processing")

_LINE_ENDINGS_RE = re.compile(r"\r\n?")

Processor = Callable[[str, "PostProcessContext"], Any]


@dataclass
class PostProcessContext:
    target_lang: str
    original_text: str = ""
    placeholder_mapping: Optional[Mapping[str, str]] = None
    link_conversion: Optional[LinkConversionOptions] = None
    skip_link_conversion: bool = False
    extra_processors: List[Callable[..., Any]] = field(default_factory=list)


def normalize_line_endings(text: str, ctx: PostProcessContext) -> str:
    return _LINE_ENDINGS_RE.sub("\n", text)


def trim_result(text: str, ctx: PostProcessContext) -> str:
    return text.strip()


def ensure_fallback(text: str, ctx: PostProcessContext) -> str:
    if text and text.strip():
        return text
    original = ctx.original_text or ""
    return original if original.strip() else text


def convert_links(text: str, ctx: PostProcessContext) -> str:
    link = ctx.link_conversion
    if link is None:
        return text
    return convert_links_for_locale(
        text,
        link.locale or ctx.target_lang,
        link.market_config,
        enabled=link.enabled,
        strategy=link.strategy,
        preserve_query_params=link.preserve_query_params,
        preserve_anchors=link.preserve_anchors,
    )


BASE_PROCESSORS: List[Processor] = [normalize_line_endings, trim_result, ensure_fallback]


def _link_conversion_applies(ctx: PostProcessContext) -> bool:
    link = ctx.link_conversion
    if ctx.skip_link_conversion or link is None or not link.enabled:
        return False
    return validate_market_config(link.market_config) and bool(link.locale or ctx.target_lang)


def build_pipeline(ctx: PostProcessContext) -> List[Processor]:
    pipeline = list(BASE_PROCESSORS)
    if _link_conversion_applies(ctx):
        pipeline.append(convert_links)
    pipeline.extend(fn for fn in ctx.extra_processors if callable(fn))
    return pipeline


def apply_post_processors(text: Any, ctx: PostProcessContext) -> Any:
    """Run the processor chain; a failing processor is logged and skipped."""
    if not isinstance(text, str):
        return text

    current = text
    if ctx.placeholder_mapping:
        current = restore_markup(current, ctx.placeholder_mapping)

    for processor in build_pipeline(ctx):
        try:
            output = processor(current, ctx)
        except Exception as exc:
            logger.warning(
                "Post-processor %s failed: %s",
                getattr(processor, "__name__", "anonymous"),
                exc,
            )
            continue
        if isinstance(output, str):
            current = output
        elif output is not None:
            current = str(output)
    return current
