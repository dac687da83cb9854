"""Strategy selection and the runners behind each strategy."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
import logging
import re
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from translation_flow.client.api_client import FallbackStep, StepContext, TranslationAPIClient
from translation_flow.core.chunker import TextChunk, build_chunks, is_likely_html
from translation_flow.core.protector import protect_markup
from translation_flow.core.quality_checker import ValidationThresholds, run_validation_pipeline
from translation_flow.errors import TranslationError
from translation_flow.models import TranslateOptions, TranslationRequest, TranslationResult
from translation_flow.prompts.builder import (
    build_config_key_prompt,
    build_enhanced_prompt,
    build_simple_prompt,
)
from translation_flow.utils.post_processing import PostProcessContext, apply_post_processors


logger = logging.getLogger("translation_flow.strategies")

DEFAULT_LONG_TEXT_THRESHOLD = 1500
TEXT_TOO_LONG_MARKER = "TEXT_TOO_LONG"

_CONFIG_KEY_RE = re.compile(r"^[a-z0-9]+(?:_[a-z0-9]+)+$")


class StrategyKind(str, Enum):
    DEFAULT = "default"
    SIMPLE = "simple"
    ENHANCED = "enhanced"
    LONG_TEXT = "long-text"
    LONG_HTML = "long-html"
    CONFIG_KEY = "config-key"


@dataclass(frozen=True)
class StrategySelection:
    kind: StrategyKind
    reason: str


class ChunkTranslationError(TranslationError):
    """A chunk call exhausted its own retries inside a chunked runner."""

    default_code = "CHUNK_FAILED"


def parse_strategy(value: Any) -> Optional[StrategyKind]:
    if isinstance(value, StrategyKind):
        return value
    if not value:
        return None
    try:
        return StrategyKind(str(value).strip().lower())
    except ValueError:
        logger.warning("Unknown strategy %r, using default", value)
        return None


def select_strategy(
    text: str,
    *,
    forced: Any = None,
    long_text_threshold: int = DEFAULT_LONG_TEXT_THRESHOLD,
    is_html: Optional[bool] = None,
) -> StrategySelection:
    html = is_likely_html(text) if is_html is None else is_html
    if len(text or "") > long_text_threshold and html:
        return StrategySelection(StrategyKind.LONG_HTML, "long_html_content")
    kind = parse_strategy(forced)
    if kind is not None:
        return StrategySelection(kind, "forced")
    return StrategySelection(StrategyKind.DEFAULT, "default")


def is_likely_config_key(text: Any) -> bool:
    if not isinstance(text, str):
        return False
    trimmed = text.strip()
    if len(trimmed) < 3 or len(trimmed) > 120:
        return False
    return bool(_CONFIG_KEY_RE.match(trimmed))


def to_readable_config_key(text: str) -> str:
    return " ".join(segment.strip() for segment in text.split("_") if segment.strip())


def simple_prompt_step() -> FallbackStep:
    def prepare(ctx: StepContext) -> TranslationRequest:
        return ctx.request(
            system_prompt=build_simple_prompt(ctx.target_lang),
            strategy="simple",
            extras={"mode": "simple"},
            options_override={"max_retries": 1},
        )

    return FallbackStep(name="simple", prepare=prepare)


class StrategyRunner:
    """Runs one strategy end to end: API calls, post-processing, validation."""

    def __init__(
        self,
        client: TranslationAPIClient,
        *,
        long_text_threshold: int = DEFAULT_LONG_TEXT_THRESHOLD,
        max_chunk_size: int = 1000,
        chunk_concurrency: int = 1,
        thresholds: ValidationThresholds | None = None,
        reporter: Any = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.long_text_threshold = int(long_text_threshold)
        self.max_chunk_size = int(max_chunk_size)
        self.chunk_concurrency = max(1, int(chunk_concurrency))
        self.thresholds = thresholds or ValidationThresholds()
        self.reporter = reporter
        self._clock = clock

    def run(
        self,
        kind: StrategyKind,
        text: str,
        target_lang: str,
        options: TranslateOptions,
    ) -> TranslationResult:
        if kind is StrategyKind.DEFAULT:
            return self.run_default(text, target_lang, options)
        elif kind is StrategyKind.ENHANCED:
            return self.run_default(text, target_lang, options, allow_simple=False)
        elif kind is StrategyKind.SIMPLE:
            return self.run_simple(text, target_lang, options)
        elif kind is StrategyKind.LONG_TEXT:
            return self.run_long_text(text, target_lang, options)
        elif kind is StrategyKind.LONG_HTML:
            return self.run_long_text(text, target_lang, options, strict=True)
        elif kind is StrategyKind.CONFIG_KEY:
            return self.run_config_key(text, target_lang, options)
        raise ValueError(f"Unhandled strategy: {kind!r}")

    def run_default(
        self,
        text: str,
        target_lang: str,
        options: TranslateOptions,
        *,
        allow_simple: bool = True,
        allow_long_text: bool = True,
    ) -> TranslationResult:
        """Enhanced prompt first, then the simple prompt, then caller fallbacks."""
        if allow_long_text and len(text) > self.long_text_threshold:
            logger.info(
                "Text length %d exceeds %d, switching to long-text strategy",
                len(text),
                self.long_text_threshold,
            )
            return self.run_long_text(text, target_lang, options)

        fallbacks: List[Any] = []
        if allow_simple and options.allow_simple_prompt:
            fallbacks.append(simple_prompt_step())
        fallbacks.extend(options.fallbacks or ())

        request = TranslationRequest(
            text=text,
            target_lang=target_lang,
            system_prompt=build_enhanced_prompt(target_lang),
            strategy="enhanced",
            context=self._request_context(options),
            cache_key_extras={"mode": "enhanced"},
        )
        result = self.client.execute(request, fallbacks, cancel_event=options.cancel_event)

        if result.success and TEXT_TOO_LONG_MARKER in result.text:
            logger.warning("Model reported %s for %d chars, retrying as long text", TEXT_TOO_LONG_MARKER, len(text))
            chunked = self.run_long_text(text, target_lang, options)
            if chunked.success and TEXT_TOO_LONG_MARKER not in chunked.text:
                return chunked
            return self._content_failure(text, target_lang, "Text too long, split it or translate in batches", result.meta)
        return self._finish(text, result, target_lang, options)

    def run_simple(self, text: str, target_lang: str, options: TranslateOptions) -> TranslationResult:
        request = TranslationRequest(
            text=text,
            target_lang=target_lang,
            system_prompt=build_simple_prompt(target_lang),
            strategy="simple",
            context=self._request_context(options),
            extras={"mode": "simple"},
        )
        result = self.client.execute(request, options.fallbacks, cancel_event=options.cancel_event)
        return self._finish(text, result, target_lang, options)

    def run_long_text(
        self,
        text: str,
        target_lang: str,
        options: TranslateOptions,
        *,
        strict: bool = False,
    ) -> TranslationResult:
        """Protect, chunk, translate each chunk, rejoin, restore, validate.

        With ``strict`` a failed chunk raises ``ChunkTranslationError`` so the
        caller can fall back on the whole text; otherwise it becomes a failed
        result carrying the original text.
        """
        html = is_likely_html(text)
        working = text
        mapping = None
        if html:
            protection = protect_markup(text)
            working = protection.text
            mapping = protection.mapping

        chunks = build_chunks(working, options.max_chunk_size or self.max_chunk_size, is_html=html)
        if not chunks:
            return TranslationResult.original(text, target_lang)
        strategy = "long-text-chunk" if len(chunks) > 1 else "long-text"
        logger.info(
            "Long text split into %d chunks (length=%d, html=%s, placeholders=%d)",
            len(chunks),
            len(text),
            html,
            len(mapping or {}),
        )

        start = self._clock()
        try:
            translated = self._translate_chunks(chunks, target_lang, strategy, options)
        except ChunkTranslationError as exc:
            if strict:
                raise
            logger.error("Long text translation failed: %s", exc)
            failed = exc.result if isinstance(exc.result, TranslationResult) else None
            return TranslationResult.failure(
                text,
                f"Long text translation failed: {exc}",
                language=target_lang,
                error_code=exc.code,
                retryable=exc.retryable,
                meta={"strategy": strategy, "chunk_count": len(chunks), **({"chunk_error": failed.error} if failed else {})},
            )

        combined = ("" if html else "\n\n").join(piece for piece, _ in translated)

        result = TranslationResult(
            success=True,
            text=combined,
            is_original=False,
            language=target_lang,
            meta={
                "strategy": strategy,
                "chunk_count": len(chunks),
                "html": html,
                "placeholders": len(mapping or {}),
                "retries": sum(int(meta.get("retries") or 0) for _, meta in translated),
                "cached": all(bool(meta.get("cached")) for _, meta in translated),
                "duration": int((self._clock() - start) * 1000),
            },
        )
        return self._finish(text, result, target_lang, options, placeholder_mapping=mapping)

    def run_config_key(self, text: str, target_lang: str, options: TranslateOptions) -> TranslationResult:
        readable = to_readable_config_key(text)
        logger.info("Config key fallback for %r (as %r)", text, readable)
        request = TranslationRequest(
            text=readable,
            target_lang=target_lang,
            system_prompt=build_config_key_prompt(target_lang),
            strategy="config-key",
            context={**self._request_context(options), "config_key": text},
        )
        result = self.client.execute(request, use_default_fallbacks=False, cancel_event=options.cancel_event)
        if not result.success:
            return replace(result, text=text, error=result.error or "Config key translation failed")
        if not result.text.strip():
            return TranslationResult.failure(
                text,
                "Config key translation returned empty text",
                language=target_lang,
                error_code="CONTENT_ERROR",
                retryable=False,
                meta=result.meta,
            )
        result = replace(result, is_original=False, meta={**result.meta, "config_key": text})
        return self._finish(readable, result, target_lang, options, validate=False)

    def _translate_chunks(
        self,
        chunks: Sequence[TextChunk],
        target_lang: str,
        strategy: str,
        options: TranslateOptions,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        prompt = build_enhanced_prompt(target_lang)
        count = len(chunks)

        def translate_one(chunk: TextChunk) -> Tuple[str, Dict[str, Any]]:
            request = TranslationRequest(
                text=chunk.text,
                target_lang=target_lang,
                system_prompt=prompt,
                strategy=strategy,
                context={**self._request_context(options), "chunk_index": chunk.id, "chunk_count": count},
            )
            result = self.client.execute(request, use_default_fallbacks=False, cancel_event=options.cancel_event)
            if not result.success:
                raise ChunkTranslationError(
                    f"chunk {chunk.id}/{count} failed: {result.error or 'unknown error'}",
                    code=result.error_code or ChunkTranslationError.default_code,
                    retryable=result.retryable,
                    context={"chunk_index": chunk.id, "chunk_count": count},
                    result=result,
                )
            processed = apply_post_processors(
                result.text,
                PostProcessContext(
                    target_lang=target_lang,
                    original_text=chunk.text,
                    skip_link_conversion=True,
                    extra_processors=list(options.extra_processors),
                ),
            )
            return processed, result.meta

        workers = min(self.chunk_concurrency, count)
        if workers <= 1:
            return [translate_one(chunk) for chunk in chunks]

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="translation-chunk") as pool:
            futures = [pool.submit(translate_one, chunk) for chunk in chunks]
            try:
                # Results are collected in chunk order, whatever order they finish in.
                return [future.result() for future in futures]
            except Exception:
                for future in futures:
                    future.cancel()
                raise

    def _finish(
        self,
        original: str,
        result: TranslationResult,
        target_lang: str,
        options: TranslateOptions,
        *,
        validate: bool = True,
        placeholder_mapping: Mapping[str, str] | None = None,
    ) -> TranslationResult:
        if not result.success:
            return result
        text = apply_post_processors(
            result.text,
            PostProcessContext(
                target_lang=target_lang,
                original_text=original,
                placeholder_mapping=placeholder_mapping,
                link_conversion=options.link_conversion,
                extra_processors=list(options.extra_processors),
            ),
        )
        result = replace(result, text=text)
        if validate:
            result = self._validate(original, result, target_lang, options)
        return result

    def _validate(
        self,
        original: str,
        result: TranslationResult,
        target_lang: str,
        options: TranslateOptions,
    ) -> TranslationResult:
        outcome = run_validation_pipeline(original, result.text, target_lang, self.thresholds)
        if self.reporter is not None and outcome.records:
            self.reporter.report_many(
                outcome.records,
                target_lang=target_lang,
                resource_type=options.resource_type,
                resource_id=options.resource_id,
                shop_id=options.shop_id,
            )
        if outcome.passed:
            return result
        logger.warning(
            "Translation to %s did not pass validation: completeness=%s quality=%s",
            target_lang,
            outcome.completeness.code or outcome.completeness.reason,
            outcome.quality.termination_code or ",".join(outcome.quality.issues),
        )
        return result.with_meta(validation=outcome.summary())

    def _content_failure(
        self, text: str, target_lang: str, message: str, meta: Dict[str, Any]
    ) -> TranslationResult:
        return TranslationResult.failure(
            text,
            message,
            language=target_lang,
            error_code="CONTENT_ERROR",
            retryable=False,
            meta=dict(meta),
        )

    @staticmethod
    def _request_context(options: TranslateOptions) -> Dict[str, Any]:
        context: Dict[str, Any] = dict(options.context)
        if options.resource_type:
            context.setdefault("resource_type", options.resource_type)
        if options.field_name:
            context.setdefault("field_name", options.field_name)
        context.setdefault("retry_count", options.retry_count)
        return context
