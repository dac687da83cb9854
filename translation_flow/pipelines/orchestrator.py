"""
Translation Orchestrator - the top-level decision flow for one text.

Order: blank short-circuit, brand-word skip, should-translate hook, strategy
selection, scheduled strategy run (long-html degrades to the default runner
on chunk failure), placeholder-leak handling, identical-result annotation,
validate hook.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import replace
import logging
import threading
from typing import Any, Dict, Mapping

from translation_flow.collaborators import HooksManager
from translation_flow.core.chunker import is_likely_html
from translation_flow.core.protector import contains_placeholder
from translation_flow.models import TranslateOptions, TranslationResult
from translation_flow.pipelines.strategies import (
    StrategyKind,
    StrategyRunner,
    StrategySelection,
    is_likely_config_key,
    select_strategy,
)
from translation_flow.utils.rules import check_brand_words, classify_identical_result, is_placeholder_only


logger = logging.getLogger("translation_flow.orchestrator")


class PlaceholderFallbackStats:
    """Per-language count of outputs that were nothing but a placeholder."""

    def __init__(self) -> None:
        self._counts: Counter = Counter()
        self._lock = threading.Lock()

    def increment(self, target_lang: str) -> int:
        with self._lock:
            self._counts[target_lang] += 1
            return self._counts[target_lang]

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)


class TranslationOrchestrator:
    def __init__(
        self,
        runner: StrategyRunner,
        *,
        hooks: HooksManager | None = None,
        placeholder_stats: PlaceholderFallbackStats | None = None,
    ) -> None:
        self.runner = runner
        self.hooks = hooks
        self.placeholder_stats = placeholder_stats or PlaceholderFallbackStats()

    def translate(
        self,
        text: Any,
        target_lang: str,
        options: TranslateOptions | Mapping[str, Any] | None = None,
    ) -> TranslationResult:
        opts = options if isinstance(options, TranslateOptions) else TranslateOptions.from_mapping(options)
        source = text if isinstance(text, str) else ""

        if not source.strip():
            return TranslationResult.original(source, target_lang)

        decision = check_brand_words(source, opts.field_name)
        if decision.should_skip:
            logger.info("Brand-word protection skipped %r (%s)", source[:50], decision.reason)
            return TranslationResult(
                success=True,
                text=source,
                is_original=True,
                language=target_lang,
                skipped=True,
                skip_reason=decision.reason,
            )

        hook_context = self._hook_context(source, target_lang, opts)
        if self.hooks is not None and not self.hooks.should_translate(hook_context):
            logger.debug("Translation skipped by hooks for resource %s", opts.resource_id)
            return TranslationResult.original(source, target_lang, skipped_by_hooks=True)

        selection = select_strategy(
            source,
            forced=opts.strategy,
            long_text_threshold=self.runner.long_text_threshold,
            is_html=is_likely_html(source),
        )
        logger.info(
            "Strategy %s selected (%s), length=%d, resource_type=%s",
            selection.kind.value,
            selection.reason,
            len(source),
            opts.resource_type,
        )

        def task() -> TranslationResult:
            return self._run_selected(selection, source, target_lang, opts)

        result = self.hooks.schedule(task, hook_context) if self.hooks is not None else task()

        if result.success:
            result = self._handle_placeholder_leak(source, result, target_lang, opts)
        if result.success and not result.skipped:
            result = self._annotate_identical(source, result)
        if self.hooks is not None and result.success:
            verdict = self.hooks.validate(result, hook_context)
            if not verdict.get("success", True):
                logger.warning("Validate hook rejected translation: %s", verdict.get("errors"))
                result = result.with_meta(hook_validation=dict(verdict))

        return result.with_meta(
            selected_strategy=selection.kind.value,
            selection_reason=selection.reason,
        )

    def _run_selected(
        self,
        selection: StrategySelection,
        text: str,
        target_lang: str,
        opts: TranslateOptions,
    ) -> TranslationResult:
        if selection.kind is not StrategyKind.LONG_HTML:
            return self.runner.run(selection.kind, text, target_lang, opts)
        try:
            return self.runner.run(StrategyKind.LONG_HTML, text, target_lang, opts)
        except Exception as exc:
            logger.warning("long-html strategy failed (%s), falling back to default on the whole text", exc)
            result = self.runner.run_default(text, target_lang, opts, allow_long_text=False)
            return result.with_meta(long_html_error=str(exc))

    def _handle_placeholder_leak(
        self,
        original: str,
        result: TranslationResult,
        target_lang: str,
        opts: TranslateOptions,
    ) -> TranslationResult:
        if contains_placeholder(original) or not is_placeholder_only(result.text):
            return result

        count = self.placeholder_stats.increment(target_lang)
        logger.warning(
            "Model returned only a placeholder for %r (%s, %d so far)",
            original[:50],
            target_lang,
            count,
        )
        if is_likely_config_key(original):
            fallback = self.runner.run(StrategyKind.CONFIG_KEY, original, target_lang, opts)
            if fallback.success:
                return fallback
            logger.warning("Config key fallback failed for %r: %s", original, fallback.error)
        return TranslationResult.original(original, target_lang, fallback="placeholder_error")

    @staticmethod
    def _annotate_identical(original: str, result: TranslationResult) -> TranslationResult:
        if result.is_original:
            return result
        if result.text.strip().casefold() != original.strip().casefold():
            return result
        reason = classify_identical_result(original)
        logger.info("Translation identical to source (%s): %r", reason, original[:50])
        return replace(result, skipped=True, skip_reason=reason, is_original=True)

    @staticmethod
    def _hook_context(text: str, target_lang: str, opts: TranslateOptions) -> Dict[str, Any]:
        return {
            "text": text,
            "target_lang": target_lang,
            "resource_type": opts.resource_type,
            "field_name": opts.field_name,
            "shop_id": opts.shop_id,
            "resource_id": opts.resource_id,
            "priority": opts.priority,
            "metadata": {
                "retry_count": opts.retry_count,
                "allow_simple_prompt": opts.allow_simple_prompt,
                **opts.metadata,
            },
        }

    def status(self) -> Dict[str, Any]:
        return {
            "placeholder_fallbacks": self.placeholder_stats.snapshot(),
            "hooks": self.hooks.status() if self.hooks is not None else {"enabled": False},
        }
