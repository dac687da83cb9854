"""
Translation Service - wires the shared resources together and exposes the
public ``translate`` entry point.

Cache, deduplicator, rate limiter and metrics are built once here and
injected downward; nothing below reaches for module-level singletons.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional

import requests

from translation_flow.client.api_client import ClientOptions, TranslationAPIClient, reduced_context_step
from translation_flow.collaborators import (
    BillingCoordinator,
    BillingGateway,
    BillingTicket,
    ErrorCollector,
    ErrorReporter,
    HooksManager,
    InMemoryErrorCollector,
    TranslationHooks,
)
from translation_flow.config import TranslationSettings
from translation_flow.core.cache import CacheSweeper, RequestDeduplicator, TranslationCache
from translation_flow.core.quality_checker import ValidationThresholds
from translation_flow.errors import TranslationError, error_class_for_code
from translation_flow.models import TranslateOptions, TranslationResult
from translation_flow.pipelines.orchestrator import TranslationOrchestrator
from translation_flow.pipelines.strategies import StrategyRunner
from translation_flow.providers.base import BaseProvider
from translation_flow.providers.openai_compat import OpenAICompatProvider
from translation_flow.providers.rate_limiter import RateLimiter
from translation_flow.utils.metrics import TranslationMetrics


logger = logging.getLogger("translation_flow.service")


def client_options_from_settings(settings: TranslationSettings) -> ClientOptions:
    return ClientOptions(
        max_retries=settings.max_retries,
        retry_delay=settings.retry_delay,
        max_retry_delay=settings.max_retry_delay,
        use_exponential_backoff=settings.use_exponential_backoff,
        cache_ttl=settings.cache_ttl,
        model=settings.model,
        fallback_model=settings.fallback_model,
        fallback_enabled=settings.fallback_enabled,
        temperature=settings.temperature,
        top_p=settings.top_p,
        timeout=settings.timeout_seconds,
        model_token_limit=settings.model_token_limit,
        token_safety_margin=settings.token_safety_margin,
        min_response_tokens=settings.min_response_tokens,
        emit_api_stats=settings.api_stats_events,
    )


class TranslationService:
    def __init__(
        self,
        settings: TranslationSettings | None = None,
        *,
        provider: BaseProvider | None = None,
        session: requests.Session | None = None,
        hooks: TranslationHooks | None = None,
        error_collector: ErrorCollector | None = None,
        billing_gateway: BillingGateway | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        start_sweeper: bool = True,
    ) -> None:
        self.settings = settings or TranslationSettings.from_env()
        s = self.settings
        if not s.has_credentials and provider is None:
            logger.warning("GPT_API_URL / GPT_API_KEY not set; every translation will fail")

        self.cache = TranslationCache(s.cache_ttl, s.cache_max_entries, clock=clock)
        self.sweeper = CacheSweeper(self.cache, s.cache_sweep_interval)
        if start_sweeper:
            self.sweeper.start()
        self.deduplicator = RequestDeduplicator(s.dedupe_max_in_flight, clock=clock)
        self.rate_limiter = RateLimiter(
            s.min_request_interval,
            s.max_requests_per_minute,
            clock=clock,
            sleep=sleep,
        )
        self.metrics = TranslationMetrics()
        self.provider = provider or OpenAICompatProvider(
            s.api_url,
            s.api_key,
            s.model,
            timeout=s.timeout_seconds,
            session=session,
        )
        self.client = TranslationAPIClient(
            self.provider,
            client_options_from_settings(s),
            cache=self.cache,
            deduplicator=self.deduplicator,
            rate_limiter=self.rate_limiter,
            metrics=self.metrics,
            default_fallbacks=[reduced_context_step()],
            sleep=sleep,
            clock=clock,
        )

        self.error_collector = error_collector or InMemoryErrorCollector()
        self.reporter = ErrorReporter(self.error_collector)
        self.hooks = HooksManager(hooks, timeout=s.hooks_timeout)
        self.billing = BillingCoordinator(
            billing_gateway,
            enabled=s.billing_enabled,
            bypass=s.billing_bypass,
        )
        self.runner = StrategyRunner(
            self.client,
            long_text_threshold=s.long_text_threshold,
            max_chunk_size=s.max_chunk_size,
            chunk_concurrency=s.chunk_concurrency,
            thresholds=ValidationThresholds(s.html_balance_ratio, s.html_balance_min),
            reporter=self.reporter,
            clock=clock,
        )
        self.orchestrator = TranslationOrchestrator(self.runner, hooks=self.hooks)

    def translate(
        self,
        text: Any,
        target_lang: str,
        options: TranslateOptions | Mapping[str, Any] | None = None,
        *,
        raise_on_failure: bool = True,
    ) -> TranslationResult:
        """Translate ``text`` into ``target_lang``.

        Billing is reserved before any network call and released unless the
        translation succeeded. When every strategy fails a typed
        ``TranslationError`` is raised with the failed result attached as
        ``.result`` (or the result is returned when ``raise_on_failure`` is
        false).
        """
        opts = options if isinstance(options, TranslateOptions) else TranslateOptions.from_mapping(options)
        source = text if isinstance(text, str) else ""

        ticket = BillingTicket(enforced=False)
        if source.strip():
            ticket = self.billing.reserve(source, opts.shop_id, skip=opts.skip_billing)
        try:
            result = self.orchestrator.translate(source, target_lang, opts)
            if result.success and not result.is_original:
                self.billing.confirm(ticket, source)
        finally:
            self.billing.release(ticket)

        if result.success:
            return result

        logger.error(
            "Translation to %s failed [%s]: %s",
            target_lang,
            result.error_code or "TRANSLATION_FAILED",
            result.error,
        )
        if not raise_on_failure:
            return result
        raise self._error_for(result, target_lang, opts)

    @staticmethod
    def _error_for(result: TranslationResult, target_lang: str, opts: TranslateOptions) -> TranslationError:
        error_cls = error_class_for_code(result.error_code)
        return error_cls(
            f"Translation failed: {result.error or 'unknown error'}",
            code=result.error_code or None,
            retryable=result.retryable,
            context={
                "target_lang": target_lang,
                "retry_count": opts.retry_count,
                "resource_type": opts.resource_type,
                "is_original": result.is_original,
                "strategy": result.meta.get("strategy"),
            },
            result=result,
        )

    def status(self) -> Dict[str, Any]:
        collected: Optional[int] = None
        if isinstance(self.error_collector, InMemoryErrorCollector):
            collected = len(self.error_collector.records())
        return {
            "configured": self.settings.has_credentials,
            "model": self.settings.model,
            "cache": self.cache.stats(),
            "dedupe": {"in_flight": self.deduplicator.size()},
            "rate_limiter": {
                "enabled": self.rate_limiter.enabled,
                "tracked_slots": self.rate_limiter.pending(),
            },
            **self.orchestrator.status(),
            "errors": {"collected": collected, "dropped": self.reporter.dropped},
            "metrics": self.metrics.snapshot(),
        }

    def close(self) -> None:
        self.sweeper.stop()
        self.reporter.close()
        self.hooks.close()

    def __enter__(self) -> "TranslationService":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
