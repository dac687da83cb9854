"""
Translation API Client - cache, in-flight sharing, retries and a fallback chain
around one provider.

The client never raises for translation failures: every outcome is a
``TranslationResult``. Callers decide whether a failed result is fatal.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
import functools
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from translation_flow.core.cache import RequestDeduplicator, TranslationCache
from translation_flow.errors import CancelledError, TranslationError, error_from_provider
from translation_flow.models import TranslationRequest, TranslationResult
from translation_flow.prompts.builder import build_messages
from translation_flow.providers.base import BaseProvider, ProviderError
from translation_flow.providers.rate_limiter import RateLimiter
from translation_flow.providers.token_budget import (
    calculate_dynamic_token_limit,
    clamp_max_tokens,
    estimate_token_count,
)
from translation_flow.utils.api_stats_protocol import (
    build_request_event,
    emit_api_stats_event,
    generate_request_id,
)
from translation_flow.utils.metrics import TranslationMetrics


logger = logging.getLogger("translation_flow.api_client")

REDUCED_CONTEXT_MIN_CHARS = 50
REDUCED_CONTEXT_RATIO = 0.7


@dataclass
class ClientOptions:
    max_retries: int = 2
    retry_delay: float = 1.0
    max_retry_delay: float = 10.0
    use_exponential_backoff: bool = True
    cache_ttl: float = 3600
    model: str = ""
    fallback_model: str = ""
    fallback_enabled: bool = False
    temperature: float = 0.2
    top_p: float = 0.9
    timeout: float = 45
    max_tokens: Optional[int] = None
    model_token_limit: int = 0
    token_safety_margin: int = 512
    min_response_tokens: int = 256
    emit_api_stats: bool = False

    def merged(self, override: Mapping[str, Any] | None) -> "ClientOptions":
        if not override:
            return self
        known = {f.name for f in fields(self)}
        values = {key: value for key, value in override.items() if key in known}
        unknown = set(override) - known
        if unknown:
            logger.debug("Ignoring unknown client options: %s", sorted(unknown))
        return replace(self, **values) if values else self

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        if not self.use_exponential_backoff:
            return max(0.0, float(self.retry_delay))
        delay = float(self.retry_delay) * (2 ** max(0, attempt - 1))
        return max(0.0, min(delay, float(self.max_retry_delay)))


@dataclass
class StepContext:
    """What a fallback step sees when it builds its request."""
    text: str
    target_lang: str
    system_prompt: str
    context: Dict[str, Any]
    last_result: Optional[TranslationResult] = None
    attempt_count: int = 0

    def request(self, **overrides: Any) -> TranslationRequest:
        values: Dict[str, Any] = {
            "text": self.text,
            "target_lang": self.target_lang,
            "system_prompt": self.system_prompt,
            "context": dict(self.context),
        }
        values.update(overrides)
        return TranslationRequest(**values)


@dataclass
class FallbackStep:
    """One link of the fallback chain.

    Exactly one of ``handler`` (returns a finished result), ``prepare``
    (returns a request) or ``request`` (a static request) drives the step.
    A step that yields ``None`` is skipped.
    """
    name: str
    handler: Optional[Callable[[StepContext], Any]] = None
    prepare: Optional[Callable[[StepContext], Optional[TranslationRequest]]] = None
    request: Optional[TranslationRequest] = None
    options_override: Dict[str, Any] = field(default_factory=dict)
    cache_key_extras: Dict[str, Any] = field(default_factory=dict)
    skip_cache: bool = False
    skip_dedupe: bool = False
    cache_ttl: Optional[float] = None
    index: int = -1
    is_fallback: bool = True


@dataclass
class _StepOutcome:
    result: Optional[TranslationResult] = None
    attempt_count: int = 0
    from_cache: bool = False
    skipped: bool = False


_STATIC_REQUEST_KEYS = {f.name for f in fields(TranslationRequest)}


def build_cache_key(
    text: str,
    target_lang: str,
    system_prompt: str | None = None,
    extras: Mapping[str, Any] | None = None,
) -> str:
    """Deterministic key; extras are folded in sorted by name."""
    base = f"{target_lang}::{system_prompt or ''}::{text}"
    if not extras:
        return base
    parts = []
    for key in sorted(extras):
        value = extras[key]
        if not isinstance(value, str):
            value = json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
        parts.append(f"{key}={value}")
    return f"{base}::{'|'.join(parts)}"


def _static_prepare(overrides: Dict[str, Any]) -> Callable[[StepContext], TranslationRequest]:
    def prepare(ctx: StepContext) -> TranslationRequest:
        return ctx.request(**overrides)

    return prepare


def normalize_fallbacks(
    entries: Iterable[Any] | None,
    *,
    start_index: int = 0,
    name_prefix: str = "caller-fallback",
) -> List[FallbackStep]:
    """Accept steps, bare callables or mappings; drop anything unusable."""
    steps: List[FallbackStep] = []
    for offset, entry in enumerate(entries or ()):
        index = start_index + offset
        default_name = f"{name_prefix}-{offset + 1}"
        if entry is None:
            continue
        if isinstance(entry, FallbackStep):
            steps.append(replace(entry, name=entry.name or default_name, index=index))
            continue
        if callable(entry):
            name = getattr(entry, "__name__", "") or default_name
            if name == "<lambda>":
                name = default_name
            steps.append(FallbackStep(name=name, handler=entry, index=index))
            continue
        if not isinstance(entry, Mapping):
            logger.warning("Ignoring unsupported fallback definition: %r", entry)
            continue

        name = str(entry.get("name") or default_name)
        common = {
            "options_override": dict(entry.get("options_override") or {}),
            "cache_key_extras": dict(entry.get("cache_key_extras") or {}),
            "skip_cache": bool(entry.get("skip_cache", False)),
            "skip_dedupe": bool(entry.get("skip_dedupe", False)),
            "cache_ttl": entry.get("cache_ttl"),
        }
        handler = entry.get("handler")
        prepare = entry.get("prepare") or entry.get("build_request")
        if callable(handler):
            steps.append(FallbackStep(name=name, handler=handler, index=index, **common))
        elif callable(prepare):
            steps.append(FallbackStep(name=name, prepare=prepare, index=index, **common))
        else:
            overrides = {
                key: value
                for key, value in entry.items()
                if key in _STATIC_REQUEST_KEYS and key not in {"options_override", "cache_key_extras"}
            }
            overrides.setdefault("strategy", name)
            steps.append(
                FallbackStep(name=name, prepare=_static_prepare(overrides), index=index, **common)
            )
    return steps


def reduced_context_step() -> FallbackStep:
    """Retry once with the text cut to 70% (never below 50 chars)."""

    def prepare(ctx: StepContext) -> Optional[TranslationRequest]:
        if not ctx.text:
            return None
        keep = max(REDUCED_CONTEXT_MIN_CHARS, int(len(ctx.text) * REDUCED_CONTEXT_RATIO))
        return ctx.request(
            text=ctx.text[:keep],
            strategy="reduced-context",
            extras={"mode": "reduced"},
        )

    return FallbackStep(name="reduce-context", prepare=prepare, options_override={"max_retries": 1})


def _cancelled(exc: Exception, cancel_event: threading.Event | None) -> CancelledError | None:
    # a call that fails after the caller cancelled is reported as cancelled, never retried
    if cancel_event is not None and cancel_event.is_set():
        return CancelledError(f"Translation cancelled: {exc}")
    return None


def _should_retry(result: TranslationResult, cancel_event: threading.Event | None) -> bool:
    if result.success:
        return False
    if cancel_event is not None and cancel_event.is_set():
        return False
    return result.retryable is True


class TranslationAPIClient:
    def __init__(
        self,
        provider: BaseProvider,
        options: ClientOptions | None = None,
        *,
        cache: TranslationCache | None = None,
        deduplicator: RequestDeduplicator | None = None,
        rate_limiter: RateLimiter | None = None,
        metrics: TranslationMetrics | None = None,
        default_fallbacks: Sequence[Any] = (),
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.options = options or ClientOptions()
        self.cache = cache
        self.deduplicator = deduplicator
        self.rate_limiter = rate_limiter
        self.metrics = metrics
        self.default_fallbacks = list(default_fallbacks)
        self._sleep = sleep
        self._clock = clock

    def execute(
        self,
        request: TranslationRequest,
        fallbacks: Sequence[Any] = (),
        *,
        use_default_fallbacks: bool = True,
        cancel_event: threading.Event | None = None,
    ) -> TranslationResult:
        """Run the primary request, then each fallback until one succeeds.

        Order: primary, the fallback model (when configured), the client's
        default fallbacks, then the caller's. ``meta`` records the step that
        produced the result, total retries, cache use and duration.
        """
        start = self._clock()
        text = request.text or ""
        target_lang = request.target_lang or ""
        origin_strategy = request.strategy or "primary"
        base = StepContext(
            text=text,
            target_lang=target_lang,
            system_prompt=request.system_prompt or "",
            context=dict(request.context),
        )

        defaults: List[Any] = []
        if use_default_fallbacks:
            defaults.extend(self._model_fallback(request))
            defaults.extend(self.default_fallbacks)
        steps = [FallbackStep(name=origin_strategy, request=request, is_fallback=False)]
        steps.extend(normalize_fallbacks(defaults, name_prefix="default-fallback"))
        steps.extend(normalize_fallbacks(fallbacks, start_index=len(defaults)))

        final: Optional[TranslationResult] = None
        last: Optional[TranslationResult] = None
        last_name = origin_strategy
        used: Optional[FallbackStep] = None
        total_retries = 0
        from_cache = False

        for position, step in enumerate(steps):
            ctx = replace(base, last_result=last, attempt_count=total_retries)
            if step.handler is not None:
                outcome = self._run_handler(step, ctx)
            else:
                outcome = self._run_request(step, ctx, cancel_event)
            if outcome.skipped or outcome.result is None:
                logger.debug("Fallback step %s skipped", step.name)
                continue

            last = outcome.result
            last_name = step.name
            total_retries += outcome.attempt_count
            if outcome.from_cache or outcome.result.success:
                final = outcome.result
                from_cache = outcome.from_cache
                if step.is_fallback:
                    used = step
                break
            if outcome.result.error_code == "CANCELLED":
                break
            if position < len(steps) - 1:
                logger.warning(
                    "Translation step %s failed (%s), trying next fallback",
                    step.name,
                    outcome.result.error_code or outcome.result.error,
                )

        if final is None:
            if last is not None:
                # a fallback may have rewritten the text; failures hand back the source
                final = replace(last, text=text, is_original=True)
            else:
                final = TranslationResult.failure(
                    text, "Unknown translation error", language=target_lang
                )

        duration = int((self._clock() - start) * 1000)
        meta: Dict[str, Any] = {
            **final.meta,
            "strategy": used.name if used else last_name,
            "origin_strategy": origin_strategy,
            "cached": from_cache,
            "retries": total_retries,
            "duration": duration,
        }
        if used is not None:
            meta["fallback"] = {
                "name": used.name,
                "index": used.index,
                "chain": f"{origin_strategy}->{used.name}",
            }
        result = replace(final, meta=meta)

        if self.metrics is not None:
            self.metrics.record_call(
                success=result.success,
                strategy=meta["strategy"],
                target_lang=target_lang,
                duration=duration,
                cached=from_cache,
                retries=total_retries,
            )
        return result

    def _model_fallback(self, request: TranslationRequest) -> List[FallbackStep]:
        opts = self.options
        fallback_model = (opts.fallback_model or "").strip()
        if not opts.fallback_enabled or not fallback_model:
            return []
        current = request.model or request.options_override.get("model") or opts.model
        if fallback_model == current:
            return []
        return [
            FallbackStep(
                name="model-fallback",
                prepare=_static_prepare({"model": fallback_model, "strategy": "model-fallback"}),
                options_override={"max_retries": 1},
            )
        ]

    def _run_handler(self, step: FallbackStep, ctx: StepContext) -> _StepOutcome:
        try:
            raw = step.handler(ctx)  # type: ignore[misc]
        except Exception as exc:
            logger.error("Fallback handler %s failed: %s", step.name, exc)
            return _StepOutcome(
                result=TranslationResult.failure(
                    ctx.text, str(exc), language=ctx.target_lang, retryable=False
                )
            )
        if raw is None:
            return _StepOutcome(skipped=True)
        if isinstance(raw, Mapping):
            raw = TranslationResult.from_mapping(raw, text=ctx.text, language=ctx.target_lang)
        if not isinstance(raw, TranslationResult):
            logger.warning("Fallback handler %s returned %r, skipping", step.name, type(raw))
            return _StepOutcome(skipped=True)
        return _StepOutcome(result=raw, attempt_count=int(raw.meta.get("retries") or 0))

    def _run_request(
        self,
        step: FallbackStep,
        ctx: StepContext,
        cancel_event: threading.Event | None,
    ) -> _StepOutcome:
        req = step.request
        if req is None and step.prepare is not None:
            try:
                req = step.prepare(ctx)
            except Exception as exc:
                logger.error("Fallback %s could not build its request: %s", step.name, exc)
                return _StepOutcome(
                    result=TranslationResult.failure(
                        ctx.text,
                        f"Fallback {step.name} failed to build request: {exc}",
                        language=ctx.target_lang,
                        retryable=False,
                    )
                )
        if req is None:
            return _StepOutcome(skipped=True)

        text = req.text if req.text is not None else ctx.text
        target_lang = req.target_lang or ctx.target_lang
        system_prompt = req.system_prompt if req.system_prompt is not None else ctx.system_prompt
        strategy = req.strategy or step.name or "fallback"
        context = {**ctx.context, **dict(req.context)}

        key_extras: Dict[str, Any] = {
            "strategy": strategy,
            **dict(req.extras),
            **step.cache_key_extras,
            **dict(req.cache_key_extras),
        }
        cache_key = None
        if self.cache is not None and not (req.skip_cache or step.skip_cache):
            cache_key = build_cache_key(text, target_lang, system_prompt, key_extras)
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Translation cache hit for strategy %s", strategy)
                return _StepOutcome(result=cached, from_cache=True)

        dedupe_key = None
        if self.deduplicator is not None and not (req.skip_dedupe or step.skip_dedupe):
            dedupe_key = build_cache_key(text, target_lang, system_prompt, {**key_extras, "dedupe": True})

        opts = self.options.merged(step.options_override).merged(req.options_override)
        model = req.model or opts.model
        max_retries = max(0, int(opts.max_retries))

        retries = 0
        while True:
            call = functools.partial(
                self._fetch, text, target_lang, system_prompt, opts, model, strategy, retries, cancel_event, context
            )
            if dedupe_key:
                result = self.deduplicator.run(dedupe_key, call)  # type: ignore[union-attr]
            else:
                result = call()
            if not _should_retry(result, cancel_event) or retries >= max_retries:
                break
            retries += 1
            delay = opts.backoff_delay(retries)
            logger.warning(
                "Translation attempt %d/%d failed (%s), retrying in %.2fs",
                retries,
                max_retries + 1,
                result.error_code,
                delay,
            )
            if delay > 0:
                self._sleep(delay)

        if cache_key and result.success:
            ttl = req.cache_ttl if req.cache_ttl is not None else step.cache_ttl
            self.cache.set(cache_key, result, opts.cache_ttl if ttl is None else ttl)  # type: ignore[union-attr]
        return _StepOutcome(result=result, attempt_count=retries)

    def _fetch(
        self,
        text: str,
        target_lang: str,
        system_prompt: str,
        opts: ClientOptions,
        model: str,
        strategy: str,
        attempt: int,
        cancel_event: threading.Event | None,
        context: Dict[str, Any],
    ) -> TranslationResult:
        meta = {"model_used": model, "is_fallback_model": bool(model and model != self.options.model)}
        if cancel_event is not None and cancel_event.is_set():
            return TranslationResult.failure(
                text,
                "Translation request cancelled",
                language=target_lang,
                error_code="CANCELLED",
                retryable=False,
                meta=meta,
            )

        if self.rate_limiter is not None:
            waited = self.rate_limiter.acquire()
            if waited > 0:
                logger.debug("Rate limiter delayed request by %.3fs", waited)

        requested = opts.max_tokens or calculate_dynamic_token_limit(text, target_lang)
        estimated_input = estimate_token_count(system_prompt) + estimate_token_count(text, target_lang)
        max_tokens = clamp_max_tokens(
            requested,
            estimated_input,
            model_token_limit=opts.model_token_limit,
            safety_margin=opts.token_safety_margin,
            min_response_tokens=opts.min_response_tokens,
        )
        if max_tokens < requested:
            logger.debug("max_tokens clamped from %d to %d", requested, max_tokens)

        request_id = generate_request_id()
        if opts.emit_api_stats:
            emit_api_stats_event(
                build_request_event(
                    "request_start",
                    request_id=request_id,
                    strategy=strategy,
                    target_lang=target_lang,
                    attempt=attempt,
                    model=model,
                    max_tokens=max_tokens,
                    resource_type=context.get("resource_type"),
                )
            )

        try:
            provider_request = self.provider.build_request(
                build_messages(system_prompt, text),
                {
                    "model": model,
                    "temperature": opts.temperature,
                    "top_p": opts.top_p,
                    "max_tokens": max_tokens,
                    "timeout": opts.timeout,
                    "request_id": request_id,
                    "cancel_event": cancel_event,
                },
            )
            response = self.provider.send(provider_request)
        except ProviderError as exc:
            error = _cancelled(exc, cancel_event) or error_from_provider(exc)
            return self._call_failed(
                exc, error, text, target_lang, opts, strategy, attempt, request_id, max_tokens, meta
            )
        except Exception as exc:
            error = _cancelled(exc, cancel_event) or TranslationError(
                str(exc) or type(exc).__name__, retryable=False
            )
            return self._call_failed(
                exc, error, text, target_lang, opts, strategy, attempt, request_id, max_tokens, meta
            )

        if opts.emit_api_stats:
            usage = response.raw.get("usage") if isinstance(response.raw, dict) else None
            emit_api_stats_event(
                build_request_event(
                    "request_end",
                    request_id=request_id,
                    strategy=strategy,
                    target_lang=target_lang,
                    attempt=attempt,
                    status_code=response.status_code,
                    duration_ms=response.duration_ms,
                    usage=usage or None,
                )
            )
        return TranslationResult(
            success=True,
            text=response.text,
            is_original=False,
            language=target_lang,
            token_limit=max_tokens,
            meta={**meta, "request_id": request_id},
        )

    def _call_failed(
        self,
        exc: Exception,
        error: TranslationError,
        text: str,
        target_lang: str,
        opts: ClientOptions,
        strategy: str,
        attempt: int,
        request_id: str,
        max_tokens: int,
        meta: Dict[str, Any],
    ) -> TranslationResult:
        if isinstance(exc, ProviderError):
            logger.warning("Translation call failed [%s]: %s", error.code, exc)
        else:
            logger.exception("Unexpected error during translation call")
        if opts.emit_api_stats:
            emit_api_stats_event(
                build_request_event(
                    "request_error",
                    request_id=request_id,
                    strategy=strategy,
                    target_lang=target_lang,
                    attempt=attempt,
                    error_code=error.code,
                    status_code=getattr(exc, "status_code", None),
                    duration_ms=getattr(exc, "duration_ms", None),
                )
            )
        return TranslationResult.failure(
            text,
            str(exc) or type(exc).__name__,
            language=target_lang,
            error_code=error.code,
            retryable=error.retryable,
            token_limit=max_tokens,
            meta=meta,
        )
