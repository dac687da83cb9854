"""Error taxonomy for the translation engine."""

from __future__ import annotations

import re
from typing import Any, Dict, Optional, Type

from translation_flow.providers.base import ProviderError


_RATE_LIMIT_RE = re.compile(r"(?:\b429\b|rate\s*limit|rate_limited)", re.I)
_SERVER_ERROR_RE = re.compile(r"\b5\d{2}\b")
_TIMEOUT_RE = re.compile(r"(?:timeout|timed\s*out|network|connection)", re.I)


def classify_error(message: str | None) -> str:
    if not message:
        return "unknown"
    text = str(message)
    if _RATE_LIMIT_RE.search(text):
        return "rate_limited"
    if _SERVER_ERROR_RE.search(text) or "5xx" in text:
        return "server_error"
    if _TIMEOUT_RE.search(text):
        return "network"
    return "other"


class TranslationError(RuntimeError):
    """Typed failure carrying a machine-readable code and the failed result."""

    default_code = "TRANSLATION_FAILED"
    default_category = "TRANSLATION"
    default_retryable = True

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        category: str | None = None,
        retryable: bool | None = None,
        context: Dict[str, Any] | None = None,
        result: Any = None,
    ) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.category = category or self.default_category
        self.retryable = self.default_retryable if retryable is None else bool(retryable)
        self.context = dict(context or {})
        self.result = result

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": str(self),
            "code": self.code,
            "category": self.category,
            "retryable": self.retryable,
            "context": self.context,
        }


class ConfigurationError(TranslationError):
    default_code = "CONFIGURATION_ERROR"
    default_category = "CONFIGURATION"
    default_retryable = False


class NetworkError(TranslationError):
    default_code = "NETWORK_ERROR"
    default_category = "NETWORK"
    default_retryable = True


class RateLimitError(TranslationError):
    default_code = "RATE_LIMITED"
    default_category = "NETWORK"
    default_retryable = True


class AuthError(TranslationError):
    default_code = "AUTH_ERROR"
    default_category = "API"
    default_retryable = False


class ServerError(TranslationError):
    default_code = "SERVER_ERROR"
    default_category = "API"
    default_retryable = True


class ContentError(TranslationError):
    default_code = "CONTENT_ERROR"
    default_category = "CONTENT"
    default_retryable = False


class InsufficientCreditsError(TranslationError):
    default_code = "INSUFFICIENT_CREDITS"
    default_category = "BILLING"
    default_retryable = False

    def __init__(
        self,
        message: str = "Insufficient credits",
        *,
        required: float | None = None,
        available: float | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.required = required
        self.available = available


class CancelledError(TranslationError):
    default_code = "CANCELLED"
    default_category = "CANCELLED"
    default_retryable = False


_ERRORS_BY_CODE: Dict[str, Type[TranslationError]] = {
    cls.default_code: cls
    for cls in (
        ConfigurationError,
        NetworkError,
        RateLimitError,
        AuthError,
        ServerError,
        ContentError,
        InsufficientCreditsError,
        CancelledError,
    )
}
_ERRORS_BY_CODE["TIMEOUT"] = NetworkError


def error_class_for_code(code: str | None) -> Type[TranslationError]:
    return _ERRORS_BY_CODE.get(str(code or ""), TranslationError)


def error_from_provider(exc: ProviderError) -> TranslationError:
    """Map a provider failure onto the taxonomy, deciding retryability."""
    message = str(exc)
    context: Dict[str, Any] = {
        "error_type": exc.error_type,
        "status_code": exc.status_code,
        "request_id": exc.request_id,
    }
    error_type = exc.error_type or ""
    status: Optional[int] = exc.status_code

    if error_type == "invalid_config":
        return ConfigurationError(message, context=context)
    if error_type == "cancelled":
        return CancelledError(message, context=context)
    if error_type in {"timeout", "network_error"}:
        code = "TIMEOUT" if error_type == "timeout" else None
        return NetworkError(message, code=code, context=context)
    if error_type == "http_error" and status is not None:
        if status == 429:
            return RateLimitError(message, context=context)
        if status in (401, 403):
            return AuthError(message, context=context)
        if status >= 500:
            return ServerError(message, context=context)
        return TranslationError(
            message,
            code="REQUEST_REJECTED",
            category="API",
            retryable=False,
            context=context,
        )
    if error_type in {"invalid_json", "invalid_response"}:
        return TranslationError(
            message,
            code="INVALID_RESPONSE",
            category="API",
            retryable=False,
            context=context,
        )

    kind = classify_error(message)
    if kind == "rate_limited":
        return RateLimitError(message, context=context)
    if kind == "server_error":
        return ServerError(message, context=context)
    if kind == "network":
        return NetworkError(message, context=context)
    return TranslationError(message, retryable=False, context=context)
