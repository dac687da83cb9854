"""Chat-completion provider for OpenAI-compatible translation endpoints."""

from __future__ import annotations

from typing import Any, Dict, List
import json
import threading
import time
from urllib.parse import urlparse

import requests

from translation_flow.utils.api_stats_protocol import sanitize_headers

from .base import BaseProvider, ProviderError, ProviderRequest, ProviderResponse


DEFAULT_TIMEOUT_SECONDS = 45
MAX_ERROR_TEXT_CHARS = 4000


def _normalize_base_url(base_url: str) -> str:
    base_url = base_url.strip().rstrip("/")
    if not base_url:
        return base_url
    if base_url.endswith("/v1/chat/completions"):
        return base_url.rsplit("/chat/completions", 1)[0]

    path = (urlparse(base_url).path or "").lower()
    if not path or path == "/":
        return f"{base_url}/v1"
    return base_url


def _build_url(base_url: str) -> str:
    base_url = base_url.strip().rstrip("/")
    if not base_url:
        return ""
    if base_url.endswith("/chat/completions"):
        return base_url
    return f"{_normalize_base_url(base_url)}/chat/completions"


def _parse_timeout_seconds(value: Any) -> float | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = float(text)
    except (ValueError, TypeError):
        return None
    return parsed if parsed > 0 else None


def _parse_optional_float(value: Any) -> float | None:
    if value is None or str(value).strip() == "":
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _parse_optional_int(value: Any) -> int | None:
    if value is None or str(value).strip() == "":
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def _extract_text(data: Any) -> str:
    content = data["choices"][0]["message"]["content"]
    if not isinstance(content, str):
        raise TypeError("content is not a string")
    return content.strip()


class OpenAICompatProvider(BaseProvider):
    """Sends one translation request to ``{api_url}/chat/completions``."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        model: str,
        *,
        timeout: float | None = None,
        headers: Dict[str, str] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.api_url = str(api_url or "").strip()
        self.api_key = str(api_key or "").strip()
        self.model = str(model or "").strip()
        self.timeout = _parse_timeout_seconds(timeout) or DEFAULT_TIMEOUT_SECONDS
        self.headers = {str(k): str(v) for k, v in (headers or {}).items()}
        self._session = session or requests.Session()

    def build_request(
        self, messages: List[Dict[str, str]], settings: Dict[str, Any]
    ) -> ProviderRequest:
        model = str(settings.get("model") or self.model or "").strip()
        if not model:
            raise ProviderError(
                "Translation provider requires model",
                error_type="invalid_config",
            )

        extra_headers = settings.get("headers") or {}
        headers = dict(self.headers)
        if isinstance(extra_headers, dict):
            headers.update({str(k): str(v) for k, v in extra_headers.items()})

        return ProviderRequest(
            model=model,
            messages=messages,
            temperature=_parse_optional_float(settings.get("temperature")),
            top_p=_parse_optional_float(settings.get("top_p")),
            max_tokens=_parse_optional_int(settings.get("max_tokens")),
            headers=headers or None,
            timeout=_parse_timeout_seconds(settings.get("timeout")),
            request_id=str(settings.get("request_id") or "").strip() or None,
            meta={"cancel_event": settings.get("cancel_event")},
        )

    def send(self, request: ProviderRequest) -> ProviderResponse:
        if not self.api_url or not self.api_key:
            raise ProviderError(
                "Translation API url and key must be configured",
                error_type="invalid_config",
                request_id=request.request_id,
            )

        cancel_event = (request.meta or {}).get("cancel_event")
        if isinstance(cancel_event, threading.Event) and cancel_event.is_set():
            raise ProviderError(
                "Translation request cancelled",
                error_type="cancelled",
                request_id=request.request_id,
            )

        url = _build_url(self.api_url)
        headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        if request.headers:
            headers.update(request.headers)

        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": request.messages,
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.top_p is not None:
            payload["top_p"] = request.top_p
        if request.max_tokens is not None:
            payload["max_tokens"] = max(1, request.max_tokens)

        timeout_seconds = request.timeout or self.timeout
        safe_request_headers = sanitize_headers(headers)

        start = time.perf_counter()
        try:
            resp = self._session.post(
                url,
                headers=headers,
                data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
                timeout=timeout_seconds,
            )
        except requests.Timeout as exc:
            duration_ms = int((time.perf_counter() - start) * 1000)
            raise ProviderError(
                f"Translation request timeout after {timeout_seconds}s: {exc}",
                error_type="timeout",
                request_id=request.request_id,
                duration_ms=duration_ms,
                url=url,
                request_headers=safe_request_headers,
            ) from exc
        except requests.RequestException as exc:
            duration_ms = int((time.perf_counter() - start) * 1000)
            raise ProviderError(
                f"Translation request failed: {exc}",
                error_type="network_error",
                request_id=request.request_id,
                duration_ms=duration_ms,
                url=url,
                request_headers=safe_request_headers,
            ) from exc

        duration_ms = int((time.perf_counter() - start) * 1000)
        if isinstance(cancel_event, threading.Event) and cancel_event.is_set():
            raise ProviderError(
                "Translation request cancelled",
                error_type="cancelled",
                request_id=request.request_id,
                duration_ms=duration_ms,
                url=url,
            )

        try:
            response_headers = {
                str(k): str(v) for k, v in dict(getattr(resp, "headers", None) or {}).items()
            }
        except (TypeError, ValueError):
            response_headers = {}
        safe_response_headers = sanitize_headers(response_headers)

        if resp.status_code >= 400:
            body_preview = (resp.text or "").strip()[:MAX_ERROR_TEXT_CHARS]
            raise ProviderError(
                f"Translation API HTTP {resp.status_code}: {body_preview}",
                error_type="http_error",
                status_code=resp.status_code,
                request_id=request.request_id,
                duration_ms=duration_ms,
                url=url,
                response_text=body_preview,
                request_headers=safe_request_headers,
                response_headers=safe_response_headers,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            body_preview = (resp.text or "").strip()[:MAX_ERROR_TEXT_CHARS]
            raise ProviderError(
                "Translation API response is not JSON",
                error_type="invalid_json",
                status_code=resp.status_code,
                request_id=request.request_id,
                duration_ms=duration_ms,
                url=url,
                response_text=body_preview,
                request_headers=safe_request_headers,
                response_headers=safe_response_headers,
            ) from exc

        try:
            text = _extract_text(data)
        except (KeyError, IndexError, TypeError) as exc:
            body_preview = (resp.text or "").strip()[:MAX_ERROR_TEXT_CHARS]
            raise ProviderError(
                "Translation API response missing content",
                error_type="invalid_response",
                status_code=resp.status_code,
                request_id=request.request_id,
                duration_ms=duration_ms,
                url=url,
                response_text=body_preview,
                request_headers=safe_request_headers,
                response_headers=safe_response_headers,
            ) from exc

        usage = data.get("usage") if isinstance(data, dict) else None
        return ProviderResponse(
            text=text,
            raw={
                "usage": usage if isinstance(usage, dict) else {},
                "model": request.model,
                "duration_ms": duration_ms,
            },
            status_code=resp.status_code,
            duration_ms=duration_ms,
            url=url,
            request_headers=safe_request_headers,
            response_headers=safe_response_headers,
        )
