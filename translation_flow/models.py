"""Request and result types shared across the translation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class TranslationRequest:
    """One API-level request. Unset fields inherit from the step's base payload."""
    text: Optional[str] = None
    target_lang: Optional[str] = None
    system_prompt: Optional[str] = None
    strategy: Optional[str] = None
    context: Mapping[str, Any] = field(default_factory=dict)
    extras: Mapping[str, Any] = field(default_factory=dict)
    cache_key_extras: Mapping[str, Any] = field(default_factory=dict)
    options_override: Mapping[str, Any] = field(default_factory=dict)
    skip_cache: bool = False
    skip_dedupe: bool = False
    cache_ttl: Optional[float] = None
    model: Optional[str] = None


@dataclass
class TranslationResult:
    success: bool
    text: str
    is_original: bool = False
    language: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    retryable: Optional[bool] = None
    token_limit: Optional[int] = None
    skipped: bool = False
    skip_reason: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.text is None:
            self.text = ""
        if not self.success:
            self.is_original = True

    @classmethod
    def failure(
        cls,
        text: str,
        error: str,
        *,
        language: str | None = None,
        error_code: str | None = None,
        retryable: bool | None = None,
        token_limit: int | None = None,
        meta: Dict[str, Any] | None = None,
    ) -> "TranslationResult":
        return cls(
            success=False,
            text=text,
            is_original=True,
            language=language,
            error=error,
            error_code=error_code,
            retryable=retryable,
            token_limit=token_limit,
            meta=dict(meta or {}),
        )

    @classmethod
    def original(cls, text: str, language: str | None = None, **meta: Any) -> "TranslationResult":
        """A successful no-op: the source text is returned as-is."""
        return cls(success=True, text=text, is_original=True, language=language, meta=dict(meta))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, text: str = "", language: str | None = None) -> "TranslationResult":
        success = bool(data.get("success"))
        return cls(
            success=success,
            text=data.get("text") if data.get("text") is not None else text,
            is_original=bool(data.get("is_original", data.get("isOriginal", not success))),
            language=data.get("language") or language,
            error=data.get("error"),
            error_code=data.get("error_code") or data.get("errorCode"),
            retryable=data.get("retryable"),
            token_limit=data.get("token_limit") or data.get("tokenLimit"),
            skipped=bool(data.get("skipped", False)),
            skip_reason=data.get("skip_reason") or data.get("skipReason"),
            meta=dict(data.get("meta") or {}),
        )

    def with_meta(self, **updates: Any) -> "TranslationResult":
        return replace(self, meta={**self.meta, **updates})

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "text": self.text,
            "isOriginal": self.is_original,
            "language": self.language,
            "meta": dict(self.meta),
        }
        if self.error is not None:
            payload["error"] = self.error
        if self.error_code is not None:
            payload["errorCode"] = self.error_code
        if self.token_limit is not None:
            payload["tokenLimit"] = self.token_limit
        if self.skipped:
            payload["skipped"] = True
            payload["skipReason"] = self.skip_reason
        return payload


@dataclass
class LinkConversionOptions:
    market_config: Mapping[str, Any]
    locale: Optional[str] = None
    enabled: bool = True
    strategy: str = "conservative"
    preserve_query_params: bool = True
    preserve_anchors: bool = True


@dataclass
class TranslateOptions:
    """Caller options for one top-level translation."""
    strategy: Optional[str] = None
    resource_type: Optional[str] = None
    field_name: Optional[str] = None
    shop_id: Optional[str] = None
    resource_id: Optional[str] = None
    priority: int = 0
    retry_count: int = 0
    max_chunk_size: Optional[int] = None
    fallbacks: List[Any] = field(default_factory=list)
    extra_processors: List[Callable[..., Any]] = field(default_factory=list)
    link_conversion: Optional[LinkConversionOptions] = None
    allow_simple_prompt: bool = True
    skip_billing: bool = False
    context: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    cancel_event: Optional[threading.Event] = None

    _ALIASES = {
        "resourceType": "resource_type",
        "fieldName": "field_name",
        "shopId": "shop_id",
        "resourceId": "resource_id",
        "retryCount": "retry_count",
        "maxChunkSize": "max_chunk_size",
        "linkConversion": "link_conversion",
        "allowSimplePrompt": "allow_simple_prompt",
        "skipBilling": "skip_billing",
    }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "TranslateOptions":
        if not data:
            return cls()
        known = set(cls.__dataclass_fields__)
        values: Dict[str, Any] = {}
        for key, value in data.items():
            name = cls._ALIASES.get(key, key)
            if name in known and not name.startswith("_"):
                values[name] = value
        post_process = data.get("postProcess") or data.get("post_process")
        if isinstance(post_process, Mapping):
            extra = post_process.get("extraProcessors") or post_process.get("extra_processors")
            if extra:
                values.setdefault("extra_processors", list(extra))
            if "link_conversion" not in values:
                values["link_conversion"] = post_process.get("linkConversion") or post_process.get("link_conversion")
        link = values.get("link_conversion")
        if isinstance(link, Mapping):
            values["link_conversion"] = LinkConversionOptions(
                market_config=link.get("market_config") or link.get("marketConfig") or {},
                locale=link.get("locale"),
                enabled=link.get("enabled", True) is not False,
                strategy=str((link.get("options") or {}).get("strategy") or link.get("strategy") or "conservative"),
            )
        return cls(**values)
