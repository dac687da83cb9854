"""Token estimates used to size completion requests."""

from __future__ import annotations

import math
import re


_CJK_RE = re.compile(r"[\u4e00-\u9fff\u3040-\u30ff\uac00-\ud7af]")
_WHITESPACE_RE = re.compile(r"\s+")
_CJK_TARGETS = {"ja", "ko", "zh-CN", "zh-TW"}

MIN_DYNAMIC_TOKENS = 2000
MAX_DYNAMIC_TOKENS = 8000


def estimate_token_count(text: str | None, target_lang: str = "") -> int:
    if not text:
        return 0
    normalized = _WHITESPACE_RE.sub(" ", text).strip()
    if not normalized:
        return 0
    cjk_chars = len(_CJK_RE.findall(normalized))
    other_chars = len(normalized) - cjk_chars
    estimated = cjk_chars / 1.5 + other_chars / 4
    if target_lang in _CJK_TARGETS:
        estimated *= 1.2
    return max(0, math.ceil(estimated))


def calculate_dynamic_token_limit(
    text: str,
    target_lang: str,
    min_tokens: int = MIN_DYNAMIC_TOKENS,
    max_tokens: int = MAX_DYNAMIC_TOKENS,
) -> int:
    multiplier = 4 if target_lang in _CJK_TARGETS else 2.5
    return int(min(max(len(text or "") * multiplier, min_tokens), max_tokens))


def clamp_max_tokens(
    requested: int,
    estimated_input: int,
    *,
    model_token_limit: int = 0,
    safety_margin: int = 512,
    min_response_tokens: int = 256,
) -> int:
    """Keep input + margin + output under the model ceiling.

    When no room is left the request still asks for at least
    ``min_response_tokens``.
    """
    safe = int(requested)
    if model_token_limit > 0:
        available = model_token_limit - estimated_input - safety_margin
        if available > 0:
            safe = min(safe, max(min_response_tokens, available))
        else:
            safe = max(min_response_tokens, int(math.floor(requested * 0.5)))
    if safe <= 0:
        safe = min_response_tokens
    return safe
