# Prompt builder for translation strategies.

from __future__ import annotations

from typing import Dict, List


LANGUAGE_NAMES: Dict[str, str] = {
    "en": "English",
    "zh": "Chinese",
    "zh-CN": "Simplified Chinese",
    "zh-TW": "Traditional Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "pt": "Portuguese",
    "ru": "Russian",
    "it": "Italian",
    "ar": "Arabic",
    "hi": "Hindi",
    "nl": "Dutch",
    "th": "Thai",
}

_EXAMPLE_TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "waterproof": {
        "de": "wasserdicht",
        "zh-CN": "防水",
        "zh-TW": "防水",
        "ja": "防水",
        "fr": "imperméable",
        "es": "impermeable",
    },
    "lightweight": {
        "de": "leicht",
        "zh-CN": "轻量",
        "zh-TW": "輕量",
        "ja": "軽量",
        "fr": "léger",
        "es": "ligero",
    },
}


def get_language_name(lang_code: str) -> str:
    if not lang_code:
        return lang_code
    return LANGUAGE_NAMES.get(lang_code) or LANGUAGE_NAMES.get(lang_code.lower()) or lang_code


def _example(word: str, target_lang: str) -> str:
    return _EXAMPLE_TRANSLATIONS.get(word, {}).get(target_lang, f"the {get_language_name(target_lang)} word")


def build_enhanced_prompt(target_lang: str) -> str:
    language = get_language_name(target_lang)
    return f"""You are a professional e-commerce translator. Translate the user's text completely into {language}.

Important: if the source contains no "__PROTECTED_" tokens, never produce such tokens yourself.

Requirements:
- Translate 100% of the content into {language}.
- Keep no English words except brand names and product model numbers.
- Translate technical terms too, e.g. "waterproof" -> "{_example("waterproof", target_lang)}", "lightweight" -> "{_example("lightweight", target_lang)}".

Markup rules:
1. Never translate or alter tokens that start with "__PROTECTED_" and end with "__".
2. Do not translate HTML tag names, CSS class names or attribute names.
3. Translate only human-readable text.

Brand rules:
- Keep brand names unchanged (Onewind, Apple, Nike, Adidas).
- Keep product models unchanged (iPhone 15, Model 3, PS5).

Output:
- Translate everything; never truncate long input.
- Keep paragraphs and line breaks.
- Return only the translation, without explanations or notes."""


def build_simple_prompt(target_lang: str) -> str:
    language = get_language_name(target_lang)
    return f"""Translate the following text into {language}.

- Translate directly and keep the meaning.
- Keep HTML tags unchanged.
- Return only the translation.

Text:"""


def build_config_key_prompt(target_lang: str) -> str:
    language = get_language_name(target_lang)
    return f"""You will receive a configuration key written in lowercase words separated by spaces, e.g. "social facebook".

Translate it into a natural {language} phrase an end user can read in an interface:
- Return only the translated phrase, without underscores.
- Never produce tokens starting with __PROTECTED_.
- Keep it short and clear."""


def build_messages(system_prompt: str | None, text: str) -> List[Dict[str, str]]:
    messages: List[Dict[str, str]] = []
    system_content = str(system_prompt or "").strip("\n")
    if system_content:
        messages.append({"role": "system", "content": system_content})
    messages.append({"role": "user", "content": str(text or "")})
    return messages
