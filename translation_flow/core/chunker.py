"""Text Chunker - splits source text into request-sized chunks."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import List, Optional


logger = logging.getLogger("translation_flow.chunker")

DEFAULT_MAX_CHUNK_SIZE = 1000
MIN_CHUNK_SIZE = 200
HTML_LIST_CHUNK_LIMIT = 500

_HTML_OPEN_RE = re.compile(r"<([a-z][^>]*?)>", re.I)
_HTML_CLOSE_RE = re.compile(r"</[a-z]+>", re.I)
_HTML_LIST_RE = re.compile(r"<[uo]l[^>]*>.*?</[uo]l>", re.I | re.S)
_HTML_SEGMENT_RE = re.compile(r"<[^>]+>|[^<]+|<")
_PARAGRAPH_SPLIT_RE = re.compile(r"\r?\n\s*\r?\n")
_SENTENCE_RE = re.compile(r"[^.!?。！？]+(?:[.!?。！？]+|$)|[.!?。！？]+")


@dataclass
class TextChunk:
    """One ordered slice of the text (1-indexed)."""
    id: int
    text: str


def coerce_chunk_size(value: object) -> int:
    try:
        size = int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_MAX_CHUNK_SIZE
    if size <= 0:
        return DEFAULT_MAX_CHUNK_SIZE
    return max(MIN_CHUNK_SIZE, size)


def is_likely_html(text: object) -> bool:
    if not isinstance(text, str):
        return False
    return bool(_HTML_OPEN_RE.search(text)) and bool(_HTML_CLOSE_RE.search(text))


def chunk_text(
    text: str,
    max_chunk_size: object = DEFAULT_MAX_CHUNK_SIZE,
    is_html: Optional[bool] = None,
) -> List[str]:
    """Split ``text`` into chunks no longer than ``max_chunk_size``.

    Text that already fits is returned unchanged as a single chunk. HTML is
    cut only between tags and text runs; plain text is cut on paragraphs,
    then sentences, then words. A single word longer than the limit becomes
    its own oversized chunk.
    """
    if not isinstance(text, str) or not text.strip():
        return []

    limit = coerce_chunk_size(max_chunk_size)
    if len(text) <= limit:
        return [text]

    treat_as_html = is_html if isinstance(is_html, bool) else is_likely_html(text)
    if treat_as_html:
        return _chunk_html(text, limit)
    return _chunk_plain(text, limit)


def build_chunks(
    text: str,
    max_chunk_size: object = DEFAULT_MAX_CHUNK_SIZE,
    is_html: Optional[bool] = None,
) -> List[TextChunk]:
    return [
        TextChunk(id=index, text=chunk)
        for index, chunk in enumerate(chunk_text(text, max_chunk_size, is_html), start=1)
    ]


def _chunk_plain(text: str, limit: int) -> List[str]:
    chunks: List[str] = []
    current = ""
    paragraphs = _PARAGRAPH_SPLIT_RE.split(text)
    logger.debug("Plain text chunking: %d paragraphs", len(paragraphs))

    for paragraph in paragraphs:
        paragraph = paragraph.strip()
        if not paragraph:
            continue

        if len(paragraph) <= limit:
            if current and len(current) + len(paragraph) + 2 > limit:
                chunks.append(current)
                current = paragraph
            else:
                current = f"{current}\n\n{paragraph}" if current else paragraph
            continue

        if current:
            chunks.append(current)
            current = ""

        sentences = _SENTENCE_RE.findall(paragraph) or [paragraph]
        for sentence in sentences:
            sentence = sentence.strip()
            if not sentence:
                continue
            if len(sentence) > limit:
                if current:
                    chunks.append(current)
                    current = ""
                chunks.extend(_split_words(sentence, limit))
                continue
            if current and len(current) + len(sentence) + 1 > limit:
                chunks.append(current)
                current = sentence
            else:
                current = f"{current} {sentence}" if current else sentence

    if current.strip():
        chunks.append(current.strip())

    logger.debug("Plain text chunking produced %d chunks", len(chunks))
    return chunks


def _split_words(sentence: str, limit: int) -> List[str]:
    groups: List[str] = []
    current = ""
    for word in sentence.split():
        if current and len(current) + len(word) + 1 > limit:
            groups.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word
    if current:
        groups.append(current)
    return groups


def _chunk_html(text: str, limit: int) -> List[str]:
    effective_limit = min(limit, HTML_LIST_CHUNK_LIMIT) if _HTML_LIST_RE.search(text) else limit
    chunks: List[str] = []
    current = ""

    for segment in _HTML_SEGMENT_RE.findall(text):
        if current and len(current) + len(segment) > effective_limit:
            if current.strip():
                chunks.append(current.strip())
            current = segment
        else:
            current += segment

    if current.strip():
        chunks.append(current.strip())

    logger.debug(
        "HTML chunking produced %d chunks (limit %d)", len(chunks), effective_limit
    )
    return chunks
