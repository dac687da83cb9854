import re

import pytest

from translation_flow.core.chunker import (
    HTML_LIST_CHUNK_LIMIT,
    build_chunks,
    chunk_text,
    coerce_chunk_size,
    is_likely_html,
)


@pytest.mark.unit
def test_chunk_text_short_text_is_single_chunk():
    assert chunk_text("Hello world", 1000) == ["Hello world"]
    assert chunk_text("   ", 1000) == []
    assert chunk_text(None, 1000) == []


@pytest.mark.unit
def test_chunk_text_keeps_paragraphs_together():
    paragraph = " ".join(["word"] * 60)
    text = "\n\n".join([paragraph] * 4)
    chunks = chunk_text(text, 500)
    assert chunks == [paragraph] * 4
    assert "\n\n".join(chunks) == text


@pytest.mark.unit
def test_chunk_text_splits_long_paragraph_on_sentences():
    paragraph = " ".join(f"This is sentence number {i}." for i in range(30))
    chunks = chunk_text(paragraph, 200)
    assert len(chunks) > 1
    assert all(len(chunk) <= 200 for chunk in chunks)
    assert " ".join(chunks) == paragraph


@pytest.mark.unit
def test_chunk_text_oversized_word_is_own_chunk():
    word = "x" * 500
    assert chunk_text(word, 200) == [word]
    chunks = chunk_text(f"short {word} tail", 200)
    assert chunks == ["short", word, "tail"]


@pytest.mark.unit
def test_chunk_html_never_splits_inside_tag():
    html = "<div>" + "".join(
        f'<p class="c{i}">Paragraph {i} text here.</p>' for i in range(60)
    ) + "</div>"
    chunks = chunk_text(html, 300)
    assert len(chunks) > 1
    assert "".join(chunks) == html
    for chunk in chunks:
        assert len(chunk) <= 300
        stripped = re.sub(r"<[^>]+>", "", chunk)
        assert "<" not in stripped
        assert ">" not in stripped


@pytest.mark.unit
def test_chunk_html_lists_use_smaller_limit():
    html = "<ul>" + "".join(f"<li>Item number {i} with text</li>" for i in range(80)) + "</ul>"
    chunks = chunk_text(html, 2000)
    assert len(chunks) > 1
    assert all(len(chunk) <= HTML_LIST_CHUNK_LIMIT for chunk in chunks)
    assert "".join(chunks) == html


@pytest.mark.unit
def test_build_chunks_ids_are_ordered_from_one():
    paragraph = " ".join(["word"] * 60)
    chunks = build_chunks("\n\n".join([paragraph] * 3), 300)
    assert [chunk.id for chunk in chunks] == [1, 2, 3]


@pytest.mark.unit
def test_coerce_chunk_size_and_html_detection():
    assert coerce_chunk_size(50) == 200
    assert coerce_chunk_size("abc") == 1000
    assert coerce_chunk_size(0) == 1000
    assert coerce_chunk_size("1500") == 1500
    assert is_likely_html("<p>x</p>")
    assert not is_likely_html("a < b and c > d")
