from __future__ import annotations

import pytest

from parse.spans import (
    Span,
    aggregate_span,
    byte_to_char_offset,
    char_to_byte_offset,
    clip_span,
    normalize_span,
)
from utils import LineIndex, count_lines, path_to_module_id, relative_posix


def test_span_rejects_reversed_and_negative_ranges() -> None:
    with pytest.raises(ValueError, match="precedes start"):
        Span(start=5, end=2)
    with pytest.raises(ValueError, match=">= 0"):
        Span(start=-1, end=2)


def test_span_is_half_open() -> None:
    span = Span(start=2, end=5)

    assert span.length == 3
    assert span.contains(Span(start=2, end=5))
    assert span.slice(b"abcdefg") == b"cde"


def test_normalize_span_accepts_common_shapes() -> None:
    expected = Span(start=1, end=4)

    assert normalize_span(expected) == expected
    assert normalize_span((1, 4)) == expected
    assert normalize_span({"start": 1, "end": 4}) == expected
    assert normalize_span("1:4") == expected
    assert normalize_span("1-4") == expected
    assert normalize_span((1, 3), inclusive_end=True) == expected


def test_normalize_span_converts_characters_to_bytes() -> None:
    source = "é = 1;".encode()

    span = normalize_span((0, 3), source=source, unit="char")

    assert span == Span(start=0, end=4)
    assert span.text(source) == "é ="


def test_normalize_span_rejects_out_of_buffer_end() -> None:
    with pytest.raises(ValueError, match="past the end"):
        normalize_span((0, 10), source=b"short")


def test_offset_conversion_round_trips_multibyte_text() -> None:
    text = "a→b"
    source = text.encode("utf-8")

    assert char_to_byte_offset(text, 2) == 4
    assert byte_to_char_offset(source, 4) == 2


def test_clip_and_aggregate() -> None:
    assert clip_span(-5, 50, 10) == Span(start=0, end=10)
    assert aggregate_span([Span(start=4, end=6), Span(start=1, end=3)]) == Span(start=1, end=6)
    assert aggregate_span([]) is None


def test_line_index_handles_all_newline_styles() -> None:
    index = LineIndex(b"a\nb\r\nc\rd")

    assert index.line_count == 4
    assert index.position(0) == (1, 1)
    assert index.position(2) == (2, 1)
    assert index.position(5) == (3, 1)
    assert index.position(7) == (4, 1)


def test_path_helpers() -> None:
    assert path_to_module_id("src/lib/util.ts") == "src/lib/util"
    assert path_to_module_id("src/lib/index.js") == "src/lib"
    assert relative_posix("/repo/src/app.js", "/repo") == "src/app.js"
    assert count_lines("") == 0
    assert count_lines("a\nb\n") == 2
