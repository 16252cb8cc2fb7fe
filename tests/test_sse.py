"""Tests for the incremental event-stream parser and payload helpers."""

from __future__ import annotations

import pytest

from pickwise.ai.sse import ServerSentEventParser, extract_delta, split_legacy_payload
from pickwise.errors import ErrorCode, FramingDecodeFailure


def test_parser_handles_lines_split_across_feeds() -> None:
    parser = ServerSentEventParser()

    assert parser.feed("da") == []
    assert parser.feed('ta: {"a": 1}') == []
    events = parser.feed("\n\n")

    assert [event.data for event in events] == ['{"a": 1}']


def test_parser_joins_multiline_data_and_tracks_fields() -> None:
    parser = ServerSentEventParser()

    events = parser.feed("event: message\nid: 7\ndata: first\ndata:second\n\n")

    assert len(events) == 1
    event = events[0]
    assert event.data == "first\nsecond"
    assert event.event == "message"
    assert event.id == "7"


def test_parser_ignores_comments_and_empty_events() -> None:
    parser = ServerSentEventParser()

    events = parser.feed(": keep-alive\n\nevent: ping\n\ndata: x\r\n\r\n")

    assert [event.data for event in events] == ["x"]
    assert events[0].event is None


def test_flush_dispatches_trailing_event() -> None:
    parser = ServerSentEventParser()
    parser.feed("data: [DONE]")

    events = parser.flush()

    assert len(events) == 1
    assert events[0].is_done
    assert parser.flush() == []


def test_split_legacy_payload_drops_blank_segments() -> None:
    data = '{"a": 1}\\ {"b": 2}\\  \\ [DONE]'

    assert list(split_legacy_payload(data, "\\ ")) == ['{"a": 1}', '{"b": 2}', "[DONE]"]
    assert list(split_legacy_payload(" whole ", "")) == ["whole"]


def test_extract_delta_reads_first_choice() -> None:
    assert extract_delta('{"choices": [{"delta": {"content": "hi"}}]}') == "hi"
    assert extract_delta('{"choices": [{"delta": {"role": "assistant"}}]}') is None
    assert extract_delta('{"choices": []}') is None
    assert extract_delta('{"choices": [{"delta": {"content": ""}}]}') is None
    assert extract_delta("[1, 2]") is None


def test_extract_delta_rejects_non_json() -> None:
    with pytest.raises(FramingDecodeFailure) as excinfo:
        extract_delta("{broken")

    assert excinfo.value.error_code == ErrorCode.FRAMING_DECODE_FAILURE
    assert excinfo.value.details["payload"] == "{broken"
