import json

import pytest

from dtelecom_stt.domain.frames import (
    ConfigFrame,
    ErrorFrame,
    ReadyFrame,
    SessionExpiredFrame,
    SessionExpiringFrame,
    SessionExtendedFrame,
    TranscriptionFrame,
    parse_frame,
)
from dtelecom_stt.domain.transcription import Transcription, transcription_from_message


class TestParseFrame:
    def test_ready(self):
        frame = parse_frame('{"type":"ready","session_id":"abc","remaining_seconds":300}')
        assert isinstance(frame, ReadyFrame)
        assert frame.session_id == "abc"
        assert frame.remaining_seconds == 300

    def test_transcription(self):
        frame = parse_frame(json.dumps({
            "type": "transcription",
            "text": "hello world",
            "is_final": True,
            "start": 0.5,
            "end": 1.25,
            "confidence": 0.93,
        }))
        assert isinstance(frame, TranscriptionFrame)
        assert frame.to_transcription() == Transcription(
            text="hello world", is_final=True, start=0.5, end=1.25, confidence=0.93,
        )

    def test_session_expiring(self):
        frame = parse_frame('{"type":"session_expiring","remaining_seconds":58.6,"minutes":5}')
        assert isinstance(frame, SessionExpiringFrame)
        assert frame.remaining_seconds == pytest.approx(58.6)
        assert frame.minutes == 5

    def test_session_extended(self):
        frame = parse_frame('{"type":"session_extended","remaining_seconds":600}')
        assert isinstance(frame, SessionExtendedFrame)
        assert frame.remaining_seconds == 600

    def test_session_expired(self):
        assert isinstance(parse_frame('{"type":"session_expired"}'), SessionExpiredFrame)

    def test_error(self):
        frame = parse_frame('{"type":"error","message":"bad session key"}')
        assert isinstance(frame, ErrorFrame)
        assert frame.describe() == "bad session key"

    def test_error_without_message_describes_itself(self):
        frame = parse_frame('{"type":"error"}')
        assert isinstance(frame, ErrorFrame)
        assert '"error"' in frame.describe()

    def test_unknown_fields_are_ignored(self):
        frame = parse_frame('{"type":"ready","remaining_seconds":10,"server":"v2"}')
        assert isinstance(frame, ReadyFrame)

    def test_bytes_input(self):
        assert isinstance(parse_frame(b'{"type":"session_expired"}'), SessionExpiredFrame)

    @pytest.mark.parametrize("raw", [
        '{"type":"vad_event","speaking":true}',
        '{"text":"no type"}',
        "not json at all",
        "[1, 2, 3]",
        '"ready"',
        "",
    ])
    def test_unrecognized_is_none(self, raw):
        assert parse_frame(raw) is None

    def test_wrong_field_type_is_none(self):
        assert parse_frame('{"type":"ready","remaining_seconds":"lots"}') is None

    def test_numeric_transcription_text_is_kept(self):
        frame = parse_frame('{"type":"transcription","text":42,"is_final":true}')
        assert isinstance(frame, TranscriptionFrame)
        assert frame.to_transcription().text == "42"


class TestTranscriptionFromMessage:
    def test_null_text_becomes_empty(self):
        t = transcription_from_message({"text": None, "is_final": False})
        assert t.text == ""
        assert t.is_final is False

    def test_missing_fields_default(self):
        t = transcription_from_message({})
        assert t == Transcription(text="", is_final=True)
        assert t.start is None
        assert t.end is None
        assert t.confidence is None

    def test_frame_with_null_is_final_is_final(self):
        frame = parse_frame('{"type":"transcription","text":"hi","is_final":null}')
        assert frame.to_transcription().is_final is True

    def test_transcription_is_immutable(self):
        t = Transcription(text="hi")
        with pytest.raises(AttributeError):
            t.text = "bye"


class TestConfigFrame:
    def test_serializes_with_type(self):
        frame = ConfigFrame(language="es", session_key="sk-1")
        assert json.loads(frame.model_dump_json()) == {
            "type": "config",
            "language": "es",
            "session_key": "sk-1",
        }
