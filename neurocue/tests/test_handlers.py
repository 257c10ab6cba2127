"""
Tests for Transcript Handlers

Payload parsing, malformed-input rejection and webhook signatures.
"""

import time

import pytest


@pytest.fixture
def handler():
    from neurocue.capture.handlers import TranscriptHandler

    return TranscriptHandler()


class TestParseEvent:
    """Tests for TranscriptHandler.parse_event"""

    def test_canonical_payload(self, handler):
        chunk = handler.parse_event({
            "conversation_id": "conv-1",
            "text": "start chart",
            "speaker": "Ana",
            "chunk_id": "c1",
        })

        assert chunk.conversation_id == "conv-1"
        assert chunk.text == "start chart"
        assert chunk.speaker == "Ana"
        assert chunk.chunk_id == "c1"
        assert chunk.source == "transcript"
        assert chunk.is_valid

    def test_aliases(self, handler):
        chunk = handler.parse_event({
            "meetingId": 42,
            "cumulative_text": "hello",
            "speaker": {"name": "Ben", "color": "#fff"},
            "id": 7,
        })

        assert chunk.conversation_id == "42"
        assert chunk.text == "hello"
        assert chunk.speaker == "Ben"
        assert chunk.chunk_id == "7"

    @pytest.mark.parametrize("speaker", [None, "", "   ", {}, 12])
    def test_unknown_speaker(self, handler, speaker):
        chunk = handler.parse_event({"conversation_id": "c", "text": "", "chunk_id": "1", "speaker": speaker})
        assert chunk.speaker == "unknown"

    @pytest.mark.parametrize("payload,field_name", [
        ({"text": "x", "chunk_id": "1"}, "conversation_id"),
        ({"conversation_id": "  ", "text": "x", "chunk_id": "1"}, "conversation_id"),
        ({"conversation_id": True, "text": "x", "chunk_id": "1"}, "conversation_id"),
        ({"conversation_id": "c", "chunk_id": "1"}, "text"),
        ({"conversation_id": "c", "text": 12, "chunk_id": "1"}, "text"),
        ({"conversation_id": "c", "text": "x"}, "chunk_id"),
        ({"conversation_id": "c", "text": "x", "chunk_id": ["1"]}, "chunk_id"),
    ])
    def test_malformed_rejected(self, handler, payload, field_name):
        from neurocue.capture.handlers import ChunkValidationError

        with pytest.raises(ChunkValidationError) as exc_info:
            handler.parse_event(payload)
        assert exc_info.value.field_name == field_name

    def test_non_object_rejected(self, handler):
        from neurocue.capture.handlers import ChunkValidationError

        with pytest.raises(ChunkValidationError):
            handler.parse_event(["not", "a", "dict"])


class TestVerifySignature:
    """Tests for TranscriptHandler.verify_signature"""

    def test_no_secret_skips_verification(self, handler):
        assert handler.verify_signature(b"{}", "", "") is True
        assert handler.sign(b"{}", "0") is None

    def test_valid_signature(self):
        from neurocue.capture.handlers import TranscriptHandler

        handler = TranscriptHandler(signing_secret="s3cret")
        body = b'{"conversation_id": "c"}'
        ts = str(int(time.time()))

        assert handler.verify_signature(body, handler.sign(body, ts), ts) is True

    def test_tampered_body(self):
        from neurocue.capture.handlers import TranscriptHandler

        handler = TranscriptHandler(signing_secret="s3cret")
        ts = str(int(time.time()))
        signature = handler.sign(b'{"a": 1}', ts)

        assert handler.verify_signature(b'{"a": 2}', signature, ts) is False

    def test_stale_timestamp(self):
        from neurocue.capture.handlers import TranscriptHandler

        handler = TranscriptHandler(signing_secret="s3cret")
        ts = str(int(time.time()) - 3600)
        body = b"{}"

        assert handler.verify_signature(body, handler.sign(body, ts), ts) is False

    @pytest.mark.parametrize("signature,timestamp", [("", "123"), ("v0=abc", ""), ("v0=abc", "not-a-number")])
    def test_missing_or_bad_headers(self, signature, timestamp):
        from neurocue.capture.handlers import TranscriptHandler

        handler = TranscriptHandler(signing_secret="s3cret")
        assert handler.verify_signature(b"{}", signature, timestamp) is False

    def test_non_utf8_body_fails_cleanly(self):
        from neurocue.capture.handlers import TranscriptHandler

        handler = TranscriptHandler(signing_secret="s3cret")
        ts = str(int(time.time()))

        assert handler.verify_signature(b"\xff\xfe{}", "v0=abc", ts) is False

    def test_signs_raw_bytes(self):
        from neurocue.capture.handlers import TranscriptHandler

        handler = TranscriptHandler(signing_secret="s3cret")
        ts = str(int(time.time()))
        body = b"\xff\xfe{}"

        assert handler.verify_signature(body, handler.sign(body, ts), ts) is True

    def test_non_ascii_signature_header(self):
        from neurocue.capture.handlers import TranscriptHandler

        handler = TranscriptHandler(signing_secret="s3cret")
        ts = str(int(time.time()))

        assert handler.verify_signature(b"{}", "v0=éé", ts) is False
