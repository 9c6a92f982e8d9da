"""Tests for log redaction."""

from conductor.utils.logging import _redact_processor, redact


class TestRedact:
    def test_secrets(self):
        assert redact("api_key=sk-ant-123") == "api_key=***REDACTED***"
        assert redact("authorization: Bearer") == "authorization=***REDACTED***"

    def test_phone_keeps_last_four(self):
        assert redact("sender +15551234567 wrote") == "sender ***4567 wrote"

    def test_plain_text_untouched(self):
        assert redact("plan_created with 2 steps") == "plan_created with 2 steps"


class TestProcessor:
    def test_skips_event_and_non_strings(self):
        event = {"event": "token=abc", "sender": "+15551234567", "steps": 3}
        out = _redact_processor(None, "info", event)
        assert out["event"] == "token=abc"
        assert out["sender"] == "***4567"
        assert out["steps"] == 3
