"""Tests for the log redaction processor."""

from luna_bot.log import redact_secrets


def test_masks_secret_fields_to_last_four_chars():
    event = {"event": "gemini_call", "api_key": "AIzaSyExample1234", "slot": 2}
    assert redact_secrets(None, "info", event) == {
        "event": "gemini_call",
        "api_key": "...1234",
        "slot": 2,
    }


def test_leaves_empty_and_unrelated_fields():
    event = {"event": "discord_start", "token": "", "user": "luna#0001"}
    assert redact_secrets(None, "info", dict(event)) == event
