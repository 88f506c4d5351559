from ai_completions.services.redaction import redact_messages, redact_text, stable_fingerprint


def test_redact_messages_hides_content() -> None:
    messages = [
        {"role": "system", "content": "you are a coach"},
        {"role": "user", "content": "my injury is a sore knee"},
    ]
    red = redact_messages(messages)
    assert red[0]["content"] == "<redacted>"
    assert red[1]["content"] == "<redacted>"
    assert red[1]["content_len"] == len("my injury is a sore knee")
    assert "content_sha256" in red[1]


def test_stable_fingerprint_ignores_key_order() -> None:
    assert stable_fingerprint({"a": 1, "b": [1, 2]}) == stable_fingerprint({"b": [1, 2], "a": 1})
    assert stable_fingerprint({"a": 1}) != stable_fingerprint({"a": 2})


def test_redact_text_preview() -> None:
    out = redact_text("hello world", preview=5)
    assert out["len"] == 11
    assert out["preview"] == "hello"
    assert redact_text(None) == {"len": 0}
