"""Редактирование сообщений перед логированием (без сырых текстов)."""

import hashlib
import json
from typing import Any

REDACTED_TEXT = "<redacted>"


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def stable_fingerprint(value: Any) -> str:
    """sha256 от канонического JSON (ключи отсортированы, не-JSON типы через str)."""
    raw = json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
    return sha256_hex(raw)


def redact_messages(messages: list[dict]) -> list[dict]:
    out: list[dict] = []
    for m in messages:
        if not isinstance(m, dict):
            continue
        content = m.get("content")
        if isinstance(content, str):
            out.append(
                {
                    "role": m.get("role"),
                    "content": REDACTED_TEXT,
                    "content_len": len(content),
                    "content_sha256": sha256_hex(content),
                }
            )
        else:
            out.append({"role": m.get("role"), "content": REDACTED_TEXT})
    return out


def redact_text(text: str | None, preview: int = 0) -> dict:
    # Для диагностики парсинга: длина, хэш и (по желанию) короткий префикс.
    if text is None:
        return {"len": 0}
    out: dict[str, Any] = {"len": len(text), "sha256": sha256_hex(text)}
    if preview > 0:
        out["preview"] = text[:preview]
    return out
