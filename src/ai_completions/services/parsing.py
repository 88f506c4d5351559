"""Извлечение JSON из текста модели: цепочка стратегий + мягкий ремонт.

Модель не сериализатор: ответ может быть в прозе, в ```json блоке, с
одинарными кавычками или висячими запятыми. Стратегии пробуются строго по
порядку, первая успешно распарсенная побеждает. Ремонт применяется только
повторной попыткой после неудачного строгого парсинга, засчитывается только
если получился объект или массив, и помечается `repaired=True`. Если ничего
не вышло, возвращается исходный текст (`strategy=NONE`), а решение, считать
ли это ошибкой, остаётся за вызывающим.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from ai_completions.services.errors import parse_failure
from ai_completions.services.redaction import redact_text

log = structlog.get_logger()


class ParseStrategy(str, Enum):
    DIRECT = "direct"
    FENCED_JSON = "fenced_json"
    FENCED = "fenced"
    BRACE_SPAN = "brace_span"
    NONE = "none"


@dataclass(frozen=True)
class ParseResult:
    """Либо распарсенное значение, либо исходный текст (`strategy=NONE`)."""

    value: Any
    strategy: ParseStrategy
    text: str
    repaired: bool = False

    @property
    def parsed(self) -> bool:
        return self.strategy is not ParseStrategy.NONE


Extractor = Callable[[str], list[str]]

FENCED_JSON_RE = re.compile(r"```[^\S\n]*json\b[^\S\n]*\n?(.*?)```", re.DOTALL | re.IGNORECASE)
FENCED_ANY_RE = re.compile(r"```[A-Za-z0-9_+.-]*[^\S\n]*\n?(.*?)```", re.DOTALL)

_LITERALS = {"True": "true", "False": "false", "None": "null"}


def extract_direct(text: str) -> list[str]:
    stripped = text.strip()
    return [stripped] if stripped else []


def extract_fenced_json(text: str) -> list[str]:
    return [m.group(1).strip() for m in FENCED_JSON_RE.finditer(text) if m.group(1).strip()]


def extract_fenced(text: str) -> list[str]:
    return [m.group(1).strip() for m in FENCED_ANY_RE.finditer(text) if m.group(1).strip()]


def extract_brace_span(text: str) -> list[str]:
    """От первой `{` до последней `}`; без закрывающей (обрезанный ответ) до конца текста."""
    start = text.find("{")
    if start == -1:
        return []
    end = text.rfind("}")
    if end > start:
        return [text[start : end + 1]]
    return [text[start:].rstrip()]


DEFAULT_STRATEGIES: tuple[tuple[ParseStrategy, Extractor], ...] = (
    (ParseStrategy.DIRECT, extract_direct),
    (ParseStrategy.FENCED_JSON, extract_fenced_json),
    (ParseStrategy.FENCED, extract_fenced),
    (ParseStrategy.BRACE_SPAN, extract_brace_span),
)


def _read_single_quoted(s: str, start: int) -> tuple[str, int] | None:
    """Строка в одинарных кавычках -> JSON-строка. None, если кавычка не закрыта."""
    buf: list[str] = []
    j = start + 1
    n = len(s)
    while j < n:
        c = s[j]
        if c == "\\" and j + 1 < n:
            buf.append("'" if s[j + 1] == "'" else s[j : j + 2])
            j += 2
            continue
        if c == "'":
            return '"' + "".join(buf) + '"', j + 1
        buf.append('\\"' if c == '"' else c)
        j += 1
    return None


def repair_json(candidate: str) -> str:
    """Чинит типичные огрехи модели, не трогая содержимое строк.

    * висячие запятые перед `}`/`]` (и в конце текста);
    * строки в одинарных кавычках -> в двойных (только закрытые);
    * Python-литералы True/False/None -> JSON;
    * незакрытые скобки обрезанного ответа дописываются в конце.
    """
    out: list[str] = []
    stack: list[str] = []
    in_str = False
    i = 0
    n = len(candidate)

    while i < n:
        c = candidate[i]
        if in_str:
            out.append(c)
            if c == "\\" and i + 1 < n:
                out.append(candidate[i + 1])
                i += 2
                continue
            if c == '"':
                in_str = False
            i += 1
            continue

        if c == '"':
            in_str = True
            out.append(c)
        elif c == "'":
            converted = _read_single_quoted(candidate, i)
            if converted is not None:
                out.append(converted[0])
                i = converted[1]
                continue
            out.append(c)
        elif c == ",":
            k = i + 1
            while k < n and candidate[k].isspace():
                k += 1
            if k >= n or candidate[k] in "}]":
                i += 1
                continue
            out.append(c)
        elif c in "{[":
            stack.append("}" if c == "{" else "]")
            out.append(c)
        elif c in "}]":
            if stack and stack[-1] == c:
                stack.pop()
            out.append(c)
        elif c.isalpha() or c == "_":
            k = i
            while k < n and (candidate[k].isalnum() or candidate[k] == "_"):
                k += 1
            word = candidate[i:k]
            out.append(_LITERALS.get(word, word))
            i = k
            continue
        else:
            out.append(c)
        i += 1

    if in_str:
        out.append('"')
    if stack:
        text = "".join(out).rstrip()
        if text.endswith(","):
            text = text[:-1]
        return text + "".join(reversed(stack))
    return "".join(out)


def _try_loads(candidate: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(candidate)
    except ValueError:
        return False, None


class ResponseParser:
    """Упорядоченный список стратегий; каждую можно тестировать отдельно."""

    def __init__(
        self,
        strategies: Sequence[tuple[ParseStrategy, Extractor]] = DEFAULT_STRATEGIES,
        repair: bool = True,
    ) -> None:
        self.strategies = tuple(strategies)
        self.repair = repair

    def parse(self, text: str | None) -> ParseResult:
        text = text or ""
        for strategy, extract in self.strategies:
            for candidate in extract(text):
                ok, value = _try_loads(candidate)
                if ok:
                    return ParseResult(value=value, strategy=strategy, text=text)

                if self.repair:
                    fixed = repair_json(candidate)
                    if fixed != candidate:
                        ok, value = _try_loads(fixed)
                        # Ремонт засчитываем только для объекта/массива.
                        if ok and isinstance(value, (dict, list)):
                            log.info("parse_repaired", strategy=strategy.value)
                            return ParseResult(
                                value=value,
                                strategy=strategy,
                                text=text,
                                repaired=True,
                            )

                log.debug("parse_strategy_failed", strategy=strategy.value, size=len(candidate))

        log.info("parse_fallback_raw", text=redact_text(text))
        return ParseResult(value=text, strategy=ParseStrategy.NONE, text=text)


def require_structured(result: ParseResult) -> Any:
    """Значение, если JSON удалось извлечь; иначе `ExternalError(kind=parse_error)`."""
    if not result.parsed:
        raise parse_failure(result.text)
    return result.value
