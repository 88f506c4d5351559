"""Шаблоны промптов: подстановка `{{name}}` и проверка обязательных переменных."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

import structlog

from ai_completions.services.redaction import stable_fingerprint

log = structlog.get_logger()

VariableType = Literal["string", "number", "boolean", "array", "object"]

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_.-]*)\s*\}\}")


@dataclass(frozen=True)
class PromptVariable:
    name: str
    required: bool = True
    type: VariableType = "string"


@dataclass(frozen=True)
class PromptTemplate:
    """Неизменяемый шаблон; каталоги шаблонов живут у вызывающего кода."""

    id: str
    template: str
    variables: tuple[PromptVariable, ...] = ()

    def placeholders(self) -> list[str]:
        return PLACEHOLDER_RE.findall(self.template)


class PromptVariableError(ValueError):
    """Не хватает обязательных переменных или тип не совпал."""

    def __init__(self, message: str, names: list[str]) -> None:
        super().__init__(message)
        self.names = names


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict)) and len(value) == 0:
        return True
    return False


def _matches_type(value: Any, expected: VariableType) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "array":
        return isinstance(value, (list, tuple))
    if expected == "object":
        return isinstance(value, Mapping)
    return True


def _format_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def validate_variables(template: PromptTemplate, variables: Mapping[str, Any]) -> None:
    missing = [
        v.name for v in template.variables if v.required and _is_missing(variables.get(v.name))
    ]
    if missing:
        raise PromptVariableError(
            f"Missing required variables: {', '.join(missing)}",
            missing,
        )

    wrong = [
        v.name
        for v in template.variables
        if not _is_missing(variables.get(v.name)) and not _matches_type(variables[v.name], v.type)
    ]
    if wrong:
        raise PromptVariableError(
            f"Variables have unexpected types: {', '.join(wrong)}",
            wrong,
        )


def render(template: PromptTemplate, variables: Mapping[str, Any]) -> str:
    """Подставляет переменные в шаблон.

    Объявленные необязательные переменные без значения превращаются в пустую
    строку; необъявленные плейсхолдеры без значения остаются как есть.
    """
    validate_variables(template, variables)
    declared = {v.name for v in template.variables}
    unresolved: list[str] = []

    def _sub(match: re.Match) -> str:
        name = match.group(1)
        value = variables.get(name)
        if value is not None:
            return _format_value(value)
        if name in declared:
            return ""
        unresolved.append(name)
        return match.group(0)

    result = PLACEHOLDER_RE.sub(_sub, template.template)
    if unresolved:
        log.warning("prompt_unresolved_placeholders", template_id=template.id, names=unresolved)
    return result


def cache_key_for(template: PromptTemplate, variables: Mapping[str, Any]) -> str:
    """Стабильный отпечаток пары шаблон+переменные (порядок ключей не важен)."""
    return f"prompt:{template.id}:{stable_fingerprint(dict(variables))}"
