"""CLI утилита: completion/stream/render/health против настроенного провайдера."""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path

from ai_completions.client import CompletionClient
from ai_completions.infrastructure.logging import configure_logging
from ai_completions.providers.base import CompletionOptions, Message
from ai_completions.providers.factory import create_transport
from ai_completions.services.errors import ExternalError
from ai_completions.services.prompts import PromptTemplate, PromptVariableError, render
from ai_completions.settings import get_settings


def _build_client(args: argparse.Namespace) -> CompletionClient:
    settings = get_settings()
    provider = args.provider or settings.default_provider
    return CompletionClient(settings, create_transport(provider, settings))


def _options(args: argparse.Namespace) -> CompletionOptions:
    return CompletionOptions(
        model=args.model,
        max_tokens=args.max_tokens,
        temperature=args.temperature,
        timeout_seconds=args.timeout,
    )


def _print_json(data: object) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


async def _complete(args: argparse.Namespace) -> int:
    async with _build_client(args) as client:
        try:
            response = await client.complete(
                [Message(role="user", content=args.prompt)],
                _options(args),
            )
        except ExternalError as err:
            _print_json(err.to_payload())
            return 1
        _print_json(
            {
                "content": response.content,
                "model": response.model,
                "usage": asdict(response.usage),
                "metrics": asdict(client.get_metrics()),
            }
        )
        return 0


async def _stream(args: argparse.Namespace) -> int:
    async with _build_client(args) as client:
        try:
            await client.stream(
                [Message(role="user", content=args.prompt)],
                lambda chunk: print(chunk, end="", flush=True),
                _options(args),
            )
        except ExternalError as err:
            print()
            _print_json(err.to_payload())
            return 1
        print()
        return 0


async def _health(args: argparse.Namespace) -> int:
    async with _build_client(args) as client:
        ok = await client.health_check()
        _print_json({"status": "ok" if ok else "unhealthy"})
        return 0 if ok else 1


def cmd_complete(args: argparse.Namespace) -> int:
    """Один completion, печатает текст, usage и метрики."""
    return asyncio.run(_complete(args))


def cmd_stream(args: argparse.Namespace) -> int:
    """Стрим ответа в stdout по кускам."""
    return asyncio.run(_stream(args))


def cmd_health(args: argparse.Namespace) -> int:
    return asyncio.run(_health(args))


def cmd_render(args: argparse.Namespace) -> int:
    """Рендер шаблона из файла (`--var name=value`), без обращения к провайдеру."""
    text = Path(args.template_file).read_text(encoding="utf-8")
    variables = dict(args.var)
    template = PromptTemplate(id=Path(args.template_file).stem, template=text)
    try:
        print(render(template, variables))
    except PromptVariableError as e:
        print(str(e), file=sys.stderr)
        return 1
    return 0


def _parse_var(value: str) -> tuple[str, str]:
    name, sep, val = value.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"ожидается name=value, получено: {value!r}")
    return name.strip(), val


def _add_request_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("prompt", help="Текст пользовательского сообщения")
    p.add_argument("--provider", default=None, help="mock | openai (по умолчанию из настроек)")
    p.add_argument("--model", default=None, help="Модель (по умолчанию DEFAULT_MODEL)")
    p.add_argument("--max-tokens", type=int, default=None, help="Лимит токенов ответа")
    p.add_argument("--temperature", type=float, default=None, help="Температура")
    p.add_argument("--timeout", type=float, default=None, help="Таймаут запроса, секунды")


def main(argv: list[str] | None = None) -> int:
    """Точка входа CLI."""
    configure_logging()

    parser = argparse.ArgumentParser(prog="ai-completions", description="AI completions: CLI")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_complete = sub.add_parser("complete", help="Один completion")
    _add_request_args(p_complete)
    p_complete.set_defaults(func=cmd_complete)

    p_stream = sub.add_parser("stream", help="Стрим completion в stdout")
    _add_request_args(p_stream)
    p_stream.set_defaults(func=cmd_stream)

    p_render = sub.add_parser("render", help="Отрендерить шаблон промпта")
    p_render.add_argument("template_file", help="Файл шаблона с плейсхолдерами {{name}}")
    p_render.add_argument(
        "--var",
        action="append",
        type=_parse_var,
        default=[],
        help="Переменная вида name=value (можно несколько раз)",
    )
    p_render.set_defaults(func=cmd_render)

    p_health = sub.add_parser("health", help="Проверить доступность провайдера")
    p_health.add_argument("--provider", default=None, help="mock | openai")
    p_health.set_defaults(func=cmd_health)

    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
