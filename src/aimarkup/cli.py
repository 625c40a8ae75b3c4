"""
CLI интерфейс aimarkup.

Использование:
    aimarkup render answer.md
    aimarkup render answer.md --output answer.html
    cat answer.md | aimarkup render -
    aimarkup render reply.json --json-field checkedText
    aimarkup view answer.md
    aimarkup config show
    aimarkup config set timeout_ms 5000
"""

import sys
import os
import json
import asyncio
import logging
from pathlib import Path
from typing import Optional, Tuple

# Windows кодировка
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from aimarkup.config import get_config_manager
from aimarkup.enhancer import DomEnhancer, HtmlContainer
from aimarkup.exceptions import ClipboardWriteError, ResponseParseError
from aimarkup.models import RenderResult, RendererConfig, TypesetState
from aimarkup.normalizer import coerce_response_text, parse_json_response
from aimarkup.pipeline import RenderSession
from aimarkup.scheduling import AsyncioScheduler
from aimarkup.typeset import Capability, MathMLTypesetter, TypesetWaiter

console = Console(stderr=True)


def error(message: str) -> None:
    """Вывести ошибку."""
    console.print(f"[red]✗[/red] {message}")


def success(message: str) -> None:
    """Вывести успех."""
    console.print(f"[green]✓[/green] {message}")


def info(message: str) -> None:
    """Вывести информацию."""
    console.print(f"[blue]ℹ[/blue] {message}")


class _NoClipboard:
    """В консоли кнопки копирования никто не нажимает."""

    def write_text(self, text: str) -> None:
        raise ClipboardWriteError("Clipboard is not available in the CLI")


async def render_document(
    content: str,
    config: RendererConfig,
    typeset: bool = True,
    copy_buttons: bool = True,
) -> Tuple[RenderResult, str, TypesetState]:
    """
    Отрендерить текст так же, как это делает окно просмотра.

    Returns:
        (результат конвейера, итоговый HTML контейнера, состояние вёрстки)
    """
    container = HtmlContainer()
    scheduler = AsyncioScheduler()
    finished = asyncio.Event()

    enhancer = DomEnhancer(_NoClipboard(), scheduler, config) if copy_buttons else None
    capability = Capability(MathMLTypesetter()) if typeset else Capability.unavailable()
    waiter = TypesetWaiter(
        container, scheduler,
        capability=capability,
        config=config,
        on_typeset=enhancer.add_copy_buttons if enhancer else None,
        on_finished=lambda state: finished.set(),
    )
    session = RenderSession(container, waiter, enhancer, config=config)

    result = await session.update(content)
    if result is not None and result.html:
        await finished.wait()
    session.unmount()
    return result, container.html, waiter.state


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Подробный лог")
@click.option(
    "--config-dir",
    envvar="AIMARKUP_CONFIG_DIR",
    type=click.Path(file_okay=False, path_type=Path),
    help="Директория конфигурации (по умолчанию: ~/.aimarkup)"
)
@click.pass_context
def main(ctx, verbose: bool, config_dir: Optional[Path]):
    """aimarkup - безопасный рендеринг ответов LLM (Markdown + LaTeX)."""
    ctx.ensure_object(dict)
    manager = get_config_manager(config_dir)
    config = manager.get_config()

    level = logging.DEBUG if verbose else getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj["config_manager"] = manager


# ===== RENDER COMMANDS =====

@main.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Записать HTML в файл")
@click.option("--typeset/--no-typeset", default=True, help="Сверстать формулы в MathML")
@click.option("--no-copy-buttons", is_flag=True, help="Не добавлять кнопки копирования к блокам кода")
@click.option("--json-field", help="Ответ модели в JSON: отрендерить это поле")
@click.pass_context
def render(ctx, source, output: Optional[Path], typeset: bool, no_copy_buttons: bool, json_field: Optional[str]):
    """Отрендерить Markdown-ответ модели в безопасный HTML."""
    config = ctx.obj["config_manager"].get_config()
    content = source.read()

    if json_field:
        try:
            data = parse_json_response(content)
            content = coerce_response_text(data.get(json_field) if isinstance(data, dict) else None)
        except ResponseParseError as e:
            error(f"Ошибка разбора ответа: {e.message}")
            sys.exit(1)

    try:
        result, html, state = asyncio.run(render_document(
            content, config, typeset=typeset, copy_buttons=not no_copy_buttons
        ))
    except Exception as e:
        error(f"Ошибка: {e}")
        sys.exit(1)

    if result.degraded:
        for message in result.errors:
            console.print(f"[yellow]![/yellow] {message}")
    if typeset and state == TypesetState.TIMED_OUT:
        info("Формулы оставлены в исходном виде")

    if output:
        output.write_text(html, encoding="utf-8")
        success(f"HTML записан: [bold]{output}[/bold] (формул: {result.math_count})")
    else:
        click.echo(html)


@main.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option("--title", "-t", default="aimarkup", help="Заголовок окна")
@click.pass_context
def view(ctx, source, title: str):
    """Открыть ответ модели в окне просмотра (PyQt6)."""
    from aimarkup.widgets import run_viewer

    config = ctx.obj["config_manager"].get_config()
    sys.exit(run_viewer(source.read(), title=title, config=config))


# ===== CONFIG COMMANDS =====

@main.group("config")
def config_group():
    """Управление конфигурацией рендерера."""
    pass


@config_group.command("show")
@click.pass_context
def config_show(ctx):
    """Показать текущую конфигурацию."""
    manager = ctx.obj["config_manager"]
    config = manager.get_config()

    table = Table(title="Конфигурация", show_header=False)
    table.add_column("Параметр", style="cyan")
    table.add_column("Значение")

    for key, value in config.model_dump().items():
        table.add_row(key, json.dumps(value, ensure_ascii=False) if isinstance(value, dict) else str(value))

    console.print(table)
    info(f"Файл: {manager.config_file}")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx, key: str, value: str):
    """Установить значение (JSON для словарей)."""
    manager = ctx.obj["config_manager"]

    parsed = value
    if value.startswith("{"):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError as e:
            error(f"Неверный JSON: {e}")
            sys.exit(1)

    try:
        manager.set_value(key, parsed)
        success(f"{key} = [bold]{value}[/bold]")
    except KeyError:
        error(f"Неизвестный параметр: {key}")
        sys.exit(1)
    except ValidationError as e:
        error(f"Неверное значение: {e.errors()[0]['msg']}")
        sys.exit(1)


@config_group.command("reset")
@click.pass_context
def config_reset(ctx):
    """Сбросить конфигурацию к значениям по умолчанию."""
    ctx.obj["config_manager"].reset()
    success("Конфигурация сброшена")


if __name__ == "__main__":
    main()
