"""Command line interface for browser-chat-handler."""

from __future__ import annotations

import asyncio
import json
import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Annotated, Any, Awaitable, Callable, Optional, TypeVar

import typer
import yaml
from pydantic import TypeAdapter
from rich.console import Console
from rich.markup import escape

from .config import HandlerConfig, load_config
from .errors import HandlerError
from .factory import build_handler
from .handler import WebUiChatHandler
from .models import ContentBlock, ConversationTurn, TextChunk

app = typer.Typer(help="Use a chat web UI in a debuggable browser as an API")
_err_console = Console(stderr=True)
_T = TypeVar("_T")

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to YAML configuration."),
]
EnvFileOption = Annotated[
    Optional[Path],
    typer.Option("--env-file", help="Path to an .env file with default configuration values."),
]
UrlOption = Annotated[
    Optional[str],
    typer.Option("--url", help="URL of the chat application."),
]
PortOption = Annotated[
    Optional[int],
    typer.Option("--port", help="Remote debugging port of the browser."),
]
TimeoutOption = Annotated[
    Optional[int],
    typer.Option("--timeout", help="Operation timeout in milliseconds."),
]
ModelOption = Annotated[
    Optional[str],
    typer.Option("--model", help="Display name reported for the model."),
]


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure logging before executing any command."""

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@app.command()
def version() -> None:
    """Print the package version."""

    try:
        typer.echo(get_version("browser-chat-handler"))
    except PackageNotFoundError:  # pragma: no cover - when running from source tree
        typer.echo("0.0.0")


@app.command()
def model(
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    model_name: ModelOption = None,
) -> None:
    """Print the model metadata reported by the handler."""

    config = _load(config_path, env_file, model_name=model_name)
    handler = build_handler(config)
    typer.echo(handler.get_model().model_dump_json(indent=2))


@app.command()
def ask(
    prompt: Annotated[str, typer.Argument(help="Prompt to send.")],
    system: Annotated[
        Optional[str],
        typer.Option("--system", help="System prompt placed before the conversation."),
    ] = None,
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    base_url: UrlOption = None,
    port: PortOption = None,
    timeout_ms: TimeoutOption = None,
    model_name: ModelOption = None,
) -> None:
    """Send one prompt and print the reply."""

    config = _load(
        config_path,
        env_file,
        base_url=base_url,
        discovery_port=port,
        timeout_ms=timeout_ms,
        model_name=model_name,
    )
    handler = build_handler(config)
    turns = [ConversationTurn(role="user", content=prompt)]
    typer.echo(_run(handler, lambda: _collect(handler, system or "", turns)))


@app.command()
def chat(
    conversation_path: Annotated[
        Path,
        typer.Argument(help="YAML or JSON file with 'system' and 'messages' keys."),
    ],
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    base_url: UrlOption = None,
    port: PortOption = None,
    timeout_ms: TimeoutOption = None,
    model_name: ModelOption = None,
) -> None:
    """Send a whole conversation and print the reply."""

    data = yaml.safe_load(conversation_path.read_text()) or {}
    turns = TypeAdapter(list[ConversationTurn]).validate_python(data.get("messages", []))
    config = _load(
        config_path,
        env_file,
        base_url=base_url,
        discovery_port=port,
        timeout_ms=timeout_ms,
        model_name=model_name,
    )
    handler = build_handler(config)
    typer.echo(_run(handler, lambda: _collect(handler, data.get("system") or "", turns)))


@app.command()
def tokens(
    text: Annotated[str, typer.Argument(help="Text to estimate.")],
) -> None:
    """Print the character-based token estimate for TEXT."""

    handler = build_handler(HandlerConfig())
    blocks = [ContentBlock(type="text", text=text)]
    typer.echo(json.dumps({"tokens": asyncio.run(handler.count_tokens(blocks))}))


def _load(config_path: Optional[Path], env_file: Optional[Path], **values: Any) -> HandlerConfig:
    overrides = {key: value for key, value in values.items() if value is not None}
    return load_config(config_path, env_file=env_file, **overrides)


async def _collect(
    handler: WebUiChatHandler,
    system_prompt: str,
    turns: list[ConversationTurn],
) -> str:
    parts: list[str] = []
    async for chunk in handler.create_message(system_prompt, turns):
        if isinstance(chunk, TextChunk):
            parts.append(chunk.text)
    return "".join(parts)


def _run(handler: WebUiChatHandler, call: Callable[[], Awaitable[_T]]) -> _T:
    async def _main() -> _T:
        try:
            return await call()
        finally:
            await handler.dispose()

    try:
        return asyncio.run(_main())
    except HandlerError as exc:
        _err_console.print(f"[red]{exc.phase} failed:[/red] {escape(str(exc))}")
        if exc.__cause__ is not None:
            _err_console.print(f"caused by: {escape(repr(exc.__cause__))}", style="dim")
        raise typer.Exit(code=1) from exc


if __name__ == "__main__":
    app()
