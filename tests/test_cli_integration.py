from __future__ import annotations

import json

from typer.testing import CliRunner

from browser_chat_handler.cli import app
from browser_chat_handler.config import HandlerConfig
from browser_chat_handler.errors import DiscoveryFailure
from browser_chat_handler.models import ModelDescriptor, ModelInfo, TextChunk, UsageChunk


class StubHandler:
    def __init__(self, reply: str = "stub reply", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, list]] = []
        self.disposed = 0

    async def create_message(self, system_prompt, turns):
        self.calls.append((system_prompt, list(turns)))
        if self.error is not None:
            raise self.error
        yield TextChunk(text=self.reply)
        yield UsageChunk()

    def get_model(self) -> ModelDescriptor:
        return ModelDescriptor(id="stub-model", info=ModelInfo(max_tokens=1234))

    async def dispose(self) -> None:
        self.disposed += 1


def _patch_builders(monkeypatch, handler: StubHandler, loaded: dict[str, object]):
    def fake_load_config(path, *, env_file=None, **overrides):  # type: ignore[no-untyped-def]
        loaded["path"] = path
        loaded["env_file"] = env_file
        loaded["overrides"] = overrides
        return HandlerConfig()

    monkeypatch.setattr("browser_chat_handler.cli.load_config", fake_load_config)
    monkeypatch.setattr("browser_chat_handler.cli.build_handler", lambda config: handler)


def test_ask_prints_reply_and_disposes(monkeypatch):
    runner = CliRunner()
    handler = StubHandler(reply="Paris")
    loaded: dict[str, object] = {}
    _patch_builders(monkeypatch, handler, loaded)

    result = runner.invoke(
        app,
        ["ask", "Capital of France?", "--system", "Be brief", "--port", "9333", "--timeout", "5000"],
    )

    assert result.exit_code == 0, result.output
    assert "Paris" in result.output
    assert loaded["overrides"] == {"discovery_port": 9333, "timeout_ms": 5000}
    system_prompt, turns = handler.calls[0]
    assert system_prompt == "Be brief"
    assert turns[0].role == "user"
    assert turns[0].content == "Capital of France?"
    assert handler.disposed == 1


def test_ask_reports_failures_with_phase(monkeypatch):
    runner = CliRunner()
    handler = StubHandler(error=DiscoveryFailure("No browser on port 9222."))
    _patch_builders(monkeypatch, handler, {})

    result = runner.invoke(app, ["ask", "hello"])

    assert result.exit_code == 1
    assert handler.disposed == 1


def test_chat_reads_conversation_file(monkeypatch, tmp_path):
    runner = CliRunner()
    handler = StubHandler(reply="sure")
    _patch_builders(monkeypatch, handler, {})
    conversation = tmp_path / "conversation.yaml"
    conversation.write_text(
        "\n".join(
            [
                "system: You are terse.",
                "messages:",
                "  - role: user",
                "    content: hi",
                "  - role: assistant",
                "    content: yo",
                "  - role: user",
                "    content:",
                "      - type: text",
                "        text: again",
            ]
        )
    )

    result = runner.invoke(app, ["chat", str(conversation)])

    assert result.exit_code == 0, result.output
    assert "sure" in result.output
    system_prompt, turns = handler.calls[0]
    assert system_prompt == "You are terse."
    assert [turn.role for turn in turns] == ["user", "assistant", "user"]
    assert turns[2].content[0].text == "again"


def test_model_prints_metadata(monkeypatch):
    runner = CliRunner()
    _patch_builders(monkeypatch, StubHandler(), {})

    result = runner.invoke(app, ["model"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["id"] == "stub-model"
    assert payload["info"]["max_tokens"] == 1234


def test_tokens_prints_estimate():
    runner = CliRunner()

    result = runner.invoke(app, ["tokens", "x" * 37])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == {"tokens": 10}
