"""Shared pytest fixtures for app.botkit tests."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from app.botkit.messaging.callbacks import CallbackRegistry
from app.botkit.messaging.messenger import Messenger
from app.botkit.state.directory import Channel, DirectorySnapshot, User

_BOT_ENV_KEYS = (
    "BOT_API_TOKEN",
    "BOT_VERIFICATION_TOKEN",
    "CALLBACK_HOST",
    "CALLBACK_PORT",
    "CALLBACK_PATH",
    "CONVERSATION_QUEUE_SIZE",
    "RESPONSE_TIMEOUT_SECONDS",
    "BOT_GREETING",
    "BOT_ADMIN_USER",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    env_path = tmp_path / ".env"
    monkeypatch.setenv("DOTENV_PATH", str(env_path))
    for key in _BOT_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return env_path


@pytest.fixture(autouse=True)
def _reset_singletons(_isolate_env: Path):
    from app.botkit.util.singletons import reset_all_singletons

    reset_all_singletons()
    yield
    _isolate_env.unlink(missing_ok=True)
    reset_all_singletons()


@pytest.fixture()
def env_path(_isolate_env: Path) -> Path:
    return _isolate_env


def make_snapshot() -> DirectorySnapshot:
    return DirectorySnapshot(
        self_id="UBOT",
        users=[
            User(id="UBOT", name="clippy"),
            User(id="U1", name="alice"),
            User(id="U2", name="bob"),
        ],
        channels=[Channel(id="C1", name="general")],
        ims={"D1": "U1", "D2": "U2"},
    )


@pytest.fixture()
def snapshot() -> DirectorySnapshot:
    return make_snapshot()


@pytest.fixture()
def chat_client() -> AsyncMock:
    client = AsyncMock()
    handles = itertools.count(1)

    def _post(channel: str, text: str, attachments: list) -> str:
        return f"{next(handles)}.000100"

    def _update(channel: str, handle: str, text: str, attachments: list) -> str:
        return handle

    client.post_message.side_effect = _post
    client.update_message.side_effect = _update
    client.fetch_directory.return_value = make_snapshot()
    return client


@pytest.fixture()
def callbacks() -> CallbackRegistry:
    return CallbackRegistry()


@pytest.fixture()
def messenger(chat_client: AsyncMock, callbacks: CallbackRegistry) -> Messenger:
    return Messenger("D1", chat_client, callbacks, response_timeout=1.0)


@pytest.fixture()
def wait_until() -> Callable:
    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.005)

    return _wait

