"""Bot settings -- reads from environment and ``.env`` file.

All configuration is consolidated here. Values in the ``.env`` file take
precedence over the process environment, mirroring how the admin tooling
writes overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from ..util.env_file import EnvFile
from ..util.singletons import register_singleton

DEFAULT_GREETING = (
    "Hi, I'm Clippy, your Solar Racing Assistant! What can I help you with today?"
)


@dataclass
class CallbackServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    path: str = "/"


class Settings:
    """Runtime configuration sourced from environment variables and ``.env``."""

    def __init__(self) -> None:
        self.env = EnvFile(os.getenv("DOTENV_PATH") or ".env")
        self.reload()

    def reload(self) -> None:
        """Re-read the ``.env`` file and environment variables."""
        e = self._read

        self.api_token: str = e("BOT_API_TOKEN")
        self.verification_token: str = e("BOT_VERIFICATION_TOKEN")

        self.callback = CallbackServerConfig(
            host=e("CALLBACK_HOST") or "0.0.0.0",
            port=int(e("CALLBACK_PORT") or "8080"),
            path=e("CALLBACK_PATH") or "/",
        )

        self.conversation_queue_size: int = int(e("CONVERSATION_QUEUE_SIZE") or "10")
        self.response_timeout: float = float(e("RESPONSE_TIMEOUT_SECONDS") or "900")

        self.greeting: str = e("BOT_GREETING") or DEFAULT_GREETING
        self.admin_user: str = e("BOT_ADMIN_USER")
        self.log_level: str = (e("LOG_LEVEL") or "INFO").upper()

        if self.conversation_queue_size < 1:
            raise ValueError("CONVERSATION_QUEUE_SIZE must be at least 1")

    def _read(self, key: str) -> str:
        return self.env.read(key) or os.getenv(key, "")


# Module-level singleton
cfg = Settings()


def _reset_cfg() -> None:
    global cfg
    cfg = Settings()


register_singleton(_reset_cfg)
