"""Read-only view of a ``.env`` file."""

from __future__ import annotations

from pathlib import Path

from dotenv import dotenv_values


class EnvFile:
    """Reads ``KEY=value`` pairs via python-dotenv; a missing file is empty."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read_all(self) -> dict[str, str]:
        if not self.path.is_file():
            return {}
        return {k: v for k, v in dotenv_values(self.path).items() if v is not None}

    def read(self, key: str) -> str:
        return self.read_all().get(key, "")
