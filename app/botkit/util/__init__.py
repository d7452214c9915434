"""Shared utilities."""

from .env_file import EnvFile
from .ids import NO_CALLBACK, random_id
from .result import Result
from .singletons import register_singleton, reset_all_singletons

__all__ = [
    "EnvFile",
    "NO_CALLBACK",
    "Result",
    "random_id",
    "register_singleton",
    "reset_all_singletons",
]
