"""Reset hooks for module-level singletons (used by the test suite)."""

from __future__ import annotations

from collections.abc import Callable

_reset_fns: list[Callable[[], None]] = []


def register_singleton(reset_fn: Callable[[], None]) -> None:
    _reset_fns.append(reset_fn)


def reset_all_singletons() -> None:
    for fn in _reset_fns:
        fn()
