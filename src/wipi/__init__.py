"""wipi: wireless interface management with rollback for Linux hosts."""

from typing import Any

from .version import APP_VERSION


def create_app(*args: Any, **kwargs: Any):
    from .app import create_app as _create_app

    return _create_app(*args, **kwargs)


def create_facade(*args: Any, **kwargs: Any):
    from .facade import create_facade as _create_facade

    return _create_facade(*args, **kwargs)


__all__ = ["create_app", "create_facade", "APP_VERSION"]
