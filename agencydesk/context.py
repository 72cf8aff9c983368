from __future__ import annotations

from contextvars import ContextVar, Token

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
screen_var: ContextVar[str | None] = ContextVar("screen", default=None)


def set_correlation_id(value: str | None) -> Token[str | None]:
    return correlation_id_var.set(value)


def reset_correlation_id(token: Token[str | None]) -> None:
    correlation_id_var.reset(token)


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


def set_screen(value: str | None) -> Token[str | None]:
    return screen_var.set(value)


def reset_screen(token: Token[str | None]) -> None:
    screen_var.reset(token)


def get_screen() -> str | None:
    return screen_var.get()


def get_log_context() -> dict[str, str | None]:
    return {"correlation_id": get_correlation_id(), "screen": get_screen()}
