"""Middleware pipeline for decoded callback events.

The first registered middleware is the outermost wrapper. Each middleware
either calls ``call_next(message)`` to continue or returns its own response to
short-circuit. The innermost terminal returns ``{"status": "success",
"data": message}``.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from functools import reduce
from typing import Protocol, runtime_checkable

from src.callback.models import Message, Next, Response


@runtime_checkable
class Middleware(Protocol):
    def handle(self, message: Message, call_next: Next) -> Response: ...


class FunctionMiddleware:
    """Adapts a plain ``(message, next) -> response`` callable."""

    def __init__(self, func: Callable[[Message, Next], Response]) -> None:
        self._func = func

    def handle(self, message: Message, call_next: Next) -> Response:
        return self._func(message, call_next)


def _terminal(message: Message) -> Response:
    return {"status": "success", "data": message}


def _link(middleware: Middleware, call_next: Next) -> Next:
    def call(message: Message) -> Response:
        # Each middleware owns its copy; nothing it mutates is visible upstream.
        return middleware.handle(copy.deepcopy(message), call_next)

    return call


class MiddlewarePipeline:
    """Ordered, append-only middleware list.

    Registration is not synchronized; register everything before serving.
    """

    def __init__(self) -> None:
        self._middleware: list[Middleware] = []

    def __len__(self) -> int:
        return len(self._middleware)

    def register(
        self, middleware: Middleware | Callable[[Message, Next], Response],
    ) -> MiddlewarePipeline:
        if isinstance(middleware, Middleware):
            self._middleware.append(middleware)
        elif callable(middleware):
            self._middleware.append(FunctionMiddleware(middleware))
        else:
            raise TypeError(f"Middleware must be callable or define handle(): {middleware!r}")
        return self

    def build(self) -> Next:
        """Fold right-to-left so the first registered ends up outermost."""
        return reduce(
            lambda call_next, middleware: _link(middleware, call_next),
            reversed(self._middleware),
            _terminal,
        )
