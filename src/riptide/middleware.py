"""Middleware chaining for route handlers."""
from __future__ import annotations

import typing as t

if t.TYPE_CHECKING:
    from riptide.app import RequestContext

# handler(ctx, request) -> response
Handler = t.Callable[["RequestContext", t.Any], t.Any]
# middleware(ctx, request, method, next_handler) -> response
Middleware = t.Callable[["RequestContext", t.Any, str, Handler], t.Any]


def collapse_middleware(functions: t.Sequence[Middleware], method: str, final_handler: Handler) -> Handler:
    """
    Fold middleware into one handler.

    functions[0] runs first and receives a handler that runs functions[1],
    and so on; the last one receives final_handler. Every middleware sees the
    same method name.
    """
    handler = final_handler
    for middleware in reversed(functions):
        handler = _bind(middleware, method, handler)
    return handler


def _bind(middleware: Middleware, method: str, next_handler: Handler) -> Handler:
    def handler(ctx: RequestContext, request: t.Any) -> t.Any:
        return middleware(ctx, request, method, next_handler)

    return handler
