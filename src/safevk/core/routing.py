"""Route registry.

``SafeVk`` is the mutable builder used during setup; ``freeze()`` hands off a
read-only ``Router`` that the polling loop shares across dispatches. Routes
are scanned in registration order and the first match wins, so the order in
which routes are registered is part of the bot's observable behavior.
"""

from __future__ import annotations

import inspect
import typing
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from safevk.core.errors import DispatchError, ExtractionError, HandlerError
from safevk.core.extract import Ctx, extract_ctx, unwrap_optional
from safevk.core.filters import Filter
from safevk.core.models import Update
from safevk.core.ports import ApiClientPort, Service

Handler = Callable[[Ctx[Any]], Awaitable[Any]]


def _is_async_callable(handler: Any) -> bool:
    if inspect.iscoroutinefunction(handler):
        return True
    return inspect.iscoroutinefunction(getattr(handler, "__call__", None))


def infer_shape(handler: Handler) -> Tuple[Any, bool]:
    """Read the target shape from a handler annotated as ``Ctx[T]``.

    Unannotated handlers (or a bare ``Ctx``) receive the raw event body.
    """

    target = handler if inspect.isfunction(handler) or inspect.ismethod(handler) else handler.__call__
    params = list(inspect.signature(target).parameters.values())
    if not params:
        raise TypeError(f"handler {handler!r} must accept a Ctx argument")
    try:
        hints = typing.get_type_hints(target)
    except (NameError, TypeError) as exc:
        raise TypeError(f"cannot resolve annotations of {handler!r}; pass shape= explicitly") from exc

    annotation = hints.get(params[0].name)
    if annotation is None or annotation is Ctx:
        return dict, False
    if typing.get_origin(annotation) is not Ctx:
        raise TypeError(f"first parameter of {handler!r} must be annotated as Ctx[T]")
    (shape,) = typing.get_args(annotation)
    return unwrap_optional(shape)


class HandlerService:
    """Adapts one async handler to the ``Service`` capability.

    Extraction runs before the handler; an ``ExtractionError`` means the
    handler is never invoked. Anything the handler raises becomes a
    ``HandlerError``.
    """

    def __init__(
        self,
        pattern: str,
        handler: Handler,
        shape: Any = None,
        optional: bool = False,
    ) -> None:
        if not _is_async_callable(handler):
            raise TypeError(f"handler for {pattern!r} must be an async callable")
        if shape is None:
            shape, optional = infer_shape(handler)
        else:
            shape, nested = unwrap_optional(shape)
            optional = optional or nested
        self.pattern = pattern
        self.handler = handler
        self.shape = shape
        self.optional = optional

    async def call(self, update: Update, api: ApiClientPort) -> Any:
        try:
            ctx = extract_ctx(update, api, self.shape, optional=self.optional)
        except DispatchError:
            raise
        except Exception as exc:
            raise ExtractionError(f"cannot extract input for {self.pattern!r}: {exc}") from exc
        try:
            return await self.handler(ctx)
        except Exception as exc:
            raise HandlerError(self.pattern, str(exc) or type(exc).__name__) from exc


@dataclass(frozen=True)
class Route:
    """A registered (pattern, filter, handler) binding."""

    pattern: str
    filter: Filter
    service: Service

    def matches(self, command: str) -> bool:
        return self.filter.matches(self.pattern, command)


class Router:
    """Frozen, ordered collection of routes."""

    def __init__(self, routes: Tuple[Route, ...]) -> None:
        self._routes = tuple(routes)

    @property
    def routes(self) -> Tuple[Route, ...]:
        return self._routes

    def __len__(self) -> int:
        return len(self._routes)

    def resolve(self, update: Update) -> Optional[Route]:
        """Return the first route whose filter matches the update's command."""

        for route in self._routes:
            if route.matches(update.command):
                return route
        return None


class SafeVk:
    """Fluent route builder.

    Example::

        bot = SafeVk().command("/start", start).on("/help", Filter.FLEXIBLE, help_)
    """

    def __init__(self) -> None:
        self._routes: List[Route] = []

    def register(
        self,
        pattern: str,
        filter: Filter,
        handler: Handler,
        shape: Any = None,
    ) -> Route:
        """Append a route. Earlier routes take precedence over later ones."""

        service = HandlerService(pattern, handler, shape=shape)
        route = Route(pattern=pattern, filter=filter, service=service)
        self._routes.append(route)
        return route

    def on(self, pattern: str, filter: Filter, handler: Handler, shape: Any = None) -> "SafeVk":
        self.register(pattern, filter, handler, shape=shape)
        return self

    def command(
        self,
        pattern: str,
        handler: Handler,
        filter: Filter = Filter.STRICT,
        shape: Any = None,
    ) -> "SafeVk":
        self.register(pattern, filter, handler, shape=shape)
        return self

    def freeze(self) -> Router:
        return Router(tuple(self._routes))
