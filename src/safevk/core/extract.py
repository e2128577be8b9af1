"""Extraction of typed handler inputs from raw payloads.

Decoding is structural: a shape is a primitive type, ``dict``/``Any`` for the
raw mapping, ``list[T]``, a class with ``from_dict`` or a plain dataclass.
Envelopes hold the value under one key ("object" for updates, "response" for
API results), and ``Optional`` targets tolerate a missing value where plain
targets fail.
"""

from __future__ import annotations

import dataclasses
import types
import typing
from dataclasses import dataclass
from typing import Any, Generic, Mapping, Optional, Tuple, TypeVar, Union

from safevk.core.errors import ExtractionError
from safevk.core.models import Update
from safevk.core.ports import ApiClientPort

T = TypeVar("T")

OBJECT_KEY = "object"
RESPONSE_KEY = "response"

_NONE_TYPE = type(None)
_UNION_TYPES: Tuple[Any, ...] = (Union, getattr(types, "UnionType", Union))


def _shape_name(shape: Any) -> str:
    return getattr(shape, "__name__", None) or repr(shape)


def unwrap_optional(shape: Any) -> Tuple[Any, bool]:
    """Split ``Optional[X]`` into ``(X, True)``; anything else is ``(shape, False)``."""

    if typing.get_origin(shape) in _UNION_TYPES:
        args = typing.get_args(shape)
        inner = [arg for arg in args if arg is not _NONE_TYPE]
        if len(inner) == 1 and len(args) == 2:
            return inner[0], True
    return shape, False


def _require_mapping(shape: Any, value: Any) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ExtractionError(f"{_shape_name(shape)} expects an object, got {type(value).__name__}")
    return value


def decode(shape: Any, value: Any) -> Any:
    """Decode ``value`` into ``shape`` or raise ``ExtractionError``."""

    if shape is Any or shape is object:
        return value

    origin = typing.get_origin(shape)
    if shape is list or origin is list:
        if not isinstance(value, list):
            raise ExtractionError(f"expected a list, got {type(value).__name__}")
        (item_shape,) = typing.get_args(shape) or (Any,)
        return [decode(item_shape, item) for item in value]
    if shape is dict or origin is dict:
        return dict(_require_mapping(shape, value))

    if shape is bool:
        if not isinstance(value, bool):
            raise ExtractionError(f"expected bool, got {type(value).__name__}")
        return value
    if shape in (int, float, str):
        accepted = (int, float) if shape is float else shape
        if isinstance(value, bool) or not isinstance(value, accepted):
            raise ExtractionError(f"expected {shape.__name__}, got {type(value).__name__}")
        return shape(value)

    from_dict = getattr(shape, "from_dict", None)
    if from_dict is not None:
        data = _require_mapping(shape, value)
        try:
            return from_dict(data)
        except ExtractionError:
            raise
        except KeyError as exc:
            raise ExtractionError(f"{_shape_name(shape)} is missing field {exc}") from exc
        except Exception as exc:
            raise ExtractionError(f"cannot decode {_shape_name(shape)}: {exc}") from exc

    if dataclasses.is_dataclass(shape) and isinstance(shape, type):
        data = _require_mapping(shape, value)
        names = {f.name for f in dataclasses.fields(shape) if f.init}
        try:
            return shape(**{key: item for key, item in data.items() if key in names})
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(f"cannot decode {_shape_name(shape)}: {exc}") from exc

    raise ExtractionError(f"unsupported shape {shape!r}")


def extract(envelope: Any, shape: Any, *, key: str, optional: bool = False) -> Any:
    """Decode ``envelope[key]`` into ``shape``.

    For optional targets:
    - a missing key (or a null value) yields None;
    - a value that does not decode yields None when it is a bare number or
      string (VK answers some calls with a scalar), otherwise an error.

    For plain targets a missing key is an ``ExtractionError``.
    """

    shape, nested_optional = unwrap_optional(shape)
    optional = optional or nested_optional

    if not isinstance(envelope, Mapping) or key not in envelope:
        if optional:
            return None
        raise ExtractionError(f"payload has no {key!r} field")

    value = envelope[key]
    if not optional:
        return decode(shape, value)
    if value is None:
        return None
    try:
        return decode(shape, value)
    except ExtractionError:
        if isinstance(value, (int, float, str)) and not isinstance(value, bool):
            return None
        raise


def parse_response(envelope: Any, shape: Any, optional: bool = False) -> Any:
    """Decode an API response envelope (``{"response": ...}``)."""

    return extract(envelope, shape, key=RESPONSE_KEY, optional=optional)


@dataclass(frozen=True)
class Ctx(Generic[T]):
    """Typed handler input for one dispatch.

    ``data`` is the decoded event body; attribute lookups not found on the
    context fall through to it, so ``ctx.text`` reads ``ctx.data.text``.
    """

    data: T
    update: Update
    api: ApiClientPort

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or name in _CTX_FIELDS:
            raise AttributeError(name)
        return getattr(self.data, name)

    @property
    def peer_id(self) -> Optional[int]:
        return self.update.peer_id

    async def call(
        self,
        method: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        shape: Any = dict,
        optional: bool = False,
    ) -> Any:
        """Call an API method through the session's client and decode the result."""

        envelope = await self.api.call(method, params)
        return parse_response(envelope, shape, optional=optional)

    async def reply(self, message: str, **params: Any) -> Any:
        """Send ``message`` back to the conversation the update came from."""

        if self.update.peer_id is None:
            raise ValueError("update has no peer_id to reply to")
        params.setdefault("random_id", 0)
        return await self.call(
            "messages.send",
            {"peer_id": self.update.peer_id, "message": message, **params},
            shape=Any,
            optional=True,
        )


_CTX_FIELDS = frozenset(f.name for f in dataclasses.fields(Ctx))


def extract_ctx(
    update: Update,
    api: ApiClientPort,
    shape: Any,
    *,
    optional: bool = False,
) -> Ctx[Any]:
    """Materialize ``Ctx`` for a handler, or raise ``ExtractionError``."""

    data = extract(update.payload, shape, key=OBJECT_KEY, optional=optional)
    return Ctx(data=data, update=update, api=api)
