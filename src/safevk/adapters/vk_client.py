"""VK API adapter built on httpx.

One ``VkClient`` serves both ports the core needs: it hands out long-poll
sessions and batches (``BackendPort``) and performs method calls for
handlers (``ApiClientPort``). Errors are translated into the core's
transport taxonomy here so the polling loop never sees httpx types.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

import httpx

from safevk.adapters.vk_mapper import build_update
from safevk.core.errors import (
    ApiError,
    ExpiredError,
    ExtractionError,
    FatalError,
    TransientError,
    TransportError,
)
from safevk.core.extract import parse_response
from safevk.core.models import PollingSession, UpdateBatch
from safevk.core.responses import LongPollServer

LOGGER = logging.getLogger(__name__)

VK = "https://api.vk.com/method"
VERSION = "5.199"
WAIT_TIME = 25

# "User authorization failed", "Group authorization failed", "App authorization failed"
AUTH_ERROR_CODES = frozenset({5, 27, 28})
# "Too many requests", "Flood control", "Internal server error"
TRANSIENT_ERROR_CODES = frozenset({6, 9, 10})


def classify_api_error(error: ApiError) -> TransportError:
    """Map an API error raised during session acquisition onto the transport taxonomy."""

    if error.code in TRANSIENT_ERROR_CODES:
        return TransientError(str(error))
    if error.code in AUTH_ERROR_CODES:
        return FatalError(f"invalid credentials: {error.message}")
    return FatalError(str(error))


def long_poll_error(failed: Any, body: Mapping[str, Any]) -> TransportError:
    """Translate a long-poll ``failed`` code."""

    if failed == 1:
        try:
            offset: Optional[int] = int(body["ts"])
        except (KeyError, TypeError, ValueError):
            offset = None
        return ExpiredError("long-poll offset is outdated", offset=offset)
    if failed == 2:
        return ExpiredError("long-poll key expired")
    if failed == 3:
        return ExpiredError("long-poll history is lost", reset=True)
    return FatalError(f"long-poll request rejected (failed={failed})")


def _error_code(error: Mapping[str, Any]) -> int:
    try:
        return int(error.get("error_code", 0))
    except (TypeError, ValueError):
        return 0


def _encode(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)
    if isinstance(value, Mapping):
        return json.dumps(value, ensure_ascii=False)
    return value


class VkClient:
    """Async VK community client."""

    def __init__(
        self,
        token: str,
        group_id: Optional[int] = None,
        *,
        http: Optional[httpx.AsyncClient] = None,
        wait: int = WAIT_TIME,
        version: str = VERSION,
        api_url: str = VK,
    ) -> None:
        self._token = token
        self._group_id = group_id
        self._wait = wait
        self._version = version
        self._api_url = api_url.rstrip("/")
        self._owns_http = http is None
        # The HTTP timeout must outlast the long-poll wait
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(wait + 10))

    async def __aenter__(self) -> "VkClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _send(self, method: str, url: str, **kwargs: Any) -> Mapping[str, Any]:
        try:
            response = await self._http.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise FatalError(f"HTTP {status} from {url}") from exc
            raise TransientError(f"HTTP {status} from {url}") from exc
        except httpx.HTTPError as exc:
            raise TransientError(f"request to {url} failed: {exc!r}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise TransientError(f"malformed JSON from {url}") from exc
        if not isinstance(body, Mapping):
            raise TransientError(f"unexpected JSON document from {url}")
        return body

    async def call(self, method: str, params: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
        """Call an API method and return the raw envelope. Raises ``ApiError``."""

        data = {key: _encode(value) for key, value in (params or {}).items() if value is not None}
        data["access_token"] = self._token
        data["v"] = self._version
        body = await self._send("POST", f"{self._api_url}/{method}", data=data)

        error = body.get("error")
        if isinstance(error, Mapping):
            raise ApiError(_error_code(error), str(error.get("error_msg", "")))
        return body

    async def group_id(self) -> int:
        """Return the community id, resolving it from the token when not configured."""

        if self._group_id is None:
            body = await self.call("groups.getById")
            try:
                groups = parse_response(body, Any)
                # 5.199 wraps the list as {"groups": [...], "profiles": [...]}
                if isinstance(groups, Mapping):
                    groups = groups.get("groups")
                self._group_id = int(groups[0]["id"])
            except (ExtractionError, LookupError, TypeError, ValueError) as exc:
                raise FatalError("cannot resolve the community id; is this a community token?") from exc
            LOGGER.info("Resolved community id %s", self._group_id)
        return self._group_id

    async def get_polling_session(self) -> PollingSession:
        try:
            group_id = await self.group_id()
            body = await self.call("groups.getLongPollServer", {"group_id": group_id})
        except ApiError as exc:
            raise classify_api_error(exc) from exc

        try:
            server = parse_response(body, LongPollServer)
        except ExtractionError as exc:
            raise TransientError(f"unexpected groups.getLongPollServer response: {exc}") from exc
        return PollingSession(server=server.server, key=server.key, offset=server.ts)

    async def get_updates(self, session: PollingSession) -> UpdateBatch:
        body = await self._send(
            "GET",
            session.server,
            params={"act": "a_check", "key": session.key, "ts": session.offset, "wait": self._wait},
        )
        failed = body.get("failed")
        if failed is not None:
            raise long_poll_error(failed, body)

        try:
            offset = int(body["ts"])
        except (KeyError, TypeError, ValueError) as exc:
            raise TransientError("long-poll response has no valid ts") from exc
        raw_updates = body.get("updates") or []
        return UpdateBatch(
            offset=offset,
            updates=tuple(build_update(raw) for raw in raw_updates if isinstance(raw, Mapping)),
        )
