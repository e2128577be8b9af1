"""VK client factory and the long-running ``run`` entry point.

Secrets are read from the environment (``VK_TOKEN``, optional
``VK_GROUP_ID``) via python-dotenv so they stay out of config files.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from dotenv import load_dotenv

from safevk.adapters.vk_client import WAIT_TIME, VkClient
from safevk.core.config import PollingConfig
from safevk.core.dispatch import ErrorHook
from safevk.core.polling import PollingLoop
from safevk.core.ports import OffsetStorePort
from safevk.core.routing import Router, SafeVk

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    token: str = field(repr=False)
    group_id: Optional[int] = None


def build_credentials() -> Credentials:
    """Read credentials from the environment (and ``.env``)."""

    load_dotenv()

    token = os.getenv("VK_TOKEN")
    group_id = os.getenv("VK_GROUP_ID")

    # Fail fast: a missing token would otherwise surface as an auth error later.
    if not token:
        raise RuntimeError("Missing VK_TOKEN in environment")
    try:
        parsed_group_id = int(group_id) if group_id else None
    except ValueError as exc:
        raise RuntimeError(f"VK_GROUP_ID must be an integer, got {group_id!r}") from exc

    return Credentials(token=token, group_id=parsed_group_id)


def build_client(credentials: Credentials, wait: int = WAIT_TIME) -> VkClient:
    """Create a VK client for a community token."""

    LOGGER.info("Initializing VK client")
    return VkClient(credentials.token, credentials.group_id, wait=wait)


async def run(
    credentials: Credentials,
    bot: Union[SafeVk, Router],
    config: Optional[PollingConfig] = None,
    *,
    wait: int = WAIT_TIME,
    offset_store: Optional[OffsetStorePort] = None,
    on_error: Optional[ErrorHook] = None,
    loop_ready: Optional[Callable[[PollingLoop], None]] = None,
) -> None:
    """Poll VK and dispatch updates until stopped; raises ``FatalError`` on failure.

    ``loop_ready`` is called with the ``PollingLoop`` before polling starts so
    the caller can wire ``stop()`` to signals.
    """

    config = config or PollingConfig()
    if config.request_timeout is not None and config.request_timeout <= wait:
        LOGGER.warning(
            "request_timeout (%ss) does not exceed the long-poll wait (%ss); fetches will time out",
            config.request_timeout,
            wait,
        )

    async with build_client(credentials, wait=wait) as client:
        loop = PollingLoop(
            client,
            bot,
            config,
            offset_store=offset_store,
            on_error=on_error,
        )
        if loop_ready is not None:
            loop_ready(loop)
        await loop.run()


async def start_polling(token: str, bot: Union[SafeVk, Router], **kwargs) -> None:
    """Shorthand for ``run(Credentials(token), bot)``."""

    await run(Credentials(token=token), bot, **kwargs)
