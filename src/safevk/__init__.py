"""Route VK long-poll updates to typed async handlers.

    from safevk import Ctx, Filter, Message, SafeVk, start_polling

    async def start(ctx: Ctx[Message]) -> None:
        await ctx.reply("it works!")

    bot = SafeVk().command("/start", start, Filter.STRICT)
    asyncio.run(start_polling(token, bot))
"""

from safevk.client import Credentials, run, start_polling
from safevk.core.config import PollingConfig
from safevk.core.dispatch import DispatchOutcome, Dispatcher
from safevk.core.errors import (
    ApiError,
    DispatchError,
    ExpiredError,
    ExtractionError,
    FatalError,
    HandlerError,
    SafeVkError,
    TransientError,
    TransportError,
)
from safevk.core.extract import Ctx, parse_response
from safevk.core.filters import Filter
from safevk.core.models import PollingSession, Update, UpdateBatch
from safevk.core.polling import LoopState, PollingLoop, run_polling
from safevk.core.responses import LongPollServer, Message
from safevk.core.routing import Route, Router, SafeVk

__all__ = [
    "ApiError",
    "Credentials",
    "Ctx",
    "DispatchError",
    "DispatchOutcome",
    "Dispatcher",
    "ExpiredError",
    "ExtractionError",
    "FatalError",
    "Filter",
    "HandlerError",
    "LongPollServer",
    "LoopState",
    "Message",
    "PollingConfig",
    "PollingLoop",
    "PollingSession",
    "Route",
    "Router",
    "SafeVk",
    "SafeVkError",
    "TransientError",
    "TransportError",
    "Update",
    "UpdateBatch",
    "parse_response",
    "run",
    "run_polling",
    "start_polling",
]
