"""Command line entry point for safevk bots.

    safevk run mybot:bot --config config.json
    safevk check --config config.json
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import os
import signal
from logging.handlers import RotatingFileHandler
from typing import Any, Optional, Union

from art import tprint

from safevk.adapters.sqlite_storage import SQLiteOffsetStore
from safevk.client import build_client, build_credentials, run
from safevk.core.errors import FatalError, TransportError
from safevk.core.polling import PollingLoop
from safevk.core.routing import Router, SafeVk
from safevk.settings import Settings, load_settings

NAME = "SAFEVK"
FONT = "tarty-1"

DEFAULT_REDACT = ["VK_TOKEN"]


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    values = []
    for name in redact_cfg.get("patterns", DEFAULT_REDACT):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging(settings: Settings) -> None:
    config = settings.logging or {}
    if not config.get("enabled", True):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/safevk.log")
        if not os.path.isabs(path) and settings.config_path:
            path = os.path.join(os.path.dirname(settings.config_path), path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers, force=True)


def load_bot(target: str) -> Union[SafeVk, Router]:
    """Import ``module:attribute``; the attribute may also be a zero-argument factory."""

    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"bot target must look like 'module:attribute', got {target!r}")

    obj: Any = getattr(importlib.import_module(module_name), attr)
    if not isinstance(obj, (SafeVk, Router)) and callable(obj):
        obj = obj()
    if not isinstance(obj, (SafeVk, Router)):
        raise TypeError(f"{target} is not a SafeVk builder or Router")
    return obj


def _install_signal_handlers(loop: PollingLoop) -> None:
    event_loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            event_loop.add_signal_handler(sig, loop.stop)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; Ctrl+C falls back to KeyboardInterrupt
            pass


def _run(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    _print_banner()
    _configure_logging(settings)
    logger = logging.getLogger(__name__)

    bot = load_bot(args.bot)
    credentials = build_credentials()

    offset_store = None
    if settings.offsets_db:
        offset_store = SQLiteOffsetStore(settings.offsets_db)
        offset_store.init_db()

    router = bot.freeze() if isinstance(bot, SafeVk) else bot
    logger.info("%s routes are loaded", len(router))

    try:
        asyncio.run(
            run(
                credentials,
                router,
                settings.polling,
                wait=settings.wait,
                offset_store=offset_store,
                loop_ready=_install_signal_handlers,
            )
        )
    except FatalError:
        logger.exception("Polling terminated")
        return 1
    return 0


def _print_offsets(db_path: str) -> None:
    store = SQLiteOffsetStore(db_path)
    store.init_db()
    offsets = store.list_offsets()
    if not offsets:
        print("No persisted offsets")
    for key, offset in sorted(offsets.items()):
        print(f"Persisted offset {key}: {offset}")


def _check(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    _configure_logging(settings)
    credentials = build_credentials()

    async def _acquire() -> None:
        async with build_client(credentials, wait=settings.wait) as client:
            session = await client.get_polling_session()
            print(f"Long-poll session acquired: server={session.server} offset={session.offset}")

    try:
        asyncio.run(_acquire())
    except TransportError as exc:
        print(f"Session acquisition failed: {exc}")
        return 1

    if settings.offsets_db and os.path.exists(settings.offsets_db):
        _print_offsets(settings.offsets_db)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="safevk")
    parser.add_argument("--config", help="Path to the JSON config (default: $SAFEVK_CONFIG)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Start long polling")
    run_parser.add_argument("bot", help="Bot to serve, as module:attribute")
    subparsers.add_parser("check", help="Verify credentials by acquiring a long-poll session")

    args = parser.parse_args(argv)
    if args.command == "check":
        return _check(args)
    return _run(args)


if __name__ == "__main__":
    raise SystemExit(main())
