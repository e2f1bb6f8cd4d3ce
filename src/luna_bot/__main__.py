"""CLI entry point for luna-bot."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from luna_bot.app import LunaBotApp, build_store
from luna_bot.config import AppConfig, load_config
from luna_bot.log import get_logger, setup_logging

logger = get_logger(__name__)


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="luna-bot",
        description="Discord companion bot with Gemini key rotation and conversation memory",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_config_args(subparsers.add_parser("start", help="Start the bot"))
    _add_config_args(subparsers.add_parser("config-check", help="Validate configuration"))

    stats_parser = subparsers.add_parser("stats", help="Show stored statistics for a user")
    stats_parser.add_argument("user_id", help="Discord user id")
    _add_config_args(stats_parser)

    _add_config_args(
        subparsers.add_parser("cleanup", help="Remove expired history from the conversations file")
    )

    args = parser.parse_args()

    if args.command is None:
        # Default to start
        args.command = "start"
        args.config = "config.yaml"
        args.env = ".env"

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "stats":
        _show_stats(_load_or_exit(args.config, args.env), args.user_id)
    elif args.command == "cleanup":
        _cleanup(_load_or_exit(args.config, args.env))
    elif args.command == "start":
        _run(args.config, args.env)


def _load_or_exit(config_path: str, env_path: str) -> AppConfig:
    try:
        config = load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    setup_logging(config.log_level, config.log_format)
    return config


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    try:
        config = load_config(config_path, env_path)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Configuration valid: {config_path}")
    print(f"  Bot name: {config.bot_name}")
    print(f"  Chat channel: {config.discord.chat_channel_id or '(not set)'}")
    print(f"  Image channel: {config.discord.image_channel_id or '(not set)'}")
    print(f"  Gemini model: {config.gemini.model}")
    print(f"  API keys loaded: {len(config.gemini.api_keys)}")
    print(f"  Image sources: {len(config.images.sources)}")
    print(f"  Conversations: {config.storage.conversations_path}")
    print(
        f"  Retention: {config.storage.retention_days} days, "
        f"max {config.storage.max_history} entries per user"
    )


def _show_stats(config: AppConfig, user_id: str) -> None:
    store = build_store(config)
    store.load()
    stats = store.get_statistics_snapshot(user_id)
    if stats is None:
        print(f"No data for user {user_id}")
        return

    record = store.get_record(user_id)
    print(f"User: {record.display_name} ({user_id})")
    print(f"  Total messages      : {stats.total_messages}")
    print(f"  Images generated    : {stats.images_generated}")
    print(f"  Relationship level  : {stats.relationship_level}")
    print(f"  Favorite intent     : {stats.favorite_intent}")
    print(f"  Days together       : {stats.days_together}")
    print(f"  Special moments     : {len(stats.special_moments)}")
    print(f"  Current conversation: {stats.current_conversation_length} messages")


def _cleanup(config: AppConfig) -> None:
    store = build_store(config)
    store.load()
    removed = store.sweep_all_users_retention()
    if removed and not store.flush_sync():
        sys.exit(1)
    print(f"Removed {removed} expired entries")


def _run(config_path: str, env_path: str) -> None:
    """Load config and run until SIGINT/SIGTERM, then flush and exit."""
    config = _load_or_exit(config_path, env_path)

    async def _async_main() -> None:
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def _signal_handler() -> None:
            logger.info("shutdown_requested")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(_signal_handler))

        def _exception_handler(loop: asyncio.AbstractEventLoop, context: dict) -> None:
            logger.error(
                "unhandled_async_error",
                message=context.get("message"),
                error=str(context.get("exception")),
            )

        loop.set_exception_handler(_exception_handler)

        app = LunaBotApp(config)
        try:
            await app.start()
            await stop_event.wait()
        finally:
            await app.stop()

    asyncio.run(_async_main())


if __name__ == "__main__":
    main()
