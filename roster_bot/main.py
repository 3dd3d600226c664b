from __future__ import annotations

import asyncio

from .bot import RosterBot
from .commands.register import register_commands
from .config import load_settings
from .errors import BotError
from .logging_config import setup_logging
from .services import build_services


def main() -> int:
    settings = load_settings()
    log = setup_logging(settings.log_level)
    if not settings.token:
        log.error(
            "DISCORD_BOT_TOKEN is not set. "
            "Export it in your environment before running."
        )
        return 2
    try:
        services = build_services(settings)
    except BotError as exc:
        log.error("Startup failed: %s", exc)
        return 1
    bot = RosterBot(services)
    register_commands(bot, services)

    async def runner():
        try:
            async with bot:
                await bot.start(settings.token)
        except KeyboardInterrupt:
            log.info("Shutting down...")
        finally:
            if services.user_db.dirty:
                services.save_database()
            if services.applier is not None:
                await services.applier.close()
        return 0

    return asyncio.run(runner())


if __name__ == "__main__":
    raise SystemExit(main())
