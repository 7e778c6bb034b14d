from __future__ import annotations

import asyncio

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage

from coach_crm.bot.handlers import setup_routers
from coach_crm.bot.middlewares import TrainerContextMiddleware
from coach_crm.core import get_settings
from coach_crm.core.logging import configure_logging
from coach_crm.db import get_supabase_client
from coach_crm.refresh import RefreshScheduler


async def _run_bot() -> None:
    settings = get_settings()
    logger = configure_logging()

    if not settings.bot_token:
        raise RuntimeError("Missing required environment variables: BOT_TOKEN")

    client = get_supabase_client()
    trainer_context = TrainerContextMiddleware(client)

    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    dp = Dispatcher(storage=MemoryStorage())
    dp.message.middleware(trainer_context)
    dp.callback_query.middleware(trainer_context)
    dp.include_router(setup_routers())

    logger.info("Starting bot in %s environment", settings.environment)

    scheduler = RefreshScheduler(lambda: trainer_context.sessions.values())
    await scheduler.start()

    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await scheduler.stop()
        await bot.session.close()
        await client.close()


def main() -> None:
    asyncio.run(_run_bot())


if __name__ == "__main__":
    main()
