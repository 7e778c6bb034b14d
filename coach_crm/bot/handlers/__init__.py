from aiogram import Router

from . import leads, meetings, notifications, start


def setup_routers() -> Router:
    """
    Aggregate and return root router for the bot.
    """

    router = Router(name="root")
    router.include_router(start.router)
    router.include_router(leads.router)
    router.include_router(meetings.router)
    router.include_router(notifications.router)
    return router
