"""
Middlewares for the Telegram bot.

Currently includes:
- TrainerContextMiddleware: resolves the trainer profile and data session.
"""

from .trainer_context import TrainerContextMiddleware

__all__ = ["TrainerContextMiddleware"]
