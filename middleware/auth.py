"""Admin whitelist middleware for the operator commands."""

from typing import Any, Awaitable, Callable, Iterable

from aiogram import BaseMiddleware
from aiogram.types import Message, CallbackQuery, TelegramObject

from utils.logger import logger


class AdminMiddleware(BaseMiddleware):
    """
    Lets through only Telegram users listed in ADMIN_IDS.

    Everyone else gets a reply with their Telegram ID so it can be added.
    """

    def __init__(self, admin_ids: Iterable[int]):
        self.admin_ids = set(admin_ids)

    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        user = None
        if isinstance(event, (Message, CallbackQuery)):
            user = event.from_user

        if not user:
            return await handler(event, data)

        if user.id in self.admin_ids:
            return await handler(event, data)

        logger.warning(f"Access denied for user {user.id}")

        if isinstance(event, Message):
            await event.answer(
                f"🚫 Access denied.\n\n"
                f"Your ID: <code>{user.id}</code>\n\n"
                f"Send it to an administrator to get access.",
                parse_mode="HTML"
            )
        elif isinstance(event, CallbackQuery):
            await event.answer(
                "Access denied. Contact an administrator.",
                show_alert=True
            )
        return None
