"""Telegram alerts for queued writes that failed permanently."""

import html
from collections.abc import Iterable

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from services.operations import QueuedOperation
from utils.logger import logger


def format_failure(operation: QueuedOperation, error: BaseException) -> str:
    # Sent with HTML parse mode
    document = html.escape(f"{operation.collection}/{operation.doc_id}")
    return (
        f"🚨 <b>Sync failed permanently</b>\n\n"
        f"Operation: {operation.kind}\n"
        f"Document: {document}\n"
        f"Attempts: {operation.retry_count}\n"
        f"Error: {html.escape(str(error))}\n\n"
        f"The change was dropped from the offline queue."
    )


class FailureNotifier:
    """Permanent-failure listener that messages every admin."""

    def __init__(self, bot: Bot, admin_ids: Iterable[int]):
        self.bot = bot
        self.admin_ids = list(admin_ids)

    async def __call__(self, operation: QueuedOperation, error: BaseException) -> None:
        text = format_failure(operation, error)
        for admin_id in self.admin_ids:
            try:
                await self.bot.send_message(chat_id=admin_id, text=text)
            except TelegramAPIError as e:
                logger.error(
                    f"Failed to notify admin {admin_id} about failed operation {operation.id}: {e}"
                )
