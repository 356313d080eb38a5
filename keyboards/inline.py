"""Inline keyboards: sync status actions."""

from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton
from aiogram.utils.keyboard import InlineKeyboardBuilder


def get_status_keyboard(has_pending: bool = False) -> InlineKeyboardMarkup:
    """
    Get status message keyboard.

    Args:
        has_pending: Whether queued writes exist (shows sync button)

    Returns:
        InlineKeyboardMarkup with refresh and sync buttons
    """
    builder = InlineKeyboardBuilder()

    builder.row(
        InlineKeyboardButton(
            text="🔄 Refresh",
            callback_data="status:refresh"
        )
    )
    if has_pending:
        builder.row(
            InlineKeyboardButton(
                text="📤 Sync now",
                callback_data="status:sync"
            )
        )

    return builder.as_markup()
