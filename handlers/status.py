"""/status and /sync command handlers."""

from typing import Any

from aiogram import Router, F
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import Message, CallbackQuery

from keyboards.inline import get_status_keyboard
from services.cached import get_connection_status
from services.connectivity import ConnectivityMonitor
from services.offline_queue import OfflineQueue
from utils.cache import TTLCache
from utils.logger import logger


router = Router(name="status")


def format_status(status: dict[str, Any]) -> str:
    """Render the connection status snapshot for Telegram."""
    cache_stats = status["cacheStats"]
    queue_status = status["offlineQueue"]

    lines = [
        "<b>Sync status</b>",
        "",
        f"Store: {'🟢 online' if status['online'] else '🔴 offline'}",
        f"Queued writes: {queue_status['queued']}",
        "",
        f"<b>Cache entries:</b> {cache_stats['size']}",
    ]
    for name, count in sorted(cache_stats["types"].items()):
        lines.append(f"  {name}: {count}")

    return "\n".join(lines)


@router.message(Command("status"))
async def cmd_status(
    message: Message,
    cache: TTLCache,
    queue: OfflineQueue,
    connectivity: ConnectivityMonitor,
) -> None:
    """
    Handle /status command.

    Args:
        message: Telegram message
        cache, queue, connectivity: Injected from dispatcher workflow data
    """
    status = get_connection_status(cache, queue, connectivity)
    await message.answer(
        format_status(status),
        reply_markup=get_status_keyboard(has_pending=status["offlineQueue"]["queued"] > 0)
    )


@router.callback_query(F.data == "status:refresh")
async def callback_refresh(
    callback: CallbackQuery,
    cache: TTLCache,
    queue: OfflineQueue,
    connectivity: ConnectivityMonitor,
) -> None:
    status = get_connection_status(cache, queue, connectivity)
    try:
        await callback.message.edit_text(
            format_status(status),
            reply_markup=get_status_keyboard(has_pending=status["offlineQueue"]["queued"] > 0)
        )
    except TelegramBadRequest:
        # Unchanged text
        pass
    await callback.answer()


async def _run_sync(queue: OfflineQueue, connectivity: ConnectivityMonitor, user_id: int) -> str:
    if not connectivity.is_online:
        return f"🔴 Store is offline, {len(queue)} write(s) stay queued."

    before = len(queue)
    logger.info(f"User {user_id} triggered offline queue replay ({before} pending)")
    await queue.process_queue()
    return f"📤 Replayed queue: {before - len(queue)} done, {len(queue)} still pending."


@router.message(Command("sync"))
async def cmd_sync(message: Message, queue: OfflineQueue, connectivity: ConnectivityMonitor) -> None:
    """Handle /sync command: replay queued writes now."""
    await message.answer(await _run_sync(queue, connectivity, message.from_user.id))


@router.callback_query(F.data == "status:sync")
async def callback_sync(callback: CallbackQuery, queue: OfflineQueue, connectivity: ConnectivityMonitor) -> None:
    text = await _run_sync(queue, connectivity, callback.from_user.id)
    await callback.answer()
    await callback.message.answer(text)
