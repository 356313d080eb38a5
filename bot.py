"""Entry point: wires the store, cache, offline queue, scheduler and operator bot."""

import asyncio
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncEngine

from config import Settings, settings as default_settings
from database.db import close_db, create_engine, create_session_maker, init_db
from handlers import status
from middleware.auth import AdminMiddleware
from scheduler import tasks
from services.connectivity import ConnectivityMonitor
from services.document_store import DocumentStore
from services.notifier import FailureNotifier
from services.offline_queue import OfflineQueue
from utils.cache import TTLCache
from utils.logger import logger
from utils.storage import FileStorage


@dataclass
class Services:
    """Process-wide components, created once at startup."""

    engine: AsyncEngine
    store: DocumentStore
    storage: FileStorage
    cache: TTLCache
    connectivity: ConnectivityMonitor
    queue: OfflineQueue


def build_services(settings: Settings) -> Services:
    """Construct all components. Nothing connects until the loop runs."""
    engine = create_engine(settings.database_url)
    store = DocumentStore(create_session_maker(engine))
    storage = FileStorage(settings.data_dir)
    cache = TTLCache(
        ttls=settings.cache_ttl_seconds,
        default_ttl=settings.cache_default_ttl_seconds,
    )
    connectivity = ConnectivityMonitor(online=False)
    queue = OfflineQueue(
        store,
        storage,
        connectivity,
        storage_key=settings.offline_queue_storage_key,
        max_retries=settings.offline_queue_max_retries,
    )
    return Services(
        engine=engine,
        store=store,
        storage=storage,
        cache=cache,
        connectivity=connectivity,
        queue=queue,
    )


def setup_scheduler(scheduler: AsyncIOScheduler, services: Services, settings: Settings) -> None:
    scheduler.add_job(
        tasks.check_connectivity,
        trigger='interval',
        seconds=settings.connectivity_check_seconds,
        args=[services.connectivity, services.store, settings.connectivity_timeout_seconds],
        id='check_connectivity',
        replace_existing=True
    )

    scheduler.add_job(
        tasks.log_queue_status,
        trigger='interval',
        minutes=5,
        args=[services.queue],
        id='log_queue_status',
        replace_existing=True
    )

    scheduler.add_job(
        tasks.scheduler_heartbeat,
        trigger='interval',
        minutes=30,
        id='scheduler_heartbeat',
        replace_existing=True
    )


def check_heartbeat() -> None:
    """Warn if the previous run's scheduler went quiet."""
    heartbeat_file = tasks.HEARTBEAT_FILE
    if not os.path.exists(heartbeat_file):
        return
    try:
        with open(heartbeat_file, "r") as f:
            last_beat = datetime.fromisoformat(f.read().strip())
        if datetime.now(timezone.utc) - last_beat > timedelta(minutes=60):
            logger.warning(
                f"Scheduler was stale! Last heartbeat: {last_beat.isoformat()}. "
                f"Possible scheduler outage detected."
            )
    except Exception as e:
        logger.error(f"Error reading heartbeat file: {e}")


async def start_services(services: Services, scheduler: AsyncIOScheduler, settings: Settings) -> None:
    logger.info("Service starting...")

    try:
        await init_db(services.engine)
    except Exception:
        logger.warning("Document store unreachable at startup, starting offline")

    # First probe decides the initial state; going online replays the queue
    await tasks.check_connectivity(
        services.connectivity, services.store, settings.connectivity_timeout_seconds
    )

    logger.info("Setting up scheduler...")
    setup_scheduler(scheduler, services, settings)
    check_heartbeat()
    scheduler.start()
    logger.info("Scheduler started with 3 tasks")


async def stop_services(services: Services, scheduler: AsyncIOScheduler) -> None:
    logger.info("Service shutting down...")

    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")

    await services.queue.wait_idle()
    await close_db(services.engine)

    logger.info("Service stopped")


async def run_bot(services: Services, scheduler: AsyncIOScheduler, settings: Settings) -> None:
    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )
    services.queue.on_permanent_failure(FailureNotifier(bot, settings.admin_ids))

    dp = Dispatcher(
        cache=services.cache,
        queue=services.queue,
        connectivity=services.connectivity,
    )

    async def on_startup(bot: Bot) -> None:
        await start_services(services, scheduler, settings)
        bot_info = await bot.get_me()
        logger.info(f"Bot started: @{bot_info.username}")

    async def on_shutdown(bot: Bot) -> None:
        await stop_services(services, scheduler)

    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)

    dp.message.middleware(AdminMiddleware(settings.admin_ids))
    dp.callback_query.middleware(AdminMiddleware(settings.admin_ids))

    dp.include_router(status.router)

    logger.info("Starting polling...")
    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await bot.session.close()


async def run_headless(services: Services, scheduler: AsyncIOScheduler, settings: Settings) -> None:
    await start_services(services, scheduler, settings)
    try:
        await asyncio.Event().wait()
    finally:
        await stop_services(services, scheduler)


async def main(settings: Settings = default_settings) -> None:
    """Run the service."""
    services = build_services(settings)
    scheduler = AsyncIOScheduler()

    if settings.bot_token:
        await run_bot(services, scheduler, settings)
    else:
        logger.info("BOT_TOKEN not set, running without operator bot")
        await run_headless(services, scheduler, settings)


if __name__ == "__main__":
    asyncio.run(main())
