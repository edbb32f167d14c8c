import asyncio
import logging
import os
import uuid

# Configure logging FIRST (before any other imports that may log)
from app.core.logging_config import setup_logging
setup_logging()

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.types import BotCommand

import admin_notifications
import config
import database
from app.core.structured_logger import log_event
from app.core.telegram_error_middleware import TelegramErrorBoundaryMiddleware
from app.handlers import router as root_router

logger = logging.getLogger(__name__)

DB_RETRY_INTERVAL_SECONDS = 30


async def retry_db_init(bot: Bot):
    """
    Re-run init_db until the database comes back, then notify the admin.

    Only started when the bot booted in degraded mode. Never raises.
    """
    logger.info(f"Starting DB initialization retry task (every {DB_RETRY_INTERVAL_SECONDS} seconds)")
    while True:
        try:
            await asyncio.sleep(DB_RETRY_INTERVAL_SECONDS)

            if database.DB_READY:
                logger.info("Database became available, stopping retry task")
                break

            logger.info("🔄 Retrying database initialization...")
            try:
                if await database.init_db():
                    logger.info("✅ DATABASE RECOVERY SUCCESSFUL, activations enabled")
                    await admin_notifications.notify_admin_recovered(bot)
                    break
                logger.warning("Database initialization retry failed, will retry later")
            except Exception as e:
                logger.warning(f"Database initialization retry error: {type(e).__name__}: {e}")
                logger.debug("Full retry error details:", exc_info=True)

        except asyncio.CancelledError:
            logger.info("DB retry task cancelled")
            break
        except Exception as e:
            logger.exception(f"Unexpected error in DB retry task: {e}")

    logger.info("DB retry task finished")


async def main():
    instance_id = os.getenv("POLLING_INSTANCE_ID", str(uuid.uuid4()))
    logger.info(f"Starting bot in {config.APP_ENV.upper()} environment (pid={os.getpid()}, instance={instance_id})")

    bot = Bot(token=config.BOT_TOKEN)
    dp = Dispatcher(storage=MemoryStorage())

    dp.update.middleware(TelegramErrorBoundaryMiddleware())
    dp.include_router(root_router)

    # The bot always starts; without a database it runs in degraded mode
    admin_notifications.reset_notification_flags()
    try:
        if await database.init_db():
            logger.info("✅ Database initialized")
        else:
            logger.error("❌ DB INIT FAILED, RUNNING IN DEGRADED MODE")
            await admin_notifications.notify_admin_degraded_mode(bot)
    except Exception as e:
        logger.exception(f"❌ DB INIT FAILED, RUNNING IN DEGRADED MODE: {type(e).__name__}: {e}")
        database.DB_READY = False
        await admin_notifications.notify_admin_degraded_mode(bot)

    background_tasks = []
    if not database.DB_READY:
        background_tasks.append(asyncio.create_task(retry_db_init(bot)))

    try:
        await bot.set_my_commands([
            BotCommand(command="members", description="Registered members"),
            BotCommand(command="export_members", description="Export registered members (CSV)"),
        ])
        logger.info("Bot commands registered")
    except Exception as e:
        logger.warning(f"Failed to register bot commands: {e}")

    try:
        log_event(
            logger,
            component="polling",
            operation="polling_start",
            outcome="success",
            correlation_id=instance_id,
        )
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        log_event(logger, component="shutdown", operation="shutdown_start", outcome="success")

        for task in background_tasks:
            if not task.done():
                task.cancel()
        for task in background_tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Error during shutdown of task {task.get_name()}: {e}")

        try:
            await database.close_pool()
        except Exception as e:
            logger.error(f"Error closing database pool: {e}")

        try:
            await bot.session.close()
            logger.info("Bot session closed")
        except Exception as e:
            logger.debug(f"Error closing bot session: {e}")

        log_event(logger, component="shutdown", operation="shutdown_completed", outcome="success")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped")
