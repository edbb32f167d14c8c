"""
Admin Notifications Module

Telegram notifications to the admin chat about states that need a human:
degraded mode, recovery, and activations that completed only partially.
"""
import logging
from typing import Optional

from aiogram import Bot

import config
from app.services.activation.service import ActivationResult

logger = logging.getLogger(__name__)

# One degraded/recovered message per transition, not per retry
_degraded_notification_sent = False
_recovered_notification_sent = False


def reset_notification_flags():
    global _degraded_notification_sent, _recovered_notification_sent
    _degraded_notification_sent = False
    _recovered_notification_sent = False


async def send_admin_notification(
    bot: Bot,
    message: str,
    notification_type: str = "custom",
    parse_mode: Optional[str] = None,
    **kwargs
) -> bool:
    """
    Send a message to the admin chat.

    Delivery failures are logged and reported as False; they never raise.

    Args:
        bot: Telegram bot instance
        message: Notification text
        notification_type: Label for logs ("degraded_mode", "partial_activation", ...)
        parse_mode: None, "HTML" or "Markdown"
        **kwargs: Passed through to bot.send_message
    """
    if not config.ADMIN_TELEGRAM_ID:
        logger.warning(f"ADMIN_NOTIFICATION_SKIPPED [type={notification_type}, reason=admin_id_not_configured]")
        return False

    try:
        await bot.send_message(
            config.ADMIN_TELEGRAM_ID,
            message,
            parse_mode=parse_mode,
            **kwargs
        )
        logger.info(f"ADMIN_NOTIFICATION_SENT [type={notification_type}, admin_id={config.ADMIN_TELEGRAM_ID}]")
        return True
    except Exception as e:
        logger.error(
            f"ADMIN_NOTIFICATION_FAILED [type={notification_type}, admin_id={config.ADMIN_TELEGRAM_ID}, "
            f"error={type(e).__name__}: {str(e)[:100]}]"
        )
        return False


async def notify_admin_degraded_mode(bot: Bot):
    global _degraded_notification_sent
    if _degraded_notification_sent:
        return
    message = "⚠️ Database unavailable. The bot is running in degraded mode; activations are disabled."
    if await send_admin_notification(bot, message, notification_type="degraded_mode"):
        _degraded_notification_sent = True


async def notify_admin_recovered(bot: Bot):
    global _recovered_notification_sent
    if _recovered_notification_sent:
        return
    message = "✅ Database connection restored. Activations are available again."
    if await send_admin_notification(bot, message, notification_type="recovered"):
        _recovered_notification_sent = True


def format_partial_activation_message(result: ActivationResult, operator_id: int) -> str:
    """Reconciliation note for an activation that stopped after the member went active."""
    failure = result.failure.value if result.failure else "unknown"
    lines = [
        "⚠️ Activation needs manual reconciliation",
        f"Member: {result.member_id}",
        f"Operator: {operator_id}",
        f"Upline: {result.upline_user_id}",
        f"Package: {result.role}",
        f"Stopped at: {result.stage.value} ({failure})",
        f"Incentive batches applied: {result.incentive_batches}",
    ]
    if result.message:
        lines.append(f"Details: {result.message[:200]}")
    return "\n".join(lines)


async def notify_admin_partial_activation(bot: Bot, result: ActivationResult, operator_id: int) -> bool:
    return await send_admin_notification(
        bot,
        format_partial_activation_message(result, operator_id),
        notification_type="partial_activation",
    )
