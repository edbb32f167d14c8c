"""
DB readiness and operator guards. Shared across handler domains.
"""
import logging
from typing import Any, Dict, Optional, Union

from aiogram.types import CallbackQuery, Message

import database

logger = logging.getLogger(__name__)

DB_UNAVAILABLE_TEXT = "❌ Database is unavailable, try again later."
ACCESS_DENIED_TEXT = "⛔ This Telegram account is not linked to a merchant profile."


async def _reply(event: Union[Message, CallbackQuery], text: str):
    if isinstance(event, CallbackQuery):
        await event.answer(text, show_alert=True)
    else:
        await event.answer(text)


async def ensure_db_ready(event: Union[Message, CallbackQuery]) -> bool:
    """False (and the user is told) while the bot runs in degraded mode."""
    if not database.DB_READY:
        await _reply(event, DB_UNAVAILABLE_TEXT)
        return False
    return True


async def resolve_operator(event: Union[Message, CallbackQuery]) -> Optional[Dict[str, Any]]:
    """
    Member record of the Telegram user driving the handler.

    Returns None (after telling the user) when the database is down or the
    account is not linked to a member.
    """
    if not await ensure_db_ready(event):
        return None

    telegram_id = event.from_user.id
    operator = await database.get_member_by_telegram_id(telegram_id)
    if operator is None:
        logger.warning(f"Unauthorized members access attempt by user {telegram_id}")
        await _reply(event, ACCESS_DENIED_TEXT)
        return None
    return operator
