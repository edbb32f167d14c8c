"""
Shared handler utilities: safe message edits and display helpers.
"""
import html
import logging
from typing import Optional

from aiogram.exceptions import TelegramBadRequest
from aiogram.types import InlineKeyboardMarkup, Message

logger = logging.getLogger(__name__)

MAX_DISPLAY_NAME_LENGTH = 64

_RECOVERABLE_EDIT_ERRORS = (
    "message to edit not found",
    "message can't be edited",
    "message is inaccessible",
)


def escape_display(value: Optional[str], limit: int = MAX_DISPLAY_NAME_LENGTH) -> str:
    """HTML-escaped, length-limited text for user-supplied fields."""
    if not value:
        return ""
    value = value.strip()
    if len(value) > limit:
        value = value[:limit].rstrip() + "…"
    return html.escape(value)


async def safe_edit_text(
    message: Message,
    text: str,
    reply_markup: Optional[InlineKeyboardMarkup] = None,
    parse_mode: Optional[str] = "HTML",
):
    """
    Edit a bot message in place, falling back to a new message.

    "message is not modified" is ignored; a message that can no longer be
    edited is replaced by a fresh answer in the same chat.
    """
    try:
        await message.edit_text(text, reply_markup=reply_markup, parse_mode=parse_mode)
    except TelegramBadRequest as e:
        error_msg = str(e).lower()
        if "message is not modified" in error_msg:
            return
        if any(marker in error_msg for marker in _RECOVERABLE_EDIT_ERRORS):
            logger.info(f"Message cannot be edited, sending a new one: {e}")
            await message.answer(text, reply_markup=reply_markup, parse_mode=parse_mode)
            return
        raise
