"""
Admin keyboard builders for the registered members screens.

Callback data layout (Telegram limit is 64 bytes):
    members:page:<page>
    members:activate:<member_id>
    members:code:<member_id>:<code>
    members:confirm:<member_id>:<code>
    members:cancel
    members:export
"""
from typing import Any, Dict, List

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from app.services.members.service import MembersPage

MAX_BUTTON_NAME_LENGTH = 32


def _short_name(name: str) -> str:
    if len(name) > MAX_BUTTON_NAME_LENGTH:
        return name[:MAX_BUTTON_NAME_LENGTH - 1].rstrip() + "…"
    return name or "-"


def get_members_page_keyboard(page: MembersPage) -> InlineKeyboardMarkup:
    """One activate button per member plus previous/next navigation."""
    buttons = [
        [InlineKeyboardButton(
            text=f"✅ Activate {_short_name(member.nice_name)}",
            callback_data=f"members:activate:{member.id}",
        )]
        for member in page.items
    ]

    navigation = []
    if page.has_previous:
        navigation.append(InlineKeyboardButton(text="⬅️ Previous", callback_data=f"members:page:{page.page - 1}"))
    if page.has_next:
        navigation.append(InlineKeyboardButton(text="Next ➡️", callback_data=f"members:page:{page.page + 1}"))
    if navigation:
        buttons.append(navigation)
    if page.total:
        buttons.append([InlineKeyboardButton(text="📤 Export CSV", callback_data="members:export")])

    return InlineKeyboardMarkup(inline_keyboard=buttons)


def get_available_codes_keyboard(member_id: int, codes: List[Dict[str, Any]]) -> InlineKeyboardMarkup:
    """Operator's unused codes for the member's package."""
    buttons = [
        [InlineKeyboardButton(text=code["code"], callback_data=f"members:code:{member_id}:{code['code']}")]
        for code in codes
    ]
    buttons.append([InlineKeyboardButton(text="⬅️ Back", callback_data="members:cancel")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def get_activation_confirm_keyboard(member_id: int, code: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [
            InlineKeyboardButton(text="✅ Confirm", callback_data=f"members:confirm:{member_id}:{code}"),
            InlineKeyboardButton(text="❌ Cancel", callback_data="members:cancel"),
        ],
    ])
