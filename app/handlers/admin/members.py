"""
Registered members handlers: /members list, code selection and activation.
"""
import logging
from typing import Tuple

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message

import admin_notifications
import config
from app.constants.packages import format_package_name
from app.handlers.admin.keyboards import (
    get_activation_confirm_keyboard,
    get_available_codes_keyboard,
    get_members_page_keyboard,
)
from app.handlers.common.guards import resolve_operator
from app.handlers.common.utils import escape_display, safe_edit_text
from app.services.activation import (
    ActivationFailure,
    ActivationOutcome,
    ActivationResult,
    MemberAlreadyActiveError,
    MemberNotFoundError,
    activate_member_with_code,
)
from app.services.invitations import get_available_codes
from app.services.members import (
    days_left_to_activate,
    get_pending_member,
    list_registered_members,
    paginate_members,
)

admin_members_router = Router()
logger = logging.getLogger(__name__)

GENERIC_ERROR_TEXT = "❌ Something went wrong. Please try again later."

_FAILURE_TEXTS = {
    ActivationFailure.INVALID_FORMAT: "Invalid code format.",
    ActivationFailure.CODE_NOT_FOUND: "Invitation code not found or has been used.",
    ActivationFailure.PROFILE_UPDATE_FAILED: "The member profile could not be updated.",
    ActivationFailure.REDEMPTION_FAILED: "The invitation code could not be marked as redeemed.",
    ActivationFailure.INCENTIVE_WALK_FAILED: "Referral incentives were not fully applied.",
    ActivationFailure.UNEXPECTED_ERROR: "An unexpected error occurred.",
}


def format_activation_message(result: ActivationResult) -> str:
    """User-facing notification for a finished activation."""
    if result.outcome is ActivationOutcome.SUCCESS:
        return "✅ Account activated. Referral incentives applied."

    detail = _FAILURE_TEXTS.get(result.failure, _FAILURE_TEXTS[ActivationFailure.UNEXPECTED_ERROR])
    if result.outcome is ActivationOutcome.PARTIAL_SUCCESS:
        return (
            "⚠️ Account activated with warnings.\n"
            f"{detail}\n"
            "The administrator has been notified. Do not activate this member again."
        )
    return f"❌ Activation failed. {detail}\nNo changes were made, you can try again."


async def render_members_page(owner_id: int, page: int = 0) -> Tuple[str, InlineKeyboardMarkup]:
    """Text and keyboard of one page of the registered members list."""
    members = await list_registered_members(owner_id)
    members_page = paginate_members(members, page)

    lines = [f"<b>Registered members</b> ({members_page.total})"]
    if not members_page.items:
        lines.append("\nNo members are waiting for activation.")
    else:
        lines.append(f"Page {members_page.page + 1} of {members_page.total_pages}\n")
        offset = members_page.page * config.MEMBERS_PAGE_SIZE
        for idx, member in enumerate(members_page.items, 1):
            registered = member.registered_at.strftime("%Y-%m-%d") if member.registered_at else "N/A"
            days_left = days_left_to_activate(member.registered_at)
            window = f"{days_left} days left" if days_left > 0 else "Expired"
            lines.append(
                f"{idx + offset}. <b>{escape_display(member.nice_name)}</b>"
                f" | {escape_display(member.business_name) or 'N/A'}\n"
                f"   {escape_display(format_package_name(member.role or ''))}"
                f" | Registered: {registered} | {window}"
            )
    return "\n".join(lines), get_members_page_keyboard(members_page)


def _back_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="⬅️ Back to members", callback_data="members:cancel")],
    ])


@admin_members_router.message(Command("members"))
async def cmd_members(message: Message):
    """Registered members of the operator's downline"""
    operator = await resolve_operator(message)
    if operator is None:
        return

    try:
        text, keyboard = await render_members_page(operator["id"], 0)
        await message.answer(text, reply_markup=keyboard, parse_mode="HTML")
    except Exception as e:
        logger.exception(f"Error in cmd_members: {e}")
        await message.answer(GENERIC_ERROR_TEXT)


@admin_members_router.callback_query(F.data.startswith("members:page:"))
async def callback_members_page(callback: CallbackQuery):
    operator = await resolve_operator(callback)
    if operator is None:
        return

    try:
        page = int(callback.data.split(":")[2])
    except (IndexError, ValueError):
        await callback.answer()
        return

    text, keyboard = await render_members_page(operator["id"], page)
    await safe_edit_text(callback.message, text, reply_markup=keyboard)
    await callback.answer()


@admin_members_router.callback_query(F.data == "members:cancel")
async def callback_members_cancel(callback: CallbackQuery):
    operator = await resolve_operator(callback)
    if operator is None:
        return

    text, keyboard = await render_members_page(operator["id"], 0)
    await safe_edit_text(callback.message, text, reply_markup=keyboard)
    await callback.answer()


@admin_members_router.callback_query(F.data.startswith("members:activate:"))
async def callback_member_activate(callback: CallbackQuery):
    """Show the operator's available codes for the member's package"""
    operator = await resolve_operator(callback)
    if operator is None:
        return

    try:
        member_id = int(callback.data.split(":")[2])
    except (IndexError, ValueError):
        await callback.answer()
        return

    try:
        member = await get_pending_member(operator["id"], member_id)
    except MemberAlreadyActiveError:
        await callback.answer("This member is already active.", show_alert=True)
        return
    except MemberNotFoundError:
        await callback.answer("Member not found.", show_alert=True)
        return

    codes = await get_available_codes(operator["id"], member.role)
    package = escape_display(format_package_name(member.role or ""))
    if codes:
        text = (
            f"Activate <b>{escape_display(member.nice_name)}</b>\n"
            f"Select an available code for {package}:"
        )
    else:
        text = (
            f"Activate <b>{escape_display(member.nice_name)}</b>\n"
            f"No available codes for {package}."
        )
    await safe_edit_text(callback.message, text, reply_markup=get_available_codes_keyboard(member_id, codes))
    await callback.answer()


@admin_members_router.callback_query(F.data.startswith("members:code:"))
async def callback_member_code(callback: CallbackQuery):
    """Ask for confirmation before spending the code"""
    operator = await resolve_operator(callback)
    if operator is None:
        return

    try:
        _, _, member_id_raw, code = callback.data.split(":", 3)
        member_id = int(member_id_raw)
    except ValueError:
        await callback.answer()
        return

    text = (
        f"Code: <code>{escape_display(code)}</code>\n"
        "Are you sure you want to use this activation code for this account?"
    )
    await safe_edit_text(callback.message, text, reply_markup=get_activation_confirm_keyboard(member_id, code))
    await callback.answer()


@admin_members_router.callback_query(F.data.startswith("members:confirm:"))
async def callback_member_confirm(callback: CallbackQuery):
    """Run the activation pipeline and report its outcome"""
    operator = await resolve_operator(callback)
    if operator is None:
        return

    try:
        _, _, member_id_raw, code = callback.data.split(":", 3)
        member_id = int(member_id_raw)
    except ValueError:
        await callback.answer()
        return

    try:
        member = await get_pending_member(operator["id"], member_id)
    except MemberAlreadyActiveError:
        await callback.answer("This member is already active.", show_alert=True)
        return
    except MemberNotFoundError:
        await callback.answer("Member not found.", show_alert=True)
        return

    available = await get_available_codes(operator["id"], member.role)
    if code not in {item["code"] for item in available}:
        await callback.answer("This code is no longer available.", show_alert=True)
        return

    await callback.answer("Activating…")
    await safe_edit_text(callback.message, "⏳ Activating account and applying referral incentives…")

    result = await activate_member_with_code(member_id, code, correlation_id=callback.id)
    text = format_activation_message(result)

    if result.requires_reconciliation:
        await admin_notifications.notify_admin_partial_activation(callback.bot, result, operator["id"])

    if result.should_refresh_members:
        try:
            list_text, keyboard = await render_members_page(operator["id"], 0)
        except Exception as e:
            logger.exception(f"Members refresh failed after activation of {member_id}: {e}")
            await safe_edit_text(callback.message, text, reply_markup=_back_keyboard())
            return
        await safe_edit_text(callback.message, f"{text}\n\n{list_text}", reply_markup=keyboard)
    else:
        await safe_edit_text(callback.message, text, reply_markup=_back_keyboard())
