"""
Tests for the registered members screens: activation messages, keyboards
and the confirm callback flow.
"""
import pytest
from datetime import datetime, timezone
from unittest.mock import patch, AsyncMock, MagicMock

from app.handlers.admin import members as members_handlers
from app.handlers.admin.keyboards import (
    get_activation_confirm_keyboard,
    get_available_codes_keyboard,
    get_members_page_keyboard,
)
from app.services.activation import (
    ActivationFailure,
    ActivationOutcome,
    ActivationResult,
    ActivationStage,
)
from app.services.members import MembersPage, RegisteredMember

HANDLERS = 'app.handlers.admin.members'


def _result(outcome, failure=None, stage=ActivationStage.DONE):
    return ActivationResult(outcome=outcome, member_id=501, stage=stage, failure=failure)


def _registered(member_id):
    return RegisteredMember(
        id=member_id,
        nice_name=f"Member {member_id}",
        email=None,
        role="Elite_Distributor_Package",
        business_name="Shop",
        business_address=None,
        status="inactive",
        registered_at=datetime(2024, 1, 5, tzinfo=timezone.utc),
    )


def _callback(data):
    callback = MagicMock()
    callback.data = data
    callback.id = "cb-501"
    callback.from_user.id = 9001
    callback.answer = AsyncMock()
    callback.message.edit_text = AsyncMock()
    callback.message.answer = AsyncMock()
    return callback


class TestFormatActivationMessage:

    def test_success(self):
        text = members_handlers.format_activation_message(_result(ActivationOutcome.SUCCESS))
        assert text.startswith("✅")

    def test_partial_success_warns(self):
        text = members_handlers.format_activation_message(_result(
            ActivationOutcome.PARTIAL_SUCCESS,
            ActivationFailure.INCENTIVE_WALK_FAILED,
            ActivationStage.WALKING_INCENTIVES,
        ))
        assert "activated with warnings" in text
        assert "Referral incentives were not fully applied." in text

    def test_failure_names_cause(self):
        text = members_handlers.format_activation_message(_result(
            ActivationOutcome.FAILURE, ActivationFailure.CODE_NOT_FOUND, ActivationStage.VALIDATING,
        ))
        assert text.startswith("❌")
        assert "Invitation code not found or has been used." in text


class TestKeyboards:

    def test_members_page_navigation(self):
        page = MembersPage(items=[_registered(1), _registered(2)], page=1, total_pages=3, total=25)
        keyboard = get_members_page_keyboard(page)

        callbacks = [button.callback_data for row in keyboard.inline_keyboard for button in row]
        assert callbacks == [
            "members:activate:1",
            "members:activate:2",
            "members:page:0",
            "members:page:2",
            "members:export",
        ]

    def test_empty_page_has_no_buttons(self):
        keyboard = get_members_page_keyboard(MembersPage(items=[], page=0, total_pages=1, total=0))
        assert keyboard.inline_keyboard == []

    def test_codes_and_confirm_callbacks(self):
        codes = get_available_codes_keyboard(501, [{"code": "ELIT4X9QZ2"}])
        assert codes.inline_keyboard[0][0].callback_data == "members:code:501:ELIT4X9QZ2"
        assert codes.inline_keyboard[-1][0].callback_data == "members:cancel"

        confirm = get_activation_confirm_keyboard(501, "ELIT4X9QZ2")
        assert confirm.inline_keyboard[0][0].callback_data == "members:confirm:501:ELIT4X9QZ2"
        for row in confirm.inline_keyboard:
            for button in row:
                assert len(button.callback_data.encode()) <= 64


class TestConfirmCallback:
    """Tests for callback_member_confirm handler"""

    @pytest.mark.asyncio
    async def test_success_refreshes_list(self):
        callback = _callback("members:confirm:501:ELIT4X9QZ2")
        result = _result(ActivationOutcome.SUCCESS)

        with patch(f'{HANDLERS}.resolve_operator', AsyncMock(return_value={"id": 15})), \
             patch(f'{HANDLERS}.get_pending_member', AsyncMock(return_value=_registered(501))), \
             patch(f'{HANDLERS}.get_available_codes', AsyncMock(return_value=[{"code": "ELIT4X9QZ2"}])), \
             patch(f'{HANDLERS}.activate_member_with_code', AsyncMock(return_value=result)) as mock_activate, \
             patch(f'{HANDLERS}.render_members_page', AsyncMock(return_value=("LIST", None))) as mock_render, \
             patch(f'{HANDLERS}.admin_notifications') as mock_notifications:
            mock_notifications.notify_admin_partial_activation = AsyncMock()

            await members_handlers.callback_member_confirm(callback)

            mock_activate.assert_awaited_once_with(501, "ELIT4X9QZ2", correlation_id="cb-501")
            mock_render.assert_awaited_once_with(15, 0)
            mock_notifications.notify_admin_partial_activation.assert_not_called()
            final_text = callback.message.edit_text.await_args_list[-1].args[0]
            assert final_text.endswith("LIST")

    @pytest.mark.asyncio
    async def test_partial_success_notifies_admin(self):
        callback = _callback("members:confirm:501:ELIT4X9QZ2")
        result = _result(
            ActivationOutcome.PARTIAL_SUCCESS,
            ActivationFailure.REDEMPTION_FAILED,
            ActivationStage.REDEEMING,
        )

        with patch(f'{HANDLERS}.resolve_operator', AsyncMock(return_value={"id": 15})), \
             patch(f'{HANDLERS}.get_pending_member', AsyncMock(return_value=_registered(501))), \
             patch(f'{HANDLERS}.get_available_codes', AsyncMock(return_value=[{"code": "ELIT4X9QZ2"}])), \
             patch(f'{HANDLERS}.activate_member_with_code', AsyncMock(return_value=result)), \
             patch(f'{HANDLERS}.render_members_page', AsyncMock(return_value=("LIST", None))) as mock_render, \
             patch(f'{HANDLERS}.admin_notifications') as mock_notifications:
            mock_notifications.notify_admin_partial_activation = AsyncMock(return_value=True)

            await members_handlers.callback_member_confirm(callback)

            mock_notifications.notify_admin_partial_activation.assert_awaited_once_with(
                callback.bot, result, 15
            )
            mock_render.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_keeps_list_untouched(self):
        callback = _callback("members:confirm:501:ELIT4X9QZ2")
        result = _result(ActivationOutcome.FAILURE, ActivationFailure.CODE_NOT_FOUND, ActivationStage.VALIDATING)

        with patch(f'{HANDLERS}.resolve_operator', AsyncMock(return_value={"id": 15})), \
             patch(f'{HANDLERS}.get_pending_member', AsyncMock(return_value=_registered(501))), \
             patch(f'{HANDLERS}.get_available_codes', AsyncMock(return_value=[{"code": "ELIT4X9QZ2"}])), \
             patch(f'{HANDLERS}.activate_member_with_code', AsyncMock(return_value=result)), \
             patch(f'{HANDLERS}.render_members_page', AsyncMock()) as mock_render:

            await members_handlers.callback_member_confirm(callback)

            mock_render.assert_not_called()
            final_text = callback.message.edit_text.await_args_list[-1].args[0]
            assert final_text.startswith("❌ Activation failed.")

    @pytest.mark.asyncio
    async def test_foreign_code_is_refused(self):
        callback = _callback("members:confirm:501:ELIT4X9QZ2")

        with patch(f'{HANDLERS}.resolve_operator', AsyncMock(return_value={"id": 15})), \
             patch(f'{HANDLERS}.get_pending_member', AsyncMock(return_value=_registered(501))), \
             patch(f'{HANDLERS}.get_available_codes', AsyncMock(return_value=[])), \
             patch(f'{HANDLERS}.activate_member_with_code', AsyncMock()) as mock_activate:

            await members_handlers.callback_member_confirm(callback)

            mock_activate.assert_not_called()
            callback.answer.assert_awaited_once_with("This code is no longer available.", show_alert=True)

    @pytest.mark.asyncio
    async def test_unlinked_account_stops_early(self):
        callback = _callback("members:confirm:501:ELIT4X9QZ2")

        with patch(f'{HANDLERS}.resolve_operator', AsyncMock(return_value=None)), \
             patch(f'{HANDLERS}.activate_member_with_code', AsyncMock()) as mock_activate:

            await members_handlers.callback_member_confirm(callback)

            mock_activate.assert_not_called()
