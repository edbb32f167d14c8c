"""
Unit tests for invitation service layer.

Tests focus on business logic:
- Local format gate (no database access for malformed codes)
- Code resolution into upline, role and level
- Redemption passthrough and idempotency
"""
import pytest
from unittest.mock import patch, AsyncMock

from app.services.invitations.service import (
    is_valid_code_format,
    resolve_invitation_code,
    mark_code_redeemed,
    get_available_codes,
    CodeLookupFailure,
)
from app.services.invitations.exceptions import InvalidCodeFormatError


class TestIsValidCodeFormat:
    """Tests for is_valid_code_format function"""

    def test_exact_length_is_valid(self, valid_code):
        assert is_valid_code_format(valid_code) is True

    @pytest.mark.parametrize("code", ["", "SHORT", "ELIT4X9QZ2X", "ELIT4X9QZ"])
    def test_wrong_length_is_invalid(self, code):
        assert is_valid_code_format(code) is False

    def test_whitespace_counts_as_characters(self):
        """No trimming: a leading space still makes 10 characters"""
        assert is_valid_code_format(" ELIT4X9QZ") is True
        assert is_valid_code_format(" ELIT4X9QZ2") is False

    def test_non_string_is_invalid(self):
        assert is_valid_code_format(None) is False
        assert is_valid_code_format(1234567890) is False


class TestResolveInvitationCode:
    """Tests for resolve_invitation_code function"""

    @pytest.mark.asyncio
    async def test_malformed_code_skips_database(self):
        """Should fail with INVALID_FORMAT without any lookup"""
        with patch('app.services.invitations.service.database') as mock_db:
            mock_db.get_invitation_code_for_activation = AsyncMock()

            result = await resolve_invitation_code("ABC")

            assert result.success is False
            assert result.failure == CodeLookupFailure.INVALID_FORMAT
            assert result.invitation is None
            mock_db.get_invitation_code_for_activation.assert_not_called()

    @pytest.mark.asyncio
    async def test_resolves_upline_role_and_level(self, valid_code, invitation_record):
        with patch('app.services.invitations.service.database') as mock_db:
            mock_db.get_invitation_code_for_activation = AsyncMock(return_value=invitation_record)

            result = await resolve_invitation_code(valid_code)

            assert result.success is True
            assert result.failure is None
            invitation = result.invitation
            assert invitation.code == valid_code
            assert invitation.upline_user_id == 42
            assert invitation.role == "Elite_Distributor_Package"
            assert invitation.owner_level == 2
            assert invitation.member_level == 3
            mock_db.get_invitation_code_for_activation.assert_awaited_once_with(valid_code)

    @pytest.mark.asyncio
    async def test_unknown_code(self, valid_code):
        with patch('app.services.invitations.service.database') as mock_db:
            mock_db.get_invitation_code_for_activation = AsyncMock(return_value=None)

            result = await resolve_invitation_code(valid_code)

            assert result.success is False
            assert result.failure == CodeLookupFailure.CODE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_redeemed_code_is_not_found(self, valid_code, invitation_record):
        """A consumed code is indistinguishable from an unknown one"""
        invitation_record["redeemed_by"] = 999
        with patch('app.services.invitations.service.database') as mock_db:
            mock_db.get_invitation_code_for_activation = AsyncMock(return_value=invitation_record)

            result = await resolve_invitation_code(valid_code)

            assert result.success is False
            assert result.failure == CodeLookupFailure.CODE_NOT_FOUND

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field,value", [
        ("package", None),
        ("package", ""),
        ("owner_user_id", None),
        ("owner_exists", False),
    ])
    async def test_incomplete_record_is_not_found(self, valid_code, invitation_record, field, value):
        invitation_record[field] = value
        with patch('app.services.invitations.service.database') as mock_db:
            mock_db.get_invitation_code_for_activation = AsyncMock(return_value=invitation_record)

            result = await resolve_invitation_code(valid_code)

            assert result.success is False
            assert result.failure == CodeLookupFailure.CODE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_owner_without_level_counts_as_root(self, valid_code, invitation_record):
        invitation_record["owner_level"] = None
        with patch('app.services.invitations.service.database') as mock_db:
            mock_db.get_invitation_code_for_activation = AsyncMock(return_value=invitation_record)

            result = await resolve_invitation_code(valid_code)

            assert result.success is True
            assert result.invitation.owner_level == 0
            assert result.invitation.member_level == 1

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self, valid_code, invitation_record):
        with patch('app.services.invitations.service.database') as mock_db, \
             patch('app.utils.retry.compute_backoff_delay', return_value=0):
            mock_db.get_invitation_code_for_activation = AsyncMock(
                side_effect=[ConnectionError("reset"), invitation_record]
            )

            result = await resolve_invitation_code(valid_code)

            assert result.success is True
            assert mock_db.get_invitation_code_for_activation.await_count == 2

    @pytest.mark.asyncio
    async def test_non_transient_error_propagates(self, valid_code):
        with patch('app.services.invitations.service.database') as mock_db:
            mock_db.get_invitation_code_for_activation = AsyncMock(side_effect=ValueError("bad row"))

            with pytest.raises(ValueError):
                await resolve_invitation_code(valid_code)

            assert mock_db.get_invitation_code_for_activation.await_count == 1


class TestMarkCodeRedeemed:
    """Tests for mark_code_redeemed function"""

    @pytest.mark.asyncio
    async def test_redeems_code(self, valid_code):
        with patch('app.services.invitations.service.database') as mock_db:
            mock_db.set_code_redeemed = AsyncMock(return_value={
                "success": True, "already_redeemed": False, "reason": "redeemed",
                "message": "Invitation code redeemed.",
            })

            result = await mark_code_redeemed(valid_code, 501)

            assert result.success is True
            assert result.already_redeemed is False
            mock_db.set_code_redeemed.assert_awaited_once_with(valid_code, 501)

    @pytest.mark.asyncio
    async def test_repeat_for_same_user_is_success(self, valid_code):
        with patch('app.services.invitations.service.database') as mock_db:
            mock_db.set_code_redeemed = AsyncMock(return_value={
                "success": True, "already_redeemed": True, "reason": "already_redeemed_by_user",
                "message": "Invitation code was already redeemed by this member.",
            })

            result = await mark_code_redeemed(valid_code, 501)

            assert result.success is True
            assert result.already_redeemed is True

    @pytest.mark.asyncio
    async def test_redeemed_by_other_user_fails(self, valid_code):
        with patch('app.services.invitations.service.database') as mock_db:
            mock_db.set_code_redeemed = AsyncMock(return_value={
                "success": False, "already_redeemed": True, "reason": "redeemed_by_other",
                "message": "Invitation code has already been redeemed.",
            })

            result = await mark_code_redeemed(valid_code, 501)

            assert result.success is False
            assert result.message == "Invitation code has already been redeemed."

    @pytest.mark.asyncio
    async def test_malformed_code_raises(self):
        with patch('app.services.invitations.service.database') as mock_db:
            mock_db.set_code_redeemed = AsyncMock()

            with pytest.raises(InvalidCodeFormatError):
                await mark_code_redeemed("BAD", 501)

            mock_db.set_code_redeemed.assert_not_called()


class TestGetAvailableCodes:
    """Tests for get_available_codes function"""

    @pytest.mark.asyncio
    async def test_returns_owner_codes(self, valid_code):
        codes = [{"id": 7, "code": valid_code, "package": "Elite_Distributor_Package"}]
        with patch('app.services.invitations.service.database') as mock_db:
            mock_db.get_available_codes = AsyncMock(return_value=codes)

            result = await get_available_codes(42, "Elite_Distributor_Package")

            assert result == codes
            mock_db.get_available_codes.assert_awaited_once_with(42, "Elite_Distributor_Package")

    @pytest.mark.asyncio
    async def test_member_without_package_has_no_codes(self):
        with patch('app.services.invitations.service.database') as mock_db:
            mock_db.get_available_codes = AsyncMock()

            assert await get_available_codes(42, None) == []
            mock_db.get_available_codes.assert_not_called()
