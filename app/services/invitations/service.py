"""
Invitation Service - code resolution and redemption

Business logic only: no aiogram imports, no Telegram calls.
Expected failures come back as result objects; exceptions are reserved for
programming errors and infrastructure failures.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import config
import database
from app.core.structured_logger import mask_code
from app.services.invitations.exceptions import InvalidCodeFormatError
from app.utils.retry import retry_async

logger = logging.getLogger(__name__)


class CodeLookupFailure(Enum):
    """Why a code could not be resolved"""
    INVALID_FORMAT = "invalid_format"
    CODE_NOT_FOUND = "code_not_found"


@dataclass
class ResolvedInvitation:
    """Upline data carried by a valid, unredeemed invitation code"""
    code: str
    upline_user_id: int
    role: str
    owner_level: int

    @property
    def member_level(self) -> int:
        """Level of the member activated with this code: one below the owner."""
        return self.owner_level + 1


@dataclass
class InvitationLookupResult:
    """Result of resolve_invitation_code"""
    success: bool
    invitation: Optional[ResolvedInvitation] = None
    failure: Optional[CodeLookupFailure] = None
    message: Optional[str] = None


@dataclass
class RedemptionResult:
    """Result of mark_code_redeemed"""
    success: bool
    already_redeemed: bool = False
    message: Optional[str] = None


def is_valid_code_format(code: Any) -> bool:
    """
    Local format gate: a code is a string of exactly INVITATION_CODE_LENGTH characters.

    No trimming; " AB12CD34E" is 10 characters and passes the gate but will not
    be found.
    """
    return isinstance(code, str) and len(code) == config.INVITATION_CODE_LENGTH


async def resolve_invitation_code(code: str) -> InvitationLookupResult:
    """
    Resolve an invitation code into upline, role and level.

    Malformed codes are rejected before any database access. The lookup is
    read-only and retried on transient infrastructure errors.

    Args:
        code: Candidate invitation code

    Returns:
        InvitationLookupResult with a ResolvedInvitation on success, or
        failure INVALID_FORMAT / CODE_NOT_FOUND
    """
    if not is_valid_code_format(code):
        return InvitationLookupResult(
            success=False,
            failure=CodeLookupFailure.INVALID_FORMAT,
            message="Invalid code format",
        )

    record = await retry_async(lambda: database.get_invitation_code_for_activation(code))

    if not record:
        logger.info(f"INVITATION_CODE_NOT_FOUND [code={mask_code(code)}]")
        return InvitationLookupResult(
            success=False,
            failure=CodeLookupFailure.CODE_NOT_FOUND,
            message="Invitation code not found or has been used",
        )

    if record.get("redeemed_by") is not None:
        logger.info(f"INVITATION_CODE_ALREADY_USED [code={mask_code(code)}]")
        return InvitationLookupResult(
            success=False,
            failure=CodeLookupFailure.CODE_NOT_FOUND,
            message="Invitation code not found or has been used",
        )

    if not record.get("package") or not record.get("owner_user_id") or not record.get("owner_exists", True):
        logger.warning(f"INVITATION_CODE_INCOMPLETE [code={mask_code(code)}]")
        return InvitationLookupResult(
            success=False,
            failure=CodeLookupFailure.CODE_NOT_FOUND,
            message="Invalid invitation code details",
        )

    owner_level = record.get("owner_level")
    if owner_level is None:
        owner_level = 0

    return InvitationLookupResult(
        success=True,
        invitation=ResolvedInvitation(
            code=code,
            upline_user_id=record["owner_user_id"],
            role=record["package"],
            owner_level=int(owner_level),
        ),
    )


async def mark_code_redeemed(code: str, user_id: int) -> RedemptionResult:
    """
    Mark a code as consumed by user_id.

    Safe to repeat: a second call for the same code and user reports
    already_redeemed=True and changes nothing.

    Raises:
        InvalidCodeFormatError: code was never resolved (caller bug)
    """
    if not is_valid_code_format(code):
        raise InvalidCodeFormatError(f"Cannot redeem malformed code {mask_code(code)}")

    response = await database.set_code_redeemed(code, user_id)
    return RedemptionResult(
        success=bool(response.get("success")),
        already_redeemed=bool(response.get("already_redeemed")),
        message=response.get("message"),
    )


async def get_available_codes(owner_id: int, package: str) -> List[Dict[str, Any]]:
    """Unredeemed codes the operator owns for the given package."""
    if not package:
        return []
    return await retry_async(lambda: database.get_available_codes(owner_id, package))
