"""
Invitation Service Layer

Invitation code resolution, redemption and lookup of an operator's unused codes.
"""

from app.services.invitations.service import (
    is_valid_code_format,
    resolve_invitation_code,
    mark_code_redeemed,
    get_available_codes,
    CodeLookupFailure,
    ResolvedInvitation,
    InvitationLookupResult,
    RedemptionResult,
)

from app.services.invitations.exceptions import (
    InvitationServiceError,
    InvalidCodeFormatError,
)

__all__ = [
    "is_valid_code_format",
    "resolve_invitation_code",
    "mark_code_redeemed",
    "get_available_codes",
    "CodeLookupFailure",
    "ResolvedInvitation",
    "InvitationLookupResult",
    "RedemptionResult",
    "InvitationServiceError",
    "InvalidCodeFormatError",
]
