"""
Activation Service Layer

Member activation with an invitation code: profile activation, code
redemption and the referral incentive walk, sequenced by one orchestrator.
"""

from app.services.activation.service import (
    activate_member_profile,
    activate_member_with_code,
    ActivationStage,
    ActivationOutcome,
    ActivationFailure,
    ActivationResult,
    ProfileUpdateResult,
)

from app.services.activation.exceptions import (
    ActivationServiceError,
    MemberNotFoundError,
    MemberAlreadyActiveError,
)

__all__ = [
    "activate_member_profile",
    "activate_member_with_code",
    "ActivationStage",
    "ActivationOutcome",
    "ActivationFailure",
    "ActivationResult",
    "ProfileUpdateResult",
    "ActivationServiceError",
    "MemberNotFoundError",
    "MemberAlreadyActiveError",
]
