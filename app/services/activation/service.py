"""
Activation Service Layer

Activates a registered member with an invitation code. The pipeline runs one
step at a time and only moves on when the previous step succeeded:

    VALIDATING -> ACTIVATING -> REDEEMING -> WALKING_INCENTIVES -> DONE

It is NOT transactional. Once the profile update has committed, later
failures leave the member active and are reported as PARTIAL_SUCCESS so the
operator reconciles instead of retrying (a retry would hit an already active
member). Batches of incentives already paid are never reversed.

All functions are business logic:
- No aiogram imports
- No Telegram calls
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import database
from app.core.structured_logger import log_event, mask_code
from app.services.invitations.service import (
    CodeLookupFailure,
    ResolvedInvitation,
    mark_code_redeemed,
    resolve_invitation_code,
)
from app.services.referrals.exceptions import IncentiveWalkError
from app.services.referrals.service import walk_referral_incentives

logger = logging.getLogger(__name__)


# ====================================================================================
# Result Types
# ====================================================================================

class ActivationStage(Enum):
    """Pipeline state machine"""
    IDLE = "idle"
    VALIDATING = "validating"
    ACTIVATING = "activating"
    REDEEMING = "redeeming"
    WALKING_INCENTIVES = "walking_incentives"
    DONE = "done"


class ActivationOutcome(Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"  # member active, follow-up steps incomplete
    FAILURE = "failure"  # nothing changed


class ActivationFailure(Enum):
    INVALID_FORMAT = "invalid_format"
    CODE_NOT_FOUND = "code_not_found"
    PROFILE_UPDATE_FAILED = "profile_update_failed"
    REDEMPTION_FAILED = "redemption_failed"
    INCENTIVE_WALK_FAILED = "incentive_walk_failed"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass
class ProfileUpdateResult:
    """Result of the profile activation write"""
    success: bool
    reason: Optional[str] = None
    message: Optional[str] = None


@dataclass
class ActivationResult:
    """Terminal result of activate_member_with_code"""
    outcome: ActivationOutcome
    member_id: int
    stage: ActivationStage
    failure: Optional[ActivationFailure] = None
    message: Optional[str] = None
    upline_user_id: Optional[int] = None
    level: Optional[int] = None
    role: Optional[str] = None
    incentive_batches: int = 0

    @property
    def success(self) -> bool:
        return self.outcome is ActivationOutcome.SUCCESS

    @property
    def should_refresh_members(self) -> bool:
        """The member's visible status changed, so cached member lists are stale."""
        return self.outcome in (ActivationOutcome.SUCCESS, ActivationOutcome.PARTIAL_SUCCESS)

    @property
    def requires_reconciliation(self) -> bool:
        return self.outcome is ActivationOutcome.PARTIAL_SUCCESS


# ====================================================================================
# Profile Activator
# ====================================================================================

async def activate_member_profile(member_id: int, invitation: ResolvedInvitation) -> ProfileUpdateResult:
    """
    Set the member active with upline, level and role taken from the resolved code.

    The code is not re-validated here. The write is check-and-set on
    status = 'inactive'; a member activated concurrently by someone else
    fails with reason "already_active".
    """
    response = await database.activate_member(
        member_id,
        invitation.upline_user_id,
        invitation.member_level,
        invitation.role,
    )
    return ProfileUpdateResult(
        success=bool(response.get("success")),
        reason=response.get("reason"),
        message=response.get("message"),
    )


# ====================================================================================
# Orchestrator
# ====================================================================================

_LOOKUP_FAILURES = {
    CodeLookupFailure.INVALID_FORMAT: ActivationFailure.INVALID_FORMAT,
    CodeLookupFailure.CODE_NOT_FOUND: ActivationFailure.CODE_NOT_FOUND,
}

_LOG_OUTCOMES = {
    ActivationOutcome.SUCCESS: ("success", "info"),
    ActivationOutcome.PARTIAL_SUCCESS: ("partial_success", "warning"),
    ActivationOutcome.FAILURE: ("failed", "info"),
}


def _finish(
    result: ActivationResult,
    code: str,
    started: float,
    correlation_id: Optional[str],
) -> ActivationResult:
    outcome, level = _LOG_OUTCOMES[result.outcome]
    reason = f"member={result.member_id} code={mask_code(code)} stage={result.stage.value}"
    if result.failure is not None:
        reason = f"{reason} failure={result.failure.value}"
    log_event(
        logger,
        component="activation",
        operation="activate_member",
        correlation_id=correlation_id,
        outcome=outcome,
        duration_ms=int((time.monotonic() - started) * 1000),
        reason=reason,
        level=level,
    )
    return result


async def activate_member_with_code(
    member_id: int,
    code: str,
    correlation_id: Optional[str] = None,
) -> ActivationResult:
    """
    Activate a member with an invitation code and pay the referral incentives.

    Steps, each attempted only if the previous one succeeded:
    1. resolve the code (no side effects)
    2. activate the member profile
    3. mark the code redeemed by the member
    4. walk the upline incentive generations

    Failures in 1-2 return FAILURE (safe to retry). Failures in 3-4 return
    PARTIAL_SUCCESS. Unexpected exceptions are logged here and never escape.

    Args:
        member_id: Registered (inactive) member to activate
        code: Invitation code selected by the operator
        correlation_id: Request identifier for logs (e.g. callback query id)

    Returns:
        ActivationResult
    """
    started = time.monotonic()
    stage = ActivationStage.VALIDATING
    invitation: Optional[ResolvedInvitation] = None
    profile_committed = False

    def done(outcome: ActivationOutcome, failure: Optional[ActivationFailure] = None,
             message: Optional[str] = None, incentive_batches: int = 0) -> ActivationResult:
        return _finish(
            ActivationResult(
                outcome=outcome,
                member_id=member_id,
                stage=stage,
                failure=failure,
                message=message,
                upline_user_id=invitation.upline_user_id if invitation else None,
                level=invitation.member_level if invitation else None,
                role=invitation.role if invitation else None,
                incentive_batches=incentive_batches,
            ),
            code,
            started,
            correlation_id,
        )

    try:
        lookup = await resolve_invitation_code(code)
        if not lookup.success:
            return done(ActivationOutcome.FAILURE, _LOOKUP_FAILURES[lookup.failure], lookup.message)
        invitation = lookup.invitation

        stage = ActivationStage.ACTIVATING
        profile = await activate_member_profile(member_id, invitation)
        if not profile.success:
            return done(
                ActivationOutcome.FAILURE,
                ActivationFailure.PROFILE_UPDATE_FAILED,
                profile.message or "Failed to update member profile",
            )
        profile_committed = True

        stage = ActivationStage.REDEEMING
        redemption = await mark_code_redeemed(code, member_id)
        if not redemption.success:
            return done(
                ActivationOutcome.PARTIAL_SUCCESS,
                ActivationFailure.REDEMPTION_FAILED,
                redemption.message or "Failed to redeem invitation code",
            )

        stage = ActivationStage.WALKING_INCENTIVES
        walk = await walk_referral_incentives(
            invitation.upline_user_id,
            invitation.role,
            member_id,
            code,
        )
        if not walk.success:
            return done(
                ActivationOutcome.PARTIAL_SUCCESS,
                ActivationFailure.INCENTIVE_WALK_FAILED,
                walk.message,
                incentive_batches=walk.batches,
            )

        stage = ActivationStage.DONE
        return done(
            ActivationOutcome.SUCCESS,
            message="User activated successfully with referral incentives applied",
            incentive_batches=walk.batches,
        )

    except asyncio.CancelledError:
        raise
    except IncentiveWalkError as e:
        logger.error(
            f"ACTIVATION_INCENTIVE_WALK_ABORTED [member={member_id}, code={mask_code(code)}, "
            f"batches_applied={e.batches_applied}, next_generation={e.next_generation}]: {e}"
        )
        return done(
            ActivationOutcome.PARTIAL_SUCCESS,
            ActivationFailure.INCENTIVE_WALK_FAILED,
            str(e)[:200],
            incentive_batches=e.batches_applied,
        )
    except Exception as e:
        logger.exception(
            f"ACTIVATION_UNEXPECTED_ERROR [member={member_id}, code={mask_code(code)}, "
            f"stage={stage.value}]: {type(e).__name__}: {e}"
        )
        if not profile_committed:
            return done(ActivationOutcome.FAILURE, ActivationFailure.UNEXPECTED_ERROR, str(e)[:200])
        failure = (
            ActivationFailure.REDEMPTION_FAILED
            if stage is ActivationStage.REDEEMING
            else ActivationFailure.INCENTIVE_WALK_FAILED
        )
        return done(ActivationOutcome.PARTIAL_SUCCESS, failure, str(e)[:200])
