"""
Referral Service Layer

Generational referral incentive payout, walked in bounded batches.
"""

from app.services.referrals.service import (
    apply_incentive_batch,
    walk_referral_incentives,
    generation_window,
    IncentiveBatchResult,
    IncentiveWalkResult,
)

from app.services.referrals.exceptions import (
    ReferralServiceError,
    IncentiveWalkError,
    IncentiveWalkLimitExceededError,
    IncentiveBatchError,
)

__all__ = [
    "apply_incentive_batch",
    "walk_referral_incentives",
    "generation_window",
    "IncentiveBatchResult",
    "IncentiveWalkResult",
    "ReferralServiceError",
    "IncentiveWalkError",
    "IncentiveWalkLimitExceededError",
    "IncentiveBatchError",
]
