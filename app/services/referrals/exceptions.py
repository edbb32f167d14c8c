"""
Referral Service Domain Exceptions
"""


class ReferralServiceError(Exception):
    """Base exception for referral incentive errors"""
    pass


class IncentiveWalkError(ReferralServiceError):
    """
    The walk stopped abnormally.

    batches_applied counts the batches that completed before it stopped;
    their payouts stay committed.
    """

    def __init__(self, message: str, batches_applied: int, next_generation: int):
        super().__init__(message)
        self.batches_applied = batches_applied
        self.next_generation = next_generation


class IncentiveWalkLimitExceededError(IncentiveWalkError):
    """Raised when the incentive walk keeps reporting more generations past the batch cap"""

    def __init__(self, max_batches: int, next_generation: int):
        super().__init__(
            f"Incentive walk exceeded {max_batches} batches (next generation {next_generation})",
            batches_applied=max_batches,
            next_generation=next_generation,
        )
        self.max_batches = max_batches


class IncentiveBatchError(IncentiveWalkError):
    """Raised when the incentive action itself raises; the original error is chained"""
    pass
