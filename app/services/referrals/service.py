"""
Referral Service - generational incentive walk

Pays referral incentives up the upline chain of a newly activated member,
a fixed window of generations per call of the backing incentive action.
Generation 1 is the direct upline.

Business logic only: no aiogram imports, no Telegram calls.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import config
import database
from app.core.structured_logger import mask_code
from app.services.referrals.exceptions import IncentiveBatchError, IncentiveWalkLimitExceededError

logger = logging.getLogger(__name__)


@dataclass
class IncentiveBatchResult:
    """One call of the incentive action. next_generation set means more generations remain."""
    success: bool
    next_generation: Optional[int] = None
    message: Optional[str] = None


@dataclass
class IncentiveWalkResult:
    """Outcome of a whole walk"""
    success: bool
    batches: int
    last_generation: int
    message: Optional[str] = None


def generation_window(start_generation: int, batch_size: int) -> Tuple[int, int]:
    """
    Inclusive generation window starting at start_generation.

    >>> generation_window(1, 3)
    (1, 3)
    >>> generation_window(4, 3)
    (4, 6)
    """
    if start_generation < 1:
        raise ValueError(f"start_generation must be >= 1, got {start_generation}")
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    return start_generation, start_generation + batch_size - 1


async def apply_incentive_batch(
    upline_id: int,
    role: str,
    activated_user_id: int,
    code: str,
    from_generation: int,
    to_generation: int,
) -> IncentiveBatchResult:
    """Run the incentive action for one generation window."""
    response = await database.apply_referral_incentives(
        upline_id,
        role,
        activated_user_id,
        code,
        from_generation,
        to_generation,
    )
    return IncentiveBatchResult(
        success=bool(response.get("success")),
        next_generation=response.get("next_generation"),
        message=response.get("message"),
    )


async def walk_referral_incentives(
    upline_id: int,
    role: str,
    activated_user_id: int,
    code: str,
    batch_size: Optional[int] = None,
    max_batches: Optional[int] = None,
) -> IncentiveWalkResult:
    """
    Walk the upline generations in batches until the action reports no more.

    Stops at the first failed batch; batches already applied stay applied.
    A next_generation that does not move past the current window start is a
    malformed response and ends the walk as a failure.

    Args:
        upline_id: Direct upline of the activated member (generation 1)
        role: Package the member was activated with
        activated_user_id: The newly activated member
        code: Invitation code used for the activation
        batch_size: Generations per call (defaults to config)
        max_batches: Hard cap on calls (defaults to config)

    Returns:
        IncentiveWalkResult

    Raises:
        IncentiveWalkLimitExceededError: more than max_batches calls were needed
        IncentiveBatchError: the incentive action raised; batches_applied
            counts the batches completed before it
    """
    if batch_size is None:
        batch_size = config.INCENTIVE_GENERATIONS_PER_BATCH
    if max_batches is None:
        max_batches = config.INCENTIVE_MAX_BATCHES

    current_generation = 1
    batches = 0

    while True:
        if batches >= max_batches:
            logger.error(
                f"REFERRAL_WALK_LIMIT_EXCEEDED [user={activated_user_id}, batches={batches}, "
                f"next_generation={current_generation}]"
            )
            raise IncentiveWalkLimitExceededError(max_batches, current_generation)

        from_generation, to_generation = generation_window(current_generation, batch_size)
        logger.debug(
            f"REFERRAL_WALK_BATCH [user={activated_user_id}, code={mask_code(code)}, "
            f"generations={from_generation}..{to_generation}]"
        )
        try:
            result = await apply_incentive_batch(
                upline_id, role, activated_user_id, code, from_generation, to_generation
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"REFERRAL_WALK_BATCH_ERROR [user={activated_user_id}, "
                f"generations={from_generation}..{to_generation}, batches_applied={batches}]: "
                f"{type(e).__name__}: {e}"
            )
            raise IncentiveBatchError(
                f"Incentive batch {from_generation}..{to_generation} raised {type(e).__name__}: {e}",
                batches_applied=batches,
                next_generation=from_generation,
            ) from e
        batches += 1

        if not result.success:
            logger.warning(
                f"REFERRAL_WALK_BATCH_FAILED [user={activated_user_id}, "
                f"generations={from_generation}..{to_generation}, message={result.message}]"
            )
            return IncentiveWalkResult(
                success=False,
                batches=batches,
                last_generation=from_generation - 1,
                message=result.message or "Failed to apply referral incentives",
            )

        if not result.next_generation:
            logger.info(
                f"REFERRAL_WALK_COMPLETED [user={activated_user_id}, batches={batches}, "
                f"last_generation={to_generation}]"
            )
            return IncentiveWalkResult(success=True, batches=batches, last_generation=to_generation)

        if result.next_generation <= from_generation:
            logger.error(
                f"REFERRAL_WALK_CURSOR_REGRESSED [user={activated_user_id}, "
                f"window={from_generation}..{to_generation}, next_generation={result.next_generation}]"
            )
            return IncentiveWalkResult(
                success=False,
                batches=batches,
                last_generation=to_generation,
                message=f"Incentive action returned non-advancing generation {result.next_generation}",
            )

        current_generation = result.next_generation
