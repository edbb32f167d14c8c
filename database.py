import asyncio
import logging
import os
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import asyncpg

import config
from app.constants.packages import get_incentive_column
from app.utils.retry import retry_async

logger = logging.getLogger(__name__)

# ====================================================================================
# SAFE STARTUP GUARD: database readiness flag
# ====================================================================================
# False until init_db() has connected and applied migrations. While False the
# bot runs in degraded mode: handlers refuse work, pipeline calls raise
# DatabaseNotReadyError.
# ====================================================================================
DB_READY: bool = False

DATABASE_URL = config.DATABASE_URL

MEMBER_STATUS_INACTIVE = "inactive"
MEMBER_STATUS_ACTIVE = "active"


class DatabaseNotReadyError(RuntimeError):
    """Raised when a pipeline operation runs while the database is unavailable"""
    pass


# ====================================================================================
# UTC HELPERS: TIMESTAMP WITHOUT TIME ZONE columns hold naive UTC
# ====================================================================================
# All datetimes passed TO asyncpg go through _to_db_utc, all datetimes read FROM
# the database go through _from_db_utc.
# ====================================================================================

def _to_db_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _utcnow_db() -> datetime:
    return _to_db_utc(datetime.now(timezone.utc))


def _normalize_member_row(row: Optional[Any]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    member = dict(row)
    for key in ("registered_at", "activated_at"):
        if member.get(key) is not None:
            member[key] = _from_db_utc(member[key])
    return member


# ====================================================================================
# POOL
# ====================================================================================

def _get_pool_config() -> dict:
    """asyncpg.create_pool kwargs, overridable through the environment."""
    return {
        "min_size": int(os.getenv("DB_POOL_MIN_SIZE", "2")),
        "max_size": int(os.getenv("DB_POOL_MAX_SIZE", "10")),
        "max_inactive_connection_lifetime": 300,
        "timeout": int(os.getenv("DB_POOL_ACQUIRE_TIMEOUT", "10")),
        "command_timeout": int(os.getenv("DB_POOL_COMMAND_TIMEOUT", "30")),
    }


if not DATABASE_URL:
    if config.APP_ENV == "prod":
        print(f"ERROR: {config.APP_ENV.upper()}_DATABASE_URL is REQUIRED in PROD!", file=sys.stderr)
        sys.exit(1)
    else:
        logger.warning(f"{config.APP_ENV.upper()}_DATABASE_URL is not set - running in degraded mode")

_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """
    Return the connection pool, creating it on first use.

    Pool creation is retried once on transient errors.

    Raises:
        RuntimeError: DATABASE_URL is not configured
    """
    global _pool
    if not DATABASE_URL:
        raise RuntimeError(f"{config.APP_ENV.upper()}_DATABASE_URL is not configured")
    if _pool is None:
        pool_config = _get_pool_config()
        _pool = await retry_async(
            lambda: asyncpg.create_pool(DATABASE_URL, **pool_config),
            retries=1,
        )
        logger.info(
            "DB_POOL_CONFIG min=%s max=%s acquire_timeout=%s command_timeout=%s",
            pool_config["min_size"], pool_config["max_size"],
            pool_config["timeout"], pool_config["command_timeout"],
        )
    return _pool


async def _require_pool() -> asyncpg.Pool:
    if not DB_READY:
        raise DatabaseNotReadyError("Database is not ready (degraded mode)")
    return await get_pool()


async def close_pool():
    """Close the pool and mark the database unavailable."""
    global _pool, DB_READY
    if _pool:
        await _pool.close()
        _pool = None
        DB_READY = False
        logger.info("Database connection pool closed")


async def init_db() -> bool:
    """
    Connect, create the pool and apply migrations.

    Idempotent: returns True immediately once the database is ready.

    Returns:
        True on success, False if the database is unreachable or a migration failed
    """
    global DB_READY, _pool

    if DB_READY:
        logger.info("Database already initialized (DB_READY=True), skipping init")
        return True

    if not DATABASE_URL:
        logger.error("DATABASE_URL not configured")
        return False

    try:
        conn = await asyncpg.connect(DATABASE_URL)
        await conn.execute("SELECT 1")
        await conn.close()
        logger.info("DB connectivity probe successful")
    except Exception as e:
        logger.error(f"DB connectivity probe failed: {e}")
        return False

    try:
        await get_pool()
    except Exception as e:
        logger.error(f"Failed to create database pool: {e}")
        return False

    await asyncio.sleep(0)

    try:
        import migrations
        if not await migrations.run_migrations_safe(_pool):
            logger.error("Migration execution failed")
            return False
    except Exception as e:
        logger.error(f"Migration execution failed: {e}")
        return False

    DB_READY = True
    logger.info("Database initialized, DB_READY=True")
    return True


# ====================================================================================
# MEMBERS
# ====================================================================================

_MEMBER_COLUMNS = """id, telegram_id, nice_name, email, role, level, upline_id,
                     business_name, business_address, status, credits,
                     registered_at, activated_at"""


async def get_member(member_id: int) -> Optional[Dict[str, Any]]:
    """Member row by id, or None."""
    pool = await _require_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            f"SELECT {_MEMBER_COLUMNS} FROM members WHERE id = $1", member_id
        )
        return _normalize_member_row(row)


async def get_member_by_telegram_id(telegram_id: int) -> Optional[Dict[str, Any]]:
    """Member linked to a Telegram account (the operator using the bot)."""
    pool = await _require_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            f"SELECT {_MEMBER_COLUMNS} FROM members WHERE telegram_id = $1", telegram_id
        )
        return _normalize_member_row(row)


# Pending members reachable from the owner through inactive members only; the
# walk never descends below an active member.
_REGISTERED_DOWNLINE_SQL = """
    WITH RECURSIVE downline AS (
        SELECT id, ARRAY[id] AS path
        FROM members
        WHERE id = $1
        UNION ALL
        SELECT m.id, d.path || m.id
        FROM members m
        JOIN downline d ON m.upline_id = d.id
        WHERE m.status = $2 AND NOT m.id = ANY(d.path)
    )
    SELECT m.id, m.telegram_id, m.nice_name, m.email, m.role, m.level, m.upline_id,
           m.business_name, m.business_address, m.status, m.credits,
           m.registered_at, m.activated_at
    FROM members m
    JOIN downline d ON d.id = m.id
    WHERE m.id != $1
    ORDER BY m.registered_at ASC, m.id ASC
"""


async def get_registered_members(owner_id: int) -> List[Dict[str, Any]]:
    """
    Inactive members registered under the owner, in registration order.

    The owner is excluded. The walk carries the visited path so a corrupted
    upline cycle cannot recurse forever.
    """
    pool = await _require_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(_REGISTERED_DOWNLINE_SQL, owner_id, MEMBER_STATUS_INACTIVE)
        return [_normalize_member_row(row) for row in rows]


async def activate_member(
    member_id: int,
    upline_id: int,
    level: int,
    role: str,
) -> Dict[str, Any]:
    """
    Flip a member to active and stamp upline/level/role.

    Check-and-set: the row is only updated while its status is still
    'inactive', so two concurrent activations cannot both win.

    Returns:
        {"success": bool, "reason": str, "message": str}
        reason is one of "activated", "member_not_found", "already_active"
    """
    pool = await _require_pool()
    async with pool.acquire() as conn:
        result = await conn.execute(
            """UPDATE members
               SET status = $2, upline_id = $3, level = $4, role = $5, activated_at = $6
               WHERE id = $1 AND status = $7""",
            member_id, MEMBER_STATUS_ACTIVE, upline_id, level, role,
            _utcnow_db(), MEMBER_STATUS_INACTIVE
        )
        rows_affected = int(result.split()[-1]) if result else 0
        if rows_affected == 1:
            logger.info(
                f"MEMBER_ACTIVATED [member={member_id}, upline={upline_id}, level={level}, role={role}]"
            )
            return {"success": True, "reason": "activated", "message": "Member activated."}

        status = await conn.fetchval("SELECT status FROM members WHERE id = $1", member_id)
        if status is None:
            return {"success": False, "reason": "member_not_found", "message": "Member not found."}
        logger.warning(f"MEMBER_ACTIVATION_CONFLICT [member={member_id}, status={status}]")
        return {
            "success": False,
            "reason": "already_active",
            "message": f"Member is not inactive (status={status}).",
        }


# ====================================================================================
# INVITATION CODES
# ====================================================================================

async def get_invitation_code_for_activation(code: str) -> Optional[Dict[str, Any]]:
    """
    Invitation code joined with its owner's level.

    Returns:
        {"id", "code", "package", "owner_user_id", "owner_exists", "owner_level",
         "redeemed_by"} or None when the code does not exist
    """
    pool = await _require_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """SELECT ic.id, ic.code, ic.package, ic.owner_user_id, ic.redeemed_by,
                      m.id IS NOT NULL AS owner_exists, m.level AS owner_level
               FROM invitation_codes ic
               LEFT JOIN members m ON m.id = ic.owner_user_id
               WHERE ic.code = $1""",
            code
        )
        return dict(row) if row else None


async def get_available_codes(owner_id: int, package: str) -> List[Dict[str, Any]]:
    """Unredeemed codes of an owner for one package, oldest purchase first."""
    pool = await _require_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """SELECT id, code, package, amount, owner_user_id, redeemed_by, date_purchased, created_at
               FROM invitation_codes
               WHERE owner_user_id = $1 AND package = $2 AND redeemed_by IS NULL
               ORDER BY date_purchased ASC NULLS LAST, id ASC""",
            owner_id, package
        )
        return [dict(row) for row in rows]


async def set_code_redeemed(code: str, user_id: int) -> Dict[str, Any]:
    """
    Mark an invitation code as redeemed by user_id.

    The row is locked for the duration of the check so two redemptions of the
    same code serialize. Redeeming again for the same user is a no-op success.

    Returns:
        {"success": bool, "already_redeemed": bool, "reason": str, "message": str}
    """
    pool = await _require_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            row = await conn.fetchrow(
                "SELECT id, redeemed_by FROM invitation_codes WHERE code = $1 FOR UPDATE",
                code
            )
            if row is None:
                return {
                    "success": False,
                    "already_redeemed": False,
                    "reason": "code_not_found",
                    "message": "Invitation code not found.",
                }

            redeemed_by = row["redeemed_by"]
            if redeemed_by is not None:
                if redeemed_by == user_id:
                    return {
                        "success": True,
                        "already_redeemed": True,
                        "reason": "already_redeemed_by_user",
                        "message": "Invitation code was already redeemed by this member.",
                    }
                logger.warning(
                    f"INVITATION_CODE_REDEEM_CONFLICT [code_id={row['id']}, "
                    f"redeemed_by={redeemed_by}, attempted_by={user_id}]"
                )
                return {
                    "success": False,
                    "already_redeemed": True,
                    "reason": "redeemed_by_other",
                    "message": "Invitation code has already been redeemed.",
                }

            await conn.execute(
                "UPDATE invitation_codes SET redeemed_by = $2, date_activated = $3 WHERE id = $1",
                row["id"], user_id, _utcnow_db()
            )
            logger.info(f"INVITATION_CODE_REDEEMED [code_id={row['id']}, user={user_id}]")
            return {
                "success": True,
                "already_redeemed": False,
                "reason": "redeemed",
                "message": "Invitation code redeemed.",
            }


# ====================================================================================
# REFERRAL INCENTIVES
# ====================================================================================

# Upline chain starting at the direct upline (generation 1). Recursion stops one
# generation past $2 so the caller can tell whether more generations exist.
_UPLINE_CHAIN_SQL = """
    WITH RECURSIVE upline_chain AS (
        SELECT id, upline_id, role, 1 AS generation, ARRAY[id] AS path
        FROM members
        WHERE id = $1
        UNION ALL
        SELECT m.id, m.upline_id, m.role, uc.generation + 1, uc.path || m.id
        FROM members m
        JOIN upline_chain uc ON m.id = uc.upline_id
        WHERE uc.generation <= $2 AND NOT m.id = ANY(uc.path)
    )
    SELECT id, role, generation FROM upline_chain ORDER BY generation
"""


async def apply_referral_incentives(
    upline_id: int,
    referred_package: str,
    sender_user_id: int,
    referral_code: Optional[str] = None,
    start_gen: int = 1,
    end_gen: int = 3,
) -> Dict[str, Any]:
    """
    Pay referral incentives to the uplines in generations start_gen..end_gen.

    Each upline is paid from the incentive table of its own package, column
    selected by the referred package. A payout is recorded in
    referral_income_history and credited in the same transaction; an existing
    history row for (sender, recipient, generation) means the payout already
    happened and is skipped.

    Returns:
        {"success": bool, "message": str, "next_generation": Optional[int],
         "paid": int}
        next_generation is end_gen + 1 when the chain continues past end_gen
    """
    if start_gen < 1 or end_gen < start_gen:
        return {
            "success": False,
            "message": f"Invalid generation window {start_gen}..{end_gen}",
            "next_generation": None,
            "paid": 0,
        }

    column = get_incentive_column(referred_package)
    pool = await _require_pool()
    paid = 0
    try:
        async with pool.acquire() as conn:
            chain = await conn.fetch(_UPLINE_CHAIN_SQL, upline_id, end_gen)
            invitation_code_id = None
            if referral_code:
                invitation_code_id = await conn.fetchval(
                    "SELECT id FROM invitation_codes WHERE code = $1", referral_code
                )

            async with conn.transaction():
                for upline in chain:
                    generation = upline["generation"]
                    if generation < start_gen or generation > end_gen:
                        continue
                    if not upline["role"]:
                        continue

                    # column comes from the package whitelist, never from input
                    amount = await conn.fetchval(
                        f"""SELECT ip.{column}
                            FROM incentive_programs ip
                            JOIN package_products p ON p.id = ip.product_id
                            WHERE p.name = $1 AND ip.generation = $2""",
                        upline["role"], generation
                    )
                    if amount is None or Decimal(amount) <= 0:
                        continue

                    history_id = await conn.fetchval(
                        """INSERT INTO referral_income_history
                               (invitation_code_id, sender_user_id, recipient_user_id, income_amount, level)
                           VALUES ($1, $2, $3, $4, $5)
                           ON CONFLICT (sender_user_id, recipient_user_id, level) DO NOTHING
                           RETURNING id""",
                        invitation_code_id, sender_user_id, upline["id"], amount, generation
                    )
                    if history_id is None:
                        logger.info(
                            f"REFERRAL_INCENTIVE_ALREADY_PAID [sender={sender_user_id}, "
                            f"recipient={upline['id']}, generation={generation}]"
                        )
                        continue

                    await conn.execute(
                        "UPDATE members SET credits = credits + $1 WHERE id = $2",
                        amount, upline["id"]
                    )
                    paid += 1
    except asyncpg.PostgresError as e:
        logger.exception(
            f"Error applying referral incentives [sender={sender_user_id}, "
            f"generations={start_gen}..{end_gen}]: {e}"
        )
        return {
            "success": False,
            "message": "Failed to apply referral incentives",
            "next_generation": None,
            "paid": 0,
        }

    deepest = chain[-1]["generation"] if chain else 0
    next_generation = end_gen + 1 if deepest > end_gen else None
    logger.info(
        f"REFERRAL_INCENTIVES_APPLIED [sender={sender_user_id}, generations={start_gen}..{end_gen}, "
        f"paid={paid}, next_generation={next_generation}]"
    )
    return {
        "success": True,
        "message": f"Referral incentives applied successfully for generations {start_gen} to {end_gen}",
        "next_generation": next_generation,
        "paid": paid,
    }
