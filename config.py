import os
import sys

# ====================================================================================
# ENVIRONMENT CONFIGURATION: PROD / STAGE / LOCAL isolation through prefixes
# ====================================================================================
# Every variable is read with the environment prefix:
#   - PROD: PROD_BOT_TOKEN, PROD_DATABASE_URL, PROD_ADMIN_TELEGRAM_ID
#   - STAGE: STAGE_BOT_TOKEN, STAGE_DATABASE_URL, STAGE_ADMIN_TELEGRAM_ID
#   - LOCAL: LOCAL_BOT_TOKEN, LOCAL_DATABASE_URL, LOCAL_ADMIN_TELEGRAM_ID
#
# A STAGE process can never pick up PROD_BOT_TOKEN by accident.
# ====================================================================================

APP_ENV = os.getenv("APP_ENV", "prod").lower()
if APP_ENV not in ("prod", "stage", "local"):
    print(f"ERROR: Invalid APP_ENV={APP_ENV}. Must be one of: prod, stage, local", file=sys.stderr)
    sys.exit(1)

IS_LOCAL = APP_ENV == "local"
IS_STAGE = APP_ENV == "stage"
IS_PROD = APP_ENV == "prod"


def env(key: str, default: str = "") -> str:
    """
    Read an environment variable with the environment prefix.

    Args:
        key: Variable name without prefix (e.g. "BOT_TOKEN")
        default: Value used when the variable is not set

    Example:
        env("BOT_TOKEN") -> value of STAGE_BOT_TOKEN when APP_ENV=stage
    """
    env_key = f"{APP_ENV.upper()}_{key}"
    return os.getenv(env_key, default)


def env_int(key: str, default: int, minimum: int = 1, maximum: int = 1_000_000) -> int:
    """Read a prefixed integer tunable, clamped into [minimum, maximum]."""
    raw = env(key, default=str(default))
    try:
        value = int(raw)
    except ValueError:
        print(f"WARNING: {APP_ENV.upper()}_{key}={raw!r} is not a number, using {default}", file=sys.stderr)
        return default
    return max(minimum, min(value, maximum))


# Unprefixed secrets are forbidden
_direct_usage_vars = ["BOT_TOKEN", "DATABASE_URL", "ADMIN_TELEGRAM_ID"]
for var in _direct_usage_vars:
    if os.getenv(var):
        print(f"ERROR: Direct usage of {var} is FORBIDDEN!", file=sys.stderr)
        print(f"ERROR: Use {APP_ENV.upper()}_{var} instead (via env('{var}'))", file=sys.stderr)
        sys.exit(1)

print(f"INFO: Config loaded for environment: {APP_ENV.upper()}", flush=True)

# ====================================================================================
# SECRETS
# ====================================================================================
# Required: BOT_TOKEN, ADMIN_TELEGRAM_ID. DATABASE_URL is required in PROD only.
# Secrets are validated at startup and never logged.
# ====================================================================================

BOT_TOKEN = env("BOT_TOKEN")
if not BOT_TOKEN:
    print(f"ERROR: {APP_ENV.upper()}_BOT_TOKEN environment variable is not set!", file=sys.stderr)
    sys.exit(1)

# Chat that receives reconciliation alerts (partial activations)
ADMIN_TELEGRAM_ID_STR = env("ADMIN_TELEGRAM_ID")
if not ADMIN_TELEGRAM_ID_STR:
    print(f"ERROR: {APP_ENV.upper()}_ADMIN_TELEGRAM_ID environment variable is not set!", file=sys.stderr)
    sys.exit(1)

try:
    ADMIN_TELEGRAM_ID = int(ADMIN_TELEGRAM_ID_STR)
except ValueError:
    print(f"ERROR: ADMIN_TELEGRAM_ID must be a number, got: {ADMIN_TELEGRAM_ID_STR}", file=sys.stderr)
    sys.exit(1)

DATABASE_URL = env("DATABASE_URL")

# ====================================================================================
# ACTIVATION PIPELINE
# ====================================================================================

# Invitation codes are fixed-length tokens ("PACK" + 6 random characters)
INVITATION_CODE_LENGTH = env_int("INVITATION_CODE_LENGTH", 10)

# Upline generations paid per call of the incentive action (inclusive window)
INCENTIVE_GENERATIONS_PER_BATCH = env_int("INCENTIVE_GENERATIONS_PER_BATCH", 3, maximum=100)

# Safety net against a backing service that keeps returning a next generation
INCENTIVE_MAX_BATCHES = env_int("INCENTIVE_MAX_BATCHES", 1000)

# Registered members must be activated within this many days
ACTIVATION_WINDOW_DAYS = env_int("ACTIVATION_WINDOW_DAYS", 30, maximum=3650)

# Members per page in the registered members list
MEMBERS_PAGE_SIZE = env_int("MEMBERS_PAGE_SIZE", 10, maximum=50)
