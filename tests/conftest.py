"""
Pytest configuration and shared fixtures for service layer tests.
"""
import os

# config.py reads prefixed variables at import time and exits when they are missing
for _var in ("BOT_TOKEN", "DATABASE_URL", "ADMIN_TELEGRAM_ID"):
    os.environ.pop(_var, None)
os.environ["APP_ENV"] = "local"
os.environ.setdefault("LOCAL_BOT_TOKEN", "123456:TEST-TOKEN")
os.environ.setdefault("LOCAL_ADMIN_TELEGRAM_ID", "1000")

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from app.services.invitations.service import ResolvedInvitation

VALID_CODE = "ELIT4X9QZ2"


@pytest.fixture
def mock_datetime():
    """Fixed datetime for deterministic tests"""
    return datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def valid_code():
    return VALID_CODE


@pytest.fixture
def invitation_record():
    """Row returned by database.get_invitation_code_for_activation"""
    return {
        "id": 7,
        "code": VALID_CODE,
        "package": "Elite_Distributor_Package",
        "owner_user_id": 42,
        "redeemed_by": None,
        "owner_exists": True,
        "owner_level": 2,
    }


@pytest.fixture
def resolved_invitation():
    return ResolvedInvitation(
        code=VALID_CODE,
        upline_user_id=42,
        role="Elite_Distributor_Package",
        owner_level=2,
    )


@pytest.fixture
def member_row(mock_datetime):
    """Registered (inactive) member row"""
    return {
        "id": 501,
        "telegram_id": None,
        "nice_name": "Jane Cruz",
        "email": "jane@example.com",
        "role": "Elite_Distributor_Package",
        "level": None,
        "upline_id": None,
        "status": "inactive",
        "business_name": "Cruz Trading",
        "business_address": "12 Rizal St, Cebu",
        "registered_at": datetime(2024, 1, 5, 9, 30, 0, tzinfo=timezone.utc),
    }


@pytest.fixture
def mock_database():
    """Mock database module"""
    db = MagicMock()
    db.MEMBER_STATUS_ACTIVE = "active"
    db.MEMBER_STATUS_INACTIVE = "inactive"
    db.get_member = AsyncMock()
    db.get_member_by_telegram_id = AsyncMock()
    db.get_registered_members = AsyncMock(return_value=[])
    db.activate_member = AsyncMock()
    db.get_invitation_code_for_activation = AsyncMock()
    db.get_available_codes = AsyncMock(return_value=[])
    db.set_code_redeemed = AsyncMock()
    db.apply_referral_incentives = AsyncMock()
    return db
