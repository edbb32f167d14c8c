"""
Members Service - registered members awaiting activation
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import config
import database
from app.constants.packages import format_package_name
from app.services.activation.exceptions import MemberAlreadyActiveError, MemberNotFoundError
from app.utils.retry import retry_async

EXPORT_HEADERS = [
    "Name",
    "Business Name",
    "Business Address",
    "Selected Package",
    "Date Registered",
    "Days Left to Activate",
]


@dataclass
class RegisteredMember:
    id: int
    nice_name: str
    email: Optional[str]
    role: Optional[str]
    business_name: Optional[str]
    business_address: Optional[str]
    status: str
    registered_at: Optional[datetime]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "RegisteredMember":
        return cls(
            id=row["id"],
            nice_name=row.get("nice_name") or "",
            email=row.get("email"),
            role=row.get("role"),
            business_name=row.get("business_name"),
            business_address=row.get("business_address"),
            status=row.get("status") or database.MEMBER_STATUS_INACTIVE,
            registered_at=row.get("registered_at"),
        )


@dataclass
class MembersPage:
    items: List[RegisteredMember]
    page: int
    total_pages: int
    total: int

    @property
    def has_previous(self) -> bool:
        return self.page > 0

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages


def days_left_to_activate(
    registered_at: Optional[datetime],
    now: Optional[datetime] = None,
    window_days: Optional[int] = None,
) -> int:
    """
    Whole days left in the activation window, never negative.

    Args:
        registered_at: Registration time (naive values are treated as UTC)
        now: Current time (defaults to datetime.now(timezone.utc))
        window_days: Window length (defaults to config)
    """
    if window_days is None:
        window_days = config.ACTIVATION_WINDOW_DAYS
    if registered_at is None:
        return window_days
    if now is None:
        now = datetime.now(timezone.utc)
    if registered_at.tzinfo is None:
        registered_at = registered_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    days_passed = math.floor((now - registered_at).total_seconds() / 86400)
    return max(0, window_days - days_passed)


async def list_registered_members(owner_id: int) -> List[RegisteredMember]:
    """Inactive members of the owner's downline, registration order."""
    rows = await retry_async(lambda: database.get_registered_members(owner_id))
    return [RegisteredMember.from_row(row) for row in rows]


async def get_pending_member(owner_id: int, member_id: int) -> RegisteredMember:
    """
    A registered member the operator may activate.

    Raises:
        MemberAlreadyActiveError: the member exists and is already active
        MemberNotFoundError: the member is not pending in the operator's downline
    """
    for member in await list_registered_members(owner_id):
        if member.id == member_id:
            return member

    row = await database.get_member(member_id)
    if row and row.get("status") == database.MEMBER_STATUS_ACTIVE:
        raise MemberAlreadyActiveError(f"Member {member_id} is already active")
    raise MemberNotFoundError(f"Member {member_id} is not a registered member of {owner_id}")


def paginate_members(
    members: List[RegisteredMember],
    page: int,
    page_size: Optional[int] = None,
) -> MembersPage:
    """Slice one page; out-of-range page numbers are clamped."""
    if page_size is None:
        page_size = config.MEMBERS_PAGE_SIZE
    total = len(members)
    total_pages = max(1, math.ceil(total / page_size))
    page = min(max(page, 0), total_pages - 1)
    start = page * page_size
    return MembersPage(
        items=members[start:start + page_size],
        page=page,
        total_pages=total_pages,
        total=total,
    )


def build_members_export_rows(
    members: List[RegisteredMember],
    now: Optional[datetime] = None,
) -> List[List[str]]:
    """CSV rows matching EXPORT_HEADERS."""
    rows = []
    for member in members:
        rows.append([
            member.nice_name,
            member.business_name or "",
            member.business_address or "",
            format_package_name(member.role or ""),
            member.registered_at.strftime("%Y-%m-%d") if member.registered_at else "",
            str(days_left_to_activate(member.registered_at, now)),
        ])
    return rows
