"""
Members Service Layer

Registered (pending) members of an operator's downline: listing, paging,
activation window and CSV export rows.
"""

from app.services.members.service import (
    list_registered_members,
    get_pending_member,
    paginate_members,
    days_left_to_activate,
    build_members_export_rows,
    RegisteredMember,
    MembersPage,
    EXPORT_HEADERS,
)

__all__ = [
    "list_registered_members",
    "get_pending_member",
    "paginate_members",
    "days_left_to_activate",
    "build_members_export_rows",
    "RegisteredMember",
    "MembersPage",
    "EXPORT_HEADERS",
]
