"""
Invitation Service Domain Exceptions
"""


class InvitationServiceError(Exception):
    """Base exception for invitation code errors"""
    pass


class InvalidCodeFormatError(InvitationServiceError):
    """Raised when a code is used where a well-formed code is required"""
    pass
