"""
Activation Service Domain Exceptions

Raised by the activation service layer for conditions that are not part of
the pipeline's structured results.
"""


class ActivationServiceError(Exception):
    """Base exception for activation service errors"""
    pass


class MemberNotFoundError(ActivationServiceError):
    """Raised when a member is not in the operator's registered downline"""
    pass


class MemberAlreadyActiveError(ActivationServiceError):
    """Raised when activation is requested for a member that is already active"""
    pass
