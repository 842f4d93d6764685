"""
Custom Exceptions for CV Transformer

Hierarchical exception classes for proper error handling across layers.
Domain errors are mapped to HTTP responses only in app.main.
"""

from typing import Optional, Dict, Any


class CVTransformerError(Exception):
    """Base exception for all CV Transformer errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


# =============================================================================
# Subscription / Entitlement Errors
# =============================================================================

class UnknownPlanError(CVTransformerError):
    """Raised for an unrecognized tier or a malformed plan catalog."""

    def __init__(self, message: str, tier: Optional[str] = None):
        details = {}
        if tier is not None:
            details["tier"] = tier
        super().__init__(message, details)


class InvalidTransitionError(CVTransformerError):
    """Raised when a subscription transition violates its guard."""

    def __init__(
        self,
        transition: str,
        current_state: str,
        reason: str,
    ):
        super().__init__(
            reason,
            {"transition": transition, "current_state": current_state},
        )
        self.transition = transition
        self.current_state = current_state


class QuotaExceededError(CVTransformerError):
    """Raised when a quota-consuming action finds no quota left."""

    def __init__(
        self,
        message: str = "Monthly conversion quota exhausted. Upgrade your plan for more conversions.",
        tier: Optional[str] = None,
        monthly_quota: Optional[int] = None,
    ):
        details = {}
        if tier:
            details["tier"] = tier
        if monthly_quota is not None:
            details["monthly_quota"] = monthly_quota
        super().__init__(message, details)


class SubscriptionRequiredError(CVTransformerError):
    """Raised when an action needs an entitlement the user does not have."""

    def __init__(self, message: str = "An active subscription is required"):
        super().__init__(message)


class ConcurrentModificationError(CVTransformerError):
    """Raised when an optimistic-concurrency write loses the race."""

    def __init__(
        self,
        message: str = "Subscription was modified concurrently. Please try again.",
        user_id: Optional[Any] = None,
        expected_version: Optional[int] = None,
    ):
        details = {}
        if user_id:
            details["user_id"] = str(user_id)
        if expected_version is not None:
            details["expected_version"] = expected_version
        super().__init__(message, details)


class UnverifiedPaymentEventError(CVTransformerError):
    """Raised when a payment event fails authenticity checks."""
    pass


# =============================================================================
# Infrastructure Errors
# =============================================================================

class DatabaseError(CVTransformerError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    pass


class PermissionDeniedError(CVTransformerError):
    """Raised when the caller's role does not allow an action."""
    pass


class EmailAlreadyRegisteredError(CVTransformerError):
    """Raised when a new identity presents an email another account owns."""

    def __init__(self, email: str):
        super().__init__(
            "This email is already registered to another account",
            {"email": email},
        )


class BillingError(CVTransformerError):
    """Raised when the payment processor rejects a request."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)


class ConfigurationError(CVTransformerError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
