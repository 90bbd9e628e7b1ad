"""
Exceptions raised by the call flow service.

Every error the service raises on purpose inherits from CallFlowError, so
the API layer can translate the whole family into HTTP responses in one
place. There are no compile-time errors: the compiler degrades
to safe TwiML instead of raising.
"""

from typing import Any, Dict, List, Optional


class CallFlowError(Exception):
    """
    Base exception for all call flow errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code
        details: Optional additional error details
    """

    status_code: int = 400

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code or "callflow_error"
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, code={self.code!r})"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


# =============================================================================
# Flow Errors
# =============================================================================

class FlowValidationError(CallFlowError):
    """
    Raised when a flow cannot be saved or compiled as configured.

    Carries the individual issues so the editor can show them inline.
    """

    status_code = 422

    def __init__(self, message: str, issues: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, code="validation_error", details={"issues": issues or []})
        self.issues = issues or []


class DuplicateBlockError(CallFlowError):
    """Raised when a block id is already used in the flow."""

    def __init__(self, block_id: str):
        super().__init__(
            f"Block '{block_id}' already exists in this flow",
            code="duplicate_block",
            details={"block_id": block_id},
        )
        self.block_id = block_id


class FlowFormatError(CallFlowError):
    """Raised for flow documents that cannot be read or upgraded."""

    def __init__(self, message: str, version: Optional[str] = None):
        super().__init__(message, code="flow_format", details={"version": version})
        self.version = version


class NotFoundError(CallFlowError):
    """Raised when a flow, number or editor session does not exist."""

    status_code = 404

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            f"{resource} not found: {resource_id}",
            code="not_found",
            details={"resource": resource, "id": resource_id},
        )


class PermissionDeniedError(CallFlowError):
    """Raised when the plan or ownership check fails."""

    status_code = 403

    def __init__(self, message: str = "You do not have access to this resource."):
        super().__init__(message, code="permission_denied")


# =============================================================================
# Telephony Errors
# =============================================================================

class TelephonyError(CallFlowError):
    """
    Raised when the telephony provider rejects a request.

    The message is safe to show to the user; the raw provider error is kept
    in details for logging.
    """

    status_code = 502

    def __init__(
        self,
        message: str,
        code: str = "telephony_error",
        provider_message: Optional[str] = None,
    ):
        super().__init__(message, code=code, details={"provider_message": provider_message})
        self.provider_message = provider_message


class NumberRecordError(TelephonyError):
    """
    Raised when a purchased number could neither be saved nor released.

    The number is live at the provider but unknown to us, so support has to
    reconcile it by hand.
    """

    status_code = 500

    def __init__(self, phone_number: str, provider_sid: Optional[str] = None):
        super().__init__(
            "The number was purchased but could not be saved to your account. "
            "Please contact support.",
            code="number_not_recorded",
        )
        self.details.update({"phone_number": phone_number, "provider_sid": provider_sid})
        self.phone_number = phone_number
        self.provider_sid = provider_sid


__all__ = [
    "CallFlowError",
    "FlowValidationError",
    "DuplicateBlockError",
    "FlowFormatError",
    "NotFoundError",
    "PermissionDeniedError",
    "TelephonyError",
    "NumberRecordError",
]
