"""
Custom exception classes

Every error the trust engine raises derives from TrustEngineError.
"""

from typing import Any, Optional


class TrustEngineError(Exception):
    """
    Base exception for the trust-scoring engine

    All custom exceptions inherit from this class.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "trust_engine_error",
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class VisitorInputError(TrustEngineError):
    """
    Visitor input could not be parsed

    Raised for values of the wrong type (numbers, lists, objects) where a
    string is expected. Missing or empty fields never raise.
    """

    def __init__(
        self,
        message: str = "Visitor input is invalid.",
        errors: Optional[list[dict[str, Any]]] = None,
    ):
        super().__init__(
            message=message,
            error_code="visitor_input_invalid",
            details={"errors": errors or []},
        )

    @property
    def errors(self) -> list[dict[str, Any]]:
        return self.details["errors"]


class SignalStoreError(TrustEngineError):
    """
    Signal store access failed (timeout, connectivity, driver error)

    Store adapters wrap backend exceptions into this type so scorers can
    fall back without knowing which backend is deployed.
    """

    def __init__(
        self,
        message: str = "Signal store access failed.",
        operation: Optional[str] = None,
    ):
        details = {"operation": operation} if operation else {}
        super().__init__(
            message=message,
            error_code="signal_store_error",
            details=details,
        )


class PolicyConfigurationError(TrustEngineError):
    """Scoring policy tables are inconsistent (e.g. weights not summing to 100)"""

    def __init__(self, message: str):
        super().__init__(message=message, error_code="policy_configuration_error")


class VisitorNotFoundError(TrustEngineError):
    """No stored visitor has the requested id"""

    def __init__(self, visitor_id: str):
        super().__init__(
            message=f"Visitor not found: {visitor_id}",
            error_code="visitor_not_found",
            details={"visitor_id": visitor_id},
        )
