"""
Adapter Error Taxonomy
Structural errors surface to the caller as a NACK; everything after the
acknowledgment is either retried, compensated or logged
"""
from typing import Optional


class AdapterError(Exception):
    """Base class for adapter errors"""


class StructuralError(AdapterError):
    """Malformed inbound request, rejected synchronously with a NACK"""

    def __init__(self, message: str, error_type: str = "JSON-SCHEMA-ERROR", code: str = "10000"):
        super().__init__(message)
        self.error_type = error_type
        self.code = code
        self.status_code = 400


class OrderValidationError(AdapterError):
    """A domain precondition failed; `outcome.final_failure` decides retry eligibility"""

    def __init__(self, outcome):
        super().__init__(outcome.reason or "validation failed")
        self.outcome = outcome


class TransientUpstreamError(AdapterError):
    """Platform or callback transport failure that may succeed on retry"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PlatformRejection(AdapterError):
    """The platform explicitly rejected the call (4xx); retrying will not help"""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class CompensationError(AdapterError):
    """A fallback or rollback mutation failed; only ever logged"""


def is_transient(error: BaseException) -> bool:
    """Default retry predicate: only transport-level failures are retried"""
    return isinstance(error, TransientUpstreamError)
