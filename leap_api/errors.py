# leap_api/errors.py
from typing import Dict, List, Optional


class LeapError(Exception):
    """Base class for assessment service errors."""
    def __init__(self, message="Assessment service error", code="LEAP_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class InvalidSubmissionError(LeapError):
    """Raised when contact, score or answer data is missing or malformed."""
    def __init__(
        self,
        message="Submission data is invalid",
        code="SUBMISSION_INVALID",
        field_errors: Optional[Dict[str, str]] = None,
    ):
        self.field_errors = field_errors or {}
        super().__init__(message, code)


class VerificationFailed(LeapError):
    """Raised when the bot-verification provider rejects a token."""
    def __init__(
        self,
        message="Captcha verification failed",
        code="CAPTCHA_FAILED",
        error_codes: Optional[List[str]] = None,
    ):
        self.error_codes = error_codes or []
        super().__init__(message, code)


class VerificationUnavailable(LeapError):
    """Raised when the verification provider cannot be reached or is not configured."""
    def __init__(self, message="Captcha verification is unavailable", code="CAPTCHA_UNAVAILABLE"):
        super().__init__(message, code)


class ResponseNotFound(LeapError):
    """Raised when no assessment response exists for an identifier."""
    def __init__(self, message="Assessment not found", code="RESULT_NOT_FOUND"):
        super().__init__(message, code)


class Unauthorized(LeapError):
    """Raised when the caller may not read an assessment response."""
    def __init__(
        self,
        message="Authentication required to view this assessment. Please log in to access your results.",
        code="RESULT_UNAUTHORIZED",
    ):
        super().__init__(message, code)


class RateLimited(LeapError):
    """Raised when a client address exceeds its request budget."""
    def __init__(self, retry_after: int, message="Rate limit exceeded. Please try again later.", code="RATE_LIMIT_EXCEEDED"):
        self.retry_after = retry_after
        super().__init__(message, code)


class TransientStoreError(LeapError):
    """Raised when the data store fails or times out; the caller may retry."""
    def __init__(self, message="The submission could not be saved. Please try again.", code="STORE_UNAVAILABLE"):
        super().__init__(message, code)


class AlreadySubmitted(LeapError):
    """Raised client-side when this browser already holds a submission receipt."""
    def __init__(self, receipt, message="An assessment has already been submitted from this device.", code="ALREADY_SUBMITTED"):
        self.receipt = receipt
        super().__init__(message, code)


class ReceiptExists(LeapError):
    """Raised when a second submission receipt would overwrite the first."""
    def __init__(self, message="A submission receipt is already stored.", code="RECEIPT_EXISTS"):
        super().__init__(message, code)
