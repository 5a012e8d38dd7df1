"""
Standardised error handling for vttscribe.
"""

from vttscribe.core.constants import ErrorCode, RETRYABLE_ERRORS


class JobError(Exception):
    """Raised when a single job hits a known, recoverable error condition."""

    def __init__(self, code: str, message: str, retryable: bool | None = None):
        self.code = code
        self.message = message
        # auto-detect retryable from code if not explicitly set
        self.retryable = retryable if retryable is not None else (code in RETRYABLE_ERRORS)
        super().__init__(f"[{code}] {message}")


class AuthenticationError(Exception):
    """Raised when the shared session cannot be established. Aborts the run."""

    def __init__(self, message: str):
        self.code = ErrorCode.AUTH_FAILED
        self.message = message
        super().__init__(f"[{self.code}] {message}")


def is_retryable(code: str) -> bool:
    return code in RETRYABLE_ERRORS
