"""
Exceptions raised by the vCenter client layer.

Per-VM power action failures are never raised; they are reported as
``ActionOutcome`` values. Everything here aborts the operation that raised it.
"""

from typing import Optional


class VCenterError(Exception):
    """Base exception for vCenter client errors."""
    pass


class AuthError(VCenterError):
    """Session could not be established."""
    pass


class AuthTransportError(AuthError):
    """The session endpoint could not be reached."""
    pass


class AuthRejectedError(AuthError):
    """The management plane refused the credentials."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthMalformedResponseError(AuthError):
    """The session endpoint did not return a token string."""
    pass


class NotConnectedError(VCenterError):
    """An authenticated call was made before connect()."""
    pass


class TransportError(VCenterError):
    """Network-level failure of an authenticated request."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class SessionExpiredError(VCenterError):
    """The management plane answered 401 for the token that was sent."""

    def __init__(self, message: str, token: Optional[str] = None):
        super().__init__(message)
        self.token = token


class QueryError(VCenterError):
    """Inventory listing failed."""
    pass


class QueryTransportError(QueryError):
    """Inventory request failed on the network or with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class QueryDecodeError(QueryError):
    """Inventory response did not match the VM summary array shape."""
    pass
