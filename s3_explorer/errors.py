from __future__ import annotations
"""Error types shared by the service, consumers and presenter layers."""
from enum import Enum
from typing import Optional

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    HTTPClientError,
    NoCredentialsError,
    ReadTimeoutError,
)


class ErrorKind(Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    INVALID_CONTINUATION_TOKEN = "invalid_continuation_token"
    UNKNOWN = "unknown"


_UNAUTHORIZED_CODES = {
    "401",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "InvalidToken",
    "Unauthorized",
}
_FORBIDDEN_CODES = {"403", "AccessDenied", "Forbidden", "AllAccessDisabled"}
_NOT_FOUND_CODES = {"404", "NoSuchBucket", "NoSuchKey", "NotFound"}
_RATE_LIMITED_CODES = {"429", "SlowDown", "Throttling", "ThrottlingException", "TooManyRequests"}
_NETWORK_ERRORS = (
    EndpointConnectionError,
    ConnectionClosedError,
    ConnectTimeoutError,
    ReadTimeoutError,
    HTTPClientError,
)


class RemoteError(Exception):
    """Raised when a call to the object store fails."""

    def __init__(self, kind: ErrorKind, message: str, *, code: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.code = code

    @property
    def is_auth_error(self) -> bool:
        return self.kind in (ErrorKind.UNAUTHORIZED, ErrorKind.FORBIDDEN)

    @property
    def is_retryable(self) -> bool:
        return self.kind in (ErrorKind.NETWORK, ErrorKind.RATE_LIMITED)


class ListingReloadedError(RemoteError):
    """Raised after a rejected continuation token forced a first-page reload.

    The cache already holds the reloaded first page; ``nodes`` is its
    rendering, so callers can redraw without another request.
    """

    def __init__(self, bucket: str, prefix: str, nodes: list, cause: RemoteError):
        location = f"{bucket}/{prefix}" if prefix else bucket
        super().__init__(
            ErrorKind.INVALID_CONTINUATION_TOKEN,
            f"Listing of {location} was reset to the first page: {cause}",
            code=cause.code,
        )
        self.bucket = bucket
        self.prefix = prefix
        self.nodes = list(nodes)


class NotConnectedError(RuntimeError):
    """Raised when an S3 operation is attempted before connecting."""


class TransferCancelledError(RuntimeError):
    """Raised when an upload or download is cancelled by the caller."""


class OperationCancelledError(RuntimeError):
    """Raised when a multi-step operation observes a cancellation request.

    Steps that already completed are not rolled back; ``completed`` lists them.
    """

    def __init__(self, message: str = "Operation cancelled", completed: Optional[list] = None):
        super().__init__(message)
        self.completed = list(completed or [])


class UnsupportedOperationError(RuntimeError):
    """Raised for operations that are deliberately not implemented."""


class FileSystemError(Exception):
    """Base class for virtual filesystem failures."""

    def __init__(self, message: str, uri: str | None = None):
        super().__init__(message)
        self.uri = uri


class ResourceNotFoundError(FileSystemError):
    pass


class ResourceExistsError(FileSystemError):
    pass


class IsDirectoryError(FileSystemError):
    pass


class PermissionDeniedError(FileSystemError):
    pass


class UnavailableError(FileSystemError):
    pass


class FileTooLargeError(FileSystemError):
    def __init__(self, message: str, uri: str | None = None, *, size: int = 0, limit: int = 0):
        super().__init__(message, uri)
        self.size = size
        self.limit = limit


def _client_error_code(exc: ClientError) -> str:
    response = getattr(exc, "response", None) or {}
    code = str(response.get("Error", {}).get("Code") or "")
    if code:
        return code
    status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return str(status or "")


def classify_error(exc: Exception, *, continuation_token: str | None = None) -> RemoteError:
    """Convert a botocore failure into a :class:`RemoteError`.

    ``continuation_token`` marks the request as a paginated one, which is the
    only case where ``InvalidArgument`` means the token itself was rejected.
    """

    if isinstance(exc, RemoteError):
        return exc
    message = str(exc)
    if isinstance(exc, ClientError):
        code = _client_error_code(exc)
        status = str(
            (getattr(exc, "response", None) or {}).get("ResponseMetadata", {}).get("HTTPStatusCode") or ""
        )
        if continuation_token and code == "InvalidArgument":
            kind = ErrorKind.INVALID_CONTINUATION_TOKEN
        elif code in _UNAUTHORIZED_CODES or status == "401":
            kind = ErrorKind.UNAUTHORIZED
        elif code in _FORBIDDEN_CODES or status == "403":
            kind = ErrorKind.FORBIDDEN
        elif code in _NOT_FOUND_CODES or status == "404":
            kind = ErrorKind.NOT_FOUND
        elif code in _RATE_LIMITED_CODES or status in ("429", "503"):
            kind = ErrorKind.RATE_LIMITED
        else:
            kind = ErrorKind.UNKNOWN
        return RemoteError(kind, message, code=code or None)
    if isinstance(exc, NoCredentialsError):
        return RemoteError(ErrorKind.UNAUTHORIZED, message)
    if isinstance(exc, _NETWORK_ERRORS):
        return RemoteError(ErrorKind.NETWORK, message)
    return RemoteError(ErrorKind.UNKNOWN, message)
