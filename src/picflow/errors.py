"""Error hierarchy for picflow.

Every public error class inherits from PicflowError. Each carries a
machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict, and an optional
``cause`` (chained exception).

The orchestration layer never lets these escape into the host editor;
they are raised inside backends and pipelines and converted to failed
results or log records at the boundary where they occur.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error picflow can raise."""

    CONFIG_ERROR = "CONFIG_ERROR"
    UPLOAD_ERROR = "UPLOAD_ERROR"
    UPLOAD_TRANSPORT_ERROR = "UPLOAD_TRANSPORT_ERROR"
    BACKEND_CONTRACT_ERROR = "BACKEND_CONTRACT_ERROR"
    DOWNLOAD_ERROR = "DOWNLOAD_ERROR"
    PLACEHOLDER_ERROR = "PLACEHOLDER_ERROR"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class PicflowError(Exception):
    """Base exception for all picflow errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class PicflowConfigError(PicflowError):
    """The configuration names something picflow cannot use.

    Context keys: ``field``, ``value``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.CONFIG_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Upload errors
# ---------------------------------------------------------------------------

class PicflowUploadError(PicflowError):
    """Base class for uploader backend errors.

    Context keys: ``backend``, ``paths``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
        code: str = ErrorCode.UPLOAD_ERROR,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            context=context,
            cause=cause,
        )


class PicflowUploadTransportError(PicflowUploadError):
    """The backend could not be reached (network error, process failed to start,
    non-2xx status).

    Context keys: ``backend``, ``status_code``, ``reason``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            context=context,
            cause=cause,
            code=ErrorCode.UPLOAD_TRANSPORT_ERROR,
        )


class PicflowBackendContractError(PicflowUploadError):
    """The backend answered, but the answer breaks the port contract.

    Raised when a "successful" batch does not carry exactly one URL per
    input path, or when the response body has the wrong shape.

    Context keys: ``expected``, ``received``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            context=context,
            cause=cause,
            code=ErrorCode.BACKEND_CONTRACT_ERROR,
        )


# ---------------------------------------------------------------------------
# Download errors
# ---------------------------------------------------------------------------

class PicflowDownloadError(PicflowError):
    """A network image could not be fetched or written to disk.

    Context keys: ``url``, ``status_code``, ``path``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.DOWNLOAD_ERROR,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# Placeholder errors
# ---------------------------------------------------------------------------

class PicflowPlaceholderError(PicflowError):
    """Interactive single-item upload failed behind a placeholder.

    Carries the backend's detail for the diagnostic log; the user only
    ever sees the generic failure marker.

    Context keys: ``placeholder_id``, ``detail``.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.PLACEHOLDER_ERROR,
            message=message,
            context=context,
            cause=cause,
        )
