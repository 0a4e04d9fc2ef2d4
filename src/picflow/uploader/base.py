"""Uploader port and backend factory.

The orchestrators talk to every backend through :class:`UploaderPort`.
Backends never raise for upload failures: a failed batch comes back as
``BatchUploadResult(success=False)`` and a failed clipboard upload as a
non-zero ``code``.  The cause is logged by the backend, not inspected by
the caller.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from picflow.config import PicflowConfig
from picflow.errors import PicflowBackendContractError, PicflowConfigError
from picflow.models import BatchUploadResult, ClipboardUploadResult


@runtime_checkable
class UploaderPort(Protocol):
    """Contract every upload backend satisfies."""

    async def upload_files(self, paths: Sequence[str]) -> BatchUploadResult:
        """Upload *paths* in order.

        On success the result holds exactly one URL per path, in the
        same order.  A backend that cannot guarantee that reports
        ``success=False`` rather than a shorter list.
        """
        ...

    async def upload_from_clipboard(self) -> ClipboardUploadResult:
        """Upload whatever image currently sits on the system clipboard."""
        ...


def check_result_count(urls: Sequence[str], expected: int, backend: str) -> list[str]:
    """Return *urls* as a list, or raise if it does not hold *expected* URLs.

    Raises
    ------
    PicflowBackendContractError
        If the count differs.  A truncated list is never passed on as a
        success, since position is the only link back to the input.
    """
    if len(urls) != expected:
        raise PicflowBackendContractError(
            message=(
                f"{backend} returned {len(urls)} URLs for {expected} files"
            ),
            context={"backend": backend, "expected": expected, "received": len(urls)},
        )
    return list(urls)


def create_uploader(config: PicflowConfig) -> UploaderPort:
    """Instantiate the backend named by ``config.uploader``.

    Raises
    ------
    PicflowConfigError
        If the name is not a known backend.
    """
    if config.uploader == "picgo":
        from .picgo import PicGoUploader

        return PicGoUploader(config)
    if config.uploader == "picgo-core":
        from .picgo_core import PicGoCoreUploader

        return PicGoCoreUploader(config)
    raise PicflowConfigError(
        message=f"Unknown uploader {config.uploader!r}",
        context={"field": "uploader", "value": config.uploader},
    )
