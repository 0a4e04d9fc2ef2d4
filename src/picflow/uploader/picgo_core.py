"""Subprocess backend driving the ``picgo`` command-line tool.

``picgo upload a.png b.png`` prints progress lines followed by one URL per
uploaded file, in argument order.  ``picgo upload`` without arguments
uploads the clipboard image.  Any line containing ``PicGo ERROR`` marks
the whole run as failed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from picflow.config import PicflowConfig
from picflow.errors import (
    PicflowBackendContractError,
    PicflowUploadError,
    PicflowUploadTransportError,
)
from picflow.models import BatchUploadResult, ClipboardUploadResult
from picflow.observability import get_logger

from .base import check_result_count

log = get_logger("picflow.uploader.picgo_core")

_BACKEND = "picgo-core"
_ERROR_MARKER = "PicGo ERROR"


def parse_urls(output: str) -> list[str]:
    """Return the URL lines of picgo's output, in order."""
    return [
        line.strip()
        for line in output.splitlines()
        if line.strip().startswith(("http://", "https://"))
    ]


class PicGoCoreUploader:
    """Upload by running the ``picgo`` executable.

    Parameters
    ----------
    config:
        ``picgo_core_path`` names the executable (``picgo`` on ``PATH``
        when empty); ``timeout_seconds`` bounds each invocation.
    """

    def __init__(self, config: PicflowConfig) -> None:
        self._config = config
        self._executable = config.picgo_core_path or "picgo"

    async def _exec(self, *paths: str) -> str:
        """Run ``picgo upload [paths...]`` and return its combined output.

        Raises
        ------
        PicflowUploadTransportError
            If the process cannot start, times out, or exits non-zero.
        PicflowUploadError
            If the output reports a PicGo error.
        """
        cmd = [self._executable, "upload", *paths]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise PicflowUploadTransportError(
                message=f"Cannot run {self._executable}: {exc}",
                context={"backend": _BACKEND, "reason": type(exc).__name__},
                cause=exc,
            ) from exc

        try:
            stdout, _ = await asyncio.wait_for(
                process.communicate(), timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise PicflowUploadTransportError(
                message=f"{self._executable} timed out after {self._config.timeout_seconds}s",
                context={"backend": _BACKEND, "reason": "timeout"},
                cause=exc,
            ) from exc

        output = stdout.decode("utf-8", errors="replace")
        if _ERROR_MARKER in output:
            raise PicflowUploadError(
                message="picgo reported an error",
                context={"backend": _BACKEND, "output": output[-1000:]},
            )
        if process.returncode != 0:
            raise PicflowUploadTransportError(
                message=f"{self._executable} exited with code {process.returncode}",
                context={
                    "backend": _BACKEND,
                    "reason": "exit_code",
                    "output": output[-1000:],
                },
            )
        return output

    async def upload_files(self, paths: Sequence[str]) -> BatchUploadResult:
        paths = list(paths)
        try:
            output = await self._exec(*paths)
            urls = parse_urls(output)
            # Progress lines may echo input URLs; the results are the tail.
            urls = check_result_count(urls[-len(paths):] if paths else [], len(paths), _BACKEND)
        except PicflowUploadError as exc:
            log.warning(
                "picgo batch upload failed",
                extra={
                    "extra_fields": {
                        "op": "upload_files",
                        "backend": _BACKEND,
                        "files": len(paths),
                        "error_code": exc.code,
                        "error": exc.message,
                    }
                },
            )
            return BatchUploadResult(success=False, error_message=exc.message)
        return BatchUploadResult(success=True, result_urls=urls)

    async def upload_from_clipboard(self) -> ClipboardUploadResult:
        try:
            output = await self._exec()
            urls = parse_urls(output)
            if not urls:
                raise PicflowBackendContractError(
                    message="picgo printed no URL; check the picgo configuration",
                    context={"backend": _BACKEND, "output": output[-1000:]},
                )
        except PicflowUploadError as exc:
            log.warning(
                "picgo clipboard upload failed",
                extra={
                    "extra_fields": {
                        "op": "upload_from_clipboard",
                        "backend": _BACKEND,
                        "error_code": exc.code,
                        "error": exc.message,
                    }
                },
            )
            return ClipboardUploadResult(code=-1, message=exc.message)
        return ClipboardUploadResult(code=0, data=urls[-1], message="success")
