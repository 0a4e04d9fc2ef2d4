"""HTTP backend for a locally running PicGo app.

PicGo listens on ``127.0.0.1:36677`` and accepts::

    POST /upload  {"list": ["/abs/a.png", "https://x/b.png"]}
    -> {"success": true, "result": ["https://cdn/a.png", "https://cdn/b.png"]}

A bodyless ``POST /upload`` uploads the clipboard image instead.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx

from picflow.config import PicflowConfig
from picflow.errors import (
    PicflowBackendContractError,
    PicflowUploadError,
    PicflowUploadTransportError,
)
from picflow.models import BatchUploadResult, ClipboardUploadResult
from picflow.observability import get_logger

from .base import check_result_count

log = get_logger("picflow.uploader.picgo")

_BACKEND = "picgo"


def _result_list(body: dict[str, Any]) -> list[str]:
    result = body.get("result", [])
    if isinstance(result, str):
        return [result]
    if isinstance(result, list) and all(isinstance(url, str) for url in result):
        return result
    raise PicflowBackendContractError(
        message="PicGo response 'result' is not a list of URLs",
        context={"backend": _BACKEND, "received": type(result).__name__},
    )


class PicGoUploader:
    """Upload through the PicGo desktop app's HTTP server.

    Parameters
    ----------
    config:
        Supplies ``upload_server`` and ``timeout_seconds``.
    client:
        Optional pre-built :class:`httpx.AsyncClient`, mainly for tests.
        When omitted the uploader creates one lazily and closes it in
        :meth:`aclose`.
    """

    def __init__(
        self,
        config: PicflowConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout_seconds),
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _post(self, payload: dict[str, Any] | None) -> dict[str, Any]:
        """POST to the upload server and return the parsed JSON body.

        Raises
        ------
        PicflowUploadTransportError
            On network errors and non-2xx responses.
        PicflowBackendContractError
            When the body is not a JSON object.
        """
        url = self._config.upload_server
        try:
            if payload is None:
                response = await self._get_client().post(url)
            else:
                response = await self._get_client().post(url, json=payload)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise PicflowUploadTransportError(
                message=f"Cannot reach PicGo at {url}: {exc}",
                context={"backend": _BACKEND, "reason": type(exc).__name__},
                cause=exc,
            ) from exc

        if not 200 <= response.status_code < 300:
            raise PicflowUploadTransportError(
                message=f"PicGo answered {response.status_code}",
                context={
                    "backend": _BACKEND,
                    "status_code": response.status_code,
                    "body": response.text[:500],
                },
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise PicflowBackendContractError(
                message="PicGo response is not JSON",
                context={"backend": _BACKEND, "body": response.text[:500]},
                cause=exc,
            ) from exc
        if not isinstance(body, dict):
            raise PicflowBackendContractError(
                message="PicGo response is not a JSON object",
                context={"backend": _BACKEND, "received": type(body).__name__},
            )
        return body

    @staticmethod
    def _raise_if_unsuccessful(body: dict[str, Any]) -> None:
        if not body.get("success"):
            raise PicflowUploadError(
                message=str(body.get("message") or body.get("msg") or "PicGo upload failed"),
                context={"backend": _BACKEND},
            )

    async def upload_files(self, paths: Sequence[str]) -> BatchUploadResult:
        paths = list(paths)
        try:
            body = await self._post({"list": paths})
            self._raise_if_unsuccessful(body)
            urls = check_result_count(_result_list(body), len(paths), _BACKEND)
        except PicflowUploadError as exc:
            log.warning(
                "PicGo batch upload failed",
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

        log.debug(
            "PicGo batch upload complete",
            extra={"extra_fields": {"op": "upload_files", "backend": _BACKEND, "files": len(paths)}},
        )
        return BatchUploadResult(success=True, result_urls=urls)

    async def upload_from_clipboard(self) -> ClipboardUploadResult:
        try:
            body = await self._post(None)
            self._raise_if_unsuccessful(body)
            urls = _result_list(body)
            if not urls:
                raise PicflowBackendContractError(
                    message="PicGo returned no URL for the clipboard image",
                    context={"backend": _BACKEND, "expected": 1, "received": 0},
                )
        except PicflowUploadError as exc:
            log.warning(
                "PicGo clipboard upload failed",
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
        return ClipboardUploadResult(code=0, data=urls[0], message="success")
