"""Application facade: document-mutation requests in, pipelines out.

The host translates its own events (command palette, paste, drop, file
menu) into one of the request dataclasses from :mod:`picflow.models` and
hands it to :meth:`ImageAutoUpload.handle`.  Batch requests run to
completion and return a :class:`RunSummary`.  Paste and drop requests
insert their placeholders synchronously, start the upload in a
background task, and return whether the host should suppress its own
default handling.

Nothing raised inside picflow propagates back into the host.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from picflow.config import PicflowConfig
from picflow.download import DownloadOrchestrator
from picflow.errors import PicflowPlaceholderError
from picflow.host import DocumentEditor, LoggingNotifier, Notifier, Vault
from picflow.image import (
    PlaceholderTracker,
    extract_image_references,
    filter_references,
    is_network,
    should_upload_clipboard,
)
from picflow.models import (
    ClipboardFile,
    DownloadAllRequest,
    DropEvent,
    DropRequest,
    MutationRequest,
    PasteEvent,
    PasteRequest,
    PlaceholderToken,
    RunSummary,
    UploadAllRequest,
    UploadFileRequest,
)
from picflow.observability import get_logger
from picflow.orchestrator import UPLOAD_ERROR_MESSAGE, DocumentLocks, UploadOrchestrator
from picflow.uploader import UploaderPort, create_uploader

log = get_logger("picflow.app")


class ImageAutoUpload:
    """Wire config, backend, vault and notifier into the pipelines.

    Parameters
    ----------
    config:
        Policy and backend settings.
    vault:
        Filesystem view used to resolve and write images.
    uploader:
        Backend override; built from *config* when omitted.
    notifier:
        User-facing message sink; logs by default.
    """

    def __init__(
        self,
        config: PicflowConfig,
        vault: Vault,
        uploader: UploaderPort | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._config = config
        self._uploader = uploader if uploader is not None else create_uploader(config)
        self._notifier = notifier if notifier is not None else LoggingNotifier()
        locks = DocumentLocks()
        self.uploads = UploadOrchestrator(
            config, self._uploader, vault, notifier=self._notifier, locks=locks,
        )
        self.downloads = DownloadOrchestrator(
            config, vault, notifier=self._notifier, locks=locks,
        )
        self.placeholders = PlaceholderTracker(metrics=config.metrics)
        self._tasks: set[asyncio.Task[Any]] = set()

    async def __aenter__(self) -> ImageAutoUpload:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Wait for background uploads, then release HTTP resources."""
        await self.drain()
        await self.downloads.aclose()
        aclose = getattr(self._uploader, "aclose", None)
        if aclose is not None:
            await aclose()

    async def drain(self) -> None:
        """Wait until every background paste/drop upload has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- dispatch -----------------------------------------------------------

    async def handle(self, document: DocumentEditor, request: MutationRequest) -> RunSummary | bool:
        """Run the pipeline for *request* against *document*.

        Returns
        -------
        RunSummary | bool
            A summary for batch requests; for paste/drop, ``True`` when
            picflow took over and the host must skip its default action.
        """
        interactive = isinstance(request, (PasteRequest, DropRequest))
        try:
            if isinstance(request, UploadAllRequest):
                return await self.uploads.upload_all(document)
            if isinstance(request, UploadFileRequest):
                return await self.uploads.upload_file(document, request.path)
            if isinstance(request, DownloadAllRequest):
                return await self.downloads.run(document)
            if isinstance(request, PasteRequest):
                return self._paste(document, request.event)
            if isinstance(request, DropRequest):
                return self._drop(document, request.event)
        except Exception:
            log.exception(
                "Request failed",
                extra={
                    "extra_fields": {
                        "op": "handle",
                        "request": type(request).__name__,
                        "document": getattr(document, "path", None),
                    }
                },
            )
            self._notifier.notify(UPLOAD_ERROR_MESSAGE)
            return False if interactive else RunSummary()
        raise TypeError(f"Unsupported request type: {type(request).__name__}")

    # -- paste / drop -------------------------------------------------------

    def _upload_allowed(self, document: DocumentEditor) -> bool:
        return bool(
            document.get_frontmatter_value(
                self._config.frontmatter_key, self._config.upload_by_clipboard,
            )
        )

    def _paste(self, document: DocumentEditor, event: PasteEvent) -> bool:
        if not self._upload_allowed(document):
            return False

        if self._config.work_on_network:
            pasted = [
                ref for ref in filter_references(extract_image_references(event.text), self._config)
                if is_network(ref.locator)
            ]
            if pasted:
                self._spawn(self.uploads.run(document, pasted))

        image = _first_image(event.files)
        if not should_upload_clipboard(image is not None, bool(event.text), self._config):
            return False

        token = self.placeholders.insert(document)
        self._spawn(
            self.placeholders.track(document, token, self._upload_clipboard, image.name)
        )
        return True

    async def _upload_clipboard(self) -> str:
        result = await self._uploader.upload_from_clipboard()
        if not result.ok:
            raise PicflowPlaceholderError(
                message="Clipboard upload failed",
                context={"detail": result.message or result.data, "code": result.code},
            )
        return result.data

    def _drop(self, document: DocumentEditor, event: DropEvent) -> bool:
        if not self._upload_allowed(document):
            return False
        if not event.files or not event.files[0].is_image:
            return False

        tokens = [self.placeholders.insert(document) for _ in event.files]
        self._spawn(self._upload_dropped(document, event.files, tokens))
        return True

    async def _upload_dropped(
        self,
        document: DocumentEditor,
        files: list[ClipboardFile],
        tokens: list[PlaceholderToken],
    ) -> None:
        for token in tokens:
            self.placeholders.mark_pending(token)
        try:
            result = await self._uploader.upload_files([f.path for f in files])
        except Exception as exc:
            result = None
            reason: object = exc
        else:
            reason = result.error_message

        if result is not None and result.success:
            for token, file, url in zip(tokens, files, result.result_urls):
                self.placeholders.resolve_success(document, token, url, file.name)
            reason = f"{len(result.result_urls)} URLs returned for {len(files)} files"
        else:
            self._notifier.notify(UPLOAD_ERROR_MESSAGE)

        still_open = set(self.placeholders.unresolved)
        for token in tokens:
            if token.id in still_open:
                self.placeholders.resolve_failure(document, token, reason)

    # -- background tasks ---------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "Background upload failed",
                exc_info=exc,
                extra={"extra_fields": {"op": "background"}},
            )
            self._notifier.notify(UPLOAD_ERROR_MESSAGE)


def _first_image(files: list[ClipboardFile]) -> ClipboardFile | None:
    if files and files[0].is_image:
        return files[0]
    return None
