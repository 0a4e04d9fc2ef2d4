"""Batch upload orchestration.

:class:`UploadOrchestrator` turns a list of image references into one
uploader call and one full-document rewrite:

1. Resolve each reference to an uploadable path (network URLs pass
   through, local files are looked up in the vault).
2. Call :meth:`UploaderPort.upload_files` with the paths in order.
3. Pair returned URLs with references by position and replace the first
   occurrence of each reference's literal text, re-scanning the running
   text each time so duplicates are consumed one by one.
4. Optionally delete the local source files.

Runs against the same document are serialized with an
:class:`asyncio.Lock` keyed by document path.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from pathlib import Path

from picflow.config import PicflowConfig
from picflow.host import DocumentEditor, LoggingNotifier, Notifier, Vault
from picflow.image import (
    extract_image_references,
    filter_references,
    format_image,
    is_image_path,
    is_network,
    locator_file_name,
    replace_first,
)
from picflow.models import ImageReference, RunSummary, UploadWorklistItem
from picflow.observability import get_logger, resolve_metrics
from picflow.uploader import UploaderPort

log = get_logger("picflow.orchestrator")

UPLOAD_ERROR_MESSAGE = "Upload error"
NO_IMAGES_MESSAGE = "No image files found"


def found_message(count: int) -> str:
    return f"Found {count} image files, uploading"


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class DocumentLocks:
    """One :class:`asyncio.Lock` per document path.

    Shared by every orchestrator of an application so that an upload run
    and a download run on the same document never interleave their text
    rewrites.  An entry lives only while some run holds or waits for it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, _LockEntry] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, document: DocumentEditor) -> AsyncIterator[None]:
        """Hold the lock of *document* for the duration of the block."""
        key = document.path
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _LockEntry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    def busy(self, document: DocumentEditor) -> bool:
        entry = self._locks.get(document.path)
        return entry is not None and entry.lock.locked()


class UploadOrchestrator:
    """Upload image references and rewrite the document to the results.

    Parameters
    ----------
    config:
        Policy toggles (``delete_source`` and those read by the filter).
    uploader:
        Any :class:`UploaderPort` backend.
    vault:
        Resolves local locators to files.
    notifier:
        Receives the aggregate, user-facing messages.
    locks:
        Per-document lock registry; a private one is created if omitted.
    """

    def __init__(
        self,
        config: PicflowConfig,
        uploader: UploaderPort,
        vault: Vault,
        notifier: Notifier | None = None,
        locks: DocumentLocks | None = None,
    ) -> None:
        self._config = config
        self._uploader = uploader
        self._vault = vault
        self._notifier = notifier if notifier is not None else LoggingNotifier()
        self._locks = locks if locks is not None else DocumentLocks()
        self._metrics = resolve_metrics(config.metrics)

    # -- resolution -------------------------------------------------------

    async def resolve(
        self,
        document: DocumentEditor,
        references: Sequence[ImageReference],
    ) -> list[UploadWorklistItem]:
        """Map references to worklist items, dropping unresolvable ones.

        Vault lookups may walk the whole vault, so they run in the
        default executor.
        """
        loop = asyncio.get_running_loop()
        items: list[UploadWorklistItem] = []
        for ref in references:
            if is_network(ref.locator):
                items.append(UploadWorklistItem(reference=ref, path=ref.locator, is_network=True))
                continue
            path = await loop.run_in_executor(
                None, self._vault.resolve_image, ref.locator, document.path,
            )
            if path is None:
                log.debug(
                    "Dropping unresolvable image reference",
                    extra={"extra_fields": {"document": document.path, "locator": ref.locator}},
                )
                continue
            items.append(UploadWorklistItem(reference=ref, path=str(path)))
        return items

    # -- public entry points ----------------------------------------------

    async def run(
        self,
        document: DocumentEditor,
        references: Sequence[ImageReference],
        *,
        announce: bool = False,
    ) -> RunSummary:
        """Upload *references* (already filtered) and rewrite *document*.

        Parameters
        ----------
        document:
            The live document; its text is read after the upload returns.
        references:
            The worklist, in document order.
        announce:
            Notify "found N images" before uploading, or "no image files
            found" when nothing resolves.

        Returns
        -------
        RunSummary
            ``total_found`` is ``len(references)``; unresolvable items,
            items of a failed batch and items whose text is no longer in
            the document count as failed.
        """
        async with self._locks.hold(document):
            return await self._run_locked(document, references, announce=announce)

    async def upload_all(self, document: DocumentEditor) -> RunSummary:
        """Extract, filter and upload every image of *document*.

        The worklist is read under the document lock, so a run queued
        behind another one sees the text that run produced.
        """
        async with self._locks.hold(document):
            references = filter_references(
                extract_image_references(document.get_value()), self._config,
            )
            return await self._run_locked(document, references, announce=True)

    async def upload_file(self, document: DocumentEditor, file_path: Path | str) -> RunSummary:
        """Upload one vault file and rewrite every local reference to it.

        *file_path* may be absolute or vault-relative.
        """
        path = Path(file_path)
        if not path.is_absolute():
            path = self._vault.abs_path(str(file_path))

        async with self._locks.hold(document):
            items: list[UploadWorklistItem] = []
            if is_image_path(path.name) and path.is_file():
                for ref in extract_image_references(document.get_value()):
                    if is_network(ref.locator):
                        continue
                    if locator_file_name(ref.locator) == path.name:
                        items.append(UploadWorklistItem(reference=ref, path=str(path)))
            if not items:
                self._notifier.notify(NO_IMAGES_MESSAGE)
                return RunSummary()
            return await self._upload_items(document, items, total=len(items))

    # -- internals --------------------------------------------------------

    async def _run_locked(
        self,
        document: DocumentEditor,
        references: Sequence[ImageReference],
        *,
        announce: bool,
    ) -> RunSummary:
        items = await self.resolve(document, references)
        if announce:
            if items:
                self._notifier.notify(found_message(len(items)))
            else:
                self._notifier.notify(NO_IMAGES_MESSAGE)
        return await self._upload_items(document, items, total=len(references))

    async def _upload_items(
        self,
        document: DocumentEditor,
        items: list[UploadWorklistItem],
        total: int,
    ) -> RunSummary:
        if not items:
            return RunSummary(total_found=total, succeeded=0, failed=total)

        t0 = time.monotonic()
        result = await self._uploader.upload_files([item.path for item in items])
        elapsed_ms = (time.monotonic() - t0) * 1000
        outcome = "success" if result.success else "failure"
        self._metrics.timing("picflow.upload_duration_ms", elapsed_ms, tags={"outcome": outcome})
        self._metrics.increment("picflow.upload_batches_total", tags={"outcome": outcome})

        if not result.success:
            log.warning(
                "Upload batch failed",
                extra={
                    "extra_fields": {
                        "op": "upload_run",
                        "document": document.path,
                        "files": len(items),
                        "error": result.error_message,
                    }
                },
            )
            self._metrics.increment("picflow.upload_failure_total", value=len(items))
            self._notifier.notify(UPLOAD_ERROR_MESSAGE)
            return RunSummary(total_found=total, succeeded=0, failed=total)

        urls = result.result_urls
        if len(urls) != len(items):
            log.error(
                "Uploader returned a URL count that does not match its input",
                extra={
                    "extra_fields": {
                        "op": "upload_run",
                        "document": document.path,
                        "expected": len(items),
                        "received": len(urls),
                    }
                },
            )

        text = document.get_value()
        rewritten: list[UploadWorklistItem] = []
        for item, url in zip(items, urls):
            if item.reference.source not in text:
                log.debug(
                    "Image reference left the document during upload",
                    extra={"extra_fields": {"document": document.path, "source": item.reference.source}},
                )
                continue
            text = replace_first(
                text, item.reference.source, format_image(item.reference.name, url),
            )
            rewritten.append(item)
        document.set_value(text)

        succeeded = len(rewritten)
        self._metrics.increment("picflow.upload_success_total", value=succeeded)
        if succeeded < len(items):
            self._metrics.increment("picflow.upload_failure_total", value=len(items) - succeeded)

        if self._config.delete_source:
            await self._delete_sources(
                [Path(item.path) for item in rewritten if not item.is_network],
            )

        log.info(
            "Upload run complete",
            extra={
                "extra_fields": {
                    "op": "upload_run",
                    "document": document.path,
                    "total": total,
                    "succeeded": succeeded,
                }
            },
        )
        return RunSummary(total_found=total, succeeded=succeeded, failed=total - succeeded)

    async def _delete_sources(self, paths: list[Path]) -> None:
        """Best-effort removal of uploaded source files, each path once."""
        loop = asyncio.get_running_loop()
        for path in dict.fromkeys(paths):
            try:
                await loop.run_in_executor(None, path.unlink)
            except OSError as exc:
                self._metrics.increment("picflow.source_delete_failures_total")
                log.warning(
                    "Could not delete uploaded source file",
                    extra={"extra_fields": {"op": "delete_source", "path": str(path), "error": str(exc)}},
                )

