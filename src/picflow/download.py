"""Download network images into the vault.

The inverse of an upload run: every network image reference whose URL
names an image file is fetched into the attachment folder and the
document is rewritten to point at the local copy by a path relative to
the document's folder.

Downloads are independent.  A failed download only affects its own
reference; the rest of the batch still lands.
"""

from __future__ import annotations

import asyncio
import os
import re
import uuid
from pathlib import Path, PurePosixPath
from urllib.parse import quote, unquote

import httpx

from picflow.config import PicflowConfig
from picflow.errors import PicflowDownloadError
from picflow.host import DocumentEditor, LoggingNotifier, Notifier, Vault
from picflow.image import (
    extract_image_references,
    format_image,
    is_image_path,
    is_network,
    replace_first,
    url_asset,
)
from picflow.models import ImageReference, RunSummary
from picflow.observability import get_logger, resolve_metrics
from picflow.orchestrator import DocumentLocks

log = get_logger("picflow.download")

_UNSAFE_NAME_RE = re.compile(r'[\\/:*?"<>|]')


def safe_stem(asset: str) -> str:
    """Decoded file stem of *asset* with path-hostile characters replaced.

    >>> safe_stem("a%20b:c.png")
    'a b-c'
    """
    return _UNSAFE_NAME_RE.sub("-", unquote(PurePosixPath(asset).stem))


def download_candidates(references: list[ImageReference]) -> list[ImageReference]:
    """Network references whose URL path ends in an image extension."""
    return [
        ref for ref in references
        if is_network(ref.locator) and is_image_path(url_asset(ref.locator))
    ]


class DownloadOrchestrator:
    """Fetch network images of a document into its attachment folder.

    Parameters
    ----------
    config:
        ``attachment_folder``, ``download_max_concurrent`` and
        ``timeout_seconds`` are read here.
    vault:
        Locates the document and the vault root on disk.
    notifier:
        Receives the end-of-run summary.
    client:
        Optional :class:`httpx.AsyncClient`; one is created lazily and
        closed by :meth:`aclose` otherwise.
    locks:
        Per-document lock registry shared with the upload orchestrator.
    """

    def __init__(
        self,
        config: PicflowConfig,
        vault: Vault,
        notifier: Notifier | None = None,
        client: httpx.AsyncClient | None = None,
        locks: DocumentLocks | None = None,
    ) -> None:
        self._config = config
        self._vault = vault
        self._notifier = notifier if notifier is not None else LoggingNotifier()
        self._client = client
        self._owns_client = client is None
        self._locks = locks if locks is not None else DocumentLocks()
        self._metrics = resolve_metrics(config.metrics)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout_seconds),
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def attachment_dir(self, document: DocumentEditor) -> Path:
        """Folder downloads of *document* are written to.

        ``./``-prefixed settings are relative to the document's folder,
        anything else to the vault root.
        """
        folder = self._config.attachment_folder
        if folder.startswith("./"):
            document_dir = self._vault.abs_path(document.path).parent
            return (document_dir / folder).resolve()
        return self._vault.abs_path(folder)

    def _target_path(self, folder: Path, ref: ImageReference, reserved: set[Path]) -> tuple[str, Path]:
        """Pick ``(display_name, path)`` for *ref*, avoiding existing files.

        *reserved* holds paths already chosen in this run, since the files
        themselves do not exist until their downloads finish.
        """
        asset = url_asset(ref.locator)
        ext = PurePosixPath(asset).suffix
        name = f"image-{safe_stem(asset)}"
        target = folder / f"{name}{ext}"
        while target.exists() or target in reserved:
            name = f"image-{uuid.uuid4().hex[:5]}"
            target = folder / f"{name}{ext}"
        reserved.add(target)
        return name, target

    async def _download(self, url: str, target: Path) -> None:
        """Fetch *url* into *target*.

        Raises
        ------
        PicflowDownloadError
            On network errors, non-200 responses and write failures.
        """
        try:
            response = await self._get_client().get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise PicflowDownloadError(
                message=f"Download failed for {url}: {exc}",
                context={"url": url},
                cause=exc,
            ) from exc
        if response.status_code != 200:
            raise PicflowDownloadError(
                message=f"Download of {url} answered {response.status_code}",
                context={"url": url, "status_code": response.status_code},
            )

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, target.write_bytes, response.content)
        except OSError as exc:
            raise PicflowDownloadError(
                message=f"Cannot write {target}: {exc}",
                context={"url": url, "path": str(target)},
                cause=exc,
            ) from exc

    async def run(self, document: DocumentEditor) -> RunSummary:
        """Download every network image of *document* and rewrite it.

        Returns
        -------
        RunSummary
            Counts over the download candidates.
        """
        async with self._locks.hold(document):
            candidates = download_candidates(extract_image_references(document.get_value()))
            if not candidates:
                summary = RunSummary()
                self._notifier.notify(summary.describe())
                return summary

            folder = self.attachment_dir(document)
            folder.mkdir(parents=True, exist_ok=True)
            document_dir = self._vault.abs_path(document.path).parent

            reserved: set[Path] = set()
            targets = [self._target_path(folder, ref, reserved) for ref in candidates]
            semaphore = asyncio.Semaphore(self._config.download_max_concurrent)

            async def _fetch_one(ref: ImageReference, target: Path) -> bool:
                async with semaphore:
                    try:
                        await self._download(ref.locator, target)
                    except PicflowDownloadError as exc:
                        self._metrics.increment("picflow.download_failure_total")
                        log.warning(
                            "Image download failed",
                            extra={
                                "extra_fields": {
                                    "op": "download",
                                    "document": document.path,
                                    "error": exc.message,
                                    **exc.context,
                                }
                            },
                        )
                        return False
                    self._metrics.increment("picflow.download_success_total")
                    return True

            results = await asyncio.gather(
                *(_fetch_one(ref, target) for ref, (_, target) in zip(candidates, targets))
            )

            text = document.get_value()
            succeeded = 0
            for ref, (name, target), ok in zip(candidates, targets, results):
                if not ok:
                    continue
                relative = Path(os.path.relpath(target, document_dir)).as_posix()
                text = replace_first(text, ref.source, format_image(name, quote(relative)))
                succeeded += 1
            document.set_value(text)

            summary = RunSummary(
                total_found=len(candidates),
                succeeded=succeeded,
                failed=len(candidates) - succeeded,
            )
            log.info(
                "Download run complete",
                extra={
                    "extra_fields": {
                        "op": "download_run",
                        "document": document.path,
                        "total": summary.total_found,
                        "succeeded": summary.succeeded,
                    }
                },
            )
            self._notifier.notify(summary.describe())
            return summary
