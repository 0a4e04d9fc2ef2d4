"""Tests for the application facade: request dispatch, paste and drop."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from picflow.app import ImageAutoUpload
from picflow.config import PicflowConfig
from picflow.host import TextDocument
from picflow.image import FAILURE_MARKER
from picflow.models import (
    BatchUploadResult,
    ClipboardFile,
    ClipboardUploadResult,
    DownloadAllRequest,
    DropEvent,
    DropRequest,
    PasteEvent,
    PasteRequest,
    RunSummary,
    UploadAllRequest,
    UploadFileRequest,
)
from picflow.orchestrator import UPLOAD_ERROR_MESSAGE
from picflow.uploader import PicGoUploader

PNG_FILE = ClipboardFile(name="image.png", mime_type="image/png")


def make_app(vault, uploader, notifier, **overrides) -> ImageAutoUpload:
    return ImageAutoUpload(PicflowConfig(**overrides), vault, uploader=uploader, notifier=notifier)


@pytest.fixture
def app(vault, uploader, notifier) -> ImageAutoUpload:
    return make_app(vault, uploader, notifier)


def paste(*files: ClipboardFile, text: str = "") -> PasteRequest:
    return PasteRequest(PasteEvent(text=text, files=list(files)))


def drop(*files: ClipboardFile) -> DropRequest:
    return DropRequest(DropEvent(files=list(files)))


# =========================================================================
# Clipboard paste
# =========================================================================

class TestPasteClipboard:
    async def test_placeholder_then_url(self, app, uploader):
        doc = TextDocument("intro\n", path="note.md")

        handled = await app.handle(doc, paste(PNG_FILE))

        assert handled is True
        assert "![Uploading file..." in doc.get_value()
        await app.drain()
        assert doc.get_value() == "intro\n![image.png](http://cdn/clip.png)\n"
        uploader.upload_from_clipboard.assert_awaited_once()

    async def test_failure_marker(self, app, uploader):
        uploader.upload_from_clipboard = AsyncMock(
            return_value=ClipboardUploadResult(code=-1, message="no image in clipboard")
        )
        doc = TextDocument("", path="note.md")

        assert await app.handle(doc, paste(PNG_FILE)) is True
        await app.drain()

        assert doc.get_value() == f"{FAILURE_MARKER}\n"
        assert "no image in clipboard" not in doc.get_value()

    async def test_backend_exception_becomes_failure_marker(self, app, uploader):
        uploader.upload_from_clipboard = AsyncMock(side_effect=ConnectionError("refused"))
        doc = TextDocument("", path="note.md")

        await app.handle(doc, paste(PNG_FILE))
        await app.drain()

        assert doc.get_value() == f"{FAILURE_MARKER}\n"
        assert app.placeholders.unresolved == []

    async def test_no_image_is_not_handled(self, app, uploader):
        doc = TextDocument("", path="note.md")
        assert await app.handle(doc, paste(text="hello")) is False
        assert doc.get_value() == ""
        uploader.upload_from_clipboard.assert_not_called()

    async def test_first_file_must_be_image(self, app):
        doc = TextDocument("", path="note.md")
        pdf = ClipboardFile(name="a.pdf", mime_type="application/pdf")
        assert await app.handle(doc, paste(pdf, PNG_FILE)) is False

    async def test_text_and_image_respects_toggle(self, vault, uploader, notifier):
        app = make_app(vault, uploader, notifier, upload_on_text_and_image=False)
        doc = TextDocument("", path="note.md")
        assert await app.handle(doc, paste(PNG_FILE, text="cell")) is False
        assert doc.get_value() == ""

    async def test_text_and_image_uploaded_by_default(self, app):
        doc = TextDocument("", path="note.md")
        assert await app.handle(doc, paste(PNG_FILE, text="cell")) is True
        await app.drain()

    async def test_front_matter_disables_upload(self, app, uploader):
        doc = TextDocument("---\nimage-auto-upload: false\n---\nbody\n", path="note.md")
        assert await app.handle(doc, paste(PNG_FILE)) is False
        uploader.upload_from_clipboard.assert_not_called()

    async def test_front_matter_enables_upload(self, vault, uploader, notifier):
        app = make_app(vault, uploader, notifier, upload_by_clipboard=False)
        off = TextDocument("body\n", path="off.md")
        on = TextDocument("---\nimage-auto-upload: true\n---\nbody\n", path="on.md")

        assert await app.handle(off, paste(PNG_FILE)) is False
        assert await app.handle(on, paste(PNG_FILE)) is True
        await app.drain()

    async def test_concurrent_pastes_resolve_independently(self, app, uploader):
        uploader.upload_from_clipboard = AsyncMock(side_effect=[
            ClipboardUploadResult(code=0, data="http://cdn/first.png"),
            ClipboardUploadResult(code=-1, message="quota"),
        ])
        doc = TextDocument("", path="note.md")

        await app.handle(doc, paste(PNG_FILE))
        await app.handle(doc, paste(PNG_FILE))
        await app.drain()

        assert doc.get_value() == f"![image.png](http://cdn/first.png)\n{FAILURE_MARKER}\n"


# =========================================================================
# Network paste
# =========================================================================

class TestPasteNetwork:
    async def test_pasted_network_image_uploaded(self, vault, uploader, notifier):
        app = make_app(vault, uploader, notifier, work_on_network=True)
        doc = TextDocument("", path="note.md")
        request = paste(text="![r](https://img.site/r.png)")

        handled = await app.handle(doc, request)
        assert handled is False
        doc.replace_selection(request.event.text)
        await app.drain()

        assert doc.get_value() == "![r](http://cdn/1.png)"
        uploader.upload_files.assert_awaited_once_with(["https://img.site/r.png"])

    async def test_blacklisted_domain_not_uploaded(self, vault, uploader, notifier):
        app = make_app(
            vault, uploader, notifier, work_on_network=True, network_blacklist_domains="img.site",
        )
        doc = TextDocument("", path="note.md")

        await app.handle(doc, paste(text="![r](https://img.site/r.png)"))
        await app.drain()

        uploader.upload_files.assert_not_called()

    async def test_ignored_when_network_disabled(self, app, uploader):
        doc = TextDocument("", path="note.md")
        await app.handle(doc, paste(text="![r](https://img.site/r.png)"))
        await app.drain()
        uploader.upload_files.assert_not_called()

    async def test_background_failure_notifies(self, vault, uploader, notifier):
        uploader.upload_files = AsyncMock(side_effect=RuntimeError("backend crashed"))
        app = make_app(vault, uploader, notifier, work_on_network=True)
        doc = TextDocument("", path="note.md")

        await app.handle(doc, paste(text="![r](https://img.site/r.png)"))
        await app.drain()

        notifier.notify.assert_called_with(UPLOAD_ERROR_MESSAGE)


# =========================================================================
# Drop
# =========================================================================

class TestDrop:
    FILES = (
        ClipboardFile(name="a.png", mime_type="image/png", path="/tmp/a.png"),
        ClipboardFile(name="b.jpg", mime_type="image/jpeg", path="/tmp/b.jpg"),
    )

    async def test_one_placeholder_per_file(self, app, uploader):
        doc = TextDocument("", path="note.md")

        assert await app.handle(doc, drop(*self.FILES)) is True
        assert doc.get_value().count("![Uploading file...") == 2
        await app.drain()

        assert doc.get_value() == "![a.png](http://cdn/1.png)\n![b.jpg](http://cdn/2.png)\n"
        uploader.upload_files.assert_awaited_once_with(["/tmp/a.png", "/tmp/b.jpg"])

    async def test_failed_batch_marks_every_placeholder(self, app, uploader, notifier):
        uploader.upload_files = AsyncMock(
            return_value=BatchUploadResult(success=False, error_message="down")
        )
        doc = TextDocument("", path="note.md")

        await app.handle(doc, drop(*self.FILES))
        await app.drain()

        assert doc.get_value() == f"{FAILURE_MARKER}\n{FAILURE_MARKER}\n"
        notifier.notify.assert_called_once_with(UPLOAD_ERROR_MESSAGE)

    async def test_backend_exception_marks_every_placeholder(self, app, uploader):
        uploader.upload_files = AsyncMock(side_effect=OSError("gone"))
        doc = TextDocument("", path="note.md")

        await app.handle(doc, drop(*self.FILES))
        await app.drain()

        assert doc.get_value() == f"{FAILURE_MARKER}\n{FAILURE_MARKER}\n"
        assert app.placeholders.unresolved == []

    async def test_short_url_list_fails_remaining(self, app, uploader):
        uploader.upload_files = AsyncMock(
            return_value=BatchUploadResult(success=True, result_urls=["http://cdn/1.png"])
        )
        doc = TextDocument("", path="note.md")

        await app.handle(doc, drop(*self.FILES))
        await app.drain()

        assert doc.get_value() == f"![a.png](http://cdn/1.png)\n{FAILURE_MARKER}\n"

    async def test_non_image_drop_not_handled(self, app):
        doc = TextDocument("", path="note.md")
        txt = ClipboardFile(name="a.txt", mime_type="text/plain", path="/tmp/a.txt")
        assert await app.handle(doc, drop(txt)) is False
        assert await app.handle(doc, drop()) is False
        assert doc.get_value() == ""

    async def test_front_matter_disables_drop(self, app):
        doc = TextDocument("---\nimage-auto-upload: false\n---\n", path="note.md")
        assert await app.handle(doc, drop(*self.FILES)) is False


# =========================================================================
# Batch requests and error boundary
# =========================================================================

class TestHandle:
    async def test_upload_all(self, app, make_image):
        make_image("a.png")
        doc = TextDocument("![a](a.png)", path="note.md")

        summary = await app.handle(doc, UploadAllRequest())

        assert summary == RunSummary(total_found=1, succeeded=1, failed=0)
        assert doc.get_value() == "![a](http://cdn/1.png)"

    async def test_upload_file(self, app, make_image):
        make_image("a.png")
        doc = TextDocument("![a](a.png)", path="note.md")
        summary = await app.handle(doc, UploadFileRequest(Path("a.png")))
        assert summary.succeeded == 1

    async def test_download_all_without_candidates(self, app, notifier):
        doc = TextDocument("![a](a.png)", path="note.md")
        summary = await app.handle(doc, DownloadAllRequest())
        assert summary == RunSummary()
        notifier.notify.assert_called_once_with("all: 0\nsuccess: 0\nfailed: 0")

    async def test_batch_exception_is_contained(self, app, notifier):
        app.uploads.upload_all = AsyncMock(side_effect=RuntimeError("boom"))
        summary = await app.handle(TextDocument(path="note.md"), UploadAllRequest())
        assert summary == RunSummary()
        notifier.notify.assert_called_once_with(UPLOAD_ERROR_MESSAGE)

    async def test_interactive_exception_is_contained(self, app, notifier):
        doc = MagicMock()
        doc.path = "note.md"
        doc.get_frontmatter_value.side_effect = RuntimeError("editor gone")

        assert await app.handle(doc, paste(PNG_FILE)) is False
        notifier.notify.assert_called_once_with(UPLOAD_ERROR_MESSAGE)

    async def test_unknown_request_type(self, app):
        with pytest.raises(TypeError, match="Unsupported request type"):
            await app.handle(TextDocument(), object())


# =========================================================================
# Lifecycle
# =========================================================================

class TestLifecycle:
    async def test_close_drains_and_closes_uploader(self, app, uploader):
        doc = TextDocument("", path="note.md")
        await app.handle(doc, paste(PNG_FILE))

        await app.close()

        assert FAILURE_MARKER not in doc.get_value()
        assert "![image.png](http://cdn/clip.png)" in doc.get_value()
        uploader.aclose.assert_awaited_once()

    async def test_context_manager(self, vault, uploader, notifier):
        async with make_app(vault, uploader, notifier) as app:
            assert isinstance(app, ImageAutoUpload)
        uploader.aclose.assert_awaited_once()

    async def test_default_uploader_from_config(self, vault):
        async with ImageAutoUpload(PicflowConfig(), vault) as app:
            assert isinstance(app._uploader, PicGoUploader)
