"""Tests for downloading network images into the vault."""

from __future__ import annotations

import asyncio
import re

import httpx
import pytest

from picflow.config import PicflowConfig
from picflow.download import DownloadOrchestrator, download_candidates, safe_stem
from picflow.host import TextDocument
from picflow.image import extract_image_references
from picflow.models import RunSummary

PNG = b"\x89PNG\r\n\x1a\nfake"


def serve(routes: dict[str, httpx.Response]):
    """MockTransport handler answering from *routes*, 404 otherwise."""

    def handler(request: httpx.Request) -> httpx.Response:
        return routes.get(str(request.url), httpx.Response(404))

    return handler


def make_downloader(vault, notifier, handler, **overrides) -> DownloadOrchestrator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DownloadOrchestrator(PicflowConfig(**overrides), vault, notifier=notifier, client=client)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    def test_safe_stem(self):
        assert safe_stem("a%20b:c.png") == "a b-c"
        assert safe_stem("plain.jpg") == "plain"

    def test_candidates_need_image_url(self):
        refs = extract_image_references(
            "![a](https://x.io/a.png?w=10) ![p](https://x.io/page) ![l](local.png)"
        )
        assert [r.locator for r in download_candidates(refs)] == ["https://x.io/a.png?w=10"]


# ---------------------------------------------------------------------------
# Attachment folder
# ---------------------------------------------------------------------------

class TestAttachmentDir:
    def test_dot_slash_is_relative_to_document(self, vault, notifier, tmp_path):
        dl = make_downloader(vault, notifier, serve({}), attachment_folder="./assets")
        folder = dl.attachment_dir(TextDocument(path="daily/today.md"))
        assert folder == (tmp_path / "daily/assets").resolve()

    def test_plain_folder_is_relative_to_vault(self, vault, notifier, tmp_path):
        dl = make_downloader(vault, notifier, serve({}), attachment_folder="attachments")
        folder = dl.attachment_dir(TextDocument(path="daily/today.md"))
        assert folder == (tmp_path / "attachments").resolve()


# ---------------------------------------------------------------------------
# run()
# ---------------------------------------------------------------------------

class TestRun:
    async def test_downloads_and_rewrites(self, vault, notifier, tmp_path):
        routes = {"https://img.site/path/r.png": httpx.Response(200, content=PNG)}
        dl = make_downloader(vault, notifier, serve(routes))
        doc = TextDocument("see ![r](https://img.site/path/r.png) here", path="note.md")

        summary = await dl.run(doc)

        assert summary == RunSummary(total_found=1, succeeded=1, failed=0)
        assert doc.get_value() == "see ![image-r](assets/image-r.png) here"
        assert (tmp_path / "assets/image-r.png").read_bytes() == PNG
        notifier.notify.assert_called_once_with("all: 1\nsuccess: 1\nfailed: 0")

    async def test_failure_does_not_abort_batch(self, vault, notifier, tmp_path):
        routes = {"https://img.site/ok.png": httpx.Response(200, content=PNG)}
        dl = make_downloader(vault, notifier, serve(routes))
        doc = TextDocument(
            "![a](https://img.site/gone.png)\n![b](https://img.site/ok.png)\n", path="note.md",
        )

        summary = await dl.run(doc)

        assert summary == RunSummary(total_found=2, succeeded=1, failed=1)
        assert doc.get_value() == (
            "![a](https://img.site/gone.png)\n![image-ok](assets/image-ok.png)\n"
        )
        assert not (tmp_path / "assets/image-gone.png").exists()

    async def test_network_error_counts_as_failure(self, vault, notifier, metrics):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        dl = make_downloader(vault, notifier, refuse, metrics=metrics)
        doc = TextDocument("![a](https://img.site/a.png)", path="note.md")

        summary = await dl.run(doc)

        assert summary.failed == 1
        assert doc.get_value() == "![a](https://img.site/a.png)"
        assert "picflow.download_failure_total" in metrics.names()

    async def test_existing_file_is_not_overwritten(self, vault, notifier, make_image, tmp_path):
        existing = make_image("assets/image-r.png", data=b"old")
        routes = {"https://img.site/r.png": httpx.Response(200, content=PNG)}
        dl = make_downloader(vault, notifier, serve(routes))
        doc = TextDocument("![r](https://img.site/r.png)", path="note.md")

        await dl.run(doc)

        assert existing.read_bytes() == b"old"
        match = re.fullmatch(r"!\[(image-[0-9a-f]{5})\]\(assets/(image-[0-9a-f]{5})\.png\)", doc.get_value())
        assert match is not None
        assert match.group(1) == match.group(2)
        assert (tmp_path / "assets" / f"{match.group(2)}.png").read_bytes() == PNG

    async def test_same_asset_name_twice_in_one_run(self, vault, notifier, tmp_path):
        routes = {
            "https://one.site/r.png": httpx.Response(200, content=b"one"),
            "https://two.site/r.png": httpx.Response(200, content=b"two"),
        }
        dl = make_downloader(vault, notifier, serve(routes))
        doc = TextDocument(
            "![a](https://one.site/r.png) ![b](https://two.site/r.png)", path="note.md",
        )

        summary = await dl.run(doc)

        assert summary.succeeded == 2
        written = sorted(p.read_bytes() for p in (tmp_path / "assets").iterdir())
        assert written == [b"one", b"two"]

    async def test_relative_link_from_nested_document(self, vault, notifier, tmp_path):
        routes = {"https://img.site/r.png": httpx.Response(200, content=PNG)}
        dl = make_downloader(vault, notifier, serve(routes), attachment_folder="attachments")
        doc = TextDocument("![r](https://img.site/r.png)", path="daily/today.md")

        await dl.run(doc)

        assert doc.get_value() == "![image-r](../attachments/image-r.png)"
        assert (tmp_path / "attachments/image-r.png").exists()

    async def test_link_is_percent_encoded(self, vault, notifier):
        routes = {"https://img.site/my%20pic.png": httpx.Response(200, content=PNG)}
        dl = make_downloader(vault, notifier, serve(routes))
        doc = TextDocument("![p](https://img.site/my%20pic.png)", path="note.md")

        await dl.run(doc)

        assert doc.get_value() == "![image-my pic](assets/image-my%20pic.png)"

    async def test_non_200_is_failure(self, vault, notifier):
        routes = {"https://img.site/r.png": httpx.Response(204)}
        dl = make_downloader(vault, notifier, serve(routes))
        summary = await dl.run(TextDocument("![r](https://img.site/r.png)", path="note.md"))
        assert summary.failed == 1

    async def test_nothing_to_download(self, vault, notifier, tmp_path):
        dl = make_downloader(vault, notifier, serve({}))
        doc = TextDocument("![l](local.png) ![p](https://x.io/page)", path="note.md")

        summary = await dl.run(doc)

        assert summary == RunSummary()
        assert doc.get_value() == "![l](local.png) ![p](https://x.io/page)"
        assert not (tmp_path / "assets").exists()
        notifier.notify.assert_called_once_with("all: 0\nsuccess: 0\nfailed: 0")

    async def test_malformed_url_skipped(self, vault, notifier):
        routes = {"https://ok.com/a.png": httpx.Response(200, content=PNG)}
        dl = make_downloader(vault, notifier, serve(routes))
        doc = TextDocument("![a](https://ok.com/a.png) ![b](http://[oops/b.png)", path="note.md")

        summary = await dl.run(doc)

        assert summary == RunSummary(total_found=1, succeeded=1, failed=0)
        assert doc.get_value() == "![image-a](assets/image-a.png) ![b](http://[oops/b.png)"

    async def test_invalid_url_error_counts_as_failure(self, vault, notifier):
        def handler(request):
            if request.url.host == "bad.example":
                raise httpx.InvalidURL("Invalid IDNA hostname")
            return httpx.Response(200, content=PNG)

        dl = make_downloader(vault, notifier, handler)
        doc = TextDocument(
            "![a](https://ok.com/a.png) ![b](https://bad.example/b.png)", path="note.md",
        )

        summary = await dl.run(doc)

        assert summary == RunSummary(total_found=2, succeeded=1, failed=1)
        assert doc.get_value() == (
            "![image-a](assets/image-a.png) ![b](https://bad.example/b.png)"
        )
        notifier.notify.assert_called_once_with("all: 2\nsuccess: 1\nfailed: 1")

    @pytest.mark.parametrize("limit", [1, 3])
    async def test_concurrency_bounded(self, vault, notifier, limit):
        active = 0
        peak = 0

        async def handler(request):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return httpx.Response(200, content=PNG)

        dl = make_downloader(vault, notifier, handler, download_max_concurrent=limit)
        text = " ".join(f"![i](https://img.site/{i}.png)" for i in range(6))
        summary = await dl.run(TextDocument(text, path="note.md"))

        assert summary.succeeded == 6
        assert peak <= limit


class TestLifecycle:
    async def test_owned_client_closed(self, vault, notifier):
        dl = DownloadOrchestrator(PicflowConfig(), vault, notifier=notifier)
        client = dl._get_client()
        await dl.aclose()
        assert client.is_closed
