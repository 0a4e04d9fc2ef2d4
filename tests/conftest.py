"""Shared test fixtures for the picflow test suite."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from picflow.config import PicflowConfig
from picflow.host import LocalVault
from picflow.models import BatchUploadResult, ClipboardUploadResult


@pytest.fixture
def config() -> PicflowConfig:
    """Default configuration."""
    return PicflowConfig()


@pytest.fixture
def vault(tmp_path: Path) -> LocalVault:
    """Empty vault rooted in a temporary directory."""
    return LocalVault(tmp_path)


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock()


@pytest.fixture
def uploader() -> MagicMock:
    """Uploader double that echoes one CDN URL per input path."""
    up = MagicMock()

    async def _upload(paths):
        return BatchUploadResult(
            success=True,
            result_urls=[f"http://cdn/{i + 1}.png" for i in range(len(paths))],
        )

    up.upload_files = AsyncMock(side_effect=_upload)
    up.upload_from_clipboard = AsyncMock(
        return_value=ClipboardUploadResult(code=0, data="http://cdn/clip.png")
    )
    up.aclose = AsyncMock()
    return up


@pytest.fixture
def make_image(tmp_path: Path):
    """Factory creating an image file inside the vault and returning its path."""

    def _make(relative: str, data: bytes = b"\x89PNG\r\n\x1a\n") -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    return _make


class RecordingMetricsHook:
    """Metrics backend that records every call for assertion."""

    def __init__(self) -> None:
        self.increments: list[dict] = []
        self.timings: list[dict] = []
        self.gauges: list[dict] = []

    def increment(self, name, value=1, tags=None):
        self.increments.append({"name": name, "value": value, "tags": tags})

    def timing(self, name, ms, tags=None):
        self.timings.append({"name": name, "ms": ms, "tags": tags})

    def gauge(self, name, value, tags=None):
        self.gauges.append({"name": name, "value": value, "tags": tags})

    def names(self) -> list[str]:
        return [c["name"] for c in self.increments + self.timings + self.gauges]


@pytest.fixture
def metrics() -> RecordingMetricsHook:
    return RecordingMetricsHook()
