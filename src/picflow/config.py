"""Configuration for picflow.

:class:`PicflowConfig` is a plain dataclass that captures every policy
toggle and backend setting the pipelines read.  It is passed explicitly
into the filter, the orchestrators, and the uploader factory; nothing in
picflow reads ambient global settings.

:meth:`PicflowConfig.from_mapping` accepts the settings dict a host
application persists, in either its camelCase keys or picflow's own
snake_case field names.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Literal

DEFAULT_UPLOAD_SERVER = "http://127.0.0.1:36677/upload"
"""Endpoint of a locally running PicGo desktop app."""

UPLOADER_NAMES: tuple[str, ...] = ("picgo", "picgo-core")


def parse_domain_list(raw: str | list[str] | tuple[str, ...] | None) -> list[str]:
    """Normalise a blacklist setting into a list of lowercase domains.

    Accepts the comma- or newline-separated string form used by settings
    panels as well as an already-split sequence.  Blank entries are
    dropped.

    >>> parse_domain_list("Evil.com, cdn.example.org,,")
    ['evil.com', 'cdn.example.org']
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        items = raw.replace("\n", ",").split(",")
    else:
        items = list(raw)
    return [item.strip().lower() for item in items if item and item.strip()]


# Settings keys as stored by the editor plugin, mapped to field names.
_LEGACY_KEYS: dict[str, str] = {
    "uploader": "uploader",
    "uploadServer": "upload_server",
    "picgoCorePath": "picgo_core_path",
    "workOnNetWork": "work_on_network",
    "newWorkBlackDomains": "network_blacklist_domains",
    "uploadByClipSwitch": "upload_by_clipboard",
    "applyImage": "upload_on_text_and_image",
    "deleteSource": "delete_source",
}


@dataclass
class PicflowConfig:
    """Complete configuration for the image pipelines.

    Parameters
    ----------
    uploader:
        Backend used for uploads.

        * ``"picgo"``: HTTP call to a running PicGo app.
        * ``"picgo-core"``: invoke the ``picgo`` CLI as a subprocess.
    upload_server:
        Upload endpoint for the ``"picgo"`` backend.
    picgo_core_path:
        Executable for the ``"picgo-core"`` backend.  Empty means ``picgo``
        from ``PATH``.
    work_on_network:
        Also re-upload images that already live on the network.  Local
        file references are never affected by this toggle.
    network_blacklist_domains:
        Network images hosted on these domains (or their subdomains) are
        never re-uploaded.
    upload_by_clipboard:
        Default for the per-document front-matter flag that enables
        paste/drop uploads.
    upload_on_text_and_image:
        When the clipboard carries both text and an image, upload the
        image anyway.
    delete_source:
        Delete local source files once they have been uploaded.
    frontmatter_key:
        Front-matter key that opts a document in or out of paste/drop
        uploads.
    attachment_folder:
        Where downloaded images are written.  A value starting with
        ``./`` is relative to the document's folder, anything else to the
        vault root.
    timeout_seconds:
        HTTP timeout for the upload server and for downloads.
    download_max_concurrent:
        Maximum number of downloads in flight at once.
    """

    # ── Backend ─────────────────────────────────────────────────────────
    uploader: Literal["picgo", "picgo-core"] = "picgo"

    upload_server: str = DEFAULT_UPLOAD_SERVER

    picgo_core_path: str = ""

    # ── Policy ──────────────────────────────────────────────────────────
    work_on_network: bool = False

    network_blacklist_domains: list[str] = field(default_factory=list)

    upload_by_clipboard: bool = True

    upload_on_text_and_image: bool = True

    delete_source: bool = False

    frontmatter_key: str = "image-auto-upload"

    # ── Downloads ───────────────────────────────────────────────────────
    attachment_folder: str = "./assets"

    download_max_concurrent: int = 4

    # ── HTTP ────────────────────────────────────────────────────────────
    timeout_seconds: float = 30.0

    # ── Observability ──────────────────────────────────────────────────
    metrics: Any | None = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self.network_blacklist_domains = parse_domain_list(
            self.network_blacklist_domains,
        )

        if self.uploader not in UPLOADER_NAMES:
            raise ValueError(
                f"uploader must be one of {UPLOADER_NAMES}, got {self.uploader!r}"
            )
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")
        if self.download_max_concurrent < 1:
            raise ValueError(
                f"download_max_concurrent must be >= 1, got {self.download_max_concurrent}"
            )
        if not self.frontmatter_key:
            raise ValueError("frontmatter_key must not be empty")

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> PicflowConfig:
        """Build a config from a persisted settings dict.

        Both the editor plugin's camelCase keys and picflow's field names
        are understood.  Unknown keys are ignored so that settings written
        by newer versions still load.
        """
        names = {f.name for f in dataclasses.fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            target = _LEGACY_KEYS.get(key, key)
            if target not in names:
                continue
            if target == "uploader" and isinstance(value, str):
                value = value.lower()
            kwargs[target] = value
        return cls(**kwargs)
