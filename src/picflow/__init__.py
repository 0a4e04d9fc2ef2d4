"""picflow: automatic image upload for Markdown documents.

Detects images referenced in or pasted into a document, uploads them
through a pluggable backend (PicGo app or ``picgo`` CLI), and rewrites the
document text to the returned URLs.  The inverse flow downloads network
images into the vault.

Usage::

    from picflow import ImageAutoUpload, LocalVault, PicflowConfig, TextDocument
    from picflow.models import UploadAllRequest

    config = PicflowConfig(work_on_network=True, network_blacklist_domains="cdn.me")
    async with ImageAutoUpload(config, LocalVault("~/notes")) as app:
        doc = TextDocument(text, path="daily/today.md")
        summary = await app.handle(doc, UploadAllRequest())
"""

from __future__ import annotations

from picflow.app import ImageAutoUpload
from picflow.config import DEFAULT_UPLOAD_SERVER, PicflowConfig, parse_domain_list
from picflow.download import DownloadOrchestrator

# ── Errors ──────────────────────────────────────────────────────────────
from picflow.errors import (
    ErrorCode,
    PicflowBackendContractError,
    PicflowConfigError,
    PicflowDownloadError,
    PicflowError,
    PicflowPlaceholderError,
    PicflowUploadError,
    PicflowUploadTransportError,
)

# ── Host boundary ───────────────────────────────────────────────────────
from picflow.host import DocumentEditor, LocalVault, LoggingNotifier, Notifier, TextDocument, Vault

# ── Models ──────────────────────────────────────────────────────────────
from picflow.models import (
    BatchUploadResult,
    ClipboardFile,
    ClipboardUploadResult,
    DownloadAllRequest,
    DropEvent,
    DropRequest,
    ImageReference,
    LocatorType,
    PasteEvent,
    PasteRequest,
    PlaceholderState,
    PlaceholderToken,
    RunSummary,
    UploadAllRequest,
    UploadFileRequest,
    UploadWorklistItem,
)
from picflow.orchestrator import DocumentLocks, UploadOrchestrator
from picflow.uploader import PicGoCoreUploader, PicGoUploader, UploaderPort, create_uploader

__all__ = [
    # Application
    "ImageAutoUpload",
    "UploadOrchestrator",
    "DownloadOrchestrator",
    "DocumentLocks",
    # Configuration
    "PicflowConfig",
    "DEFAULT_UPLOAD_SERVER",
    "parse_domain_list",
    # Uploaders
    "UploaderPort",
    "PicGoUploader",
    "PicGoCoreUploader",
    "create_uploader",
    # Host boundary
    "DocumentEditor",
    "Vault",
    "Notifier",
    "TextDocument",
    "LocalVault",
    "LoggingNotifier",
    # Errors
    "PicflowError",
    "ErrorCode",
    "PicflowConfigError",
    "PicflowUploadError",
    "PicflowUploadTransportError",
    "PicflowBackendContractError",
    "PicflowDownloadError",
    "PicflowPlaceholderError",
    # Models
    "ImageReference",
    "UploadWorklistItem",
    "BatchUploadResult",
    "ClipboardUploadResult",
    "PlaceholderToken",
    "PlaceholderState",
    "LocatorType",
    "RunSummary",
    "ClipboardFile",
    "PasteEvent",
    "DropEvent",
    "UploadAllRequest",
    "UploadFileRequest",
    "DownloadAllRequest",
    "PasteRequest",
    "DropRequest",
]
