"""Public data models for picflow.

Every value that flows between the extractor, the filter, the uploader
port and the orchestrators is one of these dataclasses.  They carry no
behaviour beyond a few derived properties.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class LocatorType(str, Enum):
    """Classification of the ``locator`` of an image reference."""

    NETWORK = "network"
    """The image is referenced by an ``http://`` or ``https://`` URL."""

    LOCAL = "local"
    """The image is a path to a file in the vault."""


class PlaceholderState(str, Enum):
    """Lifecycle states of an interactive paste/drop placeholder."""

    INSERTED = "inserted"
    """Placeholder text is in the document; no upload started yet."""

    PENDING = "pending"
    """The upload call is in flight."""

    RESOLVED_SUCCESS = "resolved_success"
    """Placeholder replaced by the final image reference."""

    RESOLVED_FAILURE = "resolved_failure"
    """Placeholder replaced by the visible failure marker."""


# ---------------------------------------------------------------------------
# References and worklists
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImageReference:
    """One ``![name](locator)`` construct found in document text.

    Attributes
    ----------
    source:
        The exact literal substring matched in the text.  Substitution
        searches for this string, so it is never normalised.
    name:
        Display name, percent-decoded.
    locator:
        The raw path or URL between the parentheses.
    """

    source: str
    name: str
    locator: str


@dataclass(frozen=True)
class UploadWorklistItem:
    """A filtered reference with the path handed to the uploader.

    ``path`` is an absolute filesystem path for local images and the
    original URL for network images.
    """

    reference: ImageReference
    path: str
    is_network: bool = False


@dataclass
class BatchUploadResult:
    """Uniform result of :meth:`UploaderPort.upload_files`.

    When ``success`` is true, ``result_urls`` holds exactly one URL per
    input path, in input order.  Position is the only link between an
    input path and its URL.
    """

    success: bool
    result_urls: list[str] = field(default_factory=list)
    error_message: str | None = None


@dataclass
class ClipboardUploadResult:
    """Result of :meth:`UploaderPort.upload_from_clipboard`.

    ``code`` is ``0`` on success, in which case ``data`` is the URL.
    """

    code: int
    data: str = ""
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.code == 0


@dataclass(frozen=True)
class PlaceholderToken:
    """An interim "uploading" marker written into the document."""

    id: str
    inserted_text: str


@dataclass
class RunSummary:
    """Aggregate outcome of one orchestration run."""

    total_found: int = 0
    succeeded: int = 0
    failed: int = 0

    def describe(self) -> str:
        return f"all: {self.total_found}\nsuccess: {self.succeeded}\nfailed: {self.failed}"


# ---------------------------------------------------------------------------
# Host events and document-mutation requests
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClipboardFile:
    """A file carried by a paste or drop event.

    ``path`` is empty for in-memory clipboard bitmaps.
    """

    name: str
    mime_type: str
    path: str = ""

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image")


@dataclass
class PasteEvent:
    text: str = ""
    files: list[ClipboardFile] = field(default_factory=list)


@dataclass
class DropEvent:
    files: list[ClipboardFile] = field(default_factory=list)


@dataclass
class UploadAllRequest:
    """Upload every qualifying image in the active document."""


@dataclass
class UploadFileRequest:
    """Upload one vault file and rewrite the references that point at it."""

    path: Path


@dataclass
class DownloadAllRequest:
    """Download every network image of the active document."""


@dataclass
class PasteRequest:
    event: PasteEvent


@dataclass
class DropRequest:
    event: DropEvent


MutationRequest = (
    UploadAllRequest | UploadFileRequest | DownloadAllRequest | PasteRequest | DropRequest
)
