"""Image reference extraction.

Finds every Markdown image construct in document text, in textual order,
keeping the exact matched substring so that later substitution can look
it up literally in the live document.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from urllib.parse import unquote

from picflow.models import ImageReference

# ![name](<path with spaces.png>) | ![name](https://...) | ![name](path.ext)
# each optionally followed by a "title".
_IMAGE_RE = re.compile(
    r"!\[(?P<name>[^\]\n]*)\]\("
    r"(?:<(?P<angle>[^>\n]+)>"
    r"|(?P<url>https?://[^\s)]+)"
    r"|(?P<path>[^\s)]+\.\w+)"
    r")"
    r"(?:\s+\"[^\"\n]*\")?"
    r"\)",
    re.IGNORECASE,
)


def _display_name(raw_name: str, locator: str) -> str:
    name = unquote(raw_name)
    if name:
        return name
    return PurePosixPath(unquote(locator).split("?", 1)[0]).stem


def extract_image_references(text: str) -> list[ImageReference]:
    """Return every ``![name](locator)`` in *text*, first to last.

    Identical constructs are returned once per occurrence.  The display
    name is percent-decoded (and derived from the locator's file stem when
    empty); the locator is returned exactly as written.

    Parameters
    ----------
    text:
        Raw document text.

    Returns
    -------
    list[ImageReference]
        Possibly empty; extraction never raises.
    """
    if not text:
        return []

    references: list[ImageReference] = []
    for match in _IMAGE_RE.finditer(text):
        locator = match.group("angle") or match.group("url") or match.group("path")
        references.append(
            ImageReference(
                source=match.group(0),
                name=_display_name(match.group("name"), locator),
                locator=locator,
            )
        )
    return references
