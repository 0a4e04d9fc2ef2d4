"""Host application boundary.

picflow does not implement an editor.  It talks to one through the
:class:`DocumentEditor` protocol, finds files through :class:`Vault`, and
reports to the user through :class:`Notifier`.  This module also ships a
concrete in-memory :class:`TextDocument` and a filesystem-backed
:class:`LocalVault`, enough to run the pipelines over Markdown files on
disk.
"""

from __future__ import annotations

import os
import re
from pathlib import Path, PurePosixPath
from typing import Any, Protocol, runtime_checkable
from urllib.parse import unquote

import yaml

from picflow.image.detect import is_image_path
from picflow.observability import get_logger

log = get_logger("picflow.host")

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*$", re.DOTALL | re.MULTILINE)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

@runtime_checkable
class DocumentEditor(Protocol):
    """The editor operations picflow needs.

    ``path`` is the document's vault-relative POSIX path; positions are
    ``(line, column)`` pairs, both zero-based.
    """

    path: str

    def get_value(self) -> str: ...

    def set_value(self, text: str) -> None: ...

    def replace_selection(self, text: str) -> None: ...

    def replace_range(
        self,
        replacement: str,
        start: tuple[int, int],
        end: tuple[int, int],
    ) -> None: ...

    def get_frontmatter_value(self, key: str, default: Any = None) -> Any: ...


@runtime_checkable
class Vault(Protocol):
    """Filesystem view of the document collection."""

    base_path: Path

    def abs_path(self, vault_path: str) -> Path: ...

    def resolve_image(self, locator: str, document_path: str) -> Path | None: ...


class Notifier(Protocol):
    def notify(self, message: str) -> None: ...


# ---------------------------------------------------------------------------
# Concrete implementations
# ---------------------------------------------------------------------------

class LoggingNotifier:
    """Send user notifications to the ``picflow.notice`` logger."""

    def __init__(self) -> None:
        self._log = get_logger("picflow.notice")

    def notify(self, message: str) -> None:
        self._log.info(message, extra={"extra_fields": {"op": "notice"}})


class TextDocument:
    """In-memory document with a cursor.

    Parameters
    ----------
    text:
        Initial content.
    path:
        Vault-relative path of the document.
    cursor:
        Character offset of the cursor; defaults to the end of *text*.
    """

    def __init__(self, text: str = "", path: str = "untitled.md", cursor: int | None = None) -> None:
        self.path = path
        self._text = text
        self._cursor = len(text) if cursor is None else max(0, min(cursor, len(text)))

    @property
    def cursor(self) -> int:
        return self._cursor

    def move_cursor(self, offset: int) -> None:
        self._cursor = max(0, min(offset, len(self._text)))

    def get_value(self) -> str:
        return self._text

    def set_value(self, text: str) -> None:
        self._text = text
        self._cursor = min(self._cursor, len(text))

    def replace_selection(self, text: str) -> None:
        self._splice(self._cursor, self._cursor, text)

    def replace_range(
        self,
        replacement: str,
        start: tuple[int, int],
        end: tuple[int, int],
    ) -> None:
        self._splice(self._offset(*start), self._offset(*end), replacement)

    def get_frontmatter_value(self, key: str, default: Any = None) -> Any:
        """Read *key* from the leading YAML front matter, or *default*."""
        match = _FRONTMATTER_RE.match(self._text)
        if match is None:
            return default
        try:
            data = yaml.safe_load(match.group(1))
        except yaml.YAMLError as exc:
            log.debug(
                "Ignoring unparsable front matter",
                extra={"extra_fields": {"document": self.path, "error": str(exc)}},
            )
            return default
        if not isinstance(data, dict):
            return default
        return data.get(key, default)

    def _offset(self, line: int, ch: int) -> int:
        lines = self._text.split("\n")
        if not 0 <= line < len(lines):
            raise IndexError(f"line {line} out of range (document has {len(lines)} lines)")
        return sum(len(text) + 1 for text in lines[:line]) + max(0, min(ch, len(lines[line])))

    def _splice(self, start: int, end: int, text: str) -> None:
        self._text = self._text[:start] + text + self._text[end:]
        if self._cursor >= end:
            self._cursor += len(text) - (end - start)
        elif self._cursor > start:
            self._cursor = start + len(text)


class LocalVault:
    """A directory of Markdown documents and their attachments.

    Local image locators are resolved the way note-taking vaults link
    attachments: first as a vault-relative path, then relative to the
    document's folder, finally by bare file name anywhere in the vault.
    Only existing image files inside the vault qualify.
    """

    def __init__(self, base_path: str | os.PathLike[str]) -> None:
        self.base_path = Path(base_path).expanduser().resolve()

    def abs_path(self, vault_path: str) -> Path:
        return (self.base_path / vault_path.lstrip("/")).resolve()

    def _inside(self, path: Path) -> bool:
        return path == self.base_path or path.is_relative_to(self.base_path)

    def _find_by_name(self, name: str) -> Path | None:
        for dirpath, dirnames, filenames in os.walk(self.base_path):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            if name in filenames:
                return Path(dirpath, name)
        return None

    def resolve_image(self, locator: str, document_path: str) -> Path | None:
        decoded = unquote(locator).strip()
        if not decoded or not is_image_path(decoded):
            return None

        document_dir = PurePosixPath(document_path).parent
        candidates = [
            self.abs_path(decoded),
            self.abs_path(str(document_dir / decoded)),
        ]
        for candidate in candidates:
            if self._inside(candidate) and candidate.is_file():
                return candidate

        found = self._find_by_name(PurePosixPath(decoded.replace("\\", "/")).name)
        if found is not None:
            return found.resolve()
        return None
