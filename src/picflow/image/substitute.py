"""First-occurrence text substitution.

Both the batch orchestrators and the placeholder tracker rewrite the
document by searching the *current* text for a literal string and
replacing its first occurrence.  Offsets are never cached across
suspension points, because the user may keep typing while an upload is
in flight.
"""

from __future__ import annotations

from typing import Protocol


class RangeEditor(Protocol):
    def get_value(self) -> str: ...

    def replace_range(
        self,
        replacement: str,
        start: tuple[int, int],
        end: tuple[int, int],
    ) -> None: ...


def format_image(name: str, url: str) -> str:
    """Render a Markdown image reference."""
    return f"![{name}]({url})"


def replace_first(text: str, target: str, replacement: str) -> str:
    """Replace the first occurrence of *target* in *text*.

    Everything except the replaced span is left byte-identical.  An
    empty or absent *target* leaves *text* unchanged.
    """
    if not target:
        return text
    return text.replace(target, replacement, 1)


def find_first(text: str, target: str) -> tuple[int, int] | None:
    """Return the ``(line, column)`` of the first occurrence of *target*.

    *target* must not span lines.
    """
    if not target:
        return None
    for line_no, line in enumerate(text.split("\n")):
        ch = line.find(target)
        if ch != -1:
            return line_no, ch
    return None


def replace_first_in_editor(editor: RangeEditor, target: str, replacement: str) -> bool:
    """Replace the first occurrence of *target* through a range edit.

    Uses ``replace_range`` instead of a full-text write so the editor can
    keep the user's cursor and undo history intact.  Returns ``False`` if
    *target* is no longer in the document.
    """
    position = find_first(editor.get_value(), target)
    if position is None:
        return False
    line, ch = position
    editor.replace_range(replacement, (line, ch), (line, ch + len(target)))
    return True
