"""Placeholder lifecycle for interactive paste/drop uploads.

A placeholder is written at the cursor before the upload starts, so the
user sees feedback immediately, and is later rewritten to either the
final image reference or a visible failure marker.
"""

from __future__ import annotations

import uuid
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from picflow.models import PlaceholderState, PlaceholderToken
from picflow.observability import get_logger, resolve_metrics

from .substitute import format_image, replace_first_in_editor

log = get_logger("picflow.placeholder")

FAILURE_MARKER = "⚠️upload failed, check dev console"


class PlaceholderEditor(Protocol):
    def get_value(self) -> str: ...

    def replace_selection(self, text: str) -> None: ...

    def replace_range(
        self,
        replacement: str,
        start: tuple[int, int],
        end: tuple[int, int],
    ) -> None: ...


def progress_text_for(placeholder_id: str) -> str:
    return f"![Uploading file...{placeholder_id}]()"


class PlaceholderTracker:
    """Finite state machine over every placeholder of one editor session.

    Valid transitions::

        INSERTED -> PENDING | RESOLVED_FAILURE
        PENDING  -> RESOLVED_SUCCESS | RESOLVED_FAILURE
        RESOLVED_SUCCESS -> (terminal)
        RESOLVED_FAILURE -> (terminal)

    Ids are full ``uuid4`` hex strings, so concurrent placeholders cannot
    match each other's text.
    """

    VALID_TRANSITIONS: dict[PlaceholderState, set[PlaceholderState]] = {
        PlaceholderState.INSERTED: {
            PlaceholderState.PENDING,
            PlaceholderState.RESOLVED_FAILURE,
        },
        PlaceholderState.PENDING: {
            PlaceholderState.RESOLVED_SUCCESS,
            PlaceholderState.RESOLVED_FAILURE,
        },
        PlaceholderState.RESOLVED_SUCCESS: set(),
        PlaceholderState.RESOLVED_FAILURE: set(),
    }

    TERMINAL_STATES = frozenset({
        PlaceholderState.RESOLVED_SUCCESS,
        PlaceholderState.RESOLVED_FAILURE,
    })

    def __init__(self, metrics: Any | None = None, max_finished: int = 1024) -> None:
        self._states: dict[str, PlaceholderState] = {}
        # Terminal states are kept for late lookups, oldest evicted first.
        self._finished: OrderedDict[str, PlaceholderState] = OrderedDict()
        self._max_finished = max_finished
        self._metrics = resolve_metrics(metrics)

    # -- state --------------------------------------------------------------

    def state(self, token: PlaceholderToken) -> PlaceholderState:
        """Current state of *token*.

        Raises
        ------
        KeyError
            If the token is unknown, or finished so long ago that its
            state was evicted.
        """
        if token.id in self._states:
            return self._states[token.id]
        return self._finished[token.id]

    def is_terminal(self, token: PlaceholderToken) -> bool:
        return self.state(token) in self.TERMINAL_STATES

    @property
    def unresolved(self) -> list[str]:
        """Ids of placeholders that have not reached a terminal state."""
        return list(self._states)

    def _transition(self, token: PlaceholderToken, new_state: PlaceholderState) -> None:
        current = self.state(token)
        allowed = self.VALID_TRANSITIONS[current]
        if new_state not in allowed:
            raise ValueError(
                f"Invalid placeholder transition: {current.value} -> {new_state.value} "
                f"for placeholder {token.id}. "
                f"Allowed transitions from {current.value}: "
                f"{{{', '.join(s.value for s in allowed)}}}"
            )
        if new_state not in self.TERMINAL_STATES:
            self._states[token.id] = new_state
            return
        del self._states[token.id]
        self._finished[token.id] = new_state
        while len(self._finished) > self._max_finished:
            self._finished.popitem(last=False)

    # -- lifecycle ----------------------------------------------------------

    def insert(self, editor: PlaceholderEditor) -> PlaceholderToken:
        """Write a fresh placeholder line at the cursor and track it."""
        placeholder_id = uuid.uuid4().hex
        token = PlaceholderToken(
            id=placeholder_id,
            inserted_text=progress_text_for(placeholder_id),
        )
        editor.replace_selection(token.inserted_text + "\n")
        self._states[token.id] = PlaceholderState.INSERTED
        return token

    def mark_pending(self, token: PlaceholderToken) -> None:
        self._transition(token, PlaceholderState.PENDING)

    def resolve_success(
        self,
        editor: PlaceholderEditor,
        token: PlaceholderToken,
        url: str,
        name: str = "",
    ) -> bool:
        """Replace the placeholder with ``![name](url)``.

        Returns ``False`` when the placeholder text is gone from the
        document; the token is still moved to its terminal state.
        """
        self._transition(token, PlaceholderState.RESOLVED_SUCCESS)
        self._metrics.increment(
            "picflow.placeholders_resolved_total", tags={"outcome": "success"},
        )
        return self._rewrite(editor, token, format_image(name, url))

    def resolve_failure(
        self,
        editor: PlaceholderEditor,
        token: PlaceholderToken,
        reason: object = None,
    ) -> bool:
        """Replace the placeholder with :data:`FAILURE_MARKER`.

        *reason* only goes to the diagnostic log.
        """
        self._transition(token, PlaceholderState.RESOLVED_FAILURE)
        self._metrics.increment(
            "picflow.placeholders_resolved_total", tags={"outcome": "failure"},
        )
        log.error(
            "Placeholder upload failed",
            extra={
                "extra_fields": {
                    "op": "placeholder",
                    "placeholder_id": token.id,
                    "reason": repr(reason),
                }
            },
        )
        return self._rewrite(editor, token, FAILURE_MARKER)

    def _rewrite(
        self,
        editor: PlaceholderEditor,
        token: PlaceholderToken,
        replacement: str,
    ) -> bool:
        found = replace_first_in_editor(editor, token.inserted_text, replacement)
        if not found:
            log.warning(
                "Placeholder no longer in document",
                extra={"extra_fields": {"op": "placeholder", "placeholder_id": token.id}},
            )
        return found

    async def track(
        self,
        editor: PlaceholderEditor,
        token: PlaceholderToken,
        upload: Callable[[], Awaitable[str]],
        name: str = "",
    ) -> PlaceholderState:
        """Drive *token* through one upload and return its terminal state.

        *upload* returns the final URL or raises.  Any exception resolves
        the placeholder to the failure marker; nothing propagates.
        """
        self.mark_pending(token)
        try:
            url = await upload()
        except Exception as exc:
            self.resolve_failure(editor, token, exc)
        else:
            self.resolve_success(editor, token, url, name)
        return self.state(token)
