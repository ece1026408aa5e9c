"""Field messages sent as client state.

Validation itself happens elsewhere; these helpers shape its results into
the ``messages`` state key. Clearing is selective: only fields that were
validated lose their old message, and wildcard fields such as
``items.*.name`` clear every indexed message (``items.0.name``, ...).
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from trill._errors import TrillError

if TYPE_CHECKING:
    from trill.response import ReactiveResponse


def flatten_errors(errors: Mapping[str, Any]) -> dict[str, str]:
    """Keep the first message of each field."""
    flat: dict[str, str] = {}
    for field_name, value in errors.items():
        if isinstance(value, str):
            flat[field_name] = value
        elif isinstance(value, Sequence) and value:
            flat[field_name] = str(value[0])
        else:
            flat[field_name] = ""
    return flat


def _wildcard_pattern(field_name: str) -> re.Pattern[str]:
    return re.compile("^" + re.escape(field_name).replace(r"\*", r"\d+") + "$")


def clear_messages_for(existing: Mapping[str, Any], fields: Iterable[str]) -> dict[str, str]:
    """Return ``existing`` with the messages of ``fields`` blanked.

    Plain fields are blanked even when they had no message yet, so the
    client clears any stale text bound to them.
    """
    cleared: dict[str, Any] = dict(existing)
    for field_name in fields:
        if "*" in field_name:
            pattern = _wildcard_pattern(field_name)
            for key in list(cleared):
                if pattern.match(key):
                    cleared[key] = ""
        else:
            cleared[field_name] = ""
    return cleared


class MessagesError(TrillError):
    """Field messages to show on the client.

    Raise it from handler code that validated client state; the host
    catches it and calls ``apply()`` on the response.

    Args:
        errors: Field name to message (or list of messages; the first is used).
        cleared: Previously shown messages, already blanked for the
            validated fields (see ``clear_messages_for``).

    """

    def __init__(self, errors: Mapping[str, Any], cleared: Mapping[str, Any] | None = None) -> None:
        self.errors = flatten_errors(errors)
        self.messages: dict[str, Any] = {**dict(cleared or {}), **self.errors}
        fields = ", ".join(self.errors) or "no fields"
        super().__init__(f"Validation failed for {fields}")

    def apply(self, response: ReactiveResponse) -> ReactiveResponse:
        return response.messages(self.messages)


def report_messages(
    response: ReactiveResponse,
    errors: Mapping[str, Any],
    *,
    fields: Iterable[str],
    existing: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Send the outcome of a validation pass.

    Blanks the messages of ``fields``, then raises ``MessagesError`` if
    ``errors`` is non-empty, or sends the cleared messages otherwise.
    """
    cleared = clear_messages_for(existing or {}, fields)
    if errors:
        raise MessagesError(errors, cleared)
    response.messages(cleared)
    return cleared
