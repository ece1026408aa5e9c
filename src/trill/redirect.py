"""Redirects that work for both protocol and plain requests.

Protocol clients cannot follow an HTTP redirect inside an event stream, so
a redirect on a protocol request is sent as a location script through the
parent response. Inside a streaming callback that script is the terminal
block of the stream. Plain requests get an ordinary ``302``.

Usage::

    return response.redirect("/dashboard").flash("status", "Saved").finalize()

    # or from a branch, making it the pending redirect:
    response.when(not user, lambda r: r.redirect().to("/login"))
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, NoReturn, Self
from urllib.parse import urlsplit

from trill._errors import TransportTermination, UsageError
from trill.buffer import Mode
from trill.navigation import validate_target
from trill.protocol.scripts import location_code, reload_code
from trill.result import RedirectTo
from trill.stream import send_terminal

if TYPE_CHECKING:
    from trill.response import ReactiveResponse


def _terminate(response: ReactiveResponse, code: str, reason: str, detail: str = "") -> NoReturn:
    # Mid-stream the script must be the last block, like StreamGuard.redirect().
    send_terminal(response, code, reason, detail)
    raise TransportTermination(reason)


class Redirect:
    """Redirect builder bound to its parent response.

    Args:
        response: The response that will carry the redirect.
        url: Target URL; may be set later with ``to()``/``away()``/``back()``.

    """

    __slots__ = ("_flash", "_response", "url")

    def __init__(self, response: ReactiveResponse, url: str | None = None) -> None:
        self._response = response
        self._flash: dict[str, Any] = {}
        self.url = url

    @property
    def flash_data(self) -> dict[str, Any]:
        return dict(self._flash)

    def to(self, url: str) -> Self:
        """Redirect within the current site. Cross-origin targets raise ValidationError."""
        self.url = validate_target(url, self._response.request.current_host())
        return self

    def away(self, url: str) -> Self:
        """Redirect anywhere, including other hosts."""
        self.url = url
        return self

    def home(self) -> Self:
        self.url = "/"
        return self

    def back(self, fallback: str = "/") -> Self:
        """Go to the referring page when it is a different page on this host."""
        request = self._response.request
        previous = request.previous_url()
        current = request.current_url()
        if not previous or previous in (current, current.split("?", 1)[0]):
            self.url = fallback
            return self
        previous_host = (urlsplit(previous).hostname or "").lower()
        current_host = (urlsplit(current).hostname or "").lower()
        self.url = previous if previous_host == current_host else fallback
        return self

    def refresh(self, *, preserve_query: bool = True) -> Self:
        """Redirect to the current page."""
        url = self._response.request.current_url()
        self.url = url if preserve_query else url.split("?", 1)[0]
        return self

    def flash(self, key: str | Mapping[str, Any], value: Any = None) -> Self:
        """Store data in the session for the next request."""
        if isinstance(key, Mapping):
            self._flash.update(key)
        else:
            self._flash[key] = value
        return self

    def with_errors(self, errors: Any) -> Self:
        return self.flash("errors", errors)

    def with_input(self, data: Mapping[str, Any] | None = None) -> Self:
        """Flash submitted input; defaults to the client state of the request."""
        if data is None:
            state = getattr(self._response.request, "state", None)
            data = state() if callable(state) else {}
        return self.flash("_old_input", dict(data or {}))

    def _write_flash(self) -> None:
        if not self._flash:
            return
        session = self._response.request.session
        if session is None:
            msg = "Flashing redirect data requires a session store"
            raise UsageError(msg)
        for key, value in self._flash.items():
            session.flash(str(key), value)

    def finalize(self) -> Any:
        """Produce the redirect response."""
        if self.url is None:
            msg = (
                "Redirect URL not set. Use redirect('/path'), .to('/path'), "
                ".away(url), .back(), .refresh() or .home()."
            )
            raise UsageError(msg)
        self._write_flash()
        response = self._response
        if not response.is_protocol:
            response.reset()
            return RedirectTo(self.url)
        if response.mode is Mode.STREAMING:
            _terminate(response, location_code(self.url), "redirect", self.url)
        return response.js(location_code(self.url)).finalize()

    def force_reload(self) -> Any:
        """Reload the current page on the client and return the finalized response."""
        self._write_flash()
        response = self._response
        if not response.is_protocol:
            url = response.request.current_url()
            response.reset()
            return RedirectTo(url)
        if response.mode is Mode.STREAMING:
            _terminate(response, reload_code(), "reload")
        return response.js(reload_code()).finalize()

    def __repr__(self) -> str:
        return f"Redirect(url={self.url!r}, flash={sorted(self._flash)!r})"
