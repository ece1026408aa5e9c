"""Request introspection consumed by reactive responses.

``RequestInfo`` is the protocol the response builder depends on. Hosts can
implement it directly; ``HttpRequestInfo`` is a plain implementation built
from headers and URL parts (see ``trill.integration.chirp`` for the Chirp
adapter).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from trill.config import TrillConfig

_MISSING = object()


@runtime_checkable
class SessionStore(Protocol):
    """Session operations used by trill.

    ``release()`` writes and unlocks the session so a long-running stream
    does not hold it. ``flash()`` stores data for the next request.
    """

    def flash(self, key: str, value: Any) -> None: ...

    def release(self) -> None: ...


@runtime_checkable
class RequestInfo(Protocol):
    """What a reactive response needs to know about its request."""

    http_version: str
    session: SessionStore | None

    def is_protocol_request(self) -> bool: ...

    def current_path(self) -> str: ...

    def current_host(self) -> str: ...

    def current_url(self) -> str: ...

    def is_navigation_request(self, key: str | None = None) -> bool: ...

    def previous_url(self) -> str | None: ...


def lookup_path(data: Any, path: str, default: Any = None) -> Any:
    """Resolve a dotted path (``user.address.city``, ``items.0``) in nested data."""
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        elif isinstance(current, list | tuple) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else _MISSING
        else:
            return default
        if current is _MISSING:
            return default
    return current


@dataclass(frozen=True, slots=True)
class HttpRequestInfo:
    """RequestInfo built from raw request parts.

    Attributes:
        headers: Request headers; lookups are case-insensitive.
        path: URL path of the current request.
        host: Host (with port, if any) of the current request.
        query: Raw query string without the leading ``?``.
        scheme: ``http`` or ``https``.
        http_version: ``1.1``, ``2`` ...
        body: Decoded JSON body holding the client state, if any.
        session: Session store, if the host has one.
        config: Header names and other protocol settings.

    """

    headers: Mapping[str, str] = field(default_factory=dict)
    path: str = "/"
    host: str = "localhost"
    query: str = ""
    scheme: str = "http"
    http_version: str = "1.1"
    body: Mapping[str, Any] | None = None
    session: SessionStore | None = None
    config: TrillConfig = field(default_factory=TrillConfig)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "headers", {k.lower(): v for k, v in self.headers.items()}
        )

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    def is_protocol_request(self) -> bool:
        return self.config.request_header.lower() in self.headers

    def current_path(self) -> str:
        return self.path or "/"

    def current_host(self) -> str:
        return self.host

    def current_url(self) -> str:
        url = f"{self.scheme}://{self.host}{self.current_path()}"
        return f"{url}?{self.query}" if self.query else url

    def previous_url(self) -> str | None:
        return self.header("referer")

    def navigate_keys(self) -> list[str]:
        """Navigation keys from the comma-separated key header."""
        raw = self.header(self.config.navigate_key_header) or ""
        return [key.strip() for key in raw.split(",") if key.strip()]

    def is_navigation_request(self, key: str | None = None) -> bool:
        """True for navigation requests, optionally carrying ``key``."""
        if self.header(self.config.navigate_header) is None:
            return False
        if key is None:
            return True
        return key in self.navigate_keys()

    def state(self, path: str | None = None, default: Any = None) -> Any:
        """Client state sent with the request, or one dotted-path value of it."""
        data = dict(self.body or {})
        if path is None:
            return data
        return lookup_path(data, path, default)
