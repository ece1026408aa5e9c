"""Navigation intents: target encoding, same-origin validation, single use.

A navigation is never performed server-side. The response carries a script
dispatching a structured event ``{url, key, options, nonce}``; the client
resolves merge/only/except/replace against its live address bar.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote_plus, urlsplit

from trill._errors import UsageError, ValidationError

type NavigationTarget = str | Mapping[str, Any]


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def build_query_string(params: Mapping[str, Any]) -> str:
    """Encode a query mapping.

    None and empty-string values are skipped (the client clears them);
    sequences become repeated ``name[]=value`` pairs.
    """
    pairs: list[str] = []
    for name, value in params.items():
        if value is None or value == "":
            continue
        key = quote_plus(str(name))
        if isinstance(value, Sequence) and not isinstance(value, str | bytes):
            pairs.extend(
                f"{key}[]={quote_plus(_query_value(item))}"
                for item in value
                if item is not None and item != ""
            )
        else:
            pairs.append(f"{key}={quote_plus(_query_value(value))}")
    return "&".join(pairs)


def resolve_target(target: NavigationTarget, current_path: str) -> str:
    """Turn a URL/path or a query mapping into a URL string."""
    if isinstance(target, Mapping):
        query = build_query_string(target)
        return f"{current_path}?{query}" if query else current_path
    return target


def _hostname(host: str) -> str:
    return (urlsplit(f"//{host}").hostname or host).lower()


def is_relative(url: str) -> bool:
    """Relative targets have neither a scheme nor a network location."""
    parts = urlsplit(url)
    return not parts.scheme and not parts.netloc


def validate_target(url: str, current_host: str) -> str:
    """Reject malformed and cross-origin targets.

    Relative paths always pass. Anything else must be an ``http``/``https``
    URL (or protocol-relative ``//host/...``) on the current host.
    """
    if not isinstance(url, str) or not url.strip():
        msg = "Navigation target must be a non-empty string"
        raise ValidationError(msg)
    if is_relative(url):
        return url

    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError as exc:
        msg = f"Invalid URL format: {url}"
        raise ValidationError(msg) from exc
    if parts.scheme not in ("", "http", "https") or not hostname:
        msg = f"Invalid URL format: {url}"
        raise ValidationError(msg)
    expected = _hostname(current_host)
    if hostname.lower() != expected:
        msg = f"Cross-origin URLs not allowed. Got: {hostname}, Expected: {expected}"
        raise ValidationError(msg)
    return url


class UrlLock:
    """Permits exactly one navigation per response."""

    __slots__ = ("_locked",)

    def __init__(self) -> None:
        self._locked = False

    @property
    def locked(self) -> bool:
        return self._locked

    def acquire(self) -> None:
        if self._locked:
            msg = "navigate() can only be called once per response"
            raise UsageError(msg)
        self._locked = True

    def reset(self) -> None:
        self._locked = False


@dataclass(frozen=True, slots=True)
class NavigationOptions:
    """Client-side resolution options of a navigation intent.

    Attributes:
        merge: Merge the target query into the current one (None = client default).
        only: Keep only these current query parameters when merging.
        except_: Drop these current query parameters when merging.
        replace: Replace the history entry instead of pushing one.

    """

    merge: bool | None = None
    only: tuple[str, ...] = ()
    except_: tuple[str, ...] = ()
    replace: bool = False

    def to_dict(self) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if self.merge is not None:
            options["merge"] = self.merge
        if self.only:
            options["only"] = list(self.only)
        if self.except_:
            options["except"] = list(self.except_)
        if self.replace:
            options["replace"] = True
        return options


def navigation_detail(url: str, key: str, options: NavigationOptions) -> dict[str, Any]:
    """Event detail for a navigation intent.

    The nonce makes repeated identical intents distinguishable on the client.
    """
    return {
        "url": url,
        "key": key,
        "options": options.to_dict(),
        "nonce": uuid.uuid4().hex,
    }
