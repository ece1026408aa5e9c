"""Shared test fixtures for trill."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from trill.config import TrillConfig
from trill.protocol.decode import parse_stream
from trill.protocol.events import Block
from trill.request import HttpRequestInfo
from trill.response import ReactiveResponse


class FakeSession:
    """SessionStore that records calls."""

    def __init__(self) -> None:
        self.flashed: dict[str, Any] = {}
        self.released = 0

    def flash(self, key: str, value: Any) -> None:
        self.flashed[key] = value

    def release(self) -> None:
        self.released += 1


class FakeRenderer:
    """TemplateRenderer + FragmentResolver over in-memory format strings.

    Fragments mutate the data they receive so tests can prove isolation.
    """

    def __init__(
        self,
        templates: Mapping[str, str] | None = None,
        fragments: Mapping[tuple[str, str], str] | None = None,
    ) -> None:
        self.templates = dict(templates or {})
        self.fragments = dict(fragments or {})
        self.calls: list[tuple[str, ...]] = []
        self.seen_data: list[dict[str, Any]] = []

    def render(self, name: str, data: Mapping[str, Any]) -> str:
        from trill._errors import RenderError

        self.calls.append(("render", name))
        if name not in self.templates:
            msg = f"missing template {name}"
            raise RenderError(msg)
        return self.templates[name].format(**data)

    def render_fragment(self, template: str, fragment: str, data: Mapping[str, Any]) -> str:
        from trill._errors import RenderError

        self.calls.append(("fragment", template, fragment))
        source = self.fragments.get((template, fragment))
        if source is None:
            msg = f"missing fragment {template}#{fragment}"
            raise RenderError(msg)
        self.seen_data.append(dict(data))
        if isinstance(data, dict):
            data["_rendered"] = fragment
        return source.format(**data)


def make_request(
    *,
    protocol: bool = True,
    path: str = "/items",
    host: str = "example.com",
    query: str = "",
    headers: Mapping[str, str] | None = None,
    body: Mapping[str, Any] | None = None,
    session: Any = None,
    config: TrillConfig | None = None,
    http_version: str = "1.1",
) -> HttpRequestInfo:
    cfg = config or TrillConfig()
    all_headers = dict(headers or {})
    if protocol:
        all_headers[cfg.request_header] = "true"
    return HttpRequestInfo(
        headers=all_headers,
        path=path,
        host=host,
        query=query,
        http_version=http_version,
        body=body,
        session=session,
        config=cfg,
    )


def payload_blocks(result: Any) -> list[Block]:
    """Decode the body of a batch payload."""
    return parse_stream(result.body)


@pytest.fixture
def protocol_request() -> HttpRequestInfo:
    return make_request()


@pytest.fixture
def plain_request() -> HttpRequestInfo:
    return make_request(protocol=False)


@pytest.fixture
def response(protocol_request: HttpRequestInfo) -> ReactiveResponse:
    return ReactiveResponse(protocol_request)


@pytest.fixture
def plain_response(plain_request: HttpRequestInfo) -> ReactiveResponse:
    return ReactiveResponse(plain_request)


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer(
        templates={"page.html": "<main>{title}</main>"},
        fragments={
            ("list.html", "items"): "<ul id=\"items\">{count}</ul>",
            ("list.html", "footer"): "<footer id=\"footer\">{note}</footer>",
        },
    )
