"""Chirp glue — request introspection, response conversion, handler decorator.

Usage::

    from chirp import App
    from trill.integration.chirp import reactive

    app = App()

    @app.route("/todos", methods=["POST"])
    @reactive(renderer=KidaRenderer.from_dirs("templates"))
    async def add_todo(request, response):
        todo = await create_todo(response.request.state("title"))
        return (
            response.append("#todos", f"<li>{todo.title}</li>")
            .state("title", "")
        )

Batch payloads become a Chirp ``Response`` with the protocol headers;
streams become a Chirp ``EventStream`` of ``SSEEvent`` objects.
"""

from __future__ import annotations

import dataclasses
import functools
import inspect
from collections.abc import AsyncIterator, Callable, MutableMapping
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

from trill.config import TrillConfig
from trill.messages import MessagesError
from trill.protocol.events import Block
from trill.redirect import Redirect as TrillRedirect
from trill.request import HttpRequestInfo
from trill.response import ReactiveResponse
from trill.result import NoContent, RedirectTo, SSEPayload, SSEStream

if TYPE_CHECKING:
    from chirp import Request

    from trill.observability.collector import ResponseCollector
    from trill.rendering import TemplateRenderer

_JSON_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class ChirpSession:
    """SessionStore over a Chirp session mapping.

    Flashed values are collected under ``_flash``.
    """

    FLASH_KEY = "_flash"

    __slots__ = ("_data",)

    def __init__(self, data: MutableMapping[str, Any]) -> None:
        self._data = data

    def flash(self, key: str, value: Any) -> None:
        flashes = dict(self._data.get(self.FLASH_KEY) or {})
        flashes[key] = value
        self._data[self.FLASH_KEY] = flashes

    def release(self) -> None:
        # Cookie sessions are written with the response headers; nothing is locked.
        return None


def _query_string(request: Any) -> str:
    raw = getattr(request, "query_string", None)
    if isinstance(raw, bytes):
        return raw.decode("latin-1")
    if isinstance(raw, str):
        return raw
    return urlencode(dict(request.query), doseq=True)


async def request_info(
    request: Request,
    config: TrillConfig | None = None,
    *,
    session: MutableMapping[str, Any] | None = None,
) -> HttpRequestInfo:
    """Build ``HttpRequestInfo`` from a Chirp request.

    The JSON body of protocol requests is decoded as the client state.
    """
    cfg = config or TrillConfig()
    headers = {str(k): str(v) for k, v in request.headers.items()}
    info = HttpRequestInfo(
        headers=headers,
        path=request.path,
        host=headers.get("host") or headers.get("Host") or "localhost",
        query=_query_string(request),
        scheme=getattr(request, "scheme", "http") or "http",
        http_version=str(getattr(request, "http_version", "1.1") or "1.1"),
        session=ChirpSession(session) if session is not None else None,
        config=cfg,
    )
    content_type = info.header("content-type") or ""
    method = str(getattr(request, "method", "GET")).upper()
    if info.is_protocol_request() and method in _JSON_METHODS and "json" in content_type:
        body = await request.json()
        if isinstance(body, dict):
            info = dataclasses.replace(info, body=body)
    return info


async def _sse_events(blocks: AsyncIterator[Block]) -> AsyncIterator[Any]:
    from chirp import SSEEvent

    async for block in blocks:
        yield SSEEvent(
            data="\n".join(block.data),
            event=block.event,
            id=block.envelope.id,
            retry=block.envelope.retry_ms,
        )


def to_chirp(result: Any) -> Any:
    """Convert a reactive result to a Chirp return value.

    Builders and redirects are finalized first. Values that are not trill
    results (fallback templates, strings ...) pass through untouched.
    """
    from chirp import EventStream, Redirect
    from chirp.http.response import Response

    if isinstance(result, ReactiveResponse | TrillRedirect):
        result = result.finalize()

    if isinstance(result, SSEPayload):
        response = Response(body=result.body, status=result.status, content_type=result.content_type)
        for name, value in result.headers.items():
            if name.lower() != "content-type":
                response = response.with_header(name, value)
        return response
    if isinstance(result, SSEStream):
        return EventStream(_sse_events(result.open()))
    if isinstance(result, NoContent):
        return Response(body="", status=result.status, content_type="text/plain")
    if isinstance(result, RedirectTo):
        return Redirect(result.url)
    return result


def _without_response_param(handler: Callable[..., Any]) -> inspect.Signature:
    signature = inspect.signature(handler)
    params = list(signature.parameters.values())
    if len(params) >= 2:
        del params[1]
    return signature.replace(parameters=params)


def reactive(
    *,
    config: TrillConfig | None = None,
    renderer: TemplateRenderer | None = None,
    exception_renderer: Callable[[BaseException], str] | None = None,
    collector: ResponseCollector | None = None,
    sessions: bool = False,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorate a Chirp handler ``fn(request, response, ...)``.

    The handler receives a fresh ``ReactiveResponse`` as its second argument.
    Returning None returns the builder. ``MessagesError`` raised by the
    handler is sent as ``messages`` state.

    Args:
        config: Protocol settings.
        renderer: Template renderer (and fragment resolver) for ``view()``.
        exception_renderer: Error page renderer for exceptions inside streams.
        collector: Observability collector shared by all requests.
        sessions: Attach Chirp's session (requires the session middleware).

    """
    cfg = config or TrillConfig()

    def decorator(handler: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(handler)
        async def wrapper(request: Request, *args: Any, **kwargs: Any) -> Any:
            session = None
            if sessions:
                from chirp.middleware.sessions import get_session

                session = get_session()
            info = await request_info(request, cfg, session=session)
            response = ReactiveResponse(
                info,
                config=cfg,
                renderer=renderer,
                exception_renderer=exception_renderer,
                collector=collector,
            )
            try:
                result = handler(request, response, *args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
            except MessagesError as exc:
                result = exc.apply(response)
            return to_chirp(response if result is None else result)

        wrapper.__signature__ = _without_response_param(handler)  # type: ignore[attr-defined]
        return wrapper

    return decorator
