"""ReactiveResponse — the per-request patch operation builder.

A handler creates one ``ReactiveResponse`` per request, calls builder
methods, and returns ``finalize()`` (or lets the host integration do it).

Each builder call appends exactly one block, in call order. Nothing is
coalesced: ``state({"a": 1})`` followed by ``state({"a": None})`` sends two
blocks and the client merges them in sequence.

Finalization picks one outcome:

1. A pending redirect (from ``when()``/``unless()``) wins over everything.
2. Non-protocol request without fallback: ``NoContent`` (204).
3. Non-protocol request with fallback: the fallback, verbatim.
4. Protocol request, batch: ``SSEPayload`` with every block.
5. Protocol request, ``stream()`` registered: ``SSEStream``.

Builder calls on non-protocol requests are no-ops, so handler code does not
need to branch on the client type.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Self

from trill._errors import UsageError
from trill.buffer import BlockSink, Mode, ResponseBuffer
from trill.config import TrillConfig
from trill.navigation import (
    NavigationOptions,
    NavigationTarget,
    UrlLock,
    navigation_detail,
    resolve_target,
    validate_target,
)
from trill.protocol.events import (
    Block,
    ComponentStatePatch,
    ElementPatch,
    EventEnvelope,
    MethodInvocation,
    PatchOperation,
    StatePatch,
    to_block,
)
from trill.protocol.headers import response_headers
from trill.protocol.scripts import dispatch_code, navigate_code, reload_code, script_tag
from trill.rendering import FragmentResolver, TemplateRenderer, fragment_specs
from trill.result import NoContent, SSEPayload, SSEStream

if TYPE_CHECKING:
    from trill._types import Fallback, PatchMode, ScrollEdge, StreamCallback
    from trill.observability.collector import ResponseCollector
    from trill.redirect import Redirect
    from trill.request import RequestInfo

_UNSET: Any = object()

type Condition = bool | Callable[[ReactiveResponse], Any]
type Branch = Callable[[ReactiveResponse], Any]


class ReactiveResponse:
    """Builder for one reactive response.

    Args:
        request: Introspection of the current request.
        config: Protocol settings. Defaults to ``request.config`` when the
            request carries one, else ``TrillConfig()``.
        renderer: Template renderer used by ``view()``.
        fragments: Fragment resolver used by ``fragment()``/``fragments()``.
            Defaults to ``renderer`` when it also resolves fragments.
        exception_renderer: ``fn(exc) -> html`` for exceptions raised inside
            a stream.
        collector: Optional observability collector.

    """

    __slots__ = (
        "_buffer",
        "_envelope",
        "_fallback",
        "_redirect",
        "_stream_callback",
        "_terminated",
        "_url_lock",
        "collector",
        "config",
        "exception_renderer",
        "fragments_resolver",
        "renderer",
        "request",
    )

    def __init__(
        self,
        request: RequestInfo,
        *,
        config: TrillConfig | None = None,
        renderer: TemplateRenderer | None = None,
        fragments: FragmentResolver | None = None,
        exception_renderer: Callable[[BaseException], str] | None = None,
        collector: ResponseCollector | None = None,
    ) -> None:
        self.request = request
        self.config = config or getattr(request, "config", None) or TrillConfig()
        self.renderer = renderer
        if fragments is None and isinstance(renderer, FragmentResolver):
            fragments = renderer
        self.fragments_resolver = fragments
        self.exception_renderer = exception_renderer
        self.collector = collector
        self._buffer = ResponseBuffer()
        self._url_lock = UrlLock()
        self._envelope = EventEnvelope(retry_ms=self.config.retry_ms)
        self._fallback: Any = _UNSET
        self._redirect: Redirect | None = None
        self._stream_callback: StreamCallback | None = None
        self._terminated = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_protocol(self) -> bool:
        return self.request.is_protocol_request()

    @property
    def mode(self) -> Mode:
        return self._buffer.mode

    @property
    def blocks(self) -> tuple[Block, ...]:
        """Blocks buffered so far."""
        return self._buffer.blocks

    @property
    def has_fallback(self) -> bool:
        return self._fallback is not _UNSET

    @property
    def pending_redirect(self) -> Redirect | None:
        return self._redirect

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def envelope(self) -> EventEnvelope:
        return self._envelope

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def emit(self, op: PatchOperation) -> Self:
        """Append one operation (or send it, when streaming)."""
        if self._terminated:
            msg = "Cannot emit operations after the stream was terminated"
            raise UsageError(msg)
        if not self.is_protocol:
            return self
        block = to_block(op, self._envelope)
        self._buffer.push(block)
        if self.collector is not None:
            self.collector.record_operation(
                self.request.current_path(),
                block.event,
                streaming=self._buffer.mode is Mode.STREAMING,
            )
        return self

    def _emit_terminal(self, markup: str) -> None:
        self.emit(ElementPatch(markup, selector="body", mode="append"))
        self._terminated = True

    def _begin_streaming(self, sink: BlockSink) -> int:
        return self._buffer.begin_streaming(sink)

    def with_event_id(self, event_id: str) -> Self:
        """Set the ``id:`` of every block emitted from now on."""
        self._envelope = dataclasses.replace(self._envelope, id=str(event_id))
        return self

    def with_retry(self, milliseconds: int) -> Self:
        """Set the ``retry:`` of every block emitted from now on."""
        if milliseconds < 0:
            msg = f"retry must be non-negative, got {milliseconds}"
            raise UsageError(msg)
        self._envelope = dataclasses.replace(self._envelope, retry_ms=int(milliseconds))
        return self

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def state(
        self,
        key: str | Mapping[str, Any],
        value: Any = None,
        *,
        only_if_missing: bool = False,
    ) -> Self:
        """Merge-patch client state: ``state("count", 5)`` or ``state({"count": 5})``."""
        if isinstance(key, Mapping):
            patch = dict(key)
        elif isinstance(key, str):
            patch = {key: value}
        else:
            msg = f"state() takes a key or a mapping, got {type(key).__name__}"
            raise UsageError(msg)
        return self.emit(StatePatch(patch, only_if_missing=only_if_missing))

    def forget(self, keys: str | Iterable[str] | Mapping[str, Any] | None = None) -> Self:
        """Delete client state keys.

        Always-array keys (``config.always_array_keys``) are reset to ``[]``
        instead of deleted.
        """
        if keys is None:
            return self
        if isinstance(keys, str):
            names = [keys]
        elif isinstance(keys, Mapping):
            names = list(keys.keys())
        else:
            names = list(keys)
        if not names:
            return self
        always_array = self.config.always_array_keys
        return self.state({name: [] if name in always_array else None for name in names})

    def messages(self, messages: Mapping[str, Any]) -> Self:
        return self.state(self.config.messages_key, dict(messages))

    def clear_messages(self) -> Self:
        return self.state(self.config.messages_key, [])

    def component_state(
        self,
        component: str,
        state: Mapping[str, Any],
        *,
        only_if_missing: bool = False,
    ) -> Self:
        """Merge-patch the state of the client component named ``component``."""
        if not component:
            msg = "Component name cannot be empty"
            raise UsageError(msg)
        return self.emit(ComponentStatePatch(component, dict(state), only_if_missing))

    def component_method(self, component: str, method: str, args: Sequence[Any] = ()) -> Self:
        """Invoke ``method(*args)`` on the client component named ``component``."""
        if not component or not method:
            msg = "Component and method names cannot be empty"
            raise UsageError(msg)
        return self.emit(MethodInvocation(component, method, tuple(args)))

    # ------------------------------------------------------------------
    # Elements
    # ------------------------------------------------------------------

    def patch_elements(
        self,
        markup: str,
        *,
        selector: str | None = None,
        mode: PatchMode | None = None,
        use_view_transition: bool = False,
        settle: int | None = None,
        limit: int | None = None,
        scroll: ScrollEdge | None = None,
        show: ScrollEdge | None = None,
        focus_scroll: bool = False,
    ) -> Self:
        """Patch markup into the client DOM.

        Without a selector the client targets elements by the ids in the
        markup. Modes: ``outer``, ``inner``, ``outerMorph``, ``innerMorph``,
        ``append``, ``prepend``, ``before``, ``after``, ``remove``.
        """
        return self.emit(
            ElementPatch(
                markup,
                selector=selector,
                mode=mode,
                use_view_transition=use_view_transition,
                settle=settle,
                limit=limit,
                scroll=scroll,
                show=show,
                focus_scroll=focus_scroll,
            )
        )

    def html(self, markup: str, *, web: bool = False, **options: Any) -> Self:
        """Patch raw markup; with ``web=True`` it is also the non-protocol fallback."""
        if web:
            self.web(markup)
        return self.patch_elements(markup, **options)

    def view(
        self,
        name: str,
        data: Mapping[str, Any] | None = None,
        *,
        web: bool = False,
        **options: Any,
    ) -> Self:
        """Render a template and patch the result.

        With ``web=True`` the rendered page is also the fallback for
        non-protocol requests (rendered lazily, only if used).
        """
        renderer = self.renderer
        if renderer is None:
            msg = "view() requires a template renderer"
            raise UsageError(msg)
        context = dict(data or {})
        if web:
            self.web(lambda: renderer.render(name, dict(context)))
        if not self.is_protocol:
            return self
        return self.patch_elements(renderer.render(name, context), **options)

    def fragment(
        self,
        template: str,
        fragment: str,
        data: Mapping[str, Any] | None = None,
        **options: Any,
    ) -> Self:
        """Render one named fragment of a template and patch it."""
        resolver = self.fragments_resolver
        if resolver is None:
            msg = "fragment() requires a fragment resolver"
            raise UsageError(msg)
        if not self.is_protocol:
            return self
        markup = resolver.render_fragment(template, fragment, dict(data or {}))
        return self.patch_elements(markup, **options)

    def fragments(self, specs: Sequence[Mapping[str, Any]]) -> Self:
        """Render several fragments, one element-patch block each.

        Each spec is a mapping with ``template``, ``fragment`` and optional
        ``data`` and ``options``. Every fragment sees only its own data.
        """
        for spec in fragment_specs(specs):
            self.fragment(spec["template"], spec["fragment"], spec["data"], **spec["options"])
        return self

    def append(self, selector: str, markup: str, **options: Any) -> Self:
        return self.patch_elements(markup, selector=selector, mode="append", **options)

    def prepend(self, selector: str, markup: str, **options: Any) -> Self:
        return self.patch_elements(markup, selector=selector, mode="prepend", **options)

    def before(self, selector: str, markup: str, **options: Any) -> Self:
        return self.patch_elements(markup, selector=selector, mode="before", **options)

    def after(self, selector: str, markup: str, **options: Any) -> Self:
        return self.patch_elements(markup, selector=selector, mode="after", **options)

    def inner(self, selector: str, markup: str, **options: Any) -> Self:
        return self.patch_elements(markup, selector=selector, mode="inner", **options)

    def outer(self, selector: str, markup: str, **options: Any) -> Self:
        return self.patch_elements(markup, selector=selector, mode="outer", **options)

    replace = outer

    def outer_morph(self, selector: str, markup: str, **options: Any) -> Self:
        """Morph matched elements, preserving client-side state."""
        return self.patch_elements(markup, selector=selector, mode="outerMorph", **options)

    morph = outer_morph

    def inner_morph(self, selector: str, markup: str, **options: Any) -> Self:
        return self.patch_elements(markup, selector=selector, mode="innerMorph", **options)

    def remove(self, selector: str, *, use_view_transition: bool = False) -> Self:
        """Remove every element matching ``selector``."""
        return self.emit(
            ElementPatch(selector=selector, mode="remove", use_view_transition=use_view_transition)
        )

    delete = remove

    # ------------------------------------------------------------------
    # Scripts
    # ------------------------------------------------------------------

    def js(
        self,
        code: str,
        *,
        attributes: Mapping[str, Any] | None = None,
        auto_remove: bool = True,
    ) -> Self:
        """Run JavaScript on the client via a self-removing ``<script>``."""
        tag = script_tag(code, attributes=attributes, auto_remove=auto_remove)
        return self.emit(ElementPatch(tag, selector="body", mode="append"))

    script = js

    def dispatch(
        self,
        event: str,
        data: Any = None,
        *,
        selector: str | None = None,
        window: bool | None = None,
        bubbles: bool = True,
        cancelable: bool = True,
        composed: bool = True,
    ) -> Self:
        """Fire a ``CustomEvent`` on the client.

        Goes to ``window`` by default, to every element matching
        ``selector`` when given, or to ``document.body`` with ``window=False``.
        """
        if not event:
            msg = "Event name cannot be empty"
            raise UsageError(msg)
        code = dispatch_code(
            event,
            data,
            selector=selector,
            window=window,
            bubbles=bubbles,
            cancelable=cancelable,
            composed=composed,
        )
        return self.js(code)

    def reload(self) -> Self:
        return self.js(reload_code())

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def navigate(
        self,
        target: NavigationTarget,
        key: str = "true",
        *,
        merge: bool | None = None,
        only: Sequence[str] = (),
        except_: Sequence[str] = (),
        replace: bool = False,
    ) -> Self:
        """Ask the client to navigate to ``target``.

        ``target`` is a URL/path or a query mapping applied to the current
        path. Only one navigation is allowed per response, and absolute
        targets must stay on the current host; both rules hold for every
        request, protocol or not.
        The navigation is claimed before the target is validated, so a
        rejected target still uses it up.
        """
        self._url_lock.acquire()
        url = resolve_target(target, self.request.current_path())
        validate_target(url, self.request.current_host())
        options = NavigationOptions(
            merge=merge,
            only=tuple(only),
            except_=tuple(except_),
            replace=replace,
        )
        detail = navigation_detail(url, key, options)
        return self.js(navigate_code(self.config.navigate_event, detail))

    def navigate_with(
        self, target: NavigationTarget, key: str = "true", merge: bool = False, **options: Any
    ) -> Self:
        return self.navigate(target, key, merge=merge, **options)

    def navigate_merge(self, target: NavigationTarget, key: str = "true", **options: Any) -> Self:
        """Navigate, merging the target query into the current one."""
        return self.navigate_with(target, key, True, **options)

    def navigate_clean(self, target: NavigationTarget, key: str = "true", **options: Any) -> Self:
        """Navigate, discarding the current query."""
        return self.navigate_with(target, key, False, **options)

    def navigate_only(
        self, target: NavigationTarget, only: Sequence[str], key: str = "true"
    ) -> Self:
        return self.navigate(target, key, merge=True, only=only)

    def navigate_except(
        self, target: NavigationTarget, except_: Sequence[str], key: str = "true"
    ) -> Self:
        return self.navigate(target, key, merge=True, except_=except_)

    def navigate_replace(self, target: NavigationTarget, key: str = "true", **options: Any) -> Self:
        """Navigate without adding a history entry."""
        return self.navigate(target, key, replace=True, **options)

    def navigate_reset_page(
        self, target: NavigationTarget, key: str = "true", *, page_param: str = "page"
    ) -> Self:
        """Merge navigation that drops the pagination parameter."""
        return self.navigate(target, key, merge=True, except_=(page_param,))

    def update_queries(
        self, queries: Mapping[str, Any], key: str = "filters", merge: bool = True
    ) -> Self:
        return self.navigate(queries, key, merge=merge)

    def clear_queries(self, names: Iterable[str], key: str = "clear") -> Self:
        return self.navigate(dict.fromkeys(names), key, merge=True)

    # ------------------------------------------------------------------
    # Conditionals, fallback, redirect
    # ------------------------------------------------------------------

    def _run_branch(self, branch: Branch | None) -> None:
        if branch is None:
            return
        from trill.redirect import Redirect

        result = branch(self)
        if isinstance(result, Redirect):
            self._redirect = result

    def when(self, condition: Condition, callback: Branch, fallback: Branch | None = None) -> Self:
        """Run ``callback(self)`` if ``condition`` holds, else ``fallback(self)``.

        ``condition`` may be a value or ``fn(response)``. A branch returning a
        ``Redirect`` makes it the pending redirect, which takes precedence at
        finalization.
        """
        holds = condition(self) if callable(condition) else condition
        self._run_branch(callback if holds else fallback)
        return self

    def unless(self, condition: Condition, callback: Branch, fallback: Branch | None = None) -> Self:
        holds = condition(self) if callable(condition) else condition
        self._run_branch(fallback if holds else callback)
        return self

    def when_protocol(self, callback: Branch, fallback: Branch | None = None) -> Self:
        return self.when(self.is_protocol, callback, fallback)

    def when_not_protocol(self, callback: Branch, fallback: Branch | None = None) -> Self:
        return self.when(not self.is_protocol, callback, fallback)

    def when_navigate(
        self,
        callback: Branch,
        fallback: Branch | None = None,
        *,
        key: str | None = None,
    ) -> Self:
        """Branch on whether this is a navigation request (optionally for ``key``)."""
        return self.when(self.request.is_navigation_request(key), callback, fallback)

    def web(self, fallback: Fallback) -> Self:
        """Register the response for non-protocol requests.

        ``fallback`` is returned verbatim, or called first when callable.
        Ignored on protocol requests.
        """
        if not self.is_protocol:
            self._fallback = fallback
        return self

    def redirect(self, url: str | None = None) -> Redirect:
        """Start a redirect; finalize it (or return it from a ``when()`` branch)."""
        from trill.redirect import Redirect

        return Redirect(self, url)

    # ------------------------------------------------------------------
    # Streaming and finalization
    # ------------------------------------------------------------------

    def stream(self, callback: StreamCallback) -> Self:
        """Switch to streaming: ``callback(response, guard)`` runs while connected.

        Blocks emitted before ``stream()`` are flushed first. The callback
        may be a coroutine function or a plain (possibly blocking) function.
        """
        if self._stream_callback is not None:
            msg = "stream() can only be called once per response"
            raise UsageError(msg)
        if self._buffer.mode is Mode.STREAMING:
            msg = "Response is already streaming"
            raise UsageError(msg)
        self._stream_callback = callback
        return self

    def headers(self) -> dict[str, str]:
        return response_headers(self.config, self.request.http_version)

    def finalize(self) -> Any:
        """Produce the response. The builder is reset afterwards.

        For streams the reset happens when the stream ends.
        """
        if self._buffer.mode is Mode.STREAMING:
            msg = "Cannot finalize a response while it is streaming"
            raise UsageError(msg)
        path = self.request.current_path()
        redirect = self._redirect
        if redirect is not None:
            self.reset()
            self._record_finalized(path, "redirect")
            return redirect.finalize()

        if not self.is_protocol:
            fallback = self._fallback
            self.reset()
            if fallback is _UNSET:
                self._record_finalized(path, "no_content")
                return NoContent()
            self._record_finalized(path, "fallback")
            return fallback() if callable(fallback) else fallback

        callback = self._stream_callback
        if callback is not None:
            from trill.stream import stream_blocks

            self._record_finalized(path, "stream")
            return SSEStream(open=lambda: stream_blocks(self, callback), headers=self.headers())

        payload = SSEPayload(body=self._buffer.encode(), headers=self.headers())
        count = len(self._buffer)
        self.reset()
        self._record_finalized(path, "batch", count)
        return payload

    def _record_finalized(self, path: str, outcome: str, blocks: int = 0) -> None:
        if self.collector is not None:
            self.collector.record_finalized(path, outcome, blocks=blocks)

    def reset(self) -> None:
        """Return the builder to its freshly constructed state."""
        self._buffer.reset()
        self._url_lock.reset()
        self._envelope = EventEnvelope(retry_ms=self.config.retry_ms)
        self._fallback = _UNSET
        self._redirect = None
        self._stream_callback = None
        self._terminated = False

    def __repr__(self) -> str:
        return (
            f"ReactiveResponse(path={self.request.current_path()!r}, "
            f"mode={self._buffer.mode.value}, blocks={len(self._buffer)})"
        )
