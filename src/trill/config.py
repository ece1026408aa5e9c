"""Trill configuration.

TrillConfig is the central configuration object, frozen after creation.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TrillConfig:
    """Configuration for reactive responses.

    Attributes:
        request_header: Header whose presence marks a protocol request.
        navigate_header: Header sent by the client on navigation requests.
        navigate_key_header: Header carrying the comma-separated navigation keys.
        response_marker: Header set to ``true`` on every protocol response.
        navigate_event: Name of the DOM event dispatched for navigation intents.
        always_array_keys: State keys forgotten as ``[]`` instead of ``null``.
        messages_key: State key used by ``messages()`` and ``clear_messages()``.
        debug: Render the full error page (with source context) for
            exceptions raised inside a stream.
        dump_title: Title of the document produced by ``StreamGuard.dump()``.
        retry_ms: Default ``retry:`` value for every block, or None to omit it.

    """

    request_header: str = "Trill-Request"
    navigate_header: str = "Trill-Navigate"
    navigate_key_header: str = "Trill-Navigate-Key"
    response_marker: str = "X-Trill-Response"
    navigate_event: str = "trill:navigate"
    always_array_keys: tuple[str, ...] = ("messages", "errors")
    messages_key: str = "messages"
    debug: bool = False
    dump_title: str = "Trill Dump"
    retry_ms: int | None = None

    def __post_init__(self) -> None:
        # YAML/TOML hand us lists; keep the frozen instance hashable.
        if not isinstance(self.always_array_keys, tuple):
            object.__setattr__(self, "always_array_keys", tuple(self.always_array_keys))
        if self.retry_ms is not None and self.retry_ms < 0:
            from trill._errors import ConfigError

            msg = f"retry_ms must be non-negative, got {self.retry_ms}"
            raise ConfigError(msg)
