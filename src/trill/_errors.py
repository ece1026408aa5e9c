"""Trill error hierarchy.

All trill-specific errors inherit from TrillError for easy catching.
``TransportTermination`` is the exception: it is not an error and derives
from ``BaseException`` so handler code catching ``Exception`` lets it pass.
"""


class TrillError(Exception):
    """Base error for all trill operations."""


class ConfigError(TrillError):
    """Invalid or missing configuration."""


class UsageError(TrillError):
    """A builder was used in a way its lifecycle forbids.

    Raised immediately at the call site: double navigation, empty dispatch
    name, emitting after a terminal event, switching to streaming twice.
    """


class ValidationError(TrillError, ValueError):
    """A navigation or redirect target is malformed or cross-origin."""


class RenderError(TrillError):
    """A template or fragment could not be rendered."""


class TransportTermination(BaseException):  # noqa: N818
    """Deliberate early exit from a streaming callback.

    Raised by ``StreamGuard`` after a terminal event has been sent. The
    stream runner catches it and closes the transport cleanly.
    """

    def __init__(self, reason: str = "terminated") -> None:
        super().__init__(reason)
        self.reason = reason
