"""Response headers for protocol responses."""

from __future__ import annotations

from trill.config import TrillConfig

CONTENT_TYPE = "text/event-stream"


def response_headers(
    config: TrillConfig | None = None,
    http_version: str = "1.1",
) -> dict[str, str]:
    """Headers sent with every batch payload and stream.

    ``Connection: keep-alive`` is only valid on HTTP/1.1; HTTP/2 and later
    forbid connection-specific headers.
    """
    cfg = config or TrillConfig()
    headers = {
        "Content-Type": CONTENT_TYPE,
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
        cfg.response_marker: "true",
    }
    if http_version == "1.1":
        headers["Connection"] = "keep-alive"
    return headers
