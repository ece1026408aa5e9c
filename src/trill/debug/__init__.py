"""Debug documents shown when a stream terminates early."""

from trill.debug.error_page import (
    error_location,
    render_dump_page,
    render_error_page,
    render_fallback_error_page,
    wrap_output_document,
)

__all__ = [
    "error_location",
    "render_dump_page",
    "render_error_page",
    "render_fallback_error_page",
    "wrap_output_document",
]
