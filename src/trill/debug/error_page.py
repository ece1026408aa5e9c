"""Terminal documents for streams that end early.

When a stream fails, or a handler dumps values, the client's whole document
is replaced with one of these pages. All pages use inline CSS so they render
even when the application's static files are broken.
"""

from __future__ import annotations

import html
import linecache
import pprint
import re
import traceback
from collections.abc import Iterable
from typing import Any

# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

_ERROR_STYLE = """\
body{{margin:0;padding:2rem;background:#fafafa;color:#222;
  font:14px/1.5 ui-monospace,Menlo,Consolas,monospace}}
h1{{margin:0;font-size:1.1rem;color:#b3261e}}
.message{{margin:0.25rem 0 0;white-space:pre-wrap}}
.location{{margin:0.25rem 0 1rem;color:#666;font-size:0.85rem}}
ol.source{{margin:0 0 1rem;padding:0.5rem 0 0.5rem 4rem;background:#fff;
  border:1px solid #ddd;white-space:pre;overflow-x:auto}}
ol.source .error-line{{background:#fde7e6}}
pre.trace{{margin:0;padding:0.75rem;background:#fff;border:1px solid #ddd;
  overflow-x:auto;color:#555}}
"""

_ERROR_PAGE = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>{title}</title>
<style>
""" + _ERROR_STYLE + """\
</style>
</head>
<body>
<h1>{error_type}</h1>
<p class="message">{error_message}</p>
<p class="location">{location}</p>
{source_section}
<details open>
<summary>Stack trace</summary>
<pre class="trace">{stack_trace}</pre>
</details>
</body>
</html>
"""

_DUMP_STYLE = (
    "background:#18171B;color:#FF8400;padding:1rem;margin:0;"
    "font:12px/1.4 Menlo,Monaco,Consolas,monospace;"
    "white-space:pre-wrap;word-wrap:break-word"
)

_DOCUMENT = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>{title}</title>
</head>
<body style="margin:0;background:#18171B">
{body}
</body>
</html>
"""

_HTML_TAG = re.compile(r"<\s*[a-zA-Z!/][^>]*>")


# ---------------------------------------------------------------------------
# Source excerpt
# ---------------------------------------------------------------------------


def _source_excerpt(filename: str, lineno: int, radius: int = 4) -> str:
    """Numbered source lines around ``lineno``, the failing one highlighted."""
    if not filename or lineno <= 0:
        return ""
    source = linecache.getlines(filename)
    if lineno > len(source):
        return ""
    first = max(1, lineno - radius)
    items: list[str] = []
    for number in range(first, min(len(source), lineno + radius) + 1):
        attrs = ' class="error-line"' if number == lineno else ""
        items.append(f"<li{attrs}>{html.escape(source[number - 1].rstrip())}</li>")
    return f'<ol class="source" start="{first}">{"".join(items)}</ol>'


def error_location(exc: BaseException) -> tuple[str, int]:
    """Innermost filename and line number of an exception's traceback."""
    tb = exc.__traceback__
    if tb is None:
        return "", 0
    while tb.tb_next is not None:
        tb = tb.tb_next
    return tb.tb_frame.f_code.co_filename, tb.tb_lineno


def _format_trace(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


# ---------------------------------------------------------------------------
# Page builders
# ---------------------------------------------------------------------------


def render_error_page(exc: BaseException, *, title: str = "Trill Error") -> str:
    """Full debug page: type, message, source context, and stack trace."""
    filename, lineno = error_location(exc)
    location = f"{filename}:{lineno}" if filename else ""
    return _ERROR_PAGE.format(
        title=html.escape(title),
        error_type=html.escape(type(exc).__qualname__),
        error_message=html.escape(str(exc)),
        location=html.escape(location),
        source_section=_source_excerpt(filename, lineno),
        stack_trace=html.escape(_format_trace(exc)),
    )


def render_fallback_error_page(exc: BaseException) -> str:
    """Minimal page used when no exception renderer is available or it failed."""
    filename, lineno = error_location(exc)
    body = (
        "<h1>Exception in Stream</h1>"
        f"<p><strong>{html.escape(type(exc).__qualname__)}</strong>: "
        f"{html.escape(str(exc))}</p>"
        f"<p>File: {html.escape(filename)}:{lineno}</p>"
        f"<pre>{html.escape(_format_trace(exc))}</pre>"
    )
    return (
        "<!DOCTYPE html><html><head><meta charset=\"UTF-8\">"
        "<title>Exception in Stream</title></head>"
        f"<body style=\"font-family:monospace;padding:1rem\">{body}</body></html>"
    )


def render_dump_page(values: Iterable[Any], *, title: str = "Trill Dump") -> str:
    """Document showing each value pretty-printed in its own block."""
    blocks = "\n".join(
        f'<pre style="{_DUMP_STYLE}">{html.escape(pprint.pformat(value, width=100))}</pre>'
        for value in values
    )
    return _DOCUMENT.format(title=html.escape(title), body=blocks)


def looks_like_html(content: str) -> bool:
    return bool(_HTML_TAG.search(content))


def wrap_output_document(output: str, *, title: str = "Trill Output") -> str:
    """Make arbitrary handler output a complete document.

    Complete documents pass through; HTML snippets get a document around
    them; plain text is escaped into a styled ``<pre>``.
    """
    stripped = output.lstrip()
    if stripped[:15].lower().startswith(("<!doctype", "<html")):
        return output
    if looks_like_html(output):
        return _DOCUMENT.format(title=html.escape(title), body=output)
    body = f'<pre style="{_DUMP_STYLE}">{html.escape(output)}</pre>'
    return _DOCUMENT.format(title=html.escape(title), body=body)
