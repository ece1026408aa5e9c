"""JavaScript carriers for script-based operations.

Scripts travel as ``element-patch`` blocks that append a ``<script>`` to
``body``. Every value interpolated into generated code goes through
``js_json`` so markup inside strings can never close the carrier element.
"""

from __future__ import annotations

import html
import json
from collections.abc import Mapping
from typing import Any

_HTML_SAFE = str.maketrans({
    "<": "\\u003C",
    ">": "\\u003E",
    "&": "\\u0026",
    "'": "\\u0027",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
})

AUTO_REMOVE_ATTR = "data-trill-auto-remove"


def js_json(value: Any) -> str:
    """Encode a value as JSON that is safe to embed in a ``<script>`` element."""
    return json.dumps(value, ensure_ascii=False, default=str).translate(_HTML_SAFE)


def js_bool(value: bool) -> str:
    return "true" if value else "false"


def script_tag(
    code: str,
    *,
    attributes: Mapping[str, Any] | None = None,
    auto_remove: bool = True,
) -> str:
    """Wrap code in a ``<script>`` element.

    With ``auto_remove`` the element removes itself once the code has run,
    even if the code throws.
    """
    attrs = "".join(
        f' {name}="{html.escape(str(value), quote=True)}"'
        for name, value in (attributes or {}).items()
    )
    if auto_remove:
        attrs += f" {AUTO_REMOVE_ATTR}"
        code = (
            f"try {{\n{code.strip()}\n}} finally {{ "
            "document.currentScript && document.currentScript.remove(); }"
        )
    return f"<script{attrs}>{code}</script>"


def dispatch_code(
    event: str,
    data: Any = None,
    *,
    selector: str | None = None,
    window: bool | None = None,
    bubbles: bool = True,
    cancelable: bool = True,
    composed: bool = True,
) -> str:
    """Build code firing a ``CustomEvent``.

    Targets every match of ``selector`` when given, else ``window`` (the
    default), else ``document.body`` when ``window=False``.
    """
    init = (
        f"{{detail: {js_json(data if data is not None else {})}, "
        f"bubbles: {js_bool(bubbles)}, cancelable: {js_bool(cancelable)}, "
        f"composed: {js_bool(composed)}}}"
    )
    name = js_json(event)
    if selector:
        safe_selector = js_json(selector)
        return (
            "(function() {\n"
            f"  const targets = document.querySelectorAll({safe_selector});\n"
            "  if (targets.length === 0) {\n"
            f"    console.warn('[trill] dispatch: no elements match', {safe_selector});\n"
            "    return;\n"
            "  }\n"
            "  targets.forEach(function (target) {\n"
            f"    target.dispatchEvent(new CustomEvent({name}, {init}));\n"
            "  });\n"
            "})();"
        )
    if window is None or window:
        return f"window.dispatchEvent(new CustomEvent({name}, {init}));"
    return f"document.body.dispatchEvent(new CustomEvent({name}, {init}));"


def navigate_code(event: str, detail: Mapping[str, Any]) -> str:
    """Build code dispatching a navigation intent on ``document``."""
    return (
        f"document.dispatchEvent(new CustomEvent({js_json(event)}, "
        f"{{detail: {js_json(dict(detail))}}}));"
    )


def location_code(url: str) -> str:
    return f"window.location.href = {js_json(url)};"


def reload_code() -> str:
    return "window.location.reload();"


def replace_document_code(document: str) -> str:
    """Build code replacing the whole rendered document."""
    return f"document.open(); document.write({js_json(document)}); document.close();"
