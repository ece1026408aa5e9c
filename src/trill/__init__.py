"""Trill — reactive responses over Server-Sent Events.

Handlers push state merges, DOM patches, component updates and scripts to
a reactive client over a single response, either all at once (batch) or as
they happen (streaming).

Quick start::

    from trill import HttpRequestInfo, ReactiveResponse

    response = ReactiveResponse(HttpRequestInfo(headers={"Trill-Request": "true"}))
    response.state("count", 5).append("#list", "<li>x</li>")
    payload = response.finalize()

Streaming::

    async def work(response, guard):
        for step in range(3):
            response.state("progress", step)
            await asyncio.sleep(1)

    return response.stream(work).finalize()

With Chirp::

    from trill.integration.chirp import reactive

    @app.route("/counter", methods=["POST"])
    @reactive()
    async def counter(request, response):
        return response.state("count", 1)

"""

# PEP 703: Declare this module as free-threading safe
_Py_mod_gil = 0

__version__ = "0.1.0-dev"
__all__ = [
    "ConfigError",
    "HttpRequestInfo",
    "MessagesError",
    "ReactiveResponse",
    "Redirect",
    "RenderError",
    "StreamGuard",
    "TransportTermination",
    "TrillConfig",
    "TrillError",
    "UsageError",
    "ValidationError",
    "__version__",
    "load_config",
]

_LAZY = {
    "ReactiveResponse": "trill.response",
    "Redirect": "trill.redirect",
    "StreamGuard": "trill.stream",
    "HttpRequestInfo": "trill.request",
    "TrillConfig": "trill.config",
    "load_config": "trill.config_loader",
    "MessagesError": "trill.messages",
    "TrillError": "trill._errors",
    "ConfigError": "trill._errors",
    "UsageError": "trill._errors",
    "ValidationError": "trill._errors",
    "RenderError": "trill._errors",
    "TransportTermination": "trill._errors",
}


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import trill`` fast.
    """
    module_name = _LAZY.get(name)
    if module_name is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)
    import importlib

    return getattr(importlib.import_module(module_name), name)
