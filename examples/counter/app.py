"""Counter demo — batch patches, fragments, navigation and a streamed job.

Run with::

    python examples/counter/app.py

Plain browser requests get the full page; requests from the reactive client
(``Trill-Request`` header) get event-stream patches.
"""

import asyncio
from pathlib import Path

from chirp import App, AppConfig, Request

from trill.integration.chirp import reactive
from trill.messages import report_messages
from trill.observability import ResponseCollector
from trill.rendering import KidaRenderer

TEMPLATES = Path(__file__).parent / "templates"

renderer = KidaRenderer.from_dirs(TEMPLATES)
collector = ResponseCollector()
app = App(config=AppConfig(template_dir=TEMPLATES, debug=True))

_counter = {"count": 0}
_todos: list[str] = []


@app.route("/")
@reactive(renderer=renderer, collector=collector)
async def index(request: Request, response):
    response.view("page.html", {"count": _counter["count"], "todos": _todos}, web=True)


@app.route("/increment", methods=["POST"])
@reactive(renderer=renderer, collector=collector)
async def increment(request: Request, response):
    step = int(response.request.state("step", 1) or 1)
    _counter["count"] += step
    return response.state("count", _counter["count"]).dispatch("counter:changed")


@app.route("/todos", methods=["POST"])
@reactive(renderer=renderer, collector=collector)
async def add_todo(request: Request, response):
    title = str(response.request.state("title", "") or "").strip()
    report_messages(
        response,
        {} if title else {"title": "Title is required"},
        fields=["title"],
        existing=response.request.state("messages", {}),
    )
    _todos.append(title)
    return response.fragments([
        {"template": "page.html", "fragment": "todos", "data": {"todos": _todos}},
        {"template": "page.html", "fragment": "summary", "data": {"todos": _todos}},
    ]).forget(["title"])


@app.route("/todos/filter", methods=["POST"])
@reactive(collector=collector)
async def filter_todos(request: Request, response):
    query = response.request.state("filter", "")
    return response.update_queries({"q": query or None})


@app.route("/import", methods=["POST"])
@reactive(collector=collector)
async def import_todos(request: Request, response):
    async def work(r, guard):
        for step in range(1, 6):
            await asyncio.sleep(0.3)
            r.state("progress", step * 20)
            r.append("#log", f"<li>Imported batch {step}</li>", scroll="bottom")
        if response.request.state("fail"):
            guard.dump({"progress": 100, "todos": _todos})
        r.state("progress", None)

    return response.state("progress", 0).stream(work)


if __name__ == "__main__":
    app.run()
