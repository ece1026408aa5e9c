"""Template and fragment rendering collaborators.

The response builder only depends on the two protocols below. ``KidaRenderer``
implements both on top of a Kida ``Environment``; a fragment is a named
template block rendered without the enclosing page.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from trill._errors import RenderError, UsageError

if TYPE_CHECKING:
    from kida import Environment


@runtime_checkable
class TemplateRenderer(Protocol):
    """Renders a whole template to markup. Raises RenderError if missing."""

    def render(self, name: str, data: Mapping[str, Any]) -> str: ...


@runtime_checkable
class FragmentResolver(Protocol):
    """Renders one named fragment of a template. Raises RenderError if missing."""

    def render_fragment(
        self, template: str, fragment: str, data: Mapping[str, Any]
    ) -> str: ...


class KidaRenderer:
    """TemplateRenderer and FragmentResolver backed by Kida.

    Every render receives its own shallow copy of the data so values set by
    one fragment never leak into a sibling fragment.

    Args:
        env: A configured Kida environment.

    """

    __slots__ = ("_env",)

    def __init__(self, env: Environment) -> None:
        self._env = env

    @classmethod
    def from_dirs(cls, *dirs: str | Path) -> KidaRenderer:
        """Build a renderer over one or more template directories."""
        from kida import Environment, FileSystemLoader

        loader = FileSystemLoader([str(d) for d in dirs])
        return cls(Environment(loader=loader))

    @property
    def env(self) -> Environment:
        return self._env

    def _template(self, name: str) -> Any:
        try:
            return self._env.get_template(name)
        except Exception as exc:
            msg = f"Template {name!r} could not be loaded: {exc}"
            raise RenderError(msg) from exc

    def render(self, name: str, data: Mapping[str, Any]) -> str:
        template = self._template(name)
        try:
            return template.render(**dict(data))
        except Exception as exc:
            msg = f"Template {name!r} failed to render: {exc}"
            raise RenderError(msg) from exc

    def render_fragment(self, template: str, fragment: str, data: Mapping[str, Any]) -> str:
        tpl = self._template(template)
        if fragment not in tpl.block_metadata():
            msg = f"Fragment {fragment!r} not found in template {template!r}"
            raise RenderError(msg)
        try:
            return tpl.render_block(fragment, **dict(data))
        except Exception as exc:
            msg = f"Fragment {fragment!r} of {template!r} failed to render: {exc}"
            raise RenderError(msg) from exc


def fragment_specs(specs: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Normalize ``fragments()`` specs.

    Each spec needs ``template`` and ``fragment``; ``data`` and ``options``
    are optional.
    """
    normalized: list[dict[str, Any]] = []
    for index, spec in enumerate(specs):
        missing = [k for k in ("template", "fragment") if not spec.get(k)]
        if missing:
            msg = f"Fragment spec #{index} is missing {', '.join(missing)}"
            raise UsageError(msg)
        normalized.append({
            "template": spec["template"],
            "fragment": spec["fragment"],
            "data": dict(spec.get("data") or {}),
            "options": dict(spec.get("options") or {}),
        })
    return normalized
