"""Load TrillConfig from trill.yaml / trill.toml / pyproject.toml if present.

Merges file config with keyword overrides. Overrides win.
"""

from __future__ import annotations

import dataclasses
import tomllib
from pathlib import Path

import yaml

from trill._errors import ConfigError
from trill.config import TrillConfig

_KNOWN_KEYS = frozenset(f.name for f in dataclasses.fields(TrillConfig))


def load_config(root: Path, **overrides: object) -> TrillConfig:
    """Load TrillConfig from root, optionally merging a config file.

    Looks for trill.yaml, trill.yml, trill.toml, then ``[tool.trill]`` in
    pyproject.toml. The first file found is used.
    """
    file_config = _read_trill_config(Path(root))
    merged = {**file_config, **overrides}
    unknown = sorted(set(merged) - _KNOWN_KEYS)
    if unknown:
        msg = f"Unknown trill config keys: {', '.join(unknown)}"
        raise ConfigError(msg)
    return TrillConfig(**merged)


def _read_trill_config(root: Path) -> dict[str, object]:
    """Read trill config from yaml/toml if present. Returns empty dict otherwise."""
    for name in ("trill.yaml", "trill.yml"):
        path = root / name
        if path.is_file():
            return _parse_yaml(path)
    toml_path = root / "trill.toml"
    if toml_path.is_file():
        return _flatten_trill_section(_parse_toml(toml_path))
    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        tool = _parse_toml(pyproject).get("tool")
        if isinstance(tool, dict) and isinstance(tool.get("trill"), dict):
            return dict(tool["trill"])
    return {}


def _parse_yaml(path: Path) -> dict[str, object]:
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as exc:
        msg = f"Cannot read {path.name}: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{path.name} must contain a mapping, got {type(data).__name__}"
        raise ConfigError(msg)
    return _flatten_trill_section(data)


def _parse_toml(path: Path) -> dict[str, object]:
    try:
        return tomllib.loads(path.read_text())
    except (OSError, tomllib.TOMLDecodeError) as exc:
        msg = f"Cannot read {path.name}: {exc}"
        raise ConfigError(msg) from exc


def _flatten_trill_section(data: dict[str, object]) -> dict[str, object]:
    """Extract trill.* keys into top-level config."""
    result: dict[str, object] = {}
    trill = data.get("trill")
    if isinstance(trill, dict):
        result.update(trill)
    for k, v in data.items():
        if k != "trill" and k in _KNOWN_KEYS:
            result[k] = v
    return result
