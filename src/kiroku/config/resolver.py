"""Layering of configuration sources into a validated :class:`KirokuConfig`."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Iterator, Mapping, Sequence

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import KirokuConfig

ENV_PREFIX = "KIROKU__"

_LAYER_ORDER = ("file", "environment", "cli")


def resolve_with_precedence(
    *,
    defaults: KirokuConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> KirokuConfig:
    """Validate ``defaults`` overlaid with file, environment, and CLI values.

    Later layers win. Keys may be nested mappings or dotted paths
    (``"sync.remote"``); both forms can be mixed within one layer.

    Raises:
        ConfigError: If a layer is malformed or the merged values fail validation.
    """
    layers = dict(zip(_LAYER_ORDER, (file_overrides, env_overrides, cli_overrides)))
    merged: dict[str, Any] = defaults.model_dump(mode="json")
    for source, layer in layers.items():
        if layer is not None:
            merged = merge(merged, expand_dotted(layer, source=source))

    try:
        return KirokuConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def parse_env(env: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``KIROKU__SECTION__KEY`` variables into a nested override mapping.

    Values are parsed as YAML scalars so ``true``, ``12`` and ``[".md"]`` arrive
    typed; unparsable values are kept as strings.
    """
    overrides: dict[str, Any] = {}
    for name, raw in env.items():
        if not name.startswith(ENV_PREFIX):
            continue
        segments = [part.lower() for part in name[len(ENV_PREFIX) :].split("__") if part]
        if not segments:
            continue
        try:
            value = yaml.safe_load(raw)
        except yaml.YAMLError:
            value = raw
        assign_path(overrides, segments, value, source="environment")
    return overrides


def assign_path(target: dict[str, Any], path: Sequence[str], value: Any, *, source: str) -> None:
    """Store ``value`` at ``path`` inside ``target``, creating intermediate mappings.

    Raises:
        ConfigError: If a scalar already occupies one of the intermediate keys.
    """
    node = target
    for depth, segment in enumerate(path[:-1]):
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            prefix = ".".join(path[: depth + 1])
            joined = ".".join(path)
            raise ConfigError(f"{source.capitalize()} value for {joined}: {prefix} is not a mapping.")
        node = child
    node[path[-1]] = value


def expand_dotted(layer: Mapping[str, Any], *, source: str) -> dict[str, Any]:
    """Turn dotted keys into nested mappings, recursing into mapping values."""
    if not isinstance(layer, MappingABC):
        raise ConfigError(f"{source.capitalize()} overrides must be a mapping.")

    expanded: dict[str, Any] = {}
    for key, value in layer.items():
        if not isinstance(key, str):
            raise ConfigError(f"{source.capitalize()} override keys must be strings, got {key!r}.")
        if isinstance(value, MappingABC):
            value = expand_dotted(value, source=source)
        path = key.split(".")
        existing = _lookup(expanded, path)
        if isinstance(existing, dict) and isinstance(value, dict):
            value = merge(existing, value)
        assign_path(expanded, path, value, source=source)
    return expanded


def merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Return a deep copy of ``base`` with ``overlay`` merged on top of it."""
    result = deepcopy(dict(base))
    for key, value in overlay.items():
        current = result.get(key)
        if isinstance(current, MappingABC) and isinstance(value, MappingABC):
            result[key] = merge(current, value)
        else:
            result[key] = deepcopy(value)
    return result


def flatten_for_env(config: KirokuConfig) -> Dict[str, str]:
    """Render every leaf setting as a ``KIROKU__SECTION__KEY`` environment assignment."""
    return dict(_env_pairs([], config.model_dump(mode="json")))


def _env_pairs(prefix: list[str], value: Any) -> Iterator[tuple[str, str]]:
    if isinstance(value, dict) and value:
        for key, child in value.items():
            yield from _env_pairs([*prefix, str(key)], child)
        return
    name = ENV_PREFIX + "__".join(part.upper() for part in prefix)
    if value is None:
        yield name, "null"
    elif isinstance(value, bool):
        yield name, str(value).lower()
    elif isinstance(value, (dict, list)):
        yield name, yaml.safe_dump(value, default_flow_style=True).strip()
    else:
        yield name, str(value)


def _lookup(tree: Mapping[str, Any], path: Sequence[str]) -> Any:
    node: Any = tree
    for segment in path:
        if not isinstance(node, MappingABC) or segment not in node:
            return None
        node = node[segment]
    return node


__all__ = [
    "ENV_PREFIX",
    "assign_path",
    "expand_dotted",
    "flatten_for_env",
    "merge",
    "parse_env",
    "resolve_with_precedence",
]
