"""Merge configuration sources into a validated ``PruneConfig``."""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from typing import Any, Sequence

from pydantic import ValidationError

from .exceptions import ConfigError
from .models import PruneConfig

ENV_PREFIX = "PRUNE__"


def resolve_with_precedence(
    *,
    defaults: PruneConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> PruneConfig:
    """Layer overrides onto ``defaults``: file, then environment, then CLI.

    Keys may be nested mappings or dotted paths such as ``"library.root"``.

    Raises:
        ConfigError: If an override is malformed or the result fails validation.
    """
    merged = defaults.model_dump(mode="python")
    for label, source in (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", cli_overrides),
    ):
        if not source:
            continue
        if not isinstance(source, Mapping):
            raise ConfigError(f"The {label} overrides must be a mapping.")
        for key, value in source.items():
            set_dotted(merged, str(key).split("."), value)

    try:
        return PruneConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def set_dotted(target: dict[str, Any], path: Sequence[str], value: Any) -> None:
    """Store ``value`` at ``path`` inside ``target``, merging nested mappings.

    Raises:
        ConfigError: If a path segment runs through a non-mapping value.
    """
    node = target
    for segment in path[:-1]:
        child = node.get(segment)
        if child is None:
            child = node[segment] = {}
        elif not isinstance(child, dict):
            raise ConfigError(f"Cannot set '{'.'.join(path)}': '{segment}' is not a section.")
        node = child

    leaf = path[-1]
    if isinstance(value, Mapping):
        if not isinstance(node.get(leaf), dict):
            node[leaf] = {}
        for key, child_value in value.items():
            set_dotted(node[leaf], str(key).split("."), child_value)
    else:
        node[leaf] = deepcopy(value)


__all__ = ["ENV_PREFIX", "resolve_with_precedence", "set_dotted"]
