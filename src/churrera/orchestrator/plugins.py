"""Loading collaborator factories from ``module:attribute`` specs."""

from __future__ import annotations

from importlib import import_module
from typing import Any

from churrera.orchestrator.errors import PluginLoadError


def load_object(spec: str) -> Any:
    """Resolve ``package.module:attribute`` to the named object."""

    module_name, sep, attribute = spec.partition(":")
    if not sep or not module_name or not attribute:
        raise PluginLoadError(f"Expected 'module:attribute', got {spec!r}")
    try:
        module = import_module(module_name)
    except ImportError as exc:
        raise PluginLoadError(f"Cannot import {module_name!r}: {exc}") from exc
    target: Any = module
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise PluginLoadError(f"{module_name!r} has no attribute {attribute!r}") from exc
    return target


def build_plugin(spec: str) -> Any:
    """Load ``spec`` and call it when it is a class or factory function."""

    target = load_object(spec)
    return target() if callable(target) else target
