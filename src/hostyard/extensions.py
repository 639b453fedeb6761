"""Pluggable web application extensions.

Extensions are callables receiving their configured options and the web
application being discovered. They may return a modified
:class:`~hostyard.webapps.WebAppSpec` (for example pointing the document base at
a generated artifact) or ``None`` to leave it untouched.
"""

from __future__ import annotations

import logging
from importlib import metadata
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from .exceptions import ConfigurationError

if TYPE_CHECKING:  # pragma: no cover - used for typing only
    from .webapps import WebAppSpec

logger = logging.getLogger(__name__)

EXTENSION_ENTRY_POINT_GROUP = "hostyard.extensions"

Extension = Callable[[Mapping[str, Any], "WebAppSpec"], Optional["WebAppSpec"]]


class ExtensionRegistry:
    """Map extension names onto callables, falling back to installed entry points."""

    def __init__(
        self,
        extensions: Mapping[str, Extension] | None = None,
        *,
        entry_point_group: str | None = EXTENSION_ENTRY_POINT_GROUP,
    ) -> None:
        self._extensions: dict[str, Extension] = dict(extensions or {})
        self._entry_point_group = entry_point_group

    def __contains__(self, name: object) -> bool:
        return name in self._extensions

    def register(self, name: str, extension: Extension | None = None) -> Any:
        """Register ``extension`` under ``name``; usable as a decorator."""

        def decorator(func: Extension) -> Extension:
            self._extensions[name] = func
            return func

        if extension is not None:
            return decorator(extension)
        return decorator

    def get(self, name: str) -> Extension:
        extension = self._extensions.get(name)
        if extension is None:
            extension = self._load_entry_point(name)
            if extension is None:
                raise ConfigurationError(f"Unknown extension '{name}'")
            self._extensions[name] = extension
        return extension

    def apply(self, name: str, options: Mapping[str, Any], web_app: WebAppSpec) -> WebAppSpec:
        result = self.get(name)(options, web_app)
        if result is None:
            return web_app
        if result.doc_base != web_app.doc_base:
            logger.debug("extension %s moved %s doc base to %s", name, web_app.name, result.doc_base)
        return result

    def _load_entry_point(self, name: str) -> Extension | None:
        if self._entry_point_group is None:
            return None
        for entry_point in metadata.entry_points(group=self._entry_point_group):
            if entry_point.name == name:
                return entry_point.load()
        return None
