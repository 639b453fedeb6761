"""Web application discovery."""

from __future__ import annotations

import logging
import os
import zipfile
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Protocol, Sequence

from msgspec import Struct, field, structs

from .config import (
    DEFAULT_CONTEXT_NAME,
    DEFAULT_ENVIRONMENT,
    ServerConfig,
    WebAppConfig,
    absolute_path,
)
from .exceptions import ConfigurationError, ResolutionConflict
from .extensions import ExtensionRegistry
from .hosts import HostIndex, HostOrigin, HostSpec

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIXES: tuple[str, ...] = (".war", ".zip", ".pyz")


class PackagingKind(str, Enum):
    """How a deployment unit is packaged."""

    DIRECTORY = "directory"
    ARCHIVE = "archive"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


class WebAppSpec(Struct, frozen=True, kw_only=True):
    name: str
    root_dir: str
    doc_base: str
    context_path: str
    hosts: tuple[str, ...]
    packaging: PackagingKind = PackagingKind.DIRECTORY
    environment: str = DEFAULT_ENVIRONMENT
    extensions: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def is_archive(self) -> bool:
        return self.packaging is PackagingKind.ARCHIVE


class PackagingDetector(Protocol):
    def is_archive(self, path: str | os.PathLike[str]) -> bool: ...


class ArchiveDetector:
    """Detect archive deployment units.

    Existing files are inspected for the zip container format and existing
    directories are never archives. Paths that do not exist yet fall back to
    their suffix.
    """

    def __init__(self, suffixes: Iterable[str] = ARCHIVE_SUFFIXES) -> None:
        self.suffixes = tuple(suffix.lower() for suffix in suffixes)

    def is_archive(self, path: str | os.PathLike[str]) -> bool:
        candidate = Path(path)
        if candidate.is_dir():
            return False
        if candidate.is_file():
            return zipfile.is_zipfile(candidate)
        return candidate.suffix.lower() in self.suffixes


def context_path_for(name: str, explicit: str | None = None) -> str:
    """Return the normalized context path for application ``name``."""

    if explicit is None:
        raw = "/" if name == DEFAULT_CONTEXT_NAME else f"/{name}"
    else:
        raw = explicit.strip()
    path = raw if raw.startswith("/") else f"/{raw}"
    path = path.rstrip("/") or "/"
    if "//" in path or any(char.isspace() for char in path):
        raise ConfigurationError(f"Invalid context path {explicit!r} for web application '{name}'")
    return path


class WebAppDiscoverer:
    """Enumerate deployment units from ``web_apps``, ``apps_base`` or ``web_app_dir``."""

    def __init__(
        self,
        *,
        detector: PackagingDetector | None = None,
        extensions: ExtensionRegistry | None = None,
        cwd: Path | None = None,
    ) -> None:
        self.detector = detector or ArchiveDetector()
        self.extensions = extensions or ExtensionRegistry()
        self.cwd = cwd or Path.cwd()

    def discover(self, config: ServerConfig, hosts: Sequence[HostSpec]) -> tuple[WebAppSpec, ...]:
        index = HostIndex(hosts, config.default_host_name)
        base_dir = config.base_path(self.cwd)
        apps_base = absolute_path(config.apps_base, base_dir) if config.apps_base else None

        candidates: Iterable[WebAppSpec]
        if config.web_apps:
            if config.web_app_dir:
                logger.warning("web_app_dir %s is ignored because web_apps is configured", config.web_app_dir)
            candidates = self._from_web_apps(config, index, base_dir, apps_base)
        elif apps_base is not None:
            candidates = self._from_apps_base(config, index, apps_base)
        else:
            candidates = self._single(config, index, base_dir)

        web_apps = tuple(self._finalize(candidate, config.extensions) for candidate in candidates)
        _check_conflicts(web_apps)
        for web_app in web_apps:
            logger.debug(
                "discovered %s (%s) at %s for %s",
                web_app.name,
                web_app.packaging,
                web_app.doc_base,
                ", ".join(web_app.hosts),
            )
        return web_apps

    def _from_web_apps(
        self,
        config: ServerConfig,
        index: HostIndex,
        base_dir: Path,
        apps_base: Path | None,
    ) -> Iterator[WebAppSpec]:
        for web_app in config.web_apps or ():
            root = web_app.root_path(base_dir=base_dir, cwd=self.cwd, apps_base=apps_base)
            yield WebAppSpec(
                name=web_app.name,
                root_dir=str(root),
                doc_base=str(root),
                context_path=context_path_for(web_app.name, web_app.context_path),
                hosts=_targets(web_app, index, configured_hosts=bool(config.hosts)),
                environment=web_app.environment or config.environment,
                extensions=dict(web_app.extensions),
            )

    def _from_apps_base(self, config: ServerConfig, index: HostIndex, apps_base: Path) -> Iterator[WebAppSpec]:
        if not apps_base.is_dir():
            raise ConfigurationError(f"apps_base '{apps_base}' is not a directory")
        entries = sorted(apps_base.iterdir(), key=lambda entry: entry.name)
        directories = {entry.name for entry in entries if entry.is_dir()}
        for entry in entries:
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                name = entry.name
            elif self.detector.is_archive(entry):
                name = entry.stem
                if name in directories:
                    logger.debug("skipping %s, already expanded", entry)
                    continue
            else:
                continue
            yield WebAppSpec(
                name=name,
                root_dir=str(entry),
                doc_base=str(entry),
                context_path=context_path_for(name),
                hosts=(index.default.name,),
                environment=config.environment,
            )

    def _single(self, config: ServerConfig, index: HostIndex, base_dir: Path) -> Iterator[WebAppSpec]:
        root = absolute_path(config.web_app_dir, base_dir) if config.web_app_dir else self.cwd
        yield WebAppSpec(
            name=DEFAULT_CONTEXT_NAME,
            root_dir=str(root),
            doc_base=str(root),
            context_path=context_path_for(DEFAULT_CONTEXT_NAME, config.context_path),
            hosts=(index.default.name,),
            environment=config.environment,
        )

    def _finalize(self, web_app: WebAppSpec, root_extensions: Mapping[str, dict[str, Any]]) -> WebAppSpec:
        extensions = {**root_extensions, **web_app.extensions}
        spec = structs.replace(web_app, extensions=extensions)
        for name, options in extensions.items():
            spec = self.extensions.apply(name, options, spec)
        packaging = PackagingKind.ARCHIVE if self.detector.is_archive(spec.doc_base) else PackagingKind.DIRECTORY
        return structs.replace(spec, packaging=packaging)


def _targets(web_app: WebAppConfig, index: HostIndex, *, configured_hosts: bool) -> tuple[str, ...]:
    refs = web_app.host_refs()
    targets: list[HostSpec] = []
    if refs:
        for ref in refs:
            host = index.lookup(ref)
            if host is None:
                raise ResolutionConflict(f"Web application '{web_app.name}' references unknown host '{ref}'")
            if host not in targets:
                targets.append(host)
    else:
        targets.append(index.default)
        if configured_hosts:
            targets.extend(
                host for host in index if host.origin is HostOrigin.CONFIGURED and host != index.default
            )
    targets.sort(key=index.position)
    return tuple(host.name for host in targets)


def _check_conflicts(web_apps: Sequence[WebAppSpec]) -> None:
    seen: dict[tuple[str, str], str] = {}
    for web_app in web_apps:
        for host in web_app.hosts:
            key = (host, web_app.context_path)
            if key in seen:
                raise ResolutionConflict(
                    f"Web applications '{seen[key]}' and '{web_app.name}' both deploy to "
                    f"'{web_app.context_path}' on host '{host}'"
                )
            seen[key] = web_app.name


def discover_web_apps(
    config: ServerConfig,
    hosts: Sequence[HostSpec],
    *,
    detector: PackagingDetector | None = None,
    extensions: ExtensionRegistry | None = None,
    cwd: Path | None = None,
) -> tuple[WebAppSpec, ...]:
    discoverer = WebAppDiscoverer(detector=detector, extensions=extensions, cwd=cwd)
    return discoverer.discover(config, hosts)
